from datetime import datetime, timedelta, timezone
from typing import Optional
import logging
import uuid

from fastapi import APIRouter, HTTPException, Depends
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from pydantic import BaseModel
import httpx

from ..settings import settings
from sqlalchemy.orm import Session
from ..db import get_db
from ..models import Admin, AuthSession, OtpSession, User
from ..otp_client import OtpClient, generate_otp

router = APIRouter(prefix="/api", tags=["auth"])
logger = logging.getLogger(__name__)

logging.getLogger('passlib').setLevel(logging.ERROR)
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/admin/login", auto_error=False)

USER = "user"
ADMIN = "admin"


class Token(BaseModel):
	access_token: str
	token_type: str = "bearer"


class SendOtpRequest(BaseModel):
	phone_number: str


class VerifyOtpRequest(BaseModel):
	session_id: str
	otp: str
	name: Optional[str] = None


class PhoneLoginRequest(BaseModel):
	phone_number: str


class AdminCredentials(BaseModel):
	username: str
	password: str


class ProfileUpdate(BaseModel):
	name: str


def user_to_dict(user: User) -> dict:
	return {
		"id": user.id,
		"phone_number": user.phone_number,
		"name": user.name,
		"is_verified": user.is_verified,
		"last_otp_verified_at": user.last_otp_verified_at,
		"created_at": user.created_at,
	}


def admin_to_dict(admin: Admin) -> dict:
	return {
		"id": admin.id,
		"username": admin.username,
		"is_super_admin": admin.is_super_admin,
		"created_by_id": admin.created_by_id,
		"created_at": admin.created_at,
	}


def hash_password(password: str) -> str:
	# bcrypt only looks at the first 72 bytes
	password_bytes = password.encode('utf-8')
	if len(password_bytes) > 72:
		password_bytes = password_bytes[:72]
	return pwd_context.hash(password_bytes.decode('utf-8', errors='ignore'))


def verify_password(plain_password: str, hashed_password: str) -> bool:
	password_bytes = plain_password.encode('utf-8')[:72]
	return pwd_context.verify(password_bytes.decode('utf-8', errors='ignore'), hashed_password)


def session_lifetime(kind: str) -> timedelta:
	if kind == ADMIN:
		return timedelta(hours=settings.admin_session_hours)
	return timedelta(days=settings.user_session_days)


def create_access_token(data: dict, expires_delta: timedelta) -> str:
	to_encode = data.copy()
	to_encode.update({"exp": datetime.now(timezone.utc) + expires_delta})
	return jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def open_session(db: Session, principal_id: str, kind: str) -> Token:
	session_id = uuid.uuid4().hex
	access_token = create_access_token(
		{"sub": principal_id, "kind": kind, "jti": session_id},
		session_lifetime(kind),
	)
	db.add(AuthSession(session_id=session_id, principal_id=principal_id, kind=kind))
	db.commit()
	return Token(access_token=access_token)


def _load_session(token: Optional[str], db: Session, kind: str) -> Optional[AuthSession]:
	if not token:
		return None
	try:
		payload = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
	except JWTError:
		return None
	principal_id = payload.get("sub")
	jti = payload.get("jti")
	if principal_id is None or jti is None or payload.get("kind") != kind:
		return None
	row = db.get(AuthSession, jti)
	if not row or row.principal_id != principal_id or row.kind != kind:
		return None
	if row.created_at + session_lifetime(kind) < datetime.utcnow():
		db.delete(row)
		db.commit()
		return None
	row.last_activity_at = datetime.utcnow()
	db.add(row)
	db.commit()
	return row


def get_optional_user(token: Optional[str] = Depends(oauth2_scheme), db: Session = Depends(get_db)) -> Optional[User]:
	row = _load_session(token, db, USER)
	if row is None:
		return None
	user = db.get(User, row.principal_id)
	if user is None or not user.is_verified:
		db.delete(row)
		db.commit()
		return None
	return user


def get_optional_admin(token: Optional[str] = Depends(oauth2_scheme), db: Session = Depends(get_db)) -> Optional[Admin]:
	row = _load_session(token, db, ADMIN)
	if row is None:
		return None
	admin = db.get(Admin, row.principal_id)
	if admin is None:
		db.delete(row)
		db.commit()
		return None
	return admin


def get_current_user(user: Optional[User] = Depends(get_optional_user)) -> User:
	if user is None:
		raise HTTPException(status_code=401, detail="Unauthorized - user login required")
	return user


def get_current_admin(admin: Optional[Admin] = Depends(get_optional_admin)) -> Admin:
	if admin is None:
		raise HTTPException(status_code=401, detail="Unauthorized - admin login required")
	return admin


async def get_otp_client():
	try:
		client = OtpClient()
	except ValueError as e:
		raise HTTPException(status_code=503, detail=str(e))
	try:
		yield client
	finally:
		await client.aclose()


@router.post("/auth/send-otp")
async def send_otp(req: SendOtpRequest, db: Session = Depends(get_db), otp_client=Depends(get_otp_client)):
	phone = (req.phone_number or "").strip()
	if not phone:
		raise HTTPException(status_code=400, detail="phone_number is required")
	existing = db.query(User).filter(User.phone_number == phone).first()
	otp = generate_otp()
	session = OtpSession(
		phone_number=phone,
		otp=otp,
		expires_at=datetime.utcnow() + timedelta(minutes=settings.otp_ttl_minutes),
	)
	db.add(session)
	db.commit()
	try:
		via = await otp_client.send_otp(phone, otp)
	except httpx.HTTPError as e:
		raise HTTPException(status_code=502, detail=f"Failed to send OTP: {e}")
	return {
		"session_id": session.id,
		"requires_name": existing is None or not existing.name,
		"via": via,
		"message": "OTP sent successfully",
	}


@router.post("/auth/verify-otp")
async def verify_otp(req: VerifyOtpRequest, db: Session = Depends(get_db)):
	session = (
		db.query(OtpSession)
		.filter(OtpSession.id == req.session_id, OtpSession.otp == req.otp)
		.first()
	)
	if not session or session.verified or session.expires_at < datetime.utcnow():
		raise HTTPException(status_code=400, detail="Invalid or expired OTP")
	session.verified = True

	now = datetime.utcnow()
	name = (req.name or "").strip() or None
	user = db.query(User).filter(User.phone_number == session.phone_number).first()
	if user is None:
		user = User(phone_number=session.phone_number, name=name, is_verified=True, last_otp_verified_at=now)
		db.add(user)
	else:
		user.is_verified = True
		user.last_otp_verified_at = now
		if name and not user.name:
			user.name = name
	db.commit()
	db.refresh(user)
	token = open_session(db, user.id, USER)
	return {"access_token": token.access_token, "token_type": token.token_type, "user": user_to_dict(user)}


@router.post("/auth/login-without-otp")
async def login_without_otp(req: PhoneLoginRequest, db: Session = Depends(get_db)):
	user = db.query(User).filter(User.phone_number == (req.phone_number or "").strip()).first()
	if not user or not user.is_verified or not user.last_otp_verified_at:
		raise HTTPException(status_code=401, detail="OTP required")
	if user.last_otp_verified_at < datetime.utcnow() - timedelta(days=settings.otp_login_grace_days):
		raise HTTPException(status_code=401, detail="OTP required")
	token = open_session(db, user.id, USER)
	return {"access_token": token.access_token, "token_type": token.token_type, "user": user_to_dict(user)}


@router.get("/auth/me")
async def me(user: Optional[User] = Depends(get_optional_user), admin: Optional[Admin] = Depends(get_optional_admin)):
	return {
		"user": user_to_dict(user) if user else None,
		"admin": admin_to_dict(admin) if admin else None,
	}


@router.post("/auth/logout")
async def logout(token: Optional[str] = Depends(oauth2_scheme), db: Session = Depends(get_db)):
	if token:
		try:
			payload = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
		except JWTError:
			payload = {}
		jti = payload.get("jti")
		row = db.get(AuthSession, jti) if jti else None
		if row is not None:
			db.delete(row)
			db.commit()
	return {"success": True}


@router.patch("/users/profile")
async def update_profile(req: ProfileUpdate, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	name = (req.name or "").strip()
	if not name:
		raise HTTPException(status_code=400, detail="name is required")
	user.name = name
	db.add(user)
	db.commit()
	db.refresh(user)
	return {"user": user_to_dict(user)}


@router.get("/admin/setup-needed")
async def setup_needed(db: Session = Depends(get_db)):
	return {"needs_setup": db.query(Admin).count() == 0}


@router.post("/admin/setup")
async def setup(req: AdminCredentials, db: Session = Depends(get_db)):
	if db.query(Admin).count() > 0:
		raise HTTPException(status_code=403, detail="Setup already completed. Admins exist in the system.")
	username = (req.username or "").strip()
	if len(username) < 3:
		raise HTTPException(status_code=400, detail="Username must be at least 3 characters")
	if len(req.password or "") < 6:
		raise HTTPException(status_code=400, detail="Password must be at least 6 characters")
	admin = Admin(username=username, password_hash=hash_password(req.password), is_super_admin=True)
	db.add(admin)
	db.commit()
	logger.info("created first super admin %s", username)
	return {
		"success": True,
		"message": "Super admin created successfully",
		"admin": {"id": admin.id, "username": admin.username},
	}


@router.post("/admin/login")
async def admin_login(req: AdminCredentials, db: Session = Depends(get_db)):
	admin = db.query(Admin).filter(Admin.username == req.username).first()
	if not admin or not verify_password(req.password, admin.password_hash):
		raise HTTPException(status_code=401, detail="Invalid credentials")
	token = open_session(db, admin.id, ADMIN)
	return {"access_token": token.access_token, "token_type": token.token_type, "admin": admin_to_dict(admin)}
