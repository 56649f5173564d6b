import os
import tempfile
from datetime import datetime

# Point the app at a throwaway database before anything imports settings
_TMP_DIR = tempfile.mkdtemp(prefix="iq_quiz_tests_")
os.environ["DATABASE_URL"] = "sqlite:///" + os.path.join(_TMP_DIR, "test.db")
os.environ["SEED_DEFAULT_IQ_GRADES"] = "false"
os.environ["JWT_SECRET_KEY"] = "test-secret"
for _var in ("TWILIO_ACCOUNT_SID", "TWILIO_AUTH_TOKEN", "PAYSTACK_SECRET_KEY", "SEED_ADMIN_USERNAME"):
    os.environ.pop(_var, None)

import pytest
from fastapi.testclient import TestClient

from iq_quiz.db import Base, SessionLocal, engine
from iq_quiz.main import app
from iq_quiz.models import Admin, IqGrade, Question, Quiz, Subject, User
from iq_quiz.routers.auth import get_otp_client, hash_password, open_session
from iq_quiz.routers.payments import get_paystack_client


class FakeOtpClient:
    def __init__(self):
        self.sent = []

    async def send_otp(self, phone_number, otp):
        self.sent.append((phone_number, otp))
        return "sms"


class FakePaystack:
    def __init__(self, verify_status="success"):
        self.verify_status = verify_status
        self.initialized = []

    async def initialize(self, *, email, amount, reference, callback_url, split_code=None):
        self.initialized.append({"email": email, "amount": amount, "reference": reference, "split_code": split_code})
        return {
            "status": True,
            "message": "Authorization URL created",
            "data": {"authorization_url": "https://checkout.example/abc", "reference": reference},
        }

    async def verify(self, reference):
        return {"status": True, "data": {"reference": reference, "status": self.verify_status}}


@pytest.fixture(autouse=True)
def _schema():
    Base.metadata.create_all(bind=engine)
    yield
    app.dependency_overrides.clear()
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db():
    session = SessionLocal()
    yield session
    session.close()


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def user(db):
    row = User(phone_number="+2348000000001", name="Ada", is_verified=True, last_otp_verified_at=datetime.utcnow())
    db.add(row)
    db.commit()
    return row


@pytest.fixture
def user_headers(db, user):
    token = open_session(db, user.id, "user")
    return {"Authorization": f"Bearer {token.access_token}"}


@pytest.fixture
def admin(db):
    row = Admin(username="root", password_hash=hash_password("secret123"), is_super_admin=True)
    db.add(row)
    db.commit()
    return row


@pytest.fixture
def admin_headers(db, admin):
    token = open_session(db, admin.id, "admin")
    return {"Authorization": f"Bearer {token.access_token}"}


@pytest.fixture
def otp_client():
    fake = FakeOtpClient()
    app.dependency_overrides[get_otp_client] = lambda: fake
    return fake


@pytest.fixture
def paystack():
    fake = FakePaystack()
    app.dependency_overrides[get_paystack_client] = lambda: fake
    return fake


@pytest.fixture
def make_quiz(db):
    """Build a subject + quiz; questions are (type, options, correct_answer) tuples."""

    def _make(questions, pass_mark=50, premium=False, subject=None):
        if subject is None:
            subject = Subject(name="Mathematics", is_premium=premium)
            db.add(subject)
            db.flush()
        quiz = Quiz(subject_id=subject.id, title="Quiz", pass_mark_percentage=pass_mark)
        db.add(quiz)
        db.flush()
        for i, (qtype, options, correct) in enumerate(questions):
            db.add(Question(
                quiz_id=quiz.id,
                question_text=f"Question {i + 1}",
                question_type=qtype,
                options=options,
                correct_answer=correct,
                order_index=i,
            ))
        db.commit()
        db.refresh(quiz)
        return quiz

    return _make


@pytest.fixture
def add_grade(db):
    def _add(min_pct, max_pct, min_iq, max_iq, label, subject_id=None):
        row = IqGrade(
            subject_id=subject_id,
            min_score_percentage=min_pct,
            max_score_percentage=max_pct,
            min_iq=min_iq,
            max_iq=max_iq,
            label=label,
        )
        db.add(row)
        db.commit()
        return row

    return _add
