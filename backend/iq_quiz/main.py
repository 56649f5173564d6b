import asyncio
import logging

from fastapi import FastAPI

from .db import Base, engine, get_db, ensure_schema
from .cleanup import purge_expired_sessions
from .seed import seed_all
from .settings import settings
from .routers import auth
from .routers import quizzes
from .routers import payments
from .routers import admin

logger = logging.getLogger("iq_quiz")
if not logger.handlers:
	_h = logging.StreamHandler()
	_h.setFormatter(logging.Formatter('[%(levelname)s] %(name)s: %(message)s'))
	logger.addHandler(_h)
logger.setLevel(settings.log_level.upper())

app = FastAPI(title="IQ Quiz API")
app.include_router(auth.router)
app.include_router(quizzes.router)
app.include_router(payments.router)
app.include_router(admin.router)


@app.get("/info")
def root():
	return {
		"status": "ok",
		"otp_configured": bool(settings.twilio_account_sid and settings.twilio_auth_token),
		"payments_configured": bool(settings.paystack_secret_key),
	}


def _run_cleanup() -> None:
	db = next(get_db())
	try:
		removed = purge_expired_sessions(db)
		logger.info("cleanup removed %d expired sessions", removed)
	finally:
		db.close()


async def _cleanup_watcher():
	while True:
		await asyncio.sleep(24 * 60 * 60)
		try:
			_run_cleanup()
		except Exception:
			logger.exception("periodic cleanup failed")


@app.on_event("startup")
async def startup_event():
	# Initialize DB schema
	Base.metadata.create_all(bind=engine)
	# Apply lightweight dev migrations
	try:
		ensure_schema()
	except Exception:
		logger.exception("schema patching failed")
	db = next(get_db())
	try:
		seed_all(db)
	finally:
		db.close()
	# Best-effort cleanup at startup
	try:
		_run_cleanup()
	except Exception:
		logger.exception("startup cleanup failed")
	asyncio.create_task(_cleanup_watcher())


if __name__ == "__main__":
	import uvicorn
	uvicorn.run("iq_quiz.main:app", host="0.0.0.0", port=8000)
