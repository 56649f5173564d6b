from __future__ import annotations
from datetime import datetime, timedelta
from sqlalchemy import delete
from sqlalchemy.orm import Session

from .models import AuthSession, OtpSession
from .settings import settings


def purge_expired_sessions(db: Session) -> int:
	now = datetime.utcnow()
	removed = 0

	# OTP codes are single-use and short-lived; keep nothing past expiry
	res = db.execute(delete(OtpSession).where(OtpSession.expires_at < now))
	removed += res.rowcount or 0

	# Auth sessions older than their kind's lifetime can no longer authenticate
	limits = {
		"user": now - timedelta(days=settings.user_session_days),
		"admin": now - timedelta(hours=settings.admin_session_hours),
	}
	for kind, threshold in limits.items():
		res = db.execute(
			delete(AuthSession).where(AuthSession.kind == kind, AuthSession.created_at < threshold)
		)
		removed += res.rowcount or 0

	db.commit()
	return removed
