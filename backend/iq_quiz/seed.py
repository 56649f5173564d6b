from __future__ import annotations
import logging
from sqlalchemy.orm import Session

from .models import Admin, IqGrade, PaymentSettings
from .routers.auth import hash_password
from .settings import settings

logger = logging.getLogger(__name__)

# Global bands following the usual IQ distribution
DEFAULT_IQ_GRADES = [
	{"min_score_percentage": 0, "max_score_percentage": 39, "min_iq": 70, "max_iq": 84, "label": "Below Average"},
	{"min_score_percentage": 40, "max_score_percentage": 59, "min_iq": 85, "max_iq": 99, "label": "Low Average"},
	{"min_score_percentage": 60, "max_score_percentage": 74, "min_iq": 100, "max_iq": 114, "label": "Average"},
	{"min_score_percentage": 75, "max_score_percentage": 84, "min_iq": 115, "max_iq": 129, "label": "Above Average"},
	{"min_score_percentage": 85, "max_score_percentage": 94, "min_iq": 130, "max_iq": 144, "label": "Superior"},
	{"min_score_percentage": 95, "max_score_percentage": 100, "min_iq": 145, "max_iq": 160, "label": "Genius"},
]


def seed_iq_grades(db: Session) -> int:
	if db.query(IqGrade).first() is not None:
		return 0
	for grade in DEFAULT_IQ_GRADES:
		db.add(IqGrade(subject_id=None, **grade))
	db.commit()
	logger.info("seeded %d global IQ grades", len(DEFAULT_IQ_GRADES))
	return len(DEFAULT_IQ_GRADES)


def seed_payment_settings(db: Session) -> bool:
	if db.query(PaymentSettings).first() is not None:
		return False
	db.add(PaymentSettings(membership_price=settings.default_membership_price))
	db.commit()
	logger.info("seeded payment settings (membership price %d)", settings.default_membership_price)
	return True


def seed_admin(db: Session) -> bool:
	username = settings.seed_admin_username
	password = settings.seed_admin_password
	if not username or not password:
		return False
	if db.query(Admin).filter(Admin.username == username).first() is not None:
		return False
	db.add(Admin(username=username, password_hash=hash_password(password), is_super_admin=True))
	db.commit()
	logger.info("seeded super admin %s", username)
	return True


def seed_all(db: Session) -> None:
	if settings.seed_default_iq_grades:
		seed_iq_grades(db)
	seed_payment_settings(db)
	seed_admin(db)
