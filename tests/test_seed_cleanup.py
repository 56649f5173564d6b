"""
Tests for startup seeding and expired-session cleanup.
"""

from datetime import datetime, timedelta

from iq_quiz.cleanup import purge_expired_sessions
from iq_quiz.models import AuthSession, IqGrade, OtpSession, PaymentSettings
from iq_quiz.seed import DEFAULT_IQ_GRADES, seed_iq_grades, seed_payment_settings


class TestSeeding:
    def test_default_grades_are_global_and_only_seeded_once(self, db):
        assert seed_iq_grades(db) == len(DEFAULT_IQ_GRADES)
        assert seed_iq_grades(db) == 0
        rows = db.query(IqGrade).all()
        assert len(rows) == 6
        assert all(r.subject_id is None for r in rows)

    def test_existing_grades_are_left_alone(self, db, add_grade):
        add_grade(0, 100, 90, 110, "Custom")
        assert seed_iq_grades(db) == 0
        assert [g.label for g in db.query(IqGrade).all()] == ["Custom"]

    def test_payment_settings_default(self, db):
        assert seed_payment_settings(db) is True
        assert seed_payment_settings(db) is False
        assert db.query(PaymentSettings).one().membership_price == 5000


class TestCleanup:
    def test_purges_expired_rows_only(self, db):
        now = datetime.utcnow()
        db.add_all([
            OtpSession(phone_number="+1", otp="111111", expires_at=now - timedelta(minutes=5)),
            OtpSession(phone_number="+2", otp="222222", expires_at=now + timedelta(minutes=5)),
            AuthSession(session_id="old-user", principal_id="u", kind="user", created_at=now - timedelta(days=60)),
            AuthSession(session_id="new-user", principal_id="u", kind="user", created_at=now),
            AuthSession(session_id="old-admin", principal_id="a", kind="admin", created_at=now - timedelta(hours=30)),
        ])
        db.commit()

        assert purge_expired_sessions(db) == 3
        assert [s.phone_number for s in db.query(OtpSession).all()] == ["+2"]
        assert [s.session_id for s in db.query(AuthSession).all()] == ["new-user"]
