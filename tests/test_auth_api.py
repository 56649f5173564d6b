"""
Tests for phone OTP login, admin setup and session handling.
"""

import asyncio
import json
from datetime import datetime, timedelta
from urllib.parse import parse_qs

import httpx
import pytest

from iq_quiz.main import app
from iq_quiz.models import Admin, AuthSession, OtpSession, User
from iq_quiz.otp_client import OtpClient
from iq_quiz.routers.auth import get_otp_client
from iq_quiz.settings import settings


def _bearer(token):
    return {"Authorization": f"Bearer {token}"}


class TestOtpLogin:
    def test_send_then_verify_creates_user(self, client, db, otp_client):
        r = client.post("/api/auth/send-otp", json={"phone_number": " +2348011112222 "})
        assert r.status_code == 200
        body = r.json()
        assert body["requires_name"] is True
        assert body["via"] == "sms"
        phone, otp = otp_client.sent[0]
        assert phone == "+2348011112222"
        assert len(otp) == 6 and otp.isdigit()

        r = client.post("/api/auth/verify-otp", json={"session_id": body["session_id"], "otp": otp, "name": "Tolu"})
        assert r.status_code == 200
        data = r.json()
        assert data["user"]["name"] == "Tolu"
        assert data["user"]["is_verified"] is True

        me = client.get("/api/auth/me", headers=_bearer(data["access_token"])).json()
        assert me["user"]["phone_number"] == "+2348011112222"
        assert me["admin"] is None
        assert db.query(User).count() == 1

    def test_existing_named_user_does_not_need_name(self, client, user, otp_client):
        r = client.post("/api/auth/send-otp", json={"phone_number": user.phone_number})
        assert r.json()["requires_name"] is False

    def test_wrong_code_is_rejected(self, client, otp_client):
        session_id = client.post("/api/auth/send-otp", json={"phone_number": "+2348011112222"}).json()["session_id"]
        _, otp = otp_client.sent[0]
        wrong = "000000" if otp != "000000" else "111111"
        r = client.post("/api/auth/verify-otp", json={"session_id": session_id, "otp": wrong})
        assert r.status_code == 400

    def test_code_cannot_be_reused(self, client, otp_client):
        session_id = client.post("/api/auth/send-otp", json={"phone_number": "+2348011112222"}).json()["session_id"]
        _, otp = otp_client.sent[0]
        payload = {"session_id": session_id, "otp": otp}
        assert client.post("/api/auth/verify-otp", json=payload).status_code == 200
        assert client.post("/api/auth/verify-otp", json=payload).status_code == 400

    def test_expired_code_is_rejected(self, client, db):
        row = OtpSession(phone_number="+2348011112222", otp="123456", expires_at=datetime.utcnow() - timedelta(minutes=1))
        db.add(row)
        db.commit()
        r = client.post("/api/auth/verify-otp", json={"session_id": row.id, "otp": "123456"})
        assert r.status_code == 400

    def test_blank_phone_number(self, client, otp_client):
        assert client.post("/api/auth/send-otp", json={"phone_number": "  "}).status_code == 400
        assert otp_client.sent == []

    def test_missing_twilio_config_is_unavailable(self, client):
        r = client.post("/api/auth/send-otp", json={"phone_number": "+2348011112222"})
        assert r.status_code == 503


class TestLoginWithoutOtp:
    def test_recently_verified_user(self, client, user):
        r = client.post("/api/auth/login-without-otp", json={"phone_number": user.phone_number})
        assert r.status_code == 200
        assert r.json()["user"]["id"] == user.id

    def test_stale_verification_needs_otp(self, client, db, user):
        user.last_otp_verified_at = datetime.utcnow() - timedelta(days=60)
        db.commit()
        r = client.post("/api/auth/login-without-otp", json={"phone_number": user.phone_number})
        assert r.status_code == 401

    def test_unknown_phone(self, client):
        r = client.post("/api/auth/login-without-otp", json={"phone_number": "+2340000000000"})
        assert r.status_code == 401


class TestSessions:
    def test_logout_revokes_token(self, client, db, user_headers):
        assert client.get("/api/quiz-attempts", headers=user_headers).status_code == 200
        assert client.post("/api/auth/logout", headers=user_headers).json() == {"success": True}
        assert db.query(AuthSession).count() == 0
        assert client.get("/api/quiz-attempts", headers=user_headers).status_code == 401

    def test_garbage_token_is_anonymous(self, client):
        me = client.get("/api/auth/me", headers=_bearer("not-a-jwt")).json()
        assert me == {"user": None, "admin": None}

    def test_user_token_is_not_an_admin_token(self, client, user_headers):
        assert client.get("/api/admin/subjects", headers=user_headers).status_code == 401

    def test_update_profile(self, client, user_headers):
        r = client.patch("/api/users/profile", json={"name": "  Grace "}, headers=user_headers)
        assert r.status_code == 200
        assert r.json()["user"]["name"] == "Grace"
        assert client.patch("/api/users/profile", json={"name": " "}, headers=user_headers).status_code == 400


class TestAdminSetup:
    def test_first_admin_setup_then_login(self, client, db):
        assert client.get("/api/admin/setup-needed").json() == {"needs_setup": True}
        r = client.post("/api/admin/setup", json={"username": "owner", "password": "hunter22"})
        assert r.status_code == 200
        assert db.query(Admin).one().is_super_admin is True
        assert client.get("/api/admin/setup-needed").json() == {"needs_setup": False}

        r = client.post("/api/admin/login", json={"username": "owner", "password": "hunter22"})
        assert r.status_code == 200
        me = client.get("/api/auth/me", headers=_bearer(r.json()["access_token"])).json()
        assert me["admin"]["username"] == "owner"

    def test_setup_only_once(self, client, admin):
        r = client.post("/api/admin/setup", json={"username": "other", "password": "hunter22"})
        assert r.status_code == 403

    def test_setup_validates_credentials(self, client):
        assert client.post("/api/admin/setup", json={"username": "ab", "password": "hunter22"}).status_code == 400
        assert client.post("/api/admin/setup", json={"username": "owner", "password": "123"}).status_code == 400

    def test_bad_password(self, client, admin):
        r = client.post("/api/admin/login", json={"username": "root", "password": "wrong-pass"})
        assert r.status_code == 401


class TestTwilioDelivery:
    """Drives the real OTP client against a mocked Twilio API."""

    @pytest.fixture
    def twilio(self, monkeypatch):
        monkeypatch.setattr(settings, "twilio_whatsapp_number", "+1555")
        monkeypatch.setattr(settings, "twilio_whatsapp_template_sid", "HX123")
        sent = []

        def build(fail_whatsapp=False, fail_sms=False):
            def handler(request):
                form = {k: v[0] for k, v in parse_qs(request.content.decode()).items()}
                sent.append(form)
                is_whatsapp = form["From"].startswith("whatsapp:")
                if (is_whatsapp and fail_whatsapp) or (not is_whatsapp and fail_sms):
                    return httpx.Response(400, json={"message": "rejected"})
                return httpx.Response(201, json={"sid": "SM1"})

            return OtpClient("AC1", "token", from_number="+1444", transport=httpx.MockTransport(handler))

        return build, sent

    def test_whatsapp_template_is_tried_first(self, twilio):
        build, sent = twilio
        assert asyncio.run(build().send_otp("+2348011112222", "123456")) == "whatsapp"
        assert len(sent) == 1
        assert sent[0]["From"] == "whatsapp:+1555"
        assert sent[0]["To"] == "whatsapp:+2348011112222"
        assert sent[0]["ContentSid"] == "HX123"
        assert json.loads(sent[0]["ContentVariables"]) == {"1": "123456"}

    def test_falls_back_to_sms(self, twilio):
        build, sent = twilio
        assert asyncio.run(build(fail_whatsapp=True).send_otp("+2348011112222", "123456")) == "sms"
        assert [m["From"] for m in sent] == ["whatsapp:+1555", "+1444"]
        assert "123456" in sent[1]["Body"]

    def test_sms_only_without_whatsapp_config(self, twilio, monkeypatch):
        build, sent = twilio
        monkeypatch.setattr(settings, "twilio_whatsapp_template_sid", None)
        assert asyncio.run(build().send_otp("+2348011112222", "123456")) == "sms"
        assert [m["To"] for m in sent] == ["+2348011112222"]

    def test_both_channels_failing_is_a_bad_gateway(self, client, twilio):
        build, _ = twilio
        app.dependency_overrides[get_otp_client] = lambda: build(fail_whatsapp=True, fail_sms=True)
        r = client.post("/api/auth/send-otp", json={"phone_number": "+2348011112222"})
        assert r.status_code == 502
