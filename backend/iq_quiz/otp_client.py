from __future__ import annotations
import json
import logging
import secrets
from typing import Any, Dict, Optional

import httpx
from .settings import settings

logger = logging.getLogger(__name__)


def generate_otp() -> str:
	# Six digits, never a leading zero
	return str(100000 + secrets.randbelow(900000))


class OtpClient:
	"""Sends one-time codes through Twilio: WhatsApp template first, SMS fallback."""

	def __init__(
		self,
		account_sid: Optional[str] = None,
		auth_token: Optional[str] = None,
		*,
		from_number: Optional[str] = None,
		base_url: Optional[str] = None,
		transport: Optional[httpx.AsyncBaseTransport] = None,
	) -> None:
		self.account_sid = account_sid or settings.twilio_account_sid
		self.auth_token = auth_token or settings.twilio_auth_token
		if not self.account_sid or not self.auth_token:
			raise ValueError("Twilio credentials not configured (TWILIO_ACCOUNT_SID, TWILIO_AUTH_TOKEN)")
		self.from_number = from_number or settings.twilio_phone_number
		if not self.from_number:
			raise ValueError("TWILIO_PHONE_NUMBER is not configured")
		self.whatsapp_number = settings.twilio_whatsapp_number
		self.whatsapp_template_sid = settings.twilio_whatsapp_template_sid
		root = (base_url or settings.twilio_base_url).rstrip("/")
		self.messages_url = f"{root}/Accounts/{self.account_sid}/Messages.json"
		self._client = httpx.AsyncClient(timeout=30, auth=(self.account_sid, self.auth_token), transport=transport)

	async def send_otp(self, phone_number: str, otp: str) -> str:
		if self.whatsapp_number and self.whatsapp_template_sid:
			try:
				logger.info("sending WhatsApp OTP to %s", phone_number)
				await self._create_message({
					"From": f"whatsapp:{self.whatsapp_number}",
					"To": f"whatsapp:{phone_number}",
					"ContentSid": self.whatsapp_template_sid,
					"ContentVariables": json.dumps({"1": otp}),
				})
				return "whatsapp"
			except httpx.HTTPError as err:
				logger.warning("WhatsApp OTP to %s failed (%s); falling back to SMS", phone_number, err)
		try:
			logger.info("sending SMS OTP to %s", phone_number)
			await self._create_message({
				"From": self.from_number,
				"To": phone_number,
				"Body": f"Your verification code is: {otp}. Valid for {settings.otp_ttl_minutes} minutes.",
			})
		except httpx.HTTPError as err:
			logger.error("SMS OTP to %s failed: %s", phone_number, err)
			raise
		return "sms"

	async def _create_message(self, form: Dict[str, Any]) -> Dict[str, Any]:
		r = await self._client.post(self.messages_url, data=form)
		r.raise_for_status()
		return r.json()

	async def aclose(self) -> None:
		await self._client.aclose()
