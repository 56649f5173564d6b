from __future__ import annotations
import logging
from typing import Any, Dict, Optional

import httpx
from .settings import settings

logger = logging.getLogger(__name__)


def _json_body(r: httpx.Response) -> Dict[str, Any]:
	# Paystack reports refusals in the body ({"status": false, "message": ...});
	# anything that is not JSON came from somewhere else (proxy, auth page)
	if r.status_code >= 500:
		r.raise_for_status()
	try:
		return r.json()
	except ValueError:
		r.raise_for_status()
		raise httpx.DecodingError(f"non-JSON response from Paystack ({r.status_code})", request=r.request)


class PaystackClient:
	def __init__(
		self,
		secret_key: Optional[str] = None,
		*,
		base_url: Optional[str] = None,
		transport: Optional[httpx.AsyncBaseTransport] = None,
	) -> None:
		self.secret_key = secret_key or settings.paystack_secret_key
		if not self.secret_key:
			raise ValueError("PAYSTACK_SECRET_KEY is not configured")
		self.base_url = (base_url or settings.paystack_base_url).rstrip("/")
		self._client = httpx.AsyncClient(
			timeout=30,
			headers={"Authorization": f"Bearer {self.secret_key}"},
			transport=transport,
		)

	async def initialize(
		self,
		*,
		email: str,
		amount: int,
		reference: str,
		callback_url: str,
		split_code: Optional[str] = None,
	) -> Dict[str, Any]:
		payload: Dict[str, Any] = {
			"email": email,
			"amount": amount,
			"reference": reference,
			"callback_url": callback_url,
		}
		if split_code:
			payload["split_code"] = split_code
		r = await self._client.post(f"{self.base_url}/transaction/initialize", json=payload)
		data = _json_body(r)
		logger.info("paystack initialize %s -> status=%s", reference, data.get("status"))
		return data

	async def verify(self, reference: str) -> Dict[str, Any]:
		r = await self._client.get(f"{self.base_url}/transaction/verify/{reference}")
		data = _json_body(r)
		logger.info("paystack verify %s -> status=%s", reference, (data.get("data") or {}).get("status"))
		return data

	async def aclose(self) -> None:
		await self._client.aclose()


def build_callback_url() -> str:
	app_url = settings.app_url
	if app_url:
		base = app_url if app_url.startswith("http") else f"https://{app_url}"
	else:
		base = "http://localhost:5000"
	return base.rstrip("/") + "/payment-callback"
