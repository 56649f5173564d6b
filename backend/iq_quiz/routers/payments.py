from __future__ import annotations
import logging
import time
from typing import Any, Dict

import httpx
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from .auth import get_current_user
from ..db import get_db
from ..models import Payment, PaymentSettings, User
from ..paystack_client import PaystackClient, build_callback_url
from ..settings import settings


router = APIRouter(prefix="/api", tags=["payments"])
logger = logging.getLogger(__name__)


async def get_paystack_client():
    try:
        client = PaystackClient()
    except ValueError as e:
        raise HTTPException(status_code=503, detail=str(e))
    try:
        yield client
    finally:
        await client.aclose()


def payment_to_dict(payment: Payment) -> Dict[str, Any]:
    return {
        "id": payment.id,
        "user_id": payment.user_id,
        "reference": payment.reference,
        "amount": payment.amount,
        "status": payment.status,
        "created_at": payment.created_at,
    }


def settings_to_dict(row: PaymentSettings) -> Dict[str, Any]:
    return {
        "id": row.id,
        "membership_price": row.membership_price,
        "split_code": row.split_code,
        "updated_at": row.updated_at,
    }


@router.post("/payments/initialize")
async def initialize_payment(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    paystack: PaystackClient = Depends(get_paystack_client),
):
    pay_settings = db.query(PaymentSettings).first()
    amount = pay_settings.membership_price if pay_settings else settings.default_membership_price
    split_code = pay_settings.split_code if pay_settings else None
    reference = f"PAY_{int(time.time() * 1000)}_{user.id}"
    try:
        data = await paystack.initialize(
            # Paystack requires an email; users only have phone numbers
            email=f"{user.phone_number}@iq-quiz.local",
            amount=amount,
            reference=reference,
            callback_url=build_callback_url(),
            split_code=split_code,
        )
    except httpx.HTTPError as e:
        raise HTTPException(status_code=502, detail=f"Payment gateway error: {e}")
    if not data.get("status"):
        raise HTTPException(status_code=400, detail=data.get("message") or "Payment initialization failed")
    db.add(Payment(
        user_id=user.id,
        reference=reference,
        amount=amount,
        status="pending",
        gateway_response=data.get("data"),
    ))
    db.commit()
    return data.get("data")


@router.get("/payments/verify/{reference}")
async def verify_payment(
    reference: str,
    db: Session = Depends(get_db),
    paystack: PaystackClient = Depends(get_paystack_client),
):
    try:
        data = await paystack.verify(reference)
    except httpx.HTTPError as e:
        raise HTTPException(status_code=502, detail=f"Payment gateway error: {e}")
    gateway = data.get("data") or {}
    payment = db.query(Payment).filter(Payment.reference == reference).first()
    if payment is not None and data.get("status"):
        status = gateway.get("status")
        if status == "success":
            payment.status = "success"
        elif status in ("failed", "abandoned", "reversed") and payment.status != "success":
            payment.status = "failed"
        payment.gateway_response = gateway
        db.add(payment)
        db.commit()
        logger.info("payment %s is now %s", reference, payment.status)
    return data


@router.get("/payments/user")
def user_payments(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    rows = (
        db.query(Payment)
        .filter(Payment.user_id == user.id)
        .order_by(Payment.created_at.desc())
        .all()
    )
    return [payment_to_dict(p) for p in rows]


@router.get("/payment-settings")
def get_payment_settings(db: Session = Depends(get_db)):
    row = db.query(PaymentSettings).first()
    return settings_to_dict(row) if row else None
