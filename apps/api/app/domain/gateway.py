"""Normalized views of payloads returned by the payment gateway."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from .transactions import TransactionStatus


class PaymentInstrument(BaseModel):
    """What the payer needs in order to pay: a VA number and/or a QR code."""

    payment_number: str | None = None
    qr_string: str | None = None
    qr_image_url: str | None = None


class GatewayDetail(BaseModel):
    status: TransactionStatus = TransactionStatus.PENDING
    raw_status: str | None = None
    amount: int = 0
    fee: int = 0
    total_payment: int = 0
    instrument: PaymentInstrument = Field(default_factory=PaymentInstrument)
    expired_at: datetime | None = None
    paid_at: datetime | None = None
    completed_at: datetime | None = None
    raw: dict[str, Any] = Field(default_factory=dict)
