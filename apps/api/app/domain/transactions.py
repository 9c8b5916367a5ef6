from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, PlainSerializer

from .pagination import PaginationMeta


def to_utc_iso(value: datetime) -> str:
    """Render a naive-UTC (or aware) datetime as ISO-8601 with a ``Z`` suffix."""

    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value.isoformat(timespec="milliseconds") + "Z"


UtcDatetime = Annotated[datetime, PlainSerializer(to_utc_iso, return_type=str)]


class TransactionStatus(str, Enum):
    """Normalized lifecycle states for gateway payments."""

    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    EXPIRED = "expired"

    @property
    def is_terminal(self) -> bool:
        return self is not TransactionStatus.PENDING


class PaymentMethod(str, Enum):
    """Payment channels accepted by the gateway."""

    QRIS = "qris"
    BNI_VA = "bni_va"
    BRI_VA = "bri_va"
    CIMB_NIAGA_VA = "cimb_niaga_va"
    PERMATA_VA = "permata_va"
    MAYBANK_VA = "maybank_va"
    SAMPOERNA_VA = "sampoerna_va"
    BNC_VA = "bnc_va"
    ATM_BERSAMA_VA = "atm_bersama_va"
    ARTHA_GRAHA_VA = "artha_graha_va"
    PAYPAL = "paypal"


class Transaction(BaseModel):
    """Local record of one gateway payment."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID = Field(default_factory=uuid4)
    project_id: UUID
    external_id: str
    gateway_order_id: str
    method: str
    status: TransactionStatus = TransactionStatus.PENDING
    amount: int = Field(gt=0)
    fee: int = Field(default=0, ge=0)
    platform_fee: int = Field(default=0, ge=0)
    provider_fee: int = Field(default=0, ge=0)
    total_payment: int = Field(default=0, ge=0)
    payment_number: str | None = None
    qr_string: str | None = None
    qr_image_url: str | None = None
    expired_at: datetime | None = None
    paid_at: datetime | None = None
    gateway_status: str | None = None
    gateway_completed_at: datetime | None = None
    gateway_raw: dict[str, Any] = Field(default_factory=dict)
    version: int = Field(default=1, ge=1)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def gross_received(self) -> int:
        return self.total_payment or self.amount


class TransactionCreateRequest(BaseModel):
    external_id: str = Field(..., min_length=3, max_length=191)
    method: PaymentMethod
    amount: int = Field(..., gt=0, strict=True)
    customer_name: str | None = Field(default=None, max_length=191)

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "external_id": "INV-2025-0001",
                    "method": "bni_va",
                    "amount": 150000,
                    "customer_name": "Budi Santoso",
                }
            ]
        }
    }


class TransactionCreatedView(BaseModel):
    id: UUID
    external_id: str
    gateway_order_id: str
    method: str
    status: TransactionStatus
    amount: int
    total_payment: int
    payment_number: str | None = None
    qr_string: str | None = None
    qr_image_url: str | None = None
    expired_at: UtcDatetime | None = None

    @classmethod
    def from_transaction(cls, transaction: Transaction) -> "TransactionCreatedView":
        return cls(
            id=transaction.id,
            external_id=transaction.external_id,
            gateway_order_id=transaction.gateway_order_id,
            method=transaction.method,
            status=transaction.status,
            amount=transaction.amount,
            total_payment=transaction.gross_received,
            payment_number=transaction.payment_number,
            qr_string=transaction.qr_string,
            qr_image_url=transaction.qr_image_url,
            expired_at=transaction.expired_at,
        )


class TransactionDetailView(TransactionCreatedView):
    fee: int
    paid_at: UtcDatetime | None = None
    created_at: UtcDatetime

    @classmethod
    def from_transaction(cls, transaction: Transaction) -> "TransactionDetailView":
        base = TransactionCreatedView.from_transaction(transaction)
        return cls(
            **base.model_dump(),
            fee=transaction.fee,
            paid_at=transaction.paid_at,
            created_at=transaction.created_at,
        )


class TransactionSummaryView(BaseModel):
    id: UUID
    external_id: str
    method: str
    status: TransactionStatus
    amount: int
    fee: int
    total_payment: int
    created_at: UtcDatetime

    @classmethod
    def from_transaction(cls, transaction: Transaction) -> "TransactionSummaryView":
        return cls(
            id=transaction.id,
            external_id=transaction.external_id,
            method=transaction.method,
            status=transaction.status,
            amount=transaction.amount,
            fee=transaction.fee,
            total_payment=transaction.gross_received,
            created_at=transaction.created_at,
        )


class TransactionSyncView(BaseModel):
    id: UUID
    status: TransactionStatus
    gateway_status: str | None = None
    total_payment: int
    payment_number: str | None = None
    qr_string: str | None = None
    paid_at: UtcDatetime | None = None

    @classmethod
    def from_transaction(cls, transaction: Transaction) -> "TransactionSyncView":
        return cls(
            id=transaction.id,
            status=transaction.status,
            gateway_status=transaction.gateway_status,
            total_payment=transaction.gross_received,
            payment_number=transaction.payment_number,
            qr_string=transaction.qr_string,
            paid_at=transaction.paid_at,
        )


class TransactionListData(BaseModel):
    items: list[TransactionSummaryView]
    pagination: PaginationMeta


class TransactionCreatedResponse(BaseModel):
    success: bool = True
    data: TransactionCreatedView


class TransactionDetailResponse(BaseModel):
    success: bool = True
    data: TransactionDetailView


class TransactionListResponse(BaseModel):
    success: bool = True
    data: TransactionListData


class TransactionSyncResponse(BaseModel):
    success: bool = True
    data: TransactionSyncView


class GatewayCallbackRequest(BaseModel):
    """Push notification sent by the gateway when an order changes state."""

    model_config = ConfigDict(extra="allow")

    order_id: str = Field(..., min_length=1)
    status: str | None = None


class GatewayCallbackData(BaseModel):
    transaction_id: UUID
    status: TransactionStatus


class GatewayCallbackResponse(BaseModel):
    success: bool = True
    data: GatewayCallbackData
