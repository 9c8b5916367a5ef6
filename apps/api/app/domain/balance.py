from __future__ import annotations

from datetime import datetime
from enum import Enum
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field

from .pagination import PaginationMeta
from .transactions import UtcDatetime


class BalanceSummary(BaseModel):
    """Money owed to a project, split by maturity and open withdrawals."""

    total_balance: int = 0
    eligible_balance: int = 0
    reserved_balance: int = 0
    pending_balance: int = 0
    withdrawable_balance: int = 0


class BalanceResponse(BaseModel):
    success: bool = True
    data: BalanceSummary


class WithdrawalStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    REJECTED = "rejected"

    @property
    def reserves_balance(self) -> bool:
        return self is not WithdrawalStatus.REJECTED


class Withdrawal(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID = Field(default_factory=uuid4)
    project_id: UUID
    status: WithdrawalStatus = WithdrawalStatus.PENDING
    amount_gross: int = Field(..., gt=0)
    amount_fee: int = Field(default=0, ge=0)
    amount_net: int = Field(default=0, ge=0)
    payout_bank_name: str | None = None
    payout_account_name: str | None = None
    payout_account_number: str | None = None
    note: str | None = None
    processed_at: datetime | None = None
    created_at: datetime = Field(default_factory=datetime.utcnow)


class WithdrawalCreateRequest(BaseModel):
    amount: int = Field(..., gt=0, strict=True)

    model_config = {"json_schema_extra": {"examples": [{"amount": 250000}]}}


class WithdrawalView(BaseModel):
    id: UUID
    status: WithdrawalStatus
    amount_gross: int
    amount_fee: int
    amount_net: int
    payout_bank_name: str | None = None
    payout_account_name: str | None = None
    payout_account_number: str | None = None
    note: str | None = None
    processed_at: UtcDatetime | None = None
    created_at: UtcDatetime

    @classmethod
    def from_withdrawal(cls, withdrawal: Withdrawal) -> "WithdrawalView":
        return cls.model_validate(withdrawal.model_dump())


class WithdrawalResponse(BaseModel):
    success: bool = True
    data: WithdrawalView


class WithdrawalListData(BaseModel):
    items: list[WithdrawalView]
    pagination: PaginationMeta


class WithdrawalListResponse(BaseModel):
    success: bool = True
    data: WithdrawalListData
