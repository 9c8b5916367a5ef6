from __future__ import annotations

from datetime import datetime
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field


class Project(BaseModel):
    """A merchant tenant owning credentials, transactions and a webhook target."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID = Field(default_factory=uuid4)
    name: str = Field(..., min_length=2, max_length=160)
    app_slug: str = Field(..., min_length=3, max_length=40, pattern=r"^[a-z0-9-]+$")
    webhook_url: str | None = None
    webhook_secret: str | None = None
    is_active: bool = True
    payout_bank_name: str | None = None
    payout_account_name: str | None = None
    payout_account_number: str | None = None
    created_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def has_payout_account(self) -> bool:
        return bool(
            self.payout_bank_name and self.payout_account_name and self.payout_account_number
        )


class ApiKey(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID = Field(default_factory=uuid4)
    project_id: UUID
    key_prefix: str
    key_hash: str
    revoked_at: datetime | None = None
    last_used_at: datetime | None = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
