from __future__ import annotations

from datetime import datetime
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field

from .pagination import PaginationMeta
from .transactions import UtcDatetime


class WebhookEvent(BaseModel):
    """Envelope POSTed to a project's webhook URL."""

    id: str
    type: str
    created_at: UtcDatetime
    data: dict[str, Any]


class WebhookLogEntry(BaseModel):
    """One delivery attempt, successful or not."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID = Field(default_factory=uuid4)
    project_id: UUID
    transaction_id: UUID
    event_id: str
    event_type: str
    attempt_no: int = Field(..., ge=1)
    target_url: str
    request_body: str
    response_code: Optional[int] = Field(default=None, ge=100, le=599)
    response_body: Optional[str] = Field(default=None, max_length=4000)
    error_message: Optional[str] = Field(default=None, max_length=4000)
    is_success: bool = False
    duration_ms: int = Field(default=0, ge=0)
    created_at: datetime = Field(default_factory=datetime.utcnow)


class WebhookDeliveryResult(BaseModel):
    delivered: bool
    skipped: bool = False
    attempts: int = 0
    event_id: str | None = None
    last_status_code: int | None = None


class WebhookLogView(BaseModel):
    id: UUID
    transaction_id: UUID
    event_id: str
    event_type: str
    attempt_no: int
    target_url: str
    response_code: int | None = None
    error_message: str | None = None
    is_success: bool
    duration_ms: int
    created_at: UtcDatetime

    @classmethod
    def from_entry(cls, entry: WebhookLogEntry) -> "WebhookLogView":
        return cls.model_validate(entry.model_dump())


class WebhookLogListData(BaseModel):
    items: list[WebhookLogView]
    pagination: PaginationMeta


class WebhookLogListResponse(BaseModel):
    success: bool = True
    data: WebhookLogListData
