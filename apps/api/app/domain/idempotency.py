from __future__ import annotations

from datetime import datetime
from enum import Enum
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field


class IdempotencyRecord(BaseModel):
    """Reservation of an idempotency key and, once finished, its stored response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID = Field(default_factory=uuid4)
    project_id: UUID
    key: str = Field(..., min_length=1, max_length=255)
    request_hash: str
    response_status: int | None = None
    response_body: str | None = None
    lease_expires_at: datetime
    created_at: datetime = Field(default_factory=datetime.utcnow)
    completed_at: datetime | None = None

    @property
    def is_completed(self) -> bool:
        return self.response_status is not None and self.response_body is not None

    def lease_active(self, now: datetime) -> bool:
        return self.lease_expires_at > now


class IdempotencyOutcomeKind(str, Enum):
    NEW = "new"
    REPLAY = "replay"
    CONFLICT = "conflict"
    IN_FLIGHT = "in_flight"
    UNRESOLVED = "unresolved"


class IdempotencyOutcome(BaseModel):
    """Result of trying to begin work under an idempotency key."""

    kind: IdempotencyOutcomeKind
    record: IdempotencyRecord | None = None

    @classmethod
    def new(cls, record: IdempotencyRecord) -> "IdempotencyOutcome":
        return cls(kind=IdempotencyOutcomeKind.NEW, record=record)

    @classmethod
    def replay(cls, record: IdempotencyRecord) -> "IdempotencyOutcome":
        return cls(kind=IdempotencyOutcomeKind.REPLAY, record=record)

    @classmethod
    def conflict(cls, record: IdempotencyRecord) -> "IdempotencyOutcome":
        return cls(kind=IdempotencyOutcomeKind.CONFLICT, record=record)

    @classmethod
    def in_flight(cls, record: IdempotencyRecord | None = None) -> "IdempotencyOutcome":
        return cls(kind=IdempotencyOutcomeKind.IN_FLIGHT, record=record)

    @classmethod
    def unresolved(cls) -> "IdempotencyOutcome":
        return cls(kind=IdempotencyOutcomeKind.UNRESOLVED)
