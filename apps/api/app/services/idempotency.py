"""Exactly-once acceptance of merchant requests keyed by ``Idempotency-Key``."""

from __future__ import annotations

import hashlib
import json
from datetime import datetime, timedelta
from typing import Any, Callable, Mapping
from uuid import UUID

import structlog

from ..domain.idempotency import IdempotencyOutcome, IdempotencyRecord
from ..repositories.idempotency import IdempotencyRepository

logger = structlog.get_logger(__name__)


def hash_payload(payload: Mapping[str, Any]) -> str:
    """Return the sha256 of the payload's canonical JSON form."""

    canonical = json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


class IdempotencyGuard:
    """Reserve keys, replay stored responses and detect payload reuse.

    A reservation holds a lease; when the request that took it never completes
    (crash, lost connection) the key becomes reclaimable once the lease lapses.
    """

    def __init__(
        self,
        repository: IdempotencyRepository,
        *,
        lease_seconds: int = 120,
        clock: Callable[[], datetime] = datetime.utcnow,
    ) -> None:
        self._repository = repository
        self._lease = timedelta(seconds=lease_seconds)
        self._clock = clock

    async def begin(self, project_id: UUID, key: str, request_hash: str) -> IdempotencyOutcome:
        now = self._clock()
        record = IdempotencyRecord(
            project_id=project_id,
            key=key,
            request_hash=request_hash,
            lease_expires_at=now + self._lease,
            created_at=now,
        )
        if await self._repository.reserve(record):
            return IdempotencyOutcome.new(record)

        existing = await self._repository.get(project_id, key)
        if existing is None:
            logger.error("idempotency.unresolved", project_id=str(project_id))
            return IdempotencyOutcome.unresolved()
        if existing.request_hash != request_hash:
            return IdempotencyOutcome.conflict(existing)
        if existing.is_completed:
            return IdempotencyOutcome.replay(existing)
        if existing.lease_active(now):
            return IdempotencyOutcome.in_flight(existing)

        new_lease = now + self._lease
        reclaimed = await self._repository.reclaim(
            existing.id,
            expected_lease=existing.lease_expires_at,
            new_lease=new_lease,
        )
        if not reclaimed:
            return IdempotencyOutcome.in_flight(existing)
        logger.info("idempotency.lease.reclaimed", project_id=str(project_id), record_id=str(existing.id))
        return IdempotencyOutcome.new(existing.model_copy(update={"lease_expires_at": new_lease}))

    async def complete(self, record_id: UUID, status: int, body: str) -> None:
        stored = await self._repository.complete(
            record_id, status=status, body=body, completed_at=self._clock()
        )
        if not stored:
            logger.warning("idempotency.complete.skipped", record_id=str(record_id))

    async def release(self, record_id: UUID) -> None:
        await self._repository.release(record_id, now=self._clock())
