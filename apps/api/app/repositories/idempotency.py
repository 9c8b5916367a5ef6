from __future__ import annotations

from datetime import datetime
from typing import Dict, Protocol, Tuple
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..domain.idempotency import IdempotencyRecord
from ..models.idempotency import IdempotencyRecordModel


class IdempotencyRepository(Protocol):
    async def reserve(self, record: IdempotencyRecord) -> bool:
        """Insert a fresh reservation; ``False`` when the key is already taken."""
        ...

    async def get(self, project_id: UUID, key: str) -> IdempotencyRecord | None: ...

    async def reclaim(
        self, record_id: UUID, *, expected_lease: datetime, new_lease: datetime
    ) -> bool: ...

    async def complete(
        self, record_id: UUID, *, status: int, body: str, completed_at: datetime
    ) -> bool: ...

    async def release(self, record_id: UUID, *, now: datetime) -> None: ...


class InMemoryIdempotencyRepository(IdempotencyRepository):
    def __init__(self) -> None:
        self._records: Dict[Tuple[UUID, str], IdempotencyRecord] = {}

    def _find(self, record_id: UUID) -> IdempotencyRecord | None:
        for record in self._records.values():
            if record.id == record_id:
                return record
        return None

    async def reserve(self, record: IdempotencyRecord) -> bool:
        slot = (record.project_id, record.key)
        if slot in self._records:
            return False
        self._records[slot] = record
        return True

    async def get(self, project_id: UUID, key: str) -> IdempotencyRecord | None:
        return self._records.get((project_id, key))

    async def reclaim(
        self, record_id: UUID, *, expected_lease: datetime, new_lease: datetime
    ) -> bool:
        record = self._find(record_id)
        if record is None or record.is_completed or record.lease_expires_at != expected_lease:
            return False
        self._records[(record.project_id, record.key)] = record.model_copy(
            update={"lease_expires_at": new_lease}
        )
        return True

    async def complete(
        self, record_id: UUID, *, status: int, body: str, completed_at: datetime
    ) -> bool:
        record = self._find(record_id)
        if record is None or record.is_completed:
            return False
        self._records[(record.project_id, record.key)] = record.model_copy(
            update={
                "response_status": status,
                "response_body": body,
                "completed_at": completed_at,
            }
        )
        return True

    async def release(self, record_id: UUID, *, now: datetime) -> None:
        record = self._find(record_id)
        if record is None or record.is_completed:
            return
        self._records[(record.project_id, record.key)] = record.model_copy(
            update={"lease_expires_at": now}
        )


class SqlAlchemyIdempotencyRepository(IdempotencyRepository):
    """Persists idempotency reservations to Postgres.

    The unique ``(project_id, key)`` constraint is the serialization point:
    concurrent requests race on the insert and exactly one of them wins.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def reserve(self, record: IdempotencyRecord) -> bool:
        self._session.add(IdempotencyRecordModel(**record.model_dump()))
        try:
            await self._session.commit()
        except IntegrityError:
            await self._session.rollback()
            return False
        return True

    async def get(self, project_id: UUID, key: str) -> IdempotencyRecord | None:
        result = await self._session.execute(
            select(IdempotencyRecordModel)
            .where(
                IdempotencyRecordModel.project_id == project_id,
                IdempotencyRecordModel.key == key,
            )
            .execution_options(populate_existing=True)
        )
        model = result.scalar_one_or_none()
        if not model:
            return None
        return IdempotencyRecord.model_validate(model)

    async def reclaim(
        self, record_id: UUID, *, expected_lease: datetime, new_lease: datetime
    ) -> bool:
        result = await self._session.execute(
            update(IdempotencyRecordModel)
            .where(
                IdempotencyRecordModel.id == record_id,
                IdempotencyRecordModel.response_status.is_(None),
                IdempotencyRecordModel.lease_expires_at == expected_lease,
            )
            .values(lease_expires_at=new_lease)
            .execution_options(synchronize_session=False)
        )
        await self._session.commit()
        return result.rowcount == 1

    async def complete(
        self, record_id: UUID, *, status: int, body: str, completed_at: datetime
    ) -> bool:
        result = await self._session.execute(
            update(IdempotencyRecordModel)
            .where(
                IdempotencyRecordModel.id == record_id,
                IdempotencyRecordModel.response_status.is_(None),
            )
            .values(response_status=status, response_body=body, completed_at=completed_at)
            .execution_options(synchronize_session=False)
        )
        await self._session.commit()
        return result.rowcount == 1

    async def release(self, record_id: UUID, *, now: datetime) -> None:
        await self._session.execute(
            update(IdempotencyRecordModel)
            .where(
                IdempotencyRecordModel.id == record_id,
                IdempotencyRecordModel.response_status.is_(None),
            )
            .values(lease_expires_at=now)
            .execution_options(synchronize_session=False)
        )
        await self._session.commit()
