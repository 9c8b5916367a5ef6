from __future__ import annotations

from collections import defaultdict
from typing import Protocol
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..domain.pagination import PaginationParams
from ..domain.webhooks import WebhookLogEntry
from ..models.webhook import WebhookLogModel
from ..services.pagination import paginate_sequence


class WebhookLogsRepository(Protocol):
    async def append(self, entry: WebhookLogEntry) -> WebhookLogEntry: ...

    async def list_for_project(
        self,
        project_id: UUID,
        params: PaginationParams,
        *,
        transaction_id: UUID | None = None,
    ) -> tuple[list[WebhookLogEntry], int]: ...

    async def list_for_transaction(self, transaction_id: UUID) -> list[WebhookLogEntry]: ...


class InMemoryWebhookLogsRepository(WebhookLogsRepository):
    """In-memory, append-only delivery log."""

    def __init__(self) -> None:
        self._entries_by_project: dict[UUID, list[WebhookLogEntry]] = defaultdict(list)

    async def append(self, entry: WebhookLogEntry) -> WebhookLogEntry:
        self._entries_by_project[entry.project_id].append(entry)
        return entry

    async def list_for_project(
        self,
        project_id: UUID,
        params: PaginationParams,
        *,
        transaction_id: UUID | None = None,
    ) -> tuple[list[WebhookLogEntry], int]:
        entries = list(self._entries_by_project.get(project_id, []))
        if transaction_id is not None:
            entries = [entry for entry in entries if entry.transaction_id == transaction_id]
        entries.reverse()
        return paginate_sequence(entries, params)

    async def list_for_transaction(self, transaction_id: UUID) -> list[WebhookLogEntry]:
        return [
            entry
            for entries in self._entries_by_project.values()
            for entry in entries
            if entry.transaction_id == transaction_id
        ]


class SqlAlchemyWebhookLogsRepository(WebhookLogsRepository):
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def append(self, entry: WebhookLogEntry) -> WebhookLogEntry:
        model = WebhookLogModel(**entry.model_dump())
        self._session.add(model)
        await self._session.commit()
        return WebhookLogEntry.model_validate(model)

    async def list_for_project(
        self,
        project_id: UUID,
        params: PaginationParams,
        *,
        transaction_id: UUID | None = None,
    ) -> tuple[list[WebhookLogEntry], int]:
        filters = [WebhookLogModel.project_id == project_id]
        if transaction_id is not None:
            filters.append(WebhookLogModel.transaction_id == transaction_id)
        total = await self._session.scalar(
            select(func.count()).select_from(WebhookLogModel).where(*filters)
        )
        result = await self._session.execute(
            select(WebhookLogModel)
            .where(*filters)
            .order_by(WebhookLogModel.created_at.desc(), WebhookLogModel.attempt_no.desc())
            .offset(params.offset)
            .limit(params.per_page)
        )
        items = [WebhookLogEntry.model_validate(model) for model in result.scalars()]
        return items, int(total or 0)

    async def list_for_transaction(self, transaction_id: UUID) -> list[WebhookLogEntry]:
        result = await self._session.execute(
            select(WebhookLogModel)
            .where(WebhookLogModel.transaction_id == transaction_id)
            .order_by(WebhookLogModel.created_at.asc(), WebhookLogModel.attempt_no.asc())
        )
        return [WebhookLogEntry.model_validate(model) for model in result.scalars()]
