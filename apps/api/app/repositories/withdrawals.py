from __future__ import annotations

from typing import Protocol
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..domain.balance import Withdrawal, WithdrawalStatus
from ..domain.pagination import PaginationParams
from ..models.withdrawal import WithdrawalModel
from ..services.pagination import paginate_sequence

RESERVING_STATUSES = tuple(status for status in WithdrawalStatus if status.reserves_balance)


class WithdrawalsRepository(Protocol):
    async def add(self, withdrawal: Withdrawal) -> Withdrawal: ...

    async def list_for_project(
        self, project_id: UUID, params: PaginationParams
    ) -> tuple[list[Withdrawal], int]: ...

    async def reserved_total(self, project_id: UUID) -> int:
        """Sum of ``amount_gross`` over withdrawals that still hold balance."""
        ...


class InMemoryWithdrawalsRepository(WithdrawalsRepository):
    def __init__(self) -> None:
        self._withdrawals: dict[UUID, Withdrawal] = {}

    async def add(self, withdrawal: Withdrawal) -> Withdrawal:
        self._withdrawals[withdrawal.id] = withdrawal
        return withdrawal

    async def list_for_project(
        self, project_id: UUID, params: PaginationParams
    ) -> tuple[list[Withdrawal], int]:
        items = [item for item in self._withdrawals.values() if item.project_id == project_id]
        items.sort(key=lambda item: item.created_at, reverse=True)
        return paginate_sequence(items, params)

    async def reserved_total(self, project_id: UUID) -> int:
        return sum(
            item.amount_gross
            for item in self._withdrawals.values()
            if item.project_id == project_id and item.status in RESERVING_STATUSES
        )


class SqlAlchemyWithdrawalsRepository(WithdrawalsRepository):
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def add(self, withdrawal: Withdrawal) -> Withdrawal:
        data = withdrawal.model_dump()
        data["status"] = withdrawal.status.value
        model = WithdrawalModel(**data)
        self._session.add(model)
        await self._session.commit()
        return Withdrawal.model_validate(model)

    async def list_for_project(
        self, project_id: UUID, params: PaginationParams
    ) -> tuple[list[Withdrawal], int]:
        total = await self._session.scalar(
            select(func.count())
            .select_from(WithdrawalModel)
            .where(WithdrawalModel.project_id == project_id)
        )
        result = await self._session.execute(
            select(WithdrawalModel)
            .where(WithdrawalModel.project_id == project_id)
            .order_by(WithdrawalModel.created_at.desc())
            .offset(params.offset)
            .limit(params.per_page)
        )
        items = [Withdrawal.model_validate(model) for model in result.scalars()]
        return items, int(total or 0)

    async def reserved_total(self, project_id: UUID) -> int:
        total = await self._session.scalar(
            select(func.coalesce(func.sum(WithdrawalModel.amount_gross), 0)).where(
                WithdrawalModel.project_id == project_id,
                WithdrawalModel.status.in_([status.value for status in RESERVING_STATUSES]),
            )
        )
        return int(total or 0)
