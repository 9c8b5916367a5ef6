from __future__ import annotations

from datetime import datetime
from typing import Protocol
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..domain.pagination import PaginationParams
from ..domain.transactions import Transaction, TransactionStatus
from ..models.transaction import TransactionModel
from ..services.pagination import paginate_sequence

# Columns the reconciler may rewrite; identity, amount and ownership never change.
MUTABLE_FIELDS = (
    "status",
    "fee",
    "platform_fee",
    "provider_fee",
    "total_payment",
    "payment_number",
    "qr_string",
    "qr_image_url",
    "expired_at",
    "paid_at",
    "gateway_status",
    "gateway_completed_at",
    "gateway_raw",
)


class TransactionsRepository(Protocol):
    async def add(self, transaction: Transaction) -> Transaction: ...

    async def get(self, transaction_id: UUID) -> Transaction | None: ...

    async def get_for_project(
        self, project_id: UUID, transaction_id: UUID
    ) -> Transaction | None: ...

    async def get_by_order_id(self, gateway_order_id: str) -> Transaction | None: ...

    async def list_for_project(
        self,
        project_id: UUID,
        params: PaginationParams,
        *,
        status: TransactionStatus | None = None,
    ) -> tuple[list[Transaction], int]: ...

    async def list_paid(self, project_id: UUID) -> list[Transaction]: ...

    async def list_stale_pending(
        self, *, updated_before: datetime, limit: int
    ) -> list[Transaction]: ...

    async def save_if_version(
        self, transaction: Transaction, expected_version: int
    ) -> Transaction | None:
        """Persist mutable fields only if the stored version still matches.

        Returns the stored transaction with its bumped version, or ``None`` when
        another writer got there first.
        """
        ...


class InMemoryTransactionsRepository(TransactionsRepository):
    def __init__(self) -> None:
        self._transactions: dict[UUID, Transaction] = {}

    async def add(self, transaction: Transaction) -> Transaction:
        if any(
            existing.gateway_order_id == transaction.gateway_order_id
            for existing in self._transactions.values()
        ):
            raise ValueError(f"duplicate gateway order id {transaction.gateway_order_id}")
        self._transactions[transaction.id] = transaction
        return transaction

    async def get(self, transaction_id: UUID) -> Transaction | None:
        return self._transactions.get(transaction_id)

    async def get_for_project(
        self, project_id: UUID, transaction_id: UUID
    ) -> Transaction | None:
        transaction = self._transactions.get(transaction_id)
        if transaction and transaction.project_id == project_id:
            return transaction
        return None

    async def get_by_order_id(self, gateway_order_id: str) -> Transaction | None:
        for transaction in self._transactions.values():
            if transaction.gateway_order_id == gateway_order_id:
                return transaction
        return None

    async def list_for_project(
        self,
        project_id: UUID,
        params: PaginationParams,
        *,
        status: TransactionStatus | None = None,
    ) -> tuple[list[Transaction], int]:
        items = [
            transaction
            for transaction in self._transactions.values()
            if transaction.project_id == project_id
            and (status is None or transaction.status == status)
        ]
        items.sort(key=lambda transaction: transaction.created_at, reverse=True)
        return paginate_sequence(items, params)

    async def list_paid(self, project_id: UUID) -> list[Transaction]:
        return [
            transaction
            for transaction in self._transactions.values()
            if transaction.project_id == project_id
            and transaction.status == TransactionStatus.PAID
        ]

    async def list_stale_pending(
        self, *, updated_before: datetime, limit: int
    ) -> list[Transaction]:
        items = [
            transaction
            for transaction in self._transactions.values()
            if transaction.status == TransactionStatus.PENDING
            and transaction.updated_at <= updated_before
        ]
        items.sort(key=lambda transaction: transaction.updated_at)
        return items[:limit]

    async def save_if_version(
        self, transaction: Transaction, expected_version: int
    ) -> Transaction | None:
        current = self._transactions.get(transaction.id)
        if current is None or current.version != expected_version:
            return None
        stored = current.model_copy(
            update={
                **{field: getattr(transaction, field) for field in MUTABLE_FIELDS},
                "version": expected_version + 1,
                "updated_at": datetime.utcnow(),
            }
        )
        self._transactions[transaction.id] = stored
        return stored


class SqlAlchemyTransactionsRepository(TransactionsRepository):
    """Persists transactions to Postgres."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def add(self, transaction: Transaction) -> Transaction:
        data = transaction.model_dump()
        data["status"] = transaction.status.value
        model = TransactionModel(**data)
        self._session.add(model)
        await self._session.commit()
        return Transaction.model_validate(model)

    async def get(self, transaction_id: UUID) -> Transaction | None:
        # Concurrent writers bump ``version`` behind this session's identity map.
        result = await self._session.execute(
            select(TransactionModel)
            .where(TransactionModel.id == transaction_id)
            .execution_options(populate_existing=True)
        )
        model = result.scalar_one_or_none()
        return Transaction.model_validate(model) if model else None

    async def get_for_project(
        self, project_id: UUID, transaction_id: UUID
    ) -> Transaction | None:
        result = await self._session.execute(
            select(TransactionModel)
            .where(
                TransactionModel.id == transaction_id,
                TransactionModel.project_id == project_id,
            )
            .execution_options(populate_existing=True)
        )
        model = result.scalar_one_or_none()
        return Transaction.model_validate(model) if model else None

    async def get_by_order_id(self, gateway_order_id: str) -> Transaction | None:
        result = await self._session.execute(
            select(TransactionModel)
            .where(TransactionModel.gateway_order_id == gateway_order_id)
            .execution_options(populate_existing=True)
        )
        model = result.scalar_one_or_none()
        return Transaction.model_validate(model) if model else None

    async def list_for_project(
        self,
        project_id: UUID,
        params: PaginationParams,
        *,
        status: TransactionStatus | None = None,
    ) -> tuple[list[Transaction], int]:
        filters = [TransactionModel.project_id == project_id]
        if status is not None:
            filters.append(TransactionModel.status == status.value)
        total = await self._session.scalar(
            select(func.count()).select_from(TransactionModel).where(*filters)
        )
        result = await self._session.execute(
            select(TransactionModel)
            .where(*filters)
            .order_by(TransactionModel.created_at.desc(), TransactionModel.id.desc())
            .offset(params.offset)
            .limit(params.per_page)
        )
        items = [Transaction.model_validate(model) for model in result.scalars()]
        return items, int(total or 0)

    async def list_paid(self, project_id: UUID) -> list[Transaction]:
        result = await self._session.execute(
            select(TransactionModel).where(
                TransactionModel.project_id == project_id,
                TransactionModel.status == TransactionStatus.PAID.value,
            )
        )
        return [Transaction.model_validate(model) for model in result.scalars()]

    async def list_stale_pending(
        self, *, updated_before: datetime, limit: int
    ) -> list[Transaction]:
        result = await self._session.execute(
            select(TransactionModel)
            .where(
                TransactionModel.status == TransactionStatus.PENDING.value,
                TransactionModel.updated_at <= updated_before,
            )
            .order_by(TransactionModel.updated_at.asc())
            .limit(limit)
        )
        return [Transaction.model_validate(model) for model in result.scalars()]

    async def save_if_version(
        self, transaction: Transaction, expected_version: int
    ) -> Transaction | None:
        values = {field: getattr(transaction, field) for field in MUTABLE_FIELDS}
        values["status"] = transaction.status.value
        values["version"] = expected_version + 1
        values["updated_at"] = datetime.utcnow()
        result = await self._session.execute(
            update(TransactionModel)
            .where(
                TransactionModel.id == transaction.id,
                TransactionModel.version == expected_version,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            await self._session.rollback()
            return None
        await self._session.commit()
        return await self.get(transaction.id)
