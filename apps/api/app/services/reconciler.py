"""Bring a local transaction in line with the gateway's view of it.

Merchant syncs, gateway callbacks and the scheduled poller all funnel through
:meth:`TransactionReconciler.reconcile`. Writes are compare-and-swap on the
transaction's ``version`` so racing triggers cannot both observe the same
status transition, which keeps terminal webhooks to one delivery sequence.
"""

from __future__ import annotations

from uuid import UUID

import structlog
from pydantic import BaseModel

from ..core.fees import compute_fee, split_revenue
from ..domain.gateway import GatewayDetail
from ..domain.transactions import Transaction, TransactionStatus
from ..repositories.projects import ProjectsRepository
from ..repositories.transactions import TransactionsRepository
from ..telemetry import RECONCILIATIONS
from .gateway import GatewayClient
from .webhooks import WebhookDispatcher

logger = structlog.get_logger(__name__)


class ReconcileConflictError(RuntimeError):
    """Raised when every compare-and-swap attempt lost to a concurrent writer."""


class ReconcileResult(BaseModel):
    found: bool
    transaction: Transaction | None = None
    previous_status: TransactionStatus | None = None
    notified: bool = False

    @classmethod
    def not_found(cls) -> "ReconcileResult":
        return cls(found=False)

    @property
    def status_changed(self) -> bool:
        return (
            self.transaction is not None
            and self.previous_status is not None
            and self.transaction.status != self.previous_status
        )


def apply_detail(
    current: Transaction, detail: GatewayDetail, *, platform_fee_idr: int = 0
) -> Transaction:
    """Return the next state of ``current`` given a fresh gateway detail.

    Fees always come from the stored method and amount. A terminal status is
    never overwritten; metadata is.
    """

    fee = compute_fee(current.method, current.amount)
    split = split_revenue(fee, platform_fee_idr)
    status = current.status if current.status.is_terminal else detail.status
    instrument = detail.instrument
    return current.model_copy(
        update={
            "status": status,
            "fee": fee,
            "platform_fee": split.platform_share,
            "provider_fee": split.provider_share,
            "total_payment": current.amount,
            "payment_number": instrument.payment_number or current.payment_number,
            "qr_string": instrument.qr_string or current.qr_string,
            "qr_image_url": instrument.qr_image_url or current.qr_image_url,
            "expired_at": detail.expired_at or current.expired_at,
            "paid_at": detail.paid_at or current.paid_at,
            "gateway_status": detail.raw_status,
            "gateway_completed_at": detail.completed_at or current.gateway_completed_at,
            "gateway_raw": detail.raw,
        }
    )


class TransactionReconciler:
    def __init__(
        self,
        transactions: TransactionsRepository,
        projects: ProjectsRepository,
        gateway: GatewayClient,
        dispatcher: WebhookDispatcher,
        *,
        platform_fee_idr: int = 0,
        max_cas_attempts: int = 3,
    ) -> None:
        self._transactions = transactions
        self._projects = projects
        self._gateway = gateway
        self._dispatcher = dispatcher
        self._platform_fee = platform_fee_idr
        self._max_cas_attempts = max_cas_attempts

    async def reconcile(self, transaction_id: UUID, *, trigger: str = "sync") -> ReconcileResult:
        current = await self._transactions.get(transaction_id)
        if current is None:
            RECONCILIATIONS.labels(trigger=trigger, result="not_found").inc()
            return ReconcileResult.not_found()

        # GatewayError propagates before anything is written.
        detail = await self._gateway.fetch_detail(
            amount=current.amount, order_id=current.gateway_order_id
        )

        stored: Transaction | None = None
        for attempt in range(1, self._max_cas_attempts + 1):
            candidate = apply_detail(current, detail, platform_fee_idr=self._platform_fee)
            stored = await self._transactions.save_if_version(candidate, current.version)
            if stored is not None:
                break
            logger.info(
                "reconcile.cas.retry",
                transaction_id=str(transaction_id),
                attempt=attempt,
                trigger=trigger,
            )
            current = await self._transactions.get(transaction_id)
            if current is None:
                RECONCILIATIONS.labels(trigger=trigger, result="not_found").inc()
                return ReconcileResult.not_found()
        if stored is None:
            RECONCILIATIONS.labels(trigger=trigger, result="conflict").inc()
            raise ReconcileConflictError(
                f"Transaction {transaction_id} changed concurrently {self._max_cas_attempts} times"
            )

        result = ReconcileResult(found=True, transaction=stored, previous_status=current.status)
        if result.status_changed and stored.status.is_terminal:
            project = await self._projects.get(stored.project_id)
            if project is None:
                logger.warning("reconcile.project_missing", project_id=str(stored.project_id))
            else:
                await self._dispatcher.deliver(project, stored)
                result.notified = True

        RECONCILIATIONS.labels(
            trigger=trigger, result="changed" if result.status_changed else "unchanged"
        ).inc()
        logger.info(
            "reconcile.complete",
            transaction_id=str(transaction_id),
            trigger=trigger,
            previous_status=current.status.value,
            status=stored.status.value,
            notified=result.notified,
        )
        return result
