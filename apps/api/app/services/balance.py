"""Merchant balance figures and withdrawal requests."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Callable
from uuid import UUID

import structlog

from ..core.config import Settings, get_settings
from ..core.fees import calculate_received_amount
from ..domain.balance import BalanceSummary, Withdrawal
from ..domain.errors import ErrorCode
from ..domain.projects import Project
from ..repositories.transactions import TransactionsRepository
from ..repositories.withdrawals import WithdrawalsRepository

logger = structlog.get_logger(__name__)


class WithdrawalRejected(Exception):
    """Raised when a withdrawal request fails a business rule."""

    def __init__(self, code: ErrorCode, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message


class BalanceLedger:
    """Read-only projection over paid transactions and open withdrawals.

    A paid transaction contributes ``max(0, gross - fee)``; it only counts as
    eligible once ``paid_at`` (or ``created_at``) is older than the maturity
    window. Withdrawals in any state but ``rejected`` reserve their gross amount.
    """

    def __init__(
        self,
        transactions: TransactionsRepository,
        withdrawals: WithdrawalsRepository,
        *,
        maturity_hours: int = 24,
        withdrawal_min_amount: int = 100_000,
        withdrawal_fee: int = 2_500,
        clock: Callable[[], datetime] = datetime.utcnow,
    ) -> None:
        self._transactions = transactions
        self._withdrawals = withdrawals
        self._maturity = timedelta(hours=maturity_hours)
        self._min_amount = withdrawal_min_amount
        self._withdrawal_fee = withdrawal_fee
        self._clock = clock

    @classmethod
    def from_settings(
        cls,
        transactions: TransactionsRepository,
        withdrawals: WithdrawalsRepository,
        settings: Settings | None = None,
    ) -> "BalanceLedger":
        settings = settings or get_settings()
        return cls(
            transactions,
            withdrawals,
            maturity_hours=settings.balance_maturity_hours,
            withdrawal_min_amount=settings.withdrawal_min_amount_idr,
            withdrawal_fee=settings.withdrawal_fee_idr,
        )

    async def summarize(self, project_id: UUID, now: datetime | None = None) -> BalanceSummary:
        now = now or self._clock()
        cutoff = now - self._maturity

        total = 0
        eligible = 0
        for transaction in await self._transactions.list_paid(project_id):
            net = calculate_received_amount(transaction.gross_received, transaction.fee)
            total += net
            settled_at = transaction.paid_at or transaction.created_at
            if settled_at <= cutoff:
                eligible += net

        reserved = await self._withdrawals.reserved_total(project_id)
        return BalanceSummary(
            total_balance=total,
            eligible_balance=eligible,
            reserved_balance=reserved,
            pending_balance=total - eligible,
            withdrawable_balance=max(0, eligible - reserved),
        )

    async def request_withdrawal(self, project: Project, amount: int) -> Withdrawal:
        # Check-then-insert: two concurrent requests can both pass the balance check.
        if not project.has_payout_account:
            raise WithdrawalRejected(
                ErrorCode.PAYOUT_ACCOUNT_NOT_SET, "Payout account is not configured"
            )
        if amount < self._min_amount:
            raise WithdrawalRejected(
                ErrorCode.MIN_WITHDRAWAL, f"Minimum withdrawal is {self._min_amount}"
            )
        if amount <= self._withdrawal_fee:
            raise WithdrawalRejected(
                ErrorCode.AMOUNT_TOO_SMALL, "Amount must be greater than the withdrawal fee"
            )

        summary = await self.summarize(project.id)
        if amount > summary.withdrawable_balance:
            raise WithdrawalRejected(ErrorCode.INSUFFICIENT_BALANCE, "Insufficient balance")

        withdrawal = await self._withdrawals.add(
            Withdrawal(
                project_id=project.id,
                amount_gross=amount,
                amount_fee=self._withdrawal_fee,
                amount_net=amount - self._withdrawal_fee,
                payout_bank_name=project.payout_bank_name,
                payout_account_name=project.payout_account_name,
                payout_account_number=project.payout_account_number,
                note="Withdrawal request created via API",
                created_at=self._clock(),
            )
        )
        logger.info(
            "withdrawal.requested",
            project_id=str(project.id),
            withdrawal_id=str(withdrawal.id),
            amount=amount,
        )
        return withdrawal
