from __future__ import annotations

from fastapi import APIRouter, Depends, status

from ...domain.balance import (
    BalanceResponse,
    WithdrawalCreateRequest,
    WithdrawalListData,
    WithdrawalListResponse,
    WithdrawalResponse,
    WithdrawalView,
)
from ...domain.errors import InvalidRequestError
from ...domain.pagination import PaginationParams
from ...domain.projects import Project
from ...repositories.withdrawals import WithdrawalsRepository
from ...services.balance import BalanceLedger, WithdrawalRejected
from ...services.pagination import build_meta
from ..dependencies import (
    enforce_rate_limit,
    get_balance_ledger,
    get_current_project,
    get_pagination_params,
    get_withdrawals_repository,
)

router = APIRouter(tags=["balance"])


@router.get(
    "/balance",
    response_model=BalanceResponse,
    dependencies=[Depends(enforce_rate_limit("balance:read", "rate_limit_balance_per_window"))],
)
async def get_balance(
    project: Project = Depends(get_current_project),
    ledger: BalanceLedger = Depends(get_balance_ledger),
) -> BalanceResponse:
    return BalanceResponse(data=await ledger.summarize(project.id))


@router.post(
    "/withdrawals",
    response_model=WithdrawalResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[
        Depends(enforce_rate_limit("withdrawals:create", "rate_limit_withdrawal_per_window"))
    ],
)
async def create_withdrawal(
    payload: WithdrawalCreateRequest,
    project: Project = Depends(get_current_project),
    ledger: BalanceLedger = Depends(get_balance_ledger),
) -> WithdrawalResponse:
    try:
        withdrawal = await ledger.request_withdrawal(project, payload.amount)
    except WithdrawalRejected as exc:
        raise InvalidRequestError(exc.message, code=exc.code) from exc
    return WithdrawalResponse(data=WithdrawalView.from_withdrawal(withdrawal))


@router.get(
    "/withdrawals",
    response_model=WithdrawalListResponse,
    dependencies=[Depends(enforce_rate_limit("withdrawals:list", "rate_limit_balance_per_window"))],
)
async def list_withdrawals(
    pagination: PaginationParams = Depends(get_pagination_params),
    project: Project = Depends(get_current_project),
    withdrawals_repo: WithdrawalsRepository = Depends(get_withdrawals_repository),
) -> WithdrawalListResponse:
    items, total = await withdrawals_repo.list_for_project(project.id, pagination)
    return WithdrawalListResponse(
        data=WithdrawalListData(
            items=[WithdrawalView.from_withdrawal(item) for item in items],
            pagination=build_meta(pagination, total),
        )
    )
