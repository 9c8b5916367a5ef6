from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, Query

from ...core.config import Settings, get_settings
from ...core.security import tokens_match
from ...domain.errors import (
    GatewayFailureError,
    InternalError,
    NotFoundError,
    UnauthorizedError,
)
from ...domain.transactions import (
    GatewayCallbackData,
    GatewayCallbackRequest,
    GatewayCallbackResponse,
)
from ...repositories.transactions import TransactionsRepository
from ...services.gateway import GatewayClient, GatewayError
from ...services.reconciler import ReconcileConflictError, TransactionReconciler
from ..dependencies import get_gateway_client, get_reconciler, get_transactions_repository

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/internal/gateway", tags=["gateway"])


async def verify_callback_token(
    token: str | None = Query(default=None),
    settings: Settings = Depends(get_settings),
) -> None:
    expected = settings.gateway_callback_token
    if not expected:
        return
    if not tokens_match(expected, token):
        logger.warning("gateway.callback.rejected")
        raise UnauthorizedError("Invalid callback token")


@router.post(
    "/callback",
    response_model=GatewayCallbackResponse,
    dependencies=[Depends(get_gateway_client), Depends(verify_callback_token)],
)
async def gateway_callback(
    payload: GatewayCallbackRequest,
    transactions_repo: TransactionsRepository = Depends(get_transactions_repository),
    reconciler: TransactionReconciler = Depends(get_reconciler),
) -> GatewayCallbackResponse:
    # The pushed status is untrusted; the reconciler re-reads it from the gateway.
    transaction = await transactions_repo.get_by_order_id(payload.order_id)
    if transaction is None:
        raise NotFoundError("Transaction not found")
    logger.info(
        "gateway.callback.received",
        order_id=payload.order_id,
        reported_status=payload.status,
        transaction_id=str(transaction.id),
    )
    try:
        result = await reconciler.reconcile(transaction.id, trigger="callback")
    except GatewayError as exc:
        raise GatewayFailureError(str(exc)) from exc
    except ReconcileConflictError as exc:
        raise InternalError("Transaction was modified concurrently") from exc
    if not result.found or result.transaction is None:
        raise NotFoundError("Transaction not found")
    return GatewayCallbackResponse(
        data=GatewayCallbackData(
            transaction_id=result.transaction.id,
            status=result.transaction.status,
        )
    )
