from __future__ import annotations

from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, Header, Query, Request, Response, status

from ...core.config import Settings, get_settings
from ...domain.errors import (
    GatewayFailureError,
    IdempotencyConflictError,
    IdempotencyInFlightError,
    InternalError,
    InvalidRequestError,
    NotFoundError,
)
from ...domain.idempotency import IdempotencyOutcomeKind
from ...domain.pagination import PaginationParams
from ...domain.projects import Project
from ...domain.transactions import (
    TransactionCreatedResponse,
    TransactionCreatedView,
    TransactionCreateRequest,
    TransactionDetailResponse,
    TransactionDetailView,
    TransactionListData,
    TransactionListResponse,
    TransactionStatus,
    TransactionSummaryView,
    TransactionSyncResponse,
    TransactionSyncView,
)
from ...repositories.transactions import TransactionsRepository
from ...services.gateway import GatewayClient, GatewayError
from ...services.idempotency import IdempotencyGuard, hash_payload
from ...services.pagination import build_meta
from ...services.reconciler import ReconcileConflictError, TransactionReconciler
from ...services.transactions import open_transaction
from ..dependencies import (
    enforce_rate_limit,
    get_current_project,
    get_gateway_client,
    get_idempotency_guard,
    get_pagination_params,
    get_reconciler,
    get_transactions_repository,
)
from ..errors import rate_limit_headers

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/transactions", tags=["transactions"])


@router.post(
    "",
    response_model=TransactionCreatedResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_transaction(
    request: Request,
    payload: TransactionCreateRequest,
    gateway: GatewayClient = Depends(get_gateway_client),
    _: object = Depends(enforce_rate_limit("transactions:create", "rate_limit_create_per_window")),
    project: Project = Depends(get_current_project),
    idempotency_key: str | None = Header(default=None, alias="Idempotency-Key"),
    guard: IdempotencyGuard = Depends(get_idempotency_guard),
    transactions_repo: TransactionsRepository = Depends(get_transactions_repository),
    settings: Settings = Depends(get_settings),
) -> Response:
    key = (idempotency_key or "").strip()
    if not key:
        raise InvalidRequestError("Idempotency-Key header is required")
    if len(key) > 255:
        raise InvalidRequestError("Idempotency-Key header is too long")

    headers = rate_limit_headers(request)
    request_hash = hash_payload(payload.model_dump(mode="json", exclude_none=True))
    outcome = await guard.begin(project.id, key, request_hash)
    match outcome.kind:
        case IdempotencyOutcomeKind.CONFLICT:
            raise IdempotencyConflictError()
        case IdempotencyOutcomeKind.IN_FLIGHT:
            raise IdempotencyInFlightError()
        case IdempotencyOutcomeKind.UNRESOLVED:
            raise InternalError("Unable to resolve idempotency state")
        case IdempotencyOutcomeKind.REPLAY:
            record = outcome.record
            logger.info(
                "transaction.create.replayed",
                project_id=str(project.id),
                record_id=str(record.id),
            )
            return Response(
                content=record.response_body,
                status_code=record.response_status,
                media_type="application/json",
                headers=headers,
            )

    record = outcome.record
    try:
        transaction = await open_transaction(
            project=project,
            payload=payload,
            gateway=gateway,
            transactions=transactions_repo,
            callback_url=settings.callback_url,
            platform_fee_idr=settings.platform_fee_idr,
        )
    except GatewayError as exc:
        await guard.release(record.id)
        raise GatewayFailureError(str(exc)) from exc
    except Exception:
        await guard.release(record.id)
        raise

    body = TransactionCreatedResponse(
        data=TransactionCreatedView.from_transaction(transaction)
    ).model_dump_json()
    await guard.complete(record.id, status.HTTP_201_CREATED, body)
    return Response(
        content=body,
        status_code=status.HTTP_201_CREATED,
        media_type="application/json",
        headers=headers,
    )


@router.get(
    "",
    response_model=TransactionListResponse,
    dependencies=[Depends(enforce_rate_limit("transactions:list", "rate_limit_list_per_window"))],
)
async def list_transactions(
    status_filter: TransactionStatus | None = Query(default=None, alias="status"),
    pagination: PaginationParams = Depends(get_pagination_params),
    project: Project = Depends(get_current_project),
    transactions_repo: TransactionsRepository = Depends(get_transactions_repository),
) -> TransactionListResponse:
    items, total = await transactions_repo.list_for_project(
        project.id, pagination, status=status_filter
    )
    return TransactionListResponse(
        data=TransactionListData(
            items=[TransactionSummaryView.from_transaction(item) for item in items],
            pagination=build_meta(pagination, total),
        )
    )


@router.get(
    "/{transaction_id}",
    response_model=TransactionDetailResponse,
    dependencies=[Depends(enforce_rate_limit("transactions:detail", "rate_limit_detail_per_window"))],
)
async def get_transaction(
    transaction_id: UUID,
    project: Project = Depends(get_current_project),
    transactions_repo: TransactionsRepository = Depends(get_transactions_repository),
) -> TransactionDetailResponse:
    transaction = await transactions_repo.get_for_project(project.id, transaction_id)
    if transaction is None:
        raise NotFoundError("Transaction not found")
    return TransactionDetailResponse(data=TransactionDetailView.from_transaction(transaction))


@router.post(
    "/{transaction_id}/sync",
    response_model=TransactionSyncResponse,
    dependencies=[Depends(enforce_rate_limit("transactions:sync", "rate_limit_sync_per_window"))],
)
async def sync_transaction(
    transaction_id: UUID,
    project: Project = Depends(get_current_project),
    transactions_repo: TransactionsRepository = Depends(get_transactions_repository),
    reconciler: TransactionReconciler = Depends(get_reconciler),
) -> TransactionSyncResponse:
    owned = await transactions_repo.get_for_project(project.id, transaction_id)
    if owned is None:
        raise NotFoundError("Transaction not found")
    try:
        result = await reconciler.reconcile(transaction_id, trigger="sync")
    except GatewayError as exc:
        raise GatewayFailureError(str(exc)) from exc
    except ReconcileConflictError as exc:
        raise InternalError("Transaction was modified concurrently, retry the sync") from exc
    if not result.found or result.transaction is None:
        raise NotFoundError("Transaction not found")
    return TransactionSyncResponse(data=TransactionSyncView.from_transaction(result.transaction))
