from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Query

from ...domain.pagination import PaginationParams
from ...domain.projects import Project
from ...domain.webhooks import WebhookLogListData, WebhookLogListResponse, WebhookLogView
from ...repositories.webhooks import WebhookLogsRepository
from ...services.pagination import build_meta
from ..dependencies import (
    enforce_rate_limit,
    get_current_project,
    get_pagination_params,
    get_webhook_logs_repository,
)

router = APIRouter(prefix="/webhook-logs", tags=["webhooks"])


@router.get(
    "",
    response_model=WebhookLogListResponse,
    dependencies=[
        Depends(enforce_rate_limit("webhook_logs:list", "rate_limit_webhook_logs_per_window"))
    ],
)
async def list_webhook_logs(
    transaction_id: UUID | None = Query(default=None),
    pagination: PaginationParams = Depends(get_pagination_params),
    project: Project = Depends(get_current_project),
    logs_repo: WebhookLogsRepository = Depends(get_webhook_logs_repository),
) -> WebhookLogListResponse:
    items, total = await logs_repo.list_for_project(
        project.id, pagination, transaction_id=transaction_id
    )
    return WebhookLogListResponse(
        data=WebhookLogListData(
            items=[WebhookLogView.from_entry(item) for item in items],
            pagination=build_meta(pagination, total),
        )
    )
