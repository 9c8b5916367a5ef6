from __future__ import annotations

import structlog

from ..core.fees import compute_fee, split_revenue
from ..domain.projects import Project
from ..domain.transactions import Transaction, TransactionCreateRequest
from ..repositories.transactions import TransactionsRepository
from .gateway import GatewayClient, generate_order_id

logger = structlog.get_logger(__name__)


async def open_transaction(
    *,
    project: Project,
    payload: TransactionCreateRequest,
    gateway: GatewayClient,
    transactions: TransactionsRepository,
    callback_url: str | None,
    platform_fee_idr: int = 0,
) -> Transaction:
    """Create the order at the gateway, then persist the local record.

    A :class:`GatewayError` leaves nothing persisted.
    """

    method = payload.method.value
    order_id = generate_order_id(project.app_slug)
    detail = await gateway.create(
        method=method,
        amount=payload.amount,
        order_id=order_id,
        payer_name=payload.customer_name,
        callback_url=callback_url,
    )

    fee = compute_fee(method, payload.amount)
    split = split_revenue(fee, platform_fee_idr)
    transaction = await transactions.add(
        Transaction(
            project_id=project.id,
            external_id=payload.external_id,
            gateway_order_id=order_id,
            method=method,
            status=detail.status,
            amount=payload.amount,
            fee=fee,
            platform_fee=split.platform_share,
            provider_fee=split.provider_share,
            total_payment=payload.amount,
            payment_number=detail.instrument.payment_number,
            qr_string=detail.instrument.qr_string,
            qr_image_url=detail.instrument.qr_image_url,
            expired_at=detail.expired_at,
            paid_at=detail.paid_at,
            gateway_status=detail.raw_status,
            gateway_completed_at=detail.completed_at,
            gateway_raw=detail.raw,
        )
    )
    logger.info(
        "transaction.created",
        project_id=str(project.id),
        transaction_id=str(transaction.id),
        gateway_order_id=order_id,
        method=method,
        amount=payload.amount,
        status=transaction.status.value,
    )
    return transaction
