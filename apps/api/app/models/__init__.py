"""SQLAlchemy ORM models used by the API layer."""

from .project import ApiKeyModel, ProjectModel
from .transaction import TransactionModel
from .idempotency import IdempotencyRecordModel
from .rate_limit import RateLimitCounterModel
from .webhook import WebhookLogModel
from .withdrawal import WithdrawalModel

__all__ = [
    "ProjectModel",
    "ApiKeyModel",
    "TransactionModel",
    "IdempotencyRecordModel",
    "RateLimitCounterModel",
    "WebhookLogModel",
    "WithdrawalModel",
]
