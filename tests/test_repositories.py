"""In-memory and SQL repositories share one interface per aggregate."""

import pytest

from apps.api.app.repositories import (
    idempotency,
    projects,
    rate_limits,
    transactions,
    webhooks,
    withdrawals,
)


@pytest.mark.parametrize(
    "interface, implementations",
    [
        (
            idempotency.IdempotencyRepository,
            (idempotency.InMemoryIdempotencyRepository, idempotency.SqlAlchemyIdempotencyRepository),
        ),
        (
            projects.ProjectsRepository,
            (projects.InMemoryProjectsRepository, projects.SqlAlchemyProjectsRepository),
        ),
        (
            rate_limits.RateLimitRepository,
            (rate_limits.InMemoryRateLimitRepository, rate_limits.SqlAlchemyRateLimitRepository),
        ),
        (
            transactions.TransactionsRepository,
            (
                transactions.InMemoryTransactionsRepository,
                transactions.SqlAlchemyTransactionsRepository,
            ),
        ),
        (
            webhooks.WebhookLogsRepository,
            (webhooks.InMemoryWebhookLogsRepository, webhooks.SqlAlchemyWebhookLogsRepository),
        ),
        (
            withdrawals.WithdrawalsRepository,
            (withdrawals.InMemoryWithdrawalsRepository, withdrawals.SqlAlchemyWithdrawalsRepository),
        ),
    ],
)
def test_implementations_subclass_their_interface(interface, implementations):
    for implementation in implementations:
        assert interface in implementation.__mro__
