"""Fixed-window rate limit counters."""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from collections import defaultdict
from time import time
from typing import DefaultDict, Tuple
from uuid import UUID

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from ..domain.rate_limits import RateLimitStatus
from ..models.rate_limit import RateLimitCounterModel


def window_bounds(now: float, window_seconds: int) -> tuple[int, int]:
    """Return ``(window_start, reset_epoch)`` for the window containing ``now``."""

    window_start = math.floor(now / window_seconds) * window_seconds
    return window_start, window_start + window_seconds


def build_status(
    *, count: int, limit: int, now: float, window_seconds: int
) -> RateLimitStatus:
    _, reset_epoch = window_bounds(now, window_seconds)
    allowed = count <= limit
    return RateLimitStatus(
        allowed=allowed,
        limit=limit,
        remaining=max(limit - count, 0),
        reset_epoch=reset_epoch,
        retry_after_seconds=0 if allowed else max(math.ceil(reset_epoch - now), 0),
    )


class RateLimitRepository(ABC):
    """Interface describing operations for tracking request quotas.

    Counting is fixed-window: a client may pass up to twice the limit across a
    window edge.
    """

    @abstractmethod
    async def hit(
        self,
        *,
        project_id: UUID,
        route_key: str,
        limit: int,
        window_seconds: int,
        now: float | None = None,
    ) -> RateLimitStatus:
        """Record a request and return the latest quota status."""


class InMemoryRateLimitRepository(RateLimitRepository):
    def __init__(self) -> None:
        self._counters: DefaultDict[Tuple[UUID, str, int], int] = defaultdict(int)

    async def hit(
        self,
        *,
        project_id: UUID,
        route_key: str,
        limit: int,
        window_seconds: int,
        now: float | None = None,
    ) -> RateLimitStatus:
        now = time() if now is None else now
        window_start, _ = window_bounds(now, window_seconds)
        bucket = (project_id, route_key, window_start)
        self._counters[bucket] += 1
        return build_status(
            count=self._counters[bucket], limit=limit, now=now, window_seconds=window_seconds
        )


class SqlAlchemyRateLimitRepository(RateLimitRepository):
    """Persists rate limit counters with a single upsert-increment per request."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    def _insert(self):
        dialect = self._session.get_bind().dialect.name
        if dialect == "postgresql":
            return postgresql.insert(RateLimitCounterModel)
        if dialect == "sqlite":
            return sqlite.insert(RateLimitCounterModel)
        raise RuntimeError(f"Rate limiting is not supported on the {dialect} dialect")

    async def hit(
        self,
        *,
        project_id: UUID,
        route_key: str,
        limit: int,
        window_seconds: int,
        now: float | None = None,
    ) -> RateLimitStatus:
        now = time() if now is None else now
        window_start, _ = window_bounds(now, window_seconds)
        statement = (
            self._insert()
            .values(project_id=project_id, route_key=route_key, window_start=window_start, count=1)
        )
        statement = statement.on_conflict_do_update(
            index_elements=["project_id", "route_key", "window_start"],
            set_={"count": RateLimitCounterModel.count + 1},
        ).returning(RateLimitCounterModel.count)
        count = (await self._session.execute(statement)).scalar_one()
        await self._session.commit()
        return build_status(count=count, limit=limit, now=now, window_seconds=window_seconds)
