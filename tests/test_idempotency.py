"""Idempotency guard behaviour over the in-memory and SQL repositories."""

import asyncio
from datetime import datetime, timedelta
from uuid import uuid4

import pytest

from apps.api.app.domain.idempotency import IdempotencyOutcomeKind
from apps.api.app.repositories.idempotency import (
    InMemoryIdempotencyRepository,
    SqlAlchemyIdempotencyRepository,
)
from apps.api.app.services.idempotency import IdempotencyGuard, hash_payload


class Clock:
    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: int) -> None:
        self.now += timedelta(seconds=seconds)


def test_hash_payload_is_key_order_independent():
    first = hash_payload({"amount": 150000, "method": "qris", "external_id": "INV-1"})
    second = hash_payload({"external_id": "INV-1", "method": "qris", "amount": 150000})
    assert first == second
    assert first != hash_payload({"external_id": "INV-1", "method": "qris", "amount": 150001})


async def exercise_lifecycle(repository) -> None:
    clock = Clock(datetime(2025, 1, 1, 12, 0, 0))
    guard = IdempotencyGuard(repository, lease_seconds=120, clock=clock)
    project_id = uuid4()

    first = await guard.begin(project_id, "key-1", "hash-a")
    assert first.kind is IdempotencyOutcomeKind.NEW

    in_flight = await guard.begin(project_id, "key-1", "hash-a")
    assert in_flight.kind is IdempotencyOutcomeKind.IN_FLIGHT

    conflict = await guard.begin(project_id, "key-1", "hash-b")
    assert conflict.kind is IdempotencyOutcomeKind.CONFLICT

    body = '{"success":true,"data":{"id":"x"}}'
    await guard.complete(first.record.id, 201, body)

    replay = await guard.begin(project_id, "key-1", "hash-a")
    assert replay.kind is IdempotencyOutcomeKind.REPLAY
    assert replay.record.response_status == 201
    assert replay.record.response_body == body

    # keys are scoped per project
    other = await guard.begin(uuid4(), "key-1", "hash-b")
    assert other.kind is IdempotencyOutcomeKind.NEW


async def exercise_reclaim(repository) -> None:
    clock = Clock(datetime(2025, 1, 1, 12, 0, 0))
    guard = IdempotencyGuard(repository, lease_seconds=120, clock=clock)
    project_id = uuid4()

    first = await guard.begin(project_id, "key-2", "hash-a")
    clock.advance(60)
    assert (await guard.begin(project_id, "key-2", "hash-a")).kind is IdempotencyOutcomeKind.IN_FLIGHT

    clock.advance(61)
    reclaimed = await guard.begin(project_id, "key-2", "hash-a")
    assert reclaimed.kind is IdempotencyOutcomeKind.NEW
    assert reclaimed.record.id == first.record.id

    # the reclaimer now holds a fresh lease
    assert (await guard.begin(project_id, "key-2", "hash-a")).kind is IdempotencyOutcomeKind.IN_FLIGHT


async def exercise_release(repository) -> None:
    clock = Clock(datetime(2025, 1, 1, 12, 0, 0))
    guard = IdempotencyGuard(repository, lease_seconds=120, clock=clock)
    project_id = uuid4()

    first = await guard.begin(project_id, "key-3", "hash-a")
    await guard.release(first.record.id)
    clock.advance(1)

    retry = await guard.begin(project_id, "key-3", "hash-a")
    assert retry.kind is IdempotencyOutcomeKind.NEW

    await guard.complete(retry.record.id, 201, "{}")
    # a completed record can no longer be released or overwritten
    await guard.release(retry.record.id)
    await guard.complete(retry.record.id, 500, "late")
    replay = await guard.begin(project_id, "key-3", "hash-a")
    assert replay.kind is IdempotencyOutcomeKind.REPLAY
    assert replay.record.response_body == "{}"


@pytest.mark.parametrize("scenario", [exercise_lifecycle, exercise_reclaim, exercise_release])
def test_guard_in_memory(scenario):
    asyncio.run(scenario(InMemoryIdempotencyRepository()))


@pytest.mark.parametrize("scenario", [exercise_lifecycle, exercise_reclaim, exercise_release])
def test_guard_sql(database, scenario):
    async def run():
        async with database.sessionmaker() as session:
            await scenario(SqlAlchemyIdempotencyRepository(session))

    asyncio.run(run())


def test_concurrent_sessions_admit_exactly_one_reservation(database):
    project_id = uuid4()

    async def begin_in_own_session():
        async with database.sessionmaker() as session:
            guard = IdempotencyGuard(SqlAlchemyIdempotencyRepository(session), lease_seconds=120)
            outcome = await guard.begin(project_id, "race", "hash-a")
            return outcome.kind

    async def run():
        return await asyncio.gather(*(begin_in_own_session() for _ in range(8)))

    kinds = asyncio.run(run())
    assert kinds.count(IdempotencyOutcomeKind.NEW) == 1
    assert kinds.count(IdempotencyOutcomeKind.IN_FLIGHT) == 7
