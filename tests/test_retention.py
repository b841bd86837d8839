"""Tests for the background retention sweeper."""

import asyncio
from datetime import timedelta

import pytest
from sqlalchemy import func, select, update

from sealpost.core.errors import StorageUnavailableError
from sealpost.db.time import utcnow
from sealpost.models import Envelope
from sealpost.services.device_registry import DeviceRegistry
from sealpost.services.envelopes import EnvelopeStore
from sealpost.services.retention import RetentionSweeper

from tests.conftest import generate_device_key


def _seed(session_factory, fresh: int, stale: int) -> None:
    with session_factory() as db:
        registry = DeviceRegistry(db)
        sender = registry.register("alice", generate_device_key())
        recipient = registry.register("bob", generate_device_key())
        store = EnvelopeStore(db, devices=registry)
        stale_ids = [store.send(sender.id, recipient.id, b"old", b"n").id for _ in range(stale)]
        for _ in range(fresh):
            store.send(sender.id, recipient.id, b"new", b"n")
        if stale_ids:
            db.execute(
                update(Envelope)
                .where(Envelope.id.in_(stale_ids))
                .values(created_at=utcnow() - timedelta(days=30))
            )
            db.commit()


def _remaining(session_factory) -> int:
    with session_factory() as db:
        return db.scalar(select(func.count()).select_from(Envelope))


@pytest.mark.asyncio
async def test_sweep_once_deletes_only_expired(file_session_factory) -> None:
    _seed(file_session_factory, fresh=2, stale=5)
    sweeper = RetentionSweeper(file_session_factory, max_age_seconds=24 * 3600, batch_size=2)

    deleted = await sweeper.sweep_once()

    assert deleted == 5
    assert sweeper.state.sweeps == 1
    assert sweeper.state.deleted == 5
    assert _remaining(file_session_factory) == 2


@pytest.mark.asyncio
async def test_background_loop_starts_and_stops(file_session_factory) -> None:
    _seed(file_session_factory, fresh=1, stale=3)
    sweeper = RetentionSweeper(
        file_session_factory, max_age_seconds=24 * 3600, interval_seconds=0.1, batch_size=10
    )

    await sweeper.start()
    assert sweeper.running
    for _ in range(50):
        if sweeper.state.sweeps:
            break
        await asyncio.sleep(0.05)
    await sweeper.stop()

    assert not sweeper.running
    assert sweeper.state.deleted == 3
    assert _remaining(file_session_factory) == 1


@pytest.mark.asyncio
async def test_storage_errors_do_not_kill_the_loop(file_session_factory, mocker) -> None:
    sweeper = RetentionSweeper(file_session_factory, interval_seconds=0.1, batch_size=10)
    calls = []

    def failing_then_empty() -> int:
        calls.append(1)
        if len(calls) == 1:
            raise StorageUnavailableError("database is down")
        return 0

    mocker.patch.object(sweeper, "_delete_batch", side_effect=failing_then_empty)

    await sweeper.start()
    for _ in range(50):
        if sweeper.state.sweeps:
            break
        await asyncio.sleep(0.05)
    await sweeper.stop()

    assert sweeper.state.last_error == "database is down"
    assert sweeper.state.sweeps >= 1


@pytest.mark.asyncio
async def test_stop_without_start_is_a_noop(file_session_factory) -> None:
    sweeper = RetentionSweeper(file_session_factory)

    await sweeper.stop()

    assert not sweeper.running


@pytest.mark.asyncio
async def test_unclassified_errors_do_not_kill_the_loop(file_session_factory, mocker) -> None:
    from sqlalchemy.exc import ProgrammingError

    sweeper = RetentionSweeper(file_session_factory, interval_seconds=0.1, batch_size=10)
    calls = []

    def broken_then_empty() -> int:
        calls.append(1)
        if len(calls) == 1:
            raise ProgrammingError("DELETE FROM envelope", {}, Exception("no such table: envelope"))
        return 0

    mocker.patch.object(sweeper, "_delete_batch", side_effect=broken_then_empty)

    await sweeper.start()
    for _ in range(50):
        if sweeper.state.sweeps:
            break
        await asyncio.sleep(0.05)
    assert sweeper.running
    await sweeper.stop()

    assert sweeper.state.last_error.startswith("ProgrammingError")
    assert sweeper.state.sweeps >= 1
    assert len(calls) >= 2
