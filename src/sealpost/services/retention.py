"""Background sweep that drops envelopes past the retention window.

Retention is best-effort delivery: an envelope that is still undelivered when
the window closes is deleted like a delivered one, and nobody is told. Within
the window an envelope is delivered at most once.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass

from sqlalchemy.orm import Session

from sealpost.core.errors import RelayError
from sealpost.core.settings import settings
from sealpost.db.session import SessionLocal
from sealpost.services.envelopes import EnvelopeStore

# Configure logger for this module
logger = logging.getLogger(__name__)


@dataclass
class RetentionSweepState:
    """Counters describing the sweeper's progress since start."""

    sweeps: int = 0
    deleted: int = 0
    last_error: str | None = None


class RetentionSweeper:
    """Periodically deletes expired envelopes in bounded batches.

    Each batch runs in a worker thread with its own session and commits
    before the next begins, so stopping the sweeper takes effect between
    batches and no single delete holds the store for long.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session] | None = None,
        max_age_seconds: float | None = None,
        interval_seconds: float | None = None,
        batch_size: int | None = None,
    ) -> None:
        """Initialize the sweeper.

        Args:
            session_factory: Callable returning a new session. Defaults to ``SessionLocal``.
            max_age_seconds: Retention window. Defaults to ``settings.retention_seconds``.
            interval_seconds: Pause between sweeps.
            batch_size: Maximum envelopes deleted per batch.
        """
        self.session_factory = session_factory or SessionLocal
        self.max_age_seconds = (
            max_age_seconds if max_age_seconds is not None else settings.retention_seconds
        )
        self.interval_seconds = max(
            0.1,
            float(interval_seconds if interval_seconds is not None else settings.retention_sweep_interval_seconds),
        )
        self.batch_size = batch_size or settings.retention_sweep_batch_size
        self.state = RetentionSweepState()
        self._task: asyncio.Task[None] | None = None
        self._stopping = asyncio.Event()

    @property
    def running(self) -> bool:
        """Return True while the background loop is active."""
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        """Start the background sweep loop."""
        if not self.running:
            self._stopping.clear()
            self._task = asyncio.create_task(self._run())
            logger.info(
                "Retention sweeper started: max_age=%ss interval=%ss batch=%d",
                self.max_age_seconds,
                self.interval_seconds,
                self.batch_size,
            )

    async def stop(self) -> None:
        """Stop the loop; an in-flight batch finishes first."""
        if self._task is None:
            return

        self._stopping.set()
        await self._task
        self._task = None
        logger.info("Retention sweeper stopped")

    async def _run(self) -> None:
        while not self._stopping.is_set():
            try:
                await self.sweep_once()
            except RelayError as e:
                self.state.last_error = str(e)
                logger.warning("RetentionSweeper encountered storage error: %s", e)
            except Exception as e:  # retried on the next pass
                self.state.last_error = f"{type(e).__name__}: {e}"
                logger.exception("RetentionSweeper pass failed unexpectedly")

            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=self.interval_seconds)
            except TimeoutError:
                continue

    async def sweep_once(self) -> int:
        """Run one full sweep, batch by batch, and return the number deleted."""
        total = 0
        while not self._stopping.is_set():
            deleted = await asyncio.to_thread(self._delete_batch)
            total += deleted
            if deleted < self.batch_size:
                break

        self.state.sweeps += 1
        self.state.deleted += total
        if total:
            logger.info("Retention sweep deleted %d envelopes", total)
        return total

    def _delete_batch(self) -> int:
        with self.session_factory() as db:
            return EnvelopeStore(db).cleanup_batch(self.max_age_seconds, self.batch_size)
