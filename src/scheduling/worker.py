"""
Recompute worker.

Polls the scheduler and recomputes every due user concurrently, one task per
user. A failure for one user is reported in the batch report and never stops
the others; that user stays scheduled and is retried on the next poll.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from loguru import logger

from src.core.clock import Clock, SystemClock
from src.scheduling.scheduler import QueueScheduler

RecomputeFn = Callable[[str], Awaitable[Any]]


@dataclass
class BatchReport:
    started_at: datetime
    succeeded: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)

    @property
    def total(self) -> int:
        return len(self.succeeded) + len(self.failed)

    def to_dict(self) -> dict[str, Any]:
        return {
            "started_at": self.started_at.isoformat(),
            "succeeded": list(self.succeeded),
            "failed": dict(self.failed),
            "total": self.total,
        }


class RecomputeWorker:
    def __init__(
        self,
        recompute: RecomputeFn,
        scheduler: QueueScheduler,
        clock: Clock | None = None,
        poll_seconds: float = 60.0,
    ):
        self.recompute = recompute
        self.scheduler = scheduler
        self.clock = clock or SystemClock()
        self.poll_seconds = poll_seconds

    async def run_due(self, now: datetime | None = None) -> BatchReport:
        """Recompute all users due at now. Queue reads and writes run off the event loop."""
        now = now or self.clock.now()
        report = BatchReport(started_at=now)
        users = await asyncio.to_thread(self.scheduler.due, now)
        if not users:
            return report

        due_times = await asyncio.to_thread(self._due_times, users)
        results = await asyncio.gather(
            *(self.recompute(user_id) for user_id in users),
            return_exceptions=True,
        )
        for user_id, result in zip(users, results):
            if isinstance(result, asyncio.CancelledError):
                raise result
            if isinstance(result, BaseException):
                report.failed[user_id] = f"{type(result).__name__}: {result}"
                logger.error(f"Recompute failed for {user_id}: {result}")
                continue
            report.succeeded.append(user_id)
            due = due_times.get(user_id)
            if due is not None:
                await asyncio.to_thread(self.scheduler.clear_if_not_after, user_id, due)

        logger.info(
            f"Recompute batch: {len(report.succeeded)} succeeded, {len(report.failed)} failed"
        )
        return report

    def _due_times(self, users: list[str]) -> dict[str, datetime | None]:
        return {user_id: self.scheduler.next_due(user_id) for user_id in users}

    async def run_forever(self, stop: asyncio.Event | None = None) -> None:
        """Poll until stop is set (or the task is cancelled)."""
        stop = stop or asyncio.Event()
        logger.info(f"Recompute worker started (poll every {self.poll_seconds:.0f}s)")
        while not stop.is_set():
            await self.run_due()
            try:
                await asyncio.wait_for(stop.wait(), timeout=self.poll_seconds)
            except asyncio.TimeoutError:
                continue
        logger.info("Recompute worker stopped")
