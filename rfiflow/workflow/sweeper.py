"""Periodic job that marks sent RFIs past their due date as overdue."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Callable, Optional

from ..constants import DEFAULT_SWEEP_INTERVAL_SECONDS, SYSTEM_SWEEPER_ACTOR
from ..models import ensure_utc, utcnow
from ..persistence.repository import RfiRepository
from ..states import Status
from .executor import TransitionExecutor

logger = logging.getLogger(__name__)


class OverdueSweeper:
    """Runs ``sent -> overdue`` through the executor for every late RFI."""

    def __init__(
        self,
        repository: RfiRepository,
        executor: TransitionExecutor,
        actor_id: str = SYSTEM_SWEEPER_ACTOR,
    ) -> None:
        self._repository = repository
        self._executor = executor
        self.actor_id = actor_id

    async def sweep(self, now: Optional[datetime] = None) -> int:
        """Run one pass and return the number of RFIs marked overdue."""
        now = ensure_utc(now) if now is not None else utcnow()
        candidates = await self._repository.list_rfis(status=Status.SENT, due_before=now)
        marked = 0
        for record in candidates:
            if record.status != Status.SENT or record.due_date is None or record.due_date >= now:
                continue
            result = await self._executor.execute(
                record.id,
                Status.OVERDUE,
                self.actor_id,
                {"reason": f"Due date {record.due_date.isoformat()} passed"},
            )
            if result.ok:
                marked += 1
            else:
                logger.warning(f"Skipped overdue transition for {record.id}: {result.error}")
        if marked:
            logger.info(f"Overdue sweep marked {marked} RFI(s)")
        return marked

    async def run_periodic(
        self,
        interval: float = DEFAULT_SWEEP_INTERVAL_SECONDS,
        clock: Optional[Callable[[], datetime]] = None,
        lifespan: Optional[float] = None,
    ) -> int:
        """Sweep every ``interval`` seconds until ``lifespan`` elapses.

        Returns the total number of RFIs marked overdue.
        """
        clock = clock or utcnow
        loop = asyncio.get_running_loop()
        deadline = loop.time() + lifespan if lifespan is not None else None
        total = 0
        while True:
            try:
                total += await self.sweep(clock())
            except Exception as e:
                logger.error(f"Overdue sweep failed: {e}")
            if deadline is not None and loop.time() + interval > deadline:
                return total
            await asyncio.sleep(interval)
