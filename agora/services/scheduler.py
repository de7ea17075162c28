"""
agora.services.scheduler — Periodic poll sweep
===============================================

Closes expired polls on a fixed interval and fans out ``PollClosed`` for
each one.  Started and stopped from the API lifespan.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime

from sqlalchemy import Engine

from agora.constants import utcnow
from agora.services.poll_service import PollClosure, close_expired_polls_and_notify

logger = logging.getLogger(__name__)


class PollSweeper:
    """Background task calling :func:`close_expired_polls_and_notify`.

    ``clock`` supplies ``now`` for each sweep; tests pass a fixed one.
    """

    def __init__(
        self,
        engine: Engine,
        interval: float = 60,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.engine = engine
        self.interval = interval
        self.clock = clock
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def sweep_once(self) -> list[PollClosure]:
        """Run one sweep.  Failures are logged and yield an empty list."""
        result = await close_expired_polls_and_notify(self.engine, now=self.clock())
        if not result.ok:
            logger.error("Poll sweep failed: %s", result.error.message)
            return []
        if result.value:
            logger.info("Poll sweep closed %d poll(s)", len(result.value))
        return result.value

    def start(self, loop: asyncio.AbstractEventLoop) -> None:
        """Start the background sweep task."""
        if self._task is not None:
            return

        async def _sweep_loop() -> None:
            while True:
                await asyncio.sleep(self.interval)
                try:
                    await self.sweep_once()
                except Exception:
                    logger.exception("Poll sweep error")

        self._task = loop.create_task(_sweep_loop(), name="poll-sweep")
        logger.info("Poll sweeper started (every %ss)", self.interval)

    def stop(self) -> None:
        """Cancel the sweep task."""
        if self._task:
            self._task.cancel()
            self._task = None
            logger.info("Poll sweeper stopped")
