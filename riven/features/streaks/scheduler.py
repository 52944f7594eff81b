from __future__ import annotations

import asyncio
import logging
from typing import Callable, Optional

logger = logging.getLogger("riven")


class BreakCheckTimer:
    """Runs `check` every `interval` seconds on the event loop until stopped."""

    def __init__(self, check: Callable[[], object], interval: float = 60.0, *, name: str = "streak-break-check"):
        if interval <= 0:
            raise ValueError("interval must be positive")
        self._check = check
        self.interval = interval
        self.name = name
        self._task: Optional[asyncio.Task] = None
        self.ticks = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start ticking. Calling start on a running timer does nothing."""
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run(), name=self.name)

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            self.ticks += 1
            try:
                result = self._check()
                if asyncio.iscoroutine(result):
                    await result
            except Exception:
                logger.exception("streak.break_check_failed", extra={"timer": self.name})
