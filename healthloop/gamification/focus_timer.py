"""
Foreground focus timer.

Ticks at a fixed cadence while a learning session is open and reports the
running total (persisted focus time + elapsed) to a callback for display.
The timer never writes the persisted total; a missed tick only under-reports
the display value.
"""

import asyncio
import logging
from datetime import datetime
from typing import Callable, Optional

from healthloop.utils.datetime_helpers import Clock

logger = logging.getLogger(__name__)


class FocusTimer:
    """Single repeating asyncio task; starting again replaces the running one"""

    def __init__(
        self,
        clock: Clock,
        on_tick: Callable[[float], None],
        interval: float = 1.0,
    ):
        self.clock = clock
        self.on_tick = on_tick
        self.interval = interval
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self, session_start: datetime, base_total: float) -> None:
        self.stop()
        self._task = asyncio.get_running_loop().create_task(
            self._run(session_start, base_total)
        )

    def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None

    async def _run(self, session_start: datetime, base_total: float) -> None:
        while True:
            await asyncio.sleep(self.interval)
            elapsed = max(0.0, (self.clock.now() - session_start).total_seconds())
            try:
                self.on_tick(base_total + elapsed)
            except Exception as e:
                # A failing display callback must not kill the session
                logger.warning(f"Focus timer tick callback failed: {e}")
