"""
Auto-sync timer

Runs a coroutine every interval on an owned asyncio task. Each tick runs
under asyncio.shield: stop() cancels the loop so no later tick fires, while
a tick already talking to a backend is allowed to finish.
"""

from typing import Awaitable, Callable, Optional
import asyncio
import logging

from .models import DEFAULT_SYNC_INTERVAL_MS

logger = logging.getLogger(__name__)

TickCallback = Callable[[], Awaitable[object]]


class AutoSyncTimer:
    """
    Cancellable periodic runner.

    Example:
        timer = AutoSyncTimer(push_changes, interval_ms=60_000)
        timer.start()
        ...
        timer.stop()
        await timer.wait_closed()
    """

    def __init__(self, callback: TickCallback, interval_ms: int = DEFAULT_SYNC_INTERVAL_MS):
        """
        Args:
            callback: Coroutine function invoked on every tick
            interval_ms: Delay between ticks in milliseconds
        """
        if interval_ms <= 0:
            raise ValueError(f"interval_ms must be positive, got {interval_ms}")
        self.callback = callback
        self.interval_ms = interval_ms
        self.ticks = 0
        self._task: Optional[asyncio.Task] = None
        self._in_flight: Optional[asyncio.Future] = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def is_closed(self) -> bool:
        """True once the loop task and any in-flight tick have finished"""
        task_done = self._task is None or self._task.done()
        tick_done = self._in_flight is None or self._in_flight.done()
        return task_done and tick_done

    def start(self) -> None:
        """Start ticking (must be called from a running event loop)"""
        if self.is_running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())
        logger.info(f"Auto-sync started (every {self.interval_ms}ms)")

    def stop(self) -> None:
        """Cancel future ticks; an in-flight tick still completes"""
        if self._task is None:
            return
        if not self._task.done():
            self._task.cancel()
            logger.info("Auto-sync stopped")

    async def wait_closed(self) -> None:
        """Wait for the loop task and any in-flight tick to finish"""
        task, self._task = self._task, None
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)

        in_flight, self._in_flight = self._in_flight, None
        if in_flight is not None and not in_flight.done():
            await asyncio.gather(in_flight, return_exceptions=True)

    async def _run(self) -> None:
        while True:
            try:
                await asyncio.sleep(self.interval_ms / 1000.0)
                self.ticks += 1
                self._in_flight = asyncio.ensure_future(self.callback())
                await asyncio.shield(self._in_flight)
            except asyncio.CancelledError:
                break
            except Exception as e:
                # Next tick is the retry
                logger.error(f"Auto-sync tick failed: {e}", exc_info=True)
