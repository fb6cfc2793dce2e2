"""
Periodic driver for the scroll animation.

Hosts without their own animation callback (the WebSocket server, the replay
tool) use FrameDriver to call a session's tick() at a fixed rate on the
asyncio event loop.
"""

import asyncio
import inspect
import logging
import time
from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)

TickCallback = Callable[[float], object | Awaitable[object]]


class FrameDriver:
    """
    Calls a tick callback roughly fps times per second until stopped.

    The callback receives the measured time since the previous call, so a
    late frame animates further rather than slower. It may be a plain
    function or a coroutine function.

    Usage:
        driver = FrameDriver(session.tick, fps=60)
        driver.start()
        ...
        await driver.stop()
    """

    def __init__(
        self,
        tick: TickCallback,
        fps: float = 60,
        clock: Callable[[], float] = time.monotonic
    ) -> None:
        if fps <= 0:
            raise ValueError(f"fps must be positive, got {fps}")
        self._tick = tick
        self.fps = fps
        self.interval: float = 1.0 / fps
        self._clock = clock
        self._task: asyncio.Task[None] | None = None
        self.frame_count: int = 0

    @property
    def running(self) -> bool:
        """True while the driver task is alive."""
        return self._task is not None and not self._task.done()

    def start(self) -> asyncio.Task[None]:
        """Start ticking on the running event loop (no-op if already running)."""
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._run(), name="frame-driver")
        return self._task

    async def stop(self) -> None:
        """Stop ticking and wait for the task to finish."""
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _run(self) -> None:
        logger.debug("Frame driver started at %.1f fps", self.fps)
        last = self._clock()
        try:
            while True:
                await asyncio.sleep(self.interval)
                now = self._clock()
                delta, last = now - last, now
                try:
                    result = self._tick(delta)
                    if inspect.isawaitable(result):
                        await result
                except Exception:
                    logger.exception("Frame tick failed")
                self.frame_count += 1
        finally:
            logger.debug("Frame driver stopped after %d frames", self.frame_count)
