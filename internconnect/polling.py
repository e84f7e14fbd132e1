"""Fixed-interval polling bound to the lifetime of a view."""
from __future__ import annotations

import asyncio
import logging
from contextlib import suppress
from typing import Any, Awaitable, Callable, Optional

logger = logging.getLogger("internconnect.polling")

Disposer = Callable[[], None]
ErrorCallback = Optional[Callable[[Exception], None]]


class PollingTask:
    """Run ``callback`` immediately and then every ``interval`` seconds until disposed.

    A failing tick is logged and reported through ``on_error``; the loop keeps
    going and the next tick retries without any backoff.
    """

    def __init__(
        self,
        callback: Callable[[], Awaitable[Any]],
        interval: float,
        *,
        on_error: ErrorCallback = None,
        name: str = "poll",
    ) -> None:
        if interval <= 0:
            raise ValueError("Polling interval must be greater than zero")
        self._callback = callback
        self._interval = interval
        self._on_error = on_error
        self._name = name
        self._task: Optional[asyncio.Task] = None
        self._disposed = False
        self.ticks = 0

    @property
    def interval(self) -> float:
        return self._interval

    @property
    def disposed(self) -> bool:
        return self._disposed

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> Disposer:
        """Schedule the loop on the running event loop and return its disposer."""

        if self._disposed:
            raise RuntimeError("Polling task has already been disposed")
        if self._task is not None:
            raise RuntimeError("Polling task is already running")
        self._task = asyncio.get_running_loop().create_task(self._run(), name=self._name)
        logger.debug("Started %s every %.1fs", self._name, self._interval)
        return self.dispose

    def dispose(self) -> None:
        if self._disposed:
            return
        self._disposed = True
        if self._task is not None and not self._task.done():
            self._task.cancel()
        logger.debug("Disposed %s after %d tick(s)", self._name, self.ticks)

    async def wait_closed(self) -> None:
        if self._task is None:
            return
        with suppress(asyncio.CancelledError):
            await self._task

    async def _run(self) -> None:
        while not self._disposed:
            await self._tick()
            await asyncio.sleep(self._interval)

    async def _tick(self) -> None:
        self.ticks += 1
        try:
            await self._callback()
        except Exception as exc:
            logger.warning("%s tick %d failed: %s", self._name, self.ticks, exc)
            if self._on_error is not None:
                try:
                    self._on_error(exc)
                except Exception:
                    logger.exception("%s error hook failed", self._name)


__all__ = ["Disposer", "PollingTask"]
