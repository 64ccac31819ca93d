"""Debounced persistence of trim edits."""

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

from clip_studio.config import settings
from clip_studio.errors import AuthError, ClipStudioError
from clip_studio.logging import get_logger
from clip_studio.utils.timers import Scheduler, TimerHandle

logger = get_logger(__name__)

WriteFn = Callable[[dict[str, Any]], Awaitable[Any]]


class DebouncedWriter:
    """Coalesces rapid updates into one trailing write.

    ``schedule`` stores the latest values and restarts the timer. When the
    timer fires the pending values are written. At most one write is in
    flight; values scheduled during a write are sent by the same flush loop
    once it returns, never concurrently.

    A failed write keeps its values pending (unless newer values arrived in
    the meantime) and stops the flush; the next ``schedule``, ``flush`` or
    ``drain`` tries again. ``drain`` returns False while anything is unsaved.
    """

    def __init__(
        self,
        write: WriteFn,
        scheduler: Scheduler,
        delay: float | None = None,
        on_saved: Callable[[dict[str, Any]], None] | None = None,
        on_error: Callable[[ClipStudioError], None] | None = None,
    ) -> None:
        self._write = write
        self.scheduler = scheduler
        self.delay = delay if delay is not None else settings.autosave_debounce_seconds
        self._on_saved = on_saved
        self._on_error = on_error
        self._pending: dict[str, Any] | None = None
        self._timer: TimerHandle | None = None
        self._task: asyncio.Task[None] | None = None
        self._in_flight = False
        self.writes = 0
        self.last_error: ClipStudioError | None = None

    @property
    def pending(self) -> dict[str, Any] | None:
        return self._pending

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    def schedule(self, values: dict[str, Any]) -> None:
        """Replace the pending values and restart the debounce timer."""
        self._pending = dict(values)
        if self._timer is not None:
            self._timer.cancel()
        self._timer = self.scheduler.call_later(self.delay, self._on_timer)

    def cancel(self) -> None:
        """Drop pending values without writing them."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self._pending = None

    def _on_timer(self) -> None:
        self._timer = None
        if self._in_flight:
            # The running flush picks the pending values up when it returns
            return
        self._task = asyncio.get_running_loop().create_task(self._flush())

    async def flush(self) -> None:
        """Write pending values now instead of waiting for the timer."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        await self._flush()

    async def _flush(self) -> None:
        if self._in_flight:
            return
        self._in_flight = True
        try:
            # Values scheduled mid-write wait for their own timer to fire
            while self._pending is not None and self._timer is None:
                values, self._pending = self._pending, None
                try:
                    await self._write(values)
                except AuthError:
                    raise
                except ClipStudioError as e:
                    logger.warning("autosave_failed", error=str(e))
                    if self._pending is None:
                        self._pending = values
                    self.last_error = e
                    if self._on_error is not None:
                        self._on_error(e)
                    break
                self.last_error = None
                self.writes += 1
                logger.debug("autosave_written", values=values)
                if self._on_saved is not None:
                    self._on_saved(values)
        finally:
            self._in_flight = False

    async def drain(self) -> bool:
        """Skip the remaining debounce and wait until everything is written.

        Returns True once nothing is left pending.
        """
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if self._task is not None and not self._task.done():
            await self._task
        if self._pending is not None:
            await self._flush()
        return self._pending is None
