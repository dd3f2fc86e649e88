"""Coalescing writer for debounced persistence."""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


class CoalescingWriter:
    """Run ``write`` once after ``delay`` seconds of quiet.

    Each ``schedule()`` call cancels the pending flush and starts a new one, so
    a burst of requests costs a single write. A write that has already started
    is never cancelled; ``wait()`` blocks until it is done. Must be used from
    inside a running event loop.
    """

    def __init__(self, write: Callable[[], Awaitable[None]], delay: float = 1.0) -> None:
        self._write = write
        self.delay = delay
        self._task: Optional[asyncio.Task] = None
        self._writing: Optional[asyncio.Task] = None

    @property
    def pending(self) -> bool:
        """True while a flush is scheduled or in progress."""
        return self._task is not None and not self._task.done()

    def schedule(self) -> None:
        """Request a write, replacing any pending one."""
        self.cancel()
        self._task = asyncio.get_running_loop().create_task(self._delayed_write())

    def cancel(self) -> None:
        """Drop the scheduled write if it has not started yet."""
        if self._task is not None and not self._task.done() and self._task is not self._writing:
            self._task.cancel()
        self._task = None

    async def wait(self) -> None:
        """Wait for a write that is already running."""
        writing = self._writing
        if writing is not None and not writing.done() and writing is not asyncio.current_task():
            await writing

    async def flush(self) -> None:
        """Cancel the pending write and perform it immediately."""
        self.cancel()
        await self.wait()
        await self._write()

    async def _delayed_write(self) -> None:
        await asyncio.sleep(self.delay)
        self._writing = asyncio.current_task()
        try:
            await self._write()
        except Exception:
            logger.exception("Debounced write failed")
        finally:
            if self._writing is asyncio.current_task():
                self._writing = None
