from typing import Awaitable, Callable
import asyncio
import logging
import time

logger = logging.getLogger(__name__)


def now_ms() -> int:
    """Wall-clock time in epoch milliseconds, the unit clients see in endsAt."""
    return int(time.time() * 1000)


class TaskScheduler:
    """Runs a coroutine function after a delay as a cancellable asyncio task."""

    def call_later(self, delay: float, callback: Callable[..., Awaitable], *args) -> asyncio.Task:
        return asyncio.create_task(self._run_later(delay, callback, *args))

    async def _run_later(self, delay: float, callback: Callable[..., Awaitable], *args):
        try:
            await asyncio.sleep(delay)
            await callback(*args)
        except asyncio.CancelledError:
            pass
        except Exception:
            logger.exception("Scheduled task %s failed", getattr(callback, "__name__", callback))
