"""Asyncio helpers shared by the phase detector and the pool.

Background work (phase polling, async phase callbacks) runs in fire-and-forget
tasks; these helpers make sure a failure in such a task is logged and that
stopping one never blocks a bot's teardown.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Coroutine, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


def create_safe_task(
    coro: Coroutine[Any, Any, T],
    *,
    name: str | None = None,
    on_error: Callable[[BaseException], None] | None = None,
) -> asyncio.Task[T]:
    """Schedule a background coroutine whose failure is logged instead of lost.

    Args:
        coro: Coroutine to schedule on the running loop
        name: Task name, also used in log lines
        on_error: Called with the exception if the task fails

    Returns:
        The scheduled task
    """
    label = name or "background-task"
    task = asyncio.create_task(coro, name=label)

    def _report(done: asyncio.Task) -> None:
        if done.cancelled() or done.exception() is None:
            return
        exc = done.exception()
        logger.error(f"[TASK] {label} crashed: {type(exc).__name__}: {exc}", exc_info=exc)
        if on_error is None:
            return
        try:
            on_error(exc)
        except Exception as handler_exc:
            logger.error(f"[TASK] {label} error handler failed: {handler_exc}")

    task.add_done_callback(_report)
    return task


async def cancel_task_safe(task: asyncio.Task | None, timeout: float = 5.0) -> bool:
    """Cancel a task and wait for it to settle.

    Finished and missing tasks are accepted. Any exception the task raises
    while unwinding is logged at debug level and not propagated.

    Returns:
        False only if the task was still running after ``timeout`` seconds
    """
    if task is None or task.done():
        return True

    task.cancel()
    try:
        await asyncio.wait_for(asyncio.shield(task), timeout=timeout)
    except asyncio.CancelledError:
        pass
    except asyncio.TimeoutError:
        logger.warning(f"[TASK] {task.get_name()} did not stop within {timeout}s")
        return False
    except Exception as e:
        logger.debug(f"[TASK] {task.get_name()} raised while stopping: {e}")
    return task.done()


class KeyedLocks:
    """Lazily created ``asyncio.Lock`` per key (one per bot id in the pool)."""

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}

    def get(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock

    def discard(self, key: str) -> None:
        """Forget a key's lock unless someone is holding it."""
        lock = self._locks.get(key)
        if lock is not None and not lock.locked():
            del self._locks[key]

    def clear(self) -> None:
        self._locks.clear()

    def __contains__(self, key: str) -> bool:
        return key in self._locks

    def __len__(self) -> int:
        return len(self._locks)
