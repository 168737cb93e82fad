"""
Best-effort background tasks.

Side effects that must not block or fail the critical path (push
notifications, usage logging) are submitted here. A failing task is logged
with its name and otherwise ignored.
"""

from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable

from stray_match.logging_config import get_logger

logger = get_logger(__name__)


class BestEffortExecutor:
    """Fire-and-forget executor whose failures end up in the log."""

    def __init__(self, max_workers: int = 2):
        if max_workers < 1:
            raise ValueError("max_workers must be >= 1")
        self._pool = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="best-effort")

    def submit(self, name: str, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Future:
        """Schedule ``fn``; the returned future never needs to be awaited."""
        future = self._pool.submit(fn, *args, **kwargs)
        future.add_done_callback(lambda f: self._report(name, f))
        return future

    def shutdown(self, wait: bool = True) -> None:
        """Stop accepting work; with ``wait`` drain what is queued."""
        self._pool.shutdown(wait=wait)

    @staticmethod
    def _report(name: str, future: Future) -> None:
        if future.cancelled():
            logger.warning(f"Background task '{name}' was cancelled")
            return
        error = future.exception()
        if error is not None:
            logger.error(f"Background task '{name}' failed: {error}", exc_info=error)
