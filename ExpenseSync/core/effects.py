"""Deferred effects: storage writes that run off the calling thread.

Stores apply their in-memory update synchronously and hand the durable write to
:func:`run_effect`. Effects run one at a time, in submission order, on a
dedicated :class:`QtCore.QThreadPool`, so a later write of the same key always
lands after an earlier one. The returned :class:`concurrent.futures.Future`
lets a caller that needs durability wait for the write.
"""
import concurrent.futures
import logging
from typing import Any, Callable, Optional

from PySide6 import QtCore

_pool: Optional[QtCore.QThreadPool] = None


def get_pool() -> QtCore.QThreadPool:
    """Return the single-threaded pool used for effects, creating it on first use."""
    global _pool
    if _pool is None:
        _pool = QtCore.QThreadPool()
        _pool.setMaxThreadCount(1)
        logging.debug('Effect thread pool created.')
    return _pool


class EffectRunnable(QtCore.QRunnable):
    """Runs one callable and resolves its future with the result or the exception."""

    def __init__(self, func: Callable[..., Any], future: concurrent.futures.Future,
                 args: tuple, kwargs: dict) -> None:
        super().__init__()
        self.setAutoDelete(True)
        self.func = func
        self.future = future
        self.args = args
        self.kwargs = kwargs

    def run(self) -> None:
        if not self.future.set_running_or_notify_cancel():
            return
        try:
            result = self.func(*self.args, **self.kwargs)
        except Exception as ex:
            logging.error(f'Deferred effect "{getattr(self.func, "__name__", self.func)}" failed: {ex}')
            self.future.set_exception(ex)
            return
        self.future.set_result(result)


def run_effect(func: Callable[..., Any], *args: Any, **kwargs: Any) -> concurrent.futures.Future:
    """Queue func(*args, **kwargs) on the effect pool.

    Args:
        func: The blocking callable to run, typically a storage write.

    Returns:
        concurrent.futures.Future: Resolves with the callable's return value, or
        carries the exception it raised.
    """
    future: concurrent.futures.Future = concurrent.futures.Future()
    get_pool().start(EffectRunnable(func, future, args, kwargs))
    return future


def wait_for_effects(timeout_ms: int = 5000) -> bool:
    """Block until every queued effect finished.

    Args:
        timeout_ms: Maximum time to wait, in milliseconds.

    Returns:
        bool: True if the queue drained before the timeout.
    """
    if _pool is None:
        return True
    return _pool.waitForDone(timeout_ms)
