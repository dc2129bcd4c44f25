"""Cooperative cancellation and the single-operation slot (fetch and run are mutually exclusive)."""
import asyncio
import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

from filelock import FileLock, Timeout

from .errors import OperationBusy, OperationCanceled

log = logging.getLogger(__name__)

# Granularity of cooperative sleeps: a stop request takes effect within one tick.
TICK_SECONDS = 1.0


class CancelToken:
    """One shared stop signal scoped to the current operation."""

    def __init__(self) -> None:
        self._cancelled = False

    @property
    def is_cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True

    def raise_if_cancelled(self, step: Optional[str] = None) -> None:
        if self._cancelled:
            raise OperationCanceled(step=step)

    async def sleep(self, seconds: float, step: Optional[str] = None) -> None:
        """Sleep in ticks of at most TICK_SECONDS, re-checking the stop signal before each tick."""
        remaining = max(0.0, float(seconds))
        self.raise_if_cancelled(step)
        while remaining > 0:
            chunk = min(TICK_SECONDS, remaining)
            await asyncio.sleep(chunk)
            remaining -= chunk
            self.raise_if_cancelled(step)


class OperationSlot:
    """
    Holds at most one in-flight operation ("fetch" or "run").
    A second begin() while one is active is rejected with OperationBusy, not queued.
    With a lock_path the rule also holds across processes sharing one data directory.
    """

    def __init__(self, lock_path: Optional[Path] = None) -> None:
        self._name: Optional[str] = None
        self._token: Optional[CancelToken] = None
        self._lock = FileLock(str(lock_path), timeout=0) if lock_path is not None else None

    @property
    def active(self) -> Optional[str]:
        return self._name

    @contextmanager
    def begin(self, name: str) -> Iterator[CancelToken]:
        if self._name is not None:
            raise OperationBusy(f"Another operation is running ({self._name}). Stop it first.")
        if self._lock is not None:
            try:
                self._lock.acquire()
            except Timeout:
                raise OperationBusy(
                    f"Another operation is running against {self._lock.lock_file}. Stop it first."
                ) from None
        self._name = name
        self._token = CancelToken()
        log.debug("Operation %s started", name)
        try:
            yield self._token
        finally:
            log.debug("Operation %s finished", name)
            self._name = None
            self._token = None
            if self._lock is not None:
                self._lock.release()

    def stop(self) -> bool:
        """Request cancellation of the active operation. Returns False if nothing is running."""
        if self._token is None:
            return False
        self._token.cancel()
        log.info("Stop requested.")
        return True
