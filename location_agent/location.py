import asyncio
import logging
import threading
from typing import Callable

from location_agent.models import Fix

logger = logging.getLogger(__name__)

FixCallback = Callable[[Fix], None]


class LocationService:
    """
    Holds the latest location fix and resolves callers waiting for the first one.

    Fixes and errors may be pushed from any thread. The fix slot and the waiter
    queue are guarded by a single lock, waiters are always invoked outside of it.

    A waiter registered before any fix arrives has no timeout. If the source never
    delivers a fix (gpsd not running, no satellite lock) the waiter is never called.

    Args:
        source: Optional location source. Must provide a coroutine `run(service)`
            which pushes fixes through `on_fix` and errors through `on_error`.
    """

    def __init__(self, source=None):
        self._source = source
        self._lock = threading.Lock()
        self._fix: Fix | None = None
        self._waiters: list[FixCallback] = []
        self._last_error: Exception | None = None
        self._task: asyncio.Task | None = None

    def start(self):
        if self._task is not None and not self._task.done():
            return
        if self._source is None:
            logger.warning("No location source configured")
            return

        logger.info("Starting location updates")
        self._task = asyncio.create_task(self._source.run(self))

    def stop(self):
        if self._task is not None:
            self._task.cancel()
            self._task = None
            logger.info("Location updates stopped")

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def on_fix(self, fix: Fix):
        with self._lock:
            self._fix = fix
            waiters, self._waiters = self._waiters, []

        logger.debug(f"Location updated: {fix.latitude}, {fix.longitude}")

        for callback in waiters:
            try:
                callback(fix)
            except Exception as e:
                logger.error(f"Location waiter failed: {e}")

    def on_error(self, error: Exception):
        with self._lock:
            self._last_error = error

        logger.error(f"Location source failed with error: {error}")

    def get_current(self, callback: FixCallback) -> bool:
        """
        Hand the current fix to `callback`.

        If a fix is available the callback is invoked right away and True is
        returned. Otherwise the callback is queued and invoked exactly once, on
        the thread delivering the first fix, and False is returned.
        """
        with self._lock:
            fix = self._fix
            if fix is None:
                self._waiters.append(callback)
                return False

        callback(fix)
        return True

    def discard(self, callback: FixCallback) -> bool:
        with self._lock:
            try:
                self._waiters.remove(callback)
            except ValueError:
                return False
            return True

    @property
    def current(self) -> Fix | None:
        with self._lock:
            return self._fix

    @property
    def has_fix(self) -> bool:
        return self.current is not None

    @property
    def last_error(self) -> Exception | None:
        with self._lock:
            return self._last_error

    @property
    def pending(self) -> int:
        with self._lock:
            return len(self._waiters)
