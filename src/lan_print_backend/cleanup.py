"""
Deferred deletion of source files after printing.

The OS spooler may still be reading a file after the print command returns,
so deletions are queued with a delay and run on a single background worker
thread. Each scheduled deletion can be cancelled until it runs. Failures are
logged and never propagate.
"""

from __future__ import annotations

import heapq
import itertools
import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from threading import Condition, RLock, Thread
from typing import Any, Callable, List, Optional

logger = logging.getLogger(__name__)


@dataclass(order=True)
class ScheduledCleanup:
    due: float
    sequence: int
    path: Path = field(compare=False)
    cancelled: bool = field(default=False, compare=False)
    done: bool = field(default=False, compare=False)
    # Shared with the owning scheduler; guards cancelled/done.
    lock: Any = field(default_factory=RLock, compare=False, repr=False)

    def cancel(self) -> bool:
        """Prevent the deletion. Returns False if it already ran or is running."""
        with self.lock:
            if self.done:
                return False
            self.cancelled = True
            return True

    def claim(self) -> bool:
        """Mark the deletion as started. Returns False if cancelled or already claimed."""
        with self.lock:
            if self.cancelled or self.done:
                return False
            self.done = True
            return True


class CleanupScheduler:
    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._queue: List[ScheduledCleanup] = []
        self._counter = itertools.count()
        self._condition = Condition()
        self._stopped = False
        self._worker: Optional[Thread] = None

    def schedule(self, path: Path, delay: float) -> ScheduledCleanup:
        task = ScheduledCleanup(
            due=self._clock() + max(delay, 0.0),
            sequence=next(self._counter),
            path=Path(path),
            lock=self._condition,
        )
        with self._condition:
            if self._stopped:
                raise RuntimeError("Cleanup scheduler has been shut down")
            heapq.heappush(self._queue, task)
            self._ensure_worker()
            self._condition.notify()
        logger.debug("Scheduled cleanup of %s in %.1fs", task.path, delay)
        return task

    def pending(self) -> int:
        with self._condition:
            return sum(1 for task in self._queue if not task.cancelled)

    def shutdown(self, wait: bool = False) -> None:
        """
        Stop the worker.

        With ``wait`` the remaining deletions run immediately first; otherwise
        they are cancelled.
        """
        with self._condition:
            remaining = list(self._queue) if wait else []
            if not wait:
                for task in self._queue:
                    task.cancel()
            self._queue.clear()
            self._stopped = True
            self._condition.notify_all()
            worker = self._worker
        if worker is not None:
            worker.join(timeout=5)
        for task in sorted(remaining):
            self._run(task)

    def _ensure_worker(self) -> None:
        if self._worker is None or not self._worker.is_alive():
            self._worker = Thread(target=self._loop, name="print-cleanup", daemon=True)
            self._worker.start()

    def _loop(self) -> None:
        while True:
            with self._condition:
                while not self._stopped:
                    if not self._queue:
                        self._condition.wait()
                        continue
                    wait_for = self._queue[0].due - self._clock()
                    if wait_for <= 0:
                        break
                    self._condition.wait(timeout=wait_for)
                if self._stopped:
                    return
                task = heapq.heappop(self._queue)
            self._run(task)

    def _run(self, task: ScheduledCleanup) -> None:
        if not task.claim():
            return
        try:
            delete_file(task.path)
        except Exception:  # noqa: BLE001
            logger.exception("Unexpected error cleaning up %s", task.path)


def delete_file(path: Path) -> bool:
    """Remove ``path`` if it still exists. Errors are logged, not raised."""
    try:
        path.unlink()
    except FileNotFoundError:
        logger.debug("Cleanup skipped, %s already removed", path)
        return False
    except OSError as exc:
        logger.error("Error cleaning up file %s: %s", path, exc)
        return False
    logger.info("Cleaned up printed file %s", path)
    return True
