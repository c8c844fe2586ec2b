"""
In-memory registry of print jobs.

Records are immutable ``PrintJob`` snapshots; ``update`` swaps the stored
snapshot for a new one under the lock, so readers always see a complete
record and concurrent print requests never corrupt the map.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from threading import Lock
from typing import Any, Dict, List, Optional

from .errors import DuplicateJobError, InvalidTransitionError, JobNotFoundError
from .models import JobStatus, PrintJob


class JobStore:
    """
    Thread-safe job registry keyed by job id.

    Attributes:
        retention: How long finished jobs are kept. ``None`` keeps every job
            for the lifetime of the process. Jobs still pending or printing
            are never pruned.
    """

    def __init__(self, retention_seconds: float | None = None) -> None:
        self._jobs: Dict[str, PrintJob] = {}
        self._lock = Lock()
        self.retention = timedelta(seconds=retention_seconds) if retention_seconds else None

    def create(self, job: PrintJob) -> PrintJob:
        with self._lock:
            if job.id in self._jobs:
                raise DuplicateJobError(job.id)
            self._prune_locked(job.timestamp)
            self._jobs[job.id] = job
            return job

    def update(self, job_id: str, **changes: Any) -> PrintJob:
        """
        Replace the stored record with a copy carrying ``changes``.

        Raises:
            JobNotFoundError: If no job has this id
            InvalidTransitionError: If ``status`` would move backwards or
                leave a terminal state
        """
        with self._lock:
            current = self._jobs.get(job_id)
            if current is None:
                raise JobNotFoundError(job_id)

            if "status" in changes:
                new_status = JobStatus(changes["status"])
                _check_transition(current, new_status)
                changes["status"] = new_status

            updated = current.model_copy(update=changes)
            self._jobs[job_id] = updated
            return updated

    def get(self, job_id: str) -> Optional[PrintJob]:
        with self._lock:
            return self._jobs.get(job_id)

    def list_all(self) -> List[PrintJob]:
        with self._lock:
            return sorted(self._jobs.values(), key=lambda job: job.timestamp, reverse=True)

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)

    def _prune_locked(self, now: datetime) -> None:
        if self.retention is None:
            return
        cutoff = now - self.retention
        expired = [
            job_id
            for job_id, job in self._jobs.items()
            if job.status.is_terminal and _aware(job.timestamp) < _aware(cutoff)
        ]
        for job_id in expired:
            del self._jobs[job_id]


def _check_transition(job: PrintJob, new_status: JobStatus) -> None:
    if new_status == job.status and not job.status.is_terminal:
        return
    if job.status.is_terminal or new_status.rank <= job.status.rank:
        raise InvalidTransitionError(
            f"Cannot move job {job.id} from {job.status.value} to {new_status.value}",
            job_id=job.id,
        )


def _aware(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
