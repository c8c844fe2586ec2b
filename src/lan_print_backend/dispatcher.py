"""
Print job orchestration.

The PrintDispatcher owns the per-job state machine::

    pending -> printing -> completed
                        -> failed
    pending -> failed            (source file missing)

A job is registered before any I/O so callers can poll for it as soon as
they hold its id. The external command runs on the calling thread; each
request is independent and nothing serializes jobs against each other.
Once a print attempt has started, the dispatcher owns deletion of the
source file and schedules it a fixed delay after the command finishes.
"""

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional
from uuid import uuid4

from .cleanup import CleanupScheduler
from .commands import build_print_command
from .errors import PrintExecutionError, SourceFileMissingError
from .executor import CommandExecutor
from .job_store import JobStore
from .models import JobStatus, PrintJob, PrintOptions, SourceInfo
from .printers import PrinterDirectory

logger = logging.getLogger(__name__)

DEFAULT_CLEANUP_DELAY_SECONDS = 5.0


def generate_job_id() -> str:
    """Millisecond timestamp plus a random suffix, e.g. ``job_1718000000000_1f3a9c0b2``."""
    return f"job_{int(time.time() * 1000)}_{uuid4().hex[:9]}"


class PrintDispatcher:
    """
    Runs print requests end to end and records every transition.

    Attributes:
        store: Registry the dispatcher writes job records into
        executor: Runs the invocations built for each request
        directory: Printer directory, used here only to log the spool queue
        cleanup: Scheduler for deferred source file deletion
        backend: Command builder backend (``windows`` or ``cups``)
        cleanup_delay: Seconds between command completion and file deletion
    """

    def __init__(
        self,
        store: JobStore,
        executor: CommandExecutor,
        directory: PrinterDirectory,
        cleanup: CleanupScheduler | None = None,
        backend: str = "cups",
        cleanup_delay: float = DEFAULT_CLEANUP_DELAY_SECONDS,
    ) -> None:
        self.store = store
        self.executor = executor
        self.directory = directory
        self.cleanup = cleanup or CleanupScheduler()
        self.backend = backend
        self.cleanup_delay = cleanup_delay

    def print_file(
        self,
        file_path: Path | str,
        printer_name: Optional[str] = None,
        options: Optional[PrintOptions] = None,
        source_info: Optional[SourceInfo] = None,
    ) -> str:
        """
        Print one file and return the id of the job tracking it.

        Raises:
            SourceFileMissingError: The file did not exist when the request
                was accepted. The job is recorded as failed.
            PrintExecutionError: The OS print invocation failed. The job is
                recorded as failed and the file is still scheduled for cleanup.
        """
        path = Path(file_path)
        printer_name = printer_name or None
        job = PrintJob(
            id=generate_job_id(),
            filename=path.name,
            status=JobStatus.PENDING,
            timestamp=datetime.now(timezone.utc),
            printer_name=printer_name,
            source_info=source_info,
        )
        self.store.create(job)
        origin = source_info.ip_address if source_info else "unknown"

        if not path.is_file():
            self.store.update(job.id, status=JobStatus.FAILED, error="File not found")
            logger.warning("Print job %s failed: %s does not exist", job.id, path)
            raise SourceFileMissingError(job_id=job.id)

        self.store.update(job.id, status=JobStatus.PRINTING)
        logger.info(
            "Starting print job %s for %s from %s (printer: %s, options: %s)",
            job.id,
            job.filename,
            origin,
            printer_name or "default",
            options,
        )

        try:
            command = build_print_command(path, printer_name, options, backend=self.backend)
            self.executor.execute(command)
        except Exception as exc:
            error = exc if isinstance(exc, PrintExecutionError) else PrintExecutionError(str(exc) or type(exc).__name__)
            error.job_id = job.id
            self.store.update(job.id, status=JobStatus.FAILED, error=error.message)
            logger.error("Print job %s for %s failed: %s", job.id, job.filename, error.message)
            if error is exc:
                raise
            raise error from exc
        finally:
            self._schedule_cleanup(path)

        self.store.update(job.id, status=JobStatus.COMPLETED)
        logger.info("Print job %s for %s from %s completed", job.id, job.filename, origin)

        queue = self.directory.queue_snapshot()
        if queue:
            logger.info("Current print queue: %s", queue)

        return job.id

    def _schedule_cleanup(self, path: Path) -> None:
        try:
            self.cleanup.schedule(path, self.cleanup_delay)
        except RuntimeError as exc:
            logger.error("Could not schedule cleanup of %s: %s", path, exc)

    def get_print_job(self, job_id: str) -> Optional[PrintJob]:
        return self.store.get(job_id)

    def get_all_print_jobs(self) -> List[PrintJob]:
        return self.store.list_all()

    def shutdown(self, wait: bool = False) -> None:
        self.cleanup.shutdown(wait=wait)
