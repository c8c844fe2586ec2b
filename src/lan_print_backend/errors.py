"""
Exception taxonomy for the print backend.

Failures that belong to a job carry its ``job_id`` so the HTTP layer can
report the failure while the job history keeps it for later polling.
"""

from __future__ import annotations

from typing import Optional


class PrintServerError(Exception):
    def __init__(self, message: str, job_id: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.job_id = job_id

    def __str__(self) -> str:
        return self.message


class SourceFileMissingError(PrintServerError):
    """The source file was absent when the print request was accepted."""

    def __init__(self, job_id: Optional[str] = None) -> None:
        super().__init__("File not found", job_id=job_id)


class PrinterQueryError(PrintServerError):
    """The OS printer enumeration or default lookup failed."""


class PrintExecutionError(PrintServerError):
    """The OS print invocation returned failure or could not be started."""


class JobNotFoundError(PrintServerError, KeyError):
    def __init__(self, job_id: str) -> None:
        super().__init__(f"Print job not found: {job_id}", job_id=job_id)


class DuplicateJobError(PrintServerError, KeyError):
    def __init__(self, job_id: str) -> None:
        super().__init__(f"Print job already registered: {job_id}", job_id=job_id)


class InvalidTransitionError(PrintServerError, ValueError):
    pass


class UploadRejectedError(PrintServerError, ValueError):
    def __init__(self, message: str, status_code: int = 400) -> None:
        super().__init__(message)
        self.status_code = status_code
