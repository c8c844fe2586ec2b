from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class JobStatus(str, Enum):
    PENDING = "pending"
    PRINTING = "printing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def rank(self) -> int:
        return _STATUS_RANK[self]

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


_STATUS_RANK = {
    JobStatus.PENDING: 0,
    JobStatus.PRINTING: 1,
    JobStatus.COMPLETED: 2,
    JobStatus.FAILED: 2,
}


DuplexMode = Literal["simplex", "duplex", "tumble"]


class ApiModel(BaseModel):
    """Base for everything that crosses the HTTP boundary: camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SourceInfo(ApiModel):
    model_config = ConfigDict(frozen=True)

    ip_address: str
    hostname: Optional[str] = None
    user_agent: Optional[str] = None


class PrintOptions(ApiModel):
    model_config = ConfigDict(frozen=True)

    paper_size: Optional[str] = None
    duplex: DuplexMode = "simplex"
    copies: int = Field(default=1, ge=1)


class PrintJob(ApiModel):
    """Snapshot of one tracked print attempt. Updates replace the snapshot."""

    model_config = ConfigDict(frozen=True)

    id: str
    filename: str
    status: JobStatus = JobStatus.PENDING
    timestamp: datetime
    error: Optional[str] = None
    printer_name: Optional[str] = None
    source_info: Optional[SourceInfo] = None


class PrinterInfo(ApiModel):
    name: str
    status: str
    is_default: bool = False


class FileInfo(ApiModel):
    filename: str
    original_name: str
    size: int
    mimetype: str
    upload_time: datetime
    source_info: Optional[SourceInfo] = None


class FileMetadata(ApiModel):
    filename: str
    original_name: str
    mimetype: str
    upload_time: datetime
    source_info: Optional[SourceInfo] = None


class PrintFileRequest(ApiModel):
    filename: str = Field(min_length=1)
    printer_name: Optional[str] = None
    options: Optional[PrintOptions] = None


class PrintSubmission(ApiModel):
    job_id: str
    message: str


class UploadResult(ApiModel):
    filename: str
    original_name: str
    message: str


class DefaultPrinter(ApiModel):
    name: Optional[str] = None


class StatusMessage(ApiModel):
    message: str
