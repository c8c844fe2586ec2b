"""
Upload and metadata storage.

Uploaded bytes live directly in the upload directory; provenance for each
file (original name, MIME type, upload time, source address) is kept in a
JSON sidecar under ``.metadata/<filename>.json``. The print dispatcher only
reads paths resolved here and, once printing starts, deletes the file.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import BinaryIO, Iterable, List, Optional

from pydantic import ValidationError

from .errors import UploadRejectedError
from .models import FileInfo, FileMetadata, SourceInfo
from .utils import ensure_directory, guess_mime_type, unique_upload_name

logger = logging.getLogger(__name__)

METADATA_DIRNAME = ".metadata"
CHUNK_SIZE = 1024 * 1024


class UploadStore:
    """
    Owns the upload directory and its metadata sidecars.

    Attributes:
        upload_root: Directory holding uploaded files
        metadata_root: Directory holding one JSON sidecar per upload
        max_upload_bytes: Size limit enforced while writing uploads
        allowed_mime_types: MIME types accepted for upload
    """

    def __init__(
        self,
        upload_root: Path,
        max_upload_bytes: int = 50 * 1024 * 1024,
        allowed_mime_types: Iterable[str] = (),
    ) -> None:
        self.upload_root = ensure_directory(Path(upload_root).resolve())
        self.metadata_root = ensure_directory(self.upload_root / METADATA_DIRNAME)
        self.max_upload_bytes = max_upload_bytes
        self.allowed_mime_types = frozenset(allowed_mime_types)

    def resolve(self, filename: str) -> Path:
        """
        Absolute path of ``filename`` inside the upload directory.

        Raises:
            UploadRejectedError: If the name escapes the upload directory
        """
        candidate = (self.upload_root / filename).resolve()
        if candidate.parent != self.upload_root or candidate.name.startswith("."):
            raise UploadRejectedError(f"Invalid filename: {filename}")
        return candidate

    def exists(self, filename: str) -> bool:
        try:
            return self.resolve(filename).is_file()
        except UploadRejectedError:
            return False

    def check_mime_type(self, mimetype: Optional[str]) -> None:
        if self.allowed_mime_types and mimetype not in self.allowed_mime_types:
            raise UploadRejectedError("Unsupported file type")

    def save(self, source: BinaryIO, original_name: Optional[str], mimetype: Optional[str]) -> Path:
        """
        Stream ``source`` into a new uniquely named file.

        Raises:
            UploadRejectedError: Unsupported MIME type, or the upload exceeds
                ``max_upload_bytes`` (the partial file is removed)
        """
        self.check_mime_type(mimetype)
        destination = self.upload_root / unique_upload_name(original_name)
        written = 0
        try:
            with destination.open("wb") as buffer:
                while chunk := source.read(CHUNK_SIZE):
                    written += len(chunk)
                    if written > self.max_upload_bytes:
                        raise UploadRejectedError("File too large", status_code=413)
                    buffer.write(chunk)
        except Exception:
            destination.unlink(missing_ok=True)
            raise
        logger.info("Stored upload %s (%d bytes) as %s", original_name, written, destination.name)
        return destination

    def store_metadata(
        self,
        filename: str,
        original_name: str,
        mimetype: str,
        source_info: Optional[SourceInfo] = None,
    ) -> None:
        metadata = FileMetadata(
            filename=filename,
            original_name=original_name,
            mimetype=mimetype,
            upload_time=datetime.now(timezone.utc),
            source_info=source_info,
        )
        try:
            self._metadata_path(filename).write_text(metadata.model_dump_json(indent=2, by_alias=True), encoding="utf-8")
        except OSError as exc:
            logger.error("Error storing file metadata for %s: %s", filename, exc)

    def get_metadata(self, filename: str) -> Optional[FileMetadata]:
        path = self._metadata_path(filename)
        if not path.exists():
            return None
        try:
            return FileMetadata.model_validate_json(path.read_text(encoding="utf-8"))
        except (OSError, ValidationError) as exc:
            logger.error("Error reading file metadata for %s: %s", filename, exc)
            return None

    def list_files(self) -> List[FileInfo]:
        """Uploaded files, newest upload first."""
        infos: List[FileInfo] = []
        try:
            entries = list(self.upload_root.iterdir())
        except OSError as exc:
            logger.error("Error reading uploaded files: %s", exc)
            return []

        for entry in entries:
            try:
                if not entry.is_file() or entry.name.startswith("."):
                    continue
                stats = entry.stat()
            except OSError:
                # removed by a cleanup between listing and stat
                continue
            metadata = self.get_metadata(entry.name)
            infos.append(
                FileInfo(
                    filename=entry.name,
                    original_name=metadata.original_name if metadata else entry.name,
                    size=stats.st_size,
                    mimetype=guess_mime_type(entry.name),
                    upload_time=metadata.upload_time if metadata else datetime.fromtimestamp(stats.st_mtime, tz=timezone.utc),
                    source_info=metadata.source_info if metadata else None,
                )
            )
        return sorted(infos, key=lambda info: _utc(info.upload_time), reverse=True)

    def delete(self, filename: str) -> bool:
        """Delete an upload and its sidecar. Returns False if it did not exist."""
        try:
            path = self.resolve(filename)
        except UploadRejectedError:
            return False
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as exc:
            logger.error("Error deleting file %s: %s", filename, exc)
            return False
        self._metadata_path(path.name).unlink(missing_ok=True)
        return True

    def _metadata_path(self, filename: str) -> Path:
        return self.metadata_root / f"{Path(filename).name}.json"


def _utc(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
