"""
Filesystem and naming helpers shared by the upload store and HTTP layer.
"""

from __future__ import annotations

import random
import re
import time
from pathlib import Path
from typing import Optional

# Characters allowed in a stored file extension
EXTENSION_PATTERN = re.compile(r"^\.[A-Za-z0-9]{1,10}$")

MIME_TYPES = {
    ".pdf": "application/pdf",
    ".doc": "application/msword",
    ".docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    ".xls": "application/vnd.ms-excel",
    ".xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    ".txt": "text/plain",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".gif": "image/gif",
    ".bmp": "image/bmp",
}


def ensure_directory(path: Path) -> Path:
    """
    Create a directory if it doesn't exist, including parent directories.

    Args:
        path: The directory path to create

    Returns:
        The same path object for chaining
    """
    path.mkdir(parents=True, exist_ok=True)
    return path


def safe_extension(filename: Optional[str]) -> str:
    """
    Lowercased extension of ``filename`` if it is a plain alphanumeric suffix.

    Example:
        >>> safe_extension("Report.PDF")
        ".pdf"
        >>> safe_extension("weird.p/df")
        ""
    """
    suffix = Path(filename or "").suffix.lower()
    return suffix if EXTENSION_PATTERN.match(suffix) else ""


def unique_upload_name(original_name: Optional[str], field_name: str = "file") -> str:
    """Stored name for an upload: ``<field>-<epoch ms>-<random><ext>``."""
    unique_suffix = f"{int(time.time() * 1000)}-{random.randint(0, 10**9)}"
    return f"{field_name}-{unique_suffix}{safe_extension(original_name)}"


def guess_mime_type(filename: str) -> str:
    return MIME_TYPES.get(Path(filename).suffix.lower(), "application/octet-stream")
