"""
Printer Directory: read-only queries against the OS printer subsystem.

Listing is advisory. Query failures are logged and degrade to an empty list
or ``None``; they never reach the caller as exceptions. Results are never
cached, every call asks the OS again.
"""

from __future__ import annotations

import json
import logging
import re
import subprocess
from typing import Any, Dict, List, Optional

from .commands import POWERSHELL, POWERSHELL_FLAGS, WINDOWS_DEFAULT_PRINTER_EXPR
from .errors import PrinterQueryError
from .executor import CommandRunner
from .models import PrinterInfo

logger = logging.getLogger(__name__)

# Win32_Printer.PrinterStatus values
WIN32_PRINTER_STATUS = {
    1: "Other",
    2: "Unknown",
    3: "Idle",
    4: "Printing",
    5: "Warmup",
    6: "Stopped Printing",
    7: "Offline",
}

_LPSTAT_PRINTER = re.compile(r"^printer\s+(?P<name>\S+)\s+(?:is\s+)?(?P<state>idle|now printing|disabled)", re.IGNORECASE)
_LPSTAT_DEFAULT = re.compile(r"^system default destination:\s*(?P<name>\S+)", re.IGNORECASE)

QUERY_TIMEOUT_SECONDS = 30


class PrinterDirectory:
    def __init__(self, backend: str = "cups", runner: CommandRunner | None = None) -> None:
        self.backend = backend
        self.runner = runner or CommandRunner()

    def list_printers(self) -> List[PrinterInfo]:
        try:
            if self.backend == "windows":
                return self._windows_printers()
            return self._cups_printers()
        except PrinterQueryError as exc:
            logger.error("Error getting printers: %s", exc)
            return []

    def get_default_printer(self) -> Optional[str]:
        try:
            if self.backend == "windows":
                name = self._query([POWERSHELL, *POWERSHELL_FLAGS, WINDOWS_DEFAULT_PRINTER_EXPR]).strip()
            else:
                name = self._cups_default()
        except PrinterQueryError as exc:
            logger.error("Error getting default printer: %s", exc)
            return None
        return name or None

    def queue_snapshot(self) -> Optional[str]:
        """Raw description of the jobs currently spooled, or ``None`` if unavailable."""
        if self.backend == "windows":
            script = "Get-Printer | Get-PrintJob | Select-Object DocumentName, PrinterName, JobStatus | ConvertTo-Json"
            argv = [POWERSHELL, *POWERSHELL_FLAGS, script]
        else:
            argv = ["lpstat", "-o"]
        try:
            return self._query(argv).strip()
        except PrinterQueryError as exc:
            logger.info("Could not check print queue: %s", exc)
            return None

    def _query(self, argv: List[str]) -> str:
        try:
            result = self.runner.run(argv, timeout=QUERY_TIMEOUT_SECONDS)
        except (OSError, subprocess.SubprocessError) as exc:
            raise PrinterQueryError(f"{argv[0]} could not be run: {exc}") from exc
        if result.returncode != 0:
            raise PrinterQueryError(f"{argv[0]} exited with status {result.returncode}: {(result.stderr or '').strip()}")
        return result.stdout or ""

    def _windows_printers(self) -> List[PrinterInfo]:
        script = "Get-CimInstance -ClassName Win32_Printer | Select-Object Name, PrinterStatus, Default | ConvertTo-Json"
        stdout = self._query([POWERSHELL, *POWERSHELL_FLAGS, script]).strip()
        if not stdout:
            return []
        try:
            payload = json.loads(stdout)
        except json.JSONDecodeError as exc:
            raise PrinterQueryError(f"Unexpected printer listing output: {exc}") from exc

        # ConvertTo-Json emits a bare object when there is a single printer
        records: List[Dict[str, Any]] = payload if isinstance(payload, list) else [payload]
        return [
            PrinterInfo(
                name=record.get("Name") or "",
                status=_windows_status(record.get("PrinterStatus")),
                is_default=bool(record.get("Default")),
            )
            for record in records
            if record.get("Name")
        ]

    def _cups_printers(self) -> List[PrinterInfo]:
        try:
            default = self._cups_default()
        except PrinterQueryError as exc:
            logger.warning("Default printer lookup failed while listing printers: %s", exc)
            default = None
        printers = []
        for line in self._query(["lpstat", "-p"]).splitlines():
            match = _LPSTAT_PRINTER.match(line.strip())
            if not match:
                continue
            name = match.group("name")
            printers.append(PrinterInfo(name=name, status=match.group("state").lower(), is_default=name == default))
        return printers

    def _cups_default(self) -> Optional[str]:
        for line in self._query(["lpstat", "-d"]).splitlines():
            match = _LPSTAT_DEFAULT.match(line.strip())
            if match:
                return match.group("name")
        return None


def _windows_status(value: Any) -> str:
    if isinstance(value, int):
        return WIN32_PRINTER_STATUS.get(value, "Unknown")
    return str(value) if value else "Unknown"
