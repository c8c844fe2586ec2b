"""
Construction of the external invocations that print a file.

Nothing here executes anything: ``build_print_command`` returns a
``PrintCommand`` describing argument vectors, and the executor runs them.

Two backends are supported:

- ``windows``: PowerShell ``Start-Process`` print verbs, or the image viewer's
  ``ImageView_PrintTo`` entry point for images sent to a named printer.
  Paper size and duplex mode are applied with ``Set-PrintConfiguration``
  before printing. The configure step snapshots the printer's current
  settings first and a trailing ``restore`` step puts them back, so the
  options of one job never leak into the next.
- ``cups``: one ``lp`` call per copy with ``-o media=`` / ``-o sides=``.

Copies are always satisfied by repeating the print invocation.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Tuple

from .models import PrintOptions

BASELINE_PAPER_SIZE = "A4"

IMAGE_EXTENSIONS = frozenset({".jpg", ".jpeg", ".png", ".gif", ".bmp", ".tif", ".tiff"})

CUPS_SIDES = {
    "duplex": "two-sided-long-edge",
    "tumble": "two-sided-short-edge",
}

WINDOWS_DUPLEXING_MODES = {
    "duplex": "TwoSidedLongEdge",
    "tumble": "TwoSidedShortEdge",
}

POWERSHELL = "powershell.exe"
POWERSHELL_FLAGS = ("-NoProfile", "-NonInteractive", "-Command")

# Expression that yields the name of the Windows default printer.
WINDOWS_DEFAULT_PRINTER_EXPR = "(Get-CimInstance -ClassName Win32_Printer -Filter 'Default=TRUE').Name"

SNAPSHOT_NAME_PATTERN = re.compile(r"[^A-Za-z0-9._-]+")


@dataclass(frozen=True)
class Invocation:
    program: str
    args: Tuple[str, ...]
    purpose: str = "print"

    @property
    def argv(self) -> List[str]:
        return [self.program, *self.args]


@dataclass(frozen=True)
class PrintCommand:
    file_path: Path
    backend: str
    printer_name: Optional[str] = None
    invocations: Tuple[Invocation, ...] = field(default_factory=tuple)

    @property
    def print_invocations(self) -> List[Invocation]:
        return [invocation for invocation in self.invocations if invocation.purpose == "print"]

    @property
    def print_count(self) -> int:
        return len(self.print_invocations)

    @property
    def restore_invocations(self) -> List[Invocation]:
        return [invocation for invocation in self.invocations if invocation.purpose == "restore"]

    @property
    def changes_printer_settings(self) -> bool:
        return any(invocation.purpose == "configure" for invocation in self.invocations)


def powershell_quote(value: str) -> str:
    """Quote ``value`` as a PowerShell single-quoted string literal."""
    return "'" + value.replace("'", "''") + "'"


def _powershell(script: str, purpose: str = "print") -> Invocation:
    return Invocation(POWERSHELL, (*POWERSHELL_FLAGS, script), purpose)


def forwarded_paper_size(options: PrintOptions) -> Optional[str]:
    if options.paper_size and options.paper_size.strip().upper() != BASELINE_PAPER_SIZE:
        return options.paper_size.strip()
    return None


def _settings_snapshot_name(file_path: Path, printer_name: Optional[str]) -> str:
    """Temp file name holding the printer settings saved before a job."""
    key = SNAPSHOT_NAME_PATTERN.sub("_", f"{printer_name or 'default'}-{file_path.name}")
    return f"print-settings-{key}.json"


def _windows_settings_prelude(file_path: Path, printer_name: Optional[str]) -> str:
    target = powershell_quote(printer_name) if printer_name else WINDOWS_DEFAULT_PRINTER_EXPR
    snapshot = powershell_quote(_settings_snapshot_name(file_path, printer_name))
    return f"$printer = {target}; $snapshot = Join-Path $env:TEMP {snapshot}; "


def _windows_configure(file_path: Path, printer_name: Optional[str], options: PrintOptions) -> Optional[Invocation]:
    paper_size = forwarded_paper_size(options)
    duplex_mode = WINDOWS_DUPLEXING_MODES.get(options.duplex)
    if paper_size is None and duplex_mode is None:
        return None

    script = _windows_settings_prelude(file_path, printer_name)
    script += (
        "Get-PrintConfiguration -PrinterName $printer | Select-Object PaperSize, DuplexingMode"
        " | ConvertTo-Json | Set-Content -Path $snapshot; "
        "Set-PrintConfiguration -PrinterName $printer"
    )
    if paper_size is not None:
        script += f" -PaperSize {powershell_quote(paper_size)}"
    if duplex_mode is not None:
        script += f" -DuplexingMode {duplex_mode}"
    return _powershell(script, purpose="configure")


def _windows_restore(file_path: Path, printer_name: Optional[str]) -> Invocation:
    script = _windows_settings_prelude(file_path, printer_name)
    script += (
        "if (Test-Path -Path $snapshot) { "
        "$saved = Get-Content -Raw -Path $snapshot | ConvertFrom-Json; "
        "Set-PrintConfiguration -PrinterName $printer -PaperSize $saved.PaperSize -DuplexingMode $saved.DuplexingMode; "
        "Remove-Item -Path $snapshot }"
    )
    return _powershell(script, purpose="restore")


def _windows_print(file_path: Path, printer_name: Optional[str]) -> Invocation:
    quoted_file = powershell_quote(str(file_path))
    if printer_name is None:
        return _powershell(f"Start-Process -FilePath {quoted_file} -Verb Print -Wait")

    if file_path.suffix.lower() in IMAGE_EXTENSIONS:
        return Invocation(
            "rundll32.exe",
            ("shimgvw.dll,ImageView_PrintTo", "/pt", str(file_path), printer_name),
        )

    # PrintTo expects the printer name as its single, double-quoted argument.
    printer_arg = powershell_quote(f'"{printer_name}"')
    return _powershell(f"Start-Process -FilePath {quoted_file} -Verb PrintTo -ArgumentList {printer_arg} -Wait")


def _cups_print(file_path: Path, printer_name: Optional[str], options: PrintOptions) -> Invocation:
    args: List[str] = []
    if printer_name:
        args += ["-d", printer_name]
    paper_size = forwarded_paper_size(options)
    if paper_size is not None:
        args += ["-o", f"media={paper_size}"]
    sides = CUPS_SIDES.get(options.duplex)
    if sides is not None:
        args += ["-o", f"sides={sides}"]
    args += ["-t", file_path.name, "--", str(file_path)]
    return Invocation("lp", tuple(args))


def build_print_command(
    file_path: Path | str,
    printer_name: Optional[str] = None,
    options: Optional[PrintOptions] = None,
    backend: str = "cups",
) -> PrintCommand:
    """
    Describe how to print ``file_path``.

    Args:
        file_path: The document to print
        printer_name: Target printer; ``None`` or empty uses the OS default
        options: Paper size, duplex mode and copies
        backend: ``windows`` or ``cups``

    Returns:
        PrintCommand with the invocations to run, in order. A ``restore``
        invocation, when present, must run even if printing fails.
    """
    path = Path(file_path)
    options = options or PrintOptions()
    printer_name = printer_name or None

    invocations: List[Invocation] = []
    if backend == "windows":
        configure = _windows_configure(path, printer_name, options)
        if configure is not None:
            invocations.append(configure)
        invocations.extend(_windows_print(path, printer_name) for _ in range(options.copies))
        if configure is not None:
            invocations.append(_windows_restore(path, printer_name))
    elif backend == "cups":
        invocations.extend(_cups_print(path, printer_name, options) for _ in range(options.copies))
    else:
        raise ValueError(f"Unsupported printing backend: {backend}")

    return PrintCommand(
        file_path=path,
        backend=backend,
        printer_name=printer_name,
        invocations=tuple(invocations),
    )
