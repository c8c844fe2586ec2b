"""
Execution of external print invocations.

``CommandRunner`` is the single seam through which the backend starts OS
processes; both the executor and the printer directory use it, and tests
substitute a fake.
"""

from __future__ import annotations

import logging
import subprocess
from contextlib import nullcontext
from threading import Lock
from typing import ContextManager, Dict, List, Optional, Sequence

from .commands import Invocation, PrintCommand
from .errors import PrintExecutionError

logger = logging.getLogger(__name__)


class CommandRunner:
    """Thin wrapper around ``subprocess.run`` with captured text output."""

    def run(self, argv: Sequence[str], timeout: Optional[float] = None) -> subprocess.CompletedProcess:
        return subprocess.run(
            list(argv),
            capture_output=True,
            text=True,
            timeout=timeout,
            check=False,
        )


class CommandExecutor:
    """
    Run every invocation of a ``PrintCommand`` in order.

    The first failing invocation aborts the command and raises
    ``PrintExecutionError`` describing what went wrong. ``restore``
    invocations run last and always run, even after a failure; their own
    failures are logged. No timeout is applied unless one is configured, so a
    hung OS call blocks only the calling thread.

    Commands that change a printer's stored settings hold a per-printer lock
    for their whole run, so two such jobs never interleave on one printer.
    """

    def __init__(self, runner: CommandRunner | None = None, timeout: float | None = None) -> None:
        self.runner = runner or CommandRunner()
        self.timeout = timeout
        self._settings_locks: Dict[str, Lock] = {}
        self._locks_guard = Lock()

    def execute(self, command: PrintCommand) -> List[subprocess.CompletedProcess]:
        results = []
        with self._settings_lock(command):
            try:
                for invocation in command.invocations:
                    if invocation.purpose != "restore":
                        results.append(self._run(invocation))
            finally:
                for invocation in command.restore_invocations:
                    try:
                        results.append(self._run(invocation))
                    except PrintExecutionError as exc:
                        logger.error("Could not restore printer settings for %s: %s", command.file_path.name, exc)
        return results

    def _settings_lock(self, command: PrintCommand) -> ContextManager:
        if not command.changes_printer_settings:
            return nullcontext()
        key = command.printer_name or ""
        with self._locks_guard:
            return self._settings_locks.setdefault(key, Lock())

    def _run(self, invocation: Invocation) -> subprocess.CompletedProcess:
        argv = invocation.argv
        logger.info("Executing %s command: %s", invocation.purpose, subprocess.list2cmdline(argv))
        try:
            result = self.runner.run(argv, timeout=self.timeout)
        except FileNotFoundError as exc:
            raise PrintExecutionError(f"Print command not available: {invocation.program}") from exc
        except subprocess.TimeoutExpired as exc:
            raise PrintExecutionError(f"{invocation.program} timed out after {exc.timeout} seconds") from exc
        except OSError as exc:
            raise PrintExecutionError(f"Failed to start {invocation.program}: {exc}") from exc

        if result.stdout:
            logger.info("Command output: %s", result.stdout.strip())
        if result.stderr:
            logger.info("Command stderr: %s", result.stderr.strip())

        if result.returncode != 0:
            detail = (result.stderr or result.stdout or "").strip()
            message = f"{invocation.program} exited with status {result.returncode}"
            if detail:
                message = f"{message}: {detail}"
            raise PrintExecutionError(message)
        return result
