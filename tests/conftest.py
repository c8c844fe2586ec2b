"""
Pytest configuration and fixtures for LAN Print Backend tests.
"""

import os
import subprocess
import tempfile
import threading
import time
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

# Set test environment variables before importing the app
os.environ["PRINT_UPLOAD_DIR"] = tempfile.mkdtemp(prefix="lan_print_test_uploads_")
os.environ["PRINT_BACKEND"] = "cups"

from lan_print_backend.cleanup import CleanupScheduler
from lan_print_backend.configuration import load_settings
from lan_print_backend.dispatcher import PrintDispatcher
from lan_print_backend.executor import CommandExecutor
from lan_print_backend.job_store import JobStore
from lan_print_backend.main import app, build_upload_store, get_dispatcher, get_upload_store
from lan_print_backend.printers import PrinterDirectory

TEST_CLEANUP_DELAY = 0.2


class FakeRunner:
    """
    Stand-in for CommandRunner that records argv lists instead of running them.

    Responses are looked up by "program subcommand" first, then by program.
    A response is either a (returncode, stdout, stderr) tuple or an exception
    to raise.
    """

    def __init__(self):
        self.calls = []
        self.responses = {}
        self.on_run = None
        self._lock = threading.Lock()

    def respond(self, key, returncode=0, stdout="", stderr=""):
        self.responses[key] = (returncode, stdout, stderr)

    def fail_with(self, key, exc):
        self.responses[key] = exc

    def run(self, argv, timeout=None):
        argv = list(argv)
        with self._lock:
            self.calls.append(argv)
        if self.on_run is not None:
            self.on_run(argv)
        response = self.responses.get(" ".join(argv[:2]), self.responses.get(argv[0], (0, "", "")))
        if isinstance(response, BaseException):
            raise response
        returncode, stdout, stderr = response
        return subprocess.CompletedProcess(argv, returncode, stdout, stderr)

    def calls_to(self, program):
        with self._lock:
            return [call for call in self.calls if call[0] == program]


def wait_until(predicate, timeout=3.0, interval=0.02):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


@pytest.fixture
def wait_for():
    return wait_until


@pytest.fixture
def fake_runner():
    return FakeRunner()


@pytest.fixture
def job_store():
    return JobStore()


@pytest.fixture
def dispatcher(fake_runner, job_store):
    """Dispatcher wired to the fake runner with a short cleanup delay."""
    instance = PrintDispatcher(
        store=job_store,
        executor=CommandExecutor(fake_runner),
        directory=PrinterDirectory("cups", fake_runner),
        cleanup=CleanupScheduler(),
        backend="cups",
        cleanup_delay=TEST_CLEANUP_DELAY,
    )
    yield instance
    instance.shutdown()


@pytest.fixture
def sample_pdf(tmp_path):
    """Create a minimal valid PDF file for testing."""
    pdf_content = b"""%PDF-1.4
1 0 obj
<< /Type /Catalog /Pages 2 0 R >>
endobj
2 0 obj
<< /Type /Pages /Kids [3 0 R] /Count 1 >>
endobj
3 0 obj
<< /Type /Page /Parent 2 0 R /MediaBox [0 0 612 792] >>
endobj
trailer
<< /Size 4 /Root 1 0 R >>
%%EOF"""
    path = tmp_path / "sample.pdf"
    path.write_bytes(pdf_content)
    return path


@pytest.fixture
def upload_store(tmp_path):
    return build_upload_store(load_settings({"storage": {"upload_dir": str(tmp_path / "uploads")}}))


@pytest.fixture
def client(dispatcher, upload_store):
    """Test client whose print commands go to the fake runner."""
    app.dependency_overrides[get_dispatcher] = lambda: dispatcher
    app.dependency_overrides[get_upload_store] = lambda: upload_store
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def uploaded_pdf(upload_store, sample_pdf):
    """A PDF already sitting in the upload directory."""
    destination = upload_store.upload_root / "file-1700000000000-42.pdf"
    destination.write_bytes(Path(sample_pdf).read_bytes())
    return destination
