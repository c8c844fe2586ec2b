"""
LAN Print Backend - REST API for printing uploaded documents

This package provides a FastAPI-based web service that accepts documents
from machines on the local network and hands them to the operating system
print subsystem. It enables:

- Document uploads with provenance metadata
- Printer listing and default printer lookup
- Print dispatch with paper size, duplex and copy options
- Job status tracking for polling clients
- Deferred cleanup of printed files

Key Components:
    - main: FastAPI application and HTTP endpoint definitions
    - dispatcher: Print job state machine and command execution
    - commands: Construction of the OS print invocations
    - executor: Runs invocations and interprets their exit status
    - printers: Printer directory queries
    - job_store: Thread-safe in-memory job registry
    - cleanup: Deferred, cancellable file deletion
    - uploads: Upload and metadata storage
    - configuration: Config loading and merging logic

Usage:
    Run the API server with:
        uvicorn lan_print_backend.main:app --host 0.0.0.0 --port 3001

    Or use the installed script:
        lan-print-server
"""
