from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, List, Optional

from fastapi import Body, Depends, FastAPI, File, Form, HTTPException, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse
from omegaconf import DictConfig

from .cleanup import CleanupScheduler
from .configuration import load_settings, resolve_backend
from .dispatcher import PrintDispatcher
from .errors import PrintServerError, UploadRejectedError
from .executor import CommandExecutor, CommandRunner
from .job_store import JobStore
from .models import (
    DefaultPrinter,
    FileInfo,
    PrinterInfo,
    PrintFileRequest,
    PrintJob,
    PrintSubmission,
    SourceInfo,
    StatusMessage,
    UploadResult,
)
from .printers import PrinterDirectory
from .uploads import UploadStore
from .utils import guess_mime_type

settings = load_settings()

logging.basicConfig(level=str(settings.logging.level).upper())
logger = logging.getLogger("lan_print_backend")


def build_dispatcher(config: DictConfig, runner: CommandRunner | None = None) -> PrintDispatcher:
    backend = resolve_backend(config.printing.backend)
    runner = runner or CommandRunner()
    return PrintDispatcher(
        store=JobStore(retention_seconds=config.jobs.retention_seconds),
        executor=CommandExecutor(runner, timeout=config.printing.command_timeout),
        directory=PrinterDirectory(backend, runner),
        cleanup=CleanupScheduler(),
        backend=backend,
        cleanup_delay=float(config.printing.cleanup_delay_seconds),
    )


def build_upload_store(config: DictConfig) -> UploadStore:
    return UploadStore(
        upload_root=config.storage.upload_dir,
        max_upload_bytes=int(config.storage.max_upload_bytes),
        allowed_mime_types=list(config.storage.allowed_mime_types),
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    yield
    dispatcher.shutdown()


app = FastAPI(title="LAN Print Server", version="0.1.0", lifespan=lifespan)

# Any origin on the LAN may drive the printer
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["GET", "POST", "DELETE", "PUT"],
    allow_headers=["*"],
)

dispatcher = build_dispatcher(settings)
upload_store = build_upload_store(settings)


def get_dispatcher() -> PrintDispatcher:
    return dispatcher


def get_upload_store() -> UploadStore:
    return upload_store


def get_source_info(request: Request) -> SourceInfo:
    # The socket peer wins; X-Forwarded-For only fills in when it is unknown
    peer = request.client.host if request.client else ""
    forwarded = request.headers.get("x-forwarded-for", "")
    ip_address = peer or forwarded.split(",")[0].strip() or "unknown"
    # IPv4-mapped IPv6 peers report as ::ffff:a.b.c.d
    ip_address = ip_address.replace("::ffff:", "")
    return SourceInfo(ip_address=ip_address, user_agent=request.headers.get("user-agent", "unknown"))


@app.get("/healthz")
def healthcheck() -> Dict[str, str]:
    return {"status": "ok"}


@app.get("/api/print/printers", response_model=List[PrinterInfo])
def list_printers(manager: PrintDispatcher = Depends(get_dispatcher)) -> List[PrinterInfo]:
    return manager.directory.list_printers()


@app.get("/api/print/default-printer", response_model=DefaultPrinter)
def default_printer(manager: PrintDispatcher = Depends(get_dispatcher)) -> DefaultPrinter:
    return DefaultPrinter(name=manager.directory.get_default_printer())


@app.post("/api/print/upload-and-print", response_model=PrintSubmission)
def upload_and_print(
    request: Request,
    file: Optional[UploadFile] = File(None),
    printer_name: Optional[str] = Form(None, alias="printerName"),
    manager: PrintDispatcher = Depends(get_dispatcher),
    store: UploadStore = Depends(get_upload_store),
) -> PrintSubmission:
    if file is None or not file.filename:
        raise HTTPException(status_code=400, detail="No file uploaded")

    try:
        stored_path = store.save(file.file, file.filename, file.content_type)
    except UploadRejectedError as exc:
        raise HTTPException(status_code=exc.status_code, detail=str(exc)) from exc
    finally:
        file.file.close()

    try:
        job_id = manager.print_file(stored_path, printer_name, None, get_source_info(request))
    except PrintServerError as exc:
        raise HTTPException(status_code=400, detail=f"Failed to print file: {exc}") from exc

    return PrintSubmission(job_id=job_id, message="Print job submitted successfully")


@app.post("/api/print/file", response_model=PrintSubmission)
def print_uploaded_file(
    request: Request,
    payload: PrintFileRequest = Body(...),
    manager: PrintDispatcher = Depends(get_dispatcher),
    store: UploadStore = Depends(get_upload_store),
) -> PrintSubmission:
    try:
        file_path = store.resolve(payload.filename)
        job_id = manager.print_file(file_path, payload.printer_name, payload.options, get_source_info(request))
    except PrintServerError as exc:
        raise HTTPException(status_code=400, detail=f"Failed to print file: {exc}") from exc

    return PrintSubmission(job_id=job_id, message="Print job submitted successfully")


@app.get("/api/print/jobs", response_model=List[PrintJob])
def list_print_jobs(manager: PrintDispatcher = Depends(get_dispatcher)) -> List[PrintJob]:
    return manager.get_all_print_jobs()


@app.get("/api/print/jobs/{job_id}", response_model=PrintJob)
def get_print_job(job_id: str, manager: PrintDispatcher = Depends(get_dispatcher)) -> PrintJob:
    job = manager.get_print_job(job_id)
    if not job:
        raise HTTPException(status_code=404, detail="Print job not found")
    return job


@app.get("/api/files", response_model=List[FileInfo])
def list_files(store: UploadStore = Depends(get_upload_store)) -> List[FileInfo]:
    return store.list_files()


@app.post("/api/files/upload", response_model=UploadResult)
def upload_file(
    request: Request,
    file: Optional[UploadFile] = File(None),
    store: UploadStore = Depends(get_upload_store),
) -> UploadResult:
    if file is None or not file.filename:
        raise HTTPException(status_code=400, detail="No file uploaded")

    try:
        stored_path = store.save(file.file, file.filename, file.content_type)
    except UploadRejectedError as exc:
        raise HTTPException(status_code=exc.status_code, detail=str(exc)) from exc
    finally:
        file.file.close()

    store.store_metadata(
        stored_path.name,
        file.filename,
        file.content_type or guess_mime_type(file.filename),
        get_source_info(request),
    )
    return UploadResult(filename=stored_path.name, original_name=file.filename, message="File uploaded successfully")


@app.get("/api/files/preview/{filename}")
def preview_file(filename: str, store: UploadStore = Depends(get_upload_store)) -> FileResponse:
    try:
        file_path = store.resolve(filename)
    except UploadRejectedError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    if not file_path.is_file():
        raise HTTPException(status_code=404, detail="File not found")
    return FileResponse(
        file_path,
        media_type=guess_mime_type(file_path.name),
        headers={"Content-Disposition": f'inline; filename="{file_path.name}"'},
    )


@app.delete("/api/files/{filename}", response_model=StatusMessage)
def delete_file(filename: str, store: UploadStore = Depends(get_upload_store)) -> StatusMessage:
    if not store.delete(filename):
        raise HTTPException(status_code=404, detail="File not found")
    return StatusMessage(message="File deleted successfully")


def run() -> None:
    import uvicorn

    host = settings.server.host
    port = int(settings.server.port)
    logger.info("Print server backend running on http://%s:%s", host, port)
    uvicorn.run("lan_print_backend.main:app", host=host, port=port, reload=False)


if __name__ == "__main__":
    run()
