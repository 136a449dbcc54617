from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from typing import Dict, Optional

from fastapi import Depends, FastAPI, File, Form, HTTPException, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .configuration import Settings, get_settings
from .errors import ConfigurationError, NotFoundError, StorageError
from .job_manager import JobManager
from .models import (
    JobDetail,
    JobStatusResponse,
    JobSummary,
    ReadUrlRequest,
    ReadUrlResponse,
    StartTranslationRequest,
    StartTranslationResponse,
    SweepResponse,
    UploadUrlRequest,
    UploadUrlResponse,
)
from .utils import is_psd_filename, unique_upload_key

logger = logging.getLogger(__name__)

_job_manager: Optional[JobManager] = None


def get_job_manager() -> JobManager:
    global _job_manager
    if _job_manager is None:
        _job_manager = JobManager.from_settings(get_settings())
    return _job_manager


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    configure_logging(settings.service.log_level)
    manager = get_job_manager()
    manager.recover_interrupted_jobs()
    if manager.deletions:
        manager.deletions.start(settings.service.sweep_interval_seconds)
    yield
    if manager.deletions:
        manager.deletions.stop()
    manager.shutdown(wait=False)


app = FastAPI(title="PSD Translator API", version="0.1.0", lifespan=lifespan)

allowed_origins = ["*"]
app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(StorageError)
async def storage_error_handler(request: Request, exc: StorageError) -> JSONResponse:
    logger.error(f"Storage failure on {request.url.path}: {exc}")
    return JSONResponse(status_code=502, content={"detail": str(exc)})


@app.exception_handler(ConfigurationError)
async def configuration_error_handler(request: Request, exc: ConfigurationError) -> JSONResponse:
    return JSONResponse(status_code=503, content={"detail": str(exc)})


@app.get("/healthz")
def healthcheck() -> Dict[str, str]:
    return {"status": "ok"}


@app.post("/uploads/url", response_model=UploadUrlResponse)
def create_upload_url(
    payload: UploadUrlRequest,
    manager: JobManager = Depends(get_job_manager),
    settings: Settings = Depends(get_settings),
) -> UploadUrlResponse:
    now_ms = int(time.time() * 1000)
    ttl = settings.storage.upload_url_ttl
    key = unique_upload_key(payload.file_name, now_ms)
    url = manager.store.sign_upload_url(key, payload.file_type, ttl)
    return UploadUrlResponse(upload_url=url, file_key=key, expires_at=now_ms + ttl * 1000)


@app.post("/uploads/read-url", response_model=ReadUrlResponse)
def create_read_url(
    payload: ReadUrlRequest,
    manager: JobManager = Depends(get_job_manager),
    settings: Settings = Depends(get_settings),
) -> ReadUrlResponse:
    if not manager.store.exists(payload.file_name):
        raise HTTPException(status_code=404, detail="File not found in storage")
    url = manager.store.sign_download_url(payload.file_name, settings.storage.source_url_ttl)
    return ReadUrlResponse(read_url=url, file_name=payload.file_name)


@app.post("/translations", response_model=JobSummary, status_code=202)
async def create_translation(
    psd: UploadFile = File(...),
    target_lang: str = Form("", alias="targetLang"),
    manager: JobManager = Depends(get_job_manager),
) -> JobSummary:
    if not psd.filename:
        raise HTTPException(status_code=400, detail="No file uploaded")

    if not is_psd_filename(psd.filename):
        raise HTTPException(status_code=400, detail="Only PSD files are supported")

    data = await psd.read()
    await psd.close()
    if not data:
        raise HTTPException(status_code=400, detail="Empty file uploaded")

    summary, _ = manager.create_upload_job(psd.filename, data, target_lang or None)
    return summary


@app.post("/translations/start", response_model=StartTranslationResponse, status_code=202)
def start_translation(
    payload: StartTranslationRequest,
    manager: JobManager = Depends(get_job_manager),
) -> StartTranslationResponse:
    summary, _ = manager.create_stored_job(payload.file_key, payload.target_lang)
    return StartTranslationResponse(job_id=summary.id, status=summary.status, message="Translation job started")


@app.get("/translations", response_model=list[JobSummary])
def list_translations(manager: JobManager = Depends(get_job_manager)) -> list[JobSummary]:
    return manager.list_jobs()


@app.get("/translations/{job_id}", response_model=JobDetail)
def get_translation(job_id: str, manager: JobManager = Depends(get_job_manager)) -> JobDetail:
    job = manager.get_job(job_id)
    if not job:
        raise HTTPException(status_code=404, detail="Job not found")
    return job.to_detail()


@app.get("/translations/{job_id}/status", response_model=JobStatusResponse)
def translation_status(job_id: str, manager: JobManager = Depends(get_job_manager)) -> JobStatusResponse:
    job = manager.get_job(job_id)
    if not job:
        raise HTTPException(status_code=404, detail="Job not found")
    return job.to_status()


@app.post("/storage/cors")
def configure_storage_cors(manager: JobManager = Depends(get_job_manager)) -> Dict[str, str]:
    manager.store.configure_cors()
    return {"status": "configured"}


@app.post("/maintenance/sweep", response_model=SweepResponse)
def sweep_deletions(manager: JobManager = Depends(get_job_manager)) -> SweepResponse:
    if manager.deletions is None:
        raise HTTPException(status_code=409, detail="Deferred deletion is not enabled")
    deleted = manager.deletions.sweep()
    return SweepResponse(deleted=deleted, pending=manager.deletions.pending())
