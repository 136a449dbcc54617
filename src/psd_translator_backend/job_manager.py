"""
Job orchestration and lifecycle management for PSD translation.

This module manages the end-to-end lifecycle of translation jobs:
- Job creation and registration
- Asynchronous pipeline execution on a worker pool
- Status tracking and event logging backed by SQLite
- Recovery of jobs interrupted by a restart

The JobManager class provides the core business logic for the API, coordinating
between user requests, persistence, and the translation orchestrator.
"""

from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from threading import Lock
from typing import Any, Dict, List, Optional
from uuid import uuid4

import httpx

from .cleanup import DeletionScheduler
from .configuration import Settings
from .database import JobDatabase
from .models import JobDetail, JobEvent, JobStatus, JobStatusResponse, JobSummary
from .pipeline import JobOutcome, SourceDocument, StoredSource, TranslationOrchestrator, UploadedSource
from .storage import ObjectStore
from .translation_client import TranslationClient
from .utils import output_key_for, sanitize_object_key
from .vendor_auth import VendorAuthClient

logger = logging.getLogger(__name__)

INTERRUPTED_MESSAGE = "Job interrupted by a service restart; resubmit to retry."


@dataclass
class JobRecord:
    """
    Internal representation of a translation job with full state.

    Attributes:
        id: Unique job identifier (hex UUID)
        status: Current pipeline state
        created_at: Job creation timestamp (UTC)
        updated_at: Last modification timestamp (UTC)
        source_filename: Original filename (or key for stored sources)
        source_key: Object key of the source PSD
        target_lang: Target language code
        output_key: Object key the translated PSD is written to
        download_url: Signed download URL once ready
        output_size: Verified size of the translated PSD in bytes
        message: Human-readable outcome (e.g. "nothing to translate")
        error: Error message if the job failed
        error_kind: Error class name if the job failed
        error_status: HTTP status hint (400 bad input, 500 service failure)
        events: Chronological list of job lifecycle events
    """

    id: str
    status: JobStatus
    created_at: datetime
    updated_at: datetime
    source_filename: str
    source_key: str
    target_lang: str
    output_key: str
    download_url: Optional[str] = None
    download_expires_at: Optional[datetime] = None
    output_size: Optional[int] = None
    message: Optional[str] = None
    error: Optional[str] = None
    error_kind: Optional[str] = None
    error_status: Optional[int] = None
    events: List[JobEvent] = field(default_factory=list)

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "JobRecord":
        data = dict(row)
        data["status"] = JobStatus(data["status"])
        data["events"] = [JobEvent(**event) for event in data.get("events", [])]
        return cls(**data)

    def to_row(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "status": self.status.value,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "source_filename": self.source_filename,
            "source_key": self.source_key,
            "target_lang": self.target_lang,
            "output_key": self.output_key,
            "download_url": self.download_url,
            "download_expires_at": self.download_expires_at,
            "output_size": self.output_size,
            "message": self.message,
            "error": self.error,
            "error_kind": self.error_kind,
            "error_status": self.error_status,
            "events": [event.model_dump() for event in self.events],
        }

    def to_summary(self) -> JobSummary:
        return JobSummary(
            id=self.id,
            status=self.status,
            created_at=self.created_at,
            updated_at=self.updated_at,
            source_filename=self.source_filename,
            source_key=self.source_key,
            target_lang=self.target_lang,
            output_key=self.output_key,
        )

    def to_detail(self) -> JobDetail:
        summary = self.to_summary()
        return JobDetail(
            **summary.model_dump(),
            download_url=self.download_url,
            download_expires_at=self.download_expires_at,
            output_size=self.output_size,
            message=self.message,
            error=self.error,
            error_kind=self.error_kind,
            error_status=self.error_status,
            events=self.events,
        )

    def to_status(self) -> JobStatusResponse:
        return JobStatusResponse(
            job_id=self.id,
            status=self.status,
            download_url=self.download_url,
            filename=self.output_key,
            size=self.output_size,
            message=self.message,
            error=self.error,
            error_status=self.error_status,
        )


class JobManager:
    """
    Central coordinator for job lifecycle management.

    Jobs are persisted before they are queued, and every state transition
    reported by the orchestrator is written through to the database, so
    status queries keep working across restarts.

    Thread Safety:
        Job-state writes hold ``_lock``; appending an event rewrites the
        whole events column.

    Attributes:
        orchestrator: Runs the translation pipeline for a single job
        database: SQLite store for job records
        default_target_lang: Language used when a request names none
    """

    def __init__(
        self,
        orchestrator: TranslationOrchestrator,
        database: JobDatabase,
        store: ObjectStore,
        deletions: Optional[DeletionScheduler] = None,
        max_workers: int = 2,
        default_target_lang: str = "EN",
    ) -> None:
        """
        Initialize the job manager.

        Args:
            orchestrator: Pipeline runner shared by all workers
            database: Job persistence
            store: Object store used for signed upload/read URLs
            deletions: Durable scheduler for output cleanup
            max_workers: Number of jobs translated concurrently
            default_target_lang: Fallback target language code
        """
        self.orchestrator = orchestrator
        self.database = database
        self.store = store
        self.deletions = deletions
        self.default_target_lang = default_target_lang
        self._lock = Lock()
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="translation-job")

    @classmethod
    def from_settings(cls, settings: Settings, http: Optional[httpx.Client] = None) -> "JobManager":
        """Wire the real clients from configuration."""
        http = http or httpx.Client()
        database = JobDatabase(Path(settings.service.db_path))
        store = ObjectStore(settings.storage)
        deletions = DeletionScheduler(database, store)
        orchestrator = TranslationOrchestrator(
            settings=settings,
            auth=VendorAuthClient(settings.vendor, http),
            store=store,
            translator=TranslationClient(settings.translation, http),
            http=http,
            deletions=deletions,
        )
        return cls(
            orchestrator,
            database,
            store,
            deletions,
            max_workers=settings.service.max_workers,
            default_target_lang=settings.translation.default_target_lang,
        )

    def list_jobs(self) -> list[JobSummary]:
        """Get all jobs sorted by creation time (newest first)."""
        return [JobRecord.from_row(row).to_summary() for row in self.database.list_jobs()]

    def get_job(self, job_id: str) -> Optional[JobRecord]:
        row = self.database.get_job(job_id)
        return JobRecord.from_row(row) if row else None

    def create_upload_job(self, filename: str, data: bytes, target_lang: Optional[str] = None) -> tuple[JobSummary, Future]:
        """
        Register a job whose source bytes came with the request.

        The stored key is prefixed with part of the job id so concurrent
        uploads of identically named files do not overwrite each other.
        """
        job_id = uuid4().hex
        key = f"{job_id[:8]}-{sanitize_object_key(filename)}"
        return self._create_job(job_id, UploadedSource(filename=filename, data=data, key=key), target_lang)

    def create_stored_job(self, file_key: str, target_lang: Optional[str] = None) -> tuple[JobSummary, Future]:
        """Register a job for a PSD already uploaded through a signed URL."""
        return self._create_job(uuid4().hex, StoredSource(key=file_key), target_lang)

    def _create_job(self, job_id: str, source: SourceDocument, target_lang: Optional[str]) -> tuple[JobSummary, Future]:
        now = datetime.utcnow()
        record = JobRecord(
            id=job_id,
            status=JobStatus.IDLE,
            created_at=now,
            updated_at=now,
            source_filename=source.filename,
            source_key=source.object_key,
            target_lang=target_lang or self.default_target_lang,
            output_key=output_key_for(source.object_key),
        )
        record.events.append(JobEvent(timestamp=now, message="Job registered and awaiting execution."))
        with self._lock:
            self.database.save_job(record.to_row())

        future = self._executor.submit(self._run_job, job_id, source, record.target_lang)
        return record.to_summary(), future

    def _transition(self, job_id: str, status: JobStatus, message: str) -> None:
        with self._lock:
            self.database.update_job(job_id, status.value)
            self.database.add_job_event(job_id, message)

    def _run_job(self, job_id: str, source: SourceDocument, target_lang: str) -> None:
        """
        Execute the translation pipeline for a job (runs in a worker thread).
        """
        try:
            outcome = self.orchestrator.run(
                source,
                target_lang,
                on_transition=lambda status, message: self._transition(job_id, status, message),
            )
            self._store_outcome(job_id, outcome)
        except Exception as exc:
            logger.exception(f"Translation job {job_id} crashed")
            with self._lock:
                self.database.update_job(
                    job_id,
                    JobStatus.FAILED.value,
                    error=str(exc),
                    error_kind=type(exc).__name__,
                    error_status=500,
                )
                self.database.add_job_event(job_id, f"Job failed unexpectedly: {exc}")

    def _store_outcome(self, job_id: str, outcome: JobOutcome) -> None:
        with self._lock:
            self.database.update_job(
                job_id,
                outcome.status.value,
                download_url=outcome.download_url,
                download_expires_at=outcome.download_expires_at,
                output_size=outcome.output_size,
                message=outcome.message,
                error=outcome.error,
                error_kind=outcome.error_kind,
                error_status=outcome.error_status,
            )

    def recover_interrupted_jobs(self) -> int:
        """
        Fail jobs left mid-pipeline by a previous process.

        Jobs are not resumable; callers must resubmit them.

        Returns:
            Number of jobs marked as failed
        """
        recovered = 0
        with self._lock:
            for row in self.database.list_jobs():
                if JobStatus(row["status"]).is_terminal:
                    continue
                self.database.update_job(
                    row["id"],
                    JobStatus.FAILED.value,
                    error=INTERRUPTED_MESSAGE,
                    error_kind="Interrupted",
                    error_status=500,
                )
                self.database.add_job_event(row["id"], INTERRUPTED_MESSAGE)
                recovered += 1
        if recovered:
            logger.warning(f"Marked {recovered} interrupted jobs as failed")
        return recovered

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)
