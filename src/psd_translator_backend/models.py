from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class JobStatus(str, Enum):
    IDLE = "idle"
    AUTHENTICATING = "authenticating"
    FETCHING_MANIFEST = "fetching_manifest"
    EXTRACTING_LAYERS = "extracting_layers"
    TRANSLATING = "translating"
    SUBMITTING_EDIT = "submitting_edit"
    POLLING_EDIT = "polling_edit"
    VERIFYING = "verifying"
    READY = "ready"
    NO_OP = "no_op"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({JobStatus.READY, JobStatus.NO_OP, JobStatus.FAILED})


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class JobEvent(BaseModel):
    timestamp: datetime
    message: str


class JobSummary(BaseModel):
    id: str
    status: JobStatus
    created_at: datetime
    updated_at: datetime
    source_filename: str
    source_key: str
    target_lang: str
    output_key: str


class JobDetail(JobSummary):
    download_url: Optional[str] = None
    download_expires_at: Optional[datetime] = None
    output_size: Optional[int] = None
    message: Optional[str] = None
    error: Optional[str] = None
    error_kind: Optional[str] = None
    error_status: Optional[int] = None
    events: List[JobEvent] = Field(default_factory=list)


class JobStatusResponse(_CamelModel):
    job_id: str = Field(alias="jobId")
    status: JobStatus
    download_url: Optional[str] = Field(default=None, alias="downloadUrl")
    filename: str
    size: Optional[int] = None
    message: Optional[str] = None
    error: Optional[str] = None
    error_status: Optional[int] = Field(default=None, alias="errorStatus")


class StartTranslationRequest(_CamelModel):
    file_key: str = Field(alias="fileKey", min_length=1)
    target_lang: Optional[str] = Field(default=None, alias="targetLang")


class StartTranslationResponse(_CamelModel):
    job_id: str = Field(alias="jobId")
    status: JobStatus
    message: str


class UploadUrlRequest(_CamelModel):
    file_name: str = Field(alias="fileName", min_length=1)
    file_type: str = Field(alias="fileType", min_length=1)


class UploadUrlResponse(_CamelModel):
    upload_url: str = Field(alias="uploadUrl")
    file_key: str = Field(alias="fileKey")
    expires_at: int = Field(alias="expiresAt")


class ReadUrlRequest(_CamelModel):
    file_name: str = Field(alias="fileName", min_length=1)


class ReadUrlResponse(_CamelModel):
    read_url: str = Field(alias="readUrl")
    file_name: str = Field(alias="fileName")


class SweepResponse(BaseModel):
    deleted: int
    pending: int
