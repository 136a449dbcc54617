"""
Translation orchestrator: one PSD translation job as a linear state machine.

    idle -> authenticating -> fetching_manifest -> extracting_layers
         -> translating -> submitting_edit -> polling_edit -> verifying
         -> ready | no_op | failed

The orchestrator owns no global state. Clients are injected, a vendor
session is built per job from a freshly fetched token, and every state change
is reported to an optional observer so callers can persist progress.
Where the source bytes come from is a ``SourceDocument`` strategy: a direct
upload is stored first, while an already stored key is only checked.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, List, Optional, Protocol

import httpx
from pydantic import ValidationError

from .cleanup import DeletionScheduler
from .configuration import Settings
from .errors import (
    InvalidSourceError,
    ManifestShapeError,
    NotFoundError,
    OutputVerificationError,
    TranslatorError,
)
from .layers import Layer, TranslatedLayer, find_text_layers, parse_layers
from .models import JobStatus
from .poller import MANIFEST_KIND, TRANSLATION_KIND, JobPoller
from .storage import ObjectStore
from .translation_client import TranslationClient
from .utils import output_key_for, sanitize_object_key
from .vendor import DocumentEditClient, JobHandle, VendorSession
from .vendor_auth import VendorAuthClient

logger = logging.getLogger(__name__)

NO_TEXT_LAYERS_MESSAGE = "no text layers; nothing to translate"

TransitionCallback = Callable[[JobStatus, str], None]


class SourceDocument(Protocol):
    filename: str

    @property
    def object_key(self) -> str: ...

    def ensure_stored(self, store: ObjectStore, content_type: str) -> str: ...


@dataclass(frozen=True)
class UploadedSource:
    """Source bytes received directly from the client; stored before use."""

    filename: str
    data: bytes = field(repr=False)
    key: Optional[str] = None

    @property
    def object_key(self) -> str:
        return self.key or sanitize_object_key(self.filename)

    def ensure_stored(self, store: ObjectStore, content_type: str) -> str:
        if not self.data:
            raise InvalidSourceError(f"Empty or invalid PSD upload: {self.filename}")
        store.upload(self.object_key, self.data, content_type)
        return self.object_key


@dataclass(frozen=True)
class StoredSource:
    """Source already resident in the object store (browser direct upload)."""

    key: str

    @property
    def filename(self) -> str:
        return self.key

    @property
    def object_key(self) -> str:
        return self.key

    def ensure_stored(self, store: ObjectStore, content_type: str) -> str:
        if not store.exists(self.key):
            raise NotFoundError(self.key)
        return self.key


@dataclass
class JobOutcome:
    status: JobStatus
    source_key: str
    output_key: str
    download_url: Optional[str] = None
    download_expires_at: Optional[datetime] = None
    output_size: Optional[int] = None
    message: Optional[str] = None
    error: Optional[str] = None
    error_kind: Optional[str] = None
    error_status: Optional[int] = None
    translated_layers: List[TranslatedLayer] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.status in (JobStatus.READY, JobStatus.NO_OP)


class TranslationOrchestrator:
    """
    Runs the translation pipeline for one job at a time per call.

    Instances are safe to share between worker threads: per-job state lives
    on the call stack of ``run``.
    """

    def __init__(
        self,
        settings: Settings,
        auth: VendorAuthClient,
        store: ObjectStore,
        translator: TranslationClient,
        http: httpx.Client,
        deletions: Optional[DeletionScheduler] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], datetime] = datetime.utcnow,
    ) -> None:
        self.settings = settings
        self._auth = auth
        self._store = store
        self._translator = translator
        self._http = http
        self._deletions = deletions
        self._sleep = sleep
        self._clock = clock

    def run(
        self,
        source: SourceDocument,
        target_lang: str,
        on_transition: Optional[TransitionCallback] = None,
    ) -> JobOutcome:
        """
        Execute the whole pipeline for ``source``.

        Pipeline errors never escape: they end the job in ``failed`` with
        the error's message, class name and HTTP status hint.

        Args:
            source: Where the PSD comes from
            target_lang: Target language code for the translation API
            on_transition: Observer called with ``(status, message)`` on
                every state change

        Returns:
            The terminal outcome (``ready``, ``no_op`` or ``failed``)
        """
        notify = on_transition or (lambda status, message: None)
        source_key = source.object_key
        outcome = JobOutcome(status=JobStatus.IDLE, source_key=source_key, output_key=output_key_for(source_key))

        def advance(status: JobStatus, message: str) -> None:
            outcome.status = status
            logger.info(f"[{source_key}] {status.value}: {message}")
            notify(status, message)

        try:
            self._execute(source, target_lang, outcome, advance)
        except TranslatorError as exc:
            outcome.error = str(exc)
            outcome.error_kind = exc.kind
            outcome.error_status = exc.status_hint
            outcome.download_url = None
            outcome.download_expires_at = None
            advance(JobStatus.FAILED, f"{exc.kind}: {exc}")
        return outcome

    def _execute(
        self,
        source: SourceDocument,
        target_lang: str,
        outcome: JobOutcome,
        advance: Callable[[JobStatus, str], None],
    ) -> None:
        vendor_settings = self.settings.vendor
        storage_settings = self.settings.storage

        advance(JobStatus.AUTHENTICATING, "Authenticating with vendor API.")
        token = self._auth.get_access_token()
        session = VendorSession(self._http, vendor_settings.client_id, token.access_token)
        editor = DocumentEditClient(session, vendor_settings, sleep=self._sleep)
        poller = JobPoller(session, self.settings.polling, sleep=self._sleep)

        advance(JobStatus.FETCHING_MANIFEST, f"Fetching document manifest for {outcome.source_key}.")
        source.ensure_stored(self._store, storage_settings.content_type)
        source_url = self._store.sign_download_url(outcome.source_key, storage_settings.source_url_ttl)
        manifest = editor.request_manifest(source_url)
        if isinstance(manifest, JobHandle):
            manifest = poller.poll(manifest.href, MANIFEST_KIND)

        advance(JobStatus.EXTRACTING_LAYERS, "Extracting text layers.")
        text_layers = find_text_layers(manifest_layers(manifest))
        if not text_layers:
            outcome.message = NO_TEXT_LAYERS_MESSAGE
            advance(JobStatus.NO_OP, NO_TEXT_LAYERS_MESSAGE)
            return

        advance(JobStatus.TRANSLATING, f"Translating {len(text_layers)} text layers to {target_lang}.")
        outcome.translated_layers = self._translate_layers(text_layers, target_lang)

        advance(JobStatus.SUBMITTING_EDIT, f"Submitting translated layers for {outcome.output_key}.")
        destination_url = self._store.sign_upload_url(
            outcome.output_key,
            storage_settings.content_type,
            storage_settings.destination_url_ttl,
        )
        submission = editor.submit_edit(source_url, outcome.translated_layers, destination_url)

        if isinstance(submission, JobHandle):
            advance(JobStatus.POLLING_EDIT, "Waiting for the edit job to finish.")
            poller.poll(submission.href, TRANSLATION_KIND)

        advance(JobStatus.VERIFYING, f"Verifying {outcome.output_key}.")
        outcome.output_size = self._verify_output(outcome.output_key)

        outcome.download_url = self._store.sign_download_url(
            outcome.output_key,
            storage_settings.download_url_ttl,
            content_disposition=f'attachment; filename="{outcome.output_key}"',
        )
        outcome.download_expires_at = self._clock() + timedelta(seconds=storage_settings.download_url_ttl)
        self._schedule_deletion(outcome.output_key)
        outcome.message = f"Translated {len(outcome.translated_layers)} text layers."
        advance(JobStatus.READY, outcome.message)

    def _translate_layers(self, layers: List[Layer], target_lang: str) -> List[TranslatedLayer]:
        translated: List[TranslatedLayer] = []
        for layer in layers:
            text = self._translator.translate(layer.text_content, target_lang)
            logger.debug(f"Layer {layer.name!r}: {layer.text_content!r} -> {text!r}")
            translated.append(TranslatedLayer.from_layer(layer, text))
            self._sleep(self.settings.translation.inter_call_delay)
        return translated

    def _verify_output(self, output_key: str) -> int:
        # Storage writes may lag behind the vendor reporting success
        self._sleep(self.settings.pipeline.settle_delay)
        if not self._store.exists(output_key):
            raise OutputVerificationError(f"Translated file {output_key} not found in storage")

        size = self._store.get_size(output_key)
        minimum = self.settings.pipeline.min_output_bytes
        if size < minimum:
            raise OutputVerificationError(
                f"Translated file {output_key} appears to be invalid (too small: {size} bytes)"
            )
        logger.info(f"Verified {output_key}, size: {size} bytes")
        return size

    def _schedule_deletion(self, output_key: str) -> None:
        if self._deletions is None:
            return
        try:
            self._deletions.schedule(output_key, self.settings.pipeline.deletion_grace_seconds)
        except Exception:
            logger.exception(f"Failed to schedule deletion of {output_key}")


def manifest_layers(manifest: Any) -> List[Layer]:
    """
    Return the parsed layer tree of ``manifest.outputs[0]``.

    Raises:
        ManifestShapeError: If ``outputs`` is missing, empty or malformed
    """
    outputs = manifest.get("outputs") if isinstance(manifest, dict) else None
    if not isinstance(outputs, list) or not outputs or not isinstance(outputs[0], dict):
        raise ManifestShapeError("No outputs found in manifest response")
    try:
        return parse_layers(outputs[0].get("layers"))
    except ValidationError as exc:
        raise ManifestShapeError(f"Malformed layer tree in manifest: {exc}") from exc
