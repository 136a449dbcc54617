"""
Exception taxonomy for the translation pipeline.

Every error raised by a client or by the orchestrator derives from
``TranslatorError`` and carries a ``status_hint`` so callers can tell bad
input (400-class) apart from service failures (500-class).
"""

from __future__ import annotations

from typing import Any, Optional


class TranslatorError(Exception):
    """Base class for all pipeline errors."""

    status_hint: int = 500

    @property
    def kind(self) -> str:
        return type(self).__name__


class ConfigurationError(TranslatorError):
    """Required configuration is missing or invalid."""


class AuthError(TranslatorError):
    """The vendor token exchange failed or credentials are missing."""


class VendorRequestError(TranslatorError):
    """A vendor request failed with a non-retryable status or exhausted its retries."""

    def __init__(self, message: str, status: Optional[int] = None, body: Any = None) -> None:
        super().__init__(message)
        self.status = status
        self.body = body

    @property
    def status_hint(self) -> int:  # type: ignore[override]
        if self.status is not None and 400 <= self.status < 500:
            return 400
        return 500


class VendorJobFailedError(TranslatorError):
    """The vendor reported the asynchronous job as failed."""

    def __init__(self, message: str, detail: Any = None) -> None:
        super().__init__(message)
        self.detail = detail


class PollingExhaustedError(TranslatorError):
    """Too many consecutive server errors while polling a job handle."""


class PollingTimeoutError(TranslatorError):
    """The job did not finish within the allowed number of poll attempts."""


class ManifestShapeError(TranslatorError):
    """The manifest response does not contain a usable ``outputs`` list."""


class TranslationError(TranslatorError):
    """The translation API rejected a request."""

    def __init__(self, message: str, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.status = status


class OutputVerificationError(TranslatorError):
    """The edited document is missing or implausibly small."""


class StorageError(TranslatorError):
    """An object store call failed for a reason other than a missing key."""


class NotFoundError(TranslatorError):
    """The requested object does not exist in the object store."""

    status_hint = 400

    def __init__(self, key: str) -> None:
        super().__init__(f"Object not found: {key}")
        self.key = key


class InvalidSourceError(TranslatorError):
    """The submitted source document is empty or not a PSD."""

    status_hint = 400
