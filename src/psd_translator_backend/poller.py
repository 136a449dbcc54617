"""
Long-poll loop over vendor job handles.

The loop starts at a fixed interval and only grows it while the vendor is
answering with server errors; a healthy response resets both the delay and
the consecutive-error counter. Timeouts consume an attempt but are retried
immediately and never count as consecutive errors.
"""

from __future__ import annotations

import json
import logging
import time
from typing import Any, Callable, Dict, Optional

import httpx

from .configuration import PollingSettings
from .errors import (
    PollingExhaustedError,
    PollingTimeoutError,
    VendorJobFailedError,
    VendorRequestError,
)
from .retry import BackoffPolicy
from .vendor import VendorSession

logger = logging.getLogger(__name__)

MANIFEST_KIND = "Manifest"
TRANSLATION_KIND = "Translation"

SUCCEEDED = "succeeded"
FAILED = "failed"
IN_PROGRESS = {"running", "pending", "processing"}


def poll_backoff(settings: PollingSettings) -> BackoffPolicy:
    return BackoffPolicy(
        max_attempts=settings.max_consecutive_errors,
        base_delay=settings.initial_delay,
        multiplier=settings.backoff_multiplier,
        max_delay=settings.max_delay,
    )


class JobPoller:
    def __init__(
        self,
        session: VendorSession,
        settings: PollingSettings,
        policy: Optional[BackoffPolicy] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._session = session
        self.settings = settings
        self.policy = policy or poll_backoff(settings)
        self._sleep = sleep

    def max_attempts_for(self, kind: str) -> int:
        if kind == MANIFEST_KIND:
            return self.settings.manifest_max_attempts
        return self.settings.translation_max_attempts

    def poll(self, handle_url: str, kind: str, max_attempts: Optional[int] = None) -> Dict[str, Any]:
        """
        Poll ``handle_url`` until the vendor job reaches a terminal status.

        Args:
            handle_url: Job handle returned by the vendor
            kind: Label used in logs and errors ("Manifest", "Translation")
            max_attempts: Override for the per-kind attempt cap

        Returns:
            The full response body once ``outputs[0].status`` is ``succeeded``

        Raises:
            VendorJobFailedError: The vendor reported the job as failed
            PollingExhaustedError: Too many consecutive 5xx responses
            VendorRequestError: Non-retryable 4xx or transport failure
            PollingTimeoutError: The attempt cap was reached
        """
        cap = max_attempts or self.max_attempts_for(kind)
        delay = self.policy.base_delay
        consecutive_errors = 0
        attempts = 0

        while attempts < cap:
            logger.info(f"Polling attempt {attempts + 1}/{cap} for {kind} status...")
            try:
                response = self._session.get(handle_url, timeout=self.settings.request_timeout)
            except httpx.TimeoutException:
                logger.warning(f"Polling request for {kind} timed out, retrying...")
                attempts += 1
                continue
            except httpx.TransportError as exc:
                raise VendorRequestError(f"Polling request for {kind} failed: {exc!s}") from exc

            if response.status_code >= 500:
                consecutive_errors += 1
                logger.warning(f"Server error ({response.status_code}) polling {kind}, consecutive errors: {consecutive_errors}")
                if consecutive_errors >= self.policy.max_attempts:
                    raise PollingExhaustedError(
                        f"Too many consecutive errors polling for {kind}: {response.status_code} - {response.text}"
                    )
                delay = self.policy.grow(delay)
            elif response.is_error:
                raise VendorRequestError(
                    f"Polling failed for {kind}: {response.status_code} - {response.text}",
                    status=response.status_code,
                    body=response.text,
                )
            else:
                consecutive_errors = 0
                delay = self.policy.base_delay
                body = self._decode(response, kind)
                status = _output_status(body)
                logger.info(f"{kind} status: {status or 'unknown'}")

                if status == SUCCEEDED:
                    return body
                if status == FAILED:
                    output = body["outputs"][0]
                    detail = output.get("errors") or body
                    raise VendorJobFailedError(f"{kind} failed: {json.dumps(detail)}", detail=detail)
                if status in IN_PROGRESS:
                    logger.info(f"{kind} is still {status}...")

            logger.info(f"Waiting {delay}s before next poll attempt...")
            self._sleep(delay)
            attempts += 1

        raise PollingTimeoutError(f"Polling for {kind} timed out after {cap} attempts")

    @staticmethod
    def _decode(response: httpx.Response, kind: str) -> Dict[str, Any]:
        try:
            body = response.json()
        except ValueError as exc:
            raise VendorRequestError(f"Invalid JSON while polling {kind}: {response.text}", status=response.status_code) from exc
        return body if isinstance(body, dict) else {}


def _output_status(body: Dict[str, Any]) -> Optional[str]:
    outputs = body.get("outputs")
    if isinstance(outputs, list) and outputs and isinstance(outputs[0], dict):
        return outputs[0].get("status")
    return None
