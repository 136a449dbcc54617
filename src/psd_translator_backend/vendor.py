"""
Client for the vendor's PSD document-editing API.

Two operations are exposed: fetching a document manifest and submitting a
text-layer edit. The vendor answers either with a final body or with a job
handle (``_links.self.href``) that must be polled; both operations return
``JobHandle | dict`` accordingly.

All POSTs go through one request primitive that enforces a per-request
timeout and retries 429/5xx responses, timeouts and network errors according to a
``BackoffPolicy``.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

import httpx
from tenacity import Retrying, stop_after_attempt

from .configuration import VendorSettings
from .errors import VendorRequestError
from .layers import TranslatedLayer
from .retry import BackoffPolicy, RetryableResponseError, is_retryable_status

logger = logging.getLogger(__name__)

PSD_MEDIA_TYPE = "image/vnd.adobe.photoshop"
PSD_OUTPUT_TYPE = "vnd.adobe.photoshop"
EXTERNAL_STORAGE = "external"


@dataclass(frozen=True)
class JobHandle:
    """Polling URL identifying an asynchronous vendor operation."""

    href: str


VendorResult = Union[JobHandle, Dict[str, Any]]


class VendorSession:
    """
    Authenticated view of the vendor API for a single job.

    Every request carries the job's bearer token plus the client id as
    ``x-api-key``.
    """

    def __init__(self, http: httpx.Client, api_key: str, access_token: str) -> None:
        self._http = http
        self._headers = {
            "Authorization": f"Bearer {access_token}",
            "x-api-key": api_key,
            "Content-Type": "application/json",
        }

    def post(self, url: str, payload: Dict[str, Any], timeout: float) -> httpx.Response:
        return self._http.post(url, headers=self._headers, json=payload, timeout=timeout)

    def get(self, url: str, timeout: float) -> httpx.Response:
        return self._http.get(url, headers=self._headers, timeout=timeout)


def extract_handle(body: Any) -> Optional[JobHandle]:
    links = body.get("_links") if isinstance(body, dict) else None
    link = links.get("self") if isinstance(links, dict) else None
    href = link.get("href") if isinstance(link, dict) else None
    return JobHandle(href) if isinstance(href, str) and href else None


def _decode_body(response: httpx.Response) -> Any:
    if not response.text:
        return {}
    try:
        return response.json()
    except ValueError:
        return response.text


def vendor_backoff(settings: VendorSettings) -> BackoffPolicy:
    return BackoffPolicy(
        max_attempts=settings.max_retries + 1,
        base_delay=settings.retry_base_delay,
        multiplier=settings.retry_multiplier,
        max_delay=settings.retry_max_delay,
    )


class DocumentEditClient:
    def __init__(
        self,
        session: VendorSession,
        settings: VendorSettings,
        policy: Optional[BackoffPolicy] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._session = session
        self.settings = settings
        self.policy = policy or vendor_backoff(settings)
        self._sleep = sleep

    @property
    def manifest_url(self) -> str:
        return self.settings.base_url.rstrip("/") + self.settings.manifest_path

    @property
    def text_url(self) -> str:
        return self.settings.base_url.rstrip("/") + self.settings.text_path

    def request_manifest(self, source_url: str) -> VendorResult:
        """
        Ask the vendor for the layer manifest of an externally hosted PSD.

        Args:
            source_url: Signed read URL of the source document

        Returns:
            A ``JobHandle`` to poll, or the manifest body itself

        Raises:
            VendorRequestError: On request failure or an error body
        """
        body = self._post(
            self.manifest_url,
            {"inputs": [{"href": source_url, "storage": EXTERNAL_STORAGE, "type": PSD_MEDIA_TYPE}]},
        )
        handle = extract_handle(body)
        if handle:
            return handle
        if not isinstance(body, dict) or "_links" in body:
            raise VendorRequestError(f"Unexpected manifest response: {body!r}", body=body)
        if body.get("error") or body.get("code"):
            message = body.get("message") or body
            raise VendorRequestError(f"API Error: {body.get('error') or body.get('code')}: {message}", body=body)
        return body

    def submit_edit(
        self,
        source_url: str,
        translated_layers: Sequence[TranslatedLayer],
        destination_url: str,
    ) -> VendorResult:
        """
        Submit a text replacement job writing its result to ``destination_url``.

        Layers are matched by name on the vendor side; the submitted list
        keeps extraction order.
        """
        layers: List[Dict[str, Any]] = [layer.to_payload() for layer in translated_layers]
        body = self._post(
            self.text_url,
            {
                "inputs": [{"href": source_url, "storage": EXTERNAL_STORAGE}],
                "options": {"layers": layers},
                "outputs": [{"href": destination_url, "storage": EXTERNAL_STORAGE, "type": PSD_OUTPUT_TYPE}],
            },
        )
        handle = extract_handle(body)
        if handle:
            return handle
        if not isinstance(body, dict) or "_links" in body:
            raise VendorRequestError(f"Unexpected edit response: {body!r}", body=body)
        return body

    def _post(self, url: str, payload: Dict[str, Any]) -> Any:
        logger.info(f"Sending request to {url}")
        retrying = Retrying(
            stop=stop_after_attempt(self.policy.max_attempts),
            wait=self.policy.wait,
            retry=self.policy.should_retry,
            before_sleep=self.policy.log_retry,
            sleep=self._sleep,
            reraise=True,
        )
        try:
            response = retrying(self._send, url, payload)
        except RetryableResponseError as exc:
            status = exc.response.status_code
            raise VendorRequestError(
                f"Vendor API request failed: {status} - {exc.response.text}",
                status=status,
                body=_decode_body(exc.response),
            ) from exc
        except httpx.TransportError as exc:
            raise VendorRequestError(f"Vendor API request to {url} failed: {exc!s}") from exc

        logger.info(f"Vendor API response: {response.status_code}")
        if response.is_error:
            raise VendorRequestError(
                f"Vendor API request failed: {response.status_code} - {response.text}",
                status=response.status_code,
                body=_decode_body(response),
            )

        body = _decode_body(response)
        if isinstance(body, str):
            raise VendorRequestError(f"Invalid JSON response from vendor API: {body}", status=response.status_code, body=body)
        return body

    def _send(self, url: str, payload: Dict[str, Any]) -> httpx.Response:
        response = self._session.post(url, payload, timeout=self.settings.request_timeout)
        if is_retryable_status(response.status_code):
            raise RetryableResponseError(response)
        return response
