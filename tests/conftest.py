"""
Pytest configuration and fixtures for PSD Translator Backend tests.

The vendor, identity and translation endpoints are scripted through
``httpx.MockTransport``; the object store is an in-memory fake with the same
interface as ``storage.ObjectStore``. Sleeps are recorded, never slept.
"""

import json
from typing import Any, Dict, List, Optional

import httpx
import pytest
from fastapi.testclient import TestClient

from psd_translator_backend.cleanup import DeletionScheduler
from psd_translator_backend.configuration import get_settings, load_settings
from psd_translator_backend.database import JobDatabase
from psd_translator_backend.errors import NotFoundError
from psd_translator_backend.job_manager import JobManager
from psd_translator_backend.main import app, get_job_manager
from psd_translator_backend.pipeline import TranslationOrchestrator
from psd_translator_backend.translation_client import TranslationClient
from psd_translator_backend.vendor_auth import VendorAuthClient

TOKEN_URL = "https://ims-na1.adobelogin.com/ims/token/v3"
MANIFEST_URL = "https://image.adobe.io/pie/psdService/documentManifest"
TEXT_URL = "https://image.adobe.io/pie/psdService/text"
STATUS_URL = "https://image.adobe.io/pie/psdService/status"
DEEPL_URL = "https://api-free.deepl.com/v2/translate"


class FakeObjectStore:
    """In-memory stand-in for ObjectStore."""

    def __init__(self) -> None:
        self.objects: Dict[str, bytes] = {}
        self.deleted: List[str] = []
        self.cors_origins: Optional[List[str]] = None
        self.signed: List[Dict[str, Any]] = []

    def sign_upload_url(self, key: str, content_type: str, ttl: int) -> str:
        self.signed.append({"op": "put", "key": key, "content_type": content_type, "ttl": ttl})
        return f"https://store.test/{key}?op=put&ttl={ttl}"

    def sign_download_url(self, key: str, ttl: int, content_disposition: Optional[str] = None) -> str:
        self.signed.append({"op": "get", "key": key, "ttl": ttl, "content_disposition": content_disposition})
        return f"https://store.test/{key}?op=get&ttl={ttl}"

    def upload(self, key: str, data: bytes, content_type: str) -> None:
        self.objects[key] = data

    def exists(self, key: str) -> bool:
        return key in self.objects

    def get_size(self, key: str) -> int:
        if key not in self.objects:
            raise NotFoundError(key)
        return len(self.objects[key])

    def delete(self, key: str) -> None:
        if key not in self.objects:
            raise NotFoundError(key)
        del self.objects[key]
        self.deleted.append(key)

    def configure_cors(self, origins: Optional[List[str]] = None) -> None:
        self.cors_origins = origins or ["*"]


class ScriptedVendor:
    """
    Routes requests for the identity service, the PSD API and DeepL.

    The manifest job is answered through a polling handle; the edit job
    writes ``output_size`` bytes to the fake store when its status is polled.
    """

    def __init__(self, store: FakeObjectStore) -> None:
        self.store = store
        self.manifest_submission: Any = {"_links": {"self": {"href": f"{STATUS_URL}/manifest-1"}}}
        self.manifest: Dict[str, Any] = {"outputs": [{"status": "succeeded", "layers": []}]}
        self.translations: Dict[str, str] = {}
        self.output_size = 2048
        self.edit_status = "succeeded"
        self.translation_status = 200
        self.requests: List[httpx.Request] = []
        self.edit_payloads: List[Dict[str, Any]] = []
        self.translated_texts: List[str] = []
        self._output_key: Optional[str] = None

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        url = str(request.url)

        if url == TOKEN_URL:
            return httpx.Response(200, json={"access_token": "token-123", "token_type": "bearer", "expires_in": 86399})

        if url == MANIFEST_URL:
            return httpx.Response(202, json=self.manifest_submission)

        if url == f"{STATUS_URL}/manifest-1":
            return httpx.Response(200, json=self.manifest)

        if url == TEXT_URL:
            payload = json.loads(request.content)
            self.edit_payloads.append(payload)
            self._output_key = payload["outputs"][0]["href"].split("https://store.test/", 1)[1].split("?", 1)[0]
            return httpx.Response(202, json={"_links": {"self": {"href": f"{STATUS_URL}/edit-1"}}})

        if url == f"{STATUS_URL}/edit-1":
            if self.edit_status == "succeeded" and self._output_key:
                self.store.objects[self._output_key] = b"\x00" * self.output_size
            output: Dict[str, Any] = {"status": self.edit_status}
            if self.edit_status == "failed":
                output["errors"] = {"code": 500, "title": "render failed"}
            return httpx.Response(200, json={"outputs": [output]})

        if url == DEEPL_URL:
            if self.translation_status != 200:
                return httpx.Response(self.translation_status, text="Quota exceeded")
            payload = json.loads(request.content)
            text = payload["text"][0]
            self.translated_texts.append(text)
            return httpx.Response(200, json={"translations": [{"text": self.translations.get(text, text)}]})

        return httpx.Response(404, text=f"unexpected request {request.method} {url}")


@pytest.fixture
def settings(tmp_path):
    """Settings with fake credentials and a throwaway database."""
    return load_settings(
        overrides={
            "vendor": {"client_id": "client-id", "client_secret": "client-secret"},
            "translation": {"api_key": "deepl-key"},
            "storage": {"bucket": "test-bucket"},
            "service": {"db_path": str(tmp_path / "jobs.db"), "max_workers": 1},
        },
        environ={},
    )


@pytest.fixture
def store():
    return FakeObjectStore()


@pytest.fixture
def vendor(store):
    return ScriptedVendor(store)


@pytest.fixture
def http(vendor):
    client = httpx.Client(transport=httpx.MockTransport(vendor.handle))
    yield client
    client.close()


@pytest.fixture
def sleeps():
    """Recorded sleep durations; pass ``sleeps.append`` as the sleep function."""
    return []


@pytest.fixture
def database(settings):
    return JobDatabase(settings.service.db_path)


@pytest.fixture
def deletions(database, store):
    return DeletionScheduler(database, store)


@pytest.fixture
def orchestrator(settings, store, http, deletions, sleeps):
    return TranslationOrchestrator(
        settings=settings,
        auth=VendorAuthClient(settings.vendor, http),
        store=store,
        translator=TranslationClient(settings.translation, http),
        http=http,
        deletions=deletions,
        sleep=sleeps.append,
    )


@pytest.fixture
def job_manager(orchestrator, database, store, deletions):
    manager = JobManager(orchestrator, database, store, deletions, max_workers=1)
    yield manager
    manager.shutdown(wait=True)


@pytest.fixture
def client(job_manager, settings):
    """Create a test client for the FastAPI app wired to the fakes."""
    app.dependency_overrides[get_job_manager] = lambda: job_manager
    app.dependency_overrides[get_settings] = lambda: settings
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def hello_manifest():
    return {
        "outputs": [
            {
                "status": "succeeded",
                "layers": [{"type": "textLayer", "name": "L1", "text": {"content": "Hello"}}],
            }
        ]
    }
