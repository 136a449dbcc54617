"""
PSD Translator Backend - REST API for translating Photoshop text layers

This package provides a FastAPI-based web service that orchestrates the
translation of PSD documents through external services. It enables:

- Direct and signed-URL uploads of source documents to S3
- Asynchronous translation job execution on a worker pool
- Job status tracking and event logging persisted in SQLite
- Signed, time-limited download links for translated documents
- Durable deferred cleanup of translated outputs

The heavy lifting (PSD parsing and rendering) happens inside the vendor's
document-editing API; this backend sequences the vendor calls, the
translation calls and the object store.

Key Components:
    - main: FastAPI application and HTTP endpoint definitions
    - job_manager: Job lifecycle and worker pool coordinator
    - pipeline: Translation orchestrator state machine
    - vendor / poller / vendor_auth: Vendor API clients
    - translation_client: Text translation client
    - storage: S3 object store gateway
    - layers: Manifest layer models and text-layer extraction
    - configuration: Settings loading and merging logic

Usage:
    Run the API server with:
        uvicorn psd_translator_backend.main:app --reload --host 0.0.0.0 --port 8000
"""
