from __future__ import annotations

import os
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv
from omegaconf import DictConfig, OmegaConf

# Load environment variables from .env file
load_dotenv()

CONFIG_ENV_VAR = "PSD_TRANSLATOR_CONFIG"

_HERE = Path(__file__).resolve()
_CANDIDATE_CONFIG_PATHS = [Path.cwd() / "config/config.yaml"] + [parent / "config/config.yaml" for parent in _HERE.parents[:4]]

# Environment variable -> dotted config key
ENV_OVERRIDES: Dict[str, str] = {
    "ADOBE_CLIENT_ID": "vendor.client_id",
    "ADOBE_CLIENT_SECRET": "vendor.client_secret",
    "DEEPL_API_KEY": "translation.api_key",
    "DEEPL_API_URL": "translation.endpoint",
    "S3_BUCKET_NAME": "storage.bucket",
    "AWS_REGION": "storage.region",
    "S3_ENDPOINT_URL": "storage.endpoint_url",
    "PSD_TRANSLATOR_DB_PATH": "service.db_path",
    "PSD_TRANSLATOR_MAX_WORKERS": "service.max_workers",
    "PSD_TRANSLATOR_LOG_LEVEL": "service.log_level",
}


@dataclass
class VendorSettings:
    client_id: str = ""
    client_secret: str = ""
    token_url: str = "https://ims-na1.adobelogin.com/ims/token/v3"
    scopes: List[str] = field(default_factory=lambda: ["AdobeID", "openid"])
    auth_timeout: float = 30.0
    base_url: str = "https://image.adobe.io"
    manifest_path: str = "/pie/psdService/documentManifest"
    text_path: str = "/pie/psdService/text"
    request_timeout: float = 60.0
    max_retries: int = 3
    retry_base_delay: float = 1.0
    retry_multiplier: float = 2.0
    retry_max_delay: float = 10.0


@dataclass
class TranslationSettings:
    api_key: str = ""
    endpoint: str = "https://api-free.deepl.com/v2/translate"
    timeout: float = 30.0
    default_target_lang: str = "EN"
    # Courtesy pause after each call to respect the vendor's rate limits
    inter_call_delay: float = 1.0


@dataclass
class StorageSettings:
    bucket: str = ""
    region: Optional[str] = None
    endpoint_url: Optional[str] = None
    content_type: str = "image/vnd.adobe.photoshop"
    upload_url_ttl: int = 15 * 60
    source_url_ttl: int = 2 * 60 * 60
    destination_url_ttl: int = 2 * 60 * 60
    download_url_ttl: int = 15 * 60
    cors_origins: List[str] = field(default_factory=lambda: ["*"])
    cors_max_age: int = 3600


@dataclass
class PollingSettings:
    initial_delay: float = 5.0
    backoff_multiplier: float = 1.5
    max_delay: float = 30.0
    request_timeout: float = 30.0
    max_consecutive_errors: int = 3
    manifest_max_attempts: int = 15
    translation_max_attempts: int = 20


@dataclass
class PipelineSettings:
    settle_delay: float = 3.0
    min_output_bytes: int = 100
    deletion_grace_seconds: int = 30 * 60


@dataclass
class ServiceSettings:
    db_path: str = "data/jobs.db"
    max_workers: int = 2
    log_level: str = "INFO"
    sweep_interval_seconds: float = 60.0


@dataclass
class Settings:
    vendor: VendorSettings = field(default_factory=VendorSettings)
    translation: TranslationSettings = field(default_factory=TranslationSettings)
    storage: StorageSettings = field(default_factory=StorageSettings)
    polling: PollingSettings = field(default_factory=PollingSettings)
    pipeline: PipelineSettings = field(default_factory=PipelineSettings)
    service: ServiceSettings = field(default_factory=ServiceSettings)


def find_config_file() -> Optional[Path]:
    explicit = os.environ.get(CONFIG_ENV_VAR)
    if explicit:
        path = Path(explicit)
        if not path.exists():
            raise FileNotFoundError(f"{CONFIG_ENV_VAR} points to a missing file: {path}")
        return path
    return next((path for path in _CANDIDATE_CONFIG_PATHS if path.exists()), None)


def _env_overrides(environ: Dict[str, str]) -> DictConfig:
    # Values stay strings here; the structured schema converts them on merge
    config = OmegaConf.create({})
    for name, key in ENV_OVERRIDES.items():
        if environ.get(name):
            OmegaConf.update(config, key, environ[name], force_add=True)
    return config


def load_settings(
    overrides: Optional[Dict[str, Any]] = None,
    config_path: Optional[Path] = None,
    environ: Optional[Dict[str, str]] = None,
) -> Settings:
    """
    Build the runtime settings.

    Layers, lowest precedence first: dataclass defaults, the YAML config file,
    environment variables, then explicit overrides. The structured schema
    rejects unknown keys and values of the wrong type.
    """
    schema = OmegaConf.structured(Settings)
    layers = [schema]

    path = config_path or find_config_file()
    if path is not None:
        layers.append(OmegaConf.load(path))

    layers.append(_env_overrides(dict(os.environ if environ is None else environ)))

    if overrides:
        layers.append(OmegaConf.create(overrides))

    merged = OmegaConf.merge(*layers)
    return OmegaConf.to_object(merged)  # type: ignore[return-value]


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return load_settings()
