"""
S3 object store gateway for source documents and translated outputs.

This module provides functionality for:
- Generating presigned URLs for time-limited uploads and downloads
- Uploading raw document bytes
- Existence checks, size lookups and deletes
- Applying the bucket CORS rules needed for browser direct uploads

The bucket name is configured via the S3_BUCKET_NAME environment variable
(see ``configuration.StorageSettings``).
"""

from __future__ import annotations

import logging
from typing import Any, List, Optional

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from .configuration import StorageSettings
from .errors import ConfigurationError, NotFoundError, StorageError

logger = logging.getLogger(__name__)

_MISSING_CODES = {"404", "NoSuchKey", "NotFound"}


def _is_missing(exc: ClientError) -> bool:
    return str(exc.response.get("Error", {}).get("Code")) in _MISSING_CODES


class ObjectStore:
    """
    Gateway over a single S3 bucket.

    Presigned URLs are single-purpose and expire after their TTL; signing the
    same key twice is not guaranteed to return the same URL.
    """

    def __init__(self, settings: StorageSettings, client: Any = None) -> None:
        if not settings.bucket:
            raise ConfigurationError("S3_BUCKET_NAME not configured")
        self.settings = settings
        self.bucket = settings.bucket
        self._client = client or boto3.client(
            "s3",
            region_name=settings.region,
            endpoint_url=settings.endpoint_url,
            config=Config(signature_version="s3v4"),
        )

    def sign_upload_url(self, key: str, content_type: str, ttl: int) -> str:
        """
        Generate a presigned URL allowing a single PUT of ``key``.

        The uploader must send a ``Content-Type`` header equal to
        ``content_type``; the signature covers it.
        """
        url = self._presign(
            "put_object",
            {"Bucket": self.bucket, "Key": key, "ContentType": content_type},
            ttl,
        )
        logger.info(f"Generated upload URL for {key} (expires in {ttl}s)")
        return url

    def sign_download_url(self, key: str, ttl: int, content_disposition: Optional[str] = None) -> str:
        """
        Generate a presigned URL for downloading ``key``.

        Args:
            key: Object key within the bucket
            ttl: URL lifetime in seconds
            content_disposition: Optional ``Content-Disposition`` the store
                should send with the response (e.g. an attachment hint)
        """
        params = {"Bucket": self.bucket, "Key": key}
        if content_disposition:
            params["ResponseContentDisposition"] = content_disposition
        url = self._presign("get_object", params, ttl)
        logger.info(f"Generated download URL for {key} (expires in {ttl}s)")
        return url

    def upload(self, key: str, data: bytes, content_type: str) -> None:
        logger.info(f"Uploading {len(data)} bytes to s3://{self.bucket}/{key}")
        try:
            self._client.put_object(Bucket=self.bucket, Key=key, Body=data, ContentType=content_type)
        except (ClientError, BotoCoreError) as exc:
            raise StorageError(f"S3 upload failed for {key}: {exc}") from exc

    def exists(self, key: str) -> bool:
        try:
            self._head(key)
        except NotFoundError:
            return False
        return True

    def get_size(self, key: str) -> int:
        return int(self._head(key).get("ContentLength", 0))

    def delete(self, key: str) -> None:
        """
        Delete ``key``.

        S3 deletes are silent for missing keys, so the object is looked up
        first and ``NotFoundError`` raised when it is absent.
        """
        self._head(key)
        try:
            self._client.delete_object(Bucket=self.bucket, Key=key)
        except (ClientError, BotoCoreError) as exc:
            raise StorageError(f"S3 delete failed for {key}: {exc}") from exc
        logger.info(f"Deleted s3://{self.bucket}/{key}")

    def configure_cors(self, origins: Optional[List[str]] = None) -> None:
        """Allow browsers on ``origins`` to PUT/GET objects through presigned URLs."""
        rules = {
            "CORSRules": [
                {
                    "AllowedOrigins": list(origins or self.settings.cors_origins),
                    "AllowedMethods": ["PUT", "GET", "HEAD", "DELETE", "POST"],
                    "AllowedHeaders": ["*"],
                    "ExposeHeaders": ["Content-Type", "Content-Disposition"],
                    "MaxAgeSeconds": self.settings.cors_max_age,
                }
            ]
        }
        try:
            self._client.put_bucket_cors(Bucket=self.bucket, CORSConfiguration=rules)
        except (ClientError, BotoCoreError) as exc:
            raise StorageError(f"Failed to configure CORS for {self.bucket}: {exc}") from exc
        logger.info(f"Configured CORS for bucket {self.bucket}")

    def _head(self, key: str) -> dict:
        try:
            return self._client.head_object(Bucket=self.bucket, Key=key)
        except ClientError as exc:
            if _is_missing(exc):
                raise NotFoundError(key) from exc
            raise StorageError(f"S3 head_object failed for {key}: {exc}") from exc
        except BotoCoreError as exc:
            raise StorageError(f"S3 head_object failed for {key}: {exc}") from exc

    def _presign(self, operation: str, params: dict, ttl: int) -> str:
        try:
            return self._client.generate_presigned_url(operation, Params=params, ExpiresIn=ttl)
        except (ClientError, BotoCoreError) as exc:
            raise StorageError(f"Failed to generate presigned URL for {params['Key']}: {exc}") from exc
