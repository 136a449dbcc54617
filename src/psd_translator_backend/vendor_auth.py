"""
OAuth2 client-credentials exchange against the vendor identity service.

Tokens are not cached: the orchestrator fetches a fresh one for every job
and reuses it only within that job.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

import httpx

from .configuration import VendorSettings
from .errors import AuthError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AccessToken:
    access_token: str
    token_type: str = "bearer"
    expires_in: Optional[int] = None


class VendorAuthClient:
    def __init__(self, settings: VendorSettings, http: httpx.Client) -> None:
        self.settings = settings
        self._http = http

    def get_access_token(self) -> AccessToken:
        if not self.settings.client_id or not self.settings.client_secret:
            raise AuthError("Vendor API credentials (ADOBE_CLIENT_ID and ADOBE_CLIENT_SECRET) are required")

        form = {
            "grant_type": "client_credentials",
            "client_id": self.settings.client_id,
            "client_secret": self.settings.client_secret,
            "scope": ",".join(self.settings.scopes),
        }
        try:
            response = self._http.post(self.settings.token_url, data=form, timeout=self.settings.auth_timeout)
        except httpx.HTTPError as exc:
            raise AuthError(f"Failed to get access token: {exc}") from exc

        if response.is_error:
            raise AuthError(f"Failed to get access token: {response.status_code} - {response.text}")

        try:
            payload = response.json()
        except ValueError as exc:
            raise AuthError("Token endpoint returned invalid JSON") from exc

        token = payload.get("access_token") if isinstance(payload, dict) else None
        if not token:
            raise AuthError("Token endpoint response did not include an access_token")

        logger.info("Obtained vendor access token")
        return AccessToken(
            access_token=token,
            token_type=payload.get("token_type", "bearer"),
            expires_in=payload.get("expires_in"),
        )
