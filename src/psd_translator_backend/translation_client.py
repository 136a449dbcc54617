"""DeepL text translation client: one string per call, no internal retries."""

from __future__ import annotations

import logging

import httpx

from .configuration import TranslationSettings
from .errors import ConfigurationError, TranslationError

logger = logging.getLogger(__name__)


class TranslationClient:
    def __init__(self, settings: TranslationSettings, http: httpx.Client) -> None:
        self.settings = settings
        self._http = http

    def translate(self, text: str, target_lang: str) -> str:
        """
        Translate a single string.

        Args:
            text: Source text; empty strings are sent as-is
            target_lang: Target language code (e.g. "FR", "JA")

        Returns:
            The translated text, or ``text`` when the response carries none

        Raises:
            TranslationError: On transport failures or non-2xx responses
        """
        if not self.settings.api_key:
            raise ConfigurationError("DEEPL_API_KEY not configured")

        try:
            response = self._http.post(
                self.settings.endpoint,
                headers={"Authorization": f"DeepL-Auth-Key {self.settings.api_key}"},
                json={"text": [text], "target_lang": target_lang},
                timeout=self.settings.timeout,
            )
        except httpx.HTTPError as exc:
            raise TranslationError(f"Failed to translate text: {exc}") from exc

        if response.is_error:
            raise TranslationError(f"Failed to translate text: {response.text}", status=response.status_code)

        try:
            translations = response.json().get("translations") or []
        except (ValueError, AttributeError) as exc:
            raise TranslationError("Translation response was not a JSON object") from exc

        if translations and isinstance(translations[0], dict) and translations[0].get("text"):
            return translations[0]["text"]
        return text
