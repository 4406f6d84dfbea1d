"""Thin async client for the Gemini generateContent endpoint."""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx

from recruitmatch.errors import ConfigurationError, LLMRequestError, LLMTimeoutError
from recruitmatch.settings import Settings

logger = logging.getLogger(__name__)

RESPONSE_MIME_JSON = "application/json"


@dataclass(frozen=True)
class LLMResponse:
    """Raw HTTP outcome of one generateContent call."""
    status_code: int
    text: str

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    @property
    def rate_limited(self) -> bool:
        return self.status_code == 429

    def json(self) -> Any:
        return json.loads(self.text)


def generation_config(
    temperature: float,
    max_output_tokens: int,
    response_mime_type: Optional[str] = None,
    **extra: Any,
) -> Dict[str, Any]:
    """Build the ``generationConfig`` block of a request body."""
    config: Dict[str, Any] = {
        "temperature": temperature,
        "maxOutputTokens": max_output_tokens,
    }
    if response_mime_type:
        config["responseMimeType"] = response_mime_type
    config.update(extra)
    return config


def extract_model_text(envelope: Any) -> Optional[str]:
    """Return ``candidates[0].content.parts[0].text`` or None if the envelope lacks it."""
    try:
        text = envelope["candidates"][0]["content"]["parts"][0]["text"]
    except (KeyError, IndexError, TypeError):
        return None
    return text if isinstance(text, str) else None


class GeminiClient:
    """
    Issues exactly one HTTP request per ``generate`` call.

    Retrying, parsing model JSON and deciding what a failure means are left
    to the caller.
    """

    def __init__(self, settings: Settings, http_client: Optional[httpx.AsyncClient] = None):
        if not settings.gemini_api_key:
            raise ConfigurationError("GEMINI_API_KEY not configured")
        self._api_key = settings.gemini_api_key
        self._api_base = settings.gemini_api_base.rstrip("/")
        self._default_model = settings.gemini_match_model
        self._http = http_client or httpx.AsyncClient()
        self._owns_http = http_client is None

    def endpoint(self, model: Optional[str] = None) -> str:
        return f"{self._api_base}/models/{model or self._default_model}:generateContent"

    async def generate(
        self,
        parts: List[Dict[str, Any]],
        config: Dict[str, Any],
        *,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
        safety_settings: Optional[List[Dict[str, str]]] = None,
    ) -> LLMResponse:
        """
        POST one ``generateContent`` request.

        Args:
            parts: Content parts (``{"text": ...}`` or ``{"inline_data": ...}``)
            config: ``generationConfig`` block
            model: Override the default model
            timeout: Wall-clock budget in seconds; None waits indefinitely
            safety_settings: Optional ``safetySettings`` block

        Returns:
            LLMResponse with the status code and raw body text

        Raises:
            LLMTimeoutError: the request exceeded ``timeout``
            LLMRequestError: any other transport failure
        """
        body: Dict[str, Any] = {
            "contents": [{"parts": parts}],
            "generationConfig": config,
        }
        if safety_settings:
            body["safetySettings"] = safety_settings

        try:
            response = await self._http.post(
                self.endpoint(model),
                params={"key": self._api_key},
                json=body,
                headers={"Content-Type": "application/json"},
                timeout=timeout,
            )
        except httpx.TimeoutException as exc:
            logger.warning("Gemini request timed out after %ss", timeout)
            raise LLMTimeoutError(timeout) from exc
        except httpx.HTTPError as exc:
            logger.warning("Gemini request failed: %s", exc)
            raise LLMRequestError(f"Gemini request failed: {exc}") from exc

        if response.status_code >= 400:
            logger.error("Gemini API error %s: %s", response.status_code, response.text[:500])
        return LLMResponse(status_code=response.status_code, text=response.text)

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()
