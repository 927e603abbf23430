"""
Language model client.

Supports an OpenAI-compatible chat completions endpoint and the Gemini
``generateContent`` endpoint, selected by ``LLM_PROVIDER``. Both accept image
URLs alongside the prompt so the same client serves frame analysis.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence

import httpx
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_incrementing

from common.config import settings
from common.http import http_client
from common.logging import get_logger

from ..errors import ModelCallFailed

LOGGER = get_logger(__name__)

PROVIDER_OPENAI = "openai"
PROVIDER_GEMINI = "gemini"

# A 200 with a non-JSON or unexpected body counts as a failed attempt.
RETRYABLE_ERRORS = (httpx.HTTPError, ValueError, KeyError, IndexError, TypeError)


class LLMClient:
    def __init__(
        self,
        provider: Optional[str] = None,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
        max_attempts: Optional[int] = None,
        backoff_seconds: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.provider = (provider or settings.llm_provider).lower()
        if self.provider not in (PROVIDER_OPENAI, PROVIDER_GEMINI):
            raise ValueError(f"Unsupported LLM provider: {self.provider}")
        self.base_url = (base_url or settings.llm_base_url).rstrip("/")
        self.api_key = api_key or settings.llm_api_key
        self.model = model or settings.llm_model
        self.timeout = timeout or settings.llm_timeout_seconds
        self.max_attempts = max_attempts or settings.extraction_max_attempts
        self.backoff_seconds = (
            settings.extraction_backoff_seconds if backoff_seconds is None else backoff_seconds
        )
        self._transport = transport

    def _openai_request(
        self, prompt: str, system_prompt: Optional[str], images: Sequence[str], model: str
    ) -> Dict[str, Any]:
        content: Any = prompt
        if images:
            content = [{"type": "text", "text": prompt}] + [
                {"type": "image_url", "image_url": {"url": url}} for url in images
            ]
        messages: List[Dict[str, Any]] = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": content})
        return {
            "model": model,
            "messages": messages,
            "temperature": 0.1,
            "response_format": {"type": "json_object"},
        }

    def _gemini_request(
        self, prompt: str, system_prompt: Optional[str], images: Sequence[str]
    ) -> Dict[str, Any]:
        parts: List[Dict[str, Any]] = [{"text": prompt}]
        for url in images:
            parts.append({"file_data": {"mime_type": "image/webp", "file_uri": url}})
        payload: Dict[str, Any] = {
            "contents": [{"role": "user", "parts": parts}],
            "generationConfig": {"temperature": 0.1, "responseMimeType": "application/json"},
        }
        if system_prompt:
            payload["systemInstruction"] = {"parts": [{"text": system_prompt}]}
        return payload

    async def _call(
        self, prompt: str, system_prompt: Optional[str], images: Sequence[str], model: str
    ) -> str:
        if self.provider == PROVIDER_GEMINI:
            async with http_client(
                base_url=self.base_url, timeout=self.timeout, transport=self._transport
            ) as client:
                response = await client.post(
                    f"/v1beta/models/{model}:generateContent",
                    params={"key": self.api_key},
                    json=self._gemini_request(prompt, system_prompt, images),
                )
                response.raise_for_status()
                candidates = response.json().get("candidates") or []
                if not candidates:
                    return ""
                parts = (candidates[0].get("content") or {}).get("parts") or []
                return "".join(part.get("text", "") for part in parts).strip()

        async with http_client(
            base_url=self.base_url,
            bearer_token=self.api_key,
            timeout=self.timeout,
            transport=self._transport,
        ) as client:
            response = await client.post(
                "/v1/chat/completions", json=self._openai_request(prompt, system_prompt, images, model)
            )
            response.raise_for_status()
            data = response.json()
            return (data["choices"][0]["message"].get("content") or "").strip()

    async def complete(
        self,
        prompt: str,
        *,
        system_prompt: Optional[str] = None,
        images: Sequence[str] = (),
        model: Optional[str] = None,
    ) -> str:
        """
        Return the raw text of the model response.

        Raises:
            ModelCallFailed: when every attempt fails or the client has no API key.
        """
        if not self.api_key:
            raise ModelCallFailed("Language model API key is not configured", attempts=0)

        model_name = model or self.model
        attempts = 0
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.max_attempts),
                wait=wait_incrementing(start=self.backoff_seconds, increment=self.backoff_seconds),
                retry=retry_if_exception_type(RETRYABLE_ERRORS),
                reraise=True,
            ):
                with attempt:
                    attempts = attempt.retry_state.attempt_number
                    text = await self._call(prompt, system_prompt, images, model_name)
        except RETRYABLE_ERRORS as exc:
            LOGGER.error("model call failed", provider=self.provider, model=model_name, attempts=attempts, error=str(exc))
            raise ModelCallFailed(f"Model call failed after {attempts} attempts: {exc}", attempts=attempts) from exc

        LOGGER.debug("model call completed", provider=self.provider, model=model_name, chars=len(text))
        return text


__all__ = ["LLMClient", "PROVIDER_GEMINI", "PROVIDER_OPENAI"]
