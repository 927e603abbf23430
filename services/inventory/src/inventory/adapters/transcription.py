"""
Speech-to-text adapter (Deepgram pre-recorded API).

The service fetches the audio itself from the signed rendition URL, so
requests carry only the URL. Calls are retried a fixed number of times with
linear backoff before surfacing :class:`TranscriptionFailed`.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

import httpx
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_incrementing

from common.config import settings
from common.http import http_client
from common.logging import get_logger

from ..errors import TranscriptionFailed

LOGGER = get_logger(__name__)

RETRYABLE_ERRORS = (httpx.HTTPError, ValueError)


class TranscriptionClient:
    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        model: Optional[str] = None,
        language: Optional[str] = None,
        max_attempts: Optional[int] = None,
        backoff_seconds: Optional[float] = None,
        timeout: float = 300.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.api_key = api_key or settings.deepgram_api_key
        self.base_url = (base_url or settings.deepgram_api_base).rstrip("/")
        self.model = model or settings.deepgram_model
        self.language = language or settings.deepgram_language
        self.max_attempts = max_attempts or settings.extraction_max_attempts
        self.backoff_seconds = (
            settings.extraction_backoff_seconds if backoff_seconds is None else backoff_seconds
        )
        self.timeout = timeout
        self._transport = transport

    def _params(self) -> Dict[str, str]:
        return {
            "model": self.model,
            "language": self.language,
            "smart_format": "true",
            "punctuate": "true",
            "paragraphs": "true",
            "utterances": "true",
            "diarize": "true",
        }

    async def _request(self, audio_url: str) -> Dict[str, Any]:
        async with http_client(
            base_url=self.base_url,
            token_auth=self.api_key,
            timeout=self.timeout,
            transport=self._transport,
        ) as client:
            response = await client.post("/v1/listen", params=self._params(), json={"url": audio_url})
            response.raise_for_status()
            return response.json()

    async def transcribe(self, audio_url: str) -> Dict[str, Any]:
        """Transcribe the audio at ``audio_url`` and return the raw result."""

        if not self.api_key:
            raise TranscriptionFailed("Transcription API key is not configured", attempts=0)

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
                    if attempts > 1:
                        LOGGER.info("retrying transcription", attempt=attempts)
                    result = await self._request(audio_url)
        except RETRYABLE_ERRORS as exc:
            LOGGER.error("transcription failed", attempts=attempts, error=str(exc))
            raise TranscriptionFailed(f"Transcription failed after {attempts} attempts: {exc}", attempts=attempts) from exc

        if not extract_plain_text(result):
            LOGGER.warning("transcription returned no speech")
        return result


def _first_alternative(result: Dict[str, Any]) -> Dict[str, Any]:
    channels = (result.get("results") or {}).get("channels") or []
    if not channels:
        return {}
    alternatives = channels[0].get("alternatives") or []
    return alternatives[0] if alternatives else {}


def extract_plain_text(result: Dict[str, Any]) -> str:
    return (_first_alternative(result).get("transcript") or "").strip()


def extract_paragraph_text(result: Dict[str, Any]) -> str:
    """Paragraph-formatted transcript, falling back to the plain transcript."""

    paragraphs = _first_alternative(result).get("paragraphs") or {}
    text = (paragraphs.get("transcript") or "").strip()
    return text or extract_plain_text(result)


def extract_words(result: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Word timings as ``{"word", "start", "end"}`` dicts."""

    words = []
    for word in _first_alternative(result).get("words") or []:
        if "start" not in word:
            continue
        words.append(
            {
                "word": word.get("punctuated_word") or word.get("word", ""),
                "start": float(word["start"]),
                "end": float(word.get("end", word["start"])),
            }
        )
    return words


__all__ = ["TranscriptionClient", "extract_paragraph_text", "extract_plain_text", "extract_words"]
