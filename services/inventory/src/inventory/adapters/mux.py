"""Video host (Mux) REST client and signed playback URLs."""

from __future__ import annotations

import base64
import binascii
import time
from typing import Any, Dict, Optional
from uuid import uuid4

import httpx
from jose import JWTError, jwt

from common.config import settings
from common.http import http_client
from common.logging import get_logger

from ..errors import VideoHostError

LOGGER = get_logger(__name__)

# Token audiences accepted by the playback service.
AUDIENCE_VIDEO = "v"
AUDIENCE_THUMBNAIL = "t"


class MuxClient:
    """Thin wrapper around the video host's asset API and playback URLs."""

    def __init__(
        self,
        token_id: Optional[str] = None,
        token_secret: Optional[str] = None,
        signing_key_id: Optional[str] = None,
        signing_private_key: Optional[str] = None,
        api_base: Optional[str] = None,
        stream_base: Optional[str] = None,
        image_base: Optional[str] = None,
        token_ttl_seconds: Optional[int] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.token_id = token_id or settings.mux_token_id
        self.token_secret = token_secret or settings.mux_token_secret
        self.signing_key_id = signing_key_id or settings.mux_signing_key_id
        self.signing_private_key = signing_private_key or settings.mux_signing_private_key
        self.api_base = (api_base or settings.mux_api_base).rstrip("/")
        self.stream_base = (stream_base or settings.mux_stream_base).rstrip("/")
        self.image_base = (image_base or settings.mux_image_base).rstrip("/")
        self.token_ttl_seconds = token_ttl_seconds or settings.mux_playback_token_ttl_seconds
        self._transport = transport

    @property
    def signing_enabled(self) -> bool:
        return bool(self.signing_key_id and self.signing_private_key)

    async def _api_request(self, method: str, path: str, **kwargs: Any) -> Any:
        if not (self.token_id and self.token_secret):
            raise VideoHostError("Video host API credentials are not configured")

        async with http_client(
            base_url=self.api_base,
            basic_auth=(self.token_id, self.token_secret),
            transport=self._transport,
        ) as client:
            response = await client.request(method, path, **kwargs)
            response.raise_for_status()
            return response.json().get("data")

    async def get_asset(self, asset_id: str) -> Dict[str, Any]:
        """Fetch an asset record; used to recover a missing playback id."""

        try:
            return await self._api_request("GET", f"/video/v1/assets/{asset_id}") or {}
        except (httpx.HTTPError, ValueError, AttributeError) as exc:
            LOGGER.warning("video host asset lookup failed", asset_id=asset_id, error=str(exc))
            raise VideoHostError(f"Failed to fetch asset {asset_id}: {exc}") from exc

    async def create_upload(self, correlation_id: Optional[str] = None) -> Dict[str, str]:
        """Open a direct upload.

        The new asset is tagged with ``correlation_id`` (generated when not
        given) so webhook events can be matched back to the placeholder video
        before the permanent asset id is known.

        Returns:
            ``upload_id``, ``upload_url`` and ``correlation_id``.
        """
        correlation = correlation_id or f"upload_{uuid4().hex}"
        body = {
            "cors_origin": settings.mux_cors_origin,
            "new_asset_settings": {
                "playback_policies": ["signed"],
                "static_renditions": [{"resolution": "audio-only"}],
                "passthrough": correlation,
                "metadata": {"correlation_id": correlation},
            },
        }
        try:
            data = await self._api_request("POST", "/video/v1/uploads", json=body) or {}
            upload_id, upload_url = data["id"], data["url"]
        except (httpx.HTTPError, ValueError, AttributeError, KeyError) as exc:
            LOGGER.error("video host upload creation failed", correlation_id=correlation, error=str(exc))
            raise VideoHostError(f"Failed to create upload: {exc}") from exc

        LOGGER.info("direct upload created", upload_id=upload_id, correlation_id=correlation)
        return {"upload_id": upload_id, "upload_url": upload_url, "correlation_id": correlation}

    async def check_credentials(self) -> int:
        """Make a minimal authenticated call; returns the number of assets listed."""

        try:
            data = await self._api_request("GET", "/video/v1/assets", params={"limit": 1})
        except (httpx.HTTPError, ValueError, AttributeError) as exc:
            raise VideoHostError(f"Video host API check failed: {exc}") from exc
        return len(data or [])

    def _private_key_pem(self) -> str:
        key = self.signing_private_key or ""
        if "BEGIN" in key:
            return key
        try:
            return base64.b64decode(key).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError) as exc:
            raise VideoHostError("Signing private key is not valid base64 PEM") from exc

    def playback_token(
        self,
        playback_id: str,
        audience: str = AUDIENCE_VIDEO,
        *,
        subject_owner: Optional[str] = None,
        now: Optional[int] = None,
    ) -> str:
        """RS256 token authorising playback of ``playback_id`` for ``audience``."""

        if not playback_id:
            raise ValueError("playback_id must not be empty")
        if not self.signing_enabled:
            raise VideoHostError("Playback signing keys are not configured")

        issued = int(now if now is not None else time.time())
        claims: Dict[str, Any] = {
            "sub": playback_id,
            "aud": audience,
            "exp": issued + self.token_ttl_seconds,
            "kid": self.signing_key_id,
        }
        if subject_owner:
            claims["customer_id"] = subject_owner
        try:
            return jwt.encode(
                claims,
                self._private_key_pem(),
                algorithm="RS256",
                headers={"kid": self.signing_key_id},
            )
        except JWTError as exc:
            raise VideoHostError(f"Failed to sign playback token: {exc}") from exc

    def _with_token(self, url: str, playback_id: str, audience: str, signed: bool = True, **params: Any) -> str:
        query = {key: value for key, value in params.items() if value is not None}
        if signed and self.signing_enabled:
            query["token"] = self.playback_token(playback_id, audience)
        if not query:
            return url
        return str(httpx.URL(url, params=query))

    def static_rendition_url(self, playback_id: str, rendition_name: Optional[str] = None) -> str:
        """Downloadable static rendition, e.g. the audio-only track used for transcription."""

        rendition = rendition_name or settings.mux_audio_rendition_name
        return self._with_token(f"{self.stream_base}/{playback_id}/{rendition}", playback_id, AUDIENCE_VIDEO)

    def stream_url(self, playback_id: str) -> str:
        return self._with_token(f"{self.stream_base}/{playback_id}.m3u8", playback_id, AUDIENCE_VIDEO)

    def thumbnail_url(
        self,
        playback_id: str,
        time_seconds: Optional[float] = None,
        width: Optional[int] = None,
        signed: bool = True,
    ) -> str:
        """Frame at ``time_seconds``; the frame sampler feeds these to the vision model."""

        return self._with_token(
            f"{self.image_base}/{playback_id}/thumbnail.webp",
            playback_id,
            AUDIENCE_THUMBNAIL,
            signed,
            time=None if time_seconds is None else round(time_seconds, 1),
            width=width,
        )


__all__ = ["AUDIENCE_THUMBNAIL", "AUDIENCE_VIDEO", "MuxClient"]
