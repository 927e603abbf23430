"""Unit tests for the external service adapters."""

from __future__ import annotations

import base64
import json

import httpx
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from jose import jwt

from inventory.adapters.llm import LLMClient
from inventory.adapters.mux import AUDIENCE_THUMBNAIL, MuxClient
from inventory.adapters.transcription import (
    TranscriptionClient,
    extract_paragraph_text,
    extract_plain_text,
    extract_words,
)
from inventory.adapters.vision import VisionAdapter, parse_detections
from inventory.errors import ModelCallFailed, TranscriptionFailed, VideoHostError


@pytest.fixture(scope="module")
def rsa_keys():
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    private_pem = key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    ).decode()
    public_pem = key.public_key().public_bytes(
        serialization.Encoding.PEM,
        serialization.PublicFormat.SubjectPublicKeyInfo,
    ).decode()
    return private_pem, public_pem


DEEPGRAM_RESULT = {
    "results": {
        "channels": [
            {
                "alternatives": [
                    {
                        "transcript": "this is my couch it cost about six hundred dollars",
                        "paragraphs": {"transcript": "\nThis is my couch. It cost about $600.\n"},
                        "words": [
                            {"word": "this", "punctuated_word": "This", "start": 0.5, "end": 0.7},
                            {"word": "couch", "start": 1.1, "end": 1.5},
                            {"word": "stray"},
                        ],
                    }
                ]
            }
        ]
    }
}


class TestMuxClient:
    """Video host client."""

    @pytest.mark.asyncio
    async def test_get_asset_uses_basic_auth(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["auth"] = request.headers["authorization"]
            return httpx.Response(200, json={"data": {"id": "asset-1", "playback_ids": [{"id": "pb-1"}]}})

        client = MuxClient(token_id="tid", token_secret="tsecret", transport=httpx.MockTransport(handler))
        data = await client.get_asset("asset-1")

        assert data["playback_ids"][0]["id"] == "pb-1"
        assert seen["path"] == "/video/v1/assets/asset-1"
        assert seen["auth"] == "Basic " + base64.b64encode(b"tid:tsecret").decode()

    @pytest.mark.asyncio
    async def test_get_asset_errors_are_wrapped(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(404, json={"error": "not found"}))
        client = MuxClient(token_id="tid", token_secret="tsecret", transport=transport)

        with pytest.raises(VideoHostError):
            await client.get_asset("missing")

    @pytest.mark.asyncio
    async def test_get_asset_requires_credentials(self):
        client = MuxClient(token_id="tid", token_secret="tsecret")
        client.token_secret = None

        with pytest.raises(VideoHostError):
            await client.get_asset("asset-1")

    @pytest.mark.asyncio
    async def test_create_upload_sends_correlation_and_audio_rendition(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["method"] = request.method
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            return httpx.Response(201, json={"data": {"id": "up-1", "url": "https://upload.example.com/up-1"}})

        client = MuxClient(token_id="tid", token_secret="tsecret", transport=httpx.MockTransport(handler))
        upload = await client.create_upload("corr-1")

        assert upload == {
            "upload_id": "up-1",
            "upload_url": "https://upload.example.com/up-1",
            "correlation_id": "corr-1",
        }
        assert (seen["method"], seen["path"]) == ("POST", "/video/v1/uploads")
        settings_block = seen["body"]["new_asset_settings"]
        assert settings_block["passthrough"] == "corr-1"
        assert settings_block["metadata"] == {"correlation_id": "corr-1"}
        assert settings_block["static_renditions"] == [{"resolution": "audio-only"}]

    @pytest.mark.asyncio
    async def test_create_upload_generates_correlation_id(self):
        transport = httpx.MockTransport(
            lambda request: httpx.Response(201, json={"data": {"id": "up-2", "url": "https://u/2"}})
        )
        client = MuxClient(token_id="tid", token_secret="tsecret", transport=transport)

        upload = await client.create_upload()

        assert upload["correlation_id"].startswith("upload_")

    @pytest.mark.asyncio
    async def test_create_upload_incomplete_response_is_wrapped(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(201, json={"data": {"id": "up-3"}}))
        client = MuxClient(token_id="tid", token_secret="tsecret", transport=transport)

        with pytest.raises(VideoHostError):
            await client.create_upload("corr-3")

    @pytest.mark.asyncio
    async def test_check_credentials_lists_one_asset(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["params"] = dict(request.url.params)
            return httpx.Response(200, json={"data": [{"id": "asset-1"}]})

        client = MuxClient(token_id="tid", token_secret="tsecret", transport=httpx.MockTransport(handler))

        assert await client.check_credentials() == 1
        assert seen["params"] == {"limit": "1"}

    @pytest.mark.asyncio
    async def test_check_credentials_rejected(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(401, json={"error": "unauthorized"}))
        client = MuxClient(token_id="tid", token_secret="wrong", transport=transport)

        with pytest.raises(VideoHostError):
            await client.check_credentials()

    def test_playback_token_claims(self, rsa_keys):
        private_pem, public_pem = rsa_keys
        client = MuxClient(
            signing_key_id="key-1",
            signing_private_key=base64.b64encode(private_pem.encode()).decode(),
            token_ttl_seconds=600,
        )

        token = client.playback_token("pb-1", AUDIENCE_THUMBNAIL, now=1_700_000_000)

        assert jwt.get_unverified_header(token)["kid"] == "key-1"
        claims = jwt.decode(
            token, public_pem, algorithms=["RS256"], audience="t", options={"verify_exp": False}
        )
        assert claims["sub"] == "pb-1"
        assert claims["exp"] == 1_700_000_600
        assert claims["kid"] == "key-1"

    def test_signed_urls_carry_token(self, rsa_keys):
        private_pem, _ = rsa_keys
        client = MuxClient(
            signing_key_id="key-1",
            signing_private_key=private_pem,
            stream_base="https://stream.example.com",
            image_base="https://image.example.com",
        )

        audio = httpx.URL(client.static_rendition_url("pb-1", "audio.m4a"))
        thumb = httpx.URL(client.thumbnail_url("pb-1", 12.34, width=640))

        assert audio.path == "/pb-1/audio.m4a"
        assert "token" in audio.params
        assert thumb.path == "/pb-1/thumbnail.webp"
        assert thumb.params["time"] == "12.3"
        assert thumb.params["width"] == "640"
        assert "token" in thumb.params

    def test_unsigned_urls_without_keys(self):
        client = MuxClient(stream_base="https://stream.example.com", image_base="https://image.example.com")
        client.signing_key_id = None

        assert client.stream_url("pb-1") == "https://stream.example.com/pb-1.m3u8"
        assert client.thumbnail_url("pb-1", signed=False) == "https://image.example.com/pb-1/thumbnail.webp"
        with pytest.raises(VideoHostError):
            client.playback_token("pb-1")


class TestTranscriptionClient:
    @pytest.mark.asyncio
    async def test_transcribe_sends_url_and_options(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["auth"] = request.headers["authorization"]
            seen["params"] = dict(request.url.params)
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json=DEEPGRAM_RESULT)

        client = TranscriptionClient(api_key="dg-key", transport=httpx.MockTransport(handler))
        result = await client.transcribe("https://stream.example.com/pb-1/audio.m4a")

        assert result == DEEPGRAM_RESULT
        assert seen["auth"] == "Token dg-key"
        assert seen["body"] == {"url": "https://stream.example.com/pb-1/audio.m4a"}
        assert seen["params"]["smart_format"] == "true"
        assert seen["params"]["paragraphs"] == "true"

    @pytest.mark.asyncio
    async def test_transcribe_retries_then_fails(self):
        calls = {"count": 0}

        def handler(request: httpx.Request) -> httpx.Response:
            calls["count"] += 1
            return httpx.Response(503)

        client = TranscriptionClient(
            api_key="dg-key", max_attempts=3, backoff_seconds=0, transport=httpx.MockTransport(handler)
        )

        with pytest.raises(TranscriptionFailed) as excinfo:
            await client.transcribe("https://example.com/a.m4a")

        assert calls["count"] == 3
        assert excinfo.value.attempts == 3

    @pytest.mark.asyncio
    async def test_transcribe_recovers_after_transient_error(self):
        responses = iter([httpx.Response(502), httpx.Response(200, json=DEEPGRAM_RESULT)])
        client = TranscriptionClient(
            api_key="dg-key",
            max_attempts=2,
            backoff_seconds=0,
            transport=httpx.MockTransport(lambda request: next(responses)),
        )

        assert await client.transcribe("https://example.com/a.m4a") == DEEPGRAM_RESULT

    @pytest.mark.asyncio
    async def test_non_json_body_is_retried_then_wrapped(self):
        calls = {"count": 0}

        def handler(request: httpx.Request) -> httpx.Response:
            calls["count"] += 1
            return httpx.Response(200, text="<html>gateway hiccup</html>")

        client = TranscriptionClient(
            api_key="dg-key", max_attempts=2, backoff_seconds=0, transport=httpx.MockTransport(handler)
        )

        with pytest.raises(TranscriptionFailed) as excinfo:
            await client.transcribe("https://example.com/a.m4a")

        assert calls["count"] == 2
        assert excinfo.value.attempts == 2

    @pytest.mark.asyncio
    async def test_missing_api_key(self):
        client = TranscriptionClient(api_key="dg-key")
        client.api_key = None

        with pytest.raises(TranscriptionFailed) as excinfo:
            await client.transcribe("https://example.com/a.m4a")
        assert excinfo.value.attempts == 0

    def test_result_helpers(self):
        assert extract_plain_text(DEEPGRAM_RESULT).startswith("this is my couch")
        assert extract_paragraph_text(DEEPGRAM_RESULT) == "This is my couch. It cost about $600."
        assert extract_words(DEEPGRAM_RESULT) == [
            {"word": "This", "start": 0.5, "end": 0.7},
            {"word": "couch", "start": 1.1, "end": 1.5},
        ]
        assert extract_plain_text({}) == ""


class TestLLMClient:
    @pytest.mark.asyncio
    async def test_openai_request_shape(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["auth"] = request.headers["authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"choices": [{"message": {"content": ' {"items": []} '}}]})

        client = LLMClient(
            provider="openai",
            base_url="https://llm.example.com",
            api_key="sk-test",
            model="gpt-test",
            transport=httpx.MockTransport(handler),
        )
        text = await client.complete("list items", system_prompt="be terse", images=["https://img/1.webp"])

        assert text == '{"items": []}'
        assert seen["path"] == "/v1/chat/completions"
        assert seen["auth"] == "Bearer sk-test"
        messages = seen["body"]["messages"]
        assert messages[0] == {"role": "system", "content": "be terse"}
        assert messages[1]["content"][1] == {"type": "image_url", "image_url": {"url": "https://img/1.webp"}}
        assert seen["body"]["response_format"] == {"type": "json_object"}

    @pytest.mark.asyncio
    async def test_gemini_request_shape(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["key"] = request.url.params["key"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(
                200, json={"candidates": [{"content": {"parts": [{"text": '{"items": '}, {"text": "[]}"}]}}]}
            )

        client = LLMClient(
            provider="gemini",
            base_url="https://gemini.example.com",
            api_key="g-key",
            model="gemini-test",
            transport=httpx.MockTransport(handler),
        )
        text = await client.complete("list items", system_prompt="be terse")

        assert text == '{"items": []}'
        assert seen["path"] == "/v1beta/models/gemini-test:generateContent"
        assert seen["key"] == "g-key"
        assert seen["body"]["systemInstruction"] == {"parts": [{"text": "be terse"}]}

    @pytest.mark.asyncio
    async def test_malformed_response_raises_model_call_failed(self):
        client = LLMClient(
            provider="openai",
            base_url="https://llm.example.com",
            api_key="sk-test",
            max_attempts=2,
            backoff_seconds=0,
            transport=httpx.MockTransport(lambda request: httpx.Response(200, json={"choices": []})),
        )

        with pytest.raises(ModelCallFailed) as excinfo:
            await client.complete("list items")
        assert excinfo.value.attempts == 2

    @pytest.mark.asyncio
    async def test_non_json_body_raises_model_call_failed(self):
        calls = {"count": 0}

        def handler(request: httpx.Request) -> httpx.Response:
            calls["count"] += 1
            return httpx.Response(200, text="upstream returned an html error page")

        client = LLMClient(
            provider="openai",
            base_url="https://llm.example.com",
            api_key="sk-test",
            max_attempts=2,
            backoff_seconds=0,
            transport=httpx.MockTransport(handler),
        )

        with pytest.raises(ModelCallFailed) as excinfo:
            await client.complete("list items")
        assert calls["count"] == 2
        assert excinfo.value.attempts == 2

    def test_unknown_provider_rejected(self):
        with pytest.raises(ValueError):
            LLMClient(provider="carrier-pigeon", api_key="x")


class TestVision:
    def test_parse_detections_valid(self):
        detections = parse_detections('```json\n{"items": [{"name": "Desk Lamp", "estimated_value": 40}]}\n```')
        assert [(d.name, d.estimated_value) for d in detections] == [("Desk Lamp", 40)]

    def test_parse_detections_keeps_named_entries(self):
        raw = '[{"name": "Bookshelf", "estimated_value": "$120"}, {"name": ""}, {"description": "blurry"},]'
        detections = parse_detections(raw)
        assert [(d.name, d.estimated_value) for d in detections] == [("Bookshelf", 120.0)]

    def test_parse_detections_without_json(self):
        assert parse_detections("nothing to see here") == []

    @pytest.mark.asyncio
    async def test_analyze_frame_sends_image(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["body"] = json.loads(request.content)
            return httpx.Response(
                200, json={"choices": [{"message": {"content": '{"items": [{"name": "Armchair"}]}'}}]}
            )

        llm = LLMClient(
            provider="openai",
            base_url="https://llm.example.com",
            api_key="sk-test",
            model="gpt-test",
            transport=httpx.MockTransport(handler),
        )
        detections = await VisionAdapter(llm, model="vision-test").analyze_frame("https://img/frame.webp")

        assert [d.name for d in detections] == ["Armchair"]
        assert seen["body"]["model"] == "vision-test"
        assert seen["body"]["messages"][-1]["content"][1]["image_url"]["url"] == "https://img/frame.webp"
