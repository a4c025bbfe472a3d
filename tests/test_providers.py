import asyncio
import json

import httpx
import pytest

from caption_server.backend.runtime.config import ProviderRuntimeConfig
from caption_server.backend.runtime.runtime import build_translation_provider
from caption_server.config.languages import SupportedLanguages
from caption_server.errors import ErrorCode, TranscriptionError, TranslationError
from caption_server.providers import get_stt_backend, get_translation_backend
from caption_server.providers.libretranslate import LibreTranslateProvider
from caption_server.providers.openai_stt import OpenAISTTProvider
from caption_server.providers.openai_translation import OpenAITranslationProvider
from conftest import pcm_seconds

OPENAI_URL = "https://api.openai.com/v1"


def _client(handler, base_url=OPENAI_URL):
    """Helper for an AsyncClient that routes requests to ``handler``."""
    return httpx.AsyncClient(base_url=base_url, transport=httpx.MockTransport(handler))


def test_openai_stt_uploads_wav_with_language():
    """Test batches are sent as multipart WAV with the session language."""
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["body"] = request.read()
        return httpx.Response(200, json={"text": "  hello world  "})

    provider = OpenAISTTProvider("sk-test", client=_client(handler))
    result = asyncio.run(provider.transcribe(pcm_seconds(0.1), 16000, "ja"))

    assert result.text == "hello world"
    assert result.latency_ms >= 0
    assert seen["path"] == "/v1/audio/transcriptions"
    assert b"RIFF" in seen["body"]
    assert b'name="language"' in seen["body"]
    assert b"whisper-1" in seen["body"]


def test_openai_stt_omits_language_for_auto_detect():
    """Test auto-detect requests leave the language field out."""
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["body"] = request.read()
        return httpx.Response(200, json={"text": "bonjour"})

    provider = OpenAISTTProvider("sk-test", client=_client(handler))
    asyncio.run(provider.transcribe(pcm_seconds(0.1), 16000, "auto"))

    assert b'name="language"' not in seen["body"]


def test_openai_stt_error_status_raises_transcription_error():
    """Test upstream failures surface the provider's message."""

    def handler(_request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, json={"error": {"message": "server exploded"}})

    provider = OpenAISTTProvider("sk-test", client=_client(handler))
    with pytest.raises(TranscriptionError) as excinfo:
        asyncio.run(provider.transcribe(pcm_seconds(0.1), 16000, "en"))

    assert excinfo.value.code == ErrorCode.TRANSCRIPTION_FAILED
    assert excinfo.value.detail == "STT failed: server exploded"


def test_openai_stt_network_error_raises_transcription_error():
    """Test transport errors are wrapped, not leaked."""

    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    provider = OpenAISTTProvider("sk-test", client=_client(handler))
    with pytest.raises(TranscriptionError):
        asyncio.run(provider.transcribe(pcm_seconds(0.1), 16000, "en"))


def test_openai_providers_require_api_key():
    """Test missing credentials fail at construction."""
    with pytest.raises(TranscriptionError) as stt_exc:
        OpenAISTTProvider(None)
    with pytest.raises(TranslationError) as translation_exc:
        OpenAITranslationProvider("", language_name=str)
    assert stt_exc.value.code == ErrorCode.PROVIDER_NOT_CONFIGURED
    assert translation_exc.value.code == ErrorCode.PROVIDER_NOT_CONFIGURED


def test_openai_translation_prompt_names_target_language():
    """Test the chat request asks for the target language by display name."""
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.read())
        return httpx.Response(
            200, json={"choices": [{"message": {"content": " hola mundo "}}]}
        )

    languages = SupportedLanguages()
    provider = OpenAITranslationProvider(
        "sk-test", language_name=languages.get_name, client=_client(handler)
    )
    result = asyncio.run(provider.translate("conn-1", "hello world", "en", "es"))

    assert result.translated == "hola mundo"
    assert seen["path"] == "/v1/chat/completions"
    assert seen["body"]["model"] == "gpt-4o"
    system, user = seen["body"]["messages"]
    assert "Spanish" in system["content"]
    assert user == {"role": "user", "content": "hello world"}


def test_openai_translation_malformed_reply():
    """Test a reply without choices is a translation error."""

    def handler(_request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"choices": []})

    provider = OpenAITranslationProvider(
        "sk-test", language_name=lambda _code: "", client=_client(handler)
    )
    with pytest.raises(TranslationError) as excinfo:
        asyncio.run(provider.translate("conn-1", "hi", "en", "fr"))
    assert excinfo.value.detail == "Translation failed: invalid response"


def test_libretranslate_payload_and_result():
    """Test the LibreTranslate request shape and api key forwarding."""
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.read())
        return httpx.Response(200, json={"translatedText": "bonjour"})

    provider = LibreTranslateProvider(
        api_key="libre-key",
        client=_client(handler, base_url="http://localhost:5000"),
    )
    result = asyncio.run(provider.translate("conn-1", "hello", "en", "fr"))

    assert result.translated == "bonjour"
    assert seen["path"] == "/translate"
    assert seen["body"] == {
        "q": "hello",
        "source": "en",
        "target": "fr",
        "format": "text",
        "api_key": "libre-key",
    }


@pytest.mark.parametrize(
    "status,body,detail",
    [
        (200, {"translatedText": ""}, "Translation failed: empty response"),
        (429, {"error": "Too many requests"}, "Translation failed: Too many requests"),
    ],
)
def test_libretranslate_failures(status, body, detail):
    """Test empty and rate-limited replies raise TranslationError."""

    def handler(_request: httpx.Request) -> httpx.Response:
        return httpx.Response(status, json=body)

    provider = LibreTranslateProvider(
        client=_client(handler, base_url="http://localhost:5000")
    )
    with pytest.raises(TranslationError) as excinfo:
        asyncio.run(provider.translate("conn-1", "hello", "en", "fr"))
    assert excinfo.value.detail == detail


def test_backend_registry():
    """Test backend names resolve to provider classes."""
    assert get_stt_backend("openai") is OpenAISTTProvider
    assert get_translation_backend("openai") is OpenAITranslationProvider
    assert get_translation_backend("LibreTranslate") is LibreTranslateProvider
    with pytest.raises(ValueError):
        get_stt_backend("vosk")
    with pytest.raises(ValueError):
        get_translation_backend("deepl")


@pytest.mark.parametrize("backend", ["none", "off", "disabled", ""])
def test_translation_can_be_disabled(backend):
    """Test disabled translation backends build no provider."""
    config = ProviderRuntimeConfig(translation_backend=backend)
    assert build_translation_provider(config, SupportedLanguages()) is None


def test_libretranslate_is_built_from_runtime_config():
    """Test LibreTranslate needs no OpenAI credentials."""
    config = ProviderRuntimeConfig(
        translation_backend="libretranslate",
        libretranslate_url="http://translator:5000/",
    )
    provider = build_translation_provider(config, SupportedLanguages())
    assert isinstance(provider, LibreTranslateProvider)
    asyncio.run(provider.close())
