from unittest.mock import AsyncMock, patch

import httpx
import pytest

from conftest import BACKEND_URL, FakeBackend, make_translator, mock_client
from locale_sync.batch_translator import (
    BatchTranslator,
    chunk_phrases,
    normalize_translations,
    _parse_retry_after
)
from locale_sync.errors import MalformedResponseError, TranslationBackendError


class TestNormalizeTranslations:

    def test_list_of_records(self):
        data = [{"translatedText": "Hola"}, {"translatedText": "Adiós"}]
        assert normalize_translations(data, 2) == ["Hola", "Adiós"]

    def test_list_of_strings(self):
        assert normalize_translations(["Hola", "Adiós"], 2) == ["Hola", "Adiós"]

    def test_object_with_list(self):
        assert normalize_translations({"translatedText": ["Hola", "Adiós"]}, 2) == ["Hola", "Adiós"]

    def test_single_string(self):
        assert normalize_translations({"translatedText": "Hola"}, 1) == ["Hola"]
        assert normalize_translations("Hola", 1) == ["Hola"]

    def test_length_mismatch(self):
        with pytest.raises(MalformedResponseError):
            normalize_translations(["Hola"], 2)

    def test_unknown_shape(self):
        with pytest.raises(MalformedResponseError):
            normalize_translations({"error": "boom"}, 1)
        with pytest.raises(MalformedResponseError):
            normalize_translations([{"text": "Hola"}], 1)


def test_chunk_phrases():
    phrases = [str(i) for i in range(60)]
    assert [len(chunk) for chunk in chunk_phrases(phrases, 25)] == [25, 25, 10]
    assert chunk_phrases([], 25) == []
    with pytest.raises(ValueError):
        chunk_phrases(phrases, 0)


def test_parse_retry_after():
    assert _parse_retry_after("2") == 2.0
    assert _parse_retry_after("250ms") == 0.25
    assert _parse_retry_after(None) is None
    assert _parse_retry_after("Wed, 21 Oct 2015 07:28:00 GMT") is None


def test_invalid_settings_are_rejected():
    with pytest.raises(ValueError):
        BatchTranslator(batch_size=0)
    with pytest.raises(ValueError):
        BatchTranslator(max_retries=0)
    with pytest.raises(ValueError):
        BatchTranslator(failure_policy="ignore")


def test_languages_url():
    assert BatchTranslator("http://lt:5000/translate").languages_url == "http://lt:5000/languages"
    assert BatchTranslator("http://lt:5000/").languages_url == "http://lt:5000/languages"


@pytest.mark.asyncio
async def test_sixty_phrases_make_three_aligned_requests():
    backend = FakeBackend()
    phrases = [f"phrase {i}" for i in range(60)]

    async with mock_client(backend) as client:
        translator = make_translator(backend, client, batch_size=25)
        result = await translator.translate_batch(phrases, "en", "es")

    assert [len(q) for q in backend.phrases_sent] == [25, 25, 10]
    assert sum(backend.phrases_sent, []) == phrases
    assert result == [f"es:{p}" for p in phrases]


@pytest.mark.asyncio
async def test_request_payload():
    backend = FakeBackend()
    async with mock_client(backend) as client:
        translator = make_translator(backend, client, api_key="secret")
        await translator.translate_batch(["Hello"], "en", "fr")

    assert backend.requests == [
        {"q": ["Hello"], "source": "en", "target": "fr", "format": "text", "api_key": "secret"}
    ]


@pytest.mark.asyncio
async def test_empty_input_makes_no_request():
    backend = FakeBackend()
    async with mock_client(backend) as client:
        translator = make_translator(backend, client)
        assert await translator.translate_batch([], "en", "es") == []
    assert backend.requests == []


@pytest.mark.asyncio
async def test_transient_failures_are_retried():
    backend = FakeBackend(failures=2)
    async with mock_client(backend) as client:
        translator = make_translator(backend, client, max_retries=5)
        result = await translator.translate_batch(["Hello"], "en", "es")

    assert result == ["es:Hello"]
    assert len(backend.requests) == 3


@pytest.mark.asyncio
async def test_backoff_doubles_from_base_delay():
    backend = FakeBackend(failures=3)
    async with mock_client(backend) as client:
        translator = make_translator(backend, client, max_retries=5, retry_base_delay=0.3)
        with patch("locale_sync.batch_translator.asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
            await translator.translate_batch(["Hello"], "en", "es")

    delays = [call.args[0] for call in mock_sleep.await_args_list]
    assert delays == pytest.approx([0.3, 0.6, 1.2])


@pytest.mark.asyncio
async def test_retry_after_header_overrides_backoff():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        if len(calls) == 1:
            return httpx.Response(429, headers={"Retry-After": "2"})
        return httpx.Response(200, json=["Hola"])

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        translator = BatchTranslator(BACKEND_URL, client=client, retry_base_delay=0.3, pacing_delay=0)
        with patch("locale_sync.batch_translator.asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
            result = await translator.translate_batch(["Hello"], "en", "es")

    assert result == ["Hola"]
    mock_sleep.assert_awaited_once_with(2.0)


@pytest.mark.asyncio
async def test_pacing_delay_only_between_chunks():
    backend = FakeBackend()
    async with mock_client(backend) as client:
        translator = make_translator(backend, client, batch_size=2, pacing_delay=0.12)
        with patch("locale_sync.batch_translator.asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
            await translator.translate_batch(["a", "b", "c", "d", "e"], "en", "es")

    assert len(backend.requests) == 3
    assert [call.args[0] for call in mock_sleep.await_args_list] == [0.12, 0.12]


@pytest.mark.asyncio
async def test_exhausted_retries_raise():
    backend = FakeBackend(failures=10)
    async with mock_client(backend) as client:
        translator = make_translator(backend, client, max_retries=3)
        with pytest.raises(TranslationBackendError) as exc_info:
            await translator.translate_batch(["Hello"], "en", "es")

    assert len(backend.requests) == 3
    assert "after 3 attempts" in str(exc_info.value)


@pytest.mark.asyncio
async def test_client_error_is_not_retried():
    backend = FakeBackend(failures=1, failure_status=400)
    async with mock_client(backend) as client:
        translator = make_translator(backend, client, max_retries=5)
        with pytest.raises(TranslationBackendError) as exc_info:
            await translator.translate_batch(["Hello"], "en", "es")

    assert exc_info.value.status_code == 400
    assert len(backend.requests) == 1


@pytest.mark.asyncio
async def test_transport_errors_are_retried():
    attempts = []

    def handler(request: httpx.Request) -> httpx.Response:
        attempts.append(request)
        if len(attempts) < 3:
            raise httpx.ConnectError("connection refused", request=request)
        return httpx.Response(200, json={"translatedText": ["Hola"]})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        translator = BatchTranslator(BACKEND_URL, client=client, retry_base_delay=0, pacing_delay=0)
        assert await translator.translate_batch(["Hello"], "en", "es") == ["Hola"]
    assert len(attempts) == 3


@pytest.mark.asyncio
async def test_malformed_response_is_retried():
    responses = [httpx.Response(200, text="<html>oops</html>"), httpx.Response(200, json=["Hola"])]

    def handler(request: httpx.Request) -> httpx.Response:
        return responses.pop(0)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        translator = BatchTranslator(BACKEND_URL, client=client, retry_base_delay=0, pacing_delay=0)
        assert await translator.translate_batch(["Hello"], "en", "es") == ["Hola"]


@pytest.mark.asyncio
async def test_keep_source_policy_returns_original_text_for_failed_chunk():
    backend = FakeBackend(failures=2)
    stored = []

    async def on_chunk(chunk, translations):
        stored.append((chunk, translations))

    async with mock_client(backend) as client:
        translator = make_translator(backend, client, batch_size=2, max_retries=2, failure_policy="keep_source")
        result = await translator.translate_batch(["a", "b", "c"], "en", "es", on_chunk=on_chunk)

    assert result == ["a", "b", "es:c"]
    # Only the successful chunk is reported, so source text never reaches the cache.
    assert stored == [(["c"], ["es:c"])]


@pytest.mark.asyncio
async def test_on_chunk_called_per_chunk_in_order():
    backend = FakeBackend()
    seen = []

    async def on_chunk(chunk, translations):
        seen.append(list(chunk))

    async with mock_client(backend) as client:
        translator = make_translator(backend, client, batch_size=2)
        await translator.translate_batch(["a", "b", "c"], "en", "de", on_chunk=on_chunk)

    assert seen == [["a", "b"], ["c"]]


@pytest.mark.asyncio
async def test_supported_languages_and_prewarm():
    backend = FakeBackend(languages=["en", "es"])
    async with mock_client(backend) as client:
        translator = make_translator(backend, client)
        await translator.prewarm()
        assert await translator.supported_languages() == {"en", "es"}


@pytest.mark.asyncio
async def test_prewarm_ignores_unreachable_backend():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        translator = BatchTranslator(BACKEND_URL, client=client)
        await translator.prewarm()
        with pytest.raises(TranslationBackendError):
            await translator.supported_languages()


@pytest.mark.asyncio
async def test_owned_client_is_closed_on_exit():
    translator = BatchTranslator(BACKEND_URL)
    async with translator:
        client = translator.client
        assert isinstance(client, httpx.AsyncClient)
    assert client.is_closed


@pytest.mark.asyncio
async def test_injected_client_is_left_open():
    async with mock_client(FakeBackend()) as client:
        async with BatchTranslator(BACKEND_URL, client=client):
            pass
        assert not client.is_closed


def test_client_required_outside_context():
    with pytest.raises(RuntimeError):
        _ = BatchTranslator(BACKEND_URL).client
