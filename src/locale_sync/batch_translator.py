"""
Batching client for a LibreTranslate-compatible translation backend.

Phrases are sent in fixed-size chunks, one HTTP request per chunk. Every
chunk is retried with exponential backoff on transient failures, and a short
pacing delay separates consecutive chunks so the backend is not flooded.
"""
import asyncio
import logging
from typing import Any, Awaitable, Callable, List, Optional, Sequence, Set

import httpx
from aiolimiter import AsyncLimiter

from locale_sync.errors import MalformedResponseError, TranslationBackendError

logger = logging.getLogger(__name__)

DEFAULT_BACKEND_URL = "http://localhost:5000/translate"

FAILURE_POLICY_RAISE = "raise"
FAILURE_POLICY_KEEP_SOURCE = "keep_source"
FAILURE_POLICIES = (FAILURE_POLICY_RAISE, FAILURE_POLICY_KEEP_SOURCE)

ChunkCallback = Callable[[List[str], List[str]], Awaitable[None]]


def chunk_phrases(phrases: Sequence[str], batch_size: int) -> List[List[str]]:
    """Split ``phrases`` into consecutive chunks of at most ``batch_size`` items."""
    if batch_size < 1:
        raise ValueError(f"batch_size must be a positive integer, got {batch_size}")
    return [list(phrases[i:i + batch_size]) for i in range(0, len(phrases), batch_size)]


def normalize_translations(data: Any, expected_count: int) -> List[str]:
    """
    Normalize a backend response into a list of translated strings.

    The backend may answer with a single string, an object carrying
    ``translatedText`` (a string or a list of strings), a list of strings, or a
    list of ``{"translatedText": ...}`` records.

    Args:
        data: The decoded JSON body.
        expected_count: Number of phrases sent in the request.

    Returns:
        The translations, aligned positionally with the request.

    Raises:
        MalformedResponseError: If the payload has an unknown shape or the wrong length.
    """
    if isinstance(data, dict) and 'translatedText' in data:
        data = data['translatedText']

    if isinstance(data, str):
        translations = [data]
    elif isinstance(data, list):
        translations = []
        for item in data:
            if isinstance(item, dict):
                item = item.get('translatedText')
            if not isinstance(item, str):
                raise MalformedResponseError(f"Unexpected item in backend response: {item!r}")
            translations.append(item)
    else:
        raise MalformedResponseError(f"Unexpected backend response format: {str(data)[:200]}")

    if len(translations) != expected_count:
        raise MalformedResponseError(
            f"Backend returned {len(translations)} translation(s) for {expected_count} phrase(s)."
        )
    return translations


def _parse_retry_after(header_value: Optional[str]) -> Optional[float]:
    """Parse a ``Retry-After`` header given in seconds or with an ``ms`` suffix."""
    if not header_value:
        return None
    header_value = header_value.strip()
    try:
        if header_value.endswith('ms'):
            return float(header_value[:-2]) / 1000
        return float(header_value)
    except ValueError:
        logger.warning(f"Failed to parse Retry-After header '{header_value}'. Falling back to exponential backoff.")
        return None


class BatchTranslator:
    """
    Translate lists of phrases through the backend.

    Use as an async context manager so the underlying ``httpx.AsyncClient`` is
    closed. An externally created client may be injected instead, in which case
    the caller keeps ownership of it.
    """

    def __init__(
            self,
            base_url: str = DEFAULT_BACKEND_URL,
            batch_size: int = 25,
            max_retries: int = 5,
            retry_base_delay: float = 0.3,
            pacing_delay: float = 0.12,
            request_timeout: float = 30.0,
            failure_policy: str = FAILURE_POLICY_RAISE,
            api_key: Optional[str] = None,
            client: Optional[httpx.AsyncClient] = None,
            rate_limiter: Optional[AsyncLimiter] = None
    ):
        if batch_size < 1:
            raise ValueError(f"batch_size must be a positive integer, got {batch_size}")
        if max_retries < 1:
            raise ValueError(f"max_retries must be a positive integer, got {max_retries}")
        if failure_policy not in FAILURE_POLICIES:
            raise ValueError(f"failure_policy must be one of {FAILURE_POLICIES}, got '{failure_policy}'")

        self.base_url = base_url
        self.batch_size = batch_size
        self.max_retries = max_retries
        self.retry_base_delay = retry_base_delay
        self.pacing_delay = pacing_delay
        self.request_timeout = request_timeout
        self.failure_policy = failure_policy
        self.api_key = api_key
        self.rate_limiter = rate_limiter
        self._client = client
        self._owns_client = client is None

    async def __aenter__(self) -> "BatchTranslator":
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.request_timeout)
            self._owns_client = True
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            raise RuntimeError("BatchTranslator must be used as an async context manager.")
        return self._client

    @property
    def languages_url(self) -> str:
        base = self.base_url.rstrip('/')
        if base.endswith('/translate'):
            base = base[:-len('/translate')]
        return f"{base}/languages"

    async def prewarm(self) -> None:
        """Touch the backend once so a cold server loads its models before the run. Best effort."""
        try:
            response = await self.client.get(self.languages_url)
            logger.debug(f"Backend prewarm answered HTTP {response.status_code}.")
        except httpx.HTTPError as exc:
            logger.debug(f"Backend prewarm failed, continuing anyway: {exc}")

    async def supported_languages(self) -> Set[str]:
        """
        Fetch the language codes the backend can translate.

        Returns:
            The set of supported codes.

        Raises:
            TranslationBackendError: If the endpoint is unreachable or answers unexpectedly.
        """
        try:
            response = await self.client.get(self.languages_url)
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise TranslationBackendError(f"Could not fetch supported languages: {exc}") from exc
        if not isinstance(payload, list):
            raise MalformedResponseError(f"Unexpected /languages response: {str(payload)[:200]}")
        return {entry['code'] for entry in payload if isinstance(entry, dict) and 'code' in entry}

    async def translate_batch(
            self,
            phrases: Sequence[str],
            source_lang: str,
            target_lang: str,
            on_chunk: Optional[ChunkCallback] = None
    ) -> List[str]:
        """
        Translate ``phrases`` from ``source_lang`` to ``target_lang``.

        Args:
            phrases: Texts to translate.
            source_lang: Source language code.
            target_lang: Target language code.
            on_chunk: Optional coroutine called with ``(chunk, translations)`` as
                soon as each chunk has been translated.

        Returns:
            The translations, same length and order as ``phrases``.

        Raises:
            TranslationBackendError: If a chunk fails and the failure policy is ``raise``.
        """
        chunks = chunk_phrases(phrases, self.batch_size)
        translated: List[str] = []
        for i, chunk in enumerate(chunks):
            if i > 0 and self.pacing_delay > 0:
                await asyncio.sleep(self.pacing_delay)
            logger.debug(f"Translating chunk {i + 1}/{len(chunks)} ({len(chunk)} phrases) {source_lang}->{target_lang}.")
            try:
                chunk_translations = await self._translate_chunk(chunk, source_lang, target_lang)
            except TranslationBackendError as exc:
                if self.failure_policy != FAILURE_POLICY_KEEP_SOURCE:
                    raise
                logger.error(f"Keeping source text for {len(chunk)} phrase(s) ({target_lang}): {exc}")
                translated.extend(chunk)
                continue
            if on_chunk is not None:
                await on_chunk(chunk, chunk_translations)
            translated.extend(chunk_translations)
        return translated

    async def _post(self, payload: dict) -> httpx.Response:
        if self.rate_limiter is None:
            return await self.client.post(self.base_url, json=payload)
        async with self.rate_limiter:
            return await self.client.post(self.base_url, json=payload)

    async def _translate_chunk(self, chunk: List[str], source_lang: str, target_lang: str) -> List[str]:
        payload = {"q": chunk, "source": source_lang, "target": target_lang, "format": "text"}
        if self.api_key:
            payload["api_key"] = self.api_key

        last_error: Optional[Exception] = None
        for attempt in range(1, self.max_retries + 1):
            retry_after = None
            try:
                response = await self._post(payload)
            except httpx.TransportError as exc:
                logger.warning(f"Backend request failed: {exc.__class__.__name__} - {exc}")
                last_error = exc
            else:
                status = response.status_code
                if status == 429 or status >= 500:
                    logger.warning(f"Backend returned HTTP {status} for {source_lang}->{target_lang}.")
                    last_error = TranslationBackendError(f"Backend returned HTTP {status}", status)
                    retry_after = _parse_retry_after(response.headers.get('Retry-After'))
                elif response.is_error:
                    raise TranslationBackendError(
                        f"Backend rejected request with HTTP {status}: {response.text[:200]}", status
                    )
                else:
                    try:
                        return normalize_translations(response.json(), len(chunk))
                    except (ValueError, MalformedResponseError) as exc:
                        logger.warning(f"Malformed backend response: {exc}")
                        last_error = exc

            if attempt < self.max_retries:
                delay = retry_after if retry_after is not None else self.retry_base_delay * (2 ** (attempt - 1))
                logger.info(f"Retrying translation request in {delay:.2f} seconds (Attempt {attempt}/{self.max_retries})")
                await asyncio.sleep(delay)

        raise TranslationBackendError(
            f"Translation {source_lang}->{target_lang} failed after {self.max_retries} attempts: {last_error}"
        ) from last_error
