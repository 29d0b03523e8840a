import json
import os
from typing import Dict, List, Optional

import httpx
import pytest

from locale_sync.app_config import AppConfig
from locale_sync.batch_translator import BatchTranslator

BACKEND_URL = "http://backend.test/translate"

# Environment variables read by load_app_config; cleared so the developer's shell cannot leak into tests.
CONFIG_ENV_VARS = [
    'LOCALE_SYNC_PROJECT_ROOT', 'LOCALE_SYNC_CONFIG_FILE', 'SOURCE_LANG', 'LANGUAGES', 'LT_URL',
    'LT_API_KEY', 'CONCURRENCY', 'BATCH_SIZE', 'MAX_RETRIES', 'RETRY_BASE_DELAY_MS', 'PACING_DELAY_MS',
    'REQUEST_TIMEOUT', 'REQUESTS_PER_MINUTE', 'FAILURE_POLICY', 'DRY_RUN', 'LOCALE_DIR', 'CACHE_FILE',
    'LOG_LEVEL',
]


class FakeBackend:
    """
    In-process LibreTranslate stand-in for httpx.MockTransport.

    Translates ``text`` to ``translations[target][text]`` when given, otherwise
    to ``"<target>:<text>"``. The first ``failures`` translate requests answer with
    ``failure_status``, and so does every request after the first
    ``fail_after`` ones and every request for a target in ``fail_targets``.
    """

    def __init__(
            self,
            translations: Optional[Dict[str, Dict[str, str]]] = None,
            failures: int = 0,
            failure_status: int = 503,
            fail_targets: Optional[List[str]] = None,
            fail_after: Optional[int] = None,
            languages: Optional[List[str]] = None
    ):
        self.translations = translations or {}
        self.failures_left = failures
        self.failure_status = failure_status
        self.fail_targets = set(fail_targets or [])
        self.fail_after = fail_after
        self.languages = languages or ["en", "es", "fr", "de"]
        self.requests: List[dict] = []

    @property
    def phrases_sent(self) -> List[List[str]]:
        return [request['q'] for request in self.requests]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith('/languages'):
            return httpx.Response(200, json=[{"code": code, "name": code} for code in self.languages])

        payload = json.loads(request.content)
        self.requests.append(payload)

        if self.fail_after is not None and len(self.requests) > self.fail_after:
            return httpx.Response(self.failure_status, text="backend unavailable")
        if payload['target'] in self.fail_targets:
            return httpx.Response(self.failure_status, text="backend unavailable")
        if self.failures_left > 0:
            self.failures_left -= 1
            return httpx.Response(self.failure_status, text="backend unavailable")

        phrases = payload['q'] if isinstance(payload['q'], list) else [payload['q']]
        by_text = self.translations.get(payload['target'], {})
        translated = [by_text.get(text, f"{payload['target']}:{text}") for text in phrases]
        return httpx.Response(200, json=[{"translatedText": text} for text in translated])


@pytest.fixture
def fake_backend():
    return FakeBackend()


@pytest.fixture
def clean_config_env(monkeypatch):
    for name in CONFIG_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


def make_translator(backend: FakeBackend, client: httpx.AsyncClient, **kwargs) -> BatchTranslator:
    """A translator wired to ``client`` with no pacing or backoff delays unless overridden."""
    options = {"retry_base_delay": 0, "pacing_delay": 0}
    options.update(kwargs)
    return BatchTranslator(base_url=BACKEND_URL, client=client, **options)


def mock_client(backend: FakeBackend) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(backend))


def write_locale(locale_dir, lang: str, tree: dict) -> str:
    os.makedirs(locale_dir, exist_ok=True)
    path = os.path.join(locale_dir, f"{lang}.json")
    with open(path, 'w', encoding='utf-8') as f:
        json.dump(tree, f, ensure_ascii=False, indent=2)
    return path


def read_json(path) -> dict:
    with open(path, 'r', encoding='utf-8') as f:
        return json.load(f)


@pytest.fixture
def app_config(tmp_path) -> AppConfig:
    return AppConfig(
        project_root=str(tmp_path),
        locale_dir=str(tmp_path / 'locale'),
        cache_file_path=str(tmp_path / 'translation-cache.json'),
        source_lang='en',
        target_langs=['es', 'fr'],
        backend_url=BACKEND_URL,
        backend_api_key=None,
        request_timeout=5.0,
        requests_per_minute=1000,
        concurrency=2,
        batch_size=25,
        max_retries=3,
        retry_base_delay=0,
        pacing_delay=0,
        failure_policy='raise',
        dry_run=False
    )
