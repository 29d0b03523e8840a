"""Persistent cache of machine translations keyed by (source, target, text)."""
import asyncio
import json
import logging
import os
import tempfile
from typing import Dict, Iterable, Optional, Tuple

import jsonschema

logger = logging.getLogger(__name__)

# The cache file is a flat JSON object whose values are all strings.
CACHE_SCHEMA = {
    "type": "object",
    "patternProperties": {
        "^.*$": {"type": "string"}
    },
    "additionalProperties": False
}

KEY_SEPARATOR = "::"


def cache_key(source_lang: str, target_lang: str, text: str) -> str:
    """Build the on-disk key for a cache entry, e.g. ``en::es::Hello``."""
    return f"{source_lang}{KEY_SEPARATOR}{target_lang}{KEY_SEPARATOR}{text}"


class TranslationCache:
    """
    Append-only translation cache shared by all language tasks of a run.

    Entries are flushed to disk after every write. A lock serializes the
    read-modify-flush cycle so concurrent tasks never interleave a flush.
    Flush failures are logged and ignored; the in-memory entries stay valid.
    """

    def __init__(self, cache_file_path: str):
        self.cache_file_path = cache_file_path
        self._entries: Dict[str, str] = {}
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._entries)

    def load_or_empty(self) -> "TranslationCache":
        """
        Load the persisted cache, falling back to an empty cache on any error.

        Returns:
            The cache itself, to allow ``TranslationCache(path).load_or_empty()``.
        """
        self._entries = {}
        if not os.path.exists(self.cache_file_path):
            logger.info(f"No translation cache at '{self.cache_file_path}', starting empty.")
            return self
        try:
            with open(self.cache_file_path, 'r', encoding='utf-8') as f:
                loaded = json.load(f)
            jsonschema.validate(instance=loaded, schema=CACHE_SCHEMA)
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning(f"Could not read translation cache '{self.cache_file_path}': {exc}. Starting empty.")
            return self
        except jsonschema.ValidationError as exc:
            logger.warning(f"Translation cache '{self.cache_file_path}' is malformed: {exc.message}. Starting empty.")
            return self

        self._entries = loaded
        logger.info(f"Loaded {len(self._entries)} cached translation(s) from '{self.cache_file_path}'.")
        return self

    def get(self, source_lang: str, target_lang: str, text: str) -> Optional[str]:
        return self._entries.get(cache_key(source_lang, target_lang, text))

    async def put(self, source_lang: str, target_lang: str, text: str, translated: str) -> None:
        """Insert or overwrite one entry and flush the cache to disk."""
        await self.put_many(source_lang, target_lang, [(text, translated)])

    async def put_many(self, source_lang: str, target_lang: str, pairs: Iterable[Tuple[str, str]]) -> None:
        """
        Insert several entries and flush once.

        Args:
            source_lang: Source language code.
            target_lang: Target language code.
            pairs: ``(source_text, translated_text)`` tuples.
        """
        async with self._lock:
            for text, translated in pairs:
                self._entries[cache_key(source_lang, target_lang, text)] = translated
            self._flush_locked()

    async def flush(self) -> None:
        async with self._lock:
            self._flush_locked()

    def _flush_locked(self) -> None:
        temp_path = None
        try:
            cache_dir = os.path.dirname(os.path.abspath(self.cache_file_path))
            os.makedirs(cache_dir, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                    mode='w', delete=False, dir=cache_dir, suffix='.tmp', encoding='utf-8') as temp_f:
                temp_path = temp_f.name
                json.dump(self._entries, temp_f, ensure_ascii=False, indent=2)
                temp_f.write('\n')
            os.replace(temp_path, self.cache_file_path)
            temp_path = None
        except OSError as exc:
            logger.warning(f"Cache save failed for '{self.cache_file_path}': {exc}")
        finally:
            if temp_path and os.path.exists(temp_path):
                try:
                    os.remove(temp_path)
                except OSError as _e:
                    logger.debug("Could not delete temporary cache file '%s': %s", temp_path, _e)
