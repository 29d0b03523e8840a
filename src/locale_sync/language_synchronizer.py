import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from locale_sync.batch_translator import BatchTranslator
from locale_sync.locale_diff import is_blank, missing_keys
from locale_sync.translation_cache import TranslationCache
from locale_sync.tree_codec import flatten, unflatten

logger = logging.getLogger(__name__)


@dataclass
class SyncOutcome:
    """Result of synchronizing one target language tree."""
    tree: Dict[str, Any]
    missing_count: int = 0
    cache_hits: int = 0
    translated_count: int = 0

    @property
    def changed(self) -> bool:
        return self.missing_count > 0


def _conflicting_key(key: str, existing_flat: Dict[str, Any]) -> Optional[str]:
    """
    Returns the existing non-blank key-path that writing ``key`` would destroy.

    That is an ancestor of ``key`` holding a leaf (``menu`` for ``menu.open``)
    or a leaf nested under ``key`` (``menu.open`` for ``menu``).
    """
    parts = key.split('.')
    for i in range(1, len(parts)):
        ancestor = '.'.join(parts[:i])
        if not is_blank(existing_flat.get(ancestor)):
            return ancestor
    prefix = key + '.'
    for existing_key, value in existing_flat.items():
        if existing_key.startswith(prefix) and not is_blank(value):
            return existing_key
    return None


class LanguageSynchronizer:
    """
    Fills the gaps of one target locale tree from the source locale tree.

    Missing phrases are looked up in the translation cache first; the rest are
    translated in batches and written back to the cache chunk by chunk. Values
    already present in the target are never overwritten, not even when the
    source has since turned a leaf into a subtree or the reverse.
    """

    def __init__(self, translator: BatchTranslator, cache: TranslationCache, source_lang: str):
        self.translator = translator
        self.cache = cache
        self.source_lang = source_lang

    async def sync(
            self,
            target_lang: str,
            source_tree: Dict[str, Any],
            existing_tree: Dict[str, Any]
    ) -> SyncOutcome:
        """
        Computes the updated tree for ``target_lang``.

        Args:
            target_lang: Target language code.
            source_tree: The source locale tree.
            existing_tree: The current target locale tree (empty if the file does not exist).

        Returns:
            A SyncOutcome holding the merged tree. When nothing can be added, the
            tree is ``existing_tree`` itself.

        Raises:
            TranslationBackendError: If the backend fails for a chunk under the ``raise`` policy.
        """
        source_flat = flatten(source_tree)
        existing_flat = flatten(existing_tree)

        keys = []
        for key in missing_keys(source_flat, existing_flat):
            conflict = _conflicting_key(key, existing_flat)
            if conflict is not None:
                logger.warning(
                    f"[{target_lang}] skipping '{key}': it would replace the existing value at '{conflict}'."
                )
                continue
            keys.append(key)
        if not keys:
            logger.info(f"[{target_lang}] complete, nothing to translate.")
            return SyncOutcome(tree=existing_tree)

        resolved: Dict[str, Any] = {}
        pending_keys: Dict[str, List[str]] = {}
        cache_hits = 0
        for key in keys:
            source_value = source_flat[key]
            if not isinstance(source_value, str):
                # Numbers, booleans and lists are not translatable text.
                resolved[key] = source_value
                continue
            cached = self.cache.get(self.source_lang, target_lang, source_value)
            if cached is not None:
                resolved[key] = cached
                cache_hits += 1
            else:
                pending_keys.setdefault(source_value, []).append(key)

        # Each distinct phrase goes to the backend once, in missing-key order.
        phrases = list(pending_keys)
        logger.info(
            f"[{target_lang}] {len(keys)} missing key(s): {cache_hits} from cache, "
            f"{len(phrases)} phrase(s) to translate."
        )

        if phrases:
            async def _store_chunk(chunk: List[str], translations: List[str]) -> None:
                await self.cache.put_many(self.source_lang, target_lang, zip(chunk, translations))

            translations = await self.translator.translate_batch(
                phrases, self.source_lang, target_lang, on_chunk=_store_chunk
            )
            for phrase, translated in zip(phrases, translations):
                for key in pending_keys[phrase]:
                    resolved[key] = translated

        merged = dict(existing_flat)
        for key, value in resolved.items():
            if is_blank(merged.get(key)):
                merged[key] = value

        return SyncOutcome(
            tree=unflatten(merged),
            missing_count=len(keys),
            cache_hits=cache_hits,
            translated_count=len(phrases)
        )
