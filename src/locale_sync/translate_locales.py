"""
Entry point of a synchronization run.

Reads the source locale, then brings every configured target locale up to
date: missing keys are resolved from the translation cache or translated by
the backend, merged into the existing file and written back.
"""
import asyncio
import logging
import sys
from typing import Any, Dict, List, Optional

from aiolimiter import AsyncLimiter

from locale_sync.app_config import AppConfig, load_app_config
from locale_sync.batch_translator import BatchTranslator
from locale_sync.errors import LocaleSyncError, TranslationBackendError
from locale_sync.language_synchronizer import LanguageSynchronizer
from locale_sync.locale_store import LocaleStore
from locale_sync.scheduler import ConcurrencyScheduler, SyncResult, SyncStatus
from locale_sync.translation_cache import TranslationCache

logger = logging.getLogger(__name__)


def build_translator(config: AppConfig, rate_limiter: Optional[AsyncLimiter] = None) -> BatchTranslator:
    return BatchTranslator(
        base_url=config.backend_url,
        batch_size=config.batch_size,
        max_retries=config.max_retries,
        retry_base_delay=config.retry_base_delay,
        pacing_delay=config.pacing_delay,
        request_timeout=config.request_timeout,
        failure_policy=config.failure_policy,
        api_key=config.backend_api_key,
        rate_limiter=rate_limiter
    )


async def warn_unsupported_languages(translator: BatchTranslator, target_langs: List[str]) -> None:
    """Log target languages the backend does not advertise. Best effort."""
    try:
        supported = await translator.supported_languages()
    except TranslationBackendError as exc:
        logger.debug(f"Could not check backend language support: {exc}")
        return
    unsupported = [lang for lang in target_langs if lang not in supported]
    if unsupported:
        logger.warning(f"Backend does not list these target languages: {', '.join(unsupported)}")


async def synchronize_locales(
        config: AppConfig,
        source_tree: Dict[str, Any],
        store: LocaleStore,
        cache: TranslationCache,
        translator: BatchTranslator
) -> List[SyncResult]:
    """
    Synchronize every configured target language against ``source_tree``.

    A language's file is only written once its whole tree has been merged, so
    a failing language keeps its previous file untouched.

    Returns:
        One SyncResult per target language.
    """
    synchronizer = LanguageSynchronizer(translator, cache, config.source_lang)

    async def sync_language(language: str) -> SyncResult:
        file_exists = store.exists(language)
        existing_tree = store.read(language) or {}
        outcome = await synchronizer.sync(language, source_tree, existing_tree)

        if not outcome.changed and file_exists:
            return SyncResult(language=language, status=SyncStatus.COMPLETE)

        if config.dry_run:
            logger.info(f"[Dry Run] Would write {outcome.missing_count} new key(s) to '{store.path_for(language)}'.")
        else:
            path = store.write(language, outcome.tree)
            logger.info(f"[{language}] saved '{path}' ({outcome.missing_count} key(s) added).")
        return SyncResult(
            language=language,
            status=SyncStatus.UPDATED,
            translated_count=outcome.translated_count,
            cache_hits=outcome.cache_hits
        )

    scheduler = ConcurrencyScheduler(sync_language, config.concurrency)
    return await scheduler.run(config.target_langs)


async def main(config: Optional[AppConfig] = None) -> int:
    """
    Run a full synchronization pass.

    Returns:
        The process exit status: 0 when every language succeeded, 1 otherwise.
    """
    if config is None:
        config = load_app_config()

    store = LocaleStore(config.locale_dir)
    try:
        source_tree = store.read_source(config.source_lang)
    except LocaleSyncError as exc:
        logger.critical(f"CRITICAL: {exc} Exiting.")
        return 1

    if not config.target_langs:
        logger.info("No target languages configured. Nothing to do.")
        return 0

    cache = TranslationCache(config.cache_file_path).load_or_empty()
    rate_limiter = AsyncLimiter(max_rate=config.requests_per_minute, time_period=60)

    logger.info(
        f"Synchronizing {len(config.target_langs)} language(s) from '{config.source_lang}' "
        f"with concurrency {config.concurrency}: {', '.join(config.target_langs)}"
    )
    async with build_translator(config, rate_limiter) as translator:
        await translator.prewarm()
        await warn_unsupported_languages(translator, config.target_langs)
        results = await synchronize_locales(config, source_tree, store, cache, translator)

    for result in results:
        if result.failed:
            logger.error(f"  - {result.language}: FAILED ({result.error})")
        else:
            logger.info(
                f"  - {result.language}: {result.status.value} "
                f"({result.translated_count} translated, {result.cache_hits} from cache)"
            )

    if any(result.failed for result in results):
        logger.error("Translation pass completed with failures.")
        return 1
    logger.info("Translation pass completed.")
    return 0


def run() -> None:
    """Console script entry point."""
    try:
        config = load_app_config()
    except ValueError as config_exc:
        print(f"Error: Invalid configuration: {config_exc}", file=sys.stderr)
        sys.exit(1)
    sys.exit(asyncio.run(main(config)))


if __name__ == "__main__":
    run()
