import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, List, Optional, Sequence

from tqdm import tqdm

logger = logging.getLogger(__name__)


class SyncStatus(str, Enum):
    COMPLETE = "complete"
    UPDATED = "updated"
    FAILED = "failed"


@dataclass
class SyncResult:
    """Per-language outcome reported by the scheduler."""
    language: str
    status: SyncStatus
    translated_count: int = 0
    cache_hits: int = 0
    error: Optional[BaseException] = None

    @property
    def failed(self) -> bool:
        return self.status is SyncStatus.FAILED


SyncLanguage = Callable[[str], Awaitable[SyncResult]]


def group_languages(languages: Sequence[str], group_size: int) -> List[List[str]]:
    """Split ``languages`` into consecutive groups of ``group_size``."""
    if group_size < 1:
        raise ValueError(f"concurrency limit must be a positive integer, got {group_size}")
    return [list(languages[i:i + group_size]) for i in range(0, len(languages), group_size)]


class ConcurrencyScheduler:
    """
    Runs one synchronization task per language, ``concurrency_limit`` at a time.

    Languages are processed in consecutive groups; every task of a group runs
    concurrently and the whole group finishes before the next one starts. A
    failing language is reported as a FAILED result and never cancels the
    other tasks of its group.
    """

    def __init__(self, sync_language: SyncLanguage, concurrency_limit: int):
        if concurrency_limit < 1:
            raise ValueError(f"concurrency limit must be a positive integer, got {concurrency_limit}")
        self.sync_language = sync_language
        self.concurrency_limit = concurrency_limit

    async def _run_one(self, language: str, progress: tqdm) -> SyncResult:
        try:
            result = await self.sync_language(language)
        except Exception as exc:
            logger.error(f"[{language}] synchronization failed: {exc}", exc_info=True)
            result = SyncResult(language=language, status=SyncStatus.FAILED, error=exc)
        progress.update(1)
        return result

    async def run(self, target_langs: Sequence[str]) -> List[SyncResult]:
        """
        Synchronize every language in ``target_langs``.

        Returns:
            One SyncResult per language, in the order of ``target_langs``.
        """
        results: List[SyncResult] = []
        groups = group_languages(target_langs, self.concurrency_limit)
        with tqdm(total=len(target_langs), desc="Synchronizing locales", unit="language") as progress:
            for group in groups:
                logger.debug(f"Starting language group: {', '.join(group)}")
                group_results = await asyncio.gather(*(self._run_one(lang, progress) for lang in group))
                results.extend(group_results)

        failed = [result.language for result in results if result.failed]
        if failed:
            logger.error(f"Synchronization failed for {len(failed)} language(s): {', '.join(failed)}")
        return results
