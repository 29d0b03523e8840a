"""
Read-only reports on the state of the target locale files.

``locale-sync-missing`` lists the keys each target language still lacks;
``locale-sync-outdated`` flags target files whose normalized content differs
from the source. Neither writes anything.
"""
import logging
import sys
from typing import List, Optional

from locale_sync.app_config import AppConfig, load_app_config
from locale_sync.errors import LocaleFileError, SourceLocaleMissingError
from locale_sync.locale_diff import DiffStatus, extra_keys, missing_keys, structural_status
from locale_sync.locale_store import LocaleStore
from locale_sync.tree_codec import flatten

logger = logging.getLogger(__name__)


def missing_keys_report(store: LocaleStore, source_lang: str, target_langs: List[str]) -> List[str]:
    """
    Build the missing-keys report, one block of lines per target language.

    Raises:
        SourceLocaleMissingError: If the source file does not exist.
    """
    source_flat = flatten(store.read_source(source_lang))
    lines: List[str] = []
    for lang in target_langs:
        if lang == source_lang:
            continue
        filename = f"{lang}.json"
        try:
            target_tree = store.read(lang)
        except LocaleFileError as exc:
            lines.append(f"{filename}: UNREADABLE ({exc.reason})")
            continue
        if target_tree is None:
            lines.append(f"MISSING FILE: {filename}")
            continue

        target_flat = flatten(target_tree)
        missing = missing_keys(source_flat, target_flat)
        if missing:
            lines.append(f"{filename} is missing {len(missing)} keys:")
            lines.extend(f"  - {key}" for key in missing)
        else:
            lines.append(f"{filename} is complete")

        extra = extra_keys(source_flat, target_flat)
        if extra:
            lines.append(f"{filename} has {len(extra)} keys not in the source:")
            lines.extend(f"  + {key}" for key in extra)
    return lines


_STATUS_LABELS = {
    DiffStatus.OK: "OK",
    DiffStatus.MISSING_FILE: "MISSING",
    DiffStatus.OUTDATED: "MAY BE OUTDATED (content or structure differs)",
}


def outdated_report(store: LocaleStore, source_lang: str, target_langs: List[str]) -> List[str]:
    """
    Build the structural report, one line per target language.

    Raises:
        SourceLocaleMissingError: If the source file does not exist.
    """
    source_tree = store.read_source(source_lang)
    lines: List[str] = []
    for lang in target_langs:
        if lang == source_lang:
            continue
        try:
            status = structural_status(source_tree, store.read(lang))
        except LocaleFileError as exc:
            lines.append(f"{lang}.json: UNREADABLE ({exc.reason})")
            continue
        lines.append(f"{lang}.json: {_STATUS_LABELS[status]}")
    return lines


def _run_report(report, config: Optional[AppConfig]) -> int:
    if config is None:
        config = load_app_config()
    store = LocaleStore(config.locale_dir)
    try:
        lines = report(store, config.source_lang, config.target_langs)
    except SourceLocaleMissingError as exc:
        logger.error(str(exc))
        print(f"Missing {exc.path}", file=sys.stderr)
        return 1
    for line in lines:
        print(line)
    return 0


def detect_missing(config: Optional[AppConfig] = None) -> int:
    """Print the missing-keys report. Returns 1 if the source file is missing."""
    return _run_report(missing_keys_report, config)


def detect_outdated(config: Optional[AppConfig] = None) -> int:
    """Print the structural report. Returns 1 if the source file is missing."""
    return _run_report(outdated_report, config)


def run_missing() -> None:
    sys.exit(detect_missing())


def run_outdated() -> None:
    sys.exit(detect_outdated())
