"""Reading and writing ``<locale_dir>/<lang>.json`` files."""
import json
import logging
import os
import tempfile
from typing import Any, Dict, Optional

from locale_sync.errors import LocaleFileError, SourceLocaleMissingError

logger = logging.getLogger(__name__)


class LocaleStore:
    """Whole-file JSON persistence for locale trees, one file per language code."""

    def __init__(self, locale_dir: str):
        self.locale_dir = locale_dir

    def path_for(self, language_code: str) -> str:
        return os.path.join(self.locale_dir, f"{language_code}.json")

    def exists(self, language_code: str) -> bool:
        return os.path.exists(self.path_for(language_code))

    def read(self, language_code: str) -> Optional[Dict[str, Any]]:
        """
        Load the tree for ``language_code``.

        Returns:
            The tree, or None if the file does not exist.

        Raises:
            LocaleFileError: If the file cannot be read or is not a JSON object.
        """
        path = self.path_for(language_code)
        if not os.path.exists(path):
            return None
        try:
            with open(path, 'r', encoding='utf-8') as f:
                tree = json.load(f)
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise LocaleFileError(path, str(exc)) from exc
        if not isinstance(tree, dict):
            raise LocaleFileError(path, f"expected a JSON object, got {type(tree).__name__}")
        return tree

    def read_source(self, language_code: str) -> Dict[str, Any]:
        """Load the source tree. A missing source file is fatal."""
        tree = self.read(language_code)
        if tree is None:
            raise SourceLocaleMissingError(self.path_for(language_code))
        return tree

    def write(self, language_code: str, tree: Dict[str, Any]) -> str:
        """
        Atomically rewrite the file for ``language_code``.

        The tree is written to a temporary file in the locale directory and then
        moved over the target, so a failed write never leaves a truncated file.

        Returns:
            The path that was written.
        """
        path = self.path_for(language_code)
        os.makedirs(self.locale_dir, exist_ok=True)
        temp_path = None
        try:
            with tempfile.NamedTemporaryFile(
                    mode='w', delete=False, dir=self.locale_dir, suffix='.tmp', encoding='utf-8') as temp_f:
                temp_path = temp_f.name
                json.dump(tree, temp_f, ensure_ascii=False, indent=2)
                temp_f.write('\n')
            os.replace(temp_path, path)
            temp_path = None
        finally:
            if temp_path and os.path.exists(temp_path):
                try:
                    os.remove(temp_path)
                except OSError as _e:
                    logger.warning("Could not delete temporary locale file '%s': %s", temp_path, _e)
        return path
