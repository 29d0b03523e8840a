"""Exception types raised by the locale synchronization pipeline."""
from typing import Optional


class LocaleSyncError(Exception):
    """Base class for all locale-sync errors."""


class SourceLocaleMissingError(LocaleSyncError):
    """The source language file does not exist. Fatal for the whole run."""

    def __init__(self, path: str):
        super().__init__(f"Source locale file '{path}' does not exist.")
        self.path = path


class LocaleFileError(LocaleSyncError):
    """A locale file exists but cannot be read or parsed."""

    def __init__(self, path: str, reason: str):
        super().__init__(f"Could not load locale file '{path}': {reason}")
        self.path = path
        self.reason = reason


class TranslationBackendError(LocaleSyncError):
    """The translation backend could not produce a translation for a chunk."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class MalformedResponseError(TranslationBackendError):
    """The backend answered, but the payload could not be aligned with the request."""
