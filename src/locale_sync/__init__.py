"""Keep per-language JSON locale files in sync with a source locale."""

__version__ = "0.1.0"
