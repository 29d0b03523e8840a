"""Application configuration for the locale synchronization tools."""
import logging
import os
import sys
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union

import yaml
from dotenv import load_dotenv

from locale_sync.batch_translator import DEFAULT_BACKEND_URL, FAILURE_POLICIES
from locale_sync.logging_config import setup_logger

_TRUE_VALUES = {'1', 'true', 'yes', 'on'}


@dataclass
class AppConfig:
    """Application configuration dataclass."""
    # Paths
    project_root: str
    locale_dir: str
    cache_file_path: str

    # Languages
    source_lang: str
    target_langs: List[str]

    # Translation backend
    backend_url: str
    backend_api_key: Optional[str]
    request_timeout: float
    requests_per_minute: int

    # Processing settings
    concurrency: int
    batch_size: int
    max_retries: int
    retry_base_delay: float
    pacing_delay: float
    failure_policy: str
    dry_run: bool


def _compute_project_root() -> str:
    """The project root is the working directory unless LOCALE_SYNC_PROJECT_ROOT says otherwise."""
    return os.path.abspath(os.environ.get('LOCALE_SYNC_PROJECT_ROOT', os.getcwd()))


def _load_dotenv_files(project_root: str) -> None:
    """Load .env files from project root or docker directory."""
    dotenv_path_project_root = os.path.join(project_root, '.env')
    dotenv_path_docker_dir = os.path.join(project_root, 'docker', '.env')

    if os.path.exists(dotenv_path_project_root):
        load_dotenv(dotenv_path_project_root)
    elif os.path.exists(dotenv_path_docker_dir):
        load_dotenv(dotenv_path_docker_dir)


def _load_yaml_config(project_root: str) -> Dict[str, Any]:
    """Load the YAML configuration file. Any problem falls back to an empty configuration."""
    default_config_path = os.path.join(project_root, 'config.yaml')
    config_file = os.environ.get('LOCALE_SYNC_CONFIG_FILE', default_config_path)

    if not os.path.isabs(config_file):
        config_file = os.path.abspath(config_file)

    config = {}
    try:
        if not os.path.exists(config_file):
            print(f"Warning: Configuration file '{config_file}' not found. Using default configuration.",
                  file=sys.stderr)
            return config

        if not os.access(config_file, os.R_OK):
            print(f"Error: Configuration file '{config_file}' exists but is not readable. Check file permissions.",
                  file=sys.stderr)
            return config

        with open(config_file, 'r', encoding='utf-8') as config_file_stream:
            loaded_config = yaml.safe_load(config_file_stream)
            if loaded_config is None:
                print(f"Warning: Configuration file '{config_file}' is empty. Using default configuration.",
                      file=sys.stderr)
            elif isinstance(loaded_config, dict):
                config = loaded_config
            else:
                print(f"Error: Configuration file '{config_file}' must contain a YAML dictionary. Using defaults.",
                      file=sys.stderr)

    except yaml.YAMLError as e:
        print(f"Error: Invalid YAML in configuration file '{config_file}': {e}", file=sys.stderr)
        print("Please check your YAML syntax. Using default configuration.", file=sys.stderr)
    except OSError as e:
        print(f"Error: Could not read configuration file '{config_file}': {e}", file=sys.stderr)
        print("Using default configuration.", file=sys.stderr)

    return config


def _setup_logger_from_config(config: Dict[str, Any]) -> logging.Logger:
    """Set up logger based on configuration."""
    log_config = config.get('logging', {}) or {}
    log_level_str = os.environ.get('LOG_LEVEL', log_config.get('log_level', 'INFO')).upper()
    log_file_path = log_config.get('log_file_path', 'logs/locale_sync.log')
    log_to_console = log_config.get('log_to_console', True)
    return setup_logger(log_level_str, log_file_path, log_to_console)


def _log_dotenv_status(logger: logging.Logger, project_root: str) -> None:
    """Log the status of .env file loading."""
    dotenv_path_project_root = os.path.join(project_root, '.env')
    dotenv_path_docker_dir = os.path.join(project_root, 'docker', '.env')

    if os.path.exists(dotenv_path_project_root):
        logger.info("Loaded environment variables from: %s", dotenv_path_project_root)
    elif os.path.exists(dotenv_path_docker_dir):
        logger.info("Loaded environment variables from: %s", dotenv_path_docker_dir)
    else:
        logger.debug("No .env file found in '%s'. Relying on system environment variables if any.", project_root)


def parse_language_list(value: Union[str, List[str], None]) -> List[str]:
    """
    Parse a language list given as a comma-separated string or a YAML list.

    Blank entries and duplicates are dropped, order is kept.
    """
    if value is None:
        return []
    items = value.split(',') if isinstance(value, str) else [str(item) for item in value]
    return list(dict.fromkeys(item.strip() for item in items if item and item.strip()))


def _setting(config: Dict[str, Any], yaml_key: str, env_var: str, default: Any) -> Any:
    """Environment variables take precedence over the YAML file, which takes precedence over defaults."""
    env_value = os.environ.get(env_var)
    if env_value is not None and env_value != '':
        return env_value
    return config.get(yaml_key, default)


def _positive_int(name: str, value: Any) -> int:
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        raise ValueError(f"{name} must be an integer, got '{value}'")
    if parsed < 1:
        raise ValueError(f"{name} must be a positive integer, got {parsed}")
    return parsed


def _non_negative_float(name: str, value: Any) -> float:
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        raise ValueError(f"{name} must be a number, got '{value}'")
    if parsed < 0:
        raise ValueError(f"{name} must not be negative, got {parsed}")
    return parsed


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in _TRUE_VALUES


def load_app_config(setup_logging: bool = True) -> AppConfig:
    """
    Load application configuration from the YAML file and environment variables.

    Args:
        setup_logging: Configure the package logger from the ``logging`` section.

    Returns:
        AppConfig: The loaded application configuration.

    Raises:
        ValueError: If a numeric setting or the failure policy is invalid.
    """
    project_root = _compute_project_root()

    _load_dotenv_files(project_root)

    config = _load_yaml_config(project_root)

    if setup_logging:
        logger = _setup_logger_from_config(config)
        _log_dotenv_status(logger, project_root)

    source_lang = str(_setting(config, 'source_lang', 'SOURCE_LANG', 'en')).strip()
    target_langs = [
        lang for lang in parse_language_list(_setting(config, 'languages', 'LANGUAGES', 'es,fr'))
        if lang != source_lang
    ]

    locale_dir = _setting(config, 'locale_dir', 'LOCALE_DIR', 'locale')
    cache_file_path = _setting(config, 'cache_file', 'CACHE_FILE', 'translation-cache.json')

    failure_policy = str(_setting(config, 'failure_policy', 'FAILURE_POLICY', 'raise')).strip()
    if failure_policy not in FAILURE_POLICIES:
        raise ValueError(f"failure_policy must be one of {FAILURE_POLICIES}, got '{failure_policy}'")

    return AppConfig(
        project_root=project_root,
        locale_dir=os.path.join(project_root, locale_dir),
        cache_file_path=os.path.join(project_root, cache_file_path),
        source_lang=source_lang,
        target_langs=target_langs,
        backend_url=_setting(config, 'backend_url', 'LT_URL', DEFAULT_BACKEND_URL),
        backend_api_key=_setting(config, 'backend_api_key', 'LT_API_KEY', None),
        request_timeout=_non_negative_float(
            'request_timeout', _setting(config, 'request_timeout', 'REQUEST_TIMEOUT', 30.0)),
        requests_per_minute=_positive_int(
            'requests_per_minute', _setting(config, 'requests_per_minute', 'REQUESTS_PER_MINUTE', 120)),
        concurrency=_positive_int('concurrency', _setting(config, 'concurrency', 'CONCURRENCY', 3)),
        batch_size=_positive_int('batch_size', _setting(config, 'batch_size', 'BATCH_SIZE', 25)),
        max_retries=_positive_int('max_retries', _setting(config, 'max_retries', 'MAX_RETRIES', 5)),
        retry_base_delay=_non_negative_float(
            'retry_base_delay_ms', _setting(config, 'retry_base_delay_ms', 'RETRY_BASE_DELAY_MS', 300)) / 1000,
        pacing_delay=_non_negative_float(
            'pacing_delay_ms', _setting(config, 'pacing_delay_ms', 'PACING_DELAY_MS', 120)) / 1000,
        failure_policy=failure_policy,
        dry_run=_as_bool(_setting(config, 'dry_run', 'DRY_RUN', False))
    )
