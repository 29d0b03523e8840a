import logging
import os
import sys
from logging import Handler

# tqdm owns the terminal while languages are being synchronized.
from tqdm import tqdm

LOGGER_NAME = "locale_sync"


class TqdmLoggingHandler(Handler):
    """
    Logging handler that writes through tqdm.write so that log lines
    do not break the per-language progress bar.
    """
    def __init__(self, level=logging.NOTSET):
        super().__init__(level)

    def emit(self, record):
        try:
            msg = self.format(record)
            tqdm.write(msg, file=sys.stderr)  # stderr, where tqdm draws the bar
            self.flush()
        except (KeyboardInterrupt, SystemExit):
            raise
        except Exception:
            self.handleError(record)


def setup_logger(log_level_str: str, log_file_path: str, log_to_console: bool) -> logging.Logger:
    """
    Set up the package logger.

    Every module logs through a child of the ``locale_sync`` logger, so the
    handlers installed here receive all messages of the pipeline. The record
    format carries the module name (``locale_sync.scheduler``, ...) so a line
    can be traced back to the stage that emitted it.

    Args:
        log_level_str: The logging level as a string (e.g., 'INFO', 'DEBUG').
        log_file_path: The path to the log file. An empty value disables file logging.
        log_to_console: Whether to also log to stderr.

    Returns:
        The configured logger instance.
    """
    logger = logging.getLogger(LOGGER_NAME)

    # Unknown level names fall back to INFO
    log_level = getattr(logging, log_level_str.upper(), logging.INFO)
    logger.setLevel(log_level)

    # Clear any existing handlers to prevent duplicate logging
    if logger.hasHandlers():
        logger.handlers.clear()

    # Keep pipeline output away from the root logger
    logger.propagate = False

    formatter = logging.Formatter('%(asctime)s - %(levelname)s - %(name)s - %(message)s')

    # --- File Handler ---
    if log_file_path:
        log_dir = os.path.dirname(log_file_path)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        file_handler = logging.FileHandler(log_file_path, encoding='utf-8')
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)
    # --- End File Handler ---

    # --- Console Handler ---
    if log_to_console:
        tqdm_handler = TqdmLoggingHandler()
        tqdm_handler.setFormatter(formatter)
        logger.addHandler(tqdm_handler)
    # --- End Console Handler ---

    return logger
