"""Root logger configuration for the iptvplay command line"""

import logging
import logging.handlers
import sys
from pathlib import Path

from iptvplay.config import LoggingConfig, get_config

CONSOLE_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# httpx logs every request at INFO; playlist fetches are already logged here
NOISY_LOGGERS = ("httpx", "httpcore")


def setup_logging(
    logging_config: LoggingConfig | None = None,
    level: str | None = None,
    log_to_console: bool = True,
    log_to_file: bool = False,
    log_directory: Path | None = None,
) -> logging.Logger:
    """
    Configure the root logger from a ``logging`` config section.

    Args:
        logging_config: Logging section; the global config's if None
        level: Overrides ``logging_config.level`` (the ``--log-level`` flag)
        log_to_console: Attach a stdout handler
        log_to_file: Attach a rotating file handler at ``logging_config.file``
        log_directory: Put the log file here instead of the configured directory

    Returns:
        Configured root logger
    """
    logging_config = logging_config or get_config().logging
    level_name = (level or logging_config.level).upper()
    numeric_level = getattr(logging, level_name, logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)
    root_logger.handlers.clear()

    if log_to_console:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(numeric_level)
        console_handler.setFormatter(logging.Formatter(CONSOLE_FORMAT, datefmt="%H:%M:%S"))
        root_logger.addHandler(console_handler)

    if log_to_file:
        log_path = log_file_path(logging_config, log_directory)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            filename=log_path,
            maxBytes=logging_config.max_bytes,
            backupCount=logging_config.backup_count,
            encoding="utf-8",
        )
        file_handler.setLevel(numeric_level)
        file_handler.setFormatter(logging.Formatter(logging_config.format, datefmt=DATE_FORMAT))
        root_logger.addHandler(file_handler)
        root_logger.debug(f"Log file: {log_path}")

    if numeric_level > logging.DEBUG:
        for name in NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

    root_logger.debug(f"iptvplay logging initialized - Level: {level_name}")
    return root_logger


def log_file_path(logging_config: LoggingConfig, log_directory: Path | None = None) -> Path:
    """Where the rotating log file goes; relative paths stay relative to the cwd."""
    configured = Path(logging_config.file)
    if log_directory is not None:
        return log_directory / configured.name
    return configured


def log_exception(
    logger: logging.Logger, exception: Exception, message: str = "Exception occurred"
):
    """Log an exception with full traceback."""
    logger.error(f"{message}: {exception!s}", exc_info=True)
