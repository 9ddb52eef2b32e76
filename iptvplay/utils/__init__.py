"""Shared helpers."""

from iptvplay.utils.logging_setup import log_exception, log_file_path, setup_logging

__all__ = [
    "log_exception",
    "log_file_path",
    "setup_logging",
]
