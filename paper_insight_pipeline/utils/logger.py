"""
Logging configuration and utilities.
Provides centralized logging setup for the analysis scripts.
"""

import functools
import logging
import logging.handlers
import os
import sys
import time
from typing import Optional

from paper_insight_pipeline.config import LOG_LEVEL, LOG_FORMAT, LOG_FILE, LOG_MAX_BYTES, LOG_BACKUP_COUNT


def setup_logger(
    name: Optional[str] = None,
    level: str = None,
    log_file: str = None,
    console_output: bool = True,
    file_output: bool = True,
    max_bytes: int = None,
    backup_count: int = None
) -> logging.Logger:
    """
    Set up a logger with both console and file handlers.

    Args:
        name: Logger name (None configures the root logger)
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Path to log file
        console_output: Whether to output to console
        file_output: Whether to output to file
        max_bytes: Maximum bytes per log file (for rotation)
        backup_count: Number of backup files to keep

    Returns:
        Configured logger instance
    """
    if level is None:
        level = LOG_LEVEL
    if log_file is None:
        log_file = LOG_FILE
    if max_bytes is None:
        max_bytes = LOG_MAX_BYTES
    if backup_count is None:
        backup_count = LOG_BACKUP_COUNT

    numeric_level = getattr(logging, level.upper(), logging.INFO)

    logger = logging.getLogger(name)
    logger.setLevel(numeric_level)

    # Clear existing handlers to avoid duplicates on repeated setup
    logger.handlers.clear()

    formatter = logging.Formatter(LOG_FORMAT)

    if console_output:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(numeric_level)
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    if file_output and log_file:
        try:
            log_dir = os.path.dirname(log_file)
            if log_dir:
                os.makedirs(log_dir, exist_ok=True)

            file_handler = logging.handlers.RotatingFileHandler(
                log_file,
                maxBytes=max_bytes,
                backupCount=backup_count,
                encoding='utf-8'
            )
            file_handler.setLevel(numeric_level)
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)

        except OSError as e:
            # If file logging fails, continue with console only
            logger.warning(f"Could not set up file logging: {e}")

    return logger


def log_execution_time(func):
    """
    Decorator to log function execution time.

    Usage:
        @log_execution_time
        def run_analysis():
            ...
    """
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        start_time = time.time()

        logger = logging.getLogger(func.__module__)
        logger.info(f"Starting execution of {func.__name__}")

        try:
            result = func(*args, **kwargs)
            execution_time = time.time() - start_time
            logger.info(f"Completed execution of {func.__name__} in {execution_time:.2f} seconds")
            return result
        except Exception as e:
            execution_time = time.time() - start_time
            logger.error(f"Failed execution of {func.__name__} after {execution_time:.2f} seconds: {e}")
            raise

    return wrapper
