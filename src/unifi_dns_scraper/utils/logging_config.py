"""Logging configuration for the scraper.

Provides:
- Console output for watching cycles as they run
- Optional file-based logging with rotation
- Timing helpers so slow controllers and databases show up in the logs

Environment Variables:
    SCRAPER_LOG_LEVEL: DEBUG, INFO, WARNING, ERROR (default: INFO)
    SCRAPER_LOG_FILE: Path to log file (default: ~/.unifi-dns-scraper/scraper.log,
        empty string disables file logging)
    SCRAPER_LOG_MAX_SIZE: Max log file size in MB (default: 10)
    SCRAPER_LOG_BACKUPS: Number of backup files to keep (default: 5)

Usage:
    from unifi_dns_scraper.utils.logging_config import setup_logging, timed

    setup_logging()  # Call once at startup

    @timed("get_clients")
    async def get_clients(self, sites):
        ...

    with timed_section_sync("reconcile", entries=42):
        ...
"""
import asyncio
import functools
import logging
import os
import time
from contextlib import contextmanager
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional, Callable, Any

# Timing logger - separate from the main logger for easy filtering
perf_logger = logging.getLogger("unifi_dns_scraper.perf")

LOG_FORMAT = "%(asctime)s.%(msecs)03d | %(name)-25s | %(levelname)-7s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def get_log_level(verbose: bool = False) -> int:
    """Get log level from environment."""
    if verbose:
        return logging.DEBUG
    level_str = os.environ.get("SCRAPER_LOG_LEVEL", "INFO").upper()
    return getattr(logging, level_str, logging.INFO)


def get_log_file() -> Optional[Path]:
    """Get log file path from environment, None when file logging is off."""
    default_path = Path.home() / ".unifi-dns-scraper" / "scraper.log"
    path_str = os.environ.get("SCRAPER_LOG_FILE", str(default_path))
    if not path_str.strip():
        return None
    return Path(path_str).expanduser()


def setup_logging(verbose: bool = False) -> None:
    """Configure logging for the application.

    Sets up:
    - Console handler (INFO+ by default, respects SCRAPER_LOG_LEVEL)
    - File handler with rotation (DEBUG level - captures everything)
    - Timing logger that shares both handlers
    """
    log_level = get_log_level(verbose)
    log_file = get_log_file()
    max_size_mb = int(os.environ.get("SCRAPER_LOG_MAX_SIZE", "10"))
    backup_count = int(os.environ.get("SCRAPER_LOG_BACKUPS", "5"))

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)
    console_handler.setFormatter(formatter)

    root_logger = logging.getLogger("unifi_dns_scraper")
    root_logger.setLevel(logging.DEBUG)  # Capture all, handlers filter
    root_logger.handlers.clear()
    root_logger.addHandler(console_handler)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=max_size_mb * 1024 * 1024,
            backupCount=backup_count,
            encoding="utf-8"
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)

    root_logger.info(
        f"Logging initialized: level={logging.getLevelName(log_level)}, "
        f"file={log_file or 'disabled'}"
    )


def _log_timing(operation: str, start: float, error: Optional[Exception] = None, extra: str = "") -> None:
    elapsed = (time.perf_counter() - start) * 1000  # ms
    if error is None:
        msg = f"{operation:20s} | {elapsed:8.2f}ms | OK"
    else:
        msg = f"{operation:20s} | {elapsed:8.2f}ms | FAIL: {error}"
    if extra:
        msg += f" | {extra}"
    if error is None:
        perf_logger.info(msg)
    else:
        perf_logger.warning(msg)


def timed(operation: str):
    """Decorator to log execution time of sync/async functions.

    Usage:
        @timed("get_sites")
        async def get_sites(self):
            ...
    """
    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        async def async_wrapper(*args, **kwargs) -> Any:
            start = time.perf_counter()
            try:
                result = await func(*args, **kwargs)
            except Exception as e:
                _log_timing(operation, start, e)
                raise
            _log_timing(operation, start)
            return result

        @functools.wraps(func)
        def sync_wrapper(*args, **kwargs) -> Any:
            start = time.perf_counter()
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                _log_timing(operation, start, e)
                raise
            _log_timing(operation, start)
            return result

        if asyncio.iscoroutinefunction(func):
            return async_wrapper
        return sync_wrapper

    return decorator


@contextmanager
def timed_section_sync(operation: str, **extra):
    """Context manager for timing code sections.

    Usage:
        with timed_section_sync("write_hosts", path="/etc/hosts.unifi"):
            ...
    """
    start = time.perf_counter()
    extra_str = " | ".join(f"{k}={v}" for k, v in extra.items()) if extra else ""

    try:
        yield
    except Exception as e:
        _log_timing(operation, start, e, extra_str)
        raise
    _log_timing(operation, start, extra=extra_str)
