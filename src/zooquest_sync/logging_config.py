# SPDX-License-Identifier: MIT
"""Logging configuration for the zooquest sync layer.

This module provides a dual-logger system:
1. Detail Logger: Captures all debug/info logs to file only (for troubleshooting)
2. Status Logger: Outputs user-facing progress/status to console (stderr) and file

What each component writes:

- cache: hits, misses, lazy evictions and cleanup counts (detail); refresh
  hook failures (detail, with traceback)
- coordinator: fetches, joined and superseded in-flight fetches, responses
  discarded after an invalidation (detail); connectivity changes, stale
  fallbacks and writes deferred while offline (status)
- pending queue: enqueue, replace and drain progress (detail); dropped
  writes (status)
- transport: retries of collection fetches and failed health probes
  (detail)
- reachability monitor: probe failures (detail)
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path

# Logger names
DETAIL_LOGGER_NAME = "zooquest_sync.detail"
STATUS_LOGGER_NAME = "zooquest_sync.status"


class FlushingStreamHandler(logging.StreamHandler):  # type: ignore[type-arg]
    """Stream handler that flushes after every record."""

    def emit(self, record: logging.LogRecord) -> None:
        super().emit(record)
        # Only flush if the stream is not closed
        if self.stream and not self.stream.closed:
            self.flush()


def setup_logging(log_dir: Path | None = None) -> tuple[logging.Logger, logging.Logger]:
    """Configure dual logging system with detail and status loggers.

    Detail Logger:
        - Captures all DEBUG and above messages
        - Writes to file only
        - Used for cache hits/misses, fetches, queue activity, event delivery

    Status Logger:
        - Outputs user-facing progress and status information
        - Writes to both stderr (console) and file
        - Used for connectivity changes, stale fallbacks, dropped writes

    Args:
        log_dir: Directory for log file. If None, uses .zooquest-sync/ in current directory

    Returns:
        Tuple of (detail_logger, status_logger)
    """
    if log_dir is None:
        log_dir = Path.cwd() / ".zooquest-sync"

    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / "zooquest-sync.log"

    # Shared file handler, overwritten on each run
    file_handler = logging.FileHandler(log_file, mode="w", encoding="utf-8")
    file_handler.setLevel(logging.DEBUG)
    file_formatter = logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    file_handler.setFormatter(file_formatter)

    # ===== Detail Logger Setup =====
    detail_logger = logging.getLogger(DETAIL_LOGGER_NAME)
    detail_logger.setLevel(logging.DEBUG)
    for handler in detail_logger.handlers[:]:
        handler.close()
    detail_logger.handlers.clear()
    detail_logger.addHandler(file_handler)
    detail_logger.propagate = False

    # ===== Status Logger Setup =====
    status_logger = logging.getLogger(STATUS_LOGGER_NAME)
    status_logger.setLevel(logging.INFO)
    for handler in status_logger.handlers[:]:
        handler.close()
    status_logger.handlers.clear()

    console_handler = FlushingStreamHandler(sys.stderr)
    console_handler.setLevel(logging.INFO)
    console_handler.setFormatter(
        logging.Formatter("%(asctime)s %(message)s", datefmt="%H:%M:%S")
    )

    status_logger.addHandler(console_handler)
    status_logger.addHandler(file_handler)
    status_logger.propagate = False

    detail_logger.info(f"Logging initialized. Log file: {log_file}")
    detail_logger.info(f"Detail logger: {DETAIL_LOGGER_NAME}")
    detail_logger.info(f"Status logger: {STATUS_LOGGER_NAME}")

    return detail_logger, status_logger


def get_detail_logger() -> logging.Logger:
    """Get the detail logger for verbose technical logging.

    Use this logger for:
    - Cache hits, misses and evictions
    - Transport calls and responses
    - Queue and event-bus activity
    - Swallowed errors from best-effort work

    Returns:
        The detail logger instance
    """
    return logging.getLogger(DETAIL_LOGGER_NAME)


def get_status_logger() -> logging.Logger:
    """Get the status logger for user-facing progress and status.

    Use this logger for:
    - Connectivity transitions
    - Serving stale data after a failed fetch
    - Queued and dropped writes
    - Summary information

    Returns:
        The status logger instance
    """
    return logging.getLogger(STATUS_LOGGER_NAME)
