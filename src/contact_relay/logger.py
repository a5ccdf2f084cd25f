# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Logging utilities for the contact relay.

Modules obtain loggers through :func:`get_logger` and never install
handlers themselves. Handler setup happens once, at the entry point, through
:func:`configure_logging`.

Example:
    Typical usage in a module::

        from contact_relay.logger import get_logger

        logger = get_logger(__name__)
        logger.info("Message relayed")
"""

from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

from .config import BYTES_PER_MB, TRACE, RelayConfig

LOG_FORMAT = "[%(asctime)s] [%(levelname)s] %(message)s"
TRACE_FORMAT = "[%(asctime)s] [%(levelname)s] %(pathname)s:%(lineno)d %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def get_logger(name: str = "contact_relay") -> logging.Logger:
    """Return the logger bound to ``name``.

    Args:
        name: The logger name. Defaults to the package logger.

    Returns:
        A ``logging.Logger`` instance bound to the given name.
    """
    return logging.getLogger(name)


def log_path() -> Path:
    """Pick the log file location, preferring the system log directory."""
    system_dir = Path("/var/log/contact-relay")
    if system_dir.is_dir():
        return system_dir / "contact-relay.log"
    local_dir = Path("logs")
    if local_dir.is_dir():
        return local_dir / "contact-relay.log"
    return Path("contact-relay.log")


def configure_logging(config: RelayConfig) -> None:
    """Install root handlers according to the configuration.

    Console output is the default. With ``log_to_file`` enabled the records
    go to a size-rotated file instead, keeping ``log_keep_count`` backups of
    ``log_size_mb`` each. The ``trace`` level adds the source location.
    """
    fmt = TRACE_FORMAT if config.log_level == TRACE else LOG_FORMAT
    handlers: list[logging.Handler] = []
    if config.log_to_file:
        handlers.append(
            RotatingFileHandler(
                log_path(),
                maxBytes=config.log_size_mb * BYTES_PER_MB,
                backupCount=config.log_keep_count,
                encoding="utf-8",
            )
        )
    else:
        handlers.append(logging.StreamHandler())

    logging.basicConfig(
        level=config.logging_level,
        format=fmt,
        datefmt=DATE_FORMAT,
        handlers=handlers,
        force=True,
    )
    # Keep protocol chatter out of the relay log unless tracing.
    if config.log_level != TRACE:
        logging.getLogger("aiosmtplib").setLevel(max(config.logging_level, logging.WARNING))
