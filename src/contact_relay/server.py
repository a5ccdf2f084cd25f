# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""ASGI application entry point for uvicorn.

This module provides a pre-configured FastAPI application that reads the
TOML configuration and initializes the relay service at import time.

Usage:
    uvicorn contact_relay.server:app --host 127.0.0.1 --port 8000

Environment variables:
    CONTACT_RELAY_CONFIG: Path of the TOML configuration file. When unset,
        the well-known locations are searched (see
        :func:`contact_relay.config.config_path`).
"""

from __future__ import annotations

from .api import create_app
from .config import load_config
from .logger import configure_logging, get_logger
from .service import RelayService

_logger = get_logger(__name__)

_config = load_config()
configure_logging(_config)
_service = RelayService(_config)
_logger.info("Loaded %d recipient group(s)", len(_config.mail.recipients))

app = create_app(_service)
