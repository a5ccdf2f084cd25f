# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Configuration schema and loader for the contact relay.

The configuration is a TOML document validated with pydantic. Every model
is frozen: the loaded configuration is an immutable value that is handed to
each component's constructor and never reloaded while the process runs.

Example:
    A minimal ``contact-relay.toml``::

        log_level = "info"
        trusted_proxy = "127.0.0.1"
        rate_limit_seconds = 2

        [mail]
        smtp = "mail.example.org"
        port = 465
        user = "relay@example.org"
        password = "secret"
        starttls = false
        block_words = ["viagra", "casino"]

        [[mail.recipients]]
        direction = "contact"
        mails = ["team@example.org"]
        allow_html = false

    Loading it::

        config = load_config("contact-relay.toml")
        groups = config.mail.recipients
"""

from __future__ import annotations

import logging
import os
import tomllib
from pathlib import Path
from typing import Annotated, Any

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    IPvAnyAddress,
    ValidationError,
    field_validator,
    model_validator,
)

from .errors import ConfigurationError

CONFIG_ENV_VAR = "CONTACT_RELAY_CONFIG"
CONFIG_CANDIDATES = (
    Path("/etc/contact-relay/contact-relay.toml"),
    Path("contact-relay.toml"),
    Path("assets/contact-relay.toml"),
)
BYTES_PER_MB = 1024 * 1024

TRACE = "trace"
LOG_LEVELS = {
    TRACE: logging.DEBUG,
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "off": logging.CRITICAL + 10,
}


class RecipientGroup(BaseModel):
    """Recipients reached by messages tagged with ``direction``.

    Attributes:
        direction: Routing tag, unique among configured groups.
        mails: One or more destination addresses.
        allow_html: Whether HTML bodies are forwarded as HTML.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    direction: Annotated[str, Field(min_length=1, description="Routing tag")]
    mails: Annotated[
        tuple[str, ...],
        Field(min_length=1, description="Destination addresses"),
    ]
    allow_html: Annotated[
        bool,
        Field(default=False, description="Forward HTML markup as HTML"),
    ]


class MailSettings(BaseModel):
    """SMTP transport and routing settings from the ``[mail]`` table."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    smtp: Annotated[str, Field(min_length=1, description="SMTP relay host")]
    port: Annotated[int, Field(gt=0, lt=65536, description="SMTP relay port")]
    user: str
    password: str
    starttls: Annotated[
        bool,
        Field(default=False, description="Upgrade with STARTTLS instead of implicit TLS"),
    ]
    sender: Annotated[
        str | None,
        Field(default=None, description="From address, defaults to user"),
    ]
    timeout: Annotated[float, Field(default=30.0, gt=0)]
    block_words: tuple[str, ...] = ()
    recipients: tuple[RecipientGroup, ...] = ()

    @model_validator(mode="after")
    def unique_directions(self) -> MailSettings:
        """Reject configurations where two groups share a direction."""
        seen: set[str] = set()
        for group in self.recipients:
            if group.direction in seen:
                raise ValueError(f"duplicate recipient direction: {group.direction!r}")
            seen.add(group.direction)
        return self

    @property
    def sender_address(self) -> str:
        """Address used in the ``From`` header."""
        return self.sender or self.user


class RelayConfig(BaseModel):
    """Root configuration document."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    log_level: str = "info"
    log_to_file: bool = False
    log_size_mb: Annotated[int, Field(default=1, gt=0)]
    log_keep_count: Annotated[int, Field(default=10, ge=0)]
    listen: str | None = None
    trusted_proxy: IPvAnyAddress | None = None
    rate_limit_seconds: Annotated[
        float,
        Field(default=0.0, ge=0, description="Seconds per request and client, 0 disables"),
    ]
    max_attachment_size_mb: Annotated[float, Field(default=20.0, gt=0)]
    archive_dir: Path | None = None
    mail: MailSettings

    @field_validator("log_level")
    @classmethod
    def known_log_level(cls, v: str) -> str:
        level = v.strip().lower()
        if level not in LOG_LEVELS:
            raise ValueError(f"log level {v!r} does not exist")
        return level

    @field_validator("listen")
    @classmethod
    def listen_has_port(cls, v: str | None) -> str | None:
        if v is None:
            return v
        host, sep, port = v.rpartition(":")
        if not sep or not host or not port.isdigit():
            raise ValueError("listen must look like IP:PORT")
        return v

    @property
    def logging_level(self) -> int:
        return LOG_LEVELS[self.log_level]

    @property
    def max_attachment_bytes(self) -> int:
        return int(self.max_attachment_size_mb * BYTES_PER_MB)

    def listen_address(self) -> tuple[str, int] | None:
        """Split ``listen`` into host and port, or return None when unset."""
        if not self.listen:
            return None
        host, _, port = self.listen.rpartition(":")
        return host.strip("[]"), int(port)


def config_path(path: str | os.PathLike[str] | None = None) -> Path:
    """Resolve the configuration file to read.

    An explicit path wins, then the ``CONTACT_RELAY_CONFIG`` environment
    variable, then the first existing file among the well-known locations.
    The last candidate is returned even if missing so the error names it.
    """
    if path:
        return Path(path)
    env_path = os.getenv(CONFIG_ENV_VAR)
    if env_path:
        return Path(env_path)
    for candidate in CONFIG_CANDIDATES:
        if candidate.is_file():
            return candidate
    return CONFIG_CANDIDATES[-1]


def parse_config(data: dict[str, Any]) -> RelayConfig:
    """Validate a raw mapping into a :class:`RelayConfig`.

    Raises:
        ConfigurationError: If the mapping violates the schema.
    """
    try:
        return RelayConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e


def load_config(path: str | os.PathLike[str] | None = None) -> RelayConfig:
    """Read and validate the TOML configuration file.

    Raises:
        ConfigurationError: If the file is missing, unreadable, not valid
            TOML, or does not match the schema.
    """
    resolved = config_path(path)
    if not resolved.is_file():
        raise ConfigurationError(f"Config file not found: {resolved}")
    try:
        with open(resolved, "rb") as f:
            data = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigurationError(f"Invalid TOML in {resolved}: {e}") from e
    except OSError as e:
        raise ConfigurationError(f"Cannot read {resolved}: {e}") from e
    return parse_config(data)


__all__ = [
    "BYTES_PER_MB",
    "CONFIG_ENV_VAR",
    "MailSettings",
    "RecipientGroup",
    "RelayConfig",
    "config_path",
    "load_config",
    "parse_config",
]
