# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Parse sendmail-style input (as piped by cron or ``mail``) from stdin."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

TRANSPORT_HEADER_PREFIXES = (
    "From:",
    "To:",
    "Subject:",
    "MIME-Version:",
    "Content-Type:",
    "Content-Transfer-Encoding:",
    "X-Cron-Env:",
    "Auto-Submitted:",
    "Precedence:",
)


@dataclass
class IngestedMail:
    """Subject, recipient and body read from stdin."""

    subject: str
    recipient: str | None
    body: str


def parse_stdin(
    lines: Iterable[str],
    subject: str = "",
    recipient: str | None = None,
) -> IngestedMail:
    """Split stdin lines into subject, recipient and body.

    Header-like lines are never part of the body. ``Subject:`` replaces
    ``subject`` and ``To:`` replaces ``recipient`` when its value contains
    an ``@``. Blank lines before the first body line are dropped.

    Args:
        lines: Input lines, with or without trailing newlines.
        subject: Subject to use when stdin has no ``Subject:`` line.
        recipient: Recipient to use when stdin has no usable ``To:`` line.
    """
    body: list[str] = []
    for raw in lines:
        line = raw.rstrip("\r\n")
        if line.startswith(TRANSPORT_HEADER_PREFIXES):
            name, _, value = line.partition(":")
            value = value.strip()
            if name == "Subject":
                subject = value
            elif name == "To" and "@" in value:
                recipient = value
            continue
        if not body and not line.strip():
            continue
        body.append(line)
    return IngestedMail(subject=subject, recipient=recipient, body="\n".join(body))
