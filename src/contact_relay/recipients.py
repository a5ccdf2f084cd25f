# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Map a message direction onto the configured recipient groups."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from .config import RecipientGroup
from .logger import get_logger
from .models import DeliveryMode

logger = get_logger(__name__)


@dataclass(frozen=True)
class Resolution:
    """Outcome of recipient resolution.

    Attributes:
        recipients: Destination addresses, possibly empty.
        allow_html: Whether the body may be forwarded as HTML.
        mode: Direct or direction-routed delivery.
    """

    recipients: tuple[str, ...]
    allow_html: bool
    mode: DeliveryMode


class RecipientResolver:
    """Resolve recipients from a fixed set of recipient groups.

    The resolver is a pure function over its groups and the inputs: it
    holds no mutable state and performs no I/O.
    """

    def __init__(self, groups: Sequence[RecipientGroup]):
        self._groups = tuple(groups)

    @property
    def groups(self) -> tuple[RecipientGroup, ...]:
        return self._groups

    def resolve(self, direction: str | None, mail: str) -> Resolution:
        """Return the recipients for ``direction``.

        Without a direction, ``mail`` is the only recipient and HTML is
        allowed. With a direction, every group whose direction matches
        exactly contributes its addresses in declaration order, and
        ``allow_html`` is true if any matching group allows it. An unknown
        direction yields no recipients and ``allow_html=False``.
        """
        if direction is None:
            return Resolution(recipients=(mail,), allow_html=True, mode=DeliveryMode.DIRECT)

        recipients: list[str] = []
        allow_html = False
        for group in self._groups:
            if group.direction != direction:
                continue
            for address in group.mails:
                if address not in recipients:
                    recipients.append(address)
            allow_html = allow_html or group.allow_html

        if recipients:
            logger.debug("Direction %r resolved to %d recipient(s)", direction, len(recipients))
        else:
            logger.warning("No recipient group configured for direction %r", direction)
        return Resolution(
            recipients=tuple(recipients),
            allow_html=allow_html,
            mode=DeliveryMode.ROUTED,
        )
