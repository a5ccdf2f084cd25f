# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Message model shared by the HTTP and CLI ingestion paths.

:class:`Msg` is the canonical outbound message. Both boundaries build it
from their own inputs and hand it to :class:`contact_relay.service.RelayService`.
``direction`` and ``allow_html`` are never taken from client payloads: the
route or CLI flag sets ``direction`` and recipient resolution overwrites
``allow_html``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import NamedTuple

from pydantic import BaseModel, ConfigDict


class DeliveryMode(str, Enum):
    """How the recipients of a message are determined.

    Attributes:
        DIRECT: ``mail`` is the sole recipient.
        ROUTED: recipients come from the group matching ``direction``.
    """

    DIRECT = "direct"
    ROUTED = "direction-routed"


class Attachment(NamedTuple):
    """A binary attachment as received from the caller."""

    filename: str
    content: bytes


@dataclass
class Msg:
    """Outbound message before composition.

    Attributes:
        direction: Recipient group tag, None for direct mode.
        mail: Caller address. Reply-to when routed, recipient when direct.
        subject: Subject line, used verbatim.
        text: Body text, possibly containing HTML markup.
        allow_html: Set by recipient resolution, never by the caller.
        attachments: Attachments in the order they were received.
    """

    direction: str | None
    mail: str
    subject: str
    text: str
    allow_html: bool = False
    attachments: list[Attachment] = field(default_factory=list)


class MailPayload(BaseModel):
    """JSON body accepted by ``POST /mail/{direction}/``.

    Unknown keys are ignored, so a ``direction`` sent in the body has no
    effect on routing.
    """

    model_config = ConfigDict(extra="ignore")

    mail: str
    subject: str
    text: str

    def to_msg(self, direction: str) -> Msg:
        return Msg(direction=direction, mail=self.mail, subject=self.subject, text=self.text)


__all__ = ["Attachment", "DeliveryMode", "MailPayload", "Msg"]
