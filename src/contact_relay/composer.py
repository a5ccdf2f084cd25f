# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Build transport-ready email messages from :class:`~contact_relay.models.Msg`.

Composition is a pure transformation: given the same message and the same
configuration it produces the same :class:`email.message.EmailMessage`,
without touching the network or the filesystem. ``Date`` and
``Message-ID`` are left to the dispatcher.

Steps, in order:
    1. ``From`` from the configured sender, with an optional display name.
    2. Recipient resolution.
    3. ``To`` and ``Reply-To`` according to the delivery mode.
    4. Body classification, stripping markup when HTML is not allowed.
    5. ``multipart/mixed`` assembly with the attachments.
    6. ``Subject`` verbatim.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from email.message import EmailMessage
from email.utils import formataddr, parseaddr

from .attachments import AttachmentEncoder
from .errors import AddressError, MessageValidationError
from .filters import ContentClassifier, ContentKind
from .logger import get_logger
from .models import DeliveryMode, Msg
from .recipients import RecipientResolver

logger = get_logger(__name__)

ADDR_SPEC_PATTERN = re.compile(r'^[^@\s<>()\[\],;:"]+@[^@\s<>()\[\],;:"]+$')


def parse_address(value: str) -> tuple[str, str]:
    """Split ``value`` into display name and address, validating the address.

    Raises:
        AddressError: If no well-formed ``local@domain`` address is found.
    """
    if not value or "\r" in value or "\n" in value:
        raise AddressError(value)
    name, addr = parseaddr(value)
    if not addr or not ADDR_SPEC_PATTERN.match(addr):
        raise AddressError(value)
    return name, addr


def format_address(value: str, display_name: str | None = None) -> str:
    """Return a header-ready address, optionally replacing the display name."""
    name, addr = parse_address(value)
    name = display_name or name
    return formataddr((name, addr)) if name else addr


@dataclass
class ComposedMessage:
    """A message ready for the dispatcher.

    Attributes:
        message: The MIME message. ``To`` is absent when nothing resolved.
        recipients: Envelope recipients, possibly empty.
        mode: How the recipients were determined.
        content_kind: Subtype of the text part.
        direction: Direction the message was routed by, if any.
    """

    message: EmailMessage
    recipients: tuple[str, ...]
    mode: DeliveryMode
    content_kind: ContentKind
    direction: str | None = None


class MessageComposer:
    """Turn :class:`Msg` values into :class:`ComposedMessage` objects.

    Attributes:
        sender: Configured ``From`` address.
        resolver: Recipient resolver for direction-routed messages.
    """

    def __init__(
        self,
        sender: str,
        resolver: RecipientResolver,
        classifier: ContentClassifier | None = None,
        encoder: AttachmentEncoder | None = None,
    ):
        self.sender = sender
        self.resolver = resolver
        self.classifier = classifier or ContentClassifier()
        self.encoder = encoder or AttachmentEncoder()

    def compose(self, msg: Msg, sender_name: str | None = None) -> ComposedMessage:
        """Compose ``msg`` into a MIME message.

        ``msg.allow_html`` is overwritten with the resolved value. An empty
        recipient list is passed through; the dispatcher decides whether
        that is fatal.

        Args:
            msg: The message to compose.
            sender_name: Display name for ``From``, e.g. from ``sendmail -F``.

        Raises:
            AddressError: If the sender, the caller address or a configured
                recipient is malformed.
            MessageValidationError: If the subject cannot be used as a header.
        """
        message = EmailMessage()
        message["From"] = format_address(self.sender, sender_name)

        resolution = self.resolver.resolve(msg.direction, msg.mail)
        msg.allow_html = resolution.allow_html

        if resolution.mode is DeliveryMode.DIRECT:
            recipients = (parse_address(msg.mail)[1],)
            message["To"] = format_address(msg.mail)
        else:
            message["Reply-To"] = format_address(msg.mail)
            recipients = tuple(parse_address(address)[1] for address in resolution.recipients)
            if recipients:
                message["To"] = ", ".join(format_address(a) for a in resolution.recipients)

        kind, body = self.classifier.render(msg.text, msg.allow_html)
        message.set_content(body, subtype=kind.value)
        message.make_mixed()
        self.encoder.attach(message, msg.attachments)

        try:
            message["Subject"] = msg.subject
        except ValueError as e:
            raise MessageValidationError(f"Invalid subject: {e}") from e

        logger.debug(
            "Composed %s message (%s, %d attachment(s), %d recipient(s))",
            resolution.mode.value,
            kind.value,
            len(msg.attachments),
            len(recipients),
        )
        return ComposedMessage(
            message=message,
            recipients=recipients,
            mode=resolution.mode,
            content_kind=kind,
            direction=msg.direction,
        )
