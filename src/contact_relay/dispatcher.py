# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""SMTP delivery with an optional filesystem archive copy.

Each call to :meth:`DeliveryDispatcher.dispatch` opens its own SMTP
connection, sends once and closes it. There is no pooling and no retry:
delivery is at-most-once and the caller decides what to do with a
:class:`~contact_relay.errors.DeliveryError`.

When an archive directory is configured and exists, the same message is
then written to ``<archive_dir>/<uuid>.eml``. The archive copy is
best-effort: a failed write is logged and reported in the result but never
undoes the SMTP send.
"""

from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass
from email.message import EmailMessage
from email.utils import formatdate, make_msgid
from pathlib import Path

import aiosmtplib

from .composer import ComposedMessage, parse_address
from .config import MailSettings
from .errors import ArchiveError, DeliveryError, NoRecipientsError
from .logger import get_logger

logger = get_logger(__name__)


@dataclass
class DispatchResult:
    """Outcome of a successful dispatch.

    Attributes:
        message_id: ``Message-ID`` stamped on the message.
        recipients: Envelope recipients the SMTP server accepted.
        archive_path: File holding the archive copy, when written.
        archive_error: Why the archive copy is missing, when it failed.
    """

    message_id: str
    recipients: tuple[str, ...]
    archive_path: Path | None = None
    archive_error: str | None = None


class DeliveryDispatcher:
    """Send composed messages through SMTP and mirror them to an archive.

    Attributes:
        settings: SMTP host, credentials and TLS mode.
        archive_dir: Directory for archive copies, or None.
    """

    def __init__(self, settings: MailSettings, archive_dir: Path | None = None):
        self.settings = settings
        self.archive_dir = archive_dir

    @property
    def archive_enabled(self) -> bool:
        return self.archive_dir is not None and self.archive_dir.is_dir()

    def _stamp(self, message: EmailMessage) -> str:
        """Add ``Date`` and ``Message-ID`` unless already present."""
        if "Date" not in message:
            message["Date"] = formatdate(localtime=True)
        if "Message-ID" not in message:
            domain = parse_address(self.settings.sender_address)[1].rpartition("@")[2]
            message["Message-ID"] = make_msgid(domain=domain)
        return str(message["Message-ID"])

    def _client(self) -> aiosmtplib.SMTP:
        # STARTTLS upgrades a plain connection, otherwise TLS from the first byte.
        return aiosmtplib.SMTP(
            hostname=self.settings.smtp,
            port=self.settings.port,
            use_tls=not self.settings.starttls,
            start_tls=self.settings.starttls,
            timeout=self.settings.timeout,
        )

    async def send_smtp(self, message: EmailMessage, recipients: tuple[str, ...]) -> tuple[str, ...]:
        """Deliver ``message`` once over a fresh SMTP connection.

        Returns:
            The recipients the server accepted. Refused ones are logged.

        Raises:
            DeliveryError: On connection or authentication errors, or when
                every recipient is refused.
        """
        envelope_sender = parse_address(self.settings.sender_address)[1]
        smtp = self._client()
        try:
            async with smtp:
                if self.settings.user and self.settings.password:
                    await smtp.login(self.settings.user, self.settings.password)
                refused, _ = await smtp.send_message(
                    message,
                    sender=envelope_sender,
                    recipients=list(recipients),
                )
        except (aiosmtplib.SMTPException, OSError, asyncio.TimeoutError) as exc:
            raise DeliveryError(f"Could not send mail: {exc}") from exc
        for address, response in refused.items():
            logger.warning("Recipient %s refused: %s", address, response)
        return tuple(address for address in recipients if address not in refused)

    async def archive(self, message: EmailMessage) -> Path:
        """Write ``message`` to a new file in the archive directory.

        Raises:
            ArchiveError: If the archive is disabled or the write fails.
        """
        if self.archive_dir is None:
            raise ArchiveError("Archive directory is not configured")
        path = self.archive_dir / f"{uuid.uuid4()}.eml"
        try:
            await asyncio.to_thread(path.write_bytes, message.as_bytes())
        except OSError as exc:
            raise ArchiveError(f"Could not archive mail to {path}: {exc}") from exc
        return path

    async def dispatch(self, composed: ComposedMessage) -> DispatchResult:
        """Send ``composed`` and archive it when the archive is enabled.

        Raises:
            NoRecipientsError: If the message resolved to no recipient.
            DeliveryError: If the SMTP send fails.
        """
        if not composed.recipients:
            raise NoRecipientsError(
                f"No recipients for direction {composed.direction!r}"
                if composed.direction
                else "Message has no recipients"
            )

        message_id = self._stamp(composed.message)
        accepted = await self.send_smtp(composed.message, composed.recipients)
        logger.info(
            "Delivery succeeded for message %s (%d recipient(s))",
            message_id,
            len(accepted),
        )
        result = DispatchResult(message_id=message_id, recipients=accepted)

        if not self.archive_enabled:
            if self.archive_dir is not None:
                logger.debug("Archive directory %s does not exist, skipping", self.archive_dir)
            return result
        try:
            result.archive_path = await self.archive(composed.message)
        except ArchiveError as exc:
            logger.error("Archive failed for message %s: %s", message_id, exc)
            result.archive_error = str(exc)
        return result
