# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Attachment type sniffing, size budgeting and MIME packaging.

The MIME type of an attachment is detected from its leading bytes, never
from the caller-supplied filename. Content that matches no known signature
is sent as ``application/octet-stream``; unknown types are never rejected.

Size limits are enforced with :class:`AttachmentBudget`, which is charged
as bytes arrive so an oversized upload is stopped before it is fully
buffered.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from email.message import EmailMessage
from pathlib import Path

from .errors import AttachmentTooLargeError
from .logger import get_logger
from .models import Attachment

logger = get_logger(__name__)

DEFAULT_MIME = ("application", "octet-stream")

# (offset, signature, mime type), checked in order.
MAGIC_SIGNATURES: tuple[tuple[int, bytes, str], ...] = (
    (0, b"%PDF-", "application/pdf"),
    (0, b"\x89PNG\r\n\x1a\n", "image/png"),
    (0, b"\xff\xd8\xff", "image/jpeg"),
    (0, b"GIF87a", "image/gif"),
    (0, b"GIF89a", "image/gif"),
    (0, b"II*\x00", "image/tiff"),
    (0, b"MM\x00*", "image/tiff"),
    (0, b"\x00\x00\x01\x00", "image/x-icon"),
    (8, b"WEBP", "image/webp"),
    (8, b"WAVE", "audio/wav"),
    (8, b"AVI ", "video/x-msvideo"),
    (4, b"ftypheic", "image/heic"),
    (4, b"ftyp", "video/mp4"),
    (0, b"\x1aE\xdf\xa3", "video/webm"),
    (0, b"ID3", "audio/mpeg"),
    (0, b"OggS", "audio/ogg"),
    (0, b"fLaC", "audio/flac"),
    (0, b"PK\x03\x04", "application/zip"),
    (0, b"\x1f\x8b", "application/gzip"),
    (0, b"BZh", "application/x-bzip2"),
    (0, b"\xfd7zXZ\x00", "application/x-xz"),
    (0, b"7z\xbc\xaf\x27\x1c", "application/x-7z-compressed"),
    (0, b"Rar!\x1a\x07", "application/vnd.rar"),
    (0, b"\xd0\xcf\x11\xe0\xa1\xb1\x1a\xe1", "application/x-ole-storage"),
    (0, b"{\\rtf", "text/rtf"),
    (0, b"%!PS", "application/postscript"),
    (0, b"wOFF", "font/woff"),
    (0, b"wOF2", "font/woff2"),
    (0, b"\x7fELF", "application/x-executable"),
    (0, b"MZ", "application/vnd.microsoft.portable-executable"),
    (0, b"BM", "image/bmp"),
)


class AttachmentBudget:
    """Running byte counter with a hard ceiling.

    Attributes:
        limit: Maximum number of bytes allowed in total.
        used: Bytes charged so far.
    """

    def __init__(self, limit: int):
        self.limit = limit
        self.used = 0

    def charge(self, size: int) -> None:
        """Add ``size`` bytes to the total.

        Raises:
            AttachmentTooLargeError: If the total exceeds the limit.
        """
        self.used += size
        if self.used > self.limit:
            raise AttachmentTooLargeError(self.limit)


class AttachmentEncoder:
    """Detect attachment types and add them to a message."""

    @staticmethod
    def sniff(content: bytes) -> tuple[str, str]:
        """Return ``(maintype, subtype)`` for ``content``.

        Riff containers are only matched when they start with ``RIFF``.
        """
        for offset, signature, mime in MAGIC_SIGNATURES:
            if offset == 8 and not content.startswith(b"RIFF"):
                continue
            if content[offset:offset + len(signature)] == signature:
                maintype, _, subtype = mime.partition("/")
                return maintype, subtype
        return DEFAULT_MIME

    def attach(self, message: EmailMessage, attachments: Sequence[Attachment]) -> None:
        """Append one sub-part per attachment, preserving order.

        ``message`` must already be ``multipart/mixed``.
        """
        for attachment in attachments:
            maintype, subtype = self.sniff(attachment.content)
            logger.debug(
                "Attaching %s as %s/%s (%d bytes)",
                attachment.filename,
                maintype,
                subtype,
                len(attachment.content),
            )
            message.add_attachment(
                attachment.content,
                maintype=maintype,
                subtype=subtype,
                filename=attachment.filename,
            )


def read_attachment_files(paths: Iterable[str | Path], limit: int) -> list[Attachment]:
    """Load attachment files from disk under a total size budget.

    The declared file size is charged before the file is read, so an
    oversized file is never loaded into memory.

    Raises:
        AttachmentTooLargeError: If the files exceed ``limit`` bytes in total.
        OSError: If a file cannot be read.
    """
    budget = AttachmentBudget(limit)
    attachments: list[Attachment] = []
    for raw_path in paths:
        path = Path(raw_path)
        budget.charge(path.stat().st_size)
        attachments.append(Attachment(filename=path.name, content=path.read_bytes()))
    return attachments
