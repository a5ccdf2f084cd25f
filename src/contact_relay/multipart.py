# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Streaming ``multipart/form-data`` reader for the attachment route.

The request body is pushed chunk by chunk into the ``python-multipart``
parser. Parser callbacks are turned into :class:`FormEvent` values that are
handed out as soon as the chunk that produced them has been parsed, so
fields are consumed once, in arrival order, and attachment bytes are
counted while they arrive instead of after the whole body is buffered.
"""

from __future__ import annotations

from collections.abc import AsyncIterable, AsyncIterator, Callable
from dataclasses import dataclass, field
from enum import Enum

from python_multipart.exceptions import MultipartParseError
from python_multipart.multipart import MultipartParser, parse_options_header

from .attachments import AttachmentBudget
from .errors import MessageValidationError, UnknownFieldError
from .logger import get_logger
from .models import Attachment

logger = get_logger(__name__)

TEXT_FIELDS = ("mail", "subject", "text")
MAX_TEXT_FIELD_BYTES = 1024 * 1024


class EventKind(str, Enum):
    STARTED = "started"
    DATA = "data"
    FINISHED = "finished"


@dataclass
class FormPart:
    """Name and optional filename of a form part."""

    name: str
    filename: str | None = None


@dataclass
class FormEvent:
    kind: EventKind
    part: FormPart
    data: bytes = b""


@dataclass
class MailForm:
    """Fields and attachments read from a multipart mail form."""

    mail: str = ""
    subject: str = ""
    text: str = ""
    attachments: list[Attachment] = field(default_factory=list)


class MultipartStream:
    """Adapt the callback parser to an async iterator of :class:`FormEvent`.

    Attributes:
        boundary: Multipart boundary taken from the ``Content-Type`` header.
    """

    def __init__(self, content_type: str | None):
        """Read the boundary from ``content_type``.

        Raises:
            MessageValidationError: If the body is not multipart or has no boundary.
        """
        media_type, params = parse_options_header(content_type)
        boundary = params.get(b"boundary")
        if media_type.strip().lower() != b"multipart/form-data" or not boundary:
            raise MessageValidationError("Expected multipart/form-data with a boundary")
        self.boundary = boundary
        self._events: list[FormEvent] = []
        self._part: FormPart | None = None
        self._header_name = bytearray()
        self._header_value = bytearray()
        self._headers: dict[bytes, bytes] = {}

    def on_part_begin(self) -> None:
        self._headers = {}

    def on_header_field(self, data: bytes, start: int, end: int) -> None:
        self._header_name += data[start:end]

    def on_header_value(self, data: bytes, start: int, end: int) -> None:
        self._header_value += data[start:end]

    def on_header_end(self) -> None:
        self._headers[bytes(self._header_name).lower()] = bytes(self._header_value)
        self._header_name = bytearray()
        self._header_value = bytearray()

    def on_headers_finished(self) -> None:
        disposition, options = parse_options_header(self._headers.get(b"content-disposition"))
        name = options.get(b"name")
        if disposition.strip().lower() != b"form-data" or name is None:
            raise MessageValidationError("Form part without a field name")
        filename = options.get(b"filename")
        self._part = FormPart(
            name=name.decode("utf-8", errors="replace"),
            filename=filename.decode("utf-8", errors="replace") if filename is not None else None,
        )
        self._events.append(FormEvent(EventKind.STARTED, self._part))

    def on_part_data(self, data: bytes, start: int, end: int) -> None:
        if self._part is not None and end > start:
            self._events.append(FormEvent(EventKind.DATA, self._part, data[start:end]))

    def on_part_end(self) -> None:
        if self._part is not None:
            self._events.append(FormEvent(EventKind.FINISHED, self._part))
        self._part = None

    def _parser(self) -> MultipartParser:
        return MultipartParser(
            self.boundary,
            {
                "on_part_begin": self.on_part_begin,
                "on_part_data": self.on_part_data,
                "on_part_end": self.on_part_end,
                "on_header_field": self.on_header_field,
                "on_header_value": self.on_header_value,
                "on_header_end": self.on_header_end,
                "on_headers_finished": self.on_headers_finished,
            },
        )

    def _drain(self) -> list[FormEvent]:
        events, self._events = self._events, []
        return events

    async def events(self, chunks: AsyncIterable[bytes]) -> AsyncIterator[FormEvent]:
        """Parse ``chunks`` and yield events in arrival order.

        Raises:
            MessageValidationError: If the body is not valid multipart data.
        """
        parser = self._parser()
        try:
            async for chunk in chunks:
                parser.write(chunk)
                for event in self._drain():
                    yield event
            parser.finalize()
        except MultipartParseError as exc:
            raise MessageValidationError(f"Malformed multipart body: {exc}") from exc
        for event in self._drain():
            yield event


async def read_mail_form(
    content_type: str | None,
    chunks: AsyncIterable[bytes],
    max_attachment_bytes: int,
    screen: Callable[[str, str], None] | None = None,
) -> MailForm:
    """Read a mail form with ``mail``, ``subject``, ``text`` and file parts.

    ``mail``, ``subject`` and ``text`` are text fields even when sent with a
    filename; the first occurrence wins and repeats are discarded. Any other
    part with a filename is an attachment. Any other field name is refused
    as soon as its headers arrive.

    When ``subject`` and ``text`` are complete before the first attachment
    starts, ``screen(subject, text)`` is called at that point, so blocked
    content is refused before attachment bytes are read.

    Raises:
        UnknownFieldError: If a non-file part has an unexpected name.
        AttachmentTooLargeError: If attachments exceed ``max_attachment_bytes``.
        MessageValidationError: If the body is malformed or a text field is
            too large, or whatever ``screen`` raises.
    """
    form = MailForm()
    budget = AttachmentBudget(max_attachment_bytes)
    seen: set[str] = set()
    buffer = bytearray()
    keep = False
    is_file = False
    screened = screen is None

    async for event in MultipartStream(content_type).events(chunks):
        part = event.part
        if event.kind is EventKind.STARTED:
            buffer = bytearray()
            is_file = False
            if part.name in TEXT_FIELDS:
                keep = part.name not in seen
                seen.add(part.name)
            elif part.filename is not None:
                if not screened and {"subject", "text"} <= seen:
                    screen(form.subject, form.text)
                    screened = True
                keep = is_file = True
            else:
                logger.error("Unknown form data: %s", part.name)
                raise UnknownFieldError(part.name)
        elif event.kind is EventKind.DATA:
            if not keep:
                continue
            if is_file:
                budget.charge(len(event.data))
            elif len(buffer) + len(event.data) > MAX_TEXT_FIELD_BYTES:
                raise MessageValidationError(f"Form field {part.name!r} is too large")
            buffer += event.data
        elif keep:
            if is_file:
                if part.filename or buffer:
                    form.attachments.append(
                        Attachment(filename=part.filename or "attachment", content=bytes(buffer))
                    )
            else:
                setattr(form, part.name, buffer.decode("utf-8", errors="replace"))
            keep = False
    return form
