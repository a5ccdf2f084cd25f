# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Content filters applied before a message is composed.

Two filters live here:

- :class:`SpamFilter` rejects messages whose subject or body contains a
  configured block word as a whole word. Patterns are compiled once, when
  the filter is built, so a malformed block word stops the process at
  startup instead of failing requests.
- :class:`ContentClassifier` decides whether a body is sent as HTML or as
  plain text, and strips markup when HTML is not allowed.

Example:
    Screening and rendering a message::

        spam = SpamFilter(["casino", "viagra"])
        if spam.is_blocked(subject, text):
            raise SpamRejectedError()

        kind, body = ContentClassifier().render(text, allow_html=False)
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from enum import Enum

from bs4 import BeautifulSoup, NavigableString, ParserRejectedMarkup

from .errors import ConfigurationError
from .logger import get_logger

logger = get_logger(__name__)


class ContentKind(str, Enum):
    """MIME subtype used for the text part of a message."""

    PLAIN = "plain"
    HTML = "html"


class SpamFilter:
    """Word-boundary block list matched against subject and body.

    Each block word is used as a regular expression fragment wrapped in
    ``\\b`` anchors, so ``spam`` matches ``"buy spam now"`` but not
    ``"spammer"``. Case sensitivity follows the literal as configured.

    Attributes:
        words: The configured block words, in order.
    """

    def __init__(self, words: Iterable[str]):
        """Compile every block word.

        Raises:
            ConfigurationError: If a word is empty or not a valid pattern.
        """
        self.words = tuple(words)
        self._patterns: list[tuple[str, re.Pattern[str]]] = []
        for word in self.words:
            if not word.strip():
                raise ConfigurationError("Empty block word in configuration")
            try:
                pattern = re.compile(rf"\b{word}\b")
            except re.error as e:
                raise ConfigurationError(f"Invalid block word {word!r}: {e}") from e
            self._patterns.append((word, pattern))

    def match(self, subject: str, text: str) -> str | None:
        """Return the first block word found in subject or text, if any."""
        for word, pattern in self._patterns:
            if pattern.search(subject) or pattern.search(text):
                return word
        return None

    def is_blocked(self, subject: str, text: str) -> bool:
        return self.match(subject, text) is not None


class ContentClassifier:
    """Decide between plain text and HTML bodies."""

    @staticmethod
    def _parse(text: str) -> BeautifulSoup | None:
        try:
            return BeautifulSoup(text, "html.parser")
        except ParserRejectedMarkup:
            return None

    @staticmethod
    def _is_plain(soup: BeautifulSoup) -> bool:
        children = list(soup.contents)
        if not children:
            return True
        return len(children) == 1 and type(children[0]) is NavigableString

    def classify(self, text: str, allow_html: bool) -> ContentKind:
        """Classify ``text`` as plain or HTML.

        The result is plain when HTML is not allowed, when the text cannot
        be parsed, or when the parsed fragment is a single text node without
        markup. Anything else is HTML.
        """
        if not allow_html:
            return ContentKind.PLAIN
        soup = self._parse(text)
        if soup is None or self._is_plain(soup):
            return ContentKind.PLAIN
        return ContentKind.HTML

    def render(self, text: str, allow_html: bool) -> tuple[ContentKind, str]:
        """Classify ``text`` and return the body to send.

        A plain body is the parsed text of the fragment: markup is removed
        and character references are decoded, so no tags or entities ever
        reach a plain-text part. Text that cannot be parsed is kept as is.
        """
        kind = self.classify(text, allow_html)
        if kind is ContentKind.HTML:
            return kind, text
        soup = self._parse(text)
        if soup is None:
            return kind, text
        if not self._is_plain(soup):
            logger.debug("Stripping markup from body of a plain-text message")
        return kind, soup.get_text()
