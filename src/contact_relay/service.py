# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Relay pipeline: screen, compose and dispatch a message.

:class:`RelayService` wires the components together from one
:class:`~contact_relay.config.RelayConfig`. Building it compiles the block
list, so a broken configuration fails here, at startup. Both boundaries
(HTTP and CLI) drive the pipeline through this class only.

Example:
    Relaying a message from code::

        service = RelayService(load_config())
        result = await service.relay(
            Msg(direction="contact", mail="me@example.org", subject="Hi", text="Hello")
        )
"""

from __future__ import annotations

import asyncio

from .config import RelayConfig
from .composer import MessageComposer
from .dispatcher import DeliveryDispatcher, DispatchResult
from .errors import DeliveryError, MessageValidationError, SpamRejectedError
from .filters import SpamFilter
from .logger import get_logger
from .models import Msg
from .prometheus import RelayMetrics
from .recipients import RecipientResolver

logger = get_logger(__name__)


class RelayService:
    """Coordinate spam screening, composition and delivery.

    Attributes:
        config: The immutable configuration the service was built from.
        spam_filter: Block-word filter compiled from the configuration.
        composer: Builds MIME messages.
        dispatcher: Sends and archives composed messages.
        metrics: Prometheus counters.
    """

    def __init__(
        self,
        config: RelayConfig,
        *,
        spam_filter: SpamFilter | None = None,
        composer: MessageComposer | None = None,
        dispatcher: DeliveryDispatcher | None = None,
        metrics: RelayMetrics | None = None,
    ):
        """Build the pipeline.

        Raises:
            ConfigurationError: If a block word is not a valid pattern.
        """
        self.config = config
        self.spam_filter = spam_filter or SpamFilter(config.mail.block_words)
        self.composer = composer or MessageComposer(
            config.mail.sender_address,
            RecipientResolver(config.mail.recipients),
        )
        self.dispatcher = dispatcher or DeliveryDispatcher(config.mail, config.archive_dir)
        self.metrics = metrics or RelayMetrics()
        self._in_flight: set[asyncio.Task[DispatchResult]] = set()

    @property
    def in_flight(self) -> int:
        """Number of deliveries still running."""
        return len(self._in_flight)

    def screen(self, subject: str, text: str) -> None:
        """Reject blocked content.

        Raises:
            SpamRejectedError: If subject or text contains a block word.
        """
        word = self.spam_filter.match(subject, text)
        if word is not None:
            logger.warning("Rejected message with blocked word %r (subject=%r)", word, subject)
            self.metrics.inc_rejected(SpamRejectedError.code)
            raise SpamRejectedError()

    async def relay(self, msg: Msg, sender_name: str | None = None) -> DispatchResult:
        """Screen, compose and dispatch ``msg``.

        Raises:
            MessageValidationError: If the message is rejected.
            DeliveryError: If delivery fails.
        """
        self.screen(msg.subject, msg.text)
        try:
            composed = self.composer.compose(msg, sender_name)
        except MessageValidationError as exc:
            logger.warning("Rejected message for direction %r: %s", msg.direction, exc)
            self.metrics.inc_rejected(exc.code)
            raise

        try:
            result = await self.dispatcher.dispatch(composed)
        except DeliveryError as exc:
            logger.error("Delivery failed for direction %r: %s", msg.direction, exc)
            self.metrics.inc_error(msg.direction)
            raise

        self.metrics.inc_sent(msg.direction)
        if result.archive_path is not None:
            self.metrics.inc_archived()
        return result

    def _forget(self, task: asyncio.Task[DispatchResult]) -> None:
        self._in_flight.discard(task)
        if not task.cancelled():
            # Failures are already logged by relay(); mark them retrieved.
            task.exception()

    async def deliver(self, msg: Msg, sender_name: str | None = None) -> DispatchResult:
        """Run :meth:`relay` so that cancelling the caller does not cancel it.

        A client that disconnects mid-request gets no answer, but its
        message still goes out.
        """
        task = asyncio.ensure_future(self.relay(msg, sender_name))
        self._in_flight.add(task)
        task.add_done_callback(self._forget)
        return await asyncio.shield(task)

    async def drain(self) -> None:
        """Wait for every in-flight delivery to finish."""
        if self._in_flight:
            await asyncio.gather(*self._in_flight, return_exceptions=True)
