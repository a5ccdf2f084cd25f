import asyncio

import pytest

from contact_relay.dispatcher import DispatchResult
from contact_relay.errors import (
    AddressError,
    ConfigurationError,
    DeliveryError,
    NoRecipientsError,
    SpamRejectedError,
)
from contact_relay.models import Attachment, Msg
from contact_relay.service import RelayService


def msg(direction="contact", subject="Question", text="Hello", **kwargs):
    return Msg(direction=direction, mail="visitor@example.org", subject=subject, text=text, **kwargs)


class SlowDispatcher:
    """Dispatcher that blocks until released."""

    def __init__(self):
        self.started = asyncio.Event()
        self.release = asyncio.Event()
        self.sent = []

    async def dispatch(self, composed):
        self.started.set()
        await self.release.wait()
        self.sent.append(composed)
        return DispatchResult(message_id="<1@example.org>", recipients=composed.recipients)


@pytest.mark.asyncio
async def test_relay_delivers_and_counts(config, smtp):
    service = RelayService(config)

    result = await service.relay(msg(attachments=[Attachment("a.pdf", b"%PDF-1.4")]))

    assert result.recipients == ("team@example.org",)
    message = smtp.sent[0][0]
    assert [p.get_filename() for p in message.iter_attachments()] == ["a.pdf"]
    assert b'relay_sent_total{direction="contact"} 1.0' in service.metrics.generate_latest()


@pytest.mark.asyncio
async def test_direct_relay_counts_under_direct_label(config, smtp):
    service = RelayService(config)

    await service.relay(Msg(direction=None, mail="admin@example.org", subject="cron", text="done"))

    assert smtp.sent[0][2] == ["admin@example.org"]
    assert b'relay_sent_total{direction="direct"} 1.0' in service.metrics.generate_latest()


@pytest.mark.asyncio
async def test_spam_is_rejected_before_smtp(config, smtp):
    service = RelayService(config)

    with pytest.raises(SpamRejectedError):
        await service.relay(msg(text="cheap viagra"))

    assert smtp.clients == []
    assert b'relay_rejected_total{reason="spam_rejected"} 1.0' in service.metrics.generate_latest()


@pytest.mark.asyncio
async def test_invalid_address_is_counted_as_rejection(config, smtp):
    service = RelayService(config)

    with pytest.raises(AddressError):
        await service.relay(Msg(direction="contact", mail="nobody", subject="s", text="t"))

    assert smtp.clients == []
    assert b'relay_rejected_total{reason="invalid_address"} 1.0' in service.metrics.generate_latest()


@pytest.mark.asyncio
async def test_unknown_direction_is_a_delivery_error(config, smtp):
    service = RelayService(config)

    with pytest.raises(NoRecipientsError):
        await service.relay(msg(direction="sales"))

    assert smtp.clients == []
    assert b'relay_errors_total{direction="sales"} 1.0' in service.metrics.generate_latest()


@pytest.mark.asyncio
async def test_archived_delivery_is_counted(make_config, smtp, tmp_path):
    service = RelayService(make_config(archive_dir=str(tmp_path)))

    result = await service.relay(msg())

    assert result.archive_path is not None
    assert b"relay_archived_total 1.0" in service.metrics.generate_latest()


def test_broken_block_word_fails_at_startup(make_config):
    with pytest.raises(ConfigurationError):
        RelayService(make_config(mail={"block_words": ["(unclosed"]}))


@pytest.mark.asyncio
async def test_deliver_propagates_errors(config, smtp):
    smtp.error = OSError("network down")
    service = RelayService(config)

    with pytest.raises(DeliveryError):
        await service.deliver(msg())

    assert service.in_flight == 0


@pytest.mark.asyncio
async def test_cancelled_caller_does_not_cancel_the_send(config):
    dispatcher = SlowDispatcher()
    service = RelayService(config, dispatcher=dispatcher)

    caller = asyncio.ensure_future(service.deliver(msg()))
    await dispatcher.started.wait()
    caller.cancel()
    with pytest.raises(asyncio.CancelledError):
        await caller

    assert service.in_flight == 1
    dispatcher.release.set()
    await service.drain()

    assert len(dispatcher.sent) == 1
    assert service.in_flight == 0
    assert b'relay_sent_total{direction="contact"} 1.0' in service.metrics.generate_latest()
