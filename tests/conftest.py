import logging
from typing import Any

import pytest

from contact_relay.config import RelayConfig, parse_config


def build_config(mail: dict[str, Any] | None = None, **top: Any) -> RelayConfig:
    settings: dict[str, Any] = {
        "smtp": "smtp.example.org",
        "port": 465,
        "user": "relay@example.org",
        "password": "secret",
        "block_words": ["viagra", "spam"],
        "recipients": [
            {"direction": "contact", "mails": ["team@example.org"]},
            {
                "direction": "support",
                "mails": ["support@example.org", "oncall@example.org"],
                "allow_html": True,
            },
        ],
    }
    settings.update(mail or {})
    return parse_config({"mail": settings, **top})


class SmtpRecorder:
    """Collects the dummy SMTP clients created during a test."""

    def __init__(self):
        self.clients = []
        self.error = None
        self.refused = {}

    @property
    def sent(self):
        return [item for client in self.clients for item in client.sent]


class DummySMTP:
    def __init__(self, recorder, hostname, port, use_tls=False, start_tls=False, timeout=None):
        self.recorder = recorder
        self.hostname = hostname
        self.port = port
        self.use_tls = use_tls
        self.start_tls = start_tls
        self.timeout = timeout
        self.login_credentials = None
        self.connected = False
        self.closed = False
        self.sent = []

    async def __aenter__(self):
        self.connected = True
        return self

    async def __aexit__(self, *exc_info):
        self.closed = True

    async def login(self, user, password):
        self.login_credentials = (user, password)

    async def send_message(self, message, sender=None, recipients=None):
        if self.recorder.error is not None:
            raise self.recorder.error
        self.sent.append((message, sender, recipients))
        refused = {r: self.recorder.refused[r] for r in recipients if r in self.recorder.refused}
        return refused, "OK"


@pytest.fixture
def make_config():
    return build_config


@pytest.fixture
def config():
    return build_config()


@pytest.fixture
def smtp(monkeypatch):
    recorder = SmtpRecorder()

    def factory(**kwargs):
        client = DummySMTP(recorder, **kwargs)
        recorder.clients.append(client)
        return client

    monkeypatch.setattr("contact_relay.dispatcher.aiosmtplib.SMTP", factory)
    return recorder


@pytest.fixture
def restore_logging():
    """Undo handlers installed by configure_logging."""
    root = logging.getLogger()
    level = root.level
    smtp_level = logging.getLogger("aiosmtplib").level
    yield
    for handler in root.handlers[:]:
        if not type(handler).__module__.startswith("_pytest"):
            root.removeHandler(handler)
            handler.close()
    root.setLevel(level)
    logging.getLogger("aiosmtplib").setLevel(smtp_level)
