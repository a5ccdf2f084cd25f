"""Tests for CLI commands."""

import pytest
from click.testing import CliRunner

from contact_relay.cli import main

CONFIG = """
listen = "127.0.0.1:8025"
max_attachment_size_mb = 0.001

[mail]
smtp = "smtp.example.org"
port = 465
user = "relay@example.org"
password = "secret"
block_words = ["viagra"]

[[mail.recipients]]
direction = "contact"
mails = ["team@example.org"]
"""

pytestmark = pytest.mark.usefixtures("restore_logging")


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "contact-relay.toml"
    path.write_text(CONFIG)
    return str(path)


@pytest.fixture
def runner():
    return CliRunner()


def test_send_direct_to_recipient(runner, config_file, smtp):
    result = runner.invoke(
        main,
        ["send", "--config", config_file, "-s", "Backup", "-i", "admin@example.org"],
        input="backup finished\n",
    )

    assert result.exit_code == 0, result.output
    assert "Mail sent to admin@example.org" in result.output
    message, sender, recipients = smtp.sent[0]
    assert recipients == ["admin@example.org"]
    assert message["Subject"] == "Backup"
    assert message.get_body(("plain",)).get_content().strip() == "backup finished"


def test_send_reads_headers_from_stdin(runner, config_file, smtp):
    stdin = "Subject: Hello\nTo: a@b.com\nMIME-Version: 1.0\n\nBody line one\nBody line two\n"

    result = runner.invoke(main, ["send", "--config", config_file, "-F", "Cron Daemon"], input=stdin)

    assert result.exit_code == 0, result.output
    message, _, recipients = smtp.sent[0]
    assert recipients == ["a@b.com"]
    assert message["Subject"] == "Hello"
    assert message["From"] == "Cron Daemon <relay@example.org>"
    assert message.get_body(("plain",)).get_content().strip() == "Body line one\nBody line two"


def test_send_with_direction_uses_group(runner, config_file, smtp):
    result = runner.invoke(main, ["send", "--config", config_file, "-d", "contact", "-s", "Hi"], input="text\n")

    assert result.exit_code == 0, result.output
    message, _, recipients = smtp.sent[0]
    assert recipients == ["team@example.org"]
    assert message["Reply-To"] == "relay@example.org"


def test_send_with_attachment(runner, config_file, smtp, tmp_path):
    attachment = tmp_path / "report.pdf"
    attachment.write_bytes(b"%PDF-1.4 tiny")

    result = runner.invoke(
        main,
        ["send", "--config", config_file, "-a", str(attachment), "admin@example.org"],
        input="see attached\n",
    )

    assert result.exit_code == 0, result.output
    files = list(smtp.sent[0][0].iter_attachments())
    assert [(p.get_filename(), p.get_content_type()) for p in files] == [("report.pdf", "application/pdf")]


def test_send_oversized_attachment_aborts(runner, config_file, smtp, tmp_path):
    attachment = tmp_path / "big.bin"
    attachment.write_bytes(b"x" * 4096)

    result = runner.invoke(
        main,
        ["send", "--config", config_file, "-a", str(attachment), "admin@example.org"],
        input="too big\n",
    )

    assert result.exit_code == 1
    assert "exceed" in result.output
    assert smtp.clients == []


def test_send_spam_aborts(runner, config_file, smtp):
    result = runner.invoke(main, ["send", "--config", config_file, "admin@example.org"], input="cheap viagra\n")

    assert result.exit_code == 1
    assert smtp.clients == []


def test_send_without_recipient_fails(runner, config_file, smtp):
    result = runner.invoke(main, ["send", "--config", config_file], input="no one to tell\n")

    assert result.exit_code == 1
    assert "No recipient" in result.output
    assert smtp.clients == []


def test_send_delivery_failure_exits_with_error(runner, config_file, smtp):
    smtp.error = OSError("connection refused")

    result = runner.invoke(main, ["send", "--config", config_file, "admin@example.org"], input="x\n")

    assert result.exit_code == 1
    assert "Could not send mail" in result.output


def test_missing_config_fails(runner, tmp_path):
    result = runner.invoke(main, ["check-config", "--config", str(tmp_path / "missing.toml")])

    assert result.exit_code == 1
    assert "not found" in result.output


def test_check_config_lists_groups(runner, config_file):
    result = runner.invoke(main, ["check-config", "--config", config_file])

    assert result.exit_code == 0, result.output
    assert "contact" in result.output
    assert "team@example.org" in result.output
    assert "Configuration OK" in result.output


def test_check_config_rejects_bad_block_word(runner, tmp_path):
    path = tmp_path / "bad.toml"
    path.write_text(CONFIG.replace('["viagra"]', '["(unclosed"]'))

    result = runner.invoke(main, ["check-config", "--config", str(path)])

    assert result.exit_code == 1
    assert "Invalid block word" in result.output


def test_serve_runs_uvicorn_on_listen_address(runner, config_file, monkeypatch):
    calls = []
    monkeypatch.setattr("uvicorn.run", lambda app, **kwargs: calls.append((app, kwargs)))

    result = runner.invoke(main, ["serve", "--config", config_file])

    assert result.exit_code == 0, result.output
    app, kwargs = calls[0]
    assert (kwargs["host"], kwargs["port"]) == ("127.0.0.1", 8025)
    assert app.title == "Contact Relay"


def test_serve_listen_option_overrides_config(runner, config_file, monkeypatch):
    calls = []
    monkeypatch.setattr("uvicorn.run", lambda app, **kwargs: calls.append(kwargs))

    result = runner.invoke(main, ["serve", "--config", config_file, "--listen", "0.0.0.0:9000"])

    assert result.exit_code == 0, result.output
    assert (calls[0]["host"], calls[0]["port"]) == ("0.0.0.0", 9000)


def test_serve_rejects_bad_listen(runner, config_file, monkeypatch):
    monkeypatch.setattr("uvicorn.run", lambda app, **kwargs: None)

    result = runner.invoke(main, ["serve", "--config", config_file, "--listen", "nowhere"])

    assert result.exit_code == 1
