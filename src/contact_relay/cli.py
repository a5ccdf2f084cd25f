# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Command-line interface for the contact relay.

The ``send`` command is sendmail compatible, so cron jobs and the ``mail``
utility can hand their output to the relay instead of a local MTA.

Usage:
    contact-relay serve --config /etc/contact-relay/contact-relay.toml
    contact-relay check-config
    contact-relay send -s "Backup report" admin@example.org < report.txt
    contact-relay send -d contact -a invoice.pdf < message.txt

Example:
    Using the relay as cron's mailer::

        MAILTO=admin@example.org
        # /etc/crontab, with /usr/sbin/sendmail pointing at
        #   contact-relay send "$@"
"""

from __future__ import annotations

import asyncio
import sys

import click
from rich.console import Console
from rich.table import Table

from .api import create_app
from .attachments import read_attachment_files
from .config import RelayConfig, config_path, load_config, parse_config
from .errors import ConfigurationError, RelayError
from .logger import configure_logging
from .models import Msg
from .service import RelayService
from .stdin_parser import parse_stdin

console = Console()
err_console = Console(stderr=True)


def print_error(message: str) -> None:
    """Print a formatted error message to stderr.

    Args:
        message: Error message text to display.
    """
    err_console.print(f"[red]Error:[/red] {message}")


def print_success(message: str) -> None:
    """Print a formatted success message with checkmark.

    Args:
        message: Success message text to display.
    """
    console.print(f"[green]✓[/green] {message}")


def _load(path: str | None) -> RelayConfig:
    """Load the configuration or exit with status 1."""
    try:
        return load_config(path)
    except ConfigurationError as e:
        print_error(e.message)
        sys.exit(1)


def _read_stdin() -> list[str]:
    stdin = click.get_text_stream("stdin")
    if stdin.isatty():
        return []
    return stdin.readlines()


config_option = click.option(
    "--config",
    "config_file",
    type=click.Path(dir_okay=False),
    default=None,
    help="Path of the TOML configuration file.",
)


@click.group()
@click.version_option(package_name="contact-relay")
def main() -> None:
    """contact-relay CLI - Relay contact forms and local mail over SMTP."""
    pass


@main.command()
@config_option
@click.option("--listen", default=None, help="Listen address as IP:PORT, overrides the configuration.")
def serve(config_file: str | None, listen: str | None) -> None:
    """Run the HTTP relay."""
    import uvicorn

    config = _load(config_file)
    if listen is not None:
        try:
            config = parse_config(config.model_dump() | {"listen": listen})
        except ConfigurationError as e:
            print_error(e.message)
            sys.exit(1)
    address = config.listen_address()
    if address is None:
        print_error("No listen address configured. Use --listen IP:PORT or set 'listen'.")
        sys.exit(1)
    configure_logging(config)
    try:
        service = RelayService(config)
    except ConfigurationError as e:
        print_error(e.message)
        sys.exit(1)

    host, port = address
    console.print("\n[bold cyan]Starting contact-relay[/bold cyan]")
    console.print(f"  Config:  {config_path(config_file)}")
    console.print(f"  Listen:  {host}:{port}")
    console.print()
    uvicorn.run(
        create_app(service),
        host=host,
        port=port,
        log_config=None,
        log_level=config.logging_level,
    )


@main.command()
@config_option
@click.option("-s", "--subject", default="", help="Subject, unless stdin carries a Subject: line.")
@click.option("-d", "--direction", default=None, help="Route to the recipient group of this direction.")
@click.option("-F", "--full-name", default=None, help="Display name of the sender.")
@click.option(
    "-a",
    "--attach",
    "attachments",
    multiple=True,
    type=click.Path(exists=True, dir_okay=False),
    help="File to attach. May be repeated.",
)
@click.option("-i", "ignore_dots", is_flag=True, help="Accepted for sendmail compatibility; ignored.")
@click.argument("recipient", required=False)
def send(
    config_file: str | None,
    subject: str,
    direction: str | None,
    full_name: str | None,
    attachments: tuple[str, ...],
    ignore_dots: bool,
    recipient: str | None,
) -> None:
    """Send one message read from stdin.

    Without a direction the message goes to RECIPIENT (or the To: line on
    stdin). With a direction it goes to that recipient group and RECIPIENT,
    when given, becomes the reply-to address.
    """
    config = _load(config_file)
    configure_logging(config)
    ingested = parse_stdin(_read_stdin(), subject=subject, recipient=recipient)

    if direction is None and not ingested.recipient:
        print_error("No recipient given. Pass RECIPIENT, a To: line on stdin, or --direction.")
        sys.exit(1)

    try:
        service = RelayService(config)
        service.screen(ingested.subject, ingested.body)
        files = read_attachment_files(attachments, config.max_attachment_bytes)
        msg = Msg(
            direction=direction,
            mail=ingested.recipient or config.mail.sender_address,
            subject=ingested.subject,
            text=ingested.body,
            attachments=files,
        )
        result = asyncio.run(service.relay(msg, sender_name=full_name))
    except RelayError as e:
        print_error(e.message)
        sys.exit(1)

    print_success(f"Mail sent to {', '.join(result.recipients)}")


@main.command("check-config")
@config_option
def check_config(config_file: str | None) -> None:
    """Validate the configuration and list the recipient groups."""
    config = _load(config_file)
    try:
        RelayService(config)
    except ConfigurationError as e:
        print_error(e.message)
        sys.exit(1)

    mail = config.mail
    table = Table(title="Recipient groups")
    table.add_column("Direction", style="cyan")
    table.add_column("Recipients")
    table.add_column("HTML", justify="center")
    for group in mail.recipients:
        html = "[green]✓[/green]" if group.allow_html else "[dim]-[/dim]"
        table.add_row(group.direction, ", ".join(group.mails), html)
    console.print(table)

    console.print(f"  SMTP:        {mail.smtp}:{mail.port} ({'STARTTLS' if mail.starttls else 'TLS'})")
    console.print(f"  Sender:      {mail.sender_address}")
    console.print(f"  Block words: {len(mail.block_words)}")
    print_success(f"Configuration OK: {config_path(config_file)}")


if __name__ == "__main__":
    main()
