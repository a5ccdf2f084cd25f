# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Error taxonomy for the relay pipeline.

Lower layers (resolver, filters, composer, dispatcher) raise these typed
errors and never translate them into transport responses. The boundary
layers (:mod:`contact_relay.api` and :mod:`contact_relay.cli`) map each
family onto an HTTP status or a CLI exit.

Families:
    - ConfigurationError: fatal at startup, the process must not start.
    - MessageValidationError: rejected per request, no retry.
    - DeliveryError: SMTP or archive failure, reported per request.
    - AdmissionError: rejected at the edge before any composition work.
"""

from __future__ import annotations


class RelayError(Exception):
    """Base class for every error raised by the relay pipeline."""

    code = "relay_error"

    def __init__(self, message: str = "Relay error"):
        super().__init__(message)
        self.message = message


class ConfigurationError(RelayError):
    """Raised when the configuration cannot be loaded or is invalid."""

    code = "configuration_error"


class MessageValidationError(RelayError):
    """Raised when an inbound message is rejected before delivery."""

    code = "validation_error"


class AddressError(MessageValidationError):
    """Raised when a sender or recipient address is malformed."""

    code = "invalid_address"

    def __init__(self, address: str):
        super().__init__(f"Invalid mail address: {address!r}")
        self.address = address


class SpamRejectedError(MessageValidationError):
    """Raised when subject or text contains a blocked word."""

    code = "spam_rejected"

    def __init__(self, message: str = "Message contains blocked content"):
        super().__init__(message)


class UnknownFieldError(MessageValidationError):
    """Raised when a multipart form carries an unexpected non-file field."""

    code = "unknown_field"

    def __init__(self, name: str):
        super().__init__(f"Unknown form data: {name}")
        self.name = name


class AttachmentTooLargeError(MessageValidationError):
    """Raised when attachments exceed the configured size budget."""

    code = "attachment_too_large"

    def __init__(self, limit: int):
        super().__init__(f"Attachments exceed the maximum size of {limit} bytes")
        self.limit = limit


class DeliveryError(RelayError):
    """Raised when the SMTP transport fails to deliver a message.

    Delivery is at-most-once: the pipeline never retries on its own.
    """

    code = "delivery_error"


class NoRecipientsError(DeliveryError):
    """Raised when a composed message has no recipient to deliver to."""

    code = "no_recipients"

    def __init__(self, message: str = "Message has no recipients"):
        super().__init__(message)


class ArchiveError(DeliveryError):
    """Raised when writing the archive copy fails."""

    code = "archive_error"


class AdmissionError(RelayError):
    """Raised when a request is refused before it reaches the pipeline."""

    code = "admission_error"


class ClientAddressError(AdmissionError):
    """Raised when the client IP cannot be determined."""

    code = "client_address_error"


class RateLimitExceededError(AdmissionError):
    """Raised when a client exceeds its request budget."""

    code = "rate_limited"

    def __init__(self, key: str):
        super().__init__("Too many requests")
        self.key = key


__all__ = [
    "AddressError",
    "AdmissionError",
    "ArchiveError",
    "AttachmentTooLargeError",
    "ClientAddressError",
    "ConfigurationError",
    "DeliveryError",
    "MessageValidationError",
    "NoRecipientsError",
    "RateLimitExceededError",
    "RelayError",
    "SpamRejectedError",
    "UnknownFieldError",
]
