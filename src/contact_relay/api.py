# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""FastAPI application factory for the contact relay.

This module is the HTTP boundary of the relay. It includes:

- The two mail routes, ``POST`` with a JSON body and ``PUT`` with a
  streamed multipart form carrying attachments
- Admission control (client IP extraction and rate limiting) attached to
  the mail routes only
- Translation of relay errors into HTTP status codes
- Health check and Prometheus metrics exposure

Example:
    Creating and running the API application::

        from contact_relay.api import create_app
        from contact_relay.config import load_config
        from contact_relay.service import RelayService

        config = load_config()
        app = create_app(RelayService(config))

        uvicorn.run(app, host="127.0.0.1", port=8000)
"""

from __future__ import annotations

from collections.abc import AsyncGenerator, Callable
from contextlib import AbstractAsyncContextManager, asynccontextmanager

from fastapi import APIRouter, Depends, FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import PlainTextResponse, Response
from pydantic import ValidationError

from .admission import AdmissionControl, ClientIpExtractor, TokenBucketLimiter
from .errors import (
    AddressError,
    AdmissionError,
    AttachmentTooLargeError,
    DeliveryError,
    MessageValidationError,
    RateLimitExceededError,
    SpamRejectedError,
    UnknownFieldError,
)
from .logger import get_logger
from .models import MailPayload, Msg
from .multipart import read_mail_form
from .service import RelayService

logger = get_logger(__name__)

SEND_SUCCESS = "Send success!"
DELIVERY_FAILED = "Internal Server Error. Please try later."

VALIDATION_STATUS: tuple[tuple[type[MessageValidationError], int], ...] = (
    (SpamRejectedError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (AddressError, status.HTTP_409_CONFLICT),
    (UnknownFieldError, status.HTTP_409_CONFLICT),
    (AttachmentTooLargeError, status.HTTP_413_REQUEST_ENTITY_TOO_LARGE),
)


def validation_status(exc: MessageValidationError) -> int:
    """Return the HTTP status for a rejected message."""
    for error_type, code in VALIDATION_STATUS:
        if isinstance(exc, error_type):
            return code
    return status.HTTP_400_BAD_REQUEST


def build_admission(service: RelayService) -> AdmissionControl:
    """Create the admission dependency from the service configuration."""
    config = service.config
    return AdmissionControl(
        ClientIpExtractor(config.trusted_proxy),
        TokenBucketLimiter(config.rate_limit_seconds),
        metrics=service.metrics,
    )


def drain_lifespan(service: RelayService) -> Callable[[FastAPI], AbstractAsyncContextManager]:
    """Lifespan that waits for in-flight deliveries on shutdown."""

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        logger.info("Contact relay started")
        try:
            yield
        finally:
            if service.in_flight:
                logger.info("Waiting for %d in-flight delivery(ies)", service.in_flight)
            await service.drain()
            logger.info("Contact relay stopped")

    return lifespan


def create_app(
    service: RelayService,
    lifespan: Callable[[FastAPI], AbstractAsyncContextManager] | None = None,
    admission: AdmissionControl | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Parameters
    ----------
    service:
        The :class:`~contact_relay.service.RelayService` that screens,
        composes and delivers each message.
    lifespan:
        Optional lifespan context manager. Defaults to one that drains
        in-flight deliveries on shutdown.
    admission:
        Optional admission control. Defaults to one built from the service
        configuration.

    Returns
    -------
    FastAPI
        A configured application ready to be served by Uvicorn or any ASGI
        server.
    """
    api = FastAPI(title="Contact Relay", lifespan=lifespan or drain_lifespan(service))
    api.state.service = service
    admission = admission or build_admission(service)
    router = APIRouter(prefix="/mail", tags=["mail"], dependencies=[Depends(admission)])
    max_attachment_bytes = service.config.max_attachment_bytes

    @api.exception_handler(MessageValidationError)
    async def rejected_handler(request: Request, exc: MessageValidationError):
        return PlainTextResponse(exc.message, status_code=validation_status(exc))

    @api.exception_handler(DeliveryError)
    async def delivery_handler(request: Request, exc: DeliveryError):
        return PlainTextResponse(DELIVERY_FAILED, status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)

    @api.exception_handler(AdmissionError)
    async def admission_handler(request: Request, exc: AdmissionError):
        if isinstance(exc, RateLimitExceededError):
            return PlainTextResponse(exc.message, status_code=status.HTTP_429_TOO_MANY_REQUESTS)
        logger.warning("Refused request to %s: %s", request.url.path, exc)
        return PlainTextResponse(exc.message, status_code=status.HTTP_400_BAD_REQUEST)

    @api.get("/status")
    async def health():
        """Health check endpoint for load balancers and monitoring.

        Returns:
            dict: ``{"ok": True}``.
        """
        return {"ok": True}

    @api.get("/metrics")
    async def metrics():
        """Export Prometheus metrics in text exposition format."""
        return Response(content=service.metrics.generate_latest(), media_type="text/plain; version=0.0.4")

    @router.post("/{direction}/", response_class=PlainTextResponse)
    async def post_mail(direction: str, request: Request):
        """Relay a message given as JSON to the recipients of ``direction``.

        The body is decoded here, after admission control, so a throttled
        client is refused without its body being read.

        Args:
            direction: Recipient group tag taken from the path.
            request: Carries the JSON body with ``mail``, ``subject`` and
                ``text``. Other keys are ignored.

        Returns:
            PlainTextResponse: ``Send success!``.

        Raises:
            RequestValidationError: If the body is not a valid payload (422).
        """
        try:
            payload = MailPayload.model_validate_json(await request.body())
        except ValidationError as exc:
            raise RequestValidationError(exc.errors(include_url=False)) from exc
        await service.deliver(payload.to_msg(direction))
        return SEND_SUCCESS

    @router.put("/{direction}/", response_class=PlainTextResponse)
    async def put_mail(direction: str, request: Request):
        """Relay a multipart form with attachments to the recipients of ``direction``.

        The body is read as a stream. Parts named ``mail``, ``subject`` and
        ``text`` fill the message; other parts with a filename become
        attachments in arrival order; any other part is refused with 409.
        Subject and text are screened for blocked words before the first
        attachment is read when they arrive ahead of it.
        """
        form = await read_mail_form(
            request.headers.get("content-type"),
            request.stream(),
            max_attachment_bytes,
            screen=service.screen,
        )
        msg = Msg(
            direction=direction,
            mail=form.mail,
            subject=form.subject,
            text=form.text,
            attachments=form.attachments,
        )
        await service.deliver(msg)
        return SEND_SUCCESS

    api.include_router(router)
    return api


__all__ = ["create_app", "build_admission", "drain_lifespan", "validation_status"]
