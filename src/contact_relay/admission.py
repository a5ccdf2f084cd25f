# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Ingress admission control: client IP extraction and per-IP rate limiting.

The client key of a request is its direct peer IP, except when the peer is
the configured trusted proxy: then the address forwarded by the proxy
(``Forwarded`` first, ``X-Forwarded-For`` second) is used. Forwarding
headers from any other peer are ignored, so clients cannot choose their own
key. Failing to determine the key rejects the request.

Each key owns a token bucket with capacity 1 that refills once every
``rate_limit_seconds``. A bucket that has refilled is indistinguishable
from a fresh one, so idle buckets are swept away and the map only holds
keys seen within the last interval.

Example:
    Guarding a route::

        admission = AdmissionControl(
            ClientIpExtractor(config.trusted_proxy),
            TokenBucketLimiter(config.rate_limit_seconds),
        )

        @app.post("/mail/{direction}/", dependencies=[Depends(admission)])
        async def post_mail(...): ...
"""

from __future__ import annotations

import asyncio
import ipaddress
import time
from collections.abc import Callable, Mapping
from typing import Any

from fastapi import Request

from .errors import ClientAddressError, RateLimitExceededError
from .logger import get_logger

logger = get_logger(__name__)

IPAddress = ipaddress.IPv4Address | ipaddress.IPv6Address


def parse_ip(value: str | None) -> IPAddress:
    """Parse an IP that may carry a port (``1.2.3.4:80``, ``[::1]:80``).

    Raises:
        ClientAddressError: If no IP address can be read from ``value``.
    """
    if not value:
        raise ClientAddressError("Could not extract client IP address from request")
    candidate = value.strip().strip('"')
    try:
        return ipaddress.ip_address(candidate)
    except ValueError:
        pass
    if candidate.startswith("["):
        host, _, _ = candidate[1:].partition("]")
    else:
        host, _, _ = candidate.rpartition(":")
    try:
        return ipaddress.ip_address(host)
    except ValueError:
        logger.error("Unparsable client address: %r", value)
        raise ClientAddressError("Could not extract client IP address from request") from None


def forwarded_for(headers: Mapping[str, str]) -> str | None:
    """Return the client address announced by the proxy, if any.

    The first ``for=`` element of ``Forwarded`` wins over the first entry
    of ``X-Forwarded-For``.
    """
    forwarded = headers.get("forwarded")
    if forwarded:
        first = forwarded.split(",", 1)[0]
        for pair in first.split(";"):
            name, sep, value = pair.strip().partition("=")
            if sep and name.strip().lower() == "for" and value.strip():
                return value.strip()
    x_forwarded = headers.get("x-forwarded-for")
    if x_forwarded:
        first = x_forwarded.split(",", 1)[0].strip()
        if first:
            return first
    return None


class ClientIpExtractor:
    """Determine the rate-limit key of a request.

    Attributes:
        trusted_proxy: The only peer allowed to forward client addresses.
    """

    def __init__(self, trusted_proxy: IPAddress | None = None):
        self.trusted_proxy = trusted_proxy

    def extract(self, peer: str | None, headers: Mapping[str, str]) -> str:
        """Return the client IP as a string.

        Raises:
            ClientAddressError: If the peer is unknown or unparsable, or
                the trusted proxy did not forward a usable address.
        """
        peer_ip = parse_ip(peer)
        if self.trusted_proxy is not None and peer_ip == self.trusted_proxy:
            real = forwarded_for(headers)
            if real is None:
                logger.error("Trusted proxy %s did not forward a client address", peer_ip)
                raise ClientAddressError("Could not extract real IP address from request")
            return str(parse_ip(real))
        return str(peer_ip)


class TokenBucketLimiter:
    """Per-key token buckets with capacity 1.

    A bucket is stored as the time at which its token is available again.
    A request is admitted when that time has passed, which pushes it one
    interval into the future.

    Attributes:
        interval: Seconds between two admitted requests of one key.
            Zero disables limiting.
    """

    def __init__(self, interval: float, clock: Callable[[], float] = time.monotonic):
        self.interval = float(interval)
        self._clock = clock
        self._ready_at: dict[str, float] = {}
        self._last_sweep = clock()
        self._lock = asyncio.Lock()

    @property
    def enabled(self) -> bool:
        return self.interval > 0

    def __len__(self) -> int:
        return len(self._ready_at)

    def _sweep(self, now: float) -> None:
        """Drop buckets that are full again."""
        expired = [key for key, ready_at in self._ready_at.items() if ready_at <= now]
        for key in expired:
            del self._ready_at[key]
        self._last_sweep = now
        if expired:
            logger.debug("Swept %d idle rate-limit bucket(s)", len(expired))

    async def acquire(self, key: str) -> bool:
        """Consume the token of ``key``; return False when none is left."""
        if not self.enabled:
            return True
        async with self._lock:
            now = self._clock()
            if now - self._last_sweep >= self.interval:
                self._sweep(now)
            ready_at = self._ready_at.get(key)
            if ready_at is not None and now < ready_at:
                return False
            self._ready_at[key] = now + self.interval
            return True


class AdmissionControl:
    """FastAPI dependency combining IP extraction and rate limiting."""

    def __init__(
        self,
        extractor: ClientIpExtractor,
        limiter: TokenBucketLimiter,
        metrics: Any | None = None,
    ):
        self.extractor = extractor
        self.limiter = limiter
        self.metrics = metrics

    async def admit(self, peer: str | None, headers: Mapping[str, str]) -> str | None:
        """Admit a request or raise.

        Returns:
            The client key, or None when rate limiting is disabled.

        Raises:
            ClientAddressError: If the client key cannot be determined.
            RateLimitExceededError: If the client has no token left.
        """
        if not self.limiter.enabled:
            return None
        key = self.extractor.extract(peer, headers)
        if not await self.limiter.acquire(key):
            logger.info("Rate limit exceeded for %s", key)
            if self.metrics is not None:
                self.metrics.inc_rate_limited()
            raise RateLimitExceededError(key)
        return key

    async def __call__(self, request: Request) -> str | None:
        peer = request.client.host if request.client else None
        return await self.admit(peer, request.headers)
