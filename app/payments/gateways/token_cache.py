"""
In-memory bearer token cache with single-flight refresh.

Each gateway client owns one TokenCache, handed in through its constructor.
The cache calls ``fetch_token`` only when no usable token is held; concurrent
callers that find the token stale wait on one lock, and only the first of
them performs the refresh.

Usage:
    cache = TokenCache(
        fetch_token=client.fetch_token,
        margin=timedelta(hours=1),
    )
    token = cache.get_token()

    # After a 401 with ``token``:
    cache.invalidate(token)
    token = cache.get_token()
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable

from django.utils import timezone

from payments.exceptions import GatewayAuthError, GatewayError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AccessToken:
    """
    A token as issued by a gateway auth endpoint.

    Attributes:
        value: Bearer token string
        expires_at: Expiry reported by the gateway (aware datetime)
    """

    value: str
    expires_at: datetime


class TokenCache:
    """
    Holds one bearer token and refreshes it shortly before it expires.

    A token is reused while ``now < expires_at - margin``. When the token's
    whole lifetime is shorter than twice the margin, half the lifetime is
    used as the margin instead so short-lived tokens are still reused.

    Args:
        fetch_token: Callable hitting the gateway auth endpoint
        margin: Safety window subtracted from the reported expiry
        clock: Returns the current aware datetime (injectable for tests)
        name: Gateway name for log context
    """

    def __init__(
        self,
        fetch_token: Callable[[], AccessToken],
        margin: timedelta = timedelta(hours=1),
        clock: Callable[[], datetime] = timezone.now,
        name: str = "",
    ):
        self._fetch_token = fetch_token
        self.margin = margin
        self._clock = clock
        self.name = name
        self._lock = threading.Lock()
        self._token: str | None = None
        self._expires_at: datetime | None = None

    @property
    def expires_at(self) -> datetime | None:
        """Adjusted expiry of the cached token (margin already subtracted)."""
        return self._expires_at

    def _cached(self) -> str | None:
        token, expires_at = self._token, self._expires_at
        if token is not None and expires_at is not None and self._clock() < expires_at:
            return token
        return None

    def get_token(self, force_refresh: bool = False) -> str:
        """
        Return a usable bearer token, fetching a new one when needed.

        Args:
            force_refresh: Discard the cached token first

        Raises:
            GatewayAuthError: The auth endpoint failed; the cache is left empty
        """
        if force_refresh:
            self.clear()
        else:
            token = self._cached()
            if token is not None:
                return token

        with self._lock:
            # Another caller may have refreshed while we waited for the lock
            token = self._cached()
            if token is not None:
                return token
            return self._refresh()

    def invalidate(self, token: str) -> None:
        """
        Drop ``token`` if it is still the cached one.

        Used after a 401/403: when several requests fail with the same stale
        token, only the first invalidation has an effect and the rest reuse
        the token that replaced it.
        """
        with self._lock:
            if self._token == token:
                self._token = None
                self._expires_at = None

    def clear(self) -> None:
        with self._lock:
            self._token = None
            self._expires_at = None

    def _refresh(self) -> str:
        logger.info("Refreshing gateway access token", extra={"gateway": self.name})
        try:
            issued = self._fetch_token()
        except GatewayError as exc:
            self._token = None
            self._expires_at = None
            if isinstance(exc, GatewayAuthError):
                raise
            raise GatewayAuthError(
                "Gateway authentication failed",
                code="GATEWAY_AUTH_FAILED",
                details={"reason": exc.error_code},
                http_status=exc.http_status,
                raw_response=exc.raw_response,
                gateway=self.name,
            ) from exc

        if not issued.value:
            self._token = None
            self._expires_at = None
            raise GatewayAuthError(
                "Gateway returned an empty access token",
                gateway=self.name,
            )

        now = self._clock()
        lifetime = issued.expires_at - now
        margin = min(self.margin, lifetime / 2) if lifetime > timedelta(0) else timedelta(0)
        self._token = issued.value
        self._expires_at = issued.expires_at - margin

        logger.info(
            "Gateway access token refreshed",
            extra={"gateway": self.name, "expires_at": self._expires_at.isoformat()},
        )
        return self._token
