"""Rate limiting utilities for abuse-prone endpoints.

Provides in-memory rate limiting for code redemption, where an attacker
could otherwise brute-force codes. Uses a sliding window approach with
automatic cleanup of expired entries.
"""

import time
from collections import defaultdict
from collections.abc import Callable
from dataclasses import dataclass
from typing import TypeAlias

from fastapi import HTTPException, status

from app.config import settings


@dataclass
class RateLimitConfig:
    """Configuration for rate limiting."""

    requests: int  # Maximum requests allowed
    window_seconds: int  # Time window in seconds


REDEEM_LIMIT = RateLimitConfig(
    requests=settings.redeem_rate_limit_requests,
    window_seconds=settings.redeem_rate_limit_window_seconds,
)


# Type alias for clarity
ClientKey: TypeAlias = str
Timestamp: TypeAlias = float


class RateLimiter:
    """In-memory rate limiter with sliding window.

    Tracks request timestamps per client identifier and enforces
    configurable limits. Automatically cleans up expired entries to
    prevent memory bloat.

    Note: State is per instance and not authoritative. Several instances
    behind a load balancer each allow the full quota.
    """

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        # Map of client key -> endpoint_key -> list of timestamps
        self._requests: dict[ClientKey, dict[str, list[Timestamp]]] = defaultdict(
            lambda: defaultdict(list)
        )
        self._clock = clock
        self._last_cleanup = clock()
        self._cleanup_interval = 300  # Clean up every 5 minutes

    def _cleanup_expired(self, window_seconds: int) -> None:
        """Remove expired entries to prevent memory growth."""
        now = self._clock()

        # Only run cleanup periodically
        if now - self._last_cleanup < self._cleanup_interval:
            return

        cutoff = now - window_seconds
        clients_to_remove: list[ClientKey] = []

        for client, endpoints in self._requests.items():
            endpoints_to_remove: list[str] = []
            for endpoint, timestamps in endpoints.items():
                endpoints[endpoint] = [ts for ts in timestamps if ts > cutoff]
                if not endpoints[endpoint]:
                    endpoints_to_remove.append(endpoint)

            for endpoint in endpoints_to_remove:
                del endpoints[endpoint]

            if not endpoints:
                clients_to_remove.append(client)

        for client in clients_to_remove:
            del self._requests[client]

        self._last_cleanup = now

    def check_rate_limit(
        self,
        client: ClientKey,
        endpoint_key: str,
        config: RateLimitConfig,
    ) -> None:
        """Check if request is within rate limits.

        Args:
            client: Identifier of the caller (usually the client IP)
            endpoint_key: Unique identifier for the endpoint (e.g., "redeem")
            config: Rate limit configuration to apply

        Raises:
            HTTPException: 429 Too Many Requests if limit exceeded
        """
        now = self._clock()
        cutoff = now - config.window_seconds

        self._cleanup_expired(config.window_seconds)

        timestamps = self._requests[client][endpoint_key]
        recent_requests = [ts for ts in timestamps if ts > cutoff]

        if len(recent_requests) >= config.requests:
            retry_after = int(min(recent_requests) + config.window_seconds - now) + 1
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail="Too many attempts. Try again in a minute.",
                headers={"Retry-After": str(retry_after)},
            )

        recent_requests.append(now)
        self._requests[client][endpoint_key] = recent_requests

    def get_remaining(
        self,
        client: ClientKey,
        endpoint_key: str,
        config: RateLimitConfig,
    ) -> int:
        """Get remaining requests in current window."""
        now = self._clock()
        cutoff = now - config.window_seconds

        timestamps = self._requests.get(client, {}).get(endpoint_key, [])
        recent_count = sum(1 for ts in timestamps if ts > cutoff)

        return max(0, config.requests - recent_count)


# Singleton instance for application-wide use
rate_limiter = RateLimiter()
