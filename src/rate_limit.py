"""
Request rate limiting for the API routers.

Counters live in a `limits` storage backend chosen by URI, so several
processes can share one window by pointing at the same Redis instance.
"""

import logging
import time
from typing import Optional

from fastapi import HTTPException, Request, status
from limits import parse
from limits.storage import storage_from_string
from limits.strategies import MovingWindowRateLimiter
from slowapi.util import get_remote_address

from config import Settings
from modules.auth.dependencies import get_token_subject

logger = logging.getLogger(__name__)


def get_signer_or_ip(request: Request) -> str:
    """Rate limit key: the authenticated wallet when a valid token is sent, else the client IP."""
    subject = get_token_subject(request)
    if subject:
        return f"signer:{subject}"
    return f"ip:{get_remote_address(request)}"


class RateLimiter:
    def __init__(self, limit: str = "100/15minutes", storage_uri: str = "memory://", enabled: bool = True):
        self.enabled = enabled
        self.item = parse(limit)
        self.storage = storage_from_string(storage_uri)
        self.strategy = MovingWindowRateLimiter(self.storage)

    @classmethod
    def from_settings(cls, settings: Settings) -> "RateLimiter":
        return cls(
            limit=settings.rate_limit,
            storage_uri=settings.rate_limit_storage_uri,
            enabled=settings.rate_limit_enabled,
        )

    def hit(self, key: str) -> bool:
        """Count one request for `key`; False when the window is already full."""
        if not self.enabled:
            return True
        return self.strategy.hit(self.item, key)

    def retry_after(self, key: str) -> int:
        reset_at, _ = self.strategy.get_window_stats(self.item, key)
        return max(1, int(reset_at - time.time()))

    def reset(self) -> None:
        self.storage.reset()


def enforce_rate_limit(request: Request) -> None:
    """Router dependency; 429 with Retry-After once the caller's window is used up."""
    limiter: Optional[RateLimiter] = getattr(request.app.state, "rate_limiter", None)
    if limiter is None:
        return

    key = get_signer_or_ip(request)
    if limiter.hit(key):
        return

    retry_after = limiter.retry_after(key)
    logger.warning("Rate limit exceeded for %s on %s", key, request.url.path)
    raise HTTPException(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        detail="Too many requests, please try again later",
        headers={"Retry-After": str(retry_after)},
    )
