"""In-memory sliding window rate limiter."""

from __future__ import annotations

import time
from collections import defaultdict

from fastapi import Depends, HTTPException, Request, status

from campus_rag.api.auth import verify_token
from campus_rag.config.constants import ANONYMOUS_USER
from campus_rag.observability.logger import get_logger

logger = get_logger("rate_limiter")


class SlidingWindowRateLimiter:
    """Tracks request timestamps per key within a sliding window."""

    def __init__(self) -> None:
        self._requests: dict[str, list[float]] = defaultdict(list)

    def check(self, key: str, max_requests: int, window_seconds: int = 60) -> bool:
        """Return True if request is allowed, False if rate-limited."""
        now = time.monotonic()
        cutoff = now - window_seconds

        self._requests[key] = [t for t in self._requests[key] if t > cutoff]
        if len(self._requests[key]) >= max_requests:
            return False

        self._requests[key].append(now)
        return True


async def current_user(
    request: Request,
    token_payload: dict = Depends(verify_token),
) -> str:
    """FastAPI dependency: authenticated, rate-limited user id."""
    settings = request.app.state.settings
    user_id = token_payload.get("sub") or ANONYMOUS_USER

    if not request.app.state.rate_limiter.check(user_id, settings.rate_limit_requests_per_minute):
        logger.warning("rate_limited", user_id=user_id)
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Rate limit exceeded. Try again later.",
            headers={"Retry-After": "60"},
        )
    return user_id
