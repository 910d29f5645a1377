# core/rate_limiter.py

from collections import defaultdict, deque
from threading import Lock
from typing import Callable, Deque, Dict, Optional, Tuple
import time

from fastapi import HTTPException, Request


# Invitation tokens are guessable only by brute force; keep the window tight.
INVITATION_MAX_REQUESTS = 10
INVITATION_WINDOW_SECONDS = 60

LOGIN_MAX_REQUESTS = 10
LOGIN_WINDOW_SECONDS = 300


class SlidingWindowLimiter:
    """
    Per-process sliding window: at most `max_requests` hits per identifier
    within the last `window_seconds`. Rejected hits are not recorded.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._hits: Dict[str, Deque[float]] = defaultdict(deque)
        self._lock = Lock()
        self._clock = clock

    def hit(self, identifier: str, max_requests: int, window_seconds: int) -> Tuple[bool, int]:
        now = self._clock()
        with self._lock:
            hits = self._hits[identifier]
            while hits and hits[0] <= now - window_seconds:
                hits.popleft()

            if len(hits) >= max_requests:
                return False, 0

            hits.append(now)
            return True, max_requests - len(hits)

    def reset(self):
        with self._lock:
            self._hits.clear()


_limiter = SlidingWindowLimiter()


def check_rate_limit(
    identifier: str,
    max_requests: int = 10,
    window_seconds: int = 60,
) -> Tuple[bool, int]:
    """
    Record one request for `identifier` and report whether it is allowed.

    Returns:
        Tuple of (allowed: bool, remaining: int)
    """
    return _limiter.hit(identifier, max_requests, window_seconds)


def reset_rate_limits():
    _limiter.reset()


def get_rate_limit_identifier(request: Request, user_id: Optional[str] = None) -> str:
    """
    Prefers user_id if available, otherwise the client IP
    (first X-Forwarded-For hop when behind a proxy).
    """
    if user_id:
        return f"user:{user_id}"

    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        return f"ip:{forwarded_for.split(',')[0].strip()}"

    return f"ip:{request.client.host if request.client else 'unknown'}"


def require_rate_limit(
    request: Request,
    identifier: Optional[str] = None,
    max_requests: int = 10,
    window_seconds: int = 60,
) -> int:
    """
    Raises HTTPException 429 when the identifier exceeded its window;
    otherwise returns the hits left in the current window.
    """
    allowed, remaining = check_rate_limit(
        identifier or get_rate_limit_identifier(request), max_requests, window_seconds
    )

    if not allowed:
        raise HTTPException(
            status_code=429,
            detail=f"Rate limit exceeded. Maximum {max_requests} requests per {window_seconds} seconds.",
            headers={
                "X-RateLimit-Limit": str(max_requests),
                "X-RateLimit-Window": str(window_seconds),
                "Retry-After": str(window_seconds),
            },
        )

    return remaining
