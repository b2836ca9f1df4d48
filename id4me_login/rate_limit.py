"""
Login attempt throttling for POST /id4me/login.

Every attempt costs a DNS walk, an openid-configuration fetch and possibly a client registration
at a third-party authority, so attempts are counted per client IP in a sliding window held in
process memory. Clients whose window has emptied are dropped, so the map only holds IPs seen
within the last window.
"""
import math
import threading
import time
from collections import deque

WINDOW_SECONDS = 60

_attempts: dict[str, deque[float]] = {}
_lock = threading.Lock()


def _prune(attempts: deque[float], cutoff: float) -> None:
    while attempts and attempts[0] <= cutoff:
        attempts.popleft()


def _clean_idle(cutoff: float) -> None:
    for key in list(_attempts):
        _prune(_attempts[key], cutoff)
        if not _attempts[key]:
            del _attempts[key]


def check_and_consume(
    key: str,
    limit: int,
    window_seconds: int = WINDOW_SECONDS,
) -> tuple[bool, int | None]:
    """
    Record one attempt for key if it is under limit within the window.
    Returns (allowed, retry_after_seconds); retry_after is >= 1 when not allowed.
    """
    if limit <= 0:
        return True, None
    now = time.monotonic()
    with _lock:
        _clean_idle(now - window_seconds)
        attempts = _attempts.get(key)
        if attempts is not None and len(attempts) >= limit:
            retry_after = max(1, math.ceil(window_seconds - (now - attempts[0])))
            return False, retry_after
        _attempts.setdefault(key, deque()).append(now)
        return True, None


def check_login_attempt(ip: str | None, limit: int) -> tuple[bool, int | None]:
    """Throttle login initiation per client IP; requests without a known IP share one bucket."""
    return check_and_consume(f"login:{ip or 'unknown'}", limit)


def reset() -> None:
    """Forget all recorded attempts."""
    with _lock:
        _attempts.clear()
