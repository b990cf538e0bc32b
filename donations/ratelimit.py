"""Fixed-window request counters in the Django cache.

With ``REDIS_URL`` configured the cache is Redis, so a limit holds across
every worker process rather than per process.
"""

import hashlib
import logging
import time
from dataclasses import dataclass
from functools import wraps

from django.conf import settings
from django.core.cache import cache
from django.http import JsonResponse

logger = logging.getLogger(__name__)


def _now() -> float:
    return time.time()


@dataclass
class RateLimitResult:
    allowed: bool
    retry_after: int = 0


def hit(scope: str, identity: str, limit: int, window_seconds: int) -> RateLimitResult:
    """Count one request for ``identity`` within ``scope``."""
    now = _now()
    window = int(now // window_seconds)
    digest = hashlib.sha256(identity.encode("utf-8")).hexdigest()[:32]
    key = f"rl:{scope}:{digest}:{window}"
    # add() is a no-op when the key exists, so concurrent first hits don't reset it
    cache.add(key, 0, timeout=window_seconds)
    try:
        count = cache.incr(key)
    except ValueError:
        # evicted between add() and incr()
        cache.set(key, 1, timeout=window_seconds)
        count = 1
    if count > limit:
        retry_after = window_seconds - int(now % window_seconds)
        return RateLimitResult(False, max(retry_after, 1))
    return RateLimitResult(True)


def client_ip(request) -> str:
    """Peer address, or the X-Forwarded-For entry appended by our own proxies.

    With ``TRUSTED_PROXY_COUNT = n`` the n-th entry from the right is used;
    anything further left is client-supplied and ignored.
    """
    remote = request.META.get("REMOTE_ADDR", "") or "unknown"
    proxies = int(getattr(settings, "TRUSTED_PROXY_COUNT", 0) or 0)
    if proxies <= 0:
        return remote
    hops = [h.strip() for h in request.META.get("HTTP_X_FORWARDED_FOR", "").split(",") if h.strip()]
    if len(hops) < proxies:
        return remote
    return hops[-proxies]


def too_many(message: str, retry_after: int) -> JsonResponse:
    resp = JsonResponse({"message": message, "retryAfter": retry_after}, status=429)
    resp["Retry-After"] = str(retry_after)
    return resp


def ip_rate_limit(scope: str, setting_name: str, default: int, window_seconds: int, message: str):
    """Per-IP limit for a view; the limit is read from settings at call time."""

    def decorator(view):
        @wraps(view)
        def wrapper(request, *args, **kwargs):
            limit = getattr(settings, setting_name, default)
            result = hit(scope, client_ip(request), limit, window_seconds)
            if not result.allowed:
                logger.warning("Rate limit hit scope=%s ip=%s", scope, client_ip(request))
                return too_many(message, result.retry_after)
            return view(request, *args, **kwargs)

        return wrapper

    return decorator
