# rate_limiter.py
"""Per-caller hourly/daily question limits.

Counters live in a CounterStore with a TTL equal to what is left of their
window. Reads and writes are not locked across requests: two requests from
the same caller that both read before either writes can both be admitted,
so a window may end one request over its maximum.

The IP whitelist compares a value the client sends itself. It is a
convenience for the site owner, not an authentication mechanism.
"""
import hashlib
import logging
import time
from typing import Callable, Optional

from counter_store import CounterStore
from messages import get_message
from models import RateLimitDecision
from settings import RateLimitConfig

logger = logging.getLogger(__name__)

HOUR = 60 * 60
DAY = 24 * HOUR
LOOPBACK_MARKERS = ("localhost", "127.0.0.1")


def fingerprint(caller_id: str, user_agent: str) -> str:
    return hashlib.sha256(f"{caller_id}{user_agent}".encode("utf-8")).hexdigest()


class NoopRateLimiter:
    def check_and_consume(self, caller_id: str, user_agent: str, ip_address: str = "",
                          referrer: str = "", language: str = "en") -> RateLimitDecision:
        return RateLimitDecision(allowed=True)


class RateLimiter:
    def __init__(self, config: RateLimitConfig, store: CounterStore,
                 clock: Callable[[], float] = time.time):
        self.config = config
        self.store = store
        self._clock = clock
        self._whitelist = frozenset(config.ip_whitelist)

    def check_and_consume(self, caller_id: str, user_agent: str, ip_address: str = "",
                          referrer: str = "", language: str = "en") -> RateLimitDecision:
        if ip_address and ip_address in self._whitelist:
            logger.info("Rate limit bypassed for whitelisted IP %s", ip_address)
            return RateLimitDecision(allowed=True)
        if self.config.localhost_bypass and referrer and any(m in referrer for m in LOOPBACK_MARKERS):
            logger.debug("Rate limit bypassed for loopback referrer %s", referrer)
            return RateLimitDecision(allowed=True)

        key = fingerprint(caller_id, user_agent)
        try:
            return self._check_and_consume(key, language)
        except Exception:
            # fail open: the chat stays available when the counter store is down
            logger.exception("Counter store failure, allowing request for %s", key[:12])
            return RateLimitDecision(allowed=True)

    def _check_and_consume(self, key: str, language: str) -> RateLimitDecision:
        hour_key = f"ratelimit:{key}:hour"
        day_key = f"ratelimit:{key}:day"
        hourly = self.store.get(hour_key)
        daily = self.store.get(day_key)

        if _count(hourly) >= self.config.max_per_hour:
            logger.info("Hourly limit reached for %s", key[:12])
            return RateLimitDecision(
                allowed=False,
                reason=get_message("hourly_limit", language, limit=self.config.max_per_hour),
            )
        if _count(daily) >= self.config.max_per_day:
            logger.info("Daily limit reached for %s", key[:12])
            return RateLimitDecision(
                allowed=False,
                reason=get_message("daily_limit", language, limit=self.config.max_per_day),
            )

        now = self._clock()
        self._increment(hour_key, hourly, HOUR, now)
        self._increment(day_key, daily, DAY, now)
        return RateLimitDecision(allowed=True)

    def _increment(self, key: str, counter: Optional[dict], window: int, now: float) -> None:
        if counter is None:
            self.store.put(key, {"count": 1, "window_start": now}, window)
            return
        start = counter.get("window_start", now)
        remaining = max(start + window - now, 1)
        self.store.put(key, {"count": _count(counter) + 1, "window_start": start}, remaining)


def _count(counter: Optional[dict]) -> int:
    if not counter:
        return 0
    return int(counter.get("count", 0))
