import json

import pytest

from counter_store import CounterStore, InMemoryCounterStore, RedisCounterStore
from rate_limiter import DAY, HOUR, NoopRateLimiter, RateLimiter, fingerprint
from settings import RateLimitConfig

AGENT = "Mozilla/5.0 (X11; Linux x86_64)"


@pytest.fixture
def limiter(rate_limit_config, store, clock):
    return RateLimiter(rate_limit_config, store, clock=clock)


def consume(limiter, caller="user_1", **kwargs):
    kwargs.setdefault("user_agent", AGENT)
    return limiter.check_and_consume(caller, **kwargs)


def test_fingerprint_is_deterministic():
    assert fingerprint("user_1", AGENT) == fingerprint("user_1", AGENT)
    assert fingerprint("user_1", AGENT) != fingerprint("user_2", AGENT)
    assert fingerprint("user_1", AGENT) != fingerprint("user_1", "curl/8.0")


def test_hourly_limit_is_per_fingerprint(limiter):
    for _ in range(3):
        assert consume(limiter).allowed

    denied = consume(limiter)
    assert not denied.allowed
    assert "3 questions per hour" in denied.reason

    assert consume(limiter, caller="user_2").allowed


def test_hourly_limit_message_is_localized(limiter):
    for _ in range(3):
        consume(limiter, language="ru")

    denied = consume(limiter, language="ru")
    assert not denied.allowed
    assert "3 вопросов в час" in denied.reason


def test_hourly_window_expires(limiter, clock):
    for _ in range(3):
        consume(limiter)
    assert not consume(limiter).allowed

    clock.advance(HOUR + 1)
    assert consume(limiter).allowed


def test_hourly_window_is_fixed_from_first_request(limiter, clock):
    consume(limiter)
    clock.advance(HOUR - 10)
    consume(limiter)
    consume(limiter)
    assert not consume(limiter).allowed

    # the window started with the first request, later increments don't extend it
    clock.advance(11)
    assert consume(limiter).allowed


def test_daily_limit(limiter, clock):
    for _ in range(3):
        consume(limiter)
    clock.advance(HOUR + 1)
    for _ in range(2):
        assert consume(limiter).allowed

    denied = consume(limiter)
    assert not denied.allowed
    assert "5 questions per day" in denied.reason

    clock.advance(DAY)
    assert consume(limiter).allowed


def test_denied_requests_are_not_counted(limiter, store):
    for _ in range(5):
        consume(limiter)

    key = f"ratelimit:{fingerprint('user_1', AGENT)}:hour"
    assert store.get(key)["count"] == 3


def test_whitelisted_ip_ignores_counters(limiter, store):
    key = fingerprint("user_1", AGENT)
    store.put(f"ratelimit:{key}:hour", {"count": 3, "window_start": 0}, HOUR)

    decision = consume(limiter, ip_address="172.16.255.61")
    assert decision.allowed
    assert not consume(limiter, ip_address="10.0.0.1").allowed


@pytest.mark.parametrize("referrer", ["http://localhost:5500/index.html", "http://127.0.0.1:8080/"])
def test_loopback_referrer_bypass(limiter, referrer):
    for _ in range(3):
        consume(limiter)

    assert consume(limiter, referrer=referrer).allowed
    assert not consume(limiter, referrer="https://portfolio.example.com/").allowed


def test_loopback_bypass_can_be_disabled(store, clock):
    config = RateLimitConfig(max_per_hour=1, max_per_day=5, localhost_bypass=False)
    limiter = RateLimiter(config, store, clock=clock)

    assert consume(limiter, referrer="http://localhost/").allowed
    assert not consume(limiter, referrer="http://localhost/").allowed


class BrokenStore(CounterStore):
    def get(self, key):
        raise ConnectionError("cache unreachable")

    def put(self, key, value, ttl):
        raise ConnectionError("cache unreachable")


def test_store_failure_fails_open(rate_limit_config):
    limiter = RateLimiter(rate_limit_config, BrokenStore())

    for _ in range(10):
        assert consume(limiter).allowed


def test_noop_limiter_always_allows():
    limiter = NoopRateLimiter()
    for _ in range(100):
        assert limiter.check_and_consume("user_1", AGENT).allowed


def test_in_memory_store_expires_entries(clock):
    store = InMemoryCounterStore(clock=clock)
    store.put("k", {"count": 1}, 10)

    assert store.get("k") == {"count": 1}
    clock.advance(10)
    assert store.get("k") is None
    assert len(store) == 0


def test_in_memory_store_sweeps_expired_callers(rate_limit_config, store, clock):
    limiter = RateLimiter(rate_limit_config, store, clock=clock)
    for i in range(1000):
        consume(limiter, caller=f"visitor_{i}")
    assert len(store) == 2000

    clock.advance(DAY * 30)
    consume(limiter, caller="late_visitor")

    assert len(store) == 2


def test_in_memory_store_sweep_keeps_live_entries(clock):
    store = InMemoryCounterStore(clock=clock)
    store.put("short", {"count": 1}, 10)
    store.put("long", {"count": 1}, DAY)

    clock.advance(InMemoryCounterStore.SWEEP_INTERVAL)
    store.put("new", {"count": 1}, 10)

    assert len(store) == 2
    assert store.get("long") == {"count": 1}


class FakeRedis:
    def __init__(self):
        self.values = {}
        self.set_calls = []

    def get(self, key):
        return self.values.get(key)

    def set(self, key, value, ex=None):
        self.set_calls.append((key, value, ex))
        self.values[key] = value


def test_redis_store_round_trips_json():
    client = FakeRedis()
    store = RedisCounterStore(client)

    store.put("ratelimit:abc:hour", {"count": 2, "window_start": 100.5}, HOUR)

    key, raw, ex = client.set_calls[0]
    assert key == "ratelimit:abc:hour"
    assert json.loads(raw) == {"count": 2, "window_start": 100.5}
    assert ex == HOUR
    assert store.get("ratelimit:abc:hour") == {"count": 2, "window_start": 100.5}
    assert store.get("missing") is None


@pytest.mark.parametrize("ttl, expected", [(0.3, 1), (0, 1), (59.2, 60), (3600, 3600)])
def test_redis_store_rounds_ttl_up_to_whole_seconds(ttl, expected):
    client = FakeRedis()
    RedisCounterStore(client).put("k", {"count": 1}, ttl)

    assert client.set_calls[0][2] == expected


def test_redis_store_from_url_decodes_responses():
    store = RedisCounterStore.from_url("redis://localhost:6379/0")

    assert store.client.get_connection_kwargs()["decode_responses"] is True


def test_rate_limiter_over_redis_store(rate_limit_config, clock):
    client = FakeRedis()
    limiter = RateLimiter(rate_limit_config, RedisCounterStore(client), clock=clock)
    hour_key = f"ratelimit:{fingerprint('user_1', AGENT)}:hour"

    for _ in range(3):
        assert consume(limiter).allowed
        clock.advance(100)
    denied = consume(limiter)

    assert not denied.allowed
    assert "3 questions per hour" in denied.reason
    assert json.loads(client.values[hour_key])["count"] == 3
    # later increments keep the window start, so the TTL is what is left of it
    assert [ex for key, _, ex in client.set_calls if key == hour_key] == [HOUR, HOUR - 100, HOUR - 200]
