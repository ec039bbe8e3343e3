"""
Tests for the Redis and in-process rate limiters
"""

import pytest
from unittest.mock import MagicMock
from redis.exceptions import ConnectionError as RedisConnectionError

from heartlens.rate_limit import (
    check_rate_limit,
    sliding_window_rate_limit,
    reset_rate_limit,
    get_rate_limit_status,
    MemoryRateLimiter,
)


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def test_fixed_window(fake_redis):
    first = check_rate_limit("1.2.3.4", 2, 60, client=fake_redis)
    second = check_rate_limit("1.2.3.4", 2, 60, client=fake_redis)
    third = check_rate_limit("1.2.3.4", 2, 60, client=fake_redis)

    assert (first["success"], first["remaining"], first["limit"]) == (True, 1, 2)
    assert 0 < first["reset"] <= 60
    assert second["success"] is True and second["remaining"] == 0
    assert (third["success"], third["remaining"]) == (False, 0)
    assert 0 < third["reset"] <= 60
    assert fake_redis.get("ratelimit:1.2.3.4") == "2"


def test_fixed_window_status_and_reset(fake_redis):
    check_rate_limit("ip", 5, 30, client=fake_redis)

    status = get_rate_limit_status("ip", client=fake_redis)
    assert status["current"] == 1
    assert 0 < status["ttl"] <= 30
    assert reset_rate_limit("ip", client=fake_redis)
    assert get_rate_limit_status("ip", client=fake_redis) is None


def test_fixed_window_fails_open():
    client = MagicMock()
    client.get.side_effect = RedisConnectionError("down")

    result = check_rate_limit("ip", 3, 60, client=client)

    assert result == {"success": True, "remaining": 2, "reset": 60, "limit": 3}


def test_sliding_window(fake_redis):
    results = [sliding_window_rate_limit("ip", 2, 60, client=fake_redis) for _ in range(3)]

    assert [r["success"] for r in results] == [True, True, False]
    assert results[0]["remaining"] == 1
    assert 0 < results[2]["reset"] <= 60
    assert fake_redis.zcard("slidingwindow:ip") == 3


def test_sliding_window_fails_open(monkeypatch):
    monkeypatch.setattr("heartlens.rate_limit.get_redis_client", lambda max_retries=0: None)
    assert sliding_window_rate_limit("ip", 1, 60)["success"] is True


def test_memory_limiter_blocks_after_points():
    clock = FakeClock()
    limiter = MemoryRateLimiter(points=2, duration=10, block_duration=100, clock=clock)

    assert limiter.consume("ip") == (True, 0)
    assert limiter.consume("ip") == (True, 0)
    assert limiter.consume("ip") == (False, 100)

    clock.now = 50
    assert limiter.consume("ip") == (False, 50)

    clock.now = 101
    assert limiter.consume("ip") == (True, 0)


def test_memory_limiter_window_without_block():
    clock = FakeClock()
    limiter = MemoryRateLimiter(points=1, duration=10, block_duration=0, clock=clock)

    assert limiter.consume("ip") == (True, 0)
    clock.now = 1
    assert limiter.consume("ip") == (False, 9)
    clock.now = 10
    assert limiter.consume("ip") == (True, 0)


def test_memory_limiter_drops_expired_buckets():
    clock = FakeClock()
    limiter = MemoryRateLimiter(points=1, duration=1, block_duration=5, clock=clock)

    for i in range(1000):
        limiter.consume(f"10.0.{i // 256}.{i % 256}")
    limiter.consume("10.0.0.0")
    assert len(limiter._buckets) == 1000

    clock.now = 2
    limiter.consume("fresh")
    # The blocked key is still held, the rest have expired
    assert set(limiter._buckets) == {"10.0.0.0", "fresh"}

    clock.now = 10
    limiter.consume("fresh")
    assert set(limiter._buckets) == {"fresh"}


def test_memory_limiter_keys_are_independent():
    limiter = MemoryRateLimiter(points=1, duration=60, block_duration=60, clock=FakeClock())

    assert limiter.consume("a")[0]
    assert not limiter.consume("a")[0]
    assert limiter.consume("b")[0]

    limiter.reset("a")
    assert limiter.consume("a")[0]


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
