"""
Tests for the Redis result cache
"""

import json
import pytest
from unittest.mock import MagicMock
from redis.exceptions import ConnectionError as RedisConnectionError

from heartlens.cache import AnalysisCache, compute_content_hash, serialize_result


def test_content_hash_depends_on_names_and_bytes():
    base = compute_content_hash([b"one", b"two"], {"user_a": "Alex", "user_b": "Sam"})

    assert base == compute_content_hash([("x.png", b"one"), ("y.png", b"two")], {"user_a": "Alex", "user_b": "Sam"})
    assert base != compute_content_hash([b"two", b"one"], {"user_a": "Alex", "user_b": "Sam"})
    assert base != compute_content_hash([b"one", b"two"], {"user_a": "Sam", "user_b": "Alex"})
    assert len(base) == 64


def test_content_hash_frames_file_boundaries():
    assert compute_content_hash([b"ab", b"c"]) != compute_content_hash([b"a", b"bc"])


def test_serialize_result_is_stable():
    assert serialize_result({"b": 1, "a": [1, 2]}) == '{"a":[1,2],"b":1}'


def test_set_and_get(fake_redis):
    cache = AnalysisCache(client=fake_redis, ttl_seconds=60)

    payload = cache.set("abc", {"health": 80})

    assert payload == '{"health":80}'
    assert fake_redis.get("analysis_cache:abc") == payload
    assert cache.get("abc") == {"health": 80}
    assert 0 < cache.ttl("abc") <= 60
    assert cache.exists("abc")


def test_repeated_reads_are_byte_identical(fake_redis):
    cache = AnalysisCache(client=fake_redis)
    cache.set("k", {"z": 1.5, "a": "é"})

    assert cache.get_raw("k") == cache.get_raw("k") == serialize_result({"z": 1.5, "a": "é"})


def test_miss_returns_none(fake_redis):
    cache = AnalysisCache(client=fake_redis)
    assert cache.get("missing") is None
    assert cache.ttl("missing") == -2


def test_corrupt_entry_is_discarded(fake_redis):
    fake_redis.set("analysis_cache:bad", "{not json")
    cache = AnalysisCache(client=fake_redis)

    assert cache.get("bad") is None
    assert not fake_redis.exists("analysis_cache:bad")


def test_delete_extend_and_clear(fake_redis):
    cache = AnalysisCache(client=fake_redis)
    cache.set("one", {"n": 1})
    cache.set("two", {"n": 2})
    fake_redis.set("other:key", "x")

    assert cache.extend_ttl("one", 999)
    assert 990 < cache.ttl("one") <= 999
    assert cache.delete("one")
    assert not cache.delete("one")
    assert cache.clear_pattern() == 1
    assert fake_redis.exists("other:key")


def test_redis_errors_degrade_to_miss():
    client = MagicMock()
    client.get.side_effect = RedisConnectionError("down")
    client.set.side_effect = RedisConnectionError("down")
    cache = AnalysisCache(client=client)

    assert cache.get("k") is None
    assert cache.set("k", {"a": 1}) is None


def test_unavailable_redis(monkeypatch):
    monkeypatch.setattr("heartlens.cache.get_redis_client", lambda max_retries=0: None)
    cache = AnalysisCache()

    assert cache.get("k") is None
    assert cache.set("k", {"a": 1}) is None
    assert cache.clear_pattern() == 0


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
