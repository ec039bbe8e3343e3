"""
Tests for Redis-backed analysis history
"""

import pytest
from unittest.mock import MagicMock
from redis.exceptions import ConnectionError as RedisConnectionError

from heartlens import config
from heartlens.history import (
    save_analysis,
    get_analysis,
    get_analysis_ids,
    get_analyses,
    delete_analysis,
    clear_analyses,
)


def test_save_and_get(fake_redis):
    assert save_analysis("a1", {"relationship_health": 70}, client=fake_redis)

    assert get_analysis("a1", client=fake_redis) == {"relationship_health": 70}
    assert get_analysis_ids(client=fake_redis) == ["a1"]


def test_history_newest_first_without_duplicates(fake_redis):
    for analysis_id in ("a", "b", "c", "a"):
        save_analysis(analysis_id, {"id": analysis_id}, client=fake_redis)

    assert get_analysis_ids(client=fake_redis) == ["a", "c", "b"]
    assert [entry["id"] for entry in get_analyses(client=fake_redis)] == ["a", "c", "b"]
    assert get_analysis_ids(0, 0, client=fake_redis) == ["a"]


def test_history_is_bounded(fake_redis, monkeypatch):
    monkeypatch.setattr(config, "MAX_HISTORY_SIZE", 3)
    for i in range(5):
        save_analysis(f"id{i}", {"i": i}, client=fake_redis)

    assert get_analysis_ids(client=fake_redis) == ["id4", "id3", "id2"]


def test_expired_payloads_are_skipped(fake_redis):
    save_analysis("a", {"n": 1}, client=fake_redis)
    save_analysis("b", {"n": 2}, client=fake_redis)
    fake_redis.delete("analysis:a")

    assert get_analyses(client=fake_redis) == [{"id": "b", "result": {"n": 2}}]


def test_corrupt_payloads_are_skipped(fake_redis):
    save_analysis("a", {"n": 1}, client=fake_redis)
    save_analysis("b", {"n": 2}, client=fake_redis)
    fake_redis.set("analysis:a", "{not json")

    assert get_analysis("a", client=fake_redis) is None
    assert get_analyses(client=fake_redis) == [{"id": "b", "result": {"n": 2}}]


def test_delete_and_clear(fake_redis):
    save_analysis("a", {"n": 1}, client=fake_redis)
    save_analysis("b", {"n": 2}, client=fake_redis)

    assert delete_analysis("a", client=fake_redis)
    assert get_analysis("a", client=fake_redis) is None
    assert get_analysis_ids(client=fake_redis) == ["b"]

    assert clear_analyses(client=fake_redis)
    assert get_analyses(client=fake_redis) == []


def test_save_requires_id(fake_redis):
    with pytest.raises(ValueError):
        save_analysis("", {}, client=fake_redis)


def test_redis_errors_are_logged_not_raised():
    client = MagicMock()
    client.get.side_effect = RedisConnectionError("down")
    client.lrange.side_effect = RedisConnectionError("down")

    assert get_analysis("a", client=client) is None
    assert get_analyses(client=client) == []


def test_unavailable_redis(monkeypatch):
    monkeypatch.setattr("heartlens.history.get_redis_client", lambda max_retries=0: None)

    assert save_analysis("a", {"n": 1}) is False
    assert get_analysis("a") is None
    assert get_analysis_ids() == []


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
