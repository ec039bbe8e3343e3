"""
Tests for Redis feature flags
"""

import pytest
from unittest.mock import patch

from heartlens.feature_flags import (
    decode_flag,
    encode_flag,
    rollout_bucket,
    get_feature_flag,
    is_feature_enabled,
    set_feature_flag,
    update_feature_flag,
    delete_feature_flag,
    get_all_feature_flags,
    bulk_update_feature_flags,
)
from heartlens.utils.redis_client import RedisUnavailable


def test_encode_flag_stores_strings():
    mapping = encode_flag({"name": "charts", "enabled": True, "percentage": 25, "allowlist": ["u1"]})

    assert mapping["enabled"] == "true"
    assert mapping["percentage"] == "25"
    assert mapping["allowlist"] == '["u1"]'
    assert mapping["created_at"] == mapping["updated_at"]


def test_encode_flag_validation():
    with pytest.raises(ValueError):
        encode_flag({"enabled": True})
    with pytest.raises(ValueError):
        encode_flag({"name": "x", "percentage": 150})


def test_decode_flag_round_trips_types():
    flag = decode_flag({"name": "x", "enabled": "false", "allowlist": "not json"})

    assert flag["enabled"] is False
    assert flag["percentage"] is None
    assert flag["allowlist"] == []


def test_rollout_bucket_is_stable():
    assert rollout_bucket("user-42") == rollout_bucket("user-42")
    assert all(0 <= rollout_bucket(f"user-{i}") < 100 for i in range(50))


def test_set_and_get(fake_redis):
    created = set_feature_flag({"name": "charts", "enabled": True, "description": "PNG charts"}, client=fake_redis)

    assert created["name"] == "charts"
    assert get_feature_flag("charts", client=fake_redis) == created
    assert fake_redis.hgetall("feature:charts")["enabled"] == "true"


def test_missing_or_disabled_flags_are_off(fake_redis):
    assert is_feature_enabled("nope", "u1", client=fake_redis) is False

    set_feature_flag({"name": "beta", "enabled": False}, client=fake_redis)
    assert is_feature_enabled("beta", "u1", client=fake_redis) is False


def test_enabled_flag_without_rollout_is_on(fake_redis):
    set_feature_flag({"name": "beta", "enabled": True}, client=fake_redis)
    assert is_feature_enabled("beta", client=fake_redis) is True


def test_allowlist_beats_percentage(fake_redis):
    set_feature_flag({"name": "beta", "enabled": True, "percentage": 0, "allowlist": ["vip"]}, client=fake_redis)

    assert is_feature_enabled("beta", "vip", client=fake_redis) is True
    assert is_feature_enabled("beta", "someone", client=fake_redis) is False


def test_percentage_rollout_by_bucket(fake_redis):
    set_feature_flag({"name": "full", "enabled": True, "percentage": 100}, client=fake_redis)
    assert all(is_feature_enabled("full", f"user-{i}", client=fake_redis) for i in range(20))

    set_feature_flag({"name": "half", "enabled": True, "percentage": 50}, client=fake_redis)
    for i in range(20):
        user = f"user-{i}"
        assert is_feature_enabled("half", user, client=fake_redis) is (rollout_bucket(user) < 50)


def test_percentage_rollout_for_anonymous_users(fake_redis):
    set_feature_flag({"name": "half", "enabled": True, "percentage": 50}, client=fake_redis)

    with patch("heartlens.feature_flags.random.random", return_value=0.1):
        assert is_feature_enabled("half", client=fake_redis) is True
    with patch("heartlens.feature_flags.random.random", return_value=0.9):
        assert is_feature_enabled("half", client=fake_redis) is False


def test_update_keeps_created_at(fake_redis):
    created = set_feature_flag({"name": "beta", "enabled": False}, client=fake_redis)

    updated = update_feature_flag("beta", {"enabled": True, "name": "renamed"}, client=fake_redis)

    assert updated["name"] == "beta"
    assert updated["enabled"] is True
    assert updated["created_at"] == created["created_at"]
    assert update_feature_flag("missing", {"enabled": True}, client=fake_redis) is None


def test_delete_and_list(fake_redis):
    bulk = [{"name": "zeta", "enabled": True}, {"name": "alpha", "enabled": False}]
    assert bulk_update_feature_flags(bulk, client=fake_redis) == 2

    assert [f["name"] for f in get_all_feature_flags(client=fake_redis)] == ["alpha", "zeta"]
    assert delete_feature_flag("zeta", client=fake_redis) is True
    assert delete_feature_flag("zeta", client=fake_redis) is False
    assert [f["name"] for f in get_all_feature_flags(client=fake_redis)] == ["alpha"]


def test_writes_require_redis(monkeypatch):
    monkeypatch.setattr("heartlens.utils.redis_client.get_redis_client", lambda max_retries=0: None)
    monkeypatch.setattr("heartlens.feature_flags.get_redis_client", lambda max_retries=0: None)

    with pytest.raises(RedisUnavailable):
        set_feature_flag({"name": "x", "enabled": True})
    assert is_feature_enabled("x", "u1") is False
    assert get_all_feature_flags() == []


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
