"""Tests for cache configuration and the two-level cache manager."""

import os
from unittest.mock import patch

import pytest

from weather_service.cache import (
    CURRENT_CACHE,
    FIVE_DAYS_CACHE,
    HOURLY_CACHE,
    CacheConfig,
    NoOpL2Cache,
    RedisL2Cache,
    TierPolicy,
    TwoLevelCacheManager,
)
from weather_service.error_mapping import CacheTierError, ConfigurationError


def test_default_policy_table():
    config = CacheConfig()

    assert config.cache_names == (CURRENT_CACHE, HOURLY_CACHE, FIVE_DAYS_CACHE)
    assert config.purgeable_names == (CURRENT_CACHE, HOURLY_CACHE)
    assert config.policy_for(CURRENT_CACHE).l2_ttl == 300
    assert config.policy_for(HOURLY_CACHE).l2_ttl == 3600
    assert config.policy_for(FIVE_DAYS_CACHE).l2_ttl == 21600
    assert all(p.l1_ttl == 1800 and p.l1_max_size == 10_000 for p in config.policies.values())


def test_policy_table_is_read_only():
    config = CacheConfig()

    with pytest.raises(TypeError):
        config.policies["extra"] = TierPolicy()


def test_unknown_policy_name_raises():
    with pytest.raises(ConfigurationError):
        CacheConfig().policy_for("nope")


def test_invalid_tier_policy_rejected():
    with pytest.raises(ConfigurationError):
        TierPolicy(l1_ttl=0)
    with pytest.raises(ConfigurationError):
        TierPolicy(l1_max_size=-1)


def test_cache_config_from_environment():
    """Test cache configuration from environment variables."""
    env = {
        "REDIS_URL": "redis://cache:6379/2",
        "CACHE_L2_ENABLED": "false",
        "CACHE_L2_KEY_PREFIX": "wx:",
        "REDIS_MAX_CONNECTIONS": "5",
        "CACHE_POLICIES": '{"currentTemp": {"l2_ttl": 120}, "alerts": {"l1_ttl": 30, "purgeable": false}}',
    }
    with patch.dict(os.environ, env):
        config = CacheConfig.from_environment()

    assert config.redis_url == "redis://cache:6379/2"
    assert config.l2_enabled is False
    assert config.l2_key_prefix == "wx:"
    assert config.redis_max_connections == 5
    assert config.policy_for(CURRENT_CACHE).l2_ttl == 120
    assert config.policy_for(CURRENT_CACHE).l1_ttl == 1800
    assert config.policy_for("alerts").l1_ttl == 30
    assert "alerts" not in config.purgeable_names


@pytest.mark.parametrize(
    "raw",
    ['not json', '["currentTemp"]', '{"currentTemp": 5}', '{"currentTemp": {"bogus": 1}}'],
)
def test_cache_config_rejects_malformed_policy_overrides(raw):
    with patch.dict(os.environ, {"CACHE_POLICIES": raw}):
        with pytest.raises(ConfigurationError):
            CacheConfig.from_environment()


def test_manager_builds_one_cache_per_policy_name(fake_redis):
    manager = TwoLevelCacheManager(CacheConfig(), redis_client=fake_redis)

    assert manager.cache_names == (CURRENT_CACHE, HOURLY_CACHE, FIVE_DAYS_CACHE)
    for name in manager.cache_names:
        cache = manager.get_cache(name)
        assert cache.l1.name == cache.l2.name == name
        assert isinstance(cache.l2, RedisL2Cache)
        assert cache.l2.default_ttl == CacheConfig().policy_for(name).l2_ttl

    with pytest.raises(KeyError):
        manager.get_cache("unknown")


def test_manager_without_l2_uses_noop_tier():
    manager = TwoLevelCacheManager(CacheConfig(l2_enabled=False))

    assert isinstance(manager.get_cache(CURRENT_CACHE).l2, NoOpL2Cache)
    assert manager.health_check() == {"l1_cache": True, "l2_cache": True, "l2_enabled": False}
    assert manager.inspect_l2() == {CURRENT_CACHE: {}, HOURLY_CACHE: {}, FIVE_DAYS_CACHE: {}}


def test_manager_clear_selected_names(fake_redis):
    manager = TwoLevelCacheManager(CacheConfig(), redis_client=fake_redis)
    for name in manager.cache_names:
        manager.get_cache(name).put("London,UK", {"name": name})

    cleared = manager.clear(CacheConfig().purgeable_names)

    assert cleared == [CURRENT_CACHE, HOURLY_CACHE]
    assert manager.get_cache(CURRENT_CACHE).get("London,UK") is None
    assert manager.get_cache(HOURLY_CACHE).get("London,UK") is None
    assert manager.get_cache(FIVE_DAYS_CACHE).get("London,UK") == {"name": FIVE_DAYS_CACHE}


def test_manager_inspection_is_per_tier_and_read_only(fake_redis):
    manager = TwoLevelCacheManager(CacheConfig(), redis_client=fake_redis)
    cache = manager.get_cache(CURRENT_CACHE)
    cache.put("a", {"t": 1})
    cache.l2.set("only-l2", {"t": 2})

    l1 = manager.inspect_l1()
    l2 = manager.inspect_l2()

    assert l1[CURRENT_CACHE] == {"a": {"t": 1}}
    assert l2[CURRENT_CACHE] == {"a": '{"t": 1}', "only-l2": '{"t": 2}'}
    # inspection never promotes
    assert cache.l1.exists("only-l2") is False


def test_manager_inspect_l2_raises_when_redis_is_down(fake_redis):
    manager = TwoLevelCacheManager(CacheConfig(), redis_client=fake_redis)
    fake_redis.available = False

    with pytest.raises(CacheTierError):
        manager.inspect_l2()
    assert manager.health_check()["l2_cache"] is False


def test_manager_statistics(fake_redis):
    manager = TwoLevelCacheManager(CacheConfig(), redis_client=fake_redis)
    manager.get_cache(CURRENT_CACHE).put("a", 1)

    stats = manager.get_statistics()

    assert stats[CURRENT_CACHE]["l1"]["total_entries"] == 1
    assert "metrics" in stats[CURRENT_CACHE]
