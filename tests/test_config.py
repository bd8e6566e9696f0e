import pytest

from cache_aside.config import CacheConfig

def test_defaults():
    config = CacheConfig()
    assert config.cache_ttl == 30 * 60
    assert config.null_ttl == 2 * 60
    assert config.lock_ttl == 10
    assert config.rebuild_pool_size == 10
    assert config.rebuild_max_pending is None

@pytest.mark.parametrize("kwargs", [
    {"cache_ttl": 0},
    {"lock_ttl": -1},
    {"null_ttl": 60, "cache_ttl": 60},
    {"rebuild_pool_size": 0},
    {"rebuild_max_pending": 0},
    {"lock_max_retries": -1},
])
def test_invalid_values(kwargs):
    with pytest.raises(ValueError):
        CacheConfig(**kwargs)
