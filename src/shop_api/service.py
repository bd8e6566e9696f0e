import logging
from typing import Optional

from cache_aside.client import CacheClient
from cache_aside.codec import build_key
from .models import Shop
from .repository import ShopRepository

logger = logging.getLogger(__name__)

CACHE_SHOP_KEY = "cache:shop:"


class ShopService:
    """Shop lookups served through the cache, and updates that keep it consistent."""

    def __init__(self, repository: ShopRepository, cache: CacheClient):
        self.repository = repository
        self.cache = cache

    def query_by_id(self, id: int) -> Optional[Shop]:
        """Look up a shop, caching unknown ids as tombstones."""
        return self.cache.get_or_load_pass_through(
            CACHE_SHOP_KEY, id, Shop, self.repository.get_by_id
        )

    def query_with_mutex(self, id: int) -> Optional[Shop]:
        """Look up a hot shop; only one caller at a time reloads an expired entry."""
        return self.cache.get_or_load_mutex(
            CACHE_SHOP_KEY, id, Shop, self.repository.get_by_id
        )

    def query_with_logical_expire(self, id: int) -> Optional[Shop]:
        """Look up a pre-warmed shop, refreshing it in the background once stale."""
        return self.cache.get_or_load_logical(
            CACHE_SHOP_KEY, id, Shop, self.repository.get_by_id
        )

    def update(self, shop: Shop) -> bool:
        """
        Write the shop to the database, then drop its cache entry.

        Returns:
            False if no shop with this id exists

        Raises:
            ValueError: If the shop has no id
        """
        if shop.id is None:
            raise ValueError("Shop id must not be empty")
        updated = self.repository.update(shop)
        self.cache.invalidate(CACHE_SHOP_KEY, shop.id)
        return updated

    def warm(self, id: int, expire_seconds: Optional[float] = None) -> bool:
        """
        Load a shop into the cache with a logical expiry.

        Returns:
            False if the shop does not exist
        """
        shop = self.repository.get_by_id(id)
        if shop is None:
            return False
        self.cache.set_with_logical_expire(build_key(CACHE_SHOP_KEY, id), shop, expire_seconds)
        logger.info(f"Warmed shop {id} into cache")
        return True
