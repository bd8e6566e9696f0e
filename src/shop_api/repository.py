import threading
import time
import logging
from dataclasses import replace
from typing import Dict, Iterable, Optional

from cache_aside.errors import LoaderError
from .models import Shop

logger = logging.getLogger(__name__)


class ShopRepository:
    """
    In-memory stand-in for the shop table.
    Reads can be slowed down to make cache behavior observable.
    """

    def __init__(self, shops: Iterable[Shop] = (), latency: float = 0.0):
        """
        Args:
            shops: Initial rows
            latency: Seconds every read sleeps, simulating a slow database
        """
        self._rows: Dict[int, Shop] = {shop.id: replace(shop) for shop in shops}
        self._lock = threading.Lock()
        self.latency = latency
        self.available = True
        self.query_count = 0

    def get_by_id(self, id: int) -> Optional[Shop]:
        """Return a copy of the shop, or None if there is none with this id."""
        if not self.available:
            raise LoaderError("Shop database unavailable")
        with self._lock:
            self.query_count += 1
        if self.latency:
            time.sleep(self.latency)
        with self._lock:
            shop = self._rows.get(id)
            return None if shop is None else replace(shop)

    def save(self, shop: Shop) -> None:
        with self._lock:
            self._rows[shop.id] = replace(shop)

    def update(self, shop: Shop) -> bool:
        """Overwrite an existing shop. Returns False if it does not exist."""
        if not self.available:
            raise LoaderError("Shop database unavailable")
        with self._lock:
            if shop.id not in self._rows:
                return False
            self._rows[shop.id] = replace(shop)
        logger.debug(f"Shop {shop.id} updated")
        return True
