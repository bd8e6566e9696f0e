from cache_aside.client import CacheClient
from cache_aside.config import CacheConfig
from cache_aside.store import MemoryStore
from shop_api.models import Shop
from shop_api.repository import ShopRepository
from shop_api.service import ShopService
import threading
import time
import random

def worker(service: ShopService, thread_id: int, num_requests: int, strategy: str):
    """Worker function that looks up random shops, some of which do not exist."""
    for i in range(num_requests):
        shop_id = random.choice([1, 2, 404])

        if strategy == 'pass_through':
            shop = service.query_by_id(shop_id)
        elif strategy == 'mutex':
            shop = service.query_with_mutex(shop_id)
        else:
            shop = service.query_with_logical_expire(shop_id)

        print(f"Thread {thread_id}: {strategy} shop {shop_id} -> {shop.name if shop else None}")
        time.sleep(random.uniform(0.01, 0.05))

def run(service: ShopService, strategy: str, num_threads: int = 8, requests_per_thread: int = 5):
    repository = service.repository
    before = repository.query_count
    threads = []
    for i in range(num_threads):
        t = threading.Thread(
            target=worker,
            args=(service, i, requests_per_thread, strategy)
        )
        threads.append(t)
        t.start()

    # Wait for all threads to complete
    for t in threads:
        t.join()

    print(f"{strategy}: {num_threads * requests_per_thread} requests, "
          f"{repository.query_count - before} database queries\n")

def main():
    repository = ShopRepository(
        [
            Shop(id=1, name="103 Tea House", area="Dayuan", avg_price=80),
            Shop(id=2, name="Cafe Lumiere", area="Old Town", avg_price=35),
        ],
        latency=0.1  # slow database
    )
    cache = CacheClient(MemoryStore(), CacheConfig(cache_ttl=5, null_ttl=1, logical_ttl=0.5))
    cache.start()
    service = ShopService(repository, cache)
    print("Created cache-aside shop service\n")

    run(service, 'pass_through')

    # Expire everything, then hit the same hot keys through the mutex path
    cache.store.clear()
    run(service, 'mutex')

    # Logical expiry needs a warm cache; stale reads trigger background rebuilds
    service.warm(1)
    service.warm(2)
    time.sleep(0.6)
    run(service, 'logical')
    cache.executor.drain(timeout=5)

    print(f"Stats: {cache.get_stats()}")

    # Cleanup
    cache.shutdown()
    print("\nCache shutdown complete")

if __name__ == "__main__":
    main()
