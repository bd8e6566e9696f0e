import asyncio
import functools
import logging
import os
from dataclasses import asdict, dataclass
from typing import Optional
from aiohttp import web

from cache_aside.client import CacheClient
from cache_aside.config import CacheConfig
from cache_aside.errors import LockTimeoutError, StoreUnavailableError
from cache_aside.store import CacheStore, MemoryStore, RedisStore
from .models import Shop
from .repository import ShopRepository
from .service import ShopService

logger = logging.getLogger(__name__)

STRATEGIES = {
    'pass_through': ShopService.query_by_id,
    'mutex': ShopService.query_with_mutex,
    'logical': ShopService.query_with_logical_expire,
}

@dataclass
class ShopAPIConfig:
    """Configuration for the shop API server."""
    host: str = "0.0.0.0"
    port: int = 8000
    redis_url: Optional[str] = None  # None keeps the cache in process

class ShopAPIServer:
    def __init__(self, service: ShopService, host: str = "0.0.0.0", port: int = 8000):
        self.service = service
        self.host = host
        self.port = port
        self.app = web.Application()
        self._runner: Optional[web.AppRunner] = None
        self._setup_routes()

    def _setup_routes(self):
        """Set up API routes."""
        self.app.router.add_get('/shop/{id}', self._handle_get)
        self.app.router.add_put('/shop', self._handle_update)
        self.app.router.add_post('/shop/{id}/warm', self._handle_warm)
        self.app.router.add_get('/stats', self._handle_stats)
        self.app.router.add_get('/health', self._handle_health)

    async def _call(self, func, *args):
        """Run a blocking service call off the event loop."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, functools.partial(func, *args))

    async def start(self):
        """Start the API server."""
        try:
            self.service.cache.start()
            self._runner = web.AppRunner(self.app)
            await self._runner.setup()
            site = web.TCPSite(self._runner, self.host, self.port)
            await site.start()
            logger.info(f"Shop API server started at http://{self.host}:{self.port}")
        except Exception as e:
            logger.error(f"Error starting API server: {e}")
            await self.stop()
            raise

    async def stop(self):
        """Stop the API server."""
        if self._runner:
            await self._runner.cleanup()
            self._runner = None
        self.service.cache.shutdown()
        logger.info("Shop API server stopped")

    async def _handle_get(self, request: web.Request) -> web.Response:
        """Handle GET /shop/{id}?strategy=pass_through|mutex|logical."""
        try:
            shop_id = int(request.match_info['id'])
        except ValueError:
            return web.json_response({"error": "Shop id must be an integer"}, status=400)

        strategy = request.query.get('strategy', 'pass_through')
        query = STRATEGIES.get(strategy)
        if query is None:
            return web.json_response({"error": f"Unknown strategy: {strategy}"}, status=400)

        try:
            shop = await self._call(query, self.service, shop_id)
        except LockTimeoutError as e:
            logger.warning(f"Shop {shop_id} lookup timed out: {e}")
            return web.json_response({"error": "Shop is being reloaded, retry later"}, status=503)
        except StoreUnavailableError as e:
            return web.json_response({"error": str(e)}, status=503)
        except Exception as e:
            logger.error(f"Error handling GET request: {e}")
            return web.json_response({"error": str(e)}, status=500)

        if shop is None:
            return web.json_response({"error": "Shop not found"}, status=404)
        return web.json_response({"data": asdict(shop)})

    async def _handle_update(self, request: web.Request) -> web.Response:
        """Handle PUT /shop."""
        try:
            data = await request.json()
            shop = Shop(**data)
        except (ValueError, TypeError):
            return web.json_response({"error": "Invalid shop payload"}, status=400)

        if shop.id is None:
            return web.json_response({"error": "Shop id must not be empty"}, status=400)

        try:
            updated = await self._call(self.service.update, shop)
        except StoreUnavailableError as e:
            return web.json_response({"error": str(e)}, status=503)
        except Exception as e:
            logger.error(f"Error handling PUT request: {e}")
            return web.json_response({"error": str(e)}, status=500)

        if not updated:
            return web.json_response({"error": "Shop not found"}, status=404)
        return web.json_response({"status": "success"})

    async def _handle_warm(self, request: web.Request) -> web.Response:
        """Handle POST /shop/{id}/warm?ttl=seconds."""
        try:
            shop_id = int(request.match_info['id'])
            ttl = float(request.query['ttl']) if 'ttl' in request.query else None
        except ValueError:
            return web.json_response({"error": "Invalid shop id or ttl"}, status=400)

        try:
            warmed = await self._call(self.service.warm, shop_id, ttl)
        except StoreUnavailableError as e:
            return web.json_response({"error": str(e)}, status=503)
        except Exception as e:
            logger.error(f"Error handling warm request: {e}")
            return web.json_response({"error": str(e)}, status=500)

        if not warmed:
            return web.json_response({"error": "Shop not found"}, status=404)
        return web.json_response({"status": "success"})

    async def _handle_stats(self, request: web.Request) -> web.Response:
        """Handle GET /stats request."""
        return web.json_response(self.service.cache.get_stats())

    async def _handle_health(self, request: web.Request) -> web.Response:
        """Handle GET /health request."""
        try:
            await self._call(self.service.cache.store.get, "health:ping")
            return web.json_response({"status": "healthy"})
        except StoreUnavailableError as e:
            return web.json_response({"status": "unhealthy", "error": str(e)}, status=503)

def build_server(config: ShopAPIConfig, repository: ShopRepository,
                 cache_config: Optional[CacheConfig] = None) -> ShopAPIServer:
    """Wire store, cache client and service into a server."""
    store: CacheStore = RedisStore.from_url(config.redis_url) if config.redis_url else MemoryStore()
    cache = CacheClient(store, cache_config)
    return ShopAPIServer(ShopService(repository, cache), config.host, config.port)

async def main():
    config = ShopAPIConfig(
        port=int(os.environ.get("PORT", "8000")),
        redis_url=os.environ.get("REDIS_URL")
    )
    repository = ShopRepository(
        [
            Shop(id=1, name="103 Tea House", type_id=1, area="Dayuan", avg_price=80, score=37),
            Shop(id=2, name="Cafe Lumiere", type_id=2, area="Old Town", avg_price=35, score=45),
        ],
        latency=0.2
    )
    server = build_server(config, repository)

    try:
        await server.start()

        # Keep the server running
        while True:
            await asyncio.sleep(3600)

    except KeyboardInterrupt:
        logger.info("Shutting down...")
    finally:
        await server.stop()

if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    asyncio.run(main())
