"""Service entry point: build every component from the environment and serve."""

from __future__ import annotations

import argparse
import time
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager

import httpx
import redis
from fastapi import FastAPI

from .api import create_app
from .cache import TwoLevelCacheManager
from .config import AppConfig
from .error_mapping import ConfigurationError
from .logging_utils import configure_logging, get_logger
from .orchestrator import CacheOrchestrator, default_bindings, record_codecs
from .security import UserStore
from .upstream import WeatherApiClient

_logger = get_logger(__name__)


def build_app(
    config: AppConfig,
    *,
    redis_client: redis.Redis | None = None,
    transport: httpx.BaseTransport | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> FastAPI:
    """Wire configuration, caches, upstream client and orchestrator into an app."""
    caches = TwoLevelCacheManager(config.cache, redis_client=redis_client, codecs=record_codecs())
    client = WeatherApiClient(config.weather_api, transport=transport)
    bindings = default_bindings(client, config.retry, config.circuit_breaker, sleep=sleep)
    orchestrator = CacheOrchestrator(caches, bindings, config.service)
    users = UserStore(config.service.users)
    if not len(users):
        _logger.warning("no_users_configured", hint="set SERVICE_USERS to name:password:role entries")

    app = create_app(orchestrator, users)

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        yield
        client.close()
        caches.close()

    app.router.lifespan_context = lifespan
    return app


def main() -> int:
    parser = argparse.ArgumentParser(description="Weather cache service")
    parser.add_argument("--host", default="127.0.0.1", help="Host to bind to")
    parser.add_argument("--port", type=int, default=8080, help="Port to listen on")
    args = parser.parse_args()

    try:
        config = AppConfig.from_environment()
    except ConfigurationError as e:
        print(f"Error: {e.detail}")
        return 1

    configure_logging(config.service.log_level)
    app = build_app(config)
    _logger.info("service_starting", host=args.host, port=args.port, caches=list(config.cache.cache_names))

    import uvicorn

    uvicorn.run(app, host=args.host, port=args.port)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
