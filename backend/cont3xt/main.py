"""Cont3xt application factory."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from redis.asyncio import Redis

from cont3xt import __version__
from cont3xt.api import router as api_router
from cont3xt.cache import CacheStore, create_cache
from cont3xt.config import Settings, get_settings
from cont3xt.database import Db, ElasticsearchDb
from cont3xt.exceptions import setup_exception_handlers
from cont3xt.integrations.orchestrator import QueryOrchestrator
from cont3xt.integrations.registry import IntegrationRegistry, build_registry
from cont3xt.middleware.access_log import AccessLogMiddleware
from cont3xt.services.link_groups import LinkGroupService
from cont3xt.services.user_settings import UserSettingsService
from cont3xt.utils.secrets import SecretCodec

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    state = app.state
    logger.info(
        "Starting Cont3xt v%s with %d integration(s)", __version__, len(state.registry)
    )

    try:
        await state.db.ensure_indices()
    except Exception as e:
        logger.warning("Failed to initialize Elasticsearch indices: %s", e)

    yield

    logger.info("Shutting down Cont3xt")
    await state.orchestrator.shutdown()
    await state.registry.close_all()
    await state.cache.close()
    await state.db.close()


def create_app(
    settings: Settings | None = None,
    *,
    db: Db | None = None,
    cache: CacheStore | None = None,
    registry: IntegrationRegistry | None = None,
    redis: Redis | None = None,
) -> FastAPI:
    """Build the application and every long-lived component it uses.

    Args:
        settings: Loaded settings; read from the config file when omitted
        db: Document store; Elasticsearch from settings when omitted
        cache: Result cache; built from ``[cache]`` when omitted
        registry: Integration registry; built from settings when omitted
        redis: Redis client for the redis cache type

    Raises:
        ConfigError: On invalid configuration.
        DuplicateSourceError: If two integrations share an id.
    """
    settings = settings or get_settings()
    config = settings.cont3xt

    logging.basicConfig(
        level=getattr(logging, config.log_level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    codec = SecretCodec(config.password_secret)
    registry = registry if registry is not None else build_registry(settings)
    cache = cache if cache is not None else create_cache(settings.cache, redis=redis)
    db = db if db is not None else ElasticsearchDb.from_config(config)

    app = FastAPI(
        title="Cont3xt",
        description="Indicator lookup across configured integrations",
        version=__version__,
        docs_url="/docs" if config.debug else None,
        redoc_url=None,
        openapi_url="/openapi.json" if config.debug else None,
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.codec = codec
    app.state.registry = registry
    app.state.cache = cache
    app.state.db = db
    app.state.orchestrator = QueryOrchestrator(
        registry,
        cache,
        codec=codec,
        max_concurrent=config.max_concurrent_fetches,
        default_ttl=settings.cache.cache_timeout,
    )
    app.state.user_settings = UserSettingsService(db, codec, registry)
    app.state.link_groups = LinkGroupService(db)

    app.add_middleware(AccessLogMiddleware)
    setup_exception_handlers(app)

    base_path = config.web_base_path.rstrip("/")
    app.include_router(api_router, prefix=f"{base_path}/api")

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {
            "status": "healthy",
            "version": __version__,
            "integrations": len(registry),
        }

    return app
