"""
Care Pathway Service
Controller/Service/Store pattern
"""

import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional

from fastapi import FastAPI, Response
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST

from core.cache import CacheManager, PatientViewCache
from core.config import ApplicationConfig, configure_logging, get_config, load_config_from_file
from domains.pathway.controllers.pathway_controller import router as pathway_router
from domains.clinical.controllers.clinical_controller import router as clinical_router
from domains.scheduling.controllers.scheduling_controller import router as scheduling_router
from stores import StoreSet, create_stores

if os.getenv("CONFIG_FILE"):
    load_config_from_file(os.environ["CONFIG_FILE"])

configure_logging()
logger = logging.getLogger(__name__)


class PathwayServiceContext:
    """Centralized service context for dependency injection"""

    def __init__(
        self,
        config: Optional[ApplicationConfig] = None,
        stores: Optional[StoreSet] = None,
        cache_manager: Optional[CacheManager] = None
    ):
        self.config = config or get_config()
        self.stores = stores
        self.cache_manager = cache_manager
        self.view_cache: Optional[PatientViewCache] = None
        self.start_time = datetime.utcnow()
        self._owns_stores = stores is None
        self._initialized = False

        if cache_manager is not None:
            self.view_cache = PatientViewCache(cache_manager, self.config.pathway.view_cache_ttl_seconds)

    async def initialize(self):
        """Initialize stores and the optional view cache"""
        if self._initialized:
            return

        logger.info("Initializing Care Pathway Service Context...")

        if self.stores is None:
            logger.info(f"Initializing store backend: {self.config.store.backend}")
            self.stores = await create_stores(config=self.config)

        if self.cache_manager is None and self.config.redis.enabled:
            self.cache_manager = CacheManager(self.config.redis)
            await self.cache_manager.initialize()
            self.view_cache = PatientViewCache(self.cache_manager, self.config.pathway.view_cache_ttl_seconds)

        self._initialized = True
        logger.info("Care Pathway Service Context initialized successfully")

    async def cleanup(self):
        """Cleanup all connections"""
        logger.info("Cleaning up Care Pathway Service Context...")

        if self.stores and self._owns_stores:
            await self.stores.cleanup()

        if self.cache_manager:
            await self.cache_manager.cleanup()

        logger.info("Cleanup complete")


# FastAPI application with lifecycle management
@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage service lifecycle"""
    logger.info("Starting Care Pathway Service...")
    app.state.pathway_service = PathwayServiceContext()
    await app.state.pathway_service.initialize()
    logger.info("Care Pathway Service started successfully")

    yield

    logger.info("Shutting down Care Pathway Service...")
    await app.state.pathway_service.cleanup()
    logger.info("Care Pathway Service shutdown complete")


config = get_config()

app = FastAPI(
    title=config.app_name,
    version=config.app_version,
    description="Care pathway transitions for urology patients",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(pathway_router)
app.include_router(clinical_router)
app.include_router(scheduling_router)


@app.get("/health")
async def health_check():
    """Basic health check endpoint"""
    context = getattr(app.state, "pathway_service", None)
    health = {
        "status": "healthy",
        "version": config.app_version,
        "store_backend": config.store.backend,
        "timestamp": datetime.utcnow()
    }
    if context and context.cache_manager:
        health["cache"] = await context.cache_manager.health_check()
    return health


@app.get("/metrics")
async def metrics():
    """Prometheus metrics endpoint"""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


@app.get("/")
async def root():
    """Root endpoint with service information"""
    return {
        "service": config.app_name,
        "version": config.app_version,
        "pattern": "Controller/Service/Store",
        "documentation": "/docs",
        "health": "/health"
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host=config.host,
        port=config.port,
        log_level=config.logging.level.lower(),
        access_log=False,
        reload=config.debug
    )
