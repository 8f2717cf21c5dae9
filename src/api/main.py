"""TaskRelay FastAPI application entry point.

Configures the FastAPI app with:
- CORS and request-id middleware
- Lifespan events for Redis/PostgreSQL connections and queue provisioning
- In-process processor / result ingester loops (when enabled)
- Task, queue and health routes
- OpenAPI documentation at /docs (debug mode only)
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from src.api.middleware.security import RequestIDMiddleware
from src.api.routes import health, queues, tasks
from src.api.version import API_VERSION
from src.core.config import get_settings
from src.core.database import create_engine
from src.core.redis import create_redis_client, verify_redis_connectivity
from src.pipeline.handlers import default_registry
from src.pipeline.ingester import ResultIngester
from src.pipeline.processor import TaskProcessor
from src.pipeline.producer import TaskProducer
from src.pipeline.provisioning import create_gateway, provision_queues
from src.pipeline.store import create_task_store

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Manage application startup and shutdown.

    On startup: connect to Redis and PostgreSQL, provision the queues,
    build the producer, start pipeline workers.
    On shutdown: stop workers gracefully and close all connections.
    """
    settings = get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    # -- Redis ---
    redis_client = create_redis_client(settings)
    app.state.redis_client = redis_client
    if await verify_redis_connectivity(redis_client):
        logger.info("Redis connection verified")
    else:
        logger.warning("Redis is not reachable; queue provisioning will fail")

    # -- PostgreSQL ---
    engine = None
    session_factory = None
    try:
        if settings.task_store_backend == "postgres":
            engine, session_factory = create_engine(settings)
        app.state.db_engine = engine
        app.state.db_session_factory = session_factory
        store = create_task_store(settings, session_factory)
        logger.info("Task store initialized (backend=%s)", settings.task_store_backend)

        # -- Queues (fatal on failure) ---
        gateway = create_gateway(redis_client, settings)
        pipeline_queues = await provision_queues(gateway, settings)
    except Exception:
        logger.error("Startup failed; closing connections")
        await redis_client.aclose()
        if engine is not None:
            await engine.dispose()
        raise
    app.state.queue_gateway = gateway
    app.state.pipeline_queues = pipeline_queues
    app.state.producer = TaskProducer(store, gateway, pipeline_queues)

    # -- Pipeline Workers ---
    shutdown_event = asyncio.Event()
    app.state.pipeline_shutdown = shutdown_event
    worker_tasks = []

    if settings.processor_enabled:
        processor = TaskProcessor(
            gateway,
            pipeline_queues,
            default_registry(),
            batch_size=settings.processor_batch_size,
            poll_interval_seconds=settings.processor_poll_interval_ms / 1000,
        )
        worker_tasks.append(asyncio.create_task(processor.run(shutdown_event)))
        logger.info(
            "Task processor started - polling task queue every %dms", settings.processor_poll_interval_ms
        )

    if settings.ingester_enabled:
        ingester = ResultIngester(
            gateway,
            pipeline_queues,
            store,
            batch_size=settings.ingester_batch_size,
            poll_interval_seconds=settings.ingester_poll_interval_ms / 1000,
        )
        worker_tasks.append(asyncio.create_task(ingester.run(shutdown_event)))
        logger.info(
            "Result ingester started - polling results queue every %dms", settings.ingester_poll_interval_ms
        )

    app.state.worker_tasks = worker_tasks

    yield

    # -- Shutdown ---
    shutdown_event.set()
    for task in worker_tasks:
        task.cancel()
    if worker_tasks:
        await asyncio.gather(*worker_tasks, return_exceptions=True)
        logger.info("Pipeline workers stopped")

    await redis_client.aclose()
    if engine is not None:
        await engine.dispose()
    logger.info("All connections closed")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title=settings.app_name,
        description="Asynchronous task execution over a two-queue pipeline",
        version=API_VERSION,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    # Note: middleware is applied in reverse order (last added = first executed).
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "X-Request-ID", "Accept"],
    )
    app.add_middleware(RequestIDMiddleware)

    app.include_router(health.router)
    app.include_router(tasks.router)
    app.include_router(queues.router)

    return app


# Application instance used by uvicorn
app = create_app()
