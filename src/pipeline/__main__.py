"""Worker entry point: ``python -m src.pipeline {processor,ingester,all}``.

Provisions the queues, then runs the selected polling loops until SIGINT or
SIGTERM.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys

from src.core.config import get_settings
from src.core.database import create_engine
from src.core.redis import create_redis_client
from src.pipeline.errors import ProvisioningError
from src.pipeline.handlers import default_registry
from src.pipeline.ingester import ResultIngester
from src.pipeline.processor import TaskProcessor
from src.pipeline.provisioning import create_gateway, provision_queues
from src.pipeline.store import create_task_store

logger = logging.getLogger("src.pipeline")


def _parse_args(argv: list[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="python -m src.pipeline",
        description="Run TaskRelay pipeline workers.",
    )
    parser.add_argument(
        "role",
        choices=["processor", "ingester", "all"],
        help="Which worker loop(s) to run.",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Overrides LOG_LEVEL from the environment.",
    )
    return parser.parse_args(argv)


async def _run(role: str, shutdown_event: asyncio.Event | None = None) -> int:
    settings = get_settings()
    stop = shutdown_event or asyncio.Event()

    def handle_signal() -> None:
        logger.info("Shutdown signal received")
        stop.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, handle_signal)

    redis_client = create_redis_client(settings)
    engine = None
    try:
        gateway = create_gateway(redis_client, settings)
        try:
            queues = await provision_queues(gateway, settings)
        except ProvisioningError:
            logger.exception("Queue provisioning failed")
            return 1

        workers = []
        if role in ("processor", "all"):
            workers.append(
                TaskProcessor(
                    gateway,
                    queues,
                    default_registry(),
                    batch_size=settings.processor_batch_size,
                    poll_interval_seconds=settings.processor_poll_interval_ms / 1000,
                ).run(stop)
            )
        if role in ("ingester", "all"):
            session_factory = None
            if settings.task_store_backend == "postgres":
                engine, session_factory = create_engine(settings)
            store = create_task_store(settings, session_factory)
            workers.append(
                ResultIngester(
                    gateway,
                    queues,
                    store,
                    batch_size=settings.ingester_batch_size,
                    poll_interval_seconds=settings.ingester_poll_interval_ms / 1000,
                ).run(stop)
            )

        logger.info("TaskRelay %s worker starting (consumer=%s)", role, gateway.consumer_name)
        await asyncio.gather(*workers)
        return 0
    finally:
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.remove_signal_handler(sig)
        await redis_client.aclose()
        if engine is not None:
            await engine.dispose()
        logger.info("TaskRelay %s worker stopped", role)


def main(argv: list[str] | None = None) -> None:
    """CLI entry point."""
    args = _parse_args(argv)
    settings = get_settings()

    logging.basicConfig(
        level=getattr(logging, args.log_level or settings.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    exit_code = asyncio.run(_run(args.role))
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
