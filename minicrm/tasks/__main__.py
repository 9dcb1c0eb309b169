"""
Entry point for running a consumer as its own process.

    python -m minicrm.tasks ingestion
    python -m minicrm.tasks delivery
"""

import asyncio
import sys
import logging

from minicrm.config import settings
from minicrm.database import dispose_db, init_db
from minicrm.middleware.correlation import configure_logging
from minicrm.services.queue_service import queue_connection
# Register every table before init_db()
from minicrm.models import Customer, Order, CommunicationLog  # noqa: F401

logger = logging.getLogger(__name__)

WORKERS = ("ingestion", "delivery")


async def _run(worker_name: str) -> None:
    if worker_name == "ingestion":
        from minicrm.tasks.ingestion_consumer import build_ingestion_consumer
        consumer = build_ingestion_consumer()
    else:
        from minicrm.tasks.delivery_consumer import build_delivery_consumer
        consumer = build_delivery_consumer()

    await init_db()
    try:
        await consumer.run()
    finally:
        await queue_connection.close()
        await dispose_db()


def main():
    """Run the worker named on the command line."""
    configure_logging(settings.DEBUG)

    if len(sys.argv) < 2 or sys.argv[1] not in WORKERS:
        print("Usage: python -m minicrm.tasks <worker_name>")
        print(f"Available workers: {', '.join(WORKERS)}")
        sys.exit(1)

    worker_name = sys.argv[1]
    logger.info(f"Starting {worker_name} consumer...")
    try:
        asyncio.run(_run(worker_name))
    except KeyboardInterrupt:
        logger.info(f"{worker_name} consumer interrupted")


if __name__ == "__main__":
    main()
