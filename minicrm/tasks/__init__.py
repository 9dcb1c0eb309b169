"""Background queue consumers."""

import asyncio
import logging
from typing import List

from minicrm.tasks.delivery_consumer import DeliveryConsumer, build_delivery_consumer
from minicrm.tasks.ingestion_consumer import IngestionConsumer, build_ingestion_consumer

logger = logging.getLogger(__name__)


def start_consumers(stop: asyncio.Event) -> List[asyncio.Task]:
    """Run both consumers as background tasks of the current event loop."""
    tasks = [
        asyncio.create_task(build_ingestion_consumer().run(stop), name="ingestion-consumer"),
        asyncio.create_task(build_delivery_consumer().run(stop), name="delivery-consumer"),
    ]
    logger.info("Queue consumers started in-process")
    return tasks


__all__ = [
    "DeliveryConsumer",
    "IngestionConsumer",
    "build_delivery_consumer",
    "build_ingestion_consumer",
    "start_consumers",
]
