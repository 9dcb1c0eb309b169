"""Ingestion Consumer - persists queued customer and order batches.

Items are routed by the keys they carry:
- ``customerId`` without ``orderId``: customer upsert on ``customerId``
- ``orderId`` and ``customerId``: order upsert on ``orderId``
Anything else is skipped. The batch is one transaction: it is committed and
acked as a whole, or rolled back and nacked as a whole.
"""

import logging
from typing import Any, Optional

from sqlalchemy.ext.asyncio import async_sessionmaker

from minicrm.config import settings
from minicrm.database import async_session_maker
from minicrm.schemas.customer import CustomerIn
from minicrm.schemas.order import OrderIn
from minicrm.services.ingestion_service import upsert_customer, upsert_order
from minicrm.services.queue_service import WorkQueue, get_ingestion_queue
from minicrm.tasks.consumer import QueueConsumer

logger = logging.getLogger(__name__)


class IngestionConsumer:
    """Handles ingestion batches (JSON arrays of customers and/or orders)."""

    def __init__(
        self,
        session_factory: async_sessionmaker = async_session_maker,
        log: Optional[logging.Logger] = None,
    ):
        self.session_factory = session_factory
        self.log = log or logger

    async def handle(self, body: Any) -> dict:
        if not isinstance(body, list):
            raise ValueError(f"Ingestion batch must be a list, got {type(body).__name__}")

        counts = {"customers": 0, "orders": 0, "skipped": 0}
        async with self.session_factory() as db:
            for index, item in enumerate(body):
                if not isinstance(item, dict):
                    counts["skipped"] += 1
                    self.log.warning(f"Skipping batch item {index}: not an object")
                    continue

                if item.get("customerId") and not item.get("orderId"):
                    await upsert_customer(db, CustomerIn.model_validate(item))
                    counts["customers"] += 1
                elif item.get("orderId") and item.get("customerId"):
                    await upsert_order(db, OrderIn.model_validate(item))
                    counts["orders"] += 1
                else:
                    counts["skipped"] += 1
                    self.log.warning(f"Skipping batch item {index}: neither a customer nor an order")

            await db.commit()

        self.log.info(
            f"Ingested batch: {counts['customers']} customers, {counts['orders']} orders",
            extra=counts,
        )
        return counts


def build_ingestion_consumer(
    queue: Optional[WorkQueue] = None,
    handler: Optional[IngestionConsumer] = None,
) -> QueueConsumer:
    handler = handler or IngestionConsumer()
    return QueueConsumer(
        queue or get_ingestion_queue(),
        handler.handle,
        log=logger,
        block_timeout=settings.QUEUE_BLOCK_TIMEOUT_SECONDS,
    )
