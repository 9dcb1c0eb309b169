"""Delivery Consumer - simulates campaign sends and writes the communication log.

Processing is whole-job: the log row is committed only after every recipient
has been handled, and the queue message is acked only after that commit.
A job redelivered after a crash is processed from scratch and logs a second
row; delivery is at-least-once, not exactly-once.
"""

import logging
from typing import Any, Optional

from sqlalchemy.ext.asyncio import async_sessionmaker

from minicrm.config import settings
from minicrm.database import async_session_maker
from minicrm.models.communication_log import CampaignStatus, CommunicationLog
from minicrm.schemas.campaign import DeliveryJob
from minicrm.services.delivery_service import DeliveryService, MockDeliveryService
from minicrm.services.queue_service import WorkQueue, get_delivery_queue
from minicrm.tasks.consumer import QueueConsumer

logger = logging.getLogger(__name__)


class DeliveryConsumer:
    """Handles delivery jobs ``{campaignDetails, customerIds}``."""

    def __init__(
        self,
        session_factory: async_sessionmaker = async_session_maker,
        delivery: Optional[DeliveryService] = None,
        log: Optional[logging.Logger] = None,
    ):
        self.session_factory = session_factory
        self.delivery = delivery or MockDeliveryService()
        self.log = log or logger

    async def handle(self, body: Any) -> CommunicationLog:
        job = DeliveryJob.model_validate(body)
        campaign = job.campaign_details
        self.log.info(f"Processing campaign: {campaign.name} for {len(job.customer_ids)} customers.")

        results = []
        for customer_id in job.customer_ids:
            results.append(await self.delivery.send(campaign.name, customer_id))

        sent = sum(1 for r in results if r.status is CampaignStatus.sent)
        failed = len(results) - sent
        status = CampaignStatus.failed if results and not sent else CampaignStatus.sent

        entry = CommunicationLog(
            name=campaign.name,
            audience_size=campaign.audience_size,
            rules=campaign.rules,
            status=status.value,
            sent_count=sent,
            failed_count=failed,
            delivery_details=[r.to_detail() for r in results],
            created_at=campaign.created_at,
        )

        async with self.session_factory() as db:
            db.add(entry)
            await db.commit()

        self.log.info(f"Campaign \"{campaign.name}\" logged successfully.", extra={"sent_count": sent})
        return entry


def build_delivery_consumer(
    queue: Optional[WorkQueue] = None,
    handler: Optional[DeliveryConsumer] = None,
) -> QueueConsumer:
    handler = handler or DeliveryConsumer()
    return QueueConsumer(
        queue or get_delivery_queue(),
        handler.handle,
        log=logger,
        block_timeout=settings.QUEUE_BLOCK_TIMEOUT_SECONDS,
    )
