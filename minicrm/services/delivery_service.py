"""
Campaign message delivery channel.

Only a simulated channel exists: every send succeeds and yields a synthetic
message id. A real provider slots in by implementing ``DeliveryService``.
"""

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List

from minicrm.models.communication_log import CampaignStatus
from minicrm.schemas.campaign import DeliveryDetail

logger = logging.getLogger(__name__)


@dataclass
class DeliveryResult:
    customer_id: str
    status: CampaignStatus
    message_id: str
    timestamp: datetime

    def to_detail(self) -> Dict[str, Any]:
        """Entry of ``CommunicationLog.delivery_details``."""
        detail = DeliveryDetail(
            customer_id=self.customer_id,
            status=self.status,
            message_id=self.message_id,
            timestamp=self.timestamp,
        )
        return detail.model_dump(mode="json", by_alias=True)


class DeliveryService:
    """Sends one campaign message to one customer."""

    async def send(self, campaign_name: str, customer_id: str) -> DeliveryResult:
        raise NotImplementedError


@dataclass
class MockDeliveryService(DeliveryService):
    """Simulated channel for development and tests (nothing is actually sent)."""

    keep_history: bool = False
    sent: List[DeliveryResult] = field(default_factory=list)

    async def send(self, campaign_name: str, customer_id: str) -> DeliveryResult:
        logger.debug(f"Simulating message to customerId: {customer_id}")
        result = DeliveryResult(
            customer_id=customer_id,
            status=CampaignStatus.sent,
            message_id=f"msg-{int(time.time() * 1000)}-{customer_id}",
            timestamp=datetime.now(timezone.utc),
        )
        if self.keep_history:
            self.sent.append(result)
        return result
