"""
Campaign Dispatcher

Resolves a campaign's audience and hands it to the delivery queue. Creation
is fire-and-forget: nothing is written to the database here, the delivery
consumer records the campaign once the job has been processed.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from minicrm.config import settings
from minicrm.schemas.campaign import CampaignTicket, DeliveryJob
from minicrm.services.audience import AudienceResolver, compile_rules, parse_rule_tree
from minicrm.services.queue_service import WorkQueue

logger = logging.getLogger(__name__)


class CampaignDispatcher:
    """Builds campaign tickets and enqueues delivery jobs."""

    def __init__(
        self,
        db: AsyncSession,
        queue: WorkQueue,
        log: Optional[logging.Logger] = None,
    ):
        self.resolver = AudienceResolver(db)
        self.queue = queue
        self.log = log or logger

    async def preview(self, rules: Any) -> int:
        """Audience size for a rule tree, computed against current data."""
        predicate = compile_rules(rules, max_depth=settings.RULE_MAX_DEPTH)
        return await self.resolver.count(predicate)

    async def create_campaign(self, name: str, rules: Any) -> CampaignTicket:
        """
        Resolve the audience and enqueue its delivery job.

        Args:
            name: Campaign name
            rules: Rule tree (raw JSON or parsed)

        Returns:
            The queued campaign ticket

        Raises:
            RuleValidationError: rules are malformed (not retried)
            DependencyError: the store or the queue is unreachable
        """
        tree = parse_rule_tree(rules, max_depth=settings.RULE_MAX_DEPTH)
        predicate = compile_rules(tree)
        customer_ids = await self.resolver.select(predicate)

        ticket = CampaignTicket(
            name=name,
            audience_size=len(customer_ids),
            rules=tree.to_dict(),
            created_at=datetime.now(timezone.utc),
        )
        job = DeliveryJob(campaign_details=ticket, customer_ids=customer_ids)
        message_id = await self.queue.publish(job.model_dump(mode="json", by_alias=True))

        self.log.info(
            f"Campaign '{name}' queued for {ticket.audience_size} customers",
            extra={"message_id": message_id, "audience_size": ticket.audience_size},
        )
        return ticket
