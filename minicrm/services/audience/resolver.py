"""
Audience Resolver

Runs a compiled predicate against the live customer table. Nothing is
cached: each call sees the customers persisted at that moment.
"""

import logging
from typing import List

from sqlalchemy import select, func
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession

from minicrm.exceptions import DependencyError, ErrorCode
from minicrm.models.customer import Customer
from minicrm.services.audience.predicate import Predicate
from minicrm.services.audience.query_builder import to_sqlalchemy

logger = logging.getLogger(__name__)


class AudienceResolver:
    """Count or list the customers matching a predicate."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def count(self, predicate: Predicate) -> int:
        """Number of customers satisfying the predicate."""
        query = select(func.count(Customer.id)).where(to_sqlalchemy(predicate))
        try:
            result = await self.db.execute(query)
        except (DBAPIError, OSError) as e:
            logger.error(f"Audience count failed: {type(e).__name__}")
            raise DependencyError("Customer store", "audience count failed", ErrorCode.DATABASE_ERROR) from e
        return result.scalar_one()

    async def select(self, predicate: Predicate) -> List[str]:
        """``customerId`` of every matching customer, in store order."""
        query = select(Customer.customer_id).where(to_sqlalchemy(predicate)).order_by(Customer.id)
        try:
            result = await self.db.execute(query)
        except (DBAPIError, OSError) as e:
            logger.error(f"Audience select failed: {type(e).__name__}")
            raise DependencyError("Customer store", "audience lookup failed", ErrorCode.DATABASE_ERROR) from e
        return list(result.scalars().all())
