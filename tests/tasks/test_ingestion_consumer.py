"""
Tests for the ingestion consumer.

Covers batch routing, idempotent upserts and whole-batch rollback.
"""

from datetime import datetime, timezone

import pytest
from pydantic import ValidationError as SchemaValidationError
from sqlalchemy import select, func

from minicrm.models.customer import Customer
from minicrm.models.order import Order
from minicrm.tasks.ingestion_consumer import IngestionConsumer


def customer(customer_id="c-1", email="a@x.com", **extra):
    data = {"customerId": customer_id, "name": "Ann", "email": email}
    data.update(extra)
    return data


def order(order_id="o-1", customer_id="c-1", **extra):
    data = {
        "orderId": order_id,
        "customerId": customer_id,
        "items": [{"itemId": "sku-1", "price": 10.0, "quantity": 2}],
        "totalAmount": 20.0,
    }
    data.update(extra)
    return data


async def count(db, model):
    result = await db.execute(select(func.count(model.id)))
    return result.scalar_one()


class TestIngestionConsumer:
    @pytest.mark.asyncio
    async def test_routes_customers_and_orders(self, session_factory, test_db):
        consumer = IngestionConsumer(session_factory)

        counts = await consumer.handle([
            customer(),
            order(),
            {"name": "nobody"},
            "garbage",
        ])

        assert counts == {"customers": 1, "orders": 1, "skipped": 2}
        assert await count(test_db, Customer) == 1
        assert await count(test_db, Order) == 1

    @pytest.mark.asyncio
    async def test_customer_upsert_is_idempotent(self, session_factory, test_db):
        consumer = IngestionConsumer(session_factory)
        batch = [customer(metadata={"total_spend": 100.0, "visit_count": 2})]

        await consumer.handle(batch)
        await consumer.handle(batch)

        assert await count(test_db, Customer) == 1

    @pytest.mark.asyncio
    async def test_customer_upsert_overwrites_provided_fields(self, session_factory, test_db):
        consumer = IngestionConsumer(session_factory)
        await consumer.handle([customer(phone="555-0100", metadata={"total_spend": 100.0, "visit_count": 2})])

        await consumer.handle([customer(name="Ann B", metadata={"total_spend": 250.0})])

        result = await test_db.execute(select(Customer).where(Customer.customer_id == "c-1"))
        saved = result.scalar_one()
        assert saved.name == "Ann B"
        assert saved.phone == "555-0100"
        assert saved.total_spend == 250.0
        assert saved.visit_count is None

    @pytest.mark.asyncio
    async def test_customer_without_metadata_keeps_existing_metadata(self, session_factory, test_db):
        consumer = IngestionConsumer(session_factory)
        await consumer.handle([customer(metadata={"total_spend": 100.0})])

        await consumer.handle([customer(name="Renamed")])

        result = await test_db.execute(select(Customer).where(Customer.customer_id == "c-1"))
        assert result.scalar_one().total_spend == 100.0

    @pytest.mark.asyncio
    async def test_last_visit_stored(self, session_factory, test_db):
        consumer = IngestionConsumer(session_factory)
        await consumer.handle([customer(metadata={"last_visit": "2026-05-01T10:00:00Z"})])

        result = await test_db.execute(select(Customer.last_visit))
        stored = result.scalar_one()
        assert stored.replace(tzinfo=timezone.utc) == datetime(2026, 5, 1, 10, 0, tzinfo=timezone.utc)

    @pytest.mark.asyncio
    async def test_order_upsert_is_idempotent(self, session_factory, test_db):
        consumer = IngestionConsumer(session_factory)

        await consumer.handle([order()])
        await consumer.handle([order(totalAmount=35.5)])

        result = await test_db.execute(select(Order))
        orders = result.scalars().all()
        assert len(orders) == 1
        assert orders[0].total_amount == 35.5
        assert orders[0].items == [{"itemId": "sku-1", "price": 10.0, "quantity": 2}]
        assert orders[0].order_date is not None

    @pytest.mark.asyncio
    async def test_invalid_item_rolls_back_whole_batch(self, session_factory, test_db):
        consumer = IngestionConsumer(session_factory)

        with pytest.raises(SchemaValidationError):
            await consumer.handle([customer("c-1"), customer("c-2", email="not-an-email")])

        assert await count(test_db, Customer) == 0

    @pytest.mark.asyncio
    async def test_non_list_body_rejected(self, session_factory):
        consumer = IngestionConsumer(session_factory)
        with pytest.raises(ValueError):
            await consumer.handle({"customerId": "c-1"})

    @pytest.mark.asyncio
    async def test_empty_batch(self, session_factory):
        consumer = IngestionConsumer(session_factory)
        assert await consumer.handle([]) == {"customers": 0, "orders": 0, "skipped": 0}
