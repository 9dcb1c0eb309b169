"""
Tests for the delivery consumer.
"""

from datetime import datetime, timezone

import pytest
from pydantic import ValidationError as SchemaValidationError
from sqlalchemy import select

from minicrm.models.communication_log import CampaignStatus, CommunicationLog
from minicrm.schemas.campaign import DeliveryDetail
from minicrm.services.delivery_service import DeliveryResult, DeliveryService, MockDeliveryService
from minicrm.tasks.delivery_consumer import DeliveryConsumer


def job(customer_ids, name="Spring sale"):
    return {
        "campaignDetails": {
            "name": name,
            "audience_size": len(customer_ids),
            "rules": {"combinator": "and", "rules": []},
            "status": "queued",
            "sent_count": 0,
            "failed_count": 0,
            "created_at": "2026-05-01T10:00:00+00:00",
        },
        "customerIds": customer_ids,
    }


class FailingDelivery(DeliveryService):
    async def send(self, campaign_name, customer_id):
        return DeliveryResult(
            customer_id=customer_id,
            status=CampaignStatus.failed,
            message_id="",
            timestamp=datetime.now(timezone.utc),
        )


class TestDeliveryConsumer:
    @pytest.mark.asyncio
    async def test_logs_one_entry_per_job(self, session_factory, test_db):
        delivery = MockDeliveryService(keep_history=True)
        consumer = DeliveryConsumer(session_factory, delivery=delivery)

        await consumer.handle(job(["c-1", "c-2", "c-3"]))

        result = await test_db.execute(select(CommunicationLog))
        logs = result.scalars().all()
        assert len(logs) == 1
        entry = logs[0]
        assert entry.name == "Spring sale"
        assert entry.status == "sent"
        assert entry.audience_size == 3
        assert entry.sent_count == 3
        assert entry.failed_count == 0
        assert entry.rules == {"combinator": "and", "rules": []}
        assert [d["customerId"] for d in entry.delivery_details] == ["c-1", "c-2", "c-3"]
        assert len(delivery.sent) == 3

    @pytest.mark.asyncio
    async def test_message_ids_name_the_customer(self, session_factory):
        consumer = DeliveryConsumer(session_factory)

        entry = await consumer.handle(job(["c-9"]))

        detail = entry.delivery_details[0]
        assert detail["status"] == "sent"
        assert detail["message_id"].startswith("msg-")
        assert detail["message_id"].endswith("-c-9")
        assert detail["timestamp"]

    @pytest.mark.asyncio
    async def test_zero_audience_still_logged(self, session_factory, test_db):
        consumer = DeliveryConsumer(session_factory)

        entry = await consumer.handle(job([]))

        assert entry.status == "sent"
        assert entry.sent_count == 0
        assert entry.delivery_details == []
        result = await test_db.execute(select(CommunicationLog))
        assert len(result.scalars().all()) == 1

    @pytest.mark.asyncio
    async def test_all_failed_marks_campaign_failed(self, session_factory):
        consumer = DeliveryConsumer(session_factory, delivery=FailingDelivery())

        entry = await consumer.handle(job(["c-1", "c-2"]))

        assert entry.status == "failed"
        assert entry.sent_count == 0
        assert entry.failed_count == 2

    @pytest.mark.asyncio
    async def test_invalid_job_raises(self, session_factory, test_db):
        consumer = DeliveryConsumer(session_factory)

        with pytest.raises(SchemaValidationError):
            await consumer.handle({"customerIds": ["c-1"]})

        result = await test_db.execute(select(CommunicationLog))
        assert result.scalars().all() == []


class TestDeliveryDetail:
    def test_detail_matches_schema(self):
        result = DeliveryResult(
            customer_id="c-1",
            status=CampaignStatus.sent,
            message_id="msg-1-c-1",
            timestamp=datetime(2026, 5, 1, 10, 0, tzinfo=timezone.utc),
        )

        detail = result.to_detail()

        assert set(detail) == {"customerId", "status", "message_id", "timestamp"}
        assert detail["status"] == "sent"
        parsed = DeliveryDetail.model_validate(detail)
        assert parsed.customer_id == "c-1"
        assert parsed.timestamp == result.timestamp


class TestMockDeliveryService:
    @pytest.mark.asyncio
    async def test_history_is_opt_in(self):
        service = MockDeliveryService()
        await service.send("Spring sale", "c-1")
        assert service.sent == []
