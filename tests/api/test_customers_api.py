"""
Customer read API Tests.
"""

import pytest
import pytest_asyncio
from httpx import AsyncClient

from minicrm.tasks.ingestion_consumer import IngestionConsumer


@pytest_asyncio.fixture
async def loaded_customers(session_factory):
    await IngestionConsumer(session_factory).handle([
        {"customerId": "c-1", "name": "Ann", "email": "user@acme.com", "phone": "555-0100",
         "metadata": {"total_spend": 900, "visit_count": 1, "last_visit": "2026-01-01T00:00:00Z"}},
        {"customerId": "c-2", "name": "Ben", "email": "b@x.com"},
    ])


class TestListCustomers:
    @pytest.mark.asyncio
    async def test_empty(self, client: AsyncClient):
        response = await client.get("/api/customers")

        assert response.status_code == 200
        assert response.json() == {"success": True, "customers": []}

    @pytest.mark.asyncio
    async def test_lists_in_ingestion_order(self, client: AsyncClient, loaded_customers):
        response = await client.get("/api/customers")

        assert response.status_code == 200
        customers = response.json()["customers"]
        assert [c["customerId"] for c in customers] == ["c-1", "c-2"]
        assert customers[0]["metadata"]["total_spend"] == 900
        assert customers[0]["metadata"]["visit_count"] == 1
        assert customers[1]["metadata"] == {"last_visit": None, "total_spend": None, "visit_count": None}


class TestGetCustomer:
    @pytest.mark.asyncio
    async def test_found(self, client: AsyncClient, loaded_customers):
        response = await client.get("/api/customers/c-1")

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        customer = data["customer"]
        assert customer["customerId"] == "c-1"
        assert customer["email"] == "user@acme.com"
        assert customer["phone"] == "555-0100"
        assert customer["metadata"]["last_visit"].startswith("2026-01-01T00:00:00")

    @pytest.mark.asyncio
    async def test_not_found(self, client: AsyncClient):
        response = await client.get("/api/customers/missing")

        assert response.status_code == 404
        assert response.headers["content-type"].startswith("application/problem+json")
        data = response.json()
        assert data["code"] == "RES_001"
        assert data["instance"] == "/api/customers/missing"
