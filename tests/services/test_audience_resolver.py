"""
Tests for AudienceResolver.

The SQL lowering must select exactly the customers the in-process predicate
accepts, and ``count`` must agree with ``select``.
"""

from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from unittest.mock import AsyncMock, MagicMock
from sqlalchemy import select
from sqlalchemy.exc import InterfaceError, OperationalError

from minicrm.exceptions import DependencyError, ErrorCode
from minicrm.models.customer import Customer
from minicrm.services.audience import AudienceResolver, compile_rules

NOW = datetime.now(timezone.utc)


def leaf(field, operator, value):
    return {"field": field, "operator": operator, "value": value}


RULE_TREES = [
    {"combinator": "and", "rules": []},
    {"combinator": "and", "rules": [leaf("total_spend", ">", "500")]},
    {"combinator": "or", "rules": [leaf("total_spend", ">", "500"), leaf("visit_count", "<", "3")]},
    {"combinator": "and", "rules": [leaf("total_spend", ">", "500"), leaf("visit_count", "<", "3")]},
    {"combinator": "and", "rules": [leaf("inactive_days", ">", "30")]},
    {"combinator": "and", "rules": [leaf("inactive_days", "<", "30")]},
    {"combinator": "and", "rules": [leaf("visit_count", "!=", "3")]},
    {"combinator": "and", "rules": [leaf("visit_count", "=", "3")]},
    {"combinator": "or", "rules": [leaf("email", "contains", "ACME")]},
    {"combinator": "or", "rules": [leaf("email", "contains", "%")]},
    {"combinator": "and", "rules": [leaf("email", "=", "b@x.com")]},
    {
        "combinator": "and",
        "rules": [
            leaf("total_spend", ">=", "100"),
            {"combinator": "or", "rules": [leaf("visit_count", "<=", "1"), leaf("inactive_days", ">", "30")]},
        ],
    },
]


@pytest_asyncio.fixture
async def customers(test_db):
    rows = [
        Customer(customer_id="c-1", name="Ann", email="user@acme.com",
                 last_visit=NOW - timedelta(days=45), total_spend=900.0, visit_count=1),
        Customer(customer_id="c-2", name="Ben", email="b@x.com",
                 last_visit=NOW - timedelta(days=5), total_spend=100.0, visit_count=3),
        Customer(customer_id="c-3", name="Cai", email="c@x.com",
                 last_visit=None, total_spend=None, visit_count=None),
        Customer(customer_id="c-4", name="Dee", email="DEE@ACME.COM",
                 last_visit=NOW - timedelta(days=90), total_spend=500.0, visit_count=10),
        Customer(customer_id="c-5", name="Eve", email="e@x.com",
                 last_visit=NOW - timedelta(days=1), total_spend=1500.0, visit_count=2),
    ]
    test_db.add_all(rows)
    await test_db.commit()

    result = await test_db.execute(select(Customer).order_by(Customer.id))
    return result.scalars().all()


class TestAudienceResolver:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("rules", RULE_TREES)
    async def test_sql_agrees_with_in_process_evaluation(self, test_db, customers, rules):
        predicate = compile_rules(rules, now=NOW)
        resolver = AudienceResolver(test_db)

        expected = [c.customer_id for c in customers if predicate(c.to_record())]
        selected = await resolver.select(predicate)

        assert selected == expected
        assert await resolver.count(predicate) == len(selected)

    @pytest.mark.asyncio
    async def test_known_audiences(self, test_db, customers):
        resolver = AudienceResolver(test_db)

        big_spenders = compile_rules({"combinator": "and", "rules": [leaf("total_spend", ">", "500")]}, now=NOW)
        assert await resolver.select(big_spenders) == ["c-1", "c-5"]

        acme = compile_rules({"combinator": "and", "rules": [leaf("email", "contains", "acme")]}, now=NOW)
        assert await resolver.select(acme) == ["c-1", "c-4"]

        inactive = compile_rules({"combinator": "and", "rules": [leaf("inactive_days", ">", "30")]}, now=NOW)
        assert await resolver.select(inactive) == ["c-1", "c-4"]

    @pytest.mark.asyncio
    async def test_empty_group_selects_everyone(self, test_db, customers):
        resolver = AudienceResolver(test_db)
        predicate = compile_rules({"combinator": "or", "rules": []}, now=NOW)
        assert await resolver.count(predicate) == len(customers)

    @pytest.mark.asyncio
    async def test_fractional_threshold_on_integer_column(self, test_db, customers):
        resolver = AudienceResolver(test_db)
        predicate = compile_rules({"combinator": "and", "rules": [leaf("visit_count", ">", "2.5")]}, now=NOW)
        assert await resolver.select(predicate) == ["c-2", "c-4"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "error",
        [
            OSError("connection refused"),
            InterfaceError("SELECT 1", {}, Exception("connection is closed")),
            OperationalError("SELECT 1", {}, Exception("server closed the connection")),
        ],
    )
    async def test_store_outage_is_a_dependency_error(self, error):
        db = MagicMock()
        db.execute = AsyncMock(side_effect=error)
        resolver = AudienceResolver(db)
        predicate = compile_rules({"combinator": "and", "rules": []}, now=NOW)

        with pytest.raises(DependencyError) as exc_info:
            await resolver.count(predicate)
        assert exc_info.value.code is ErrorCode.DATABASE_ERROR

        with pytest.raises(DependencyError):
            await resolver.select(predicate)

    @pytest.mark.asyncio
    async def test_empty_store(self, test_db):
        resolver = AudienceResolver(test_db)
        predicate = compile_rules({"combinator": "and", "rules": [leaf("total_spend", ">", "0")]}, now=NOW)
        assert await resolver.count(predicate) == 0
        assert await resolver.select(predicate) == []
