"""
Customer / order ingestion.

HTTP side: ``validate_batch`` checks every record of a batch and reports all
failures at once. Worker side: ``upsert_customer`` / ``upsert_order`` write
one record keyed on its natural id using the database's native
``INSERT ... ON CONFLICT DO UPDATE``, so concurrent or repeated deliveries of
the same record converge without application locks.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError as SchemaValidationError
from sqlalchemy import func
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from minicrm.exceptions import ValidationError
from minicrm.models.customer import Customer, METADATA_FIELDS
from minicrm.models.order import Order
from minicrm.schemas.customer import CustomerIn
from minicrm.schemas.order import OrderIn

logger = logging.getLogger(__name__)

RecordT = TypeVar("RecordT", bound=BaseModel)


def validate_batch(data: Any, model: Type[RecordT], noun: str) -> List[RecordT]:
    """Validate a JSON array of records, collecting the errors of every record."""
    if not isinstance(data, list):
        raise ValidationError(f"Expected an array of {noun}.")

    records: List[RecordT] = []
    errors: List[Dict[str, Any]] = []
    for index, item in enumerate(data):
        try:
            records.append(model.model_validate(item))
        except SchemaValidationError as e:
            for err in e.errors():
                errors.append({
                    "index": index,
                    "field": ".".join(str(loc) for loc in err["loc"]),
                    "message": err["msg"],
                    "type": err["type"],
                })

    if errors:
        raise ValidationError("Validation failed", errors=errors)
    return records


def _utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _insert_for(db: AsyncSession):
    if db.get_bind().dialect.name == "sqlite":
        return sqlite_insert
    return pg_insert


async def _upsert(db: AsyncSession, model, key: str, values: Dict[str, Any], update: List[str]) -> None:
    insert = _insert_for(db)
    stmt = insert(model).values(**values)
    set_ = {column: stmt.excluded[column] for column in update}
    set_["updated_at"] = func.now()
    stmt = stmt.on_conflict_do_update(index_elements=[key], set_=set_)
    await db.execute(stmt)


async def upsert_customer(db: AsyncSession, record: CustomerIn) -> None:
    """Insert or update a customer keyed on ``customerId``.

    Only fields present in the record are overwritten. A ``metadata`` object,
    when present, replaces all three metadata values.
    """
    provided = record.model_fields_set
    values: Dict[str, Any] = {
        "customer_id": record.customer_id,
        "name": record.name,
        "email": str(record.email),
        "phone": record.phone,
    }
    update = ["name", "email"]
    if "phone" in provided:
        update.append("phone")

    if record.metadata is not None:
        values["last_visit"] = _utc(record.metadata.last_visit)
        values["total_spend"] = record.metadata.total_spend
        values["visit_count"] = record.metadata.visit_count
        update.extend(METADATA_FIELDS)

    await _upsert(db, Customer, "customer_id", values, update)
    logger.debug(f"Customer {record.customer_id} saved/updated")


async def upsert_order(db: AsyncSession, record: OrderIn) -> None:
    """Insert or update an order keyed on ``orderId``."""
    values: Dict[str, Any] = {
        "order_id": record.order_id,
        "customer_id": record.customer_id,
        "items": [item.model_dump(by_alias=True, exclude_none=True) for item in record.items],
        "total_amount": record.total_amount,
        "order_date": _utc(record.order_date) or datetime.now(timezone.utc),
    }
    update = ["customer_id", "items", "total_amount"]
    if record.order_date is not None:
        update.append("order_date")

    await _upsert(db, Order, "order_id", values, update)
    logger.debug(f"Order {record.order_id} saved/updated")
