from typing import Any

from fastapi import APIRouter, Body, status

from minicrm.api.deps import CurrentUser, IngestionQueue
from minicrm.schemas.customer import CustomerIn
from minicrm.schemas.order import OrderIn
from minicrm.services.ingestion_service import validate_batch

router = APIRouter()

ACCEPTED = {"success": True, "message": "Data accepted and queued for processing."}


@router.post("/customers", status_code=status.HTTP_202_ACCEPTED)
async def ingest_customers(
    queue: IngestionQueue,
    current_user: CurrentUser,
    payload: Any = Body(...),
):
    """Validate a batch of customers and queue it for persistence."""
    records = validate_batch(payload, CustomerIn, "customers")
    await queue.publish([r.model_dump(mode="json", by_alias=True, exclude_unset=True) for r in records])
    return ACCEPTED


@router.post("/orders", status_code=status.HTTP_202_ACCEPTED)
async def ingest_orders(
    queue: IngestionQueue,
    current_user: CurrentUser,
    payload: Any = Body(...),
):
    """Validate a batch of orders and queue it for persistence."""
    records = validate_batch(payload, OrderIn, "orders")
    await queue.publish([r.model_dump(mode="json", by_alias=True, exclude_unset=True) for r in records])
    return ACCEPTED
