from fastapi import APIRouter
from sqlalchemy import select

from minicrm.api.deps import DbSession
from minicrm.exceptions import NotFoundError
from minicrm.models.customer import Customer
from minicrm.schemas.customer import (
    CustomerEnvelope,
    CustomerListEnvelope,
    CustomerResponse,
)

router = APIRouter()


@router.get("", response_model=CustomerListEnvelope)
async def list_customers(db: DbSession):
    """List all customers."""
    result = await db.execute(select(Customer).order_by(Customer.id))
    customers = result.scalars().all()
    return CustomerListEnvelope(customers=[CustomerResponse.from_model(c) for c in customers])


@router.get("/{customer_id}", response_model=CustomerEnvelope)
async def get_customer(customer_id: str, db: DbSession):
    """Get a single customer by ``customerId``."""
    result = await db.execute(select(Customer).where(Customer.customer_id == customer_id))
    customer = result.scalar_one_or_none()

    if not customer:
        raise NotFoundError("Customer", customer_id)

    return CustomerEnvelope(customer=CustomerResponse.from_model(customer))
