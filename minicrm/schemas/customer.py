from pydantic import BaseModel, ConfigDict, EmailStr, Field
from datetime import datetime
from typing import Optional

from minicrm.models.customer import Customer


class CustomerMetadata(BaseModel):
    """Behavioural metadata used by audience rules."""
    model_config = ConfigDict(extra="forbid")

    last_visit: Optional[datetime] = None
    total_spend: Optional[float] = None
    visit_count: Optional[int] = None


class CustomerIn(BaseModel):
    """Customer record accepted by the ingestion endpoint."""
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    customer_id: str = Field(..., alias="customerId", min_length=1, max_length=100)
    name: str = Field(..., min_length=1, max_length=255)
    email: EmailStr
    phone: Optional[str] = Field(None, max_length=50)
    metadata: Optional[CustomerMetadata] = None


class CustomerResponse(BaseModel):
    """Customer as returned by the read endpoints."""

    customer_id: str = Field(..., serialization_alias="customerId")
    name: str
    email: str
    phone: Optional[str] = None
    metadata: CustomerMetadata
    created_at: Optional[datetime] = Field(None, serialization_alias="createdAt")
    updated_at: Optional[datetime] = Field(None, serialization_alias="updatedAt")

    @classmethod
    def from_model(cls, customer: Customer) -> "CustomerResponse":
        return cls(
            customer_id=customer.customer_id,
            name=customer.name,
            email=customer.email,
            phone=customer.phone,
            metadata=CustomerMetadata(**customer.profile_metadata),
            created_at=customer.created_at,
            updated_at=customer.updated_at,
        )


class CustomerEnvelope(BaseModel):
    success: bool = True
    customer: CustomerResponse


class CustomerListEnvelope(BaseModel):
    success: bool = True
    customers: list[CustomerResponse]
