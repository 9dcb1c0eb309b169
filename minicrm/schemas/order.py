from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime
from typing import Optional


class OrderItem(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    item_id: Optional[str] = Field(None, alias="itemId")
    price: Optional[float] = None
    quantity: Optional[float] = None


class OrderIn(BaseModel):
    """Order record accepted by the ingestion endpoint."""
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    order_id: str = Field(..., alias="orderId", min_length=1, max_length=100)
    customer_id: str = Field(..., alias="customerId", min_length=1, max_length=100)
    items: list[OrderItem]
    total_amount: float = Field(..., alias="totalAmount")
    order_date: Optional[datetime] = Field(None, alias="orderDate")
