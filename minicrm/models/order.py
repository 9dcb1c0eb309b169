from sqlalchemy import Column, Integer, String, Float, DateTime, JSON
from sqlalchemy.sql import func
from minicrm.database import Base


class Order(Base):
    """Order model, upserted by ingestion on ``order_id``.

    ``customer_id`` references ``Customer.customer_id`` by value only;
    orders may arrive before their customer does.
    """

    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(String(100), nullable=False, unique=True, index=True)
    customer_id = Column(String(100), nullable=False, index=True)
    items = Column(JSON, nullable=False, default=list)
    total_amount = Column(Float, nullable=False)
    order_date = Column(DateTime(timezone=True), server_default=func.now())

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    def __repr__(self):
        return f"<Order {self.order_id} customer={self.customer_id}>"
