from sqlalchemy import Column, Integer, String, Float, DateTime
from sqlalchemy.sql import func
from minicrm.database import Base


# Keys of the wire-level "metadata" object, stored as flat columns.
METADATA_FIELDS = ("last_visit", "total_spend", "visit_count")


class Customer(Base):
    """Customer model.

    ``customer_id`` is the external identity (``customerId`` on the wire) and
    the upsert key for ingestion. The ``metadata`` object of the wire format
    is flattened into ``last_visit``, ``total_spend`` and ``visit_count``.
    """

    __tablename__ = "customers"

    id = Column(Integer, primary_key=True, index=True)
    customer_id = Column(String(100), nullable=False, unique=True, index=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False, unique=True, index=True)
    phone = Column(String(50))

    last_visit = Column(DateTime(timezone=True))
    total_spend = Column(Float)
    visit_count = Column(Integer)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    def __repr__(self):
        return f"<Customer {self.customer_id} {self.email}>"

    @property
    def profile_metadata(self) -> dict:
        """The nested ``metadata`` object as it appears on the wire."""
        return {name: getattr(self, name) for name in METADATA_FIELDS}

    def to_record(self) -> dict:
        """Document-shaped view used for in-process predicate evaluation."""
        return {
            "customerId": self.customer_id,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "metadata": self.profile_metadata,
        }
