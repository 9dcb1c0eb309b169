import enum

from sqlalchemy import Column, Integer, String, DateTime, JSON
from sqlalchemy.sql import func
from minicrm.database import Base


class CampaignStatus(str, enum.Enum):
    queued = "queued"
    sent = "sent"
    failed = "failed"


class CommunicationLog(Base):
    """One row per processed delivery job.

    Written once by the delivery consumer; a redelivered job writes a second
    row (at-least-once delivery).
    """

    __tablename__ = "communication_logs"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    audience_size = Column(Integer, nullable=False)
    rules = Column(JSON)
    status = Column(String(20), nullable=False, default=CampaignStatus.queued.value)
    sent_count = Column(Integer, nullable=False, default=0)
    failed_count = Column(Integer, nullable=False, default=0)
    # [{customerId, status, message_id, timestamp}]
    delivery_details = Column(JSON, nullable=False, default=list)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    logged_at = Column(DateTime(timezone=True), server_default=func.now())

    def __repr__(self):
        return f"<CommunicationLog {self.name} status={self.status} sent={self.sent_count}>"
