from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime
from typing import Any, Optional

from minicrm.models.communication_log import CampaignStatus


class CampaignCreate(BaseModel):
    """Request body of POST /campaigns/create.

    ``rules`` is kept as raw JSON here; the rule model parses it so that all
    problems in the tree are reported together.
    """

    name: str = Field(..., min_length=1, max_length=255)
    rules: Any = None


class CampaignTicket(BaseModel):
    """Campaign metadata handed back to the caller and carried by the delivery job."""

    name: str
    audience_size: int = Field(..., ge=0)
    rules: dict[str, Any]
    status: CampaignStatus = CampaignStatus.queued
    sent_count: int = 0
    failed_count: int = 0
    created_at: datetime


class DeliveryJob(BaseModel):
    """Payload of the campaign delivery queue."""
    model_config = ConfigDict(populate_by_name=True)

    campaign_details: CampaignTicket = Field(..., alias="campaignDetails")
    customer_ids: list[str] = Field(..., alias="customerIds")


class DeliveryDetail(BaseModel):
    """One recipient's outcome, stored in ``CommunicationLog.delivery_details``."""
    model_config = ConfigDict(populate_by_name=True)

    customer_id: str = Field(..., alias="customerId")
    status: CampaignStatus
    message_id: Optional[str] = None
    timestamp: datetime


class CommunicationLogResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    audience_size: int
    rules: Optional[dict[str, Any]] = None
    status: CampaignStatus
    sent_count: int
    failed_count: int
    created_at: Optional[datetime] = None
    logged_at: Optional[datetime] = None
    delivery_details: list[DeliveryDetail]


class PreviewResponse(BaseModel):
    success: bool = True
    count: int


class CampaignAccepted(BaseModel):
    success: bool = True
    message: str = "Campaign creation queued successfully."
    campaign: CampaignTicket


class CommunicationLogList(BaseModel):
    success: bool = True
    campaigns: list[CommunicationLogResponse]
    total: int
    page: int
    page_size: int
