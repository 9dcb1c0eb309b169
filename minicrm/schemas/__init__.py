from minicrm.schemas.customer import (
    CustomerIn,
    CustomerMetadata,
    CustomerResponse,
    CustomerEnvelope,
    CustomerListEnvelope,
)
from minicrm.schemas.order import OrderIn, OrderItem
from minicrm.schemas.campaign import (
    CampaignCreate,
    CampaignTicket,
    DeliveryJob,
    DeliveryDetail,
    CommunicationLogResponse,
    PreviewResponse,
    CampaignAccepted,
    CommunicationLogList,
)

__all__ = [
    "CustomerIn",
    "CustomerMetadata",
    "CustomerResponse",
    "CustomerEnvelope",
    "CustomerListEnvelope",
    "OrderIn",
    "OrderItem",
    "CampaignCreate",
    "CampaignTicket",
    "DeliveryJob",
    "DeliveryDetail",
    "CommunicationLogResponse",
    "PreviewResponse",
    "CampaignAccepted",
    "CommunicationLogList",
]
