from minicrm.models.customer import Customer
from minicrm.models.order import Order
from minicrm.models.communication_log import CommunicationLog, CampaignStatus

__all__ = [
    "Customer",
    "Order",
    "CommunicationLog",
    "CampaignStatus",
]
