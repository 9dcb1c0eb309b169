# Services module
from minicrm.services.audience import AudienceResolver, compile_rules, parse_rule_tree
from minicrm.services.campaign_dispatcher import CampaignDispatcher
from minicrm.services.delivery_service import DeliveryService, MockDeliveryService
from minicrm.services.queue_service import QueueConnectionManager, WorkQueue
