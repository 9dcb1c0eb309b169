from fastapi import APIRouter
from minicrm.api import campaigns, customers, ingestion

api_router = APIRouter()

api_router.include_router(ingestion.router, prefix="/ingestion", tags=["ingestion"])
api_router.include_router(campaigns.router, prefix="/campaigns", tags=["campaigns"])
api_router.include_router(customers.router, prefix="/customers", tags=["customers"])
