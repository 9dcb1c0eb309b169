from typing import Any

from fastapi import APIRouter, Body, Query, status
from sqlalchemy import select, func

from minicrm.api.deps import CurrentUser, DbSession, DeliveryQueue
from minicrm.models.communication_log import CommunicationLog
from minicrm.schemas.campaign import (
    CampaignAccepted,
    CampaignCreate,
    CommunicationLogList,
    PreviewResponse,
)
from minicrm.services.campaign_dispatcher import CampaignDispatcher

router = APIRouter()


@router.post("/preview", response_model=PreviewResponse)
async def preview_audience(
    db: DbSession,
    queue: DeliveryQueue,
    current_user: CurrentUser,
    rules: Any = Body(...),
):
    """Number of customers a rule tree currently selects."""
    count = await CampaignDispatcher(db, queue).preview(rules)
    return PreviewResponse(count=count)


@router.post("/create", response_model=CampaignAccepted, status_code=status.HTTP_202_ACCEPTED)
async def create_campaign(
    body: CampaignCreate,
    db: DbSession,
    queue: DeliveryQueue,
    current_user: CurrentUser,
):
    """Resolve the audience and queue the campaign for delivery."""
    ticket = await CampaignDispatcher(db, queue).create_campaign(body.name, body.rules)
    return CampaignAccepted(campaign=ticket)


@router.get("", response_model=CommunicationLogList)
async def list_campaigns(
    db: DbSession,
    current_user: CurrentUser,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=200),
):
    """Delivered campaigns (communication logs), newest first."""
    total_result = await db.execute(select(func.count(CommunicationLog.id)))
    total = total_result.scalar_one()

    offset = (page - 1) * page_size
    result = await db.execute(
        select(CommunicationLog)
        .order_by(CommunicationLog.id.desc())
        .offset(offset)
        .limit(page_size)
    )
    return CommunicationLogList(
        campaigns=result.scalars().all(),
        total=total,
        page=page,
        page_size=page_size,
    )
