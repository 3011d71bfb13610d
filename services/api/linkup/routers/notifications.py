"""
GET /notifications — the caller's notification mailbox, newest first.

Mailboxes are filled by the notification-worker from Kafka domain events.
"""
from fastapi import APIRouter, Depends, Query

from linkup.auth import Principal, get_principal
from linkup.clients.redis_client import get_notifications
from linkup.config import settings
from linkup.schemas import Notification

router = APIRouter()


@router.get("/", response_model=list[Notification])
async def my_notifications(
    limit: int = Query(settings.notifications_page_size, ge=1, le=200),
    principal: Principal = Depends(get_principal),
):
    return await get_notifications(principal.user_id, limit=limit)
