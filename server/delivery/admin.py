"""
Admin API endpoints for announcements.

All endpoints require admin authentication (service API keys or ADMIN users).
"""

import logging

from fastapi import APIRouter, Depends, status

from .auth import require_admin
from .models import Actor, Audience, BroadcastRequest, BroadcastResponse, NotificationMessage
from .notifications import get_notifier


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])


@router.post(
    "/notifications/broadcast",
    response_model=BroadcastResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def broadcast(
    request: BroadcastRequest,
    admin: Actor = Depends(require_admin),
):
    """
    Send an announcement to the broadcast channel.

    Delivery happens in the background; a Slack failure is logged and does
    not change the response.
    """
    logger.info("[admin] Broadcast queued by user_id=%s length=%d", admin.user_id, len(request.text))
    get_notifier().dispatch([NotificationMessage(Audience.BROADCAST, request.text)])
    return BroadcastResponse()
