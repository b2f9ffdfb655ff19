"""Notification text for order status changes. Pure functions, no state."""

from typing import Any, List, Optional

from .models import Audience, NotificationMessage, OrderStatus


USER_PREFIX = "[사용자 알림]"
OWNER_PREFIX = "[사장님 알림]"

DEFAULT_STATUS_MESSAGE = f"{USER_PREFIX} 주문 상태가 변경되었습니다."

_USER_MESSAGES = {
    OrderStatus.WAITING: f"{USER_PREFIX} 주문 접수 대기 중입니다.",
    OrderStatus.ACCEPTED: f"{USER_PREFIX} 주문이 접수되었습니다.",
    OrderStatus.COOKING: f"{USER_PREFIX} 조리가 시작되었습니다.",
    OrderStatus.DELIVERING: f"{USER_PREFIX} 배달이 시작되었습니다.",
    OrderStatus.COMPLETED: f"{USER_PREFIX} 배달이 완료되었습니다.",
    OrderStatus.REJECTED: f"{USER_PREFIX} 주문이 거절되었습니다.",
    OrderStatus.CANCELED: f"{USER_PREFIX} 주문이 취소되었습니다.",
}

_OWNER_MESSAGES = {
    OrderStatus.COMPLETED: f"{OWNER_PREFIX} 배달이 완료되었습니다.",
}


def format_status_message(status: Any) -> str:
    """
    Customer-facing text for a status.

    Accepts an OrderStatus or its name in any case. Anything else gets the
    generic "status changed" text instead of an error.
    """
    parsed = OrderStatus.parse(status)
    if parsed is None:
        return DEFAULT_STATUS_MESSAGE
    return _USER_MESSAGES.get(parsed, DEFAULT_STATUS_MESSAGE)


def owner_message_for(status: Any) -> Optional[str]:
    """Store-owner text for a status, or None when owners are not told."""
    parsed = OrderStatus.parse(status)
    if parsed is None:
        return None
    return _OWNER_MESSAGES.get(parsed)


def build_notifications(status: Any) -> List[NotificationMessage]:
    """Messages to send after an order reaches `status`."""
    messages = [NotificationMessage(Audience.USER, format_status_message(status))]
    owner_text = owner_message_for(status)
    if owner_text:
        messages.append(NotificationMessage(Audience.OWNER, owner_text))
    return messages
