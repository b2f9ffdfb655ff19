"""
Tests for notification text.
"""

import pytest

from delivery.messages import (
    DEFAULT_STATUS_MESSAGE, build_notifications, format_status_message, owner_message_for,
)
from delivery.models import Audience, OrderStatus


class TestFormatStatusMessage:
    """format_status_message is total and deterministic."""

    def test_every_status_has_its_own_text(self):
        texts = {status: format_status_message(status) for status in OrderStatus}
        assert len(set(texts.values())) == len(OrderStatus)
        assert DEFAULT_STATUS_MESSAGE not in texts.values()

    def test_known_texts(self):
        assert format_status_message(OrderStatus.WAITING) == "[사용자 알림] 주문 접수 대기 중입니다."
        assert format_status_message(OrderStatus.ACCEPTED) == "[사용자 알림] 주문이 접수되었습니다."
        assert format_status_message(OrderStatus.CANCELED) == "[사용자 알림] 주문이 취소되었습니다."

    def test_deterministic(self):
        for status in OrderStatus:
            assert format_status_message(status) == format_status_message(status)

    def test_status_name_in_any_case(self):
        assert format_status_message("delivering") == format_status_message(OrderStatus.DELIVERING)

    @pytest.mark.parametrize("value", ["REFUNDED", "", None, 42, object()])
    def test_unrecognized_values_get_default(self, value):
        assert format_status_message(value) == DEFAULT_STATUS_MESSAGE


class TestBuildNotifications:
    """Messages produced for a transition."""

    def test_customer_only_for_intermediate_states(self):
        messages = build_notifications(OrderStatus.COOKING)
        assert [m.audience for m in messages] == [Audience.USER]

    def test_completion_also_notifies_owner(self):
        messages = build_notifications(OrderStatus.COMPLETED)
        assert [m.audience for m in messages] == [Audience.USER, Audience.OWNER]
        assert messages[1].text == owner_message_for(OrderStatus.COMPLETED)

    def test_owner_message_absent_for_other_states(self):
        assert owner_message_for(OrderStatus.ACCEPTED) is None
        assert owner_message_for("bogus") is None
