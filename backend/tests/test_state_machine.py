"""
Tests for the order state machine.

Tests: every (status, event) pair, cancel-after-ack, terminal handling,
reachability.
"""
import pytest

from domain.enums import OrderEvent, OrderStatus
from services.state_machine import Accepted, Rejected, is_terminal, reachable_statuses, transition

ALLOWED = {
    (OrderStatus.PENDING, OrderEvent.GATEWAY_SUCCESS): OrderStatus.PAID,
    (OrderStatus.PENDING, OrderEvent.GATEWAY_FAILURE): OrderStatus.FAILED,
    (OrderStatus.PENDING, OrderEvent.CLIENT_CANCEL): OrderStatus.CANCELLED,
    (OrderStatus.PENDING, OrderEvent.EXPIRED): OrderStatus.CANCELLED,
    (OrderStatus.PAID, OrderEvent.REFUND_APPROVED): OrderStatus.REFUNDED,
}


class TestTransitionTable:

    @pytest.mark.unit
    @pytest.mark.parametrize("status", list(OrderStatus))
    @pytest.mark.parametrize("event", list(OrderEvent))
    def test_every_pair(self, status, event):
        result = transition(status, event)
        expected = ALLOWED.get((status, event))
        if expected is None:
            assert isinstance(result, Rejected)
            assert result.accepted is False
            assert result.reason
        else:
            assert result == Accepted(expected)
            assert result.accepted is True

    @pytest.mark.unit
    def test_accepts_raw_values(self):
        assert transition("PENDING", "gateway-success") == Accepted(OrderStatus.PAID)

    @pytest.mark.unit
    def test_unknown_event_raises(self):
        with pytest.raises(ValueError):
            transition(OrderStatus.PENDING, "teleport")


class TestCancelAfterAck:

    @pytest.mark.unit
    def test_cancel_rejected_once_gateway_acknowledged(self):
        result = transition(OrderStatus.PENDING, OrderEvent.CLIENT_CANCEL, gateway_acknowledged=True)
        assert isinstance(result, Rejected)
        assert "gateway" in result.reason

    @pytest.mark.unit
    def test_expiry_not_blocked_by_ack_flag(self):
        result = transition(OrderStatus.PENDING, OrderEvent.EXPIRED, gateway_acknowledged=True)
        assert result == Accepted(OrderStatus.CANCELLED)

    @pytest.mark.unit
    def test_gateway_outcome_not_blocked_by_ack_flag(self):
        result = transition(OrderStatus.PENDING, OrderEvent.GATEWAY_SUCCESS, gateway_acknowledged=True)
        assert result == Accepted(OrderStatus.PAID)


class TestTerminalStatuses:

    @pytest.mark.unit
    def test_paid_only_admits_refund(self):
        for event in OrderEvent:
            result = transition(OrderStatus.PAID, event)
            assert result.accepted is (event is OrderEvent.REFUND_APPROVED)

    @pytest.mark.unit
    @pytest.mark.parametrize("status", [OrderStatus.FAILED, OrderStatus.CANCELLED, OrderStatus.REFUNDED])
    def test_final_statuses_reject_everything(self, status):
        for event in OrderEvent:
            assert transition(status, event).accepted is False

    @pytest.mark.unit
    def test_is_terminal(self):
        assert is_terminal(OrderStatus.PENDING) is False
        for status in (OrderStatus.PAID, OrderStatus.FAILED, OrderStatus.CANCELLED, OrderStatus.REFUNDED):
            assert is_terminal(status) is True

    @pytest.mark.unit
    def test_no_transition_back_to_pending(self):
        for status in OrderStatus:
            for event in OrderEvent:
                result = transition(status, event)
                if result.accepted:
                    assert result.next_status is not OrderStatus.PENDING

    @pytest.mark.unit
    def test_every_status_reachable(self):
        assert reachable_statuses() == frozenset(OrderStatus)


class TestStatusCodes:

    @pytest.mark.unit
    def test_codes_follow_table_order(self):
        assert [s.code for s in OrderStatus] == [0, 1, 2, 3, 4]
        assert OrderStatus.from_code(1) is OrderStatus.PAID
        assert OrderStatus.from_code(4) is OrderStatus.REFUNDED
