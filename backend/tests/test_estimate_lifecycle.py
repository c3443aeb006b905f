# Overview: Pytest coverage for the estimate status state machine.

import pytest

from estimate_desk.models import Estimate
from estimate_desk.services.lifecycle_service import (
    LifecycleError,
    apply_transition,
    can_transition,
    validate_status,
)


class TestTransitionTable:

    @pytest.mark.parametrize("from_status,to_status", [
        ("draft", "sent"),
        ("sent", "viewed"),
        ("sent", "converted"),
        ("viewed", "converted"),
        ("draft", "expired"),
        ("sent", "expired"),
        ("viewed", "expired"),
    ])
    def test_allowed(self, from_status, to_status):
        assert can_transition(from_status, to_status)

    @pytest.mark.parametrize("from_status,to_status", [
        ("draft", "viewed"),
        ("draft", "converted"),
        ("viewed", "sent"),
        ("converted", "draft"),
        ("converted", "expired"),
        ("expired", "sent"),
    ])
    def test_rejected(self, from_status, to_status):
        assert not can_transition(from_status, to_status)

    def test_same_state_is_allowed(self):
        assert can_transition("sent", "sent")

    def test_unknown_status(self):
        with pytest.raises(LifecycleError):
            validate_status("archived")


class TestApplyTransition:

    def _estimate(self, status):
        return Estimate(status=status, is_converted=False)

    def test_send_stamps_sent_at(self):
        estimate = self._estimate("draft")
        assert apply_transition(estimate, "sent") is True
        assert estimate.status == "sent"
        assert estimate.sent_at is not None

    def test_view_stamps_viewed_at(self):
        estimate = self._estimate("sent")
        apply_transition(estimate, "viewed")
        assert estimate.viewed_at is not None

    def test_convert_sets_flag(self):
        estimate = self._estimate("viewed")
        apply_transition(estimate, "converted")
        assert estimate.is_converted is True
        assert estimate.converted_at is not None

    def test_same_state_is_noop(self):
        estimate = self._estimate("sent")
        assert apply_transition(estimate, "sent") is False
        assert estimate.sent_at is None

    def test_illegal_transition_raises(self):
        estimate = self._estimate("converted")
        with pytest.raises(LifecycleError) as exc:
            apply_transition(estimate, "draft")
        assert exc.value.status_code == 400
        assert estimate.status == "converted"
