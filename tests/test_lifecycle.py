"""Tests for dispute and defense state machines."""

import pytest

from chargeback_recon.lifecycle import (
    InvalidTransitionError,
    is_terminal_defense,
    is_terminal_dispute,
    validate_defense_transition,
    validate_dispute_transition,
)
from chargeback_recon.models import DefenseStatus, DisputeStatus


class TestDisputeTransitions:
    """Tests for dispute lifecycle."""

    @pytest.mark.parametrize("current,target", [
        ("opened", "submitted"),
        ("opened", "won"),
        ("opened", "closed"),
        ("submitted", "lost"),
        ("closed", "won"),
    ])
    def test_allowed(self, current, target):
        assert validate_dispute_transition(current, target) == DisputeStatus(target)

    @pytest.mark.parametrize("current,target", [
        ("won", "submitted"),
        ("lost", "won"),
        ("submitted", "opened"),
        ("closed", "opened"),
        ("opened", "opened"),
    ])
    def test_rejected(self, current, target):
        with pytest.raises(InvalidTransitionError) as exc_info:
            validate_dispute_transition(current, target)
        assert exc_info.value.entity_type == "dispute"
        assert exc_info.value.current == current
        assert exc_info.value.target == target

    def test_unknown_status_rejected(self):
        with pytest.raises(InvalidTransitionError):
            validate_dispute_transition("opened", "escalated")

    def test_accepts_enum_members(self):
        assert validate_dispute_transition(
            DisputeStatus.SUBMITTED, DisputeStatus.WON
        ) == DisputeStatus.WON

    def test_terminal_statuses(self):
        assert is_terminal_dispute(DisputeStatus.WON)
        assert is_terminal_dispute("lost")
        assert not is_terminal_dispute(DisputeStatus.CLOSED)
        assert not is_terminal_dispute("opened")


class TestDefenseTransitions:
    """Tests for defense lifecycle."""

    @pytest.mark.parametrize("current,target", [
        ("drafted", "approved"),
        ("drafted", "submitted"),
        ("approved", "submitted"),
        ("submitted", "won"),
        ("submitted", "lost"),
    ])
    def test_allowed(self, current, target):
        assert validate_defense_transition(current, target) == DefenseStatus(target)

    @pytest.mark.parametrize("current,target", [
        ("submitted", "drafted"),
        ("submitted", "approved"),
        ("approved", "drafted"),
        ("drafted", "won"),
        ("won", "lost"),
        ("lost", "submitted"),
    ])
    def test_rejected(self, current, target):
        with pytest.raises(InvalidTransitionError) as exc_info:
            validate_defense_transition(current, target)
        assert exc_info.value.entity_type == "defense"

    def test_terminal_statuses(self):
        assert is_terminal_defense("won")
        assert is_terminal_defense(DefenseStatus.LOST)
        assert not is_terminal_defense("submitted")

    def test_error_message_names_both_states(self):
        with pytest.raises(InvalidTransitionError, match="submitted -> drafted"):
            validate_defense_transition("submitted", "drafted")
