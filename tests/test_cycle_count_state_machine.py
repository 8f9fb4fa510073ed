"""
Cycle count plan state machine tests.

SCHEDULED -> IN_PROGRESS -> COMPLETED -> RECONCILED, with CANCELLED
reachable only from SCHEDULED and IN_PROGRESS.
"""
import pytest

from app.core.exceptions import InvalidStateTransitionError
from app.models.cycle_count import CycleCountStatus
from app.services.cycle_count_state_machine import (
    PLAN_TRANSITIONS,
    accepts_entries,
    can_cancel,
    can_transition,
    get_transition_action,
    is_terminal,
    validate_transition,
)

S = CycleCountStatus

ALLOWED = [
    (S.SCHEDULED, S.IN_PROGRESS, "START"),
    (S.SCHEDULED, S.CANCELLED, "CANCEL"),
    (S.IN_PROGRESS, S.COMPLETED, "COMPLETE"),
    (S.IN_PROGRESS, S.CANCELLED, "CANCEL"),
    (S.COMPLETED, S.RECONCILED, "RECONCILE"),
]

FORBIDDEN = [
    (S.SCHEDULED, S.COMPLETED),
    (S.SCHEDULED, S.RECONCILED),
    (S.IN_PROGRESS, S.RECONCILED),
    (S.IN_PROGRESS, S.SCHEDULED),
    (S.COMPLETED, S.IN_PROGRESS),
    (S.COMPLETED, S.CANCELLED),
    (S.RECONCILED, S.IN_PROGRESS),
    (S.CANCELLED, S.SCHEDULED),
]


class TestTransitionTable:
    """Every status has an entry and terminal states have no exits."""

    def test_every_status_is_listed(self):
        assert set(PLAN_TRANSITIONS) == {status.value for status in CycleCountStatus}

    @pytest.mark.parametrize("status", [S.RECONCILED, S.CANCELLED])
    def test_terminal_states(self, status):
        assert is_terminal(status.value)
        assert not can_cancel(status.value)

    @pytest.mark.parametrize("status", [S.SCHEDULED, S.IN_PROGRESS, S.COMPLETED])
    def test_non_terminal_states(self, status):
        assert not is_terminal(status.value)


class TestValidateTransition:

    @pytest.mark.parametrize("current,new,action", ALLOWED)
    def test_allowed(self, current, new, action):
        assert can_transition(current.value, new.value)
        validate_transition(current.value, new.value)
        assert get_transition_action(current.value, new.value) == action

    @pytest.mark.parametrize("current,new", FORBIDDEN)
    def test_forbidden(self, current, new):
        assert not can_transition(current.value, new.value)
        with pytest.raises(InvalidStateTransitionError) as exc_info:
            validate_transition(current.value, new.value)
        assert exc_info.value.current_status == current.value
        assert exc_info.value.requested_status == new.value

    def test_same_status_is_noop(self):
        for status in CycleCountStatus:
            validate_transition(status.value, status.value)

    def test_terminal_message(self):
        with pytest.raises(InvalidStateTransitionError, match="terminal state"):
            validate_transition(S.CANCELLED.value, S.IN_PROGRESS.value)

    def test_message_lists_allowed_transitions(self):
        with pytest.raises(InvalidStateTransitionError, match="Allowed transitions: RECONCILED"):
            validate_transition(S.COMPLETED.value, S.IN_PROGRESS.value)


class TestStatusHelpers:

    def test_can_cancel(self):
        assert can_cancel(S.SCHEDULED.value)
        assert can_cancel(S.IN_PROGRESS.value)
        assert not can_cancel(S.COMPLETED.value)

    def test_accepts_entries(self):
        assert accepts_entries(S.SCHEDULED.value)
        assert accepts_entries(S.IN_PROGRESS.value)
        assert accepts_entries(S.COMPLETED.value)
        assert not accepts_entries(S.CANCELLED.value)
        assert not accepts_entries(S.RECONCILED.value)
