"""
Cycle Count Plan State Machine

All plan status changes go through this module.

SCHEDULED -> IN_PROGRESS -> COMPLETED -> RECONCILED
SCHEDULED / IN_PROGRESS -> CANCELLED
"""

from typing import List, Dict

from app.core.exceptions import InvalidStateTransitionError
from app.models.cycle_count import CycleCountStatus


# =============================================================================
# TRANSITION RULES
# =============================================================================

# Format: current_status -> [list of allowed next statuses]
PLAN_TRANSITIONS: Dict[str, List[str]] = {
    CycleCountStatus.SCHEDULED.value: [
        CycleCountStatus.IN_PROGRESS.value,   # Start counting
        CycleCountStatus.CANCELLED.value,
    ],
    CycleCountStatus.IN_PROGRESS.value: [
        CycleCountStatus.COMPLETED.value,     # Counting finished
        CycleCountStatus.CANCELLED.value,
    ],
    CycleCountStatus.COMPLETED.value: [
        CycleCountStatus.RECONCILED.value,    # Variances settled
    ],
    CycleCountStatus.RECONCILED.value: [],    # Terminal state
    CycleCountStatus.CANCELLED.value: [],     # Terminal state
}

TRANSITION_ACTIONS: Dict[tuple, str] = {
    (CycleCountStatus.SCHEDULED.value, CycleCountStatus.IN_PROGRESS.value): "START",
    (CycleCountStatus.SCHEDULED.value, CycleCountStatus.CANCELLED.value): "CANCEL",
    (CycleCountStatus.IN_PROGRESS.value, CycleCountStatus.COMPLETED.value): "COMPLETE",
    (CycleCountStatus.IN_PROGRESS.value, CycleCountStatus.CANCELLED.value): "CANCEL",
    (CycleCountStatus.COMPLETED.value, CycleCountStatus.RECONCILED.value): "RECONCILE",
}


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def can_transition(current_status: str, new_status: str) -> bool:
    """Check if a transition is allowed."""
    return new_status in PLAN_TRANSITIONS.get(current_status, [])


def get_allowed_transitions(current_status: str) -> List[str]:
    return PLAN_TRANSITIONS.get(current_status, [])


def get_transition_action(current_status: str, new_status: str) -> str:
    """Get the audit action name for a transition."""
    return TRANSITION_ACTIONS.get((current_status, new_status), f"{current_status} -> {new_status}")


def validate_transition(current_status: str, new_status: str) -> None:
    """
    Validate a plan status transition.

    Raises InvalidStateTransitionError if the move is not allowed.
    Re-entering the current status is accepted as a no-op.
    """
    if current_status == new_status:
        return

    if not can_transition(current_status, new_status):
        allowed = get_allowed_transitions(current_status)
        if not allowed:
            raise InvalidStateTransitionError(
                f"Cycle count in '{current_status}' status cannot be modified. This is a terminal state.",
                current_status=current_status,
                requested_status=new_status,
            )
        raise InvalidStateTransitionError(
            f"Cannot change cycle count from '{current_status}' to '{new_status}'. "
            f"Allowed transitions: {', '.join(allowed)}",
            current_status=current_status,
            requested_status=new_status,
        )


# =============================================================================
# STATUS CHECK HELPERS
# =============================================================================

def can_cancel(status: str) -> bool:
    """Can this plan be cancelled?"""
    return can_transition(status, CycleCountStatus.CANCELLED.value)


def accepts_entries(status: str) -> bool:
    """Can count entries still be recorded against this plan?"""
    return status not in [CycleCountStatus.CANCELLED.value, CycleCountStatus.RECONCILED.value]


def is_terminal(status: str) -> bool:
    """Is this a terminal (final) state?"""
    return not PLAN_TRANSITIONS.get(status)
