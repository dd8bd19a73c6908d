"""State machines for disputes and defenses.

Only forward transitions exist. ``won`` and ``lost`` are terminal for both
records; ``closed`` is a side label for gateway closures that carry no
outcome, from which a later outcome may still arrive.
"""

from typing import Dict, FrozenSet, Union

from .models import DisputeStatus, DefenseStatus

DISPUTE_TRANSITIONS: Dict[DisputeStatus, FrozenSet[DisputeStatus]] = {
    DisputeStatus.OPENED: frozenset({
        DisputeStatus.SUBMITTED,
        DisputeStatus.WON,
        DisputeStatus.LOST,
        DisputeStatus.CLOSED,
    }),
    DisputeStatus.SUBMITTED: frozenset({
        DisputeStatus.WON,
        DisputeStatus.LOST,
        DisputeStatus.CLOSED,
    }),
    DisputeStatus.CLOSED: frozenset({DisputeStatus.WON, DisputeStatus.LOST}),
    DisputeStatus.WON: frozenset(),
    DisputeStatus.LOST: frozenset(),
}

# drafted -> submitted is allowed directly when approval and submission
# happen in a single operator action.
DEFENSE_TRANSITIONS: Dict[DefenseStatus, FrozenSet[DefenseStatus]] = {
    DefenseStatus.DRAFTED: frozenset({DefenseStatus.APPROVED, DefenseStatus.SUBMITTED}),
    DefenseStatus.APPROVED: frozenset({DefenseStatus.SUBMITTED}),
    DefenseStatus.SUBMITTED: frozenset({DefenseStatus.WON, DefenseStatus.LOST}),
    DefenseStatus.WON: frozenset(),
    DefenseStatus.LOST: frozenset(),
}

TERMINAL_DISPUTE_STATUSES = frozenset({DisputeStatus.WON, DisputeStatus.LOST})
TERMINAL_DEFENSE_STATUSES = frozenset({DefenseStatus.WON, DefenseStatus.LOST})


class InvalidTransitionError(Exception):
    """Raised when a lifecycle transition is not allowed."""

    def __init__(self, entity_type: str, current: str, target: str):
        self.entity_type = entity_type
        self.current = current
        self.target = target
        super().__init__(
            f"Invalid {entity_type} transition: {current} -> {target}"
        )


def _value(status: Union[str, DisputeStatus, DefenseStatus]) -> str:
    return status.value if hasattr(status, "value") else str(status)


def validate_dispute_transition(
    current: Union[str, DisputeStatus],
    target: Union[str, DisputeStatus],
) -> DisputeStatus:
    """Return the target status if ``current -> target`` is allowed."""
    try:
        current_state = DisputeStatus(_value(current))
        target_state = DisputeStatus(_value(target))
    except ValueError:
        raise InvalidTransitionError("dispute", _value(current), _value(target))
    if target_state not in DISPUTE_TRANSITIONS[current_state]:
        raise InvalidTransitionError("dispute", current_state.value, target_state.value)
    return target_state


def validate_defense_transition(
    current: Union[str, DefenseStatus],
    target: Union[str, DefenseStatus],
) -> DefenseStatus:
    """Return the target status if ``current -> target`` is allowed."""
    try:
        current_state = DefenseStatus(_value(current))
        target_state = DefenseStatus(_value(target))
    except ValueError:
        raise InvalidTransitionError("defense", _value(current), _value(target))
    if target_state not in DEFENSE_TRANSITIONS[current_state]:
        raise InvalidTransitionError("defense", current_state.value, target_state.value)
    return target_state


def is_terminal_dispute(status: Union[str, DisputeStatus]) -> bool:
    return DisputeStatus(_value(status)) in TERMINAL_DISPUTE_STATUSES


def is_terminal_defense(status: Union[str, DefenseStatus]) -> bool:
    return DefenseStatus(_value(status)) in TERMINAL_DEFENSE_STATUSES
