"""
Processing-status state machine for accounting documents.

    pending ─┐
             ├─► uploaded ─► stored ─► processing ─► completed
             │       │          │          │
             └───────┴──────────┴──────────┴───────► failed

``completed`` and ``failed`` are terminal; only an explicit re-dispatch moves
a terminal document back into ``processing``.
"""

from bookkeeping.exceptions import InvalidStatusTransitionError, ValidationError
from bookkeeping.models import ProcessingStatus as S

INITIAL_STATES = frozenset({S.UPLOADED, S.PENDING})
TERMINAL_STATES = frozenset({S.COMPLETED, S.FAILED})

TRANSITIONS: dict[S, frozenset[S]] = {
    S.PENDING: frozenset({S.UPLOADED, S.STORED, S.FAILED}),
    S.UPLOADED: frozenset({S.STORED, S.PROCESSING, S.FAILED}),
    S.STORED: frozenset({S.PROCESSING, S.FAILED}),
    S.PROCESSING: frozenset({S.COMPLETED, S.FAILED}),
    S.COMPLETED: frozenset(),
    S.FAILED: frozenset(),
}

# States a dispatch may claim a document from.
DISPATCHABLE = frozenset({S.PENDING, S.UPLOADED, S.STORED})
REDISPATCHABLE = DISPATCHABLE | TERMINAL_STATES


def can_transition(current: S, new: S, redispatch: bool = False) -> bool:
    current, new = S(current), S(new)
    if redispatch and current in TERMINAL_STATES and new == S.PROCESSING:
        return True
    return new in TRANSITIONS[current]


def validate_transition(current: S, new: S, error: str | None = None, redispatch: bool = False) -> str | None:
    """
    Check a transition and return the error message to store with it.

    Moving into ``failed`` needs a non-empty error; every other target clears it.
    """
    current, new = S(current), S(new)
    if not can_transition(current, new, redispatch=redispatch):
        raise InvalidStatusTransitionError(current.value, new.value)
    if new == S.FAILED:
        if not error or not error.strip():
            raise ValidationError("A failed document needs an error message")
        return error.strip()
    return None
