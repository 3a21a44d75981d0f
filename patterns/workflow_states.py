"""Enum-based workflow state machine pattern.

States are Python enums; allowed moves live in an explicit transition
table. Nothing here knows about persistence: an engine asks the table
whether a move is legal and writes the new value itself, inside its own
atomic commit.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Generic, Mapping, TypeVar


StateT = TypeVar("StateT", bound=Enum)


class InvalidTransitionError(ValueError):
    """Raised when a transition is not allowed by the table."""

    def __init__(self, machine: str, from_state: Enum, to_state: Enum, allowed: list[str]):
        self.machine = machine
        self.from_state = from_state
        self.to_state = to_state
        self.allowed = allowed
        super().__init__(
            f"{machine}: cannot transition from {from_state.value} to {to_state.value}. "
            f"Allowed: {allowed}"
        )


# ---------------------------------------------------------------------------
# Transition table
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TransitionTable(Generic[StateT]):
    """Allowed transitions: {current_state: (allowed_next_states, ...)}.

    Usage::

        TRANSACTION_FLOW = TransitionTable("transaction", {
            TransactionStatus.ACTIVE: (TransactionStatus.RETURNED,),
            TransactionStatus.RETURNED: (),  # terminal
        })
        TRANSACTION_FLOW.require(current, TransactionStatus.RETURNED)
    """

    name: str
    transitions: Mapping[StateT, tuple[StateT, ...]]

    def allowed(self, from_state: StateT) -> tuple[StateT, ...]:
        return tuple(self.transitions.get(from_state, ()))

    def can_transition(self, from_state: StateT, to_state: StateT) -> bool:
        return to_state in self.allowed(from_state)

    def require(self, from_state: StateT, to_state: StateT) -> StateT:
        """Return to_state if the move is legal, raise otherwise."""
        if not self.can_transition(from_state, to_state):
            raise InvalidTransitionError(
                self.name,
                from_state,
                to_state,
                [s.value for s in self.allowed(from_state)],
            )
        return to_state

    def is_terminal(self, state: StateT) -> bool:
        return len(self.allowed(state)) == 0
