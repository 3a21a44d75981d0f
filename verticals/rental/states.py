"""Rental lifecycle states and their transition tables."""

from enum import Enum

from patterns.workflow_states import TransitionTable


class TransactionStatus(str, Enum):
    ACTIVE = "active"
    OVERDUE = "overdue"
    RETURNED = "returned"
    CANCELLED = "cancelled"


class ReturnState(str, Enum):
    NONE = "none"
    PARTIAL = "partial"
    COMPLETE = "complete"


class PickupState(str, Enum):
    NOT_PICKED_UP = "not_picked_up"
    PARTIAL = "partial"
    COMPLETE = "complete"


# Overdue/cancelled are entered by other components; this engine only
# moves active -> returned.
TRANSACTION_FLOW: TransitionTable[TransactionStatus] = TransitionTable(
    "transaction",
    {
        TransactionStatus.ACTIVE: (
            TransactionStatus.RETURNED,
            TransactionStatus.OVERDUE,
            TransactionStatus.CANCELLED,
        ),
        TransactionStatus.OVERDUE: (TransactionStatus.ACTIVE, TransactionStatus.CANCELLED),
        TransactionStatus.RETURNED: (),   # terminal
        TransactionStatus.CANCELLED: (),  # terminal
    },
)

RETURN_FLOW: TransitionTable[ReturnState] = TransitionTable(
    "item_return",
    {
        ReturnState.NONE: (ReturnState.PARTIAL, ReturnState.COMPLETE),
        ReturnState.PARTIAL: (ReturnState.COMPLETE,),
        ReturnState.COMPLETE: (),  # terminal
    },
)

# Pickups only ever increase the counter.
PICKUP_FLOW: TransitionTable[PickupState] = TransitionTable(
    "item_pickup",
    {
        PickupState.NOT_PICKED_UP: (PickupState.PARTIAL, PickupState.COMPLETE),
        PickupState.PARTIAL: (PickupState.PARTIAL, PickupState.COMPLETE),
        PickupState.COMPLETE: (),
    },
)


def pickup_state(ordered: int, picked_up: int) -> PickupState:
    if picked_up <= 0:
        return PickupState.NOT_PICKED_UP
    if picked_up >= ordered:
        return PickupState.COMPLETE
    return PickupState.PARTIAL
