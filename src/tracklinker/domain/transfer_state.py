"""Finite state machine for a transfer run.

The transition function is pure: ``transition(state, event) -> state``. It
knows nothing about providers, persistence or presentation, so any caller
(orchestrator, CLI, tests) can drive and inspect a run's lifecycle.

    idle -> preparing -> mapping -> [awaiting-user] -> creating-playlist
         -> inserting -> complete

``error`` is reachable from every working stage, ``canceled`` from every
non-terminal stage, and ``reset`` returns any stage to ``idle``.
"""

from enum import StrEnum

from attrs import define

from tracklinker.domain.entities import TransferStage
from tracklinker.domain.errors import InvalidTransitionError


class TransferEventType(StrEnum):
    START = "start"
    PREPARED = "prepared"
    MAPPED = "mapped"
    REMAP = "remap"
    EXECUTE = "execute"
    PLAYLIST_CREATED = "playlist_created"
    INSERTED = "inserted"
    FAIL = "fail"
    CANCEL = "cancel"
    RESET = "reset"


@define(frozen=True, slots=True)
class TransferEvent:
    type: TransferEventType
    # Only meaningful for MAPPED
    unresolved: int = 0


TERMINAL_STAGES = frozenset({
    TransferStage.COMPLETE,
    TransferStage.CANCELED,
    TransferStage.ERROR,
})

WORKING_STAGES = frozenset({
    TransferStage.PREPARING,
    TransferStage.MAPPING,
    TransferStage.CREATING_PLAYLIST,
    TransferStage.INSERTING,
})

_TRANSITIONS: dict[tuple[TransferStage, TransferEventType], TransferStage] = {
    (TransferStage.IDLE, TransferEventType.START): TransferStage.PREPARING,
    (TransferStage.COMPLETE, TransferEventType.START): TransferStage.PREPARING,
    (TransferStage.CANCELED, TransferEventType.START): TransferStage.PREPARING,
    (TransferStage.ERROR, TransferEventType.START): TransferStage.PREPARING,
    (TransferStage.PREPARING, TransferEventType.PREPARED): TransferStage.MAPPING,
    (TransferStage.AWAITING_USER, TransferEventType.REMAP): TransferStage.MAPPING,
    (TransferStage.MAPPING, TransferEventType.EXECUTE): TransferStage.CREATING_PLAYLIST,
    (TransferStage.AWAITING_USER, TransferEventType.EXECUTE): TransferStage.CREATING_PLAYLIST,
    # A stored mapping can be executed directly, e.g. when resuming a run
    (TransferStage.IDLE, TransferEventType.EXECUTE): TransferStage.CREATING_PLAYLIST,
    (TransferStage.COMPLETE, TransferEventType.EXECUTE): TransferStage.CREATING_PLAYLIST,
    (TransferStage.CANCELED, TransferEventType.EXECUTE): TransferStage.CREATING_PLAYLIST,
    (TransferStage.ERROR, TransferEventType.EXECUTE): TransferStage.CREATING_PLAYLIST,
    (TransferStage.CREATING_PLAYLIST, TransferEventType.PLAYLIST_CREATED): TransferStage.INSERTING,
    (TransferStage.INSERTING, TransferEventType.INSERTED): TransferStage.COMPLETE,
}


def transition(state: TransferStage, event: TransferEvent) -> TransferStage:
    """Return the stage that follows ``state`` after ``event``.

    Raises:
        InvalidTransitionError: The event is not valid in the given stage.
    """
    match event.type:
        case TransferEventType.RESET:
            return TransferStage.IDLE
        case TransferEventType.CANCEL if state not in TERMINAL_STAGES:
            return TransferStage.CANCELED
        case TransferEventType.FAIL if state in WORKING_STAGES:
            return TransferStage.ERROR
        case TransferEventType.MAPPED if state == TransferStage.MAPPING:
            # Stays in mapping when everything resolved, ready to execute
            if event.unresolved > 0:
                return TransferStage.AWAITING_USER
            return TransferStage.MAPPING

    next_state = _TRANSITIONS.get((state, event.type))
    if next_state is None:
        raise InvalidTransitionError(
            f"Event '{event.type}' is not allowed in stage '{state}'"
        )
    return next_state


@define(slots=True)
class TransferStateMachine:
    """Mutable holder around the pure transition function."""

    stage: TransferStage = TransferStage.IDLE

    def dispatch(self, event_type: TransferEventType, unresolved: int = 0) -> TransferStage:
        self.stage = transition(self.stage, TransferEvent(event_type, unresolved))
        return self.stage

    @property
    def is_terminal(self) -> bool:
        return self.stage in TERMINAL_STAGES
