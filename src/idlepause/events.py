"""Typed events exchanged between the monitor, trigger, state machine and log."""

from dataclasses import dataclass
from enum import Enum

from idlepause.models import (
    ActivityState,
    Classification,
    GlobalState,
    OutcomeKind,
    PaneObservation,
    SuspendAction,
)


class TransitionCause(Enum):
    """What caused a state transition."""

    POLL = "poll"
    INTERRUPT = "interrupt"
    TIMEOUT = "timeout"
    TRIGGER_OUTCOME = "trigger_outcome"
    RESUME = "resume"


@dataclass(slots=True, frozen=True)
class PaneSnapshot:
    """Result of one poll of the pane snapshot source."""

    observations: tuple[PaneObservation, ...]
    taken_at: float


@dataclass(slots=True, frozen=True)
class ActivityInterrupt:
    """Raw input observed on a pane, independent of the poll cycle."""

    pane_id: str
    at: float


@dataclass(slots=True, frozen=True)
class Resumed:
    """The machine came back from suspension (wall clock jumped ahead)."""

    at: float
    gap: float


@dataclass(slots=True, frozen=True)
class TriggerOutcome:
    """Result of an external action, tagged with its correlation tag."""

    tag: str
    action: SuspendAction
    outcome: OutcomeKind
    reason: str | None
    at: float


@dataclass(slots=True, frozen=True)
class PollResult:
    """Everything decided on one poll tick."""

    at: float
    classifications: tuple[Classification, ...]
    state: GlobalState


@dataclass(slots=True, frozen=True)
class StateTransition:
    at: float
    from_state: ActivityState
    to_state: ActivityState
    cause: TransitionCause


@dataclass(slots=True, frozen=True)
class TriggerFired:
    at: float
    tag: str
    action: SuspendAction


Event = PaneSnapshot | ActivityInterrupt | Resumed | TriggerOutcome
LogEvent = PollResult | StateTransition | TriggerFired | TriggerOutcome
