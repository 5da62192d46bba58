"""Data models for idlepause."""

from dataclasses import dataclass, replace
from enum import Enum


class ClassificationReason(Enum):
    """Why a pane was classified idle or busy."""

    SHELL_AT_PROMPT = "shell_at_prompt"
    FOREGROUND_PROCESS_RUNNING = "foreground_process_running"
    IGNORED_BY_CONFIG = "ignored_by_config"
    CLAUDE_IDLE_BY_HEURISTIC = "claude_idle_by_heuristic"
    CLAUDE_BUSY_BY_HEURISTIC = "claude_busy_by_heuristic"
    PROCESS_GONE = "process_gone"


class SuspendAction(Enum):
    """External action fired when the countdown expires."""

    SUSPEND = "suspend"
    STOP = "stop"
    NONE = "none"


class ActivityState(Enum):
    """Global activity states of the machine."""

    ACTIVE = "active"
    IDLE = "idle"
    COUNTDOWN = "countdown"
    TRIGGERING = "triggering"
    SUSPENDED = "suspended"


class OutcomeKind(Enum):
    """Lifecycle of a suspend attempt."""

    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(slots=True, frozen=True)
class PaneObservation:
    """Immutable snapshot of a pane's foreground process."""

    pane_id: str
    shell_pid: int
    shell_command: str
    shell_pgid: int | None
    foreground_pgid: int | None
    foreground_pid: int | None
    foreground_command: str | None  # None when the process vanished mid-poll
    tty: str | None = None
    cpu_time: float | None = None  # Cumulative user + system seconds
    io_bytes: int | None = None  # Cumulative read + write bytes
    child_count: int | None = None


@dataclass(slots=True, frozen=True)
class HeuristicSignals:
    """Raw signals the assistant heuristic looked at."""

    has_children: bool | None
    cpu_delta: float | None
    io_delta: int | None


@dataclass(slots=True, frozen=True)
class Classification:
    """Idle/busy verdict for exactly one pane observation."""

    pane_id: str
    is_idle: bool
    reason: ClassificationReason
    command: str
    pid: int | None
    signals: HeuristicSignals | None = None


@dataclass(slots=True, frozen=True)
class AttemptRecord:
    """One issued suspend/stop attempt and its outcome."""

    tag: str
    action: SuspendAction
    issued_at: float
    outcome: OutcomeKind = OutcomeKind.PENDING
    reason: str | None = None

    @property
    def is_pending(self) -> bool:
        return self.outcome is OutcomeKind.PENDING

    def resolve(self, outcome: OutcomeKind, reason: str | None = None) -> "AttemptRecord":
        """Return a copy of this record carrying the final outcome."""
        return replace(self, outcome=outcome, reason=reason)


@dataclass(slots=True)
class GlobalState:
    """Mutable global state, owned by the activity state machine."""

    state: ActivityState
    state_entered_at: float
    last_activity_at: float
    countdown_started_at: float | None = None
    attempt: AttemptRecord | None = None

    def copy(self) -> "GlobalState":
        """Return a detached copy for logging and inspection."""
        return replace(self)


@dataclass(slots=True, frozen=True)
class StatusView:
    """Read-only status value polled by the host UI."""

    state: ActivityState
    countdown_remaining: int | None = None
    idle_remaining: int | None = None
    degraded: bool = False
    degraded_reason: str | None = None
    busy: tuple[Classification, ...] = ()
    pane_count: int = 0
