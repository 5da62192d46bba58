"""Decision log: renders state machine events for the log file and the UI."""

import logging
from typing import Callable

from idlepause.events import PollResult, StateTransition, TriggerFired, TriggerOutcome
from idlepause.models import Classification, ClassificationReason, OutcomeKind

logger = logging.getLogger(__name__)

_HEURISTIC_REASONS = (
    ClassificationReason.CLAUDE_IDLE_BY_HEURISTIC,
    ClassificationReason.CLAUDE_BUSY_BY_HEURISTIC,
)


def _yes_no(value: bool | None) -> str:
    if value is None:
        return "?"
    return "yes" if value else "no"


def format_classification(c: Classification) -> str:
    """Render one pane verdict, including heuristic signals when present."""
    text = f"{c.pane_id} {c.command}"
    if c.pid is not None:
        text += f"[{c.pid}]"
    text += f" ({c.reason.value})"
    if c.reason in _HEURISTIC_REASONS and c.signals is not None:
        s = c.signals
        cpu = "?" if s.cpu_delta is None else f"{s.cpu_delta:.3f}s"
        io = "?" if s.io_delta is None else f"{s.io_delta}B"
        text += f" children={_yes_no(s.has_children)} cpu={cpu} io={io}"
    return text


def format_poll_result(event: PollResult) -> str:
    """Answer "what is keeping the machine awake" for one poll."""
    busy = [c for c in event.classifications if not c.is_idle]
    watched = [
        c for c in event.classifications
        if c.is_idle and c.reason is ClassificationReason.CLAUDE_IDLE_BY_HEURISTIC
    ]
    parts = [
        f"poll: state={event.state.state.value}",
        f"panes={len(event.classifications)}",
        f"busy={len(busy)}",
    ]
    if busy:
        parts.append("awake: " + "; ".join(format_classification(c) for c in busy))
    if watched:
        parts.append("quiet: " + "; ".join(format_classification(c) for c in watched))
    return " ".join(parts)


def format_transition(event: StateTransition) -> str:
    return f"state: {event.from_state.value} -> {event.to_state.value} ({event.cause.value})"


def format_fired(event: TriggerFired) -> str:
    return f"trigger: firing {event.action.value} [tag {event.tag}]"


def format_outcome(event: TriggerOutcome) -> str:
    text = f"trigger: {event.action.value} {event.outcome.value} [tag {event.tag}]"
    if event.reason:
        text += f": {event.reason}"
    return text


class DecisionLogger:
    """
    Sink for state machine events.

    Every event is rendered and written to the ``logging`` tree in the order
    it is emitted. An optional ``echo`` callable receives the same lines for
    on-screen display.
    """

    def __init__(
        self,
        log: logging.Logger | None = None,
        echo: Callable[[str], None] | None = None,
    ) -> None:
        self._log = log or logger
        self._echo = echo
        self._last_poll_line: str | None = None

    def emit(self, event) -> None:
        """Render and record one event."""
        if isinstance(event, PollResult):
            line = format_poll_result(event)
            # Unchanged polls only show up at debug level.
            level = logging.DEBUG if line == self._last_poll_line else logging.INFO
            self._last_poll_line = line
        elif isinstance(event, StateTransition):
            line, level = format_transition(event), logging.INFO
        elif isinstance(event, TriggerFired):
            line, level = format_fired(event), logging.WARNING
        elif isinstance(event, TriggerOutcome):
            failed = event.outcome is OutcomeKind.FAILED
            line = format_outcome(event)
            level = logging.ERROR if failed else logging.INFO
        else:
            raise TypeError(f"unsupported log event: {event!r}")

        self._log.log(level, line)
        if self._echo is not None and level >= logging.INFO:
            self._echo(line)
