"""Activity state machine: aggregates pane verdicts and fires the action."""

import logging
import math
import time

from idlepause.classifier import IdleClassifier
from idlepause.config import Config
from idlepause.events import (
    ActivityInterrupt,
    PaneSnapshot,
    PollResult,
    Resumed,
    StateTransition,
    TransitionCause,
    TriggerFired,
    TriggerOutcome,
)
from idlepause.models import (
    ActivityState,
    AttemptRecord,
    Classification,
    GlobalState,
    OutcomeKind,
    StatusView,
)

logger = logging.getLogger(__name__)


class ActivityStateMachine:
    """
    Owns the global activity state and the single suspend attempt.

    States move Active -> Idle -> Countdown -> Triggering -> Suspended. A busy
    pane or an activity interrupt sends any non-terminal state back to Active.
    Timers are plain timestamp differences re-evaluated on every poll tick.

    Events must be handed over one at a time from a single thread.
    """

    def __init__(
        self,
        config: Config,
        trigger,
        sink,
        classifier: IdleClassifier | None = None,
        now: float | None = None,
    ) -> None:
        """
        Initialize the ActivityStateMachine.

        Args:
            config: Loaded configuration.
            trigger: ActionTrigger (fire/accept/missing_tool/new_tag).
            sink: Decision log sink with an ``emit(event)`` method.
            classifier: Classifier to use; built from config if omitted.
            now: Start timestamp, defaults to the current time.
        """
        now = time.time() if now is None else now
        self._idle_timeout = config.timing.idle_timeout
        self._countdown = config.timing.countdown
        self._action = config.action.type
        self._trigger = trigger
        self._sink = sink
        self._classifier = classifier or IdleClassifier(config)
        self._state = GlobalState(
            state=ActivityState.ACTIVE,
            state_entered_at=now,
            last_activity_at=now,
        )
        self._last_classifications: tuple[Classification, ...] = ()

    @property
    def state(self) -> GlobalState:
        """Detached copy of the current global state."""
        return self._state.copy()

    @property
    def classifications(self) -> tuple[Classification, ...]:
        """Classifications from the most recent poll."""
        return self._last_classifications

    def handle(self, event) -> None:
        """Dispatch one event to its handler."""
        if isinstance(event, PaneSnapshot):
            self.on_snapshot(event)
        elif isinstance(event, ActivityInterrupt):
            self.on_interrupt(event)
        elif isinstance(event, TriggerOutcome):
            self.on_trigger_outcome(event)
        elif isinstance(event, Resumed):
            self.on_resume(event)
        else:
            raise TypeError(f"unsupported event: {event!r}")

    def on_snapshot(self, snapshot: PaneSnapshot) -> None:
        """Poll tick: classify panes, update state, evaluate timers."""
        now = snapshot.taken_at
        classifications = tuple(self._classifier.classify(snapshot.observations))
        self._last_classifications = classifications

        if self._state.state is not ActivityState.SUSPENDED:
            if any(not c.is_idle for c in classifications):
                self._mark_active(now, TransitionCause.POLL)
            elif classifications and self._state.state is ActivityState.ACTIVE:
                # An empty snapshot is no evidence of idleness.
                self._transition(ActivityState.IDLE, now, TransitionCause.POLL)
            self._advance_timers(now)

        self._sink.emit(PollResult(at=now, classifications=classifications, state=self.state))

    def on_interrupt(self, interrupt: ActivityInterrupt) -> None:
        """Raw input seen on a pane: reset to Active immediately."""
        if self._state.state is ActivityState.SUSPENDED:
            logger.debug("input on %s ignored while suspended", interrupt.pane_id)
            return
        self._mark_active(interrupt.at, TransitionCause.INTERRUPT)

    def on_trigger_outcome(self, outcome: TriggerOutcome) -> None:
        """Apply the outcome of the pending attempt; drop stale ones."""
        attempt = self._state.attempt
        if not self._trigger.accept(outcome):
            logger.debug("discarding stale outcome for tag %s", outcome.tag)
            return
        if attempt is None or attempt.tag != outcome.tag or not attempt.is_pending:
            logger.debug("outcome for tag %s has no pending attempt", outcome.tag)
            return

        self._state.attempt = attempt.resolve(outcome.outcome, outcome.reason)
        self._sink.emit(outcome)

        if self._state.state is not ActivityState.TRIGGERING:
            # The cycle that issued it was superseded by activity.
            return
        if outcome.outcome is OutcomeKind.SUCCEEDED:
            self._transition(ActivityState.SUSPENDED, outcome.at, TransitionCause.TRIGGER_OUTCOME)
        else:
            # Never retry without a fresh idle confirmation.
            self._mark_active(outcome.at, TransitionCause.TRIGGER_OUTCOME)

    def on_resume(self, resumed: Resumed) -> None:
        """The machine was woken out of band: restart the cycle."""
        if self._state.state is not ActivityState.SUSPENDED:
            return
        logger.info("resumed after %.0fs", resumed.gap)
        self._mark_active(resumed.at, TransitionCause.RESUME)

    def restart(self, now: float | None = None) -> None:
        """Operator-initiated restart of the poll cycle."""
        now = time.time() if now is None else now
        if self._state.state is ActivityState.SUSPENDED:
            self._mark_active(now, TransitionCause.RESUME)

    def status(self, now: float | None = None) -> StatusView:
        """Build the read-only status value for the host UI."""
        now = time.time() if now is None else now
        state = self._state
        countdown_remaining = None
        idle_remaining = None
        if state.state is ActivityState.COUNTDOWN and state.countdown_started_at is not None:
            left = self._countdown - (now - state.countdown_started_at)
            countdown_remaining = max(0, math.ceil(left))
        elif state.state is ActivityState.IDLE:
            left = self._idle_timeout - (now - state.state_entered_at)
            idle_remaining = max(0, math.ceil(left))

        missing = self._trigger.missing_tool
        return StatusView(
            state=state.state,
            countdown_remaining=countdown_remaining,
            idle_remaining=idle_remaining,
            degraded=missing is not None,
            degraded_reason=f"{missing} not found" if missing else None,
            busy=tuple(c for c in self._last_classifications if not c.is_idle),
            pane_count=len(self._last_classifications),
        )

    def _mark_active(self, now: float, cause: TransitionCause) -> None:
        self._state.last_activity_at = now
        self._state.countdown_started_at = None
        if self._state.state is not ActivityState.ACTIVE:
            self._transition(ActivityState.ACTIVE, now, cause)

    def _advance_timers(self, now: float) -> None:
        state = self._state
        if state.state is ActivityState.IDLE and now - state.state_entered_at >= self._idle_timeout:
            self._transition(ActivityState.COUNTDOWN, now, TransitionCause.TIMEOUT)
            state.countdown_started_at = now

        if (
            state.state is ActivityState.COUNTDOWN
            and state.countdown_started_at is not None
            and now - state.countdown_started_at >= self._countdown
        ):
            self._fire(now)

    def _fire(self, now: float) -> None:
        if self._state.attempt is not None and self._state.attempt.is_pending:
            logger.debug("countdown expired while %s is pending", self._state.attempt.tag)
            return

        tag = self._trigger.new_tag()
        self._state.attempt = AttemptRecord(tag=tag, action=self._action, issued_at=now)
        self._transition(ActivityState.TRIGGERING, now, TransitionCause.TIMEOUT)
        self._sink.emit(TriggerFired(at=now, tag=tag, action=self._action))
        self._trigger.fire(self._action, tag)

    def _transition(self, to_state: ActivityState, now: float, cause: TransitionCause) -> None:
        from_state = self._state.state
        self._state.state = to_state
        self._state.state_entered_at = now
        if to_state is not ActivityState.COUNTDOWN:
            self._state.countdown_started_at = None
        self._sink.emit(
            StateTransition(at=now, from_state=from_state, to_state=to_state, cause=cause)
        )
