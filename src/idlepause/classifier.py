"""Per-pane idle classification."""

from dataclasses import dataclass

from idlepause.config import Config
from idlepause.models import (
    Classification,
    ClassificationReason,
    HeuristicSignals,
    PaneObservation,
)


@dataclass(slots=True, frozen=True)
class _Baseline:
    cpu_time: float | None
    io_bytes: int | None


def _delta(current, previous):
    if current is None or previous is None:
        return None
    return current - previous


class IdleClassifier:
    """
    Labels each pane observation idle or busy.

    Keeps the previous cycle's cpu/io counters per pid so the assistant
    heuristic can look at deltas. Baselines of pids that are no longer
    observed are pruned after every cycle.
    """

    def __init__(self, config: Config) -> None:
        detection = config.detection
        self._ignore = detection.ignore_patterns
        self._assistant = detection.assistant_regex
        self._heuristic_enabled = detection.claude_heuristic
        self._cpu_epsilon = detection.cpu_epsilon
        self._io_epsilon = detection.io_epsilon
        self._baselines: dict[int, _Baseline] = {}

    @property
    def tracked_pids(self) -> set[int]:
        """Pids that currently have a counter baseline."""
        return set(self._baselines)

    def classify(self, observations) -> list[Classification]:
        """Classify every observation of one poll cycle."""
        results = [self.classify_one(obs) for obs in observations]

        seen = {obs.foreground_pid for obs in observations if obs.foreground_pid is not None}
        for pid in self._baselines.keys() - seen:
            del self._baselines[pid]

        return results

    def classify_one(self, obs: PaneObservation) -> Classification:
        """Classify a single observation and update its pid's baseline."""
        command = obs.foreground_command

        # A vanished process cannot keep the machine busy. The race between
        # listing and inspecting a process is accepted here.
        if command is None:
            return self._result(obs, True, ClassificationReason.PROCESS_GONE, obs.shell_command)

        if any(p.fullmatch(command) for p in self._ignore):
            return self._result(obs, True, ClassificationReason.IGNORED_BY_CONFIG, command)

        # Malformed facts fail toward busy.
        if (
            obs.shell_pgid is None
            or obs.foreground_pgid is None
            or obs.foreground_pid is None
            or obs.foreground_pid <= 0
        ):
            return self._result(obs, False, ClassificationReason.FOREGROUND_PROCESS_RUNNING, command)

        # Background and stopped jobs live outside the foreground group.
        if obs.shell_pgid == obs.foreground_pgid:
            return self._result(obs, True, ClassificationReason.SHELL_AT_PROMPT, command)

        if self._heuristic_enabled and self._assistant.fullmatch(command):
            return self._classify_assistant(obs, command)

        return self._result(obs, False, ClassificationReason.FOREGROUND_PROCESS_RUNNING, command)

    def _classify_assistant(self, obs: PaneObservation, command: str) -> Classification:
        previous = self._baselines.get(obs.foreground_pid)
        self._baselines[obs.foreground_pid] = _Baseline(obs.cpu_time, obs.io_bytes)

        signals = HeuristicSignals(
            has_children=None if obs.child_count is None else obs.child_count > 0,
            cpu_delta=_delta(obs.cpu_time, previous.cpu_time if previous else None),
            io_delta=_delta(obs.io_bytes, previous.io_bytes if previous else None),
        )

        # Unknown signals (first sighting, unreadable counters) count as busy.
        busy = (
            signals.has_children is not False
            or signals.cpu_delta is None
            or signals.cpu_delta > self._cpu_epsilon
            or signals.io_delta is None
            or signals.io_delta > self._io_epsilon
        )
        reason = (
            ClassificationReason.CLAUDE_BUSY_BY_HEURISTIC
            if busy
            else ClassificationReason.CLAUDE_IDLE_BY_HEURISTIC
        )
        return self._result(obs, not busy, reason, command, signals)

    @staticmethod
    def _result(
        obs: PaneObservation,
        is_idle: bool,
        reason: ClassificationReason,
        command: str,
        signals: HeuristicSignals | None = None,
    ) -> Classification:
        return Classification(
            pane_id=obs.pane_id,
            is_idle=is_idle,
            reason=reason,
            command=command,
            pid=obs.foreground_pid,
            signals=signals,
        )
