"""Shared fixtures for idlepause tests."""

import pytest

from idlepause.config import ActionConfig, Config, DetectionConfig, TimingConfig
from idlepause.models import PaneObservation, SuspendAction


def shell_at_prompt(pane_id: str = "pts/1", shell_pid: int = 100) -> PaneObservation:
    """Pane whose shell owns the terminal's foreground group."""
    return PaneObservation(
        pane_id=pane_id,
        shell_pid=shell_pid,
        shell_command="bash",
        shell_pgid=shell_pid,
        foreground_pgid=shell_pid,
        foreground_pid=shell_pid,
        foreground_command="bash",
    )


def running(
    command: str,
    pane_id: str = "pts/1",
    pid: int = 200,
    cpu_time: float | None = None,
    io_bytes: int | None = None,
    child_count: int | None = None,
) -> PaneObservation:
    """Pane with a foreground job on top of its shell."""
    return PaneObservation(
        pane_id=pane_id,
        shell_pid=100,
        shell_command="bash",
        shell_pgid=100,
        foreground_pgid=pid,
        foreground_pid=pid,
        foreground_command=command,
        cpu_time=cpu_time,
        io_bytes=io_bytes,
        child_count=child_count,
    )


class RecordingSink:
    """Decision log sink that keeps every event."""

    def __init__(self):
        self.events = []

    def emit(self, event):
        self.events.append(event)

    def of_type(self, cls):
        return [e for e in self.events if isinstance(e, cls)]


class FakeTrigger:
    """ActionTrigger stand-in that records fire calls."""

    def __init__(self, missing_tool=None):
        self.missing_tool = missing_tool
        self.fired = []
        self.pending_tag = None
        self._counter = 0

    def new_tag(self):
        self._counter += 1
        return f"tag-{self._counter}"

    def fire(self, action, tag):
        if self.pending_tag is not None:
            return False
        self.pending_tag = tag
        self.fired.append((action, tag))
        return True

    def accept(self, outcome):
        if self.pending_tag is None or outcome.tag != self.pending_tag:
            return False
        self.pending_tag = None
        return True


def make_config(
    idle_timeout: float = 120.0,
    countdown: float = 30.0,
    action: SuspendAction = SuspendAction.SUSPEND,
    **detection,
) -> Config:
    return Config(
        timing=TimingConfig(poll_interval=5.0, idle_timeout=idle_timeout, countdown=countdown),
        detection=DetectionConfig(**detection),
        action=ActionConfig(type=action),
    )


@pytest.fixture
def config():
    return make_config()


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def trigger():
    return FakeTrigger()
