"""idlepause - Main Textual application."""

import argparse
import sys
import time
from queue import Empty, Queue

from textual import events
from textual.app import App, ComposeResult
from textual.containers import Container
from textual.widgets import DataTable, Footer, Log, Static

from idlepause.aggregator import ActivityStateMachine
from idlepause.config import Config, ConfigError, configure_logging, load_config
from idlepause.decisions import DecisionLogger
from idlepause.events import ActivityInterrupt
from idlepause.models import ActivityState, Classification, StatusView
from idlepause.monitor import PaneMonitor
from idlepause.panes import ProcPaneSource
from idlepause.trigger import ActionTrigger

# Pane id used for key presses inside the idlepause UI itself
HOST_PANE = "host"


def format_duration(seconds: int) -> str:
    """Format a duration as '4m05s' or '35s'."""
    mins, secs = divmod(max(0, seconds), 60)
    if mins > 0:
        return f"{mins}m{secs:02d}s"
    return f"{secs}s"


def render_status(view: StatusView) -> str:
    """Render the status surface as a single line of Rich markup."""
    if view.state is ActivityState.SUSPENDED:
        text = "[bold white on red] SUSPENDED [/]"
    elif view.state is ActivityState.TRIGGERING:
        text = "[bold white on red] SUSPENDING NOW... [/]"
    elif view.state is ActivityState.COUNTDOWN:
        remaining = view.countdown_remaining or 0
        text = f"[bold black on yellow] SUSPENDING in {remaining}s -- press any key to cancel [/]"
    elif view.state is ActivityState.IDLE:
        eta = format_duration(view.idle_remaining or 0)
        text = f"[green] IDLE ({view.pane_count} panes) | countdown in {eta} [/]"
    else:
        procs = ", ".join(sorted({c.command for c in view.busy})) or "..."
        text = f"[blue] ACTIVE: {procs} [/]"

    if view.degraded:
        text += f" [bold red]\\[degraded: {view.degraded_reason}][/]"
    return text


class StatusBar(Static):
    """Status line showing the activity state and countdown."""

    DEFAULT_CSS = """
    StatusBar {
        height: 1;
        background: $surface;
    }
    """

    def update_status(self, view: StatusView) -> None:
        """Update the status line from a status view."""
        self.update(render_status(view))


class PaneTable(Container):
    """Container for the per-pane classification table."""

    DEFAULT_CSS = """
    PaneTable {
        height: 1fr;
        border: solid $primary;
    }
    """

    def __init__(self, *args, **kwargs) -> None:
        """Initialize PaneTable."""
        super().__init__(*args, **kwargs)
        self._current_panes: set[str] = set()

    def compose(self) -> ComposeResult:
        """Compose the pane table."""
        yield DataTable(id="pane-table")

    def on_mount(self) -> None:
        """Initialize the data table when mounted."""
        table = self.query_one("#pane-table", DataTable)
        table.cursor_type = "row"

        table.add_column("PANE", key="pane", width=10)
        table.add_column("PID", key="pid", width=8)
        table.add_column("S", key="state", width=5)
        table.add_column("COMMAND", key="command", width=16)
        table.add_column("REASON", key="reason", width=28)
        table.add_column("SIGNALS", key="signals")

    def update_panes(self, classifications: tuple[Classification, ...]) -> None:
        """
        Update the pane table with the latest classifications.

        Uses update_cell for existing rows to avoid re-rendering the whole table.
        """
        table = self.query_one("#pane-table", DataTable)
        new_panes = {c.pane_id for c in classifications}

        for pane_id in self._current_panes - new_panes:
            try:
                table.remove_row(pane_id)
            except Exception:
                pass  # Row may not exist

        for c in classifications:
            cells = self._cells(c)
            if c.pane_id in self._current_panes:
                for key, value in zip(("pane", "pid", "state", "command", "reason", "signals"), cells):
                    table.update_cell(c.pane_id, key, value)
            else:
                table.add_row(*cells, key=c.pane_id)

        self._current_panes = new_panes

    @staticmethod
    def _cells(c: Classification) -> tuple[str, ...]:
        signals = ""
        if c.signals is not None:
            s = c.signals
            cpu = "?" if s.cpu_delta is None else f"{s.cpu_delta:.2f}s"
            io = "?" if s.io_delta is None else str(s.io_delta)
            children = "?" if s.has_children is None else ("yes" if s.has_children else "no")
            signals = f"children={children} cpu={cpu} io={io}"
        return (
            c.pane_id,
            "" if c.pid is None else str(c.pid),
            "idle" if c.is_idle else "busy",
            c.command[:16],
            c.reason.value,
            signals,
        )


class IdlePauseApp(App):
    """Main idlepause application."""

    TITLE = "idlepause"
    SUB_TITLE = "Suspend idle terminal machines"

    CSS = """
    Screen {
        layout: vertical;
    }

    #status-bar {
        dock: top;
    }

    #decision-log {
        height: 8;
        border: solid $secondary;
    }
    """

    BINDINGS = [
        ("q", "quit", "Quit"),
        ("r", "restart", "Restart"),
    ]

    def __init__(self, config: Config | None = None, source=None) -> None:
        """Initialize the IdlePauseApp."""
        super().__init__()
        self._config = config or Config()
        self._event_queue: Queue = Queue()
        source = source or ProcPaneSource(server_names=self._config.detection.servers)
        self._monitor = PaneMonitor(
            self._event_queue,
            source,
            poll_rate=self._config.timing.poll_interval,
            input_check_interval=self._config.timing.input_check_interval,
            resume_threshold=self._config.timing.resume_threshold,
        )
        self._trigger = ActionTrigger(self._config, self._event_queue.put)
        self._decisions = DecisionLogger(echo=self._echo)
        self._machine = ActivityStateMachine(self._config, self._trigger, self._decisions)

    @property
    def machine(self) -> ActivityStateMachine:
        return self._machine

    def compose(self) -> ComposeResult:
        """Compose the application layout."""
        yield StatusBar(id="status-bar")
        yield PaneTable()
        yield Log(id="decision-log")
        yield Footer()

    def on_mount(self) -> None:
        """Start the pane monitor when the app is mounted."""
        self._monitor.start()
        self._refresh_status()
        self.set_interval(0.5, self._check_for_updates)

    def on_key(self, event: events.Key) -> None:
        """Any key press in the UI counts as activity.

        The interrupt goes through the queue so events sampled before the key
        press are handled first.
        """
        self._event_queue.put(ActivityInterrupt(pane_id=HOST_PANE, at=time.time()))
        self._check_for_updates()

    def _check_for_updates(self) -> None:
        """Feed queued events to the state machine in arrival order."""
        handled = False
        while True:
            try:
                event = self._event_queue.get_nowait()
            except Empty:
                break
            self._machine.handle(event)
            handled = True

        if handled:
            self.query_one(PaneTable).update_panes(self._machine.classifications)
        self._refresh_status()

    def _refresh_status(self) -> None:
        self.query_one("#status-bar", StatusBar).update_status(self._machine.status())

    def _echo(self, line: str) -> None:
        try:
            self.query_one("#decision-log", Log).write_line(
                f"{time.strftime('%H:%M:%S')} {line}"
            )
        except Exception:
            pass  # Log widget not mounted yet

    def action_restart(self) -> None:
        """Leave the suspended state after an out-of-band wake."""
        self._machine.restart()
        self._refresh_status()

    def action_quit(self) -> None:
        """Handle quit action with graceful cleanup."""
        self._monitor.stop()
        self.exit()


def main(argv: list[str] | None = None) -> None:
    """Entry point for idlepause application."""
    parser = argparse.ArgumentParser(
        prog="idlepause",
        description="Suspend the machine once every terminal pane has been idle.",
    )
    parser.add_argument("-c", "--config", help="path to config.yaml")
    args = parser.parse_args(argv)

    try:
        config = load_config(args.config)
    except ConfigError as e:
        print(f"idlepause: invalid configuration: {e}", file=sys.stderr)
        sys.exit(2)

    configure_logging(config.logging)
    app = IdlePauseApp(config)
    app.run()


if __name__ == "__main__":
    main()
