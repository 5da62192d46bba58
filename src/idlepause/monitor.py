"""Background pane monitoring engine for idlepause."""

import logging
import os
import threading
import time
from queue import Queue

from idlepause.events import ActivityInterrupt, PaneSnapshot, Resumed
from idlepause.models import PaneObservation

logger = logging.getLogger(__name__)


class TtyActivityWatcher:
    """
    Turns tty access times into activity interrupts.

    Reading keyboard input from a terminal bumps the access time of its
    device node, the same signal ``w`` reports as idle time.
    """

    def __init__(self) -> None:
        self._ttys: dict[str, str] = {}  # pane_id -> device path
        self._last_access: dict[str, float] = {}

    def track(self, observations: list[PaneObservation]) -> None:
        """Replace the set of watched ttys with those of the latest poll."""
        self._ttys = {obs.pane_id: obs.tty for obs in observations if obs.tty}
        for pane_id in self._last_access.keys() - self._ttys.keys():
            del self._last_access[pane_id]

    def check(self, now: float | None = None) -> list[ActivityInterrupt]:
        """Return an interrupt for every pane whose tty was read since last check."""
        now = time.time() if now is None else now
        interrupts = []
        for pane_id, tty in self._ttys.items():
            try:
                atime = os.stat(tty).st_atime
            except OSError:
                continue
            previous = self._last_access.get(pane_id)
            self._last_access[pane_id] = atime
            if previous is not None and atime > previous:
                interrupts.append(ActivityInterrupt(pane_id=pane_id, at=now))
        return interrupts


class ResumeDetector:
    """
    Detects suspension by comparing wall-clock and monotonic progress.

    The monotonic clock stops while the machine is suspended; the wall clock
    does not.
    """

    def __init__(self, threshold: float = 30.0) -> None:
        self.threshold = threshold
        self._last_monotonic: float | None = None
        self._last_wall: float | None = None

    def check(self, monotonic: float | None = None, wall: float | None = None) -> Resumed | None:
        monotonic = time.monotonic() if monotonic is None else monotonic
        wall = time.time() if wall is None else wall
        resumed = None
        if self._last_monotonic is not None:
            expected_wall = self._last_wall + (monotonic - self._last_monotonic)
            gap = wall - expected_wall
            if gap > self.threshold:
                resumed = Resumed(at=wall, gap=gap)
        self._last_monotonic = monotonic
        self._last_wall = wall
        return resumed


class PaneMonitor:
    """
    Pane monitor that samples the snapshot source in a daemon thread.

    Every ``poll_rate`` seconds a PaneSnapshot is pushed to the event queue.
    Between polls the loop wakes every ``input_check_interval`` to look for
    tty input and resume from suspension.
    """

    def __init__(
        self,
        event_queue: Queue,
        source,
        poll_rate: float = 5.0,
        input_check_interval: float = 1.0,
        resume_threshold: float = 30.0,
    ) -> None:
        """
        Initialize the PaneMonitor.

        Args:
            event_queue: Thread-safe queue to push events to.
            source: Pane snapshot source with a ``sample()`` method.
            poll_rate: How often to sample panes (in seconds). Default 5.0s.
            input_check_interval: How often to check ttys for input.
            resume_threshold: Wall-clock jump treated as a resume.
        """
        self._queue = event_queue
        self._source = source
        self.poll_rate = poll_rate
        self._input_check_interval = input_check_interval
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._tty_watcher = TtyActivityWatcher()
        self._resume_detector = ResumeDetector(resume_threshold)

    @property
    def poll_rate(self) -> float:
        """Get the current poll rate."""
        return self._poll_rate

    @poll_rate.setter
    def poll_rate(self, value: float) -> None:
        """Set the poll rate."""
        self._poll_rate = max(0.1, value)  # Minimum 0.1 seconds

    @property
    def is_running(self) -> bool:
        """Check if the monitor thread is running."""
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the monitoring thread."""
        if self.is_running:
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._poll_loop,
            daemon=True,
            name="PaneMonitor",
        )
        self._thread.start()

    def stop(self, timeout: float | None = 5.0) -> None:
        """
        Stop the monitoring thread.

        Args:
            timeout: How long to wait for thread to stop (seconds).
        """
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None

    def _poll_loop(self) -> None:
        """Main polling loop running in the background thread."""
        next_poll = time.monotonic()
        while not self._stop_event.is_set():
            resumed = self._resume_detector.check()
            if resumed is not None:
                self._queue.put(resumed)

            if time.monotonic() >= next_poll:
                self.poll_once()
                next_poll = time.monotonic() + self._poll_rate

            for interrupt in self._tty_watcher.check():
                self._queue.put(interrupt)

            wait = min(self._input_check_interval, max(0.0, next_poll - time.monotonic()))
            self._stop_event.wait(timeout=wait)

    def poll_once(self) -> PaneSnapshot | None:
        """Sample the panes and queue the snapshot.

        A failing sample produces no snapshot, so timers cannot advance on it.
        """
        try:
            observations = list(self._source.sample())
        except Exception:
            logger.exception("pane sampling failed")
            return None

        self._tty_watcher.track(observations)
        snapshot = PaneSnapshot(observations=tuple(observations), taken_at=time.time())
        self._queue.put(snapshot)
        return snapshot
