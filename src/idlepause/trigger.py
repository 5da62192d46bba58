"""Runs the external suspend/stop command and correlates its outcome."""

import logging
import shutil
import subprocess
import threading
import time
import uuid
from typing import Callable

from idlepause.config import Config
from idlepause.events import TriggerOutcome
from idlepause.models import OutcomeKind, SuspendAction

logger = logging.getLogger(__name__)

# Characters of stderr kept in a failure reason
MAX_REASON_CHARS = 200


class ActionTrigger:
    """
    Issues the configured action command asynchronously.

    The command runs in a daemon thread and its result is handed to
    ``deliver`` (usually ``Queue.put``) as a TriggerOutcome. Only one tag can
    be pending at a time; outcomes carrying any other tag are stale.
    """

    def __init__(self, config: Config, deliver: Callable[[TriggerOutcome], None]) -> None:
        """
        Initialize the ActionTrigger.

        Args:
            config: Loaded configuration (action section is used).
            deliver: Called with the outcome of each fired action.
        """
        self._action_config = config.action
        self._deliver = deliver
        self._pending_tag: str | None = None
        self._thread: threading.Thread | None = None
        self.missing_tool = self.check_tooling()
        if self.missing_tool is not None:
            logger.warning(
                "'%s' not found on PATH: %s action cannot run",
                self.missing_tool,
                self._action_config.type.value,
            )

    @property
    def pending_tag(self) -> str | None:
        """Tag of the action currently in flight, if any."""
        return self._pending_tag

    @property
    def is_degraded(self) -> bool:
        return self.missing_tool is not None

    def check_tooling(self) -> str | None:
        """Return the configured executable if it cannot be found, else None."""
        command = self._action_config.command_for(self._action_config.type)
        if command is None:
            return None
        if shutil.which(command[0]) is None:
            return command[0]
        return None

    @staticmethod
    def new_tag() -> str:
        """Create a fresh correlation tag."""
        return uuid.uuid4().hex[:12]

    def fire(self, action: SuspendAction, tag: str) -> bool:
        """
        Issue the action without blocking.

        Returns False when another tag is still pending (nothing is issued).
        """
        if self._pending_tag is not None:
            logger.debug("fire(%s) ignored: %s still pending", tag, self._pending_tag)
            return False

        self._pending_tag = tag
        command = self._action_config.command_for(action)
        if command is None:
            self._deliver(
                TriggerOutcome(
                    tag=tag,
                    action=action,
                    outcome=OutcomeKind.SUCCEEDED,
                    reason="no-op",
                    at=time.time(),
                )
            )
            return True

        self._thread = threading.Thread(
            target=self._run,
            args=(action, tag, list(command)),
            daemon=True,
            name=f"ActionTrigger-{tag}",
        )
        self._thread.start()
        return True

    def accept(self, outcome: TriggerOutcome) -> bool:
        """Accept an outcome if it belongs to the pending tag."""
        if self._pending_tag is None or outcome.tag != self._pending_tag:
            return False
        self._pending_tag = None
        return True

    def _run(self, action: SuspendAction, tag: str, command: list[str]) -> None:
        """Run the command in the worker thread and deliver its outcome."""
        logger.info("running %s: %s", action.value, " ".join(command))
        kind, reason = self._execute(command)
        self._deliver(
            TriggerOutcome(tag=tag, action=action, outcome=kind, reason=reason, at=time.time())
        )

    def _execute(self, command: list[str]) -> tuple[OutcomeKind, str | None]:
        try:
            result = subprocess.run(
                command,
                capture_output=True,
                text=True,
                timeout=self._action_config.timeout,
            )
        except FileNotFoundError:
            return OutcomeKind.FAILED, f"executable not found: {command[0]}"
        except subprocess.TimeoutExpired:
            return OutcomeKind.FAILED, f"timed out after {self._action_config.timeout:g}s"
        except OSError as e:
            return OutcomeKind.FAILED, f"could not run {command[0]}: {e}"

        if result.returncode != 0:
            detail = (result.stderr or result.stdout or "").strip()[-MAX_REASON_CHARS:]
            reason = f"exit status {result.returncode}"
            if detail:
                reason = f"{reason}: {detail}"
            return OutcomeKind.FAILED, reason
        return OutcomeKind.SUCCEEDED, None
