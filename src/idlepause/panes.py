"""Pane snapshot source backed by /proc and psutil."""

import logging
import os
from dataclasses import dataclass
from pathlib import Path

import psutil

from idlepause.models import PaneObservation

logger = logging.getLogger(__name__)

PROC_ROOT = Path("/proc")


@dataclass(slots=True, frozen=True)
class ProcStat:
    """The /proc/<pid>/stat fields needed for foreground detection."""

    pid: int
    comm: str
    state: str
    ppid: int
    pgrp: int
    session: int
    tty_nr: int
    tpgid: int  # Foreground process group of the controlling terminal


def parse_proc_stat(text: str) -> ProcStat | None:
    """
    Parse the contents of /proc/<pid>/stat.

    The command name sits in parentheses and may itself contain spaces or
    parentheses, so fields are split after the last ')'.
    """
    open_paren = text.find("(")
    close_paren = text.rfind(")")
    if open_paren < 0 or close_paren < open_paren:
        return None
    fields = text[close_paren + 2:].split()
    if len(fields) < 6:
        return None
    try:
        return ProcStat(
            pid=int(text[:open_paren].strip()),
            comm=text[open_paren + 1:close_paren],
            state=fields[0],
            ppid=int(fields[1]),
            pgrp=int(fields[2]),
            session=int(fields[3]),
            tty_nr=int(fields[4]),
            tpgid=int(fields[5]),
        )
    except ValueError:
        return None


def read_proc_stat(pid: int, proc_root: Path = PROC_ROOT) -> ProcStat | None:
    """Read and parse /proc/<pid>/stat, or None if the process is gone."""
    try:
        text = (proc_root / str(pid) / "stat").read_text()
    except OSError:
        return None
    return parse_proc_stat(text)


class ProcPaneSource:
    """
    Samples the foreground process of every multiplexer pane.

    Panes are the direct children of the multiplexer server processes that
    have a controlling terminal. psutil has no accessor for a terminal's
    foreground process group, so that comes from /proc/<pid>/stat.
    """

    def __init__(
        self,
        server_names=("zellij", "tmux", "tmux: server"),
        proc_root: Path = PROC_ROOT,
        own_pgid: int | None = None,
    ) -> None:
        """
        Initialize the ProcPaneSource.

        Args:
            server_names: Process names of multiplexer servers.
            proc_root: Mount point of procfs.
            own_pgid: Process group of the idlepause UI; the pane running it
                is not reported. Defaults to our own process group.
        """
        self._server_names = set(server_names)
        self._proc_root = proc_root
        self._own_pgid = os.getpgrp() if own_pgid is None else own_pgid

    def find_servers(self) -> list[psutil.Process]:
        """Return the multiplexer server processes to watch."""
        servers = []
        for proc in psutil.process_iter(attrs=["pid", "name"]):
            if proc.info.get("name") in self._server_names:
                servers.append(proc)
        return servers

    def sample(self) -> list[PaneObservation]:
        """Return one observation per pane. Never raises for vanished processes."""
        observations: list[PaneObservation] = []
        for server in self.find_servers():
            try:
                shells = server.children()
            except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
                continue
            for shell in shells:
                observation = self._observe(shell)
                if observation is not None:
                    observations.append(observation)
        return observations

    def _observe(self, shell: psutil.Process) -> PaneObservation | None:
        stat = read_proc_stat(shell.pid, self._proc_root)
        if stat is None or stat.tty_nr == 0:
            # Gone already, or a helper without a terminal
            return None

        if stat.tpgid == self._own_pgid:
            # The pane hosting idlepause; key presses there arrive as UI events
            return None

        tty = self._terminal(shell)
        pane_id = tty.removeprefix("/dev/") if tty else f"pid-{shell.pid}"

        if stat.tpgid <= 0:
            # Terminal has no foreground group; treat as unreadable
            return PaneObservation(
                pane_id=pane_id,
                shell_pid=shell.pid,
                shell_command=stat.comm,
                shell_pgid=stat.pgrp,
                foreground_pgid=None,
                foreground_pid=None,
                foreground_command=None,
                tty=tty,
            )

        if stat.pgrp == stat.tpgid:
            return PaneObservation(
                pane_id=pane_id,
                shell_pid=shell.pid,
                shell_command=stat.comm,
                shell_pgid=stat.pgrp,
                foreground_pgid=stat.tpgid,
                foreground_pid=shell.pid,
                foreground_command=stat.comm,
                tty=tty,
            )

        return self._observe_foreground(shell.pid, stat, pane_id, tty)

    def _observe_foreground(
        self, shell_pid: int, stat: ProcStat, pane_id: str, tty: str | None
    ) -> PaneObservation:
        """Collect counters of the foreground group's leader, or of a live member."""
        fg_pid = stat.tpgid
        try:
            name, cpu_time, io_bytes, child_count = self._inspect(fg_pid)
        except psutil.NoSuchProcess:
            # A pipeline's leader is its first command, which often exits while
            # the rest of the group still owns the terminal.
            member = self._live_member(stat.tpgid)
            if member is None:
                name, cpu_time, io_bytes, child_count = None, None, None, None
            else:
                fg_pid = member.pid
                try:
                    name, cpu_time, io_bytes, child_count = self._inspect(member.pid)
                except (psutil.NoSuchProcess, psutil.AccessDenied):
                    name, cpu_time, io_bytes, child_count = member.comm, None, None, None
        except psutil.AccessDenied:
            name, cpu_time, io_bytes, child_count = "?", None, None, None

        return PaneObservation(
            pane_id=pane_id,
            shell_pid=shell_pid,
            shell_command=stat.comm,
            shell_pgid=stat.pgrp,
            foreground_pgid=stat.tpgid,
            foreground_pid=fg_pid,
            foreground_command=name,
            tty=tty,
            cpu_time=cpu_time,
            io_bytes=io_bytes,
            child_count=child_count,
        )

    @staticmethod
    def _inspect(pid: int) -> tuple:
        """Return (name, cpu_time, io_bytes, child_count) of one process.

        Unreadable counters are None. Raises NoSuchProcess (including
        ZombieProcess) or AccessDenied when the process itself cannot be read.
        """
        cpu_time = None
        io_bytes = None
        child_count = None
        proc = psutil.Process(pid)
        with proc.oneshot():
            name = proc.name()
            try:
                times = proc.cpu_times()
                cpu_time = times.user + times.system
            except psutil.AccessDenied:
                pass
            try:
                io = proc.io_counters()
                io_bytes = io.read_bytes + io.write_bytes
            except (psutil.AccessDenied, AttributeError, NotImplementedError):
                pass
            try:
                child_count = len(proc.children())
            except psutil.AccessDenied:
                pass
        return name, cpu_time, io_bytes, child_count

    def _live_member(self, pgid: int) -> ProcStat | None:
        """Return the lowest-pid non-zombie process in group ``pgid``, if any."""
        try:
            pids = sorted(int(p.name) for p in self._proc_root.iterdir() if p.name.isdigit())
        except OSError:
            return None
        for pid in pids:
            stat = read_proc_stat(pid, self._proc_root)
            if stat is not None and stat.pgrp == pgid and stat.state != "Z":
                return stat
        return None

    @staticmethod
    def _terminal(proc: psutil.Process) -> str | None:
        try:
            return proc.terminal()
        except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
            return None
