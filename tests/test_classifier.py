"""Tests for the per-pane idle classifier."""

from conftest import make_config, running, shell_at_prompt

from idlepause.classifier import IdleClassifier
from idlepause.models import ClassificationReason, PaneObservation


def classify(obs, config=None):
    return IdleClassifier(config or make_config()).classify_one(obs)


class TestForegroundScenarios:
    """Literal pane scenarios: prompt, background job, stopped job, running command."""

    def test_shell_at_prompt_is_idle(self):
        """Test a shell owning the foreground group is idle."""
        c = classify(shell_at_prompt())

        assert c.is_idle
        assert c.reason is ClassificationReason.SHELL_AT_PROMPT
        assert c.command == "bash"

    def test_background_job_with_shell_frontmost_is_idle(self):
        """Test `sleep 1000 &` leaves the pane idle: only the shell is foreground."""
        # The background job has its own group, but the terminal's foreground
        # group is still the shell's, so the snapshot reports the shell.
        c = classify(shell_at_prompt(shell_pid=321))

        assert c.is_idle
        assert c.reason is ClassificationReason.SHELL_AT_PROMPT

    def test_stopped_job_is_idle(self):
        """Test a Ctrl-Z'd job hands the terminal back to the shell."""
        obs = PaneObservation(
            pane_id="pts/2",
            shell_pid=100,
            shell_command="zsh",
            shell_pgid=100,
            foreground_pgid=100,
            foreground_pid=100,
            foreground_command="zsh",
        )

        c = classify(obs)

        assert c.is_idle
        assert c.reason is ClassificationReason.SHELL_AT_PROMPT

    def test_foreground_command_is_busy(self):
        """Test any other foreground command keeps the pane busy."""
        for command in ("vim", "cargo", "python3", "ssh", "sleep"):
            c = classify(running(command))

            assert not c.is_idle, command
            assert c.reason is ClassificationReason.FOREGROUND_PROCESS_RUNNING
            assert c.command == command
            assert c.pid == 200


class TestIgnoreList:
    """Tests for configured ignore patterns."""

    def test_ignored_command_is_idle(self):
        """Test a command matching an ignore pattern is idle."""
        config = make_config(ignore=["htop", "less|man"])

        c = classify(running("less"), config)

        assert c.is_idle
        assert c.reason is ClassificationReason.IGNORED_BY_CONFIG

    def test_ignore_patterns_match_whole_name(self):
        """Test ignore patterns must match the full command name."""
        config = make_config(ignore=["top"])

        assert not classify(running("htop"), config).is_idle
        assert classify(running("top"), config).is_idle


class TestMissingAndMalformedData:
    """Tests for missing-data and malformed-data policies."""

    def test_vanished_process_is_idle(self):
        """Test a process that exited mid-poll classifies idle."""
        obs = PaneObservation(
            pane_id="pts/4",
            shell_pid=100,
            shell_command="bash",
            shell_pgid=100,
            foreground_pgid=555,
            foreground_pid=555,
            foreground_command=None,
        )

        c = classify(obs)

        assert c.is_idle
        assert c.reason is ClassificationReason.PROCESS_GONE

    def test_missing_pgids_are_busy(self):
        """Test malformed process-group data fails toward busy."""
        obs = PaneObservation(
            pane_id="pts/4",
            shell_pid=100,
            shell_command="bash",
            shell_pgid=None,
            foreground_pgid=555,
            foreground_pid=555,
            foreground_command="make",
        )

        c = classify(obs)

        assert not c.is_idle
        assert c.reason is ClassificationReason.FOREGROUND_PROCESS_RUNNING

    def test_non_positive_pid_is_busy(self):
        """Test a bogus foreground pid fails toward busy."""
        c = classify(running("make", pid=0))

        assert not c.is_idle


class TestAssistantHeuristic:
    """Tests for the Claude heuristic."""

    def test_quiet_over_two_polls_is_idle(self):
        """Test no children and zero cpu/io deltas over two polls is idle."""
        classifier = IdleClassifier(make_config())
        obs = running("claude", cpu_time=12.5, io_bytes=40_000, child_count=0)

        first = classifier.classify_one(obs)
        second = classifier.classify_one(obs)

        assert not first.is_idle
        assert first.reason is ClassificationReason.CLAUDE_BUSY_BY_HEURISTIC
        assert second.is_idle
        assert second.reason is ClassificationReason.CLAUDE_IDLE_BY_HEURISTIC
        assert second.signals.has_children is False
        assert second.signals.cpu_delta == 0
        assert second.signals.io_delta == 0

    def test_io_delta_is_busy(self):
        """Test a nonzero IO delta above epsilon keeps the assistant busy."""
        classifier = IdleClassifier(make_config())
        classifier.classify_one(running("claude", cpu_time=1.0, io_bytes=1000, child_count=0))

        c = classifier.classify_one(running("claude", cpu_time=1.0, io_bytes=90_000, child_count=0))

        assert not c.is_idle
        assert c.reason is ClassificationReason.CLAUDE_BUSY_BY_HEURISTIC
        assert c.signals.io_delta == 89_000

    def test_cpu_delta_is_busy(self):
        """Test CPU time above epsilon keeps the assistant busy."""
        classifier = IdleClassifier(make_config())
        classifier.classify_one(running("claude", cpu_time=1.0, io_bytes=0, child_count=0))

        c = classifier.classify_one(running("claude", cpu_time=1.5, io_bytes=0, child_count=0))

        assert not c.is_idle
        assert c.signals.cpu_delta == 0.5

    def test_small_cpu_delta_is_idle(self):
        """Test CPU time below epsilon counts as quiet."""
        classifier = IdleClassifier(make_config(cpu_epsilon=0.05))
        classifier.classify_one(running("claude", cpu_time=1.0, io_bytes=0, child_count=0))

        c = classifier.classify_one(running("claude", cpu_time=1.01, io_bytes=0, child_count=0))

        assert c.is_idle

    def test_child_process_is_busy(self):
        """Test a spawned child (tool call) keeps the assistant busy."""
        classifier = IdleClassifier(make_config())
        classifier.classify_one(running("claude", cpu_time=1.0, io_bytes=0, child_count=1))

        c = classifier.classify_one(running("claude", cpu_time=1.0, io_bytes=0, child_count=1))

        assert not c.is_idle
        assert c.signals.has_children is True

    def test_unreadable_counters_are_busy(self):
        """Test unknown counters never let the assistant look idle."""
        classifier = IdleClassifier(make_config())
        obs = running("claude", cpu_time=None, io_bytes=None, child_count=0)

        classifier.classify_one(obs)
        c = classifier.classify_one(obs)

        assert not c.is_idle
        assert c.signals.cpu_delta is None

    def test_versioned_binary_name_matches(self):
        """Test Claude installed as a versioned binary is recognised."""
        classifier = IdleClassifier(make_config())
        obs = running("2.1.29", cpu_time=3.0, io_bytes=10, child_count=0)

        classifier.classify_one(obs)

        assert classifier.classify_one(obs).reason is ClassificationReason.CLAUDE_IDLE_BY_HEURISTIC

    def test_heuristic_disabled_is_plain_busy(self):
        """Test disabling the heuristic treats the assistant like any command."""
        classifier = IdleClassifier(make_config(claude_heuristic=False))
        obs = running("claude", cpu_time=3.0, io_bytes=10, child_count=0)

        classifier.classify_one(obs)
        c = classifier.classify_one(obs)

        assert not c.is_idle
        assert c.reason is ClassificationReason.FOREGROUND_PROCESS_RUNNING
        assert c.signals is None


class TestBaselines:
    """Tests for the per-pid counter baseline table."""

    def test_baseline_pruned_when_pid_disappears(self):
        """Test baselines of unobserved pids are dropped after a cycle."""
        classifier = IdleClassifier(make_config())
        claude = running("claude", pane_id="pts/1", pid=300, cpu_time=1.0, io_bytes=0, child_count=0)

        classifier.classify([claude, shell_at_prompt("pts/2")])
        assert classifier.tracked_pids == {300}

        classifier.classify([shell_at_prompt("pts/2")])
        assert classifier.tracked_pids == set()

    def test_new_pid_starts_without_baseline(self):
        """Test a restarted assistant (new pid) is busy on its first poll."""
        classifier = IdleClassifier(make_config())
        classifier.classify([running("claude", pid=300, cpu_time=1.0, io_bytes=0, child_count=0)])
        classifier.classify([running("claude", pid=300, cpu_time=1.0, io_bytes=0, child_count=0)])

        results = classifier.classify([running("claude", pid=301, cpu_time=1.0, io_bytes=0, child_count=0)])

        assert not results[0].is_idle

    def test_classify_returns_one_per_observation(self):
        """Test classify keeps order and count of observations."""
        classifier = IdleClassifier(make_config())
        observations = [shell_at_prompt("pts/1"), running("vim", pane_id="pts/2")]

        results = classifier.classify(observations)

        assert [c.pane_id for c in results] == ["pts/1", "pts/2"]
        assert [c.is_idle for c in results] == [True, False]
