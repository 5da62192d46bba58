"""Configuration loader for idlepause."""

import logging
import math
import os
import re
from dataclasses import dataclass, field
from typing import Optional

import yaml

from idlepause.models import SuspendAction

CONFIG_PATH = os.path.expanduser(
    os.environ.get("IDLEPAUSE_CONFIG", "~/.config/idlepause/config.yaml")
)

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

# Claude Code installs as a symlink to a versioned binary, so the kernel
# reports the version number (e.g. '2.1.29') as the command name.
DEFAULT_ASSISTANT_PATTERN = r"claude|\d+\.\d+\.\d+"


class ConfigError(ValueError):
    """Raised when the configuration file holds invalid values."""


def _require_number(section: str, name: str, value) -> None:
    # bool is an int subclass; YAML also reads .nan and .inf as floats
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
        raise ConfigError(f"{section}.{name} must be a finite number, got {value!r}")


def _require_non_negative(section: str, name: str, value: float) -> None:
    _require_number(section, name, value)
    if value < 0:
        raise ConfigError(f"{section}.{name} must be >= 0, got {value}")


def _require_positive(section: str, name: str, value: float) -> None:
    _require_number(section, name, value)
    if value <= 0:
        raise ConfigError(f"{section}.{name} must be > 0, got {value}")


def _require_list(section: str, name: str, value) -> tuple:
    # A bare string would otherwise split into one entry per character
    if isinstance(value, str) or not isinstance(value, (list, tuple)):
        raise ConfigError(f"{section}.{name} must be a list, got {value!r}")
    return tuple(value)


def _compile(section: str, name: str, pattern: str) -> re.Pattern:
    try:
        return re.compile(pattern)
    except re.error as e:
        raise ConfigError(f"{section}.{name}: invalid pattern {pattern!r}: {e}") from e


@dataclass(frozen=True)
class TimingConfig:
    poll_interval: float = 5.0
    idle_timeout: float = 300.0  # t1: all panes idle this long before the countdown
    countdown: float = 60.0  # t2: grace period before the action fires
    input_check_interval: float = 1.0
    resume_threshold: float = 30.0

    def __post_init__(self):
        _require_positive("timing", "poll_interval", self.poll_interval)
        _require_non_negative("timing", "idle_timeout", self.idle_timeout)
        _require_non_negative("timing", "countdown", self.countdown)
        _require_positive("timing", "input_check_interval", self.input_check_interval)
        _require_positive("timing", "resume_threshold", self.resume_threshold)


@dataclass(frozen=True)
class DetectionConfig:
    servers: tuple = ("zellij", "tmux", "tmux: server")
    ignore: tuple = ()
    claude_heuristic: bool = True
    assistant_pattern: str = DEFAULT_ASSISTANT_PATTERN
    cpu_epsilon: float = 0.05  # CPU seconds per poll
    io_epsilon: int = 4096  # bytes per poll

    def __post_init__(self):
        # YAML hands us lists; keep the config hashable and immutable
        object.__setattr__(self, "servers", _require_list("detection", "servers", self.servers))
        object.__setattr__(self, "ignore", _require_list("detection", "ignore", self.ignore))
        if not self.servers:
            raise ConfigError("detection.servers must name at least one multiplexer")
        _require_non_negative("detection", "cpu_epsilon", self.cpu_epsilon)
        _require_non_negative("detection", "io_epsilon", self.io_epsilon)
        for pattern in self.ignore:
            _compile("detection", "ignore", pattern)
        _compile("detection", "assistant_pattern", self.assistant_pattern)

    @property
    def ignore_patterns(self) -> list[re.Pattern]:
        return [re.compile(p) for p in self.ignore]

    @property
    def assistant_regex(self) -> re.Pattern:
        return re.compile(self.assistant_pattern)


@dataclass(frozen=True)
class ActionConfig:
    type: SuspendAction = SuspendAction.SUSPEND
    suspend_command: tuple = ("systemctl", "suspend")
    stop_command: tuple = ("systemctl", "poweroff")
    timeout: float = 60.0

    def __post_init__(self):
        if not isinstance(self.type, SuspendAction):
            try:
                object.__setattr__(self, "type", SuspendAction(str(self.type).lower()))
            except ValueError:
                choices = ", ".join(a.value for a in SuspendAction)
                raise ConfigError(
                    f"action.type must be one of {choices}, got {self.type!r}"
                ) from None
        object.__setattr__(
            self, "suspend_command", _require_list("action", "suspend_command", self.suspend_command)
        )
        object.__setattr__(
            self, "stop_command", _require_list("action", "stop_command", self.stop_command)
        )
        if not self.suspend_command:
            raise ConfigError("action.suspend_command must not be empty")
        if not self.stop_command:
            raise ConfigError("action.stop_command must not be empty")
        _require_positive("action", "timeout", self.timeout)

    def command_for(self, action: SuspendAction) -> Optional[tuple]:
        """Return the argv for an action, or None for SuspendAction.NONE."""
        if action is SuspendAction.SUSPEND:
            return self.suspend_command
        if action is SuspendAction.STOP:
            return self.stop_command
        return None


@dataclass(frozen=True)
class LoggingConfig:
    level: str = "INFO"
    file: Optional[str] = None

    def __post_init__(self):
        level = str(self.level).upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ConfigError(f"logging.level: unknown level {self.level!r}")
        object.__setattr__(self, "level", level)


@dataclass(frozen=True)
class Config:
    timing: TimingConfig = field(default_factory=TimingConfig)
    detection: DetectionConfig = field(default_factory=DetectionConfig)
    action: ActionConfig = field(default_factory=ActionConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


_SECTIONS = {
    "timing": TimingConfig,
    "detection": DetectionConfig,
    "action": ActionConfig,
    "logging": LoggingConfig,
}


def config_from_dict(data: dict) -> Config:
    """Build a validated Config from a parsed YAML mapping."""
    if not isinstance(data, dict):
        raise ConfigError("configuration must be a mapping of sections")

    unknown = set(data) - set(_SECTIONS)
    if unknown:
        raise ConfigError(f"unknown configuration section(s): {', '.join(sorted(unknown))}")

    sections = {}
    for name, cls in _SECTIONS.items():
        section_data = data.get(name) or {}
        if not isinstance(section_data, dict):
            raise ConfigError(f"{name}: expected a mapping, got {type(section_data).__name__}")
        try:
            sections[name] = cls(**section_data)
        except TypeError as e:
            raise ConfigError(f"{name}: {e}") from e
    return Config(**sections)


def load_config(path: Optional[str] = None) -> Config:
    """Load configuration from YAML file, with defaults for missing values."""
    path = path or CONFIG_PATH
    if os.path.exists(path):
        with open(path, "r") as f:
            try:
                data = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise ConfigError(f"{path}: {e}") from e
    else:
        data = {}
    return config_from_dict(data)


def configure_logging(cfg: LoggingConfig) -> logging.Logger:
    """Attach a handler to the idlepause logger.

    Logs go to the configured file, or to the Textual devtools console when no
    file is set (the terminal itself belongs to the UI).
    """
    log = logging.getLogger("idlepause")
    log.setLevel(cfg.level)
    for handler in list(log.handlers):
        log.removeHandler(handler)
        handler.close()

    if cfg.file:
        path = os.path.expanduser(cfg.file)
        os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
        handler = logging.FileHandler(path)
    else:
        from textual.logging import TextualHandler

        handler = TextualHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    log.addHandler(handler)
    return log
