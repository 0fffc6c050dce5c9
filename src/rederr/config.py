"""rederr environment configuration.

Environment variables:
    REDERR_COLOR: when to decorate the child's stderr
        - always = always wrap stderr in color markers (default)
        - auto = only when the destination is a terminal
        - never = relay stderr untouched

    REDERR_BUFFER_SIZE: maximum bytes read from a pipe at once
        - default 1024, clamped to 1..1048576

    REDERR_REGION_IDLE: seconds of stderr silence after which an open color
        region is closed early
        - unset (default) = one region from the first stderr byte to the end
          of the stream
        - a number of seconds, clamped to 0.001..10

    REDERR_SIGINT_MODE: what to do when rederr gets SIGINT/SIGQUIT
        - ignore = keep relaying; the child got it from the terminal (default)
        - forward = pass the signal on to the child

    REDERR_LOG_DEBUG: debug logging
        - true/1/yes = on (log to a temp file, never to the relayed streams)
        - false/0/no = off (default, warnings and errors to stderr)

Command line flags override these values.
"""

from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path

from .runtime.forwarder import DEFAULT_BUFFER_SIZE

__all__ = ["Config", "ColorMode", "SigintMode", "load_config", "get_config", "reload_config"]

MAX_BUFFER_SIZE = 1024 * 1024


class ColorMode(Enum):
    """When the diagnostic stream is decorated.

    - ALWAYS: always decorate
    - AUTO: decorate only when the destination is a terminal
    - NEVER: never decorate
    """

    ALWAYS = "always"
    AUTO = "auto"
    NEVER = "never"

    @classmethod
    def from_string(cls, value: str) -> "ColorMode":
        """Parse a mode string; invalid values give ALWAYS."""
        value = value.lower().strip()
        for mode in cls:
            if mode.value == value:
                return mode
        return cls.ALWAYS

    def enabled(self, isatty: bool) -> bool:
        if self is ColorMode.AUTO:
            return isatty
        return self is ColorMode.ALWAYS


class SigintMode(Enum):
    """What rederr does with SIGINT and SIGQUIT while the child runs.

    - IGNORE: keep relaying; a terminal already signals the whole foreground
      process group, child included
    - FORWARD: send the signal on to the child
    """

    IGNORE = "ignore"
    FORWARD = "forward"

    @classmethod
    def from_string(cls, value: str) -> "SigintMode":
        """Parse a mode string; invalid values give IGNORE."""
        value = value.lower().strip()
        for mode in cls:
            if mode.value == value:
                return mode
        return cls.IGNORE


def _parse_bool(value: str | None, default: bool = False) -> bool:
    """Parse a boolean environment variable."""
    if value is None:
        return default
    return value.lower() in ("true", "1", "yes", "on")


def _parse_buffer_size(value: str | None) -> int:
    if not value:
        return DEFAULT_BUFFER_SIZE
    try:
        size = int(value)
    except ValueError:
        return DEFAULT_BUFFER_SIZE
    return max(1, min(size, MAX_BUFFER_SIZE))


def _parse_region_idle(value: str | None) -> float | None:
    if not value:
        return None
    try:
        idle = float(value)
    except ValueError:
        return None
    return max(0.001, min(idle, 10.0))


def _generate_log_file_path() -> str:
    """Build a timestamped debug log path under the temp directory."""
    log_dir = Path(tempfile.gettempdir()) / "rederr"
    log_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_file = log_dir / f"rederr_debug_{timestamp}_{os.getpid()}.log"

    return str(log_file.resolve())


@dataclass
class Config:
    """rederr configuration.

    Attributes:
        color: When to decorate the diagnostic stream
        combine: Write the decorated diagnostic stream to stdout
        buffer_size: Maximum bytes per pipe read
        region_idle: Idle seconds before an open color region closes early
            (None keeps one region until the stream ends)
        sigint_mode: SIGINT/SIGQUIT policy
        log_debug: Debug logging to a temp file
        log_file: Debug log path (set when log_debug is on)
    """

    color: ColorMode = ColorMode.ALWAYS
    combine: bool = False
    buffer_size: int = DEFAULT_BUFFER_SIZE
    region_idle: float | None = None
    sigint_mode: SigintMode = SigintMode.IGNORE
    log_debug: bool = False
    log_file: str | None = None

    def __repr__(self) -> str:
        return (
            f"Config(color={self.color.value}, "
            f"combine={self.combine}, "
            f"buffer_size={self.buffer_size}, "
            f"region_idle={self.region_idle}, "
            f"sigint_mode={self.sigint_mode.value}, "
            f"log_debug={self.log_debug}, "
            f"log_file={self.log_file})"
        )


def load_config() -> Config:
    """Load configuration from the environment."""
    log_debug = _parse_bool(os.environ.get("REDERR_LOG_DEBUG"), default=False)
    log_file = _generate_log_file_path() if log_debug else None

    return Config(
        color=ColorMode.from_string(os.environ.get("REDERR_COLOR", "")),
        buffer_size=_parse_buffer_size(os.environ.get("REDERR_BUFFER_SIZE")),
        region_idle=_parse_region_idle(os.environ.get("REDERR_REGION_IDLE")),
        sigint_mode=SigintMode.from_string(os.environ.get("REDERR_SIGINT_MODE", "")),
        log_debug=log_debug,
        log_file=log_file,
    )


# Global instance, loaded lazily.
_config: Config | None = None


def get_config() -> Config:
    """Return the global configuration."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reload_config() -> Config:
    """Reload configuration from the environment (used by tests)."""
    global _config
    _config = load_config()
    return _config
