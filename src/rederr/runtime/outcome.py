"""Child exit outcome and its mapping to rederr's own exit code.

An outcome is either ``Exited(code)`` or ``Signaled(signal)``. The mapping is
a pure function so it can be tested without spawning anything:

- ``Exited(n)`` -> ``n``
- ``Signaled(s)`` -> ``128 + s`` (shell convention)
"""

from __future__ import annotations

import signal
from dataclasses import dataclass
from typing import Union

__all__ = [
    "Exited",
    "Signaled",
    "ExitOutcome",
    "outcome_from_returncode",
    "exit_code_for",
    "SIGNAL_EXIT_BASE",
]

SIGNAL_EXIT_BASE = 128


@dataclass(frozen=True)
class Exited:
    """The child exited normally with ``code``."""

    code: int

    def describe(self) -> str:
        return f"exited with code {self.code}"


@dataclass(frozen=True)
class Signaled:
    """The child was terminated by ``signal``."""

    signal: int

    @property
    def signal_name(self) -> str:
        try:
            return signal.Signals(self.signal).name
        except ValueError:
            return f"signal {self.signal}"

    def describe(self) -> str:
        return f"killed by {self.signal_name}"


ExitOutcome = Union[Exited, Signaled]


def outcome_from_returncode(returncode: int) -> ExitOutcome:
    """Build an outcome from a subprocess returncode.

    Negative returncodes mean the child was terminated by signal ``-rc``.
    """
    if returncode < 0:
        return Signaled(-returncode)
    return Exited(returncode)


def exit_code_for(outcome: ExitOutcome) -> int:
    """Map a child outcome to the exit code rederr itself should use."""
    if isinstance(outcome, Signaled):
        # Exit statuses are 8 bits.
        return min(SIGNAL_EXIT_BASE + outcome.signal, 255)
    if isinstance(outcome, Exited):
        return outcome.code
    raise TypeError(f"not an exit outcome: {outcome!r}")
