"""Runtime module for child process supervision and stream forwarding.

This module provides the pieces the relay coordinator wires together:
the per-stream forwarders and sinks, the process supervisor and the exit
outcome mapping.
"""

from __future__ import annotations

from .forwarder import ByteSink, DecoratedSink, Forwarder
from .outcome import Exited, ExitOutcome, Signaled, exit_code_for, outcome_from_returncode
from .supervisor import ProcessSpec, ProcessSupervisor

__all__ = [
    "ByteSink",
    "DecoratedSink",
    "Exited",
    "ExitOutcome",
    "Forwarder",
    "ProcessSpec",
    "ProcessSupervisor",
    "Signaled",
    "exit_code_for",
    "outcome_from_returncode",
]
