"""Child process supervision: spawn, signal, wait, reliable cleanup.

rederr runtime module

This module provides:
- Spawning with stdout/stderr on pipes and stdin inherited unmodified
- Exit outcome collection (exit code or terminating signal)
- Signal delivery to the child
- Cancel-safe cleanup (SIGTERM -> timeout -> SIGKILL) for abnormal exits

Key design points:
- The child stays in rederr's process group so it keeps the terminal:
  job control and Ctrl+C reach it directly
- wait() is only called once both pipes have been drained; see
  rederr.relay for the ordering
"""

from __future__ import annotations

import logging
import signal
import subprocess
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import anyio
from anyio.abc import ByteReceiveStream, Process

from ..errors import SpawnError, WaitError
from .outcome import ExitOutcome, outcome_from_returncode

__all__ = [
    "ProcessSupervisor",
    "ProcessSpec",
]

logger = logging.getLogger(__name__)

# Default timeouts
DEFAULT_TERM_TIMEOUT = 2.0  # seconds to wait after SIGTERM
DEFAULT_KILL_TIMEOUT = 1.0  # seconds to wait after SIGKILL


@dataclass(frozen=True)
class ProcessSpec:
    """Specification for a child to run.

    Attributes:
        argv: Command line arguments (first element is the executable)
        cwd: Working directory for the process (None = inherit)
        env: Environment variables (None = inherit parent)
    """

    argv: list[str]
    cwd: Path | None = None
    env: Mapping[str, str] | None = None


@dataclass
class ProcessSupervisor:
    """Owns one child process from spawn until its status is collected.

    Example:
        supervisor = ProcessSupervisor()
        await supervisor.spawn(ProcessSpec(argv=["make", "test"]))
        try:
            ...  # drain supervisor.stdout and supervisor.stderr
            outcome = await supervisor.wait()
        finally:
            await supervisor.aclose()
    """

    term_timeout: float = DEFAULT_TERM_TIMEOUT
    kill_timeout: float = DEFAULT_KILL_TIMEOUT
    _process: Process | None = field(default=None, init=False, repr=False)

    @property
    def pid(self) -> int | None:
        return self._process.pid if self._process else None

    @property
    def stdout(self) -> ByteReceiveStream:
        return self._require_process().stdout  # type: ignore[return-value]

    @property
    def stderr(self) -> ByteReceiveStream:
        return self._require_process().stderr  # type: ignore[return-value]

    @property
    def running(self) -> bool:
        return self._process is not None and self._process.returncode is None

    async def spawn(self, spec: ProcessSpec) -> None:
        """Start the child.

        Raises:
            SpawnError: If the program could not be started
        """
        if self._process is not None:
            raise RuntimeError("ProcessSupervisor already spawned a process")
        if not spec.argv:
            raise ValueError("ProcessSpec.argv must not be empty")

        try:
            self._process = await anyio.open_process(
                spec.argv,
                stdin=None,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                **self._build_subprocess_kwargs(spec),
            )
        except OSError as e:
            logger.debug(f"Spawn failed argv={spec.argv[0]}: {e!r}")
            raise SpawnError(spec.argv[0], e) from e

        logger.debug(f"Started subprocess pid={self._process.pid} argv={spec.argv[0]}")

    def _build_subprocess_kwargs(self, spec: ProcessSpec) -> dict[str, Any]:
        kwargs: dict[str, Any] = {}
        if spec.cwd is not None:
            kwargs["cwd"] = spec.cwd
        if spec.env is not None:
            kwargs["env"] = dict(spec.env)
        return kwargs

    async def wait(self) -> ExitOutcome:
        """Block until the child terminates and return its outcome.

        Raises:
            WaitError: If the status cannot be collected
        """
        if self._process is None:
            raise WaitError("no child process to wait for")
        try:
            returncode = await self._process.wait()
        except (OSError, ChildProcessError) as e:
            raise WaitError(f"waiting for pid {self._process.pid} failed: {e}") from e
        if returncode is None:
            raise WaitError(f"no exit status for pid {self._process.pid}")

        outcome = outcome_from_returncode(returncode)
        logger.debug(f"Subprocess pid={self._process.pid} {outcome.describe()}")
        return outcome

    def send_signal(self, sig: int) -> bool:
        """Deliver ``sig`` to the child.

        Returns:
            False if there is no running child to signal
        """
        if not self.running:
            return False
        assert self._process is not None
        try:
            self._process.send_signal(sig)
        except ProcessLookupError:
            return False
        logger.debug(f"Sent {signal.Signals(sig).name} to pid={self._process.pid}")
        return True

    async def aclose(self) -> None:
        """Release the child and its pipes, shielded from cancellation.

        A child that is still running at this point (cancellation or an
        internal error) is terminated first.
        """
        process = self._process
        if process is None:
            return
        with anyio.CancelScope(shield=True):
            if process.returncode is None:
                await self._terminate_process(process)
            if process.returncode is None:
                # Closing would block on a child that ignores SIGKILL.
                return
            try:
                await process.aclose()
            except OSError as e:
                logger.warning(f"Error closing subprocess pid={process.pid}: {e}")

    async def _terminate_process(self, process: Process) -> None:
        """Terminate the child gracefully, then forcefully if needed.

        Termination strategy:
        1. Send SIGTERM
        2. Wait up to term_timeout for graceful exit
        3. If still running, send SIGKILL
        4. Wait up to kill_timeout for forced exit
        """
        pid = process.pid
        logger.debug(f"Terminating subprocess pid={pid}")

        try:
            process.terminate()
            with anyio.move_on_after(self.term_timeout):
                await process.wait()
                logger.debug(
                    f"Subprocess terminated gracefully pid={pid} "
                    f"returncode={process.returncode}"
                )
                return

            logger.debug(f"Force killing subprocess pid={pid}")
            process.kill()
            with anyio.move_on_after(self.kill_timeout):
                await process.wait()
                logger.debug(
                    f"Subprocess killed pid={pid} "
                    f"returncode={process.returncode}"
                )
                return

            logger.warning(f"Subprocess did not exit after kill pid={pid}")

        except ProcessLookupError:
            logger.debug(f"Subprocess already exited pid={pid}")

    def _require_process(self) -> Process:
        if self._process is None:
            raise RuntimeError("ProcessSupervisor has not spawned a process")
        return self._process
