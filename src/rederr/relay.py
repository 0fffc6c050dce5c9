"""Relay coordination: spawn, drain both streams, join, wait, report.

The coordinator walks a fixed state machine:

    IDLE -> SPAWNED -> DRAINING -> JOINED -> REPORTED

Both forwarders run in one anyio task group. A forwarder that fails records
its ForwardError instead of raising, so the sibling keeps draining. The
child's status is collected only after both pipes have reached end of input.

Ordering between stdout and stderr is best effort: each pipe is buffered
separately by the OS, so two writes made "at the same time" by the child may
be relayed in either order. No attempt is made to reorder them.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum

import anyio

from .config import Config, get_config
from .errors import ForwardError
from .runtime.forwarder import ByteSink, DecoratedSink, Forwarder, Sink
from .runtime.outcome import ExitOutcome, exit_code_for
from .runtime.supervisor import ProcessSpec, ProcessSupervisor
from .signal_manager import SignalRelay

__all__ = ["RelayCoordinator", "RelayResult", "RelayState"]

logger = logging.getLogger(__name__)


class RelayState(Enum):
    """Lifecycle of one relay run."""

    IDLE = "idle"
    SPAWNED = "spawned"
    DRAINING = "draining"
    JOINED = "joined"
    REPORTED = "reported"


_NEXT_STATE = {
    RelayState.IDLE: RelayState.SPAWNED,
    RelayState.SPAWNED: RelayState.DRAINING,
    RelayState.DRAINING: RelayState.JOINED,
    RelayState.JOINED: RelayState.REPORTED,
}


@dataclass
class RelayResult:
    """Result of a finished relay.

    Attributes:
        outcome: How the child terminated
        exit_code: Exit code rederr should use
        forward_errors: Streams that stopped relaying early
        bytes_forwarded: Bytes relayed per stream name
    """

    outcome: ExitOutcome
    exit_code: int
    forward_errors: list[ForwardError] = field(default_factory=list)
    bytes_forwarded: dict[str, int] = field(default_factory=dict)


class RelayCoordinator:
    """Runs one child and relays its stdout and stderr.

    Example:
        ```python
        coordinator = RelayCoordinator(
            stdout_sink=ByteSink(sys.stdout.buffer),
            stderr_sink=ByteSink(sys.stderr.buffer),
        )
        result = await coordinator.run(ProcessSpec(argv=["make"]))
        sys.exit(result.exit_code)
        ```

    The stderr sink is wrapped in a DecoratedSink when coloring is enabled
    for it; pass already-decorated sinks with ``decorate=False``.
    """

    def __init__(
        self,
        config: Config | None = None,
        *,
        stdout_sink: ByteSink,
        stderr_sink: ByteSink,
        supervisor: ProcessSupervisor | None = None,
        decorate: bool = True,
    ) -> None:
        self.config = config if config is not None else get_config()
        self.supervisor = supervisor if supervisor is not None else ProcessSupervisor()
        self.stdout_sink: Sink = stdout_sink
        self.stderr_sink: Sink = stderr_sink
        if decorate:
            self.stderr_sink = self._decorate(stderr_sink)
        self.forward_errors: list[ForwardError] = []
        self._state = RelayState.IDLE

    @property
    def state(self) -> RelayState:
        return self._state

    def _advance(self, new_state: RelayState) -> None:
        if _NEXT_STATE.get(self._state) is not new_state:
            raise RuntimeError(
                f"illegal relay transition {self._state.value} -> {new_state.value}"
            )
        logger.debug(f"Relay {self._state.value} -> {new_state.value}")
        self._state = new_state

    def _decorate(self, sink: ByteSink) -> Sink:
        if not self.config.color.enabled(sink.isatty()):
            return sink
        return DecoratedSink(sink, per_chunk=self.config.combine)

    async def run(self, spec: ProcessSpec) -> RelayResult:
        """Relay one child from spawn to exit.

        Signal handlers are installed before the spawn. A signal that arrives
        before the child exists is delivered to it right after the spawn.

        Raises:
            SpawnError: If the child could not be started; no forwarding
                happens and the state stays IDLE
            WaitError: If the child's status could not be collected
        """
        signals = SignalRelay(self.supervisor.send_signal, self.config.sigint_mode)
        await signals.start()
        try:
            await self.supervisor.spawn(spec)
            self._advance(RelayState.SPAWNED)
            signals.deliver_pending()

            forwarders = [
                Forwarder(
                    "stdout",
                    self.supervisor.stdout,
                    self.stdout_sink,
                    buffer_size=self.config.buffer_size,
                    region_idle=None,
                ),
                Forwarder(
                    "stderr",
                    self.supervisor.stderr,
                    self.stderr_sink,
                    buffer_size=self.config.buffer_size,
                    region_idle=self.config.region_idle,
                ),
            ]
            self._advance(RelayState.DRAINING)
            async with anyio.create_task_group() as tg:
                for forwarder in forwarders:
                    tg.start_soon(self._run_forwarder, forwarder, name=forwarder.name)
            self._advance(RelayState.JOINED)

            outcome = await self.supervisor.wait()
        finally:
            await signals.stop()
            await self.supervisor.aclose()

        for error in self.forward_errors:
            logger.warning(str(error))

        self._advance(RelayState.REPORTED)
        return RelayResult(
            outcome=outcome,
            exit_code=exit_code_for(outcome),
            forward_errors=list(self.forward_errors),
            bytes_forwarded={f.name: f.bytes_forwarded for f in forwarders},
        )

    async def _run_forwarder(self, forwarder: Forwarder) -> None:
        try:
            await forwarder.run()
        except ForwardError as e:
            self.forward_errors.append(e)
