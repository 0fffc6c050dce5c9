"""Signal handling while a child is being relayed.

rederr must not die before the child does: its job is to drain the child's
output and report the child's status. While the relay runs, signals that
would terminate rederr are turned into actions on the child instead:

- SIGTERM, SIGHUP: forwarded to the child
- SIGINT, SIGQUIT: ignored (default) or forwarded, see SigintMode

The relay then keeps draining and reports whatever status the child ends
with, e.g. 143 for a child that dies of the forwarded SIGTERM.

Configuration:
- REDERR_SIGINT_MODE: ignore | forward
"""

from __future__ import annotations

import asyncio
import logging
import signal
import sys
from typing import Callable, Optional

from .config import SigintMode, get_config

__all__ = ["SignalRelay", "SigintMode"]

logger = logging.getLogger(__name__)

FORWARDED_SIGNALS = (signal.SIGTERM, signal.SIGHUP) if sys.platform != "win32" else ()
INTERACTIVE_SIGNALS = (signal.SIGINT, signal.SIGQUIT) if sys.platform != "win32" else ()


class SignalRelay:
    """Routes signals received by rederr to the child.

    Example:
        ```python
        relay = SignalRelay(supervisor.send_signal)
        await relay.start()
        try:
            ...  # drain and wait
        finally:
            await relay.stop()
        ```

    Attributes:
        send: Callable delivering a signal to the child; returns False when
            the child is already gone
        sigint_mode: SIGINT/SIGQUIT policy
        received: Signals received so far, in order
        pending: Signals that found no child to deliver to, kept for
            deliver_pending()
    """

    def __init__(
        self,
        send: Callable[[int], bool],
        sigint_mode: Optional[SigintMode] = None,
    ) -> None:
        self.send = send
        self.sigint_mode = sigint_mode if sigint_mode is not None else get_config().sigint_mode
        self.received: list[int] = []
        self.pending: list[int] = []
        self._installed: list[int] = []
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    @property
    def running(self) -> bool:
        return bool(self._installed)

    async def start(self) -> None:
        """Install the handlers. Must be called from the running event loop.

        On platforms without loop.add_signal_handler this does nothing.
        """
        if self._installed:
            logger.warning("SignalRelay already running")
            return

        self._loop = asyncio.get_running_loop()
        for sig in (*FORWARDED_SIGNALS, *INTERACTIVE_SIGNALS):
            try:
                self._loop.add_signal_handler(sig, self._handle_signal, sig)
            except (NotImplementedError, RuntimeError, ValueError) as e:
                logger.debug(f"Cannot handle {signal.Signals(sig).name}: {e}")
                continue
            self._installed.append(sig)

        if self._installed:
            logger.debug(
                f"Signal handlers installed (sigint_mode={self.sigint_mode.value}, "
                f"signals={[signal.Signals(s).name for s in self._installed]})"
            )

    async def stop(self) -> None:
        """Remove the handlers, restoring default dispositions."""
        if not self._installed or self._loop is None:
            return

        for sig in self._installed:
            try:
                self._loop.remove_signal_handler(sig)
            except (RuntimeError, ValueError) as e:
                logger.debug(f"Error removing {signal.Signals(sig).name} handler: {e}")
        self._installed = []
        logger.debug("Signal handlers removed")

    def _handle_signal(self, sig: int) -> None:
        self.received.append(sig)
        name = signal.Signals(sig).name

        if sig in INTERACTIVE_SIGNALS and self.sigint_mode == SigintMode.IGNORE:
            logger.debug(f"{name} received (mode=ignore), still relaying")
            return

        if self.send(sig):
            logger.debug(f"{name} received, forwarded to child")
        else:
            logger.debug(f"{name} received, no child to deliver to")
            self.pending.append(sig)

    def deliver_pending(self) -> None:
        """Send signals that arrived before the child was spawned."""
        pending, self.pending = self.pending, []
        for sig in pending:
            name = signal.Signals(sig).name
            if self.send(sig):
                logger.debug(f"{name} delivered to child after spawn")
            else:
                logger.debug(f"{name} dropped, child already gone")
