"""Byte forwarding from a child pipe to a parent stream.

rederr runtime module

This module provides:
- ByteSink: a flushed-per-write destination wrapping a binary file
- DecoratedSink: start/end marker framing around diagnostic output
- Forwarder: the read/write loop draining one pipe into one sink

Key design points:
- Chunks are forwarded exactly as read; nothing is split on lines and no
  newline is ever added
- Writes run in a worker thread so a blocked destination stalls only its own
  forwarder, never the event loop or the sibling forwarder
- A color region opens at the first chunk and stays open until the source
  ends or the forwarder fails, however the output is split into reads.
  Closing it early after a quiet period is opt-in (region_idle)
- After a write failure the source is drained and discarded so the child
  never blocks on a full pipe
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import BinaryIO, Protocol

import anyio
from anyio.abc import ByteReceiveStream

from ..errors import ForwardError

__all__ = [
    "ByteSink",
    "DecoratedSink",
    "Forwarder",
    "Sink",
    "DEFAULT_BUFFER_SIZE",
    "START_MARKER",
    "END_MARKER",
]

logger = logging.getLogger(__name__)

DEFAULT_BUFFER_SIZE = 1024
DISCARD_BUFFER_SIZE = 65536

# Red foreground, then reset.
START_MARKER = b"\x1b[31m"
END_MARKER = b"\x1b[0m"

_READ_ERRORS = (OSError, anyio.BrokenResourceError, anyio.ClosedResourceError)
# ValueError: write to a closed file.
_WRITE_ERRORS = (OSError, ValueError)


class Sink(Protocol):
    """Destination a Forwarder writes to. All methods are blocking."""

    @property
    def in_region(self) -> bool: ...

    def write(self, data: bytes) -> None: ...

    def end_region(self) -> None: ...

    def close(self) -> None: ...


class ByteSink:
    """Writes each chunk to a binary file and flushes it immediately.

    The file is never closed here; ``close()`` only flushes, since the file
    is normally the parent's own stdout or stderr. Writes are serialized so
    two forwarders can share one destination (``--combine``).
    """

    in_region = False

    def __init__(self, file: BinaryIO) -> None:
        self._file = file
        self._lock = threading.Lock()

    def write(self, data: bytes) -> None:
        with self._lock:
            self._file.write(data)
            self._file.flush()

    def end_region(self) -> None:
        pass

    def close(self) -> None:
        with self._lock:
            self._file.flush()

    def isatty(self) -> bool:
        try:
            return self._file.isatty()
        except (AttributeError, ValueError):
            return False


class DecoratedSink:
    """Brackets diagnostic output with start and end markers.

    The start marker is written in front of the first chunk after a closed
    region, the end marker by ``end_region()`` or ``close()`` when a region
    is open. Content bytes pass through untouched.

    Args:
        target: Underlying destination
        start: Bytes opening a region
        end: Bytes closing a region
        per_chunk: Close the region after every chunk, writing
            start + chunk + end as one unit (used when stdout shares the
            destination)
    """

    def __init__(
        self,
        target: ByteSink,
        *,
        start: bytes = START_MARKER,
        end: bytes = END_MARKER,
        per_chunk: bool = False,
    ) -> None:
        self._target = target
        self.start = start
        self.end = end
        self.per_chunk = per_chunk
        self._in_region = False

    @property
    def in_region(self) -> bool:
        """Whether a start marker has been written without its end marker."""
        return self._in_region

    def write(self, data: bytes) -> None:
        if not data:
            return
        if self.per_chunk:
            self._target.write(self.start + data + self.end)
        elif self._in_region:
            self._target.write(data)
        else:
            # Set first: the marker may have reached the destination even if
            # the write fails part way.
            self._in_region = True
            self._target.write(self.start + data)

    def end_region(self) -> None:
        if self._in_region:
            self._in_region = False
            self._target.write(self.end)

    def close(self) -> None:
        try:
            self.end_region()
        finally:
            self._target.close()


@dataclass
class Forwarder:
    """Drains one child pipe into one sink.

    Example:
        forwarder = Forwarder("stderr", process.stderr, DecoratedSink(sink))
        count = await forwarder.run()

    Attributes:
        name: Stream name used in logs and errors
        source: Readable end of the child's pipe
        sink: Destination for the bytes
        buffer_size: Maximum bytes per read
        region_idle: Seconds without input after which an open decoration
            region is closed (None keeps it open until the stream ends)
        bytes_forwarded: Bytes successfully written so far
    """

    name: str
    source: ByteReceiveStream
    sink: Sink
    buffer_size: int = DEFAULT_BUFFER_SIZE
    region_idle: float | None = None
    bytes_forwarded: int = field(default=0, init=False)

    async def run(self) -> int:
        """Forward until end of input.

        Returns:
            Number of bytes forwarded

        Raises:
            ForwardError: If a read, write or final flush failed. The sink
                has been closed and the source drained by then.
        """
        failure: BaseException | None = None
        try:
            failure = await self._pump()
        finally:
            with anyio.CancelScope(shield=True):
                close_failure = await self._close_sink()
        if failure is None:
            failure = close_failure

        if failure is not None:
            raise ForwardError(self.name, failure) from failure

        logger.debug(f"Forwarder {self.name} done bytes={self.bytes_forwarded}")
        return self.bytes_forwarded

    async def _pump(self) -> BaseException | None:
        while True:
            try:
                chunk = await self._receive()
            except anyio.EndOfStream:
                return None
            except _READ_ERRORS as e:
                logger.debug(f"Forwarder {self.name} read failed: {e!r}")
                return e

            try:
                if chunk is None:
                    await anyio.to_thread.run_sync(self.sink.end_region)
                    continue
                await anyio.to_thread.run_sync(self.sink.write, chunk)
            except _WRITE_ERRORS as e:
                logger.debug(f"Forwarder {self.name} write failed: {e!r}")
                await self._discard_rest()
                return e

            self.bytes_forwarded += len(chunk)

    async def _receive(self) -> bytes | None:
        """Read the next chunk, or None if an open region went idle."""
        if self.region_idle is not None and self.sink.in_region:
            with anyio.move_on_after(self.region_idle):
                return await self.source.receive(self.buffer_size)
            return None
        return await self.source.receive(self.buffer_size)

    async def _discard_rest(self) -> None:
        """Read and drop the remaining input so the child can keep writing."""
        discarded = 0
        while True:
            try:
                chunk = await self.source.receive(DISCARD_BUFFER_SIZE)
            except (anyio.EndOfStream, *_READ_ERRORS):
                break
            discarded += len(chunk)
        logger.debug(f"Forwarder {self.name} discarded {discarded} bytes")

    async def _close_sink(self) -> Exception | None:
        try:
            await anyio.to_thread.run_sync(self.sink.close)
        except _WRITE_ERRORS as e:
            logger.debug(f"Forwarder {self.name} close failed: {e!r}")
            return e
        return None
