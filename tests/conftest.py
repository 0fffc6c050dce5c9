"""Pytest configuration and fixtures."""

from __future__ import annotations

import asyncio
import io
import os
import subprocess
import sys
from collections.abc import Iterable
from pathlib import Path

import anyio
import pytest

# Project root
PROJECT_ROOT = Path(__file__).parent.parent

# Put src/ on the Python path
SRC_DIR = PROJECT_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

FIXTURES_DIR = Path(__file__).parent / "fixtures"
FAKE_CLI = FIXTURES_DIR / "fake_cli.py"

START = b"\x1b[31m"
END = b"\x1b[0m"


def fake_cli_argv(*ops: str) -> list[str]:
    """argv running the fake child with the given operations."""
    return [sys.executable, str(FAKE_CLI), *ops]


def run_rederr(
    args: Iterable[str],
    *,
    env: dict[str, str] | None = None,
    timeout: float = 30.0,
) -> subprocess.CompletedProcess[bytes]:
    """Run ``python -m rederr`` end to end and capture its output."""
    full_env = dict(os.environ)
    full_env["PYTHONPATH"] = os.pathsep.join(
        filter(None, [str(SRC_DIR), full_env.get("PYTHONPATH")])
    )
    for key in list(full_env):
        if key.startswith("REDERR_"):
            del full_env[key]
    if env:
        full_env.update(env)
    return subprocess.run(
        [sys.executable, "-m", "rederr", *args],
        stdin=subprocess.DEVNULL,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        env=full_env,
        timeout=timeout,
    )


class RecordingFile(io.BytesIO):
    """BytesIO that counts flushes and can pretend to be a terminal."""

    def __init__(self, *, tty: bool = False) -> None:
        super().__init__()
        self.flushes = 0
        self._tty = tty

    def flush(self) -> None:
        self.flushes += 1
        super().flush()

    def isatty(self) -> bool:
        return self._tty


class BrokenFile(io.RawIOBase):
    """Destination whose reader went away."""

    def __init__(self) -> None:
        super().__init__()
        self.attempts = 0

    def writable(self) -> bool:
        return True

    def write(self, data) -> int:  # type: ignore[override]
        self.attempts += 1
        raise BrokenPipeError(32, "Broken pipe")

    def flush(self) -> None:
        pass


class QueueSource:
    """ByteReceiveStream stand-in fed by the test, one chunk per receive."""

    def __init__(self, chunks: Iterable[bytes] = (), *, eof: bool = False) -> None:
        self.queue: asyncio.Queue[bytes | BaseException | None] = asyncio.Queue()
        self.received = 0
        for chunk in chunks:
            self.feed(chunk)
        if eof:
            self.feed_eof()

    def feed(self, chunk: bytes) -> None:
        self.queue.put_nowait(chunk)

    def feed_eof(self) -> None:
        self.queue.put_nowait(None)

    def feed_error(self, error: BaseException) -> None:
        self.queue.put_nowait(error)

    async def receive(self, max_bytes: int = 65536) -> bytes:
        item = await self.queue.get()
        if item is None:
            self.queue.put_nowait(None)
            raise anyio.EndOfStream
        if isinstance(item, BaseException):
            raise item
        self.received += 1
        return item


@pytest.fixture
def fixtures_dir() -> Path:
    """Directory with the child scripts used by the tests."""
    return FIXTURES_DIR
