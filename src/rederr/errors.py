"""rederr exception classes.

SpawnError and WaitError are fatal to an invocation; ForwardError is local
to one stream and never aborts the sibling stream.
"""

from __future__ import annotations

__all__ = [
    "RederrError",
    "SpawnError",
    "ForwardError",
    "WaitError",
    "EXIT_INTERNAL_ERROR",
    "EXIT_CANNOT_EXECUTE",
    "EXIT_NOT_FOUND",
]

# Reserved for failures of rederr itself, as env(1) and timeout(1) do.
EXIT_INTERNAL_ERROR = 125
EXIT_CANNOT_EXECUTE = 126
EXIT_NOT_FOUND = 127


class RederrError(Exception):
    """Base exception for rederr."""

    exit_code: int = EXIT_INTERNAL_ERROR


class SpawnError(RederrError):
    """The child program could not be started.

    Attributes:
        command: Program name or path that was requested
        cause: Underlying OS error
    """

    def __init__(self, command: str, cause: OSError) -> None:
        self.command = command
        self.cause = cause
        reason = cause.strerror or str(cause)
        super().__init__(f"could not run {command!r}: {reason}")

    @property
    def exit_code(self) -> int:  # type: ignore[override]
        if isinstance(self.cause, FileNotFoundError):
            return EXIT_NOT_FOUND
        return EXIT_CANNOT_EXECUTE


class ForwardError(RederrError):
    """A read or write failed while relaying one stream.

    Attributes:
        stream: Name of the stream ("stdout" or "stderr")
        cause: The exception that stopped the forwarder
    """

    def __init__(self, stream: str, cause: BaseException) -> None:
        self.stream = stream
        self.cause = cause
        super().__init__(f"relaying {stream} failed: {cause!r}")


class WaitError(RederrError):
    """The child's exit status could not be collected."""
    pass
