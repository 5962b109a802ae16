"""
Error taxonomy and the Result type returned by client operations.

Exceptions are raised inside the framing and store layers and caught at the
boundary of one session (server side) or one request (client side), where
they are turned into an ERROR line or a failed Result.
"""

from dataclasses import dataclass

from typing_extensions import Generic, TypeVar

T = TypeVar("T")


class PeerlinkError(Exception):
    """Base class for every error raised by peerlink."""


class BindError(PeerlinkError):
    """The listener could not bind its port (usually already in use)."""

    def __init__(self, port: int, reason: str = ""):
        self.port = port
        message = f"Port {port} is already in use"
        if reason:
            message = f"Could not bind port {port}: {reason}"
        super().__init__(message)


class ConnectError(PeerlinkError):
    """A peer could not be reached (timeout, refusal, bad address)."""

    def __init__(self, host: str, port: int, reason: str = ""):
        self.host = host
        self.port = port
        message = f"Failed to connect to peer {host}:{port}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class ProtocolError(PeerlinkError):
    """The remote side sent something the protocol does not allow."""


class ShortReadError(ProtocolError):
    """The stream ended before the declared payload size was consumed."""

    def __init__(self, received: int, expected: int):
        self.received = received
        self.expected = expected
        super().__init__(
            f"Incomplete transfer: got {received}/{expected} bytes"
        )


class NotFoundError(PeerlinkError):
    """The requested file is not available."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"File not found: {name}")


class InvalidFileNameError(PeerlinkError):
    """A file name is blank or is not a plain file name."""


@dataclass(frozen=True)
class Result(Generic[T]):
    """Outcome of a client operation: a value on success, an error otherwise."""

    ok: bool
    value: T | None = None
    error: PeerlinkError | None = None

    @classmethod
    def success(cls, value: T | None = None) -> "Result[T]":
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, error: PeerlinkError) -> "Result[T]":
        return cls(ok=False, error=error)

    def __bool__(self) -> bool:
        return self.ok

    @property
    def message(self) -> str:
        return str(self.error) if self.error is not None else ""
