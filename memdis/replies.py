"""Replies in the serialisation protocol and the error raised by command executors."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional, Sequence

CRLF = b"\r\n"


def _encode(text: str) -> bytes:
    return text.encode("utf-8", "surrogateescape")


class Reply(ABC):
    """A value that can be written back to a client."""

    @abstractmethod
    def to_bytes(self) -> bytes:
        """Return the wire form of the reply."""


@dataclass(frozen=True)
class StatusReply(Reply):
    """A simple status line such as ``+OK``."""

    status: str

    def to_bytes(self) -> bytes:
        return b"+" + _encode(self.status) + CRLF


@dataclass(frozen=True)
class IntReply(Reply):
    """An integer reply."""

    code: int

    def to_bytes(self) -> bytes:
        return b":" + str(self.code).encode("ascii") + CRLF


@dataclass(frozen=True)
class BulkReply(Reply):
    """A binary-safe string reply."""

    arg: bytes

    def to_bytes(self) -> bytes:
        return b"$" + str(len(self.arg)).encode("ascii") + CRLF + self.arg + CRLF


@dataclass(frozen=True)
class NullBulkReply(Reply):
    """The nil bulk string."""

    def to_bytes(self) -> bytes:
        return b"$-1" + CRLF


@dataclass
class MultiBulkReply(Reply):
    """An array of bulk strings; ``None`` items are written as nil."""

    args: list[Optional[bytes]] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.args = list(self.args)

    def to_bytes(self) -> bytes:
        parts = [b"*" + str(len(self.args)).encode("ascii") + CRLF]
        for arg in self.args:
            parts.append(NullBulkReply().to_bytes() if arg is None else BulkReply(arg).to_bytes())
        return b"".join(parts)


@dataclass(frozen=True)
class EmptyMultiBulkReply(Reply):
    """An empty array."""

    def to_bytes(self) -> bytes:
        return b"*0" + CRLF


@dataclass
class MultiRawReply(Reply):
    """An array whose items are arbitrary replies."""

    replies: list[Reply] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.replies = list(self.replies)

    def to_bytes(self) -> bytes:
        head = b"*" + str(len(self.replies)).encode("ascii") + CRLF
        return head + b"".join(reply.to_bytes() for reply in self.replies)


@dataclass(frozen=True)
class ErrorReply(Reply):
    """An error line such as ``-ERR syntax error``."""

    message: str

    def to_bytes(self) -> bytes:
        return b"-" + _encode(self.message) + CRLF


class CommandError(Exception):
    """Raised by a command executor; carries the error reply to send back."""

    def __init__(self, error: ErrorReply | str) -> None:
        self.reply = error if isinstance(error, ErrorReply) else ErrorReply(error)
        super().__init__(self.reply.message)


def ok_reply() -> StatusReply:
    """Return the ``OK`` status reply."""
    return StatusReply("OK")


def arg_num_error(name: str) -> ErrorReply:
    """Return the error for a wrong number of arguments to ``name``."""
    return ErrorReply(f"ERR wrong number of arguments for '{name}' command")


def syntax_error() -> ErrorReply:
    """Return the generic syntax error."""
    return ErrorReply("ERR syntax error")


def wrong_type_error() -> ErrorReply:
    """Return the error for an operation against a value of the wrong type."""
    return ErrorReply("WRONGTYPE Operation against a key holding the wrong kind of value")


def sequence_of_bytes(items: Sequence[str]) -> list[bytes]:
    """Encode a sequence of strings for use in a multi-bulk reply."""
    return [_encode(item) for item in items]