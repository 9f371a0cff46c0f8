"""Registry of commands: executors, key analysis, arity and flags."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Optional, Sequence

from memdis.replies import BulkReply, IntReply, MultiBulkReply, MultiRawReply, Reply

FLAG_WRITE = 0
FLAG_READ_ONLY = 1 << 0
FLAG_SPECIAL = 1 << 1

REDIS_FLAG_WRITE = "write"
REDIS_FLAG_READONLY = "readonly"
REDIS_FLAG_DENY_OOM = "denyoom"
REDIS_FLAG_ADMIN = "admin"
REDIS_FLAG_PUBSUB = "pubsub"
REDIS_FLAG_NO_SCRIPT = "noscript"
REDIS_FLAG_RANDOM = "random"
REDIS_FLAG_SORT_FOR_SCRIPT = "sort_for_script"
REDIS_FLAG_LOADING = "loading"
REDIS_FLAG_STALE = "stale"
REDIS_FLAG_SKIP_MONITOR = "skip_monitor"
REDIS_FLAG_ASKING = "asking"
REDIS_FLAG_FAST = "fast"
REDIS_FLAG_MOVABLE_KEYS = "movablekeys"

Args = Sequence[bytes]
KeyLists = tuple[list[str], list[str]]
PrepareFunc = Callable[[Args], KeyLists]
ExecFunc = Callable[..., Reply]
UndoFunc = Callable[..., list[list[bytes]]]

_NONE = slice(0, 0)
_FIRST = slice(0, 1)
_ALL = slice(0, None)


def _key(raw: bytes) -> str:
    return raw.decode("utf-8", "surrogateescape")


def _pick(args: Args, write: slice, read: slice) -> KeyLists:
    """Decode the arguments selected by ``write`` and ``read`` as keys."""
    return [_key(arg) for arg in args[write]], [_key(arg) for arg in args[read]]


@dataclass
class _Extra:
    signs: list[str]
    first_key: int
    last_key: int
    key_step: int


@dataclass
class Command:
    """A registered command.

    ``arity`` is the exact number of words in the command line including the
    name, or, when negative, the minimum number.
    """

    name: str
    executor: Optional[ExecFunc] = None
    prepare: Optional[PrepareFunc] = None
    undo: Optional[UndoFunc] = None
    arity: int = 0
    flags: int = 0
    extra: Optional[_Extra] = field(default=None, repr=False)

    def attach_extra(self, signs, first_key, last_key, key_step) -> "Command":
        """Attach the descriptive data reported by ``COMMAND``."""
        self.extra = _Extra(list(signs), first_key, last_key, key_step)
        return self

    def to_desc_reply(self) -> MultiRawReply:
        """Describe the command the way ``COMMAND`` reports it."""
        parts: list[Reply] = [BulkReply(self.name.encode()), IntReply(self.arity)]
        if self.extra is not None:
            parts += [
                MultiBulkReply([sign.encode() for sign in self.extra.signs]),
                IntReply(self.extra.first_key),
                IntReply(self.extra.last_key),
                IntReply(self.extra.key_step),
            ]
        return MultiRawReply(parts)


_COMMANDS: dict[str, Command] = {}


def register_command(name, executor, prepare, undo, arity, flags) -> Command:
    """Register a normal command that reads or writes a limited set of keys."""
    command = Command(name.lower(), executor, prepare, undo, arity, flags)
    _COMMANDS[command.name] = command
    return command


def register_special_command(name, arity, flags) -> Command:
    """Register a command the server handles itself, such as ``select``."""
    command = Command(name.lower(), arity=arity, flags=flags | FLAG_SPECIAL)
    _COMMANDS[command.name] = command
    return command


def lookup(name) -> Optional[Command]:
    """Return the command registered under ``name`` (case-insensitive)."""
    return _COMMANDS.get(name.lower())


def is_read_only_command(name) -> bool:
    """Tell whether ``name`` is a registered read-only command."""
    command = lookup(name)
    return command is not None and bool(command.flags & FLAG_READ_ONLY)


def validate_arity(arity, cmd_line) -> bool:
    """Check the length of ``cmd_line`` against ``arity``."""
    count = len(cmd_line)
    if arity >= 0:
        return count == arity
    return count >= -arity


def write_first_key(args) -> KeyLists:
    """The first argument is a key that is written."""
    return _pick(args, _FIRST, _NONE)


def read_first_key(args) -> KeyLists:
    """The first argument is a key that is read."""
    return _pick(args, _NONE, _FIRST)


def write_all_keys(args) -> KeyLists:
    """Every argument is a key that is written."""
    return _pick(args, _ALL, _NONE)


def read_all_keys(args) -> KeyLists:
    """Every argument is a key that is read."""
    return _pick(args, _NONE, _ALL)


def no_prepare(args) -> KeyLists:
    """The command touches no particular keys."""
    return _pick(args, _NONE, _NONE)