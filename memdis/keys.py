"""Keyspace commands: deletion, existence, type, renaming, expiry and key listing."""

from __future__ import annotations

import math
import re
import time
from collections import deque
from typing import Any, Optional

from memdis.replies import (
    CommandError,
    ErrorReply,
    IntReply,
    MultiBulkReply,
    Reply,
    StatusReply,
    ok_reply,
)
from memdis.router import (
    FLAG_READ_ONLY,
    FLAG_WRITE,
    REDIS_FLAG_FAST,
    REDIS_FLAG_RANDOM,
    REDIS_FLAG_READONLY,
    REDIS_FLAG_SORT_FOR_SCRIPT,
    REDIS_FLAG_WRITE,
    no_prepare,
    read_all_keys,
    read_first_key,
    register_command,
    write_all_keys,
    write_first_key,
)

_INT_RE = re.compile(r"[+-]?[0-9]+\Z")
_INT64_MIN = -(1 << 63)
_INT64_MAX = (1 << 63) - 1

_NOT_INTEGER = "ERR value is not an integer or out of range"


def _text(raw: bytes) -> str:
    return raw.decode("utf-8", "surrogateescape")


def _raw(text: str) -> bytes:
    return text.encode("utf-8", "surrogateescape")


def _parse_int(raw: bytes) -> int:
    """Parse a signed 64-bit decimal integer or raise the integer error."""
    text = _text(raw)
    if not _INT_RE.match(text):
        raise CommandError(_NOT_INTEGER)
    value = int(text)
    if value < _INT64_MIN or value > _INT64_MAX:
        raise CommandError(_NOT_INTEGER)
    return value


def _to_micros(deadline: float) -> int:
    return round(deadline * 1_000_000)


def _unix_millis(deadline: float) -> int:
    return _to_micros(deadline) // 1000


def _unix_seconds(deadline: float) -> int:
    return _to_micros(deadline) // 1_000_000


def _round_half_away(value: float) -> int:
    magnitude = math.floor(abs(value) + 0.5)
    return magnitude if value >= 0 else -magnitude


# ---- glob patterns ----


def _char_class(chars) -> str:
    body: list[str] = []
    negate = False
    closed = False
    for ch in chars:
        if ch == "]":
            closed = True
            break
        if ch == "\\":
            escaped = next(chars, None)
            if escaped is None:
                break
            body.append(re.escape(escaped))
        elif ch == "-":
            body.append("-")
        elif ch == "^" and not body and not negate:
            negate = True
        else:
            body.append(re.escape(ch))
    if not closed or not body:
        raise ValueError("unterminated character class")
    return "[" + ("^" if negate else "") + "".join(body) + "]"


def _compile_pattern(pattern: str) -> re.Pattern:
    """Compile a glob pattern (``*``, ``?``, ``[...]``, ``\\`` escapes)."""
    parts: list[str] = []
    chars = iter(pattern)
    try:
        for ch in chars:
            if ch == "\\":
                parts.append(re.escape(next(chars, "\\")))
            elif ch == "*":
                parts.append(".*")
            elif ch == "?":
                parts.append(".")
            elif ch == "[":
                parts.append(_char_class(chars))
            else:
                parts.append(re.escape(ch))
        return re.compile("".join(parts), re.DOTALL)
    except (ValueError, re.error) as exc:
        raise CommandError("ERR illegal wildcard") from exc


# ---- undo helpers ----


def _entity_to_cmd(key_raw: bytes, entity: Any) -> Optional[list[bytes]]:
    """A command line that recreates ``entity`` under ``key_raw``."""
    if isinstance(entity, (bytes, bytearray)):
        return [b"SET", key_raw, bytes(entity)]
    if isinstance(entity, (list, deque)):
        return [b"RPUSH", key_raw, *entity] if entity else None
    if isinstance(entity, dict):
        if not entity:
            return None
        line = [b"HMSET", key_raw]
        for field, value in entity.items():
            line += [_raw(field), value]
        return line
    if isinstance(entity, (set, frozenset)):
        return [b"SADD", key_raw, *(_raw(member) for member in entity)] if entity else None
    return None


def _ttl_cmd(db, key_raw: bytes) -> list[bytes]:
    deadline = db.get_expiration(_text(key_raw))
    if deadline is None:
        return [b"PERSIST", key_raw]
    return [b"PEXPIREAT", key_raw, str(_unix_millis(deadline)).encode("ascii")]


def _rollback_given_keys(db, keys_raw) -> list[list[bytes]]:
    lines: list[list[bytes]] = []
    for key_raw in keys_raw:
        entity = db.get_entity(_text(key_raw))
        lines.append([b"DEL", key_raw])
        if entity is None:
            continue
        restore = _entity_to_cmd(key_raw, entity)
        if restore is not None:
            lines.append(restore)
            lines.append(_ttl_cmd(db, key_raw))
    return lines


def _expire_cmd(key: str, deadline: float) -> list[bytes]:
    return [b"PEXPIREAT", _raw(key), str(_unix_millis(deadline)).encode("ascii")]


# ---- commands ----


def exec_del(db, args) -> Reply:
    """Remove keys; reply how many existed."""
    deleted = db.removes(*(_text(arg) for arg in args))
    if deleted > 0:
        db.add_aof([b"del", *args])
    return IntReply(deleted)


def undo_del(db, args) -> list[list[bytes]]:
    """Undo log for ``del``."""
    return _rollback_given_keys(db, args)


def exec_exists(db, args) -> Reply:
    """Count how many of the given keys exist."""
    return IntReply(sum(1 for arg in args if db.get_entity(_text(arg)) is not None))


def exec_flushdb(db, args) -> Reply:
    """Remove every key of the database."""
    db.flush()
    db.add_aof([b"flushdb", *args])
    return ok_reply()


def exec_type(db, args) -> Reply:
    """Report the type of the value stored at a key."""
    entity = db.get_entity(_text(args[0]))
    if entity is None:
        return StatusReply("none")
    if isinstance(entity, (bytes, bytearray)):
        return StatusReply("string")
    if isinstance(entity, (list, deque)):
        return StatusReply("list")
    if isinstance(entity, dict):
        return StatusReply("hash")
    if isinstance(entity, (set, frozenset)):
        return StatusReply("set")
    return ErrorReply("Err unknown")


def prepare_rename(args) -> tuple[list[str], list[str]]:
    """The destination is written and the source is read."""
    return [_text(args[1])], [_text(args[0])]


def _move_ttl(db, src: str, dest: str, deadline: Optional[float]) -> None:
    if deadline is not None:
        db.persist(src)
        db.persist(dest)
        db.expire(dest, deadline)


def exec_rename(db, args) -> Reply:
    """Rename a key, carrying its expiry along."""
    if len(args) != 2:
        raise CommandError("ERR wrong number of arguments for 'rename' command")
    src, dest = _text(args[0]), _text(args[1])
    entity = db.get_entity(src)
    if entity is None:
        raise CommandError("no such key")
    deadline = db.get_expiration(src)
    db.put_entity(dest, entity)
    db.remove(src)
    _move_ttl(db, src, dest, deadline)
    db.add_aof([b"rename", *args])
    return ok_reply()


def undo_rename(db, args) -> list[list[bytes]]:
    """Undo log for ``rename``/``renamenx``."""
    return _rollback_given_keys(db, [args[0], args[1]])


def exec_renamenx(db, args) -> Reply:
    """Rename a key only if the new name is free."""
    src, dest = _text(args[0]), _text(args[1])
    if db.get_entity(dest) is not None:
        return IntReply(0)
    entity = db.get_entity(src)
    if entity is None:
        raise CommandError("no such key")
    deadline = db.get_expiration(src)
    db.removes(src, dest)
    db.put_entity(dest, entity)
    _move_ttl(db, src, dest, deadline)
    db.add_aof([b"renamenx", *args])
    return IntReply(1)


def _set_expiry(db, key: str, deadline: float) -> Reply:
    if db.get_entity(key) is None:
        return IntReply(0)
    db.expire(key, deadline)
    db.add_aof(_expire_cmd(key, deadline))
    return IntReply(1)


def exec_expire(db, args) -> Reply:
    """Set a time to live in seconds."""
    ttl = _parse_int(args[1])
    return _set_expiry(db, _text(args[0]), time.time() + ttl)


def exec_expireat(db, args) -> Reply:
    """Set an expiry as a Unix timestamp in seconds."""
    stamp = _parse_int(args[1])
    return _set_expiry(db, _text(args[0]), float(stamp))


def exec_pexpire(db, args) -> Reply:
    """Set a time to live in milliseconds."""
    ttl = _parse_int(args[1])
    return _set_expiry(db, _text(args[0]), time.time() + ttl / 1000)


def exec_pexpireat(db, args) -> Reply:
    """Set an expiry as a Unix timestamp in milliseconds."""
    stamp = _parse_int(args[1])
    return _set_expiry(db, _text(args[0]), stamp / 1000)


def _deadline_of(db, key: str) -> Reply | float:
    if db.get_entity(key) is None:
        return IntReply(-2)
    deadline = db.get_expiration(key)
    if deadline is None:
        return IntReply(-1)
    return deadline


def exec_expiretime(db, args) -> Reply:
    """Return the Unix time in seconds at which a key expires."""
    deadline = _deadline_of(db, _text(args[0]))
    if isinstance(deadline, Reply):
        return deadline
    return IntReply(_unix_seconds(deadline))


def exec_pexpiretime(db, args) -> Reply:
    """Return the Unix time in milliseconds at which a key expires."""
    deadline = _deadline_of(db, _text(args[0]))
    if isinstance(deadline, Reply):
        return deadline
    return IntReply(_unix_millis(deadline))


def exec_ttl(db, args) -> Reply:
    """Return the remaining time to live in seconds."""
    deadline = _deadline_of(db, _text(args[0]))
    if isinstance(deadline, Reply):
        return deadline
    return IntReply(_round_half_away(deadline - time.time()))


def exec_pttl(db, args) -> Reply:
    """Return the remaining time to live in milliseconds."""
    deadline = _deadline_of(db, _text(args[0]))
    if isinstance(deadline, Reply):
        return deadline
    return IntReply(int((deadline - time.time()) * 1000))


def exec_persist(db, args) -> Reply:
    """Remove the expiry of a key."""
    key = _text(args[0])
    if db.get_entity(key) is None or db.get_expiration(key) is None:
        return IntReply(0)
    db.persist(key)
    db.add_aof([b"persist", *args])
    return IntReply(1)


def exec_keys(db, args) -> Reply:
    """Return every live key matching a glob pattern."""
    pattern = _compile_pattern(_text(args[0]))
    result = [
        _raw(key)
        for key, _value, _expiration in db.items()
        if pattern.fullmatch(key) and not db.is_expired(key)
    ]
    return MultiBulkReply(result)


def undo_expire(db, args) -> list[list[bytes]]:
    """Undo log for expiry commands: restore the current expiry."""
    return [_ttl_cmd(db, args[0])]


_WRITE_FAST = [REDIS_FLAG_WRITE, REDIS_FLAG_FAST]

register_command("Del", exec_del, write_all_keys, undo_del, -2, FLAG_WRITE).attach_extra(
    [REDIS_FLAG_WRITE], 1, -1, 1
)
register_command("Expire", exec_expire, write_first_key, undo_expire, 3, FLAG_WRITE).attach_extra(
    _WRITE_FAST, 1, 1, 1
)
register_command("ExpireAt", exec_expireat, write_first_key, undo_expire, 3, FLAG_WRITE).attach_extra(
    _WRITE_FAST, 1, 1, 1
)
register_command("ExpireTime", exec_expiretime, read_first_key, None, 2, FLAG_READ_ONLY).attach_extra(
    _WRITE_FAST, 1, 1, 1
)
register_command("PExpire", exec_pexpire, write_first_key, undo_expire, 3, FLAG_WRITE).attach_extra(
    _WRITE_FAST, 1, 1, 1
)
register_command("PExpireAt", exec_pexpireat, write_first_key, undo_expire, 3, FLAG_WRITE).attach_extra(
    _WRITE_FAST, 1, 1, 1
)
register_command("PExpireTime", exec_pexpiretime, read_first_key, None, 2, FLAG_READ_ONLY).attach_extra(
    _WRITE_FAST, 1, 1, 1
)
register_command("TTL", exec_ttl, read_first_key, None, 2, FLAG_READ_ONLY).attach_extra(
    [REDIS_FLAG_READONLY, REDIS_FLAG_RANDOM, REDIS_FLAG_FAST], 1, 1, 1
)
register_command("PTTL", exec_pttl, read_first_key, None, 2, FLAG_READ_ONLY).attach_extra(
    [REDIS_FLAG_READONLY, REDIS_FLAG_RANDOM, REDIS_FLAG_FAST], 1, 1, 1
)
register_command("Persist", exec_persist, write_first_key, undo_expire, 2, FLAG_WRITE).attach_extra(
    _WRITE_FAST, 1, 1, 1
)
register_command("Exists", exec_exists, read_all_keys, None, -2, FLAG_READ_ONLY).attach_extra(
    [REDIS_FLAG_READONLY, REDIS_FLAG_FAST], 1, 1, 1
)
register_command("Type", exec_type, read_first_key, None, 2, FLAG_READ_ONLY).attach_extra(
    [REDIS_FLAG_READONLY, REDIS_FLAG_FAST], 1, 1, 1
)
register_command("Rename", exec_rename, prepare_rename, undo_rename, 3, FLAG_READ_ONLY).attach_extra(
    [REDIS_FLAG_WRITE], 1, 1, 1
)
register_command("RenameNx", exec_renamenx, prepare_rename, undo_rename, 3, FLAG_READ_ONLY).attach_extra(
    _WRITE_FAST, 1, 1, 1
)
register_command("Keys", exec_keys, no_prepare, None, 2, FLAG_READ_ONLY).attach_extra(
    [REDIS_FLAG_READONLY, REDIS_FLAG_SORT_FOR_SCRIPT], 1, 1, 1
)