"""List commands: a key holding an ordered sequence of byte-string values."""

from __future__ import annotations

import re
from typing import Optional

from memdis.replies import (
    BulkReply,
    CommandError,
    EmptyMultiBulkReply,
    ErrorReply,
    IntReply,
    MultiBulkReply,
    NullBulkReply,
    Reply,
    ok_reply,
    syntax_error,
    wrong_type_error,
)
from memdis.router import (
    FLAG_READ_ONLY,
    FLAG_WRITE,
    REDIS_FLAG_DENY_OOM,
    REDIS_FLAG_FAST,
    REDIS_FLAG_READONLY,
    REDIS_FLAG_WRITE,
    read_first_key,
    register_command,
    write_first_key,
)

_INT_RE = re.compile(r"[+-]?[0-9]+\Z")
_INT64_MIN = -(1 << 63)
_INT64_MAX = (1 << 63) - 1

_NOT_INTEGER = "ERR value is not an integer or out of range"

CmdLines = list[list[bytes]]


def _text(raw: bytes) -> str:
    return raw.decode("utf-8", "surrogateescape")


def _parse_int(raw: bytes) -> int:
    """Parse a signed 64-bit decimal integer or raise the integer error."""
    text = _text(raw)
    if not _INT_RE.match(text):
        raise CommandError(_NOT_INTEGER)
    value = int(text)
    if value < _INT64_MIN or value > _INT64_MAX:
        raise CommandError(_NOT_INTEGER)
    return value


def _get_as_list(db, key: str) -> Optional[list]:
    entity = db.get_entity(key)
    if entity is None:
        return None
    if not isinstance(entity, list):
        raise CommandError(wrong_type_error())
    return entity


def _get_or_init_list(db, key: str) -> list:
    values = _get_as_list(db, key)
    if values is None:
        values = []
        db.put_entity(key, values)
    return values


def _peek_list(db, key: str) -> Optional[list]:
    """The list at ``key`` for undo logs, or ``None`` if absent, empty or not a list."""
    entity = db.get_entity(key)
    if not isinstance(entity, list) or not entity:
        return None
    return entity


def _normalize_index(index: int, size: int) -> Optional[int]:
    if index < -size or index >= size:
        return None
    return index + size if index < 0 else index


def _rollback_first_key(db, args) -> CmdLines:
    """Command lines restoring the whole value and expiry of the first key."""
    key_raw = args[0]
    key = _text(key_raw)
    entity = db.get_entity(key)
    lines: CmdLines = [[b"DEL", key_raw]]
    if not isinstance(entity, list) or not entity:
        return lines
    lines.append([b"RPUSH", key_raw, *entity])
    deadline = db.get_expiration(key)
    if deadline is None:
        lines.append([b"PERSIST", key_raw])
    else:
        millis = round(deadline * 1_000_000) // 1000
        lines.append([b"PEXPIREAT", key_raw, str(millis).encode("ascii")])
    return lines


def exec_lindex(db, args) -> Reply:
    """Return the element at an index; negative indexes count from the end."""
    index = _parse_int(args[1])
    values = _get_as_list(db, _text(args[0]))
    if values is None:
        return NullBulkReply()
    position = _normalize_index(index, len(values))
    if position is None:
        return NullBulkReply()
    return BulkReply(values[position])


def exec_llen(db, args) -> Reply:
    """Return the length of the list."""
    values = _get_as_list(db, _text(args[0]))
    return IntReply(0 if values is None else len(values))


def exec_lpop(db, args) -> Reply:
    """Remove and return the first element."""
    key = _text(args[0])
    values = _get_as_list(db, key)
    if values is None:
        return NullBulkReply()
    value = values.pop(0)
    if not values:
        db.remove(key)
    db.add_aof([b"lpop", *args])
    return BulkReply(value)


def undo_lpop(db, args) -> CmdLines:
    """Undo log for ``lpop``: push the current head back."""
    values = _peek_list(db, _text(args[0]))
    if values is None:
        return []
    return [[b"LPUSH", args[0], values[0]]]


def exec_lpush(db, args) -> Reply:
    """Insert elements at the head, one after another."""
    values = _get_or_init_list(db, _text(args[0]))
    for value in args[1:]:
        values.insert(0, value)
    db.add_aof([b"lpush", *args])
    return IntReply(len(values))


def undo_lpush(db, args) -> CmdLines:
    """Undo log for ``lpush``/``lpushx``: one ``LPOP`` per pushed element."""
    return [[b"LPOP", args[0]] for _ in args[1:]]


def exec_lpushx(db, args) -> Reply:
    """Insert elements at the head only if the list exists."""
    values = _get_as_list(db, _text(args[0]))
    if values is None:
        return IntReply(0)
    for value in args[1:]:
        values.insert(0, value)
    db.add_aof([b"lpushx", *args])
    return IntReply(len(values))


def exec_lrange(db, args) -> Reply:
    """Return the elements between two inclusive indexes."""
    start = _parse_int(args[1])
    stop = _parse_int(args[2])
    values = _get_as_list(db, _text(args[0]))
    if values is None:
        return EmptyMultiBulkReply()

    size = len(values)
    if start < -size:
        start = 0
    elif start < 0:
        start += size
    elif start >= size:
        return EmptyMultiBulkReply()

    if stop < -size:
        stop = 0
    elif stop < 0:
        stop = size + stop + 1
    elif stop < size:
        stop += 1
    else:
        stop = size
    stop = max(stop, start)
    return MultiBulkReply(values[start:stop])


def exec_lrem(db, args) -> Reply:
    """Remove elements equal to a value.

    A zero count removes all of them, a positive count removes that many from
    the head, a negative count that many from the tail.
    """
    key = _text(args[0])
    count = _parse_int(args[1])
    target = args[2]
    values = _get_as_list(db, key)
    if values is None:
        return IntReply(0)

    if count >= 0:
        limit = count if count > 0 else len(values)
        kept: list = []
        removed = 0
        for value in values:
            if removed < limit and value == target:
                removed += 1
            else:
                kept.append(value)
    else:
        limit = -count
        kept_reversed: list = []
        removed = 0
        for value in reversed(values):
            if removed < limit and value == target:
                removed += 1
            else:
                kept_reversed.append(value)
        kept = kept_reversed[::-1]
    values[:] = kept

    if not values:
        db.remove(key)
    if removed > 0:
        db.add_aof([b"lrem", *args])
    return IntReply(removed)


def exec_lset(db, args) -> Reply:
    """Replace the element at an index."""
    index = _parse_int(args[1])
    values = _get_as_list(db, _text(args[0]))
    if values is None:
        raise CommandError("ERR no such key")
    position = _normalize_index(index, len(values))
    if position is None:
        raise CommandError("ERR index out of range")
    values[position] = args[2]
    db.add_aof([b"lset", *args])
    return ok_reply()


def undo_lset(db, args) -> CmdLines:
    """Undo log for ``lset``: restore the element currently at the index."""
    try:
        index = _parse_int(args[1])
    except CommandError:
        return []
    entity = db.get_entity(_text(args[0]))
    if not isinstance(entity, list):
        return []
    position = _normalize_index(index, len(entity))
    if position is None:
        return []
    return [[b"LSET", args[0], args[1], entity[position]]]


def exec_rpop(db, args) -> Reply:
    """Remove and return the last element."""
    key = _text(args[0])
    values = _get_as_list(db, key)
    if values is None:
        return NullBulkReply()
    value = values.pop()
    if not values:
        db.remove(key)
    db.add_aof([b"rpop", *args])
    return BulkReply(value)


def undo_rpop(db, args) -> CmdLines:
    """Undo log for ``rpop``: push the current tail back."""
    values = _peek_list(db, _text(args[0]))
    if values is None:
        return []
    return [[b"RPUSH", args[0], values[-1]]]


def prepare_rpoplpush(args) -> tuple[list[str], list[str]]:
    """Both the source and the destination are written."""
    return [_text(args[0]), _text(args[1])], []


def exec_rpoplpush(db, args) -> Reply:
    """Move the last element of one list to the head of another."""
    source_key, dest_key = _text(args[0]), _text(args[1])
    source = _get_as_list(db, source_key)
    if source is None:
        return NullBulkReply()
    dest = _get_or_init_list(db, dest_key)
    value = source.pop()
    dest.insert(0, value)
    if not source:
        db.remove(source_key)
    db.add_aof([b"rpoplpush", *args])
    return BulkReply(value)


def undo_rpoplpush(db, args) -> CmdLines:
    """Undo log for ``rpoplpush``."""
    values = _peek_list(db, _text(args[0]))
    if values is None:
        return []
    return [[b"RPUSH", args[0], values[-1]], [b"LPOP", args[1]]]


def exec_rpush(db, args) -> Reply:
    """Append elements at the tail."""
    values = _get_or_init_list(db, _text(args[0]))
    values.extend(args[1:])
    db.add_aof([b"rpush", *args])
    return IntReply(len(values))


def undo_rpush(db, args) -> CmdLines:
    """Undo log for ``rpush``/``rpushx``: one ``RPOP`` per pushed element."""
    return [[b"RPOP", args[0]] for _ in args[1:]]


def exec_rpushx(db, args) -> Reply:
    """Append elements at the tail only if the list exists."""
    if len(args) < 2:
        raise CommandError("ERR wrong number of arguments for 'rpush' command")
    values = _get_as_list(db, _text(args[0]))
    if values is None:
        return IntReply(0)
    values.extend(args[1:])
    db.add_aof([b"rpushx", *args])
    return IntReply(len(values))


def exec_ltrim(db, args) -> Reply:
    """Keep only the elements between two inclusive indexes."""
    if len(args) != 3:
        raise CommandError(f"ERR wrong number of arguments (given {len(args)}, expected 3)")
    start = _parse_int(args[1])
    end = _parse_int(args[2])
    values = _get_as_list(db, _text(args[0]))
    if values is None:
        return ok_reply()

    length = len(values)
    if start < 0:
        start += length
    if end < 0:
        end += length
    left_count = max(start, 0)
    right_count = max(length - end - 1, 0)

    del values[:left_count]
    del values[max(len(values) - right_count, 0):]
    db.add_aof([b"ltrim", *args])
    return ok_reply()


def exec_linsert(db, args) -> Reply:
    """Insert a value before or after the first element equal to a pivot."""
    if len(args) != 4:
        raise CommandError("ERR wrong number of arguments for 'linsert' command")
    values = _get_as_list(db, _text(args[0]))
    if values is None:
        return IntReply(0)
    direction = _text(args[1]).lower()
    if direction not in ("before", "after"):
        return syntax_error()
    pivot = args[2]
    index = next((i for i, value in enumerate(values) if value == pivot), -1)
    if index == -1:
        return IntReply(-1)
    values.insert(index if direction == "before" else index + 1, args[3])
    db.add_aof([b"linsert", *args])
    return IntReply(len(values))


_WRITE_FAST = [REDIS_FLAG_WRITE, REDIS_FLAG_DENY_OOM, REDIS_FLAG_FAST]

register_command("LPush", exec_lpush, write_first_key, undo_lpush, -3, FLAG_WRITE).attach_extra(
    _WRITE_FAST, 1, 1, 1
)
register_command("LPushX", exec_lpushx, write_first_key, undo_lpush, -3, FLAG_WRITE).attach_extra(
    _WRITE_FAST, 1, 1, 1
)
register_command("RPush", exec_rpush, write_first_key, undo_rpush, -3, FLAG_WRITE).attach_extra(
    _WRITE_FAST, 1, 1, 1
)
register_command("RPushX", exec_rpushx, write_first_key, undo_rpush, -3, FLAG_WRITE).attach_extra(
    _WRITE_FAST, 1, 1, 1
)
register_command("LPop", exec_lpop, write_first_key, undo_lpop, 2, FLAG_WRITE).attach_extra(
    [REDIS_FLAG_WRITE, REDIS_FLAG_FAST], 1, 1, 1
)
register_command("RPop", exec_rpop, write_first_key, undo_rpop, 2, FLAG_WRITE).attach_extra(
    [REDIS_FLAG_WRITE, REDIS_FLAG_FAST], 1, 1, 1
)
register_command("RPopLPush", exec_rpoplpush, prepare_rpoplpush, undo_rpoplpush, 3, FLAG_WRITE).attach_extra(
    [REDIS_FLAG_WRITE, REDIS_FLAG_DENY_OOM], 1, 1, 1
)
register_command("LRem", exec_lrem, write_first_key, _rollback_first_key, 4, FLAG_WRITE).attach_extra(
    [REDIS_FLAG_WRITE], 1, 1, 1
)
register_command("LLen", exec_llen, read_first_key, None, 2, FLAG_READ_ONLY).attach_extra(
    [REDIS_FLAG_READONLY, REDIS_FLAG_FAST], 1, 1, 1
)
register_command("LIndex", exec_lindex, read_first_key, None, 3, FLAG_READ_ONLY).attach_extra(
    [REDIS_FLAG_READONLY], 1, 1, 1
)
register_command("LSet", exec_lset, write_first_key, undo_lset, 4, FLAG_WRITE).attach_extra(
    [REDIS_FLAG_WRITE, REDIS_FLAG_DENY_OOM], 1, 1, 1
)
register_command("LRange", exec_lrange, read_first_key, None, 4, FLAG_READ_ONLY).attach_extra(
    [REDIS_FLAG_READONLY], 1, 1, 1
)
register_command("LTrim", exec_ltrim, write_first_key, _rollback_first_key, 4, FLAG_WRITE).attach_extra(
    [REDIS_FLAG_WRITE], 1, 1, 1
)
register_command("LInsert", exec_linsert, write_first_key, _rollback_first_key, 5, FLAG_WRITE).attach_extra(
    [REDIS_FLAG_WRITE, REDIS_FLAG_DENY_OOM], 1, 1, 1
)

__all__ = [
    "exec_lindex",
    "exec_llen",
    "exec_lpop",
    "undo_lpop",
    "exec_lpush",
    "undo_lpush",
    "exec_lpushx",
    "exec_lrange",
    "exec_lrem",
    "exec_lset",
    "undo_lset",
    "exec_rpop",
    "undo_rpop",
    "prepare_rpoplpush",
    "exec_rpoplpush",
    "undo_rpoplpush",
    "exec_rpush",
    "undo_rpush",
    "exec_rpushx",
    "exec_ltrim",
    "exec_linsert",
    "ErrorReply",
]