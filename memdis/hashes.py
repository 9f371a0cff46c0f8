"""Hash commands: a key holding a mapping of fields to byte-string values."""

from __future__ import annotations

import random
import re
from decimal import Decimal
from typing import Optional, Sequence

from memdis.replies import (
    BulkReply,
    CommandError,
    EmptyMultiBulkReply,
    IntReply,
    MultiBulkReply,
    NullBulkReply,
    Reply,
    StatusReply,
    ok_reply,
    syntax_error,
    wrong_type_error,
)
from memdis.router import (
    FLAG_READ_ONLY,
    FLAG_WRITE,
    REDIS_FLAG_DENY_OOM,
    REDIS_FLAG_FAST,
    REDIS_FLAG_RANDOM,
    REDIS_FLAG_READONLY,
    REDIS_FLAG_SORT_FOR_SCRIPT,
    REDIS_FLAG_WRITE,
    read_first_key,
    register_command,
    write_first_key,
)

_INT_RE = re.compile(r"[+-]?[0-9]+\Z")
_INT64_MIN = -(1 << 63)
_INT64_MAX = (1 << 63) - 1

_NOT_INTEGER = "ERR value is not an integer or out of range"
_NOT_FLOAT = "ERR value is not a valid float"


def _text(raw: bytes) -> str:
    return raw.decode("utf-8", "surrogateescape")


def _raw(text: str) -> bytes:
    return text.encode("utf-8", "surrogateescape")


def _parse_int(raw: bytes) -> Optional[int]:
    """Parse a signed 64-bit decimal integer; return ``None`` if invalid."""
    text = _text(raw)
    if not _INT_RE.match(text):
        return None
    value = int(text)
    if value < _INT64_MIN or value > _INT64_MAX:
        return None
    return value


def _wrap_int64(value: int) -> int:
    return (value + (1 << 63)) % (1 << 64) - (1 << 63)


def _parse_float(raw: bytes) -> Optional[float]:
    """Parse a float literal; return ``None`` if invalid."""
    text = _text(raw)
    if not text or text != text.strip() or "_" in text:
        return None
    try:
        return float(text)
    except ValueError:
        return None


def _format_float(value: float) -> str:
    """Shortest decimal form without an exponent."""
    if value != value:
        return "NaN"
    if value in (float("inf"), float("-inf")):
        return "+Inf" if value > 0 else "-Inf"
    text = format(Decimal(repr(value)), "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text


def _get_as_dict(db, key: str) -> Optional[dict]:
    entity = db.get_entity(key)
    if entity is None:
        return None
    if not isinstance(entity, dict):
        raise CommandError(wrong_type_error())
    return entity


def _get_or_init_dict(db, key: str) -> dict:
    hash_map = _get_as_dict(db, key)
    if hash_map is None:
        hash_map = {}
        db.put_entity(key, hash_map)
    return hash_map


def _rollback_hash_fields(db, key_raw: bytes, fields: Sequence[bytes]) -> list[list[bytes]]:
    """Command lines restoring the given fields to their current values."""
    key = _text(key_raw)
    entity = db.get_entity(key)
    if entity is None:
        return [[b"DEL", key_raw]]
    if not isinstance(entity, dict):
        return []
    lines: list[list[bytes]] = []
    for field_raw in fields:
        value = entity.get(_text(field_raw))
        if value is None:
            lines.append([b"HDEL", key_raw, field_raw])
        else:
            lines.append([b"HSET", key_raw, field_raw, value])
    return lines


def exec_hset(db, args) -> Reply:
    """Set a field; reply 1 if the field is new, else 0."""
    key, field, value = _text(args[0]), _text(args[1]), args[2]
    hash_map = _get_or_init_dict(db, key)
    result = 0 if field in hash_map else 1
    hash_map[field] = value
    db.add_aof([b"hset", *args])
    return IntReply(result)


def undo_hset(db, args) -> list[list[bytes]]:
    """Undo log for ``hset``/``hsetnx``."""
    return _rollback_hash_fields(db, args[0], [args[1]])


def exec_hsetnx(db, args) -> Reply:
    """Set a field only if it does not exist."""
    key, field, value = _text(args[0]), _text(args[1]), args[2]
    hash_map = _get_or_init_dict(db, key)
    if field in hash_map:
        return IntReply(0)
    hash_map[field] = value
    db.add_aof([b"hsetnx", *args])
    return IntReply(1)


def exec_hget(db, args) -> Reply:
    """Return the value of a field."""
    hash_map = _get_as_dict(db, _text(args[0]))
    if hash_map is None:
        return NullBulkReply()
    value = hash_map.get(_text(args[1]))
    if value is None:
        return NullBulkReply()
    return BulkReply(value)


def exec_hexists(db, args) -> Reply:
    """Reply 1 if the field exists, else 0."""
    hash_map = _get_as_dict(db, _text(args[0]))
    if hash_map is None:
        return IntReply(0)
    return IntReply(1 if _text(args[1]) in hash_map else 0)


def exec_hdel(db, args) -> Reply:
    """Delete fields; reply how many existed."""
    key = _text(args[0])
    hash_map = _get_as_dict(db, key)
    if hash_map is None:
        return IntReply(0)
    deleted = 0
    for field_raw in args[1:]:
        if hash_map.pop(_text(field_raw), None) is not None:
            deleted += 1
    if not hash_map:
        db.remove(key)
    if deleted > 0:
        db.add_aof([b"hdel", *args])
    return IntReply(deleted)


def undo_hdel(db, args) -> list[list[bytes]]:
    """Undo log for ``hdel``."""
    return _rollback_hash_fields(db, args[0], list(args[1:]))


def exec_hlen(db, args) -> Reply:
    """Return the number of fields."""
    hash_map = _get_as_dict(db, _text(args[0]))
    return IntReply(0 if hash_map is None else len(hash_map))


def exec_hstrlen(db, args) -> Reply:
    """Return the length of a field's value, or 0."""
    hash_map = _get_as_dict(db, _text(args[0]))
    if hash_map is None:
        return IntReply(0)
    value = hash_map.get(_text(args[1]))
    return IntReply(0 if value is None else len(value))


def exec_hmset(db, args) -> Reply:
    """Set several fields at once."""
    if len(args) % 2 != 1:
        return syntax_error()
    hash_map = _get_or_init_dict(db, _text(args[0]))
    pairs = args[1:]
    for field_raw, value in zip(pairs[0::2], pairs[1::2]):
        hash_map[_text(field_raw)] = value
    db.add_aof([b"hmset", *args])
    return ok_reply()


def undo_hmset(db, args) -> list[list[bytes]]:
    """Undo log for ``hmset``."""
    return _rollback_hash_fields(db, args[0], list(args[1::2]))


def exec_hmget(db, args) -> Reply:
    """Return the values of several fields, nil for missing ones."""
    fields = [_text(raw) for raw in args[1:]]
    hash_map = _get_as_dict(db, _text(args[0]))
    if hash_map is None:
        return MultiBulkReply([None] * len(fields))
    return MultiBulkReply([hash_map.get(field) for field in fields])


def exec_hkeys(db, args) -> Reply:
    """Return every field name."""
    hash_map = _get_as_dict(db, _text(args[0]))
    if hash_map is None:
        return EmptyMultiBulkReply()
    return MultiBulkReply([_raw(field) for field in hash_map])


def exec_hvals(db, args) -> Reply:
    """Return every value."""
    hash_map = _get_as_dict(db, _text(args[0]))
    if hash_map is None:
        return EmptyMultiBulkReply()
    return MultiBulkReply(list(hash_map.values()))


def exec_hgetall(db, args) -> Reply:
    """Return fields and values interleaved."""
    hash_map = _get_as_dict(db, _text(args[0]))
    if hash_map is None:
        return EmptyMultiBulkReply()
    result: list[Optional[bytes]] = []
    for field, value in hash_map.items():
        result += [_raw(field), value]
    return MultiBulkReply(result)


def exec_hincrby(db, args) -> Reply:
    """Increment the integer value of a field."""
    field = _text(args[1])
    delta = _parse_int(args[2])
    if delta is None:
        raise CommandError(_NOT_INTEGER)
    hash_map = _get_or_init_dict(db, _text(args[0]))
    current = hash_map.get(field)
    if current is None:
        hash_map[field] = args[2]
        db.add_aof([b"hincrby", *args])
        return BulkReply(args[2])
    value = _parse_int(current)
    if value is None:
        raise CommandError("ERR hash value is not an integer")
    result = str(_wrap_int64(value + delta)).encode("ascii")
    hash_map[field] = result
    db.add_aof([b"hincrby", *args])
    return BulkReply(result)


def undo_hincr(db, args) -> list[list[bytes]]:
    """Undo log for ``hincrby``/``hincrbyfloat``."""
    return _rollback_hash_fields(db, args[0], [args[1]])


def exec_hincrbyfloat(db, args) -> Reply:
    """Increment the float value of a field."""
    field = _text(args[1])
    delta = _parse_float(args[2])
    if delta is None:
        raise CommandError(_NOT_FLOAT)
    hash_map = _get_or_init_dict(db, _text(args[0]))
    current = hash_map.get(field)
    if current is None:
        hash_map[field] = args[2]
        return BulkReply(args[2])
    value = _parse_float(current)
    if value is None:
        raise CommandError("ERR hash value is not a float")
    result = _format_float(value + delta).encode("ascii")
    hash_map[field] = result
    db.add_aof([b"hincrbyfloat", *args])
    return BulkReply(result)


def exec_hrandfield(db, args) -> Reply:
    """Return random fields, optionally with their values.

    A positive count yields distinct fields; a negative count yields that many
    fields with possible repetition.
    """
    if len(args) > 3:
        raise CommandError("ERR wrong number of arguments for 'hrandfield' command")
    with_values = False
    if len(args) == 3:
        if _text(args[2]).lower() != "withvalues":
            return syntax_error()
        with_values = True
    count = 1
    if len(args) >= 2:
        parsed = _parse_int(args[1])
        if parsed is None:
            raise CommandError(_NOT_INTEGER)
        count = parsed

    hash_map = _get_as_dict(db, _text(args[0]))
    if hash_map is None or count == 0:
        return EmptyMultiBulkReply()

    fields = list(hash_map)
    if count > 0:
        chosen = random.sample(fields, min(count, len(fields)))
    else:
        chosen = random.choices(fields, k=-count)
    result: list[Optional[bytes]] = []
    for field in chosen:
        result.append(_raw(field))
        if with_values:
            result.append(hash_map[field])
    return MultiBulkReply(result)


_WRITE_FAST = [REDIS_FLAG_WRITE, REDIS_FLAG_DENY_OOM, REDIS_FLAG_FAST]
_READ_FAST = [REDIS_FLAG_READONLY, REDIS_FLAG_FAST]

register_command("HSet", exec_hset, write_first_key, undo_hset, 4, FLAG_WRITE).attach_extra(_WRITE_FAST, 1, 1, 1)
register_command("HSetNX", exec_hsetnx, write_first_key, undo_hset, 4, FLAG_WRITE).attach_extra(_WRITE_FAST, 1, 1, 1)
register_command("HGet", exec_hget, read_first_key, None, 3, FLAG_READ_ONLY).attach_extra(_READ_FAST, 1, 1, 1)
register_command("HExists", exec_hexists, read_first_key, None, 3, FLAG_READ_ONLY).attach_extra(_READ_FAST, 1, 1, 1)
register_command("HDel", exec_hdel, write_first_key, undo_hdel, -3, FLAG_WRITE).attach_extra(
    [REDIS_FLAG_WRITE, REDIS_FLAG_FAST], 1, 1, 1
)
register_command("HLen", exec_hlen, read_first_key, None, 2, FLAG_READ_ONLY).attach_extra(_READ_FAST, 1, 1, 1)
register_command("HStrlen", exec_hstrlen, read_first_key, None, 3, FLAG_READ_ONLY).attach_extra(_READ_FAST, 1, 1, 1)
register_command("HMSet", exec_hmset, write_first_key, undo_hmset, -4, FLAG_WRITE).attach_extra(_WRITE_FAST, 1, 1, 1)
register_command("HMGet", exec_hmget, read_first_key, None, -3, FLAG_READ_ONLY).attach_extra(_READ_FAST, 1, 1, 1)
register_command("HGet", exec_hget, read_first_key, None, -3, FLAG_READ_ONLY).attach_extra(_READ_FAST, 1, 1, 1)
register_command("HKeys", exec_hkeys, read_first_key, None, 2, FLAG_READ_ONLY).attach_extra(
    [REDIS_FLAG_READONLY, REDIS_FLAG_SORT_FOR_SCRIPT], 1, 1, 1
)
register_command("HVals", exec_hvals, read_first_key, None, 2, FLAG_READ_ONLY).attach_extra(
    [REDIS_FLAG_READONLY, REDIS_FLAG_SORT_FOR_SCRIPT], 1, 1, 1
)
register_command("HGetAll", exec_hgetall, read_first_key, None, 2, FLAG_READ_ONLY).attach_extra(
    [REDIS_FLAG_READONLY, REDIS_FLAG_RANDOM], 1, 1, 1
)
register_command("HIncrBy", exec_hincrby, write_first_key, undo_hincr, 4, FLAG_WRITE).attach_extra(
    _WRITE_FAST, 1, 1, 1
)
register_command("HIncrByFloat", exec_hincrbyfloat, write_first_key, undo_hincr, 4, FLAG_WRITE).attach_extra(
    _WRITE_FAST, 1, 1, 1
)
register_command("HRandField", exec_hrandfield, read_first_key, None, -2, FLAG_READ_ONLY).attach_extra(
    [REDIS_FLAG_RANDOM, REDIS_FLAG_READONLY], 1, 1, 1
)

__all__ = [
    "exec_hset",
    "undo_hset",
    "exec_hsetnx",
    "exec_hget",
    "exec_hexists",
    "exec_hdel",
    "undo_hdel",
    "exec_hlen",
    "exec_hstrlen",
    "exec_hmset",
    "undo_hmset",
    "exec_hmget",
    "exec_hkeys",
    "exec_hvals",
    "exec_hgetall",
    "exec_hincrby",
    "undo_hincr",
    "exec_hincrbyfloat",
    "exec_hrandfield",
    "StatusReply",
]