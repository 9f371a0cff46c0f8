import random
import string

import pytest

import memdis.keys  # noqa: F401  registers DEL and PERSIST used by undo logs
from memdis.database import DB
from memdis.lists import (
    exec_lpush,
    exec_rpush,
    prepare_rpoplpush,
    undo_lpop,
    undo_lpush,
    undo_lset,
    undo_rpop,
    undo_rpoplpush,
    undo_rpush,
)
from memdis.replies import (
    BulkReply,
    ErrorReply,
    IntReply,
    MultiBulkReply,
    NullBulkReply,
    StatusReply,
)
from memdis.router import lookup


def _rand(n=10) -> bytes:
    return "".join(random.choices(string.ascii_letters + string.digits, k=n)).encode()


@pytest.fixture
def db():
    return DB()


def _cmd(*words):
    return [w if isinstance(w, bytes) else w.encode() for w in words]


def _run(db, *words):
    return db.exec(_cmd(*words))


def test_push(db):
    size = 100
    key = _rand()
    values = []
    for i in range(size):
        value = _rand()
        values.append(value)
        assert _run(db, "rpush", key, value) == IntReply(i + 1)
    assert _run(db, "lrange", key, "0", "-1").to_bytes() == MultiBulkReply(values).to_bytes()
    db.remove(key.decode())

    key = _rand()
    values = [_rand() for _ in range(size)]
    assert _run(db, "rpush", key, *values) == IntReply(size)
    assert _run(db, "lrange", key, "0", "-1").to_bytes() == MultiBulkReply(values).to_bytes()
    db.remove(key.decode())

    key = _rand()
    values = [b""] * size
    for i in range(size):
        value = _rand()
        values[size - i - 1] = value
        assert _run(db, "lpush", key, value) == IntReply(i + 1)
    assert _run(db, "lrange", key, "0", "-1").to_bytes() == MultiBulkReply(values).to_bytes()
    db.remove(key.decode())

    key = _rand()
    args = [_rand() for _ in range(size)]
    expected = list(reversed(args))
    assert _run(db, "lpush", key, *args) == IntReply(size)
    assert _run(db, "lrange", key, "0", "-1").to_bytes() == MultiBulkReply(expected).to_bytes()


@pytest.fixture
def hundred(db):
    key = _rand()
    values = [_rand() for _ in range(100)]
    for value in values:
        _run(db, "rpush", key, value)
    return key, values


@pytest.mark.parametrize(
    "start,end,sl",
    [
        ("0", "9", slice(0, 10)),
        ("0", "200", slice(None)),
        ("0", "-10", slice(0, 91)),
        ("0", "-200", slice(0, 0)),
        ("-10", "-1", slice(90, None)),
    ],
)
def test_lrange(db, hundred, start, end, sl):
    key, values = hundred
    actual = _run(db, "lrange", key, start, end)
    assert actual.to_bytes() == MultiBulkReply(values[sl]).to_bytes()


def test_lrange_missing_key(db):
    assert _run(db, "lrange", "nothing", "0", "-1").to_bytes() == b"*0\r\n"


def test_lindex(db, hundred):
    key, values = hundred
    assert _run(db, "llen", key) == IntReply(100)
    for i in range(100):
        assert _run(db, "lindex", key, str(i)) == BulkReply(values[i])
    for i in range(1, 101):
        assert _run(db, "lindex", key, str(-i)) == BulkReply(values[100 - i])
    assert _run(db, "lindex", key, "100") == NullBulkReply()
    assert _run(db, "lindex", key, "-101") == NullBulkReply()


def test_lrem(db):
    key = _rand()
    _run(db, "rpush", key, "a", "b", "a", "a", "c", "a", "a")
    assert _run(db, "lrem", key, "1", "a") == IntReply(1)
    assert _run(db, "llen", key) == IntReply(6)
    assert _run(db, "lrem", key, "-2", "a") == IntReply(2)
    assert _run(db, "llen", key) == IntReply(4)
    assert _run(db, "lrem", key, "0", "a") == IntReply(2)
    assert _run(db, "llen", key) == IntReply(2)
    assert _run(db, "lrange", key, "0", "-1") == MultiBulkReply([b"b", b"c"])


def test_lrem_order_from_tail(db):
    _run(db, "rpush", "k", "a", "x", "a", "y", "a")
    assert _run(db, "lrem", "k", "-2", "a") == IntReply(2)
    assert _run(db, "lrange", "k", "0", "-1") == MultiBulkReply([b"a", b"x", b"y"])


def test_lset(db):
    key = _rand()
    items = ["a", "b", "c", "d", "e", "f"]
    _run(db, "rpush", key, *items)
    size = len(items)
    for i in range(size):
        value = _rand()
        assert _run(db, "lset", key, str(i), value) == StatusReply("OK")
        assert _run(db, "lindex", key, str(i)) == BulkReply(value)
    for i in range(1, size + 1):
        value = _rand()
        assert _run(db, "lset", key, str(-i), value) == StatusReply("OK")
        assert _run(db, "lindex", key, str(size - i)) == BulkReply(value)

    value = _rand()
    expected = ErrorReply("ERR index out of range").to_bytes()
    assert _run(db, "lset", key, str(-size - 2), value).to_bytes() == expected
    assert _run(db, "lset", key, str(size + 1), value).to_bytes() == expected
    assert _run(db, "lset", key, "a", value).to_bytes() == (
        ErrorReply("ERR value is not an integer or out of range").to_bytes()
    )


def test_lset_missing_key(db):
    assert _run(db, "lset", "nothing", "0", "v") == ErrorReply("ERR no such key")


def test_lpop(db):
    key = _rand()
    items = [b"a", b"b", b"c", b"d", b"e", b"f"]
    _run(db, "rpush", key, *items)
    for item in items:
        assert _run(db, "lpop", key) == BulkReply(item)
    assert _run(db, "rpop", key).to_bytes() == NullBulkReply().to_bytes()
    assert db.get_entity(key.decode()) is None


def test_rpop(db):
    key = _rand()
    items = [b"a", b"b", b"c", b"d", b"e", b"f"]
    _run(db, "rpush", key, *items)
    for item in reversed(items):
        assert _run(db, "rpop", key) == BulkReply(item)
    assert _run(db, "rpop", key).to_bytes() == b"$-1\r\n"


def test_rpoplpush(db):
    key1, key2 = _rand(), _rand()
    items = [b"a", b"b", b"c", b"d", b"e", b"f"]
    _run(db, "rpush", key1, *items)
    for item in reversed(items):
        assert _run(db, "rpoplpush", key1, key2) == BulkReply(item)
        assert _run(db, "lindex", key2, "0") == BulkReply(item)
    assert _run(db, "rpop", key1) == NullBulkReply()
    assert _run(db, "lrange", key2, "0", "-1") == MultiBulkReply(items)


def test_prepare_rpoplpush():
    assert prepare_rpoplpush([b"src", b"dst"]) == (["src", "dst"], [])


def test_rpushx(db):
    key = _rand()
    assert _run(db, "rpushx", key, "1") == IntReply(0)
    _run(db, "rpush", key, "1")
    for i in range(10):
        value = _rand()
        assert _run(db, "rpushx", key, value) == IntReply(i + 2)
        assert _run(db, "lindex", key, "-1") == BulkReply(value)


def test_lpushx(db):
    key = _rand()
    assert _run(db, "lpushx", key, "1") == IntReply(0)
    _run(db, "lpush", key, "1")
    for i in range(10):
        value = _rand()
        assert _run(db, "lpushx", key, value) == IntReply(i + 2)
        assert _run(db, "lindex", key, "0") == BulkReply(value)


def test_ltrim(db):
    key = _rand()
    values = [b"a", b"b", b"c", b"d", b"e", b"f"]
    assert _run(db, "rpush", key, *values) == IntReply(6)

    assert _run(db, "ltrim", key, "1", "-2") == StatusReply("OK")
    assert _run(db, "lrange", key, "0", "-1") == MultiBulkReply(values[1:5])

    assert _run(db, "ltrim", key, "-3", "-2") == StatusReply("OK")
    assert _run(db, "lrange", key, "0", "-1") == MultiBulkReply(values[2:4])

    assert _run(db, "ltrim", key, "1", "0") == StatusReply("OK")
    assert _run(db, "lrange", key, "0", "-1").to_bytes() == b"*0\r\n"


def test_linsert(db):
    key = _rand()
    assert _run(db, "rpush", key, "a", "b", "c", "d", "e", "f") == IntReply(6)

    assert _run(db, "linsert", key, "before", "d", "0") == IntReply(7)
    assert _run(db, "lrange", key, "0", "-1") == MultiBulkReply(
        [b"a", b"b", b"c", b"0", b"d", b"e", b"f"]
    )

    assert _run(db, "linsert", key, "after", "d", "1") == IntReply(8)
    assert _run(db, "lrange", key, "0", "-1") == MultiBulkReply(
        [b"a", b"b", b"c", b"0", b"d", b"1", b"e", b"f"]
    )

    assert _run(db, "linsert", key, "test", "d", "1") == ErrorReply("ERR syntax error")
    assert _run(db, "linsert", key, "test", "d") == ErrorReply(
        "ERR wrong number of arguments for 'linsert' command"
    )
    assert _run(db, "linsert", key, "before", "z", "2") == IntReply(-1)


def test_wrong_type(db):
    db.put_entity("h", {"f": b"v"})
    assert _run(db, "lpush", "h", "x").message.startswith("WRONGTYPE")
    assert _run(db, "llen", "h").message.startswith("WRONGTYPE")


def test_direct_executors(db):
    assert exec_rpush(db, [b"k", b"a", b"b"]) == IntReply(2)
    assert exec_lpush(db, [b"k", b"z"]) == IntReply(3)
    assert db.get_entity("k") == [b"z", b"a", b"b"]


def test_undo_lpush(db):
    key, value = _rand(), _rand()
    cmd = _cmd("lpush", key, value)
    db.exec(cmd)
    undo = undo_lpush(db, cmd[1:])
    assert undo == [[b"LPOP", key]]
    db.exec(cmd)
    for line in undo:
        db.exec(line)
    assert _run(db, "llen", key) == IntReply(1)


def test_undo_rpush_lines():
    assert undo_rpush(None, [b"k", b"a", b"b"]) == [[b"RPOP", b"k"], [b"RPOP", b"k"]]


def test_undo_lpop(db):
    key, value = _rand(), _rand()
    _run(db, "lpush", key, value, value)
    cmd = _cmd("lpop", key)
    undo = undo_lpop(db, cmd[1:])
    db.exec(cmd)
    for line in undo:
        db.exec(line)
    assert _run(db, "llen", key) == IntReply(2)


def test_undo_lset(db):
    key, value, value2 = _rand(), _rand(), _rand()
    _run(db, "lpush", key, value, value)
    cmd = _cmd("lset", key, "1", value2)
    undo = undo_lset(db, cmd[1:])
    db.exec(cmd)
    for line in undo:
        db.exec(line)
    assert _run(db, "lindex", key, "1") == BulkReply(value)


def test_undo_rpop(db):
    key, value = _rand(), _rand()
    _run(db, "rpush", key, value, value)
    cmd = _cmd("rpop", key)
    undo = undo_rpop(db, cmd[1:])
    db.exec(cmd)
    for line in undo:
        db.exec(line)
    assert _run(db, "llen", key) == IntReply(2)


def test_undo_rpoplpush(db):
    key1, key2, value = _rand(), _rand(), _rand()
    _run(db, "lpush", key1, value)
    cmd = _cmd("rpoplpush", key1, key2)
    undo = undo_rpoplpush(db, cmd[1:])
    db.exec(cmd)
    for line in undo:
        db.exec(line)
    assert _run(db, "llen", key1) == IntReply(1)
    assert _run(db, "llen", key2) == IntReply(0)


def test_undo_ltrim_restores_list(db):
    _run(db, "rpush", "k", "a", "b", "c")
    cmd = _cmd("ltrim", "k", "1", "1")
    undo = lookup("ltrim").undo(db, cmd[1:])
    db.exec(cmd)
    assert _run(db, "lrange", "k", "0", "-1") == MultiBulkReply([b"b"])
    for line in undo:
        db.exec(line)
    assert _run(db, "lrange", "k", "0", "-1") == MultiBulkReply([b"a", b"b", b"c"])