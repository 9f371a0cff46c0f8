import pytest

from memdis import hashes
from memdis.database import DB
from memdis.replies import (
    BulkReply,
    EmptyMultiBulkReply,
    ErrorReply,
    IntReply,
    MultiBulkReply,
    NullBulkReply,
    StatusReply,
)


def cmd(*words):
    return [w.encode() if isinstance(w, str) else w for w in words]


@pytest.fixture
def db():
    return DB()


def test_hset_hget_hexists_hstrlen_hlen(db):
    values = {str(i): f"value{i:05d}" for i in range(100)}
    for field, value in values.items():
        assert db.exec(cmd("hset", "h", field, value)) == IntReply(1)
    for field, value in values.items():
        assert db.exec(cmd("hget", "h", field)).to_bytes() == BulkReply(value.encode()).to_bytes()
        assert db.exec(cmd("hexists", "h", field)) == IntReply(1)
        assert db.exec(cmd("hstrlen", "h", field)) == IntReply(len(value))
    assert db.exec(cmd("hlen", "h")) == IntReply(len(values))


def test_hset_existing_field_returns_zero(db):
    db.exec(cmd("hset", "h", "f", "a"))
    assert db.exec(cmd("hset", "h", "f", "b")) == IntReply(0)
    assert db.exec(cmd("hget", "h", "f")) == BulkReply(b"b")


def test_missing_key_and_field(db):
    assert db.exec(cmd("hget", "nokey", "f")) == NullBulkReply()
    assert db.exec(cmd("hexists", "nokey", "f")) == IntReply(0)
    assert db.exec(cmd("hlen", "nokey")) == IntReply(0)
    assert db.exec(cmd("hstrlen", "nokey", "f")) == IntReply(0)
    assert db.exec(cmd("hkeys", "nokey")) == EmptyMultiBulkReply()
    db.exec(cmd("hset", "h", "f", "v"))
    assert db.exec(cmd("hget", "h", "other")) == NullBulkReply()
    assert db.exec(cmd("hexists", "h", "other")) == IntReply(0)


def test_hdel(db):
    fields = [str(i) for i in range(100)]
    for field in fields:
        db.exec(cmd("hset", "h", field, "x" + field))
    assert db.exec(cmd("hdel", "h", *fields)) == IntReply(len(fields))
    assert db.exec(cmd("hlen", "h")) == IntReply(0)
    assert db.get_entity("h") is None


def test_hmset_hmget(db):
    fields = [f"field{i}" for i in range(100)]
    values = [f"value{i}" for i in range(100)]
    set_args = ["h"]
    for f, v in zip(fields, values):
        set_args += [f, v]
    assert db.exec(cmd("hmset", *set_args)) == StatusReply("OK")
    actual = db.exec(cmd("hmget", "h", *fields))
    assert actual.to_bytes() == MultiBulkReply([v.encode() for v in values]).to_bytes()


def test_hmget_missing(db):
    assert db.exec(cmd("hmget", "nokey", "a", "b")).to_bytes() == b"*2\r\n$-1\r\n$-1\r\n"
    db.exec(cmd("hset", "h", "a", "1"))
    assert db.exec(cmd("hmget", "h", "a", "b")).to_bytes() == b"*2\r\n$1\r\n1\r\n$-1\r\n"


def test_hmset_odd_pairs_is_syntax_error(db):
    assert db.exec(cmd("hmset", "h", "a", "1", "b")) == ErrorReply("ERR syntax error")


@pytest.fixture
def filled(db):
    value_map = {f"field{i:03d}": f"value{i:03d}" for i in range(100)}
    for field, value in value_map.items():
        hashes.exec_hset(db, cmd("h", field, value))
    return db, value_map


def test_hgetall_hkeys_hvals(filled):
    db, value_map = filled
    result = db.exec(cmd("hgetall", "h"))
    assert len(result.args) == 2 * len(value_map)
    pairs = dict(zip((a.decode() for a in result.args[0::2]), (a.decode() for a in result.args[1::2])))
    assert pairs == value_map

    keys = db.exec(cmd("hkeys", "h"))
    assert sorted(a.decode() for a in keys.args) == sorted(value_map)

    vals = db.exec(cmd("hvals", "h"))
    assert sorted(a.decode() for a in vals.args) == sorted(value_map.values())


def test_hrandfield(filled):
    db, value_map = filled
    size = len(value_map)
    assert db.exec(cmd("hrandfield", "h", "0")).to_bytes() == b"*0\r\n"

    result = db.exec(cmd("hrandfield", "h", str(size + 100)))
    assert len(result.args) == size
    assert sorted(a.decode() for a in result.args) == sorted(value_map)

    result = db.exec(cmd("hrandfield", "h", str(size + 100), "withvalues"))
    assert len(result.args) == 2 * size

    result = db.exec(cmd("hrandfield", "h", str(-size - 10)))
    assert len(result.args) == size + 10
    assert all(a.decode() in value_map for a in result.args)

    result = db.exec(cmd("hrandfield", "h", str(-size - 10), "withvalues"))
    assert len(result.args) == 2 * (size + 10)
    for field, value in zip(result.args[0::2], result.args[1::2]):
        assert value_map[field.decode()] == value.decode()


def test_hrandfield_default_and_errors(filled):
    db, value_map = filled
    result = db.exec(cmd("hrandfield", "h"))
    assert len(result.args) == 1 and result.args[0].decode() in value_map
    assert db.exec(cmd("hrandfield", "h", "2", "nope")) == ErrorReply("ERR syntax error")
    assert db.exec(cmd("hrandfield", "h", "x")) == ErrorReply("ERR value is not an integer or out of range")
    assert db.exec(cmd("hrandfield", "h", "1", "withvalues", "x")) == ErrorReply(
        "ERR wrong number of arguments for 'hrandfield' command"
    )


def test_hincrby(db):
    assert db.exec(cmd("hincrby", "h", "a", "1")) == BulkReply(b"1")
    assert db.exec(cmd("hincrby", "h", "a", "1")) == BulkReply(b"2")
    assert db.exec(cmd("hincrby", "h", "a", "-5")) == BulkReply(b"-3")


def test_hincrby_errors(db):
    assert db.exec(cmd("hincrby", "h", "a", "1.5")) == ErrorReply("ERR value is not an integer or out of range")
    db.exec(cmd("hset", "h", "s", "abc"))
    assert db.exec(cmd("hincrby", "h", "s", "1")) == ErrorReply("ERR hash value is not an integer")


def test_hincrby_wraps_at_64_bits(db):
    db.exec(cmd("hset", "h", "n", "9223372036854775807"))
    assert db.exec(cmd("hincrby", "h", "n", "1")) == BulkReply(b"-9223372036854775808")


def test_hincrbyfloat(db):
    result = db.exec(cmd("hincrbyfloat", "h", "b", "1.2"))
    assert abs(float(result.arg) - 1.2) < 1e-4
    result = db.exec(cmd("hincrbyfloat", "h", "b", "1.2"))
    assert abs(float(result.arg) - 2.4) < 1e-4
    assert result.arg == b"2.4"


def test_hincrbyfloat_formatting_and_errors(db):
    db.exec(cmd("hset", "h", "x", "1.5"))
    assert db.exec(cmd("hincrbyfloat", "h", "x", "1.5")) == BulkReply(b"3")
    assert db.exec(cmd("hincrbyfloat", "h", "x", "bad")) == ErrorReply("ERR value is not a valid float")
    db.exec(cmd("hset", "h", "s", "abc"))
    assert db.exec(cmd("hincrbyfloat", "h", "s", "1")) == ErrorReply("ERR hash value is not a float")


def test_hsetnx(db):
    assert db.exec(cmd("hsetnx", "h", "f", "v1")) == IntReply(1)
    assert db.exec(cmd("hsetnx", "h", "f", "v2")) == IntReply(0)
    assert db.exec(cmd("hget", "h", "f")) == BulkReply(b"v1")


def test_wrong_type(db):
    db.put_entity("s", b"string")
    reply = db.exec(cmd("hget", "s", "f"))
    assert isinstance(reply, ErrorReply) and reply.message.startswith("WRONGTYPE")
    reply = db.exec(cmd("hset", "s", "f", "v"))
    assert reply.message.startswith("WRONGTYPE")


def test_wrong_arity(db):
    assert db.exec(cmd("hset", "h", "f")) == ErrorReply("ERR wrong number of arguments for 'hset' command")
    assert db.exec(cmd("hdel", "h")) == ErrorReply("ERR wrong number of arguments for 'hdel' command")


def test_aof_records_writes(db):
    logged = []
    db.add_aof = logged.append
    db.exec(cmd("hset", "h", "f", "v"))
    db.exec(cmd("hdel", "h", "missing"))
    db.exec(cmd("hget", "h", "f"))
    assert logged == [[b"hset", b"h", b"f", b"v"]]


def test_undo_hdel(db):
    db.exec(cmd("hset", "h", "f", "v"))
    cmd_line = cmd("hdel", "h", "f")
    undo = hashes.undo_hdel(db, cmd_line[1:])
    db.exec(cmd_line)
    for line in undo:
        db.exec(line)
    assert db.exec(cmd("hget", "h", "f")) == BulkReply(b"v")


def test_undo_hset(db):
    db.exec(cmd("hset", "h", "f", "v1"))
    cmd_line = cmd("hset", "h", "f", "v2")
    undo = hashes.undo_hset(db, cmd_line[1:])
    db.exec(cmd_line)
    for line in undo:
        db.exec(line)
    assert db.exec(cmd("hget", "h", "f")) == BulkReply(b"v1")


def test_undo_hmset(db):
    db.exec(cmd("hmset", "h", "f1", "v", "f2", "v"))
    cmd_line = cmd("hmset", "h", "f1", "w", "f2", "w")
    undo = hashes.undo_hmset(db, cmd_line[1:])
    db.exec(cmd_line)
    for line in undo:
        db.exec(line)
    assert db.exec(cmd("hget", "h", "f1")) == BulkReply(b"v")
    assert db.exec(cmd("hget", "h", "f2")) == BulkReply(b"v")


def test_undo_hincr(db):
    db.exec(cmd("hset", "h", "f", "1"))
    cmd_line = cmd("hinctby", "h", "f", "2")
    undo = hashes.undo_hincr(db, cmd_line[1:])
    db.exec(cmd_line)
    for line in undo:
        db.exec(line)
    assert db.exec(cmd("hget", "h", "f")) == BulkReply(b"1")


def test_undo_logs_shape(db):
    assert hashes.undo_hset(db, cmd("nokey", "f", "v")) == [[b"DEL", b"nokey"]]
    db.exec(cmd("hset", "h", "a", "1"))
    assert hashes.undo_hdel(db, cmd("h", "a", "b")) == [
        [b"HSET", b"h", b"a", b"1"],
        [b"HDEL", b"h", b"b"],
    ]
    db.put_entity("s", b"string")
    assert hashes.undo_hset(db, cmd("s", "f", "v")) == []