# memdis

An in-memory key-value engine that uses the Redis command vocabulary.
It keeps several numbered databases. Commands work on hashes and lists, and
there are general keyspace commands such as `DEL`, `EXPIRE`, `TTL` and `KEYS`.
Keys can expire. Every reply can be encoded in the RESP wire format.

## Installation

```
pip install .
```

To run the test suite:

```
pip install ".[test]"
pytest
```

## Usage

Create a `Server` and a `Connection`, then pass command lines to
`Server.exec`. A command line is a list of `bytes`. The call returns a
`Reply`. Call `Reply.to_bytes()` on it to get the RESP encoding.

```python
from memdis.server import Server, Connection

server = Server()          # 16 databases by default
conn = Connection()        # starts on database 0

server.exec(conn, [b"rpush", b"mylist", b"a", b"b", b"c"])
reply = server.exec(conn, [b"lrange", b"mylist", b"0", b"-1"])
print(reply.to_bytes())   # b'*3\r\n$1\r\na\r\n$1\r\nb\r\n$1\r\nc\r\n'

server.exec(conn, [b"hset", b"user", b"name", b"alice"])
server.exec(conn, [b"expire", b"user", b"60"])
print(server.exec(conn, [b"ttl", b"user"]).to_bytes())   # b':60\r\n'

# copy a key from the current database into database 1, then switch to it
server.exec(conn, [b"copy", b"mylist", b"other", b"db", b"1"])
server.exec(conn, [b"select", b"1"])
print(server.exec(conn, [b"llen", b"other"]).to_bytes())  # b':3\r\n'
```

Errors are not raised. They come back as `ErrorReply` values, the same way a
client would receive them. For example, `[b"hget", b"user"]` returns
`-ERR wrong number of arguments for 'hget' command`, and a command name the
engine does not know returns `-ERR unknown command '...'`.

`Server` works as a context manager. When it exits, it calls `Server.close()`,
which removes every pending expiry.

### Commands

The server handles these commands itself: `SELECT`, `COPY` (with the `DB` and
`REPLACE` options), `FLUSHDB` and `FLUSHALL`. Every other command goes to the
selected database. The command implementations live in their own modules:

- `memdis.hashes`: `HSET`, `HSETNX`, `HGET`, `HEXISTS`, `HDEL`, `HLEN`,
  `HSTRLEN`, `HMSET`, `HMGET`, `HKEYS`, `HVALS`, `HGETALL`, `HINCRBY`,
  `HINCRBYFLOAT`, `HRANDFIELD`
- `memdis.lists`: `LPUSH`, `LPUSHX`, `RPUSH`, `RPUSHX`, `LPOP`, `RPOP`,
  `RPOPLPUSH`, `LREM`, `LLEN`, `LINDEX`, `LSET`, `LRANGE`, `LTRIM`, `LINSERT`
- `memdis.keys`: `DEL`, `EXISTS`, `TYPE`, `RENAME`, `RENAMENX`, `EXPIRE`,
  `EXPIREAT`, `PEXPIRE`, `PEXPIREAT`, `EXPIRETIME`, `PEXPIRETIME`, `TTL`,
  `PTTL`, `PERSIST`, `KEYS` (glob patterns with `*`, `?`, `[...]` and `\`)

Most commands that change data have an undo function, such as
`memdis.hashes.undo_hset` or `memdis.lists.undo_lpush`. An undo function
returns the command lines that would restore the state as it was before the
command ran.

`memdis.router` holds the command registry: `register_command`, `lookup`,
`is_read_only_command`, `validate_arity`, and `Command.to_desc_reply`.

### Using one database directly

`memdis.database.DB` is a single keyspace. You can run commands on it with
`DB.exec`, or use its data-access methods: `get_entity`, `put_entity`,
`put_if_absent`, `put_if_exists`, `remove`, `removes`, `expire` (which takes a
Unix time in seconds), `persist`, `get_expiration`, `get_version`, `items` and
`size`. A value stored with `put_entity` can be `bytes`, a `dict` (a hash),
a `list` (a list) or a `set`. `TYPE` reports `bytes` as `string` and a `set`
as `set`.

### Hooks

- `Server.set_key_inserted_callback(callback)` calls `callback(db_index, key, value)` whenever a key is created.
- `Server.set_key_deleted_callback(callback)` calls `callback(db_index, key, value)` whenever a key is removed.
- `Server(aof_sink=...)` takes a callable `(db_index, cmd_line)`. It receives the command line of every write.

## What it does not do

- It does not listen on a network socket. You call it from Python only.
- It has no string commands such as `SET`, `GET` or `INCR`, and no commands for sets or sorted sets.
- It has no transactions (`MULTI`/`EXEC`/`WATCH`), no publish/subscribe and no authentication.
- It does not persist anything to disk: no append-only file and no RDB snapshots. The `aof_sink` hook only passes command lines to your callable.
- It has no replication.