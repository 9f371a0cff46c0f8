"""A multi-database server: routes commands to the selected keyspace."""

from __future__ import annotations

import copy
import logging
import random
import re
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional, Sequence

from memdis import hashes, keys, lists  # noqa: F401  (registers their commands)
from memdis.database import DB, KeyEventCallback
from memdis.replies import (
    CommandError,
    ErrorReply,
    IntReply,
    Reply,
    arg_num_error,
    ok_reply,
    syntax_error,
)
from memdis.router import validate_arity

logger = logging.getLogger(__name__)

CmdLine = list[bytes]
AofSink = Callable[[int, CmdLine], None]

DEFAULT_DATABASES = 16

_ATOI_RE = re.compile(r"[+-]?[0-9]+\Z")
_OUT_OF_RANGE = "ERR DB index is out of range"


def _text(raw: bytes) -> str:
    return raw.decode("utf-8", "surrogateescape")


def _atoi(raw: bytes) -> Optional[int]:
    text = _text(raw)
    if not _ATOI_RE.match(text):
        return None
    return int(text)


@dataclass
class Connection:
    """Per-client state the server needs: the selected database and transaction mode."""

    db_index: int = 0
    in_multi_state: bool = False

    def select_db(self, index) -> None:
        """Make ``index`` the database used by subsequent commands."""
        self.db_index = index


class Server:
    """Holds several databases and executes commands against the selected one."""

    def __init__(self, databases: int = DEFAULT_DATABASES, aof_sink: Optional[AofSink] = None) -> None:
        self._aof_sink = aof_sink
        self._dbs: list[DB] = []
        for index in range(databases or DEFAULT_DATABASES):
            db = DB(index)
            db.add_aof = self._db_sink(index)
            self._dbs.append(db)
        self.insert_callback: Optional[KeyEventCallback] = None
        self.delete_callback: Optional[KeyEventCallback] = None

    def _db_sink(self, index: int) -> Callable[[CmdLine], None]:
        def sink(line: CmdLine) -> None:
            self._add_aof(index, line)

        return sink

    def _add_aof(self, index: int, line: CmdLine) -> None:
        if self._aof_sink is not None:
            self._aof_sink(index, line)

    def __enter__(self) -> "Server":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    # ---- command execution ----

    def exec(self, conn, cmd_line) -> Reply:
        """Execute a command line such as ``[b"rpush", b"key", b"value"]``."""
        try:
            return self._dispatch(conn, cmd_line)
        except CommandError as error:
            return error.reply
        except Exception:  # keep serving after a failing command
            logger.warning("error occurs while executing command", exc_info=True)
            return ErrorReply("Err unknown")

    def _dispatch(self, conn: Connection, cmd_line: Sequence[bytes]) -> Reply:
        name = _text(cmd_line[0]).lower()
        if name == "flushall":
            self.flush_all()
            return ok_reply()
        if name == "flushdb":
            if not validate_arity(1, cmd_line):
                return arg_num_error(name)
            if conn.in_multi_state:
                return ErrorReply("ERR command 'FlushDB' cannot be used in MULTI")
            self._add_aof(conn.db_index, [b"FlushDB"])
            self.flush_db(conn.db_index)
            return ok_reply()
        if name == "select":
            if conn.in_multi_state:
                return ErrorReply("cannot select database within multi")
            if len(cmd_line) != 2:
                return arg_num_error("select")
            return exec_select(conn, self, list(cmd_line[1:]))
        if name == "copy":
            if len(cmd_line) < 3:
                return arg_num_error("copy")
            return exec_copy(self, conn, list(cmd_line[1:]))
        return self.select_db(conn.db_index).exec(cmd_line)

    def exec_with_lock(self, conn, cmd_line) -> Reply:
        """Execute a normal command; the caller already holds the key locks."""
        try:
            db = self.select_db(conn.db_index)
        except CommandError as error:
            return error.reply
        return db.exec_with_lock(cmd_line)

    # ---- databases ----

    def _check_index(self, index: int) -> None:
        if index < 0 or index >= len(self._dbs):
            raise CommandError(_OUT_OF_RANGE)

    def select_db(self, index) -> DB:
        """Return the database at ``index``; raise ``CommandError`` if out of range."""
        self._check_index(index)
        return self._dbs[index]

    def flush_db(self, index) -> None:
        """Replace the database at ``index`` with an empty one."""
        self._check_index(index)
        self.load_db(index, DB(index))

    def flush_all(self) -> None:
        """Empty every database."""
        for index in range(len(self._dbs)):
            self.flush_db(index)
        self._add_aof(0, [b"FlushAll"])

    def load_db(self, index, db) -> None:
        """Install ``db`` at ``index``; it inherits the log sink of the old one."""
        old = self.select_db(index)
        db.index = index
        db.add_aof = old.add_aof
        self._dbs[index] = db

    # ---- data access ----

    def get_entity(self, db_index, key) -> Any:
        """Return the value at ``key`` in database ``db_index``, or ``None``."""
        return self.select_db(db_index).get_entity(key)

    def get_expiration(self, db_index, key) -> Optional[float]:
        """Return the Unix time at which ``key`` expires, or ``None``."""
        return self.select_db(db_index).get_expiration(key)

    def get_db_size(self, db_index) -> tuple[int, int]:
        """Return the key count and the count of keys with an expiry."""
        return self.select_db(db_index).size()

    def get_avg_ttl(self, db_index, random_key_count) -> int:
        """Average remaining time to live, in microseconds, over randomly sampled keys."""
        db = self.select_db(db_index)
        all_keys = [key for key, _value, _expiration in db.items()]
        if not all_keys or random_key_count <= 0:
            return 0
        sample = random.choices(all_keys, k=random_key_count)
        total = 0
        for key in sample:
            now = time.time()
            deadline = db.get_expiration(key)
            if deadline is None:
                continue
            remaining = int((deadline - now) * 1_000_000)
            if remaining > 0:
                total += remaining
        return total // len(sample)

    def set_key_inserted_callback(self, callback) -> None:
        """Call ``callback(db_index, key, value)`` whenever a key is created."""
        self.insert_callback = callback
        for db in self._dbs:
            db.insert_callback = callback

    def set_key_deleted_callback(self, callback) -> None:
        """Call ``callback(db_index, key, value)`` whenever a key is removed."""
        self.delete_callback = callback
        for db in self._dbs:
            db.delete_callback = callback

    def close(self) -> None:
        """Stop every pending expiry timer."""
        for db in self._dbs:
            for key, _value, expiration in db.items():
                if expiration is not None:
                    db.persist(key)


def exec_select(conn, server, args) -> Reply:
    """Switch the connection to another database."""
    index = _atoi(args[0])
    if index is None:
        raise CommandError("ERR invalid DB index")
    server.select_db(index)
    conn.select_db(index)
    return ok_reply()


def exec_copy(server, conn, args) -> Reply:
    """COPY source destination [DB destination-db] [REPLACE]."""
    db = server.select_db(conn.db_index)
    dest_index = conn.db_index
    replace = False
    src_key, dest_key = _text(args[0]), _text(args[1])

    options = iter(args[2:])
    for raw in options:
        option = _text(raw).lower()
        if option == "db":
            value = next(options, None)
            if value is None:
                raise CommandError(syntax_error())
            index = _atoi(value)
            if index is None:
                raise CommandError(syntax_error())
            server.select_db(index)
            dest_index = index
        elif option == "replace":
            replace = True
        else:
            raise CommandError(syntax_error())

    if src_key == dest_key and dest_index == conn.db_index:
        raise CommandError("ERR source and destination objects are the same")

    entity = db.get_entity(src_key)
    if entity is None:
        return IntReply(0)

    dest_db = server.select_db(dest_index)
    if dest_db.get_entity(dest_key) is not None and not replace:
        return IntReply(0)

    dest_db.put_entity(dest_key, copy.copy(entity))
    deadline = db.get_expiration(src_key)
    if deadline is not None:
        dest_db.expire(dest_key, deadline)
    server._add_aof(conn.db_index, [b"copy", *args])
    return IntReply(1)