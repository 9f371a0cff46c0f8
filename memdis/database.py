"""A single keyspace that executes normal commands.

A normal command reads or writes a limited set of keys and is registered in
the router with three functions: the executor that does the work, a prepare
function naming the keys it writes and reads, and an undo function producing
the command lines that roll it back inside a transaction.  Commands that
affect the whole server, such as ``select`` or ``flushall``, are handled by
the server rather than here.
"""

from __future__ import annotations

import threading
import time
from typing import Any, Callable, Iterator, Optional, Sequence

from memdis.replies import CommandError, ErrorReply, Reply, arg_num_error
from memdis.router import Command, lookup, validate_arity

CmdLine = list[bytes]
KeyEventCallback = Callable[[int, str, Any], None]

_MISSING = object()


def _command_name(cmd_line: Sequence[bytes]) -> str:
    return cmd_line[0].decode("utf-8", "surrogateescape").lower()


class DB:
    """Stores values by key with optional expiry and per-key versions."""

    def __init__(self, index: int = 0) -> None:
        self.index = index
        self._data: dict[str, Any] = {}
        self._ttl: dict[str, float] = {}
        self._versions: dict[str, int] = {}
        self._timers: dict[str, threading.Timer] = {}
        self._lock = threading.RLock()
        self.aof_sink: Optional[Callable[[CmdLine], None]] = None
        self.insert_callback: Optional[KeyEventCallback] = None
        self.delete_callback: Optional[KeyEventCallback] = None

    def add_aof(self, cmd_line: CmdLine) -> None:
        """Pass ``cmd_line`` to the append-only log sink, if one is bound."""
        sink = self.aof_sink
        if sink is not None:
            sink(cmd_line)

    # ---- command execution ----

    def _resolve(self, cmd_line: Sequence[bytes]) -> Command | ErrorReply:
        name = _command_name(cmd_line)
        command = lookup(name)
        if command is None or command.executor is None:
            return ErrorReply(f"ERR unknown command '{name}'")
        if not validate_arity(command.arity, cmd_line):
            return arg_num_error(name)
        return command

    def _run(self, command: Command, args: list[bytes]) -> Reply:
        try:
            return command.executor(self, args)
        except CommandError as error:
            return error.reply

    def exec(self, cmd_line) -> Reply:
        """Execute a normal command, bumping versions of the keys it writes."""
        command = self._resolve(cmd_line)
        if isinstance(command, ErrorReply):
            return command
        args = list(cmd_line[1:])
        write_keys, _read_keys = command.prepare(args)
        with self._lock:
            self._add_version(write_keys)
            return self._run(command, args)

    def exec_with_lock(self, cmd_line) -> Reply:
        """Execute a normal command; the caller already holds the locks."""
        command = self._resolve(cmd_line)
        if isinstance(command, ErrorReply):
            return command
        return self._run(command, list(cmd_line[1:]))

    # ---- data access ----

    def get_entity(self, key) -> Any:
        """Return the value bound to ``key``, or ``None`` if absent or expired."""
        value = self._data.get(key, _MISSING)
        if value is _MISSING or self.is_expired(key):
            return None
        return value

    def _notify_insert(self, key: str, value: Any) -> None:
        callback = self.insert_callback
        if callback is not None:
            callback(self.index, key, value)

    def put_entity(self, key, value) -> int:
        """Bind ``value`` to ``key``; return 1 if the key is new, else 0."""
        with self._lock:
            inserted = 0 if key in self._data else 1
            self._data[key] = value
        if inserted:
            self._notify_insert(key, value)
        return inserted

    def put_if_exists(self, key, value) -> int:
        """Replace the value of an existing key; return 1 if replaced, else 0."""
        with self._lock:
            if key not in self._data:
                return 0
            self._data[key] = value
            return 1

    def put_if_absent(self, key, value) -> int:
        """Bind ``value`` only if ``key`` is absent; return 1 if inserted, else 0."""
        with self._lock:
            if key in self._data:
                return 0
            self._data[key] = value
        self._notify_insert(key, value)
        return 1

    def remove(self, key) -> None:
        """Remove ``key`` together with its expiry."""
        with self._lock:
            value = self._data.pop(key, _MISSING)
            self._ttl.pop(key, None)
            self._cancel_timer(key)
        callback = self.delete_callback
        if callback is not None:
            callback(self.index, key, None if value is _MISSING else value)

    def removes(self, *args) -> int:
        """Remove the given keys; return how many of them existed."""
        deleted = 0
        for key in args:
            if key in self._data:
                self.remove(key)
                deleted += 1
        return deleted

    def flush(self) -> None:
        """Drop every key and expiry."""
        with self._lock:
            for timer in self._timers.values():
                timer.cancel()
            self._timers.clear()
            self._data.clear()
            self._ttl.clear()

    # ---- expiry ----

    def _cancel_timer(self, key: str) -> None:
        timer = self._timers.pop(key, None)
        if timer is not None:
            timer.cancel()

    def _expire_task(self, key: str) -> None:
        with self._lock:
            deadline = self._ttl.get(key)
            if deadline is not None and time.time() >= deadline:
                self.remove(key)

    def expire(self, key, expire_at) -> None:
        """Make ``key`` expire at the Unix time ``expire_at`` (seconds)."""
        with self._lock:
            self._ttl[key] = expire_at
            self._cancel_timer(key)
            timer = threading.Timer(max(0.0, expire_at - time.time()), self._expire_task, args=(key,))
            timer.daemon = True
            self._timers[key] = timer
            timer.start()

    def persist(self, key) -> None:
        """Cancel the expiry of ``key``."""
        with self._lock:
            self._ttl.pop(key, None)
            self._cancel_timer(key)

    def is_expired(self, key) -> bool:
        """Tell whether ``key`` has expired, removing it if so."""
        deadline = self._ttl.get(key)
        if deadline is None:
            return False
        expired = time.time() > deadline
        if expired:
            self.remove(key)
        return expired

    def get_expiration(self, key) -> Optional[float]:
        """Return the Unix time at which ``key`` expires, or ``None``."""
        return self._ttl.get(key)

    # ---- versions ----

    def _add_version(self, keys: Sequence[str]) -> None:
        for key in keys:
            self._versions[key] = self.get_version(key) + 1

    def get_version(self, key) -> int:
        """Return how many times ``key`` has been written by commands."""
        return self._versions.get(key, 0)

    # ---- traversal ----

    def items(self) -> Iterator[tuple[str, Any, Optional[float]]]:
        """Yield ``(key, value, expiration)`` for every stored key."""
        for key, value in list(self._data.items()):
            yield key, value, self._ttl.get(key)

    def size(self) -> tuple[int, int]:
        """Return the number of keys and the number of keys with an expiry."""
        return len(self._data), len(self._ttl)