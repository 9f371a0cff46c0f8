"""In-memory key-value engine with Redis-style hash, list and keyspace commands."""

__version__ = "0.1.0"
__all__ = ["database", "hashes", "keys", "lists", "replies", "router", "server"]