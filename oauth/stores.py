"""Key-value stores backing the sign-in flow.

Keys are tuples of strings, e.g. ("oauth_state", state_key). Values are
anything JSON-serialisable. Every record may carry a TTL; expired records
read as missing.

MemoryKVStore is process local (tests, single-process dev runs).
SupabaseKVStore persists to a table shaped like:

    create table kv_entries (
        key text primary key,
        value jsonb not null,
        expires_at double precision
    );
"""

import logging
import time
from typing import Any, Callable, Optional

from starlette.concurrency import run_in_threadpool

logger = logging.getLogger(__name__)

Key = tuple

KEY_SEPARATOR = "/"

# Key prefixes used by the gateway
OAUTH_STATE = "oauth_state"
OAUTH_TOKENS = "oauth_tokens"
USER_EMAIL = "user_email"


def encode_key(key: Key) -> str:
    """Flatten a composite key for backends that only take strings."""
    if not key:
        raise ValueError("Key must have at least one part")
    for part in key:
        if not isinstance(part, str) or not part or KEY_SEPARATOR in part:
            raise ValueError(f"Invalid key part: {part!r}")
    return KEY_SEPARATOR.join(key)


def decode_key(raw: str) -> Key:
    return tuple(raw.split(KEY_SEPARATOR))


def _starts_with(key: Key, prefix: Key) -> bool:
    return key[:len(prefix)] == tuple(prefix)


class KVStore:
    """Async key-value store with optional per-record expiration."""

    async def get(self, key: Key) -> Optional[Any]:
        raise NotImplementedError

    async def set(self, key: Key, value: Any, ttl: Optional[float] = None) -> None:
        raise NotImplementedError

    async def delete(self, key: Key) -> None:
        raise NotImplementedError

    async def list(self, prefix: Key) -> list[tuple[Key, Any]]:
        raise NotImplementedError


class MemoryKVStore(KVStore):
    """In-memory store. Expired entries are dropped lazily."""

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._entries: dict[Key, tuple[Any, Optional[float]]] = {}

    def _expired(self, expires_at: Optional[float]) -> bool:
        return expires_at is not None and self._clock() >= expires_at

    async def get(self, key: Key) -> Optional[Any]:
        key = tuple(key)
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if self._expired(expires_at):
            del self._entries[key]
            return None
        return value

    async def set(self, key: Key, value: Any, ttl: Optional[float] = None) -> None:
        encode_key(key)
        expires_at = self._clock() + ttl if ttl is not None else None
        self._entries[tuple(key)] = (value, expires_at)

    async def delete(self, key: Key) -> None:
        self._entries.pop(tuple(key), None)

    async def list(self, prefix: Key) -> list[tuple[Key, Any]]:
        result = []
        for key, (value, expires_at) in list(self._entries.items()):
            if self._expired(expires_at):
                self._entries.pop(key, None)
                continue
            if _starts_with(key, prefix):
                result.append((key, value))
        return result

    def __len__(self) -> int:
        return len(self._entries)


class SupabaseKVStore(KVStore):
    """Store backed by a Supabase (PostgREST) table.

    The supabase client is synchronous, so every call runs in the
    threadpool to keep the event loop free.
    """

    def __init__(self, supabase_client, table: str = "kv_entries",
                 clock: Callable[[], float] = time.time):
        self.supabase = supabase_client
        self.table = table
        self._clock = clock

    def _expired(self, expires_at: Optional[float]) -> bool:
        return expires_at is not None and self._clock() >= float(expires_at)

    def _get(self, raw_key: str) -> Optional[Any]:
        response = (
            self.supabase.table(self.table)
            .select("value, expires_at")
            .eq("key", raw_key)
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        row = response.data[0]
        if self._expired(row.get("expires_at")):
            self._delete(raw_key)
            return None
        return row["value"]

    def _set(self, raw_key: str, value: Any, ttl: Optional[float]) -> None:
        row = {
            "key": raw_key,
            "value": value,
            "expires_at": self._clock() + ttl if ttl is not None else None,
        }
        self.supabase.table(self.table).upsert(row).execute()

    def _delete(self, raw_key: str) -> None:
        self.supabase.table(self.table).delete().eq("key", raw_key).execute()

    def _list(self, prefix: Key) -> list[tuple[Key, Any]]:
        raw_prefix = encode_key(prefix) + KEY_SEPARATOR
        response = (
            self.supabase.table(self.table)
            .select("key, value, expires_at")
            .like("key", f"{raw_prefix}%")
            .execute()
        )
        result = []
        for row in response.data or []:
            # LIKE treats "_" as a wildcard; re-check the real prefix
            if not row["key"].startswith(raw_prefix):
                continue
            if self._expired(row.get("expires_at")):
                continue
            result.append((decode_key(row["key"]), row["value"]))
        return result

    async def get(self, key: Key) -> Optional[Any]:
        try:
            raw_key = encode_key(key)
        except ValueError:
            # Cookie-sourced parts can be anything; such a key was never written
            return None
        return await run_in_threadpool(self._get, raw_key)

    async def set(self, key: Key, value: Any, ttl: Optional[float] = None) -> None:
        await run_in_threadpool(self._set, encode_key(key), value, ttl)

    async def delete(self, key: Key) -> None:
        try:
            raw_key = encode_key(key)
        except ValueError:
            return
        await run_in_threadpool(self._delete, raw_key)

    async def list(self, prefix: Key) -> list[tuple[Key, Any]]:
        return await run_in_threadpool(self._list, tuple(prefix))


def create_store(config, supabase_client=None) -> KVStore:
    """Pick the durable store when Supabase is configured, memory otherwise."""
    if supabase_client is not None:
        logger.info(f"[KV] Using Supabase table: {config.kv_table}")
        return SupabaseKVStore(supabase_client, table=config.kv_table)
    logger.warning("[KV] Supabase not configured, using in-memory store (single process only)")
    return MemoryKVStore()
