"""
Redis-backed client store.

Layout:
  <key>                      client record JSON
  clients:org-index          hash  organization id -> key
  clients:keys               zset  key, scored by creation time (listing order)
  clients:reconciled:<id>    marker for a reconciled ticket

Every write is an optimistic transaction: the keys it depends on are
WATCHed, re-read, and the MULTI/EXEC is retried if another writer got
there first. This holds across processes, not just within one.
"""

import logging
from typing import Any, Awaitable, Callable, Optional, Tuple

import redis.asyncio as redis
from redis.exceptions import RedisError, WatchError

from ..models.client import ClientRecord
from .base import ClientPage, ClientStore, DuplicateOrganizationError, StorageError


logger = logging.getLogger(__name__)

ORG_INDEX_KEY = "clients:org-index"
KEYS_INDEX_KEY = "clients:keys"
RECONCILED_PREFIX = "clients:reconciled:"

MAX_WATCH_ATTEMPTS = 10


class RedisClientStore(ClientStore):

    def __init__(self, client: redis.Redis):
        self._redis = client

    @classmethod
    def from_url(cls, url: str) -> "RedisClientStore":
        return cls(redis.from_url(
            url,
            decode_responses=True,
            socket_connect_timeout=5,
            socket_timeout=5,
        ))

    async def get(self, key: str) -> Optional[ClientRecord]:
        try:
            raw = await self._redis.get(key)
        except RedisError as e:
            raise StorageError(f"Failed to read client {key}: {e}") from e
        return ClientRecord.model_validate_json(raw) if raw else None

    async def find_by_organization(self, organization_id: str) -> Optional[ClientRecord]:
        try:
            key = await self._redis.hget(ORG_INDEX_KEY, str(organization_id))
        except RedisError as e:
            raise StorageError(f"Failed to read organization index: {e}") from e
        return await self.get(key) if key else None

    async def save(self, record: ClientRecord) -> None:
        async def _save(pipe) -> None:
            await self._check_organization(pipe, record)
            pipe.multi()
            self._queue_record(pipe, record)
            await pipe.execute()

        await self._optimistic(f"save client {record.key}", _save, ORG_INDEX_KEY)

    async def modify(
        self,
        key: str,
        update: Callable[[ClientRecord], ClientRecord]
    ) -> Optional[ClientRecord]:
        async def _modify(pipe) -> Optional[ClientRecord]:
            raw = await pipe.get(key)
            if not raw:
                return None
            updated = update(ClientRecord.model_validate_json(raw))
            await self._check_organization(pipe, updated)
            pipe.multi()
            self._queue_record(pipe, updated)
            await pipe.execute()
            return updated

        return await self._optimistic(f"modify client {key}", _modify, key, ORG_INDEX_KEY)

    async def list(
        self,
        prefix: str,
        limit: int,
        cursor: Optional[str] = None
    ) -> ClientPage:
        offset = int(cursor) if cursor else 0
        try:
            keys = [
                k for k in await self._redis.zrange(KEYS_INDEX_KEY, 0, -1)
                if k.startswith(prefix)
            ]
            window = keys[offset:offset + limit]
            raws = await self._redis.mget(window) if window else []
        except RedisError as e:
            raise StorageError(f"Failed to list clients: {e}") from e

        next_offset = offset + len(window)
        return ClientPage(
            records=[ClientRecord.model_validate_json(raw) for raw in raws if raw],
            next_cursor=str(next_offset) if next_offset < len(keys) else None,
        )

    async def is_reconciled(self, issue_id: str) -> bool:
        try:
            return bool(await self._redis.exists(f"{RECONCILED_PREFIX}{issue_id}"))
        except RedisError as e:
            raise StorageError(f"Failed to read reconciliation marker: {e}") from e

    async def apply_reconciliation(
        self,
        key: str,
        issue_id: str,
        update: Callable[[ClientRecord], ClientRecord]
    ) -> Optional[Tuple[ClientRecord, ClientRecord]]:
        marker = f"{RECONCILED_PREFIX}{issue_id}"

        async def _apply(pipe) -> Optional[Tuple[ClientRecord, ClientRecord]]:
            if await pipe.exists(marker):
                return None
            raw = await pipe.get(key)
            if not raw:
                raise StorageError(f"Client {key} disappeared before reconciling {issue_id}.")

            previous = ClientRecord.model_validate_json(raw)
            updated = update(previous)
            pipe.multi()
            self._queue_record(pipe, updated)
            pipe.set(marker, key)
            await pipe.execute()
            return previous, updated

        return await self._optimistic(f"reconcile {issue_id} on {key}", _apply, key, marker)

    # =========================================================================
    # Private methods
    # =========================================================================

    async def _optimistic(
        self,
        action: str,
        body: Callable[[Any], Awaitable[Any]],
        *watches: str
    ) -> Any:
        """Run `body` on a pipeline WATCHing `watches`, retrying on conflict."""
        try:
            async with self._redis.pipeline(transaction=True) as pipe:
                for attempt in range(1, MAX_WATCH_ATTEMPTS + 1):
                    try:
                        await pipe.watch(*watches)
                        return await body(pipe)
                    except WatchError:
                        logger.info("Concurrent write during %s, retrying (attempt %d)", action, attempt)
        except RedisError as e:
            raise StorageError(f"Failed to {action}: {e}") from e
        raise StorageError(f"Failed to {action}: still conflicting after {MAX_WATCH_ATTEMPTS} attempts")

    async def _check_organization(self, pipe, record: ClientRecord) -> None:
        owner = await pipe.hget(ORG_INDEX_KEY, record.organization_id)
        if owner is not None and owner != record.key:
            raise DuplicateOrganizationError(record.organization_id, owner)

    def _queue_record(self, pipe, record: ClientRecord) -> None:
        pipe.set(record.key, record.model_dump_json())
        pipe.hset(ORG_INDEX_KEY, record.organization_id, record.key)
        pipe.zadd(KEYS_INDEX_KEY, {record.key: record.created_at.timestamp()}, nx=True)
