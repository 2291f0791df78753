"""
Client Ledger Accessor

Reads and writes client records by organization id or storage key.

Budget mutations are read-modify-write; callers hold locked(organization_id)
around the whole sequence so two tickets of one client never race.
"""

import asyncio
import logging
from collections import defaultdict
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator, Callable, Dict, Optional, Tuple
from uuid import uuid4

from ..models.client import ClientRecord
from ..storage.base import ClientPage, ClientStore


logger = logging.getLogger(__name__)


class ClientNotFoundError(Exception):
    """Raised when a client key does not exist."""
    pass


class ClientLedger:

    def __init__(
        self,
        store: ClientStore,
        key_prefix: str = "client-",
        page_size: int = 100
    ):
        self.store = store
        self.key_prefix = key_prefix
        self.page_size = page_size
        self._locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    def new_key(self) -> str:
        return f"{self.key_prefix}{uuid4().hex}"

    async def get(self, key: str) -> ClientRecord:
        record = await self.store.get(key)
        if record is None:
            raise ClientNotFoundError(f"Client {key} not found.")
        return record

    async def find_by_organization(self, organization_id: str) -> Optional[ClientRecord]:
        """
        Client linked to an organization, or None.

        Raises DuplicateOrganizationError (from the store) on ambiguous links.
        """
        return await self.store.find_by_organization(str(organization_id))

    async def save(self, record: ClientRecord) -> ClientRecord:
        """Full overwrite; updated_at is refreshed."""
        record = record.model_copy(update={"updated_at": datetime.utcnow()})
        await self.store.save(record)
        logger.info("Saved client %s (organization %s)", record.key, record.organization_id)
        return record

    async def modify(
        self,
        key: str,
        update: Callable[[ClientRecord], ClientRecord]
    ) -> ClientRecord:
        """
        Re-read and rewrite a record in one store operation.

        Callers changing a record they read earlier go through here, under
        locked(organization_id), so a budget debit in between is not lost.
        """
        record = await self.store.modify(key, _touched(update))
        if record is None:
            raise ClientNotFoundError(f"Client {key} not found.")
        logger.info("Modified client %s (organization %s)", record.key, record.organization_id)
        return record

    async def list(
        self,
        limit: Optional[int] = None,
        cursor: Optional[str] = None
    ) -> ClientPage:
        limit = min(limit or self.page_size, self.page_size)
        return await self.store.list(self.key_prefix, limit, cursor)

    # =========================================================================
    # Reconciliation support
    # =========================================================================

    @asynccontextmanager
    async def locked(self, organization_id: str) -> AsyncIterator[None]:
        """Serialise budget mutations per organization."""
        async with self._locks[str(organization_id)]:
            yield

    async def is_reconciled(self, issue_id: str) -> bool:
        return await self.store.is_reconciled(issue_id)

    async def apply_reconciliation(
        self,
        key: str,
        issue_id: str,
        update: Callable[[ClientRecord], ClientRecord]
    ) -> Optional[Tuple[ClientRecord, ClientRecord]]:
        """
        Debit a record and mark the ticket in one store operation.

        None means another event already reconciled the ticket.
        """
        return await self.store.apply_reconciliation(key, issue_id, _touched(update))


def _touched(update: Callable[[ClientRecord], ClientRecord]) -> Callable[[ClientRecord], ClientRecord]:
    def _apply(record: ClientRecord) -> ClientRecord:
        return update(record).model_copy(update={"updated_at": datetime.utcnow()})
    return _apply
