"""
In-process client store.

Records are held as JSON so callers never share mutable instances.
"""

from typing import Callable, Dict, Optional, Set, Tuple

from ..models.client import ClientRecord
from .base import ClientPage, ClientStore, DuplicateOrganizationError, StorageError


class InMemoryClientStore(ClientStore):

    def __init__(self):
        self._records: Dict[str, str] = {}
        self._org_index: Dict[str, str] = {}
        self._reconciled: Set[str] = set()

    async def get(self, key: str) -> Optional[ClientRecord]:
        raw = self._records.get(key)
        return ClientRecord.model_validate_json(raw) if raw else None

    async def find_by_organization(self, organization_id: str) -> Optional[ClientRecord]:
        key = self._org_index.get(str(organization_id))
        return await self.get(key) if key else None

    async def save(self, record: ClientRecord) -> None:
        self._check_organization(record)

        previous = await self.get(record.key)
        if previous and previous.organization_id != record.organization_id:
            self._org_index.pop(previous.organization_id, None)

        self._records[record.key] = record.model_dump_json()
        self._org_index[record.organization_id] = record.key

    async def modify(
        self,
        key: str,
        update: Callable[[ClientRecord], ClientRecord]
    ) -> Optional[ClientRecord]:
        current = await self.get(key)
        if current is None:
            return None
        updated = update(current)
        await self.save(updated)
        return updated

    async def list(
        self,
        prefix: str,
        limit: int,
        cursor: Optional[str] = None
    ) -> ClientPage:
        keys = sorted(k for k in self._records if k.startswith(prefix))
        offset = int(cursor) if cursor else 0
        window = keys[offset:offset + limit]

        next_offset = offset + len(window)
        return ClientPage(
            records=[ClientRecord.model_validate_json(self._records[k]) for k in window],
            next_cursor=str(next_offset) if next_offset < len(keys) else None,
        )

    async def is_reconciled(self, issue_id: str) -> bool:
        return str(issue_id) in self._reconciled

    async def apply_reconciliation(
        self,
        key: str,
        issue_id: str,
        update: Callable[[ClientRecord], ClientRecord]
    ) -> Optional[Tuple[ClientRecord, ClientRecord]]:
        if await self.is_reconciled(issue_id):
            return None
        previous = await self.get(key)
        if previous is None:
            raise StorageError(f"Client {key} disappeared before reconciling {issue_id}.")

        updated = update(previous)
        await self.save(updated)
        self._reconciled.add(str(issue_id))
        return previous, updated

    def _check_organization(self, record: ClientRecord) -> None:
        owner = self._org_index.get(record.organization_id)
        if owner is not None and owner != record.key:
            raise DuplicateOrganizationError(record.organization_id, owner)
