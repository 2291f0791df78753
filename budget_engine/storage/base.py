"""
Client store contract.

Records are keyed by their storage key and indexed by organization id;
an organization id belongs to at most one record.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Tuple

from ..models.client import ClientRecord


class StorageError(Exception):
    """Raised when the client store cannot complete an operation."""
    pass


class DuplicateOrganizationError(StorageError):
    """Raised when two client records would share one organization id."""

    def __init__(self, organization_id: str, existing_key: str):
        self.organization_id = organization_id
        self.existing_key = existing_key
        super().__init__(
            f"Organization {organization_id} is already linked to client {existing_key}."
        )


@dataclass
class ClientPage:
    records: List[ClientRecord] = field(default_factory=list)
    next_cursor: Optional[str] = None


class ClientStore(ABC):
    """
    Keyed storage for client records plus per-ticket reconciliation markers.
    """

    @abstractmethod
    async def get(self, key: str) -> Optional[ClientRecord]:
        ...

    @abstractmethod
    async def find_by_organization(self, organization_id: str) -> Optional[ClientRecord]:
        """O(1) lookup through the organization index."""
        ...

    @abstractmethod
    async def save(self, record: ClientRecord) -> None:
        """
        Full overwrite of the record.

        Raises DuplicateOrganizationError if another key owns the organization.
        """
        ...

    @abstractmethod
    async def modify(
        self,
        key: str,
        update: Callable[[ClientRecord], ClientRecord]
    ) -> Optional[ClientRecord]:
        """
        Atomic read-modify-write of one record; None if the key is unknown.

        `update` receives the record as currently stored.
        """
        ...

    @abstractmethod
    async def list(
        self,
        prefix: str,
        limit: int,
        cursor: Optional[str] = None
    ) -> ClientPage:
        ...

    @abstractmethod
    async def is_reconciled(self, issue_id: str) -> bool:
        ...

    @abstractmethod
    async def apply_reconciliation(
        self,
        key: str,
        issue_id: str,
        update: Callable[[ClientRecord], ClientRecord]
    ) -> Optional[Tuple[ClientRecord, ClientRecord]]:
        """
        Apply `update` to the stored record and mark the ticket, atomically.

        The record and marker are read again inside the operation. Returns
        (previous, updated), or None if the ticket was already reconciled.
        """
        ...
