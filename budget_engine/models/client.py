"""
Client Ledger Models

A client record is the billing configuration and running budget of one
contracted customer, paired 1:1 with an organization in the tracker.

Core principles:
1. Budget is a running balance - overspend is recorded, never prevented
2. Organization id is assigned once, at onboarding, and never changes
3. Contract window is a pair of calendar dates, both inclusive
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


# =============================================================================
# ENUMS
# =============================================================================

class PermissionMode(str, Enum):
    ALL = "all"          # Every request type allowed
    EXCEPT = "except"    # All but restricted_ids


class ContractStatus(str, Enum):
    UNSET = "unset"        # Start or end date missing
    UPCOMING = "upcoming"  # Starts in the future
    ACTIVE = "active"
    EXPIRED = "expired"


# =============================================================================
# MODELS
# =============================================================================

class RequestTypePermissions(BaseModel):
    """Which request types a client may raise."""
    mode: PermissionMode = PermissionMode.ALL
    restricted_ids: List[str] = Field(default_factory=list)

    def allows(self, request_type_id: str) -> bool:
        if self.mode == PermissionMode.ALL:
            return True
        return str(request_type_id) not in self.restricted_ids


class ClientRecord(BaseModel):
    """
    Configuration + ledger entry for one billing client.

    `key` is the storage key (prefix + generated id); lookups from the
    ticket side go through `organization_id`.
    """
    key: str
    organization_id: str

    name: str
    service_type: Optional[str] = None

    # Contract validity window (inclusive)
    validity_start: Optional[date] = None
    validity_end: Optional[date] = None

    # Running balance, may go negative
    budget: Optional[Decimal] = None

    # Percent of cost deducted per started hour of SLA breach
    sla_penalty_rate: Optional[Decimal] = None

    request_type_permissions: RequestTypePermissions = Field(
        default_factory=RequestTypePermissions
    )

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    def contract_status(self, today: date) -> ContractStatus:
        if self.validity_start is None or self.validity_end is None:
            return ContractStatus.UNSET
        if today < self.validity_start:
            return ContractStatus.UPCOMING
        if today > self.validity_end:
            return ContractStatus.EXPIRED
        return ContractStatus.ACTIVE

    def is_contract_active(self, today: date) -> bool:
        """
        True unless today falls outside a configured bound.

        A missing bound leaves that side of the window open.
        """
        if self.validity_start is not None and today < self.validity_start:
            return False
        if self.validity_end is not None and today > self.validity_end:
            return False
        return True


class RequestType(BaseModel):
    """A service-desk request type, flattened across all desks."""
    id: str
    name: str
    project_id: Optional[str] = None
    project_key: Optional[str] = None
