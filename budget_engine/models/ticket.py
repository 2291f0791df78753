"""
Ticket Snapshot Models

Read-only views of a tracker issue, fetched fresh for every event.
Cost fields are kept raw; the Cost Resolver decides what they mean.
"""

from typing import Any, List, Optional

from pydantic import BaseModel, Field


class Organization(BaseModel):
    """Organization linked to a ticket (tracker directory entry)."""
    id: str
    name: Optional[str] = None


class SlaState(BaseModel):
    """
    Resolution SLA of a ticket.

    remaining_millis is signed: negative once the target has passed.
    """
    breached: bool = False
    remaining_millis: Optional[int] = None


class Transition(BaseModel):
    id: str
    name: str


class TicketSnapshot(BaseModel):
    """
    What the engine needs to know about an issue at decision time.
    """
    issue_id: str
    key: Optional[str] = None

    status: Optional[str] = None
    resolution: Optional[str] = None

    organizations: List[Organization] = Field(default_factory=list)

    # Raw custom field values
    estimated_cost: Any = None
    labor_cost: Any = None
    total_cost: Any = None

    @property
    def organization(self) -> Optional[Organization]:
        """Only the first linked organization drives budget logic."""
        return self.organizations[0] if self.organizations else None

    @property
    def label(self) -> str:
        return self.key or self.issue_id
