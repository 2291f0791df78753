"""
Budget Approval Engine Models

Client ledger entries, ticket snapshots and operation outcomes.
"""

from .client import (
    # Enums
    PermissionMode,
    ContractStatus,

    # Models
    RequestTypePermissions,
    ClientRecord,
    RequestType,
)
from .ticket import (
    Organization,
    SlaState,
    Transition,
    TicketSnapshot,
)
from .outcomes import (
    # Enums
    DecisionKind,
    CostSource,
    ReconciliationStatus,

    # Value objects
    Decision,
    CostEstimate,
    PenaltyResult,
    ActionResult,

    # Outcomes
    ApprovalOutcome,
    PenaltyOutcome,
    ReconciliationOutcome,
)

__all__ = [
    "PermissionMode", "ContractStatus", "RequestTypePermissions", "ClientRecord", "RequestType",
    "Organization", "SlaState", "Transition", "TicketSnapshot",
    "DecisionKind", "CostSource", "ReconciliationStatus",
    "Decision", "CostEstimate", "PenaltyResult", "ActionResult",
    "ApprovalOutcome", "PenaltyOutcome", "ReconciliationOutcome",
]
