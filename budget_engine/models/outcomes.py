"""
Outcome Models

Every automated pass reports what it decided and which side effects
succeeded, instead of swallowing failures in a log line.
"""

from decimal import Decimal
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


# =============================================================================
# ENUMS
# =============================================================================

class DecisionKind(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"
    MANUAL_REVIEW = "manual_review"


class CostSource(str, Enum):
    INITIAL = "initial"    # Initial-cost field on the ticket


class ReconciliationStatus(str, Enum):
    APPLIED = "applied"      # Budget debited
    NOOP = "noop"            # Nothing to debit (outcome, cost or client missing)
    DUPLICATE = "duplicate"  # Ticket already reconciled
    FAILED = "failed"        # Upstream or storage error


# =============================================================================
# VALUE OBJECTS
# =============================================================================

class Decision(BaseModel):
    """Approval decision for a ticket entering review."""
    model_config = ConfigDict(frozen=True)

    kind: DecisionKind
    reason: Optional[str] = None

    @classmethod
    def approve(cls, reason: Optional[str] = None) -> "Decision":
        return cls(kind=DecisionKind.APPROVE, reason=reason)

    @classmethod
    def reject(cls, reason: str) -> "Decision":
        return cls(kind=DecisionKind.REJECT, reason=reason)

    @classmethod
    def manual_review(cls, reason: str) -> "Decision":
        return cls(kind=DecisionKind.MANUAL_REVIEW, reason=reason)


class CostEstimate(BaseModel):
    cost: Decimal
    source: CostSource


class PenaltyResult(BaseModel):
    """
    Penalty applied to a base cost.

    percentage: whole percent (5 = 5%), rounded to 2 decimals
    final_cost: base cost minus penalty, rounded to 2 decimals
    """
    breach_hours: int = 0
    percentage: Decimal
    final_cost: Decimal

    @property
    def percentage_fraction(self) -> Decimal:
        """Percentage as the tracker field stores it (5% -> 0.05)."""
        return self.percentage * Decimal("0.01")


class ActionResult(BaseModel):
    """Result of one side effect (field write, transition, save)."""
    action: str
    ok: bool
    reason: Optional[str] = None

    @classmethod
    def success(cls, action: str) -> "ActionResult":
        return cls(action=action, ok=True)

    @classmethod
    def failure(cls, action: str, reason: str) -> "ActionResult":
        return cls(action=action, ok=False, reason=reason)


# =============================================================================
# OPERATION OUTCOMES
# =============================================================================

class ApprovalOutcome(BaseModel):
    issue_id: str
    decision: Decision
    transition: Optional[str] = None  # Name of the transition executed
    actions: List[ActionResult] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.transition is not None and all(a.ok for a in self.actions)


class PenaltyOutcome(BaseModel):
    issue_id: str
    skipped: bool = False
    reason: Optional[str] = None
    result: Optional[PenaltyResult] = None
    writes: List[ActionResult] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.skipped and all(w.ok for w in self.writes)


class ReconciliationOutcome(BaseModel):
    issue_id: str
    status: ReconciliationStatus
    reason: Optional[str] = None

    client_key: Optional[str] = None
    final_cost: Optional[Decimal] = None
    previous_budget: Optional[Decimal] = None
    new_budget: Optional[Decimal] = None
