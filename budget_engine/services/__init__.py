"""
Budget Approval Engine Services

Decision and cost-reconciliation logic, plus client maintenance.
"""

from .ledger import ClientLedger, ClientNotFoundError
from .cost import CostResolver, parse_cost
from .penalty import SlaPenaltyCalculator, PenaltyService, breach_hours
from .decision import ApprovalDecisionEngine, ApprovalService
from .reconciliation import BudgetReconciler, ReconciliationService
from .clients import ClientService, ClientValidationError
from .lifecycle import LifecycleRouter

__all__ = [
    # Client Ledger Accessor
    "ClientLedger", "ClientNotFoundError",

    # Cost Resolver
    "CostResolver", "parse_cost",

    # SLA penalties
    "SlaPenaltyCalculator", "PenaltyService", "breach_hours",

    # Approval decisions
    "ApprovalDecisionEngine", "ApprovalService",

    # Budget reconciliation
    "BudgetReconciler", "ReconciliationService",

    # Client maintenance
    "ClientService", "ClientValidationError",

    # Status-change routing
    "LifecycleRouter",
]
