"""
Approval Decision Engine

Decides what happens to a ticket entering review:

    contract not active          -> Auto Rechazo
    estimated cost <= budget     -> Auto Aprobación
    otherwise                    -> Auto Rechazo
    anything missing / failing   -> Aprobación Manual

The validity window is checked first: an expired or not-yet-started
contract rejects regardless of cost.
"""

import logging
from datetime import date
from decimal import Decimal
from typing import Callable, List, Optional

from ..config import TransitionNames
from ..integrations.jira import GatewayError, JiraGateway
from ..models.client import ClientRecord
from ..models.outcomes import ActionResult, ApprovalOutcome, Decision, DecisionKind
from ..storage.base import DuplicateOrganizationError, StorageError
from .cost import CostResolver
from .ledger import ClientLedger


logger = logging.getLogger(__name__)

REASON_MISSING_COST = "Could not determine an initial cost for the ticket."
REASON_MISSING_ORGANIZATION = "The ticket has no organization."
REASON_MISSING_BUDGET = "No budget registered for the ticket's organization."
REASON_CONTRACT_INACTIVE = "contract not active"
REASON_OVER_BUDGET = "cost exceeds budget"
REASON_UNEXPECTED = "Unexpected error during automation."


class ApprovalDecisionEngine:
    """Pure decision rules; no I/O."""

    def decide(
        self,
        estimated_cost: Optional[Decimal],
        client: Optional[ClientRecord],
        today: date
    ) -> Decision:
        if estimated_cost is None:
            return Decision.manual_review(REASON_MISSING_COST)

        if client is None or client.budget is None:
            return Decision.manual_review(REASON_MISSING_BUDGET)

        if not client.is_contract_active(today):
            return Decision.reject(REASON_CONTRACT_INACTIVE)

        if Decimal(estimated_cost) <= client.budget:
            return Decision.approve()

        return Decision.reject(REASON_OVER_BUDGET)


class ApprovalService:
    """
    Runs the decision for a ticket and moves it through the workflow.

    Never raises: every failure ends in an attempt to reach manual review.
    """

    def __init__(
        self,
        gateway: JiraGateway,
        ledger: ClientLedger,
        transitions: TransitionNames,
        engine: Optional[ApprovalDecisionEngine] = None,
        costs: Optional[CostResolver] = None,
        clock: Callable[[], date] = date.today
    ):
        self.gateway = gateway
        self.ledger = ledger
        self.transitions = transitions
        self.engine = engine or ApprovalDecisionEngine()
        self.costs = costs or CostResolver()
        self.clock = clock

    async def process(self, issue_id: str) -> ApprovalOutcome:
        try:
            decision = await self.evaluate(issue_id)
        except GatewayError as e:
            logger.warning("Tracker call failed while deciding %s: %s", issue_id, e)
            decision = Decision.manual_review(f"Tracker unavailable: {e}")
        except Exception:
            logger.exception("Unexpected error deciding ticket %s", issue_id)
            decision = Decision.manual_review(REASON_UNEXPECTED)

        logger.info("Ticket %s decision: %s (%s)", issue_id, decision.kind.value, decision.reason)

        actions: List[ActionResult] = []
        name = self.transitions.for_decision(decision.kind)
        result = await self._transition(issue_id, name)
        actions.append(result)
        if result.ok:
            return ApprovalOutcome(issue_id=issue_id, decision=decision, transition=name, actions=actions)

        if decision.kind == DecisionKind.MANUAL_REVIEW:
            logger.error("Ticket %s could not be moved to manual review: %s", issue_id, result.reason)
            return ApprovalOutcome(issue_id=issue_id, decision=decision, actions=actions)

        fallback = Decision.manual_review(f"Transition '{name}' failed: {result.reason}")
        manual = await self._transition(issue_id, self.transitions.manual)
        actions.append(manual)
        if not manual.ok:
            logger.error("Ticket %s left in place, manual review failed: %s", issue_id, manual.reason)
        return ApprovalOutcome(
            issue_id=issue_id,
            decision=fallback,
            transition=self.transitions.manual if manual.ok else None,
            actions=actions,
        )

    async def evaluate(self, issue_id: str) -> Decision:
        ticket = await self.gateway.get_ticket(issue_id)

        estimate = self.costs.resolve_estimate(ticket)
        if estimate is None:
            return Decision.manual_review(REASON_MISSING_COST)

        organization = ticket.organization
        if organization is None:
            return Decision.manual_review(REASON_MISSING_ORGANIZATION)

        try:
            client = await self.ledger.find_by_organization(organization.id)
        except DuplicateOrganizationError as e:
            logger.error("Ambiguous client for ticket %s: %s", ticket.label, e)
            return Decision.manual_review(str(e))
        except StorageError as e:
            logger.error("Client lookup failed for ticket %s: %s", ticket.label, e)
            return Decision.manual_review(f"Client ledger unavailable: {e}")

        if client is None or client.budget is None:
            return Decision.manual_review(
                f"No budget registered for organization \"{organization.name or organization.id}\"."
            )

        logger.info(
            "Comparing cost %s against budget %s for %s",
            estimate.cost, client.budget, client.name
        )
        return self.engine.decide(estimate.cost, client, self.clock())

    async def _transition(self, issue_id: str, name: str) -> ActionResult:
        action = f"transition:{name}"
        try:
            available = await self.gateway.list_transitions(issue_id)
            target = next(
                (t for t in available if t.name.casefold() == name.casefold()),
                None
            )
            if target is None:
                return ActionResult.failure(action, f"Transition '{name}' not found.")
            await self.gateway.execute_transition(issue_id, target.id)
        except GatewayError as e:
            return ActionResult.failure(action, str(e))
        except Exception as e:
            logger.exception("Unexpected error running %s on %s", action, issue_id)
            return ActionResult.failure(action, repr(e))
        return ActionResult.success(action)
