"""
Budget Reconciler

When a ticket is resolved successfully, its final cost is debited from
the client's budget. Once per ticket:

1. Only the success resolution debits ("Done"); anything else is a no-op
2. Final cost = total-cost field if positive, else the estimated cost
3. Organization -> client -> budget must all exist
4. new budget = budget − final cost (may go negative)
5. The store re-reads record and marker, then persists both atomically

Steps 3-5 run under the organization's ledger lock; the store operation
in step 5 also holds across processes. Duplicate events for one ticket,
or concurrent tickets of one client, never lose or repeat a debit.
A duplicate event is answered before the penalty fields are touched, so
the ticket keeps showing the cost that was debited.
"""

import logging
from decimal import Decimal
from typing import Optional

from ..integrations.jira import GatewayError, JiraGateway
from ..models.outcomes import ReconciliationOutcome, ReconciliationStatus
from ..models.ticket import TicketSnapshot
from ..storage.base import StorageError
from .cost import CostResolver, parse_cost
from .ledger import ClientLedger
from .penalty import PenaltyService, round_money


logger = logging.getLogger(__name__)


def already_reconciled(issue_id: str, client_key: Optional[str] = None) -> ReconciliationOutcome:
    return ReconciliationOutcome(
        issue_id=issue_id,
        status=ReconciliationStatus.DUPLICATE,
        reason="Ticket already reconciled.",
        client_key=client_key,
    )


class BudgetReconciler:

    def __init__(
        self,
        ledger: ClientLedger,
        success_resolution: str = "Done",
        costs: Optional[CostResolver] = None
    ):
        self.ledger = ledger
        self.success_resolution = success_resolution
        self.costs = costs or CostResolver()

    def final_cost(self, ticket: TicketSnapshot) -> Optional[Decimal]:
        """Authoritative cost to debit, or None when the ticket has no cost data."""
        total = parse_cost(ticket.total_cost)
        if total is not None and total > 0:
            return total
        estimate = self.costs.resolve_estimate(ticket)
        return estimate.cost if estimate else None

    async def reconcile(self, ticket: TicketSnapshot) -> ReconciliationOutcome:
        issue_id = ticket.issue_id

        def noop(reason: str) -> ReconciliationOutcome:
            logger.info("Ticket %s not reconciled: %s", ticket.label, reason)
            return ReconciliationOutcome(
                issue_id=issue_id, status=ReconciliationStatus.NOOP, reason=reason
            )

        resolution = (ticket.resolution or "").casefold()
        if resolution != self.success_resolution.casefold():
            return noop(f"Resolution '{ticket.resolution}' does not debit budget.")

        final_cost = self.final_cost(ticket)
        if final_cost is None:
            return noop("Ticket has neither total nor estimated cost.")

        organization = ticket.organization
        if organization is None:
            return noop("Ticket has no organization.")

        try:
            async with self.ledger.locked(organization.id):
                client = await self.ledger.find_by_organization(organization.id)
                if client is None or client.budget is None:
                    return noop(f"No budget registered for organization {organization.id}.")

                if await self.ledger.is_reconciled(issue_id):
                    logger.warning("Ticket %s already reconciled, skipping debit", ticket.label)
                    return already_reconciled(issue_id, client.key)

                result = await self.ledger.apply_reconciliation(
                    client.key,
                    issue_id,
                    lambda current: current.model_copy(
                        update={"budget": round_money(current.budget - final_cost)}
                    ),
                )
                if result is None:
                    logger.warning("Ticket %s reconciled concurrently, skipping debit", ticket.label)
                    return already_reconciled(issue_id, client.key)
                before, after = result
                previous, new_budget = before.budget, after.budget
        except StorageError as e:
            logger.error("Reconciliation of %s failed: %s", ticket.label, e)
            return ReconciliationOutcome(
                issue_id=issue_id, status=ReconciliationStatus.FAILED, reason=str(e)
            )

        logger.info(
            "Budget of %s: %s - %s = %s (ticket %s)",
            client.name, previous, final_cost, new_budget, ticket.label
        )
        return ReconciliationOutcome(
            issue_id=issue_id,
            status=ReconciliationStatus.APPLIED,
            client_key=client.key,
            final_cost=final_cost,
            previous_budget=previous,
            new_budget=new_budget,
        )


class ReconciliationService:
    """
    Resolved-state flow: refresh the penalty fields, then reconcile
    against a freshly fetched ticket.
    """

    def __init__(
        self,
        gateway: JiraGateway,
        reconciler: BudgetReconciler,
        penalties: PenaltyService
    ):
        self.gateway = gateway
        self.reconciler = reconciler
        self.penalties = penalties

    async def process(self, issue_id: str) -> ReconciliationOutcome:
        try:
            reconciled = await self.reconciler.ledger.is_reconciled(issue_id)
        except StorageError as e:
            logger.error("Could not read reconciliation marker of %s: %s", issue_id, e)
            return ReconciliationOutcome(
                issue_id=issue_id, status=ReconciliationStatus.FAILED, reason=str(e)
            )
        if reconciled:
            logger.info("Ticket %s already reconciled, fields left as debited", issue_id)
            return already_reconciled(issue_id)

        penalty = await self.penalties.recompute(issue_id)
        if not penalty.ok:
            logger.warning(
                "Penalty refresh for %s incomplete (%s), reconciling with current fields",
                issue_id, penalty.reason or [w.reason for w in penalty.writes if not w.ok]
            )

        try:
            ticket = await self.gateway.get_ticket(issue_id)
        except GatewayError as e:
            logger.error("Could not load ticket %s for reconciliation: %s", issue_id, e)
            return ReconciliationOutcome(
                issue_id=issue_id, status=ReconciliationStatus.FAILED, reason=str(e)
            )

        return await self.reconciler.reconcile(ticket)
