"""
SLA Penalty Calculator

Breaching the resolution SLA reduces what the client is charged.

Formula:
    breach_hours = ceil(|remaining time| in hours)
    percentage   = breach_hours × client penalty rate (% per hour)
    final_cost   = base_cost − base_cost × percentage / 100

Example:
    base 100, rate 5%/h, 1h 0m 0.001s over target -> 2h -> 10% -> 90.00

The percentage is uncapped unless a cap is configured, so the final
cost can go negative.
"""

import logging
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Optional

from ..config import FieldConfig
from ..integrations.jira import GatewayError, JiraGateway
from ..models.client import ClientRecord
from ..models.outcomes import ActionResult, PenaltyOutcome, PenaltyResult
from ..models.ticket import SlaState, TicketSnapshot
from ..storage.base import StorageError
from .cost import CostResolver
from .ledger import ClientLedger


logger = logging.getLogger(__name__)

MILLIS_PER_HOUR = 3_600_000
TWO_PLACES = Decimal("0.01")


def round_money(value: Decimal) -> Decimal:
    return value.quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def breach_hours(remaining_millis: Optional[int]) -> int:
    """Started hours of breach; exactly zero breach time is 0 hours."""
    if not remaining_millis:
        return 0
    over = abs(int(remaining_millis))
    return -(-over // MILLIS_PER_HOUR)


class SlaPenaltyCalculator:

    def __init__(self, cap_percent: Optional[Decimal] = None):
        self.cap_percent = cap_percent

    def compute(
        self,
        base_cost: Decimal,
        client: Optional[ClientRecord],
        sla: SlaState
    ) -> PenaltyResult:
        base_cost = Decimal(base_cost)
        rate = client.sla_penalty_rate if client else None

        if not rate or not sla.breached:
            return PenaltyResult(
                percentage=round_money(Decimal("0")),
                final_cost=round_money(base_cost),
            )

        hours = breach_hours(sla.remaining_millis)
        percentage = hours * Decimal(rate)
        if self.cap_percent is not None:
            percentage = min(percentage, Decimal(self.cap_percent))

        final_cost = base_cost - base_cost * (percentage / Decimal(100))
        return PenaltyResult(
            breach_hours=hours,
            percentage=round_money(percentage),
            final_cost=round_money(final_cost),
        )


class PenaltyService:
    """
    Recomputes a ticket's penalty and writes it back.

    Used for the manual "recompute" trigger and before reconciliation.
    The two field writes are independent: one failing never stops the other.
    """

    def __init__(
        self,
        gateway: JiraGateway,
        ledger: ClientLedger,
        fields: FieldConfig,
        calculator: Optional[SlaPenaltyCalculator] = None,
        costs: Optional[CostResolver] = None
    ):
        self.gateway = gateway
        self.ledger = ledger
        self.fields = fields
        self.calculator = calculator or SlaPenaltyCalculator()
        self.costs = costs or CostResolver()

    async def recompute(self, issue_id: str) -> PenaltyOutcome:
        try:
            ticket = await self.gateway.get_ticket(issue_id)
        except GatewayError as e:
            logger.warning("Penalty recompute for %s skipped, ticket unavailable: %s", issue_id, e)
            return PenaltyOutcome(issue_id=issue_id, skipped=True, reason=f"Ticket unavailable: {e}")
        return await self.apply(ticket)

    async def apply(self, ticket: TicketSnapshot) -> PenaltyOutcome:
        issue_id = ticket.issue_id
        organization = ticket.organization
        if organization is None:
            logger.info("Ticket %s has no organization, penalty not computed", ticket.label)
            return PenaltyOutcome(issue_id=issue_id, skipped=True, reason="Ticket has no organization.")

        base_cost = self.costs.resolve_base_cost(ticket)

        try:
            client = await self.ledger.find_by_organization(organization.id)
        except StorageError as e:
            logger.error("Client lookup failed for organization %s: %s", organization.id, e)
            return PenaltyOutcome(issue_id=issue_id, skipped=True, reason=str(e))

        sla = SlaState()
        if client is not None and client.sla_penalty_rate:
            try:
                sla = await self.gateway.get_sla_status(issue_id)
            except GatewayError as e:
                logger.warning("SLA status unavailable for %s: %s", ticket.label, e)
                return PenaltyOutcome(issue_id=issue_id, skipped=True, reason=f"SLA unavailable: {e}")
        else:
            logger.info("No penalty rate configured for organization %s", organization.id)

        result = self.calculator.compute(base_cost, client, sla)
        logger.info(
            "Ticket %s: base=%s breach_hours=%s penalty=%s%% final=%s",
            ticket.label, base_cost, result.breach_hours, result.percentage, result.final_cost
        )

        writes = [
            await self._write(
                issue_id, "write_penalty_percentage",
                self.fields.penalty_percentage, result.percentage_fraction
            ),
            await self._write(
                issue_id, "write_total_cost",
                self.fields.total_cost, result.final_cost
            ),
        ]
        return PenaltyOutcome(issue_id=issue_id, result=result, writes=writes)

    async def _write(
        self,
        issue_id: str,
        action: str,
        field_id: str,
        value: Decimal
    ) -> ActionResult:
        payload: Any = float(value)
        try:
            await self.gateway.update_fields(issue_id, {field_id: payload})
        except GatewayError as e:
            logger.warning("Could not write %s on %s: %s", field_id, issue_id, e)
            return ActionResult.failure(action, str(e))
        return ActionResult.success(action)
