"""
Cost Resolver

Turns raw ticket cost fields into amounts.
A field that is empty, unparseable or zero counts as absent.
"""

from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from ..models.outcomes import CostEstimate, CostSource
from ..models.ticket import TicketSnapshot


def parse_cost(value: Any) -> Optional[Decimal]:
    """Decimal amount of a cost field, or None if absent."""
    if value is None or isinstance(value, bool):
        return None
    try:
        amount = Decimal(str(value).strip())
    except InvalidOperation:
        return None
    if not amount.is_finite() or amount == 0:
        return None
    return amount


class CostResolver:

    def resolve_estimate(self, ticket: TicketSnapshot) -> Optional[CostEstimate]:
        """
        Estimated cost used for the approval decision.

        Only the initial-cost field is consulted; None means the
        ticket cannot be decided automatically.
        """
        cost = parse_cost(ticket.estimated_cost)
        if cost is None:
            return None
        return CostEstimate(cost=cost, source=CostSource.INITIAL)

    def resolve_base_cost(self, ticket: TicketSnapshot) -> Decimal:
        """Initial estimate + internal labor cost, missing parts as 0."""
        initial = parse_cost(ticket.estimated_cost) or Decimal("0")
        labor = parse_cost(ticket.labor_cost) or Decimal("0")
        return initial + labor
