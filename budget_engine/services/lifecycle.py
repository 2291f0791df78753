"""
Lifecycle Router

Maps tracker status changes onto the engine's flows:

    review status     -> ApprovalService (after a flat settle delay)
    resolved statuses -> ReconciliationService
    anything else     -> ignored

Events are handled one at a time, to completion.
"""

import asyncio
import logging
from typing import Iterable, Optional, Union

from ..models.outcomes import ApprovalOutcome, PenaltyOutcome, ReconciliationOutcome
from .decision import ApprovalService
from .penalty import PenaltyService
from .reconciliation import ReconciliationService


logger = logging.getLogger(__name__)

Outcome = Union[ApprovalOutcome, ReconciliationOutcome]


class LifecycleRouter:

    def __init__(
        self,
        approvals: ApprovalService,
        reconciliations: ReconciliationService,
        penalties: PenaltyService,
        review_status: str,
        resolved_statuses: Iterable[str],
        delay_seconds: float = 0.0
    ):
        self.approvals = approvals
        self.reconciliations = reconciliations
        self.penalties = penalties
        self.review_status = review_status.casefold()
        self.resolved_statuses = {s.casefold() for s in resolved_statuses}
        self.delay_seconds = delay_seconds

    async def handle_status_change(self, issue_id: str, status: Optional[str]) -> Optional[Outcome]:
        normalized = (status or "").casefold()

        if normalized == self.review_status:
            logger.info("Ticket %s entered review, starting automation", issue_id)
            if self.delay_seconds:
                await asyncio.sleep(self.delay_seconds)
            return await self.approvals.process(issue_id)

        if normalized in self.resolved_statuses:
            logger.info("Ticket %s resolved (%s), reconciling budget", issue_id, status)
            try:
                return await self.reconciliations.process(issue_id)
            except Exception:
                logger.exception("Unexpected error reconciling ticket %s", issue_id)
                return None

        logger.debug("Ticket %s status %r ignored", issue_id, status)
        return None

    async def recompute(self, issue_id: str) -> PenaltyOutcome:
        """Manual trigger: refresh penalty fields, no transition."""
        return await self.penalties.recompute(issue_id)
