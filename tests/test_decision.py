"""Unit tests for approval decisions and the review-state flow."""

from datetime import date
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from budget_engine.integrations.jira import GatewayError
from budget_engine.models import DecisionKind, Transition
from budget_engine.services.decision import (
    REASON_CONTRACT_INACTIVE,
    REASON_MISSING_COST,
    REASON_MISSING_ORGANIZATION,
    REASON_OVER_BUDGET,
    REASON_UNEXPECTED,
    ApprovalDecisionEngine,
    ApprovalService,
)
from budget_engine.storage import DuplicateOrganizationError

from .conftest import TODAY


@pytest.mark.unit
class TestApprovalDecisionEngine:

    @pytest.fixture
    def engine(self):
        return ApprovalDecisionEngine()

    def test_within_budget_is_approved(self, engine, make_client):
        decision = engine.decide(Decimal("400"), make_client(), date(2024, 6, 1))
        assert decision.kind == DecisionKind.APPROVE

    def test_cost_equal_to_budget_is_approved(self, engine, make_client):
        decision = engine.decide(Decimal("500"), make_client(), date(2024, 6, 1))
        assert decision.kind == DecisionKind.APPROVE

    def test_over_budget_is_rejected(self, engine, make_client):
        decision = engine.decide(Decimal("600"), make_client(), date(2024, 6, 1))

        assert decision.kind == DecisionKind.REJECT
        assert decision.reason == REASON_OVER_BUDGET

    def test_expired_contract_is_rejected_regardless_of_cost(self, engine, make_client):
        decision = engine.decide(Decimal("100"), make_client(), date(2025, 1, 1))

        assert decision.kind == DecisionKind.REJECT
        assert decision.reason == REASON_CONTRACT_INACTIVE

    def test_contract_not_started_is_rejected(self, engine, make_client):
        decision = engine.decide(Decimal("1"), make_client(), date(2023, 12, 31))
        assert decision.reason == REASON_CONTRACT_INACTIVE

    @pytest.mark.parametrize("today", [date(2024, 1, 1), date(2024, 12, 31)])
    def test_window_bounds_are_inclusive(self, engine, make_client, today):
        assert engine.decide(Decimal("1"), make_client(), today).kind == DecisionKind.APPROVE

    def test_negative_budget_rejects(self, engine, make_client):
        decision = engine.decide(Decimal("1"), make_client(budget=Decimal("-10")), TODAY)
        assert decision.kind == DecisionKind.REJECT

    def test_missing_cost_needs_manual_review(self, engine, make_client):
        decision = engine.decide(None, make_client(), TODAY)

        assert decision.kind == DecisionKind.MANUAL_REVIEW
        assert decision.reason == REASON_MISSING_COST

    def test_missing_client_or_budget_needs_manual_review(self, engine, make_client):
        assert engine.decide(Decimal("1"), None, TODAY).kind == DecisionKind.MANUAL_REVIEW
        assert engine.decide(Decimal("1"), make_client(budget=None), TODAY).kind == DecisionKind.MANUAL_REVIEW


@pytest.mark.unit
class TestApprovalService:

    @pytest.fixture
    def service(self, gateway, ledger, transitions):
        return ApprovalService(gateway, ledger, transitions, clock=lambda: TODAY)

    @pytest.mark.asyncio
    async def test_approves_and_transitions(self, service, gateway, ledger, make_client, make_ticket):
        await ledger.save(make_client())
        gateway.get_ticket.return_value = make_ticket(estimated_cost="400")

        outcome = await service.process("10001")

        assert outcome.decision.kind == DecisionKind.APPROVE
        assert outcome.transition == "Auto Aprobación"
        assert outcome.ok
        gateway.execute_transition.assert_awaited_once_with("10001", "21")

    @pytest.mark.asyncio
    async def test_rejects_over_budget(self, service, gateway, ledger, make_client, make_ticket):
        await ledger.save(make_client())
        gateway.get_ticket.return_value = make_ticket(estimated_cost="600")

        outcome = await service.process("10001")

        assert outcome.decision.reason == REASON_OVER_BUDGET
        gateway.execute_transition.assert_awaited_once_with("10001", "31")

    @pytest.mark.asyncio
    async def test_transition_names_match_case_insensitively(self, service, gateway, ledger, make_client, make_ticket):
        await ledger.save(make_client())
        gateway.get_ticket.return_value = make_ticket(estimated_cost="1")
        gateway.list_transitions.return_value = [Transition(id="99", name="AUTO APROBACIÓN")]

        outcome = await service.process("10001")

        assert outcome.transition == "Auto Aprobación"
        gateway.execute_transition.assert_awaited_once_with("10001", "99")

    @pytest.mark.asyncio
    async def test_missing_cost_goes_to_manual(self, service, gateway, make_ticket):
        gateway.get_ticket.return_value = make_ticket(estimated_cost=None)

        outcome = await service.process("10001")

        assert outcome.decision.reason == REASON_MISSING_COST
        gateway.execute_transition.assert_awaited_once_with("10001", "11")

    @pytest.mark.asyncio
    async def test_missing_organization_goes_to_manual(self, service, gateway, make_ticket):
        gateway.get_ticket.return_value = make_ticket(organizations=[])

        outcome = await service.process("10001")

        assert outcome.decision.reason == REASON_MISSING_ORGANIZATION
        assert outcome.transition == "Aprobación Manual"

    @pytest.mark.asyncio
    async def test_unknown_client_goes_to_manual(self, service, gateway, make_ticket):
        gateway.get_ticket.return_value = make_ticket()

        outcome = await service.process("10001")

        assert outcome.decision.kind == DecisionKind.MANUAL_REVIEW
        assert "Acme" in outcome.decision.reason

    @pytest.mark.asyncio
    async def test_missing_target_transition_falls_back_to_manual(self, service, gateway, ledger, make_client, make_ticket):
        await ledger.save(make_client())
        gateway.get_ticket.return_value = make_ticket(estimated_cost="400")
        gateway.list_transitions.return_value = [Transition(id="11", name="Aprobación Manual")]

        outcome = await service.process("10001")

        assert outcome.decision.kind == DecisionKind.MANUAL_REVIEW
        assert outcome.transition == "Aprobación Manual"
        assert [a.ok for a in outcome.actions] == [False, True]
        gateway.execute_transition.assert_awaited_once_with("10001", "11")

    @pytest.mark.asyncio
    async def test_tracker_failure_goes_to_manual(self, service, gateway):
        gateway.get_ticket.side_effect = GatewayError("503 Service Unavailable", status_code=503)

        outcome = await service.process("10001")

        assert outcome.decision.kind == DecisionKind.MANUAL_REVIEW
        gateway.execute_transition.assert_awaited_once_with("10001", "11")

    @pytest.mark.asyncio
    async def test_unexpected_error_goes_to_manual(self, service, gateway):
        gateway.get_ticket.side_effect = RuntimeError("bug")

        outcome = await service.process("10001")

        assert outcome.decision.reason == REASON_UNEXPECTED
        assert outcome.transition == "Aprobación Manual"

    @pytest.mark.asyncio
    async def test_manual_review_failure_leaves_ticket_in_place(self, service, gateway, make_ticket):
        gateway.get_ticket.return_value = make_ticket(estimated_cost=None)
        gateway.list_transitions.side_effect = GatewayError("down")

        outcome = await service.process("10001")

        assert outcome.transition is None
        assert not outcome.ok
        gateway.execute_transition.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_ambiguous_organization_goes_to_manual(self, service, gateway, ledger, make_ticket):
        ledger.find_by_organization = AsyncMock(side_effect=DuplicateOrganizationError("7", "client-acme"))
        gateway.get_ticket.return_value = make_ticket()

        outcome = await service.process("10001")

        assert outcome.decision.kind == DecisionKind.MANUAL_REVIEW
        assert "already linked" in outcome.decision.reason
        assert outcome.transition == "Aprobación Manual"


@pytest.mark.unit
class TestTransitionNames:

    @pytest.mark.parametrize("kind,attribute", [
        (DecisionKind.APPROVE, "approve"),
        (DecisionKind.REJECT, "reject"),
        (DecisionKind.MANUAL_REVIEW, "manual"),
    ])
    def test_each_decision_has_its_transition(self, transitions, kind, attribute):
        assert transitions.for_decision(kind) == getattr(transitions, attribute)

    def test_names_are_distinct(self, transitions):
        assert len({transitions.for_decision(kind) for kind in DecisionKind}) == 3
