"""Unit tests for SLA penalty computation and write-back."""

from decimal import Decimal

import pytest

from budget_engine.integrations.jira import GatewayError
from budget_engine.models import SlaState
from budget_engine.services.penalty import PenaltyService, SlaPenaltyCalculator, breach_hours


HOUR = 3_600_000


@pytest.mark.unit
class TestBreachHours:

    @pytest.mark.parametrize("millis,hours", [
        (None, 0),
        (0, 0),
        (-1, 1),
        (-HOUR, 1),
        (-HOUR - 1, 2),
        (-5 * HOUR + 30_000, 5),
        (HOUR // 2, 1),
    ])
    def test_rounds_partial_hours_up(self, millis, hours):
        assert breach_hours(millis) == hours


@pytest.mark.unit
class TestSlaPenaltyCalculator:

    @pytest.fixture
    def calculator(self):
        return SlaPenaltyCalculator()

    def test_not_breached_keeps_base_cost(self, calculator, make_client):
        client = make_client(sla_penalty_rate=Decimal("5"))
        result = calculator.compute(Decimal("100"), client, SlaState(breached=False, remaining_millis=-HOUR))

        assert result.percentage == 0
        assert result.final_cost == Decimal("100.00")

    def test_no_rate_keeps_base_cost(self, calculator, make_client):
        result = calculator.compute(Decimal("80"), make_client(), SlaState(breached=True, remaining_millis=-HOUR))

        assert result.percentage == 0
        assert result.final_cost == Decimal("80.00")

    def test_no_client_keeps_base_cost(self, calculator):
        result = calculator.compute(Decimal("80"), None, SlaState(breached=True, remaining_millis=-HOUR))
        assert result.final_cost == Decimal("80.00")

    def test_exactly_one_hour(self, calculator, make_client):
        client = make_client(sla_penalty_rate=Decimal("5"))
        result = calculator.compute(Decimal("100"), client, SlaState(breached=True, remaining_millis=-HOUR))

        assert result.breach_hours == 1
        assert result.percentage == Decimal("5.00")
        assert result.final_cost == Decimal("95.00")

    def test_one_millisecond_over_the_hour(self, calculator, make_client):
        client = make_client(sla_penalty_rate=Decimal("5"))
        result = calculator.compute(Decimal("100"), client, SlaState(breached=True, remaining_millis=-HOUR - 1))

        assert result.breach_hours == 2
        assert result.percentage == Decimal("10.00")
        assert result.final_cost == Decimal("90.00")

    def test_zero_breach_time_has_no_penalty(self, calculator, make_client):
        client = make_client(sla_penalty_rate=Decimal("5"))
        result = calculator.compute(Decimal("100"), client, SlaState(breached=True, remaining_millis=0))

        assert result.percentage == 0
        assert result.final_cost == Decimal("100.00")

    def test_uncapped_penalty_goes_negative(self, calculator, make_client):
        client = make_client(sla_penalty_rate=Decimal("30"))
        result = calculator.compute(Decimal("100"), client, SlaState(breached=True, remaining_millis=-4 * HOUR))

        assert result.percentage == Decimal("120.00")
        assert result.final_cost == Decimal("-20.00")

    def test_cap_limits_percentage(self, make_client):
        calculator = SlaPenaltyCalculator(cap_percent=Decimal("100"))
        client = make_client(sla_penalty_rate=Decimal("30"))
        result = calculator.compute(Decimal("100"), client, SlaState(breached=True, remaining_millis=-4 * HOUR))

        assert result.percentage == Decimal("100.00")
        assert result.final_cost == Decimal("0.00")

    def test_rounds_to_two_places(self, calculator, make_client):
        client = make_client(sla_penalty_rate=Decimal("3.333"))
        result = calculator.compute(Decimal("99.99"), client, SlaState(breached=True, remaining_millis=-HOUR))

        assert result.percentage == Decimal("3.33")
        assert result.final_cost == Decimal("96.66")

    def test_fraction_for_tracker_field(self, calculator, make_client):
        client = make_client(sla_penalty_rate=Decimal("5"))
        result = calculator.compute(Decimal("100"), client, SlaState(breached=True, remaining_millis=-HOUR))

        assert result.percentage_fraction == Decimal("0.05")


@pytest.mark.unit
class TestPenaltyService:

    @pytest.fixture
    def service(self, gateway, ledger, fields):
        return PenaltyService(gateway, ledger, fields)

    @pytest.mark.asyncio
    async def test_writes_penalty_and_total(self, service, gateway, ledger, make_client, make_ticket):
        await ledger.save(make_client(sla_penalty_rate=Decimal("5")))
        gateway.get_ticket.return_value = make_ticket(estimated_cost="80", labor_cost="20")
        gateway.get_sla_status.return_value = SlaState(breached=True, remaining_millis=-HOUR - 1)

        outcome = await service.recompute("10001")

        assert outcome.ok
        assert outcome.result.final_cost == Decimal("90.00")
        gateway.update_fields.assert_any_await("10001", {"cf_penalty": 0.1})
        gateway.update_fields.assert_any_await("10001", {"cf_total": 90.0})

    @pytest.mark.asyncio
    async def test_no_rate_writes_base_cost_without_sla_call(self, service, gateway, ledger, make_client, make_ticket):
        await ledger.save(make_client())
        gateway.get_ticket.return_value = make_ticket(estimated_cost="80", labor_cost="20")

        outcome = await service.recompute("10001")

        assert outcome.result.percentage == 0
        gateway.get_sla_status.assert_not_awaited()
        gateway.update_fields.assert_any_await("10001", {"cf_penalty": 0.0})
        gateway.update_fields.assert_any_await("10001", {"cf_total": 100.0})

    @pytest.mark.asyncio
    async def test_no_organization_skips_writes(self, service, gateway, make_ticket):
        gateway.get_ticket.return_value = make_ticket(organizations=[])

        outcome = await service.recompute("10001")

        assert outcome.skipped
        gateway.update_fields.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_failed_write_does_not_stop_the_other(self, service, gateway, ledger, make_client, make_ticket):
        await ledger.save(make_client())
        gateway.get_ticket.return_value = make_ticket(estimated_cost="50")
        gateway.update_fields.side_effect = [GatewayError("field not on screen", status_code=400), None]

        outcome = await service.recompute("10001")

        assert gateway.update_fields.await_count == 2
        assert [w.ok for w in outcome.writes] == [False, True]
        assert not outcome.ok
        assert outcome.result.final_cost == Decimal("50.00")

    @pytest.mark.asyncio
    async def test_ticket_unavailable(self, service, gateway):
        gateway.get_ticket.side_effect = GatewayError("boom")

        outcome = await service.recompute("10001")

        assert outcome.skipped
        assert "boom" in outcome.reason
