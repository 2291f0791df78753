"""Shared fixtures for the engine test suite."""

from datetime import date
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from budget_engine.config import FieldConfig, Settings, TransitionNames
from budget_engine.integrations.jira import JiraGateway
from budget_engine.models import ClientRecord, Organization, TicketSnapshot, Transition
from budget_engine.services import ClientLedger
from budget_engine.storage import InMemoryClientStore


TODAY = date(2024, 6, 1)


@pytest.fixture
def settings():
    return Settings(
        JIRA_BASE_URL="https://tracker.test",
        ESTIMATED_COST_FIELD_ID="cf_estimate",
        LABOR_COST_FIELD_ID="cf_labor",
        ORGANIZATION_FIELD_ID="cf_orgs",
        PENALTY_PERCENTAGE_FIELD_ID="cf_penalty",
        TOTAL_COST_FIELD_ID="cf_total",
        AUTOMATION_DELAY_SECONDS=0,
    )


@pytest.fixture
def fields(settings) -> FieldConfig:
    return settings.field_config()


@pytest.fixture
def transitions(settings) -> TransitionNames:
    return settings.transition_names()


@pytest.fixture
def store():
    return InMemoryClientStore()


@pytest.fixture
def ledger(store):
    return ClientLedger(store, key_prefix="client-", page_size=100)


@pytest.fixture
def gateway():
    """Tracker gateway with every workflow transition available."""
    mock = AsyncMock(spec=JiraGateway)
    mock.list_transitions.return_value = [
        Transition(id="11", name="Aprobación Manual"),
        Transition(id="21", name="Auto Aprobación"),
        Transition(id="31", name="Auto Rechazo"),
    ]
    return mock


@pytest.fixture
def make_client():
    def _make(**overrides) -> ClientRecord:
        data = {
            "key": "client-acme",
            "organization_id": "7",
            "name": "Acme",
            "validity_start": date(2024, 1, 1),
            "validity_end": date(2024, 12, 31),
            "budget": Decimal("500"),
        }
        data.update(overrides)
        return ClientRecord(**data)
    return _make


@pytest.fixture
def make_ticket():
    def _make(**overrides) -> TicketSnapshot:
        data = {
            "issue_id": "10001",
            "key": "SR-1",
            "status": "EN REVISIÓN",
            "organizations": [Organization(id="7", name="Acme")],
            "estimated_cost": 400,
        }
        data.update(overrides)
        return TicketSnapshot(**data)
    return _make
