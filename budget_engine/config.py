"""
Budget Approval Engine Settings

Environment-driven configuration (pydantic-settings).

Services never read the environment themselves: they receive a
Settings instance, or the FieldConfig derived from it, at construction.
"""

from decimal import Decimal
from functools import lru_cache
from typing import List, Optional

from pydantic import BaseModel, ConfigDict
from pydantic_settings import BaseSettings, SettingsConfigDict

from .models.outcomes import DecisionKind


class FieldConfig(BaseModel):
    """Issue-tracker custom field identifiers used by the engine."""
    model_config = ConfigDict(frozen=True)

    estimated_cost: str
    labor_cost: str
    organization: str
    penalty_percentage: str
    total_cost: str


class TransitionNames(BaseModel):
    """Workflow transitions the decision flow can take, by name."""
    model_config = ConfigDict(frozen=True)

    manual: str
    approve: str
    reject: str

    def for_decision(self, kind: DecisionKind) -> str:
        if kind == DecisionKind.APPROVE:
            return self.approve
        if kind == DecisionKind.REJECT:
            return self.reject
        return self.manual


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables (or `.env`).
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # Core
    APP_ENV: str = "dev"
    SERVICE_NAME: str = "budget-approval-engine"
    LOG_LEVEL: str = "INFO"

    # Issue tracker
    JIRA_BASE_URL: str = "http://localhost:8080"
    JIRA_EMAIL: Optional[str] = None
    JIRA_API_TOKEN: Optional[str] = None
    JIRA_TIMEOUT_SECONDS: float = 10.0

    # Custom field identifiers
    ESTIMATED_COST_FIELD_ID: str = "customfield_10100"
    LABOR_COST_FIELD_ID: str = "customfield_10101"
    ORGANIZATION_FIELD_ID: str = "customfield_10002"
    PENALTY_PERCENTAGE_FIELD_ID: str = "customfield_10102"
    TOTAL_COST_FIELD_ID: str = "customfield_10103"

    # Workflow vocabulary (matched case-insensitively)
    REVIEW_STATUS: str = "EN REVISIÓN"
    RESOLVED_STATUSES: List[str] = ["RESUELTO", "COMPLETADO"]
    SUCCESS_RESOLUTION: str = "DONE"
    TRANSITION_MANUAL: str = "Aprobación Manual"
    TRANSITION_APPROVE: str = "Auto Aprobación"
    TRANSITION_REJECT: str = "Auto Rechazo"
    RESOLUTION_SLA_NAME: str = "Time to resolution"

    # Flat wait before an automation pass, lets field propagation settle
    AUTOMATION_DELAY_SECONDS: float = 5.0

    # Client ledger
    CLIENT_KEY_PREFIX: str = "client-"
    CLIENT_PAGE_SIZE: int = 100
    STORAGE_BACKEND: str = "memory"  # memory | redis
    REDIS_URL: str = "redis://localhost:6379/0"

    # Unset = uncapped penalty (final cost may go negative)
    PENALTY_CAP_PERCENT: Optional[Decimal] = None

    def field_config(self) -> FieldConfig:
        return FieldConfig(
            estimated_cost=self.ESTIMATED_COST_FIELD_ID,
            labor_cost=self.LABOR_COST_FIELD_ID,
            organization=self.ORGANIZATION_FIELD_ID,
            penalty_percentage=self.PENALTY_PERCENTAGE_FIELD_ID,
            total_cost=self.TOTAL_COST_FIELD_ID,
        )

    def transition_names(self) -> TransitionNames:
        return TransitionNames(
            manual=self.TRANSITION_MANUAL,
            approve=self.TRANSITION_APPROVE,
            reject=self.TRANSITION_REJECT,
        )


@lru_cache
def get_settings() -> Settings:
    """Process-wide settings, for the API layer."""
    return Settings()
