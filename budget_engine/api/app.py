"""
Budget Approval Engine API

FastAPI application with:
- Client listing / onboarding / editing
- Request types across all service desks
- Tracker webhook for status changes (review -> decision, resolved -> reconciliation)
- Manual penalty recompute for a ticket
"""

from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any, Callable, Dict, Optional

from fastapi import Depends, FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from .. import __version__
from ..config import Settings, get_settings
from ..integrations.jira import GatewayError, JiraGateway
from ..models.client import ClientRecord, RequestTypePermissions
from ..observability import init_logging
from ..services import (
    ApprovalService,
    BudgetReconciler,
    ClientLedger,
    ClientNotFoundError,
    ClientService,
    ClientValidationError,
    LifecycleRouter,
    PenaltyService,
    ReconciliationService,
    SlaPenaltyCalculator,
)
from ..storage import ClientStore, DuplicateOrganizationError, InMemoryClientStore, RedisClientStore


# =============================================================================
# WIRING
# =============================================================================

@dataclass
class Engine:
    """Services shared by all requests."""
    settings: Settings
    gateway: JiraGateway
    clients: ClientService
    router: LifecycleRouter
    clock: Callable[[], date]


def build_store(settings: Settings) -> ClientStore:
    if settings.STORAGE_BACKEND == "redis":
        return RedisClientStore.from_url(settings.REDIS_URL)
    return InMemoryClientStore()


def build_engine(
    settings: Settings,
    gateway: Optional[JiraGateway] = None,
    store: Optional[ClientStore] = None,
    clock: Callable[[], date] = date.today
) -> Engine:
    gateway = gateway or JiraGateway.from_settings(settings)
    ledger = ClientLedger(
        store or build_store(settings),
        key_prefix=settings.CLIENT_KEY_PREFIX,
        page_size=settings.CLIENT_PAGE_SIZE,
    )

    penalties = PenaltyService(
        gateway,
        ledger,
        settings.field_config(),
        calculator=SlaPenaltyCalculator(cap_percent=settings.PENALTY_CAP_PERCENT),
    )
    approvals = ApprovalService(gateway, ledger, settings.transition_names(), clock=clock)
    reconciliations = ReconciliationService(
        gateway,
        BudgetReconciler(ledger, success_resolution=settings.SUCCESS_RESOLUTION),
        penalties,
    )

    return Engine(
        settings=settings,
        gateway=gateway,
        clients=ClientService(gateway, ledger),
        router=LifecycleRouter(
            approvals,
            reconciliations,
            penalties,
            review_status=settings.REVIEW_STATUS,
            resolved_statuses=settings.RESOLVED_STATUSES,
            delay_seconds=settings.AUTOMATION_DELAY_SECONDS,
        ),
        clock=clock,
    )


def get_engine(request: Request) -> Engine:
    return request.app.state.engine


# =============================================================================
# REQUEST/RESPONSE MODELS
# =============================================================================

class CreateClientRequest(BaseModel):
    name: str
    service_type: Optional[str] = None
    validity_start: Optional[date] = None
    validity_end: Optional[date] = None
    budget: Optional[Decimal] = None
    sla_penalty_rate: Optional[Decimal] = None
    request_type_permissions: Optional[RequestTypePermissions] = None


class UpdateClientRequest(BaseModel):
    service_type: Optional[str] = None
    validity_start: Optional[date] = None
    validity_end: Optional[date] = None
    budget: Optional[Decimal] = None
    sla_penalty_rate: Optional[Decimal] = None
    request_type_permissions: Optional[RequestTypePermissions] = None


class WebhookStatus(BaseModel):
    name: Optional[str] = None


class WebhookFields(BaseModel):
    status: Optional[WebhookStatus] = None


class WebhookIssue(BaseModel):
    id: str
    key: Optional[str] = None
    fields: WebhookFields = Field(default_factory=WebhookFields)


class IssueWebhook(BaseModel):
    """Subset of the tracker's issue-updated payload."""
    webhookEvent: Optional[str] = None
    issue: WebhookIssue


def client_view(record: ClientRecord, today: date) -> Dict[str, Any]:
    data = record.model_dump(mode="json")
    data["contract_status"] = record.contract_status(today).value
    return data


# =============================================================================
# APP SETUP
# =============================================================================

def create_app(
    settings: Optional[Settings] = None,
    gateway: Optional[JiraGateway] = None,
    store: Optional[ClientStore] = None,
    clock: Callable[[], date] = date.today
) -> FastAPI:
    settings = settings or get_settings()
    engine = build_engine(settings, gateway=gateway, store=store, clock=clock)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        init_logging(settings.LOG_LEVEL, serialize=settings.APP_ENV != "dev")
        yield
        await engine.gateway.aclose()

    app = FastAPI(
        title="Budget Approval Engine",
        description="Budget-governed approval and cost reconciliation for service-desk tickets",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.engine = engine

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Configure for production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    _register_error_handlers(app)
    _register_routes(app)
    return app


def _register_error_handlers(app: FastAPI) -> None:

    @app.exception_handler(ClientNotFoundError)
    async def not_found(request: Request, exc: ClientNotFoundError):
        return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": str(exc)})

    @app.exception_handler(ClientValidationError)
    async def invalid(request: Request, exc: ClientValidationError):
        return JSONResponse(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, content={"detail": str(exc)})

    @app.exception_handler(DuplicateOrganizationError)
    async def duplicate(request: Request, exc: DuplicateOrganizationError):
        return JSONResponse(status_code=status.HTTP_409_CONFLICT, content={"detail": str(exc)})

    @app.exception_handler(GatewayError)
    async def upstream(request: Request, exc: GatewayError):
        return JSONResponse(status_code=status.HTTP_502_BAD_GATEWAY, content={"detail": str(exc)})


def _register_routes(app: FastAPI) -> None:

    # =========================================================================
    # HEALTH CHECK
    # =========================================================================

    @app.get("/health")
    async def health_check(engine: Engine = Depends(get_engine)):
        return {
            "status": "healthy",
            "service": engine.settings.SERVICE_NAME,
            "version": __version__,
        }

    # =========================================================================
    # CLIENT ENDPOINTS
    # =========================================================================

    @app.get("/clients")
    async def list_clients(
        limit: Optional[int] = None,
        cursor: Optional[str] = None,
        engine: Engine = Depends(get_engine)
    ):
        """
        List clients, paged by cursor.

        Each row carries its contract status (upcoming / active / expired).
        """
        page = await engine.clients.list(limit, cursor)
        today = engine.clock()
        return {
            "rows": [client_view(r, today) for r in page.records],
            "next_cursor": page.next_cursor,
        }

    @app.get("/clients/{key}")
    async def get_client(key: str, engine: Engine = Depends(get_engine)):
        record = await engine.clients.get(key)
        return client_view(record, engine.clock())

    @app.post("/clients", status_code=status.HTTP_201_CREATED)
    async def create_client(request: CreateClientRequest, engine: Engine = Depends(get_engine)):
        """
        Onboard a client.

        Creates its organization and links it to every service desk.
        """
        record = await engine.clients.onboard(**request.model_dump(exclude_none=True))
        return client_view(record, engine.clock())

    @app.put("/clients/{key}")
    async def update_client(
        key: str,
        request: UpdateClientRequest,
        engine: Engine = Depends(get_engine)
    ):
        record = await engine.clients.update(key, request.model_dump(exclude_unset=True))
        return client_view(record, engine.clock())

    @app.get("/request-types")
    async def list_request_types(engine: Engine = Depends(get_engine)):
        request_types = await engine.clients.list_request_types()
        return {"request_types": [rt.model_dump() for rt in request_types]}

    # =========================================================================
    # TICKET LIFECYCLE ENDPOINTS
    # =========================================================================

    @app.post("/webhooks/issue-updated")
    async def issue_updated(payload: IssueWebhook, engine: Engine = Depends(get_engine)):
        """
        Status-change hook.

        Runs synchronously; the response reports what the engine did.
        """
        status_name = payload.issue.fields.status.name if payload.issue.fields.status else None
        outcome = await engine.router.handle_status_change(payload.issue.id, status_name)
        return {
            "handled": outcome is not None,
            "outcome": outcome.model_dump(mode="json") if outcome else None,
        }

    @app.post("/tickets/{issue_id}/penalty")
    async def recompute_penalty(issue_id: str, engine: Engine = Depends(get_engine)):
        """Manual penalty recompute (button on the ticket)."""
        outcome = await engine.router.recompute(issue_id)
        return outcome.model_dump(mode="json")


app = create_app()


# =============================================================================
# RUN
# =============================================================================

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
