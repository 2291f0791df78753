"""
Issue Tracker Gateway

Thin async client over the tracker's REST APIs (platform + service desk).
Plays two roles for the engine:
- Ticket Action Gateway: read tickets and SLAs, write fields, run transitions
- Client Directory: create organizations and link them to service desks

Every transport or HTTP failure surfaces as GatewayError; callers decide
the fallback.
"""

import logging
from typing import Any, Dict, List, Optional

import httpx

from ..config import FieldConfig, Settings
from ..models.ticket import Organization, SlaState, TicketSnapshot, Transition


logger = logging.getLogger(__name__)


class GatewayError(Exception):
    """Raised when a call to the issue tracker fails."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class JiraGateway:
    """
    Async tracker client.

    Owns its httpx.AsyncClient unless one is injected.
    """

    PAGE_SIZE = 50

    def __init__(
        self,
        base_url: str,
        fields: FieldConfig,
        email: Optional[str] = None,
        api_token: Optional[str] = None,
        timeout: float = 10.0,
        sla_name: str = "Time to resolution",
        client: Optional[httpx.AsyncClient] = None
    ):
        self.fields = fields
        self.sla_name = sla_name

        auth = httpx.BasicAuth(email, api_token) if email and api_token else None
        self._client = client or httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            auth=auth,
            timeout=timeout,
            headers={"Accept": "application/json"},
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "JiraGateway":
        return cls(
            base_url=settings.JIRA_BASE_URL,
            fields=settings.field_config(),
            email=settings.JIRA_EMAIL,
            api_token=settings.JIRA_API_TOKEN,
            timeout=settings.JIRA_TIMEOUT_SECONDS,
            sla_name=settings.RESOLUTION_SLA_NAME,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    # =========================================================================
    # Ticket Action Gateway
    # =========================================================================

    async def get_ticket(self, issue_id: str) -> TicketSnapshot:
        data = await self._request("GET", f"/rest/api/3/issue/{issue_id}")
        fields = data.get("fields") or {}

        orgs = fields.get(self.fields.organization) or []
        return TicketSnapshot(
            issue_id=str(data.get("id", issue_id)),
            key=data.get("key"),
            status=(fields.get("status") or {}).get("name"),
            resolution=(fields.get("resolution") or {}).get("name"),
            organizations=[
                Organization(id=str(o["id"]), name=o.get("name"))
                for o in orgs if isinstance(o, dict) and o.get("id") is not None
            ],
            estimated_cost=fields.get(self.fields.estimated_cost),
            labor_cost=fields.get(self.fields.labor_cost),
            total_cost=fields.get(self.fields.total_cost),
        )

    async def list_transitions(self, issue_id: str) -> List[Transition]:
        data = await self._request("GET", f"/rest/api/3/issue/{issue_id}/transitions")
        return [
            Transition(id=str(t["id"]), name=t["name"])
            for t in data.get("transitions", [])
        ]

    async def execute_transition(self, issue_id: str, transition_id: str) -> None:
        await self._request(
            "POST",
            f"/rest/api/3/issue/{issue_id}/transitions",
            json={"transition": {"id": transition_id}},
        )

    async def update_fields(self, issue_id: str, values: Dict[str, Any]) -> None:
        await self._request(
            "PUT",
            f"/rest/api/3/issue/{issue_id}",
            json={"fields": values},
        )

    async def get_sla_status(self, issue_id: str) -> SlaState:
        """
        State of the resolution SLA.

        Uses the ongoing cycle; once the ticket is resolved the SLA only
        has completed cycles, so the latest one is used instead.
        """
        data = await self._request("GET", f"/rest/servicedeskapi/request/{issue_id}/sla")
        sla = next(
            (s for s in data.get("values", []) if self.sla_name in s.get("name", "")),
            None
        )
        if sla is None:
            return SlaState()

        cycle = sla.get("ongoingCycle")
        if cycle is None and sla.get("completedCycles"):
            cycle = sla["completedCycles"][-1]
        if cycle is None:
            return SlaState()

        remaining = (cycle.get("remainingTime") or {}).get("millis")
        return SlaState(
            breached=bool(cycle.get("breached")),
            remaining_millis=int(remaining) if remaining is not None else None,
        )

    # =========================================================================
    # Client Directory
    # =========================================================================

    async def create_organization(self, name: str) -> Organization:
        data = await self._request(
            "POST",
            "/rest/servicedeskapi/organization",
            json={"name": name},
        )
        return Organization(id=str(data["id"]), name=data.get("name", name))

    async def list_service_desks(self) -> List[Dict[str, Any]]:
        return await self._paged("/rest/servicedeskapi/servicedesk")

    async def associate_organization(self, service_desk_id: str, organization_id: str) -> None:
        await self._request(
            "POST",
            f"/rest/servicedeskapi/servicedesk/{service_desk_id}/organization",
            json={"organizationId": int(organization_id) if organization_id.isdigit() else organization_id},
        )

    async def list_request_types(self, service_desk_id: str) -> List[Dict[str, Any]]:
        return await self._paged(f"/rest/servicedeskapi/servicedesk/{service_desk_id}/requesttype")

    # =========================================================================
    # Private methods
    # =========================================================================

    async def _request(
        self,
        method: str,
        path: str,
        json: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None
    ) -> Any:
        try:
            response = await self._client.request(method, path, json=json, params=params)
        except httpx.HTTPError as e:
            raise GatewayError(f"{method} {path} failed: {e}") from e

        if response.is_error:
            raise GatewayError(
                f"{method} {path} returned {response.status_code}: {response.text[:500]}",
                status_code=response.status_code,
            )

        if not response.content:
            return {}
        return response.json()

    async def _paged(self, path: str) -> List[Dict[str, Any]]:
        """Collect all `values` of a service-desk paged listing."""
        values: List[Dict[str, Any]] = []
        start = 0
        while True:
            data = await self._request("GET", path, params={"start": start, "limit": self.PAGE_SIZE})
            page = data.get("values") or []
            values.extend(page)
            if data.get("isLastPage", True) or not page:
                return values
            start += len(page)
