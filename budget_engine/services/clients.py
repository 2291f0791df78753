"""
Client Service

Onboarding and maintenance of client records:
- Onboard: create organization -> link to every service desk -> store record
- Update: merge editable attributes into the stored record
- List: paged, prefix-filtered
- Request types: flattened across all service desks (for permission editing)
"""

import logging
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional

from ..integrations.jira import GatewayError, JiraGateway
from ..models.client import ClientRecord, RequestType, RequestTypePermissions
from ..storage.base import ClientPage
from .ledger import ClientLedger


logger = logging.getLogger(__name__)


class ClientValidationError(Exception):
    """Raised when client data is rejected."""
    pass


class ClientService:

    # Name and organization are fixed at onboarding
    EDITABLE_FIELDS = {
        "service_type",
        "validity_start",
        "validity_end",
        "budget",
        "sla_penalty_rate",
        "request_type_permissions",
    }

    def __init__(self, gateway: JiraGateway, ledger: ClientLedger):
        self.gateway = gateway
        self.ledger = ledger

    async def onboard(
        self,
        name: str,
        service_type: Optional[str] = None,
        validity_start: Optional[date] = None,
        validity_end: Optional[date] = None,
        budget: Optional[Decimal] = None,
        sla_penalty_rate: Optional[Decimal] = None,
        request_type_permissions: Optional[RequestTypePermissions] = None
    ) -> ClientRecord:
        """
        Register a new client.

        The organization is created first; linking it to each service desk
        is best-effort, a desk that refuses is logged and skipped.
        """
        name = (name or "").strip()
        if not name:
            raise ClientValidationError('The "name" field is required.')

        organization = await self.gateway.create_organization(name)
        logger.info("Created organization %s for client %s", organization.id, name)
        await self._link_service_desks(organization.id)

        record = ClientRecord(
            key=self.ledger.new_key(),
            organization_id=organization.id,
            name=name,
            service_type=service_type,
            validity_start=validity_start,
            validity_end=validity_end,
            budget=budget,
            sla_penalty_rate=sla_penalty_rate,
            request_type_permissions=request_type_permissions or RequestTypePermissions(),
        )
        return await self.ledger.save(record)

    async def update(self, key: str, changes: Dict[str, Any]) -> ClientRecord:
        record = await self.ledger.get(key)

        rejected = set(changes) - self.EDITABLE_FIELDS
        if rejected:
            raise ClientValidationError(f"Fields not editable: {', '.join(sorted(rejected))}")

        def merge(current: ClientRecord) -> ClientRecord:
            return ClientRecord.model_validate({**current.model_dump(), **changes})

        # Budget may have been debited since the read above
        async with self.ledger.locked(record.organization_id):
            return await self.ledger.modify(key, merge)

    async def get(self, key: str) -> ClientRecord:
        return await self.ledger.get(key)

    async def list(self, limit: Optional[int] = None, cursor: Optional[str] = None) -> ClientPage:
        page = await self.ledger.list(limit, cursor)
        logger.info("Listed %d clients", len(page.records))
        return page

    async def list_request_types(self) -> List[RequestType]:
        desks = await self.gateway.list_service_desks()
        if not desks:
            logger.info("No service desks found")
            return []

        request_types: List[RequestType] = []
        for desk in desks:
            desk_id = str(desk["id"])
            try:
                values = await self.gateway.list_request_types(desk_id)
            except GatewayError as e:
                logger.warning("Could not list request types of service desk %s: %s", desk_id, e)
                continue

            request_types.extend(
                RequestType(
                    id=str(rt["id"]),
                    name=rt.get("name", ""),
                    project_id=str(desk["projectId"]) if desk.get("projectId") else None,
                    project_key=desk.get("projectKey"),
                )
                for rt in values
            )

        logger.info("Found %d request types", len(request_types))
        return request_types

    async def _link_service_desks(self, organization_id: str) -> None:
        try:
            desks = await self.gateway.list_service_desks()
        except GatewayError as e:
            logger.error("Could not list service desks for organization %s: %s", organization_id, e)
            return

        for desk in desks:
            try:
                await self.gateway.associate_organization(str(desk["id"]), organization_id)
                logger.info("Linked organization %s to %s", organization_id, desk.get("projectName", desk["id"]))
            except GatewayError as e:
                logger.error("Could not link organization %s to %s: %s", organization_id, desk["id"], e)
