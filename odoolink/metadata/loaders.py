from __future__ import annotations
import logging
import xml.etree.ElementTree as ET
from typing import Any, Dict, List, Optional

from pydantic import BaseModel

from odoolink.connection.models import ConnectionCredentials, Session
from odoolink.rpc.client import JsonRpcClient
from odoolink.session.resolver import SessionResolver

logger = logging.getLogger(__name__)


class OptionItem(BaseModel):
    name: str
    value: Any
    description: str = ""


CRUD_OPERATIONS: List[OptionItem] = [
    OptionItem(name="Create", value="create", description="Create a new item"),
    OptionItem(name="Delete", value="delete", description="Delete an item"),
    OptionItem(name="Get", value="get", description="Get an item"),
    OptionItem(name="Get Many", value="getAll", description="Get all items"),
    OptionItem(name="Update", value="update", description="Update an item"),
]
WORKFLOW_OPERATION = OptionItem(
    name="Workflow", value="workflow", description="Trigger a workflow action",
)


def _sorted(options: List[OptionItem]) -> List[OptionItem]:
    return sorted(options, key=lambda o: o.name.lower())


def _object_buttons(arch: str) -> List[OptionItem]:
    if not arch:
        return []
    found: Dict[str, OptionItem] = {}
    for button in ET.fromstring(arch).iter("button"):
        method = button.get("name") or ""
        if button.get("type") != "object" or not method or method.startswith("_"):
            continue
        found.setdefault(method, OptionItem(
            name=button.get("string") or method, value=method, description=f"Method: {method}",
        ))
    return list(found.values())


class MetadataLoader:
    """
    Read-only listings used to populate selectable options.

    Independent of the execution flow: every public method opens its own
    session (authenticate, then one call), so the loader can be used before
    any batch runs.
    """

    def __init__(
        self,
        credentials: ConnectionCredentials,
        client: Optional[JsonRpcClient] = None,
    ) -> None:
        self._credentials = credentials
        self._client = client or JsonRpcClient(credentials.url)

    async def close(self) -> None:
        await self._client.close()

    async def _session(self) -> Session:
        return await SessionResolver(self._client).open_session(self._credentials)

    async def _search_read(
        self, model: str, domain: List[Any], fields: List[str]
    ) -> List[Dict[str, Any]]:
        session = await self._session()
        return await self._client.execute_kw(
            session, model, "search_read", [domain], {"fields": fields},
        ) or []

    # ------------------------------------------------------------------
    # Listings
    # ------------------------------------------------------------------

    async def list_models(self) -> List[OptionItem]:
        rows = await self._search_read("ir.model", [], ["name", "model", "modules"])
        return _sorted([
            OptionItem(
                name=row["name"],
                value=row["model"],
                description=f"Model: {row['model']}, Modules: {row.get('modules') or ''}",
            )
            for row in rows
        ])

    async def list_model_fields(self, resource: str) -> List[OptionItem]:
        if not resource:
            return []
        session = await self._session()
        response = await self._client.execute_kw(
            session, resource, "fields_get", [],
            {"attributes": ["string", "type", "help", "required", "name"]},
        ) or {}
        return _sorted([
            OptionItem(
                name=meta.get("string") or key,
                value=key,
                description=(
                    f"name: {meta.get('string')}, type: {meta.get('type')}, "
                    f"required: {meta.get('required')}"
                ),
            )
            for key, meta in response.items()
        ])

    async def list_actions(self, resource: str) -> List[OptionItem]:
        """
        Object buttons on the model's form view.

        Each value is a public model method (action_confirm, button_validate)
        that the workflow operation can call as-is.
        """
        if not resource:
            return []
        session = await self._session()
        response = await self._client.execute_kw(
            session, resource, "get_views", [[[False, "form"]]],
        ) or {}
        form = (response.get("views") or {}).get("form") or {}
        return _sorted(_object_buttons(form.get("arch") or ""))

    async def list_countries(self) -> List[OptionItem]:
        rows = await self._search_read("res.country", [], ["id", "name"])
        return _sorted([OptionItem(name=row["name"], value=row["id"]) for row in rows])

    async def list_states(self) -> List[OptionItem]:
        rows = await self._search_read("res.country.state", [], ["id", "name"])
        return _sorted([OptionItem(name=row["name"], value=row["id"]) for row in rows])

    async def is_addon_installed(self, addon: str) -> bool:
        session = await self._session()
        count = await self._client.execute_kw(
            session, "ir.module.module", "search_count",
            [[["name", "=", addon], ["state", "=", "installed"]]],
        )
        return bool(count)

    async def list_operations(self, workflow_addon: Optional[str] = None) -> List[OptionItem]:
        """
        CRUD operations, plus workflow when no addon gates it or the gating
        addon is installed. Not sorted: the order is the presentation order.
        """
        operations = list(CRUD_OPERATIONS)
        if workflow_addon is None or await self.is_addon_installed(workflow_addon):
            operations.append(WORKFLOW_OPERATION)
        else:
            logger.info("Addon %s not installed; workflow operation hidden", workflow_addon)
        return operations
