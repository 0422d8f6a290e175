from __future__ import annotations
import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Protocol

from pydantic import BaseModel, Field

from odoolink.connection.models import Session
from odoolink.rpc.client import JsonRpcClient
from odoolink.rpc.errors import LookupResolutionError

logger = logging.getLogger(__name__)

# Odoo x2many write command: replace the whole set with the given ids.
REPLACE_SET_COMMAND = 6


class LookupRef(BaseModel):
    """
    Marks a field value as a display name to be resolved to a remote id.

    many=False → the field receives one id (many2one).
    many=True  → the field receives [[6, 0, ids]] (many2many / one2many).
    """

    resource: str
    display_value: Any = None
    display_values: List[Any] = Field(default_factory=list)
    many: bool = False

    def values(self) -> List[Any]:
        if self.display_values:
            return list(self.display_values)
        return [] if self.display_value is None else [self.display_value]


class FieldEntry(BaseModel):
    """One (name, value) pair of a FieldSet, optionally lookup-qualified."""

    name: str
    value: Any = None
    lookup: Optional[LookupRef] = None


class LookupResolver(Protocol):
    async def resolve(self, resource: str, display_value: Any) -> int:
        ...


class RpcLookupResolver:
    """
    Resolves display names with one name_search round trip per value.

    Exact match (operator "="), first hit wins. No hit → LookupResolutionError.
    """

    def __init__(self, client: JsonRpcClient, session: Session) -> None:
        self._client = client
        self._session = session

    async def resolve(self, resource: str, display_value: Any) -> int:
        matches = await self._client.execute_kw(
            self._session,
            resource,
            "name_search",
            [str(display_value)],
            {"operator": "=", "limit": 1},
        )
        if not matches:
            raise LookupResolutionError(resource, display_value)
        # name_search yields [[id, display_name], ...]
        first = matches[0]
        record_id = first[0] if isinstance(first, (list, tuple)) else first
        logger.debug("Resolved %s %r → %s", resource, display_value, record_id)
        return int(record_id)


class FieldMapper:
    """Turns a FieldSet into the remote system's vals dictionary."""

    def __init__(self, resolver: Optional[LookupResolver] = None) -> None:
        self._resolver = resolver

    async def map(self, entries: Iterable[FieldEntry]) -> Dict[str, Any]:
        vals: Dict[str, Any] = {}
        for entry in entries:
            if entry.name in vals:
                raise ValueError(f"Duplicate field name in field set: {entry.name!r}")
            if entry.lookup is None:
                vals[entry.name] = entry.value
            else:
                vals[entry.name] = await self._resolve(entry.lookup)
        return vals

    async def _resolve(self, lookup: LookupRef) -> Any:
        if self._resolver is None:
            raise ValueError(
                f"Lookup on {lookup.resource!r} requires a lookup resolver"
            )
        ids = [await self._resolver.resolve(lookup.resource, v) for v in lookup.values()]
        if lookup.many:
            return [[REPLACE_SET_COMMAND, 0, ids]]
        if len(ids) != 1:
            raise ValueError(
                f"Single-valued lookup on {lookup.resource!r} needs exactly one display value"
            )
        return ids[0]


def parse_name_value_fields(raw: Any) -> List[FieldEntry]:
    """
    Accept the host's field collection in any of its shapes:

        {"fields": [{"fieldName": "name", "fieldValue": "Acme"}, ...]}
        [{"name": "name", "value": "Acme", "lookup": {...}}, ...]
        {"name": "Acme", "city": "Lyon"}
    """
    if raw is None:
        return []
    if isinstance(raw, Mapping) and "fields" in raw and isinstance(raw["fields"], list):
        return [
            FieldEntry(
                name=item["fieldName"],
                value=item.get("fieldValue"),
                lookup=item.get("lookup"),
            )
            for item in raw["fields"]
        ]
    if isinstance(raw, Mapping):
        return [FieldEntry(name=k, value=v) for k, v in raw.items()]
    return [
        item if isinstance(item, FieldEntry) else FieldEntry.model_validate(item)
        for item in raw
    ]
