from __future__ import annotations
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

from opentelemetry import trace
from pydantic import BaseModel, Field, field_validator

from odoolink.connection.models import Session
from odoolink.mapping.fields import (
    FieldEntry,
    FieldMapper,
    RpcLookupResolver,
    parse_name_value_fields,
)
from odoolink.mapping.filters import FilterExpression, coerce_filter
from odoolink.rpc.client import JsonRpcClient
from odoolink.rpc.errors import NotFoundError

logger = logging.getLogger(__name__)
tracer = trace.get_tracer("odoolink.executor")

Record = Dict[str, Any]


class Operation(str, Enum):
    CREATE = "create"
    GET = "get"
    GET_ALL = "getAll"
    UPDATE = "update"
    DELETE = "delete"
    WORKFLOW = "workflow"


class OperationRequest(BaseModel):
    """
    One invocation item as handed over by the host.

    fields accepts the host's name/value collection as well as FieldEntry
    dicts; filter accepts ready-made domain terms or the host's filter
    collection (see coerce_filter).
    """

    resource: str
    operation: Operation
    record_id: Optional[int] = None
    fields: List[FieldEntry] = Field(default_factory=list)
    fields_list: List[str] = Field(default_factory=list)
    filter: FilterExpression = Field(default_factory=FilterExpression)
    return_all: bool = False
    offset: int = Field(default=0, ge=0)
    limit: int = Field(default=50, ge=1)
    method: Optional[str] = None

    @field_validator("fields", mode="before")
    @classmethod
    def _parse_fields(cls, v: Any) -> List[FieldEntry]:
        return parse_name_value_fields(v)

    @field_validator("filter", mode="before")
    @classmethod
    def _parse_filter(cls, v: Any) -> FilterExpression:
        return coerce_filter(v)


# ---------------------------------------------------------------------------
# Call shapes
# ---------------------------------------------------------------------------

ArgsKwargs = Tuple[List[Any], Dict[str, Any]]


@dataclass(frozen=True)
class CallShape:
    """
    How one remote sub-method wants its execute_kw arguments.

    method=None means the model method is named by the caller (workflow).
    """

    method: Optional[str]
    build: Callable[..., ArgsKwargs]


def _fields_kw(fields: List[str]) -> Dict[str, Any]:
    return {"fields": list(fields)} if fields else {}


def _search_read_args(
    domain: List[Any],
    fields: List[str],
    offset: int = 0,
    limit: Optional[int] = None,
) -> ArgsKwargs:
    kwargs = _fields_kw(fields)
    if offset:
        kwargs["offset"] = offset
    if limit is not None:
        kwargs["limit"] = limit
    return [domain], kwargs


CALL_SHAPES: Dict[str, CallShape] = {
    "create": CallShape("create", lambda vals: ([vals], {})),
    "read": CallShape("read", lambda record_id, fields: ([[record_id]], _fields_kw(fields))),
    "search_read": CallShape("search_read", _search_read_args),
    "search_count": CallShape("search_count", lambda domain: ([domain], {})),
    "write": CallShape("write", lambda record_id, vals: ([[record_id], vals], {})),
    "unlink": CallShape("unlink", lambda record_id: ([[record_id]], {})),
    "workflow": CallShape(None, lambda record_id: ([record_id], {})),
}


# ---------------------------------------------------------------------------
# Executor
# ---------------------------------------------------------------------------

class OperationExecutor:
    """
    One routine per verb, each a single remote call (plus lookups / paging).

    Holds no state besides the batch's Session; the host loop lives in
    odoolink.runner.batch.
    """

    def __init__(
        self,
        client: JsonRpcClient,
        session: Session,
        field_mapper: Optional[FieldMapper] = None,
        page_size: int = 0,
    ) -> None:
        self._client = client
        self._session = session
        self._mapper = field_mapper or FieldMapper(RpcLookupResolver(client, session))
        self._page_size = page_size
        self._handlers: Dict[Operation, Callable[[OperationRequest], Any]] = {
            Operation.CREATE: self._run_create,
            Operation.GET: self._run_get,
            Operation.GET_ALL: self._run_get_all,
            Operation.UPDATE: self._run_update,
            Operation.DELETE: self._run_delete,
            Operation.WORKFLOW: self._run_workflow,
        }

    async def execute(self, request: OperationRequest) -> List[Record]:
        with tracer.start_as_current_span(
            f"executor.{request.operation.value}",
            attributes={"odoo.resource": request.resource},
        ):
            return await self._handlers[request.operation](request)

    async def _call(self, shape_key: str, resource: str, *args: Any, method: Optional[str] = None) -> Any:
        shape = CALL_SHAPES[shape_key]
        call_args, kwargs = shape.build(*args)
        return await self._client.execute_kw(
            self._session, resource, method or shape.method, call_args, kwargs,
        )

    # ------------------------------------------------------------------
    # Verbs
    # ------------------------------------------------------------------

    async def create(self, resource: str, fields: List[FieldEntry]) -> List[Record]:
        vals = await self._mapper.map(fields)
        new_id = await self._call("create", resource, vals)
        if not new_id:
            raise NotFoundError(f"{resource}.create returned no record id")
        logger.debug("Created %s id=%s", resource, new_id)
        return [{"id": new_id}]

    async def get(
        self, resource: str, record_id: int, fields_list: Optional[List[str]] = None
    ) -> List[Record]:
        records = await self._call("read", resource, record_id, fields_list or [])
        if not records:
            raise NotFoundError(f"{resource} record {record_id} not found")
        return list(records)

    async def get_all(
        self,
        resource: str,
        filter_expr: Optional[FilterExpression] = None,
        fields_list: Optional[List[str]] = None,
        return_all: bool = False,
        offset: int = 0,
        limit: int = 50,
    ) -> List[Record]:
        domain = (filter_expr or FilterExpression()).to_domain()
        fields = fields_list or []
        if not return_all:
            return list(await self._call("search_read", resource, domain, fields, offset, limit) or [])
        if self._page_size <= 0:
            return list(await self._call("search_read", resource, domain, fields) or [])
        return await self._get_all_paged(resource, domain, fields)

    async def _get_all_paged(
        self, resource: str, domain: List[Any], fields: List[str]
    ) -> List[Record]:
        total = await self._call("search_count", resource, domain)
        records: List[Record] = []
        offset = 0
        while offset < total:
            batch = await self._call(
                "search_read", resource, domain, fields, offset, self._page_size,
            )
            if not batch:
                break
            records.extend(batch)
            offset += self._page_size
        logger.debug("Fetched %d/%d %s records in pages of %d",
                     len(records), total, resource, self._page_size)
        return records

    async def update(
        self, resource: str, record_id: int, fields: List[FieldEntry]
    ) -> List[Record]:
        if not fields:
            raise ValueError("Specify at least one field to update")
        vals = await self._mapper.map(fields)
        ok = await self._call("write", resource, record_id, vals)
        if not ok:
            raise NotFoundError(f"{resource} record {record_id} not updated")
        return [{**vals, "id": record_id}]

    async def delete(self, resource: str, record_id: int) -> List[Record]:
        ok = await self._call("unlink", resource, record_id)
        if not ok:
            raise NotFoundError(f"{resource} record {record_id} not deleted")
        return [{"id": record_id, "success": True}]

    async def workflow(self, resource: str, record_id: int, method: str) -> List[Record]:
        result = await self._call("workflow", resource, record_id, method=method)
        return _normalize_method_result(record_id, result)

    # ------------------------------------------------------------------
    # Request adapters
    # ------------------------------------------------------------------

    async def _run_create(self, req: OperationRequest) -> List[Record]:
        return await self.create(req.resource, req.fields)

    async def _run_get(self, req: OperationRequest) -> List[Record]:
        return await self.get(req.resource, _require_id(req), req.fields_list)

    async def _run_get_all(self, req: OperationRequest) -> List[Record]:
        return await self.get_all(
            req.resource, req.filter, req.fields_list, req.return_all, req.offset, req.limit,
        )

    async def _run_update(self, req: OperationRequest) -> List[Record]:
        return await self.update(req.resource, _require_id(req), req.fields)

    async def _run_delete(self, req: OperationRequest) -> List[Record]:
        return await self.delete(req.resource, _require_id(req))

    async def _run_workflow(self, req: OperationRequest) -> List[Record]:
        if not req.method:
            raise ValueError("Workflow operation requires a method name")
        return await self.workflow(req.resource, _require_id(req), req.method)


def _require_id(req: OperationRequest) -> int:
    if req.record_id is None:
        raise ValueError(f"Operation {req.operation.value!r} requires a record id")
    return req.record_id


def _normalize_method_result(record_id: int, result: Any) -> List[Record]:
    """
    Flatten whatever a model method returned into records.

    None / booleans / empty containers carry no payload → [{"id": record_id}].
    """
    if result is None or isinstance(result, bool) or result in ({}, []):
        return [{"id": record_id}]
    if isinstance(result, dict):
        return [result]
    if isinstance(result, list) and all(isinstance(r, dict) for r in result):
        return list(result)
    return [{"id": record_id, "result": result}]
