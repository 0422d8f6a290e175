from __future__ import annotations
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Iterable, List, Optional, Union

from odoolink.connection.models import ConnectionCredentials
from odoolink.executors.operations import OperationExecutor, OperationRequest, Record
from odoolink.mapping.fields import FieldMapper
from odoolink.rpc.client import JsonRpcClient
from odoolink.session.resolver import SessionResolver

logger = logging.getLogger(__name__)

BatchItem = Union[OperationRequest, dict]


@dataclass
class ItemOutcome:
    """Result-or-error for one input item."""

    index: int
    operation: str = ""
    records: List[Record] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


async def fold_items(
    items: Iterable[Any],
    step: Callable[[Any], Awaitable[List[Record]]],
    continue_on_fail: bool = False,
) -> List[ItemOutcome]:
    """
    Sequential fold: item N's step completes before item N+1 starts.

    With continue_on_fail, a failing item becomes an error outcome and the
    fold goes on; otherwise the first exception propagates unchanged.
    """
    outcomes: List[ItemOutcome] = []
    for index, item in enumerate(items):
        operation = _operation_name(item)
        try:
            records = await step(item)
        except Exception as exc:
            if not continue_on_fail:
                raise
            logger.warning("Item %d (%s) failed: %s", index, operation, exc)
            outcomes.append(ItemOutcome(index=index, operation=operation, error=str(exc)))
            continue
        outcomes.append(ItemOutcome(index=index, operation=operation, records=records))
    return outcomes


def flatten(outcomes: Iterable[ItemOutcome]) -> List[Record]:
    """Concatenate every item's records; failed items become {"error": message}."""
    output: List[Record] = []
    for outcome in outcomes:
        if outcome.ok:
            output.extend(outcome.records)
        else:
            output.append({"error": outcome.error})
    return output


async def execute_batch(
    credentials: ConnectionCredentials,
    items: Iterable[BatchItem],
    continue_on_fail: bool = False,
    client: Optional[JsonRpcClient] = None,
    page_size: int = 0,
    field_mapper: Optional[FieldMapper] = None,
) -> List[ItemOutcome]:
    """
    Authenticate once, then run every item against the same session.

    Authentication failure propagates before any item is attempted,
    regardless of continue_on_fail.
    """
    rpc = client or JsonRpcClient(credentials.url)
    try:
        session = await SessionResolver(rpc).open_session(credentials)
        executor = OperationExecutor(rpc, session, field_mapper=field_mapper, page_size=page_size)

        async def step(item: BatchItem) -> List[Record]:
            request = item if isinstance(item, OperationRequest) else OperationRequest.model_validate(item)
            return await executor.execute(request)

        outcomes = await fold_items(items, step, continue_on_fail)
    finally:
        if client is None:
            await rpc.close()

    failed = sum(1 for o in outcomes if not o.ok)
    logger.info("Batch finished: %d item(s), %d failed", len(outcomes), failed)
    return outcomes


async def run_batch(
    credentials: ConnectionCredentials,
    items: Iterable[BatchItem],
    continue_on_fail: bool = False,
    client: Optional[JsonRpcClient] = None,
    page_size: int = 0,
    field_mapper: Optional[FieldMapper] = None,
) -> List[Record]:
    outcomes = await execute_batch(
        credentials, items, continue_on_fail, client, page_size, field_mapper,
    )
    return flatten(outcomes)


def _operation_name(item: Any) -> str:
    if isinstance(item, OperationRequest):
        return item.operation.value
    if isinstance(item, dict):
        return str(item.get("operation", ""))
    return ""
