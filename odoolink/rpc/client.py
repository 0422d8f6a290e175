from __future__ import annotations
import asyncio
import logging
import random
from typing import Any, Dict, List, Optional

import aiohttp
from opentelemetry import trace

from odoolink.connection.models import Session
from odoolink.rpc.errors import RemoteFault, TransportError

logger = logging.getLogger(__name__)
tracer = trace.get_tracer("odoolink.rpc")


def build_payload(service: str, method: str, args: List[Any]) -> Dict[str, Any]:
    """
    Wrap a remote call in a JSON-RPC 2.0 envelope.

    The id only correlates request and response; it carries no idempotence
    meaning, so a random small integer is enough.
    """
    return {
        "jsonrpc": "2.0",
        "method": "call",
        "params": {"service": service, "method": method, "args": args},
        "id": random.randint(1, 1_000_000),
    }


class JsonRpcClient:
    """
    JSON-RPC 2.0 client for one remote endpoint (<url>/jsonrpc).

    - One POST per call, no retry: a failed attempt surfaces immediately.
    - Shared aiohttp.ClientSession (created lazily, closed by close() only
      when this client created it).
    - OpenTelemetry span per call.

    Errors:
        TransportError: connection failure, timeout, HTTP >= 400, bad JSON.
        RemoteFault: the body carries a JSON-RPC ``error`` object.
    """

    RPC_PATH = "/jsonrpc"

    def __init__(
        self,
        url: str,
        timeout_seconds: float = 30.0,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        self.url = url.rstrip("/")
        self._timeout_seconds = timeout_seconds
        self._session = session
        self._own_session = session is None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self._timeout_seconds)
            )
            self._own_session = True
        return self._session

    async def close(self) -> None:
        if self._own_session and self._session and not self._session.closed:
            await self._session.close()

    async def __aenter__(self) -> "JsonRpcClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Wire
    # ------------------------------------------------------------------

    async def send(self, payload: Dict[str, Any]) -> Any:
        """POST one envelope and return its ``result`` field."""
        params = payload.get("params", {})
        endpoint = self.url + self.RPC_PATH
        with tracer.start_as_current_span(
            f"rpc.{params.get('service')}.{params.get('method')}",
            attributes={"rpc.endpoint": endpoint, "rpc.request_id": payload.get("id", 0)},
        ) as span:
            session = await self._get_session()
            try:
                async with session.post(endpoint, json=payload) as resp:
                    if resp.status >= 400:
                        text = await resp.text()
                        span.set_attribute("rpc.http_status", resp.status)
                        raise TransportError(
                            f"HTTP {resp.status} from {endpoint}: {text[:200]}",
                            status=resp.status,
                        )
                    body = await resp.json(content_type=None)
            except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
                raise TransportError(
                    f"Request to {endpoint} failed: {exc or type(exc).__name__}"
                ) from exc
            except ValueError as exc:
                raise TransportError(f"Invalid JSON from {endpoint}: {exc}") from exc

            if not isinstance(body, dict):
                raise TransportError(f"Unexpected JSON-RPC body from {endpoint}: {body!r}")

            error = body.get("error")
            if error:
                span.set_attribute("rpc.fault", True)
                raise RemoteFault.from_error(error)
            return body.get("result")

    async def call(self, service: str, method: str, args: List[Any]) -> Any:
        return await self.send(build_payload(service, method, args))

    async def execute_kw(
        self,
        session: Session,
        model: str,
        method: str,
        args: List[Any],
        kwargs: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """
        Invoke model.method through object.execute_kw.

        kwargs are appended only when non-empty, so the argument list is
        [db, uid, password, model, method, args] for plain calls.
        """
        call_args: List[Any] = [
            session.database, session.user_id, session.password, model, method, args,
        ]
        if kwargs:
            call_args.append(kwargs)
        logger.debug("execute_kw %s.%s uid=%s", model, method, session.user_id)
        return await self.call("object", "execute_kw", call_args)
