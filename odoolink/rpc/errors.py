from __future__ import annotations
from typing import Any, Dict, Optional


class OdooLinkError(Exception):
    """Base class for every error raised by the connector."""


class TransportError(OdooLinkError):
    """Network, HTTP status or body-decoding failure. Never retried."""

    def __init__(self, message: str, status: int = 0) -> None:
        super().__init__(message)
        self.status = status


class RemoteFault(OdooLinkError):
    """
    The remote system answered with a JSON-RPC ``error`` object.

    ``message`` prefers ``error.data.message`` (the server-side exception text)
    over the generic ``error.message`` ("Odoo Server Error"). ``data`` keeps the
    whole payload, including the remote ``debug`` traceback.
    """

    def __init__(
        self,
        message: str,
        code: Optional[int] = None,
        data: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.data = data or {}

    @classmethod
    def from_error(cls, error: Any) -> "RemoteFault":
        if not isinstance(error, dict):
            return cls(str(error))
        data = error.get("data")
        if not isinstance(data, dict):
            data = {"raw": data} if data else {}
        message = data.get("message") or error.get("message") or "Remote error"
        return cls(message, code=error.get("code"), data=data)


class AuthenticationError(RemoteFault):
    """Login did not yield a user id."""


class NotFoundError(OdooLinkError):
    """An expected record is absent (the remote API returns empty, not an error)."""


class LookupResolutionError(NotFoundError):
    """A lookup field's display value matched no remote record."""

    def __init__(self, resource: str, display_value: Any) -> None:
        super().__init__(
            f"No {resource} record named {display_value!r}"
        )
        self.resource = resource
        self.display_value = display_value
