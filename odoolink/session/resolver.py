from __future__ import annotations
import logging
from typing import Optional
from urllib.parse import urlparse

from odoolink.connection.models import ConnectionCredentials, Session
from odoolink.rpc.client import JsonRpcClient
from odoolink.rpc.errors import AuthenticationError

logger = logging.getLogger(__name__)


def resolve_database_name(db: Optional[str], url: str) -> str:
    """
    Return the database to log into.

    An explicitly configured name always wins. Otherwise fall back to the url
    host: lower-cased, leading "www." removed, first label kept
    ("https://www.Acme.odoo.com" → "acme"). This matches hosted deployments
    named after their database and nothing else; self-hosted servers should
    set db explicitly.
    """
    if db:
        return db
    host = (urlparse(url).hostname or "").lower()
    if not host:
        raise ValueError(f"Cannot derive a database name from url {url!r}")
    if host.startswith("www."):
        host = host[4:]
    return host.split(".")[0]


class SessionResolver:
    """Authenticates a username/password pair into a Session, once per batch."""

    def __init__(self, client: JsonRpcClient) -> None:
        self._client = client

    async def authenticate(
        self, database: str, username: str, password: str, url: str
    ) -> int:
        """
        Log in through common.login and return the numeric user id.

        Remote errors (unknown database, ...) pass through as RemoteFault.
        A falsy answer (the remote's reply to bad credentials) raises
        AuthenticationError.
        """
        user_id = await self._client.call("common", "login", [database, username, password])
        if not user_id:
            raise AuthenticationError(
                f"Authentication failed for user {username!r} on database {database!r} ({url})"
            )
        return int(user_id)

    async def open_session(self, credentials: ConnectionCredentials) -> Session:
        database = resolve_database_name(credentials.db, credentials.url)
        user_id = await self.authenticate(
            database, credentials.username, credentials.password, credentials.url
        )
        logger.info(
            "Authenticated %s on %s (db=%s, uid=%d)",
            credentials.username, credentials.url, database, user_id,
        )
        return Session(
            database=database,
            user_id=user_id,
            password=credentials.password,
            url=credentials.url,
        )
