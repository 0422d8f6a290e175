from __future__ import annotations
import os
from dataclasses import dataclass
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ConnectionCredentials(BaseModel):
    """
    What the host's credential store hands over for one invocation.

    Immutable. ``db`` is optional: when missing, the session resolver falls
    back to deriving it from the url host.
    """

    model_config = ConfigDict(frozen=True)

    url: str
    username: str
    password: str = Field(repr=False)
    db: Optional[str] = None

    @field_validator("url")
    @classmethod
    def _strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")


class ConnectionProfile(BaseModel):
    """
    Named connection definition, loaded from YAML by ConnectionRegistry.

    password_ref follows the same convention as a connector credential_ref:
    'env://VAR_NAME' reads the environment, anything else is a literal
    (dev/demo mode).
    """

    name: str
    url: str
    username: str
    password_ref: str = ""
    db: Optional[str] = None

    timeout_seconds: float = Field(default=30.0, gt=0)

    # 0 → return-all issues one unbounded search_read.
    # >0 → search_count first, then batches of page_size.
    page_size: int = Field(default=0, ge=0)

    # Module whose presence unlocks the workflow operation in option lists.
    # None → workflow is always offered.
    workflow_addon: Optional[str] = None

    def resolve_password(self) -> str:
        ref = self.password_ref
        if ref.startswith("env://"):
            return os.environ.get(ref[6:], "")
        return ref

    def to_credentials(self) -> ConnectionCredentials:
        return ConnectionCredentials(
            url=self.url,
            db=self.db,
            username=self.username,
            password=self.resolve_password(),
        )


@dataclass(frozen=True)
class Session:
    """
    Authenticated, request-scoped session.

    Built once per invocation batch by SessionResolver.open_session() and
    threaded explicitly through every executor call. Never cached.
    """

    database: str
    user_id: int
    password: str
    url: str

    def __repr__(self) -> str:
        return f"Session(database={self.database!r}, user_id={self.user_id}, url={self.url!r})"
