"""Explicit session object passed to every client call."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any

from ..errors import InvalidTokenError
from .tokens import TokenClaims

SESSION_COOKIE = "session"


@dataclass
class HelpdeskCredentials:
    """Basic-auth credentials for the helpdesk REST API."""

    username: str
    api_key: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "HelpdeskCredentials":
        return cls(**data)


@dataclass
class FlowSession:
    """Credential state for one helpdesk account.

    ``bearer_token`` is the long-lived token for the configuration API.
    ``session_cookie`` is the retained ``session`` cookie value; when present
    the bearer can be refreshed without repeating the credential steps.
    """

    subdomain: str
    bearer_token: str
    session_cookie: str | None = None
    helpdesk: HelpdeskCredentials | None = None
    acquired_at: int = field(default_factory=lambda: int(datetime.now().timestamp()))
    expiry_buffer_seconds: int = 300

    @property
    def claims(self) -> TokenClaims:
        try:
            return TokenClaims.from_token(self.bearer_token)
        except InvalidTokenError:
            return TokenClaims()

    @property
    def account_id(self) -> Any:
        return self.claims.account_id

    @property
    def user_id(self) -> Any:
        return self.claims.user_id

    @property
    def roles(self) -> list[str]:
        return self.claims.roles

    @property
    def is_expired(self) -> bool:
        """Check the exp claim, with a buffer. Tokens without exp never expire locally."""
        return self.claims.is_expired(self.expiry_buffer_seconds)

    @property
    def can_refresh(self) -> bool:
        return bool(self.session_cookie)

    def replace_bearer(self, token: str) -> None:
        self.bearer_token = token
        self.acquired_at = int(datetime.now().timestamp())

    def to_dict(self) -> dict[str, Any]:
        return {
            "subdomain": self.subdomain,
            "bearer_token": self.bearer_token,
            "session_cookie": self.session_cookie,
            "helpdesk": self.helpdesk.to_dict() if self.helpdesk else None,
            "acquired_at": self.acquired_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "FlowSession":
        helpdesk = HelpdeskCredentials.from_dict(data["helpdesk"]) if data.get("helpdesk") else None
        return cls(
            subdomain=data["subdomain"],
            bearer_token=data["bearer_token"],
            session_cookie=data.get("session_cookie"),
            helpdesk=helpdesk,
            acquired_at=data.get("acquired_at", int(datetime.now().timestamp())),
        )

    def summary(self) -> dict[str, Any]:
        claims = self.claims
        return {
            "subdomain": self.subdomain,
            "account_id": claims.account_id,
            "user_id": claims.user_id,
            "roles": claims.roles,
            "expires_in_seconds": claims.expires_in_seconds(),
            "can_refresh": self.can_refresh,
            "helpdesk_credentials": self.helpdesk is not None,
        }
