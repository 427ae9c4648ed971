"""Exception types shared by the broker, API clients and migration service."""

from __future__ import annotations

from typing import Any


class FlowportError(Exception):
    """Base exception for Flowport errors."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        response: Any = None,
    ):
        self.message = message
        self.status_code = status_code
        self.response = response
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"error": self.message}
        if self.response is not None:
            data["details"] = self.response
        return data


class AuthError(FlowportError):
    """Authentication or authorization failure.

    ``requires_reauth`` tells the caller whether the only way forward is a
    fresh login (True) or whether the current credentials may still work.
    """

    requires_reauth = True

    def __init__(
        self,
        message: str,
        status_code: int | None = 401,
        response: Any = None,
        requires_reauth: bool | None = None,
    ):
        super().__init__(message, status_code, response)
        if requires_reauth is not None:
            self.requires_reauth = requires_reauth

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["requireReauth"] = self.requires_reauth
        return data


class SessionExpiredError(AuthError):
    """The retained session cookie no longer authenticates."""


class BearerExpiredError(AuthError):
    """The bearer token was rejected by the configuration API."""

    requires_reauth = False


class InsufficientRoleError(AuthError):
    """A token was issued but lacks the admin role."""

    def __init__(self, roles: list[str] | None = None, message: str | None = None):
        self.roles = list(roles or [])
        super().__init__(
            message or "Admin role required for Flows API access",
            status_code=403,
            response={"roles": self.roles},
        )


class HandshakeError(AuthError):
    """The login handshake did not produce an expected artifact."""


class InvalidTokenError(AuthError):
    """A bearer token could not be decoded or is missing required claims."""

    def __init__(self, message: str, response: Any = None):
        super().__init__(message, status_code=400, response=response)


class TransientError(FlowportError):
    """Network-level failure. The same step may be retried."""


class APIError(FlowportError):
    """A remote API returned an error status. ``response`` holds the raw body."""


class RateLimitError(APIError):
    """Rate limit exceeded."""
