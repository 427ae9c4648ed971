"""Bearer token inspection.

Tokens are decoded without verifying the signature. The claims are used for
user-facing checks only (admin role, account id, expiry); the configuration
API is the authority on whether a token is valid.
"""

from __future__ import annotations

import base64
import binascii
import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from ..errors import InsufficientRoleError, InvalidTokenError

JWT_PREFIX = "eyJ"
ADMIN_ROLE = "admin"


def _b64url_decode(data: str) -> bytes:
    padding = "=" * ((4 - (len(data) % 4)) % 4)
    return base64.urlsafe_b64decode((data + padding).encode("utf-8"))


def looks_like_jwt(token: str | None) -> bool:
    return bool(token) and token.startswith(JWT_PREFIX) and token.count(".") == 2


def decode_claims(token: str) -> dict[str, Any]:
    """Decode the payload segment of a JWT."""
    if not looks_like_jwt(token):
        raise InvalidTokenError('Invalid Long JWT format. Token should start with "eyJ"')

    try:
        payload = json.loads(_b64url_decode(token.split(".")[1]))
    except (binascii.Error, UnicodeDecodeError, ValueError) as e:
        raise InvalidTokenError(f"Could not decode token payload: {e}") from e

    if not isinstance(payload, dict):
        raise InvalidTokenError("Token payload is not an object")
    return payload


@dataclass
class TokenClaims:
    """The claims Flowport cares about."""

    account_id: Any = None
    user_id: Any = None
    roles: list[str] = field(default_factory=list)
    exp: int | None = None
    raw: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_token(cls, token: str) -> "TokenClaims":
        payload = decode_claims(token)
        roles = payload.get("roles") or []
        if isinstance(roles, str):
            roles = [roles]
        exp = payload.get("exp")
        return cls(
            account_id=payload.get("account_id"),
            user_id=payload.get("user_id", payload.get("sub")),
            roles=[str(role) for role in roles],
            exp=int(exp) if isinstance(exp, (int, float)) else None,
            raw=payload,
        )

    @property
    def is_admin(self) -> bool:
        return ADMIN_ROLE in self.roles

    def expires_in_seconds(self) -> int | None:
        if self.exp is None:
            return None
        return int(self.exp - datetime.now().timestamp())

    def is_expired(self, buffer_seconds: int = 0) -> bool:
        """True once ``exp`` (minus ``buffer_seconds``) has passed. No exp means never."""
        if self.exp is None:
            return False
        return datetime.now().timestamp() > (self.exp - buffer_seconds)


def require_admin(claims: TokenClaims) -> TokenClaims:
    if not claims.is_admin:
        raise InsufficientRoleError(
            claims.roles,
            "Admin role required. Your account does not have admin privileges for Flows API access.",
        )
    return claims


def validate_manual_token(token: str) -> TokenClaims:
    """Checks applied to a pasted bearer token.

    It must decode, carry an account id, not be expired and hold the admin
    role.
    """
    token = (token or "").strip()
    claims = TokenClaims.from_token(token)
    if not claims.account_id:
        raise InvalidTokenError("Invalid JWT: account_id not found in token")
    if claims.is_expired():
        raise InvalidTokenError("This JWT has expired. Please get a fresh token.")
    return require_admin(claims)
