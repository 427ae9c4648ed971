"""Authentication - token broker, session object and session storage."""

from .broker import (
    AccountUnactivated,
    CaptchaRequired,
    InvalidCredentials,
    LoginOutcome,
    LoginState,
    SsoOnly,
    Success,
    TokenBroker,
    TransientFailure,
    TwoFactorRequired,
)
from .cookies import CookieJar
from .session import FlowSession, HelpdeskCredentials
from .storage import SessionStore
from .tokens import TokenClaims, decode_claims, validate_manual_token

__all__ = [
    "AccountUnactivated",
    "CaptchaRequired",
    "CookieJar",
    "FlowSession",
    "HelpdeskCredentials",
    "InvalidCredentials",
    "LoginOutcome",
    "LoginState",
    "SessionStore",
    "SsoOnly",
    "Success",
    "TokenBroker",
    "TokenClaims",
    "TransientFailure",
    "TwoFactorRequired",
    "decode_claims",
    "validate_manual_token",
]
