"""Token broker - acquires the long-lived Flows bearer token.

The helpdesk has no public API for this token, so the broker replays the
web login handshake:

1. GET /idp/login for the ``csrf`` cookie
2. POST /idp/login with the credentials (and POST /idp/2fa when asked)
3. GET /login, following redirects by hand to settle the session
4. GET /app and scrape ``window.CSRF_TOKEN`` from the HTML
5. POST /gorgias-apps/auth; the JSON ``token`` is the bearer

Only the ``session`` cookie is retained afterwards. ``refresh`` repeats
steps 4-5 with that cookie alone.

Outcomes the user can act on (second factor, captcha, SSO-only accounts,
bad credentials, network trouble) come back as ``LoginOutcome`` values.
Protocol breakage and authorization failures raise ``AuthError`` subclasses.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar

import httpx

from ..config import FlowportSettings, settings as default_settings
from ..errors import (
    AuthError,
    HandshakeError,
    SessionExpiredError,
    TransientError,
)
from .cookies import CookieJar
from .session import SESSION_COOKIE, FlowSession
from .tokens import TokenClaims, require_admin, validate_manual_token

logger = logging.getLogger(__name__)

CSRF_COOKIE = "csrf"
CSRF_TOKEN_RE = re.compile(r"""window\.CSRF_TOKEN\s*=\s*["']([^"']+)["']""")
REDIRECT_STATUSES = {301, 302, 303, 307, 308}


class LoginState(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    CSRF_ACQUIRED = "csrf_acquired"
    CREDENTIALS_SUBMITTED = "credentials_submitted"
    TWO_FACTOR_REQUIRED = "two_factor_required"
    TWO_FACTOR_SUBMITTED = "two_factor_submitted"
    SESSION_ESTABLISHED = "session_established"
    BEARER_ACQUIRED = "bearer_acquired"
    SSO_ONLY = "sso_only"
    CAPTCHA_REQUIRED = "captcha_required"
    ACCOUNT_UNACTIVATED = "account_unactivated"
    INVALID_CREDENTIALS = "invalid_credentials"
    TRANSIENT_ERROR = "transient_error"


class LoginOutcome:
    """Base for the tagged results of ``TokenBroker.login``."""

    state: ClassVar[LoginState]
    ok: ClassVar[bool] = False
    # SSO-only and captcha accounts must paste a token by hand instead.
    manual_token_handoff: ClassVar[bool] = False
    message: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.ok,
            "state": self.state.value,
            "message": self.message,
            "manualTokenHandoff": self.manual_token_handoff,
        }


@dataclass
class Success(LoginOutcome):
    session: FlowSession
    message: str = "Successfully connected to Gorgias Flows"

    state = LoginState.BEARER_ACQUIRED
    ok = True

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["subdomain"] = self.session.subdomain
        return data


@dataclass
class TwoFactorRequired(LoginOutcome):
    method: str = "code"
    invalid_code: bool = False
    message: str = "Two-factor authentication required"

    state = LoginState.TWO_FACTOR_REQUIRED

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data.update(
            require_2fa=True,
            require_2fa_code=self.method == "code",
            require_2fa_email=self.method == "email",
            invalid_code=self.invalid_code,
        )
        return data


@dataclass
class CaptchaRequired(LoginOutcome):
    message: str = "reCAPTCHA required. Please use the manual token method."

    state = LoginState.CAPTCHA_REQUIRED
    manual_token_handoff = True


@dataclass
class SsoOnly(LoginOutcome):
    message: str = (
        "This account uses SSO (Google/Microsoft) login. Please use the manual token method."
    )

    state = LoginState.SSO_ONLY
    manual_token_handoff = True


@dataclass
class AccountUnactivated(LoginOutcome):
    message: str = "Account not activated. Please check your email."

    state = LoginState.ACCOUNT_UNACTIVATED


@dataclass
class InvalidCredentials(LoginOutcome):
    message: str = "Invalid email or password"

    state = LoginState.INVALID_CREDENTIALS


@dataclass
class TransientFailure(LoginOutcome):
    """A network failure; the same step can be retried."""

    message: str = "Network error while contacting the helpdesk"
    failed_state: LoginState = LoginState.UNAUTHENTICATED

    state = LoginState.TRANSIENT_ERROR


def scrape_csrf_token(html: str) -> str | None:
    match = CSRF_TOKEN_RE.search(html or "")
    return match.group(1) if match else None


def _json_body(response: httpx.Response) -> dict[str, Any]:
    try:
        data = response.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


@dataclass
class _Handshake:
    """Mutable state for one login attempt."""

    jar: CookieJar = field(default_factory=CookieJar)
    csrf: str = ""
    state: LoginState = LoginState.UNAUTHENTICATED


class TokenBroker:
    """Replays the login handshake for one helpdesk subdomain.

    Usage:
        async with TokenBroker("acme") as broker:
            outcome = await broker.login(email, password)
            if isinstance(outcome, TwoFactorRequired):
                outcome = await broker.login(email, password, two_factor_code="123456")
    """

    def __init__(
        self,
        subdomain: str,
        client: httpx.AsyncClient | None = None,
        config: FlowportSettings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.subdomain = subdomain
        self.config = config or default_settings
        self.base_url = self.config.helpdesk_url(subdomain)
        self._client = client
        self._transport = transport
        self._owns_client = client is None
        self.history: list[LoginState] = []

    async def __aenter__(self) -> "TokenBroker":
        return self

    async def __aexit__(self, *args) -> None:
        await self.close()

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    @property
    def state(self) -> LoginState:
        return self.history[-1] if self.history else LoginState.UNAUTHENTICATED

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.config.http_timeout_seconds,
                follow_redirects=False,
                transport=self._transport,
            )
        return self._client

    def _enter(self, handshake: _Handshake, state: LoginState) -> None:
        logger.debug("Login %s: %s -> %s", self.subdomain, handshake.state.value, state.value)
        handshake.state = state
        self.history.append(state)

    def _url(self, path: str) -> str:
        return f"{self.base_url}{path}"

    def _form_headers(self, csrf: str) -> dict[str, str]:
        return {
            "Content-Type": "application/x-www-form-urlencoded",
            "X-CSRF-Token": csrf,
            "Origin": self.base_url,
            "Referer": self._url("/idp/login"),
        }

    async def _send(
        self,
        method: str,
        url: str,
        jar: CookieJar,
        headers: dict[str, str] | None = None,
        data: dict[str, str] | None = None,
    ) -> httpx.Response:
        """Send one request with the jar's cookies and absorb whatever it sets."""
        request_headers = {"User-Agent": self.config.user_agent, **(headers or {})}
        if len(jar):
            request_headers["Cookie"] = jar.header()
        try:
            response = await self._http().request(method, url, headers=request_headers, data=data)
        except httpx.TransportError as e:
            raise TransientError(f"Network error on {method} {url}: {e}") from e
        jar.absorb(response)
        return response

    async def _follow(self, url: str, jar: CookieJar, max_redirects: int) -> httpx.Response:
        """GET ``url`` following up to ``max_redirects`` hops by hand."""
        response = await self._send("GET", url, jar)
        hops = 0
        while response.status_code in REDIRECT_STATUSES and hops < max_redirects:
            location = response.headers.get("location")
            if not location:
                break
            url = str(httpx.URL(url).join(location))
            hops += 1
            response = await self._send("GET", url, jar)
        return response

    # ------------------------------------------------------------------
    # Login
    # ------------------------------------------------------------------

    async def login(
        self,
        email: str,
        password: str,
        two_factor_code: str | None = None,
    ) -> LoginOutcome:
        """Run the full handshake and return a tagged outcome.

        Raises:
            HandshakeError: The helpdesk did not return an expected artifact.
            InsufficientRoleError: A token was issued without the admin role.
        """
        handshake = _Handshake()
        self.history = [LoginState.UNAUTHENTICATED]

        try:
            await self._acquire_csrf(handshake)
            outcome = await self._submit_credentials(handshake, email, password, two_factor_code)
            if outcome is not None:
                return outcome
            await self._finalize_session(handshake)
            token = await self._exchange_bearer(
                handshake.jar, self.config.login_max_redirects, HandshakeError
            )
        except TransientError as e:
            failed_state = handshake.state
            self._enter(handshake, LoginState.TRANSIENT_ERROR)
            logger.warning("Login %s failed in %s: %s", self.subdomain, failed_state.value, e)
            return TransientFailure(message=e.message, failed_state=failed_state)

        require_admin(TokenClaims.from_token(token))
        self._enter(handshake, LoginState.BEARER_ACQUIRED)
        session = FlowSession(
            subdomain=self.subdomain,
            bearer_token=token,
            session_cookie=handshake.jar.get(SESSION_COOKIE),
            expiry_buffer_seconds=self.config.token_expiry_buffer_seconds,
        )
        logger.info("Acquired Flows bearer token for %s", self.subdomain)
        return Success(session=session)

    async def _acquire_csrf(self, handshake: _Handshake) -> None:
        await self._send("GET", self._url("/idp/login"), handshake.jar)
        csrf = handshake.jar.get(CSRF_COOKIE)
        if not csrf:
            raise HandshakeError("Failed to get CSRF token from Gorgias", status_code=502)
        handshake.csrf = csrf
        self._enter(handshake, LoginState.CSRF_ACQUIRED)

    async def _submit_credentials(
        self,
        handshake: _Handshake,
        email: str,
        password: str,
        two_factor_code: str | None,
    ) -> LoginOutcome | None:
        """POST the credentials. ``None`` means continue to session finalization."""
        response = await self._send(
            "POST",
            self._url("/idp/login"),
            handshake.jar,
            headers=self._form_headers(handshake.csrf),
            data={"email": email, "password": password},
        )
        self._enter(handshake, LoginState.CREDENTIALS_SUBMITTED)

        # A redirect here is the server sending an accepted login onward.
        if response.is_success or response.status_code in REDIRECT_STATUSES:
            handshake.csrf = handshake.jar.get(CSRF_COOKIE) or handshake.csrf
            return None
        if response.status_code >= 500:
            raise TransientError(
                f"Login endpoint returned {response.status_code}",
                response.status_code,
                response.text,
            )

        body = _json_body(response)
        if response.status_code != 400:
            self._enter(handshake, LoginState.INVALID_CREDENTIALS)
            return InvalidCredentials(message=str(body.get("detail") or InvalidCredentials.message))
        return await self._on_login_rejected(handshake, body, two_factor_code)

    async def _on_login_rejected(
        self,
        handshake: _Handshake,
        body: dict[str, Any],
        two_factor_code: str | None,
    ) -> LoginOutcome | None:
        """Dispatch on the structured 400 body of the credentials POST."""
        if body.get("require_2fa_code"):
            self._enter(handshake, LoginState.TWO_FACTOR_REQUIRED)
            if not two_factor_code:
                return TwoFactorRequired(method="code")
            return await self._submit_two_factor(handshake, two_factor_code)

        if body.get("require_2fa_email"):
            self._enter(handshake, LoginState.TWO_FACTOR_REQUIRED)
            return TwoFactorRequired(
                method="email",
                message="Two-factor authentication by email link is not supported. "
                "Please use the manual token method.",
            )

        if body.get("show_recaptcha"):
            self._enter(handshake, LoginState.CAPTCHA_REQUIRED)
            return CaptchaRequired()

        if body.get("user_unactivated"):
            self._enter(handshake, LoginState.ACCOUNT_UNACTIVATED)
            return AccountUnactivated()

        detail = str(body.get("detail") or "")
        if "No password" in detail:
            self._enter(handshake, LoginState.SSO_ONLY)
            return SsoOnly()

        self._enter(handshake, LoginState.INVALID_CREDENTIALS)
        return InvalidCredentials(message=detail or InvalidCredentials.message)

    async def _submit_two_factor(self, handshake: _Handshake, code: str) -> LoginOutcome | None:
        response = await self._send(
            "POST",
            self._url("/idp/2fa"),
            handshake.jar,
            headers=self._form_headers(handshake.csrf),
            data={"code": code},
        )
        if response.status_code >= 500:
            raise TransientError(
                f"2FA endpoint returned {response.status_code}",
                response.status_code,
                response.text,
            )
        if not response.is_success:
            detail = _json_body(response).get("detail")
            self._enter(handshake, LoginState.TWO_FACTOR_REQUIRED)
            return TwoFactorRequired(
                method="code",
                invalid_code=True,
                message=str(detail or "Invalid 2FA code"),
            )

        handshake.csrf = handshake.jar.get(CSRF_COOKIE) or handshake.csrf
        self._enter(handshake, LoginState.TWO_FACTOR_SUBMITTED)
        return None

    async def _finalize_session(self, handshake: _Handshake) -> None:
        await self._follow(self._url("/login"), handshake.jar, self.config.login_max_redirects)
        self._enter(handshake, LoginState.SESSION_ESTABLISHED)

    async def _exchange_bearer(
        self,
        jar: CookieJar,
        max_redirects: int,
        failure: type[AuthError],
    ) -> str:
        """Scrape the page CSRF token and trade it for a bearer token.

        ``failure`` is raised when the page or the exchange shows the session
        is not authenticated.
        """
        page = await self._follow(self._url("/app"), jar, max_redirects)
        if page.status_code >= 500:
            raise TransientError(f"/app returned {page.status_code}", page.status_code)
        if page.status_code != 200:
            raise failure(f"Session expired. /app returned {page.status_code}", status_code=401)

        page_csrf = scrape_csrf_token(page.text)
        if not page_csrf:
            raise failure("Failed to extract CSRF token from Gorgias app page", status_code=401)

        response = await self._send(
            "POST",
            self._url("/gorgias-apps/auth"),
            jar,
            headers={
                "X-CSRF-Token": page_csrf,
                "X-Gorgias-User-Client": "web",
                "Origin": self.base_url,
                "Referer": self._url("/app"),
            },
        )
        if response.status_code in (401, 403):
            raise failure("Session expired. Please login again.", status_code=401)
        if response.status_code >= 500:
            raise TransientError(
                f"Token exchange returned {response.status_code}",
                response.status_code,
                response.text,
            )

        token = _json_body(response).get("token") if response.is_success else None
        if not token:
            raise failure(
                "Failed to get access token from Gorgias",
                status_code=401,
                response=response.text or None,
            )
        return token

    # ------------------------------------------------------------------
    # Refresh and manual hand-off
    # ------------------------------------------------------------------

    async def refresh(self, session: FlowSession) -> FlowSession:
        """Replace ``session.bearer_token`` using only the retained session cookie.

        Raises:
            SessionExpiredError: The cookie no longer authenticates; log in again.
            TransientError: Network failure; the refresh may be retried.
        """
        if not session.session_cookie:
            raise SessionExpiredError("No session data for refresh. Please login again.")

        jar = CookieJar({SESSION_COOKIE: session.session_cookie})
        token = await self._exchange_bearer(
            jar, self.config.refresh_max_redirects, SessionExpiredError
        )
        session.replace_bearer(token)
        rotated = jar.get(SESSION_COOKIE)
        if rotated:
            session.session_cookie = rotated
        logger.info("Refreshed Flows bearer token for %s", session.subdomain)
        return session

    def accept_manual_token(self, token: str, session_cookie: str | None = None) -> FlowSession:
        """Build a session from a token pasted by the user (SSO and captcha accounts)."""
        token = token.strip()
        claims = validate_manual_token(token)
        logger.info(
            "Accepted manual token for %s (account %s, user %s)",
            self.subdomain,
            claims.account_id,
            claims.user_id,
        )
        return FlowSession(
            subdomain=self.subdomain,
            bearer_token=token,
            session_cookie=session_cookie,
            expiry_buffer_seconds=self.config.token_expiry_buffer_seconds,
        )
