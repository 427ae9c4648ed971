"""Per-process state for the web surface: the session registry and client factories."""

from __future__ import annotations

import secrets
from dataclasses import dataclass, field

import httpx
from fastapi import Depends, Request

from ..api import FlowsClient, HelpCenterClient, HelpCenterToken, HelpdeskClient, TextGenerator
from ..auth.broker import TokenBroker
from ..auth.session import FlowSession
from ..config import FlowportSettings, settings
from ..errors import SessionExpiredError


class SessionRegistry:
    """In-memory sessions keyed by an opaque browser cookie value.

    Requests that share a session share one ``FlowSession`` object, so two
    concurrent refreshes may race; the later token wins.
    """

    def __init__(self):
        self._sessions: dict[str, FlowSession] = {}

    def create(self, session: FlowSession) -> str:
        session_id = secrets.token_urlsafe(32)
        self._sessions[session_id] = session
        return session_id

    def get(self, session_id: str | None) -> FlowSession | None:
        if not session_id:
            return None
        return self._sessions.get(session_id)

    def replace(self, session_id: str, session: FlowSession) -> None:
        self._sessions[session_id] = session

    def discard(self, session_id: str | None) -> None:
        if session_id:
            self._sessions.pop(session_id, None)

    def __len__(self) -> int:
        return len(self._sessions)


@dataclass
class WebContext:
    config: FlowportSettings = field(default_factory=lambda: settings)
    registry: SessionRegistry = field(default_factory=SessionRegistry)
    # Injected in tests; None means real network.
    transport: httpx.AsyncBaseTransport | None = None

    def broker(self, subdomain: str) -> TokenBroker:
        return TokenBroker(subdomain, config=self.config, transport=self.transport)

    def flows_client(self, session: FlowSession, broker: TokenBroker | None = None) -> FlowsClient:
        return FlowsClient(session, broker=broker, config=self.config, transport=self.transport)

    def target_client(self, token: str, subdomain: str | None = None) -> FlowsClient:
        return FlowsClient.for_token(
            token.strip(), subdomain=subdomain or "target", config=self.config, transport=self.transport
        )

    def helpdesk(self, session: FlowSession) -> HelpdeskClient:
        return HelpdeskClient(session.subdomain, session.helpdesk, config=self.config, transport=self.transport)

    def help_center(self, token: HelpCenterToken) -> HelpCenterClient:
        return HelpCenterClient(token, config=self.config, transport=self.transport)

    def text_generator(self) -> TextGenerator:
        return TextGenerator(config=self.config, transport=self.transport)

    def session_id(self, request: Request) -> str | None:
        return request.cookies.get(self.config.web_cookie_name)

    def current_session(self, request: Request) -> FlowSession:
        session = self.registry.get(self.session_id(request))
        if session is None:
            raise SessionExpiredError("Not authenticated")
        return session


context = WebContext()


def get_context() -> WebContext:
    return context


def get_session(request: Request, ctx: WebContext = Depends(get_context)) -> FlowSession:
    return ctx.current_session(request)
