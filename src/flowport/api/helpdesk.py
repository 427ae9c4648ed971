"""Helpdesk REST API client (Basic auth: username + API key).

Covers the ticket, tag and integration endpoints, plus the exchange of Basic
credentials for a short-lived help-center token.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any

import httpx

from ..auth.session import HelpdeskCredentials
from ..config import FlowportSettings, settings as default_settings
from ..errors import APIError, AuthError
from .client import raise_for_api_status, response_body, send

logger = logging.getLogger(__name__)

DEFAULT_TOKEN_TTL = 3600


class HelpdeskAuthError(AuthError):
    """Basic credentials were rejected."""

    requires_reauth = False


@dataclass
class HelpCenterToken:
    """Short-lived bearer for the help-center article API."""

    access_token: str
    expires_at: int  # Unix timestamp

    @classmethod
    def from_response(cls, data: dict[str, Any]) -> "HelpCenterToken":
        expires_in = int(data.get("expires_in") or DEFAULT_TOKEN_TTL)
        return cls(
            access_token=data["access_token"],
            expires_at=int(datetime.now().timestamp()) + expires_in,
        )

    @property
    def is_expired(self) -> bool:
        return datetime.now().timestamp() >= self.expires_at


def _items(data: Any) -> list[dict[str, Any]]:
    if isinstance(data, dict):
        data = data.get("data") or []
    return data if isinstance(data, list) else []


def _tag_names(ticket: dict[str, Any]) -> list[str]:
    return [str(tag.get("name") or "").lower() for tag in ticket.get("tags") or [] if isinstance(tag, dict)]


class HelpdeskClient:
    """Helpdesk REST API client.

    Usage:
        async with HelpdeskClient("acme", HelpdeskCredentials("me@acme.com", "key")) as helpdesk:
            tickets = await helpdesk.tickets_with_tag("faq")
    """

    def __init__(
        self,
        subdomain: str,
        credentials: HelpdeskCredentials,
        config: FlowportSettings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.subdomain = subdomain
        self.credentials = credentials
        self.config = config or default_settings
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._help_center_token: HelpCenterToken | None = None

    async def __aenter__(self) -> "HelpdeskClient":
        self._client = httpx.AsyncClient(
            base_url=self.config.helpdesk_url(self.subdomain),
            auth=(self.credentials.username, self.credentials.api_key),
            timeout=self.config.http_timeout_seconds,
            headers={"Content-Type": "application/json"},
            transport=self._transport,
        )
        return self

    async def __aexit__(self, *args):
        if self._client:
            await self._client.aclose()
            self._client = None

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        if self._client is None:
            raise RuntimeError("Client not initialized. Use 'async with' context.")
        response = await send(self._client, method, path, **kwargs)
        if response.status_code == 403:
            raise HelpdeskAuthError(
                "Helpdesk credentials lack permission", status_code=403, response=response_body(response)
            )
        raise_for_api_status(response, HelpdeskAuthError, "Invalid helpdesk username or API key")
        return response_body(response)

    # ------------------------------------------------------------------
    # Help-center token
    # ------------------------------------------------------------------

    async def help_center_token(self, force: bool = False) -> HelpCenterToken:
        """Exchange Basic credentials for a help-center bearer, reusing it until expiry."""
        if self._help_center_token and not self._help_center_token.is_expired and not force:
            return self._help_center_token

        data = await self._request("POST", "/api/help-center/auth", json={})
        if not isinstance(data, dict) or not data.get("access_token"):
            raise APIError("No access_token returned from Gorgias API", response=data)
        self._help_center_token = HelpCenterToken.from_response(data)
        return self._help_center_token

    # ------------------------------------------------------------------
    # Tickets and tags
    # ------------------------------------------------------------------

    async def list_tickets(self, limit: int = 50, order_by: str = "updated_datetime:desc") -> list[dict[str, Any]]:
        data = await self._request("GET", "/api/tickets", params={"limit": limit, "order_by": order_by})
        return _items(data)

    async def tickets_with_tag(self, tag_name: str, limit: int = 10) -> list[dict[str, Any]]:
        """Recent tickets carrying ``tag_name`` (case-insensitive).

        The API cannot filter by tag, so a wider window is fetched and
        filtered locally.
        """
        tickets = await self.list_tickets(limit=max(limit * 5, 50))
        wanted = tag_name.lower()
        return [ticket for ticket in tickets if wanted in _tag_names(ticket)][:limit]

    async def get_ticket(self, ticket_id: int) -> dict[str, Any]:
        return await self._request("GET", f"/api/tickets/{ticket_id}") or {}

    async def add_tags(self, ticket_id: int, tags: list[str]) -> dict[str, Any]:
        """Append ``tags`` to the ticket's existing tags."""
        ticket = await self.get_ticket(ticket_id)
        merged = list(ticket.get("tags") or []) + [{"name": name} for name in tags]
        return await self._request("PUT", f"/api/tickets/{ticket_id}", json={"tags": merged}) or {}

    # ------------------------------------------------------------------
    # Integrations
    # ------------------------------------------------------------------

    async def list_integrations(self, limit: int = 100) -> list[dict[str, Any]]:
        return _items(await self._request("GET", "/api/integrations", params={"limit": limit}))

    async def find_integrations(self, integration_type: str) -> list[dict[str, Any]]:
        """Integrations of ``integration_type``, matching on type or name."""
        wanted = integration_type.lower()
        return [
            integration
            for integration in await self.list_integrations()
            if integration.get("type") == wanted or wanted in str(integration.get("name") or "").lower()
        ]

    async def ai_agent_integration(self) -> dict[str, Any] | None:
        for integration in await self.list_integrations():
            name = str(integration.get("name") or "").lower()
            if integration.get("type") == "ai-agent" or "ai" in name or "agent" in name:
                return integration
        return None
