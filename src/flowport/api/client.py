"""Flows API client - bearer-authenticated access to the workflow configuration API.

The same long-lived bearer token also authorizes the shop entrypoint registry
(chat host) and the AI-agent store configuration host, so those sub-APIs
share this client and pass absolute URLs.

Before each call the client refreshes an expired bearer through the
``TokenBroker``; a 401 from the API triggers one refresh and one replay.
"""

from __future__ import annotations

import logging
from typing import Any, TYPE_CHECKING

import httpx

from ..config import FlowportSettings, settings as default_settings
from ..errors import APIError, AuthError, BearerExpiredError, RateLimitError, TransientError

if TYPE_CHECKING:
    from ..auth.broker import TokenBroker
    from ..auth.session import FlowSession
    from .ai_agent import AIAgentAPI
    from .configurations import ConfigurationsAPI
    from .shop import ShopAPI

logger = logging.getLogger(__name__)


def response_body(response: httpx.Response) -> Any:
    """JSON body when there is one, raw text otherwise, ``None`` when empty."""
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text


def raise_for_api_status(
    response: httpx.Response,
    auth_error: type[AuthError] = BearerExpiredError,
    auth_message: str = "Invalid or expired token",
) -> None:
    """Map an error status to a typed exception carrying the raw body."""
    if response.is_success:
        return

    body = response_body(response)
    status = response.status_code
    if status == 401:
        raise auth_error(auth_message, status_code=401, response=body)
    if status == 429:
        raise RateLimitError("Rate limit exceeded. Wait and retry.", 429, body)
    if status >= 500:
        raise TransientError(f"API error: {status}", status, body)
    raise APIError(f"API error: {status}", status, body)


async def send(client: httpx.AsyncClient, method: str, url: str, **kwargs: Any) -> httpx.Response:
    """``client.request`` with transport failures mapped to ``TransientError``."""
    try:
        return await client.request(method, url, **kwargs)
    except httpx.TransportError as e:
        raise TransientError(f"Network error on {method} {url}: {e}") from e


class FlowsClient:
    """Workflow configuration API client.

    Usage:
        async with FlowsClient(session, broker=broker) as client:
            flows = await client.configurations.list()
            flow = await client.configurations.get(flows[0]["id"])
    """

    def __init__(
        self,
        session: "FlowSession",
        broker: "TokenBroker | None" = None,
        config: FlowportSettings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.session = session
        self.broker = broker
        self.config = config or default_settings
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

        self._configurations: ConfigurationsAPI | None = None
        self._shop: ShopAPI | None = None
        self._ai_agent: AIAgentAPI | None = None

    @classmethod
    def for_token(
        cls,
        token: str,
        subdomain: str = "target",
        config: FlowportSettings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> "FlowsClient":
        """Client for a bare bearer token with no way to refresh it."""
        from ..auth.session import FlowSession

        return cls(FlowSession(subdomain=subdomain, bearer_token=token), config=config, transport=transport)

    async def __aenter__(self) -> "FlowsClient":
        from .ai_agent import AIAgentAPI
        from .configurations import ConfigurationsAPI
        from .shop import ShopAPI

        self._client = httpx.AsyncClient(
            base_url=self.config.workflow_api_url,
            timeout=self.config.http_timeout_seconds,
            headers={"Content-Type": "application/json"},
            transport=self._transport,
        )
        self._configurations = ConfigurationsAPI(self)
        self._shop = ShopAPI(self)
        self._ai_agent = AIAgentAPI(self)
        return self

    async def __aexit__(self, *args):
        if self._client:
            await self._client.aclose()
            self._client = None

    @property
    def configurations(self) -> "ConfigurationsAPI":
        """Flow configurations API."""
        if not self._configurations:
            raise RuntimeError("Client not initialized. Use 'async with' context.")
        return self._configurations

    @property
    def shop(self) -> "ShopAPI":
        """Shop entrypoint registry API."""
        if not self._shop:
            raise RuntimeError("Client not initialized. Use 'async with' context.")
        return self._shop

    @property
    def ai_agent(self) -> "AIAgentAPI":
        """AI-agent store configuration API."""
        if not self._ai_agent:
            raise RuntimeError("Client not initialized. Use 'async with' context.")
        return self._ai_agent

    @property
    def can_refresh(self) -> bool:
        return self.broker is not None and self.session.can_refresh

    async def _ensure_fresh(self) -> None:
        """Refresh the bearer ahead of time when its exp claim has passed."""
        if self.session.is_expired and self.can_refresh:
            logger.info("Bearer for %s is expired, refreshing", self.session.subdomain)
            await self.broker.refresh(self.session)

    async def _send(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        if self._client is None:
            raise RuntimeError("Client not initialized. Use 'async with' context.")
        headers = {"Authorization": f"Bearer {self.session.bearer_token}"}
        return await send(self._client, method, url, headers=headers, **kwargs)

    async def _request(self, method: str, url: str, **kwargs: Any) -> Any:
        await self._ensure_fresh()
        response = await self._send(method, url, **kwargs)

        if response.status_code == 401 and self.can_refresh:
            logger.info("Bearer rejected for %s, refreshing once", self.session.subdomain)
            await self.broker.refresh(self.session)
            response = await self._send(method, url, **kwargs)

        raise_for_api_status(response, BearerExpiredError, "Long JWT is invalid or expired")
        return response_body(response)

    async def _get(self, url: str, **kwargs: Any) -> Any:
        return await self._request("GET", url, **kwargs)

    async def _put(self, url: str, **kwargs: Any) -> Any:
        return await self._request("PUT", url, **kwargs)

    async def _post(self, url: str, **kwargs: Any) -> Any:
        return await self._request("POST", url, **kwargs)
