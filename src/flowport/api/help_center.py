"""Help-center article API, used to publish guidances."""

from __future__ import annotations

from typing import Any, TYPE_CHECKING

import httpx

from ..config import FlowportSettings, settings as default_settings
from ..errors import AuthError
from .client import raise_for_api_status, response_body, send

if TYPE_CHECKING:
    from ..flows.guidance import Guidance
    from .helpdesk import HelpCenterToken


class HelpCenterClient:
    """Article API client authorized by a short-lived ``HelpCenterToken``."""

    def __init__(
        self,
        token: "HelpCenterToken",
        config: FlowportSettings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.token = token
        self.config = config or default_settings
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> "HelpCenterClient":
        self._client = httpx.AsyncClient(
            base_url=self.config.help_center_api_url,
            timeout=self.config.http_timeout_seconds,
            headers={
                "Authorization": f"Bearer {self.token.access_token}",
                "Content-Type": "application/json",
            },
            transport=self._transport,
        )
        return self

    async def __aexit__(self, *args):
        if self._client:
            await self._client.aclose()
            self._client = None

    async def create_article(
        self,
        help_center_id: Any,
        guidance: "Guidance",
        locale: str | None = None,
    ) -> dict[str, Any]:
        """Create an article with its translation in one request."""
        if self._client is None:
            raise RuntimeError("Client not initialized. Use 'async with' context.")

        response = await send(
            self._client,
            "POST",
            f"/api/help-center/help-centers/{help_center_id}/articles",
            json=guidance.to_article_payload(locale or self.config.default_locale),
        )
        raise_for_api_status(response, AuthError, "Help-center token rejected")
        data = response_body(response)
        return data if isinstance(data, dict) else {}
