"""OpenRouter chat-completions client used to draft guidance text."""

from __future__ import annotations

from typing import Any

import httpx

from ..config import FlowportSettings, settings as default_settings
from ..errors import APIError
from .client import raise_for_api_status, send


class TextGenerator:
    """Given a system and user prompt, returns the model's reply text."""

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        config: FlowportSettings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.config = config or default_settings
        self.api_key = api_key or self.config.openrouter_api_key
        self.model = model or self.config.openrouter_model
        self._transport = transport

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    async def complete(self, system_prompt: str, user_prompt: str) -> str:
        if not self.api_key:
            raise APIError("OpenRouter API key not set")

        payload: dict[str, Any] = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
        }
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
            "HTTP-Referer": self.config.openrouter_referer,
        }
        # Completions are slow; the generic timeout is too short.
        async with httpx.AsyncClient(timeout=120.0, transport=self._transport) as client:
            response = await send(client, "POST", self.config.openrouter_url, json=payload, headers=headers)

        raise_for_api_status(response)
        try:
            return response.json()["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise APIError(f"Unexpected completion response: {e}", response.status_code, response.text) from e
