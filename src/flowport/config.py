"""Flowport configuration via pydantic-settings."""

from __future__ import annotations

from pathlib import Path

from pydantic_settings import BaseSettings


class FlowportSettings(BaseSettings):
    log_level: str = "INFO"

    # Helpdesk host template; the subdomain is interpolated per account.
    helpdesk_domain: str = "gorgias.com"
    workflow_api_url: str = "https://api.gorgias.work"
    chat_api_url: str = "https://us-east1-898b.gorgias.chat"
    help_center_api_url: str = "https://internal-help-center-api.gorgias.com"
    ai_agent_api_url: str = "https://aiagent.gorgias.help"

    user_agent: str = "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36"
    http_timeout_seconds: float = 30.0
    login_max_redirects: int = 10
    refresh_max_redirects: int = 5
    # Seconds subtracted from a bearer's exp claim before it counts as expired.
    token_expiry_buffer_seconds: int = 300

    choice_label_limit: int = 50
    fetch_concurrency: int = 5
    default_integration_type: str = "shopify"
    default_locale: str = "en-US"

    # Text generation (optional; guidance falls back to local assembly)
    openrouter_api_key: str | None = None
    openrouter_url: str = "https://openrouter.ai/api/v1/chat/completions"
    openrouter_model: str = "google/gemini-3-flash-preview"
    openrouter_referer: str = "https://flowport.local"

    config_dir: str = "~/.flowport"

    # Web surface
    web_cookie_name: str = "flowport_session"
    web_cookie_secure: bool = False

    model_config = {"env_prefix": "FLOWPORT_", "env_file": ".env", "extra": "ignore"}

    def helpdesk_url(self, subdomain: str) -> str:
        return f"https://{subdomain}.{self.helpdesk_domain}"

    @property
    def config_path(self) -> Path:
        return Path(self.config_dir).expanduser()


settings = FlowportSettings()
