"""API clients for the helpdesk, workflow configuration and help-center hosts."""

from .client import FlowsClient, raise_for_api_status, response_body
from .help_center import HelpCenterClient
from .helpdesk import HelpCenterToken, HelpdeskAuthError, HelpdeskClient
from .llm import TextGenerator

__all__ = [
    "FlowsClient",
    "HelpCenterClient",
    "HelpCenterToken",
    "HelpdeskAuthError",
    "HelpdeskClient",
    "TextGenerator",
    "raise_for_api_status",
    "response_body",
]
