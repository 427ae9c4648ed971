"""Shared test fixtures for the Flowport test suite."""

import base64
import json
from datetime import datetime
from typing import Any, Callable

import httpx
import pytest

# Sample values used across tests
SAMPLE_SUBDOMAIN = "acme"
SAMPLE_HELPDESK_URL = "https://acme.gorgias.com"
SAMPLE_WORKFLOW_URL = "https://api.gorgias.work"
SAMPLE_CHAT_URL = "https://us-east1-898b.gorgias.chat"
SAMPLE_AI_AGENT_URL = "https://aiagent.gorgias.help"
SAMPLE_HELP_CENTER_URL = "https://internal-help-center-api.gorgias.com"
SAMPLE_ACCOUNT_ID = 4242
SAMPLE_TARGET_ACCOUNT_ID = 999
SAMPLE_USER_ID = 77
SAMPLE_CSRF_COOKIE = "csrf_cookie_abc"
SAMPLE_PAGE_CSRF = "page_csrf_xyz"
SAMPLE_SESSION_COOKIE = "session_cookie_123"
SAMPLE_HELP_CENTER_ID = 31
SAMPLE_FLOW_ID = "01HQFLOWSOURCE000000000001"
SAMPLE_STEP_ID = "01HQSTEPWELCOME00000000001"
SAMPLE_CHOICE_STEP_ID = "01HQSTEPCHOICE000000000002"
SAMPLE_END_STEP_ID = "01HQSTEPEND000000000000003"


def make_jwt(claims: dict[str, Any]) -> str:
    """Build an unsigned JWT carrying ``claims``."""

    def _segment(data: dict[str, Any]) -> str:
        raw = json.dumps(data, separators=(",", ":")).encode("utf-8")
        return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")

    return f"{_segment({'alg': 'HS256', 'typ': 'JWT'})}.{_segment(claims)}.signature"


def future_exp(seconds: int = 3600 * 24 * 30) -> int:
    return int(datetime.now().timestamp()) + seconds


SAMPLE_ADMIN_TOKEN = make_jwt(
    {"account_id": SAMPLE_ACCOUNT_ID, "user_id": SAMPLE_USER_ID, "roles": ["admin"], "exp": future_exp()}
)
SAMPLE_TARGET_TOKEN = make_jwt(
    {"account_id": SAMPLE_TARGET_ACCOUNT_ID, "user_id": 5, "roles": ["admin"], "exp": future_exp()}
)
SAMPLE_AGENT_TOKEN = make_jwt(
    {"account_id": SAMPLE_ACCOUNT_ID, "user_id": SAMPLE_USER_ID, "roles": ["agent"], "exp": future_exp()}
)
SAMPLE_EXPIRED_TOKEN = make_jwt(
    {"account_id": SAMPLE_ACCOUNT_ID, "user_id": SAMPLE_USER_ID, "roles": ["admin"], "exp": future_exp(-3600)}
)

APP_PAGE_HTML = f"""<html><head>
<script>window.CSRF_TOKEN = "{SAMPLE_PAGE_CSRF}";</script>
</head><body><div id="root"></div></body></html>"""


# ============================================================================
# Mock Response Data
# ============================================================================

MOCK_FLOW = {
    "id": SAMPLE_FLOW_ID,
    "internal_id": SAMPLE_FLOW_ID,
    "account_id": SAMPLE_ACCOUNT_ID,
    "name": "Order Status",
    "description": "Help customers track their orders",
    "is_draft": False,
    "created_at": "2024-01-15T10:00:00Z",
    "updated_at": "2024-01-16T10:00:00Z",
    "initial_step_id": SAMPLE_STEP_ID,
    "entrypoint": {"label": "Where is my order?", "label_tkey": "01HQTKEYENTRY0000000000001"},
    "available_languages": ["en-US"],
    "steps": [
        {
            "id": SAMPLE_STEP_ID,
            "kind": "message",
            "settings": {
                "message": {"content": {"text": "Hi! Let me check.", "text_tkey": "01HQTKEYMSG00000000000001"}},
            },
            "actions": [{"type": "send-message", "message": "Hi! Let me check your order."}],
        },
        {
            "id": SAMPLE_CHOICE_STEP_ID,
            "kind": "choices",
            "label": "Pick an option",
            "settings": {
                "choices": [
                    {"label": "Track my package", "label_tkey": "01HQTKEYCHOICE000000000001", "event_id": "e1"},
                    {"label": "Cancel my order", "label_tkey": "01HQTKEYCHOICE000000000002", "event_id": "e2"},
                ],
                "next_step_template": f"goto:{SAMPLE_END_STEP_ID}",
            },
        },
        {
            "id": SAMPLE_END_STEP_ID,
            "kind": "end",
            "settings": {},
            "actions": [{"type": "add-comment", "comment": "Customer asked about order status"}],
            "created_at": "2024-01-15T10:00:00Z",
        },
    ],
    "transitions": [
        {"id": "01HQTRANS00000000000000001", "from_step_id": SAMPLE_STEP_ID, "to_step_id": SAMPLE_CHOICE_STEP_ID},
        {
            "id": "01HQTRANS00000000000000002",
            "from_step_id": SAMPLE_CHOICE_STEP_ID,
            "to_step_id": SAMPLE_END_STEP_ID,
            "event": {"id": "e1", "kind": "choices"},
        },
    ],
    "triggers": [{"kind": "llm-prompt"}],
    "inputs": [{"label": "Order number", "kind": "text"}],
}

MOCK_STORE_CONFIGURATIONS = {
    "storeConfigurations": [
        {"storeName": "acme-shop", "guidanceHelpCenterId": SAMPLE_HELP_CENTER_ID},
    ]
}


# ============================================================================
# HTTP mocking
# ============================================================================


class MockRouter:
    """Route table behind an ``httpx.MockTransport``.

    Routes are keyed by method and URL without the query string. Each route
    holds a queue of replies; the last reply repeats once the queue is drained.
    A reply is either a callable taking the request or a ``(status, kwargs)``
    tuple passed to ``httpx.Response``.
    """

    def __init__(self):
        self.routes: dict[tuple[str, str], list[Any]] = {}
        self.requests: list[httpx.Request] = []

    def add(self, method: str, url: str, status: int = 200, **kwargs: Any) -> "MockRouter":
        self.routes.setdefault((method, url), []).append((status, kwargs))
        return self

    def handle(self, method: str, url: str, handler: Callable[[httpx.Request], httpx.Response]) -> "MockRouter":
        self.routes.setdefault((method, url), []).append(handler)
        return self

    def calls(self, method: str, url: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.method == method and _route_url(r) == url]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        queue = self.routes.get((request.method, _route_url(request)))
        if not queue:
            return httpx.Response(404, json={"error": f"No route for {request.method} {request.url}"})
        reply = queue.pop(0) if len(queue) > 1 else queue[0]
        if callable(reply):
            return reply(request)
        status, kwargs = reply
        return httpx.Response(status, **kwargs)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


def _route_url(request: httpx.Request) -> str:
    return f"{request.url.scheme}://{request.url.host}{request.url.path}"


def add_login_routes(router: MockRouter, token: str = SAMPLE_ADMIN_TOKEN) -> MockRouter:
    """Happy-path helpdesk handshake, without the credentials POST."""
    router.add(
        "GET",
        f"{SAMPLE_HELPDESK_URL}/idp/login",
        headers=[("set-cookie", f"csrf={SAMPLE_CSRF_COOKIE}; Path=/"), ("set-cookie", "lang=en; Path=/")],
        text="<html>login</html>",
    )
    router.add(
        "GET",
        f"{SAMPLE_HELPDESK_URL}/login",
        302,
        headers=[("location", "/app/home"), ("set-cookie", f"session={SAMPLE_SESSION_COOKIE}; HttpOnly")],
    )
    router.add("GET", f"{SAMPLE_HELPDESK_URL}/app/home", text="<html>home</html>")
    add_exchange_routes(router, token)
    return router


def add_exchange_routes(router: MockRouter, token: str = SAMPLE_ADMIN_TOKEN) -> MockRouter:
    router.add("GET", f"{SAMPLE_HELPDESK_URL}/app", text=APP_PAGE_HTML)
    router.add("POST", f"{SAMPLE_HELPDESK_URL}/gorgias-apps/auth", json={"token": token})
    return router


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def mock_router():
    return MockRouter()


@pytest.fixture
def test_settings(tmp_path):
    """Settings isolated from the developer's environment and .env file."""
    from flowport.config import FlowportSettings

    return FlowportSettings(_env_file=None, config_dir=str(tmp_path / "config"), openrouter_api_key=None)


@pytest.fixture
def flow_session():
    from flowport.auth.session import FlowSession

    return FlowSession(
        subdomain=SAMPLE_SUBDOMAIN,
        bearer_token=SAMPLE_ADMIN_TOKEN,
        session_cookie=SAMPLE_SESSION_COOKIE,
    )


@pytest.fixture
def sample_flow():
    import copy

    return copy.deepcopy(MOCK_FLOW)


@pytest.fixture
def cli_runner():
    """Create a Typer CLI test runner."""
    from typer.testing import CliRunner

    return CliRunner()
