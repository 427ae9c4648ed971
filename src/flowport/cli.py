"""Flowport CLI - Main entry point."""

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Awaitable, Callable, List, TypeVar

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from .auth.session import FlowSession, HelpdeskCredentials
from .auth.storage import SessionStore
from .config import settings
from .errors import AuthError, FlowportError

T = TypeVar("T")

app = typer.Typer(
    name="flowport",
    help="Flowport: migrate helpdesk Flows between accounts",
    no_args_is_help=True,
)
console = Console()

auth_app = typer.Typer(help="Authentication commands")
flows_app = typer.Typer(help="Flow export, import and migration")
guidance_app = typer.Typer(help="Convert flows into AI-agent guidance articles")
helpdesk_app = typer.Typer(help="Helpdesk REST API (requires username + API key)")

app.add_typer(auth_app, name="auth")
app.add_typer(flows_app, name="flows")
app.add_typer(guidance_app, name="guidance")
app.add_typer(helpdesk_app, name="helpdesk")


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    """Configure logging for every command."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else settings.log_level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=False)],
        force=True,
    )


def _store() -> SessionStore:
    return SessionStore(settings.config_path)


def _output_json(data: Any) -> None:
    console.print_json(json.dumps(data, default=str))


def _require_session() -> FlowSession:
    session = _store().load()
    if session is None:
        console.print("[red]Not logged in. Run 'flowport auth login' or 'flowport auth token'.[/red]")
        raise typer.Exit(1)
    return session


def _run(coro_factory: Callable[[], Awaitable[T]]) -> T:
    """Run an async command body, turning Flowport errors into CLI exits."""
    try:
        return asyncio.run(coro_factory())
    except AuthError as e:
        console.print(f"[red]Authentication failed:[/red] {e.message}")
        if e.requires_reauth:
            console.print("[dim]Run 'flowport auth login' to sign in again.[/dim]")
        raise typer.Exit(1)
    except FlowportError as e:
        console.print(f"[red]Error:[/red] {e.message}")
        if e.response:
            console.print(f"[dim]{json.dumps(e.response, default=str)[:500]}[/dim]")
        raise typer.Exit(1)


def _print_batch(result: dict[str, Any], title: str) -> None:
    summary = result["summary"]
    color = "green" if result["success"] else "yellow"
    console.print(
        Panel(
            f"Total: {summary['total']}  Succeeded: {summary['succeeded']}  Failed: {summary['failed']}",
            title=title,
            border_style=color,
        )
    )

    table = Table()
    table.add_column("Source ID", style="dim")
    table.add_column("Name", style="cyan")
    table.add_column("Result")
    table.add_column("Target ID / Error")
    for item in result["results"]:
        if item["success"]:
            outcome = "[green]ok[/green]"
            detail = str(item.get("targetId") or "")
            if item.get("shopRegistered"):
                detail += " (shop registered)"
        else:
            outcome = "[red]failed[/red]"
            detail = str(item.get("error") or "")
        if item.get("warnings"):
            outcome += f" [yellow]{len(item['warnings'])} warning(s)[/yellow]"
        table.add_row(str(item["sourceId"]), str(item.get("name") or ""), outcome, detail)
    console.print(table)

    if "error" in result:
        console.print(f"[red]Stopped early:[/red] {result['error']}")
        if result.get("requireReauth"):
            console.print("[dim]Run 'flowport auth login' to sign in again.[/dim]")


# ============================================================================
# Auth Commands
# ============================================================================


@auth_app.command("login")
def auth_login(
    subdomain: str = typer.Option(..., "--subdomain", "-s", prompt=True, help="Helpdesk subdomain"),
    email: str = typer.Option(..., "--email", "-e", prompt=True, help="Account email"),
    password: str = typer.Option(..., "--password", prompt=True, hide_input=True, help="Account password"),
    code: str = typer.Option(None, "--code", "-c", help="Two-factor code, if already known"),
):
    """Log in with email and password and store the Flows bearer token."""
    from .auth.broker import Success, TwoFactorRequired, TokenBroker

    async def _login():
        async with TokenBroker(subdomain) as broker:
            outcome = await broker.login(email, password, two_factor_code=code)
            if isinstance(outcome, TwoFactorRequired) and outcome.method == "code" and not code:
                second_factor = typer.prompt("Two-factor code")
                outcome = await broker.login(email, password, two_factor_code=second_factor)
            return outcome

    outcome = _run(_login)

    if isinstance(outcome, Success):
        _store().save(outcome.session)
        summary = outcome.session.summary()
        console.print(
            Panel(
                f"[bold green]Connected to {subdomain}[/bold green]\n\n"
                f"Account: {summary['account_id']}\n"
                f"User: {summary['user_id']}\n"
                f"Silent refresh: {'yes' if summary['can_refresh'] else 'no'}",
                title="Login Successful",
            )
        )
        return

    console.print(f"[red]{outcome.message}[/red]")
    if outcome.manual_token_handoff:
        console.print("[dim]Use 'flowport auth token' to paste a token from the browser.[/dim]")
    raise typer.Exit(1)


@auth_app.command("token")
def auth_token(
    subdomain: str = typer.Option(..., "--subdomain", "-s", prompt=True, help="Helpdesk subdomain"),
    token: str = typer.Option(..., "--token", "-t", prompt=True, hide_input=True, help="Long JWT from the browser"),
):
    """Store a bearer token copied from the browser (SSO and captcha accounts)."""
    from .auth.broker import TokenBroker

    try:
        session = TokenBroker(subdomain).accept_manual_token(token)
    except AuthError as e:
        console.print(f"[red]{e.message}[/red]")
        raise typer.Exit(1)

    _store().save(session)
    console.print(f"[green]Token stored for {subdomain}[/green] (account {session.account_id})")


@auth_app.command("refresh")
def auth_refresh():
    """Refresh the bearer token using the retained session cookie."""
    from .auth.broker import TokenBroker

    session = _require_session()

    async def _refresh():
        async with TokenBroker(session.subdomain) as broker:
            return await broker.refresh(session)

    _store().save(_run(_refresh))
    console.print("[green]JWT refreshed successfully[/green]")


def _print_env_settings() -> None:
    """Show which optional settings are provided by the local .env file."""
    from dotenv import dotenv_values

    config = dotenv_values(".env")

    table = Table(title="Local .env")
    table.add_column("Setting", style="cyan")
    table.add_column("Status", style="green")
    for key in ("FLOWPORT_OPENROUTER_API_KEY", "FLOWPORT_CONFIG_DIR", "FLOWPORT_LOG_LEVEL"):
        table.add_row(key, "Set" if config.get(key) else "[dim]Not set[/dim]")
    console.print(table)


@auth_app.command("status")
def auth_status(
    json_output: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
):
    """Show the stored session."""
    status = _store().get_status()
    if json_output:
        _output_json(status)
        return

    session = status["session"]
    _print_env_settings()
    if not session:
        console.print("[yellow]No session stored[/yellow]")
        console.print(f"[dim]Config dir: {status['config_dir']}[/dim]")
        return

    table = Table(title="Flowport Session")
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    for key, value in session.items():
        table.add_row(key, str(value))
    table.add_row("expired", "[red]yes[/red]" if status["expired"] else "[green]no[/green]")
    console.print(table)


@auth_app.command("logout")
def auth_logout():
    """Forget the stored session."""
    _store().clear()
    console.print("[green]Logged out[/green]")


@auth_app.command("credentials")
def auth_credentials(
    username: str = typer.Option(..., "--username", "-u", prompt=True, help="Helpdesk username (email)"),
    api_key: str = typer.Option(..., "--api-key", "-k", prompt=True, hide_input=True, help="Helpdesk API key"),
):
    """Store helpdesk REST credentials (needed to publish guidances)."""
    if _store().save_credentials(HelpdeskCredentials(username=username, api_key=api_key)) is None:
        console.print("[red]Not logged in. Log in before adding credentials.[/red]")
        raise typer.Exit(1)
    console.print("[green]Credentials saved[/green]")


# ============================================================================
# Flow Commands
# ============================================================================


async def _with_source(session: FlowSession, body: Callable[[Any], Awaitable[T]]) -> T:
    """Open a refreshing Flows client for ``session`` and persist any refreshed token."""
    from .api import FlowsClient
    from .auth.broker import TokenBroker

    async with TokenBroker(session.subdomain) as broker:
        async with FlowsClient(session, broker=broker) as client:
            try:
                return await body(client)
            finally:
                _store().save(session)


@flows_app.command("list")
def flows_list(
    published_only: bool = typer.Option(False, "--published", help="Skip drafts"),
    json_output: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
):
    """List flows in the logged-in account."""
    session = _require_session()

    async def _list(client):
        return await client.configurations.list(include_drafts=not published_only)

    flows = _run(lambda: _with_source(session, _list))

    if json_output:
        _output_json(flows)
        return

    table = Table(title=f"Flows ({len(flows)})")
    table.add_column("ID", style="dim")
    table.add_column("Name", style="cyan")
    table.add_column("Draft")
    table.add_column("Steps", justify="right")
    for flow in flows:
        table.add_row(
            str(flow.get("id")),
            str(flow.get("name") or ""),
            "yes" if flow.get("is_draft") else "no",
            str(len(flow.get("steps") or [])),
        )
    console.print(table)


@flows_app.command("export")
def flows_export(
    flow_ids: List[str] = typer.Argument(..., help="Flow IDs to export"),
    output: Path = typer.Option(Path("flows-export.json"), "--output", "-o", help="Output file"),
):
    """Export flows to a versioned JSON document."""
    from . import migration

    session = _require_session()

    async def _export(client):
        return await migration.export_flows(client, flow_ids)

    bundle = _run(lambda: _with_source(session, _export))
    bundle.save(output)
    console.print(f"[green]Exported {bundle.flow_count} flow(s) to {output}[/green]")


def _target_client(token: str, subdomain: str | None):
    from .api import FlowsClient

    return FlowsClient.for_token(token.strip(), subdomain=subdomain or "target")


def _shop(shop_name: str | None, integration_type: str | None):
    from .migration import ShopTarget

    if not shop_name:
        return None
    return ShopTarget(shop_name, integration_type or settings.default_integration_type)


@flows_app.command("import")
def flows_import(
    file: Path = typer.Argument(..., exists=True, readable=True, help="Export document"),
    target_token: str = typer.Option(..., "--target-token", "-t", prompt=True, hide_input=True, help="Target account Long JWT"),
    target_subdomain: str = typer.Option(None, "--target-subdomain", help="Target subdomain (for display)"),
    shop_name: str = typer.Option(None, "--shop", help="Register flows with this shop"),
    integration_type: str = typer.Option(None, "--integration-type", help="Shop integration type"),
    json_output: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
):
    """Create the flows of an export document in a target account."""
    from . import migration
    from .flows.export import FlowExport

    async def _import():
        bundle = FlowExport.load(file)
        async with _target_client(target_token, target_subdomain) as target:
            return await migration.import_flows(bundle, target, shop=_shop(shop_name, integration_type))

    result = _run(_import).to_dict()
    if json_output:
        _output_json(result)
    else:
        _print_batch(result, "Import")
    if not result["success"]:
        raise typer.Exit(1)


@flows_app.command("migrate")
def flows_migrate(
    flow_ids: List[str] = typer.Argument(..., help="Flow IDs to migrate"),
    target_token: str = typer.Option(..., "--target-token", "-t", prompt=True, hide_input=True, help="Target account Long JWT"),
    target_subdomain: str = typer.Option(None, "--target-subdomain", help="Target subdomain (for display)"),
    shop_name: str = typer.Option(None, "--shop", help="Register flows with this shop"),
    integration_type: str = typer.Option(None, "--integration-type", help="Shop integration type"),
    json_output: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
):
    """Copy flows from the logged-in account into another account."""
    from . import migration

    session = _require_session()

    async def _migrate(source):
        async with _target_client(target_token, target_subdomain) as target:
            return await migration.migrate_to_account(
                source, flow_ids, target, shop=_shop(shop_name, integration_type)
            )

    result = _run(lambda: _with_source(session, _migrate)).to_dict()
    if json_output:
        _output_json(result)
    else:
        _print_batch(result, "Migration")
    if not result["success"]:
        raise typer.Exit(1)


# ============================================================================
# Guidance Commands
# ============================================================================


@guidance_app.command("preview")
def guidance_preview(
    flow_ids: List[str] = typer.Argument(..., help="Flow IDs to convert"),
    output: Path = typer.Option(Path("guidances.json"), "--output", "-o", help="File to write drafts to"),
):
    """Draft guidances for review. Edit the file, then run 'guidance push'."""
    from . import migration
    from .api import TextGenerator
    from .flows.guidance import GuidanceWriter

    session = _require_session()
    writer = GuidanceWriter(TextGenerator())
    if not writer.generator.configured:
        console.print("[yellow]FLOWPORT_OPENROUTER_API_KEY not set, using basic conversion[/yellow]")

    async def _preview(client):
        return await migration.preview_guidances(client, flow_ids, writer)

    guidances = _run(lambda: _with_source(session, _preview))
    output.write_text(json.dumps([g.to_dict() for g in guidances], indent=2), encoding="utf-8")

    for guidance in guidances:
        console.print(Panel(guidance.content[:600], title=guidance.name))
    console.print(f"[green]Wrote {len(guidances)} draft(s) to {output}[/green]")


@guidance_app.command("push")
def guidance_push(
    file: Path = typer.Argument(..., exists=True, readable=True, help="Reviewed drafts from 'guidance preview'"),
    json_output: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
):
    """Publish reviewed guidances as unlisted help-center articles."""
    from . import migration
    from .api import HelpdeskClient
    from .flows.guidance import Guidance

    session = _require_session()
    if session.helpdesk is None:
        console.print("[red]Helpdesk credentials not found. Run 'flowport auth credentials'.[/red]")
        raise typer.Exit(1)

    guidances = [Guidance.from_dict(item) for item in json.loads(file.read_text(encoding="utf-8"))]

    async def _push(client):
        async with HelpdeskClient(session.subdomain, session.helpdesk) as helpdesk:
            return await migration.publish_guidances(guidances, client, helpdesk)

    result = _run(lambda: _with_source(session, _push)).to_dict()
    if json_output:
        _output_json(result)
    else:
        _print_batch(result, "Guidance Push")
    if not result["success"]:
        raise typer.Exit(1)


# ============================================================================
# Helpdesk Commands
# ============================================================================


def _helpdesk_session() -> FlowSession:
    session = _require_session()
    if session.helpdesk is None:
        console.print("[red]Helpdesk credentials not found. Run 'flowport auth credentials'.[/red]")
        raise typer.Exit(1)
    return session


@helpdesk_app.command("integrations")
def helpdesk_integrations(
    integration_type: str = typer.Option(None, "--type", help="Filter by type, e.g. shopify"),
    json_output: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
):
    """List helpdesk integrations (useful to find shop names)."""
    from .api import HelpdeskClient

    session = _helpdesk_session()

    async def _integrations():
        async with HelpdeskClient(session.subdomain, session.helpdesk) as helpdesk:
            if integration_type:
                return await helpdesk.find_integrations(integration_type)
            return await helpdesk.list_integrations()

    integrations = _run(_integrations)
    if json_output:
        _output_json(integrations)
        return

    table = Table(title="Integrations")
    table.add_column("ID", style="dim")
    table.add_column("Type")
    table.add_column("Name", style="cyan")
    for integration in integrations:
        table.add_row(str(integration.get("id")), str(integration.get("type")), str(integration.get("name")))
    console.print(table)


@helpdesk_app.command("tickets")
def helpdesk_tickets(
    tag: str = typer.Option(None, "--tag", help="Only tickets with this tag"),
    limit: int = typer.Option(10, "--limit", "-l", help="Max tickets"),
    json_output: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
):
    """List recent tickets."""
    from .api import HelpdeskClient

    session = _helpdesk_session()

    async def _tickets():
        async with HelpdeskClient(session.subdomain, session.helpdesk) as helpdesk:
            if tag:
                return await helpdesk.tickets_with_tag(tag, limit=limit)
            return await helpdesk.list_tickets(limit=limit)

    tickets = _run(_tickets)
    if json_output:
        _output_json(tickets)
        return

    table = Table(title=f"Tickets ({len(tickets)})")
    table.add_column("ID", style="dim")
    table.add_column("Subject", style="cyan")
    table.add_column("Status")
    table.add_column("Tags")
    for ticket in tickets:
        tags = ", ".join(t.get("name", "") for t in ticket.get("tags") or [])
        table.add_row(str(ticket.get("id")), str(ticket.get("subject") or ""), str(ticket.get("status") or ""), tags)
    console.print(table)


# ============================================================================
# Web
# ============================================================================


@app.command("serve")
def serve(
    port: int = typer.Option(8030, "--port", "-p", help="Port to run on"),
    host: str = typer.Option("127.0.0.1", "--host", help="Host to bind to"),
    reload: bool = typer.Option(False, "--reload", help="Reload on code changes"),
):
    """Launch the Flowport JSON API."""
    import uvicorn

    console.print(f"[bold cyan]Starting Flowport at http://{host}:{port}[/bold cyan]")
    uvicorn.run("flowport.web.app:app", host=host, port=port, reload=reload)


if __name__ == "__main__":
    app()
