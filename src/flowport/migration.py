"""Migration service - export, import, account-to-account migration and guidance publishing.

Fetches fan out concurrently and every fetch must succeed. Writes run as a
sequential loop where each flow's failure is caught and recorded, so one bad
flow does not abort the batch. An authentication failure stops the loop,
since every remaining write would fail the same way, but the ledger is still
returned with the untried items marked as skipped.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Iterable, TypeVar

from .api.client import FlowsClient
from .api.configurations import ConfigurationsAPI
from .api.help_center import HelpCenterClient
from .api.helpdesk import HelpdeskClient
from .auth.tokens import looks_like_jwt
from .config import settings
from .errors import AuthError, BearerExpiredError, FlowportError, InvalidTokenError
from .flows.export import FlowExport
from .flows.guidance import Guidance, GuidanceWriter, validate_guidance
from .flows.transform import prepare_flow

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


@dataclass
class AccountResolution:
    """Which account id gets stamped on written payloads, and where it came from."""

    account_id: Any
    source: str  # "configurations" or "token"
    token_account_id: Any = None
    mismatch: bool = False


@dataclass
class ShopTarget:
    shop_name: str
    integration_type: str = "shopify"


@dataclass
class ItemResult:
    """Ledger entry for one flow or guidance."""

    source_id: Any
    name: str | None
    success: bool = False
    target_id: Any = None
    target_internal_id: str | None = None
    shop_registered: bool = False
    status_code: int | None = None
    error: str | None = None
    details: Any = None
    requires_reauth: bool = False
    warnings: list[dict[str, Any]] = field(default_factory=list)

    def fail(self, error: Exception) -> None:
        self.success = False
        if isinstance(error, FlowportError):
            self.error = error.message
            self.status_code = error.status_code
            self.details = error.response
        else:
            self.error = str(error)
        if isinstance(error, AuthError):
            self.requires_reauth = error.requires_reauth

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "sourceId": self.source_id,
            "name": self.name,
            "success": self.success,
        }
        if self.success:
            data.update(
                targetId=self.target_id,
                targetInternalId=self.target_internal_id,
                shopRegistered=self.shop_registered,
            )
        else:
            data.update(error=self.error, status=self.status_code, details=self.details)
            if self.requires_reauth:
                data["requireReauth"] = True
        if self.warnings:
            data["warnings"] = self.warnings
        return data


@dataclass
class BatchResult:
    """Per-item ledger for one batch operation."""

    items: list[ItemResult] = field(default_factory=list)
    target_subdomain: str | None = None
    account: AccountResolution | None = None
    # Set when an authentication failure stopped the loop early.
    aborted: AuthError | None = None

    def abort(self, error: AuthError, remaining: Iterable[ItemResult]) -> None:
        """Stop the batch: every item not yet attempted is recorded as skipped."""
        self.aborted = error
        for item in remaining:
            item.error = f"Skipped: {error.message}"
            item.requires_reauth = error.requires_reauth
            self.items.append(item)

    @property
    def total(self) -> int:
        return len(self.items)

    @property
    def succeeded(self) -> int:
        return sum(1 for item in self.items if item.success)

    @property
    def failed(self) -> int:
        return self.total - self.succeeded

    @property
    def success(self) -> bool:
        return self.failed == 0

    def summary(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "total": self.total,
            "succeeded": self.succeeded,
            "failed": self.failed,
        }
        if self.target_subdomain:
            data["targetSubdomain"] = self.target_subdomain
        return data

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "success": self.success,
            "summary": self.summary(),
            "results": [item.to_dict() for item in self.items],
        }
        if self.account is not None:
            data["targetAccountId"] = self.account.account_id
            if self.account.mismatch:
                data["accountMismatch"] = {
                    "token": self.account.token_account_id,
                    "configurations": self.account.account_id,
                }
        if self.aborted is not None:
            data["error"] = self.aborted.message
            data["requireReauth"] = self.aborted.requires_reauth
        return data


async def gather_bounded(
    items: Iterable[T],
    func: Callable[[T], Awaitable[R]],
    concurrency: int,
) -> list[R]:
    """Run ``func`` over ``items`` with at most ``concurrency`` in flight.

    Results keep input order. The first failure propagates.
    """
    semaphore = asyncio.Semaphore(max(1, concurrency))

    async def _run(item: T) -> R:
        async with semaphore:
            return await func(item)

    return list(await asyncio.gather(*(_run(item) for item in items)))


async def fetch_flows(
    configurations: ConfigurationsAPI,
    flow_ids: list[str],
    concurrency: int | None = None,
) -> list[dict[str, Any]]:
    """Fetch full configurations for ``flow_ids`` concurrently."""
    return await gather_bounded(
        flow_ids, configurations.get, concurrency or settings.fetch_concurrency
    )


async def resolve_target_account(target: FlowsClient) -> AccountResolution:
    """Account id to stamp on payloads written through ``target``.

    A configuration that already exists in the target account is ground
    truth; the token's ``account_id`` claim is used only when the account
    has none. Disagreement is logged and reported but does not abort.
    """
    try:
        existing = await target.configurations.list(include_drafts=None)
    except BearerExpiredError as e:
        raise BearerExpiredError(
            "Target account Long JWT is invalid or expired.", response=e.response
        ) from e

    token_account_id = target.session.claims.account_id
    live_account_id = existing[0].get("account_id") if existing else None

    if live_account_id is not None:
        mismatch = token_account_id is not None and str(token_account_id) != str(live_account_id)
        if mismatch:
            logger.warning(
                "Target token claims account %s but its configurations belong to %s; using %s",
                token_account_id,
                live_account_id,
                live_account_id,
                extra={"token_account_id": token_account_id, "live_account_id": live_account_id},
            )
        return AccountResolution(live_account_id, "configurations", token_account_id, mismatch)

    if not token_account_id:
        raise InvalidTokenError("Invalid Target JWT: Could not extract account_id")
    return AccountResolution(token_account_id, "token", token_account_id)


async def deploy_flows(
    flows: list[dict[str, Any]],
    target: FlowsClient,
    account_id: Any,
    *,
    shop: ShopTarget | None = None,
    default_name: str = "Migrated Flow",
) -> BatchResult:
    """Write ``flows`` into the target account one at a time.

    Each flow is transformed, PUT under its fresh id, read back to confirm
    it exists and optionally registered with a shop. Registration failure
    leaves the flow written with ``shop_registered=False``.
    """
    result = BatchResult(target_subdomain=target.session.subdomain)

    for index, flow in enumerate(flows):
        item = ItemResult(source_id=flow.get("id"), name=flow.get("name"))
        result.items.append(item)
        try:
            prepared = prepare_flow(
                flow,
                account_id,
                default_name=default_name,
                label_limit=settings.choice_label_limit,
            )
            item.warnings = prepared.warnings

            created = await target.configurations.put(prepared.flow_id, prepared.payload)
            created_id = created.get("id") or prepared.flow_id
            await target.configurations.get(created_id)
        except AuthError as e:
            # Every remaining write would fail the same way.
            item.fail(e)
            logger.error("Authentication failed writing flow %s: %s", item.name or item.source_id, e.message)
            result.abort(
                e, (ItemResult(source_id=f.get("id"), name=f.get("name")) for f in flows[index + 1 :])
            )
            break
        except Exception as e:
            item.fail(e)
            logger.error("Failed to write flow %s: %s", item.name or item.source_id, e)
            continue

        item.success = True
        item.target_id = created_id
        item.target_internal_id = prepared.internal_id
        logger.info("Wrote flow %s as %s", item.source_id, created_id)

        if shop and shop.shop_name:
            try:
                await target.shop.register_flow(shop.shop_name, created_id, shop.integration_type)
                item.shop_registered = True
            except FlowportError as e:
                logger.warning("Shop registration failed for %s: %s", created_id, e.message)

    return result


async def export_flows(
    source: FlowsClient,
    flow_ids: list[str],
    concurrency: int | None = None,
) -> FlowExport:
    flows = await fetch_flows(source.configurations, flow_ids, concurrency)
    return FlowExport.from_flows(flows, source.session.subdomain)


def _require_target_token(target: FlowsClient) -> None:
    if not looks_like_jwt(target.session.bearer_token):
        raise InvalidTokenError('Invalid Long JWT format. Token should start with "eyJ"')


async def import_flows(
    bundle: FlowExport,
    target: FlowsClient,
    *,
    shop: ShopTarget | None = None,
) -> BatchResult:
    """Create every flow of an export document in the target account."""
    _require_target_token(target)
    account = await resolve_target_account(target)
    result = await deploy_flows(
        bundle.flows, target, account.account_id, shop=shop, default_name="Imported Flow"
    )
    result.account = account
    return result


async def migrate_to_account(
    source: FlowsClient,
    flow_ids: list[str],
    target: FlowsClient,
    *,
    shop: ShopTarget | None = None,
    concurrency: int | None = None,
) -> BatchResult:
    """Copy ``flow_ids`` from the source account into the target account."""
    _require_target_token(target)
    account = await resolve_target_account(target)
    flows = await fetch_flows(source.configurations, flow_ids, concurrency)
    result = await deploy_flows(flows, target, account.account_id, shop=shop)
    result.account = account
    return result


async def preview_guidances(
    source: FlowsClient,
    flow_ids: list[str],
    writer: GuidanceWriter,
    concurrency: int | None = None,
) -> list[Guidance]:
    """Draft guidances for review; nothing is published."""
    flows = await fetch_flows(source.configurations, flow_ids, concurrency)
    return await gather_bounded(flows, writer.write, concurrency or settings.fetch_concurrency)


async def push_guidances(
    guidances: list[Guidance],
    help_center: HelpCenterClient,
    help_center_id: Any,
) -> BatchResult:
    """Publish reviewed guidances as unlisted articles, one at a time."""
    result = BatchResult()

    for index, guidance in enumerate(guidances):
        item = ItemResult(source_id=guidance.flow_id, name=guidance.name)
        result.items.append(item)

        problems = validate_guidance(guidance)
        if problems:
            item.error = "; ".join(problems)
            continue

        try:
            article = await help_center.create_article(help_center_id, guidance)
        except AuthError as e:
            item.fail(e)
            logger.error("Authentication failed creating guidance %s: %s", guidance.name, e.message)
            result.abort(e, (ItemResult(source_id=g.flow_id, name=g.name) for g in guidances[index + 1 :]))
            break
        except Exception as e:
            item.fail(e)
            logger.error("Failed to create guidance %s: %s", guidance.name, e)
            continue

        item.success = True
        item.target_id = article.get("id")

    return result


async def publish_guidances(
    guidances: list[Guidance],
    flows: FlowsClient,
    helpdesk: HelpdeskClient,
    help_center_factory: Callable[..., HelpCenterClient] = HelpCenterClient,
) -> BatchResult:
    """Resolve the account's help center, obtain an article token and push."""
    help_center_id = await flows.ai_agent.resolve_help_center_id(flows.session.subdomain)
    token = await helpdesk.help_center_token()
    async with help_center_factory(token) as help_center:
        return await push_guidances(guidances, help_center, help_center_id)
