"""Request bodies for the JSON API. Field aliases follow the browser client's camelCase."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class _Body(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class LoginRequest(_Body):
    subdomain: str
    email: str
    password: str
    two_factor_code: str | None = Field(default=None, alias="twoFactorCode")


class ManualTokenRequest(_Body):
    subdomain: str
    token: str
    session_cookie: str | None = Field(default=None, alias="sessionCookie")


class CredentialsRequest(_Body):
    username: str
    api_key: str = Field(alias="apiKey")


class FlowIdsRequest(_Body):
    flow_ids: list[str] = Field(default_factory=list, alias="flowIds")


class _TargetFields(_Body):
    target_token: str = Field(default="", alias="targetLongJWT")
    target_subdomain: str | None = Field(default=None, alias="targetSubdomain")
    target_shop_name: str | None = Field(default=None, alias="targetShopName")
    target_integration_type: str | None = Field(default=None, alias="targetIntegrationType")


class ImportRequest(_TargetFields):
    flows: list[dict[str, Any]] = Field(default_factory=list)
    version: str | None = None
    source_subdomain: str | None = Field(default=None, alias="sourceSubdomain")

    def export_document(self) -> dict[str, Any]:
        data: dict[str, Any] = {"flows": self.flows}
        if self.version:
            data["version"] = self.version
        if self.source_subdomain:
            data["sourceSubdomain"] = self.source_subdomain
        return data


class MigrateRequest(_TargetFields):
    flow_ids: list[str] = Field(default_factory=list, alias="flowIds")


class GuidanceItem(_Body):
    flow_id: Any = Field(alias="flowId")
    flow_name: str = Field(default="", alias="flowName")
    content: str = ""


class PushRequest(_Body):
    guidances: list[GuidanceItem] = Field(default_factory=list)
