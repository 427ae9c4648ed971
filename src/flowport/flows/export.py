"""Versioned export document for a set of Flow configurations."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from ..errors import FlowportError

EXPORT_VERSION = "1.0"
SUPPORTED_VERSIONS = {EXPORT_VERSION}


def utc_timestamp() -> str:
    """ISO-8601 UTC timestamp with millisecond precision and a ``Z`` suffix."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class ExportFormatError(FlowportError):
    """An export document could not be parsed or has an unsupported shape."""

    def __init__(self, message: str, response: Any = None):
        super().__init__(message, status_code=400, response=response)


class FlowExport(BaseModel):
    """``{version, exportedAt, sourceSubdomain, flowCount, flows[]}``.

    ``flows`` holds the configurations exactly as the source API returned
    them; they keep their source identifiers until imported.
    """

    model_config = ConfigDict(populate_by_name=True)

    version: str = EXPORT_VERSION
    exported_at: str = Field(default_factory=utc_timestamp, alias="exportedAt")
    source_subdomain: str = Field("unknown", alias="sourceSubdomain")
    flow_count: int = Field(0, alias="flowCount")
    flows: list[dict[str, Any]] = Field(default_factory=list)

    @field_validator("version")
    @classmethod
    def _known_version(cls, value: str) -> str:
        if value not in SUPPORTED_VERSIONS:
            raise ValueError(f"Unsupported export version {value!r}")
        return value

    @classmethod
    def from_flows(cls, flows: list[dict[str, Any]], source_subdomain: str | None = None) -> "FlowExport":
        return cls(
            source_subdomain=source_subdomain or "unknown",
            flow_count=len(flows),
            flows=flows,
        )

    @classmethod
    def parse(cls, data: str | bytes | dict[str, Any] | list[Any]) -> "FlowExport":
        """Parse an export document.

        A bare JSON list of flows is accepted as well and wrapped.
        """
        if isinstance(data, (str, bytes)):
            try:
                data = json.loads(data)
            except json.JSONDecodeError as e:
                raise ExportFormatError(f"Export file is not valid JSON: {e}") from e

        if isinstance(data, list):
            data = {"flows": data, "flowCount": len(data)}

        try:
            export = cls.model_validate(data)
        except ValidationError as e:
            errors = e.errors(include_url=False, include_context=False, include_input=False)
            raise ExportFormatError("Invalid export document", response=errors) from e

        if not export.flows:
            raise ExportFormatError("No flows provided for import")
        return export

    @classmethod
    def load(cls, path: str | Path) -> "FlowExport":
        return cls.parse(Path(path).read_text(encoding="utf-8"))

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)

    def to_json(self, indent: int | None = 2) -> str:
        return self.model_dump_json(by_alias=True, indent=indent)

    def save(self, path: str | Path) -> Path:
        target = Path(path)
        target.write_text(self.to_json(), encoding="utf-8")
        return target
