"""Flow to Guidance conversion.

A Guidance is a help-center article that an AI agent reads as behavioral
instruction. Content comes from a text-generation collaborator when one is
configured, otherwise from a deterministic local assembly of step messages,
labels and questions.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from ..api.llm import TextGenerator

logger = logging.getLogger(__name__)

EXCERPT_LENGTH = 200
VISIBILITY_STATUS = "UNLISTED"

SYSTEM_PROMPT = """You are an expert at converting Gorgias Flow configurations into AI Agent Guidance following best practices.

GUIDELINES FOR WRITING GUIDANCE:
- Use the "When, If, Then" framework
- Start with WHEN to set the scenario
- Add IF conditions when needed
- Use THEN for specific actions
- Keep language simple and scannable
- Use bullet points and numbered lists
- Format for readability
- Focus on "do's" rather than "don'ts"
- Explain what the customer should expect

EXAMPLE FORMAT:
WHEN a customer asks about [topic]:

IF [condition],

THEN
- [Action 1]
- [Action 2]
- [Action 3]

Your task: Convert the Flow JSON into clear, actionable Guidance that AI Agent can follow."""


def slugify(title: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", title.lower()).strip("-")


def guidance_key(flow_id: Any) -> str:
    return f"flow_{flow_id}"


def migration_footer(flow_id: Any, now: datetime | None = None) -> str:
    stamp = (now or datetime.now(timezone.utc)).isoformat()
    return f"---\nMigrated from Flow ID: {flow_id}\nMigration Date: {stamp}\n"


def build_user_prompt(flow: dict[str, Any]) -> str:
    entrypoint = flow.get("entrypoint") or {}
    return (
        "Convert this Gorgias Flow into AI Agent Guidance:\n\n"
        f"Flow Name: {flow.get('name')}\n"
        f"Entrypoint Question: {entrypoint.get('label') or 'N/A'}\n\n"
        "Flow Structure:\n"
        f"{json.dumps(flow, indent=2, ensure_ascii=False)}\n\n"
        'Create well-formatted Guidance following the "When, If, Then" framework. '
        "Extract all messages, steps, and automated responses. Make it clear and actionable."
    )


def build_guidance_content(flow: dict[str, Any], now: datetime | None = None) -> str:
    """Deterministic guidance text assembled from the flow itself."""
    content = f"# {flow.get('name')}\n\n"

    if flow.get("description"):
        content += f"{flow['description']}\n\n"

    steps = flow.get("steps") or []
    if steps:
        content += "## Flow Content\n\n"
        for step in steps:
            if not isinstance(step, dict):
                continue
            for action in step.get("actions") or []:
                if not isinstance(action, dict):
                    continue
                if action.get("type") == "send-message" and action.get("message"):
                    content += f"{action['message']}\n\n"
                if action.get("type") == "add-comment" and action.get("comment"):
                    content += f"**Internal Note:** {action['comment']}\n\n"

            settings = step.get("settings")
            if not isinstance(settings, dict):
                settings = {}
            choices = [
                choice.get("label")
                for choice in settings.get("choices") or []
                if isinstance(choice, dict) and choice.get("label")
            ]
            if choices:
                content += "".join(f"- {label}\n" for label in choices) + "\n"

            if step.get("label"):
                content += f"**{step['label']}**\n\n"

    inputs = [item for item in flow.get("inputs") or [] if isinstance(item, dict) and item.get("label")]
    if inputs:
        content += "## Questions Answered\n\n"
        content += "".join(f"- {item['label']}\n" for item in inputs)
        content += "\n"

    content += "\n" + migration_footer(flow.get("id"), now)
    return content


@dataclass
class Guidance:
    """Editable guidance produced from one flow."""

    flow_id: Any
    name: str
    content: str

    @property
    def key(self) -> str:
        return guidance_key(self.flow_id)

    @property
    def slug(self) -> str:
        return slugify(self.name)

    def to_dict(self) -> dict[str, Any]:
        return {"flowId": self.flow_id, "flowName": self.name, "content": self.content}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Guidance":
        return cls(
            flow_id=data.get("flowId", data.get("flow_id")),
            name=data.get("flowName", data.get("name", "")),
            content=data.get("content", ""),
        )

    def to_article_payload(self, locale: str = "en-US") -> dict[str, Any]:
        """Article-plus-translation body for the help-center API."""
        html = "<div>" + self.content.replace("\n", "</div><div>") + "</div>"
        return {
            "category_id": None,
            "translation": {
                "locale": locale,
                "title": self.name,
                "content": html,
                "excerpt": self.content[:EXCERPT_LENGTH],
                "slug": self.slug,
                "seo_meta": {"title": None, "description": None},
                "visibility_status": VISIBILITY_STATUS,
            },
        }


def validate_guidance(guidance: Guidance) -> list[str]:
    """Return a list of problems; empty when the guidance can be published."""
    problems = []
    if not guidance.key.strip() or guidance.flow_id in (None, ""):
        problems.append("Guidance missing required field: key")
    if not (guidance.name or "").strip():
        problems.append("Guidance missing required field: name")
    if not (guidance.content or "").strip():
        problems.append("Guidance missing required field: content")
    return problems


class GuidanceWriter:
    """Produces guidance text, preferring the text generator when available."""

    def __init__(self, generator: "TextGenerator | None" = None):
        self.generator = generator

    async def write(self, flow: dict[str, Any]) -> Guidance:
        name = flow.get("name") or f"Flow {flow.get('id')}"
        return Guidance(flow_id=flow.get("id"), name=name, content=await self.content_for(flow))

    async def content_for(self, flow: dict[str, Any]) -> str:
        if self.generator is None or not self.generator.configured:
            return build_guidance_content(flow)

        try:
            text = await self.generator.complete(SYSTEM_PROMPT, build_user_prompt(flow))
        except Exception as e:
            logger.warning("Text generation failed for flow %s, using local assembly: %s", flow.get("id"), e)
            return build_guidance_content(flow)

        return f"{text}\n\n{migration_footer(flow.get('id'))}"
