"""Flow payload transformation.

Turns a source Flow configuration into a payload that can be written to a
different account: every identifier is regenerated, internal references are
remapped, translation keys are reissued, source-account bookkeeping is
stripped and over-long choice labels are truncated.

Flows are handled as plain JSON dictionaries so that fields this module does
not know about round-trip untouched.
"""

from __future__ import annotations

import copy
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Callable

from ..ids import new_id

logger = logging.getLogger(__name__)

CHOICE_LABEL_LIMIT = 50
ELLIPSIS = "..."
TKEY_SUFFIX = "_tkey"
BOOKKEEPING_FIELDS = frozenset({"created_at", "updated_at", "deleted_at", "account_id"})
DEFAULT_LANGUAGES = ["en-US"]
OPTIONAL_FIELDS = ("description", "short_description", "inputs", "values", "category")


@dataclass
class PreparedFlow:
    """A target-ready payload plus what happened while building it."""

    payload: dict[str, Any]
    flow_id: str
    internal_id: str
    step_id_map: dict[Any, str]
    warnings: list[dict[str, Any]] = field(default_factory=list)

    @property
    def has_warnings(self) -> bool:
        return bool(self.warnings)


class _IdIssuer:
    """Issues fresh ids and remembers them so later passes leave them alone."""

    def __init__(self, factory: Callable[[], str] = new_id):
        self._factory = factory
        self.issued: set[str] = set()

    def __call__(self) -> str:
        value = self._factory()
        while value in self.issued:
            value = self._factory()
        self.issued.add(value)
        return value


def truncate_label(label: str, limit: int = CHOICE_LABEL_LIMIT) -> str:
    """Cut ``label`` to ``limit`` characters, ending with an ellipsis.

    Labels already within the limit are returned unchanged, so the function
    is idempotent.
    """
    if len(label) <= limit:
        return label
    return label[: limit - len(ELLIPSIS)] + ELLIPSIS


def truncate_choice_labels(step: dict[str, Any], limit: int = CHOICE_LABEL_LIMIT) -> dict[str, Any]:
    """Return ``step`` with every ``settings.choices[*].label`` truncated."""
    settings = step.get("settings")
    if not isinstance(settings, dict):
        return step
    choices = settings.get("choices")
    if not isinstance(choices, list):
        return step

    new_choices = []
    for choice in choices:
        label = choice.get("label") if isinstance(choice, dict) else None
        if isinstance(label, str) and len(label) > limit:
            choice = {**choice, "label": truncate_label(label, limit)}
        new_choices.append(choice)
    return {**step, "settings": {**settings, "choices": new_choices}}


def build_step_id_map(
    steps: list[dict[str, Any]],
    id_factory: Callable[[], str] = new_id,
    warnings: list[dict[str, Any]] | None = None,
) -> dict[Any, str]:
    """Map every source step id to a fresh id.

    Built completely before any remapping happens. Steps without an id get
    no entry; duplicate ids share one entry.
    """
    mapping: dict[Any, str] = {}
    for index, step in enumerate(steps):
        step_id = step.get("id") if isinstance(step, dict) else None
        if not _is_key(step_id):
            continue
        if step_id in mapping:
            _warn(warnings, "duplicate_step_id", f"steps[{index}].id", step_id)
            continue
        mapping[step_id] = id_factory()
    return mapping


def remap_step_reference(
    value: Any,
    step_id_map: dict[Any, str],
    location: str,
    warnings: list[dict[str, Any]] | None = None,
) -> Any:
    """Translate one step reference, passing unknown ids through unchanged.

    An unknown id is an orphaned reference; it is kept as-is and reported.
    """
    if value is None or value == "":
        return value
    if _is_key(value) and value in step_id_map:
        return step_id_map[value]
    _warn(warnings, "orphaned_step_reference", location, value)
    return value


def regenerate_tkeys(obj: Any, id_factory: Callable[[], str] = new_id) -> Any:
    """Reissue the value of every key ending in ``_tkey``, at any depth."""
    if isinstance(obj, list):
        return [regenerate_tkeys(item, id_factory) for item in obj]
    if not isinstance(obj, dict):
        return obj
    result = {}
    for key, value in obj.items():
        if isinstance(key, str) and key.endswith(TKEY_SUFFIX):
            result[key] = id_factory()
        else:
            result[key] = regenerate_tkeys(value, id_factory)
    return result


def strip_bookkeeping(obj: Any, fields: frozenset[str] = BOOKKEEPING_FIELDS) -> Any:
    """Drop source-account bookkeeping fields from every nested object."""
    if isinstance(obj, list):
        return [strip_bookkeeping(item, fields) for item in obj]
    if not isinstance(obj, dict):
        return obj
    return {key: strip_bookkeeping(value, fields) for key, value in obj.items() if key not in fields}


def collect_tkeys(obj: Any) -> set[str]:
    """Every string value held under a ``*_tkey`` key, at any depth."""
    found: set[str] = set()
    if isinstance(obj, list):
        for item in obj:
            found |= collect_tkeys(item)
    elif isinstance(obj, dict):
        for key, value in obj.items():
            if isinstance(key, str) and key.endswith(TKEY_SUFFIX) and isinstance(value, str):
                found.add(value)
            else:
                found |= collect_tkeys(value)
    return found


def rewrite_step_references(
    payload: dict[str, Any],
    step_id_map: dict[Any, str],
    protected: set[str] | None = None,
) -> dict[str, Any]:
    """Deep reference rewrite.

    Replaces every textual occurrence of an old step id, in any string key
    or value at any depth, with its new id. This reaches references embedded
    in free-form strings (templates, HTTP bodies, condition expressions) that
    the structural remap cannot see.

    The substitution is a single left-to-right pass per string, so replaced
    text is never rescanned. Strings in ``protected`` (ids issued during this
    transformation) are matched as whole tokens and left untouched, which
    keeps a short source id from matching inside a fresh id. Only non-empty
    string ids take part; other id types are remapped structurally only.

    Risk: an old id whose characters occur by coincidence inside unrelated
    text is rewritten there too.
    """
    replacements = {old: new for old, new in step_id_map.items() if isinstance(old, str) and old}
    if not replacements:
        return payload

    keep = {value for value in (protected or set()) if value} - set(replacements)
    tokens = sorted(set(replacements) | keep, key=len, reverse=True)
    pattern = re.compile("|".join(re.escape(token) for token in tokens))

    def _substitute(match: re.Match[str]) -> str:
        token = match.group(0)
        return replacements.get(token, token)

    def _rewrite(obj: Any) -> Any:
        if isinstance(obj, str):
            return pattern.sub(_substitute, obj)
        if isinstance(obj, list):
            return [_rewrite(item) for item in obj]
        if isinstance(obj, dict):
            return {_rewrite(key): _rewrite(value) for key, value in obj.items()}
        return obj

    return _rewrite(payload)


def prepare_flow(
    flow: dict[str, Any],
    target_account_id: Any,
    *,
    default_name: str = "Migrated Flow",
    label_limit: int = CHOICE_LABEL_LIMIT,
    id_factory: Callable[[], str] = new_id,
) -> PreparedFlow:
    """Build a target-ready copy of ``flow`` for ``target_account_id``.

    The result is always a draft. The source flow is not modified.
    """
    source = copy.deepcopy(flow)
    issue = _IdIssuer(id_factory)
    warnings: list[dict[str, Any]] = []

    flow_id = issue()
    internal_id = issue()

    steps = [step for step in source.get("steps") or [] if isinstance(step, dict)]
    step_id_map = build_step_id_map(steps, issue, warnings)

    new_steps = []
    for index, step in enumerate(steps):
        if _is_key(step.get("id")) and step["id"] in step_id_map:
            new_step_id = step_id_map[step["id"]]
        else:
            new_step_id = issue()
            _warn(warnings, "missing_step_id", f"steps[{index}].id", step.get("id"))
        new_steps.append(truncate_choice_labels({**step, "id": new_step_id}, label_limit))

    new_transitions = []
    for index, transition in enumerate(source.get("transitions") or []):
        if not isinstance(transition, dict):
            new_transitions.append(transition)
            continue
        new_transitions.append(
            {
                **transition,
                "id": issue(),
                "from_step_id": remap_step_reference(
                    transition.get("from_step_id"),
                    step_id_map,
                    f"transitions[{index}].from_step_id",
                    warnings,
                ),
                "to_step_id": remap_step_reference(
                    transition.get("to_step_id"),
                    step_id_map,
                    f"transitions[{index}].to_step_id",
                    warnings,
                ),
            }
        )

    initial_step_id = remap_step_reference(
        source.get("initial_step_id"), step_id_map, "initial_step_id", warnings
    )
    entrypoint = {**(source.get("entrypoint") or {"label": ""}), "label_tkey": issue()}

    payload: dict[str, Any] = {
        "id": flow_id,
        "internal_id": internal_id,
        "name": source.get("name") or default_name,
        "is_draft": True,
        "steps": new_steps,
        "transitions": new_transitions,
        "initial_step_id": initial_step_id,
        "entrypoint": entrypoint,
        "available_languages": source.get("available_languages") or list(DEFAULT_LANGUAGES),
        "triggers": source.get("triggers") or [],
        "entrypoints": source.get("entrypoints") or [],
        "apps": source.get("apps") or [],
    }
    for name in OPTIONAL_FIELDS:
        if source.get(name):
            payload[name] = source[name]

    payload = strip_bookkeeping(regenerate_tkeys(payload, issue))
    payload = rewrite_step_references(payload, step_id_map, protected=issue.issued)
    payload["account_id"] = target_account_id

    for warning in warnings:
        logger.warning(
            "Flow %s: %s at %s (%r)",
            flow.get("id"),
            warning["kind"],
            warning["location"],
            warning["value"],
            extra={"flow_id": flow.get("id"), **warning},
        )

    return PreparedFlow(
        payload=payload,
        flow_id=flow_id,
        internal_id=internal_id,
        step_id_map=step_id_map,
        warnings=warnings,
    )


def _warn(warnings: list[dict[str, Any]] | None, kind: str, location: str, value: Any) -> None:
    if warnings is not None:
        warnings.append({"kind": kind, "location": location, "value": value})


def _is_key(value: Any) -> bool:
    """Only hashable, non-empty values can serve as step ids."""
    if value is None or value == "" or isinstance(value, bool):
        return False
    try:
        hash(value)
    except TypeError:
        return False
    return True
