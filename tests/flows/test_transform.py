"""Tests for flow payload transformation."""

import copy
import itertools
import json

import pytest

from flowport.flows.transform import (
    ELLIPSIS,
    build_step_id_map,
    collect_tkeys,
    prepare_flow,
    regenerate_tkeys,
    remap_step_reference,
    rewrite_step_references,
    strip_bookkeeping,
    truncate_choice_labels,
    truncate_label,
)
from flowport.ids import is_id
from tests.conftest import (
    SAMPLE_CHOICE_STEP_ID,
    SAMPLE_END_STEP_ID,
    SAMPLE_FLOW_ID,
    SAMPLE_STEP_ID,
    SAMPLE_TARGET_ACCOUNT_ID,
)

MINIMAL_FLOW = {
    "id": "A",
    "internal_id": "A",
    "steps": [{"id": "S1", "kind": "message", "settings": {}}],
    "transitions": [],
    "initial_step_id": "S1",
    "entrypoint": {"label": "hi"},
}


def counter_ids(prefix: str = "NEW"):
    """Deterministic id factory for assertions on exact values."""
    counter = itertools.count(1)
    return lambda: f"{prefix}{next(counter):023d}"


def all_ids(payload):
    ids = [payload["id"], payload["internal_id"]]
    ids += [step["id"] for step in payload["steps"]]
    ids += [transition["id"] for transition in payload["transitions"]]
    return ids


class TestTruncateLabel:
    """Tests for choice label truncation."""

    def test_long_label_becomes_fifty_characters(self):
        label = "x" * 80
        result = truncate_label(label)
        assert len(result) == 50
        assert result.endswith(ELLIPSIS)
        assert result == "x" * 47 + ELLIPSIS

    def test_short_label_unchanged(self):
        assert truncate_label("Track my package") == "Track my package"

    def test_exact_limit_unchanged(self):
        assert truncate_label("y" * 50) == "y" * 50

    def test_idempotent(self):
        once = truncate_label("z" * 120)
        assert truncate_label(once) == once

    def test_truncate_choice_labels_only_touches_choices(self):
        step = {"id": "s", "label": "q" * 90, "settings": {"choices": [{"label": "a" * 60}, {"label": "ok"}]}}
        result = truncate_choice_labels(step)
        assert result["label"] == "q" * 90
        assert len(result["settings"]["choices"][0]["label"]) == 50
        assert result["settings"]["choices"][1]["label"] == "ok"
        # input untouched
        assert len(step["settings"]["choices"][0]["label"]) == 60

    def test_step_without_settings(self):
        step = {"id": "s", "kind": "end"}
        assert truncate_choice_labels(step) is step


class TestStepIdMap:
    """Tests for building the step id map."""

    def test_maps_every_step(self):
        mapping = build_step_id_map([{"id": "a"}, {"id": "b"}], counter_ids())
        assert set(mapping) == {"a", "b"}
        assert mapping["a"] != mapping["b"]

    def test_missing_ids_skipped(self):
        mapping = build_step_id_map([{"kind": "message"}, {"id": ""}, {"id": "c"}], counter_ids())
        assert list(mapping) == ["c"]

    def test_duplicate_ids_warn(self):
        warnings = []
        mapping = build_step_id_map([{"id": "a"}, {"id": "a"}], counter_ids(), warnings)
        assert len(mapping) == 1
        assert warnings == [{"kind": "duplicate_step_id", "location": "steps[1].id", "value": "a"}]


class TestRemapStepReference:
    def test_known_reference(self):
        assert remap_step_reference("a", {"a": "b"}, "x") == "b"

    def test_orphan_passes_through_with_warning(self):
        warnings = []
        assert remap_step_reference("ghost", {"a": "b"}, "transitions[0].to_step_id", warnings) == "ghost"
        assert warnings[0]["kind"] == "orphaned_step_reference"
        assert warnings[0]["location"] == "transitions[0].to_step_id"

    def test_unhashable_reference_is_an_orphan(self):
        warnings = []
        assert remap_step_reference(["S1"], {"S1": "N1"}, "initial_step_id", warnings) == ["S1"]
        assert warnings[0]["kind"] == "orphaned_step_reference"

    @pytest.mark.parametrize("value", [None, ""])
    def test_empty_reference_is_silent(self, value):
        warnings = []
        assert remap_step_reference(value, {"a": "b"}, "x", warnings) == value
        assert warnings == []


class TestTkeysAndBookkeeping:
    def test_regenerate_tkeys_at_any_depth(self):
        data = {"label_tkey": "old1", "nested": [{"text_tkey": "old2", "text": "keep"}]}
        result = regenerate_tkeys(data, counter_ids("TK"))
        assert collect_tkeys(result).isdisjoint({"old1", "old2"})
        assert result["nested"][0]["text"] == "keep"

    def test_strip_bookkeeping_nested(self):
        data = {"account_id": 1, "created_at": "x", "steps": [{"updated_at": "y", "deleted_at": None, "id": "s"}]}
        assert strip_bookkeeping(data) == {"steps": [{"id": "s"}]}


class TestRewriteStepReferences:
    """Tests for the deep reference rewrite."""

    def test_rewrites_ids_inside_strings(self):
        payload = {"settings": {"template": "next={{steps.OLD1.output}}", "url": "/x/OLD2"}}
        result = rewrite_step_references(payload, {"OLD1": "NEW1", "OLD2": "NEW2"})
        assert result["settings"]["template"] == "next={{steps.NEW1.output}}"
        assert result["settings"]["url"] == "/x/NEW2"

    def test_replaced_text_is_not_rescanned(self):
        # Chained mapping must not collapse A -> B -> C.
        result = rewrite_step_references({"v": "A B"}, {"A": "B", "B": "C"})
        assert result["v"] == "B C"

    def test_protected_ids_are_left_alone(self):
        fresh = "01XS1YZ0000000000000000000"
        payload = {"id": fresh, "ref": "S1"}
        result = rewrite_step_references(payload, {"S1": "01NEWSTEP00000000000000000"}, protected={fresh})
        assert result["id"] == fresh
        assert result["ref"] == "01NEWSTEP00000000000000000"

    def test_ids_containing_quotes(self):
        result = rewrite_step_references({"v": 'say "q1" now'}, {'"q1"': "fresh"})
        assert result["v"] == "say fresh now"

    def test_empty_map_returns_payload(self):
        payload = {"v": 1}
        assert rewrite_step_references(payload, {}) is payload

    def test_numbers_are_never_rewritten(self):
        payload = {"timeout": 112, "text": "step 12 of 112"}
        result = rewrite_step_references(payload, {"12": "NEW"})
        assert result == {"timeout": 112, "text": "step NEW of 1NEW"}

    def test_non_string_ids_are_skipped(self):
        payload = {"v": "5 and 12"}
        assert rewrite_step_references(payload, {5: "NEW5", 12: "NEW12"}) is payload


class TestPrepareFlow:
    """Tests for the full source-to-target transformation."""

    def test_minimal_flow(self):
        prepared = prepare_flow(MINIMAL_FLOW, 999)
        out = prepared.payload

        assert out["id"] != out["internal_id"]
        assert out["steps"][0]["id"] != "S1"
        assert out["initial_step_id"] == out["steps"][0]["id"]
        assert out["account_id"] == 999
        assert out["is_draft"] is True
        assert out["available_languages"] == ["en-US"]
        assert out["entrypoint"]["label"] == "hi"
        assert is_id(out["entrypoint"]["label_tkey"])
        assert not prepared.has_warnings

    def test_source_is_not_modified(self, sample_flow):
        before = copy.deepcopy(sample_flow)
        prepare_flow(sample_flow, SAMPLE_TARGET_ACCOUNT_ID)
        assert sample_flow == before

    def test_all_identifiers_are_fresh_and_distinct(self, sample_flow):
        out = prepare_flow(sample_flow, SAMPLE_TARGET_ACCOUNT_ID).payload
        new_ids = all_ids(out)
        assert len(set(new_ids)) == len(new_ids)
        assert all(is_id(value) for value in new_ids)

        source_ids = set(all_ids(sample_flow))
        assert source_ids.isdisjoint(new_ids)

    def test_transitions_follow_their_steps(self, sample_flow):
        prepared = prepare_flow(sample_flow, SAMPLE_TARGET_ACCOUNT_ID)
        mapping = prepared.step_id_map
        transitions = prepared.payload["transitions"]

        assert transitions[0]["from_step_id"] == mapping[SAMPLE_STEP_ID]
        assert transitions[0]["to_step_id"] == mapping[SAMPLE_CHOICE_STEP_ID]
        assert transitions[1]["to_step_id"] == mapping[SAMPLE_END_STEP_ID]
        assert transitions[1]["event"] == {"id": "e1", "kind": "choices"}

    def test_tkeys_regenerated(self, sample_flow):
        out = prepare_flow(sample_flow, SAMPLE_TARGET_ACCOUNT_ID).payload
        assert collect_tkeys(out).isdisjoint(collect_tkeys(sample_flow))
        assert len(collect_tkeys(out)) == len(collect_tkeys(sample_flow))

    def test_bookkeeping_stripped_and_account_stamped(self, sample_flow):
        out = prepare_flow(sample_flow, SAMPLE_TARGET_ACCOUNT_ID).payload
        text = json.dumps(out)
        assert "created_at" not in text
        assert "updated_at" not in text
        assert out["account_id"] == SAMPLE_TARGET_ACCOUNT_ID

    def test_optional_fields_carried(self, sample_flow):
        out = prepare_flow(sample_flow, SAMPLE_TARGET_ACCOUNT_ID).payload
        assert out["description"] == sample_flow["description"]
        assert out["inputs"] == sample_flow["inputs"]
        assert out["triggers"] == sample_flow["triggers"]
        assert "category" not in out

    def test_deep_reference_rewrite(self, sample_flow):
        prepared = prepare_flow(sample_flow, SAMPLE_TARGET_ACCOUNT_ID)
        template = prepared.payload["steps"][1]["settings"]["next_step_template"]
        assert template == f"goto:{prepared.step_id_map[SAMPLE_END_STEP_ID]}"
        assert SAMPLE_END_STEP_ID not in json.dumps(prepared.payload)

    def test_orphan_transition_keeps_original_value(self):
        flow = copy.deepcopy(MINIMAL_FLOW)
        flow["transitions"] = [{"id": "T1", "from_step_id": "S1", "to_step_id": "GHOST"}]

        prepared = prepare_flow(flow, 999)
        transition = prepared.payload["transitions"][0]

        assert transition["from_step_id"] == prepared.payload["steps"][0]["id"]
        assert transition["to_step_id"] == "GHOST"
        assert transition["id"] != "T1"
        assert prepared.warnings == [
            {"kind": "orphaned_step_reference", "location": "transitions[0].to_step_id", "value": "GHOST"}
        ]

    def test_long_choice_label(self):
        flow = copy.deepcopy(MINIMAL_FLOW)
        flow["steps"][0]["settings"] = {"choices": [{"label": "L" * 80}]}
        out = prepare_flow(flow, 999).payload
        label = out["steps"][0]["settings"]["choices"][0]["label"]
        assert len(label) == 50
        assert label.endswith(ELLIPSIS)

    def test_step_without_id_gets_fresh_id_and_warning(self):
        flow = copy.deepcopy(MINIMAL_FLOW)
        flow["steps"].append({"kind": "end"})
        prepared = prepare_flow(flow, 999)
        assert is_id(prepared.payload["steps"][1]["id"])
        assert prepared.warnings[0]["kind"] == "missing_step_id"

    def test_short_source_id_does_not_corrupt_fresh_ids(self):
        # Factory output contains the source step id "S1" as a substring.
        prepared = prepare_flow(MINIMAL_FLOW, 999, id_factory=counter_ids("S1"))
        out = prepared.payload
        assert out["initial_step_id"] == out["steps"][0]["id"]
        assert out["id"].startswith("S1")
        assert out["steps"][0]["id"] == prepared.step_id_map["S1"]

    def test_default_name(self):
        flow = copy.deepcopy(MINIMAL_FLOW)
        assert prepare_flow(flow, 1).payload["name"] == "Migrated Flow"
        assert prepare_flow(flow, 1, default_name="Imported Flow").payload["name"] == "Imported Flow"

    def test_flow_id_reported(self, sample_flow):
        prepared = prepare_flow(sample_flow, SAMPLE_TARGET_ACCOUNT_ID)
        assert prepared.flow_id == prepared.payload["id"]
        assert prepared.internal_id == prepared.payload["internal_id"]
        assert prepared.flow_id != SAMPLE_FLOW_ID

    def test_numeric_step_ids(self):
        flow = {
            "id": 7,
            "steps": [
                {"id": 5, "kind": "message", "settings": {"delay": 55, "text": "5 minutes"}},
                {"id": 12, "kind": "end", "settings": {}},
            ],
            "transitions": [{"id": 1, "from_step_id": 5, "to_step_id": 12}],
            "initial_step_id": 5,
        }

        prepared = prepare_flow(flow, 999)
        out = prepared.payload

        assert [is_id(step["id"]) for step in out["steps"]] == [True, True]
        assert out["initial_step_id"] == prepared.step_id_map[5]
        assert out["transitions"][0]["to_step_id"] == prepared.step_id_map[12]
        assert out["steps"][0]["settings"] == {"delay": 55, "text": "5 minutes"}
        assert not prepared.has_warnings

    def test_unhashable_step_id_gets_fresh_id(self):
        flow = copy.deepcopy(MINIMAL_FLOW)
        flow["steps"].append({"id": {"nested": "S2"}, "kind": "end"})

        prepared = prepare_flow(flow, 999)

        assert is_id(prepared.payload["steps"][1]["id"])
        assert prepared.warnings[0]["kind"] == "missing_step_id"

    def test_nested_bookkeeping_removed_and_account_stamped_once(self, sample_flow):
        flow = copy.deepcopy(sample_flow)
        flow["deleted_at"] = None
        flow["steps"][0]["account_id"] = SAMPLE_FLOW_ID
        flow["steps"][0]["settings"]["meta"] = {"account_id": 1, "deleted_at": "2024-01-01T00:00:00Z"}
        flow["transitions"][0]["account_id"] = 1

        out = prepare_flow(flow, SAMPLE_TARGET_ACCOUNT_ID).payload
        text = json.dumps(out)

        assert "deleted_at" not in text
        assert text.count('"account_id"') == 1
        assert out["account_id"] == SAMPLE_TARGET_ACCOUNT_ID
        assert out["steps"][0]["settings"]["meta"] == {}
