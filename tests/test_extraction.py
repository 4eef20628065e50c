"""
Tests for extraction payload parsing and type resolution.
"""

import json

import pytest

from contextgraph.core.exceptions import MalformedExtractionError
from contextgraph.core.extraction import build_extraction_prompt, load_payload, parse_extraction
from contextgraph.core.models import Source
from contextgraph.core.normalize import generate_id


def _payload(**overrides):
    payload = {
        "entities": [
            {"label": "Chris", "type": "person", "confidence": 0.9, "salience": 0.8},
            {"label": "nyu-swipes", "type": "project", "attributes": {"stack": "elixir"}},
        ],
        "relationships": [
            {"sourceLabel": "Chris", "targetLabel": "nyu-swipes", "type": "works_on",
             "evidence": "Chris is building nyu-swipes", "weight": 0.7, "confidence": 0.8},
        ],
        "insights": ["Chris spends weekends coding"],
    }
    payload.update(overrides)
    return payload


class TestLoadPayload:
    def test_accepts_dict(self):
        assert load_payload(_payload())["insights"] == ["Chris spends weekends coding"]

    def test_accepts_fenced_json(self):
        raw = "Sure!\n```json\n" + json.dumps(_payload()) + "\n```"
        assert len(load_payload(raw)["entities"]) == 2

    def test_accepts_bytes(self):
        assert len(load_payload(json.dumps(_payload()).encode("utf-8"))["relationships"]) == 1

    def test_missing_sections_default_empty(self):
        assert load_payload("{}") == {"entities": [], "relationships": [], "insights": []}

    @pytest.mark.parametrize("raw", [
        "not json at all",
        "[1, 2, 3]",
        json.dumps({"entities": {"label": "x"}}),
        json.dumps({"entities": [{"type": "person"}]}),
        json.dumps({"entities": [{"label": "  ", "type": "person"}]}),
        json.dumps({"entities": [{"label": "Chris", "type": "person", "attributes": ["a"]}]}),
        json.dumps({"relationships": [{"sourceLabel": "a", "type": "knows"}]}),
        json.dumps({"relationships": ["knows"]}),
        json.dumps({"insights": "one insight"}),
    ])
    def test_rejects_malformed(self, raw):
        with pytest.raises(MalformedExtractionError):
            load_payload(raw)


class TestParseWithoutRegistry:
    def test_nodes_and_edges(self):
        batch = parse_extraction(_payload())
        chris, project = batch.nodes
        assert chris.id == generate_id("person", "Chris")
        assert chris.weight == 1
        assert chris.verified
        assert not project.verified
        assert project.attributes == {"stack": "elixir"}

        edge = batch.edges[0]
        assert (edge.source_ref, edge.target_ref, edge.type) == ("Chris", "nyu-swipes", "works_on")
        assert edge.evidence == ["Chris is building nyu-swipes"]
        assert edge.weight == pytest.approx(0.7)

    def test_type_names_are_normalized(self):
        batch = parse_extraction(_payload(
            entities=[{"label": "The Bear", "type": "TV Show"}],
            relationships=[{"sourceLabel": "a", "targetLabel": "b", "type": "Talked About"}],
        ))
        assert batch.nodes[0].type == "tv_show"
        assert batch.edges[0].type == "talked_about"
        assert batch.new_node_types == []

    @pytest.mark.parametrize("confidence,expected,verified", [
        (1.5, 1.0, True),
        (-2, 0.0, False),
        (0.8, 0.8, True),
        (None, 0.5, False),
        ("high", 0.5, False),
        (True, 0.5, False),
    ])
    def test_confidence_is_clamped(self, confidence, expected, verified):
        batch = parse_extraction({"entities": [{"label": "Chris", "type": "person", "confidence": confidence}]})
        assert batch.nodes[0].confidence == pytest.approx(expected)
        assert batch.nodes[0].verified is verified

    def test_source_is_attached(self):
        source = Source(kind="conversation", id="conv-1")
        batch = parse_extraction(_payload(), source=source)
        assert batch.nodes[0].sources == [source]
        assert batch.edges[0].sources == [source]

    def test_batch_confidence(self):
        batch = parse_extraction(_payload())
        assert batch.confidence == pytest.approx(((0.9 + 0.5) / 2 + 0.8) / 2)


class TestParseWithRegistry:
    def test_existing_types_record_usage(self, registry):
        batch = parse_extraction(_payload(entities=[{"label": "Chris", "type": "Persons"}]), registry)
        assert batch.nodes[0].type == "person"
        assert registry.node_types["person"].usage_count == 1
        assert registry.edge_types["works_on"].usage_count == 1
        assert batch.new_node_types == []

    def test_proposed_type_is_registered(self, registry):
        batch = parse_extraction(_payload(entities=[{
            "label": "Joe's Pizza",
            "type": "restaurant",
            "isNewType": True,
            "newTypeDefinition": {"label": "Restaurant", "description": "A place to eat", "category": "entity"},
        }]), registry)
        assert batch.new_node_types == ["restaurant"]
        definition = registry.node_types["restaurant"]
        assert definition.description == "A place to eat"
        assert definition.examples == ["Joe's Pizza"]

    def test_unknown_type_is_auto_registered(self, registry):
        batch = parse_extraction(_payload(
            entities=[{"label": "Pad Thai", "type": "dish"}],
            relationships=[{"sourceLabel": "Chris", "targetLabel": "Pad Thai", "type": "cooked"}],
        ), registry)
        assert batch.new_node_types == ["dish"]
        assert batch.new_edge_types == ["cooked"]
        assert registry.node_types["dish"].description == "Auto-registered type for: Pad Thai"
        assert registry.node_types["dish"].category == "concept"
        assert registry.edge_types["cooked"].description == "Auto-registered edge for: Chris -> Pad Thai"

    def test_proposed_edge_type(self, registry):
        batch = parse_extraction(_payload(relationships=[{
            "sourceLabel": "Chris", "targetLabel": "Katie", "type": "mentors", "isNewType": True,
            "newTypeDefinition": {"label": "Mentors", "description": "Guides", "directionality": "sideways"},
        }]), registry)
        assert batch.new_edge_types == ["mentors"]
        assert registry.edge_types["mentors"].directionality == "directed"

    def test_registry_is_persisted(self, registry):
        parse_extraction(_payload(entities=[{"label": "Pad Thai", "type": "dish"}]), registry)
        assert not registry.dirty
        assert "dish" in json.loads(registry.path.read_text())["node_types"]

    def test_malformed_payload_registers_nothing(self, registry):
        raw = {"entities": [
            {"label": "Joe's Pizza", "type": "restaurant", "isNewType": True,
             "newTypeDefinition": {"description": "A place to eat"}},
            {"label": "", "type": "dish"},
        ]}
        with pytest.raises(MalformedExtractionError):
            parse_extraction(raw, registry)
        assert "restaurant" not in registry.node_types
        assert not registry.dirty


class TestPrompt:
    def test_prompt_sections(self, registry):
        prompt = build_extraction_prompt("Chris met Katie", registry, existing_context="- Chris (person)")
        assert "OUTPUT FORMAT (JSON)" in prompt
        assert "KNOWN NODE TYPES" in prompt
        assert "EXISTING KNOWLEDGE (avoid duplicating):\n- Chris (person)" in prompt
        assert prompt.endswith("TEXT TO ANALYZE:\nChris met Katie")

    def test_prompt_without_registry(self):
        prompt = build_extraction_prompt("hello")
        assert "KNOWN NODE TYPES" not in prompt
        assert "EXISTING KNOWLEDGE" not in prompt
