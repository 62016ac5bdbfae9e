"""Unit tests for the canonical flow document."""

import pytest

from callflow_core.flows import (
    SCHEMA_VERSION,
    Connection,
    FlowGraph,
    FlowNode,
    NodeType,
    ValidationError,
    check_document,
    graph_from_document,
    graph_to_document,
    resolve_graph,
)
from callflow_core.flows.nodes import DecisionCondition, DecisionConfig, EndConfig, StartConfig


class TestGraphToDocument:
    """Tests for serialization."""

    def test_document_shape(self, linear_graph: FlowGraph):
        """Test the exchange document layout."""
        document = graph_to_document(linear_graph)

        assert document["schemaVersion"] == SCHEMA_VERSION
        assert document["metadata"]["name"] == "Untitled Flow"
        assert document["config"]["locale"] == "de-AT"
        assert document["variables"] == []
        assert [n["id"] for n in document["nodes"]] == ["start1", "say1", "end1"]

        start = document["nodes"][0]
        assert start["type"] == "start"
        assert start["config"]["greetingMessage"] == "Guten Tag!"
        assert start["connections"] == {"next": "say1"}
        assert document["nodes"][2]["connections"] == {}

    def test_decision_connections(self):
        """Test decision slots are split into default and conditions."""
        graph = FlowGraph.build(
            nodes=[
                FlowNode(
                    id="d1",
                    type=NodeType.DECISION,
                    label="Route",
                    config=DecisionConfig(
                        conditions=[DecisionCondition(id="c1", name="Yes", value="ja")]
                    ),
                ),
                FlowNode(id="e1", type=NodeType.END, label="End"),
            ],
            connections=[("d1", "e1"), ("d1", "e1", "c1")],
        )

        document = graph_to_document(graph)

        assert document["nodes"][0]["connections"] == {
            "default": "e1",
            "conditions": {"c1": "e1"},
        }

    def test_conflicting_edges_rejected(self, linear_graph: FlowGraph):
        """Test graphs with unbindable edges cannot be serialized."""
        linear_graph.connect("say1", "start1", "next")

        with pytest.raises(ValidationError) as exc_info:
            graph_to_document(linear_graph)

        problems = exc_info.value.details["connections"]
        assert problems[0]["node_id"] == "say1"
        assert problems[0]["slot"] == "next"

    def test_lenient_mode_drops_conflicts(self, linear_graph: FlowGraph):
        """Test non-strict serialization keeps the first binding."""
        linear_graph.connect("say1", "start1", "next")

        document = graph_to_document(linear_graph, strict=False)

        assert document["nodes"][1]["connections"] == {"next": "end1"}

    def test_generated_document_conforms(self, linear_graph: FlowGraph):
        """Test a valid graph serializes to a schema-conformant document."""
        assert check_document(graph_to_document(linear_graph)) == []


class TestGraphFromDocument:
    """Tests for parsing."""

    def test_round_trip_explicit_slots(self, linear_graph: FlowGraph):
        """Test parse(serialize(g)) yields the same nodes and connections."""
        parsed = graph_from_document(graph_to_document(linear_graph))

        assert parsed.nodes == linear_graph.nodes
        assert parsed.connections == linear_graph.connections
        assert parsed.settings == linear_graph.settings

    def test_round_trip_unlabeled_edges(self):
        """Test unlabeled edges come back bound to their resolved slot."""
        graph = FlowGraph.build(
            nodes=[
                FlowNode(id="s", type=NodeType.START, label="Start", config=StartConfig(greeting_message="Hi")),
                FlowNode(id="e", type=NodeType.END, label="End", config=EndConfig()),
            ],
            connections=[("s", "e")],
        )

        parsed = graph_from_document(graph_to_document(graph))

        assert parsed.connections == [Connection("s", "e", "next")]
        assert {k: r.slots for k, r in resolve_graph(parsed).items()} == {
            k: r.slots for k, r in resolve_graph(graph).items()
        }

    def test_round_trip_cycle(self, linear_graph: FlowGraph):
        """Test loops survive a round trip."""
        linear_graph.connect("say1", "start1", "timeout")

        parsed = graph_from_document(graph_to_document(linear_graph))

        assert Connection("say1", "start1", "timeout") in parsed.connections

    def test_unknown_node_type(self):
        """Test unknown node types are rejected with a path."""
        document = {"nodes": [{"id": "x", "type": "loop", "label": "X"}]}

        with pytest.raises(ValidationError) as exc_info:
            graph_from_document(document)

        assert exc_info.value.details["path"] == "nodes.0.type"

    def test_duplicate_node_id(self):
        """Test node ids must be unique."""
        document = {
            "nodes": [
                {"id": "a", "type": "say", "label": "A"},
                {"id": "a", "type": "end", "label": "B"},
            ]
        }

        with pytest.raises(ValidationError) as exc_info:
            graph_from_document(document)

        assert exc_info.value.details["path"] == "nodes.1.id"

    def test_not_a_document(self):
        """Test non-object input."""
        with pytest.raises(ValidationError):
            graph_from_document(["nodes"])

    def test_incomplete_config_loads(self):
        """Test drafts with missing configuration still parse."""
        graph = graph_from_document(
            {"nodes": [{"id": "l1", "type": "listen", "label": "Listen", "config": {}}]}
        )

        assert graph.nodes["l1"].config.timeout == 10
        assert graph.connections == []

    def test_empty_targets_ignored(self):
        """Test empty slot values mean unconnected."""
        graph = graph_from_document(
            {
                "nodes": [
                    {
                        "id": "l1",
                        "type": "listen",
                        "label": "Listen",
                        "connections": {"success": "", "timeout": None},
                    }
                ]
            }
        )

        assert graph.connections == []

    @pytest.mark.parametrize(
        "keys,value,path",
        [
            (("config",), "x", "config"),
            (("config", "voice"), "x", "config.voice"),
            (("metadata",), ["x"], "metadata"),
            (("metadata", "tags"), 5, "metadata.tags"),
            (("variables",), "abc", "variables"),
            (("nodes", 0, "position"), [1, 2], "nodes.0.position"),
            (("nodes", 0, "position"), "abc", "nodes.0.position"),
            (("nodes", 1, "config"), 7, "nodes.1.config"),
            (("nodes", 1, "metadata"), "note", "nodes.1.metadata"),
        ],
    )
    def test_section_of_wrong_type(self, linear_graph: FlowGraph, keys, value, path):
        """Test sections of the wrong type are rejected with their path."""
        document = graph_to_document(linear_graph)
        section = document
        for key in keys[:-1]:
            section = section[key]
        section[keys[-1]] = value

        with pytest.raises(ValidationError) as exc_info:
            graph_from_document(document)

        assert exc_info.value.details["path"] == path

    def test_position_normalized(self):
        """Test positions are stored as float x/y pairs."""
        graph = graph_from_document(
            {"nodes": [{"id": "s1", "type": "say", "label": "Say", "position": {"x": 3}}]}
        )

        assert graph.nodes["s1"].position == {"x": 3.0, "y": 0.0}
        assert graph_to_document(graph, strict=False)["nodes"][0]["position"] == {"x": 3.0, "y": 0.0}

    def test_position_coordinate_must_be_number(self):
        """Test non-numeric coordinates name the axis."""
        document = {
            "nodes": [
                {"id": "s1", "type": "say", "label": "Say", "position": {"x": "left", "y": 1}}
            ]
        }

        with pytest.raises(ValidationError) as exc_info:
            graph_from_document(document)

        assert exc_info.value.details["path"] == "nodes.0.position.x"


class TestCheckDocument:
    """Tests for schema checks on raw documents."""

    def test_missing_sections(self):
        """Test required top-level sections."""
        paths = [path for path, _ in check_document({"nodes": []})]

        assert "metadata" in paths
        assert "config" in paths

    def test_unknown_connection_slot(self, linear_graph: FlowGraph):
        """Test connection maps reject undeclared slots."""
        document = graph_to_document(linear_graph)
        document["nodes"][2]["connections"] = {"next": "start1"}

        paths = [path for path, _ in check_document(document)]

        assert any(p.startswith("nodes.2") and p.endswith("next") for p in paths)
