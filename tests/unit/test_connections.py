"""Unit tests for connection resolution."""

from callflow_core.flows import (
    ConflictKind,
    Connection,
    FlowGraph,
    FlowNode,
    NodeType,
    resolve_graph,
    resolve_node_connections,
    resolve_slot,
)
from callflow_core.flows.nodes import DecisionCondition, DecisionConfig


def _decision(*condition_ids: str) -> FlowNode:
    return FlowNode(
        id="d1",
        type=NodeType.DECISION,
        label="Route",
        config=DecisionConfig(
            conditions=[
                DecisionCondition(id=cid, name=cid.upper(), value=cid)
                for cid in condition_ids
            ]
        ),
    )


class TestResolveSlot:
    """Tests for mapping edge labels onto slots."""

    def test_unlabeled_edge_uses_primary_slot(self):
        """Test unlabeled edges bind to the primary slot."""
        listen = FlowNode(id="l1", type=NodeType.LISTEN, label="Listen")
        transfer = FlowNode(id="t1", type=NodeType.TRANSFER, label="Transfer")

        assert resolve_slot(listen, None) == "success"
        assert resolve_slot(transfer, "") == "completed"

    def test_legal_label_resolves_to_itself(self):
        """Test explicit legal labels."""
        listen = FlowNode(id="l1", type=NodeType.LISTEN, label="Listen")

        assert resolve_slot(listen, "noInput") == "noInput"

    def test_illegal_label_does_not_resolve(self):
        """Test labels outside the type's slot set."""
        say = FlowNode(id="s1", type=NodeType.SAY, label="Say")

        assert resolve_slot(say, "success") is None

    def test_decision_condition_labels(self):
        """Test decision labels resolve to condition slots or default."""
        node = _decision("c1", "c2")

        assert resolve_slot(node, "c1") == "c1"
        assert resolve_slot(node, "c2") == "c2"
        assert resolve_slot(node, None) == "default"
        assert resolve_slot(node, "c3") == "default"
        assert resolve_slot(node, "default") == "default"

    def test_end_has_no_slots(self):
        """Test end nodes resolve nothing."""
        end = FlowNode(id="e1", type=NodeType.END, label="End")

        assert resolve_slot(end, None) is None


class TestResolveNodeConnections:
    """Tests for per-node slot mappings."""

    def test_mapping(self):
        """Test resolved slot to target mapping."""
        node = _decision("c1", "c2")
        edges = [
            Connection("d1", "a", "c1"),
            Connection("d1", "b"),
            Connection("d1", "c", "c2"),
        ]

        result = resolve_node_connections(node, edges)

        assert result.slots == {"c1": "a", "default": "b", "c2": "c"}
        assert not result.has_conflicts
        assert result.target("default") == "b"

    def test_duplicate_slot_first_edge_wins(self):
        """Test a second edge for a resolved slot is a conflict."""
        say = FlowNode(id="s1", type=NodeType.SAY, label="Say")
        edges = [Connection("s1", "a"), Connection("s1", "b", "next")]

        result = resolve_node_connections(say, edges)

        assert result.slots == {"next": "a"}
        assert len(result.conflicts) == 1
        conflict = result.conflicts[0]
        assert conflict.kind == ConflictKind.DUPLICATE
        assert conflict.message == "Duplicate connection for slot next"
        assert conflict.connection.target == "b"

    def test_unmatched_decision_edges_collide_on_default(self):
        """Test unknown decision labels fall through to default."""
        node = _decision("c1")
        edges = [Connection("d1", "a"), Connection("d1", "b", "maybe")]

        result = resolve_node_connections(node, edges)

        assert result.slots == {"default": "a"}
        assert result.conflicts[0].kind == ConflictKind.DUPLICATE

    def test_unknown_slot(self):
        """Test labels that are not slots of the type."""
        webhook = FlowNode(id="w1", type=NodeType.WEBHOOK, label="Hook")

        result = resolve_node_connections(webhook, [Connection("w1", "x", "timeout")])

        assert result.slots == {}
        assert result.conflicts[0].kind == ConflictKind.UNKNOWN_SLOT

    def test_edges_out_of_end(self):
        """Test end nodes reject outgoing edges."""
        end = FlowNode(id="e1", type=NodeType.END, label="End")

        result = resolve_node_connections(end, [Connection("e1", "x")])

        assert result.conflicts[0].kind == ConflictKind.TERMINAL


class TestResolveGraph:
    """Tests for whole-graph resolution."""

    def test_every_node_resolved(self, linear_graph: FlowGraph):
        """Test every node gets a mapping, terminal ones empty."""
        resolved = resolve_graph(linear_graph)

        assert set(resolved) == {"start1", "say1", "end1"}
        assert resolved["start1"].slots == {"next": "say1"}
        assert resolved["say1"].slots == {"next": "end1"}
        assert resolved["end1"].slots == {}

    def test_cycles_are_plain_edges(self, linear_graph: FlowGraph):
        """Test a loop back to an earlier node resolves normally."""
        linear_graph.connect("say1", "start1", "timeout")

        resolved = resolve_graph(linear_graph)

        assert resolved["say1"].slots == {"next": "end1", "timeout": "start1"}
