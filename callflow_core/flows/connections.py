"""
Connection Resolution.

Maps the raw edge list of a graph onto the named slots of each source node.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Optional, Tuple

from .base import NodeType
from .graph import Connection, FlowGraph, FlowNode
from .nodes import DecisionConfig, NodeRegistry, get_node_registry


class ConflictKind(str, Enum):
    """Reasons an edge could not be bound to a slot."""

    DUPLICATE = "duplicate_slot"
    UNKNOWN_SLOT = "unknown_slot"
    TERMINAL = "terminal_node"


@dataclass(frozen=True)
class ConnectionConflict:
    """An edge that could not be bound to a slot."""

    kind: ConflictKind
    connection: Connection
    slot: Optional[str]
    message: str


@dataclass(frozen=True)
class ResolvedConnections:
    """Slot to target mapping of one node."""

    node_id: str
    slots: Dict[str, str] = field(default_factory=dict)
    conflicts: Tuple[ConnectionConflict, ...] = ()

    def target(self, slot: str) -> Optional[str]:
        return self.slots.get(slot)

    @property
    def has_conflicts(self) -> bool:
        return bool(self.conflicts)


def resolve_slot(
    node: FlowNode,
    label: Optional[str],
    registry: Optional[NodeRegistry] = None,
) -> Optional[str]:
    """
    Resolve an edge label to a slot id of the source node.

    Returns None when the label does not name a legal slot.
    """
    registry = registry or get_node_registry()
    node_def = registry.get(node.type)

    if node_def.is_terminal:
        return None

    if node.type == NodeType.DECISION:
        config = node.config
        if (
            label
            and isinstance(config, DecisionConfig)
            and label in config.condition_ids
            and label not in node_def.slot_ids
        ):
            return label
        return node_def.primary_slot

    if not label:
        return node_def.primary_slot
    if label in node_def.slot_ids:
        return label
    return None


def resolve_node_connections(
    node: FlowNode,
    edges: Iterable[Connection],
    registry: Optional[NodeRegistry] = None,
) -> ResolvedConnections:
    """
    Compute the resolved slot mapping of a node from its outgoing edges.

    The first edge bound to a slot wins; later edges for the same slot are
    reported as duplicate conflicts.
    """
    registry = registry or get_node_registry()
    slots: Dict[str, str] = {}
    conflicts: List[ConnectionConflict] = []

    for edge in edges:
        if registry.get(node.type).is_terminal:
            conflicts.append(
                ConnectionConflict(
                    kind=ConflictKind.TERMINAL,
                    connection=edge,
                    slot=edge.slot,
                    message=f"{node.type.value} nodes cannot have outgoing connections",
                )
            )
            continue

        slot = resolve_slot(node, edge.slot, registry)
        if slot is None:
            conflicts.append(
                ConnectionConflict(
                    kind=ConflictKind.UNKNOWN_SLOT,
                    connection=edge,
                    slot=edge.slot,
                    message=f"Unknown connection slot '{edge.slot}' for {node.type.value} node",
                )
            )
            continue

        if slot in slots:
            conflicts.append(
                ConnectionConflict(
                    kind=ConflictKind.DUPLICATE,
                    connection=edge,
                    slot=slot,
                    message=f"Duplicate connection for slot {slot}",
                )
            )
            continue

        slots[slot] = edge.target

    return ResolvedConnections(node_id=node.id, slots=slots, conflicts=tuple(conflicts))


def resolve_graph(
    graph: FlowGraph,
    registry: Optional[NodeRegistry] = None,
) -> Dict[str, ResolvedConnections]:
    """Resolve the outgoing connections of every node in a graph."""
    registry = registry or get_node_registry()

    by_source: Dict[str, List[Connection]] = {node_id: [] for node_id in graph.nodes}
    for conn in graph.connections:
        if conn.source in by_source:
            by_source[conn.source].append(conn)

    return {
        node_id: resolve_node_connections(node, by_source[node_id], registry)
        for node_id, node in graph.nodes.items()
    }


__all__ = [
    "ConflictKind",
    "ConnectionConflict",
    "ResolvedConnections",
    "resolve_slot",
    "resolve_node_connections",
    "resolve_graph",
]
