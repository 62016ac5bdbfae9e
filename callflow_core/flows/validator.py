"""
Flow Validator.

Validates flow structure, connections, node configurations and the
canonical document form of a flow graph.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from ..config import ValidationConfig, get_settings
from .base import IssueSeverity, NodeType
from .connections import ResolvedConnections, resolve_graph
from .document import check_document, graph_to_document
from .graph import FlowGraph, FlowNode
from .nodes import DecisionConfig, NodeRegistry, get_node_registry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ValidationIssue:
    """A single validation finding."""

    severity: IssueSeverity
    code: str
    message: str
    node_id: Optional[str] = None
    node_label: Optional[str] = None
    node_type: Optional[str] = None
    slot: Optional[str] = None
    path: Optional[str] = None

    @property
    def is_error(self) -> bool:
        return self.severity == IssueSeverity.ERROR

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "severity": self.severity.value,
            "code": self.code,
            "message": self.message,
        }
        for key, value in (
            ("nodeId", self.node_id),
            ("nodeLabel", self.node_label),
            ("nodeType", self.node_type),
            ("slot", self.slot),
            ("path", self.path),
        ):
            if value is not None:
                result[key] = value
        return result


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of validating a graph. Warnings never affect validity."""

    is_valid: bool
    errors: Tuple[ValidationIssue, ...] = ()
    warnings: Tuple[ValidationIssue, ...] = ()
    checked_at: datetime = field(default_factory=datetime.utcnow)

    @property
    def error_count(self) -> int:
        return len(self.errors)

    @property
    def warning_count(self) -> int:
        return len(self.warnings)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "isValid": self.is_valid,
            "errors": [i.to_dict() for i in self.errors],
            "warnings": [i.to_dict() for i in self.warnings],
        }


def _error(code: str, message: str, node: Optional[FlowNode] = None, **kwargs) -> ValidationIssue:
    return _issue(IssueSeverity.ERROR, code, message, node, **kwargs)


def _warning(code: str, message: str, node: Optional[FlowNode] = None, **kwargs) -> ValidationIssue:
    return _issue(IssueSeverity.WARNING, code, message, node, **kwargs)


def _issue(
    severity: IssueSeverity,
    code: str,
    message: str,
    node: Optional[FlowNode],
    **kwargs,
) -> ValidationIssue:
    if node is not None:
        kwargs.setdefault("node_id", node.id)
        kwargs.setdefault("node_label", node.display_name)
        kwargs.setdefault("node_type", node.type.value)
    return ValidationIssue(severity=severity, code=code, message=message, **kwargs)


class FlowValidator:
    """
    Validates flow graphs.

    Checks:
    - Structure (start and end nodes)
    - Node configuration (per-type constraints)
    - Connections (required slots, conflicts, dangling references)
    - Reachability (nodes and decision conditions without incoming paths)
    - Canonical document schema
    - Resource limits

    The validator holds no per-call state; one instance may be shared
    between threads.
    """

    def __init__(
        self,
        settings: Optional[ValidationConfig] = None,
        registry: Optional[NodeRegistry] = None,
    ):
        """Initialize validator."""
        self.settings = settings or get_settings().validation
        self.registry = registry or get_node_registry()

    def validate(self, graph: FlowGraph) -> ValidationResult:
        """
        Validate a complete flow graph.

        Args:
            graph: Graph to validate

        Returns:
            ValidationResult with errors and warnings found
        """
        if not graph.nodes:
            return ValidationResult(
                is_valid=False,
                errors=(_error("empty_flow", "Flow must contain at least one node"),),
            )

        issues: List[ValidationIssue] = []
        resolved = resolve_graph(graph, self.registry)

        # Structural validation
        issues.extend(self._validate_structure(graph))

        # Node validation
        issues.extend(self._validate_nodes(graph))

        # Connection validation
        issues.extend(self._validate_connections(graph, resolved))

        # Reachability
        issues.extend(self._validate_reachability(graph, resolved))

        # Canonical document
        issues.extend(self._validate_document(graph))

        # Resource limits
        issues.extend(self._validate_limits(graph))

        errors = tuple(i for i in issues if i.is_error)
        warnings = tuple(i for i in issues if not i.is_error)

        logger.debug(
            f"Validated flow graph with {len(graph)} nodes: "
            f"{len(errors)} errors, {len(warnings)} warnings"
        )

        return ValidationResult(
            is_valid=not errors,
            errors=errors,
            warnings=warnings,
        )

    def quick_validate(self, graph: FlowGraph) -> bool:
        """Check validity only."""
        return self.validate(graph).is_valid

    def _validate_structure(self, graph: FlowGraph) -> List[ValidationIssue]:
        """Validate start and end nodes."""
        issues = []

        start_nodes = graph.nodes_of_type(NodeType.START)
        if not start_nodes:
            issues.append(_error("missing_start", "Flow must have exactly one start node"))
        elif len(start_nodes) > 1:
            for node in start_nodes[1:]:
                issues.append(
                    _error("multiple_start", "Flow can only have one start node", node)
                )

        if not graph.nodes_of_type(NodeType.END):
            issues.append(_warning("missing_end", "Flow should have at least one end node"))

        return issues

    def _validate_nodes(self, graph: FlowGraph) -> List[ValidationIssue]:
        """Validate per-type node configuration."""
        issues = []

        for node in graph.nodes.values():
            for problem in node.config.check():
                issues.append(
                    _error(
                        "invalid_config",
                        f"{node.display_name} ({node.type.value}): {problem}",
                        node,
                    )
                )

        return issues

    def _validate_connections(
        self,
        graph: FlowGraph,
        resolved: Dict[str, ResolvedConnections],
    ) -> List[ValidationIssue]:
        """Validate slot bindings and connection endpoints."""
        issues = []

        for conn in graph.connections:
            if conn.source not in graph.nodes:
                issues.append(
                    _error(
                        "unknown_source",
                        f"Connection source node not found: {conn.source}",
                        slot=conn.slot,
                    )
                )
            elif conn.target not in graph.nodes:
                issues.append(
                    _error(
                        "unknown_target",
                        f"Node '{conn.source}' connects to non-existent node '{conn.target}'",
                        graph.nodes[conn.source],
                        slot=conn.slot,
                    )
                )

        for node_id, node in graph.nodes.items():
            result = resolved[node_id]

            for conflict in result.conflicts:
                issues.append(
                    _error(conflict.kind.value, conflict.message, node, slot=conflict.slot)
                )

            required, _optional = self.registry.slots_for(node.type, node.config)
            for slot in required:
                if result.target(slot) is None:
                    issues.append(
                        _error(
                            "missing_connection",
                            f"{node.display_name} ({node.type.value}) "
                            f"is missing required connection '{slot}'",
                            node,
                            slot=slot,
                        )
                    )

        return issues

    def _validate_reachability(
        self,
        graph: FlowGraph,
        resolved: Dict[str, ResolvedConnections],
    ) -> List[ValidationIssue]:
        """Find nodes and decision conditions nothing leads to."""
        issues = []
        targeted = {c.target for c in graph.connections if c.source in graph.nodes}

        for node in graph.nodes.values():
            if node.type != NodeType.START and node.id not in targeted:
                issues.append(
                    _warning(
                        "unreachable_node",
                        f"{node.display_name} has no incoming connections",
                        node,
                    )
                )

            if node.type == NodeType.DECISION and isinstance(node.config, DecisionConfig):
                slots = resolved[node.id].slots
                unbound = [
                    cid for cid in dict.fromkeys(node.config.condition_ids)
                    if cid != "default" and cid not in slots
                ]
                if unbound:
                    issues.append(
                        _warning(
                            "unreachable_conditions",
                            f"{node.display_name}: conditions without connection "
                            f"are unreachable: {', '.join(unbound)}",
                            node,
                        )
                    )

        return issues

    def _validate_document(self, graph: FlowGraph) -> List[ValidationIssue]:
        """Check the canonical document form against the exchange schema."""
        document = graph_to_document(graph, strict=False, registry=self.registry)
        node_ids = list(graph.nodes)

        issues = []
        for path, message in check_document(document):
            node = None
            parts = path.split(".")
            if len(parts) > 1 and parts[0] == "nodes" and parts[1].isdigit():
                index = int(parts[1])
                if index < len(node_ids):
                    node = graph.nodes[node_ids[index]]
            issues.append(_error("schema", f"{path}: {message}", node, path=path))

        return issues

    def _validate_limits(self, graph: FlowGraph) -> List[ValidationIssue]:
        """Validate resource limits."""
        issues = []

        if len(graph) > self.settings.max_nodes_per_flow:
            issues.append(
                _error(
                    "too_many_nodes",
                    f"Flow exceeds maximum nodes ({self.settings.max_nodes_per_flow})",
                )
            )

        for node in graph.nodes.values():
            count = len(graph.outgoing(node.id))
            if count > self.settings.max_connections_per_node:
                issues.append(
                    _warning(
                        "too_many_connections",
                        f"{node.display_name} has {count} connections "
                        f"(max: {self.settings.max_connections_per_node})",
                        node,
                    )
                )

        return issues


def validate_graph(graph: FlowGraph) -> ValidationResult:
    """Validate a graph with the default validator settings."""
    return FlowValidator().validate(graph)


__all__ = [
    "ValidationIssue",
    "ValidationResult",
    "FlowValidator",
    "validate_graph",
]
