"""
Flow Definitions and Versioning.

Node types, the flow graph model, validation, version storage and the
version lifecycle.
"""

from .audit import AuditRecord, AuditSink, InMemoryAuditSink, LoggingAuditSink
from .base import (
    ConflictError,
    ErrorCode,
    Flow,
    FlowError,
    FlowState,
    FlowVersion,
    InvalidStateError,
    IssueSeverity,
    NodeCategory,
    NodeType,
    NotFoundError,
    StatusChange,
    ValidationError,
    VersionStatus,
)
from .connections import (
    ConflictKind,
    ConnectionConflict,
    ResolvedConnections,
    resolve_graph,
    resolve_node_connections,
    resolve_slot,
)
from .document import (
    SCHEMA_VERSION,
    FlowDocumentModel,
    check_document,
    graph_from_document,
    graph_to_document,
)
from .graph import (
    Connection,
    ErrorHandlingPolicy,
    FlowGraph,
    FlowMetadata,
    FlowNode,
    FlowSettings,
    FlowVariable,
    SttSettings,
    VoiceSettings,
)
from .lifecycle import check_promotion_target, check_transition
from .nodes import NodeDefinition, NodeRegistry, SlotDefinition, get_node_registry
from .promotion import PromotionEngine
from .service import BotReferenceChecker, FlowService, NoBotReferences
from .storage import InMemoryVersionStorage, VersionStorage
from .templates import build_template, list_templates
from .validator import FlowValidator, ValidationIssue, ValidationResult, validate_graph

__all__ = [
    # Types
    "NodeType",
    "NodeCategory",
    "VersionStatus",
    "IssueSeverity",
    "ErrorCode",
    "Flow",
    "FlowVersion",
    "FlowState",
    "StatusChange",
    # Errors
    "FlowError",
    "ValidationError",
    "ConflictError",
    "InvalidStateError",
    "NotFoundError",
    # Registry
    "NodeRegistry",
    "NodeDefinition",
    "SlotDefinition",
    "get_node_registry",
    # Graph
    "FlowGraph",
    "FlowNode",
    "Connection",
    "FlowSettings",
    "FlowVariable",
    "FlowMetadata",
    "VoiceSettings",
    "SttSettings",
    "ErrorHandlingPolicy",
    # Connections
    "ConflictKind",
    "ConnectionConflict",
    "ResolvedConnections",
    "resolve_slot",
    "resolve_node_connections",
    "resolve_graph",
    # Document
    "SCHEMA_VERSION",
    "FlowDocumentModel",
    "check_document",
    "graph_to_document",
    "graph_from_document",
    # Validation
    "FlowValidator",
    "ValidationIssue",
    "ValidationResult",
    "validate_graph",
    # Lifecycle
    "check_transition",
    "check_promotion_target",
    "PromotionEngine",
    # Storage
    "VersionStorage",
    "InMemoryVersionStorage",
    # Audit
    "AuditRecord",
    "AuditSink",
    "LoggingAuditSink",
    "InMemoryAuditSink",
    # Service
    "FlowService",
    "BotReferenceChecker",
    "NoBotReferences",
    # Templates
    "build_template",
    "list_templates",
]
