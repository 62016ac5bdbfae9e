"""
Canonical Flow Document.

The exchange form of a flow graph: the unit persisted inside every flow
version and handed to the call runtime. This module converts graphs to and
from documents and checks documents against the exchange schema.
"""

from typing import Any, Dict, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel
from typing_extensions import Annotated

from .base import NodeType, ValidationError
from .connections import resolve_graph
from .graph import (
    Connection,
    FlowGraph,
    FlowMetadata,
    FlowNode,
    FlowSettings,
    FlowVariable,
)
from .nodes import NodeRegistry, get_node_registry

SCHEMA_VERSION = "1.0.0"


# =============================================================================
# Exchange Schema
# =============================================================================


class _Doc(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class _Slots(BaseModel):
    model_config = ConfigDict(extra="forbid")


class PositionDoc(_Doc):
    x: float
    y: float


class VoiceDoc(_Doc):
    provider: Literal["elevenlabs", "google", "azure"] = "elevenlabs"
    voice_id: Optional[str] = None
    speed: float = Field(default=1.0, ge=0.5, le=2.0)
    pitch: float = Field(default=0, ge=-20, le=20)


class SttDoc(_Doc):
    provider: Literal["google", "azure", "whisper"] = "google"
    language: str = "de-AT"
    profanity_filter: bool = True


class DtmfDoc(_Doc):
    terminate_on: str = "#"
    max_digits: int = Field(default=10, ge=1, le=20)
    timeout: float = Field(default=5, ge=1, le=10)


# Node configurations. Presence and range rules enforced by the node
# configuration types themselves are left out here.


class StartConfigDoc(_Doc):
    greeting_message: str = ""
    locale: str = "de-AT"
    initial_actions: Optional[List[str]] = None


class SayConfigDoc(_Doc):
    message: str = ""
    voice: Optional[VoiceDoc] = None
    wait_for_response: bool = False
    timeout: float = Field(default=5, ge=1, le=30)


class ListenConfigDoc(_Doc):
    prompt: Optional[str] = None
    timeout: float = 10
    max_retries: int = Field(default=2, ge=0, le=5)
    retry_message: str = ""
    stt: Optional[SttDoc] = None
    expected_input_type: Literal["speech", "dtmf", "both"] = "speech"
    dtmf_config: Optional[DtmfDoc] = None


class ConditionDoc(_Doc):
    id: str
    name: str
    logic: Literal["contains", "equals", "starts_with", "ends_with", "regex", "intent_match"]
    value: str
    case_sensitive: bool = False
    weight: float = Field(default=1.0, ge=0, le=1)


class DecisionConfigDoc(_Doc):
    conditions: List[ConditionDoc] = Field(default_factory=list)
    intent: Optional[Dict[str, Any]] = None


class ApiCallDoc(_Doc):
    method: Literal["GET", "POST", "PUT", "PATCH", "DELETE"]
    url: Optional[str] = None
    headers: Optional[Dict[str, str]] = None
    body: Optional[Dict[str, Any]] = None
    timeout: float = Field(default=10, ge=1, le=30)
    retries: int = Field(default=1, ge=0, le=3)


class ConnectorDoc(_Doc):
    connector_id: str = Field(min_length=1)
    action: Literal[
        "create_contact",
        "update_contact",
        "search_contact",
        "create_appointment",
        "check_availability",
        "send_calendar_invite",
        "create_lead",
        "update_opportunity",
    ]
    parameters: Dict[str, Any] = Field(default_factory=dict)
    mapping: Optional[Dict[str, str]] = None


class VariableOpsDoc(_Doc):
    set: Optional[Dict[str, Any]] = None
    clear: Optional[List[str]] = None


class CommunicationDoc(_Doc):
    to: Optional[str] = None
    message: Optional[str] = None
    template: Optional[str] = None
    scheduled_for: Optional[str] = None


class ActionConfigDoc(_Doc):
    action_type: Optional[
        Literal[
            "api_call",
            "connector_action",
            "set_variable",
            "send_email",
            "send_sms",
            "schedule_callback",
            "transfer_call",
        ]
    ] = None
    api_call: Optional[ApiCallDoc] = None
    connector: Optional[ConnectorDoc] = None
    variables: Optional[VariableOpsDoc] = None
    communication: Optional[CommunicationDoc] = None


class TransferConfigDoc(_Doc):
    transfer_type: Optional[Literal["warm", "cold", "conference"]] = None
    destination: str = ""
    message: Optional[str] = None
    timeout: float = Field(default=30, ge=10, le=300)
    music_on_hold: bool = True
    record_transfer: bool = False


class FieldValidationDoc(_Doc):
    pattern: Optional[str] = None
    min_length: Optional[int] = None
    max_length: Optional[int] = None
    min: Optional[float] = None
    max: Optional[float] = None
    choices: Optional[List[str]] = None


class InfoFieldDoc(_Doc):
    id: str = Field(min_length=1)
    name: str
    type: Literal["text", "email", "phone", "date", "number", "choice"]
    prompt: str
    required: bool = True
    validation: Optional[FieldValidationDoc] = None
    retry_prompt: Optional[str] = None
    max_retries: int = Field(default=2, ge=0, le=5)


class CollectInfoConfigDoc(_Doc):
    fields: List[InfoFieldDoc] = Field(default_factory=list)
    confirmation_prompt: Optional[str] = None
    allow_corrections: bool = True


class WebhookConfigDoc(_Doc):
    url: Optional[str] = None
    method: Literal["POST", "PUT", "PATCH"] = "POST"
    headers: Optional[Dict[str, str]] = None
    payload: Dict[str, Any] = Field(default_factory=dict)
    timeout: float = Field(default=10, ge=1, le=30)
    retries: int = Field(default=1, ge=0, le=3)
    retry_delay: float = Field(default=5, ge=1, le=60)


class PostCallActionDoc(_Doc):
    type: Literal["send_email", "send_sms", "webhook", "connector_action"]
    config: Dict[str, Any] = Field(default_factory=dict)


class EndConfigDoc(_Doc):
    message: Optional[str] = None
    reason: Literal["completed", "transferred", "error", "timeout", "user_hangup"] = "completed"
    post_call_actions: Optional[List[PostCallActionDoc]] = None


# Connection slot maps; undeclared slots are rejected


class StartSlots(_Slots):
    next: Optional[str] = None


class SaySlots(_Slots):
    next: Optional[str] = None
    timeout: Optional[str] = None


class ListenSlots(_Slots):
    success: Optional[str] = None
    timeout: Optional[str] = None
    noInput: Optional[str] = None
    error: Optional[str] = None


class DecisionSlots(_Slots):
    default: Optional[str] = None
    conditions: Dict[str, str] = Field(default_factory=dict)


class ActionSlots(_Slots):
    success: Optional[str] = None
    error: Optional[str] = None
    timeout: Optional[str] = None


class TransferSlots(_Slots):
    completed: Optional[str] = None
    failed: Optional[str] = None
    timeout: Optional[str] = None


class CollectInfoSlots(_Slots):
    success: Optional[str] = None
    incomplete: Optional[str] = None
    error: Optional[str] = None


class WebhookSlots(_Slots):
    success: Optional[str] = None
    error: Optional[str] = None


class EndSlots(_Slots):
    pass


class BaseNodeDoc(_Doc):
    id: str = Field(min_length=1)
    label: str = Field(min_length=1)
    description: Optional[str] = None
    position: PositionDoc
    metadata: Optional[Dict[str, Any]] = None


class StartNodeDoc(BaseNodeDoc):
    type: Literal["start"]
    config: StartConfigDoc
    connections: StartSlots = Field(default_factory=StartSlots)


class SayNodeDoc(BaseNodeDoc):
    type: Literal["say"]
    config: SayConfigDoc
    connections: SaySlots = Field(default_factory=SaySlots)


class ListenNodeDoc(BaseNodeDoc):
    type: Literal["listen"]
    config: ListenConfigDoc
    connections: ListenSlots = Field(default_factory=ListenSlots)


class DecisionNodeDoc(BaseNodeDoc):
    type: Literal["decision"]
    config: DecisionConfigDoc
    connections: DecisionSlots = Field(default_factory=DecisionSlots)


class ActionNodeDoc(BaseNodeDoc):
    type: Literal["action"]
    config: ActionConfigDoc
    connections: ActionSlots = Field(default_factory=ActionSlots)


class TransferNodeDoc(BaseNodeDoc):
    type: Literal["transfer"]
    config: TransferConfigDoc
    connections: TransferSlots = Field(default_factory=TransferSlots)


class CollectInfoNodeDoc(BaseNodeDoc):
    type: Literal["collect_info"]
    config: CollectInfoConfigDoc
    connections: CollectInfoSlots = Field(default_factory=CollectInfoSlots)


class WebhookNodeDoc(BaseNodeDoc):
    type: Literal["webhook"]
    config: WebhookConfigDoc
    connections: WebhookSlots = Field(default_factory=WebhookSlots)


class EndNodeDoc(BaseNodeDoc):
    type: Literal["end"]
    config: EndConfigDoc
    connections: EndSlots = Field(default_factory=EndSlots)


FlowNodeDoc = Annotated[
    Union[
        StartNodeDoc,
        SayNodeDoc,
        ListenNodeDoc,
        DecisionNodeDoc,
        ActionNodeDoc,
        TransferNodeDoc,
        CollectInfoNodeDoc,
        WebhookNodeDoc,
        EndNodeDoc,
    ],
    Field(discriminator="type"),
]


class ErrorHandlingDoc(_Doc):
    max_retries: int = Field(default=3, ge=0, le=5)
    fallback_message: str = ""
    transfer_on_error: bool = False
    transfer_number: Optional[str] = None


class FlowConfigDoc(_Doc):
    system_prompt: str = Field(min_length=10)
    locale: str = "de-AT"
    timezone: str = "Europe/Vienna"
    voice: VoiceDoc = Field(default_factory=VoiceDoc)
    stt: SttDoc = Field(default_factory=SttDoc)
    max_duration: int = Field(default=1800, ge=60, le=3600)
    max_turns: int = Field(default=50, ge=5, le=100)
    enable_recording: bool = False
    enable_transcription: bool = True
    error_handling: ErrorHandlingDoc = Field(default_factory=ErrorHandlingDoc)


class VariableDoc(_Doc):
    id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    type: Literal["string", "number", "boolean", "date", "phone", "email"]
    default_value: Any = None
    description: Optional[str] = None
    scope: Literal["flow", "session", "global"] = "flow"
    persist: bool = False


class MetadataDoc(_Doc):
    name: str = Field(min_length=1)
    description: Optional[str] = None
    version: str = "1.0.0"
    author: Optional[str] = None
    tags: Optional[List[str]] = None
    last_modified: Optional[str] = None


class FlowDocumentModel(_Doc):
    """Complete flow exchange document."""

    schema_version: str = SCHEMA_VERSION
    metadata: MetadataDoc
    config: FlowConfigDoc
    variables: List[VariableDoc] = Field(default_factory=list)
    nodes: List[FlowNodeDoc]


def check_document(document: Any) -> List[Tuple[str, str]]:
    """
    Check a document against the exchange schema.

    Returns:
        List of (field path, message) pairs; empty when the document conforms
    """
    try:
        FlowDocumentModel.model_validate(document)
    except PydanticValidationError as exc:
        return [
            (".".join(str(part) for part in error["loc"]), error["msg"])
            for error in exc.errors()
        ]
    return []


# =============================================================================
# Graph <-> Document
# =============================================================================


def _node_connections(node: FlowNode, slots: Dict[str, str]) -> Dict[str, Any]:
    if node.type == NodeType.DECISION:
        result: Dict[str, Any] = {}
        if "default" in slots:
            result["default"] = slots["default"]
        result["conditions"] = {
            slot: target for slot, target in slots.items() if slot != "default"
        }
        return result
    return dict(slots)


def graph_to_document(
    graph: FlowGraph,
    strict: bool = True,
    registry: Optional[NodeRegistry] = None,
) -> Dict[str, Any]:
    """
    Serialize a graph to the canonical exchange document.

    Args:
        graph: Graph to serialize
        strict: Raise when an edge cannot be bound to a slot. With
            strict=False such edges are left out of the document.
        registry: Node registry (defaults to the shared one)

    Raises:
        ValidationError: strict mode and an edge is a duplicate, names an
            unknown slot, leaves an end node or starts at an unknown node
    """
    registry = registry or get_node_registry()
    resolved = resolve_graph(graph, registry)

    if strict:
        problems = []
        for node_id, result in resolved.items():
            for conflict in result.conflicts:
                problems.append({
                    "node_id": node_id,
                    "slot": conflict.slot,
                    "target": conflict.connection.target,
                    "message": conflict.message,
                })
        for conn in graph.connections:
            if conn.source not in graph.nodes:
                problems.append({
                    "node_id": conn.source,
                    "slot": conn.slot,
                    "target": conn.target,
                    "message": f"Connection source node not found: {conn.source}",
                })
        if problems:
            raise ValidationError(
                "Flow graph has connections that cannot be serialized",
                details={"connections": problems},
            )

    nodes = []
    for node in graph.nodes.values():
        entry: Dict[str, Any] = {
            "id": node.id,
            "type": node.type.value,
            "label": node.label,
            "position": dict(node.position),
            "config": node.config.to_dict(),
            "connections": _node_connections(node, resolved[node.id].slots),
        }
        if node.description is not None:
            entry["description"] = node.description
        if node.metadata is not None:
            entry["metadata"] = node.metadata
        nodes.append(entry)

    return {
        "schemaVersion": SCHEMA_VERSION,
        "metadata": graph.metadata.to_dict(),
        "config": graph.settings.to_dict(),
        "variables": [v.to_dict() for v in graph.variables],
        "nodes": nodes,
    }


def _object(value: Any, path: str) -> Dict[str, Any]:
    """A document section that must be an object when present."""
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValidationError(f"{path}: must be an object", details={"path": path})
    return value


def _list(value: Any, path: str) -> List[Any]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValidationError(f"{path}: must be a list", details={"path": path})
    return value


def _parse_settings(raw: Any) -> FlowSettings:
    config = _object(raw, "config")
    for key in ("voice", "stt", "errorHandling"):
        _object(config.get(key), f"config.{key}")
    return FlowSettings.from_dict(config)


def _parse_metadata(raw: Any) -> FlowMetadata:
    metadata = _object(raw, "metadata")
    _list(metadata.get("tags"), "metadata.tags")
    return FlowMetadata.from_dict(metadata)


def _parse_position(raw: Any, path: str) -> Dict[str, float]:
    position = _object(raw, path)
    result = {}
    for axis in ("x", "y"):
        value = position.get(axis, 0.0)
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValidationError(
                f"{path}.{axis}: must be a number",
                details={"path": f"{path}.{axis}"},
            )
        result[axis] = float(value)
    return result


def _parse_connections(node: FlowNode, raw: Any, path: str) -> List[Connection]:
    if raw is None:
        return []
    if not isinstance(raw, dict):
        raise ValidationError(f"{path}: connections must be an object", details={"path": path})

    pairs: List[Tuple[str, Any]] = []
    for slot, target in raw.items():
        if node.type == NodeType.DECISION and slot == "conditions":
            if not isinstance(target, dict):
                raise ValidationError(
                    f"{path}.conditions: must be an object",
                    details={"path": f"{path}.conditions"},
                )
            pairs.extend(target.items())
        else:
            pairs.append((slot, target))

    connections = []
    for slot, target in pairs:
        if target is None or target == "":
            continue
        if not isinstance(target, str):
            raise ValidationError(
                f"{path}.{slot}: target must be a node id",
                details={"path": f"{path}.{slot}"},
            )
        connections.append(Connection(source=node.id, target=target, slot=slot))
    return connections


def graph_from_document(document: Any) -> FlowGraph:
    """
    Parse a canonical exchange document into a graph.

    Parsing is lenient about configuration content so incomplete drafts
    load; the structure needed to build the graph must be present.

    Raises:
        ValidationError: not a document, unknown node type, missing or
            duplicate node id, malformed connections, a section of the
            wrong type (the error carries the field path)
    """
    if not isinstance(document, dict):
        raise ValidationError("Flow document must be an object")

    raw_nodes = _list(document.get("nodes"), "nodes")

    graph = FlowGraph(
        settings=_parse_settings(document.get("config")),
        variables=[
            FlowVariable.from_dict(v)
            for v in _list(document.get("variables"), "variables")
            if isinstance(v, dict)
        ],
        metadata=_parse_metadata(document.get("metadata")),
    )

    pending: List[Tuple[FlowNode, Any, str]] = []
    for index, raw in enumerate(raw_nodes):
        path = f"nodes.{index}"
        if not isinstance(raw, dict):
            raise ValidationError(f"{path}: node must be an object", details={"path": path})

        node_id = raw.get("id")
        if not isinstance(node_id, str) or not node_id:
            raise ValidationError(f"{path}.id: node id is required", details={"path": f"{path}.id"})

        try:
            node_type = NodeType(raw.get("type"))
        except ValueError:
            raise ValidationError(
                f"{path}.type: unknown node type '{raw.get('type')}'",
                details={"path": f"{path}.type", "node_id": node_id},
            )

        if node_id in graph.nodes:
            raise ValidationError(
                f"{path}.id: duplicate node id '{node_id}'",
                details={"path": f"{path}.id", "node_id": node_id},
            )

        metadata = raw.get("metadata")
        if metadata is not None:
            _object(metadata, f"{path}.metadata")

        node = FlowNode(
            id=node_id,
            type=node_type,
            label=raw.get("label", ""),
            config=_object(raw.get("config"), f"{path}.config"),
            position=_parse_position(raw.get("position"), f"{path}.position"),
            description=raw.get("description"),
            metadata=metadata,
        )
        graph.add_node(node)
        pending.append((node, raw.get("connections"), f"{path}.connections"))

    for node, raw_connections, path in pending:
        graph.connections.extend(_parse_connections(node, raw_connections, path))

    return graph


__all__ = [
    "SCHEMA_VERSION",
    "FlowDocumentModel",
    "check_document",
    "graph_to_document",
    "graph_from_document",
]
