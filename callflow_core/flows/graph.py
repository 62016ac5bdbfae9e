"""
Flow Graph Model.

In-memory representation of a call flow: an arena of nodes keyed by id and
a list of labeled connections between node ids. Connections never hold
references to node objects, so loops back to earlier nodes are ordinary
edges.
"""

import copy
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Union

from .base import ConflictError, NodeType
from .nodes import NodeConfig, get_node_registry


# =============================================================================
# Flow-level Settings
# =============================================================================


@dataclass
class VoiceSettings:
    """Text-to-speech settings."""

    provider: Any = "elevenlabs"
    voice_id: Optional[str] = None
    speed: Any = 1.0
    pitch: Any = 0

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "VoiceSettings":
        data = data or {}
        return cls(
            provider=data.get("provider", "elevenlabs"),
            voice_id=data.get("voiceId"),
            speed=data.get("speed", 1.0),
            pitch=data.get("pitch", 0),
        )

    def to_dict(self) -> Dict[str, Any]:
        result = {"provider": self.provider, "speed": self.speed, "pitch": self.pitch}
        if self.voice_id is not None:
            result["voiceId"] = self.voice_id
        return result


@dataclass
class SttSettings:
    """Speech-to-text settings."""

    provider: Any = "google"
    language: Any = "de-AT"
    profanity_filter: Any = True

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "SttSettings":
        data = data or {}
        return cls(
            provider=data.get("provider", "google"),
            language=data.get("language", "de-AT"),
            profanity_filter=data.get("profanityFilter", True),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "provider": self.provider,
            "language": self.language,
            "profanityFilter": self.profanity_filter,
        }


@dataclass
class ErrorHandlingPolicy:
    """What the runtime does when a node fails."""

    max_retries: Any = 3
    fallback_message: Any = (
        "I'm sorry, a technical error occurred. Please try again later."
    )
    transfer_on_error: Any = False
    transfer_number: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "ErrorHandlingPolicy":
        data = data or {}
        defaults = cls()
        return cls(
            max_retries=data.get("maxRetries", defaults.max_retries),
            fallback_message=data.get("fallbackMessage", defaults.fallback_message),
            transfer_on_error=data.get("transferOnError", defaults.transfer_on_error),
            transfer_number=data.get("transferNumber"),
        )

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "maxRetries": self.max_retries,
            "fallbackMessage": self.fallback_message,
            "transferOnError": self.transfer_on_error,
        }
        if self.transfer_number is not None:
            result["transferNumber"] = self.transfer_number
        return result


@dataclass
class FlowSettings:
    """Flow-level configuration block."""

    system_prompt: Any = "You are a friendly and professional phone assistant."
    locale: Any = "de-AT"
    timezone: Any = "Europe/Vienna"
    voice: VoiceSettings = field(default_factory=VoiceSettings)
    stt: SttSettings = field(default_factory=SttSettings)
    max_duration: Any = 1800
    max_turns: Any = 50
    enable_recording: Any = False
    enable_transcription: Any = True
    error_handling: ErrorHandlingPolicy = field(default_factory=ErrorHandlingPolicy)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "FlowSettings":
        data = data or {}
        defaults = cls()
        return cls(
            system_prompt=data.get("systemPrompt", defaults.system_prompt),
            locale=data.get("locale", defaults.locale),
            timezone=data.get("timezone", defaults.timezone),
            voice=VoiceSettings.from_dict(data.get("voice")),
            stt=SttSettings.from_dict(data.get("stt")),
            max_duration=data.get("maxDuration", defaults.max_duration),
            max_turns=data.get("maxTurns", defaults.max_turns),
            enable_recording=data.get("enableRecording", defaults.enable_recording),
            enable_transcription=data.get("enableTranscription", defaults.enable_transcription),
            error_handling=ErrorHandlingPolicy.from_dict(data.get("errorHandling")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "systemPrompt": self.system_prompt,
            "locale": self.locale,
            "timezone": self.timezone,
            "voice": self.voice.to_dict(),
            "stt": self.stt.to_dict(),
            "maxDuration": self.max_duration,
            "maxTurns": self.max_turns,
            "enableRecording": self.enable_recording,
            "enableTranscription": self.enable_transcription,
            "errorHandling": self.error_handling.to_dict(),
        }


@dataclass
class FlowVariable:
    """Variable declared by a flow."""

    id: Any
    name: Any
    type: Any = "string"
    default_value: Any = None
    description: Optional[str] = None
    scope: Any = "flow"
    persist: Any = False

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FlowVariable":
        return cls(
            id=data.get("id", ""),
            name=data.get("name", ""),
            type=data.get("type", "string"),
            default_value=data.get("defaultValue"),
            description=data.get("description"),
            scope=data.get("scope", "flow"),
            persist=data.get("persist", False),
        )

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "id": self.id,
            "name": self.name,
            "type": self.type,
            "scope": self.scope,
            "persist": self.persist,
        }
        if self.default_value is not None:
            result["defaultValue"] = self.default_value
        if self.description is not None:
            result["description"] = self.description
        return result


@dataclass
class FlowMetadata:
    """Descriptive metadata carried by the exchange document."""

    name: str = "Untitled Flow"
    description: Optional[str] = None
    version: str = "1.0.0"
    author: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    last_modified: Optional[datetime] = None

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "FlowMetadata":
        data = data or {}
        last_modified = data.get("lastModified")
        if isinstance(last_modified, str):
            try:
                last_modified = datetime.fromisoformat(last_modified.replace("Z", "+00:00"))
            except ValueError:
                last_modified = None
        return cls(
            name=data.get("name", "Untitled Flow"),
            description=data.get("description"),
            version=data.get("version", "1.0.0"),
            author=data.get("author"),
            tags=list(data.get("tags") or []),
            last_modified=last_modified if isinstance(last_modified, datetime) else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "name": self.name,
            "version": self.version,
            "tags": list(self.tags),
        }
        if self.description is not None:
            result["description"] = self.description
        if self.author is not None:
            result["author"] = self.author
        if self.last_modified is not None:
            result["lastModified"] = self.last_modified.isoformat()
        return result


# =============================================================================
# Nodes & Connections
# =============================================================================


@dataclass
class FlowNode:
    """A node of a flow graph."""

    id: str
    type: NodeType
    label: str
    config: NodeConfig = None
    position: Dict[str, float] = field(default_factory=lambda: {"x": 0.0, "y": 0.0})
    description: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None

    def __post_init__(self):
        self.type = NodeType(self.type)
        registry = get_node_registry()
        config_class = registry.get(self.type).config_class

        if self.config is None:
            self.config = config_class()
        elif isinstance(self.config, dict):
            self.config = registry.parse_config(self.type, self.config)
        elif not isinstance(self.config, config_class):
            raise TypeError(
                f"{self.type.value} node '{self.id}' requires {config_class.__name__}, "
                f"got {type(self.config).__name__}"
            )

    @property
    def display_name(self) -> str:
        return self.label or self.id


@dataclass(frozen=True)
class Connection:
    """Directed edge from a source node to a target node id."""

    source: str
    target: str
    slot: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"source": self.source, "target": self.target, "slot": self.slot}


# =============================================================================
# Graph
# =============================================================================


@dataclass
class FlowGraph:
    """Nodes, connections and flow-level configuration of one flow."""

    nodes: Dict[str, FlowNode] = field(default_factory=dict)
    connections: List[Connection] = field(default_factory=list)
    settings: FlowSettings = field(default_factory=FlowSettings)
    variables: List[FlowVariable] = field(default_factory=list)
    metadata: FlowMetadata = field(default_factory=FlowMetadata)

    @classmethod
    def build(
        cls,
        nodes: Iterable[FlowNode] = (),
        connections: Iterable[Union[Connection, tuple]] = (),
        **kwargs: Any,
    ) -> "FlowGraph":
        """
        Build a graph from node and connection lists.

        Connections may be given as `Connection` objects or as
        `(source, target)` / `(source, target, slot)` tuples.
        """
        graph = cls(**kwargs)
        for node in nodes:
            graph.add_node(node)
        for conn in connections:
            if isinstance(conn, Connection):
                graph.connections.append(conn)
            else:
                graph.connect(*conn)
        return graph

    def add_node(self, node: FlowNode) -> FlowNode:
        """Add a node; ids are unique within the graph."""
        if node.id in self.nodes:
            raise ConflictError(
                f"Duplicate node id: {node.id}",
                details={"node_id": node.id},
            )
        self.nodes[node.id] = node
        return node

    def remove_node(self, node_id: str) -> Optional[FlowNode]:
        """Remove a node and every connection touching it."""
        node = self.nodes.pop(node_id, None)
        if node is not None:
            self.connections = [
                c for c in self.connections
                if c.source != node_id and c.target != node_id
            ]
        return node

    def get_node(self, node_id: str) -> Optional[FlowNode]:
        return self.nodes.get(node_id)

    def connect(self, source: str, target: str, slot: Optional[str] = None) -> Connection:
        conn = Connection(source=source, target=target, slot=slot or None)
        self.connections.append(conn)
        return conn

    def disconnect(
        self,
        source: str,
        target: Optional[str] = None,
        slot: Optional[str] = None,
    ) -> int:
        """Remove matching outgoing connections of a node; returns count removed."""
        kept = []
        removed = 0
        for conn in self.connections:
            if (
                conn.source == source
                and (target is None or conn.target == target)
                and (slot is None or conn.slot == slot)
            ):
                removed += 1
            else:
                kept.append(conn)
        self.connections = kept
        return removed

    def outgoing(self, node_id: str) -> List[Connection]:
        return [c for c in self.connections if c.source == node_id]

    def incoming(self, node_id: str) -> List[Connection]:
        return [c for c in self.connections if c.target == node_id]

    def nodes_of_type(self, node_type: NodeType) -> List[FlowNode]:
        return [n for n in self.nodes.values() if n.type == node_type]

    def copy(self) -> "FlowGraph":
        return copy.deepcopy(self)

    def __len__(self) -> int:
        return len(self.nodes)


__all__ = [
    "VoiceSettings",
    "SttSettings",
    "ErrorHandlingPolicy",
    "FlowSettings",
    "FlowVariable",
    "FlowMetadata",
    "FlowNode",
    "Connection",
    "FlowGraph",
]
