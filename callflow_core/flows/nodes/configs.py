"""
Node Configuration Types.

One configuration dataclass per node type. Configurations parse leniently
from the camelCase exchange form so that incomplete drafts can be loaded,
edited and saved; `check()` reports the per-type constraint violations that
block promotion.
"""

from dataclasses import dataclass, field
from typing import Any, ClassVar, Dict, List, Optional, Type, Union

from pydantic import AnyUrl, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from ..base import NodeType


_url_adapter = TypeAdapter(AnyUrl)

LISTEN_TIMEOUT_MIN = 5
LISTEN_TIMEOUT_MAX = 60


# =============================================================================
# Helpers
# =============================================================================


def _text(value: Any) -> str:
    """Normalize a possibly missing text value for emptiness checks."""
    if value is None:
        return ""
    return str(value).strip()


def _mapping(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _put(target: Dict[str, Any], key: str, value: Any) -> None:
    """Set key only when the optional value is present."""
    if value is not None:
        target[key] = value


def is_absolute_url(value: Any) -> bool:
    """Check that a value parses as an absolute URL with scheme and host."""
    if not isinstance(value, str) or not value.strip():
        return False
    try:
        url = _url_adapter.validate_python(value.strip())
    except PydanticValidationError:
        return False
    return bool(url.scheme and url.host)


def is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


# =============================================================================
# Base
# =============================================================================


class NodeConfig:
    """Base for per-type node configuration."""

    node_type: ClassVar[NodeType]

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "NodeConfig":
        raise NotImplementedError

    def to_dict(self) -> Dict[str, Any]:
        raise NotImplementedError

    def check(self) -> List[str]:
        """Return constraint violations for this configuration."""
        return []


# =============================================================================
# Start / Say / Listen
# =============================================================================


@dataclass
class StartConfig(NodeConfig):
    """Entry point configuration."""

    node_type: ClassVar[NodeType] = NodeType.START

    greeting_message: Any = ""
    locale: Any = "de-AT"
    initial_actions: Optional[List[str]] = None

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "StartConfig":
        data = _mapping(data)
        return cls(
            greeting_message=data.get("greetingMessage", ""),
            locale=data.get("locale", "de-AT"),
            initial_actions=data.get("initialActions"),
        )

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "greetingMessage": self.greeting_message,
            "locale": self.locale,
        }
        _put(result, "initialActions", self.initial_actions)
        return result

    def check(self) -> List[str]:
        if not _text(self.greeting_message):
            return ["Greeting message is required"]
        return []


@dataclass
class SayConfig(NodeConfig):
    """Bot utterance configuration."""

    node_type: ClassVar[NodeType] = NodeType.SAY

    message: Any = ""
    voice: Optional[Dict[str, Any]] = None
    wait_for_response: Any = False
    timeout: Any = 5

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "SayConfig":
        data = _mapping(data)
        return cls(
            message=data.get("message", ""),
            voice=data.get("voice"),
            wait_for_response=data.get("waitForResponse", False),
            timeout=data.get("timeout", 5),
        )

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "message": self.message,
            "waitForResponse": self.wait_for_response,
            "timeout": self.timeout,
        }
        _put(result, "voice", self.voice)
        return result

    def check(self) -> List[str]:
        if not _text(self.message):
            return ["Say message is required"]
        return []


@dataclass
class ListenConfig(NodeConfig):
    """Speech / DTMF capture configuration."""

    node_type: ClassVar[NodeType] = NodeType.LISTEN

    prompt: Optional[str] = None
    timeout: Any = 10
    max_retries: Any = 2
    retry_message: Any = "Sorry, I did not catch that. Could you please repeat?"
    stt: Optional[Dict[str, Any]] = None
    expected_input_type: Any = "speech"
    dtmf_config: Optional[Dict[str, Any]] = None

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "ListenConfig":
        data = _mapping(data)
        defaults = cls()
        return cls(
            prompt=data.get("prompt"),
            timeout=data.get("timeout", defaults.timeout),
            max_retries=data.get("maxRetries", defaults.max_retries),
            retry_message=data.get("retryMessage", defaults.retry_message),
            stt=data.get("stt"),
            expected_input_type=data.get("expectedInputType", defaults.expected_input_type),
            dtmf_config=data.get("dtmfConfig"),
        )

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "timeout": self.timeout,
            "maxRetries": self.max_retries,
            "retryMessage": self.retry_message,
            "expectedInputType": self.expected_input_type,
        }
        _put(result, "prompt", self.prompt)
        _put(result, "stt", self.stt)
        _put(result, "dtmfConfig", self.dtmf_config)
        return result

    def check(self) -> List[str]:
        if not is_number(self.timeout) or not (
            LISTEN_TIMEOUT_MIN <= self.timeout <= LISTEN_TIMEOUT_MAX
        ):
            return [
                f"Listen timeout must be between {LISTEN_TIMEOUT_MIN} "
                f"and {LISTEN_TIMEOUT_MAX} seconds"
            ]
        return []


# =============================================================================
# Decision
# =============================================================================


@dataclass
class DecisionCondition:
    """A single branch condition of a decision node."""

    id: Any = ""
    name: Any = ""
    logic: Any = "contains"
    value: Any = ""
    case_sensitive: Any = False
    weight: Any = 1.0

    @classmethod
    def from_dict(cls, data: Any) -> "DecisionCondition":
        data = _mapping(data)
        return cls(
            id=data.get("id", ""),
            name=data.get("name", ""),
            logic=data.get("logic", "contains"),
            value=data.get("value", ""),
            case_sensitive=data.get("caseSensitive", False),
            weight=data.get("weight", 1.0),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "logic": self.logic,
            "value": self.value,
            "caseSensitive": self.case_sensitive,
            "weight": self.weight,
        }


@dataclass
class DecisionConfig(NodeConfig):
    """Branching configuration; each condition opens its own slot."""

    node_type: ClassVar[NodeType] = NodeType.DECISION

    conditions: List[DecisionCondition] = field(default_factory=list)
    intent: Optional[Dict[str, Any]] = None

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "DecisionConfig":
        data = _mapping(data)
        raw_conditions = data.get("conditions")
        if not isinstance(raw_conditions, list):
            raw_conditions = []
        return cls(
            conditions=[DecisionCondition.from_dict(c) for c in raw_conditions],
            intent=data.get("intent"),
        )

    @property
    def condition_ids(self) -> List[str]:
        return [_text(c.id) for c in self.conditions if _text(c.id)]

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "conditions": [c.to_dict() for c in self.conditions],
        }
        _put(result, "intent", self.intent)
        return result

    def check(self) -> List[str]:
        if not self.conditions:
            return ["Decision node must have at least one condition"]

        problems = []
        seen = set()
        for index, condition in enumerate(self.conditions, start=1):
            condition_id = _text(condition.id)
            ref = f"'{condition_id}'" if condition_id else f"#{index}"

            if not condition_id:
                problems.append(f"Condition #{index} is missing an id")
            elif condition_id == "default":
                problems.append("Condition id 'default' is reserved")
            elif condition_id in seen:
                problems.append(f"Duplicate condition id '{condition_id}'")
            seen.add(condition_id)

            if not _text(condition.name):
                problems.append(f"Condition {ref} must have a name")
            if not _text(condition.value):
                problems.append(f"Condition {ref} must have a value")

        return problems


# =============================================================================
# Action
# =============================================================================


@dataclass
class ApiCallSpec:
    """HTTP call performed by an `api_call` action."""

    method: Any = "POST"
    url: Any = ""
    headers: Optional[Dict[str, str]] = None
    body: Optional[Dict[str, Any]] = None
    timeout: Any = 10
    retries: Any = 1

    @classmethod
    def from_dict(cls, data: Any) -> "ApiCallSpec":
        data = _mapping(data)
        return cls(
            method=data.get("method", "POST"),
            url=data.get("url", ""),
            headers=data.get("headers"),
            body=data.get("body"),
            timeout=data.get("timeout", 10),
            retries=data.get("retries", 1),
        )

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "method": self.method,
            "url": self.url,
            "timeout": self.timeout,
            "retries": self.retries,
        }
        _put(result, "headers", self.headers)
        _put(result, "body", self.body)
        return result


@dataclass
class ActionConfig(NodeConfig):
    """External action configuration (API call, connector, messaging)."""

    node_type: ClassVar[NodeType] = NodeType.ACTION

    action_type: Optional[str] = None
    api_call: Optional[ApiCallSpec] = None
    connector: Optional[Dict[str, Any]] = None
    variables: Optional[Dict[str, Any]] = None
    communication: Optional[Dict[str, Any]] = None

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "ActionConfig":
        data = _mapping(data)
        api_call = data.get("apiCall")
        return cls(
            action_type=data.get("actionType") or None,
            api_call=ApiCallSpec.from_dict(api_call) if api_call is not None else None,
            connector=data.get("connector"),
            variables=data.get("variables"),
            communication=data.get("communication"),
        )

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"actionType": self.action_type}
        if self.api_call is not None:
            result["apiCall"] = self.api_call.to_dict()
        _put(result, "connector", self.connector)
        _put(result, "variables", self.variables)
        _put(result, "communication", self.communication)
        return result

    def check(self) -> List[str]:
        if not _text(self.action_type):
            return ["Action type is required"]

        if self.action_type == "api_call":
            if self.api_call is None:
                return ["API call configuration is required for api_call actions"]
            if not is_absolute_url(self.api_call.url):
                return ["API call URL must be a valid absolute URL"]

        return []


# =============================================================================
# Transfer / Collect Info / Webhook / End
# =============================================================================


@dataclass
class TransferConfig(NodeConfig):
    """Call transfer configuration."""

    node_type: ClassVar[NodeType] = NodeType.TRANSFER

    transfer_type: Optional[str] = None
    destination: Any = ""
    message: Optional[str] = None
    timeout: Any = 30
    music_on_hold: Any = True
    record_transfer: Any = False

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "TransferConfig":
        data = _mapping(data)
        return cls(
            transfer_type=data.get("transferType") or None,
            destination=data.get("destination", ""),
            message=data.get("message"),
            timeout=data.get("timeout", 30),
            music_on_hold=data.get("musicOnHold", True),
            record_transfer=data.get("recordTransfer", False),
        )

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "transferType": self.transfer_type,
            "destination": self.destination,
            "timeout": self.timeout,
            "musicOnHold": self.music_on_hold,
            "recordTransfer": self.record_transfer,
        }
        _put(result, "message", self.message)
        return result

    def check(self) -> List[str]:
        problems = []
        if not _text(self.destination):
            problems.append("Transfer destination is required")
        if not _text(self.transfer_type):
            problems.append("Transfer type is required")
        return problems


@dataclass
class InfoField:
    """A structured value collected from the caller."""

    id: Any = ""
    name: Any = ""
    type: Any = "text"
    prompt: Any = ""
    required: Any = True
    validation: Optional[Dict[str, Any]] = None
    retry_prompt: Optional[str] = None
    max_retries: Any = 2

    @classmethod
    def from_dict(cls, data: Any) -> "InfoField":
        data = _mapping(data)
        return cls(
            id=data.get("id", ""),
            name=data.get("name", ""),
            type=data.get("type", "text"),
            prompt=data.get("prompt", ""),
            required=data.get("required", True),
            validation=data.get("validation"),
            retry_prompt=data.get("retryPrompt"),
            max_retries=data.get("maxRetries", 2),
        )

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "id": self.id,
            "name": self.name,
            "type": self.type,
            "prompt": self.prompt,
            "required": self.required,
            "maxRetries": self.max_retries,
        }
        _put(result, "validation", self.validation)
        _put(result, "retryPrompt", self.retry_prompt)
        return result


@dataclass
class CollectInfoConfig(NodeConfig):
    """Structured data collection configuration."""

    node_type: ClassVar[NodeType] = NodeType.COLLECT_INFO

    fields: List[InfoField] = field(default_factory=list)
    confirmation_prompt: Optional[str] = None
    allow_corrections: Any = True

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "CollectInfoConfig":
        data = _mapping(data)
        raw_fields = data.get("fields")
        if not isinstance(raw_fields, list):
            raw_fields = []
        return cls(
            fields=[InfoField.from_dict(f) for f in raw_fields],
            confirmation_prompt=data.get("confirmationPrompt"),
            allow_corrections=data.get("allowCorrections", True),
        )

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "fields": [f.to_dict() for f in self.fields],
            "allowCorrections": self.allow_corrections,
        }
        _put(result, "confirmationPrompt", self.confirmation_prompt)
        return result

    def check(self) -> List[str]:
        if not self.fields:
            return ["Collect info node must have at least one field"]

        problems = []
        for index, info_field in enumerate(self.fields, start=1):
            ref = f"'{_text(info_field.id)}'" if _text(info_field.id) else f"#{index}"
            if not _text(info_field.name):
                problems.append(f"Field {ref} must have a name")
            if not _text(info_field.prompt):
                problems.append(f"Field {ref} must have a prompt")
        return problems


@dataclass
class WebhookConfig(NodeConfig):
    """Outbound webhook configuration."""

    node_type: ClassVar[NodeType] = NodeType.WEBHOOK

    url: Any = ""
    method: Any = "POST"
    headers: Optional[Dict[str, str]] = None
    payload: Any = field(default_factory=dict)
    timeout: Any = 10
    retries: Any = 1
    retry_delay: Any = 5

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "WebhookConfig":
        data = _mapping(data)
        return cls(
            url=data.get("url", ""),
            method=data.get("method", "POST"),
            headers=data.get("headers"),
            payload=data.get("payload", {}),
            timeout=data.get("timeout", 10),
            retries=data.get("retries", 1),
            retry_delay=data.get("retryDelay", 5),
        )

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "url": self.url,
            "method": self.method,
            "payload": self.payload,
            "timeout": self.timeout,
            "retries": self.retries,
            "retryDelay": self.retry_delay,
        }
        _put(result, "headers", self.headers)
        return result

    def check(self) -> List[str]:
        if not is_absolute_url(self.url):
            return ["Webhook URL must be a valid absolute URL"]
        return []


@dataclass
class EndConfig(NodeConfig):
    """Flow termination configuration."""

    node_type: ClassVar[NodeType] = NodeType.END

    message: Optional[str] = None
    reason: Any = "completed"
    post_call_actions: Optional[List[Dict[str, Any]]] = None

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "EndConfig":
        data = _mapping(data)
        return cls(
            message=data.get("message"),
            reason=data.get("reason", "completed"),
            post_call_actions=data.get("postCallActions"),
        )

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"reason": self.reason}
        _put(result, "message", self.message)
        _put(result, "postCallActions", self.post_call_actions)
        return result


AnyNodeConfig = Union[
    StartConfig,
    SayConfig,
    ListenConfig,
    DecisionConfig,
    ActionConfig,
    TransferConfig,
    CollectInfoConfig,
    WebhookConfig,
    EndConfig,
]

CONFIG_TYPES: Dict[NodeType, Type[NodeConfig]] = {
    cls.node_type: cls
    for cls in (
        StartConfig,
        SayConfig,
        ListenConfig,
        DecisionConfig,
        ActionConfig,
        TransferConfig,
        CollectInfoConfig,
        WebhookConfig,
        EndConfig,
    )
}


__all__ = [
    "NodeConfig",
    "StartConfig",
    "SayConfig",
    "ListenConfig",
    "DecisionCondition",
    "DecisionConfig",
    "ApiCallSpec",
    "ActionConfig",
    "TransferConfig",
    "InfoField",
    "CollectInfoConfig",
    "WebhookConfig",
    "EndConfig",
    "AnyNodeConfig",
    "CONFIG_TYPES",
    "is_absolute_url",
    "is_number",
    "LISTEN_TIMEOUT_MIN",
    "LISTEN_TIMEOUT_MAX",
]
