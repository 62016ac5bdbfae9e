"""
Node Type Definitions.

Complete definitions for the nine node types of a call flow: their
configuration type and their outgoing connection slots.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple, Type

from ..base import NodeCategory, NodeType
from .configs import (
    ActionConfig,
    CollectInfoConfig,
    DecisionConfig,
    EndConfig,
    ListenConfig,
    NodeConfig,
    SayConfig,
    StartConfig,
    TransferConfig,
    WebhookConfig,
)


@dataclass(frozen=True)
class SlotDefinition:
    """A named outgoing connection point of a node type."""

    id: str
    name: str
    required: bool = False
    description: str = ""


@dataclass(frozen=True)
class NodeDefinition:
    """Definition of a node type."""

    type: NodeType
    category: NodeCategory
    name: str
    description: str
    icon: str
    config_class: Type[NodeConfig]

    # Outgoing connection slots
    slots: Tuple[SlotDefinition, ...] = field(default_factory=tuple)
    primary_slot: Optional[str] = None

    # Decision nodes open one extra optional slot per declared condition
    condition_slots: bool = False

    # -1 = unlimited
    max_instances: int = -1

    @property
    def slot_ids(self) -> Tuple[str, ...]:
        return tuple(s.id for s in self.slots)

    @property
    def required_slots(self) -> Tuple[str, ...]:
        return tuple(s.id for s in self.slots if s.required)

    @property
    def optional_slots(self) -> Tuple[str, ...]:
        return tuple(s.id for s in self.slots if not s.required)

    @property
    def is_terminal(self) -> bool:
        return not self.slots and not self.condition_slots

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type.value,
            "category": self.category.value,
            "name": self.name,
            "description": self.description,
            "icon": self.icon,
            "slots": [
                {
                    "id": s.id,
                    "name": s.name,
                    "required": s.required,
                    "description": s.description,
                }
                for s in self.slots
            ],
            "primary_slot": self.primary_slot,
            "condition_slots": self.condition_slots,
            "max_instances": self.max_instances,
        }


# =============================================================================
# Entry & Terminal Nodes
# =============================================================================

ENTRY_NODES = [
    NodeDefinition(
        type=NodeType.START,
        category=NodeCategory.ENTRY,
        name="Start",
        description="Entry point of the flow; greets the caller",
        icon="phone-incoming",
        config_class=StartConfig,
        slots=(
            SlotDefinition(id="next", name="Next", required=True),
        ),
        primary_slot="next",
        max_instances=1,
    ),
]

TERMINAL_NODES = [
    NodeDefinition(
        type=NodeType.END,
        category=NodeCategory.TERMINAL,
        name="End",
        description="Terminates the flow and runs post-call actions",
        icon="phone-off",
        config_class=EndConfig,
        slots=(),
        primary_slot=None,
    ),
]


# =============================================================================
# Conversation Nodes
# =============================================================================

CONVERSATION_NODES = [
    NodeDefinition(
        type=NodeType.SAY,
        category=NodeCategory.CONVERSATION,
        name="Say",
        description="Bot speaks a message to the caller",
        icon="volume-2",
        config_class=SayConfig,
        slots=(
            SlotDefinition(id="next", name="Next", required=True),
            SlotDefinition(
                id="timeout",
                name="Timeout",
                description="Followed when waiting for a response times out",
            ),
        ),
        primary_slot="next",
    ),
    NodeDefinition(
        type=NodeType.LISTEN,
        category=NodeCategory.CONVERSATION,
        name="Listen",
        description="Waits for speech or keypad input from the caller",
        icon="mic",
        config_class=ListenConfig,
        slots=(
            SlotDefinition(id="success", name="Input Received", required=True),
            SlotDefinition(id="timeout", name="Timeout"),
            SlotDefinition(id="noInput", name="No Input"),
            SlotDefinition(id="error", name="Error"),
        ),
        primary_slot="success",
    ),
    NodeDefinition(
        type=NodeType.COLLECT_INFO,
        category=NodeCategory.CONVERSATION,
        name="Collect Information",
        description="Collects structured fields (name, email, date, ...) from the caller",
        icon="clipboard-list",
        config_class=CollectInfoConfig,
        slots=(
            SlotDefinition(id="success", name="All Fields Collected", required=True),
            SlotDefinition(id="incomplete", name="Incomplete"),
            SlotDefinition(id="error", name="Error"),
        ),
        primary_slot="success",
    ),
]


# =============================================================================
# Logic Nodes
# =============================================================================

LOGIC_NODES = [
    NodeDefinition(
        type=NodeType.DECISION,
        category=NodeCategory.LOGIC,
        name="Decision",
        description="Branches on caller input; one path per condition plus a default",
        icon="git-branch",
        config_class=DecisionConfig,
        slots=(
            SlotDefinition(id="default", name="Default", required=True),
        ),
        primary_slot="default",
        condition_slots=True,
    ),
]


# =============================================================================
# Integration Nodes
# =============================================================================

INTEGRATION_NODES = [
    NodeDefinition(
        type=NodeType.ACTION,
        category=NodeCategory.INTEGRATION,
        name="Action",
        description="Calls an API, runs a CRM/calendar connector or sends a message",
        icon="zap",
        config_class=ActionConfig,
        slots=(
            SlotDefinition(id="success", name="Success", required=True),
            SlotDefinition(id="error", name="Error"),
            SlotDefinition(id="timeout", name="Timeout"),
        ),
        primary_slot="success",
    ),
    NodeDefinition(
        type=NodeType.TRANSFER,
        category=NodeCategory.INTEGRATION,
        name="Transfer",
        description="Transfers the call to a human, queue or external number",
        icon="phone-forwarded",
        config_class=TransferConfig,
        slots=(
            SlotDefinition(id="completed", name="Completed", required=True),
            SlotDefinition(id="failed", name="Failed"),
            SlotDefinition(id="timeout", name="Timeout"),
        ),
        primary_slot="completed",
    ),
    NodeDefinition(
        type=NodeType.WEBHOOK,
        category=NodeCategory.INTEGRATION,
        name="Webhook",
        description="Sends call data to an external HTTP endpoint",
        icon="webhook",
        config_class=WebhookConfig,
        slots=(
            SlotDefinition(id="success", name="Success", required=True),
            SlotDefinition(id="error", name="Error"),
        ),
        primary_slot="success",
    ),
]


ALL_NODES: List[NodeDefinition] = (
    ENTRY_NODES
    + CONVERSATION_NODES
    + LOGIC_NODES
    + INTEGRATION_NODES
    + TERMINAL_NODES
)
