"""
Node Types and Registry.

This module provides the node type definitions, their configuration
types and the registry used by validation and connection resolution.
"""

from .configs import (
    CONFIG_TYPES,
    ActionConfig,
    AnyNodeConfig,
    ApiCallSpec,
    CollectInfoConfig,
    DecisionCondition,
    DecisionConfig,
    EndConfig,
    InfoField,
    ListenConfig,
    NodeConfig,
    SayConfig,
    StartConfig,
    TransferConfig,
    WebhookConfig,
)
from .definitions import ALL_NODES, NodeDefinition, SlotDefinition
from .registry import NodeRegistry, get_node_registry

__all__ = [
    "NodeRegistry",
    "get_node_registry",
    "NodeDefinition",
    "SlotDefinition",
    "ALL_NODES",
    "CONFIG_TYPES",
    "NodeConfig",
    "AnyNodeConfig",
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
]
