"""
Node Registry.

Lookup of node type definitions and per-node slot sets.
"""

import logging
from functools import lru_cache
from typing import Any, Dict, List, Optional, Tuple

from ..base import NodeCategory, NodeType
from .configs import DecisionConfig, NodeConfig
from .definitions import ALL_NODES, NodeDefinition

logger = logging.getLogger(__name__)


class NodeRegistry:
    """
    Catalog of the node types a flow may contain.

    Built once from the static definitions and read-only afterwards, so a
    single instance is shared by validators running in worker threads.
    """

    def __init__(self):
        self._definitions: Dict[NodeType, NodeDefinition] = {}
        for definition in ALL_NODES:
            if definition.type in self._definitions:
                raise ValueError(f"Node type defined twice: {definition.type.value}")
            self._definitions[definition.type] = definition

        undefined = [t.value for t in NodeType if t not in self._definitions]
        if undefined:
            raise RuntimeError(f"Node types without definition: {undefined}")

        logger.debug(f"Node registry holds {len(self._definitions)} types")

    def get(self, node_type: NodeType) -> NodeDefinition:
        return self._definitions[node_type]

    def get_by_name(self, type_name: str) -> Optional[NodeDefinition]:
        """Definition for a type tag as found in documents, or None."""
        try:
            return self._definitions[NodeType(type_name)]
        except ValueError:
            return None

    def is_valid_type(self, type_name: str) -> bool:
        return self.get_by_name(type_name) is not None

    def list_all(self) -> List[NodeDefinition]:
        return list(self._definitions.values())

    def list_by_category(self, category: NodeCategory) -> List[NodeDefinition]:
        return [d for d in self._definitions.values() if d.category == category]

    def search(self, query: str) -> List[NodeDefinition]:
        """Case-insensitive match on type tag, display name and description."""
        needle = query.strip().lower()
        return [
            d for d in self._definitions.values()
            if needle in f"{d.type.value} {d.name} {d.description}".lower()
        ]

    def to_catalog(self) -> Dict[str, List[Dict[str, Any]]]:
        """Definitions grouped by category value, empty categories omitted."""
        catalog: Dict[str, List[Dict[str, Any]]] = {}
        for definition in self._definitions.values():
            catalog.setdefault(definition.category.value, []).append(definition.to_dict())
        return catalog

    def parse_config(self, node_type: NodeType, raw: Optional[Dict[str, Any]]) -> NodeConfig:
        """Typed configuration of a node type from its camelCase exchange form."""
        return self.get(node_type).config_class.from_dict(raw)

    def slots_for(
        self,
        node_type: NodeType,
        config: Optional[NodeConfig] = None,
    ) -> Tuple[Tuple[str, ...], Tuple[str, ...]]:
        """
        Legal outgoing slots of a node.

        Returns:
            Tuple of (required slot ids, optional slot ids). Decision nodes
            add one optional slot per declared condition id.
        """
        definition = self.get(node_type)
        optional = definition.optional_slots

        if definition.condition_slots and isinstance(config, DecisionConfig):
            optional += tuple(
                cid for cid in dict.fromkeys(config.condition_ids)
                if cid not in definition.slot_ids
            )

        return definition.required_slots, optional


@lru_cache
def get_node_registry() -> NodeRegistry:
    return NodeRegistry()
