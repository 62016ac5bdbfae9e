"""
Flow Service.

Facade over storage, validation and promotion used by the transport layer.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from .audit import AuditSink
from .base import (
    ConflictError,
    Flow,
    FlowVersion,
    NotFoundError,
    ValidationError,
    VersionStatus,
)
from .document import graph_from_document, graph_to_document
from .graph import FlowGraph
from .promotion import PromotionEngine
from .storage import VersionStorage
from .templates import build_template
from .validator import FlowValidator, ValidationResult

logger = logging.getLogger(__name__)


class BotReferenceChecker(ABC):
    """Reports how many bots use a flow. Provided by the bot management side."""

    @abstractmethod
    async def count_references(self, flow_id: str, tenant_id: str) -> int:
        pass


class NoBotReferences(BotReferenceChecker):
    """Reference checker for deployments without bot management."""

    async def count_references(self, flow_id: str, tenant_id: str) -> int:
        return 0


class FlowService:
    """
    Service for managing flows and their versions.

    Handles:
    - Flow CRUD and template instantiation
    - Draft creation and editing
    - Promotion and archival
    - Stateless graph validation
    """

    def __init__(
        self,
        storage: VersionStorage,
        validator: Optional[FlowValidator] = None,
        audit_sink: Optional[AuditSink] = None,
        bot_references: Optional[BotReferenceChecker] = None,
    ):
        """Initialize service."""
        self.storage = storage
        self.validator = validator or FlowValidator()
        self.promotion = PromotionEngine(storage, self.validator, audit_sink)
        self.bot_references = bot_references or NoBotReferences()

    # =========================================================================
    # Flows
    # =========================================================================

    async def create_flow(
        self,
        tenant_id: str,
        name: str,
        description: Optional[str] = None,
        is_template: bool = False,
    ) -> Flow:
        """Create an empty flow."""
        if not name or not name.strip():
            raise ValidationError("Flow name is required", details={"field": "name"})

        flow = await self.storage.create_flow(
            tenant_id, name.strip(), description, is_template
        )
        logger.info(f"Created flow {flow.id} for tenant {tenant_id}")
        return flow

    async def create_flow_from_template(
        self,
        tenant_id: str,
        template_id: str,
        name: str,
        **options: Any,
    ) -> Tuple[Flow, FlowVersion]:
        """
        Create a flow whose first draft is built from a template.

        Args:
            tenant_id: Owning tenant
            template_id: Template to instantiate
            name: Flow name
            **options: Template options

        Returns:
            Tuple of (flow, draft version)
        """
        try:
            graph = build_template(template_id, **options)
        except TypeError as e:
            raise ValidationError(
                f"Invalid options for template {template_id}: {e}",
                details={"template_id": template_id},
            )

        flow = await self.create_flow(tenant_id, name, graph.metadata.description)
        draft = await self.create_draft_version(flow.id, tenant_id, graph)
        return flow, draft

    async def get_flow(self, flow_id: str, tenant_id: str) -> Flow:
        flow = await self.storage.get_flow(flow_id, tenant_id)
        if flow is None:
            raise NotFoundError("Flow", flow_id)
        return flow

    async def list_flows(self, tenant_id: str, include_templates: bool = True) -> List[Flow]:
        return await self.storage.list_flows(tenant_id, include_templates)

    async def delete_flow(self, flow_id: str, tenant_id: str) -> None:
        """Delete a flow unless a bot still uses it."""
        await self.get_flow(flow_id, tenant_id)

        references = await self.bot_references.count_references(flow_id, tenant_id)
        if references:
            raise ConflictError(
                f"Flow is used by {references} bot(s) and cannot be deleted",
                details={"flow_id": flow_id, "bot_references": references},
            )

        await self.storage.delete_flow(flow_id, tenant_id)
        logger.info(f"Deleted flow {flow_id}")

    # =========================================================================
    # Versions
    # =========================================================================

    def _to_document(self, graph: FlowGraph) -> Dict[str, Any]:
        document = graph_to_document(graph, registry=self.validator.registry)
        document["metadata"]["lastModified"] = datetime.utcnow().isoformat()
        return document

    async def create_draft_version(
        self,
        flow_id: str,
        tenant_id: str,
        graph: FlowGraph,
    ) -> FlowVersion:
        """
        Create the draft version of a flow.

        Raises:
            NotFoundError: unknown flow
            ConflictError: the flow already has a draft
            ValidationError: the graph has connections that cannot be stored
        """
        version = await self.storage.create_draft(flow_id, tenant_id, self._to_document(graph))
        logger.info(f"Created draft v{version.version_number} of flow {flow_id}")
        return version

    async def update_draft_version(
        self,
        version_id: str,
        tenant_id: str,
        graph: FlowGraph,
    ) -> FlowVersion:
        """
        Replace the graph of a draft version.

        Raises:
            NotFoundError: unknown version
            InvalidStateError: the version is not a draft
        """
        return await self.storage.replace_draft(version_id, tenant_id, self._to_document(graph))

    async def promote_version(
        self,
        version_id: str,
        tenant_id: str,
        target: VersionStatus,
        actor: Optional[str] = None,
    ) -> FlowVersion:
        return await self.promotion.promote(version_id, tenant_id, target, actor)

    async def archive_version(
        self,
        version_id: str,
        tenant_id: str,
        actor: Optional[str] = None,
    ) -> FlowVersion:
        return await self.promotion.archive(version_id, tenant_id, actor)

    async def get_version(self, version_id: str, tenant_id: str) -> FlowVersion:
        version = await self.storage.get_version(version_id, tenant_id)
        if version is None:
            raise NotFoundError("FlowVersion", version_id)
        return version

    async def list_versions(self, flow_id: str, tenant_id: str) -> List[FlowVersion]:
        return await self.storage.list_versions(flow_id, tenant_id)

    async def get_live_version(self, flow_id: str, tenant_id: str) -> Optional[FlowVersion]:
        """Get the version the call runtime should execute, if any."""
        return await self.storage.get_version_by_status(flow_id, tenant_id, VersionStatus.LIVE)

    def load_graph(self, version: FlowVersion) -> FlowGraph:
        return graph_from_document(version.document)

    # =========================================================================
    # Validation
    # =========================================================================

    def validate_graph(self, graph: FlowGraph) -> ValidationResult:
        """Validate a graph without persisting anything."""
        return self.validator.validate(graph)

    async def validate_version(self, version_id: str, tenant_id: str) -> ValidationResult:
        version = await self.get_version(version_id, tenant_id)
        graph = self.load_graph(version)
        return await asyncio.to_thread(self.validate_graph, graph)


__all__ = [
    "BotReferenceChecker",
    "NoBotReferences",
    "FlowService",
]
