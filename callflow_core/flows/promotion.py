"""
Promotion Engine.

Drives flow versions through the lifecycle: validates the graph, checks the
requested transition and applies it, together with the demotion of the
previous live version, as one atomic storage update.
"""

import asyncio
from typing import List, Optional, Tuple

import structlog

from .audit import AuditRecord, AuditSink, LoggingAuditSink
from .base import (
    FlowState,
    FlowVersion,
    NotFoundError,
    StatusChange,
    ValidationError,
    VersionStatus,
)
from .document import graph_from_document
from .lifecycle import check_promotion_target, check_transition
from .storage import VersionStorage
from .validator import FlowValidator

logger = structlog.get_logger(__name__)


class PromotionEngine:
    """
    Applies lifecycle transitions to flow versions.

    Transitions are optimistic: the flow state is read, the transition is
    validated against it, and the storage rejects the write with a
    ConflictError if the flow revision moved on in the meantime. Of two
    concurrent promotions to live for one flow exactly one succeeds.
    """

    def __init__(
        self,
        storage: VersionStorage,
        validator: Optional[FlowValidator] = None,
        audit_sink: Optional[AuditSink] = None,
    ):
        self.storage = storage
        self.validator = validator or FlowValidator()
        self.audit_sink = audit_sink or LoggingAuditSink()

    async def _load(self, version_id: str, tenant_id: str) -> Tuple[FlowState, FlowVersion]:
        version = await self.storage.get_version(version_id, tenant_id)
        if version is None:
            raise NotFoundError("FlowVersion", version_id)

        state = await self.storage.load_flow_state(version.flow_id, tenant_id)
        current = state.get(version_id)
        if current is None:
            raise NotFoundError("FlowVersion", version_id)
        return state, current

    async def promote(
        self,
        version_id: str,
        tenant_id: str,
        target: VersionStatus,
        actor: Optional[str] = None,
    ) -> FlowVersion:
        """
        Promote a version to staged or live.

        Promoting to live archives the version that is live at the time,
        in the same atomic update that activates the new one.

        Raises:
            NotFoundError: unknown version
            InvalidStateError: target or current status does not permit it
            ValidationError: the version's graph does not validate
            ConflictError: the flow changed concurrently
        """
        target = check_promotion_target(target)
        state, version = await self._load(version_id, tenant_id)
        check_transition(version.status, target)

        graph = graph_from_document(version.document)
        result = await asyncio.to_thread(self.validator.validate, graph)
        if not result.is_valid:
            raise ValidationError(
                f"Version {version.version_number} failed validation "
                f"with {result.error_count} errors",
                details={"version_id": version_id, "validation": result.to_dict()},
            )

        changes: List[StatusChange] = []
        if target == VersionStatus.LIVE:
            live = state.current(VersionStatus.LIVE)
            if live is not None and live.id != version_id:
                changes.append(
                    StatusChange(
                        version_id=live.id,
                        from_status=VersionStatus.LIVE,
                        to_status=VersionStatus.ARCHIVED,
                        actor=actor,
                    )
                )
        changes.append(
            StatusChange(
                version_id=version_id,
                from_status=version.status,
                to_status=target,
                actor=actor,
            )
        )

        updated = await self.storage.apply_transition(
            version.flow_id, tenant_id, state.revision, changes
        )

        logger.info(
            "version_promoted",
            flow_id=version.flow_id,
            version_id=version_id,
            version_number=version.version_number,
            from_status=version.status.value,
            to_status=target.value,
            actor=actor,
        )

        await self._audit(state, changes, tenant_id, primary=version_id, action="promote")
        return next(v for v in updated if v.id == version_id)

    async def archive(
        self,
        version_id: str,
        tenant_id: str,
        actor: Optional[str] = None,
    ) -> FlowVersion:
        """
        Archive a draft or staged version.

        Raises:
            NotFoundError: unknown version
            InvalidStateError: version is live or already archived
            ConflictError: the flow changed concurrently
        """
        state, version = await self._load(version_id, tenant_id)
        check_transition(version.status, VersionStatus.ARCHIVED)

        changes = [
            StatusChange(
                version_id=version_id,
                from_status=version.status,
                to_status=VersionStatus.ARCHIVED,
                actor=actor,
            )
        ]
        updated = await self.storage.apply_transition(
            version.flow_id, tenant_id, state.revision, changes
        )

        logger.info(
            "version_archived",
            flow_id=version.flow_id,
            version_id=version_id,
            version_number=version.version_number,
            from_status=version.status.value,
            actor=actor,
        )

        await self._audit(state, changes, tenant_id, primary=version_id, action="archive")
        return updated[0]

    async def _audit(
        self,
        state: FlowState,
        changes: List[StatusChange],
        tenant_id: str,
        primary: str,
        action: str,
    ) -> None:
        """Emit one audit record per applied change; sink failures are logged."""
        for change in changes:
            version = state.get(change.version_id)
            record = AuditRecord(
                action=action if change.version_id == primary else "demote",
                tenant_id=tenant_id,
                flow_id=state.flow.id,
                version_id=change.version_id,
                version_number=version.version_number if version else 0,
                from_status=change.from_status,
                to_status=change.to_status,
                actor=change.actor,
            )
            try:
                await self.audit_sink.emit(record)
            except Exception:
                logger.exception(
                    "audit_emit_failed",
                    flow_id=record.flow_id,
                    version_id=record.version_id,
                    action=record.action,
                )


__all__ = ["PromotionEngine"]
