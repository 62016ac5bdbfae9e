"""
Version Storage.

Storage interface for flows and their numbered versions, plus the
in-memory backend used for development and tests. The SQL backend lives in
`callflow_core.database`.
"""

import asyncio
import copy
import uuid
from abc import ABC, abstractmethod
from dataclasses import replace
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

import structlog

from .base import (
    ConflictError,
    Flow,
    FlowState,
    FlowVersion,
    InvalidStateError,
    NotFoundError,
    StatusChange,
    VersionStatus,
)

logger = structlog.get_logger(__name__)

# Statuses of which a flow may hold at most one version at a time
SINGLETON_STATUSES = (VersionStatus.DRAFT, VersionStatus.LIVE)


def check_changes(state: FlowState, expected_revision: int, changes: Sequence[StatusChange]) -> None:
    """
    Verify a transition against a freshly read flow state.

    Raises:
        ConflictError: revision moved on, a version left its expected
            status, or the result would hold two drafts or two live versions
    """
    if state.revision != expected_revision:
        raise ConflictError(
            "Flow was modified concurrently; reload and retry",
            details={
                "flow_id": state.flow.id,
                "expected_revision": expected_revision,
                "current_revision": state.revision,
            },
        )

    resulting = {v.id: v.status for v in state.versions}
    for change in changes:
        version = state.get(change.version_id)
        if version is None or version.status != change.from_status:
            raise ConflictError(
                f"Version {change.version_id} is no longer {change.from_status.value}",
                details={
                    "flow_id": state.flow.id,
                    "version_id": change.version_id,
                    "expected_status": change.from_status.value,
                    "current_status": version.status.value if version else None,
                },
            )
        resulting[change.version_id] = change.to_status

    for status in SINGLETON_STATUSES:
        count = sum(1 for s in resulting.values() if s == status)
        if count > 1:
            raise ConflictError(
                f"Flow can have at most one {status.value} version",
                details={"flow_id": state.flow.id, "status": status.value},
            )


class VersionStorage(ABC):
    """
    Abstract base class for flow version storage backends.

    Every operation is scoped by tenant; a flow or version of another
    tenant behaves exactly like an unknown id. Returned records are
    snapshots and never alias stored state.
    """

    @abstractmethod
    async def create_flow(
        self,
        tenant_id: str,
        name: str,
        description: Optional[str] = None,
        is_template: bool = False,
    ) -> Flow:
        """Create a flow container."""
        pass

    @abstractmethod
    async def get_flow(self, flow_id: str, tenant_id: str) -> Optional[Flow]:
        """Get a flow by ID."""
        pass

    @abstractmethod
    async def list_flows(self, tenant_id: str, include_templates: bool = True) -> List[Flow]:
        """List flows of a tenant, most recently updated first."""
        pass

    @abstractmethod
    async def delete_flow(self, flow_id: str, tenant_id: str) -> None:
        """Delete a flow and all of its versions."""
        pass

    @abstractmethod
    async def get_version(self, version_id: str, tenant_id: str) -> Optional[FlowVersion]:
        """Get a version by ID."""
        pass

    @abstractmethod
    async def list_versions(self, flow_id: str, tenant_id: str) -> List[FlowVersion]:
        """List versions of a flow, newest first."""
        pass

    @abstractmethod
    async def get_version_by_status(
        self,
        flow_id: str,
        tenant_id: str,
        status: VersionStatus,
    ) -> Optional[FlowVersion]:
        """Get the newest version of a flow with the given status."""
        pass

    @abstractmethod
    async def load_flow_state(self, flow_id: str, tenant_id: str) -> FlowState:
        """Read a flow and all of its versions as one consistent snapshot."""
        pass

    @abstractmethod
    async def create_draft(
        self,
        flow_id: str,
        tenant_id: str,
        document: Dict[str, Any],
    ) -> FlowVersion:
        """
        Create the draft version of a flow.

        Raises:
            ConflictError: the flow already has a draft
        """
        pass

    @abstractmethod
    async def replace_draft(
        self,
        version_id: str,
        tenant_id: str,
        document: Dict[str, Any],
    ) -> FlowVersion:
        """
        Replace the document of a draft version in place.

        Raises:
            InvalidStateError: the version is not a draft
        """
        pass

    @abstractmethod
    async def apply_transition(
        self,
        flow_id: str,
        tenant_id: str,
        expected_revision: int,
        changes: Sequence[StatusChange],
    ) -> List[FlowVersion]:
        """
        Apply status changes as one atomic unit.

        Raises:
            ConflictError: stale revision or a version not in its
                expected status; nothing is applied
        """
        pass


class InMemoryVersionStorage(VersionStorage):
    """In-memory version storage for testing and development."""

    def __init__(self):
        self._flows: Dict[str, Flow] = {}
        self._versions: Dict[str, FlowVersion] = {}
        self._flow_versions: Dict[str, List[str]] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    def _lock(self, flow_id: str) -> asyncio.Lock:
        if flow_id not in self._locks:
            self._locks[flow_id] = asyncio.Lock()
        return self._locks[flow_id]

    def _flow(self, flow_id: str, tenant_id: str) -> Flow:
        flow = self._flows.get(flow_id)
        if flow is None or flow.tenant_id != tenant_id:
            raise NotFoundError("Flow", flow_id)
        return flow

    def _state(self, flow: Flow) -> FlowState:
        versions = [self._versions[vid] for vid in self._flow_versions.get(flow.id, [])]
        versions.sort(key=lambda v: v.version_number, reverse=True)
        return FlowState(flow=flow, versions=[v.snapshot() for v in versions])

    def _bump(self, flow: Flow) -> Flow:
        flow = replace(flow, revision=flow.revision + 1, updated_at=datetime.utcnow())
        self._flows[flow.id] = flow
        return flow

    async def create_flow(
        self,
        tenant_id: str,
        name: str,
        description: Optional[str] = None,
        is_template: bool = False,
    ) -> Flow:
        """Create a flow in memory."""
        flow = Flow(
            id=str(uuid.uuid4()),
            tenant_id=tenant_id,
            name=name,
            description=description,
            is_template=is_template,
        )
        self._flows[flow.id] = flow
        self._flow_versions[flow.id] = []

        logger.info("flow_created", flow_id=flow.id, tenant_id=tenant_id)
        return flow

    async def get_flow(self, flow_id: str, tenant_id: str) -> Optional[Flow]:
        """Get a flow by ID."""
        flow = self._flows.get(flow_id)
        if flow is None or flow.tenant_id != tenant_id:
            return None
        return flow

    async def list_flows(self, tenant_id: str, include_templates: bool = True) -> List[Flow]:
        """List flows of a tenant."""
        flows = [
            f for f in self._flows.values()
            if f.tenant_id == tenant_id and (include_templates or not f.is_template)
        ]
        flows.sort(key=lambda f: f.updated_at, reverse=True)
        return flows

    async def delete_flow(self, flow_id: str, tenant_id: str) -> None:
        """Delete a flow and its versions."""
        async with self._lock(flow_id):
            self._flow(flow_id, tenant_id)

            for version_id in self._flow_versions.pop(flow_id, []):
                self._versions.pop(version_id, None)
            del self._flows[flow_id]

        self._locks.pop(flow_id, None)
        logger.info("flow_deleted", flow_id=flow_id, tenant_id=tenant_id)

    async def get_version(self, version_id: str, tenant_id: str) -> Optional[FlowVersion]:
        """Get a version by ID."""
        version = self._versions.get(version_id)
        if version is None or version.tenant_id != tenant_id:
            return None
        return version.snapshot()

    async def list_versions(self, flow_id: str, tenant_id: str) -> List[FlowVersion]:
        """List versions of a flow, newest first."""
        flow = self._flow(flow_id, tenant_id)
        return self._state(flow).versions

    async def get_version_by_status(
        self,
        flow_id: str,
        tenant_id: str,
        status: VersionStatus,
    ) -> Optional[FlowVersion]:
        """Get the newest version with a status."""
        flow = self._flow(flow_id, tenant_id)
        return self._state(flow).current(status)

    async def load_flow_state(self, flow_id: str, tenant_id: str) -> FlowState:
        """Snapshot a flow and its versions."""
        async with self._lock(flow_id):
            return self._state(self._flow(flow_id, tenant_id))

    async def create_draft(
        self,
        flow_id: str,
        tenant_id: str,
        document: Dict[str, Any],
    ) -> FlowVersion:
        """Create the draft version of a flow."""
        async with self._lock(flow_id):
            flow = self._flow(flow_id, tenant_id)
            state = self._state(flow)

            existing = state.current(VersionStatus.DRAFT)
            if existing is not None:
                raise ConflictError(
                    "Flow already has a draft version",
                    details={"flow_id": flow_id, "draft_version_id": existing.id},
                )

            version = FlowVersion(
                id=str(uuid.uuid4()),
                flow_id=flow_id,
                tenant_id=tenant_id,
                version_number=state.next_version_number,
                status=VersionStatus.DRAFT,
                document=copy.deepcopy(document),
            )
            self._versions[version.id] = version
            self._flow_versions[flow_id].append(version.id)
            self._bump(flow)

        logger.info(
            "draft_created",
            flow_id=flow_id,
            version_id=version.id,
            version_number=version.version_number,
        )
        return version.snapshot()

    async def replace_draft(
        self,
        version_id: str,
        tenant_id: str,
        document: Dict[str, Any],
    ) -> FlowVersion:
        """Replace a draft's document."""
        current = await self.get_version(version_id, tenant_id)
        if current is None:
            raise NotFoundError("FlowVersion", version_id)

        async with self._lock(current.flow_id):
            version = self._versions.get(version_id)
            if version is None:
                raise NotFoundError("FlowVersion", version_id)
            if version.status != VersionStatus.DRAFT:
                raise InvalidStateError(
                    f"Only draft versions can be edited (version is {version.status.value})",
                    details={"version_id": version_id, "status": version.status.value},
                )

            version = replace(
                version,
                document=copy.deepcopy(document),
                updated_at=datetime.utcnow(),
            )
            self._versions[version_id] = version
            self._bump(self._flows[version.flow_id])

        logger.info("draft_updated", flow_id=version.flow_id, version_id=version_id)
        return version.snapshot()

    async def apply_transition(
        self,
        flow_id: str,
        tenant_id: str,
        expected_revision: int,
        changes: Sequence[StatusChange],
    ) -> List[FlowVersion]:
        """Apply status changes atomically under the flow lock."""
        async with self._lock(flow_id):
            flow = self._flow(flow_id, tenant_id)
            check_changes(self._state(flow), expected_revision, changes)

            now = datetime.utcnow()
            updated = []
            for change in changes:
                version = replace(
                    self._versions[change.version_id],
                    status=change.to_status,
                    updated_at=now,
                )
                if change.to_status in (VersionStatus.STAGED, VersionStatus.LIVE):
                    version = replace(version, promoted_by=change.actor, promoted_at=now)
                self._versions[version.id] = version
                updated.append(version.snapshot())

            flow = self._bump(flow)

        logger.info(
            "transition_applied",
            flow_id=flow_id,
            revision=flow.revision,
            changes=[
                f"{c.version_id}:{c.from_status.value}->{c.to_status.value}"
                for c in changes
            ],
        )
        return updated


__all__ = [
    "SINGLETON_STATUSES",
    "check_changes",
    "VersionStorage",
    "InMemoryVersionStorage",
]
