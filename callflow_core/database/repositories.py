"""
Database Repositories

Repository pattern data access for flows and versions, and the SQL
implementation of the version storage interface.
"""

import copy
from datetime import datetime
from typing import Any, Dict, Generic, List, Optional, Sequence, Type, TypeVar

import structlog
from sqlalchemy import delete, desc, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..flows.base import (
    ConflictError,
    Flow,
    FlowState,
    FlowVersion,
    InvalidStateError,
    NotFoundError,
    StatusChange,
    VersionStatus,
)
from ..flows.storage import VersionStorage, check_changes
from .base import Base, DatabaseManager
from .models import FlowModel, FlowVersionModel

logger = structlog.get_logger(__name__)


# =============================================================================
# Generic Type Variable
# =============================================================================


ModelType = TypeVar("ModelType", bound=Base)


# =============================================================================
# Base Repository
# =============================================================================


class BaseRepository(Generic[ModelType]):
    """Base repository with common CRUD operations."""

    model: Type[ModelType]

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, id: str) -> Optional[ModelType]:
        """Get entity by ID."""
        result = await self.session.execute(
            select(self.model).where(self.model.id == id)
        )
        return result.scalar_one_or_none()

    async def create(self, **kwargs) -> ModelType:
        """Create a new entity."""
        instance = self.model(**kwargs)
        self.session.add(instance)
        await self.session.flush()
        await self.session.refresh(instance)
        return instance


# =============================================================================
# Flow Repositories
# =============================================================================


class FlowRepository(BaseRepository[FlowModel]):
    """Repository for flows."""

    model = FlowModel

    async def get_for_tenant(self, flow_id: str, tenant_id: str) -> Optional[FlowModel]:
        result = await self.session.execute(
            select(FlowModel).where(
                FlowModel.id == flow_id,
                FlowModel.tenant_id == tenant_id,
            )
        )
        return result.scalar_one_or_none()

    async def list_for_tenant(
        self,
        tenant_id: str,
        include_templates: bool = True,
    ) -> List[FlowModel]:
        query = select(FlowModel).where(FlowModel.tenant_id == tenant_id)
        if not include_templates:
            query = query.where(FlowModel.is_template.is_(False))
        result = await self.session.execute(query.order_by(desc(FlowModel.updated_at)))
        return list(result.scalars().all())

    async def bump_revision(
        self,
        flow_id: str,
        tenant_id: str,
        expected_revision: Optional[int] = None,
    ) -> bool:
        """
        Increment the flow revision.

        The update takes the flow row's write lock for the rest of the
        transaction. With expected_revision set it only applies while the
        stored revision still matches.

        Returns:
            True if the row was updated
        """
        stmt = (
            update(FlowModel)
            .where(FlowModel.id == flow_id, FlowModel.tenant_id == tenant_id)
            .values(revision=FlowModel.revision + 1, updated_at=datetime.utcnow())
            .execution_options(synchronize_session=False)
        )
        if expected_revision is not None:
            stmt = stmt.where(FlowModel.revision == expected_revision)

        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def delete_with_versions(self, flow_id: str) -> None:
        await self.session.execute(
            delete(FlowVersionModel).where(FlowVersionModel.flow_id == flow_id)
        )
        await self.session.execute(delete(FlowModel).where(FlowModel.id == flow_id))


class FlowVersionRepository(BaseRepository[FlowVersionModel]):
    """Repository for flow versions."""

    model = FlowVersionModel

    async def get_for_tenant(self, version_id: str, tenant_id: str) -> Optional[FlowVersionModel]:
        result = await self.session.execute(
            select(FlowVersionModel).where(
                FlowVersionModel.id == version_id,
                FlowVersionModel.tenant_id == tenant_id,
            )
        )
        return result.scalar_one_or_none()

    async def list_for_flow(self, flow_id: str) -> List[FlowVersionModel]:
        result = await self.session.execute(
            select(FlowVersionModel)
            .where(FlowVersionModel.flow_id == flow_id)
            .order_by(desc(FlowVersionModel.version_number))
        )
        return list(result.scalars().all())

    async def get_by_status(self, flow_id: str, status: VersionStatus) -> Optional[FlowVersionModel]:
        result = await self.session.execute(
            select(FlowVersionModel)
            .where(
                FlowVersionModel.flow_id == flow_id,
                FlowVersionModel.status == status.value,
            )
            .order_by(desc(FlowVersionModel.version_number))
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def max_version_number(self, flow_id: str) -> int:
        result = await self.session.execute(
            select(func.max(FlowVersionModel.version_number)).where(
                FlowVersionModel.flow_id == flow_id
            )
        )
        return result.scalar_one() or 0


# =============================================================================
# Conversion
# =============================================================================


def to_flow(model: FlowModel) -> Flow:
    return Flow(
        id=model.id,
        tenant_id=model.tenant_id,
        name=model.name,
        description=model.description,
        is_template=model.is_template,
        revision=model.revision,
        created_at=model.created_at,
        updated_at=model.updated_at,
    )


def to_version(model: FlowVersionModel) -> FlowVersion:
    return FlowVersion(
        id=model.id,
        flow_id=model.flow_id,
        tenant_id=model.tenant_id,
        version_number=model.version_number,
        status=VersionStatus(model.status),
        document=copy.deepcopy(model.document),
        created_at=model.created_at,
        updated_at=model.updated_at,
        promoted_by=model.promoted_by,
        promoted_at=model.promoted_at,
    )


# =============================================================================
# SQL Version Storage
# =============================================================================


class DatabaseVersionStorage(VersionStorage):
    """
    Version storage on SQLAlchemy.

    Every write runs in one transaction that first updates the flow row
    (revision bump), so writers of the same flow serialize on that row.
    Partial unique indexes back the one-draft and one-live rules; an
    integrity violation surfaces as ConflictError.
    """

    def __init__(self, db: DatabaseManager):
        self.db = db

    async def create_flow(
        self,
        tenant_id: str,
        name: str,
        description: Optional[str] = None,
        is_template: bool = False,
    ) -> Flow:
        async with self.db.session() as session:
            model = await FlowRepository(session).create(
                tenant_id=tenant_id,
                name=name,
                description=description,
                is_template=is_template,
                revision=0,
            )
            flow = to_flow(model)

        logger.info("flow_created", flow_id=flow.id, tenant_id=tenant_id)
        return flow

    async def get_flow(self, flow_id: str, tenant_id: str) -> Optional[Flow]:
        async with self.db.session() as session:
            model = await FlowRepository(session).get_for_tenant(flow_id, tenant_id)
            return to_flow(model) if model else None

    async def list_flows(self, tenant_id: str, include_templates: bool = True) -> List[Flow]:
        async with self.db.session() as session:
            models = await FlowRepository(session).list_for_tenant(tenant_id, include_templates)
            return [to_flow(m) for m in models]

    async def delete_flow(self, flow_id: str, tenant_id: str) -> None:
        async with self.db.session() as session:
            flows = FlowRepository(session)
            if await flows.get_for_tenant(flow_id, tenant_id) is None:
                raise NotFoundError("Flow", flow_id)
            await flows.delete_with_versions(flow_id)

        logger.info("flow_deleted", flow_id=flow_id, tenant_id=tenant_id)

    async def get_version(self, version_id: str, tenant_id: str) -> Optional[FlowVersion]:
        async with self.db.session() as session:
            model = await FlowVersionRepository(session).get_for_tenant(version_id, tenant_id)
            return to_version(model) if model else None

    async def list_versions(self, flow_id: str, tenant_id: str) -> List[FlowVersion]:
        async with self.db.session() as session:
            if await FlowRepository(session).get_for_tenant(flow_id, tenant_id) is None:
                raise NotFoundError("Flow", flow_id)
            models = await FlowVersionRepository(session).list_for_flow(flow_id)
            return [to_version(m) for m in models]

    async def get_version_by_status(
        self,
        flow_id: str,
        tenant_id: str,
        status: VersionStatus,
    ) -> Optional[FlowVersion]:
        async with self.db.session() as session:
            if await FlowRepository(session).get_for_tenant(flow_id, tenant_id) is None:
                raise NotFoundError("Flow", flow_id)
            model = await FlowVersionRepository(session).get_by_status(flow_id, status)
            return to_version(model) if model else None

    async def load_flow_state(self, flow_id: str, tenant_id: str) -> FlowState:
        async with self.db.session() as session:
            return await self._load_state(session, flow_id, tenant_id)

    async def _load_state(self, session: AsyncSession, flow_id: str, tenant_id: str) -> FlowState:
        result = await session.execute(
            select(FlowModel)
            .where(FlowModel.id == flow_id, FlowModel.tenant_id == tenant_id)
            .execution_options(populate_existing=True)
        )
        flow = result.scalar_one_or_none()
        if flow is None:
            raise NotFoundError("Flow", flow_id)

        versions = await FlowVersionRepository(session).list_for_flow(flow_id)
        return FlowState(flow=to_flow(flow), versions=[to_version(v) for v in versions])

    async def create_draft(
        self,
        flow_id: str,
        tenant_id: str,
        document: Dict[str, Any],
    ) -> FlowVersion:
        try:
            async with self.db.session() as session:
                if not await FlowRepository(session).bump_revision(flow_id, tenant_id):
                    raise NotFoundError("Flow", flow_id)

                versions = FlowVersionRepository(session)
                existing = await versions.get_by_status(flow_id, VersionStatus.DRAFT)
                if existing is not None:
                    raise ConflictError(
                        "Flow already has a draft version",
                        details={"flow_id": flow_id, "draft_version_id": existing.id},
                    )

                model = await versions.create(
                    flow_id=flow_id,
                    tenant_id=tenant_id,
                    version_number=await versions.max_version_number(flow_id) + 1,
                    status=VersionStatus.DRAFT.value,
                    document=copy.deepcopy(document),
                )
                version = to_version(model)
        except IntegrityError as e:
            raise ConflictError(
                "Flow already has a draft version",
                details={"flow_id": flow_id},
            ) from e

        logger.info(
            "draft_created",
            flow_id=flow_id,
            version_id=version.id,
            version_number=version.version_number,
        )
        return version

    async def replace_draft(
        self,
        version_id: str,
        tenant_id: str,
        document: Dict[str, Any],
    ) -> FlowVersion:
        async with self.db.session() as session:
            versions = FlowVersionRepository(session)
            model = await versions.get_for_tenant(version_id, tenant_id)
            if model is None:
                raise NotFoundError("FlowVersion", version_id)

            await FlowRepository(session).bump_revision(model.flow_id, tenant_id)
            await session.refresh(model)

            if model.status != VersionStatus.DRAFT.value:
                raise InvalidStateError(
                    f"Only draft versions can be edited (version is {model.status})",
                    details={"version_id": version_id, "status": model.status},
                )

            model.document = copy.deepcopy(document)
            model.updated_at = datetime.utcnow()
            await session.flush()
            version = to_version(model)

        logger.info("draft_updated", flow_id=version.flow_id, version_id=version_id)
        return version

    async def apply_transition(
        self,
        flow_id: str,
        tenant_id: str,
        expected_revision: int,
        changes: Sequence[StatusChange],
    ) -> List[FlowVersion]:
        try:
            async with self.db.session() as session:
                flows = FlowRepository(session)
                if await flows.get_for_tenant(flow_id, tenant_id) is None:
                    raise NotFoundError("Flow", flow_id)

                if not await flows.bump_revision(flow_id, tenant_id, expected_revision):
                    raise ConflictError(
                        "Flow was modified concurrently; reload and retry",
                        details={"flow_id": flow_id, "expected_revision": expected_revision},
                    )

                state = await self._load_state(session, flow_id, tenant_id)
                check_changes(state, expected_revision + 1, changes)

                versions = FlowVersionRepository(session)
                now = datetime.utcnow()
                updated = []
                for change in changes:
                    model = await versions.get_for_tenant(change.version_id, tenant_id)
                    model.status = change.to_status.value
                    model.updated_at = now
                    if change.to_status in (VersionStatus.STAGED, VersionStatus.LIVE):
                        model.promoted_by = change.actor
                        model.promoted_at = now
                    # One statement per change keeps the demotion ahead of the
                    # activation for the partial unique indexes
                    await session.flush()
                    updated.append(to_version(model))
        except IntegrityError as e:
            raise ConflictError(
                "Concurrent status change rejected",
                details={"flow_id": flow_id},
            ) from e

        logger.info(
            "transition_applied",
            flow_id=flow_id,
            revision=expected_revision + 1,
            changes=[
                f"{c.version_id}:{c.from_status.value}->{c.to_status.value}"
                for c in changes
            ],
        )
        return updated


__all__ = [
    "BaseRepository",
    "FlowRepository",
    "FlowVersionRepository",
    "DatabaseVersionStorage",
    "to_flow",
    "to_version",
]
