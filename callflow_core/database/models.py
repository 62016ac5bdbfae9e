"""
Database Models

SQLAlchemy ORM models for flows and flow versions.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, TimestampMixin

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
DocumentType = JSON().with_variant(JSONB(), "postgresql")


# =============================================================================
# Flow Models
# =============================================================================


class FlowModel(Base, TimestampMixin):
    """Flow container model."""

    __tablename__ = "callflow_flows"

    tenant_id: Mapped[str] = mapped_column(String(36), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    is_template: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Bumped by every write to the flow's versions
    revision: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    versions: Mapped[List["FlowVersionModel"]] = relationship(
        back_populates="flow",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __table_args__ = (
        Index("ix_callflow_flows_tenant_id", "tenant_id"),
    )


class FlowVersionModel(Base, TimestampMixin):
    """Flow version snapshot model."""

    __tablename__ = "callflow_flow_versions"

    flow_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("callflow_flows.id", ondelete="CASCADE"),
        nullable=False,
    )
    tenant_id: Mapped[str] = mapped_column(String(36), nullable=False)

    version_number: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="draft")

    # Canonical flow document
    document: Mapped[Dict[str, Any]] = mapped_column(DocumentType, nullable=False)

    promoted_by: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    promoted_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    flow: Mapped["FlowModel"] = relationship(back_populates="versions")

    __table_args__ = (
        UniqueConstraint("flow_id", "version_number", name="uq_callflow_flow_version"),
        Index("ix_callflow_flow_versions_flow_id", "flow_id"),
        Index(
            "uq_callflow_flow_versions_draft",
            "flow_id",
            unique=True,
            sqlite_where=text("status = 'draft'"),
            postgresql_where=text("status = 'draft'"),
        ),
        Index(
            "uq_callflow_flow_versions_live",
            "flow_id",
            unique=True,
            sqlite_where=text("status = 'live'"),
            postgresql_where=text("status = 'live'"),
        ),
    )


__all__ = [
    "FlowModel",
    "FlowVersionModel",
]
