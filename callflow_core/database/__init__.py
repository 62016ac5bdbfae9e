"""
Database Layer

SQLAlchemy models, session management and the SQL version storage.
"""

from .base import Base, DatabaseManager, TimestampMixin
from .models import FlowModel, FlowVersionModel
from .repositories import (
    DatabaseVersionStorage,
    FlowRepository,
    FlowVersionRepository,
)

__all__ = [
    "Base",
    "TimestampMixin",
    "DatabaseManager",
    "FlowModel",
    "FlowVersionModel",
    "FlowRepository",
    "FlowVersionRepository",
    "DatabaseVersionStorage",
]
