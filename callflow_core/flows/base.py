"""
Flow Base Types

Core enums, error types and persisted records for flow definitions and
their versions.
"""

import copy
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


# =============================================================================
# Enums
# =============================================================================


class NodeType(str, Enum):
    """Node type tags."""

    START = "start"
    SAY = "say"
    LISTEN = "listen"
    DECISION = "decision"
    ACTION = "action"
    TRANSFER = "transfer"
    COLLECT_INFO = "collect_info"
    WEBHOOK = "webhook"
    END = "end"


class NodeCategory(str, Enum):
    """Node categories for the editor palette."""

    ENTRY = "entry"
    CONVERSATION = "conversation"
    LOGIC = "logic"
    INTEGRATION = "integration"
    TERMINAL = "terminal"


class VersionStatus(str, Enum):
    """Flow version lifecycle status."""

    DRAFT = "draft"
    STAGED = "staged"
    LIVE = "live"
    ARCHIVED = "archived"


class IssueSeverity(str, Enum):
    """Validation issue severity."""

    ERROR = "error"
    WARNING = "warning"


class ErrorCode(str, Enum):
    """Standardized error codes."""

    VALIDATION_ERROR = "VAL_2001"
    RESOURCE_NOT_FOUND = "RES_3001"
    RESOURCE_CONFLICT = "RES_3003"
    INVALID_STATE_TRANSITION = "BIZ_6001"


# =============================================================================
# Errors
# =============================================================================


class FlowError(Exception):
    """Base exception for flow engine failures."""

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        status_code: int = 400,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code.value,
            "message": self.message,
            "details": self.details,
        }


class ValidationError(FlowError):
    """Structural or schema violation."""

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            code=ErrorCode.VALIDATION_ERROR,
            message=message,
            status_code=422,
            details=details,
        )


class ConflictError(FlowError):
    """Concurrent modification, duplicate draft or double-bound slot."""

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            code=ErrorCode.RESOURCE_CONFLICT,
            message=message,
            status_code=409,
            details=details,
        )


class InvalidStateError(FlowError):
    """Transition requested from a status that does not permit it."""

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            code=ErrorCode.INVALID_STATE_TRANSITION,
            message=message,
            status_code=409,
            details=details,
        )


class NotFoundError(FlowError):
    """Unknown or cross-tenant resource."""

    def __init__(
        self,
        resource_type: str,
        resource_id: str,
    ):
        super().__init__(
            code=ErrorCode.RESOURCE_NOT_FOUND,
            message=f"{resource_type} with ID '{resource_id}' not found",
            status_code=404,
            details={"resource_type": resource_type, "resource_id": resource_id},
        )


# =============================================================================
# Persisted Records
# =============================================================================


@dataclass(frozen=True)
class Flow:
    """A tenant-owned, named call-handling script."""

    id: str
    tenant_id: str
    name: str
    description: Optional[str] = None
    is_template: bool = False
    revision: int = 0
    created_at: datetime = field(default_factory=datetime.utcnow)
    updated_at: datetime = field(default_factory=datetime.utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "name": self.name,
            "description": self.description,
            "is_template": self.is_template,
            "revision": self.revision,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }


@dataclass(frozen=True)
class FlowVersion:
    """
    A numbered snapshot of a flow's graph document.

    The document is the canonical exchange form of the graph. Only draft
    versions ever have their document replaced.
    """

    id: str
    flow_id: str
    tenant_id: str
    version_number: int
    status: VersionStatus
    document: Dict[str, Any]
    created_at: datetime = field(default_factory=datetime.utcnow)
    updated_at: datetime = field(default_factory=datetime.utcnow)
    promoted_by: Optional[str] = None
    promoted_at: Optional[datetime] = None

    @property
    def is_draft(self) -> bool:
        return self.status == VersionStatus.DRAFT

    def snapshot(self) -> "FlowVersion":
        """Detached copy safe to hand to callers."""
        return replace(self, document=copy.deepcopy(self.document))

    def to_dict(self, include_document: bool = True) -> Dict[str, Any]:
        result = {
            "id": self.id,
            "flow_id": self.flow_id,
            "version_number": self.version_number,
            "status": self.status.value,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "promoted_by": self.promoted_by,
            "promoted_at": self.promoted_at.isoformat() if self.promoted_at else None,
        }
        if include_document:
            result["document"] = self.document
        return result


@dataclass(frozen=True)
class StatusChange:
    """One status update inside an atomic lifecycle transition."""

    version_id: str
    from_status: VersionStatus
    to_status: VersionStatus
    actor: Optional[str] = None


@dataclass(frozen=True)
class FlowState:
    """Consistent snapshot of a flow and all of its versions."""

    flow: Flow
    versions: List[FlowVersion]

    @property
    def revision(self) -> int:
        return self.flow.revision

    def get(self, version_id: str) -> Optional[FlowVersion]:
        return next((v for v in self.versions if v.id == version_id), None)

    def with_status(self, status: VersionStatus) -> List[FlowVersion]:
        return [v for v in self.versions if v.status == status]

    def current(self, status: VersionStatus) -> Optional[FlowVersion]:
        matches = self.with_status(status)
        return matches[0] if matches else None

    @property
    def next_version_number(self) -> int:
        return max((v.version_number for v in self.versions), default=0) + 1


__all__ = [
    "NodeType",
    "NodeCategory",
    "VersionStatus",
    "IssueSeverity",
    "ErrorCode",
    "FlowError",
    "ValidationError",
    "ConflictError",
    "InvalidStateError",
    "NotFoundError",
    "Flow",
    "FlowVersion",
    "StatusChange",
    "FlowState",
]
