"""
Audit Sink.

Lifecycle events (promotion, demotion, archival) are handed to an external
audit collaborator. Persistence of audit records is outside this package.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

import structlog

from .base import VersionStatus


@dataclass(frozen=True)
class AuditRecord:
    """One status change of a flow version."""

    action: str
    tenant_id: str
    flow_id: str
    version_id: str
    version_number: int
    from_status: VersionStatus
    to_status: VersionStatus
    actor: Optional[str] = None
    timestamp: datetime = field(default_factory=datetime.utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "action": self.action,
            "tenant_id": self.tenant_id,
            "flow_id": self.flow_id,
            "version_id": self.version_id,
            "version_number": self.version_number,
            "from_status": self.from_status.value,
            "to_status": self.to_status.value,
            "actor": self.actor,
            "timestamp": self.timestamp.isoformat(),
        }


class AuditSink(ABC):
    """Receiver of lifecycle audit records."""

    @abstractmethod
    async def emit(self, record: AuditRecord) -> None:
        """Deliver an audit record."""
        pass


class LoggingAuditSink(AuditSink):
    """Writes audit records to the structured log."""

    def __init__(self, logger_name: str = "callflow.audit"):
        self._logger = structlog.get_logger(logger_name)

    async def emit(self, record: AuditRecord) -> None:
        self._logger.info("flow_version_audit", **record.to_dict())


class InMemoryAuditSink(AuditSink):
    """Collects audit records in memory."""

    def __init__(self):
        self.records: List[AuditRecord] = []

    async def emit(self, record: AuditRecord) -> None:
        self.records.append(record)

    def for_version(self, version_id: str) -> List[AuditRecord]:
        return [r for r in self.records if r.version_id == version_id]

    def clear(self) -> None:
        self.records.clear()


__all__ = [
    "AuditRecord",
    "AuditSink",
    "LoggingAuditSink",
    "InMemoryAuditSink",
]
