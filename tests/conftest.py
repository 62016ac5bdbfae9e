"""Shared pytest fixtures for testing."""

from typing import AsyncGenerator
from uuid import uuid4

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import AsyncClient, ASGITransport

from callflow_core.config import Settings, ValidationConfig
from callflow_core.flows import (
    FlowGraph,
    FlowNode,
    FlowService,
    FlowValidator,
    InMemoryAuditSink,
    InMemoryVersionStorage,
    NodeType,
)
from callflow_core.flows.nodes import EndConfig, SayConfig, StartConfig


# =============================================================================
# Test Data Fixtures
# =============================================================================


@pytest.fixture
def tenant_id() -> str:
    """Generate a test tenant ID."""
    return f"ten_{uuid4().hex[:12]}"


@pytest.fixture
def other_tenant_id() -> str:
    """Generate a second tenant ID."""
    return f"ten_{uuid4().hex[:12]}"


@pytest.fixture
def user_id() -> str:
    """Generate a test user ID."""
    return f"usr_{uuid4().hex[:12]}"


def build_linear_graph(message: str = "Hello and welcome!") -> FlowGraph:
    """start1 -> say1 -> end1 with valid configuration."""
    return FlowGraph.build(
        nodes=[
            FlowNode(
                id="start1",
                type=NodeType.START,
                label="Start",
                config=StartConfig(greeting_message="Guten Tag!"),
            ),
            FlowNode(
                id="say1",
                type=NodeType.SAY,
                label="Welcome",
                config=SayConfig(message=message),
            ),
            FlowNode(
                id="end1",
                type=NodeType.END,
                label="Goodbye",
                config=EndConfig(message="Auf Wiederhören!"),
            ),
        ],
        connections=[
            ("start1", "say1", "next"),
            ("say1", "end1", "next"),
        ],
    )


@pytest.fixture
def linear_graph() -> FlowGraph:
    """A minimal valid flow graph."""
    return build_linear_graph()


@pytest.fixture
def make_graph():
    """Factory for minimal valid graphs differing in their say message."""
    return build_linear_graph


# =============================================================================
# Service Fixtures
# =============================================================================


@pytest.fixture
def validator() -> FlowValidator:
    """Validator with default limits."""
    return FlowValidator(settings=ValidationConfig())


@pytest.fixture
def audit_sink() -> InMemoryAuditSink:
    """Audit sink collecting records."""
    return InMemoryAuditSink()


@pytest.fixture
def storage() -> InMemoryVersionStorage:
    """Empty in-memory version storage."""
    return InMemoryVersionStorage()


@pytest.fixture
def service(
    storage: InMemoryVersionStorage,
    validator: FlowValidator,
    audit_sink: InMemoryAuditSink,
) -> FlowService:
    """Flow service on in-memory storage."""
    return FlowService(storage, validator=validator, audit_sink=audit_sink)


# =============================================================================
# API Fixtures
# =============================================================================


@pytest_asyncio.fixture
async def app(service: FlowService) -> FastAPI:
    """Create test FastAPI application."""
    from callflow_core.api import create_app

    settings = Settings(enable_docs=False)
    return create_app(service=service, settings=settings)


@pytest_asyncio.fixture
async def client(app: FastAPI, tenant_id: str, user_id: str) -> AsyncGenerator[AsyncClient, None]:
    """Create test HTTP client acting for a tenant."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        ac.headers["X-Tenant-ID"] = tenant_id
        ac.headers["X-User-ID"] = user_id
        yield ac
