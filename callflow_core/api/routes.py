"""
Flow API Routes

REST endpoints for flows, versions and validation. Authentication is
handled upstream; the tenant and the acting user arrive as headers.
"""

import asyncio
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Header, Query, Request
from pydantic import BaseModel, Field

from ..flows import (
    FlowService,
    VersionStatus,
    get_node_registry,
    graph_from_document,
    list_templates,
)

logger = logging.getLogger(__name__)

router = APIRouter()


# =============================================================================
# Request Models
# =============================================================================


class CreateFlowRequest(BaseModel):
    """Request to create a flow."""

    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    is_template: bool = False


class CreateFromTemplateRequest(BaseModel):
    """Request to create a flow from a built-in template."""

    template_id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1, max_length=255)
    options: Dict[str, Any] = Field(default_factory=dict)


class DocumentRequest(BaseModel):
    """Flow graph in canonical document form."""

    document: Dict[str, Any]


class PromoteRequest(BaseModel):
    """Request to promote a version."""

    target: VersionStatus


# =============================================================================
# Dependencies
# =============================================================================


def get_flow_service(request: Request) -> FlowService:
    return request.app.state.flow_service


def get_tenant_id(x_tenant_id: str = Header(..., alias="X-Tenant-ID")) -> str:
    return x_tenant_id


def get_actor(x_user_id: Optional[str] = Header(None, alias="X-User-ID")) -> Optional[str]:
    return x_user_id


def _ok(data: Any) -> Dict[str, Any]:
    return {"success": True, "data": data, "error": None}


# =============================================================================
# Catalog
# =============================================================================


@router.get("/nodes", tags=["Nodes"])
async def list_node_types():
    """List node types grouped by category."""
    return _ok(get_node_registry().to_catalog())


@router.get("/templates", tags=["Templates"])
async def get_templates():
    """List built-in flow templates."""
    return _ok([t.to_dict() for t in list_templates()])


# =============================================================================
# Flows
# =============================================================================


@router.post("/flows", status_code=201, tags=["Flows"])
async def create_flow(
    body: CreateFlowRequest,
    tenant_id: str = Depends(get_tenant_id),
    service: FlowService = Depends(get_flow_service),
):
    """Create a new flow."""
    flow = await service.create_flow(
        tenant_id, body.name, body.description, body.is_template
    )
    return _ok(flow.to_dict())


@router.post("/flows/from-template", status_code=201, tags=["Flows"])
async def create_flow_from_template(
    body: CreateFromTemplateRequest,
    tenant_id: str = Depends(get_tenant_id),
    service: FlowService = Depends(get_flow_service),
):
    """Create a flow with a first draft built from a template."""
    flow, draft = await service.create_flow_from_template(
        tenant_id, body.template_id, body.name, **body.options
    )
    return _ok({"flow": flow.to_dict(), "draft": draft.to_dict()})


@router.get("/flows", tags=["Flows"])
async def list_flows(
    include_templates: bool = Query(True),
    tenant_id: str = Depends(get_tenant_id),
    service: FlowService = Depends(get_flow_service),
):
    """List the tenant's flows."""
    flows = await service.list_flows(tenant_id, include_templates)
    return _ok([f.to_dict() for f in flows])


@router.get("/flows/{flow_id}", tags=["Flows"])
async def get_flow(
    flow_id: str,
    tenant_id: str = Depends(get_tenant_id),
    service: FlowService = Depends(get_flow_service),
):
    """Get a flow."""
    flow = await service.get_flow(flow_id, tenant_id)
    return _ok(flow.to_dict())


@router.delete("/flows/{flow_id}", tags=["Flows"])
async def delete_flow(
    flow_id: str,
    tenant_id: str = Depends(get_tenant_id),
    service: FlowService = Depends(get_flow_service),
):
    """Delete a flow and its versions."""
    await service.delete_flow(flow_id, tenant_id)
    return _ok({"deleted": True, "flow_id": flow_id})


# =============================================================================
# Versions
# =============================================================================


@router.get("/flows/{flow_id}/versions", tags=["Versions"])
async def list_versions(
    flow_id: str,
    tenant_id: str = Depends(get_tenant_id),
    service: FlowService = Depends(get_flow_service),
):
    """List versions of a flow, newest first."""
    versions = await service.list_versions(flow_id, tenant_id)
    return _ok([v.to_dict(include_document=False) for v in versions])


@router.get("/flows/{flow_id}/versions/live", tags=["Versions"])
async def get_live_version(
    flow_id: str,
    tenant_id: str = Depends(get_tenant_id),
    service: FlowService = Depends(get_flow_service),
):
    """Get the live version of a flow, if any."""
    version = await service.get_live_version(flow_id, tenant_id)
    return _ok(version.to_dict() if version else None)


@router.post("/flows/{flow_id}/versions", status_code=201, tags=["Versions"])
async def create_draft_version(
    flow_id: str,
    body: DocumentRequest,
    tenant_id: str = Depends(get_tenant_id),
    service: FlowService = Depends(get_flow_service),
):
    """Create the draft version of a flow."""
    graph = graph_from_document(body.document)
    version = await service.create_draft_version(flow_id, tenant_id, graph)
    return _ok(version.to_dict())


@router.get("/versions/{version_id}", tags=["Versions"])
async def get_version(
    version_id: str,
    tenant_id: str = Depends(get_tenant_id),
    service: FlowService = Depends(get_flow_service),
):
    """Get a version including its document."""
    version = await service.get_version(version_id, tenant_id)
    return _ok(version.to_dict())


@router.put("/versions/{version_id}", tags=["Versions"])
async def update_draft_version(
    version_id: str,
    body: DocumentRequest,
    tenant_id: str = Depends(get_tenant_id),
    service: FlowService = Depends(get_flow_service),
):
    """Replace the document of a draft version."""
    graph = graph_from_document(body.document)
    version = await service.update_draft_version(version_id, tenant_id, graph)
    return _ok(version.to_dict())


@router.post("/versions/{version_id}/promote", tags=["Versions"])
async def promote_version(
    version_id: str,
    body: PromoteRequest,
    tenant_id: str = Depends(get_tenant_id),
    actor: Optional[str] = Depends(get_actor),
    service: FlowService = Depends(get_flow_service),
):
    """Promote a version to staged or live."""
    version = await service.promote_version(version_id, tenant_id, body.target, actor)
    return _ok(version.to_dict(include_document=False))


@router.post("/versions/{version_id}/archive", tags=["Versions"])
async def archive_version(
    version_id: str,
    tenant_id: str = Depends(get_tenant_id),
    actor: Optional[str] = Depends(get_actor),
    service: FlowService = Depends(get_flow_service),
):
    """Archive a draft or staged version."""
    version = await service.archive_version(version_id, tenant_id, actor)
    return _ok(version.to_dict(include_document=False))


@router.get("/versions/{version_id}/validation", tags=["Validation"])
async def validate_version(
    version_id: str,
    tenant_id: str = Depends(get_tenant_id),
    service: FlowService = Depends(get_flow_service),
):
    """Validate the graph stored in a version."""
    result = await service.validate_version(version_id, tenant_id)
    return _ok(result.to_dict())


# =============================================================================
# Validation
# =============================================================================


@router.post("/validate", tags=["Validation"])
async def validate_document(
    body: DocumentRequest,
    service: FlowService = Depends(get_flow_service),
):
    """Validate a flow document without storing it."""
    graph = graph_from_document(body.document)
    result = await asyncio.to_thread(service.validate_graph, graph)
    return _ok(result.to_dict())
