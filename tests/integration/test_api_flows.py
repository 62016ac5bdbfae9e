"""Integration tests for the flows API."""

import pytest
from httpx import AsyncClient

from callflow_core.flows import FlowGraph, graph_to_document


async def _create_flow(client: AsyncClient, name: str = "Hotline") -> str:
    response = await client.post("/api/v1/flows", json={"name": name})
    assert response.status_code == 201
    return response.json()["data"]["id"]


async def _create_draft(client: AsyncClient, flow_id: str, graph: FlowGraph) -> dict:
    response = await client.post(
        f"/api/v1/flows/{flow_id}/versions",
        json={"document": graph_to_document(graph)},
    )
    assert response.status_code == 201
    return response.json()["data"]


class TestHealthAndCatalog:
    """Tests for health and catalog endpoints."""

    @pytest.mark.asyncio
    async def test_health(self, client: AsyncClient):
        """Test health endpoint."""
        response = await client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    @pytest.mark.asyncio
    async def test_node_catalog(self, client: AsyncClient):
        """Test node type catalog."""
        response = await client.get("/api/v1/nodes")

        assert response.status_code == 200
        assert response.json()["success"] is True
        assert response.json()["data"]

    @pytest.mark.asyncio
    async def test_templates(self, client: AsyncClient):
        """Test template listing."""
        response = await client.get("/api/v1/templates")

        assert response.status_code == 200
        assert response.json()["data"][0]["id"] == "basic_greeting"


class TestFlowsAPI:
    """Tests for flow endpoints."""

    @pytest.mark.asyncio
    async def test_create_and_get(self, client: AsyncClient):
        """Test creating and fetching a flow."""
        flow_id = await _create_flow(client, "Terminbuchung")

        response = await client.get(f"/api/v1/flows/{flow_id}")

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["error"] is None
        assert body["data"]["name"] == "Terminbuchung"

    @pytest.mark.asyncio
    async def test_create_validation(self, client: AsyncClient):
        """Test request body validation."""
        response = await client.post("/api/v1/flows", json={"description": "No name"})

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_tenant_header_required(self, app):
        """Test requests without tenant are rejected."""
        from httpx import ASGITransport

        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as ac:
            response = await ac.get("/api/v1/flows")

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_unknown_flow(self, client: AsyncClient):
        """Test error envelope for unknown flows."""
        response = await client.get("/api/v1/flows/missing")

        assert response.status_code == 404
        body = response.json()
        assert body["success"] is False
        assert body["data"] is None
        assert body["error"]["code"] == "RES_3001"

    @pytest.mark.asyncio
    async def test_other_tenant_sees_nothing(self, client: AsyncClient, other_tenant_id: str):
        """Test tenant scoping."""
        flow_id = await _create_flow(client)

        response = await client.get(
            f"/api/v1/flows/{flow_id}", headers={"X-Tenant-ID": other_tenant_id}
        )

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_from_template(self, client: AsyncClient):
        """Test template instantiation."""
        response = await client.post(
            "/api/v1/flows/from-template",
            json={
                "template_id": "basic_greeting",
                "name": "Praxis",
                "options": {"company_name": "Praxis Dr. Huber"},
            },
        )

        assert response.status_code == 201
        data = response.json()["data"]
        assert data["draft"]["version_number"] == 1
        assert data["draft"]["status"] == "draft"

    @pytest.mark.asyncio
    async def test_delete(self, client: AsyncClient):
        """Test deleting a flow."""
        flow_id = await _create_flow(client)

        response = await client.delete(f"/api/v1/flows/{flow_id}")
        assert response.status_code == 200

        response = await client.get(f"/api/v1/flows/{flow_id}")
        assert response.status_code == 404


class TestVersionsAPI:
    """Tests for version endpoints."""

    @pytest.mark.asyncio
    async def test_second_draft_conflict(self, client: AsyncClient, linear_graph: FlowGraph):
        """Test a second draft is rejected with 409."""
        flow_id = await _create_flow(client)
        await _create_draft(client, flow_id, linear_graph)

        response = await client.post(
            f"/api/v1/flows/{flow_id}/versions",
            json={"document": graph_to_document(linear_graph)},
        )

        assert response.status_code == 409
        assert response.json()["error"]["code"] == "RES_3003"

    @pytest.mark.asyncio
    async def test_malformed_document(self, client: AsyncClient):
        """Test unparseable documents are rejected with 422."""
        flow_id = await _create_flow(client)

        response = await client.post(
            f"/api/v1/flows/{flow_id}/versions",
            json={"document": {"nodes": [{"id": "x", "type": "loop", "label": "X"}]}},
        )

        assert response.status_code == 422
        assert response.json()["error"]["details"]["path"] == "nodes.0.type"

    @pytest.mark.asyncio
    async def test_promote_to_live(self, client: AsyncClient, user_id: str, linear_graph: FlowGraph):
        """Test promoting a draft and reading the live version."""
        flow_id = await _create_flow(client)
        draft = await _create_draft(client, flow_id, linear_graph)

        response = await client.post(
            f"/api/v1/versions/{draft['id']}/promote", json={"target": "live"}
        )

        assert response.status_code == 200
        assert response.json()["data"]["status"] == "live"
        assert response.json()["data"]["promoted_by"] == user_id

        response = await client.get(f"/api/v1/flows/{flow_id}/versions/live")
        assert response.json()["data"]["id"] == draft["id"]

    @pytest.mark.asyncio
    async def test_promote_invalid_graph(self, client: AsyncClient, linear_graph: FlowGraph):
        """Test promotion of an invalid graph returns the issues."""
        linear_graph.disconnect("say1", "end1")
        flow_id = await _create_flow(client)
        draft = await _create_draft(client, flow_id, linear_graph)

        response = await client.post(
            f"/api/v1/versions/{draft['id']}/promote", json={"target": "live"}
        )

        assert response.status_code == 422
        validation = response.json()["error"]["details"]["validation"]
        assert validation["errors"][0]["nodeId"] == "say1"

    @pytest.mark.asyncio
    async def test_archive_live_rejected(self, client: AsyncClient, linear_graph: FlowGraph):
        """Test archiving a live version returns 409."""
        flow_id = await _create_flow(client)
        draft = await _create_draft(client, flow_id, linear_graph)
        await client.post(f"/api/v1/versions/{draft['id']}/promote", json={"target": "live"})

        response = await client.post(f"/api/v1/versions/{draft['id']}/archive")

        assert response.status_code == 409
        assert response.json()["error"]["code"] == "BIZ_6001"

    @pytest.mark.asyncio
    async def test_update_and_list(self, client: AsyncClient, make_graph):
        """Test editing a draft and listing versions without documents."""
        flow_id = await _create_flow(client)
        draft = await _create_draft(client, flow_id, make_graph("Alt"))

        response = await client.put(
            f"/api/v1/versions/{draft['id']}",
            json={"document": graph_to_document(make_graph("Neu"))},
        )
        assert response.status_code == 200

        response = await client.get(f"/api/v1/flows/{flow_id}/versions")
        versions = response.json()["data"]
        assert len(versions) == 1
        assert "document" not in versions[0]

    @pytest.mark.asyncio
    async def test_version_validation(self, client: AsyncClient, linear_graph: FlowGraph):
        """Test validating a stored version."""
        flow_id = await _create_flow(client)
        draft = await _create_draft(client, flow_id, linear_graph)

        response = await client.get(f"/api/v1/versions/{draft['id']}/validation")

        assert response.status_code == 200
        assert response.json()["data"]["isValid"] is True


class TestValidateAPI:
    """Tests for stateless validation."""

    @pytest.mark.asyncio
    async def test_validate_document(self, client: AsyncClient, linear_graph: FlowGraph):
        """Test validating an unsaved document."""
        linear_graph.disconnect("say1", "end1")

        response = await client.post(
            "/api/v1/validate", json={"document": graph_to_document(linear_graph)}
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["isValid"] is False
        assert len(data["errors"]) == 1
        assert len(data["warnings"]) == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "patch,path",
        [
            ({"config": "x"}, "config"),
            ({"metadata": ["x"]}, "metadata"),
            ({"metadata": {"name": "Hotline", "tags": 5}}, "metadata.tags"),
        ],
    )
    async def test_section_of_wrong_type(
        self,
        client: AsyncClient,
        linear_graph: FlowGraph,
        patch: dict,
        path: str,
    ):
        """Test documents with malformed sections are schema errors."""
        document = {**graph_to_document(linear_graph), **patch}

        response = await client.post("/api/v1/validate", json={"document": document})

        assert response.status_code == 422
        assert response.json()["error"]["code"] == "VAL_2001"
        assert response.json()["error"]["details"]["path"] == path

    @pytest.mark.asyncio
    @pytest.mark.parametrize("position", [[1, 2], "abc"])
    async def test_malformed_position(self, client: AsyncClient, linear_graph: FlowGraph, position):
        """Test drafts with a malformed node position are rejected."""
        flow_id = await _create_flow(client)
        document = graph_to_document(linear_graph)
        document["nodes"][0]["position"] = position

        response = await client.post(
            f"/api/v1/flows/{flow_id}/versions", json={"document": document}
        )

        assert response.status_code == 422
        assert response.json()["error"]["details"]["path"] == "nodes.0.position"
