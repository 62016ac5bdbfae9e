"""Unit tests for the flow service and version promotion."""

import asyncio
import threading

import pytest

from callflow_core.flows import (
    AuditRecord,
    AuditSink,
    BotReferenceChecker,
    ConflictError,
    FlowGraph,
    FlowService,
    FlowValidator,
    InMemoryAuditSink,
    InMemoryVersionStorage,
    InvalidStateError,
    NotFoundError,
    ValidationError,
    VersionStatus,
)


class FailingAuditSink(AuditSink):
    async def emit(self, record: AuditRecord) -> None:
        raise RuntimeError("audit backend down")


class ThreadRecordingValidator(FlowValidator):
    def validate(self, graph):
        self.thread_id = threading.get_ident()
        return super().validate(graph)


class StaticBotReferences(BotReferenceChecker):
    def __init__(self, count: int):
        self.count = count

    async def count_references(self, flow_id: str, tenant_id: str) -> int:
        return self.count


async def _flow_with_draft(service: FlowService, tenant_id: str, graph: FlowGraph):
    flow = await service.create_flow(tenant_id, "Hotline")
    draft = await service.create_draft_version(flow.id, tenant_id, graph)
    return flow, draft


class TestFlows:
    """Tests for flow management."""

    @pytest.mark.asyncio
    async def test_create_flow_requires_name(self, service: FlowService, tenant_id: str):
        """Test blank names are rejected."""
        with pytest.raises(ValidationError):
            await service.create_flow(tenant_id, "   ")

    @pytest.mark.asyncio
    async def test_get_unknown_flow(self, service: FlowService, tenant_id: str):
        """Test unknown flows raise NotFoundError."""
        with pytest.raises(NotFoundError) as exc_info:
            await service.get_flow("missing", tenant_id)

        assert exc_info.value.status_code == 404

    @pytest.mark.asyncio
    async def test_delete_flow(self, service: FlowService, tenant_id: str, linear_graph: FlowGraph):
        """Test deleting an unreferenced flow."""
        flow, _ = await _flow_with_draft(service, tenant_id, linear_graph)

        await service.delete_flow(flow.id, tenant_id)

        with pytest.raises(NotFoundError):
            await service.get_flow(flow.id, tenant_id)

    @pytest.mark.asyncio
    async def test_delete_referenced_flow(self, storage: InMemoryVersionStorage, tenant_id: str):
        """Test flows used by bots cannot be deleted."""
        service = FlowService(storage, bot_references=StaticBotReferences(2))
        flow = await service.create_flow(tenant_id, "Hotline")

        with pytest.raises(ConflictError) as exc_info:
            await service.delete_flow(flow.id, tenant_id)

        assert exc_info.value.details["bot_references"] == 2
        assert await storage.get_flow(flow.id, tenant_id) is not None

    @pytest.mark.asyncio
    async def test_create_from_template(self, service: FlowService, tenant_id: str):
        """Test template instantiation creates a valid draft."""
        flow, draft = await service.create_flow_from_template(
            tenant_id, "basic_greeting", "Praxis Hotline", company_name="Praxis Dr. Huber"
        )

        assert flow.name == "Praxis Hotline"
        assert draft.version_number == 1
        assert draft.status == VersionStatus.DRAFT
        assert (await service.validate_version(draft.id, tenant_id)).is_valid

    @pytest.mark.asyncio
    async def test_validate_version_off_event_loop(
        self, storage: InMemoryVersionStorage, tenant_id: str, linear_graph: FlowGraph
    ):
        """Test version validation runs in a worker thread."""
        validator = ThreadRecordingValidator()
        service = FlowService(storage, validator=validator)
        _, draft = await _flow_with_draft(service, tenant_id, linear_graph)

        result = await service.validate_version(draft.id, tenant_id)

        assert result.is_valid
        assert validator.thread_id != threading.get_ident()

    @pytest.mark.asyncio
    async def test_template_bad_options(self, service: FlowService, tenant_id: str):
        """Test unknown template options are a validation error."""
        with pytest.raises(ValidationError):
            await service.create_flow_from_template(
                tenant_id, "basic_greeting", "Hotline", colour="blue"
            )

    @pytest.mark.asyncio
    async def test_unknown_template(self, service: FlowService, tenant_id: str):
        """Test unknown templates."""
        with pytest.raises(NotFoundError):
            await service.create_flow_from_template(tenant_id, "ivr_menu", "Hotline")


class TestDrafts:
    """Tests for draft editing."""

    @pytest.mark.asyncio
    async def test_document_is_stored(self, service: FlowService, tenant_id: str, linear_graph: FlowGraph):
        """Test drafts store the canonical document."""
        _, draft = await _flow_with_draft(service, tenant_id, linear_graph)

        assert draft.document["schemaVersion"] == "1.0.0"
        assert "lastModified" in draft.document["metadata"]
        loaded = service.load_graph(draft)
        assert loaded.connections == linear_graph.connections

    @pytest.mark.asyncio
    async def test_update_draft(self, service: FlowService, tenant_id: str, make_graph):
        """Test drafts can be edited in place."""
        _, draft = await _flow_with_draft(service, tenant_id, make_graph("Erste Fassung"))

        updated = await service.update_draft_version(draft.id, tenant_id, make_graph("Zweite Fassung"))

        assert updated.version_number == draft.version_number
        assert service.load_graph(updated).nodes["say1"].config.message == "Zweite Fassung"

    @pytest.mark.asyncio
    async def test_update_promoted_version(self, service: FlowService, tenant_id: str, linear_graph: FlowGraph):
        """Test promoted versions are immutable."""
        _, draft = await _flow_with_draft(service, tenant_id, linear_graph)
        await service.promote_version(draft.id, tenant_id, VersionStatus.STAGED)

        with pytest.raises(InvalidStateError):
            await service.update_draft_version(draft.id, tenant_id, linear_graph)

    @pytest.mark.asyncio
    async def test_unserializable_graph(self, service: FlowService, tenant_id: str, linear_graph: FlowGraph):
        """Test graphs with conflicting connections are not stored."""
        flow = await service.create_flow(tenant_id, "Hotline")
        linear_graph.connect("say1", "start1", "next")

        with pytest.raises(ValidationError):
            await service.create_draft_version(flow.id, tenant_id, linear_graph)

        assert await service.list_versions(flow.id, tenant_id) == []

    @pytest.mark.asyncio
    async def test_version_numbers_never_reused(self, service: FlowService, tenant_id: str, make_graph):
        """Test numbering continues across promote and archive cycles."""
        flow = await service.create_flow(tenant_id, "Hotline")
        numbers = []
        for i in range(3):
            draft = await service.create_draft_version(flow.id, tenant_id, make_graph(f"Version {i}"))
            numbers.append(draft.version_number)
            if i == 1:
                await service.archive_version(draft.id, tenant_id)
            else:
                await service.promote_version(draft.id, tenant_id, VersionStatus.LIVE)

        assert numbers == [1, 2, 3]
        versions = await service.list_versions(flow.id, tenant_id)
        assert [v.version_number for v in versions] == [3, 2, 1]


class TestPromotion:
    """Tests for lifecycle transitions."""

    @pytest.mark.asyncio
    async def test_draft_to_staged_to_live(self, service: FlowService, tenant_id: str, user_id: str, linear_graph: FlowGraph):
        """Test the regular promotion path."""
        flow, draft = await _flow_with_draft(service, tenant_id, linear_graph)

        staged = await service.promote_version(draft.id, tenant_id, VersionStatus.STAGED, user_id)
        assert staged.status == VersionStatus.STAGED
        assert await service.get_live_version(flow.id, tenant_id) is None

        live = await service.promote_version(draft.id, tenant_id, VersionStatus.LIVE, user_id)
        assert live.status == VersionStatus.LIVE
        assert live.promoted_by == user_id
        assert (await service.get_live_version(flow.id, tenant_id)).id == draft.id

    @pytest.mark.asyncio
    async def test_new_live_archives_previous(self, service: FlowService, tenant_id: str, make_graph):
        """Test promoting B to live archives A in the same step."""
        flow, a = await _flow_with_draft(service, tenant_id, make_graph("A"))
        await service.promote_version(a.id, tenant_id, VersionStatus.LIVE)
        b = await service.create_draft_version(flow.id, tenant_id, make_graph("B"))

        await service.promote_version(b.id, tenant_id, VersionStatus.LIVE)

        assert (await service.get_version(a.id, tenant_id)).status == VersionStatus.ARCHIVED
        assert (await service.get_version(b.id, tenant_id)).status == VersionStatus.LIVE
        statuses = [v.status for v in await service.list_versions(flow.id, tenant_id)]
        assert statuses.count(VersionStatus.LIVE) == 1

    @pytest.mark.asyncio
    async def test_invalid_graph_not_promoted(self, service: FlowService, tenant_id: str, linear_graph: FlowGraph):
        """Test promotion requires a valid graph."""
        linear_graph.disconnect("say1", "end1")
        _, draft = await _flow_with_draft(service, tenant_id, linear_graph)

        with pytest.raises(ValidationError) as exc_info:
            await service.promote_version(draft.id, tenant_id, VersionStatus.LIVE)

        validation = exc_info.value.details["validation"]
        assert validation["isValid"] is False
        assert validation["errors"][0]["code"] == "missing_connection"
        assert (await service.get_version(draft.id, tenant_id)).status == VersionStatus.DRAFT

    @pytest.mark.asyncio
    async def test_promote_to_draft_rejected(self, service: FlowService, tenant_id: str, linear_graph: FlowGraph):
        """Test draft is not a promotion target."""
        _, draft = await _flow_with_draft(service, tenant_id, linear_graph)

        with pytest.raises(InvalidStateError):
            await service.promote_version(draft.id, tenant_id, VersionStatus.DRAFT)

    @pytest.mark.asyncio
    async def test_archived_cannot_return(self, service: FlowService, tenant_id: str, linear_graph: FlowGraph):
        """Test archived is terminal."""
        _, draft = await _flow_with_draft(service, tenant_id, linear_graph)
        await service.archive_version(draft.id, tenant_id)

        with pytest.raises(InvalidStateError):
            await service.promote_version(draft.id, tenant_id, VersionStatus.LIVE)

    @pytest.mark.asyncio
    async def test_archive_live_rejected(self, service: FlowService, tenant_id: str, linear_graph: FlowGraph):
        """Test live versions are only replaced, never archived directly."""
        _, draft = await _flow_with_draft(service, tenant_id, linear_graph)
        await service.promote_version(draft.id, tenant_id, VersionStatus.LIVE)

        with pytest.raises(InvalidStateError):
            await service.archive_version(draft.id, tenant_id)

    @pytest.mark.asyncio
    async def test_other_tenant_cannot_promote(
        self,
        service: FlowService,
        tenant_id: str,
        other_tenant_id: str,
        linear_graph: FlowGraph,
    ):
        """Test versions of other tenants are invisible."""
        _, draft = await _flow_with_draft(service, tenant_id, linear_graph)

        with pytest.raises(NotFoundError):
            await service.promote_version(draft.id, other_tenant_id, VersionStatus.LIVE)

    @pytest.mark.asyncio
    async def test_concurrent_promotions(self, service: FlowService, tenant_id: str, make_graph):
        """Test two concurrent promotions to live: exactly one wins."""
        flow, v1 = await _flow_with_draft(service, tenant_id, make_graph("Eins"))
        await service.promote_version(v1.id, tenant_id, VersionStatus.STAGED)
        v2 = await service.create_draft_version(flow.id, tenant_id, make_graph("Zwei"))

        results = await asyncio.gather(
            service.promote_version(v1.id, tenant_id, VersionStatus.LIVE),
            service.promote_version(v2.id, tenant_id, VersionStatus.LIVE),
            return_exceptions=True,
        )

        failures = [r for r in results if isinstance(r, Exception)]
        assert len(failures) == 1
        assert isinstance(failures[0], ConflictError)

        versions = await service.list_versions(flow.id, tenant_id)
        assert [v.status for v in versions].count(VersionStatus.LIVE) == 1


class TestAudit:
    """Tests for audit records of transitions."""

    @pytest.mark.asyncio
    async def test_promotion_records(
        self,
        service: FlowService,
        audit_sink: InMemoryAuditSink,
        tenant_id: str,
        user_id: str,
        make_graph,
    ):
        """Test promotions and demotions are recorded."""
        flow, a = await _flow_with_draft(service, tenant_id, make_graph("A"))
        await service.promote_version(a.id, tenant_id, VersionStatus.LIVE, user_id)
        b = await service.create_draft_version(flow.id, tenant_id, make_graph("B"))
        audit_sink.clear()

        await service.promote_version(b.id, tenant_id, VersionStatus.LIVE, user_id)

        actions = {r.version_id: r.action for r in audit_sink.records}
        assert actions == {a.id: "demote", b.id: "promote"}
        [demotion] = audit_sink.for_version(a.id)
        assert demotion.from_status == VersionStatus.LIVE
        assert demotion.to_status == VersionStatus.ARCHIVED
        assert demotion.actor == user_id
        assert demotion.version_number == 1

    @pytest.mark.asyncio
    async def test_archive_record(self, service: FlowService, audit_sink: InMemoryAuditSink, tenant_id: str, linear_graph: FlowGraph):
        """Test archival is recorded."""
        _, draft = await _flow_with_draft(service, tenant_id, linear_graph)

        await service.archive_version(draft.id, tenant_id)

        assert [r.action for r in audit_sink.records] == ["archive"]
        assert audit_sink.records[0].to_dict()["to_status"] == "archived"

    @pytest.mark.asyncio
    async def test_rejected_transition_not_recorded(self, service: FlowService, audit_sink: InMemoryAuditSink, tenant_id: str, linear_graph: FlowGraph):
        """Test failed transitions produce no audit records."""
        linear_graph.disconnect("say1", "end1")
        _, draft = await _flow_with_draft(service, tenant_id, linear_graph)

        with pytest.raises(ValidationError):
            await service.promote_version(draft.id, tenant_id, VersionStatus.LIVE)

        assert audit_sink.records == []

    @pytest.mark.asyncio
    async def test_failing_sink_does_not_undo(self, storage: InMemoryVersionStorage, tenant_id: str, linear_graph: FlowGraph):
        """Test audit failures never roll back a transition."""
        service = FlowService(storage, audit_sink=FailingAuditSink())
        _, draft = await _flow_with_draft(service, tenant_id, linear_graph)

        live = await service.promote_version(draft.id, tenant_id, VersionStatus.LIVE)

        assert live.status == VersionStatus.LIVE
        assert (await storage.get_version(draft.id, tenant_id)).status == VersionStatus.LIVE
