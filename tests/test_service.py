"""
Context Graph Service Tests
===========================
End-to-end behaviour of the facade: streaming and batch ingestion,
maintenance, persistence and reads, against a temp data directory.
"""

import asyncio
import dataclasses
import json
from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from contextgraph.core.analytics import GraphReport
from contextgraph.core.exceptions import ConfigurationError
from contextgraph.core.normalize import generate_id
from contextgraph.core.service import ContextGraphService

pytestmark = pytest.mark.integration

GITHUB_URL = "https://github.com/acme/widget"

EXTRACTION = {
    "entities": [
        {"label": "Benjamin", "type": "person", "confidence": 0.9},
        {"label": "The Bear", "type": "tv_show"},
    ],
    "relationships": [
        {"sourceLabel": "Benjamin", "targetLabel": "The Bear", "type": "recommended", "weight": 0.8},
    ],
}


class TestStreamingIngestion:
    def test_activity_builds_cooccurrence_edges(self, service, now):
        service.ingest_activity("Chrome", "acme/widget", GITHUB_URL, when=now)
        assert service.store.edge_count == 0

        ids = service.ingest_activity("Chrome", "acme/widget", GITHUB_URL, when=now + timedelta(seconds=5))
        chrome, github, widget = ids
        assert service.store.get_node(chrome).weight == 2
        edge = service.store.find_edge(github, widget)
        assert edge is not None
        assert edge.weight == 3
        assert service.store.edges_of(chrome) == []

    def test_skipped_title_observes_nothing(self, service):
        assert service.ingest_activity("Chrome", "New Tab", GITHUB_URL) == []
        assert service.store.node_count == 0

    def test_rejected_label(self, service):
        assert service.observe_entity("untitled", "topic") is None

    def test_add_relation(self, service):
        service.observe_entity("Katie", "person")
        service.observe_entity("Poker Night", "event")
        edge = service.add_relation("katie", "poker night", "attended")
        assert edge.relation == "attended"
        assert service.add_relation("Katie", "Nobody Known", "knows") is None

    def test_quick_extraction(self, service, now):
        ids = service.ingest_quick_extraction({
            "entities": [
                {"label": "Katie", "type": "person", "confidence": "high"},
                {"label": "Poker Night", "type": "event"},
                {"label": "x", "type": "topic"},
                "garbage",
            ],
            "relations": [{"from": "Katie", "to": "Poker Night", "relation": "attended"}],
        }, app="Slack", when=now)

        katie, poker = ids
        assert service.store.get_node(katie).verified
        assert not service.store.get_node(poker).verified
        assert list(service.store.get_node(katie).contexts) == ["ai-extract"]
        edge = service.store.find_edge(katie, poker)
        assert edge.relation == "attended"
        assert service.get_stats()["pending_edges"] == 1


class TestBatchIngestion:
    def test_merge_extraction(self, service):
        diff = service.merge_extraction(EXTRACTION)
        assert diff.summary()["added_nodes"] == 2
        assert diff.summary()["added_edges"] == 1
        bear = service.store.get_node(generate_id("media", "The Bear"))
        assert bear is not None
        assert service.registry.node_types["media"].usage_count == 1

    def test_merge_is_idempotent(self, service):
        service.merge_extraction(EXTRACTION)
        service.merge_extraction(EXTRACTION)
        assert service.store.node_count == 2
        assert service.store.edge_count == 1

    def test_malformed_extraction(self, service):
        assert service.merge_extraction("definitely not json") is None
        assert service.store.node_count == 0

    @pytest.mark.asyncio
    async def test_ingest_text(self, service):
        service.extractor = AsyncMock(return_value=json.dumps(EXTRACTION))
        diff = await service.ingest_text("Benjamin told me to watch The Bear", source_id="conv-7")

        assert diff.summary()["added_nodes"] == 2
        text, source, existing = service.extractor.await_args.args
        assert text == "Benjamin told me to watch The Bear"
        assert source.kind == "conversation" and source.id == "conv-7"
        assert existing is None
        assert service.scheduler.pending
        await service.scheduler.wait()
        assert service.scheduler.stats["completed"] == 1
        assert json.loads(open(service.config.paths.graph_file).read())["nodes"]

    @pytest.mark.asyncio
    async def test_ingest_text_passes_existing_context(self, service):
        service.observe_entity("Chris", "person")
        service.extractor = AsyncMock(return_value={"entities": []})
        await service.ingest_text("hello")
        assert service.extractor.await_args.args[2] == "- Chris (person)"

    @pytest.mark.asyncio
    async def test_ingest_text_timeout(self, test_config):
        config = dataclasses.replace(
            test_config,
            consolidation=dataclasses.replace(test_config.consolidation, extraction_timeout_seconds=0.05),
        )

        async def slow_extractor(text, source, existing):
            await asyncio.sleep(1)
            return EXTRACTION

        service = ContextGraphService.from_config(config, extractor=slow_extractor)
        assert await service.ingest_text("too slow") is None
        assert service.store.node_count == 0

    @pytest.mark.asyncio
    async def test_ingest_text_extractor_error(self, service):
        service.extractor = AsyncMock(side_effect=RuntimeError("upstream 500"))
        assert await service.ingest_text("anything") is None

    @pytest.mark.asyncio
    async def test_ingest_text_requires_extractor(self, service):
        with pytest.raises(ConfigurationError):
            await service.ingest_text("anything")


class TestMaintenance:
    def test_decay_graph(self, service, now):
        service.observe_entity("Old Topic", "topic", when=now - timedelta(days=30))
        service.observe_entity("Fresh Topic", "topic", when=now)
        result = service.decay_graph(now=now)
        assert result == {"nodes_removed": 1, "edges_removed": 0}
        assert service.store.node_count == 1

    @pytest.mark.asyncio
    async def test_consolidate_without_advisor(self, service):
        summary = await service.consolidate()
        assert set(summary) == {"decay", "types"}

    @pytest.mark.asyncio
    async def test_consolidate_with_advisor(self, service):
        service.observe_entity("Page Banner", "topic")
        banner_id = generate_id("topic", "Page Banner")
        service.advisor = AsyncMock(return_value=json.dumps({"remove": [banner_id]}))
        summary = await service.consolidate()
        assert summary["cleanup"]["nodes_removed"] == 1
        assert service.store.node_count == 0

    def test_schedule_outside_event_loop(self, service):
        assert service.schedule_consolidation() is False

    def test_reset(self, service):
        service.observe_entity("Chris", "person")
        service.reset()
        assert service.store.node_count == 0
        assert json.loads(open(service.config.paths.graph_file).read())["nodes"] == []


class TestPersistence:
    def test_save_and_reload(self, service, test_config):
        service.merge_extraction(EXTRACTION)
        assert service.save()

        reloaded = ContextGraphService.from_config(test_config)
        assert reloaded.store.node_count == 2
        assert reloaded.store.edge_count == 1
        assert reloaded.registry.node_types["media"].usage_count == 1

    def test_corrupt_snapshot_starts_empty(self, test_config):
        with open(test_config.paths.graph_file, "w") as f:
            f.write("{not json")
        service = ContextGraphService.from_config(test_config)
        assert service.store.node_count == 0
        assert service.load() is False

    def test_without_snapshot_store(self, test_config):
        service = ContextGraphService(config=test_config)
        assert service.save() is False
        assert service.load() is False


class TestReads:
    def test_stats(self, service):
        service.observe_entity("Chris", "person")
        stats = service.get_stats()
        assert stats["node_count"] == 1
        assert stats["pending_edges"] == 0
        assert stats["types"]["node_type_count"] == 8

    def test_analytics(self, service):
        service.merge_extraction(EXTRACTION)
        report = service.analytics("Chris")
        assert isinstance(report, GraphReport)
        assert report.subject == "Chris"
        assert report.stats["node_count"] == 2

    def test_node_label_and_detail(self, service):
        node_id = service.observe_entity("Chris", "person")
        assert service.get_node_label(node_id) == "Chris"
        assert service.get_node_label("person_missing") is None
        assert service.get_node_detail(node_id)["label"] == "Chris"
        assert service.get_graph_data()["nodes"][0]["id"] == node_id

    def test_edge_detail(self, service):
        service.merge_extraction(EXTRACTION)
        benjamin = generate_id("person", "Benjamin")
        bear = generate_id("media", "The Bear")
        assert service.get_edge_detail(benjamin, bear)["relation"] == "recommended"

    def test_existing_context(self, service):
        assert service.existing_context() is None
        for _ in range(2):
            service.observe_entity("Chris", "person")
        service.observe_entity("Elixir", "topic")
        assert service.existing_context() == "- Chris (person)\n- Elixir (topic)"
