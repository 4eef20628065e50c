"""
Context Graph Service
=====================
Facade wiring the store, resolver, co-occurrence tracker, merge engine,
type registry, analytics, persistence and the consolidation scheduler.

Two ingestion paths share the one store:

    streaming:  observe_entity / ingest_activity / ingest_quick_extraction
                -> GraphStore.upsert_node -> CooccurrenceTracker
    batch:      merge_extraction / ingest_text
                -> parse_extraction (TypeRegistry) -> MergeEngine

Nothing here raises into the host on bad input from collaborators:
malformed extractions, extractor timeouts, advisor failures and I/O errors
are logged and turn into "no update".
"""

from __future__ import annotations

import asyncio
import time
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from loguru import logger

from .analytics import GraphAnalytics, GraphReport
from .cleanup import CleanupResult, run_cleanup
from .config import ContextGraphConfig, get_config
from .consolidation import ConsolidationScheduler
from .cooccurrence import CooccurrenceTracker
from .exceptions import (
    ConfigurationError,
    ContextGraphError,
    ExtractionTimeoutError,
    MalformedExtractionError,
)
from .extraction import parse_extraction
from .graph_store import GraphStore
from .heuristics import extract_activity
from .merge import MergeEngine
from .models import Edge, GraphDiff, Source, utcnow
from .persistence import GraphSnapshotStore
from .queries import get_edge_detail, get_graph_data, get_node_detail
from .type_registry import TypeRegistry

Extractor = Callable[[str, Source, Optional[str]], Awaitable[Union[str, Dict[str, Any]]]]
Advisor = Callable[[str], Awaitable[str]]

QUICK_LABEL_MIN = 2
QUICK_LABEL_MAX = 50
EXISTING_CONTEXT_NODES = 30


class ContextGraphService:
    """
    One subject's context graph and everything that maintains it.

    Args:
        config: Root configuration; the global one if omitted.
        registry: Type registry for batch extraction.
        snapshot_store: Where ``save``/``load`` put the graph.
        extractor: ``async extractor(text, source, existing_context)``
            returning the extraction payload (dict or JSON text).
        advisor: ``async advisor(prompt) -> str`` used by cleanup.
    """

    def __init__(
        self,
        config: Optional[ContextGraphConfig] = None,
        registry: Optional[TypeRegistry] = None,
        snapshot_store: Optional[GraphSnapshotStore] = None,
        extractor: Optional[Extractor] = None,
        advisor: Optional[Advisor] = None,
    ):
        self.config = config or get_config()
        self.store = GraphStore(self.config.graph)
        self.tracker = CooccurrenceTracker(self.store, self.config.cooccurrence)
        self.merger = MergeEngine(self.store, self.config.merge)
        self.graph_analytics = GraphAnalytics(self.store, self.config.analytics)
        self.registry = registry
        self.snapshot_store = snapshot_store
        self.extractor = extractor
        self.advisor = advisor
        self.scheduler = ConsolidationScheduler(
            self.consolidate,
            delay_seconds=self.config.consolidation.delay_seconds,
            timeout_seconds=self.config.consolidation.timeout_seconds,
            enabled=self.config.consolidation.enabled,
        )

    @classmethod
    def from_config(
        cls,
        config: Optional[ContextGraphConfig] = None,
        extractor: Optional[Extractor] = None,
        advisor: Optional[Advisor] = None,
        load: bool = True,
    ) -> "ContextGraphService":
        """Service backed by the registry and snapshot files named in ``config.paths``."""
        config = config or get_config()
        service = cls(
            config=config,
            registry=TypeRegistry(config.paths.type_registry_file),
            snapshot_store=GraphSnapshotStore(config.paths.graph_file),
            extractor=extractor,
            advisor=advisor,
        )
        if load:
            service.load()
        return service

    # ══════════════════════════════════════════════════════════════════
    # Streaming Ingestion
    # ══════════════════════════════════════════════════════════════════

    def observe_entity(
        self,
        label: str,
        node_type: str,
        context: Optional[str] = None,
        hint: Optional[str] = None,
        when: Optional[datetime] = None,
    ) -> Optional[str]:
        """Upsert one sighting and feed its context hint to the tracker."""
        with self.store.lock:
            node_id = self.store.upsert_node(label, node_type, context, when)
            if node_id is not None and hint:
                self.tracker.observe(node_id, hint, when)
        return node_id

    def add_relation(self, from_label: str, to_label: str, relation: str) -> Optional[Edge]:
        """
        Assert a named relation between two existing entities, looked up by
        normalized label (heaviest match of any type).
        """
        with self.store.lock:
            source = self.store.find_node_by_normalized(from_label)
            target = self.store.find_node_by_normalized(to_label)
            if source is None or target is None:
                logger.debug(f"[Service] Relation skipped, unknown endpoint: {from_label} -> {to_label}")
                return None
            return self.store.upsert_edge(source.id, target.id, weight_delta=1, relation=relation)

    def ingest_activity(
        self,
        app: str,
        title: str,
        url: Optional[str] = None,
        summary: Optional[str] = None,
        when: Optional[datetime] = None,
    ) -> List[str]:
        """Run the activity heuristics and observe everything they find."""
        ids: List[str] = []
        for obs in extract_activity(app, title, url, summary):
            node_id = self.observe_entity(obs.label, obs.type, obs.context, obs.hint, when)
            if node_id is not None and node_id not in ids:
                ids.append(node_id)
        return ids

    def ingest_quick_extraction(
        self,
        payload: Dict[str, Any],
        app: str = "unknown",
        when: Optional[datetime] = None,
    ) -> List[str]:
        """
        Streaming-path ingestion of a lightweight extraction:
        ``{"entities": [{label, type, confidence}], "relations": [{from, to, relation}]}``.

        All entities of one call share a context hint so that they co-occur;
        ``"high"`` confidence marks a node verified.
        """
        now = when or utcnow()
        hint = f"ai:{app}:timestamp:{int(now.timestamp() * 1000)}"
        ids: List[str] = []
        for entity in payload.get("entities") or []:
            if not isinstance(entity, dict):
                continue
            label, node_type = entity.get("label"), entity.get("type")
            if not isinstance(label, str) or not isinstance(node_type, str):
                continue
            if not QUICK_LABEL_MIN <= len(label) <= QUICK_LABEL_MAX:
                continue
            node_id = self.observe_entity(label, node_type, "ai-extract", hint, now)
            if node_id is None:
                continue
            if entity.get("confidence") == "high":
                node = self.store.get_node(node_id)
                if node is not None:
                    node.verified = True
            ids.append(node_id)

        for rel in payload.get("relations") or []:
            if isinstance(rel, dict) and rel.get("from") and rel.get("to") and rel.get("relation"):
                self.add_relation(str(rel["from"]).strip(), str(rel["to"]).strip(), str(rel["relation"]))

        if ids:
            logger.info(f"[Service] Quick extraction observed {len(ids)} entities")
        return ids

    # ══════════════════════════════════════════════════════════════════
    # Batch Ingestion
    # ══════════════════════════════════════════════════════════════════

    def merge_extraction(
        self,
        raw: Union[str, bytes, Dict[str, Any]],
        source: Optional[Source] = None,
    ) -> Optional[GraphDiff]:
        """
        Parse and merge one extraction payload.

        Returns:
            The GraphDiff, or None if the payload was malformed (in which
            case nothing was applied).
        """
        try:
            batch = parse_extraction(raw, self.registry, source)
        except MalformedExtractionError as e:
            logger.warning(f"[Service] Discarding malformed extraction: {e}")
            return None
        diff = self.merger.merge(batch)
        if not diff.is_empty:
            self.schedule_consolidation()
        return diff

    async def ingest_text(
        self,
        text: str,
        source_kind: str = "conversation",
        source_id: str = "",
    ) -> Optional[GraphDiff]:
        """
        Run the extraction collaborator over ``text`` and merge its output.

        The call is bounded by ``consolidation.extraction_timeout_seconds``.
        Timeouts and collaborator errors give None and leave the graph as is.

        Raises:
            ConfigurationError: If no extractor was configured.
        """
        if self.extractor is None:
            raise ConfigurationError("extractor", "no extraction collaborator configured")
        source = Source(kind=source_kind, id=source_id, timestamp=utcnow(), snippet=text[:200])
        timeout = self.config.consolidation.extraction_timeout_seconds
        try:
            raw = await asyncio.wait_for(
                self.extractor(text, source, self.existing_context()),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            error = ExtractionTimeoutError(timeout, context={"source_id": source_id})
            logger.warning(f"[Service] {error}")
            return None
        except Exception as e:
            logger.error(f"[Service] Extraction failed: {e}")
            return None
        return self.merge_extraction(raw, source)

    def existing_context(self, limit: int = EXISTING_CONTEXT_NODES) -> Optional[str]:
        """Heaviest known entities, as a hint to the extractor."""
        nodes = sorted(self.store.nodes(), key=lambda n: n.weight, reverse=True)[:limit]
        if not nodes:
            return None
        return "\n".join(f"- {n.label} ({n.type})" for n in nodes)

    # ══════════════════════════════════════════════════════════════════
    # Maintenance
    # ══════════════════════════════════════════════════════════════════

    def decay_graph(self, now: Optional[datetime] = None) -> Dict[str, int]:
        """Node decay, edge decay and orphan pruning; saves if anything changed."""
        decay_cfg = self.config.decay
        with self.store.lock:
            edges_before = self.store.edge_count
            nodes_removed = self.store.decay_nodes(
                decay_cfg.node_stale_days,
                min_weight=decay_cfg.node_min_weight,
                verified_min_weight=decay_cfg.verified_min_weight,
                now=now,
            )
            self.store.decay(decay_cfg.edge_stale_days, now=now)
            self.store.prune_orphans()
            edges_removed = edges_before - self.store.edge_count

        if nodes_removed or edges_removed:
            logger.info(f"[Service] Graph decay: pruned {nodes_removed} nodes, {edges_removed} edges")
            self.save()
        return {"nodes_removed": nodes_removed, "edges_removed": edges_removed}

    async def cleanup(self, advisor: Optional[Advisor] = None) -> CleanupResult:
        """Advisor-driven signal/noise pass; a no-op without an advisor."""
        advisor = advisor or self.advisor
        if advisor is None:
            return CleanupResult()
        result = await run_cleanup(self.store, advisor)
        if result.nodes_removed or result.merged:
            self.save()
        return result

    async def consolidate(self) -> Dict[str, Any]:
        """One consolidation pass: decay, type merging, cleanup, persist."""
        started = time.monotonic()
        summary: Dict[str, Any] = {"decay": self.decay_graph()}
        if self.registry is not None:
            summary["types"] = self.registry.merge_similar_types()
            self.registry.persist()
        if self.advisor is not None:
            summary["cleanup"] = (await self.cleanup()).to_dict()
        self.save()
        logger.info(f"[Service] Consolidation finished in {time.monotonic() - started:.2f}s")
        return summary

    def schedule_consolidation(self) -> bool:
        """Queue a coalesced consolidation run when an event loop is running."""
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            return False
        return self.scheduler.schedule()

    def reset(self) -> None:
        with self.store.lock:
            self.store.reset()
            self.tracker.reset()
        self.save()

    # ══════════════════════════════════════════════════════════════════
    # Persistence
    # ══════════════════════════════════════════════════════════════════

    def save(self) -> bool:
        if self.snapshot_store is None:
            return False
        return self.snapshot_store.save(self.store.to_snapshot())

    def load(self) -> bool:
        if self.snapshot_store is None:
            return False
        snapshot = self.snapshot_store.load()
        if snapshot is None:
            return False
        try:
            self.store.load_snapshot(snapshot)
        except (KeyError, TypeError, ValueError, ContextGraphError) as e:
            logger.error(f"[Service] Snapshot at {self.snapshot_store.path} could not be applied: {e}")
            return False
        return True

    # ══════════════════════════════════════════════════════════════════
    # Reads
    # ══════════════════════════════════════════════════════════════════

    def analytics(self, subject: Optional[str] = None) -> GraphReport:
        return self.graph_analytics.build_report(subject)

    def get_stats(self) -> Dict[str, Any]:
        stats = self.store.get_stats()
        stats["pending_edges"] = len(self.tracker.pending)
        if self.registry is not None:
            stats["types"] = self.registry.get_stats()
        return stats

    def get_graph_data(self) -> Dict[str, List[Dict[str, Any]]]:
        return get_graph_data(self.store)

    def get_node_detail(self, node_id: str) -> Optional[Dict[str, Any]]:
        return get_node_detail(self.store, node_id)

    def get_edge_detail(self, source_id: str, target_id: str) -> Optional[Dict[str, Any]]:
        return get_edge_detail(self.store, source_id, target_id)

    def get_node_label(self, node_id: str) -> Optional[str]:
        node = self.store.get_node(node_id)
        return node.label if node else None
