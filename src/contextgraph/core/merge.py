"""
Merge Engine
============
Applies a whole extraction batch to the graph store and reports what
changed as a ``GraphDiff``.

Nodes are matched against the store (id, then same-type label match,
then same-type containment with high edit similarity) and merged field by
field. Edges refer to their endpoints by label or id; references are
resolved through the batch itself first, then the store. Edges whose
endpoints cannot be found are dropped.

Merging the same batch twice leaves node and edge counts unchanged.
"""

from __future__ import annotations

import copy
from typing import Any, Dict, Optional

from loguru import logger

from .graph_store import GraphStore
from .models import BatchEdge, Edge, ExtractionBatch, GraphDiff, Node, utcnow
from .normalize import generate_edge_id, normalize, similarity_ratio
from .resolver import word_contains


class MergeEngine:
    """Batch merge of extraction results into a ``GraphStore``."""

    def __init__(self, store: GraphStore, config: Optional[Any] = None):
        self._store = store
        self._similarity_threshold = getattr(config, "similarity_threshold", 0.7)

    def merge(self, batch: ExtractionBatch) -> GraphDiff:
        """
        Merge ``batch`` into the store.

        Args:
            batch: Parsed extraction result.

        Returns:
            GraphDiff with added/modified nodes and edges and the number of
            edges dropped for unresolvable endpoints.
        """
        diff = GraphDiff()
        aliases: Dict[str, str] = {}

        with self._store.lock:
            for incoming in batch.nodes:
                existing = self.find_similar_node(incoming)
                if existing is not None:
                    before = copy.deepcopy(existing)
                    merged = self.merge_nodes(existing, incoming)
                    self._store.replace_node(merged)
                    diff.modified_nodes.append((before, copy.deepcopy(merged)))
                    resolved_id = existing.id
                else:
                    self._store.add_node(incoming)
                    diff.added_nodes.append(copy.deepcopy(incoming))
                    resolved_id = incoming.id
                aliases[incoming.id] = resolved_id
                aliases[incoming.label.lower().strip()] = resolved_id

            for batch_edge in batch.edges:
                source_id = self._resolve_ref(batch_edge.source_ref, aliases)
                target_id = self._resolve_ref(batch_edge.target_ref, aliases)
                if source_id is None or target_id is None or source_id == target_id:
                    logger.warning(
                        f"[MergeEngine] Could not resolve edge: "
                        f"{batch_edge.source_ref} -> {batch_edge.target_ref}"
                    )
                    diff.dropped_edges += 1
                    continue

                incoming_edge = self._build_edge(batch_edge, source_id, target_id)
                existing_edge = self._store.get_edge(incoming_edge.id)
                if existing_edge is not None:
                    before_edge = copy.deepcopy(existing_edge)
                    merged_edge = self.merge_edges(existing_edge, incoming_edge)
                    self._store.put_edge(merged_edge)
                    diff.modified_edges.append((before_edge, copy.deepcopy(merged_edge)))
                else:
                    self._store.put_edge(incoming_edge)
                    diff.added_edges.append(copy.deepcopy(incoming_edge))

        logger.info(f"[MergeEngine] Merged batch: {diff.summary()}")
        return diff

    # ------------------------------------------------------------------ #
    #  Matching                                                          #
    # ------------------------------------------------------------------ #

    def find_similar_node(self, node: Node) -> Optional[Node]:
        """Existing node that most likely denotes the same entity as ``node``."""
        found = self._store.get_node(node.id)
        if found is not None:
            return found

        wanted = normalize(node.label)
        if not wanted:
            return None
        for existing in self._store.nodes():
            if existing.type != node.type:
                continue
            label = normalize(existing.label)
            if label == wanted:
                return existing
            longer, shorter = (label, wanted) if len(label) >= len(wanted) else (wanted, label)
            if word_contains(longer, shorter):
                if similarity_ratio(label, wanted) > self._similarity_threshold:
                    return existing
        return None

    def _resolve_ref(self, ref: str, aliases: Dict[str, str]) -> Optional[str]:
        if not ref:
            return None
        if ref in aliases:
            return aliases[ref]
        lowered = ref.lower().strip()
        if lowered in aliases:
            return aliases[lowered]
        if self._store.has_node(ref):
            return ref
        node = self._store.find_node_by_label(ref)
        return node.id if node else None

    # ------------------------------------------------------------------ #
    #  Field merges                                                      #
    # ------------------------------------------------------------------ #

    @staticmethod
    def merge_nodes(existing: Node, incoming: Node) -> Node:
        merged = copy.deepcopy(existing)
        merged.attributes = {**existing.attributes, **incoming.attributes}
        merged.confidence = _weighted_confidence(existing, incoming)
        merged.sources = list(existing.sources) + list(incoming.sources)
        merged.first_seen = min(existing.first_seen, incoming.first_seen)
        merged.last_seen = utcnow()
        merged.salience = max(existing.salience, incoming.salience)
        merged.verified = existing.verified or incoming.verified
        return merged

    @staticmethod
    def merge_edges(existing: Edge, incoming: Edge) -> Edge:
        merged = copy.deepcopy(existing)
        merged.weight = max(existing.weight, incoming.weight)
        merged.confidence = (existing.confidence + incoming.confidence) / 2
        merged.evidence = list(dict.fromkeys(list(existing.evidence) + list(incoming.evidence)))
        merged.sources = list(existing.sources) + list(incoming.sources)
        return merged

    @staticmethod
    def _build_edge(batch_edge: BatchEdge, source_id: str, target_id: str) -> Edge:
        return Edge(
            id=generate_edge_id(source_id, batch_edge.type, target_id),
            source=source_id,
            target=target_id,
            weight=batch_edge.weight,
            relation=batch_edge.type,
            directed=True,
            evidence=list(batch_edge.evidence),
            confidence=batch_edge.confidence,
            sources=list(batch_edge.sources),
        )


def _weighted_confidence(existing: Node, incoming: Node) -> float:
    existing_weight = len(existing.sources)
    incoming_weight = len(incoming.sources)
    total = existing_weight + incoming_weight
    if total == 0:
        return (existing.confidence + incoming.confidence) / 2
    return (existing.confidence * existing_weight + incoming.confidence * incoming_weight) / total
