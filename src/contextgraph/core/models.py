"""
Context Graph Data Models
=========================
Nodes, edges and the derived records produced by merging and analytics.

Node:  one canonical real-world entity (id derived from type + label).
Edge:  weighted relationship. Structural co-occurrence edges are undirected
       and keyed by the sorted endpoint pair; semantic edges asserted by an
       extraction batch are directed and keyed by a content hash.

All timestamps are timezone-aware UTC datetimes and serialize as ISO-8601.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Deque, Dict, List, Optional, Tuple

DEFAULT_CONTEXT_CAPACITY = 10


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_datetime(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, str) and value:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    if isinstance(value, (int, float)):
        # Epoch milliseconds, as written by older snapshots.
        return datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)
    return utcnow()


# ═══════════════════════════════════════════════════════════════════════
# Provenance
# ═══════════════════════════════════════════════════════════════════════

@dataclass
class Source:
    """Where an observation came from (conversation, file, browser, ...)."""
    kind: str = "inference"
    id: str = ""
    timestamp: datetime = field(default_factory=utcnow)
    snippet: Optional[str] = None

    def to_dict(self) -> dict:
        d = {
            "kind": self.kind,
            "id": self.id,
            "timestamp": self.timestamp.isoformat(),
        }
        if self.snippet is not None:
            d["snippet"] = self.snippet
        return d

    @classmethod
    def from_dict(cls, d: dict) -> "Source":
        return cls(
            kind=d.get("kind") or d.get("type") or "inference",
            id=str(d.get("id", "")),
            timestamp=parse_datetime(d.get("timestamp")),
            snippet=d.get("snippet"),
        )


# ═══════════════════════════════════════════════════════════════════════
# Node / Edge
# ═══════════════════════════════════════════════════════════════════════

@dataclass
class Node:
    """
    A canonical entity in the graph.

    Fields:
        id: Deterministic id from (type, normalized label).
        label: Display string with original casing.
        type: Registered or seed category ("person", "topic", ...).
        weight: Reinforcement counter, incremented per repeated observation.
        first_seen / last_seen: Observation window.
        contexts: Most recent source contexts, bounded (oldest dropped).
        confidence: Extraction confidence in [0, 1].
        salience: Importance seed in [0, 1].
        sources: Provenance records.
        attributes: Free-form key/value details from extraction.
        verified: Confirmed as meaningful by cleanup or a high-confidence
            extraction; verified nodes decay more slowly.
    """
    id: str
    label: str
    type: str
    weight: int = 1
    first_seen: datetime = field(default_factory=utcnow)
    last_seen: datetime = field(default_factory=utcnow)
    contexts: Deque[str] = field(
        default_factory=lambda: deque(maxlen=DEFAULT_CONTEXT_CAPACITY)
    )
    confidence: float = 0.5
    salience: float = 0.5
    sources: List[Source] = field(default_factory=list)
    attributes: Dict[str, Any] = field(default_factory=dict)
    verified: bool = False

    def __post_init__(self) -> None:
        if not isinstance(self.contexts, deque):
            self.contexts = deque(self.contexts, maxlen=DEFAULT_CONTEXT_CAPACITY)

    def add_context(self, context: str) -> None:
        """Make ``context`` the newest entry; the deque drops the oldest."""
        if not context:
            return
        if context in self.contexts:
            self.contexts.remove(context)
        self.contexts.append(context)

    def touch(self, when: Optional[datetime] = None) -> None:
        self.last_seen = when or utcnow()
        if self.first_seen > self.last_seen:
            self.first_seen = self.last_seen

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "label": self.label,
            "type": self.type,
            "weight": self.weight,
            "first_seen": self.first_seen.isoformat(),
            "last_seen": self.last_seen.isoformat(),
            "contexts": list(self.contexts),
            "confidence": self.confidence,
            "salience": self.salience,
            "sources": [s.to_dict() for s in self.sources],
            "attributes": self.attributes,
            "verified": self.verified,
        }

    @classmethod
    def from_dict(cls, d: dict, context_capacity: int = DEFAULT_CONTEXT_CAPACITY) -> "Node":
        node = cls(
            id=d["id"],
            label=d.get("label", ""),
            type=d.get("type", "topic"),
            weight=max(1, int(d.get("weight", 1))),
            first_seen=parse_datetime(d.get("first_seen") or d.get("firstSeen")),
            last_seen=parse_datetime(d.get("last_seen") or d.get("lastSeen")),
            contexts=deque(d.get("contexts") or [], maxlen=context_capacity),
            confidence=float(d.get("confidence", 0.5)),
            salience=float(d.get("salience", 0.5)),
            sources=[Source.from_dict(s) for s in d.get("sources") or []],
            attributes=dict(d.get("attributes") or {}),
            verified=bool(d.get("verified", False)),
        )
        if node.first_seen > node.last_seen:
            node.first_seen = node.last_seen
        return node


@dataclass
class Edge:
    """
    A weighted relationship between two existing nodes.

    Undirected edges store ``source``/``target`` in sorted order so that a
    pair maps to one key regardless of observation order. ``relation`` is
    only present for semantically asserted edges.
    """
    id: str
    source: str
    target: str
    weight: float = 1
    relation: Optional[str] = None
    directed: bool = False
    evidence: List[str] = field(default_factory=list)
    confidence: float = 0.5
    sources: List[Source] = field(default_factory=list)

    @property
    def endpoints(self) -> Tuple[str, str]:
        return (self.source, self.target)

    def touches(self, node_id: str) -> bool:
        return self.source == node_id or self.target == node_id

    def other(self, node_id: str) -> str:
        return self.target if self.source == node_id else self.source

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "source": self.source,
            "target": self.target,
            "weight": self.weight,
            "relation": self.relation,
            "directed": self.directed,
            "evidence": self.evidence,
            "confidence": self.confidence,
            "sources": [s.to_dict() for s in self.sources],
        }

    @classmethod
    def from_dict(cls, d: dict) -> "Edge":
        return cls(
            id=d.get("id") or d.get("key") or "",
            source=d["source"],
            target=d["target"],
            weight=d.get("weight", 1),
            relation=d.get("relation") or d.get("type"),
            directed=bool(d.get("directed", False)),
            evidence=list(d.get("evidence") or []),
            confidence=float(d.get("confidence", 0.5)),
            sources=[Source.from_dict(s) for s in d.get("sources") or []],
        )


@dataclass
class PendingEdge:
    """An unconfirmed co-occurrence pair awaiting promotion."""
    count: int = 0
    last_seen: datetime = field(default_factory=utcnow)


# ═══════════════════════════════════════════════════════════════════════
# Batch Merge Records
# ═══════════════════════════════════════════════════════════════════════

@dataclass
class BatchEdge:
    """
    An edge as asserted by extraction: endpoints are label (or id)
    references that the merge engine resolves against the graph.
    """
    source_ref: str
    target_ref: str
    type: str = "related_to"
    weight: float = 0.5
    confidence: float = 0.5
    evidence: List[str] = field(default_factory=list)
    sources: List[Source] = field(default_factory=list)


@dataclass
class ExtractionBatch:
    """One extraction result ready for merging."""
    nodes: List[Node] = field(default_factory=list)
    edges: List[BatchEdge] = field(default_factory=list)
    insights: List[str] = field(default_factory=list)
    new_node_types: List[str] = field(default_factory=list)
    new_edge_types: List[str] = field(default_factory=list)

    @property
    def confidence(self) -> float:
        """Mean of node and edge confidence averages (0 when empty)."""
        if not self.nodes:
            return 0.0
        node_avg = sum(n.confidence for n in self.nodes) / len(self.nodes)
        edge_avg = (
            sum(e.confidence for e in self.edges) / len(self.edges) if self.edges else 0.0
        )
        return (node_avg + edge_avg) / 2


@dataclass
class GraphDiff:
    """What a merge changed."""
    added_nodes: List[Node] = field(default_factory=list)
    removed_nodes: List[Node] = field(default_factory=list)
    modified_nodes: List[Tuple[Node, Node]] = field(default_factory=list)
    added_edges: List[Edge] = field(default_factory=list)
    removed_edges: List[Edge] = field(default_factory=list)
    modified_edges: List[Tuple[Edge, Edge]] = field(default_factory=list)
    dropped_edges: int = 0

    @property
    def is_empty(self) -> bool:
        return not (
            self.added_nodes or self.removed_nodes or self.modified_nodes
            or self.added_edges or self.removed_edges or self.modified_edges
        )

    def summary(self) -> Dict[str, int]:
        return {
            "added_nodes": len(self.added_nodes),
            "removed_nodes": len(self.removed_nodes),
            "modified_nodes": len(self.modified_nodes),
            "added_edges": len(self.added_edges),
            "removed_edges": len(self.removed_edges),
            "modified_edges": len(self.modified_edges),
            "dropped_edges": self.dropped_edges,
        }


# ═══════════════════════════════════════════════════════════════════════
# Analytics Records
# ═══════════════════════════════════════════════════════════════════════

@dataclass
class Cluster:
    id: str
    label: str
    node_ids: List[str]
    coherence: float
    themes: List[str]

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "label": self.label,
            "node_ids": self.node_ids,
            "coherence": self.coherence,
            "themes": self.themes,
        }


@dataclass
class Contradiction:
    node_a: str
    node_b: str
    description: str
    resolution: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "node_a": self.node_a,
            "node_b": self.node_b,
            "description": self.description,
            "resolution": self.resolution,
        }


@dataclass
class Gap:
    area: str
    description: str
    suggested_questions: List[str]

    def to_dict(self) -> dict:
        return {
            "area": self.area,
            "description": self.description,
            "suggested_questions": self.suggested_questions,
        }
