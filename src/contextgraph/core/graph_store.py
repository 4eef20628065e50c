"""
Graph Store
===========
The single owner of the node and edge sets. Every other component (the
co-occurrence tracker, the merge engine, cleanup, queries) goes through
this API; nothing outside holds references into the internal maps.

Architecture
~~~~~~~~~~~~
::

    ┌──────────────────────────────────────────────────────────────┐
    │                         GraphStore                           │
    │                                                              │
    │   _nodes: id -> Node          _edges: key -> Edge            │
    │   _adjacency: id -> {edge keys}                              │
    │                                                              │
    │   streaming:  upsert_node ─▶ CanonicalResolver               │
    │               upsert_edge   (undirected, pair-keyed)         │
    │   batch:      add_node / replace_node / put_edge             │
    │   upkeep:     decay / decay_nodes / prune_orphans /          │
    │               merge_nodes / remove_node / reset              │
    │   reads:      get_* / nodes() / edges() / snapshot()         │
    └──────────────────────────────────────────────────────────────┘

Thread-safety: a single writer at a time. All mutations and reads hold a
``threading.RLock``; read helpers hand out copies so analytics can run on
a snapshot outside the lock.
"""

from __future__ import annotations

import copy
import threading
from collections import defaultdict, deque
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Set, Tuple

from loguru import logger

from .exceptions import NodeNotFoundError
from .models import Edge, Node, utcnow
from .normalize import generate_edge_id, generate_id, normalize, ordered_pair, pair_key
from .resolver import CanonicalResolver

SNAPSHOT_VERSION = "1.0"


class GraphStore:
    """
    Deduplicated, weighted, decaying entity graph.

    Thread-safety: All mutations protected by ``threading.RLock``.
    """

    def __init__(
        self,
        config: Optional[Any] = None,
        resolver: Optional[CanonicalResolver] = None,
    ):
        """
        Args:
            config: GraphConfig. Attributes used:
                - context_capacity (int, default 10)
                - min_label_length (int, default 2)
            resolver: Canonical resolver; one is built from config if omitted.
        """
        self._lock = threading.RLock()
        self._nodes: Dict[str, Node] = {}
        self._edges: Dict[str, Edge] = {}
        self._adjacency: Dict[str, Set[str]] = defaultdict(set)

        self._context_capacity = getattr(config, "context_capacity", 10)
        self._resolver = resolver or CanonicalResolver(
            min_label_length=getattr(config, "min_label_length", 2)
        )

    @property
    def lock(self) -> threading.RLock:
        return self._lock

    @property
    def resolver(self) -> CanonicalResolver:
        return self._resolver

    # ══════════════════════════════════════════════════════════════════
    # Streaming Writes
    # ══════════════════════════════════════════════════════════════════

    def upsert_node(
        self,
        label: str,
        node_type: str,
        context: Optional[str] = None,
        when: Optional[datetime] = None,
    ) -> Optional[str]:
        """
        Record one observation of an entity.

        Resolves the canonical node first; on a hit the node's weight is
        incremented, ``last_seen`` refreshed and ``context`` appended to its
        bounded context list. On a miss a new node with weight 1 is created.

        Returns:
            The canonical node id, or None if the label was rejected
            (stop-word, too short, path-like).
        """
        now = when or utcnow()
        with self._lock:
            if self._resolver.is_rejected(label):
                logger.trace(f"[GraphStore] Rejected label '{label}'")
                return None

            node_id = self._resolver.resolve(self._nodes, label, node_type)
            if node_id is not None:
                node = self._nodes[node_id]
                node.weight += 1
                node.touch(now)
                if context:
                    node.add_context(context)
                return node_id

            node_id = generate_id(node_type, label)
            existing = self._nodes.get(node_id)
            if existing is not None:
                # Same id from a label the resolver's group rules kept apart.
                existing.weight += 1
                existing.touch(now)
                if context:
                    existing.add_context(context)
                return node_id

            node = Node(
                id=node_id,
                label=label.strip(),
                type=node_type,
                weight=1,
                first_seen=now,
                last_seen=now,
                contexts=deque(maxlen=self._context_capacity),
            )
            if context:
                node.add_context(context)
            self._nodes[node_id] = node
            logger.debug(f"[GraphStore] New node '{node.label}' ({node_type}) -> {node_id}")
            return node_id

    def upsert_edge(
        self,
        a: str,
        b: str,
        weight_delta: float = 1,
        relation: Optional[str] = None,
    ) -> Optional[Edge]:
        """
        Create or strengthen the undirected edge between two existing nodes.

        Endpoints are stored in sorted order. A ``relation`` label is set if
        given (an asserted relation upgrades a plain co-occurrence edge).

        Returns:
            The edge, or None if ``a == b`` or an endpoint does not exist.
        """
        if a == b:
            return None
        with self._lock:
            if a not in self._nodes or b not in self._nodes:
                return None
            key = pair_key(a, b)
            edge = self._edges.get(key)
            if edge is not None:
                edge.weight += weight_delta
                if relation:
                    edge.relation = relation
                return edge
            source, target = ordered_pair(a, b)
            edge = Edge(
                id=key,
                source=source,
                target=target,
                weight=weight_delta,
                relation=relation,
            )
            self._index_edge(edge)
            return edge

    # ══════════════════════════════════════════════════════════════════
    # Batch Writes (used by MergeEngine)
    # ══════════════════════════════════════════════════════════════════

    def add_node(self, node: Node) -> str:
        """Insert a fully built node, replacing any node with the same id."""
        with self._lock:
            if not isinstance(node.contexts, deque) or node.contexts.maxlen != self._context_capacity:
                node.contexts = deque(node.contexts, maxlen=self._context_capacity)
            self._nodes[node.id] = node
            return node.id

    def replace_node(self, node: Node) -> None:
        """Swap in an updated version of an existing node (same id)."""
        with self._lock:
            if node.id not in self._nodes:
                raise NodeNotFoundError(node.id)
            self.add_node(node)

    def put_edge(self, edge: Edge) -> bool:
        """Insert or replace an edge by id. Rejects self-loops and dangling edges."""
        if edge.source == edge.target:
            return False
        with self._lock:
            if edge.source not in self._nodes or edge.target not in self._nodes:
                return False
            old = self._edges.get(edge.id)
            if old is not None:
                self._unindex_edge(edge.id)
            self._index_edge(edge)
            return True

    # ══════════════════════════════════════════════════════════════════
    # Reads
    # ══════════════════════════════════════════════════════════════════

    def get_node(self, node_id: str) -> Optional[Node]:
        with self._lock:
            return self._nodes.get(node_id)

    def has_node(self, node_id: str) -> bool:
        with self._lock:
            return node_id in self._nodes

    def get_edge(self, edge_id: str) -> Optional[Edge]:
        with self._lock:
            return self._edges.get(edge_id)

    def find_edge(self, a: str, b: str) -> Optional[Edge]:
        """The undirected edge between ``a`` and ``b``, if any."""
        with self._lock:
            return self._edges.get(pair_key(a, b))

    def find_node_by_label(self, label: str, node_type: Optional[str] = None) -> Optional[Node]:
        """First node whose trimmed, lowercased label equals ``label``'s."""
        wanted = (label or "").lower().strip()
        with self._lock:
            for node in self._nodes.values():
                if node_type is not None and node.type != node_type:
                    continue
                if node.label.lower().strip() == wanted:
                    return node
        return None

    def find_node_by_normalized(self, label: str) -> Optional[Node]:
        """Heaviest node of any type whose normalized label equals ``label``'s."""
        wanted = normalize(label)
        best: Optional[Node] = None
        with self._lock:
            for node in self._nodes.values():
                if normalize(node.label) == wanted and (best is None or node.weight > best.weight):
                    best = node
        return best

    def nodes(self) -> List[Node]:
        with self._lock:
            return list(self._nodes.values())

    def edges(self) -> List[Edge]:
        with self._lock:
            return list(self._edges.values())

    def edges_of(self, node_id: str) -> List[Edge]:
        with self._lock:
            return [self._edges[k] for k in self._adjacency.get(node_id, ()) if k in self._edges]

    def neighbors(self, node_id: str) -> List[str]:
        with self._lock:
            return [e.other(node_id) for e in self.edges_of(node_id)]

    @property
    def node_count(self) -> int:
        with self._lock:
            return len(self._nodes)

    @property
    def edge_count(self) -> int:
        with self._lock:
            return len(self._edges)

    def snapshot(self) -> Tuple[Dict[str, Node], List[Edge]]:
        """Deep copy of the current graph, safe to analyse without the lock."""
        with self._lock:
            return copy.deepcopy(self._nodes), copy.deepcopy(list(self._edges.values()))

    # ══════════════════════════════════════════════════════════════════
    # Maintenance
    # ══════════════════════════════════════════════════════════════════

    def prune_orphans(self) -> int:
        """Remove edges with a missing endpoint or equal endpoints."""
        with self._lock:
            doomed = [
                key for key, edge in self._edges.items()
                if edge.source == edge.target
                or edge.source not in self._nodes
                or edge.target not in self._nodes
            ]
            for key in doomed:
                self._unindex_edge(key)
        if doomed:
            logger.debug(f"[GraphStore] Pruned {len(doomed)} orphaned edges")
        return len(doomed)

    def decay(self, cutoff_days: float, now: Optional[datetime] = None) -> int:
        """
        Remove weak edges whose endpoints have both gone quiet.

        An edge is a candidate when it has no relation and weight <= 2, or a
        relation and weight <= 1. It is removed only if neither endpoint has
        been seen since ``now - cutoff_days``; one live endpoint keeps it.

        Returns:
            Number of edges removed.
        """
        cutoff = (now or utcnow()) - timedelta(days=cutoff_days)
        with self._lock:
            doomed: List[str] = []
            for key, edge in self._edges.items():
                weak = edge.weight <= 1 if edge.relation else edge.weight <= 2
                if not weak:
                    continue
                if self._seen_since(edge.source, cutoff) or self._seen_since(edge.target, cutoff):
                    continue
                doomed.append(key)
            for key in doomed:
                self._unindex_edge(key)
        if doomed:
            logger.info(f"[GraphStore] Edge decay removed {len(doomed)} edges (cutoff {cutoff_days}d)")
        return len(doomed)

    def decay_nodes(
        self,
        stale_days: float,
        min_weight: int = 2,
        verified_min_weight: int = 1,
        now: Optional[datetime] = None,
    ) -> int:
        """
        Remove light nodes not seen since the cutoff, then prune orphans.

        Unverified nodes need ``min_weight`` to survive, verified ones only
        ``verified_min_weight``.
        """
        cutoff = (now or utcnow()) - timedelta(days=stale_days)
        with self._lock:
            doomed = [
                node_id for node_id, node in self._nodes.items()
                if node.last_seen < cutoff
                and node.weight < (verified_min_weight if node.verified else min_weight)
            ]
            for node_id in doomed:
                del self._nodes[node_id]
            self.prune_orphans()
        if doomed:
            logger.info(f"[GraphStore] Node decay removed {len(doomed)} nodes (cutoff {stale_days}d)")
        return len(doomed)

    def remove_node(self, node_id: str) -> bool:
        """Remove a node and every edge touching it."""
        with self._lock:
            if node_id not in self._nodes:
                return False
            for key in list(self._adjacency.get(node_id, ())):
                self._unindex_edge(key)
            self._adjacency.pop(node_id, None)
            del self._nodes[node_id]
        return True

    def merge_nodes(self, target_id: str, source_id: str) -> bool:
        """
        Fold ``source_id`` into ``target_id`` and delete the source.

        Weights are summed, contexts unioned (bounded), the observation
        window widened, and every edge of the source re-pointed at the
        target. Re-pointed edges that collide with an existing edge add
        their weight to it; edges that would become self-loops are dropped.
        """
        if target_id == source_id:
            return False
        with self._lock:
            target = self._nodes.get(target_id)
            source = self._nodes.get(source_id)
            if target is None or source is None:
                return False

            target.weight += source.weight
            for context in source.contexts:
                target.add_context(context)
            target.first_seen = min(target.first_seen, source.first_seen)
            target.last_seen = max(target.last_seen, source.last_seen)
            target.sources.extend(source.sources)
            target.salience = max(target.salience, source.salience)
            target.verified = target.verified or source.verified

            for key in list(self._adjacency.get(source_id, ())):
                edge = self._edges.get(key)
                if edge is None:
                    continue
                self._unindex_edge(key)
                other = edge.other(source_id)
                if other == target_id:
                    continue
                if edge.directed:
                    moved = copy.copy(edge)
                    if edge.source == source_id:
                        moved.source = target_id
                    else:
                        moved.target = target_id
                    moved.id = generate_edge_id(moved.source, moved.relation or "", moved.target)
                    existing = self._edges.get(moved.id)
                    if existing is not None:
                        existing.weight += moved.weight
                        existing.evidence = list(dict.fromkeys(list(existing.evidence) + list(moved.evidence)))
                        existing.sources.extend(moved.sources)
                    else:
                        self._index_edge(moved)
                    continue
                new_key = pair_key(target_id, other)
                existing = self._edges.get(new_key)
                if existing is not None:
                    existing.weight += edge.weight
                    if edge.relation and not existing.relation:
                        existing.relation = edge.relation
                else:
                    first, second = ordered_pair(target_id, other)
                    moved = copy.copy(edge)
                    moved.id, moved.source, moved.target = new_key, first, second
                    self._index_edge(moved)

            self._adjacency.pop(source_id, None)
            del self._nodes[source_id]
        logger.debug(f"[GraphStore] Merged '{source.label}' into '{target.label}'")
        return True

    def reset(self) -> None:
        """Drop every node, edge and index entry."""
        with self._lock:
            self._nodes.clear()
            self._edges.clear()
            self._adjacency.clear()
        logger.info("[GraphStore] Graph reset")

    # ══════════════════════════════════════════════════════════════════
    # Statistics
    # ══════════════════════════════════════════════════════════════════

    def get_stats(self) -> Dict[str, Any]:
        """Node/edge counts, overall and by type."""
        with self._lock:
            nodes_by_type: Dict[str, int] = defaultdict(int)
            for node in self._nodes.values():
                nodes_by_type[node.type] += 1
            edges_by_type: Dict[str, int] = defaultdict(int)
            for edge in self._edges.values():
                edges_by_type[edge.relation or "co_occurrence"] += 1
            return {
                "node_count": len(self._nodes),
                "edge_count": len(self._edges),
                "verified_nodes": sum(1 for n in self._nodes.values() if n.verified),
                "nodes_by_type": dict(nodes_by_type),
                "edges_by_type": dict(edges_by_type),
            }

    # ══════════════════════════════════════════════════════════════════
    # Snapshot (de)serialization
    # ══════════════════════════════════════════════════════════════════

    def to_snapshot(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "version": SNAPSHOT_VERSION,
                "nodes": [n.to_dict() for n in self._nodes.values()],
                "edges": [e.to_dict() for e in self._edges.values()],
            }

    def load_snapshot(self, data: Dict[str, Any]) -> None:
        """
        Replace the graph with a snapshot's contents.

        Edges without an id are keyed by their endpoint pair; dangling
        edges are dropped.
        """
        nodes = [Node.from_dict(nd, self._context_capacity) for nd in data.get("nodes", [])]
        edges = [Edge.from_dict(ed) for ed in data.get("edges", [])]
        with self._lock:
            self.reset()
            for node in nodes:
                self._nodes[node.id] = node
            for edge in edges:
                if not edge.id:
                    edge.id = pair_key(edge.source, edge.target)
                if not edge.directed:
                    edge.source, edge.target = ordered_pair(edge.source, edge.target)
                self._index_edge(edge)
            self.prune_orphans()
        logger.info(
            f"[GraphStore] Loaded snapshot: {len(self._nodes)} nodes, {len(self._edges)} edges"
        )

    # ══════════════════════════════════════════════════════════════════
    # Internal Helpers
    # ══════════════════════════════════════════════════════════════════

    def _seen_since(self, node_id: str, cutoff: datetime) -> bool:
        node = self._nodes.get(node_id)
        return node is not None and node.last_seen >= cutoff

    def _index_edge(self, edge: Edge) -> None:
        """Store an edge and register it in both endpoints' adjacency (must hold lock)."""
        self._edges[edge.id] = edge
        self._adjacency[edge.source].add(edge.id)
        self._adjacency[edge.target].add(edge.id)

    def _unindex_edge(self, key: str) -> None:
        """Drop an edge and its adjacency entries (must hold lock)."""
        edge = self._edges.pop(key, None)
        if edge is None:
            return
        for endpoint in (edge.source, edge.target):
            keys = self._adjacency.get(endpoint)
            if keys is not None:
                keys.discard(key)
                if not keys:
                    self._adjacency.pop(endpoint, None)
