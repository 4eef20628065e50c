"""
Graph Analytics
===============
Read-only analysis over a snapshot of the graph: clusters, central
nodes, contradictions and knowledge gaps.

All computations work on a deep copy taken under the store lock, so
ingestion can continue while a report is built.

Public API:
    analytics = GraphAnalytics(store)
    analytics.find_clusters()           -> List[Cluster]
    analytics.find_central_nodes(10)    -> List[str]
    analytics.find_contradictions()     -> List[Contradiction]
    analytics.find_gaps()               -> List[Gap]
    analytics.build_report()            -> GraphReport
"""

from __future__ import annotations

from collections import Counter, deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Set, Tuple

import numpy as np
from loguru import logger

from .graph_store import GraphStore
from .models import Cluster, Contradiction, Edge, Gap, Node, utcnow

REPORT_VERSION = "1.0.0"

# (type, suggested questions) checked by find_gaps, in report order.
IMPORTANT_TYPES: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    ("goal", ("What are their long-term goals?", "What do they want to achieve?")),
    ("belief", ("What do they believe in?", "What are their core values?")),
    ("skill", ("What skills do they have?", "What are they good at?")),
    ("interest", ("What are they interested in?", "What do they enjoy?")),
    ("person", ("Who are the important people in their life?", "Who do they work with?")),
)


@dataclass
class GraphReport:
    """Everything analytics knows about the graph at one point in time."""
    generated_at: datetime
    stats: Dict[str, Any]
    clusters: List[Cluster] = field(default_factory=list)
    central_nodes: List[str] = field(default_factory=list)
    contradictions: List[Contradiction] = field(default_factory=list)
    gaps: List[Gap] = field(default_factory=list)
    subject: Optional[str] = None
    version: str = REPORT_VERSION

    def to_dict(self) -> dict:
        return {
            "version": self.version,
            "subject": self.subject,
            "generated_at": self.generated_at.isoformat(),
            "stats": self.stats,
            "clusters": [c.to_dict() for c in self.clusters],
            "central_nodes": self.central_nodes,
            "contradictions": [c.to_dict() for c in self.contradictions],
            "gaps": [g.to_dict() for g in self.gaps],
        }


class GraphAnalytics:
    """Derived views over a ``GraphStore`` snapshot."""

    def __init__(self, store: GraphStore, config: Optional[Any] = None):
        self._store = store
        self._iterations = getattr(config, "pagerank_iterations", 20)
        self._damping = getattr(config, "damping_factor", 0.85)
        self._top_central = getattr(config, "top_central_nodes", 10)
        self._limited_threshold = getattr(config, "limited_gap_threshold", 3)
        self._max_isolated = getattr(config, "max_isolated_questions", 5)

    def _snapshot(self) -> Tuple[Dict[str, Node], List[Edge]]:
        nodes, edges = self._store.snapshot()
        edges = [e for e in edges if e.source in nodes and e.target in nodes]
        return nodes, edges

    # ══════════════════════════════════════════════════════════════════
    # Clusters
    # ══════════════════════════════════════════════════════════════════

    def find_clusters(self) -> List[Cluster]:
        """Connected components, largest first."""
        nodes, edges = self._snapshot()
        adjacency: Dict[str, Set[str]] = {node_id: set() for node_id in nodes}
        for edge in edges:
            adjacency[edge.source].add(edge.target)
            adjacency[edge.target].add(edge.source)

        clusters: List[Cluster] = []
        visited: Set[str] = set()
        for start in nodes:
            if start in visited:
                continue
            component: List[str] = []
            queue = deque([start])
            while queue:
                current = queue.popleft()
                if current in visited:
                    continue
                visited.add(current)
                component.append(current)
                queue.extend(n for n in adjacency[current] if n not in visited)

            members = [nodes[node_id] for node_id in component]
            clusters.append(Cluster(
                id=f"cluster_{len(clusters)}",
                label=self._cluster_label(members),
                node_ids=component,
                coherence=self._coherence(component, edges),
                themes=self._themes(members),
            ))

        clusters.sort(key=lambda c: len(c.node_ids), reverse=True)
        return clusters

    @staticmethod
    def _cluster_label(members: List[Node]) -> str:
        if not members:
            return "Unknown Cluster"
        return max(members, key=lambda n: n.salience).label

    @staticmethod
    def _coherence(node_ids: List[str], edges: List[Edge]) -> float:
        n = len(node_ids)
        if n <= 1:
            return 1.0
        members = set(node_ids)
        internal = sum(1 for e in edges if e.source in members and e.target in members)
        return internal / (n * (n - 1) / 2)

    @staticmethod
    def _themes(members: List[Node]) -> List[str]:
        return [node_type for node_type, _ in Counter(n.type for n in members).most_common(3)]

    # ══════════════════════════════════════════════════════════════════
    # Centrality
    # ══════════════════════════════════════════════════════════════════

    def pagerank(self) -> Dict[str, float]:
        """
        Salience-weighted PageRank scores.

        Each iteration computes ``((1 - d) / N + d * M @ s) * (1 + salience)``
        where ``M[i, j]`` is the number of j -> i edges divided by j's
        out-degree. Scores are not renormalized between iterations.
        """
        nodes, edges = self._snapshot()
        ids = list(nodes)
        n = len(ids)
        if n == 0:
            return {}
        index = {node_id: i for i, node_id in enumerate(ids)}

        transition = np.zeros((n, n), dtype=float)
        out_degree = np.zeros(n, dtype=float)
        for edge in edges:
            src, dst = index[edge.source], index[edge.target]
            transition[dst, src] += 1.0
            out_degree[src] += 1.0
        nonzero = out_degree > 0
        transition[:, nonzero] /= out_degree[nonzero]

        salience_boost = 1.0 + np.array([nodes[i].salience for i in ids], dtype=float)
        scores = np.full(n, 1.0 / n)
        for _ in range(self._iterations):
            scores = ((1.0 - self._damping) / n + self._damping * transition @ scores) * salience_boost

        return {node_id: float(scores[index[node_id]]) for node_id in ids}

    def find_central_nodes(self, top_n: Optional[int] = None) -> List[str]:
        """Ids of the ``top_n`` highest PageRank nodes; ties keep insertion order."""
        limit = self._top_central if top_n is None else top_n
        scores = self.pagerank()
        ranked = sorted(scores.items(), key=lambda item: -item[1])
        return [node_id for node_id, _ in ranked[:limit]]

    # ══════════════════════════════════════════════════════════════════
    # Contradictions
    # ══════════════════════════════════════════════════════════════════

    def find_contradictions(self) -> List[Contradiction]:
        """
        Pairs of edges from the same source that pull in opposite directions:
        ``prefers`` vs ``avoids``, or ``believes`` (in a belief node) vs ``avoids``.
        """
        nodes, edges = self._snapshot()
        found: List[Contradiction] = []
        for i, first in enumerate(edges):
            for second in edges[i + 1:]:
                if first.source != second.source:
                    continue
                for positive, negative in ((first, second), (second, first)):
                    if not self._conflicts(positive, negative, nodes):
                        continue
                    pos_node = nodes[positive.target]
                    neg_node = nodes[negative.target]
                    found.append(Contradiction(
                        node_a=positive.target,
                        node_b=negative.target,
                        description=(
                            f'Potentially conflicting: {positive.relation} '
                            f'"{pos_node.label}" but avoids "{neg_node.label}"'
                        ),
                    ))
        return found

    @staticmethod
    def _conflicts(positive: Edge, negative: Edge, nodes: Dict[str, Node]) -> bool:
        if negative.relation != "avoids":
            return False
        if positive.relation == "prefers":
            return True
        return positive.relation == "believes" and nodes[positive.target].type == "belief"

    # ══════════════════════════════════════════════════════════════════
    # Gaps
    # ══════════════════════════════════════════════════════════════════

    def find_gaps(self) -> List[Gap]:
        """Under-represented categories plus isolated nodes."""
        nodes, edges = self._snapshot()
        by_type = Counter(n.type for n in nodes.values())

        gaps: List[Gap] = []
        for node_type, questions in IMPORTANT_TYPES:
            count = by_type.get(node_type, 0)
            if count == 0:
                gaps.append(Gap(
                    area=node_type,
                    description=f"No {node_type} nodes found",
                    suggested_questions=list(questions),
                ))
            elif count < self._limited_threshold:
                gaps.append(Gap(
                    area=node_type,
                    description=f"Limited information about {node_type}s (only {count} found)",
                    suggested_questions=list(questions),
                ))

        connected: Set[str] = set()
        for edge in edges:
            connected.add(edge.source)
            connected.add(edge.target)
        isolated = [n for n in nodes.values() if n.id not in connected]
        if isolated:
            gaps.append(Gap(
                area="connections",
                description=f"{len(isolated)} nodes have no connections",
                suggested_questions=[
                    f'How does "{n.label}" relate to other aspects of their life?'
                    for n in isolated[: self._max_isolated]
                ],
            ))
        return gaps

    # ══════════════════════════════════════════════════════════════════
    # Report
    # ══════════════════════════════════════════════════════════════════

    def build_report(self, subject: Optional[str] = None) -> GraphReport:
        report = GraphReport(
            generated_at=utcnow(),
            stats=self._store.get_stats(),
            clusters=self.find_clusters(),
            central_nodes=self.find_central_nodes(),
            contradictions=self.find_contradictions(),
            gaps=self.find_gaps(),
            subject=subject,
        )
        logger.debug(
            f"[Analytics] Report: {len(report.clusters)} clusters, "
            f"{len(report.contradictions)} contradictions, {len(report.gaps)} gaps"
        )
        return report
