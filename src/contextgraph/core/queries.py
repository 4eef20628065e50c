"""
Graph Queries
=============
Presentation-oriented views over the store: a pruned, scored subgraph for
rendering plus per-node and per-edge detail.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from .graph_store import GraphStore
from .models import Node, utcnow
from .normalize import normalize

MAX_SCORED_NODES = 120
MIN_EDGE_WEIGHT = 2
MAX_CANDIDATE_EDGES = 250
MAX_CONNECTED_NODES = 80
MAX_FALLBACK_NODES = 30
MAX_EDGES = 200
MAX_CONNECTIONS = 20
VERIFIED_MULTIPLIER = 3


def recency_boost(last_seen: datetime, now: Optional[datetime] = None) -> float:
    hours = ((now or utcnow()) - last_seen).total_seconds() / 3600
    if hours < 1:
        return 2.0
    if hours < 24:
        return 1.5
    if hours < 168:
        return 1.2
    return 1.0


def node_score(node: Node, now: Optional[datetime] = None) -> float:
    """weight x (3 if verified) x context diversity x recency."""
    return (
        node.weight
        * (VERIFIED_MULTIPLIER if node.verified else 1)
        * max(1, len(node.contexts))
        * recency_boost(node.last_seen, now)
    )


def get_graph_data(store: GraphStore, now: Optional[datetime] = None) -> Dict[str, List[Dict[str, Any]]]:
    """
    The most relevant part of the graph, bounded for display.

    Nodes are ranked by ``node_score``; only edges of weight >= 2 between
    ranked nodes are considered, and nodes without such an edge are hidden
    unless nothing is connected at all.
    """
    current = now or utcnow()
    nodes_by_id, edges = store.snapshot()

    scored = sorted(nodes_by_id.values(), key=lambda n: node_score(n, current), reverse=True)
    scored = scored[:MAX_SCORED_NODES]
    kept_ids = {n.id for n in scored}

    candidate_edges = [
        e for e in edges
        if e.source in kept_ids and e.target in kept_ids
        and e.source != e.target and e.weight >= MIN_EDGE_WEIGHT
    ]
    candidate_edges.sort(key=lambda e: e.weight, reverse=True)
    candidate_edges = candidate_edges[:MAX_CANDIDATE_EDGES]

    connected = {e.source for e in candidate_edges} | {e.target for e in candidate_edges}
    if connected:
        nodes = [n for n in scored if n.id in connected][:MAX_CONNECTED_NODES]
    else:
        nodes = scored[:MAX_FALLBACK_NODES]
    kept_ids = {n.id for n in nodes}
    final_edges = [e for e in candidate_edges if e.source in kept_ids and e.target in kept_ids][:MAX_EDGES]

    node_rows = []
    for node in nodes:
        row = node.to_dict()
        row["mentions"] = node.weight
        row["context_diversity"] = len(node.contexts) or 1
        row["score"] = node_score(node, current)
        node_rows.append(row)

    edge_rows = []
    for edge in final_edges:
        source, target = nodes_by_id[edge.source], nodes_by_id[edge.target]
        if normalize(source.label) == normalize(target.label):
            continue
        row = edge.to_dict()
        row.update({
            "source_label": source.label,
            "target_label": target.label,
            "source_type": source.type,
            "target_type": target.type,
        })
        edge_rows.append(row)

    return {"nodes": node_rows, "edges": edge_rows}


def get_node_detail(store: GraphStore, node_id: str) -> Optional[Dict[str, Any]]:
    """A node with its 20 strongest connections, or None if unknown."""
    with store.lock:
        node = store.get_node(node_id)
        if node is None:
            return None
        edges = sorted(store.edges_of(node_id), key=lambda e: e.weight, reverse=True)[:MAX_CONNECTIONS]
        connections = []
        for edge in edges:
            other_id = edge.other(node_id)
            other = store.get_node(other_id)
            connections.append({
                "id": other_id,
                "label": other.label if other else other_id,
                "type": other.type if other else "topic",
                "co_occurrences": edge.weight,
                "relation": edge.relation,
            })
        detail = node.to_dict()
    detail["mentions"] = detail["weight"]
    detail["connections"] = connections
    return detail


def get_edge_detail(store: GraphStore, source_id: str, target_id: str) -> Optional[Dict[str, Any]]:
    """
    The edge between two nodes, with endpoint summaries. The co-occurrence
    edge wins; otherwise the heaviest typed edge joining them.
    """
    with store.lock:
        edge = store.find_edge(source_id, target_id)
        if edge is None:
            joining = [e for e in store.edges_of(source_id) if e.other(source_id) == target_id]
            if not joining:
                return None
            edge = max(joining, key=lambda e: e.weight)
        endpoints = {}
        for role, node_id in (("source", source_id), ("target", target_id)):
            node = store.get_node(node_id)
            endpoints[role] = {
                "id": node_id,
                "label": node.label if node else None,
                "type": node.type if node else None,
            }
        return {
            **endpoints,
            "weight": edge.weight,
            "relation": edge.relation,
        }
