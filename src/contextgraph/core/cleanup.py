"""
Advisor-driven Graph Cleanup
============================
Asks an external advisor (an LLM) to sort the heaviest unverified nodes
into signal and noise, then applies its plan:

    keep    -> node marked verified
    remove  -> node and its edges deleted
    merge   -> duplicates folded into one node (edges transferred,
               weights summed), target marked verified

Public API:
    result = await run_cleanup(store, advisor)
    result.nodes_removed, result.edges_removed, result.merged
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional

from loguru import logger

from .exceptions import ContextGraphError, ValidationError
from .graph_store import GraphStore
from .models import Node

MAX_CANDIDATES = 50
CONTEXTS_SHOWN = 3

CLEANUP_PROMPT = """You classify entities from a personal computer activity graph as SIGNAL or NOISE.

SIGNAL = personally meaningful entities that a user would recognize and care about:
- Real people they know (names, usernames)
- Specific projects they're working on
- Topics they're genuinely interested in (not just browsed once)
- Places meaningful to them
- Goals or plans
- Specific content they engaged with deeply

NOISE = artifacts that shouldn't be in a personal knowledge graph:
- UI elements, generic words ("loading", "untitled", "page 1")
- System/app names when not relevant
- Partial words, typos, OCR errors
- Generic roles ("user", "admin", "guest")
- Navigation elements
- Duplicate entities (same thing with different casing/spelling)
- Overly broad topics ("technology", "internet", "news")

Return JSON:
{
  "keep": ["entity_id", ...],
  "remove": ["entity_id", ...],
  "merge": [{"into": "entity_id", "from": ["entity_id", ...]}]
}

Rules:
- Be AGGRESSIVE about removing noise - when in doubt, remove
- For merge: combine duplicates, keeping the more descriptive label
- If an entity appears in only 1 context with low weight, it's probably noise"""

_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")

Advisor = Callable[[str], Awaitable[str]]


@dataclass
class CleanupResult:
    nodes_removed: int = 0
    edges_removed: int = 0
    merged: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {
            "nodes_removed": self.nodes_removed,
            "edges_removed": self.edges_removed,
            "merged": self.merged,
        }


def select_candidates(store: GraphStore, limit: int = MAX_CANDIDATES) -> List[Node]:
    """Heaviest unverified, non-app nodes."""
    nodes = [n for n in store.nodes() if not n.verified and n.type != "app"]
    nodes.sort(key=lambda n: n.weight, reverse=True)
    return nodes[:limit]


def format_candidates(nodes: List[Node]) -> str:
    return "\n".join(
        f'{n.id} | "{n.label}" | {n.type} | weight:{n.weight} | '
        f"contexts:[{','.join(list(n.contexts)[-CONTEXTS_SHOWN:])}]"
        for n in nodes
    )


def parse_cleanup_plan(text: str) -> Dict[str, Any]:
    """
    Extract the ``{keep, remove, merge}`` object from an advisor answer.

    Raises:
        ValidationError: If no JSON object is found or its fields have the
            wrong shape.
    """
    match = _JSON_OBJECT.search(text or "")
    if not match:
        raise ValidationError("cleanup_plan", "no JSON object in advisor response", (text or "")[:200])
    try:
        plan = json.loads(match.group(0))
    except ValueError as e:
        raise ValidationError("cleanup_plan", f"invalid JSON: {e}", match.group(0)[:200])
    if not isinstance(plan, dict):
        raise ValidationError("cleanup_plan", "expected a JSON object", plan)

    for key in ("keep", "remove"):
        value = plan.get(key) or []
        if not isinstance(value, list):
            raise ValidationError(f"cleanup_plan.{key}", "must be a list", value)
        plan[key] = [str(v) for v in value]

    merges = plan.get("merge") or []
    if not isinstance(merges, list):
        raise ValidationError("cleanup_plan.merge", "must be a list", merges)
    cleaned = []
    for entry in merges:
        if not isinstance(entry, dict) or not entry.get("into") or not isinstance(entry.get("from"), list):
            raise ValidationError("cleanup_plan.merge", "entries need 'into' and a 'from' list", entry)
        cleaned.append({"into": str(entry["into"]), "from": [str(v) for v in entry["from"]]})
    plan["merge"] = cleaned
    return plan


def apply_cleanup_plan(store: GraphStore, plan: Dict[str, Any]) -> CleanupResult:
    """Apply removals, then verifications, then merges, then prune orphans."""
    with store.lock:
        nodes_before = store.node_count
        edges_before = store.edge_count
        merged = 0

        for node_id in plan.get("remove") or []:
            store.remove_node(node_id)

        for node_id in plan.get("keep") or []:
            node = store.get_node(node_id)
            if node is not None:
                node.verified = True

        for entry in plan.get("merge") or []:
            target = store.get_node(entry["into"])
            if target is None:
                continue
            for source_id in entry["from"]:
                if store.merge_nodes(target.id, source_id):
                    merged += 1
            target.verified = True

        store.prune_orphans()
        result = CleanupResult(
            nodes_removed=nodes_before - store.node_count,
            edges_removed=edges_before - store.edge_count,
            merged=merged,
        )

    if result.nodes_removed or result.merged:
        logger.info(
            f"[Cleanup] Removed {result.nodes_removed} nodes, merged {result.merged}. "
            f"Stats: {store.get_stats()}"
        )
    return result


async def run_cleanup(store: GraphStore, advisor: Advisor, limit: int = MAX_CANDIDATES) -> CleanupResult:
    """
    One cleanup round. Advisor or plan failures are logged and produce an
    empty result; the graph is left untouched in that case.
    """
    candidates = select_candidates(store, limit)
    if not candidates:
        return CleanupResult()

    prompt = f"{CLEANUP_PROMPT}\n\n{format_candidates(candidates)}"
    try:
        response = await advisor(prompt)
    except Exception as e:
        logger.error(f"[Cleanup] Advisor call failed: {e}")
        return CleanupResult()

    try:
        plan = parse_cleanup_plan(response)
    except ContextGraphError as e:
        logger.error(f"[Cleanup] Unusable cleanup plan: {e}")
        return CleanupResult()
    return apply_cleanup_plan(store, plan)
