"""
Canonical Resolver
==================
Maps a freshly observed (label, type) onto an existing node that most
likely denotes the same real-world entity.

The heuristic is greedy and order-dependent: whichever entity was inserted
first becomes canonical for later aliases ("Chris" absorbs "Chris Li").
Exact and same-type matches are strongly preferred over fuzzy cross-type
guesses.

Dedup groups:
    person                                   -> person only
    app                                      -> app only
    place, topic, project, content, goal     -> shared pool
    anything else                            -> its own type only

Scoring (highest wins, ties keep the earliest node):
    exact (``_`` treated as space):  1000*[same type] + weight
    containment:                     1000*[same type] + 10*len(candidate) + weight

Public API:
    resolver = CanonicalResolver()
    resolver.is_rejected("untitled")            -> True
    resolver.resolve(nodes, "Chris Li", "person") -> "person_ab12cd34" | None
"""

from __future__ import annotations

import re
from typing import Dict, FrozenSet, Iterable, Optional, Tuple

from loguru import logger

from .models import Node
from .normalize import normalize

STOP_LABELS: FrozenSet[str] = frozenset({
    "",
    "the",
    "and",
    "for",
    "with",
    "from",
    "that",
    "this",
    "you",
    "your",
    "http",
    "https",
    "www",
    "com",
    "org",
    "net",
    "html",
    "undefined",
    "null",
    "new",
    "tab",
    "untitled",
    "loading",
    "about:blank",
    "aboutblank",
    "unknown",
})

DEDUP_GROUPS: Tuple[FrozenSet[str], ...] = (
    frozenset({"person"}),
    frozenset({"app"}),
    frozenset({"place", "topic", "project", "content", "goal"}),
)

SAME_TYPE_BONUS = 1000
CONTAINMENT_LENGTH_FACTOR = 10
MIN_RAW_SUBSTRING_LENGTH = 4

_FILE_EXTENSION = re.compile(r"\.[A-Za-z][A-Za-z0-9]{1,3}$")


def dedup_group(node_type: str) -> FrozenSet[str]:
    for group in DEDUP_GROUPS:
        if node_type in group:
            return group
    return frozenset({node_type})


def word_contains(longer: str, shorter: str) -> bool:
    """``shorter`` is a prefix of ``longer`` or appears in it as whole words."""
    if not shorter:
        return False
    if longer.startswith(shorter):
        return True
    return re.search(rf"(?<!\w){re.escape(shorter)}(?!\w)", longer) is not None


def _contains(longer: str, shorter: str) -> bool:
    if word_contains(longer, shorter):
        return True
    return len(shorter) >= MIN_RAW_SUBSTRING_LENGTH and shorter in longer


class CanonicalResolver:
    """Greedy similarity search over the existing node set."""

    def __init__(self, min_label_length: int = 2, stop_labels: Optional[Iterable[str]] = None):
        self._min_label_length = min_label_length
        self._stop_labels = frozenset(stop_labels) if stop_labels is not None else STOP_LABELS

    # ── Rejection ─────────────────────────────────────────────────────

    def is_rejected(self, label: str) -> bool:
        """True for stop-words, too-short labels and path-like strings."""
        raw = (label or "").strip()
        if "/" in raw or "\\" in raw:
            return True
        if _FILE_EXTENSION.search(raw):
            return True
        normalized = normalize(raw)
        if len(normalized) < self._min_label_length:
            return True
        return normalized in self._stop_labels or raw.lower() in self._stop_labels

    # ── Resolution ────────────────────────────────────────────────────

    def score(self, candidate: Node, query: str, node_type: str) -> int:
        """Score one candidate against a normalized query; 0 means no match."""
        type_bonus = SAME_TYPE_BONUS if candidate.type == node_type else 0
        existing = normalize(candidate.label)

        if existing.replace("_", " ") == query.replace("_", " "):
            return type_bonus + candidate.weight

        longer, shorter = (existing, query) if len(existing) >= len(query) else (query, existing)
        if _contains(longer, shorter):
            return type_bonus + CONTAINMENT_LENGTH_FACTOR * len(existing) + candidate.weight
        return 0

    def resolve(
        self,
        existing_nodes: Dict[str, Node],
        label: str,
        node_type: str,
    ) -> Optional[str]:
        """
        Find the canonical node id for ``label``/``node_type``.

        Args:
            existing_nodes: Current node map (id -> Node), in insertion order.
            label: Raw observed label.
            node_type: Observed type.

        Returns:
            Id of the best-scoring candidate, or None when the label is
            rejected or nothing in its dedup group matches.
        """
        if self.is_rejected(label):
            return None
        query = normalize(label)
        group = dedup_group(node_type)

        best_id: Optional[str] = None
        best_score = 0
        for node_id, node in existing_nodes.items():
            if node.type not in group:
                continue
            score = self.score(node, query, node_type)
            if score > best_score:
                best_id, best_score = node_id, score

        if best_id is not None:
            logger.trace(f"[Resolver] '{label}' ({node_type}) -> {best_id} (score={best_score})")
        return best_id
