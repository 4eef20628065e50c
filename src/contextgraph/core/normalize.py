"""
Label Normalization and Identifiers
===================================
Pure string helpers shared by every component that compares or keys
entities.

Public API:
    normalize("@Chris  Li!")          -> "chris li"
    normalize_type_name("TV Show")    -> "tv_show"
    similarity_ratio("chris", "chris li")
    generate_id("person", "Chris")    -> "person_<8 hex>"
    generate_edge_id(src, "knows", dst) -> "edge_<8 hex>"
    pair_key(a, b)                    -> order-independent key for a pair
"""

from __future__ import annotations

import hashlib
import re
from typing import Tuple

_DISALLOWED = re.compile(r"[^\w\s@#-]")
_WHITESPACE = re.compile(r"\s+")
_ID_SLUG = re.compile(r"[^a-z0-9]")

PAIR_SEPARATOR = "↔"


def normalize(label: str) -> str:
    """
    Canonical comparison token for a raw label.

    Lowercases, trims, strips a single leading ``@``, removes characters
    outside word/space/``@``/``#``/``-`` and collapses whitespace.
    Idempotent: ``normalize(normalize(x)) == normalize(x)``.
    """
    text = (label or "").lower().strip()
    # Loop so that "@@x" and "@ x" reach a fixed point in one call.
    while text.startswith("@"):
        text = text[1:].lstrip()
    text = _DISALLOWED.sub("", text)
    text = _WHITESPACE.sub(" ", text).strip()
    while text.startswith("@"):
        text = text[1:].lstrip()
    return text


def normalize_type_name(name: str) -> str:
    """Lowercase, underscore-separated type id (``"TV-Show"`` -> ``"tv_show"``)."""
    text = (name or "").lower().strip()
    text = re.sub(r"[\s-]+", "_", text)
    text = re.sub(r"[^a-z0-9_]", "", text)
    text = re.sub(r"_+", "_", text)
    return text.strip("_")


def levenshtein_distance(a: str, b: str) -> int:
    """Classic edit distance with a rolling row."""
    if a == b:
        return 0
    if not a:
        return len(b)
    if not b:
        return len(a)
    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, 1):
        current = [i]
        for j, cb in enumerate(b, 1):
            cost = 0 if ca == cb else 1
            current.append(min(
                previous[j] + 1,
                current[j - 1] + 1,
                previous[j - 1] + cost,
            ))
        previous = current
    return previous[-1]


def similarity_ratio(a: str, b: str) -> float:
    """``(len(longer) - distance) / len(longer)``; 1.0 for two empty strings."""
    longer, shorter = (a, b) if len(a) > len(b) else (b, a)
    if not longer:
        return 1.0
    return (len(longer) - levenshtein_distance(longer, shorter)) / len(longer)


def _short_md5(text: str) -> str:
    return hashlib.md5(text.encode("utf-8")).hexdigest()[:8]


def generate_id(node_type: str, label: str) -> str:
    """Deterministic node id from (type, label)."""
    slug = _ID_SLUG.sub("_", normalize(label))
    return f"{node_type}_{_short_md5(f'{node_type}:{slug}')}"


def generate_edge_id(source_id: str, edge_type: str, target_id: str) -> str:
    """Content-derived id for a directed, typed edge."""
    return f"edge_{_short_md5(f'{source_id}:{edge_type}:{target_id}')}"


def ordered_pair(a: str, b: str) -> Tuple[str, str]:
    return (a, b) if a <= b else (b, a)


def pair_key(a: str, b: str) -> str:
    """Key for an undirected pair; identical for (a, b) and (b, a)."""
    first, second = ordered_pair(a, b)
    return f"{first}{PAIR_SEPARATOR}{second}"
