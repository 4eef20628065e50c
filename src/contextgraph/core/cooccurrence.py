"""
Co-occurrence Tracker
=====================
Turns "these two entities showed up in the same context at about the same
time" into structural edges, without promoting one-off coincidences.

A bounded ring remembers the most recent (entity, context key, time)
observations. When a new observation shares its context key with a ring
entry for a different entity inside the time window, the pair is counted:

    existing edge           -> strengthened by 1 immediately
    no edge, count < 2      -> kept as a PendingEdge
    no edge, count >= 2     -> promoted to a real edge (weight = count)

Pending pairs that have not been bumped for 24 hours are forgotten on the
next call.
"""

from __future__ import annotations

import re
from collections import deque
from datetime import datetime, timedelta
from typing import Any, Deque, Dict, List, NamedTuple, Optional

from loguru import logger

from .graph_store import GraphStore
from .models import PendingEdge, utcnow
from .normalize import pair_key

_AI_MARKER = re.compile(r"\bai:", re.IGNORECASE)
_TIMESTAMP_MARKER = re.compile(r"timestamp:\d+", re.IGNORECASE)
_WHITESPACE = re.compile(r"\s+")


class RingEntry(NamedTuple):
    entity_id: str
    key: str
    timestamp: datetime


def context_key(hint: str, max_length: int = 100) -> str:
    """Stable key for a context hint: markers stripped, whitespace collapsed, lowercased."""
    text = _AI_MARKER.sub("", hint or "")
    text = _TIMESTAMP_MARKER.sub("", text)
    text = _WHITESPACE.sub(" ", text).strip().lower()
    return text[:max_length]


class CooccurrenceTracker:
    """Promotes repeated same-context sightings into graph edges."""

    def __init__(self, store: GraphStore, config: Optional[Any] = None):
        """
        Args:
            store: Graph store that receives promoted edges.
            config: CooccurrenceConfig (ring_capacity, window_seconds,
                promotion_threshold, pending_ttl_hours, min_hint_length,
                max_key_length).
        """
        self._store = store
        self._ring: Deque[RingEntry] = deque(maxlen=getattr(config, "ring_capacity", 50))
        self._pending: Dict[str, PendingEdge] = {}
        self._window = timedelta(seconds=getattr(config, "window_seconds", 30.0))
        self._threshold = getattr(config, "promotion_threshold", 2)
        self._pending_ttl = timedelta(hours=getattr(config, "pending_ttl_hours", 24.0))
        self._min_hint_length = getattr(config, "min_hint_length", 6)
        self._max_key_length = getattr(config, "max_key_length", 100)

    @property
    def pending(self) -> Dict[str, PendingEdge]:
        return dict(self._pending)

    @property
    def ring_size(self) -> int:
        return len(self._ring)

    def observe(
        self,
        entity_id: str,
        context_hint: Optional[str],
        timestamp: Optional[datetime] = None,
    ) -> List[str]:
        """
        Record one sighting and update pair counts.

        Hints shorter than the minimum length are ignored entirely.

        Returns:
            Keys of edges that were created or strengthened.
        """
        now = timestamp or utcnow()
        with self._store.lock:
            self._expire_pending(now)
            if not context_hint or len(context_hint) < self._min_hint_length:
                return []

            key = context_key(context_hint, self._max_key_length)
            if not key:
                return []

            matched: List[str] = []
            for entry in self._ring:
                if entry.entity_id == entity_id or entry.key != key:
                    continue
                if abs(now - entry.timestamp) > self._window:
                    continue
                if entry.entity_id not in matched:
                    matched.append(entry.entity_id)

            touched: List[str] = []
            for other_id in matched:
                edge_key = self._bump(entity_id, other_id, now)
                if edge_key is not None:
                    touched.append(edge_key)

            self._ring.append(RingEntry(entity_id, key, now))
            return touched

    def reset(self) -> None:
        with self._store.lock:
            self._ring.clear()
            self._pending.clear()

    # ------------------------------------------------------------------ #
    #  Internals                                                         #
    # ------------------------------------------------------------------ #

    def _bump(self, a: str, b: str, now: datetime) -> Optional[str]:
        key = pair_key(a, b)
        if self._store.find_edge(a, b) is not None:
            self._pending.pop(key, None)
            edge = self._store.upsert_edge(a, b, weight_delta=1)
            return edge.id if edge else None

        pending = self._pending.setdefault(key, PendingEdge(count=0, last_seen=now))
        pending.count += 1
        pending.last_seen = now
        if pending.count >= self._threshold:
            edge = self._store.upsert_edge(a, b, weight_delta=pending.count)
            del self._pending[key]
            if edge is None:
                return None
            logger.debug(f"[Cooccurrence] Promoted {key} (weight={edge.weight})")
            return edge.id
        return None

    def _expire_pending(self, now: datetime) -> None:
        cutoff = now - self._pending_ttl
        stale = [k for k, p in self._pending.items() if p.last_seen < cutoff]
        for k in stale:
            del self._pending[k]
        if stale:
            logger.trace(f"[Cooccurrence] Expired {len(stale)} pending pairs")
