"""
Type Registry
=============
Open, persistent table of node and edge types.

Types are not a closed enum: extraction may propose new ones, which are
matched against the existing table first (id, alias, then fuzzy name
similarity) and only registered when nothing fits. Over time near-duplicate
types are folded together, either locally by name similarity or by an
external advisor (an LLM) that returns a merge plan.

The table is seeded with a small fixed vocabulary and persisted as JSON:

    {
      "version": "1.0.0",
      "last_updated": "...",
      "node_types": {"person": {...}, ...},
      "edge_types": {"knows": {...}, ...}
    }

Public API:
    registry = TypeRegistry("data/type-registry.json")
    registry.resolve_or_propose("Persons")    -> TypeResolution("person", False, ...)
    registry.register_node_type(TypeProposal(id="tv_show", ...))
    registry.record_usage("person")
    await registry.consolidate(advisor)       # advisor(prompt) -> JSON text
    registry.persist()                         # only writes when dirty
"""

from __future__ import annotations

import json
import os
import re
import tempfile
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, NamedTuple, Optional, Union

from loguru import logger

from .exceptions import ConsolidationError, ValidationError
from .models import parse_datetime, utcnow
from .normalize import normalize_type_name, similarity_ratio

REGISTRY_VERSION = "1.0.0"
SIMILARITY_THRESHOLD = 0.85
MAX_EXAMPLES = 10
RECENT_WINDOW = timedelta(days=7)

NODE_CATEGORIES = ("entity", "concept", "activity", "artifact", "attribute", "temporal")
DIRECTIONALITIES = ("directed", "bidirectional")

_FENCED_JSON = re.compile(r"```(?:json)?\s*([\s\S]*?)```")

Advisor = Callable[[str], Awaitable[str]]


def are_types_similar(a: str, b: str) -> bool:
    """
    True if two type names most likely mean the same thing.

    Checks, after normalization: equality, a trailing plural ``s``, equality
    with underscores removed, and an edit-similarity ratio above 0.85.
    """
    norm_a = normalize_type_name(a)
    norm_b = normalize_type_name(b)
    if not norm_a or not norm_b:
        return False
    if norm_a == norm_b:
        return True
    if norm_a + "s" == norm_b or norm_a == norm_b + "s":
        return True
    if norm_a.replace("_", "") == norm_b.replace("_", ""):
        return True
    return similarity_ratio(norm_a, norm_b) > SIMILARITY_THRESHOLD


def extract_json_text(text: str) -> str:
    """Strip a markdown code fence around a JSON payload, if present."""
    match = _FENCED_JSON.search(text or "")
    return (match.group(1) if match else (text or "")).strip()


# ═══════════════════════════════════════════════════════════════════════
# Type Definitions
# ═══════════════════════════════════════════════════════════════════════

@dataclass
class TypeDefinition:
    id: str
    label: str
    description: str
    category: str = "entity"
    examples: List[str] = field(default_factory=list)
    aliases: List[str] = field(default_factory=list)
    usage_count: int = 0
    created_at: datetime = field(default_factory=utcnow)
    parent_type: Optional[str] = None
    builtin: bool = False

    def matches(self, normalized: str) -> bool:
        return self.id == normalized or normalized in (normalize_type_name(a) for a in self.aliases)

    def to_dict(self) -> dict:
        d = {
            "id": self.id,
            "label": self.label,
            "description": self.description,
            "category": self.category,
            "examples": self.examples,
            "aliases": self.aliases,
            "usage_count": self.usage_count,
            "created_at": self.created_at.isoformat(),
            "builtin": self.builtin,
        }
        if self.parent_type:
            d["parent_type"] = self.parent_type
        return d

    @classmethod
    def from_dict(cls, d: dict) -> "TypeDefinition":
        return cls(
            id=d["id"],
            label=d.get("label", d["id"]),
            description=d.get("description", ""),
            category=d.get("category", "entity"),
            examples=list(d.get("examples") or []),
            aliases=list(d.get("aliases") or []),
            usage_count=int(d.get("usage_count", d.get("usageCount", 0))),
            created_at=parse_datetime(d.get("created_at") or d.get("createdAt")),
            parent_type=d.get("parent_type") or d.get("parentType"),
            builtin=bool(d.get("builtin", d.get("isBuiltin", False))),
        )


@dataclass
class EdgeTypeDefinition(TypeDefinition):
    category: str = "relational"
    directionality: str = "directed"
    inverse_type: Optional[str] = None

    def to_dict(self) -> dict:
        d = super().to_dict()
        d["directionality"] = self.directionality
        if self.inverse_type:
            d["inverse_type"] = self.inverse_type
        return d

    @classmethod
    def from_dict(cls, d: dict) -> "EdgeTypeDefinition":
        base = TypeDefinition.from_dict(d)
        return cls(
            id=base.id,
            label=base.label,
            description=base.description,
            category="relational",
            examples=base.examples,
            aliases=base.aliases,
            usage_count=base.usage_count,
            created_at=base.created_at,
            parent_type=base.parent_type,
            builtin=base.builtin,
            directionality=d.get("directionality", "directed"),
            inverse_type=d.get("inverse_type") or d.get("inverseType"),
        )


@dataclass
class TypeProposal:
    """A new type suggested by extraction or the CLI."""
    id: str
    label: str
    description: str
    category: str = "entity"
    examples: List[str] = field(default_factory=list)
    parent_type: Optional[str] = None
    directionality: str = "directed"
    inverse_type: Optional[str] = None


class TypeResolution(NamedTuple):
    id: str
    is_new: bool
    existing: Optional[TypeDefinition] = None


# ═══════════════════════════════════════════════════════════════════════
# Seed Vocabulary
# ═══════════════════════════════════════════════════════════════════════

def _seed_node_types() -> List[TypeDefinition]:
    seeds = [
        ("person", "Person", "A human individual", "entity",
         ["Chris", "Benjamin Xu", "Katie"], ["human", "individual", "user"]),
        ("project", "Project", "Something being built or worked on", "artifact",
         ["nyu-swipes", "context-graph", "hofhacks"], ["app", "application", "repo"]),
        ("topic", "Topic", "A subject of discussion or interest", "concept",
         ["basketball", "API integration", "NFL"], ["subject", "theme"]),
        ("media", "Media", "TV shows, movies, books, podcasts, etc.", "artifact",
         ["The Bear", "Breaking Bad"], ["content", "show", "tv_show", "movie", "book"]),
        ("event", "Event", "A specific occurrence or gathering", "temporal",
         ["poker game", "hackathon", "meeting"], ["gathering", "occurrence"]),
        ("place", "Place", "A physical or virtual location", "entity",
         ["Korean restaurant", "NYU", "Discord server"], ["location", "venue"]),
        ("organization", "Organization", "A company, school, team, or group", "entity",
         ["NYU", "OpenAI", "Stripe"], ["company", "school", "team", "group"]),
        ("goal", "Goal", "An objective or aspiration", "concept",
         ["build a startup", "learn Elixir"], ["objective", "aspiration", "target"]),
    ]
    return [
        TypeDefinition(id=i, label=l, description=d, category=c, examples=e, aliases=a, builtin=True)
        for i, l, d, c, e, a in seeds
    ]


def _seed_edge_types() -> List[EdgeTypeDefinition]:
    seeds = [
        ("knows", "Knows", "Has a relationship or acquaintance with", "bidirectional", None,
         ["Chris knows Benjamin"], ["connected_to", "friends_with"]),
        ("discussed", "Discussed", "Talked about or mentioned in conversation", "directed", None,
         ["Benjamin discussed The Bear"], ["mentioned", "talked_about", "brought_up"]),
        ("works_on", "Works On", "Actively building or contributing to", "directed", None,
         ["Chris works on nyu-swipes"], ["builds", "develops", "contributes_to"]),
        ("attended", "Attended", "Was present at an event", "directed", None,
         ["Benjamin attended poker game"], ["participated_in", "went_to", "joined"]),
        ("recommended", "Recommended", "Suggested to another person", "directed", "recommended_by",
         ["yangyang recommended The Bear"], ["suggested", "endorsed"]),
        ("part_of", "Part Of", "Belongs to or is contained within", "directed", "contains",
         ["poker game part of friend group activities"], ["belongs_to", "member_of", "included_in"]),
        ("related_to", "Related To", "Has some connection (use when relationship is unclear)",
         "bidirectional", None, ["basketball related to The Bear"], ["associated_with", "connected_to"]),
    ]
    return [
        EdgeTypeDefinition(
            id=i, label=l, description=d, directionality=dr, inverse_type=inv,
            examples=e, aliases=a, builtin=True,
        )
        for i, l, d, dr, inv, e, a in seeds
    ]


# ═══════════════════════════════════════════════════════════════════════
# Registry
# ═══════════════════════════════════════════════════════════════════════

class TypeRegistry:
    """
    Persistent dynamic type table.

    Thread-safety: All mutations protected by ``threading.RLock``.
    """

    def __init__(self, path: Optional[Union[str, Path]] = None):
        self._lock = threading.RLock()
        self._path = Path(path) if path else None
        self._dirty = False
        self.version = REGISTRY_VERSION
        self.last_updated = utcnow()
        self.node_types: Dict[str, TypeDefinition] = {}
        self.edge_types: Dict[str, EdgeTypeDefinition] = {}
        self._load_or_create()

    @property
    def dirty(self) -> bool:
        return self._dirty

    @property
    def path(self) -> Optional[Path]:
        return self._path

    # ── Lookup ────────────────────────────────────────────────────────

    def get_node_type(self, type_id: str) -> Optional[TypeDefinition]:
        """Node type by id or alias."""
        return self._lookup(self.node_types, type_id)

    def get_edge_type(self, type_id: str) -> Optional[EdgeTypeDefinition]:
        """Edge type by id or alias."""
        return self._lookup(self.edge_types, type_id)

    @staticmethod
    def _lookup(table: Dict[str, Any], type_id: str) -> Optional[Any]:
        normalized = normalize_type_name(type_id)
        if not normalized:
            return None
        if normalized in table:
            return table[normalized]
        for definition in table.values():
            if definition.matches(normalized):
                return definition
        return None

    def resolve_or_propose(self, type_name: str, is_edge: bool = False) -> TypeResolution:
        """
        Map a proposed type name onto the table.

        Returns the canonical id of an exact/alias match or a similar type,
        otherwise the normalized name flagged as new.
        """
        normalized = normalize_type_name(type_name)
        with self._lock:
            existing = self.get_edge_type(normalized) if is_edge else self.get_node_type(normalized)
            if existing is not None:
                return TypeResolution(existing.id, False, existing)

            table = self.edge_types if is_edge else self.node_types
            for definition in table.values():
                if are_types_similar(normalized, definition.id):
                    return TypeResolution(definition.id, False, definition)
                if any(are_types_similar(normalized, alias) for alias in definition.aliases):
                    return TypeResolution(definition.id, False, definition)
        return TypeResolution(normalized, True, None)

    # ── Registration ──────────────────────────────────────────────────

    def register_node_type(self, proposal: TypeProposal) -> TypeDefinition:
        """Add a node type, or bump usage of the existing one it names."""
        normalized = normalize_type_name(proposal.id)
        if not normalized:
            raise ValidationError("id", "type id is empty after normalization", proposal.id)
        with self._lock:
            existing = self.get_node_type(normalized)
            if existing is not None:
                existing.usage_count += 1
                self._dirty = True
                return existing
            definition = TypeDefinition(
                id=normalized,
                label=proposal.label or normalized,
                description=proposal.description,
                category=proposal.category if proposal.category in NODE_CATEGORIES else "entity",
                examples=list(proposal.examples)[:MAX_EXAMPLES],
                usage_count=1,
                parent_type=proposal.parent_type,
            )
            self.node_types[normalized] = definition
            self._dirty = True
        logger.info(f"[TypeRegistry] Registered new node type: {normalized} ({definition.category})")
        return definition

    def register_edge_type(self, proposal: TypeProposal) -> EdgeTypeDefinition:
        """Add an edge type, or bump usage of the existing one it names."""
        normalized = normalize_type_name(proposal.id)
        if not normalized:
            raise ValidationError("id", "type id is empty after normalization", proposal.id)
        if proposal.directionality not in DIRECTIONALITIES:
            raise ValidationError("directionality", f"must be one of {DIRECTIONALITIES}", proposal.directionality)
        with self._lock:
            existing = self.get_edge_type(normalized)
            if existing is not None:
                existing.usage_count += 1
                self._dirty = True
                return existing
            definition = EdgeTypeDefinition(
                id=normalized,
                label=proposal.label or normalized,
                description=proposal.description,
                examples=list(proposal.examples)[:MAX_EXAMPLES],
                usage_count=1,
                directionality=proposal.directionality,
                inverse_type=proposal.inverse_type,
            )
            self.edge_types[normalized] = definition
            self._dirty = True
        logger.info(f"[TypeRegistry] Registered new edge type: {normalized}")
        return definition

    def record_usage(self, type_id: str, is_edge: bool = False) -> bool:
        """Increment a type's usage counter. Unknown ids are ignored."""
        normalized = normalize_type_name(type_id)
        with self._lock:
            table = self.edge_types if is_edge else self.node_types
            definition = table.get(normalized)
            if definition is None:
                return False
            definition.usage_count += 1
            self._dirty = True
            return True

    # ── Consolidation ─────────────────────────────────────────────────

    def build_consolidation_prompt(self) -> str:
        with self._lock:
            node_lines = "\n".join(
                f"- {t.id}: {t.description} (aliases: {', '.join(t.aliases) or 'none'})"
                for t in self.node_types.values()
            )
            edge_lines = "\n".join(
                f"- {t.id}: {t.description} (aliases: {', '.join(t.aliases) or 'none'})"
                for t in self.edge_types.values()
            )
        return (
            "You are a knowledge graph schema optimizer. Given these type definitions, "
            "identify any that should be merged because they represent the same concept.\n\n"
            f"NODE TYPES:\n{node_lines}\n\n"
            f"EDGE TYPES:\n{edge_lines}\n\n"
            "For each merge, pick the most general/canonical name as the target.\n"
            "Output JSON:\n"
            "{\n"
            '  "nodeTypeMerges": [\n'
            '    { "merge": ["type_a", "type_b"], "into": "canonical_type", "reason": "..." }\n'
            "  ],\n"
            '  "edgeTypeMerges": [\n'
            '    { "merge": ["type_x", "type_y"], "into": "canonical_type", "reason": "..." }\n'
            "  ]\n"
            "}\n\n"
            "If no merges needed, return empty arrays."
        )

    async def consolidate(self, advisor: Advisor) -> Dict[str, List[Dict[str, Any]]]:
        """
        Ask ``advisor`` which types to merge and apply its plan.

        Skipped when both tables hold fewer than two types.

        Raises:
            ConsolidationError: If the advisor's answer is not a valid plan.
        """
        with self._lock:
            if len(self.node_types) < 2 and len(self.edge_types) < 2:
                return {"merged_node_types": [], "merged_edge_types": []}
            prompt = self.build_consolidation_prompt()
        response = await advisor(prompt)
        plan = self.parse_merge_plan(response)
        return self.apply_merge_plan(plan)

    @staticmethod
    def parse_merge_plan(text: Union[str, dict]) -> Dict[str, Any]:
        """Parse an advisor answer (possibly fenced JSON) into a merge plan dict."""
        if isinstance(text, dict):
            plan = text
        else:
            try:
                plan = json.loads(extract_json_text(text))
            except (TypeError, ValueError) as e:
                raise ConsolidationError(
                    f"Merge plan is not valid JSON: {e}",
                    context={"response": (text or "")[:200] if isinstance(text, str) else None},
                )
        if not isinstance(plan, dict):
            raise ConsolidationError("Merge plan must be a JSON object")
        for key in ("nodeTypeMerges", "edgeTypeMerges"):
            entries = plan.get(key) or []
            if not isinstance(entries, list):
                raise ConsolidationError(f"'{key}' must be a list")
            for entry in entries:
                if not isinstance(entry, dict) or not isinstance(entry.get("merge"), list) or not entry.get("into"):
                    raise ConsolidationError(f"Malformed entry in '{key}': {entry!r}")
        return plan

    def apply_merge_plan(self, plan: Dict[str, Any]) -> Dict[str, List[Dict[str, Any]]]:
        """Fold each listed source type into its target. Unknown ids are skipped."""
        with self._lock:
            merged_nodes = self._apply_merges(self.node_types, plan.get("nodeTypeMerges") or [], "node")
            merged_edges = self._apply_merges(self.edge_types, plan.get("edgeTypeMerges") or [], "edge")
            if merged_nodes or merged_edges:
                self._dirty = True
        return {"merged_node_types": merged_nodes, "merged_edge_types": merged_edges}

    def _apply_merges(self, table: Dict[str, Any], merges: List[dict], kind: str) -> List[Dict[str, Any]]:
        applied: List[Dict[str, Any]] = []
        for merge in merges:
            target_id = normalize_type_name(str(merge["into"]))
            target = table.get(target_id)
            if target is None:
                logger.warning(f"[TypeRegistry] Merge target '{target_id}' is not a known {kind} type")
                continue
            folded: List[str] = []
            for source_name in merge["merge"]:
                source_id = normalize_type_name(str(source_name))
                if source_id == target_id or source_id not in table:
                    continue
                self._fold(target, table.pop(source_id))
                folded.append(source_id)
                logger.info(f"[TypeRegistry] Merged {kind} type '{source_id}' into '{target_id}'")
            if folded:
                applied.append({"from": folded, "to": target_id, "reason": merge.get("reason")})
        return applied

    @staticmethod
    def _fold(target: TypeDefinition, source: TypeDefinition) -> None:
        target.aliases = list(dict.fromkeys(target.aliases + [source.id] + source.aliases))
        target.examples = list(dict.fromkeys(target.examples + source.examples))[:MAX_EXAMPLES]
        target.usage_count += source.usage_count

    def merge_similar_types(self) -> Dict[str, List[str]]:
        """
        Local consolidation without an advisor: fold registered (non-seed)
        types whose names are similar, keeping the more used one.
        """
        merged: Dict[str, List[str]] = {"merged_node_types": [], "merged_edge_types": []}
        with self._lock:
            for table, key in ((self.node_types, "merged_node_types"), (self.edge_types, "merged_edge_types")):
                ids = [tid for tid, t in table.items() if not t.builtin]
                for i, a_id in enumerate(ids):
                    for b_id in ids[i + 1:]:
                        if a_id not in table or b_id not in table:
                            continue
                        if not are_types_similar(a_id, b_id):
                            continue
                        a, b = table[a_id], table[b_id]
                        keep, drop = (a, b) if a.usage_count >= b.usage_count else (b, a)
                        self._fold(keep, table.pop(drop.id))
                        merged[key].append(f"{drop.id} -> {keep.id}")
            if merged["merged_node_types"] or merged["merged_edge_types"]:
                self._dirty = True
        return merged

    # ── Reporting ─────────────────────────────────────────────────────

    def type_summary_for_prompt(self) -> str:
        """Known types, most used first, formatted for an extraction prompt."""
        with self._lock:
            node_types = sorted(self.node_types.values(), key=lambda t: -t.usage_count)[:20]
            edge_types = sorted(self.edge_types.values(), key=lambda t: -t.usage_count)[:15]
        node_lines = "\n".join(f"- {t.id}: {t.description}" for t in node_types)
        edge_lines = "\n".join(f"- {t.id}: {t.description}" for t in edge_types)
        return (
            "KNOWN NODE TYPES (use these when applicable, or propose new ones):\n"
            f"{node_lines}\n\n"
            "KNOWN EDGE TYPES:\n"
            f"{edge_lines}\n\n"
            "You may propose NEW types if none of the above fit. Include:\n"
            "- id: lowercase_with_underscores\n"
            "- label: Human Readable Name\n"
            "- description: What this type represents\n"
            "- category: entity|concept|activity|artifact|attribute|temporal"
        )

    def get_stats(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        current = now or utcnow()
        with self._lock:
            node_types = sorted(self.node_types.values(), key=lambda t: -t.usage_count)
            edge_types = sorted(self.edge_types.values(), key=lambda t: -t.usage_count)
            recent = [
                t.id for t in list(self.node_types.values()) + list(self.edge_types.values())
                if current - t.created_at < RECENT_WINDOW
            ]
        return {
            "node_type_count": len(node_types),
            "edge_type_count": len(edge_types),
            "top_node_types": [{"id": t.id, "usage_count": t.usage_count} for t in node_types[:5]],
            "top_edge_types": [{"id": t.id, "usage_count": t.usage_count} for t in edge_types[:5]],
            "recently_added": recent,
        }

    def search(self, query: str) -> List[TypeDefinition]:
        """Types whose id, label, description or aliases mention ``query``."""
        needle = (query or "").lower().strip()
        if not needle:
            return []
        with self._lock:
            everything: List[TypeDefinition] = list(self.node_types.values()) + list(self.edge_types.values())
        return [
            t for t in everything
            if needle in t.id
            or needle in t.label.lower()
            or needle in t.description.lower()
            or any(needle in alias.lower() for alias in t.aliases)
        ]

    # ── Persistence ───────────────────────────────────────────────────

    def to_dict(self) -> dict:
        with self._lock:
            return {
                "version": self.version,
                "last_updated": self.last_updated.isoformat(),
                "node_types": {k: v.to_dict() for k, v in self.node_types.items()},
                "edge_types": {k: v.to_dict() for k, v in self.edge_types.items()},
            }

    def persist(self) -> bool:
        """Save if there are unsaved changes. Returns True when a write happened."""
        with self._lock:
            if not self._dirty:
                return False
            if self._save():
                self._dirty = False
                logger.debug("[TypeRegistry] Saved type registry")
                return True
        return False

    def _save(self) -> bool:
        if self._path is None:
            return False
        try:
            self.last_updated = utcnow()
            self._path.parent.mkdir(parents=True, exist_ok=True)
            payload = json.dumps(self.to_dict(), indent=2, ensure_ascii=False)
            fd, tmp = tempfile.mkstemp(dir=str(self._path.parent), suffix=".tmp")
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
            os.replace(tmp, self._path)
            return True
        except OSError as e:
            logger.error(f"[TypeRegistry] Failed to save registry to {self._path}: {e}")
            return False

    def _seed(self) -> None:
        self.node_types = {t.id: t for t in _seed_node_types()}
        self.edge_types = {t.id: t for t in _seed_edge_types()}

    def _load_or_create(self) -> None:
        if self._path is not None and self._path.exists():
            try:
                raw = json.loads(self._path.read_text(encoding="utf-8"))
                self.version = raw.get("version", REGISTRY_VERSION)
                self.last_updated = parse_datetime(raw.get("last_updated") or raw.get("lastUpdated"))
                node_raw = raw.get("node_types", raw.get("nodeTypes")) or {}
                edge_raw = raw.get("edge_types", raw.get("edgeTypes")) or {}
                self.node_types = {k: TypeDefinition.from_dict(v) for k, v in node_raw.items()}
                self.edge_types = {k: EdgeTypeDefinition.from_dict(v) for k, v in edge_raw.items()}
                logger.info(
                    f"[TypeRegistry] Loaded type registry: {len(self.node_types)} node types, "
                    f"{len(self.edge_types)} edge types"
                )
                return
            except (OSError, ValueError, KeyError, TypeError, AttributeError) as e:
                logger.warning(f"[TypeRegistry] Failed to load registry ({e}), creating new one")

        self._seed()
        self._dirty = True
        self.persist()
        logger.info("[TypeRegistry] Created new type registry with seed types")
