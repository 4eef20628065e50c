"""
Extraction Parsing
==================
Turns the output of an extraction collaborator (usually an LLM) into an
``ExtractionBatch`` the merge engine can apply.

Expected payload (a dict, or JSON text optionally wrapped in a code fence):

    {
      "entities": [
        {"label": "Chris", "type": "person", "isNewType": false,
         "newTypeDefinition": {...}, "attributes": {...},
         "confidence": 0.9, "salience": 0.8}
      ],
      "relationships": [
        {"sourceLabel": "Chris", "targetLabel": "nyu-swipes", "type": "works_on",
         "isNewType": false, "evidence": "...", "weight": 0.7, "confidence": 0.8}
      ],
      "insights": ["..."]
    }

The whole payload is validated before anything touches the type registry,
so a malformed payload never leaves half-registered types behind.
"""

from __future__ import annotations

import json
from typing import Any, Dict, List, Optional, Union

from loguru import logger

from .exceptions import MalformedExtractionError
from .models import BatchEdge, ExtractionBatch, Node, Source, utcnow
from .normalize import generate_id, normalize_type_name
from .type_registry import TypeProposal, TypeRegistry, extract_json_text

DEFAULT_CONFIDENCE = 0.5
DEFAULT_SALIENCE = 0.5
DEFAULT_EDGE_WEIGHT = 0.5
VERIFY_CONFIDENCE = 0.8

EXTRACTION_PROMPT = """You are an expert at building knowledge graphs about people and conversations.
Given text, extract structured information with DYNAMIC typing.

OUTPUT FORMAT (JSON):
{
  "entities": [
    {
      "label": "<concise label>",
      "type": "<existing_type_id OR proposed new type>",
      "isNewType": <true if proposing new type>,
      "newTypeDefinition": {
        "label": "Human Readable",
        "description": "What this type represents",
        "category": "entity|concept|activity|artifact|attribute|temporal"
      },
      "attributes": { <key-value details> },
      "confidence": <0-1>,
      "salience": <0-1, how central/important>
    }
  ],
  "relationships": [
    {
      "sourceLabel": "<entity label>",
      "targetLabel": "<entity label>",
      "type": "<existing_edge_type OR proposed new type>",
      "isNewType": <true if proposing new type>,
      "newTypeDefinition": {
        "label": "Human Readable",
        "description": "What this relationship means",
        "directionality": "directed|bidirectional"
      },
      "evidence": "<quote or paraphrase from text>",
      "weight": <0-1, strength>,
      "confidence": <0-1>
    }
  ],
  "insights": ["<observations not captured as entities/relationships>"]
}

GUIDELINES:
1. PREFER existing types when they fit (even loosely)
2. Only propose NEW types when nothing existing applies
3. Be SPECIFIC - "tv_show" not "content", "poker_game" not "event" if appropriate
4. Extract IMPLICIT information
5. Relationships should have clear directionality and evidence
6. High salience = defining characteristic, low = incidental mention"""


def build_extraction_prompt(
    text: str,
    registry: Optional[TypeRegistry] = None,
    existing_context: Optional[str] = None,
) -> str:
    """Full prompt for an extraction collaborator."""
    parts = [EXTRACTION_PROMPT]
    if registry is not None:
        parts.append(registry.type_summary_for_prompt())
    if existing_context:
        parts.append(f"EXISTING KNOWLEDGE (avoid duplicating):\n{existing_context}")
    parts.append(f"TEXT TO ANALYZE:\n{text}")
    return "\n\n".join(parts)


def _title_case(type_id: str) -> str:
    return " ".join(word.capitalize() for word in type_id.replace("_", " ").split())


def _unit(value: Any, default: float) -> float:
    """A number clamped to [0, 1]; falsy or non-numeric values give ``default``."""
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not value:
        return default
    return max(0.0, min(1.0, float(value)))


# ------------------------------------------------------------------ #
#  Validation                                                         #
# ------------------------------------------------------------------ #

def load_payload(raw: Union[str, bytes, Dict[str, Any]]) -> Dict[str, Any]:
    """Decode and structurally validate an extraction payload."""
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8", errors="replace")
    if isinstance(raw, str):
        try:
            payload = json.loads(extract_json_text(raw))
        except ValueError as e:
            raise MalformedExtractionError(f"invalid JSON: {e}", raw[:200])
    else:
        payload = raw

    if not isinstance(payload, dict):
        raise MalformedExtractionError("payload must be a JSON object", type(payload).__name__)

    entities = payload.get("entities") or []
    relationships = payload.get("relationships") or []
    insights = payload.get("insights") or []
    if not isinstance(entities, list):
        raise MalformedExtractionError("'entities' must be a list", entities)
    if not isinstance(relationships, list):
        raise MalformedExtractionError("'relationships' must be a list", relationships)
    if not isinstance(insights, list):
        raise MalformedExtractionError("'insights' must be a list", insights)

    for i, entity in enumerate(entities):
        if not isinstance(entity, dict):
            raise MalformedExtractionError(f"entity #{i} is not an object", entity)
        for key in ("label", "type"):
            if not isinstance(entity.get(key), str) or not entity[key].strip():
                raise MalformedExtractionError(f"entity #{i} has no '{key}'", entity)
        if entity.get("attributes") is not None and not isinstance(entity["attributes"], dict):
            raise MalformedExtractionError(f"entity #{i} 'attributes' must be an object", entity)

    for i, rel in enumerate(relationships):
        if not isinstance(rel, dict):
            raise MalformedExtractionError(f"relationship #{i} is not an object", rel)
        for key in ("sourceLabel", "targetLabel", "type"):
            if not isinstance(rel.get(key), str) or not rel[key].strip():
                raise MalformedExtractionError(f"relationship #{i} has no '{key}'", rel)

    return {"entities": entities, "relationships": relationships, "insights": insights}


# ------------------------------------------------------------------ #
#  Type resolution                                                    #
# ------------------------------------------------------------------ #

def _resolve_node_type(entity: Dict[str, Any], registry: Optional[TypeRegistry], batch: ExtractionBatch) -> str:
    raw_type = entity["type"]
    if registry is None:
        return normalize_type_name(raw_type) or "topic"

    definition = entity.get("newTypeDefinition")
    if entity.get("isNewType") and isinstance(definition, dict):
        registered = registry.register_node_type(TypeProposal(
            id=raw_type,
            label=str(definition.get("label") or _title_case(raw_type)),
            description=str(definition.get("description") or ""),
            category=str(definition.get("category") or "entity"),
            examples=[entity["label"]],
        ))
        batch.new_node_types.append(registered.id)
        return registered.id

    resolved = registry.resolve_or_propose(raw_type)
    if resolved.is_new:
        registered = registry.register_node_type(TypeProposal(
            id=raw_type,
            label=_title_case(normalize_type_name(raw_type)),
            description=f"Auto-registered type for: {entity['label']}",
            category="concept",
            examples=[entity["label"]],
        ))
        batch.new_node_types.append(registered.id)
        return registered.id
    registry.record_usage(resolved.id)
    return resolved.id


def _resolve_edge_type(rel: Dict[str, Any], registry: Optional[TypeRegistry], batch: ExtractionBatch) -> str:
    raw_type = rel["type"]
    if registry is None:
        return normalize_type_name(raw_type) or "related_to"

    example = f"{rel['sourceLabel']} -> {rel['targetLabel']}"
    definition = rel.get("newTypeDefinition")
    if rel.get("isNewType") and isinstance(definition, dict):
        directionality = definition.get("directionality")
        registered = registry.register_edge_type(TypeProposal(
            id=raw_type,
            label=str(definition.get("label") or _title_case(raw_type)),
            description=str(definition.get("description") or ""),
            category="relational",
            examples=[example],
            directionality=directionality if directionality in ("directed", "bidirectional") else "directed",
        ))
        batch.new_edge_types.append(registered.id)
        return registered.id

    resolved = registry.resolve_or_propose(raw_type, is_edge=True)
    if resolved.is_new:
        registered = registry.register_edge_type(TypeProposal(
            id=raw_type,
            label=_title_case(normalize_type_name(raw_type)),
            description=f"Auto-registered edge for: {example}",
            category="relational",
            examples=[example],
        ))
        batch.new_edge_types.append(registered.id)
        return registered.id
    registry.record_usage(resolved.id, is_edge=True)
    return resolved.id


# ------------------------------------------------------------------ #
#  Public entry point                                                 #
# ------------------------------------------------------------------ #

def parse_extraction(
    raw: Union[str, bytes, Dict[str, Any]],
    registry: Optional[TypeRegistry] = None,
    source: Optional[Source] = None,
) -> ExtractionBatch:
    """
    Parse and type-resolve an extraction payload.

    Args:
        raw: Collaborator output, as a dict or (fenced) JSON text.
        registry: Type registry used to resolve and register types. Without
            one, type names are only normalized.
        source: Provenance attached to every node and edge.

    Returns:
        ExtractionBatch ready for ``MergeEngine.merge``.

    Raises:
        MalformedExtractionError: If the payload is not valid JSON or does
            not have the expected shape. Nothing is registered in that case.
    """
    payload = load_payload(raw)
    now = utcnow()
    provenance = source or Source(kind="inference", timestamp=now)
    batch = ExtractionBatch(insights=[str(i) for i in payload["insights"]])

    for entity in payload["entities"]:
        type_id = _resolve_node_type(entity, registry, batch)
        label = entity["label"].strip()
        confidence = _unit(entity.get("confidence"), DEFAULT_CONFIDENCE)
        batch.nodes.append(Node(
            id=generate_id(type_id, label),
            label=label,
            type=type_id,
            weight=1,
            first_seen=now,
            last_seen=now,
            confidence=confidence,
            salience=_unit(entity.get("salience"), DEFAULT_SALIENCE),
            sources=[provenance],
            attributes=dict(entity.get("attributes") or {}),
            verified=confidence >= VERIFY_CONFIDENCE,
        ))

    for rel in payload["relationships"]:
        type_id = _resolve_edge_type(rel, registry, batch)
        evidence = rel.get("evidence")
        batch.edges.append(BatchEdge(
            source_ref=rel["sourceLabel"].strip(),
            target_ref=rel["targetLabel"].strip(),
            type=type_id,
            weight=_unit(rel.get("weight"), DEFAULT_EDGE_WEIGHT),
            confidence=_unit(rel.get("confidence"), DEFAULT_CONFIDENCE),
            evidence=[str(evidence)] if evidence else [],
            sources=[provenance],
        ))

    if registry is not None:
        registry.persist()

    logger.debug(
        f"[Extraction] Parsed {len(batch.nodes)} entities, {len(batch.edges)} relationships, "
        f"{len(batch.new_node_types)} new node types, {len(batch.new_edge_types)} new edge types"
    )
    return batch
