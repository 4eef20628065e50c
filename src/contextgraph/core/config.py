"""
Context Graph Configuration System
==================================
Centralized, validated configuration with environment variable overrides.
"""

import os
from pathlib import Path
from typing import Optional
from dataclasses import dataclass, field

import yaml

from contextgraph.core.exceptions import ConfigurationError


@dataclass(frozen=True)
class GraphConfig:
    context_capacity: int = 10
    min_label_length: int = 2


@dataclass(frozen=True)
class CooccurrenceConfig:
    ring_capacity: int = 50
    window_seconds: float = 30.0
    promotion_threshold: int = 2
    pending_ttl_hours: float = 24.0
    min_hint_length: int = 6
    max_key_length: int = 100


@dataclass(frozen=True)
class DecayConfig:
    node_stale_days: float = 7.0
    node_min_weight: int = 2
    verified_min_weight: int = 1
    edge_stale_days: float = 5.0


@dataclass(frozen=True)
class MergeConfig:
    similarity_threshold: float = 0.7


@dataclass(frozen=True)
class AnalyticsConfig:
    pagerank_iterations: int = 20
    damping_factor: float = 0.85
    top_central_nodes: int = 10
    limited_gap_threshold: int = 3
    max_isolated_questions: int = 5


@dataclass(frozen=True)
class ConsolidationConfig:
    enabled: bool = True
    delay_seconds: float = 5.0
    timeout_seconds: float = 60.0
    extraction_timeout_seconds: float = 30.0


@dataclass(frozen=True)
class PathsConfig:
    data_dir: str = "./data"
    graph_file: str = "./data/graph.json"
    type_registry_file: str = "./data/type-registry.json"


@dataclass(frozen=True)
class ObservabilityConfig:
    log_level: str = "INFO"


@dataclass(frozen=True)
class ContextGraphConfig:
    """Root configuration for the context graph engine."""

    version: str = "1.0"
    graph: GraphConfig = field(default_factory=GraphConfig)
    cooccurrence: CooccurrenceConfig = field(default_factory=CooccurrenceConfig)
    decay: DecayConfig = field(default_factory=DecayConfig)
    merge: MergeConfig = field(default_factory=MergeConfig)
    analytics: AnalyticsConfig = field(default_factory=AnalyticsConfig)
    consolidation: ConsolidationConfig = field(default_factory=ConsolidationConfig)
    paths: PathsConfig = field(default_factory=PathsConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)


def _env_override(key: str, default):
    """Check for CTXGRAPH_<KEY> environment variable override."""
    env_key = f"CTXGRAPH_{key.upper()}"
    val = os.environ.get(env_key)
    if val is None:
        return default
    # Type coercion based on the default's type
    if isinstance(default, bool):
        return val.lower() in ("true", "1", "yes")
    if isinstance(default, int):
        return int(val)
    if isinstance(default, float):
        return float(val)
    return val


def _require_positive(key: str, value) -> None:
    if value is None or value <= 0:
        raise ConfigurationError(key, f"must be positive, got {value!r}")


def load_config(path: Optional[Path] = None) -> ContextGraphConfig:
    """
    Load configuration from YAML file with environment variable overrides.

    Priority: ENV > YAML > defaults.

    Args:
        path: Path to config.yaml. If None, searches ./config.yaml and the
            repository root.

    Returns:
        Validated ContextGraphConfig instance.

    Raises:
        ConfigurationError: If a value is out of range or the file is not
            a mapping.
    """
    if path is None:
        candidates = [
            Path("config.yaml"),
            Path(__file__).parent.parent.parent.parent / "config.yaml",
        ]
        for candidate in candidates:
            if candidate.exists():
                path = candidate
                break

    raw = {}
    if path is not None and Path(path).exists():
        with open(path) as f:
            loaded = yaml.safe_load(f) or {}
        if not isinstance(loaded, dict):
            raise ConfigurationError("root", f"expected a mapping in {path}")
        raw = loaded.get("contextgraph") or {}

    graph_raw = raw.get("graph") or {}
    graph = GraphConfig(
        context_capacity=_env_override("GRAPH_CONTEXT_CAPACITY", graph_raw.get("context_capacity", 10)),
        min_label_length=_env_override("GRAPH_MIN_LABEL_LENGTH", graph_raw.get("min_label_length", 2)),
    )
    _require_positive("graph.context_capacity", graph.context_capacity)

    co_raw = raw.get("cooccurrence") or {}
    cooccurrence = CooccurrenceConfig(
        ring_capacity=_env_override("COOCCURRENCE_RING_CAPACITY", co_raw.get("ring_capacity", 50)),
        window_seconds=_env_override("COOCCURRENCE_WINDOW_SECONDS", float(co_raw.get("window_seconds", 30.0))),
        promotion_threshold=_env_override("COOCCURRENCE_PROMOTION_THRESHOLD", co_raw.get("promotion_threshold", 2)),
        pending_ttl_hours=_env_override("COOCCURRENCE_PENDING_TTL_HOURS", float(co_raw.get("pending_ttl_hours", 24.0))),
        min_hint_length=_env_override("COOCCURRENCE_MIN_HINT_LENGTH", co_raw.get("min_hint_length", 6)),
        max_key_length=_env_override("COOCCURRENCE_MAX_KEY_LENGTH", co_raw.get("max_key_length", 100)),
    )
    _require_positive("cooccurrence.ring_capacity", cooccurrence.ring_capacity)
    _require_positive("cooccurrence.window_seconds", cooccurrence.window_seconds)
    _require_positive("cooccurrence.promotion_threshold", cooccurrence.promotion_threshold)

    decay_raw = raw.get("decay") or {}
    decay = DecayConfig(
        node_stale_days=_env_override("DECAY_NODE_STALE_DAYS", float(decay_raw.get("node_stale_days", 7.0))),
        node_min_weight=_env_override("DECAY_NODE_MIN_WEIGHT", decay_raw.get("node_min_weight", 2)),
        verified_min_weight=_env_override("DECAY_VERIFIED_MIN_WEIGHT", decay_raw.get("verified_min_weight", 1)),
        edge_stale_days=_env_override("DECAY_EDGE_STALE_DAYS", float(decay_raw.get("edge_stale_days", 5.0))),
    )

    merge_raw = raw.get("merge") or {}
    merge = MergeConfig(
        similarity_threshold=_env_override(
            "MERGE_SIMILARITY_THRESHOLD", float(merge_raw.get("similarity_threshold", 0.7))
        ),
    )
    if not 0.0 <= merge.similarity_threshold <= 1.0:
        raise ConfigurationError(
            "merge.similarity_threshold", f"must be within [0, 1], got {merge.similarity_threshold}"
        )

    an_raw = raw.get("analytics") or {}
    analytics = AnalyticsConfig(
        pagerank_iterations=_env_override("ANALYTICS_PAGERANK_ITERATIONS", an_raw.get("pagerank_iterations", 20)),
        damping_factor=_env_override("ANALYTICS_DAMPING_FACTOR", float(an_raw.get("damping_factor", 0.85))),
        top_central_nodes=_env_override("ANALYTICS_TOP_CENTRAL_NODES", an_raw.get("top_central_nodes", 10)),
        limited_gap_threshold=_env_override("ANALYTICS_LIMITED_GAP_THRESHOLD", an_raw.get("limited_gap_threshold", 3)),
        max_isolated_questions=_env_override("ANALYTICS_MAX_ISOLATED_QUESTIONS", an_raw.get("max_isolated_questions", 5)),
    )
    if not 0.0 < analytics.damping_factor < 1.0:
        raise ConfigurationError(
            "analytics.damping_factor", f"must be within (0, 1), got {analytics.damping_factor}"
        )

    cons_raw = raw.get("consolidation") or {}
    consolidation = ConsolidationConfig(
        enabled=_env_override("CONSOLIDATION_ENABLED", cons_raw.get("enabled", True)),
        delay_seconds=_env_override("CONSOLIDATION_DELAY_SECONDS", float(cons_raw.get("delay_seconds", 5.0))),
        timeout_seconds=_env_override("CONSOLIDATION_TIMEOUT_SECONDS", float(cons_raw.get("timeout_seconds", 60.0))),
        extraction_timeout_seconds=_env_override(
            "CONSOLIDATION_EXTRACTION_TIMEOUT_SECONDS",
            float(cons_raw.get("extraction_timeout_seconds", 30.0)),
        ),
    )
    _require_positive("consolidation.timeout_seconds", consolidation.timeout_seconds)

    paths_raw = raw.get("paths") or {}
    data_dir = _env_override("DATA_DIR", paths_raw.get("data_dir", "./data"))
    paths = PathsConfig(
        data_dir=data_dir,
        graph_file=_env_override("GRAPH_FILE", paths_raw.get("graph_file", f"{data_dir}/graph.json")),
        type_registry_file=_env_override(
            "TYPE_REGISTRY_FILE", paths_raw.get("type_registry_file", f"{data_dir}/type-registry.json")
        ),
    )

    obs_raw = raw.get("observability") or {}
    observability = ObservabilityConfig(
        log_level=_env_override("LOG_LEVEL", obs_raw.get("log_level", "INFO")),
    )

    return ContextGraphConfig(
        version=raw.get("version", "1.0"),
        graph=graph,
        cooccurrence=cooccurrence,
        decay=decay,
        merge=merge,
        analytics=analytics,
        consolidation=consolidation,
        paths=paths,
        observability=observability,
    )


# Module-level singleton (lazy-loaded)
_CONFIG: Optional[ContextGraphConfig] = None


def get_config() -> ContextGraphConfig:
    """Get or initialize the global config singleton."""
    global _CONFIG
    if _CONFIG is None:
        _CONFIG = load_config()
    return _CONFIG


def reset_config():
    """Reset the global config singleton (useful for testing)."""
    global _CONFIG
    _CONFIG = None
