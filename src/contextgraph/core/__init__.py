"""
ContextGraph Core Module
========================

Graph State:
    - Node / Edge / Source: graph records and provenance
    - GraphStore: thread-safe node/edge tables with adjacency index
    - CanonicalResolver: label rejection and duplicate resolution
    - normalize / generate_id / pair_key: label and id helpers

Ingestion:
    - CooccurrenceTracker: ring buffer + pending pairs -> edges
    - heuristics: entities from app names, titles and URLs
    - parse_extraction: validated extraction payload -> ExtractionBatch
    - MergeEngine: fold a batch into the store, returns a GraphDiff
    - TypeRegistry: persistent dynamic node/edge type vocabulary

Maintenance:
    - ConsolidationScheduler: coalescing delayed background job
    - run_cleanup: advisor-driven signal/noise pass
    - GraphSnapshotStore: atomic JSON snapshots

Reads:
    - GraphAnalytics: clusters, PageRank centrality, contradictions, gaps
    - queries: scored subgraph and node/edge detail views

Facade:
    - ContextGraphService: wires everything above for one subject

Configuration:
    All settings are loaded from config.yaml via the config module, with
    CTXGRAPH_* environment overrides.
"""

from .analytics import GraphAnalytics, GraphReport
from .cleanup import CleanupResult, run_cleanup
from .config import ContextGraphConfig, get_config, load_config, reset_config
from .consolidation import ConsolidationScheduler
from .cooccurrence import CooccurrenceTracker
from .exceptions import (
    ConfigurationError,
    ConsolidationError,
    ContextGraphError,
    MalformedExtractionError,
    SnapshotCorruptionError,
    ValidationError,
)
from .extraction import parse_extraction
from .graph_store import GraphStore
from .merge import MergeEngine
from .models import Edge, ExtractionBatch, GraphDiff, Node, Source
from .normalize import generate_id, normalize
from .persistence import GraphSnapshotStore
from .resolver import CanonicalResolver
from .service import ContextGraphService
from .type_registry import TypeProposal, TypeRegistry

__all__ = [
    "CanonicalResolver",
    "CleanupResult",
    "ConfigurationError",
    "ConsolidationError",
    "ConsolidationScheduler",
    "ContextGraphConfig",
    "ContextGraphError",
    "ContextGraphService",
    "CooccurrenceTracker",
    "Edge",
    "ExtractionBatch",
    "GraphAnalytics",
    "GraphDiff",
    "GraphReport",
    "GraphSnapshotStore",
    "GraphStore",
    "MalformedExtractionError",
    "MergeEngine",
    "Node",
    "SnapshotCorruptionError",
    "Source",
    "TypeProposal",
    "TypeRegistry",
    "ValidationError",
    "generate_id",
    "get_config",
    "load_config",
    "normalize",
    "parse_extraction",
    "reset_config",
]
