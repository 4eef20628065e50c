"""
ContextGraph - Personal Context Graph Engine
============================================

Maintains a weighted knowledge graph of the people, projects, places and
topics in one person's digital life, built from two kinds of input:

    - a stream of lightweight observations (app switches, window titles,
      URLs, quick AI extractions) linked by temporal co-occurrence
    - batch extractions of structured entities and relationships, merged
      against what the graph already knows

Main Packages:
    - core: store, resolver, co-occurrence, merge, type registry,
      analytics, persistence and the service facade
    - cli: command-line interface

Quick Start:
    from contextgraph.core import ContextGraphService

    service = ContextGraphService.from_config()
    service.ingest_activity("Google Chrome", "Repo", url="https://github.com/acme/widget")
    report = service.analytics(subject="Chris")
"""

__version__ = "1.0.0"
