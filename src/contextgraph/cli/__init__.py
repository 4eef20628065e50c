"""
ContextGraph CLI - Command Line Interface for the context graph

Provides terminal commands for:
- Listing, adding, searching and consolidating types
- Graph statistics and analytics reports
- Merging extraction payloads
- Decay, consolidation and reset
"""

from .main import cli

__all__ = ["cli"]
