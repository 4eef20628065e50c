"""
Tests for CLI Output Formatters
===============================
Tests for src/contextgraph/cli/formatters.py covering type tables, stats
blocks, analytics reports and ANSI color handling.
"""

import pytest

from contextgraph.cli.formatters import (
    Colors,
    format_diff,
    format_graph_stats,
    format_node_detail,
    format_report,
    format_search_results,
    format_type_stats,
    format_type_table,
)
from contextgraph.core.type_registry import EdgeTypeDefinition, TypeDefinition


class TestColors:
    """Tests for ANSI color handling."""

    @pytest.mark.parametrize("wrap,code", [
        (Colors.green, "\033[92m"),
        (Colors.red, "\033[91m"),
        (Colors.yellow, "\033[93m"),
        (Colors.blue, "\033[94m"),
        (Colors.bold, "\033[1m"),
    ])
    def test_wrapping(self, wrap, code):
        result = wrap("text")
        assert result.startswith(code)
        assert result.endswith("\033[0m")
        assert "text" in result


class TestTypeFormatting:
    """Tests for type registry output."""

    def test_empty_table(self):
        assert format_type_table([]) == "No types found."

    def test_node_table(self):
        """Node tables show category, aliases and at most three examples."""
        types = [TypeDefinition(
            id="person", label="Person", description="A human individual",
            examples=["Chris", "Katie", "Benjamin", "Yangyang"], aliases=["human"], usage_count=4,
        )]
        table = format_type_table(types)
        assert "Category" in table
        assert "Chris, Katie, Benjamin" in table
        assert "Yangyang" not in table

    def test_edge_table(self):
        types = [EdgeTypeDefinition(
            id="part_of", label="Part Of", description="Belongs to",
            directionality="directed", inverse_type="contains",
        )]
        table = format_type_table(types, edges=True)
        assert "Direction" in table
        assert "contains" in table

    def test_type_stats(self):
        output = format_type_stats({
            "node_type_count": 9,
            "edge_type_count": 7,
            "top_node_types": [{"id": "person", "usage_count": 12}],
            "top_edge_types": [],
            "recently_added": [],
        })
        assert "Type Registry Statistics" in output
        assert "  - person: 12 uses" in output
        assert "  (none)" in output

    def test_search_results(self):
        results = [
            TypeDefinition(id="organization", label="Organization", description="A company"),
            EdgeTypeDefinition(id="works_on", label="Works On", description="Building"),
        ]
        output = format_search_results("o", results)
        assert output.splitlines()[0] == 'Search results for "o":'
        assert "  - organization: A company" in output
        assert "Edge types:" in output

    def test_search_no_results(self):
        assert "No matching types found" in format_search_results("zzz", [])


class TestGraphFormatting:
    """Tests for graph stats, reports, diffs and node detail."""

    def test_graph_stats(self):
        output = format_graph_stats({
            "node_count": 3,
            "edge_count": 1,
            "verified_nodes": 1,
            "pending_edges": 2,
            "nodes_by_type": {"person": 2, "topic": 1},
            "edges_by_type": {"co_occurrence": 1},
        })
        assert "Context Graph Statistics" in output
        assert "Node type" in output
        assert "co_occurrence" in output

    def test_report(self):
        report = {
            "subject": "Chris",
            "clusters": [{"id": "cluster_0", "label": "person cluster", "node_ids": ["a", "b"],
                          "coherence": 0.5, "themes": ["person"]}],
            "central_nodes": ["a"],
            "contradictions": [{"description": "Chris both likes and dislikes olives"}],
            "gaps": [{"area": "person", "description": "Only 1 person",
                      "suggested_questions": ["Who do they work with?"]}],
        }
        output = format_report(report, {"a": "Chris"})
        assert "Context Graph Report: Chris" in output
        assert " 1. Chris" in output
        assert "0.50" in output
        assert "Chris both likes and dislikes olives" in output
        assert "? Who do they work with?" in output

    def test_report_without_findings(self):
        output = format_report({"clusters": [], "central_nodes": [], "contradictions": [], "gaps": []}, {})
        assert "Clusters (0):" in output
        assert "Contradictions" not in output
        assert "Gaps" not in output

    def test_diff(self):
        output = format_diff({"added_nodes": 2, "dropped_edges": 0})
        assert "added nodes" in output
        assert "dropped edges" in output

    def test_node_detail(self):
        output = format_node_detail({
            "id": "person_1", "label": "Chris", "type": "person", "verified": True,
            "mentions": 4, "first_seen": "2025-06-01T12:00:00+00:00",
            "last_seen": "2025-06-02T12:00:00+00:00", "contexts": ["Messages"],
            "connections": [{"label": "Elixir", "type": "topic", "co_occurrences": 3, "relation": None}],
        })
        assert "verified" in output
        assert "  mentions: 4" in output
        assert "  contexts: Messages" in output
        assert "Elixir" in output
