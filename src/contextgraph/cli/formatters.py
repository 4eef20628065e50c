"""
CLI Output Formatters

Tables and colored summaries for the type registry and the graph.
"""

from typing import Any, Dict, List

from tabulate import tabulate

from contextgraph.core.type_registry import EdgeTypeDefinition, TypeDefinition


# Color codes for terminal output
class Colors:
    """ANSI color codes for terminal output."""
    HEADER = "\033[95m"
    OKBLUE = "\033[94m"
    OKCYAN = "\033[96m"
    OKGREEN = "\033[92m"
    WARNING = "\033[93m"
    FAIL = "\033[91m"
    ENDC = "\033[0m"
    BOLD = "\033[1m"

    @staticmethod
    def green(text: str) -> str:
        return f"{Colors.OKGREEN}{text}{Colors.ENDC}"

    @staticmethod
    def red(text: str) -> str:
        return f"{Colors.FAIL}{text}{Colors.ENDC}"

    @staticmethod
    def yellow(text: str) -> str:
        return f"{Colors.WARNING}{text}{Colors.ENDC}"

    @staticmethod
    def blue(text: str) -> str:
        return f"{Colors.OKBLUE}{text}{Colors.ENDC}"

    @staticmethod
    def bold(text: str) -> str:
        return f"{Colors.BOLD}{text}{Colors.ENDC}"


def _join(values: List[str], limit: int = 3) -> str:
    return ", ".join(values[:limit])


# ------------------------------------------------------------------ #
#  Type registry                                                      #
# ------------------------------------------------------------------ #

def format_type_table(types: List[TypeDefinition], edges: bool = False) -> str:
    """
    Format node or edge type definitions as a table.

    Args:
        types: Definitions to list, in display order.
        edges: Show edge columns (direction, inverse) instead of node
            columns (category, examples).
    """
    if not types:
        return "No types found."

    if edges:
        headers = ["ID", "Description", "Direction", "Inverse", "Aliases", "Usage"]
        rows = [
            [
                t.id,
                t.description,
                getattr(t, "directionality", "directed"),
                getattr(t, "inverse_type", None) or "",
                _join(t.aliases),
                t.usage_count,
            ]
            for t in types
        ]
    else:
        headers = ["ID", "Category", "Description", "Aliases", "Examples", "Usage"]
        rows = [
            [t.id, t.category, t.description, _join(t.aliases), _join(t.examples), t.usage_count]
            for t in types
        ]
    return tabulate(rows, headers=headers, tablefmt="grid")


def format_type_stats(stats: Dict[str, Any]) -> str:
    lines = []
    lines.append("=" * 40)
    lines.append(Colors.bold("Type Registry Statistics"))
    lines.append("=" * 40)
    lines.append(f"{Colors.bold('Node types:')} {stats.get('node_type_count', 0)}")
    lines.append(f"{Colors.bold('Edge types:')} {stats.get('edge_type_count', 0)}")
    lines.append("")

    lines.append(Colors.bold("Top Node Types:"))
    for t in stats.get("top_node_types", []):
        lines.append(f"  - {t['id']}: {t['usage_count']} uses")
    lines.append("")

    lines.append(Colors.bold("Top Edge Types:"))
    for t in stats.get("top_edge_types", []):
        lines.append(f"  - {t['id']}: {t['usage_count']} uses")
    lines.append("")

    lines.append(Colors.bold("Recently Added:"))
    recent = stats.get("recently_added", [])
    if recent:
        lines.extend(f"  - {type_id}" for type_id in recent)
    else:
        lines.append("  (none)")
    return "\n".join(lines)


def format_search_results(query: str, results: List[TypeDefinition]) -> str:
    nodes = [t for t in results if not isinstance(t, EdgeTypeDefinition)]
    edges = [t for t in results if isinstance(t, EdgeTypeDefinition)]
    lines = [f'Search results for "{query}":', ""]
    if nodes:
        lines.append("Node types:")
        lines.extend(f"  - {t.id}: {t.description}" for t in nodes)
    if edges:
        lines.append("Edge types:")
        lines.extend(f"  - {t.id}: {t.description}" for t in edges)
    if not results:
        lines.append("  No matching types found")
    return "\n".join(lines)


# ------------------------------------------------------------------ #
#  Graph                                                              #
# ------------------------------------------------------------------ #

def format_graph_stats(stats: Dict[str, Any]) -> str:
    """
    Format graph statistics for display.

    Args:
        stats: Dictionary from ``ContextGraphService.get_stats()``.
    """
    lines = []
    lines.append("=" * 50)
    lines.append(Colors.bold("Context Graph Statistics"))
    lines.append("=" * 50)
    lines.append(f"{Colors.bold('Nodes:')}         {stats.get('node_count', 0):>6}")
    lines.append(f"{Colors.bold('Edges:')}         {stats.get('edge_count', 0):>6}")
    lines.append(f"{Colors.bold('Verified:')}      {stats.get('verified_nodes', 0):>6}")
    lines.append(f"{Colors.bold('Pending pairs:')} {stats.get('pending_edges', 0):>6}")
    lines.append("")

    by_type = stats.get("nodes_by_type") or {}
    if by_type:
        rows = sorted(by_type.items(), key=lambda item: -item[1])
        lines.append(tabulate(rows, headers=["Node type", "Count"], tablefmt="simple"))
        lines.append("")

    edge_types = stats.get("edges_by_type") or {}
    if edge_types:
        rows = sorted(edge_types.items(), key=lambda item: -item[1])
        lines.append(tabulate(rows, headers=["Edge type", "Count"], tablefmt="simple"))
        lines.append("")

    lines.append("=" * 50)
    return "\n".join(lines)


def format_report(report: Dict[str, Any], labels: Dict[str, str]) -> str:
    """
    Format an analytics report.

    Args:
        report: ``GraphReport.to_dict()`` output.
        labels: node id -> label, for readable central-node names.
    """
    lines = []
    lines.append("=" * 50)
    title = "Context Graph Report"
    if report.get("subject"):
        title += f": {report['subject']}"
    lines.append(Colors.bold(title))
    lines.append("=" * 50)
    lines.append("")

    clusters = report.get("clusters", [])
    lines.append(Colors.bold(f"Clusters ({len(clusters)}):"))
    if clusters:
        rows = [
            [c["id"], c["label"], len(c["node_ids"]), f"{c['coherence']:.2f}", ", ".join(c["themes"])]
            for c in clusters
        ]
        lines.append(tabulate(rows, headers=["ID", "Label", "Size", "Coherence", "Themes"], tablefmt="simple"))
    lines.append("")

    central = report.get("central_nodes", [])
    lines.append(Colors.bold("Central nodes:"))
    for rank, node_id in enumerate(central, 1):
        lines.append(f"  {rank:>2}. {labels.get(node_id, node_id)}")
    lines.append("")

    contradictions = report.get("contradictions", [])
    if contradictions:
        lines.append(Colors.bold(Colors.yellow(f"Contradictions ({len(contradictions)}):")))
        for c in contradictions:
            lines.append(f"  - {c['description']}")
        lines.append("")

    gaps = report.get("gaps", [])
    if gaps:
        lines.append(Colors.bold(f"Gaps ({len(gaps)}):"))
        for gap in gaps:
            lines.append(f"  [{gap['area']}] {gap['description']}")
            for question in gap["suggested_questions"]:
                lines.append(f"      ? {question}")
        lines.append("")

    lines.append("=" * 50)
    return "\n".join(lines)


def format_diff(summary: Dict[str, int]) -> str:
    rows = [[key.replace("_", " "), value] for key, value in summary.items()]
    return tabulate(rows, headers=["Change", "Count"], tablefmt="simple")


def format_node_detail(detail: Dict[str, Any]) -> str:
    lines = []
    verified = Colors.green("verified") if detail.get("verified") else Colors.yellow("unverified")
    lines.append(f"{Colors.bold(detail['label'])} ({detail['type']}, {verified})")
    lines.append(f"  id: {detail['id']}")
    lines.append(f"  mentions: {detail['mentions']}")
    lines.append(f"  first seen: {detail['first_seen']}")
    lines.append(f"  last seen: {detail['last_seen']}")
    if detail.get("contexts"):
        lines.append(f"  contexts: {', '.join(detail['contexts'])}")
    connections = detail.get("connections") or []
    if connections:
        rows = [[c["label"], c["type"], c["co_occurrences"], c["relation"] or ""] for c in connections]
        lines.append("")
        lines.append(tabulate(rows, headers=["Connected to", "Type", "Weight", "Relation"], tablefmt="simple"))
    return "\n".join(lines)
