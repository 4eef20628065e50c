"""
ContextGraph CLI - Main Entry Point

Command-line interface for the type registry and the context graph.

Usage:
    contextgraph types list [--edges]               # List node or edge types
    contextgraph types add restaurant "A dining establishment" --category entity
    contextgraph types add watches "One person follows another" --edge
    contextgraph types consolidate [--plan plan.json]
    contextgraph types stats
    contextgraph types search work
    contextgraph graph stats                        # Node/edge counts
    contextgraph graph analyze --subject Chris      # Clusters, centrality, gaps
    contextgraph graph merge extraction.json        # Merge an extraction payload
    contextgraph graph decay                        # Prune stale nodes and edges
"""

import asyncio
import dataclasses
import json
import sys
from pathlib import Path
from typing import Optional

import click

from loguru import logger

from contextgraph.core.config import ContextGraphConfig, load_config
from contextgraph.core.exceptions import ConsolidationError, ContextGraphError
from contextgraph.core.models import Source, utcnow
from contextgraph.core.service import ContextGraphService
from contextgraph.core.type_registry import DIRECTIONALITIES, NODE_CATEGORIES, TypeProposal, TypeRegistry

from .formatters import (
    Colors,
    format_diff,
    format_graph_stats,
    format_node_detail,
    format_report,
    format_search_results,
    format_type_stats,
    format_type_table,
)


# ============================================================================
# Context Helpers
# ============================================================================

def _config(ctx) -> ContextGraphConfig:
    """Config for this invocation, with --data-dir applied to the paths."""
    config = ctx.obj.get("config")
    if config is not None:
        return config

    config_path = ctx.obj.get("config_path")
    config = load_config(Path(config_path) if config_path else None)
    data_dir = ctx.obj.get("data_dir")
    if data_dir is not None:
        paths = dataclasses.replace(
            config.paths,
            data_dir=str(data_dir),
            graph_file=str(data_dir / "graph.json"),
            type_registry_file=str(data_dir / "type-registry.json"),
        )
        config = dataclasses.replace(config, paths=paths)
    ctx.obj["config"] = config
    return config


def _registry(ctx) -> TypeRegistry:
    return TypeRegistry(_config(ctx).paths.type_registry_file)


def _service(ctx) -> ContextGraphService:
    return ContextGraphService.from_config(_config(ctx))


def _title_case(type_id: str) -> str:
    return type_id.replace("_", " ").title()


# ============================================================================
# Root Group
# ============================================================================

@click.group()
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True),
    help="Path to config.yaml file",
)
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Enable verbose output",
)
@click.option(
    "--data-dir",
    "-d",
    type=click.Path(),
    default=None,
    help="Data directory (overrides the graph and registry paths)",
)
@click.pass_context
def cli(ctx, config: Optional[str], verbose: bool, data_dir: Optional[str]):
    """
    ContextGraph - Personal Context Graph CLI

    Inspect and maintain the entity graph built from activity and
    conversation extraction, and its dynamic type registry.
    """
    ctx.ensure_object(dict)

    ctx.obj["verbose"] = verbose
    ctx.obj["config_path"] = config
    ctx.obj["data_dir"] = Path(data_dir) if data_dir else None

    logger.remove()
    if verbose:
        logger.add(sys.stderr, level="DEBUG")
    else:
        level = _config(ctx).observability.log_level
        logger.add(sys.stderr, level=level)


# ============================================================================
# Type Registry Commands
# ============================================================================

@cli.group()
def types():
    """Manage the dynamic node and edge type registry."""


@types.command("list")
@click.option(
    "--edges",
    is_flag=True,
    help="List edge types instead of node types",
)
@click.option(
    "--json",
    "output_json",
    is_flag=True,
    help="Output as JSON",
)
@click.pass_context
def list_types(ctx, edges: bool, output_json: bool):
    """
    List registered types, most used first.

    Example:
        contextgraph types list --edges
    """
    registry = _registry(ctx)
    table = registry.edge_types if edges else registry.node_types
    definitions = sorted(table.values(), key=lambda t: -t.usage_count)

    if output_json:
        click.echo(json.dumps([t.to_dict() for t in definitions], indent=2))
        return

    kind = "Edge" if edges else "Node"
    click.echo(Colors.bold(f"{kind} types ({len(definitions)}):"))
    click.echo(format_type_table(definitions, edges=edges))


@types.command("add")
@click.argument("type_id", required=True)
@click.argument("description", required=True)
@click.option(
    "--edge",
    is_flag=True,
    help="Register an edge type",
)
@click.option(
    "--category",
    type=click.Choice(NODE_CATEGORIES),
    default="concept",
    show_default=True,
    help="Node type category",
)
@click.option(
    "--directionality",
    type=click.Choice(DIRECTIONALITIES),
    default="directed",
    show_default=True,
    help="Edge direction (with --edge)",
)
@click.pass_context
def add_type(ctx, type_id: str, description: str, edge: bool, category: str, directionality: str):
    """
    Register a new node or edge type.

    Example:
        contextgraph types add restaurant "A dining establishment" --category entity
        contextgraph types add watches "One person follows another" --edge
    """
    registry = _registry(ctx)
    proposal = TypeProposal(
        id=type_id,
        label=_title_case(type_id),
        description=description,
        category=category,
        directionality=directionality,
    )
    try:
        if edge:
            definition = registry.register_edge_type(proposal)
            click.echo(Colors.green(f"Registered edge type: {definition.id}"))
        else:
            definition = registry.register_node_type(proposal)
            click.echo(Colors.green(f"Registered node type: {definition.id} [{definition.category}]"))
    except ContextGraphError as e:
        click.echo(f"Error registering type: {e}", err=True)
        ctx.exit(1)
        return
    registry.persist()


@types.command("consolidate")
@click.option(
    "--plan",
    "plan_path",
    type=click.Path(exists=True, dir_okay=False),
    help="Apply a merge plan (JSON) instead of local similarity merging",
)
@click.pass_context
def consolidate_types(ctx, plan_path: Optional[str]):
    """
    Merge types that describe the same concept.

    Without --plan, registered types with near-identical names are folded
    into the more used one. With --plan, the file's nodeTypeMerges and
    edgeTypeMerges are applied.
    """
    registry = _registry(ctx)
    click.echo("Running type consolidation...")

    if plan_path:
        try:
            plan = registry.parse_merge_plan(Path(plan_path).read_text(encoding="utf-8"))
        except ConsolidationError as e:
            click.echo(f"Error: {e}", err=True)
            ctx.exit(1)
            return
        result = registry.apply_merge_plan(plan)
        merged_nodes = [f"{', '.join(m['from'])} → {m['to']}" for m in result["merged_node_types"]]
        merged_edges = [f"{', '.join(m['from'])} → {m['to']}" for m in result["merged_edge_types"]]
    else:
        result = registry.merge_similar_types()
        merged_nodes = [m.replace(" -> ", " → ") for m in result["merged_node_types"]]
        merged_edges = [m.replace(" -> ", " → ") for m in result["merged_edge_types"]]

    if not merged_nodes and not merged_edges:
        click.echo(Colors.green("No types needed consolidation"))
        return

    for line in merged_nodes:
        click.echo(f"  Merged node type {line}")
    for line in merged_edges:
        click.echo(f"  Merged edge type {line}")
    registry.persist()
    click.echo(Colors.green("Consolidation complete"))


@types.command("stats")
@click.option(
    "--json",
    "output_json",
    is_flag=True,
    help="Output as JSON",
)
@click.pass_context
def type_stats(ctx, output_json: bool):
    """Show type registry statistics."""
    stats = _registry(ctx).get_stats()
    if output_json:
        click.echo(json.dumps(stats, indent=2))
    else:
        click.echo(format_type_stats(stats))


@types.command("search")
@click.argument("query", required=True)
@click.pass_context
def search_types(ctx, query: str):
    """
    Search types by id, label, description or alias.

    Example:
        contextgraph types search work
    """
    results = _registry(ctx).search(query)
    click.echo(format_search_results(query.lower(), results))


# ============================================================================
# Graph Commands
# ============================================================================

@cli.group()
def graph():
    """Inspect and maintain the context graph."""


@graph.command("stats")
@click.option(
    "--json",
    "output_json",
    is_flag=True,
    help="Output as JSON",
)
@click.pass_context
def graph_stats(ctx, output_json: bool):
    """Show node, edge and type counts."""
    stats = _service(ctx).get_stats()
    if output_json:
        click.echo(json.dumps(stats, indent=2, default=str))
    else:
        click.echo(format_graph_stats(stats))


@graph.command("analyze")
@click.option(
    "--subject",
    "-s",
    help="Name of the person the graph is about",
)
@click.option(
    "--json",
    "output_json",
    is_flag=True,
    help="Output as JSON",
)
@click.pass_context
def analyze(ctx, subject: Optional[str], output_json: bool):
    """
    Run clusters, centrality, contradiction and gap analysis.

    Example:
        contextgraph graph analyze --subject Chris
    """
    service = _service(ctx)
    report = service.analytics(subject).to_dict()
    if output_json:
        click.echo(json.dumps(report, indent=2))
        return
    labels = {node_id: service.get_node_label(node_id) or node_id for node_id in report["central_nodes"]}
    click.echo(format_report(report, labels))


@graph.command("node")
@click.argument("node_id", required=True)
@click.option(
    "--json",
    "output_json",
    is_flag=True,
    help="Output as JSON",
)
@click.pass_context
def show_node(ctx, node_id: str, output_json: bool):
    """Show a node and its strongest connections."""
    detail = _service(ctx).get_node_detail(node_id)
    if detail is None:
        click.echo(f"Node not found: {node_id}", err=True)
        ctx.exit(1)
        return
    if output_json:
        click.echo(json.dumps(detail, indent=2, default=str))
    else:
        click.echo(format_node_detail(detail))


@graph.command("merge")
@click.argument("payload", type=click.Path(exists=True, dir_okay=False))
@click.option(
    "--source-kind",
    default="document",
    show_default=True,
    help="Provenance kind recorded on merged nodes",
)
@click.pass_context
def merge_payload(ctx, payload: str, source_kind: str):
    """
    Merge an extraction payload (JSON with entities and relationships).

    Example:
        contextgraph graph merge extraction.json
    """
    service = _service(ctx)
    raw = Path(payload).read_text(encoding="utf-8")
    source = Source(kind=source_kind, id=Path(payload).name, timestamp=utcnow())
    diff = service.merge_extraction(raw, source)
    if diff is None:
        click.echo(f"Error: {payload} is not a valid extraction payload", err=True)
        ctx.exit(1)
        return
    service.save()
    click.echo(format_diff(diff.summary()))


@graph.command("decay")
@click.pass_context
def decay(ctx):
    """Prune stale nodes and edges now."""
    result = _service(ctx).decay_graph()
    click.echo(f"Pruned {result['nodes_removed']} nodes, {result['edges_removed']} edges")


@graph.command("consolidate")
@click.pass_context
def consolidate_graph(ctx):
    """Run one full consolidation pass (decay, type merging, persist)."""
    summary = asyncio.run(_service(ctx).consolidate())
    decay_result = summary["decay"]
    click.echo(f"Pruned {decay_result['nodes_removed']} nodes, {decay_result['edges_removed']} edges")
    types_result = summary.get("types") or {}
    merged = types_result.get("merged_node_types", []) + types_result.get("merged_edge_types", [])
    for line in merged:
        click.echo(f"  Merged type {line}")
    click.echo(Colors.green("Consolidation complete"))


@graph.command("reset")
@click.confirmation_option(prompt="Delete every node and edge?")
@click.pass_context
def reset(ctx):
    """Clear the graph."""
    _service(ctx).reset()
    click.echo("Graph cleared")


if __name__ == "__main__":
    cli()
