"""
Command-line interface for flows.

Usage:
    flows order workflow.json [--strategy branch_kahn] [--all] [--check]
    flows run workflow.json --trigger '{"status": "ok"}' [--journal-dir DIR]
    flows run workflow.json --resume RUN_ID --journal-dir DIR
    flows nodes
    flows plan-edge request.json

Every command prints JSON on stdout and exits 1 on error.
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any

from flows.config import RuntimeConfig
from flows.errors import FlowsError
from flows.graph.branching import GraphEdgeRef, GraphNodeRef, plan_edge_connection
from flows.graph.model import build_graph
from flows.graph.traversal import (
    TraversalStrategy,
    assert_topological,
    compute_execution_order,
)
from flows.nodes.diagnostics import validate_node_definition
from flows.nodes.registry import default_registry
from flows.observability import configure_logging


def _load_json(source: str) -> Any:
    if source == "-":
        return json.load(sys.stdin)
    return json.loads(Path(source).read_text(encoding="utf-8"))


def _print(data: Any) -> None:
    print(json.dumps(data, indent=2, default=str))


def _fail(error: Exception) -> int:
    _print({"error": str(error), "type": type(error).__name__})
    return 1


# === COMMANDS ===


def cmd_order(args: argparse.Namespace) -> int:
    try:
        data = _load_json(args.snapshot)
        graph = build_graph(data)
        full = compute_execution_order(graph, args.strategy)
        if args.check:
            assert_topological(full, graph)
        involved = graph.connected_nodes()
        order = full if args.all else [key for key in full if key in involved]
    except (FlowsError, OSError, ValueError) as e:
        return _fail(e)
    _print({"order": order})
    return 0


def cmd_run(args: argparse.Namespace) -> int:
    from flows.runtime.journal import StepJournal
    from flows.runtime.journal_store import FileJournalStore
    from flows.runtime.runner import WorkflowRunner

    try:
        snapshot = _load_json(args.snapshot)
        trigger = json.loads(args.trigger) if args.trigger else {}
    except (OSError, ValueError) as e:
        return _fail(e)

    config = RuntimeConfig()
    if args.journal_dir:
        config.journal_dir = Path(args.journal_dir).expanduser()
    if args.continue_on_failure:
        config.stop_on_failure = False

    journal = None
    if args.resume:
        if not config.journal_dir:
            return _fail(ValueError("--resume requires a journal directory"))
        journal = StepJournal.from_store(args.resume, FileJournalStore(config.journal_dir))

    runner = WorkflowRunner(default_registry(), config=config)
    result = asyncio.run(runner.run(snapshot, trigger=trigger, journal=journal))
    _print(result.model_dump(mode="json"))
    return 0 if result.status == "success" else 1


def cmd_nodes(args: argparse.Namespace) -> int:
    catalog = []
    for type_tag, definition in default_registry().definitions().items():
        manifest = definition.manifest
        catalog.append(
            {
                "type": type_tag,
                "id": manifest.id,
                "version": manifest.version,
                "displayName": manifest.display_name,
                "kind": manifest.kind.value if manifest.kind else None,
                "retryable": definition.retryable,
                "parameters": sorted(definition.parameters),
                "inputs": sorted(definition.ports.inputs),
                "outputs": sorted(definition.ports.outputs),
                "diagnostics": [d.to_dict() for d in validate_node_definition(definition)],
            }
        )
    _print(catalog)
    return 0


def cmd_plan_edge(args: argparse.Namespace) -> int:
    """Request: {workflowId, sourceNode, targetNode, existingOutgoingEdges?, branchKey?}."""
    try:
        request = _load_json(args.request)
        plan = plan_edge_connection(
            request["workflowId"],
            GraphNodeRef.model_validate(request["sourceNode"]),
            GraphNodeRef.model_validate(request["targetNode"]),
            [GraphEdgeRef.model_validate(e) for e in request.get("existingOutgoingEdges", [])],
            request.get("branchKey"),
        )
    except (FlowsError, OSError, ValueError, KeyError) as e:
        return _fail(e)
    _print(plan.model_dump(by_alias=True))
    return 0


def register_commands(subparsers: argparse._SubParsersAction) -> None:
    strategies = [s.value for s in TraversalStrategy]

    order_parser = subparsers.add_parser("order", help="Compute a workflow's execution order")
    order_parser.add_argument("snapshot", help="Workflow snapshot JSON file ('-' for stdin)")
    order_parser.add_argument(
        "--strategy", choices=strategies, default=TraversalStrategy.CANVAS_DFS.value
    )
    order_parser.add_argument(
        "--all", action="store_true", help="Keep isolated nodes in the order"
    )
    order_parser.add_argument(
        "--check", action="store_true", help="Verify the order is topologically valid"
    )
    order_parser.set_defaults(func=cmd_order)

    run_parser = subparsers.add_parser("run", help="Run a workflow snapshot")
    run_parser.add_argument("snapshot", help="Workflow snapshot JSON file ('-' for stdin)")
    run_parser.add_argument("--trigger", help="Trigger payload as a JSON object")
    run_parser.add_argument("--journal-dir", help="Directory for the step journal")
    run_parser.add_argument("--resume", metavar="RUN_ID", help="Resume an interrupted run")
    run_parser.add_argument(
        "--continue-on-failure",
        action="store_true",
        help="Keep executing after a node fails",
    )
    run_parser.set_defaults(func=cmd_run)

    nodes_parser = subparsers.add_parser("nodes", help="List the built-in node catalog")
    nodes_parser.set_defaults(func=cmd_nodes)

    plan_parser = subparsers.add_parser("plan-edge", help="Check whether an edge may be created")
    plan_parser.add_argument("request", help="Edge request JSON file ('-' for stdin)")
    plan_parser.set_defaults(func=cmd_plan_edge)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="flows",
        description="flows - compute execution orders and run workflow graphs",
    )
    parser.add_argument("--log-level", default=None, help="Logging level (default from config)")
    subparsers = parser.add_subparsers(dest="command", required=True)
    register_commands(subparsers)

    args = parser.parse_args(argv)
    config = RuntimeConfig()
    configure_logging(level=args.log_level or config.log_level, format=config.log_format)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
