"""owlflow CLI - run flow definitions locally.

Usage:
    owlflow run <flow_file> [--start NODE] [--timeout S] [--max-retries N] [--retry-delay S] [--json]
    owlflow apps [--category NAME]
    owlflow --version
    owlflow --help

Examples:
    owlflow run examples/security_alert.flow.json
    owlflow run flow.json --start notify --max-retries 0
    owlflow apps --category Development
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path

from pydantic import ValidationError

from owlflow import __version__
from owlflow.domain.models import Graph, RunState
from owlflow.execution import ExecutionEngine, ExecutionOptions
from owlflow.registry import CapabilityRegistry, build_default_registry

STATUS_MARKS = {"success": "✓", "error": "✗", "running": "…", "idle": "·"}


def load_flow(path: Path) -> Graph:
    """Load a flow JSON file (`{"nodes": [...], "edges": [...]}`).

    Editor exports that wrap the graph under a `flow` key are accepted too.
    """
    payload = json.loads(path.read_text())
    if isinstance(payload, dict) and isinstance(payload.get("flow"), dict):
        payload = payload["flow"]
    return Graph.model_validate(payload)


def print_state(state: RunState) -> None:
    print("─" * 70)
    print(f"Status: {state.status}")
    if state.error:
        print(f"Error:  {state.error}")
    print()
    for node_id, record in state.nodes.items():
        mark = STATUS_MARKS.get(record.status, "?")
        line = f"  {mark} {node_id} ({record.status})"
        if record.error:
            line += f": {record.error}"
        print(line)
    print("─" * 70)


def cmd_run(args: argparse.Namespace, registry: CapabilityRegistry | None = None) -> int:
    """Run a flow file.

    Returns:
        Exit code (0 when the run completed, 1 otherwise)
    """
    flow_file = Path(args.file)

    if not flow_file.exists():
        print(f"Error: File not found: {flow_file}", file=sys.stderr)
        return 1

    try:
        graph = load_flow(flow_file)
    except (json.JSONDecodeError, ValidationError) as e:
        print(f"Error parsing flow: {e}", file=sys.stderr)
        return 1

    try:
        options = ExecutionOptions(
            timeout=args.timeout,
            max_retries=args.max_retries,
            retry_delay=args.retry_delay,
        )
    except ValidationError as e:
        print(f"Error: Invalid execution options: {e}", file=sys.stderr)
        return 1

    engine = ExecutionEngine(graph, registry or build_default_registry(), options)

    if not args.json:
        print(f"▶ Executing: {flow_file}")
        print(f"  Nodes: {len(graph.nodes)}, edges: {len(graph.edges)}")
        print()

    state = asyncio.run(engine.execute(args.start))

    if args.json:
        print(state.model_dump_json(indent=2))
    else:
        print_state(state)

    return 0 if state.status == "completed" else 1


def cmd_apps(args: argparse.Namespace, registry: CapabilityRegistry | None = None) -> int:
    """List registered providers and their actions."""
    registry = registry or build_default_registry()
    apps = registry.get_apps_by_category(args.category) if args.category else registry.get_all_apps()

    if not apps:
        print("No apps found.")
        return 0

    for app in apps:
        print(f"{app.name} [{app.id}] - {app.category}")
        for action in app.actions:
            print(f"  • {action.id}: {action.name}")
        print()

    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="owlflow",
        description="owlflow - automation flow runner",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  owlflow run examples/security_alert.flow.json
  owlflow run flow.json --start notify --json
  owlflow apps
        """,
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"owlflow {__version__}",
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    run_parser = subparsers.add_parser("run", help="Run a flow from a JSON file")
    run_parser.add_argument("file", help="Path to the flow JSON file")
    run_parser.add_argument("--start", default=None, help="Node id to start from instead of the trigger nodes")
    run_parser.add_argument("--timeout", type=float, default=30.0, help="Seconds per action attempt (default: 30)")
    run_parser.add_argument("--max-retries", type=int, default=3, help="Retries after a failed attempt (default: 3)")
    run_parser.add_argument("--retry-delay", type=float, default=1.0, help="Seconds between attempts (default: 1)")
    run_parser.add_argument("--json", action="store_true", help="Print the final run state as JSON")

    apps_parser = subparsers.add_parser("apps", help="List available apps and actions")
    apps_parser.add_argument("--category", default=None, help="Only list apps of this category")

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point.

    Returns:
        Exit code
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command == "run":
        return cmd_run(args)
    elif args.command == "apps":
        return cmd_apps(args)
    else:
        parser.print_help()
        return 0


if __name__ == "__main__":
    sys.exit(main())
