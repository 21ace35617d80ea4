"""
Command line access to the workflow engine.

Provides:
- run: execute a workflow file with the builtin executors
- order: print the topological execution order
- validate: print pre-flight validation issues
- export: write the downloadable export document
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path

from pydantic import ValidationError

from flowgraph.errors import GraphCycleError
from flowgraph.executors import create_default_registry
from flowgraph.models import Workflow, parse_workflow
from flowgraph.observability import setup_logging
from flowgraph.orchestrator import ExecutionOrchestrator, RunStatus
from flowgraph.persistence import write_export
from flowgraph.store import WorkflowGraphStore
from flowgraph.validation import IssueLevel, validate_workflow


def load_workflow_file(path: str) -> Workflow:
    """Load a workflow or export document and normalize it through the store."""
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    store = WorkflowGraphStore(workflow=parse_workflow(data))
    return store.snapshot()


def _load_or_report(path: str) -> Workflow | None:
    try:
        return load_workflow_file(path)
    except (OSError, ValueError, ValidationError) as e:
        print(f"Error loading {path}: {e}", file=sys.stderr)
        return None


def cmd_run(args: argparse.Namespace) -> int:
    """Run a workflow and print the report."""
    setup_logging()

    workflow = _load_or_report(args.file)
    if workflow is None:
        return 1

    orchestrator = ExecutionOrchestrator(
        create_default_registry(),
        max_concurrency=args.max_concurrency,
    )
    try:
        report = asyncio.run(orchestrator.run(workflow))
    except GraphCycleError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    output = json.dumps(report.to_dict(), indent=2, default=str)
    if args.report:
        Path(args.report).write_text(output, encoding="utf-8")
    print(output)

    return 0 if report.overall_status == RunStatus.COMPLETED else 1


def cmd_order(args: argparse.Namespace) -> int:
    """Print the execution order, one node per line."""
    setup_logging()

    workflow = _load_or_report(args.file)
    if workflow is None:
        return 1

    try:
        order = ExecutionOrchestrator(create_default_registry(), max_concurrency=1).plan(workflow)
    except GraphCycleError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    for node_id in order:
        print(node_id)
    return 0


def cmd_validate(args: argparse.Namespace) -> int:
    """Print validation issues."""
    setup_logging()

    workflow = _load_or_report(args.file)
    if workflow is None:
        return 1

    issues = validate_workflow(workflow, create_default_registry())
    if not issues:
        print("Workflow is valid")
        return 0

    for issue in issues:
        location = f" [{issue.node_id}]" if issue.node_id else ""
        print(f"{issue.level.value.upper()}{location}: {issue.message}")

    errors = sum(1 for issue in issues if issue.level == IssueLevel.ERROR)
    print(f"\n{errors} error(s), {len(issues) - errors} warning(s)")
    return 1


def cmd_export(args: argparse.Namespace) -> int:
    """Write the export document."""
    setup_logging()

    workflow = _load_or_report(args.file)
    if workflow is None:
        return 1

    path = write_export(workflow, args.out)
    print(path)
    return 0


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="flowgraph",
        description="Workflow graph engine CLI",
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to execute")

    # run command
    run_parser = subparsers.add_parser("run", help="Execute a workflow file")
    run_parser.add_argument("file", help="Workflow or export JSON file")
    run_parser.add_argument("--max-concurrency", type=int, default=None,
                            help="Nodes dispatched at once (default from settings)")
    run_parser.add_argument("--report", help="Also write the report JSON to this path")

    # order command
    order_parser = subparsers.add_parser("order", help="Print the execution order")
    order_parser.add_argument("file", help="Workflow or export JSON file")

    # validate command
    validate_parser = subparsers.add_parser("validate", help="Validate a workflow file")
    validate_parser.add_argument("file", help="Workflow or export JSON file")

    # export command
    export_parser = subparsers.add_parser("export", help="Write the export document")
    export_parser.add_argument("file", help="Workflow JSON file")
    export_parser.add_argument("--out", required=True, help="Output directory")

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    if args.command == "run":
        return cmd_run(args)
    elif args.command == "order":
        return cmd_order(args)
    elif args.command == "validate":
        return cmd_validate(args)
    elif args.command == "export":
        return cmd_export(args)
    else:
        print(f"Unknown command: {args.command}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
