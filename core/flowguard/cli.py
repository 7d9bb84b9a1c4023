"""
Command-line interface for flowguard.

Usage:
    flowguard validate workflow.json
    flowguard validate workflow.json --registry catalog.json --json

Dead-letter queue commands (file-backed store from the config file):
    flowguard dlq list [--filter gmail] [--json]
    flowguard dlq export dlq.csv
    flowguard dlq delete <execution_id> <node_id>
    flowguard dlq purge --yes
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path

from flowguard.config import EngineConfig
from flowguard.errors import FlowguardError
from flowguard.graph.registry import ScopeRegistry
from flowguard.graph.validator import GraphValidator
from flowguard.observability import configure_logging
from flowguard.runtime.dead_letter import DeadLetterManager
from flowguard.runtime.engine import ExecutionEngine
from flowguard.storage.execution_store import FileExecutionStore


class _DetachedExecutor:
    """Executor for operator commands that never dispatch attempts."""

    async def invoke(self, node_id, execution_id, idempotency_key):
        raise RuntimeError("flowguard CLI cannot invoke nodes")


# === validate ===


def _load_registry(path: str | None, config: EngineConfig) -> ScopeRegistry:
    registry_path = Path(path) if path else config.registry_path
    if registry_path is None:
        return ScopeRegistry.default()
    return ScopeRegistry.from_file(registry_path)


def cmd_validate(args: argparse.Namespace) -> int:
    """Validate a workflow graph file."""
    path = Path(args.graph)
    if not path.exists():
        print(f"Error: graph file not found: {path}", file=sys.stderr)
        return 1

    try:
        with open(path, encoding="utf-8-sig") as f:
            graph = json.load(f)
        registry = _load_registry(args.registry, EngineConfig())
    except (json.JSONDecodeError, ValueError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    result = GraphValidator(registry).validate(graph)

    if args.json:
        print(json.dumps(result.to_dict(), indent=2))
        return 0 if result.valid else 1

    if result.valid:
        print(f"✓ {path.name} is valid")
    else:
        print(f"✗ {path.name} is invalid")
    for issue in result.errors:
        print(f"  ERROR   [{issue.code}] {issue.path}: {issue.message}")
    for issue in result.warnings:
        print(f"  WARNING [{issue.code}] {issue.path}: {issue.message}")
    print(f"  Estimated complexity: {result.estimated_complexity}")
    if result.required_scopes:
        print("  Required scopes:")
        for scope in sorted(result.required_scopes):
            print(f"    - {scope}")
    return 0 if result.valid else 1


# === dlq ===


def _dead_letter_manager() -> tuple[ExecutionEngine, DeadLetterManager]:
    config = EngineConfig()
    engine = ExecutionEngine(
        executor=_DetachedExecutor(),
        store=FileExecutionStore(config.storage_path),
        config=config,
    )
    return engine, DeadLetterManager(engine)


async def _dlq_list(args: argparse.Namespace) -> int:
    engine, dlq = _dead_letter_manager()
    try:
        records = await dlq.list(args.filter)
        if args.json:
            print(json.dumps(await dlq.export_rows(args.filter), indent=2))
            return 0
        if not records:
            print("DLQ is empty")
            return 0
        for record in records:
            print(
                f"{record.execution_id}  {record.node_id}  "
                f"attempts={record.attempt_count}  {record.last_error or ''}"
            )
        summary = await dlq.summary()
        categories = ", ".join(f"{k}: {v}" for k, v in sorted(summary["by_category"].items()))
        print(f"\n{summary['total']} record(s) ({categories})")
        return 0
    finally:
        await engine.shutdown()


async def _dlq_export(args: argparse.Namespace) -> int:
    engine, dlq = _dead_letter_manager()
    try:
        if args.output == "-":
            await dlq.export_csv(sys.stdout, filter=args.filter)
        else:
            await dlq.export_csv(args.output, filter=args.filter)
            print(f"Exported DLQ to {args.output}")
        return 0
    finally:
        await engine.shutdown()


async def _dlq_delete(args: argparse.Namespace) -> int:
    engine, dlq = _dead_letter_manager()
    try:
        await dlq.delete(args.execution_id, args.node_id)
        print(f"Deleted {args.execution_id}:{args.node_id}")
        return 0
    finally:
        await engine.shutdown()


async def _dlq_purge(args: argparse.Namespace) -> int:
    if not args.yes:
        print("Refusing to purge without --yes", file=sys.stderr)
        return 1
    engine, dlq = _dead_letter_manager()
    try:
        removed = await dlq.purge_all()
        print(f"Purged {removed} record(s)")
        return 0
    finally:
        await engine.shutdown()


def _run_dlq(handler):
    def run(args: argparse.Namespace) -> int:
        try:
            return asyncio.run(handler(args))
        except FlowguardError as e:
            print(f"Error: {e}", file=sys.stderr)
            return 1

    return run


def register_commands(subparsers: argparse._SubParsersAction) -> None:
    """Register the validate and dlq commands."""
    validate_parser = subparsers.add_parser(
        "validate",
        help="Validate a workflow graph",
        description="Check a workflow graph for structural errors and cycles.",
    )
    validate_parser.add_argument("graph", type=str, help="Path to the graph JSON file")
    validate_parser.add_argument(
        "--registry",
        type=str,
        default=None,
        help="Registry JSON (node type scopes and weights) from the connector catalog",
    )
    validate_parser.add_argument(
        "--json",
        action="store_true",
        help="Print the validation result as JSON",
    )
    validate_parser.set_defaults(func=cmd_validate)

    dlq_parser = subparsers.add_parser("dlq", help="Inspect and manage the dead-letter queue")
    dlq_sub = dlq_parser.add_subparsers(dest="dlq_command", required=True)

    list_parser = dlq_sub.add_parser("list", help="List dead-lettered executions")
    list_parser.add_argument("--filter", type=str, default=None, help="Free-text filter")
    list_parser.add_argument("--json", action="store_true", help="Output as JSON")
    list_parser.set_defaults(func=_run_dlq(_dlq_list))

    export_parser = dlq_sub.add_parser("export", help="Export the DLQ as CSV")
    export_parser.add_argument("output", type=str, help="CSV file path, or - for stdout")
    export_parser.add_argument("--filter", type=str, default=None, help="Free-text filter")
    export_parser.set_defaults(func=_run_dlq(_dlq_export))

    delete_parser = dlq_sub.add_parser("delete", help="Permanently delete one DLQ record")
    delete_parser.add_argument("execution_id", type=str)
    delete_parser.add_argument("node_id", type=str)
    delete_parser.set_defaults(func=_run_dlq(_dlq_delete))

    purge_parser = dlq_sub.add_parser("purge", help="Delete every DLQ record")
    purge_parser.add_argument("--yes", action="store_true", help="Confirm the purge")
    purge_parser.set_defaults(func=_run_dlq(_dlq_purge))


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="flowguard",
        description="flowguard - validate workflow graphs and manage failed executions",
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        help="Log level (DEBUG, INFO, WARNING, ERROR)",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)
    register_commands(subparsers)

    args = parser.parse_args(argv)
    configure_logging(level=args.log_level)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
