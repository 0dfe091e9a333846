#!/usr/bin/env python3
"""Command-line runner for Browser Node."""
import argparse
import asyncio
import json
import sys
from typing import Any, List, Optional

from rich.table import Table

from browser_node import __version__
from browser_node.config import load_config
from browser_node.constants import ExecutionMode, Operation
from browser_node.exceptions import BrowserNodeError, InputValidationError
from browser_node.host import HostHelpers, NodeExecutionContext
from browser_node.models import ItemResult
from browser_node.orchestrator import BrowserNodeRunner
from browser_node.utils import console, get_logger

logger = get_logger("browser_node.cli")


def _read_json(path: Optional[str], default: Any) -> Any:
    if not path:
        return default
    try:
        if path == "-":
            return json.load(sys.stdin)
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise InputValidationError(f"Could not read JSON from {path}: {e}", provided_value=path) from e


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="browser-node",
        description="Run a browser operation over a batch of items",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser(
        "run",
        help="Process items from a JSON file",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    run_parser.add_argument(
        "--items",
        required=True,
        help="JSON file with a list of items ('-' for stdin); each row may carry 'json' and 'parameters'",
    )
    run_parser.add_argument(
        "--operation",
        required=True,
        help=f"Operation to run: {', '.join(op.value for op in Operation)}",
    )
    run_parser.add_argument("--options", default=None, help="JSON file with node options")
    run_parser.add_argument("--credentials", default=None, help="JSON file mapping credential types to auth data")
    run_parser.add_argument(
        "--continue-on-fail",
        action="store_true",
        help="Return per-item error results instead of aborting",
    )
    run_parser.add_argument(
        "--mode",
        choices=[mode.value for mode in ExecutionMode],
        default=ExecutionMode.CLI.value,
        help="Execution mode reported to custom scripts",
    )
    run_parser.add_argument("--workflow-id", default="standalone", help="Workflow id used in script console output")
    run_parser.add_argument("--output", default=None, help="Write results as JSON to this file")
    run_parser.add_argument("--config", default=None, help="Path to a YAML or JSON config file")
    return parser


def print_summary(results: List[ItemResult]) -> None:
    table = Table(title="Browser Node Results", show_header=True, header_style="bold magenta")
    table.add_column("Item", justify="right", style="dim cyan")
    table.add_column("URL", style="blue")
    table.add_column("Status", justify="right", style="green")
    table.add_column("Binary", style="yellow")
    table.add_column("Error", style="red")

    for result in results:
        data = result.json_data
        table.add_row(
            str(result.paired_item),
            str(data.get("url", "-")),
            str(data.get("statusCode", "-")),
            ", ".join(result.binary) or "-",
            result.error or "",
        )
    console.print(table)


async def run_command(args: argparse.Namespace) -> int:
    settings = load_config(config_file_path=args.config)
    try:
        rows = _read_json(args.items, [])
        options = _read_json(args.options, {})
        credentials = _read_json(args.credentials, {})
    except InputValidationError as e:
        logger.error(e.message, emoji_key="error")
        return 2
    if not isinstance(rows, list):
        console.print("[bold red]Error:[/bold red] --items must contain a JSON list.")
        return 2

    context = NodeExecutionContext(
        workflow_id=args.workflow_id,
        mode=ExecutionMode(args.mode),
        continue_on_fail=args.continue_on_fail,
        helpers=HostHelpers(credentials=credentials),
    )
    logger.info(f"Starting Browser Node v{__version__}", emoji_key="start")
    logger.info(f"Operation: {args.operation}, items: {len(rows)}", emoji_key="config")

    runner = BrowserNodeRunner(settings=settings, context=context)
    try:
        results = await runner.run(rows, args.operation, options)
    except BrowserNodeError as e:
        logger.critical(f"Run aborted: {e.message}", emoji_key="critical")
        return 1

    print_summary(results)
    if args.output:
        with open(args.output, "w", encoding="utf-8") as f:
            json.dump([result.to_dict() for result in results], f, indent=2)
        logger.info(f"Results written to {args.output}", emoji_key="success")
    return 0


def main(argv: Optional[List[str]] = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.command == "run":
        sys.exit(asyncio.run(run_command(args)))
    parser.print_help()


if __name__ == "__main__":
    main()
