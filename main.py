#!/usr/bin/env python3
"""
cmdscope - Command Resolution Engine
====================================

Main entry point for command lookups.

Usage:
    python main.py Get-Item                     # Resolve a command
    python main.py "Get-*" --command-type Function
    python main.py --verb Get --noun "Chi*"     # Verb/noun form
    python main.py Get-Item --syntax            # Syntax strings
    python main.py --complete-noun Ch           # Noun completion
    python main.py Get-Item --server http://127.0.0.1:8765
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

# Ensure project root is in path
sys.path.insert(0, str(Path(__file__).parent))

from rich.console import Console
from rich.table import Table

from commands.registry import CommandRegistry
from core.errors import QueryTerminatedError
from core.orchestrator import complete_noun, get_command
from discovery.finalizer import CommandSummary
from discovery.query import CommandQuery
from infra.client import QueryClient
from infra.config import ConfigManager
from infra.logging import configure_logging


# Setup rich console
console = Console()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="cmdscope - resolve command names against a command registry"
    )
    parser.add_argument("name", nargs="*", help="Command names or wildcard patterns")
    parser.add_argument("--verb", action="append", default=[], help="Verb pattern (repeatable)")
    parser.add_argument("--noun", action="append", default=[], help="Noun pattern (repeatable)")
    parser.add_argument("--module", "-m", action="append", help="Module name pattern (repeatable)")
    parser.add_argument(
        "--fully-qualified-module",
        action="append",
        metavar="NAME[@VERSION]",
        help="Module constraint; VERSION is the minimum version"
    )
    parser.add_argument(
        "--command-type", "-t",
        help="Command types, comma separated (Alias,Function,Cmdlet,...)"
    )
    parser.add_argument("--total-count", type=int, default=-1, help="Maximum number of results")
    parser.add_argument("--syntax", action="store_true", help="Show syntax instead of commands")
    parser.add_argument("--show-command-info", action="store_true", help="Show command descriptors")
    parser.add_argument("--all", "-a", action="store_true", help="Include shadowed commands")
    parser.add_argument("--list-imported", action="store_true", help="Only commands already loaded")
    parser.add_argument("--parameter-name", action="append", help="Parameter name pattern (repeatable)")
    parser.add_argument("--parameter-type", action="append", help="Parameter type name (repeatable)")
    parser.add_argument(
        "--argument", action="append", dest="argument_list",
        help="Argument for dynamic parameter discovery (repeatable)"
    )
    parser.add_argument("--complete-noun", metavar="WORD", help="Complete a noun and exit")
    parser.add_argument("--registry", "-r", help="Registry YAML file (default: registry.path)")
    parser.add_argument("--server", help="Query a running server instead of a local registry")
    parser.add_argument(
        "--config", "-c",
        default="cmdscope.yaml",
        help="Path to configuration file"
    )
    parser.add_argument(
        "--log-level", "-l",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level"
    )
    return parser


def parse_module_specs(values: Optional[List[str]]) -> Optional[List[dict]]:
    if values is None:
        return None
    specs = []
    for value in values:
        name, _, version = value.partition("@")
        specs.append({"name": name, "version": version or None})
    return specs


def build_query(args: argparse.Namespace) -> CommandQuery:
    return CommandQuery(
        name=args.name or None,
        verb=args.verb,
        noun=args.noun,
        module=args.module,
        fully_qualified_module=parse_module_specs(args.fully_qualified_module),
        command_type=args.command_type,
        total_count=args.total_count,
        syntax=args.syntax,
        show_command_info=args.show_command_info,
        all=args.all,
        list_imported=args.list_imported,
        parameter_name=args.parameter_name,
        parameter_type=args.parameter_type,
        argument_list=args.argument_list,
    )


def print_commands(rows: List[tuple]) -> None:
    """Print (type, name, version, source) rows."""
    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("CommandType")
    table.add_column("Name", style="bold")
    table.add_column("Version")
    table.add_column("Source", style="dim")
    for row in rows:
        table.add_row(*row)
    console.print(table)


def print_summaries(summaries: List[CommandSummary]) -> None:
    for summary in summaries:
        console.print(f"[bold]{summary.name}[/bold] [dim]({summary.command_type}, {summary.module_name or '-'})[/dim]")
        for parameter_set in summary.parameter_sets:
            marker = " [green](default)[/green]" if parameter_set.is_default else ""
            names = ", ".join(p.name for p in parameter_set.parameters)
            console.print(f"  {parameter_set.name}{marker}: {names}")


def print_errors(errors: List[tuple]) -> None:
    """Print (error id, message) diagnostics."""
    for error_id, message in errors:
        console.print(f"[red]{error_id}:[/red] {message}")


def run_local(args: argparse.Namespace, config: ConfigManager) -> int:
    registry_path = args.registry or config.registry_path
    try:
        registry = CommandRegistry.from_yaml(registry_path)
    except FileNotFoundError:
        console.print(f"[red]Registry not found: {registry_path}[/red]")
        return 2

    context = registry.as_context(config.origin)

    if args.complete_noun is not None:
        for noun in complete_noun(context, args.complete_noun, args.module):
            console.print(noun)
        return 0

    try:
        result = get_command(context, build_query(args))
    except QueryTerminatedError as e:
        console.print(f"[bold red]{e.error_id}:[/bold red] {e}")
        return 2

    if args.syntax:
        for line in result.output:
            console.print(line)
    elif args.show_command_info:
        print_summaries(result.output)
    elif result.output:
        print_commands([
            (
                c.command_type.label,
                c.name,
                c.module.version if c.module is not None else "",
                c.module_name,
            )
            for c in result.output
        ])

    print_errors([(e.error_id, e.message) for e in result.errors])
    return 0 if result.success else 1


def run_remote(args: argparse.Namespace) -> int:
    with QueryClient(args.server) as client:
        if args.complete_noun is not None:
            response = client.complete_noun(args.complete_noun, args.module)
            if not response.success:
                console.print(f"[red]{response.error}[/red]")
                return 2
            for noun in response.data:
                console.print(noun)
            return 0

        response = client.query(build_query(args))

    if not response.success:
        console.print(f"[bold red]{response.error}[/bold red]")
        return 2

    data = response.data
    if args.syntax:
        for line in data.syntax:
            console.print(line)
    elif args.show_command_info:
        print_summaries(data.results)
    elif data.results:
        print_commands([(s.command_type, s.name, "", s.module_name) for s in data.results])

    print_errors([(e.error_id, e.message) for e in data.errors])
    return 0 if not data.errors else 1


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)

    config = ConfigManager(args.config)
    level = getattr(logging, args.log_level) if args.log_level else config.log_level
    configure_logging(
        level=level,
        log_dir=str(config.get("logging.dir", "logs")),
        file=config.get_bool("logging.file"),
    )
    logger = logging.getLogger("cmdscope.main")

    try:
        if args.server:
            return run_remote(args)
        return run_local(args, config)
    except ValueError as e:
        # Invalid criteria (empty names, unknown command type)
        logger.debug(f"Invalid query: {e}")
        console.print(f"[red]Invalid query:[/red] {e}")
        return 2


if __name__ == "__main__":
    sys.exit(main())
