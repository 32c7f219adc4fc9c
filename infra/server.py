#!/usr/bin/env python3
"""
cmdscope Query Server
---------------------
Runs the FastAPI service bus over a command registry.

Usage:
    python -m infra.server --port 8765
    python -m infra.server --registry registry.yaml --log-level DEBUG
"""

import argparse
import logging
import sys
from pathlib import Path

# Ensure project root is in path
sys.path.insert(0, str(Path(__file__).parent.parent))

import uvicorn
from rich.console import Console

from commands.registry import CommandRegistry
from infra.config import ConfigManager
from infra.logging import configure_logging
from infra.service_bus import ServiceBus

console = Console()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="cmdscope query server")
    parser.add_argument("--host", default=None, help="Host to bind to (default: server.host)")
    parser.add_argument("--port", type=int, default=None, help="Port to bind to (default: server.port)")
    parser.add_argument("--registry", "-r", default=None, help="Registry YAML file")
    parser.add_argument("--config", "-c", default="cmdscope.yaml", help="Path to configuration file")
    parser.add_argument("--log-level", default=None, choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    config = ConfigManager(args.config)
    level = getattr(logging, args.log_level) if args.log_level else config.log_level
    configure_logging(
        level=level,
        log_dir=str(config.get("logging.dir", "logs")),
        file=config.get_bool("logging.file"),
    )

    host = args.host or str(config.get("server.host"))
    port = args.port or config.get_int("server.port", 8765)
    registry_path = args.registry or config.registry_path

    console.print(f"[dim]Loading registry from {registry_path}...[/dim]")
    try:
        registry = CommandRegistry.from_yaml(registry_path)
    except FileNotFoundError:
        console.print(f"[red]Registry not found: {registry_path}[/red]")
        return 1

    bus = ServiceBus(registry, config.origin)
    app = bus.create_app()

    console.print(f"\n[bold green]cmdscope Query API[/bold green]")
    console.print(f"Serving {len(registry)} commands from {len(registry.modules)} loaded modules")
    console.print(f"Running on http://{host}:{port}")
    console.print(f"API docs: http://{host}:{port}/docs")
    console.print("[dim]Press Ctrl+C to stop[/dim]\n")

    uvicorn.run(
        app,
        host=host,
        port=port,
        log_level=logging.getLevelName(level).lower()
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
