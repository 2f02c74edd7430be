#!/usr/bin/env python3
"""Pipeflow CLI - management utility for a Pipeflow deployment."""

import argparse
import asyncio
import json
import sys
from pathlib import Path

from pydantic import ValidationError

from pipeflow.models.pipeline_definition import WorkflowGraph
from pipeflow.settings import settings
from pipeflow.utils.db_manager import db_manager
from pipeflow.utils.logger import logger

SETTINGS_TEMPLATE = """# Pipeflow Configuration File

# Server settings
port = 8000
host = "127.0.0.1"
debug = true

# Database settings
database_driver = "sqlite"
database_name = "pipeflow"

# Pipeline defaults
pipeline_default_timeout_ms = 30000
pipeline_default_retry_delay_ms = 1000
pipeline_default_max_retries = 0

# Seconds between quota reconcile runs (0 disables)
quota_reconcile_interval_seconds = 60

# Step types served over HTTP
[http_providers]
# summarize = "http://localhost:9000/summarize"
"""


def init_project(path: str) -> None:
    """Create a settings file for a new deployment."""
    project_path = Path(path).resolve()
    project_path.mkdir(parents=True, exist_ok=True)

    settings_file = project_path / "settings.toml"
    if settings_file.exists():
        logger.info(f"Settings file already exists: {settings_file}")
        return
    settings_file.write_text(SETTINGS_TEMPLATE)
    logger.info(f"Created settings file: {settings_file}")


def run_server(host: str | None = None, port: int | None = None) -> None:
    """Run the Pipeflow server."""
    import uvicorn

    host = host or settings.host or "127.0.0.1"
    port = port or settings.port or 8000

    logger.info(f"Starting Pipeflow server at http://{host}:{port}")

    uvicorn.run(
        "pipeflow.api.app:app",
        host=host,
        port=port,
        reload=settings.debug,
        log_level="info" if settings.debug else "warning",
    )


async def init_database() -> None:
    """Create all database tables."""
    logger.info("Initializing database...")
    await db_manager.create_db_and_tables()
    await db_manager.close()
    logger.info("Database initialized successfully")


def validate_graph_file(path: str) -> int:
    """Validate a workflow graph stored as JSON.

    Returns:
        Process exit code: 0 if valid, 1 otherwise.
    """
    from pipeflow.services.pipeline.topology import validate_topology

    try:
        graph = WorkflowGraph.model_validate_json(Path(path).read_text())
    except (OSError, ValidationError) as e:
        logger.error(f"Cannot read graph from {path}: {e}")
        return 1

    result = validate_topology(graph.nodes, graph.edges)
    print(json.dumps(result.model_dump(), indent=2, ensure_ascii=False))
    return 0 if result.valid else 1


async def run_reconcile() -> None:
    """Run one quota maintenance pass against the configured database."""
    from pipeflow.services.pipeline.engine import PipelineEngine
    from pipeflow.services.pipeline.registry import build_registry
    from pipeflow.services.quota_maintenance import QuotaMaintenanceService
    from pipeflow.services.quota_service import QuotaService

    session_factory = db_manager.session_factory
    quota_service = QuotaService(session_factory)
    engine = PipelineEngine(session_factory, build_registry(settings), quota_service, settings)
    maintenance = QuotaMaintenanceService(session_factory, quota_service, engine)
    try:
        report = await maintenance.run_once()
    finally:
        await db_manager.close()
    print(json.dumps(report.model_dump(), indent=2))


def main() -> None:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="pipeflow", description="Pipeflow CLI - workflow pipelines with quota accounting"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # init command
    init_parser = subparsers.add_parser("init", help="Create a settings.toml for a new deployment")
    init_parser.add_argument(
        "path",
        nargs="?",
        default=".",
        help="Directory to initialize (default: current directory)",
    )

    # run command
    run_parser = subparsers.add_parser("run", help="Run the API server")
    run_parser.add_argument(
        "--host", type=str, default=None, help="Host to bind to (default: 127.0.0.1)"
    )
    run_parser.add_argument(
        "--port", type=int, default=None, help="Port to bind to (default: 8000)"
    )

    subparsers.add_parser("init-db", help="Create database tables")

    validate_parser = subparsers.add_parser("validate", help="Validate a workflow graph JSON file")
    validate_parser.add_argument("graph", help="Path to a JSON file with nodes and edges")

    subparsers.add_parser(
        "reconcile", help="Fail stale tasks and settle leftover quota reservations"
    )

    args = parser.parse_args()

    if args.command == "init":
        init_project(args.path)
    elif args.command == "run":
        run_server(args.host, args.port)
    elif args.command == "init-db":
        asyncio.run(init_database())
    elif args.command == "validate":
        sys.exit(validate_graph_file(args.graph))
    elif args.command == "reconcile":
        asyncio.run(run_reconcile())
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
