"""CLI for running the Riksdagen ingestion pipeline."""

import argparse
import asyncio
import logging
import sys

from pydantic import ValidationError

from pipeline.runner import STAGES, run_pipeline, run_stage
from riksdagsrosten.config import Settings
from riksdagsrosten.store import Store

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(levelname)-5.5s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


def _split_stage_names(value: str) -> list[str]:
    """Parse a comma-separated list of stage names."""
    names = [name.strip() for name in value.split(",") if name.strip()]
    unknown = [name for name in names if name not in STAGES]
    if unknown:
        raise argparse.ArgumentTypeError(
            f"unknown stage(s): {', '.join(unknown)} "
            f"(choose from {', '.join(STAGES)})"
        )
    return names


def load_settings(sessions: list[str] | None = None) -> Settings:
    """Load settings from the environment, optionally overriding sessions."""
    if sessions:
        return Settings(sessions=sessions)
    return Settings()


async def init_db(settings: Settings) -> int:
    """Create all tables and indexes.

    Returns:
        0 on success, 1 on failure.
    """
    store = Store.from_settings(settings)
    try:
        await store.create_schema()
        logger.info(f"Schema ready at {store.engine.url.render_as_string(hide_password=True)}")
        return 0
    except Exception:
        logger.exception("Failed to create schema")
        return 1
    finally:
        await store.dispose()


def list_stages() -> int:
    """Print the stage registry in execution order."""
    for position, stage in enumerate(STAGES.values(), start=1):
        print(f"{position}. {stage.name:<10} {stage.description}")
    return 0


def main(argv: list[str] | None = None) -> int:
    """Main entry point for CLI."""
    parser = argparse.ArgumentParser(description="Riksdagen data ingestion pipeline CLI")
    parser.add_argument(
        "--session",
        dest="sessions",
        action="append",
        metavar="YYYY/YY",
        help="Session to process; repeat for several (default: from settings)",
    )
    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # One subcommand per stage
    for stage in STAGES.values():
        subparsers.add_parser(stage.name, help=stage.description)

    # run command
    run_parser = subparsers.add_parser("run", help="Run stages in order")
    run_parser.add_argument(
        "--only",
        type=_split_stage_names,
        help="Comma-separated subset of stages to run (e.g. votes,proposals)",
    )

    subparsers.add_parser("init-db", help="Create database tables")
    subparsers.add_parser("stages", help="List stages in execution order")

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 1

    if args.command == "stages":
        return list_stages()

    try:
        settings = load_settings(args.sessions)
    except ValidationError as e:
        logger.error(f"Invalid configuration: {e}")
        return 1

    if args.command == "init-db":
        return asyncio.run(init_db(settings))

    elif args.command == "run":
        return asyncio.run(run_pipeline(settings, only=args.only))

    elif args.command in STAGES:
        return asyncio.run(run_stage(args.command, settings))

    else:
        parser.print_help()
        return 1


if __name__ == "__main__":
    sys.exit(main())
