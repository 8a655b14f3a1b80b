import argparse
import json
import logging
import sys
from typing import List, Optional

from .core.config.config_loader import load_config
from .core.constants import MAX_TRACE_DEPTH
from .core.db.db import DatabaseManager
from .core.exceptions import FlowLoomError
from .core.flow import (
    BusinessFlowService,
    FlowDocumentStore,
    GitCredentials,
    JsonStructureScanner,
    LocalRepositoryProvider,
)
from .core.analysis.entry_point_finder import EntryPointFinder


def setup_logging(log_level: str = "INFO") -> None:
    """Configure application logging."""
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[
            logging.StreamHandler(sys.stdout)
        ]
    )
    # Reduce noise from third-party libraries
    logging.getLogger("sqlalchemy").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.ERROR)
    logging.getLogger("sqlalchemy.engine.Engine").setLevel(logging.ERROR)
    logging.getLogger("sqlalchemy.pool").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.orm").setLevel(logging.WARNING)
    logging.getLogger("psycopg2").setLevel(logging.WARNING)


logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="flowloom",
        description="FlowLoom - business flow tracing across services",
    )
    parser.add_argument("--config", type=str, default=None, help="Path to flowloom.yaml")
    parser.add_argument(
        "--log-level",
        type=str,
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (overrides config)"
    )
    sub = parser.add_subparsers(dest="command", required=True)

    flows = sub.add_parser("flows", help="Generate and store flows for keywords")
    flows.add_argument("--keyword", action="append", required=True, help="Keyword (repeatable)")
    flows.add_argument(
        "--repo", action="append", required=True,
        help="Local working copy; the first one is the primary repository (repeatable)",
    )
    flows.add_argument("--max-depth", type=int, default=None, help="Maximum call depth")
    auth = flows.add_mutually_exclusive_group(required=True)
    auth.add_argument("--public", action="store_true", help="Repositories need no credentials")
    auth.add_argument("--git-username", type=str, help="Git username")
    flows.add_argument("--git-token", type=str, help="Git token (with --git-username)")

    graph = sub.add_parser("graph", help="Print the service dependency graph")
    graph.add_argument("--repo", action="append", required=True, help="Local working copy (repeatable)")

    return parser


def _credentials(args) -> Optional[GitCredentials]:
    if args.public:
        return GitCredentials.anonymous()
    if args.git_username and args.git_token:
        return GitCredentials(username=args.git_username, token=args.git_token)
    return None


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for FlowLoom."""
    parser = build_parser()
    args = parser.parse_args(argv)
    if getattr(args, "max_depth", None) is not None and not 0 <= args.max_depth <= MAX_TRACE_DEPTH:
        parser.error(f"--max-depth must be between 0 and {MAX_TRACE_DEPTH}")

    config = load_config(args.config)
    setup_logging(args.log_level or config.logging.level)

    db_manager = DatabaseManager(config.database.url, echo=config.database.echo)
    db_manager.create_tables()

    service = BusinessFlowService(
        scanner=JsonStructureScanner(config.flow.structure_filename),
        repository_provider=LocalRepositoryProvider(),
        store=FlowDocumentStore(db_manager),
        finder=EntryPointFinder(min_relevance=config.flow.min_relevance),
        max_workers=config.flow.max_workers,
    )

    try:
        if args.command == "graph":
            graph = service.analyze_dependencies(args.repo)
            print(json.dumps(graph.to_dict(), indent=2))
            return 0

        max_depth = args.max_depth if args.max_depth is not None else config.flow.max_depth
        results = service.generate_and_save_flows_by_keywords(
            args.keyword, args.repo, _credentials(args), max_depth,
        )
        summary = {
            keyword: [r.to_dict() for r in flows]
            for keyword, flows in results.items()
        }
        print(json.dumps(summary, indent=2))
        return 0
    except FlowLoomError as e:
        logger.error(f"{type(e).__name__}: {e}")
        return 1
    finally:
        db_manager.dispose()


if __name__ == "__main__":
    sys.exit(main())
