import argparse
import asyncio
import json
import logging
import sys
from dataclasses import replace
from typing import Any, Dict, List, Optional

from schemagraph.common.config.settings import CrawlerSettings
from schemagraph.common.errors import SchemaGraphError
from schemagraph.dal.credentials import EnvCredentialProvider
from schemagraph.dal.sqlite import GraphDatabase, apply_migrations
from schemagraph.metadata.crawl_queue import CrawlQueue, CrawlQueueStatus
from schemagraph.metadata.crawl_service import MetadataCrawlService
from schemagraph.schema.graph import GraphFilter

logger = logging.getLogger(__name__)


def _parse_settings(pairs: List[str]) -> Dict[str, Any]:
    """Turn repeated `key=value` options into a config dict; values may be JSON literals."""
    config: Dict[str, Any] = {}
    for pair in pairs:
        key, sep, raw = pair.partition("=")
        if not sep or not key:
            raise argparse.ArgumentTypeError(f"Expected key=value, got '{pair}'")
        try:
            config[key.strip()] = json.loads(raw)
        except json.JSONDecodeError:
            config[key.strip()] = raw
    return config


def _emit(payload: Any) -> None:
    if hasattr(payload, "model_dump"):
        payload = payload.model_dump(mode="json")
    print(json.dumps(payload, indent=2, sort_keys=True, default=str))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="schemagraph", description="Metadata crawler and schema graph CLI"
    )
    parser.add_argument(
        "--db",
        default=None,
        help="Path to the graph database (default: SCHEMAGRAPH_DB_PATH or schemagraph.db)",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    subparsers.add_parser("migrate", help="Create or upgrade the graph database schema")

    add_parser = subparsers.add_parser("add-source", help="Register a data source")
    add_parser.add_argument("name", help="Display name of the source")
    add_parser.add_argument("kind", help="postgres, mysql, mongo or duckdb")
    add_parser.add_argument(
        "--config",
        default=None,
        help="Connection settings as a JSON object",
    )
    add_parser.add_argument(
        "--set",
        dest="settings",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Single connection setting; may be repeated",
    )
    add_parser.add_argument("--id", dest="source_id", default=None, help="Explicit source id")
    add_parser.add_argument("--description", default=None)
    add_parser.add_argument("--owner", dest="owners", action="append", default=[])
    add_parser.add_argument("--tag", dest="tags", action="append", default=[])

    subparsers.add_parser("list-sources", help="List registered sources")

    crawl_parser = subparsers.add_parser("crawl", help="Crawl sources into the graph")
    crawl_parser.add_argument("source_ids", nargs="*", help="Source ids to crawl")
    crawl_parser.add_argument(
        "--all", dest="crawl_all", action="store_true", help="Crawl every registered source"
    )

    check_parser = subparsers.add_parser("check", help="Check connectivity of one source")
    check_parser.add_argument("source_id")

    graph_parser = subparsers.add_parser("graph", help="Print the graph as JSON")
    graph_parser.add_argument("--source", dest="source_ids", action="append", default=[])
    graph_parser.add_argument("--node-type", dest="node_types", action="append", default=[])
    graph_parser.add_argument("--edge-type", dest="edge_types", action="append", default=[])
    graph_parser.add_argument(
        "--no-edges", dest="include_edges", action="store_false", help="Only return nodes"
    )

    delete_parser = subparsers.add_parser(
        "delete-source", help="Delete a source and everything it owns"
    )
    delete_parser.add_argument("source_id")
    return parser


async def _crawl(service: MetadataCrawlService, source_ids: List[str]) -> int:
    failures: List[str] = []

    def _report(source_id: str, status: CrawlQueueStatus) -> None:
        logger.info(f"{source_id}: {status.status}")
        if status.status == "failed":
            failures.append(source_id)
            print(f"{source_id}: failed: {status.error}", file=sys.stderr)

    queue = CrawlQueue(service, notify_status=_report)
    queue.enqueue_all(source_ids)
    try:
        await queue.join()
    finally:
        await queue.close()
    return 1 if failures else 0


async def run_command(args: argparse.Namespace, settings: CrawlerSettings) -> int:
    database = GraphDatabase.from_settings(settings)
    if args.command == "migrate":
        version = await apply_migrations(database)
        _emit({"db_path": database.db_path, "schema_version": version})
        return 0

    await apply_migrations(database)
    service = MetadataCrawlService(
        database, credentials=EnvCredentialProvider(), settings=settings
    )

    if args.command == "add-source":
        config = json.loads(args.config) if args.config else {}
        config.update(_parse_settings(args.settings))
        record = await service.sources.add_source(
            args.name,
            args.kind,
            config,
            description=args.description,
            owners=args.owners,
            tags=args.tags,
            source_id=args.source_id,
        )
        _emit(record)
    elif args.command == "list-sources":
        _emit([record.model_dump(mode="json") for record in await service.sources.list_sources()])
    elif args.command == "crawl":
        source_ids = list(args.source_ids)
        if args.crawl_all:
            source_ids = [record.id for record in await service.sources.list_sources()]
        if not source_ids:
            print("Nothing to crawl: pass source ids or --all", file=sys.stderr)
            return 2
        return await _crawl(service, source_ids)
    elif args.command == "check":
        _emit(await service.check_connection(args.source_id))
    elif args.command == "graph":
        graph_filter = GraphFilter(
            source_ids=args.source_ids,
            node_types=args.node_types,
            edge_types=args.edge_types,
            include_edges=args.include_edges,
        )
        _emit(await service.graph.get_graph(graph_filter))
    elif args.command == "delete-source":
        _emit(await service.delete_source(args.source_id))
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Run the schemagraph CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )
    if not args.command:
        parser.print_help()
        return 2

    settings = CrawlerSettings.from_env()
    if args.db:
        settings = replace(settings, graph_db_path=args.db)

    try:
        return asyncio.run(run_command(args, settings))
    except (SchemaGraphError, ValueError, argparse.ArgumentTypeError) as e:
        logger.error(f"{args.command} failed: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
