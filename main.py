#!/usr/bin/env python3
"""
LensMirror - command line entry point
=====================================

[MIRROR] Runs one operation against the local store and the remote platform:
- init-db: create / migrate the database
- find: local-first lookup (remote fallback with ENABLE_WEB_SOURCE=true)
- search: remote search, optionally mirroring every result
- creator / user: creator listing by slug or by display name
- remirror: re-download the assets of a stored lens

Usage:
    python main.py [--verbose] [--db PATH] COMMAND ...

Examples:
    python main.py init-db
    python main.py find "#halloween"
    python main.py search "dog ears" --mirror
    python main.py creator https://lensstudio.snapchat.com/creator/abc123
    python main.py remirror 123456
"""

import argparse
import asyncio
import json
import logging
import sys
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv

# .env must be loaded before the configuration is built
load_dotenv()

from config import Config, config
from core.models import Lens
from core.service import MirrorService, create_mirror_service
from core.sync.engine import creator_slug_from_url


# Logging setup
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger("lensmirror")


def _print_lenses(lenses: List[Lens]) -> None:
    json.dump([lens.to_dict() for lens in lenses], sys.stdout, indent=2, ensure_ascii=False)
    sys.stdout.write("\n")


async def run_command(service: MirrorService, args: argparse.Namespace) -> Dict[str, Any]:
    """Execute one parsed command. Returns a summary for the exit log."""
    engine = service.engine

    if args.command == "init-db":
        return {"db": service.config.database.path}

    if args.command == "find":
        lenses = await engine.find(args.term)
        _print_lenses(lenses)
        return {"results": len(lenses)}

    if args.command == "search":
        lenses = await engine.search(args.term)
        _print_lenses(lenses)
        summary: Dict[str, Any] = {"results": len(lenses)}
        if args.mirror:
            summary["mirrored"] = await engine.mirror_search_results(lenses)
        return summary

    if args.command == "creator":
        slug = creator_slug_from_url(args.slug) or args.slug
        lenses = await engine.search_by_creator_slug(slug)
        _print_lenses(lenses)
        return {"results": len(lenses)}

    if args.command == "user":
        lenses = await engine.search_by_user_name(args.name)
        _print_lenses(lenses)
        return {"results": len(lenses)}

    if args.command == "remirror":
        ok = await service.remirror.remirror(args.lens_id)
        return {"remirrored": ok}

    raise ValueError(f"Unknown command: {args.command}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Mirror camera lens metadata and assets into a local store",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py init-db
  python main.py search "dog ears" --mirror
  python main.py user "Some Creator"
""",
    )
    parser.add_argument(
        "--db",
        type=str,
        default=None,
        help=f"SQLite database path (default: {config.database.path})",
    )
    parser.add_argument(
        "--storage",
        type=str,
        default=None,
        help=f"Asset storage directory (default: {config.storage.path})",
    )
    parser.add_argument(
        "--web-source",
        action="store_true",
        help="Include web-sourced lenses in local results",
    )
    parser.add_argument(
        "--no-assets",
        action="store_true",
        help="Do not download lens assets",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose logging",
    )

    commands = parser.add_subparsers(dest="command", required=True)
    commands.add_parser("init-db", help="Create or migrate the database")

    find = commands.add_parser("find", help="Local-first lookup")
    find.add_argument("term", help="Name, #tag, or lens hash")

    search = commands.add_parser("search", help="Remote search")
    search.add_argument("term", help="Keyword, lens hash, or creator URL")
    search.add_argument("--mirror", action="store_true", help="Mirror every result")

    creator = commands.add_parser("creator", help="List a creator's lenses")
    creator.add_argument("slug", help="Creator slug or creator profile URL")

    user = commands.add_parser("user", help="List lenses of a known creator")
    user.add_argument("name", help="Creator display name")

    remirror = commands.add_parser("remirror", help="Re-download assets of a stored lens")
    remirror.add_argument("lens_id", help="Lens id")

    return parser


def apply_overrides(base: Config, args: argparse.Namespace) -> Config:
    if args.db:
        base.database.path = args.db
    if args.storage:
        base.storage.path = args.storage
    if args.web_source:
        base.mirror.enable_web_source = True
    if args.no_assets:
        base.storage.mirror_assets = False
    return base


async def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    service = create_mirror_service(apply_overrides(config, args))
    async with service:
        summary = await run_command(service, args)
    logger.info(f"[MAIN] {args.command}: {summary}")
    return 0


def cli() -> None:
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    cli()
