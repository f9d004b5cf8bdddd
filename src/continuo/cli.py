"""Diagnostic command-line interface for continuo."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from collections.abc import Sequence
from pathlib import Path

from rich.console import Console
from rich.table import Table

from . import __version__
from .engine import build_engine
from .errors import ContinuoError, ResolutionError
from .logging_utils import setup_logging
from .models import Track
from .paths import config_path, log_dir, resolution_cache_path
from .runtime_config import EngineConfig, load_config, resolve_log_level, with_overrides
from .services.resolution_cache import ResolutionCache
from .utils.titles import dedupe_key
from .version import build_help_epilog

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="continuo",
        description="Inspect continuo's metadata search, resolution and cache.",
        epilog=build_help_epilog(),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}"
    )
    parser.add_argument("--verbose", action="store_true", help="Enable verbose output")
    parser.add_argument(
        "--quiet", action="store_true", help="Only show warnings and errors"
    )
    parser.add_argument("--log-file", help="Write logs to a file path")
    parser.add_argument("--config", help="Read settings from this JSON file")
    parser.add_argument("--api-key", help="YouTube Data API key for this run")
    commands = parser.add_subparsers(dest="command", required=True)

    search = commands.add_parser("search", help="Search metadata providers")
    search.add_argument("query")
    search.add_argument("--limit", type=int, default=10)

    resolve = commands.add_parser("resolve", help="Resolve a track to a media id")
    resolve.add_argument("artist")
    resolve.add_argument("title")

    cache = commands.add_parser("cache", help="Inspect the resolution cache")
    cache_commands = cache.add_subparsers(dest="cache_command", required=True)
    cache_commands.add_parser("stats", help="Show cache statistics")
    cache_commands.add_parser("clear", help="Remove every cached resolution")
    return parser


def _load_config(args: argparse.Namespace) -> EngineConfig:
    config = load_config(Path(args.config) if args.config else config_path())
    if args.api_key:
        config = with_overrides(config, youtube_api_key=args.api_key)
    return config


def _search(console: Console, config: EngineConfig, query: str, limit: int) -> int:
    engine = build_engine(config, cache_path=resolution_cache_path())
    try:
        tracks = asyncio.run(engine.repository.search(query, limit))
    finally:
        engine.close()
    if not tracks:
        console.print(f"No results for [bold]{query}[/bold].")
        return 1
    table = Table(title=f"Results for {query!r}")
    table.add_column("#", justify="right")
    table.add_column("Title")
    table.add_column("Artist")
    table.add_column("Album")
    table.add_column("Identity", style="dim")
    for index, track in enumerate(tracks, start=1):
        table.add_row(str(index), track.title, track.artist, track.album, track.identity)
    console.print(table)
    return 0


def _resolve(console: Console, config: EngineConfig, artist: str, title: str) -> int:
    engine = build_engine(config, cache_path=resolution_cache_path())
    track = Track(identity=f"query_{dedupe_key(artist, title)}", title=title, artist=artist)
    try:
        resolution = asyncio.run(engine.resolver.resolve(track))
    except ResolutionError as exc:
        console.print(f"[red]Could not resolve[/red] {artist} - {title}: {exc.kind.value}")
        return 2
    finally:
        engine.close()
    table = Table(title=f"{artist} - {title}")
    table.add_column("Media id")
    table.add_column("Source")
    table.add_column("Fallback")
    table.add_row(
        resolution.playable_id,
        resolution.source,
        "yes" if resolution.is_fallback else "no",
    )
    console.print(table)
    usage = engine.quota_usage.stats()
    console.print(f"Estimated quota used today: {usage.used}/{usage.limit}")
    return 0


def _cache(console: Console, config: EngineConfig, command: str) -> int:
    cache = ResolutionCache(resolution_cache_path(), ttl_s=config.cache_ttl_s)
    if command == "clear":
        removed = cache.clear()
        console.print(f"Removed {removed} cached resolutions.")
        return 0
    stats = cache.stats()
    table = Table(title="Resolution cache")
    table.add_column("Field")
    table.add_column("Value", justify="right")
    table.add_row("Path", str(stats.path))
    table.add_row("Entries", str(stats.entries))
    table.add_row("Durable", str(stats.durable))
    table.add_row("TTL (days)", f"{config.cache_ttl_s / 86400:.1f}")
    console.print(table)
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    console = Console()
    try:
        level = resolve_log_level(verbose=args.verbose, quiet=args.quiet)
        setup_logging(
            log_dir=log_dir(),
            level=level,
            log_file=Path(args.log_file) if args.log_file else None,
        )
        config = _load_config(args)
        logger.info("Running continuo %s", args.command)
        if args.command == "search":
            return _search(console, config, args.query, args.limit)
        if args.command == "resolve":
            return _resolve(console, config, args.artist, args.title)
        return _cache(console, config, args.cache_command)
    except ContinuoError as exc:
        logger.error("Command failed: %s", exc)
        console.print(f"[red]{exc}[/red]")
        return 1
    except Exception as exc:  # pragma: no cover - top-level safety net
        logger.exception("Unhandled error: %s", exc)
        print("Unexpected error. Re-run with --verbose for details.", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
