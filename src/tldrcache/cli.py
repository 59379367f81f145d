"""Command-line entrypoint.

Responsibilities (and nothing more):
- Parse arguments and load Settings
- Configure structlog
- Build AppState (HTTP client, fetcher, cache store)
- Dispatch to one command and map TldrCacheError to an exit code
"""

from __future__ import annotations

import argparse
import logging
import sys
from datetime import timedelta
from pathlib import Path
from typing import TYPE_CHECKING

import structlog

from tldrcache import __version__
from tldrcache.config import effective_languages, load_settings
from tldrcache.errors import ErrorCode, TldrCacheError
from tldrcache.fetcher import Fetcher, build_http_client
from tldrcache.layout import ENGLISH
from tldrcache.parser import parse_page, render_page
from tldrcache.resolver import dedup_preserving_order, suggest_pages
from tldrcache.state import AppState
from tldrcache.store import CacheStore

if TYPE_CHECKING:
    from collections.abc import Sequence

    from tldrcache.config import Settings

log = structlog.get_logger()

_PLATFORM_BY_SYS = {
    "linux": "linux",
    "darwin": "osx",
    "win32": "windows",
    "cygwin": "windows",
    "android": "android",
    "sunos5": "sunos",
}
_ISSUES_URL = "https://github.com/tldr-pages/tldr/issues"
_PULLS_URL = "https://github.com/tldr-pages/tldr/pulls"


# ---------------------------------------------------------------------------
# Logging setup
# ---------------------------------------------------------------------------


def _setup_logging(level: str, fmt: str) -> None:
    """Configure structlog. Called once at startup before any log statements."""
    log_level = logging.getLevelNamesMapping()[level]

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if fmt == "json":
        processors = [*shared_processors, structlog.processors.JSONRenderer()]
    else:
        processors = [*shared_processors, structlog.dev.ConsoleRenderer()]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        # Logs go to stderr; stdout is reserved for pages and listings
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )


def _log_level(args: argparse.Namespace, settings: Settings | None = None) -> str:
    if args.quiet:
        return "ERROR"
    if args.verbose:
        return "DEBUG"
    # Before settings exist only warnings are shown.
    return settings.logging.level if settings is not None else "WARNING"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def default_platform(sys_platform: str = sys.platform) -> str:
    for prefix in ("openbsd", "freebsd", "netbsd"):
        if sys_platform.startswith(prefix):
            return prefix
    return _PLATFORM_BY_SYS.get(sys_platform, "common")


def format_duration(delta: timedelta) -> str:
    """Render a duration as its two most significant units: '1d, 2h', '3min, 4s'."""
    secs = max(int(delta.total_seconds()), 0)
    days, secs = divmod(secs, 86400)
    hours, secs = divmod(secs, 3600)
    minutes, secs = divmod(secs, 60)

    if days:
        return f"{days}d, {hours}h" if hours else f"{days}d"
    if hours:
        return f"{hours}h, {minutes}min" if minutes else f"{hours}h"
    if minutes:
        return f"{minutes}min, {secs}s" if secs else f"{minutes}min"
    return f"{secs}s"


def _print_lines(lines: list[str]) -> None:
    if lines:
        sys.stdout.write("\n".join(lines) + "\n")


def _show_page(path: Path, *, raw: bool, compact: bool) -> None:
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise TldrCacheError(code=ErrorCode.IO, message=f"'{path}': {exc}") from exc

    if raw:
        sys.stdout.write(content)
        return
    sys.stdout.write(render_page(parse_page(content, str(path)), compact=compact))


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


def ensure_cache(state: AppState) -> None:
    """Download on first use; refresh when older than the configured max age."""
    store, settings = state.store, state.settings

    if not store.english_dir_exists():
        state.reporter.info("cache_empty_downloading", path=str(store.root))
        store.update(settings.cache.mirror, state.update_languages)
        return

    if not settings.cache.auto_update:
        return
    if store.age() <= timedelta(seconds=settings.max_age_seconds):
        return

    if state.offline:
        state.reporter.warning(
            "cache_stale_offline",
            age=format_duration(store.age()),
            hint="run tldr without --offline to update",
        )
        return
    state.reporter.info("cache_stale_updating", age=format_duration(store.age()))
    store.update(settings.cache.mirror, state.update_languages)


def cmd_info(state: AppState) -> None:
    info = state.store.info()
    settings = state.settings
    lines = [f"Cache: {info.root} (last update: {format_duration(info.age)} ago)"]

    if settings.cache.auto_update:
        remaining = timedelta(seconds=settings.max_age_seconds) - info.age
        lines.append(f"Automatic update in {format_duration(remaining)}")
    else:
        lines.append("Automatic updates are disabled")

    lines.append("Installed languages:")
    # Language codes are at most 5 characters (ll_CC).
    lines += [f"{lang:5} : {count}" for lang, count in info.languages.items()]
    lines.append(f"total : {info.total} pages")
    _print_lines(lines)


def not_found_error(state: AppState, name: str) -> TldrCacheError:
    """Build the not-found error; the advice depends on where languages came from."""
    message = f"page '{name}' not found."
    if state.languages_from_cli:
        return TldrCacheError(
            code=ErrorCode.PAGE_NOT_FOUND,
            message=message,
            suggestion="Try running tldr without --language.",
        )

    suggestion = (
        "Try running 'tldr --update'.\n\n"
        "If you want to request creation of that page, you can file an issue here:\n"
        f"{_ISSUES_URL}\n"
        "or document it yourself and create a pull request here:\n"
        f"{_PULLS_URL}"
    )
    try:
        similar = suggest_pages(name, state.store.list_all())
    except TldrCacheError:
        similar = []
    if similar:
        suggestion = f"Did you mean: {', '.join(similar)}?\n" + suggestion
    return TldrCacheError(code=ErrorCode.PAGE_NOT_FOUND, message=message, suggestion=suggestion)


def cmd_page(state: AppState, words: list[str], platform: str, *, raw: bool, compact: bool) -> None:
    name = "-".join(words).lower()
    paths = state.store.find(name, state.languages, platform)
    if not paths:
        raise not_found_error(state, name)

    for other in paths[1:]:
        state.reporter.warning(
            "page_found_for_other_platform",
            platform=other.parent.name,
            command=f"tldr --platform {other.parent.name} {other.stem}",
        )
    _show_page(paths[0], raw=raw, compact=compact)


# ---------------------------------------------------------------------------
# Entrypoint
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tldr",
        description="Show tldr pages from a local, checksum-verified cache.",
    )
    parser.add_argument("page", nargs="*", help="The tldr page to show.")

    ops = parser.add_mutually_exclusive_group()
    ops.add_argument("-u", "--update", action="store_true", help="Update the cache.")
    ops.add_argument("-l", "--list", action="store_true", help="List pages for the platform.")
    ops.add_argument("-a", "--list-all", action="store_true", help="List all pages.")
    ops.add_argument("-i", "--info", action="store_true", help="Show cache information.")
    ops.add_argument("-r", "--render", type=Path, metavar="FILE", help="Render a markdown file.")
    ops.add_argument("--clean-cache", action="store_true", help="Clean the cache.")
    ops.add_argument("--list-platforms", action="store_true", help=argparse.SUPPRESS)
    ops.add_argument("--list-languages", action="store_true", help=argparse.SUPPRESS)

    parser.add_argument(
        "-p", "--platform", default=default_platform(), help="Platform to show pages for."
    )
    parser.add_argument(
        "-L",
        "--language",
        dest="languages",
        action="append",
        metavar="LANGUAGE",
        help="Language to use (repeatable, highest priority first).",
    )
    parser.add_argument(
        "-o", "--offline", action="store_true", help="Do not update the cache, even if stale."
    )
    parser.add_argument("-c", "--compact", action="store_true", help="Strip empty lines.")
    parser.add_argument("-R", "--raw", action="store_true", help="Print raw markdown.")
    parser.add_argument("-q", "--quiet", action="store_true", help="Suppress status messages.")
    parser.add_argument("-v", "--verbose", action="store_true", help="Show debug messages.")
    parser.add_argument("--config", type=Path, metavar="FILE", help="Alternative config file.")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def _build_state(args: argparse.Namespace, settings: Settings) -> AppState:
    reporter = structlog.get_logger()
    http_client = build_http_client(settings.fetcher)
    fetcher = Fetcher(http_client, max_response_bytes=settings.fetcher.max_response_bytes)
    store = CacheStore(settings.cache.dir, reporter=reporter, fetcher=fetcher)

    configured = effective_languages(settings.cache.languages)
    if args.languages:
        languages = [*args.languages, ENGLISH]
        update_languages = dedup_preserving_order([*args.languages, *configured])
    else:
        languages = configured
        update_languages = configured

    return AppState(
        settings=settings,
        store=store,
        reporter=reporter,
        http_client=http_client,
        languages=languages,
        update_languages=update_languages,
        languages_from_cli=bool(args.languages),
        offline=args.offline,
    )


def _dispatch(args: argparse.Namespace, state: AppState, parser: argparse.ArgumentParser) -> None:
    store, settings = state.store, state.settings

    listing = args.info or args.list or args.list_all or args.list_platforms or args.list_languages
    if not (args.clean_cache or args.update or listing or args.page):
        parser.print_help(sys.stderr)
        return

    if args.clean_cache:
        store.clean()
        return
    if args.update:
        store.update(settings.cache.mirror, state.update_languages)
        return

    ensure_cache(state)

    if args.info:
        cmd_info(state)
    elif args.list:
        _print_lines(store.list_for(args.platform))
    elif args.list_all:
        _print_lines(store.list_all())
    elif args.list_platforms:
        _print_lines(store.list_platforms())
    elif args.list_languages:
        _print_lines(store.list_languages())
    else:
        cmd_page(state, args.page, args.platform, raw=args.raw, compact=args.compact)


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    # Settings loading may log; stdout must stay clean from the first line.
    _setup_logging(_log_level(args), "text")

    state: AppState | None = None
    try:
        settings = load_settings(args.config)
        _setup_logging(_log_level(args, settings), settings.logging.format)

        if args.render is not None:
            _show_page(args.render, raw=args.raw, compact=args.compact)
            return 0

        state = _build_state(args, settings)
        _dispatch(args, state, parser)
    except TldrCacheError as exc:
        sys.stderr.write(f"error: {exc.message}\n")
        if exc.suggestion:
            sys.stderr.write(f"{exc.suggestion}\n")
        log.debug("command_failed", code=exc.code, exit_code=exc.exit_code)
        return exc.exit_code
    finally:
        if state is not None and state.http_client is not None:
            state.http_client.close()

    return 0


if __name__ == "__main__":
    sys.exit(main())
