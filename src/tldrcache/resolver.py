"""Page resolution algorithm.

Pure lookup logic. Receives the cache root, the discovered platform list and
the caller's language priority, returns candidate paths. Never touches the
network. Follows the tldr client specification's page-resolution order:

  1. ``<lang>/<platform>/<name>.md`` for every language (skipped for ``common``)
  2. ``<lang>/common/<name>.md`` for every language
  3. every other platform, in sorted order, for every language
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from rapidfuzz import fuzz, process

from tldrcache.errors import ErrorCode, TldrCacheError
from tldrcache.layout import COMMON_PLATFORM, languages_to_dirs, page_filename

if TYPE_CHECKING:
    from collections.abc import Iterable
    from pathlib import Path

    from tldrcache.protocols import ReporterProtocol


def dedup_preserving_order(items: Iterable[str]) -> list[str]:
    """Drop repeated items, keeping the first occurrence. Order encodes priority."""
    return list(dict.fromkeys(items))


def check_platform(platform: str, platforms: list[str]) -> None:
    if platform not in platforms:
        raise TldrCacheError(
            code=ErrorCode.INVALID_INPUT,
            message=f"platform '{platform}' does not exist.",
            suggestion=f"Possible values: {', '.join(platforms)}.",
        )


def _check_page_name(name: str) -> None:
    if not name or "/" in name or "\\" in name or name.startswith("."):
        raise TldrCacheError(
            code=ErrorCode.INVALID_INPUT,
            message=f"'{name}' is not a valid page name.",
            suggestion="Page names are plain words joined with '-', e.g. 'git-commit'.",
        )


def _find_page_for(root: Path, filename: str, platform: str, lang_dirs: list[str]) -> Path | None:
    """Return the first existing page for platform, in language priority order."""
    for lang_dir in lang_dirs:
        path = root / lang_dir / platform / filename
        if path.is_file():
            return path
    return None


def find_pages(
    root: Path,
    name: str,
    languages: list[str],
    platform: str,
    platforms: list[str],
    reporter: ReporterProtocol,
) -> list[Path]:
    """Resolve a page to an ordered list of paths; index 0 is the best match.

    An empty list means the page was not found; the caller decides how to
    word that. Output is deterministic for an unchanged cache.
    """
    check_platform(platform, platforms)
    _check_page_name(name)

    filename = page_filename(name)
    lang_dirs = languages_to_dirs(dedup_preserving_order(languages))
    result: list[Path] = []

    # `common` is searched next anyway; searching it twice would duplicate hits.
    if platform != COMMON_PLATFORM:
        path = _find_page_for(root, filename, platform, lang_dirs)
        if path is not None:
            result.append(path)

    path = _find_page_for(root, filename, COMMON_PLATFORM, lang_dirs)
    if path is not None:
        result.append(path)

    for alt_platform in sorted(platforms):
        if alt_platform in (platform, COMMON_PLATFORM):
            continue

        path = _find_page_for(root, filename, alt_platform, lang_dirs)
        if path is None:
            continue

        if not result:
            reporter.warning(
                "platform_fallback",
                name=name,
                requested=platform,
                platform=alt_platform,
                command=f"tldr --platform {alt_platform} {name}",
            )
        result.append(path)

    return result


def suggest_pages(
    name: str,
    candidates: list[str],
    *,
    limit: int = 3,
    score_cutoff: int = 70,
) -> list[str]:
    """Return page names similar to name, best match first."""
    results = process.extract(
        name,
        candidates,
        scorer=fuzz.ratio,
        limit=limit,
        score_cutoff=score_cutoff,
    )
    seen: set[str] = set()
    suggestions: list[str] = []
    for term, _score, _idx in results:
        if term in seen or term == name:
            continue
        seen.add(term)
        suggestions.append(term)
    return suggestions
