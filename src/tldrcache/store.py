"""The on-disk page cache.

Layout::

    <root>/
      tldr.sha256sums          persisted manifest, written after a successful update
      pages.en/<platform>/<name>.md
      pages.<lang>/<platform>/<name>.md

The platform set is whatever exists under ``pages.en``; it is never
hard-coded because the corpus can grow new platforms. The store is owned by
one process at a time; there is no locking against concurrent runs.
"""

from __future__ import annotations

import shutil
import time
from datetime import timedelta
from typing import TYPE_CHECKING

import structlog

from tldrcache.errors import ErrorCode, TldrCacheError
from tldrcache.layout import (
    COMMON_PLATFORM,
    ENGLISH,
    MANIFEST_FILENAME,
    PAGE_SUFFIX,
    language_dir,
    language_from_dir,
)
from tldrcache.models.cache import CacheInfo
from tldrcache.resolver import check_platform, find_pages
from tldrcache.updater import run_update

if TYPE_CHECKING:
    from pathlib import Path

    from tldrcache.models.cache import UpdateSummary
    from tldrcache.protocols import FetcherProtocol, ReporterProtocol

_RUN_UPDATE = "Run 'tldr --update' to download the pages."


class CacheStore:
    """Filesystem-backed page cache: update, resolution, listing and bookkeeping."""

    def __init__(
        self,
        root: Path,
        *,
        reporter: ReporterProtocol | None = None,
        fetcher: FetcherProtocol | None = None,
    ) -> None:
        self.root = root
        self._reporter = reporter if reporter is not None else structlog.get_logger()
        self._fetcher = fetcher
        self._age: timedelta | None = None

    @property
    def manifest_path(self) -> Path:
        return self.root / MANIFEST_FILENAME

    def english_dir_exists(self) -> bool:
        return (self.root / language_dir(ENGLISH)).is_dir()

    # ------------------------------------------------------------------
    # Update
    # ------------------------------------------------------------------

    def update(self, mirror: str, languages: list[str]) -> UpdateSummary:
        """Download and extract the languages whose archives changed upstream."""
        if self._fetcher is None:
            raise RuntimeError("CacheStore was created without a fetcher")
        return run_update(
            self.root,
            self._fetcher,
            mirror,
            languages,
            self._reporter,
            count_pages=self._count_pages_or_zero,
        )

    def clean(self) -> None:
        """Remove all cached content, leaving an empty root behind."""
        try:
            if not self.root.is_dir():
                self._reporter.info("cache_missing_not_cleaning", path=str(self.root))
                self.root.mkdir(parents=True, exist_ok=True)
                return

            self._reporter.info("cache_cleaning", path=str(self.root))
            shutil.rmtree(self.root)
            self.root.mkdir(parents=True)
        except OSError as exc:
            raise TldrCacheError(
                code=ErrorCode.IO,
                message=f"failed to clean '{self.root}': {exc}",
                suggestion="Check permissions on the cache directory.",
            ) from exc

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def platforms(self) -> list[str]:
        """Return the platform directories under the English pages, sorted."""
        english = self.root / language_dir(ENGLISH)
        try:
            found = [entry.name for entry in english.iterdir() if entry.is_dir()]
        except OSError:
            found = []

        if not found:
            raise TldrCacheError(
                code=ErrorCode.CACHE_EMPTY,
                message=f"'{english.name}' contains no platform directories.",
                suggestion=_RUN_UPDATE,
            )
        # iterdir() order differs across runs and filesystems.
        return sorted(found)

    def find(self, name: str, languages: list[str], platform: str) -> list[Path]:
        """Resolve name to candidate page paths; an empty list means not found."""
        return find_pages(
            self.root,
            name,
            languages,
            platform,
            self.platforms(),
            self._reporter,
        )

    # ------------------------------------------------------------------
    # Listing
    # ------------------------------------------------------------------

    def _list_dir(self, lang_dir: str, platform: str) -> list[str]:
        # Translations do not have every platform directory.
        directory = self.root / lang_dir / platform
        if not directory.is_dir():
            return []
        try:
            return [entry.name for entry in directory.iterdir() if entry.is_file()]
        except OSError as exc:
            raise TldrCacheError(
                code=ErrorCode.IO,
                message=f"failed to read '{directory}': {exc}",
            ) from exc

    def _list_language(self, lang_dir: str) -> list[str]:
        files: list[str] = []
        for platform in self.platforms():
            files.extend(self._list_dir(lang_dir, platform))
        return files

    def _count_pages_or_zero(self, language: str) -> int:
        # Fails on a fresh cache where pages.en does not exist yet.
        try:
            return len(self._list_language(language_dir(language)))
        except TldrCacheError:
            return 0

    @staticmethod
    def _basenames(files: list[str]) -> list[str]:
        """Strip the page suffix, dedupe names shared across platforms, sort."""
        names = {f.removesuffix(PAGE_SUFFIX) for f in files}
        return sorted(names)

    def list_for(self, platform: str) -> list[str]:
        """English page names available for platform (including common)."""
        check_platform(platform, self.platforms())
        english = language_dir(ENGLISH)

        files = self._list_dir(english, platform)
        if platform != COMMON_PLATFORM:
            files += self._list_dir(english, COMMON_PLATFORM)
        return self._basenames(files)

    def list_all(self) -> list[str]:
        """Every English page name across all platforms."""
        return self._basenames(self._list_language(language_dir(ENGLISH)))

    def list_platforms(self) -> list[str]:
        return self.platforms()

    def _language_dirs(self) -> list[str]:
        try:
            return sorted(
                entry.name
                for entry in self.root.iterdir()
                if entry.is_dir() and language_from_dir(entry.name) != entry.name
            )
        except OSError as exc:
            raise TldrCacheError(
                code=ErrorCode.IO,
                message=f"failed to read '{self.root}': {exc}",
                suggestion=_RUN_UPDATE,
            ) from exc

    def list_languages(self) -> list[str]:
        """Language codes that have a directory in the cache."""
        return [language_from_dir(name) for name in self._language_dirs()]

    # ------------------------------------------------------------------
    # Bookkeeping
    # ------------------------------------------------------------------

    def info(self) -> CacheInfo:
        counts = {
            language_from_dir(lang_dir): len(self._list_language(lang_dir))
            for lang_dir in self._language_dirs()
        }
        return CacheInfo(root=self.root, age=self.age(), languages=counts)

    def age(self) -> timedelta:
        """Time since the last successful update.

        Read from the manifest's mtime (the root's when there is no manifest)
        once per store and memoised, so an update in the same process does
        not reset it.
        """
        if self._age is not None:
            return self._age

        source = self.manifest_path if self.manifest_path.is_file() else self.root
        try:
            modified = source.stat().st_mtime
        except OSError as exc:
            raise TldrCacheError(
                code=ErrorCode.IO,
                message=f"cannot read the modification time of '{source}': {exc}",
                suggestion=_RUN_UPDATE,
            ) from exc

        elapsed = time.time() - modified
        if elapsed < 0:
            raise TldrCacheError(
                code=ErrorCode.CLOCK,
                message=(
                    "the system clock is not functioning correctly. "
                    "Modification time of the cache is later than the current system time."
                ),
                suggestion="Please fix your system clock.",
            )

        self._age = timedelta(seconds=elapsed)
        return self._age
