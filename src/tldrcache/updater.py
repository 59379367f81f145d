"""Incremental cache update: staleness decision, verified download, commit.

Order of effects in one batch:
  1. fetch and parse the remote manifest
  2. pick the stale languages (digest differs, no persisted digest, or the
     language directory is missing)
  3. download every stale archive and verify its SHA-256; any mismatch
     aborts the batch before the cache is touched
  4. extract each archive into a staging directory and swap it in
  5. persist the merged manifest, strictly after every language succeeded

A crash anywhere before step 5 leaves the previous manifest on disk, so the
next run re-attempts every language that did not finish.
"""

from __future__ import annotations

import io
import shutil
import zipfile
from contextlib import suppress
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import structlog

from tldrcache.errors import ErrorCode, TldrCacheError
from tldrcache.extractor import extract_language_archive
from tldrcache.layout import MANIFEST_FILENAME, archive_name, language_dir
from tldrcache.manifest import (
    parse_manifest,
    read_local_manifest,
    save_manifest_to_disk,
    sha256_hexdigest,
)
from tldrcache.models.cache import LanguageUpdate, UpdateSummary

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path

    from tldrcache.protocols import FetcherProtocol, ReporterProtocol

log = structlog.get_logger()


@dataclass
class StalenessPlan:
    """Requested languages partitioned by what the update has to do with them."""

    stale: list[str] = field(default_factory=list)
    current: list[str] = field(default_factory=list)
    unsupported: list[str] = field(default_factory=list)


def select_stale_languages(
    requested: list[str],
    remote: dict[str, str],
    local: dict[str, str],
    dir_exists: Callable[[str], bool],
) -> StalenessPlan:
    """Decide which requested languages must be (re-)downloaded.

    Languages missing from the remote manifest are ignored. A language is
    current only when its remote digest equals the persisted one *and* its
    directory exists, so a manually deleted directory is restored.
    """
    plan = StalenessPlan()
    # Sorted so archives are always fetched in the same order.
    for language in sorted(set(requested)):
        remote_digest = remote.get(language)
        if remote_digest is None:
            plan.unsupported.append(language)
        elif local.get(language) == remote_digest and dir_exists(language):
            plan.current.append(language)
        else:
            plan.stale.append(language)
    return plan


def download_and_verify(
    fetcher: FetcherProtocol,
    mirror: str,
    languages: list[str],
    remote: dict[str, str],
    reporter: ReporterProtocol,
) -> dict[str, zipfile.ZipFile]:
    """Fetch each archive and check it against the manifest digest.

    Returns open archives keyed by language. Nothing is written to disk.
    """
    archives: dict[str, zipfile.ZipFile] = {}

    for language in languages:
        expected = remote[language]
        payload = fetcher.fetch_language_archive(mirror, language)
        reporter.info("archive_downloaded", archive=archive_name(language), bytes=len(payload))

        actual = sha256_hexdigest(payload)
        if actual != expected:
            raise TldrCacheError(
                code=ErrorCode.DOWNLOAD,
                message=(
                    f"SHA256 sum mismatch for '{archive_name(language)}'!\n"
                    f"expected : {expected}\n"
                    f"got      : {actual}"
                ),
                suggestion="The download may be corrupt or tampered with. Try again later.",
            )
        log.debug("checksum_verified", language=language, digest=actual)

        try:
            archives[language] = zipfile.ZipFile(io.BytesIO(payload))
        except zipfile.BadZipFile as exc:
            raise TldrCacheError(
                code=ErrorCode.DOWNLOAD,
                message=f"'{archive_name(language)}' is not a valid zip archive: {exc}",
                suggestion="The mirror may be serving a broken file. Try again later.",
            ) from exc

    return archives


def commit_language(archive: zipfile.ZipFile, root: Path, language: str) -> int:
    """Extract into a hidden staging directory, then swap it in for the language dir.

    The live directory is either the previous snapshot or the complete new
    one; an interrupted run leaves it missing at worst, which forces a
    re-download next time.
    """
    final_dir = root / language_dir(language)
    staging_dir = root / f".{final_dir.name}.staging"

    try:
        extracted = extract_language_archive(archive, staging_dir)
        try:
            if final_dir.exists():
                shutil.rmtree(final_dir)
            staging_dir.rename(final_dir)
        except OSError as exc:
            raise TldrCacheError(
                code=ErrorCode.IO,
                message=f"failed to replace '{final_dir}': {exc}",
                suggestion="Check permissions on the cache directory.",
            ) from exc
    finally:
        with suppress(OSError):
            if staging_dir.exists():
                shutil.rmtree(staging_dir)

    return extracted


def run_update(
    root: Path,
    fetcher: FetcherProtocol,
    mirror: str,
    languages: list[str],
    reporter: ReporterProtocol,
    count_pages: Callable[[str], int],
) -> UpdateSummary:
    """Bring the requested languages in root up to date with the mirror."""
    reporter.info("manifest_downloading", file=MANIFEST_FILENAME)
    raw_manifest = fetcher.fetch_manifest(mirror)
    try:
        remote = parse_manifest(raw_manifest.decode("utf-8"))
    except UnicodeDecodeError as exc:
        raise TldrCacheError(
            code=ErrorCode.DOWNLOAD,
            message=f"checksum manifest is not valid UTF-8: {exc}",
            suggestion="The mirror may be serving a corrupt file. Try again later.",
        ) from exc

    manifest_path = root / MANIFEST_FILENAME
    local = read_local_manifest(manifest_path)

    plan = select_stale_languages(
        languages,
        remote,
        local,
        dir_exists=lambda lang: (root / language_dir(lang)).is_dir(),
    )
    for language in plan.unsupported:
        log.debug("language_unsupported", language=language)

    summary = UpdateSummary(up_to_date=plan.current, unsupported=plan.unsupported)

    # Counted before anything is replaced, for the "N new pages" report.
    previous_counts = {lang: count_pages(lang) for lang in plan.stale}
    archives = download_and_verify(fetcher, mirror, plan.stale, remote, reporter)

    root.mkdir(parents=True, exist_ok=True)
    for language, archive in archives.items():
        with archive:
            extracted = commit_language(archive, root, language)
        item = LanguageUpdate(
            language=language,
            pages=extracted,
            new_pages=extracted - previous_counts[language],
        )
        summary.updated.append(item)
        reporter.info(
            "language_extracted",
            language=language,
            pages=item.pages,
            new=item.new_pages,
        )

    # Untouched languages keep the digest they were extracted from.
    persisted = dict(local)
    for language in plan.stale + plan.current:
        persisted[language] = remote[language]
    try:
        save_manifest_to_disk(manifest_path, persisted)
    except OSError as exc:
        raise TldrCacheError(
            code=ErrorCode.IO,
            message=f"failed to write '{manifest_path}': {exc}",
            suggestion="Check permissions on the cache directory.",
        ) from exc

    if summary.updated:
        reporter.info(
            "cache_update_successful",
            total=summary.total_pages,
            new=summary.total_new,
        )
    else:
        reporter.info("cache_up_to_date", languages=len(plan.current))
    return summary
