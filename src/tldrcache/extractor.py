"""Traversal-safe extraction of one language archive into its cache directory.

Hostile or malformed entries (absolute paths, ``..`` escapes, drive letters,
symlinks) are logged and skipped; they never abort an otherwise good update.
Filesystem failures while writing are fatal.
"""

from __future__ import annotations

import shutil
import stat
import zipfile
import zlib
from pathlib import PurePosixPath
from typing import TYPE_CHECKING

import structlog

from tldrcache.errors import ErrorCode, TldrCacheError

if TYPE_CHECKING:
    from pathlib import Path

log = structlog.get_logger()


def enclosed_member_path(member_name: str) -> PurePosixPath | None:
    """Return the member's path relative to the extraction root, or None if unsafe."""
    relative = PurePosixPath(member_name.replace("\\", "/"))
    if relative.is_absolute() or not relative.parts:
        return None
    if any(part in {"", ".", ".."} for part in relative.parts):
        return None
    if ":" in relative.parts[0]:
        return None  # Windows drive prefix, e.g. "C:evil"
    return relative


def _is_symlink(member: zipfile.ZipInfo) -> bool:
    mode = (member.external_attr >> 16) & 0xFFFF
    return stat.S_IFMT(mode) == stat.S_IFLNK


def extract_language_archive(archive: zipfile.ZipFile, destination: Path) -> int:
    """Replace destination with the archive's pages and return the number extracted.

    The destination is removed first so pages dropped upstream do not linger.
    Only files nested inside a platform directory count as pages.
    """
    try:
        if destination.exists():
            shutil.rmtree(destination)
        destination.mkdir(parents=True)
        root = destination.resolve()

        extracted = 0
        for member in archive.infolist():
            relative = enclosed_member_path(member.filename)
            if relative is None or _is_symlink(member):
                log.warning("archive_member_skipped", member=member.filename, reason="unsafe_path")
                continue

            target = destination.joinpath(*relative.parts)
            if not target.resolve().is_relative_to(root):
                log.warning("archive_member_skipped", member=member.filename, reason="escapes_root")
                continue

            if member.is_dir():
                target.mkdir(parents=True, exist_ok=True)
                continue

            # Loose top-level files (LICENSE etc.) are not pages.
            if len(relative.parts) < 2:
                continue

            target.parent.mkdir(parents=True, exist_ok=True)
            with archive.open(member) as source, target.open("wb") as sink:
                shutil.copyfileobj(source, sink)
            extracted += 1

    except OSError as exc:
        raise TldrCacheError(
            code=ErrorCode.IO,
            message=f"failed to extract into '{destination}': {exc}",
            suggestion="Check free disk space and permissions on the cache directory.",
        ) from exc
    except (zipfile.BadZipFile, zlib.error, EOFError) as exc:
        raise TldrCacheError(
            code=ErrorCode.DOWNLOAD,
            message=f"corrupt archive data for '{destination.name}': {exc}",
            suggestion="Run the update again; the mirror may have served a damaged file.",
        ) from exc

    return extracted
