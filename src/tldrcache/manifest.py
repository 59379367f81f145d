"""Checksum manifest: parsing, digesting and atomic persistence.

The manifest is a ``sha256sum``-style listing::

    <hex digest>  <path/to/tldr-pages.<lang>.zip>

Two copies matter at any time: the one just fetched from the mirror and the
one persisted in the cache root after the last successful update.
"""

from __future__ import annotations

import hashlib
import os
import sys
from contextlib import suppress
from pathlib import PurePosixPath
from typing import TYPE_CHECKING

import structlog

from tldrcache.errors import ErrorCode, TldrCacheError
from tldrcache.layout import archive_name

if TYPE_CHECKING:
    from pathlib import Path

log = structlog.get_logger()

# Aggregate archives containing every language; not per-language entries.
_AGGREGATE_ARCHIVES = frozenset({"tldr.zip", "tldr-pages.zip"})


def _manifest_error(lineno: int, line: str, reason: str) -> TldrCacheError:
    return TldrCacheError(
        code=ErrorCode.DOWNLOAD,
        message=f"invalid checksum manifest (line {lineno}: {line!r}): {reason}",
        suggestion="The mirror may be serving a corrupt file. Try again later or switch mirrors.",
    )


def parse_manifest(text: str) -> dict[str, str]:
    """Parse a checksum listing into a ``{language: digest}`` map.

    Non-archive entries and the aggregate archives are skipped. A line without
    two tokens, or an archive name without a language component, is fatal:
    a corrupt manifest must never look like an empty, up-to-date one.
    """
    digests: dict[str, str] = {}

    for lineno, line in enumerate(text.splitlines(), start=1):
        tokens = line.split()
        if len(tokens) < 2:
            raise _manifest_error(lineno, line, "expected '<digest> <path>'")

        digest, path = tokens[0], tokens[1]
        filename = PurePosixPath(path).name

        if not filename.endswith(".zip") or filename in _AGGREGATE_ARCHIVES:
            continue

        parts = filename.split(".")
        if len(parts) < 3 or not parts[1]:
            raise _manifest_error(lineno, line, "archive name has no language component")

        digests[parts[1]] = digest

    return digests


def sha256_hexdigest(payload: bytes) -> str:
    return hashlib.sha256(payload).hexdigest()


def render_manifest(digests: dict[str, str]) -> str:
    """Serialise a digest map back into the listing format, sorted by language."""
    return "".join(f"{digests[lang]}  {archive_name(lang)}\n" for lang in sorted(digests))


def read_local_manifest(path: Path) -> dict[str, str]:
    """Load the persisted manifest.

    Returns an empty map when the file is absent, unreadable or malformed;
    every language is then treated as stale.
    """
    if not path.is_file():
        log.debug("manifest_local_missing", path=str(path))
        return {}

    try:
        return parse_manifest(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, TldrCacheError):
        log.warning("manifest_local_invalid", path=str(path), exc_info=True)
        return {}


def save_manifest_to_disk(path: Path, digests: dict[str, str]) -> None:
    """Persist the manifest with atomic replace semantics."""
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_suffix(path.suffix + ".tmp")

    try:
        _write_bytes_fsync(tmp_path, render_manifest(digests).encode("utf-8"))
        os.replace(tmp_path, path)
        _fsync_directory(path.parent)
    finally:
        with suppress(OSError):
            tmp_path.unlink(missing_ok=True)


def _write_bytes_fsync(path: Path, data: bytes) -> None:
    with path.open("wb") as file_obj:
        file_obj.write(data)
        file_obj.flush()
        os.fsync(file_obj.fileno())


def _fsync_directory(path: Path) -> None:
    if sys.platform == "win32":
        return  # Windows does not support fsync on directory handles
    directory_fd = os.open(path, os.O_RDONLY)
    try:
        os.fsync(directory_fd)
    finally:
        os.close(directory_fd)
