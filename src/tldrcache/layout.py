"""On-disk naming conventions of the page cache.

Every ``pages.<lang>`` string in the project is built here. Layout version 1
stored English pages in a bare ``pages`` directory; version 2 (current) uses
``pages.en`` like every other language.
"""

from __future__ import annotations

from typing import Literal

LayoutVersion = Literal[1, 2]

LAYOUT_VERSION: LayoutVersion = 2
ENGLISH = "en"
MANIFEST_FILENAME = "tldr.sha256sums"
PAGE_SUFFIX = ".md"
COMMON_PLATFORM = "common"

_DIR_PREFIX = "pages"


def language_dir(language: str, layout: LayoutVersion = LAYOUT_VERSION) -> str:
    """Return the cache subdirectory name for a language code."""
    if language == ENGLISH and layout == 1:
        return _DIR_PREFIX
    return f"{_DIR_PREFIX}.{language}"


def language_from_dir(dirname: str) -> str:
    """Inverse of :func:`language_dir`; unknown names are returned unchanged."""
    if dirname == _DIR_PREFIX:
        return ENGLISH
    prefix = _DIR_PREFIX + "."
    return dirname[len(prefix) :] if dirname.startswith(prefix) else dirname


def languages_to_dirs(languages: list[str], layout: LayoutVersion = LAYOUT_VERSION) -> list[str]:
    return [language_dir(lang, layout) for lang in languages]


def archive_name(language: str) -> str:
    """Remote archive file name for one language."""
    return f"tldr-pages.{language}.zip"


def page_filename(name: str) -> str:
    return f"{name}{PAGE_SUFFIX}"
