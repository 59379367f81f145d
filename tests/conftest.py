"""Shared test fixtures for the tldrcache test suite."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from tests.helpers import (
    ENGLISH_PAGES,
    FakeMirror,
    RecordingReporter,
    build_language_zip,
    write_pages,
)
from tldrcache.fetcher import Fetcher
from tldrcache.store import CacheStore

if TYPE_CHECKING:
    from collections.abc import Iterator
    from pathlib import Path


@pytest.fixture()
def reporter() -> RecordingReporter:
    return RecordingReporter()


@pytest.fixture()
def cache_root(tmp_path: Path) -> Path:
    """A populated cache: English plus a partial 'xy' translation."""
    root = tmp_path / "cache"
    write_pages(root, "pages.en", ENGLISH_PAGES)
    write_pages(root, "pages.xy", {"common": ["a"], "linux": ["apt"]})
    return root


@pytest.fixture()
def store(cache_root: Path, reporter: RecordingReporter) -> CacheStore:
    return CacheStore(cache_root, reporter=reporter)


@pytest.fixture()
def mirror() -> FakeMirror:
    return FakeMirror(
        {
            "en": build_language_zip({"common": ["tar"], "linux": ["apt"], "osx": ["brew"]}),
            "de": build_language_zip({"common": ["tar"]}),
        }
    )


@pytest.fixture()
def online_store(
    tmp_path: Path, mirror: FakeMirror, reporter: RecordingReporter
) -> Iterator[CacheStore]:
    """An empty cache root wired to the fake mirror."""
    client = mirror.client()
    yield CacheStore(tmp_path / "cache", reporter=reporter, fetcher=Fetcher(client))
    client.close()
