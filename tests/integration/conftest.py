"""Integration test fixtures.

Runs the real CLI entrypoint against a cache directory under tmp_path, with
every HTTP request answered by the in-memory FakeMirror.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import platformdirs
import pytest
import structlog

from tldrcache import cli
from tldrcache.config import CONFIG_ENV_VAR

if TYPE_CHECKING:
    from collections.abc import Iterator
    from pathlib import Path

    from tests.helpers import FakeMirror


@pytest.fixture(autouse=True)
def _reset_structlog() -> Iterator[None]:
    """main() configures structlog globally; undo it so the next test starts clean."""
    yield
    structlog.reset_defaults()


@pytest.fixture()
def cli_cache_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Isolate config discovery and point the cache at tmp_path."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv(CONFIG_ENV_VAR, raising=False)
    monkeypatch.setattr(
        platformdirs, "user_config_dir", lambda _name: str(tmp_path / "config")
    )
    # "C" yields no languages, so only English is requested.
    monkeypatch.setenv("LANG", "C")
    monkeypatch.delenv("LANGUAGE", raising=False)

    cache_dir = tmp_path / "cache"
    monkeypatch.setenv("TLDRCACHE__CACHE__DIR", str(cache_dir))
    return cache_dir


@pytest.fixture()
def cli_mirror(mirror: FakeMirror, monkeypatch: pytest.MonkeyPatch) -> FakeMirror:
    """Route the CLI's HTTP client through the fake mirror."""
    monkeypatch.setattr(cli, "build_http_client", lambda _settings=None: mirror.client())
    return mirror
