"""Application state container.

AppState is created once per CLI invocation and handed to every command
handler. It owns the HTTP client; the store only borrows the fetcher.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import httpx

    from tldrcache.config import Settings
    from tldrcache.protocols import ReporterProtocol
    from tldrcache.store import CacheStore


@dataclass
class AppState:
    """Holds all shared runtime state for one invocation."""

    settings: Settings
    store: CacheStore
    reporter: ReporterProtocol
    http_client: httpx.Client | None = None

    # Priority order; English is always last.
    languages: list[str] = field(default_factory=list)
    # Languages refreshed by an update: the configured ones plus any from --language.
    update_languages: list[str] = field(default_factory=list)
    # True when --language overrode the configured list; changes the not-found advice.
    languages_from_cli: bool = False
    offline: bool = False
