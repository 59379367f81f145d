"""Protocol interfaces for swappable components.

CacheStore references these protocols, not concrete implementations, so that
tests can inject in-memory fetchers and capturing reporters.
"""

from __future__ import annotations

from typing import Any, Protocol


class ReporterProtocol(Protocol):
    """Status output sink handed to the core at construction.

    A structlog bound logger satisfies this interface; quiet mode is a logger
    filtered at ERROR level, not a process-wide flag.
    """

    def info(self, event: str, **kwargs: Any) -> Any: ...

    def warning(self, event: str, **kwargs: Any) -> Any: ...


class FetcherProtocol(Protocol):
    """Interface for the remote archive fetcher."""

    def fetch_manifest(self, mirror: str) -> bytes: ...

    def fetch_language_archive(self, mirror: str, language: str) -> bytes: ...
