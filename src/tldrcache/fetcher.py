"""HTTP fetcher for the checksum manifest and per-language page archives.

All network I/O goes through a single Fetcher. It receives an httpx.Client via
constructor injection; the caller owns the client lifecycle. Every request
is bounded by the client's connect timeout and by a hard response-size
ceiling, so a misbehaving mirror cannot exhaust memory.
"""

from __future__ import annotations

import httpx
import structlog

from tldrcache.config import FetcherSettings
from tldrcache.errors import ErrorCode, TldrCacheError
from tldrcache.layout import MANIFEST_FILENAME, archive_name

log = structlog.get_logger()

_DOWNLOAD_SUGGESTION = "Check your internet connection and the configured mirror, then retry."


def build_http_client(settings: FetcherSettings | None = None) -> httpx.Client:
    """Create the shared httpx client. Called once per process."""
    settings = settings or FetcherSettings()
    return httpx.Client(
        # Release assets are served through redirects to a CDN.
        follow_redirects=True,
        timeout=httpx.Timeout(
            settings.read_timeout_seconds,
            connect=settings.connect_timeout_seconds,
        ),
        headers={"User-Agent": settings.user_agent},
    )


def manifest_url(mirror: str) -> str:
    return f"{mirror.rstrip('/')}/{MANIFEST_FILENAME}"


def archive_url(mirror: str, language: str) -> str:
    return f"{mirror.rstrip('/')}/{archive_name(language)}"


class Fetcher:
    """Downloads raw bytes from a mirror, raising DOWNLOAD errors on any failure."""

    def __init__(
        self,
        client: httpx.Client,
        *,
        max_response_bytes: int = FetcherSettings().max_response_bytes,
    ) -> None:
        self._client = client
        self._max_response_bytes = max_response_bytes

    def fetch_manifest(self, mirror: str) -> bytes:
        return self._get(manifest_url(mirror))

    def fetch_language_archive(self, mirror: str, language: str) -> bytes:
        return self._get(archive_url(mirror, language))

    def _get(self, url: str) -> bytes:
        limit = self._max_response_bytes
        chunks: list[bytes] = []
        received = 0

        try:
            with self._client.stream("GET", url) as response:
                if not response.is_success:
                    raise TldrCacheError(
                        code=ErrorCode.DOWNLOAD,
                        message=f"HTTP {response.status_code} fetching {url}",
                        suggestion=_DOWNLOAD_SUGGESTION,
                    )

                declared = response.headers.get("content-length", "")
                if declared.isdigit() and int(declared) > limit:
                    raise _too_large(url, limit)

                for chunk in response.iter_bytes():
                    received += len(chunk)
                    if received > limit:
                        raise _too_large(url, limit)
                    chunks.append(chunk)

        except TldrCacheError:
            raise
        except httpx.HTTPError as exc:
            raise TldrCacheError(
                code=ErrorCode.DOWNLOAD,
                message=f"network error fetching {url}: {exc}",
                suggestion=_DOWNLOAD_SUGGESTION,
            ) from exc

        log.debug("fetch_complete", url=url, bytes=received)
        return b"".join(chunks)


def _too_large(url: str, limit: int) -> TldrCacheError:
    return TldrCacheError(
        code=ErrorCode.DOWNLOAD,
        message=f"response from {url} exceeds the {limit} byte limit",
        suggestion="The mirror returned an unexpectedly large file; try another mirror.",
    )
