"""Archive builders, a fake mirror and a capturing reporter shared by the tests."""

from __future__ import annotations

import io
import zipfile
from typing import TYPE_CHECKING, Any

import httpx

from tldrcache.layout import MANIFEST_FILENAME, archive_name
from tldrcache.manifest import sha256_hexdigest

if TYPE_CHECKING:
    from pathlib import Path

MIRROR = "https://mirror.example/download"

PAGE = "# {name}\n\n> Example page.\n\n- Run it:\n\n`{name} {{{{path/to/file}}}}`\n"

ENGLISH_PAGES = {
    "common": ["a", "tar", "git-commit"],
    "linux": ["a", "apt", "b"],
    "osx": ["b", "brew"],
    "windows": ["choco"],
}


def page_text(name: str) -> str:
    return PAGE.format(name=name)


def build_zip(entries: dict[str, str]) -> bytes:
    """Build an in-memory zip. Names ending in '/' become directory entries."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        for name, content in entries.items():
            archive.writestr(name, content)
    return buffer.getvalue()


def build_language_zip(pages: dict[str, list[str]]) -> bytes:
    """Build a language archive from ``{platform: [page names]}``."""
    entries: dict[str, str] = {"LICENSE.md": "license text"}
    for platform, names in pages.items():
        entries[f"{platform}/"] = ""
        for name in names:
            entries[f"{platform}/{name}.md"] = page_text(name)
    return build_zip(entries)


def write_pages(root: Path, lang_dir: str, pages: dict[str, list[str]]) -> None:
    for platform, names in pages.items():
        platform_dir = root / lang_dir / platform
        platform_dir.mkdir(parents=True, exist_ok=True)
        for name in names:
            (platform_dir / f"{name}.md").write_text(page_text(name), encoding="utf-8")


class RecordingReporter:
    """Captures status output instead of printing it."""

    def __init__(self) -> None:
        self.infos: list[tuple[str, dict[str, Any]]] = []
        self.warnings: list[tuple[str, dict[str, Any]]] = []

    def info(self, event: str, **kwargs: Any) -> None:
        self.infos.append((event, kwargs))

    def warning(self, event: str, **kwargs: Any) -> None:
        self.warnings.append((event, kwargs))

    def info_events(self) -> list[str]:
        return [event for event, _ in self.infos]


class FakeMirror:
    """Serves a manifest and language archives through httpx.MockTransport."""

    def __init__(self, archives: dict[str, bytes]) -> None:
        self.archives = dict(archives)
        self.digest_overrides: dict[str, str] = {}
        self.extra_manifest_lines: list[str] = []
        self.requests: list[str] = []

    def manifest(self) -> str:
        lines = [
            f"{self.digest_overrides.get(lang, sha256_hexdigest(data))}  "
            f"assets/{archive_name(lang)}"
            for lang, data in sorted(self.archives.items())
        ]
        lines += self.extra_manifest_lines
        return "\n".join(lines) + "\n"

    def handler(self, request: httpx.Request) -> httpx.Response:
        filename = request.url.path.rsplit("/", 1)[-1]
        self.requests.append(filename)
        if filename == MANIFEST_FILENAME:
            return httpx.Response(200, text=self.manifest())
        for lang, data in self.archives.items():
            if filename == archive_name(lang):
                return httpx.Response(200, content=data)
        return httpx.Response(404)

    def client(self) -> httpx.Client:
        return httpx.Client(transport=httpx.MockTransport(self.handler))

    @property
    def archive_requests(self) -> list[str]:
        return [name for name in self.requests if name.endswith(".zip")]
