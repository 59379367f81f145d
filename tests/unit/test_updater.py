"""Unit tests for the incremental update flow."""

from __future__ import annotations

import errno
import shutil
from typing import TYPE_CHECKING

import httpx
import pytest

from tests.helpers import MIRROR, FakeMirror, RecordingReporter, build_language_zip
from tldrcache import updater
from tldrcache.errors import ErrorCode, TldrCacheError
from tldrcache.extractor import extract_language_archive
from tldrcache.fetcher import Fetcher
from tldrcache.manifest import read_local_manifest, save_manifest_to_disk, sha256_hexdigest
from tldrcache.updater import run_update, select_stale_languages

if TYPE_CHECKING:
    import zipfile
    from collections.abc import Iterator
    from pathlib import Path

    from tldrcache.models.cache import UpdateSummary


@pytest.fixture()
def fake_mirror() -> FakeMirror:
    return FakeMirror(
        {
            "en": build_language_zip({"common": ["tar"], "linux": ["apt"], "osx": ["brew"]}),
            "de": build_language_zip({"common": ["tar"]}),
        }
    )


@pytest.fixture()
def fetcher(fake_mirror: FakeMirror) -> Iterator[Fetcher]:
    client = fake_mirror.client()
    yield Fetcher(client)
    client.close()


def _update(
    root: Path,
    fetcher: Fetcher,
    languages: list[str],
    reporter: RecordingReporter | None = None,
) -> UpdateSummary:
    return run_update(
        root,
        fetcher,
        MIRROR,
        languages,
        reporter or RecordingReporter(),
        count_pages=lambda _lang: 0,
    )


# ---------------------------------------------------------------------------
# select_stale_languages
# ---------------------------------------------------------------------------


class TestSelectStaleLanguages:
    def test_missing_local_digest_is_stale(self) -> None:
        plan = select_stale_languages(["en"], {"en": "aaa"}, {}, dir_exists=lambda _l: True)
        assert plan.stale == ["en"]

    def test_changed_digest_is_stale(self) -> None:
        plan = select_stale_languages(
            ["en"], {"en": "new"}, {"en": "old"}, dir_exists=lambda _l: True
        )
        assert plan.stale == ["en"]

    def test_matching_digest_with_directory_is_current(self) -> None:
        plan = select_stale_languages(
            ["en"], {"en": "aaa"}, {"en": "aaa"}, dir_exists=lambda _l: True
        )
        assert plan.current == ["en"]
        assert plan.stale == []

    def test_matching_digest_without_directory_is_stale(self) -> None:
        plan = select_stale_languages(
            ["en"], {"en": "aaa"}, {"en": "aaa"}, dir_exists=lambda _l: False
        )
        assert plan.stale == ["en"]

    def test_language_absent_remotely_is_unsupported(self) -> None:
        plan = select_stale_languages(["zz", "en"], {"en": "aaa"}, {}, dir_exists=lambda _l: True)
        assert plan.unsupported == ["zz"]
        assert plan.stale == ["en"]

    def test_duplicates_collapsed_and_sorted(self) -> None:
        plan = select_stale_languages(
            ["fr", "en", "fr", "de"],
            {"en": "1", "de": "2", "fr": "3"},
            {},
            dir_exists=lambda _l: True,
        )
        assert plan.stale == ["de", "en", "fr"]


# ---------------------------------------------------------------------------
# run_update
# ---------------------------------------------------------------------------


class TestFirstRun:
    def test_downloads_and_extracts_requested_languages(
        self, tmp_path: Path, fetcher: Fetcher, fake_mirror: FakeMirror
    ) -> None:
        root = tmp_path / "cache"
        reporter = RecordingReporter()

        summary = _update(root, fetcher, ["de", "en"], reporter)

        assert (root / "pages.en" / "linux" / "apt.md").is_file()
        assert (root / "pages.de" / "common" / "tar.md").is_file()
        assert {item.language: item.pages for item in summary.updated} == {"de": 1, "en": 3}
        assert summary.total_pages == 4
        assert fake_mirror.archive_requests == ["tldr-pages.de.zip", "tldr-pages.en.zip"]
        assert reporter.info_events()[-1] == "cache_update_successful"

    def test_manifest_persisted_with_remote_digests(
        self, tmp_path: Path, fetcher: Fetcher, fake_mirror: FakeMirror
    ) -> None:
        root = tmp_path / "cache"
        _update(root, fetcher, ["en", "de"])

        persisted = read_local_manifest(root / "tldr.sha256sums")
        assert persisted == {
            "en": sha256_hexdigest(fake_mirror.archives["en"]),
            "de": sha256_hexdigest(fake_mirror.archives["de"]),
        }

    def test_no_staging_directories_left(self, tmp_path: Path, fetcher: Fetcher) -> None:
        root = tmp_path / "cache"
        _update(root, fetcher, ["en", "de"])

        assert sorted(p.name for p in root.iterdir()) == [
            "pages.de",
            "pages.en",
            "tldr.sha256sums",
        ]

    def test_unsupported_language_skipped(
        self, tmp_path: Path, fetcher: Fetcher, fake_mirror: FakeMirror
    ) -> None:
        summary = _update(tmp_path / "cache", fetcher, ["zz", "en"])

        assert summary.unsupported == ["zz"]
        assert "tldr-pages.zz.zip" not in fake_mirror.requests


class TestIncrementalRuns:
    def test_second_run_downloads_nothing(
        self, tmp_path: Path, fetcher: Fetcher, fake_mirror: FakeMirror
    ) -> None:
        root = tmp_path / "cache"
        _update(root, fetcher, ["en", "de"])
        fake_mirror.requests.clear()
        reporter = RecordingReporter()

        summary = _update(root, fetcher, ["en", "de"], reporter)

        assert fake_mirror.requests == ["tldr.sha256sums"]
        assert summary.updated == []
        assert summary.up_to_date == ["de", "en"]
        assert reporter.info_events()[-1] == "cache_up_to_date"

    def test_deleted_directory_is_restored(
        self, tmp_path: Path, fetcher: Fetcher, fake_mirror: FakeMirror
    ) -> None:
        root = tmp_path / "cache"
        _update(root, fetcher, ["en", "de"])
        shutil.rmtree(root / "pages.en")
        fake_mirror.requests.clear()

        _update(root, fetcher, ["en", "de"])

        assert fake_mirror.archive_requests == ["tldr-pages.en.zip"]
        assert (root / "pages.en" / "osx" / "brew.md").is_file()

    def test_only_changed_language_redownloaded(
        self, tmp_path: Path, fetcher: Fetcher, fake_mirror: FakeMirror
    ) -> None:
        root = tmp_path / "cache"
        _update(root, fetcher, ["en", "de"])
        de_digest = sha256_hexdigest(fake_mirror.archives["de"])
        fake_mirror.archives["en"] = build_language_zip({"common": ["tar", "ls"]})
        fake_mirror.requests.clear()

        summary = _update(root, fetcher, ["en", "de"])

        assert fake_mirror.archive_requests == ["tldr-pages.en.zip"]
        assert [item.language for item in summary.updated] == ["en"]
        # Pages dropped upstream do not linger.
        assert not (root / "pages.en" / "linux").exists()
        persisted = read_local_manifest(root / "tldr.sha256sums")
        assert persisted["de"] == de_digest
        assert persisted["en"] == sha256_hexdigest(fake_mirror.archives["en"])

    def test_unrequested_languages_keep_their_digest(
        self, tmp_path: Path, fetcher: Fetcher
    ) -> None:
        root = tmp_path / "cache"
        save_manifest_to_disk(root / "tldr.sha256sums", {"fr": "f" * 64})

        _update(root, fetcher, ["en"])

        persisted = read_local_manifest(root / "tldr.sha256sums")
        assert persisted["fr"] == "f" * 64
        assert "en" in persisted
        assert "de" not in persisted

    def test_new_page_delta_uses_previous_count(self, tmp_path: Path, fetcher: Fetcher) -> None:
        summary = run_update(
            tmp_path / "cache",
            fetcher,
            MIRROR,
            ["en"],
            RecordingReporter(),
            count_pages=lambda _lang: 1,
        )

        assert summary.updated[0].new_pages == 2
        assert summary.total_new == 2


class TestFailures:
    def test_checksum_mismatch_leaves_cache_untouched(
        self, tmp_path: Path, fetcher: Fetcher, fake_mirror: FakeMirror
    ) -> None:
        root = tmp_path / "cache"
        fake_mirror.digest_overrides["en"] = "0" * 64

        with pytest.raises(TldrCacheError) as exc_info:
            _update(root, fetcher, ["en", "de"])

        assert exc_info.value.code == ErrorCode.DOWNLOAD
        assert "SHA256 sum mismatch" in exc_info.value.message
        # "de" verified fine, but nothing is extracted until every archive passes.
        assert not (root / "pages.de").exists()
        assert not (root / "pages.en").exists()
        assert not (root / "tldr.sha256sums").exists()

    def test_checksum_mismatch_keeps_previous_manifest(
        self, tmp_path: Path, fetcher: Fetcher, fake_mirror: FakeMirror
    ) -> None:
        root = tmp_path / "cache"
        _update(root, fetcher, ["en"])
        before = (root / "tldr.sha256sums").read_text()
        fake_mirror.archives["en"] = build_language_zip({"common": ["ls"]})
        fake_mirror.digest_overrides["en"] = "0" * 64

        with pytest.raises(TldrCacheError):
            _update(root, fetcher, ["en"])

        assert (root / "tldr.sha256sums").read_text() == before
        assert (root / "pages.en" / "linux" / "apt.md").is_file()

    def test_corrupt_remote_manifest_is_download_error(
        self, tmp_path: Path, fetcher: Fetcher, fake_mirror: FakeMirror
    ) -> None:
        fake_mirror.extra_manifest_lines.append("garbage")

        with pytest.raises(TldrCacheError) as exc_info:
            _update(tmp_path / "cache", fetcher, ["en"])

        assert exc_info.value.code == ErrorCode.DOWNLOAD
        assert not (tmp_path / "cache" / "pages.en").exists()

    def test_non_zip_payload_is_download_error(self, tmp_path: Path) -> None:
        payload = b"<html>not a zip</html>"
        mirror = FakeMirror({"en": payload})

        with mirror.client() as client, pytest.raises(TldrCacheError) as exc_info:
            _update(tmp_path / "cache", Fetcher(client), ["en"])

        assert exc_info.value.code == ErrorCode.DOWNLOAD
        assert "not a valid zip" in exc_info.value.message

    def test_missing_archive_is_download_error(self, tmp_path: Path) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path.endswith("tldr.sha256sums"):
                return httpx.Response(200, text=f"{'a' * 64}  tldr-pages.en.zip\n")
            return httpx.Response(404)

        with httpx.Client(transport=httpx.MockTransport(handler)) as client:
            with pytest.raises(TldrCacheError) as exc_info:
                _update(tmp_path / "cache", Fetcher(client), ["en"])

        assert exc_info.value.code == ErrorCode.DOWNLOAD
        assert "HTTP 404" in exc_info.value.message

    def test_extraction_io_error_keeps_finished_languages(
        self,
        tmp_path: Path,
        fetcher: Fetcher,
        fake_mirror: FakeMirror,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        root = tmp_path / "cache"
        _update(root, fetcher, ["en"])
        manifest_before = (root / "tldr.sha256sums").read_text()
        fake_mirror.archives["en"] = build_language_zip({"common": ["ls"]})

        def disk_full(_source: object, _sink: object) -> None:
            raise OSError(errno.ENOSPC, "No space left on device")

        def extract(archive: zipfile.ZipFile, destination: Path) -> int:
            # "de" sorts first and extracts normally; the disk fills up during "en".
            if destination.name == ".pages.en.staging":
                monkeypatch.setattr(shutil, "copyfileobj", disk_full)
            return extract_language_archive(archive, destination)

        monkeypatch.setattr(updater, "extract_language_archive", extract)

        with pytest.raises(TldrCacheError) as exc_info:
            _update(root, fetcher, ["de", "en"])

        assert exc_info.value.code == ErrorCode.IO
        assert "failed to extract into" in exc_info.value.message
        assert (root / "pages.de" / "common" / "tar.md").is_file()
        # The previous English snapshot is still live.
        assert (root / "pages.en" / "linux" / "apt.md").is_file()
        assert not (root / "pages.en" / "common" / "ls.md").exists()
        assert not [path for path in root.iterdir() if path.name.endswith(".staging")]
        assert (root / "tldr.sha256sums").read_text() == manifest_before
