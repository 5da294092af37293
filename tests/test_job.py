"""
Tests for the job orchestrator and its file helpers.
"""

import csv
import json
import os
import threading
import time
from datetime import datetime, timezone
from pathlib import Path

import pytest

from fakes import BASE_ROW, FakeCatalog, SleepRecorder, existing_from, make_row
from feedsync.catalog.normalizer import normalize
from feedsync.config import build_settings
from feedsync.exceptions import CatalogAPIError, TransferError, TransferFailure
from feedsync.job import (
    ARTIFACT_PREFIX,
    FeedSyncJob,
    RunLock,
    cleanup_old_files,
    find_local_feed,
    write_run_artifact,
)
from feedsync.models import BatchResult

ROWS = [
    make_row(Item="QG1", Description="Gold Cable Chain"),
    make_row(Item="QG2", Description="Silver Hoop Earrings", Categories="Jewelry > Earrings"),
]


def write_feed(path: Path, rows=ROWS) -> Path:
    with open(path, "w", newline="", encoding="utf-8") as f:
        writer = csv.DictWriter(f, fieldnames=list(BASE_ROW))
        writer.writeheader()
        for row in rows:
            writer.writerow(dict(row))
    return path


class FakeManager:
    """Stands in for TransferManager; writes the feed into the download dir."""

    def __init__(self, error=None, name="feed_20240115.csv"):
        self.error = error
        self.name = name
        self.calls = []

    def fetch_latest(self, remote_dir, local_dir):
        self.calls.append(remote_dir)
        if self.error:
            raise self.error
        return write_feed(Path(local_dir) / self.name)


def _job(tmp_path, catalog, manager=None, **values):
    settings = build_settings({"DOWNLOAD_DIR": str(tmp_path), "FTP_REMOTE_DIR": "/outgoing", **values})
    return FeedSyncJob(
        settings,
        transfer_manager=manager or FakeManager(),
        catalog_factory=lambda: catalog,
        sleep=SleepRecorder(),
    )


def _artifacts(directory):
    return sorted(directory.glob(f"{ARTIFACT_PREFIX}*.json"))


class TestRunOnce:
    """Tests for a full pass against in-memory collaborators."""

    @pytest.mark.asyncio
    async def test_success(self, tmp_path):
        catalog = FakeCatalog(snapshot=[existing_from(normalize(ROWS[1]), product_id=7)])
        manager = FakeManager()

        report = await _job(tmp_path, catalog, manager).run_once()

        assert manager.calls == ["/outgoing"]
        assert report.source_file == "feed_20240115.csv"
        assert report.row_count == 2
        assert report.catalog_count == 1
        assert (report.result.created, report.result.updated, report.result.skipped) == (1, 0, 1)
        assert [p.sku for p in catalog.created] == ["QG1"]

        (artifact,) = _artifacts(tmp_path)
        assert artifact == report.artifact_path
        data = json.loads(artifact.read_text())
        assert data["feed"]["file_name"] == "feed_20240115.csv"
        assert data["feed"]["row_count"] == 2
        assert data["feed"]["sample_record"]["Item"] == "QG1"
        assert data["catalog"]["product_count"] == 1
        assert data["catalog"]["sample_products"][0]["id"] == 7
        assert data["result"]["created"] == 1

    @pytest.mark.asyncio
    async def test_overrides(self, tmp_path):
        catalog = FakeCatalog(snapshot=[existing_from(normalize(ROWS[1]), product_id=7, title="Old title")])

        report = await _job(tmp_path, catalog).run_once(dry_run=True, enable_updates=False)

        assert report.result.dry_run is True
        assert (report.result.created, report.result.updated, report.result.skipped) == (1, 0, 1)
        assert catalog.writes == 0

    @pytest.mark.asyncio
    async def test_skipped_while_running(self, tmp_path):
        catalog = FakeCatalog()
        job = _job(tmp_path, catalog)
        assert job.lock.acquire()

        assert await job.run_once() is None
        assert catalog.entered == 0
        assert job.lock.is_held

    @pytest.mark.asyncio
    async def test_transfer_failure_ends_run(self, tmp_path):
        catalog = FakeCatalog()
        manager = FakeManager(error=TransferError(TransferFailure.CONNECT_FAILED, "refused", attempts=10))
        job = _job(tmp_path, catalog, manager)

        assert await job.run_once() is None
        assert not job.lock.is_held
        assert catalog.entered == 0
        assert _artifacts(tmp_path) == []

    @pytest.mark.asyncio
    async def test_catalog_failure_ends_run(self, tmp_path, caplog):
        catalog = FakeCatalog(list_error=CatalogAPIError("GET products.json failed: 500", status=500))
        job = _job(tmp_path, catalog)

        with caplog.at_level("ERROR", logger="feedsync"):
            assert await job.run_once() is None

        assert "catalog fetch" in caplog.text
        assert not job.lock.is_held
        assert catalog.writes == 0
        assert _artifacts(tmp_path) == []

    @pytest.mark.asyncio
    async def test_unreadable_feed(self, tmp_path):
        catalog = FakeCatalog()

        class BadManager(FakeManager):
            def fetch_latest(self, remote_dir, local_dir):
                return Path(local_dir) / "missing.csv"

        assert await _job(tmp_path, catalog, BadManager()).run_once() is None
        assert catalog.entered == 0

    @pytest.mark.asyncio
    async def test_skip_download_uses_local_file(self, tmp_path):
        write_feed(tmp_path / "feed_20240101.csv", ROWS[:1])
        write_feed(tmp_path / "feed_20240102.csv")
        manager = FakeManager()

        report = await _job(tmp_path, FakeCatalog(), manager).run_once(skip_download=True)

        assert manager.calls == []
        assert report.source_file == "feed_20240102.csv"
        assert report.row_count == 2

    @pytest.mark.asyncio
    async def test_lock_released_after_success(self, tmp_path):
        job = _job(tmp_path, FakeCatalog())
        assert await job.run_once() is not None
        assert await job.run_once() is not None
        assert not job.lock.is_held


class TestRunLock:
    def test_single_holder(self):
        lock = RunLock()
        assert lock.acquire()
        assert not lock.acquire()
        lock.release()
        assert lock.acquire()


class TestFileHelpers:
    """Tests for local feed lookup, artifacts and cleanup."""

    def test_find_local_feed_picks_greatest_name(self, tmp_path):
        for name in ("feed_b.csv", "feed_a.csv", "feed_c.txt"):
            (tmp_path / name).write_text("x")
        assert find_local_feed(tmp_path).name == "feed_b.csv"

    def test_find_local_feed_none(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            find_local_feed(tmp_path)

    def test_artifact_named_by_date(self, tmp_path):
        now = datetime(2024, 1, 15, 9, 30, tzinfo=timezone.utc)
        path = write_run_artifact(
            tmp_path / "out", source_file="f.csv", records=[], snapshot=[], result=BatchResult(), now=now
        )
        assert path.name == "data_snapshot_2024-01-15.json"
        data = json.loads(path.read_text())
        assert data["feed"]["sample_record"] is None
        assert data["feed"]["processed_at"] == now.isoformat()

    def test_cleanup_removes_only_old_files(self, tmp_path):
        old = tmp_path / "old.csv"
        new = tmp_path / "new.csv"
        old.write_text("x")
        new.write_text("y")
        (tmp_path / "subdir").mkdir()
        now = time.time()
        os.utime(old, (now - 10 * 86400, now - 10 * 86400))

        assert cleanup_old_files(tmp_path, keep_days=7, now=now) == 1
        assert not old.exists()
        assert new.exists()
        assert (tmp_path / "subdir").is_dir()

    def test_cleanup_missing_directory(self, tmp_path):
        assert cleanup_old_files(tmp_path / "absent", keep_days=7) == 0


class TestCleanupStage:
    @pytest.mark.asyncio
    async def test_cleanup_runs_off_the_event_loop(self, tmp_path, monkeypatch):
        calls = []

        def record_cleanup(directory, keep_days):
            calls.append((directory, keep_days, threading.get_ident()))
            return 0

        monkeypatch.setattr("feedsync.job.cleanup_old_files", record_cleanup)

        report = await _job(tmp_path, FakeCatalog(), KEEP_FILES_DAYS="3").run_once()

        assert report is not None
        ((directory, keep_days, thread_id),) = calls
        assert directory == tmp_path
        assert keep_days == 3
        assert thread_id != threading.get_ident()
