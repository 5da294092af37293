"""
Job orchestration: transfer -> read -> normalize -> snapshot -> reconcile ->
dispatch -> artifact -> cleanup.

One ``FeedSyncJob`` runs at most one pass at a time. A trigger that arrives
while a pass is active is logged and ignored. Errors that escape a stage end
the pass and are logged; ``run_once`` itself never raises them.
"""

from __future__ import annotations

import asyncio
import json
import time
from collections.abc import Callable, Sequence
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Protocol

from feedsync.catalog.client import CatalogClient, log_catalog_summary
from feedsync.catalog.normalizer import normalize
from feedsync.config.loader import Settings
from feedsync.dispatch import CatalogWriter, DispatchOptions, dispatch
from feedsync.exceptions import RunFatalError
from feedsync.feed import describe_file, read_feed
from feedsync.models import BatchResult, ExistingRecord, RawRecord
from feedsync.reconcile import reconcile
from feedsync.transfer.manager import TransferManager
from feedsync.utils.logging import get_logger

logger = get_logger("feedsync.job")

ARTIFACT_PREFIX = "data_snapshot_"
BANNER = "=" * 50


class CatalogSession(CatalogWriter, Protocol):
    async def list_all(self) -> list[ExistingRecord]: ...


CatalogFactory = Callable[[], AbstractAsyncContextManager[CatalogSession]]


class RunLock:
    """Single-holder run flag owned by one job instance."""

    def __init__(self) -> None:
        self._held = False

    @property
    def is_held(self) -> bool:
        return self._held

    def acquire(self) -> bool:
        if self._held:
            return False
        self._held = True
        return True

    def release(self) -> None:
        self._held = False


@dataclass
class RunReport:
    source_file: str
    row_count: int
    catalog_count: int
    result: BatchResult
    artifact_path: Path
    duration_s: float


def find_local_feed(directory: Path, extension: str = ".csv") -> Path:
    """Lexicographically greatest feed file already in ``directory``."""
    ext = extension.lower()
    candidates = sorted(p for p in directory.glob("*") if p.is_file() and p.name.lower().endswith(ext))
    if not candidates:
        raise FileNotFoundError(f"no {ext} files found in {directory}")
    return candidates[-1]


def write_run_artifact(
    directory: Path,
    *,
    source_file: str,
    records: Sequence[RawRecord],
    snapshot: Sequence[ExistingRecord],
    result: BatchResult,
    now: datetime | None = None,
) -> Path:
    """Write ``data_snapshot_YYYY-MM-DD.json`` for this run; same-day runs overwrite."""
    now = now or datetime.now().astimezone()
    artifact: dict[str, Any] = {
        "feed": {
            "file_name": source_file,
            "row_count": len(records),
            "sample_record": dict(records[0]) if records else None,
            "processed_at": now.isoformat(),
        },
        "catalog": {
            "product_count": len(snapshot),
            "fetched_at": now.isoformat(),
            "sample_products": [p.summary() for p in snapshot[:3]],
        },
        "result": result.to_dict(),
    }
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / f"{ARTIFACT_PREFIX}{now.date().isoformat()}.json"
    path.write_text(json.dumps(artifact, indent=2, default=str), encoding="utf-8")
    logger.info(f"Data snapshot saved: {path}")
    return path


def cleanup_old_files(directory: Path, keep_days: int, now: float | None = None) -> int:
    """
    Delete regular files in ``directory`` older than ``keep_days``.

    Failures are logged and skipped. Returns the number of files deleted.
    """
    if not directory.is_dir():
        return 0
    cutoff = (time.time() if now is None else now) - timedelta(days=keep_days).total_seconds()
    deleted = 0
    logger.info("Cleaning up old files...")
    for path in directory.iterdir():
        try:
            if path.is_file() and path.stat().st_mtime < cutoff:
                path.unlink()
                logger.info(f"Deleted old file: {path.name}")
                deleted += 1
        except OSError as e:
            logger.warning(f"Could not delete {path.name}: {e}")
    logger.info(f"Cleanup completed: {deleted} files deleted")
    return deleted


class FeedSyncJob:
    """
    Orchestrates one feed-to-catalog pass.

    Args:
        settings: Resolved settings
        transfer_manager: Feed downloader (default: built from settings)
        catalog_factory: Zero-arg callable returning an async context manager
            that yields a catalog session (default: ``CatalogClient``)
        sleep: Awaitable sleep handed to the dispatcher
    """

    def __init__(
        self,
        settings: Settings,
        *,
        transfer_manager: TransferManager | None = None,
        catalog_factory: CatalogFactory | None = None,
        sleep: Callable[[float], Any] = asyncio.sleep,
    ):
        self.settings = settings
        self.transfer_manager = transfer_manager or TransferManager.from_settings(settings.transfer)
        self.catalog_factory = catalog_factory or (lambda: CatalogClient(settings.catalog))
        self._sleep = sleep
        self.lock = RunLock()

    async def run_once(
        self,
        *,
        dry_run: bool | None = None,
        batch_size: int | None = None,
        enable_updates: bool | None = None,
        skip_download: bool = False,
    ) -> RunReport | None:
        """
        Run one pass now.

        Keyword overrides replace the matching dispatch settings for this pass.

        Returns:
            RunReport on success, None when skipped (already running) or failed
        """
        if not self.lock.acquire():
            logger.warning("Previous job is still running, skipping this execution")
            return None

        start = time.monotonic()
        try:
            logger.info(BANNER)
            logger.info("Starting feed sync job")
            logger.info(BANNER)
            report = await self._run(
                dry_run=dry_run, batch_size=batch_size, enable_updates=enable_updates, skip_download=skip_download
            )
            report.duration_s = time.monotonic() - start
            logger.info(BANNER)
            logger.info(f"Job completed successfully in {report.duration_s:.2f}s")
            logger.info(
                f"Created: {report.result.created}, Updated: {report.result.updated}, "
                f"Unchanged: {report.result.skipped}, Errors: {report.result.error_count}"
            )
            logger.info(BANNER)
            return report
        except RunFatalError as e:
            logger.error(f"Job execution failed: {e.message}")
            logger.debug("Run failure traceback", exc_info=e)
            return None
        except Exception as e:
            logger.exception(f"Job execution failed: {e}")
            return None
        finally:
            self.lock.release()

    async def _run(
        self,
        *,
        dry_run: bool | None,
        batch_size: int | None,
        enable_updates: bool | None,
        skip_download: bool,
    ) -> RunReport:
        settings = self.settings
        options = DispatchOptions.from_settings(settings.dispatch)
        if dry_run is not None:
            options = replace(options, dry_run=dry_run)
        if batch_size is not None:
            options = replace(options, batch_size=batch_size)
        updates = settings.dispatch.enable_updates if enable_updates is None else enable_updates
        logger.info(
            f"Options: batch_size={options.batch_size}, delay={options.inter_batch_delay_s}s, "
            f"parallel={options.parallel}, dry_run={options.dry_run}, updates={updates}"
        )

        feed_path = await self._stage("transfer", self._obtain_feed, skip_download)

        info = await self._stage("read", asyncio.to_thread, describe_file, feed_path)
        logger.info(f"File info: {info.size_mb} MB, estimated {info.estimated_rows} rows")
        records = await self._stage("read", asyncio.to_thread, read_feed, feed_path)
        products = [normalize(r) for r in records]
        logger.info(f"Normalized {len(products)} products from {feed_path.name}")

        try:
            async with self.catalog_factory() as catalog:
                snapshot = await self._stage("catalog fetch", catalog.list_all)
                log_catalog_summary(snapshot)
                changeset = reconcile(products, snapshot, enable_updates=updates)
                result = await dispatch(changeset, catalog, options, sleep=self._sleep)
        except RunFatalError:
            raise
        except Exception as e:
            raise RunFatalError("catalog", str(e), cause=e) from e

        artifact = await self._stage(
            "artifact",
            asyncio.to_thread,
            lambda: write_run_artifact(
                settings.download_dir,
                source_file=feed_path.name,
                records=records,
                snapshot=snapshot,
                result=result,
            ),
        )
        await self._stage(
            "cleanup", asyncio.to_thread, cleanup_old_files, settings.download_dir, settings.keep_files_days
        )

        return RunReport(
            source_file=feed_path.name,
            row_count=len(records),
            catalog_count=len(snapshot),
            result=result,
            artifact_path=artifact,
            duration_s=0.0,
        )

    async def _obtain_feed(self, skip_download: bool) -> Path:
        directory = self.settings.download_dir
        if skip_download:
            path = find_local_feed(directory, self.settings.transfer.extension)
            logger.info(f"Skipping download, using local feed file: {path.name}")
            return path
        return await asyncio.to_thread(
            self.transfer_manager.fetch_latest, self.settings.transfer.remote_dir, directory
        )

    @staticmethod
    async def _stage(name: str, func: Callable[..., Any], *args: Any) -> Any:
        """Await ``func(*args)``, wrapping failures as run-fatal for ``name``."""
        try:
            return await func(*args)
        except RunFatalError:
            raise
        except Exception as e:
            raise RunFatalError(name, str(e), cause=e) from e
