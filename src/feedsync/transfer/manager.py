"""
Feed transfer: pick the newest feed file on the remote host and download it
with backup/restore, byte-count verification and whole-fetch retries.
"""

from __future__ import annotations

import os
import time
from collections.abc import Callable, Iterable
from pathlib import Path

from feedsync.config.loader import TransferSettings
from feedsync.connections import FileTransferClient, RemoteEntry, get_transfer_client, join_remote
from feedsync.exceptions import TransferError, TransferFailure
from feedsync.transfer.progress import MB, ProgressTracker, ProgressWriter
from feedsync.transfer.retry import DEFAULT_TRANSFER_POLICY, RetryPolicy, RetryState
from feedsync.utils.logging import get_logger

logger = get_logger("feedsync.transfer.manager")

BACKUP_SUFFIX = ".backup"
DEFAULT_SIZE_TOLERANCE = 1024


def select_latest(entries: Iterable[RemoteEntry], extension: str = ".csv") -> RemoteEntry:
    """
    Newest regular file with the feed extension.

    Ties on modification time go to the lexicographically greatest name.

    Raises:
        TransferError: ListFailed when nothing matches
    """
    ext = extension.lower()
    candidates = [e for e in entries if e.is_file and e.name.lower().endswith(ext)]
    if not candidates:
        raise TransferError(TransferFailure.LIST_FAILED, f"no {ext} files found on remote host")
    return max(candidates, key=lambda e: (e.modified_at, e.name))


def backup_path(destination: Path) -> Path:
    return destination.with_name(destination.name + BACKUP_SUFFIX)


class TransferManager:
    """
    Downloads the latest feed file.

    Each attempt builds a fresh client from ``client_factory`` so a retry
    always re-establishes the connection. ``sleep`` is injectable so the
    retry loop can be exercised without waiting.
    """

    def __init__(
        self,
        client_factory: Callable[[], FileTransferClient],
        *,
        extension: str = ".csv",
        policy: RetryPolicy = DEFAULT_TRANSFER_POLICY,
        size_tolerance: int = DEFAULT_SIZE_TOLERANCE,
        sleep: Callable[[float], None] = time.sleep,
        progress_interval_s: float = 2.0,
    ):
        self.client_factory = client_factory
        self.extension = extension
        self.policy = policy
        self.size_tolerance = size_tolerance
        self._sleep = sleep
        self.progress_interval_s = progress_interval_s

    @classmethod
    def from_settings(cls, settings: TransferSettings) -> TransferManager:
        return cls(
            lambda: get_transfer_client(settings),
            extension=settings.extension,
            policy=RetryPolicy(max_attempts=settings.max_attempts, delay=settings.retry_delay_s),
        )

    def fetch_latest(self, remote_dir: str, local_dir: str | Path) -> Path:
        """
        Download the newest feed file from ``remote_dir`` into ``local_dir``.

        Returns:
            Local path of the downloaded file

        Raises:
            TransferError: The last attempt's failure once the ceiling is reached
        """
        local_dir = Path(local_dir)
        state = RetryState(operation=f"fetch latest {self.extension} from {remote_dir}")

        for attempt in range(1, self.policy.max_attempts + 1):
            state.attempt = attempt
            logger.info(f"Download attempt {attempt}/{self.policy.max_attempts}")

            outcome = self._attempt(remote_dir, local_dir)
            if isinstance(outcome, Path):
                state.mark_success(outcome)
                if attempt > 1:
                    logger.info(f"Download succeeded after {attempt} attempts")
                return outcome

            state.record_failure(outcome)
            logger.error(f"Download attempt {attempt} failed: {outcome}")
            if not self.policy.should_retry(attempt):
                break
            logger.info(f"Retrying in {self.policy.delay:.0f} seconds...")
            state.record_delay(self.policy.delay)
            self._sleep(self.policy.delay)

        logger.error("All download attempts failed")
        final = state.final_error
        assert isinstance(final, TransferError)
        final.attempts = state.total_attempts
        final.details["attempts"] = state.total_attempts
        raise final

    def _attempt(self, remote_dir: str, local_dir: Path) -> Path | TransferError:
        """One connect/list/download cycle; failures are returned, not raised."""
        client = self.client_factory()
        try:
            try:
                client.connect()
            except Exception as e:
                return TransferError(TransferFailure.CONNECT_FAILED, str(e), original=e)

            try:
                entry = select_latest(client.list(remote_dir), self.extension)
            except TransferError as e:
                return e
            except Exception as e:
                return TransferError(TransferFailure.LIST_FAILED, str(e), original=e)

            logger.info(f"Latest feed file: {entry.name} (modified: {entry.modified_at.isoformat()})")
            try:
                return self.download(client, join_remote(remote_dir, entry.name), local_dir / entry.name, entry.size)
            except TransferError as e:
                return e
        finally:
            try:
                client.close()
            except Exception as e:
                logger.warning(f"Error closing transfer connection: {e}")

    def download(self, client: FileTransferClient, remote_path: str, destination: Path, expected_size: int = 0) -> Path:
        """
        Stream ``remote_path`` to ``destination`` with backup-on-overwrite.

        On success the backup is removed; on failure the backup is restored
        (or the partial file removed when there was none) and the error re-raised.
        """
        backup = backup_path(destination)
        try:
            destination.parent.mkdir(parents=True, exist_ok=True)
            if destination.exists():
                logger.info(f"Creating backup: {destination.name} -> {backup.name}")
                os.replace(destination, backup)
        except OSError as e:
            raise TransferError(
                TransferFailure.IO_ERROR, f"cannot prepare {destination}: {e}", remote_name=remote_path, original=e
            ) from e

        if expected_size > 0:
            logger.info(f"Remote file size: {expected_size / MB:.2f} MB")
        logger.info(f"Starting download: {remote_path} -> {destination}")

        try:
            written = self._stream(client, remote_path, destination, expected_size)
            if expected_size > 0 and abs(written - expected_size) > self.size_tolerance:
                raise TransferError(
                    TransferFailure.SIZE_MISMATCH,
                    f"local {written} bytes, remote {expected_size} bytes",
                    remote_name=remote_path,
                )
        except TransferError:
            self._rollback(destination, backup)
            raise

        if backup.exists():
            try:
                backup.unlink()
                logger.info(f"Deleted backup file: {backup.name}")
            except OSError as e:
                logger.warning(f"Could not delete backup {backup}: {e}")

        logger.info(f"Successfully downloaded file: {destination} ({written / MB:.2f} MB)")
        return destination

    def _stream(self, client: FileTransferClient, remote_path: str, destination: Path, expected_size: int) -> int:
        tracker = ProgressTracker(expected_size, interval_s=self.progress_interval_s)
        try:
            raw = open(destination, "wb")
        except OSError as e:
            raise TransferError(
                TransferFailure.IO_ERROR, f"cannot open {destination}: {e}", remote_name=remote_path, original=e
            ) from e

        with raw:
            try:
                client.download_to(ProgressWriter(raw, tracker), remote_path)
            except TransferError:
                raise
            except Exception as e:
                raise TransferError(
                    TransferFailure.DOWNLOAD_FAILED, str(e), remote_name=remote_path, original=e
                ) from e

        tracker.finish()
        return tracker.bytes_written

    def _rollback(self, destination: Path, backup: Path) -> None:
        try:
            if backup.exists():
                destination.unlink(missing_ok=True)
                os.replace(backup, destination)
                logger.info(f"Restored backup file: {destination.name}")
            elif destination.exists():
                destination.unlink()
                logger.info("Cleaned up partial download")
        except OSError as e:
            logger.warning(f"Failed to restore/clean up {destination}: {e}")
