"""
feedsync exception hierarchy.

All domain-specific exceptions inherit from FeedSyncError, making it easy
to catch any job error with a single base class while still allowing
fine-grained handling when needed.

Hierarchy::

    FeedSyncError
    ├── ConfigurationError   - settings loading, parsing, validation
    ├── TransferError        - remote feed transfer (connect/list/download/size/io)
    ├── CatalogAPIError      - catalog HTTP API failures
    ├── ItemDispatchError    - a single create/update failed (isolated per item)
    └── RunFatalError        - anything that ends a run early
"""

from __future__ import annotations

from enum import Enum


class FeedSyncError(Exception):
    """Base exception for all feedsync errors."""

    def __init__(self, message: str, *, details: dict | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


# --- Configuration -----------------------------------------------------------


class ConfigurationError(FeedSyncError):
    """Raised when configuration loading, parsing, or validation fails."""


# --- Transfer ----------------------------------------------------------------


class TransferFailure(str, Enum):
    """Why a feed transfer attempt failed."""

    CONNECT_FAILED = "ConnectFailed"
    LIST_FAILED = "ListFailed"
    DOWNLOAD_FAILED = "DownloadFailed"
    SIZE_MISMATCH = "SizeMismatch"
    IO_ERROR = "IOError"


class TransferError(FeedSyncError):
    """Raised when the feed file cannot be fetched from the remote host."""

    def __init__(
        self,
        cause: TransferFailure,
        message: str,
        *,
        remote_name: str | None = None,
        attempts: int = 1,
        original: BaseException | None = None,
    ) -> None:
        super().__init__(
            f"{cause.value}: {message}",
            details={"cause": cause.value, "remote_name": remote_name, "attempts": attempts},
        )
        self.cause = cause
        self.remote_name = remote_name
        self.attempts = attempts
        if original is not None:
            self.__cause__ = original


# --- Catalog -----------------------------------------------------------------


class CatalogAPIError(FeedSyncError):
    """Raised when the catalog API returns an error response."""

    def __init__(self, message: str, *, status: int | None = None, body: str | None = None) -> None:
        super().__init__(message, details={"status": status, "body": (body or "")[:500]})
        self.status = status
        self.body = body


class ItemDispatchError(FeedSyncError):
    """Raised when a single changeset item fails to create or update."""

    def __init__(self, identifier: str, message: str, *, cause: Exception | None = None) -> None:
        super().__init__(f"{identifier}: {message}", details={"identifier": identifier})
        self.identifier = identifier
        if cause is not None:
            self.__cause__ = cause


# --- Run ---------------------------------------------------------------------


class RunFatalError(FeedSyncError):
    """Raised when a job run cannot continue (e.g. catalog snapshot fetch failed)."""

    def __init__(self, stage: str, message: str, *, cause: Exception | None = None) -> None:
        super().__init__(f"Run failed during {stage}: {message}", details={"stage": stage})
        self.stage = stage
        if cause is not None:
            self.__cause__ = cause
