"""
feedsync - pulls the vendor's product feed and keeps a product catalog in step with it.
"""

__version__ = "0.1.0"

from feedsync.config import Settings, load_settings
from feedsync.exceptions import (
    CatalogAPIError,
    ConfigurationError,
    FeedSyncError,
    ItemDispatchError,
    RunFatalError,
    TransferError,
    TransferFailure,
)
from feedsync.job import FeedSyncJob, RunLock, RunReport

__all__ = [
    "CatalogAPIError",
    "ConfigurationError",
    "FeedSyncError",
    "FeedSyncJob",
    "ItemDispatchError",
    "RunFatalError",
    "RunLock",
    "RunReport",
    "Settings",
    "TransferError",
    "TransferFailure",
    "__version__",
    "load_settings",
]
