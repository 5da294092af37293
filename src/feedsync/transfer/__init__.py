"""
Feed transfer from the vendor's file server.
"""

from feedsync.transfer.manager import TransferManager, backup_path, select_latest
from feedsync.transfer.retry import DEFAULT_TRANSFER_POLICY, RetryPolicy, RetryState

__all__ = [
    "DEFAULT_TRANSFER_POLICY",
    "RetryPolicy",
    "RetryState",
    "TransferManager",
    "backup_path",
    "select_latest",
]
