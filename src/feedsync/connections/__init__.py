"""
File transfer connections (FTP and SFTP).
"""

from feedsync.config.loader import TransferSettings
from feedsync.connections.base import FileTransferClient, RemoteEntry, join_remote
from feedsync.connections.ftp import FTPConfig, FTPConnection
from feedsync.connections.sftp import SFTPConfig, SFTPConnection


def get_transfer_client(settings: TransferSettings) -> FileTransferClient:
    """Build a fresh, unconnected transfer client for the configured protocol."""
    if settings.protocol == "sftp":
        return SFTPConnection(SFTPConfig.from_settings(settings))
    if settings.protocol == "ftp":
        return FTPConnection(FTPConfig.from_settings(settings))
    raise ValueError(f"Unsupported transfer protocol: {settings.protocol}")


__all__ = [
    "FTPConfig",
    "FTPConnection",
    "FileTransferClient",
    "RemoteEntry",
    "SFTPConfig",
    "SFTPConnection",
    "get_transfer_client",
    "join_remote",
]
