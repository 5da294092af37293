"""
SFTP connection for feed transfer.
"""

from __future__ import annotations

import socket
import stat
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, BinaryIO

import paramiko

from feedsync.config.loader import TransferSettings
from feedsync.connections.base import RemoteEntry


@dataclass(frozen=True)
class SFTPConfig:
    host: str
    port: int = 22
    username: str | None = None
    password: str | None = None
    connect_timeout_s: float = 30.0

    @classmethod
    def from_settings(cls, settings: TransferSettings) -> SFTPConfig:
        return cls(
            host=settings.host,
            port=settings.port,
            username=settings.username,
            password=settings.password,
            connect_timeout_s=settings.timeout_s,
        )


class SFTPConnection:
    """
    Minimal SFTP wrapper implementing the file transfer client protocol.
    """

    def __init__(self, config: SFTPConfig):
        self.config = config
        self._transport: paramiko.Transport | None = None
        self._client: paramiko.SFTPClient | None = None

    def connect(self) -> None:
        """Open transport + SFTP session (no-op when already connected)."""
        if self._client is not None:
            return

        cfg = self.config
        if not cfg.host:
            raise ValueError("SFTP connection missing host")

        sock = socket.create_connection((cfg.host, cfg.port), timeout=cfg.connect_timeout_s)
        try:
            transport = paramiko.Transport(sock)
        except Exception:
            sock.close()
            raise
        transport.banner_timeout = cfg.connect_timeout_s
        transport.auth_timeout = cfg.connect_timeout_s

        try:
            transport.connect(username=cfg.username, password=cfg.password)
            client = paramiko.SFTPClient.from_transport(transport)
            # Reads on a stalled server raise socket.timeout instead of blocking
            client.get_channel().settimeout(cfg.connect_timeout_s)
        except Exception:
            transport.close()
            raise
        self._client = client
        self._transport = transport

    @property
    def client(self) -> paramiko.SFTPClient:
        if self._client is None:
            raise RuntimeError("SFTP connection is not open")
        return self._client

    def list(self, path: str) -> list[RemoteEntry]:
        entries = []
        for attr in self.client.listdir_attr(path):
            mode = getattr(attr, "st_mode", 0) or 0
            entries.append(
                RemoteEntry(
                    name=attr.filename,
                    size=int(getattr(attr, "st_size", 0) or 0),
                    modified_at=datetime.fromtimestamp(int(getattr(attr, "st_mtime", 0) or 0), tz=timezone.utc),
                    is_file=stat.S_ISREG(mode),
                )
            )
        return entries

    def download_to(self, stream: BinaryIO, remote_name: str) -> None:
        self.client.getfo(remote_name, stream)

    def close(self) -> None:
        """Close SFTP client + underlying transport."""
        try:
            if self._client is not None:
                self._client.close()
        finally:
            self._client = None
        try:
            if self._transport is not None:
                self._transport.close()
        finally:
            self._transport = None

    def __enter__(self) -> SFTPConnection:
        self.connect()
        return self

    def __exit__(self, exc_type: type[BaseException] | None, exc: BaseException | None, tb: Any) -> None:
        self.close()
