"""
Plain FTP connection for feed transfer (passive mode).
"""

from __future__ import annotations

import ftplib
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, BinaryIO

from feedsync.config.loader import TransferSettings
from feedsync.connections.base import RemoteEntry, join_remote
from feedsync.utils.logging import get_logger

logger = get_logger("feedsync.connections.ftp")


@dataclass(frozen=True)
class FTPConfig:
    host: str
    port: int = 21
    username: str | None = None
    password: str | None = None
    connect_timeout_s: float = 30.0

    @classmethod
    def from_settings(cls, settings: TransferSettings) -> FTPConfig:
        return cls(
            host=settings.host,
            port=settings.port,
            username=settings.username,
            password=settings.password,
            connect_timeout_s=settings.timeout_s,
        )


class FTPConnection:
    """
    ftplib wrapper implementing the file transfer client protocol.

    Listing prefers MLSD (machine-readable size and mtime facts) and falls
    back to NLST + SIZE + MDTM on servers that do not support it.
    """

    def __init__(self, config: FTPConfig):
        self.config = config
        self._ftp: ftplib.FTP | None = None

    def connect(self) -> None:
        if self._ftp is not None:
            return
        cfg = self.config
        if not cfg.host:
            raise ValueError("FTP connection missing host")

        ftp = ftplib.FTP(timeout=cfg.connect_timeout_s)
        try:
            ftp.connect(cfg.host, cfg.port)
            ftp.login(user=cfg.username or "anonymous", passwd=cfg.password or "")
            ftp.set_pasv(True)
        except Exception:
            ftp.close()
            raise
        self._ftp = ftp
        logger.info(f"Connected to FTP server {cfg.host}:{cfg.port}")

    @property
    def ftp(self) -> ftplib.FTP:
        if self._ftp is None:
            raise RuntimeError("FTP connection is not open")
        return self._ftp

    def list(self, path: str) -> list[RemoteEntry]:
        try:
            return self._list_mlsd(path)
        except ftplib.error_perm as e:
            logger.debug(f"MLSD not supported ({e}), falling back to NLST")
            return self._list_nlst(path)

    def _list_mlsd(self, path: str) -> list[RemoteEntry]:
        entries = []
        for name, facts in self.ftp.mlsd(path, facts=["type", "size", "modify"]):
            kind = facts.get("type", "file")
            if kind in ("cdir", "pdir"):
                continue
            entries.append(
                RemoteEntry(
                    name=name,
                    size=int(facts.get("size", 0) or 0),
                    modified_at=_parse_ftp_time(facts.get("modify")),
                    is_file=kind == "file",
                )
            )
        return entries

    def _list_nlst(self, path: str) -> list[RemoteEntry]:
        entries = []
        for raw in self.ftp.nlst(path):
            name = raw.rsplit("/", 1)[-1]
            full = join_remote(path, name)
            try:
                size = self.ftp.size(full) or 0
            except ftplib.error_perm:
                # SIZE is refused for directories
                entries.append(RemoteEntry(name=name, size=0, modified_at=_parse_ftp_time(None), is_file=False))
                continue
            try:
                modified = _parse_ftp_time(self.ftp.sendcmd(f"MDTM {full}").split()[-1])
            except ftplib.error_perm:
                modified = _parse_ftp_time(None)
            entries.append(RemoteEntry(name=name, size=int(size), modified_at=modified, is_file=True))
        return entries

    def download_to(self, stream: BinaryIO, remote_name: str) -> None:
        self.ftp.retrbinary(f"RETR {remote_name}", stream.write)

    def close(self) -> None:
        if self._ftp is None:
            return
        try:
            self._ftp.quit()
        except (OSError, EOFError, ftplib.Error):
            self._ftp.close()
        finally:
            self._ftp = None
        logger.info("FTP connection closed")

    def __enter__(self) -> FTPConnection:
        self.connect()
        return self

    def __exit__(self, exc_type: type[BaseException] | None, exc: BaseException | None, tb: Any) -> None:
        self.close()


def _parse_ftp_time(value: str | None) -> datetime:
    """Parse ``YYYYMMDDHHMMSS[.sss]`` (UTC); unknown times sort first."""
    if not value:
        return datetime.fromtimestamp(0, tz=timezone.utc)
    try:
        return datetime.strptime(value[:14], "%Y%m%d%H%M%S").replace(tzinfo=timezone.utc)
    except ValueError:
        return datetime.fromtimestamp(0, tz=timezone.utc)
