"""
File transfer client protocol shared by the FTP and SFTP connections.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import BinaryIO, Protocol


@dataclass(frozen=True)
class RemoteEntry:
    name: str
    size: int
    modified_at: datetime
    is_file: bool = True


class FileTransferClient(Protocol):
    """
    Minimal remote directory listing + download primitive.

    Implementations are blocking; the job runs them in a worker thread.
    """

    def connect(self) -> None: ...

    def list(self, path: str) -> list[RemoteEntry]: ...

    def download_to(self, stream: BinaryIO, remote_name: str) -> None: ...

    def close(self) -> None: ...


def join_remote(directory: str, name: str) -> str:
    """Join a remote directory and entry name with a single ``/``."""
    if not directory or directory == ".":
        return name
    return f"{directory.rstrip('/')}/{name}"
