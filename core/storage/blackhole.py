"""No-op storage backend."""

from typing import BinaryIO, Iterator

from django.utils import timezone

from .base import AbstractStorageBackend, FileInfo


class BlackholeStorageBackend(AbstractStorageBackend):
    """
    Storage backend that persists nothing.

    Used where node metadata must change without touching bytes, e.g. when
    mirroring an SMB share: the share already holds the content, so local
    inserts and deletes go through this adapter and never write back.
    """

    adapter_name = "blackhole"

    def save(self, path: str, content: BinaryIO) -> FileInfo:
        return FileInfo(
            path=path,
            name=path.rsplit("/", 1)[-1],
            size=0,
            is_directory=False,
            modified_at=timezone.now(),
        )

    def open(self, path: str) -> BinaryIO:
        raise FileNotFoundError(f"Blackhole storage holds no content: {path}")

    def delete(self, path: str) -> None:
        pass

    def exists(self, path: str) -> bool:
        return False

    def list(self, path: str = "", glob_pattern: str | None = None) -> Iterator[FileInfo]:
        return iter(())

    def info(self, path: str) -> FileInfo:
        raise FileNotFoundError(f"Blackhole storage holds no content: {path}")

    def mkdir(self, path: str) -> FileInfo:
        return FileInfo(
            path=path,
            name=path.rsplit("/", 1)[-1],
            size=0,
            is_directory=True,
            modified_at=timezone.now(),
        )
