"""Abstract storage backend interface shared by local, SMB and blackhole adapters."""

from abc import ABC, abstractmethod
from typing import BinaryIO, Iterator
from dataclasses import dataclass
from datetime import datetime


@dataclass
class FileInfo:
    """File metadata returned by storage backend operations.

    ``modified_at`` is always timezone-aware UTC so it can be compared with
    timestamps stored on nodes.
    """
    path: str
    name: str
    size: int
    is_directory: bool
    modified_at: datetime
    content_type: str | None = None


class AbstractStorageBackend(ABC):
    """
    Abstract interface for storage backends (adapters).

    An adapter persists node bytes. All paths are relative to the adapter
    root and never carry a leading slash; the empty string is the root.
    Example: "42/5f1c.../3" not "/42/5f1c.../3"
    """

    #: Value stored in ``Node.storage_adapter`` for nodes kept by this adapter
    adapter_name = ""

    @abstractmethod
    def save(self, path: str, content: BinaryIO) -> FileInfo:
        """
        Save file content to path. Overwrites if exists.

        Raises:
            FileNotFoundError: If parent directory doesn't exist
            IsADirectoryError: If path points to an existing directory
        """
        pass

    @abstractmethod
    def open(self, path: str) -> BinaryIO:
        """
        Open file for reading in binary mode.

        Raises:
            FileNotFoundError: If file doesn't exist
            IsADirectoryError: If path points to a directory
        """
        pass

    @abstractmethod
    def delete(self, path: str) -> None:
        """
        Delete file or empty directory at path.

        Raises:
            FileNotFoundError: If path doesn't exist
            OSError: If directory is not empty
        """
        pass

    @abstractmethod
    def exists(self, path: str) -> bool:
        """Check if path exists."""
        pass

    @abstractmethod
    def list(self, path: str = "", glob_pattern: str | None = None) -> Iterator[FileInfo]:
        """
        List contents of directory, optionally filtered by a glob pattern.

        Raises:
            FileNotFoundError: If directory doesn't exist
            NotADirectoryError: If path points to a file
        """
        pass

    @abstractmethod
    def info(self, path: str) -> FileInfo:
        """
        Get metadata about a file or directory.

        Raises:
            FileNotFoundError: If path doesn't exist
        """
        pass

    @abstractmethod
    def mkdir(self, path: str) -> FileInfo:
        """Create directory. Parent directories created as needed."""
        pass

