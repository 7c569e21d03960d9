"""Storage backend abstraction for Cirrus."""

from .base import AbstractStorageBackend, FileInfo
from .blackhole import BlackholeStorageBackend
from .local import LocalStorageBackend

__all__ = [
    "AbstractStorageBackend",
    "BlackholeStorageBackend",
    "FileInfo",
    "LocalStorageBackend",
]
