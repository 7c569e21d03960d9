"""SMB share storage backend."""

import errno
import logging
import mimetypes
import stat as stat_module
from contextlib import contextmanager
from datetime import datetime, timezone
from fnmatch import fnmatch
from typing import BinaryIO, Iterator

import smbclient
from smbprotocol.exceptions import SMBOSError

from core.utils import normalize_path

from .base import AbstractStorageBackend, FileInfo

logger = logging.getLogger(__name__)

COPY_CHUNK_SIZE = 1024 * 1024


@contextmanager
def _translate_errors(path: str):
    """Surface SMB status codes as the builtin OSError subclasses."""
    try:
        yield
    except SMBOSError as e:
        if e.errno == errno.ENOENT:
            raise FileNotFoundError(f"Path not found on share: {path}") from e
        if e.errno == errno.ENOTDIR:
            raise NotADirectoryError(f"Path is not a directory: {path}") from e
        if e.errno == errno.EISDIR:
            raise IsADirectoryError(f"Path is a directory: {path}") from e
        raise


class SmbStorageBackend(AbstractStorageBackend):
    """
    Storage backend on an SMB/CIFS share.

    Paths are relative to ``root`` inside the share, so a mount configured
    with root "projects" maps "a/b.txt" to \\\\host\\share\\projects\\a\\b.txt.
    """

    adapter_name = "smb"

    def __init__(
        self,
        host: str,
        share: str,
        username: str | None = None,
        password: str | None = None,
        port: int = 445,
        root: str = "",
        system_folder: str | None = None,
    ):
        self.host = host
        self.share = share
        self.username = username
        self.password = password
        self.port = port
        self.root = normalize_path(root)
        self.system_folder = system_folder
        self._registered = False

    @classmethod
    def from_options(cls, options: dict) -> "SmbStorageBackend":
        """Build a backend from a mount's ``mount_options``."""
        return cls(
            host=options["host"],
            share=options["share"],
            username=options.get("username"),
            password=options.get("password"),
            port=int(options.get("port", 445)),
            root=options.get("root", ""),
            system_folder=options.get("system_folder"),
        )

    def _register(self) -> None:
        if self._registered:
            return

        logger.debug(f"Registering SMB session for {self.host}:{self.port}")
        smbclient.register_session(
            self.host,
            username=self.username,
            password=self.password,
            port=self.port,
        )
        self._registered = True

    def _unc(self, path: str) -> str:
        """Translate a relative path into a UNC path on the share."""
        self._register()
        parts = [part for part in (self.root, normalize_path(path)) if part]
        relative = "\\".join(parts).replace("/", "\\")
        unc = f"\\\\{self.host}\\{self.share}"
        return f"{unc}\\{relative}" if relative else unc

    def _relative(self, path: str, name: str) -> str:
        path = normalize_path(path)
        return f"{path}/{name}" if path else name

    def _build_info(self, relative_path: str, name: str, result) -> FileInfo:
        is_directory = stat_module.S_ISDIR(result.st_mode)
        return FileInfo(
            path=relative_path,
            name=name,
            size=0 if is_directory else result.st_size,
            is_directory=is_directory,
            modified_at=datetime.fromtimestamp(result.st_mtime, tz=timezone.utc),
            content_type=None if is_directory else mimetypes.guess_type(name)[0],
        )

    def save(self, path: str, content: BinaryIO) -> FileInfo:
        """Write file content to the share."""
        unc = self._unc(path)
        with _translate_errors(path):
            with smbclient.open_file(unc, mode="wb") as f:
                for chunk in iter(lambda: content.read(COPY_CHUNK_SIZE), b""):
                    f.write(chunk)
        return self.info(path)

    def open(self, path: str) -> BinaryIO:
        """Open a file on the share for reading."""
        unc = self._unc(path)
        with _translate_errors(path):
            return smbclient.open_file(unc, mode="rb")

    def delete(self, path: str) -> None:
        """Delete file or empty directory on the share."""
        info = self.info(path)
        unc = self._unc(path)
        with _translate_errors(path):
            if info.is_directory:
                smbclient.rmdir(unc)
            else:
                smbclient.remove(unc)

    def exists(self, path: str) -> bool:
        try:
            self.info(path)
        except FileNotFoundError:
            return False
        return True

    def list(self, path: str = "", glob_pattern: str | None = None) -> Iterator[FileInfo]:
        """List a directory on the share."""
        unc = self._unc(path)
        with _translate_errors(path):
            entries = list(smbclient.scandir(unc))

        for entry in entries:
            if entry.name in (".", ".."):
                continue
            if glob_pattern and not fnmatch(entry.name, glob_pattern):
                continue
            with _translate_errors(path):
                result = entry.stat()
            yield self._build_info(self._relative(path, entry.name), entry.name, result)

    def info(self, path: str) -> FileInfo:
        """Stat a path on the share."""
        path = normalize_path(path)
        unc = self._unc(path)
        with _translate_errors(path):
            result = smbclient.stat(unc)
        name = path.rsplit("/", 1)[-1] if path else self.share
        return self._build_info(path, name, result)

    def mkdir(self, path: str) -> FileInfo:
        """Create directory (and parents) on the share."""
        unc = self._unc(path)
        with _translate_errors(path):
            smbclient.makedirs(unc, exist_ok=True)
        return self.info(path)
