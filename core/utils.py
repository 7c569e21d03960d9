"""Core utility functions for Cirrus."""

import re
import unicodedata
from pathlib import PurePosixPath

MAX_NAME_LENGTH = 255


class PathValidationError(Exception):
    """Raised when path contains invalid characters or traversal attempts."""

    pass


def normalize_path(path: str) -> str:
    """
    Normalize a storage path.

    - Strips leading/trailing slashes
    - Collapses multiple slashes
    - Blocks path traversal
    - Rejects invalid characters

    Args:
        path: Path to normalize

    Returns:
        Normalized path string ("" for the root)

    Raises:
        PathValidationError: For invalid paths
    """
    if not path:
        return ""

    if re.search(r"[\x00-\x1f]", path):
        raise PathValidationError("Path contains invalid characters")

    path = re.sub(r"/+", "/", path)
    path = path.strip("/")

    parts = path.split("/")
    if ".." in parts:
        raise PathValidationError("Path traversal not allowed")

    return "/".join(part for part in parts if part != ".")


def normalize_name(name: str) -> str:
    """Return the NFC form of a node name.

    Remote shares may report decomposed unicode (NFD) names; comparing
    normalized forms keeps "é" from two sources equal.
    """
    return unicodedata.normalize("NFC", name)


def validate_filename(name: str) -> str:
    """
    Validate a single node name component.

    Args:
        name: Filename to validate

    Returns:
        The NFC-normalized filename

    Raises:
        PathValidationError: For invalid filenames
    """
    if not name:
        raise PathValidationError("Filename cannot be empty")

    if "/" in name or "\\" in name:
        raise PathValidationError("Filename cannot contain slashes")

    if name in (".", ".."):
        raise PathValidationError("Invalid filename")

    if re.search(r"[\x00-\x1f]", name):
        raise PathValidationError("Filename contains invalid characters")

    name = normalize_name(name)
    if len(name) > MAX_NAME_LENGTH:
        raise PathValidationError(
            f"Filename exceeds {MAX_NAME_LENGTH} characters"
        )

    return name


def join_path(parent: str, name: str) -> str:
    """Join a relative parent path and a child name ("" is the root)."""
    return f"{parent}/{name}" if parent else name


def parent_of(path: str) -> str:
    """Return the relative parent path of ``path`` ("" for top level)."""
    parent = str(PurePosixPath(path).parent)
    return "" if parent == "." else parent


def numbered_name(name: str, counter: int) -> str:
    """
    Build the name used for the n-th conflicting copy of ``name``.

    numbered_name("report.pdf", 2) -> "report (2).pdf"
    """
    path = PurePosixPath(name)
    return f"{path.stem} ({counter}){path.suffix}"
