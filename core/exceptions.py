"""Custom exceptions for Cirrus.

Every exception carries a stable error ``code`` and the HTTP ``status_code``
views answer with when it escapes a service call.
"""


class CirrusException(Exception):
    """Base exception for Cirrus errors."""

    code = "ERROR"
    status_code = 500


class StorageError(CirrusException):
    """Storage backend error."""

    code = "STORAGE_ERROR"


class InvalidArgument(CirrusException):
    """Request parameters are inconsistent or out of range."""

    code = "INVALID_ARGUMENT"
    status_code = 400


class NodeNotFound(CirrusException):
    """Node does not exist (or is deleted and deleted nodes were excluded)."""

    code = "NODE_NOT_FOUND"
    status_code = 404


class NodeConflict(CirrusException):
    """A node with the same name already exists in the collection."""

    code = "NODE_WITH_SAME_NAME_ALREADY_EXISTS"
    status_code = 409


class NodeReadonly(CirrusException):
    """Node is marked readonly and can not be modified."""

    code = "NODE_READONLY"
    status_code = 409


class UploadSessionNotFound(CirrusException):
    """Upload session is unknown, expired or belongs to another user."""

    code = "SESSION_NOT_FOUND"
    status_code = 404


class ChunkOutOfOrder(CirrusException):
    """Chunk index skips over chunks which were never received."""

    code = "CHUNK_OUT_OF_ORDER"
    status_code = 409


class FileTooLarge(CirrusException):
    """Upload exceeds CIRRUS_MAX_UPLOAD_SIZE_MB."""

    code = "FILE_TOO_LARGE"
    status_code = 413


class VersionNotFound(CirrusException):
    """Requested file version is not in the history."""

    code = "VERSION_NOT_FOUND"
    status_code = 404
