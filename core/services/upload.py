"""
Upload Session Service.

Accumulates the bytes of an upload across one or more requests. Each request
appends to the session's temp file; once the last chunk arrived the session
is finalized, which fixes its md5 digest, and the content can be swapped
into a node.

Usage:
    service = UploadSessionService()
    session = service.store_temporary_file(request.stream, owner, index=1, chunks=3)
    session = service.store_temporary_file(stream, owner, session=session, index=2, chunks=3)
    ...
    digest = service.finalize(session)
"""

import hashlib
import logging
from pathlib import Path
from typing import BinaryIO, Optional

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import transaction
from django.utils import timezone

from core.exceptions import (
    ChunkOutOfOrder,
    FileTooLarge,
    InvalidArgument,
    UploadSessionNotFound,
)
from storage.models import UploadSession

logger = logging.getLogger(__name__)

READ_BLOCK_SIZE = 64 * 1024


class UploadSessionService:
    """
    Service for chunked / resumable uploads.

    Chunks must arrive in order. A chunk whose index was already stored is a
    client retry and is acknowledged without appending anything, so a
    request can be repeated safely after a lost response.
    """

    def __init__(
        self,
        temp_root: Optional[Path] = None,
        max_size: Optional[int] = None,
    ):
        self.temp_root = Path(temp_root or settings.CIRRUS_UPLOAD_TEMP_ROOT)
        self.max_size = (
            max_size
            if max_size is not None
            else settings.CIRRUS_MAX_UPLOAD_SIZE_MB * 1024 * 1024
        )

    def get_session(self, session_id, owner) -> UploadSession:
        """Load a live session of ``owner``."""
        try:
            session = UploadSession.objects.get(pk=session_id, owner=owner)
        except (UploadSession.DoesNotExist, ValidationError, ValueError):
            raise UploadSessionNotFound(f"upload session {session_id} not found")

        if session.is_expired():
            raise UploadSessionNotFound(f"upload session {session_id} has expired")

        return session

    def store_temporary_file(
        self,
        stream: BinaryIO,
        owner,
        session: Optional[UploadSession] = None,
        index: Optional[int] = None,
        chunks: Optional[int] = None,
    ) -> UploadSession:
        """
        Append ``stream`` to an upload session.

        Args:
            stream: Readable binary stream with the chunk bytes
            owner: User uploading
            session: Existing session, or None to start a new one
            index: 1-based chunk index (None for single-shot uploads)
            chunks: Declared total number of chunks

        Returns:
            The (possibly new) UploadSession

        Raises:
            InvalidArgument: Chunk index out of range or session finalized
            ChunkOutOfOrder: Index skips chunks which were never received
            FileTooLarge: Session would exceed the maximum upload size
            UploadSessionNotFound: Session belongs to another user or expired
        """
        if chunks is not None:
            if index is None or index < 1:
                raise InvalidArgument("chunk index must be a positive integer")
            if index > chunks:
                raise InvalidArgument(
                    "chunk index can not be greater than the total number of chunks"
                )

        if session is None:
            if index is not None and index > 1:
                raise ChunkOutOfOrder(f"expected chunk 1, got {index}")
            session = self._create_session(owner, chunks or 0)
        elif session.owner_id != owner.pk:
            raise UploadSessionNotFound(f"upload session {session.pk} not found")

        try:
            session = self._store_chunk(session, stream, index, chunks)
        except FileTooLarge:
            self.discard(session)
            raise

        return session

    def _store_chunk(
        self,
        session: UploadSession,
        stream: BinaryIO,
        index: Optional[int],
        chunks: Optional[int],
    ) -> UploadSession:
        with transaction.atomic():
            session = UploadSession.objects.select_for_update().get(pk=session.pk)

            if session.is_expired():
                raise UploadSessionNotFound(f"upload session {session.pk} has expired")

            if session.is_finalized:
                raise InvalidArgument(f"upload session {session.pk} is already finalized")

            if chunks is not None:
                if session.total_chunks and session.total_chunks != chunks:
                    raise InvalidArgument(
                        f"session was started with {session.total_chunks} chunks, got {chunks}"
                    )

                if index <= session.chunks_received:
                    logger.debug(
                        f"Chunk {index}/{chunks} of session {session.pk} already stored, "
                        f"ignoring replay"
                    )
                    return session

                if index > session.chunks_received + 1:
                    raise ChunkOutOfOrder(
                        f"expected chunk {session.chunks_received + 1}, got {index}"
                    )

                session.total_chunks = chunks

            written = self._append(session, stream)
            session.size += written
            session.chunks_received += 1
            session.save(
                update_fields=["size", "chunks_received", "total_chunks", "updated_at"]
            )

        logger.debug(
            f"Stored {written} bytes in upload session {session.pk} "
            f"(chunk {session.chunks_received}/{session.total_chunks or 1}, "
            f"total {session.size} bytes)"
        )
        return session

    def finalize(self, session: UploadSession) -> str:
        """
        Finalize the session and return the md5 hex digest of its content.

        Idempotent: a finalized session returns its stored digest.
        """
        if session.is_finalized:
            return session.hash

        digest = hashlib.md5()
        size = 0
        with self.open(session) as f:
            for block in iter(lambda: f.read(READ_BLOCK_SIZE), b""):
                digest.update(block)
                size += len(block)

        session.hash = digest.hexdigest()
        session.save(update_fields=["hash", "updated_at"])
        logger.info(f"Finalized upload session {session.pk}: {size} bytes, md5={session.hash}")
        return session.hash

    def open(self, session: UploadSession) -> BinaryIO:
        """Open the accumulated bytes for reading."""
        return Path(session.temp_path).open("rb")

    def release(self, session: UploadSession, node) -> None:
        """
        Drop a session whose content was stored in ``node``.

        Single-shot sessions are removed. A chunked session keeps its row,
        without the temp file, until it expires so that a replayed last
        chunk can be answered with ``node``.
        """
        if not session.total_chunks:
            self.discard(session)
            return

        Path(session.temp_path).unlink(missing_ok=True)
        session.node = node
        session.save(update_fields=["node", "updated_at"])
        logger.debug(f"Upload session {session.pk} completed into node {node.pk}")

    def discard(self, session: UploadSession) -> None:
        """Remove the session and its temp file."""
        Path(session.temp_path).unlink(missing_ok=True)
        if session.pk is not None:
            UploadSession.objects.filter(pk=session.pk).delete()

    def cleanup_expired(self, dry_run: bool = False) -> int:
        """Delete expired sessions. Returns the number of sessions affected."""
        expired = UploadSession.objects.filter(expires_at__lt=timezone.now())
        count = expired.count()

        if not dry_run:
            for session in expired:
                self.discard(session)
            logger.info(f"Removed {count} expired upload sessions")

        return count

    def _create_session(self, owner, total_chunks: int) -> UploadSession:
        session = UploadSession(owner=owner, total_chunks=total_chunks)
        owner_dir = self.temp_root / str(owner.pk)
        owner_dir.mkdir(parents=True, exist_ok=True)
        session.temp_path = str(owner_dir / f"{session.id}.part")
        session.save()
        logger.debug(f"Created upload session {session.pk} for user {owner.pk}")
        return session

    def _append(self, session: UploadSession, stream: BinaryIO) -> int:
        """Write ``stream`` after the last committed byte of the session."""
        path = Path(session.temp_path)
        path.touch(exist_ok=True)
        written = 0
        with path.open("r+b") as f:
            # Bytes past session.size belong to a chunk that never committed
            f.truncate(session.size)
            f.seek(session.size)
            for block in iter(lambda: stream.read(READ_BLOCK_SIZE), b""):
                written += len(block)
                if session.size + written > self.max_size:
                    raise FileTooLarge(
                        f"upload exceeds the maximum size of {self.max_size} bytes"
                    )
                f.write(block)
        return written
