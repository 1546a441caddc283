"""
NoteKeeper Backend: Attachment Object Store
=============================================

What:  Object store for note attachments: one container per note, one blob
       per caller-supplied attachment ID.
How:   A directory tree on local disk, accessed with aiofiles so file I/O does
       not block the event loop.

Directory Structure:
    storage/
    └── 3f2b9c1e-....-a7d0/            container (note ID)
        ├── receipt.png                 blob
        ├── minutes.pdf                 blob
        ├── .meta/
        │   ├── receipt.png.json        BlobProperties sidecar
        │   └── minutes.pdf.json
        └── .tmp-5d41402a...            upload in progress

Upload Safety:
    Bytes are streamed into a `.tmp-*` file in the container and moved over
    the blob with os.replace() only after the last chunk is written. A failed,
    empty or oversized upload therefore never replaces or creates a blob.

Attachment IDs are a single path segment. Anything that could escape the
container (separators, `..`, NUL) or collide with bookkeeping entries (a
leading dot) is rejected with ValidationError.
"""

import logging
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import AsyncIterator, List, Optional, Union

import aiofiles
import aiofiles.os

from notekeeper.exceptions import (
    FileStorageError,
    NotFoundError,
    QuotaExceededError,
    ValidationError,
)
from notekeeper.schemas.attachment import (
    AttachmentDownload,
    AttachmentInfo,
    BlobProperties,
    PurgeResult,
    UploadResult,
)

logger = logging.getLogger(__name__)

META_DIR = ".meta"
TEMP_PREFIX = ".tmp-"
DEFAULT_CONTENT_TYPE = "application/octet-stream"
DEFAULT_CHUNK_SIZE = 64 * 1024

NoteKey = Union[uuid.UUID, str]


def validate_attachment_id(attachment_id: str) -> str:
    """Return the ID unchanged if it is usable as a blob name."""
    if not attachment_id or not attachment_id.strip():
        raise ValidationError(message="Attachment ID is required.", field="attachment_id")
    if attachment_id in {".", ".."} or attachment_id.startswith("."):
        raise ValidationError(
            message="Attachment ID must not start with '.'.",
            field="attachment_id",
            context={"attachment_id": attachment_id},
        )
    if any(ch in attachment_id for ch in ("/", "\\", "\x00")):
        raise ValidationError(
            message="Attachment ID must not contain path separators.",
            field="attachment_id",
            context={"attachment_id": attachment_id},
        )
    return attachment_id


class AttachmentStore:
    """
    Filesystem-backed object store.

    Responsibilities:
        - ensure_container / container_exists: per-note directory lifecycle
        - count_attachments: quota counting with early stop at the ceiling
        - upload: quota-checked, streamed, atomic create-or-overwrite
        - delete: idempotent single-blob removal
        - download / list_attachments: read access with properties
        - purge_container: best-effort removal of everything for a note

    No locking: two uploads racing near the ceiling may both pass the count.
    """

    def __init__(
        self,
        storage_root: Union[str, Path],
        max_attachments: int,
        max_attachment_size: int = 10_485_760,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ):
        self.storage_root = Path(storage_root).resolve()
        self.max_attachments = max_attachments
        self.max_attachment_size = max_attachment_size
        self.chunk_size = chunk_size
        logger.info(
            "AttachmentStore initialized with storage_root=%s, max_attachments=%d",
            self.storage_root,
            max_attachments,
        )

    # ── Paths ─────────────────────────────────────────────────────────────

    def _container_path(self, note_id: NoteKey) -> Path:
        return self.storage_root / str(note_id)

    def _blob_path(self, note_id: NoteKey, attachment_id: str) -> Path:
        return self._container_path(note_id) / attachment_id

    def _meta_path(self, note_id: NoteKey, attachment_id: str) -> Path:
        return self._container_path(note_id) / META_DIR / f"{attachment_id}.json"

    # ── Containers ────────────────────────────────────────────────────────

    async def ensure_container(self, note_id: NoteKey) -> None:
        """Create the note's container (and its metadata directory) if missing."""
        try:
            await aiofiles.os.makedirs(self._container_path(note_id) / META_DIR, exist_ok=True)
        except OSError as e:
            logger.error("Failed to create container %s: %s", note_id, str(e))
            raise FileStorageError(
                message="Failed to prepare attachment storage.",
                context={"note_id": str(note_id), "os_error": str(e)},
            ) from e

    async def container_exists(self, note_id: NoteKey) -> bool:
        return await aiofiles.os.path.isdir(self._container_path(note_id))

    async def _blob_names(self, note_id: NoteKey) -> List[str]:
        """Blob names in the container, sorted; [] if the container is missing."""
        container = self._container_path(note_id)
        try:
            entries = await aiofiles.os.listdir(container)
        except FileNotFoundError:
            return []
        except OSError as e:
            raise FileStorageError(
                message="Failed to read attachment storage.",
                context={"note_id": str(note_id), "os_error": str(e)},
            ) from e

        names = []
        for name in sorted(entries):
            if name.startswith("."):
                continue
            if await aiofiles.os.path.isfile(container / name):
                names.append(name)
        return names

    async def count_attachments(self, note_id: NoteKey, limit: Optional[int] = None) -> int:
        """
        Number of blobs in the container.

        With `limit`, counting stops as soon as the limit is reached; the
        result is then exactly `limit`, which is all a quota check needs.
        """
        container = self._container_path(note_id)
        try:
            entries = await aiofiles.os.listdir(container)
        except FileNotFoundError:
            return 0
        except OSError as e:
            raise FileStorageError(
                message="Failed to read attachment storage.",
                context={"note_id": str(note_id), "os_error": str(e)},
            ) from e

        count = 0
        for name in entries:
            if name.startswith("."):
                continue
            if await aiofiles.os.path.isfile(container / name):
                count += 1
                if limit is not None and count >= limit:
                    break
        return count

    # ── Blobs ─────────────────────────────────────────────────────────────

    async def blob_exists(self, note_id: NoteKey, attachment_id: str) -> bool:
        validate_attachment_id(attachment_id)
        return await aiofiles.os.path.isfile(self._blob_path(note_id, attachment_id))

    async def _read_properties(self, note_id: NoteKey, attachment_id: str) -> Optional[BlobProperties]:
        meta_path = self._meta_path(note_id, attachment_id)
        try:
            async with aiofiles.open(meta_path, "r", encoding="utf-8") as f:
                raw = await f.read()
        except FileNotFoundError:
            return None
        try:
            return BlobProperties.model_validate_json(raw)
        except ValueError:
            logger.warning("Ignoring unreadable metadata for %s/%s", note_id, attachment_id)
            return None

    async def _write_properties(
        self, note_id: NoteKey, attachment_id: str, properties: BlobProperties
    ) -> None:
        meta_path = self._meta_path(note_id, attachment_id)
        await aiofiles.os.makedirs(meta_path.parent, exist_ok=True)
        async with aiofiles.open(meta_path, "w", encoding="utf-8") as f:
            await f.write(properties.model_dump_json())

    async def _describe(self, note_id: NoteKey, attachment_id: str) -> AttachmentInfo:
        """Build AttachmentInfo from the blob's stat and its sidecar."""
        stat = await aiofiles.os.stat(self._blob_path(note_id, attachment_id))
        properties = await self._read_properties(note_id, attachment_id)
        if properties is None:
            # Blob placed without a sidecar: fall back to file timestamps
            mtime = datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc)
            properties = BlobProperties(
                content_type=DEFAULT_CONTENT_TYPE,
                created_at=mtime,
                modified_at=mtime,
            )
        return AttachmentInfo(
            id=attachment_id,
            content_type=properties.content_type,
            length=stat.st_size,
            created_at=properties.created_at,
            modified_at=properties.modified_at,
        )

    async def _first_chunk(self, chunks: AsyncIterator[bytes]) -> Optional[bytes]:
        """First non-empty chunk, or None for an empty stream."""
        async for chunk in chunks:
            if chunk:
                return chunk
        return None

    def _check_size(self, written: int) -> int:
        if written > self.max_attachment_size:
            max_mb = self.max_attachment_size / (1024 * 1024)
            raise ValidationError(
                message=f"File size exceeds maximum of {max_mb:.0f}MB.",
                field="fileData",
                context={"max_size": self.max_attachment_size},
            )
        return written

    async def upload(
        self,
        note_id: NoteKey,
        attachment_id: str,
        chunks: AsyncIterator[bytes],
        content_type: Optional[str] = None,
        max_attachments: Optional[int] = None,
    ) -> UploadResult:
        """
        Create or overwrite a blob from a stream of byte chunks.

        Order:
            1. Validate the attachment ID
            2. Read the first chunk: an empty stream → ValidationError
            3. Quota: count >= max_attachments → QuotaExceededError
               (also when overwriting)
            4. Stream into a temp file, enforcing max_attachment_size
            5. Atomically move the temp file over the blob, write the sidecar

        Args:
            max_attachments: Ceiling for this call; defaults to the store's own.

        Returns:
            UploadResult with created=False when an existing blob was replaced.
        """
        validate_attachment_id(attachment_id)
        ceiling = self.max_attachments if max_attachments is None else max_attachments

        chunks = chunks.__aiter__()
        first = await self._first_chunk(chunks)
        if first is None:
            raise ValidationError(message="File is required and must not be empty.", field="fileData")

        count = await self.count_attachments(note_id, limit=ceiling)
        if count >= ceiling:
            logger.warning(
                "Attachment quota reached for note %s (%d/%d)",
                note_id,
                count,
                ceiling,
            )
            raise QuotaExceededError(resource="attachments", limit=ceiling)

        await self.ensure_container(note_id)
        blob_path = self._blob_path(note_id, attachment_id)
        existed = await aiofiles.os.path.isfile(blob_path)
        previous = await self._read_properties(note_id, attachment_id) if existed else None

        temp_path = self._container_path(note_id) / f"{TEMP_PREFIX}{uuid.uuid4().hex}"
        written = 0
        try:
            async with aiofiles.open(temp_path, "wb") as f:
                written = self._check_size(len(first))
                await f.write(first)
                async for chunk in chunks:
                    if not chunk:
                        continue
                    written = self._check_size(written + len(chunk))
                    await f.write(chunk)

            await aiofiles.os.replace(temp_path, blob_path)

            now = datetime.now(timezone.utc)
            properties = BlobProperties(
                content_type=content_type or DEFAULT_CONTENT_TYPE,
                created_at=previous.created_at if previous else now,
                modified_at=now,
            )
            await self._write_properties(note_id, attachment_id, properties)
        except OSError as e:
            logger.error("Failed to store attachment %s/%s: %s", note_id, attachment_id, str(e))
            raise FileStorageError(
                message="Failed to save attachment. Please try again.",
                context={"note_id": str(note_id), "attachment_id": attachment_id, "os_error": str(e)},
            ) from e
        finally:
            await self._discard(temp_path)

        logger.info(
            "Attachment %s %s for note %s (%d bytes)",
            attachment_id,
            "replaced" if existed else "created",
            note_id,
            written,
        )
        return UploadResult(
            created=not existed,
            attachment=AttachmentInfo(
                id=attachment_id,
                content_type=properties.content_type,
                length=written,
                created_at=properties.created_at,
                modified_at=properties.modified_at,
            ),
        )

    async def _discard(self, path: Path) -> None:
        """Remove a leftover temp file; failure here only leaves litter."""
        try:
            if await aiofiles.os.path.exists(path):
                await aiofiles.os.remove(path)
        except OSError as e:
            logger.warning("Failed to remove temp file %s: %s", path.name, str(e))

    async def delete(self, note_id: NoteKey, attachment_id: str) -> bool:
        """Delete a blob and its sidecar. Returns whether the blob existed."""
        validate_attachment_id(attachment_id)
        blob_path = self._blob_path(note_id, attachment_id)
        try:
            found = await aiofiles.os.path.isfile(blob_path)
            if found:
                await aiofiles.os.remove(blob_path)
            meta_path = self._meta_path(note_id, attachment_id)
            if await aiofiles.os.path.exists(meta_path):
                await aiofiles.os.remove(meta_path)
        except FileNotFoundError:
            # Removed concurrently by another request
            found = False
        except OSError as e:
            logger.error("Failed to delete attachment %s/%s: %s", note_id, attachment_id, str(e))
            raise FileStorageError(
                message="Failed to delete attachment.",
                context={"note_id": str(note_id), "attachment_id": attachment_id, "os_error": str(e)},
            ) from e

        if found:
            logger.info("Attachment %s deleted from note %s", attachment_id, note_id)
        else:
            logger.debug("Attachment %s not present in note %s", attachment_id, note_id)
        return found

    async def download(self, note_id: NoteKey, attachment_id: str) -> AttachmentDownload:
        """
        Open a blob for streaming.

        Raises:
            NotFoundError if the blob does not exist.
        """
        if not await self.blob_exists(note_id, attachment_id):
            raise NotFoundError(resource="Attachment", resource_id=attachment_id)

        try:
            info = await self._describe(note_id, attachment_id)
        except FileNotFoundError as e:
            raise NotFoundError(resource="Attachment", resource_id=attachment_id) from e
        except OSError as e:
            raise FileStorageError(
                message="Failed to read attachment.",
                context={"note_id": str(note_id), "attachment_id": attachment_id, "os_error": str(e)},
            ) from e

        return AttachmentDownload(
            info=info,
            chunks=self._iter_blob(self._blob_path(note_id, attachment_id)),
        )

    async def _iter_blob(self, path: Path) -> AsyncIterator[bytes]:
        async with aiofiles.open(path, "rb") as f:
            while True:
                chunk = await f.read(self.chunk_size)
                if not chunk:
                    break
                yield chunk

    async def list_attachments(self, note_id: NoteKey) -> List[AttachmentInfo]:
        """Metadata for every blob in the container, sorted by ID."""
        attachments = []
        for name in await self._blob_names(note_id):
            try:
                attachments.append(await self._describe(note_id, name))
            except FileNotFoundError:
                continue
            except OSError as e:
                raise FileStorageError(
                    message="Failed to read attachment storage.",
                    context={"note_id": str(note_id), "os_error": str(e)},
                ) from e
        return attachments

    async def purge_container(self, note_id: NoteKey) -> PurgeResult:
        """
        Best-effort removal of a note's container.

        Each blob is deleted independently; a failure is logged and recorded
        in the result, and the loop continues. The container directory is
        only removed once every blob is gone, so a partial purge leaves the
        remaining blobs in place for a later retry.

        Never raises.
        """
        result = PurgeResult()
        container = self._container_path(note_id)

        try:
            names = await self._blob_names(note_id)
        except FileStorageError as e:
            logger.error("Failed to enumerate container %s for purge: %s", note_id, e.message)
            result.error = e.message
            return result

        for name in names:
            try:
                await aiofiles.os.remove(container / name)
                result.deleted += 1
            except FileNotFoundError:
                continue
            except OSError as e:
                logger.error("Failed to delete attachment %s of note %s: %s", name, note_id, str(e))
                result.failed.append(name)
                continue
            await self._discard(self._meta_path(note_id, name))

        if result.failed:
            logger.warning(
                "Container %s left in place: %d attachment(s) could not be deleted",
                note_id,
                len(result.failed),
            )
            return result

        try:
            if await aiofiles.os.path.isdir(container):
                await self._remove_bookkeeping(container)
                await aiofiles.os.rmdir(container)
                result.container_removed = True
        except OSError as e:
            logger.error("Failed to delete container %s: %s", note_id, str(e))
            result.error = str(e)

        logger.info(
            "Purged container %s: %d attachment(s) deleted, removed=%s",
            note_id,
            result.deleted,
            result.container_removed,
        )
        return result

    async def _remove_bookkeeping(self, container: Path) -> None:
        """Delete sidecars and temp files so the container directory can go."""
        meta_dir = container / META_DIR
        if await aiofiles.os.path.isdir(meta_dir):
            for name in await aiofiles.os.listdir(meta_dir):
                await aiofiles.os.remove(meta_dir / name)
            await aiofiles.os.rmdir(meta_dir)
        for name in await aiofiles.os.listdir(container):
            if name.startswith(TEMP_PREFIX):
                await aiofiles.os.remove(container / name)
