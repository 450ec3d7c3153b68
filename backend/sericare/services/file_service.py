"""
SeriCare Backend — File Storage Service (Upload Intake)
=========================================================

What:  Validates an uploaded silkworm image, writes it to the upload
       directory under a collision-resistant name, and owns its cleanup.
Why:   The stored file is the unit of cleanup for the whole upload pipeline:
       it must exist afterwards only if an upload record points at it.
How:   accept() validates and writes; hold() guards the written file until
       the caller calls keep().
Who:   Called by UploadService during the submit flow, and by the
       /uploads/{file_name} route to resolve stored images.

Validation order (cheapest first):
    1. File present (field sent, non-empty filename, non-empty payload)
    2. Declared content type starts with "image/"
    3. Size ≤ max_file_size (declared size first, then actual byte count)

File naming:
    silkworm-<epoch milliseconds>-<random 0..999999999><ext>
    e.g. silkworm-1760607000123-482913377.jpg

    The extension is the client's, lower-cased; a MIME-derived one is used
    when the client name has none. The client name is otherwise ignored, so
    no user input reaches the file system path. Files are opened with "xb"
    (exclusive create); if a name already exists a new one is drawn, so a
    stored name is never reused.
"""

import logging
import mimetypes
import os
import secrets
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import aiofiles

from sericare.config import settings
from sericare.exceptions import FileStorageError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)

IMAGE_FIELD = "image"
IMAGE_MIME_PREFIX = "image/"
FILE_PREFIX = "silkworm"
URL_PREFIX = "/uploads"

# Exclusive-create attempts before giving up on a name
MAX_NAME_ATTEMPTS = 5


@dataclass(frozen=True)
class IncomingImage:
    """The multipart `image` field as received by the route."""

    filename: Optional[str]
    content_type: Optional[str]
    content: bytes
    declared_size: Optional[int] = None


@dataclass(frozen=True)
class StoredFile:
    """An accepted image on durable storage."""

    file_name: str
    path: str
    url: str
    size: int
    mime_type: str
    original_name: str


class StoredFileGuard:
    """
    Scoped ownership of a stored file.

    Usage:
        async with file_service.hold(stored) as guard:
            ...downstream steps...
            guard.keep()

    Leaving the block without keep() removes the file, whether the block
    raised, was cancelled, or simply ended. Removal is synchronous so a
    cancelled task cannot be interrupted half-way through cleanup.
    """

    def __init__(self, service: "FileService", stored: StoredFile):
        self._service = service
        self.stored = stored
        self.kept = False

    def keep(self) -> None:
        self.kept = True

    async def __aenter__(self) -> "StoredFileGuard":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        if not self.kept:
            reason = exc_type.__name__ if exc_type else "not kept"
            logger.info("Releasing stored file %s (%s)", self.stored.file_name, reason)
            self._service.remove(self.stored)
        return False


class FileService:
    """
    Manages the lifecycle of uploaded images in a single flat directory.

    Directory Structure:
        uploads/
        ├── silkworm-1760607000123-482913377.jpg
        └── silkworm-1760607004581-17730021.png
    """

    def __init__(self, upload_dir: Optional[str] = None, max_file_size: Optional[int] = None):
        """
        Args:
            upload_dir: Override the upload directory (used in tests).
            max_file_size: Override the size limit in bytes (used in tests).
        """
        self.upload_dir = Path(upload_dir or settings.upload_dir).resolve()
        self.max_file_size = max_file_size or settings.max_file_size
        self.upload_dir.mkdir(parents=True, exist_ok=True)
        logger.info("FileService initialized with upload_dir=%s", self.upload_dir)

    # ── Validation ────────────────────────────────────────────────────────

    def validate_present(self, upload: Optional[IncomingImage]) -> None:
        if upload is None or not upload.filename or not upload.content:
            raise ValidationError(message="No image file provided", field=IMAGE_FIELD)

    def validate_mime_type(self, content_type: Optional[str]) -> str:
        """
        Returns: The normalized MIME type (lower case, parameters stripped).
        Raises:  ValidationError if it is not an image/* type.
        """
        mime_type = (content_type or "").split(";")[0].strip().lower()
        if not mime_type.startswith(IMAGE_MIME_PREFIX):
            raise ValidationError(
                message="Only image files allowed",
                field=IMAGE_FIELD,
                context={"content_type": mime_type or None},
            )
        return mime_type

    def validate_size(self, declared_size: Optional[int], actual_size: int) -> None:
        """
        Declared size (multipart part size) is checked first, then the actual
        byte count in case the two disagree.
        """
        max_mb = self.max_file_size / (1024 * 1024)
        for size in (declared_size, actual_size):
            if size and size > self.max_file_size:
                raise ValidationError(
                    message=f"File size ({size / (1024 * 1024):.1f}MB) exceeds maximum of {max_mb:.0f}MB.",
                    field=IMAGE_FIELD,
                    context={"max_size_bytes": self.max_file_size, "size": size},
                )

    # ── Naming ────────────────────────────────────────────────────────────

    def extension_for(self, filename: str, mime_type: str) -> str:
        ext = Path(filename).suffix.lower()
        if ext and len(ext) <= 10:
            return ext
        return mimetypes.guess_extension(mime_type) or ""

    def generate_file_name(self, extension: str) -> str:
        millis = int(time.time() * 1000)
        suffix = secrets.randbelow(1_000_000_000)
        return f"{FILE_PREFIX}-{millis}-{suffix}{extension}"

    # ── Storage ───────────────────────────────────────────────────────────

    async def store_file(self, content: bytes, extension: str) -> str:
        """
        Write `content` under a fresh name.

        Returns: The stored file name.
        Raises:  FileStorageError on OS errors or repeated name collisions.
        """
        for _ in range(MAX_NAME_ATTEMPTS):
            file_name = self.generate_file_name(extension)
            path = self.upload_dir / file_name
            try:
                async with aiofiles.open(path, "xb") as f:
                    await f.write(content)
            except FileExistsError:
                logger.warning("Stored file name collision on %s, drawing a new name", file_name)
                continue
            except OSError as e:
                logger.error("Failed to store file at %s: %s", path, str(e))
                # A partial write may have created the file
                self._unlink(path)
                raise FileStorageError(context={"path": str(path), "os_error": str(e)})
            except BaseException:
                # Cancelled mid-write: no guard owns the file yet
                self._unlink(path)
                raise

            logger.info("File stored: %s (%d bytes)", file_name, len(content))
            return file_name

        raise FileStorageError(context={"reason": "name collisions", "attempts": MAX_NAME_ATTEMPTS})

    async def accept(self, upload: Optional[IncomingImage]) -> StoredFile:
        """
        Complete intake: validate, then write to durable storage.

        Raises:
            ValidationError: missing file, non-image type, oversized.
            FileStorageError: the write itself failed.
        """
        self.validate_present(upload)
        mime_type = self.validate_mime_type(upload.content_type)
        self.validate_size(upload.declared_size, len(upload.content))

        extension = self.extension_for(upload.filename, mime_type)
        file_name = await self.store_file(upload.content, extension)

        return StoredFile(
            file_name=file_name,
            path=str(self.upload_dir / file_name),
            url=f"{URL_PREFIX}/{file_name}",
            size=len(upload.content),
            mime_type=mime_type,
            original_name=upload.filename,
        )

    # ── Cleanup ───────────────────────────────────────────────────────────

    def hold(self, stored: StoredFile) -> StoredFileGuard:
        return StoredFileGuard(self, stored)

    def remove(self, stored: StoredFile) -> None:
        """Delete a stored file; a file that is already gone is not an error."""
        self._unlink(Path(stored.path))

    def _unlink(self, path: Path) -> None:
        try:
            os.remove(path)
            logger.info("Cleaned up file: %s", path.name)
        except FileNotFoundError:
            logger.debug("Cleanup: file already gone: %s", path.name)
        except OSError as e:
            # Surfacing this would replace the error that triggered cleanup
            logger.error("Failed to clean up file %s: %s", path, str(e))

    # ── Lookup ────────────────────────────────────────────────────────────

    def resolve(self, file_name: str) -> Path:
        """
        Map a stored file name from a URL to its path inside upload_dir.

        Raises:
            ValidationError: the name would escape the upload directory.
            NotFoundError: no such stored file.
        """
        path = (self.upload_dir / file_name).resolve()
        if path.parent != self.upload_dir:
            raise ValidationError(message="Invalid file path", field="file_name")
        if not path.is_file():
            raise NotFoundError(resource="file", resource_id=file_name)
        return path


file_service = FileService()
