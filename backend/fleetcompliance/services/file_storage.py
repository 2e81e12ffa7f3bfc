import os
import secrets
import shutil
import time
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path, PurePosixPath
from typing import BinaryIO, Optional

from fastapi.concurrency import run_in_threadpool

from fleetcompliance.core.config import Settings, settings as default_settings
from fleetcompliance.core.errors import PathTraversalError, PayloadTooLargeError, ValidationError
from fleetcompliance.core.logging import storage_logger

PUBLIC_SEGMENT = "public"
UPLOADS_SEGMENT = "uploads"


@dataclass(frozen=True)
class StoredFile:
    file_path: str  # relative to SERVICE_ROOT, POSIX separators
    original_filename: str
    file_size: int
    mime_type: str
    uploaded_at: datetime


def _safe_extension(filename: str) -> str:
    ext = Path(filename).suffix
    if not ext or len(ext) > 16 or not ext[1:].isalnum():
        return ""
    return ext.lower()


def _stream_size(stream: BinaryIO) -> int:
    stream.seek(0, os.SEEK_END)
    size = stream.tell()
    stream.seek(0)
    return size


class AttachmentManager:
    """Report attachment files under a fixed upload root."""

    def __init__(self, config: Settings = default_settings, logger: Optional[logging.Logger] = None):
        self.service_root = Path(config.SERVICE_ROOT).resolve()
        self.upload_subdir = PurePosixPath(config.UPLOAD_SUBDIR)
        self.upload_root = (self.service_root / self.upload_subdir).resolve()
        self.max_bytes = config.MAX_ATTACHMENT_BYTES
        self.logger = logger or storage_logger

    async def store(
        self,
        report_id: int,
        file_stream: BinaryIO,
        original_filename: str,
        content_type: Optional[str] = None,
    ) -> StoredFile:
        """
        Save an uploaded report attachment to the file system.

        Args:
            report_id: Report the attachment belongs to
            file_stream: Seekable binary stream with the file content
            original_filename: Name the client uploaded the file with
            content_type: MIME type announced by the client

        Returns:
            StoredFile: Information about the saved file
        """
        if not original_filename or not original_filename.strip():
            raise ValidationError("Attachment filename is required")

        file_size = await run_in_threadpool(_stream_size, file_stream)
        if file_size > self.max_bytes:
            raise PayloadTooLargeError(
                f"File size {file_size} bytes exceeds maximum allowed ({self.max_bytes // (1024 * 1024)}MB)"
            )
        if file_size == 0:
            raise ValidationError("Attachment file is empty")

        # report-<epoch ms>-<random>.<ext>
        stored_name = f"report-{int(time.time() * 1000)}-{secrets.randbelow(10 ** 9):09d}{_safe_extension(original_filename)}"
        relative_path = str(self.upload_subdir / stored_name)
        full_path = self.resolve(relative_path)

        await run_in_threadpool(self._write, full_path, file_stream)

        self.logger.info(f"Stored attachment for report {report_id}: {relative_path} ({file_size} bytes)")
        return StoredFile(
            file_path=relative_path,
            original_filename=Path(original_filename.replace("\\", "/")).name,
            file_size=file_size,
            mime_type=content_type or "application/octet-stream",
            uploaded_at=datetime.now(timezone.utc),
        )

    def _write(self, full_path: Path, file_stream: BinaryIO):
        full_path.parent.mkdir(parents=True, exist_ok=True)
        # "xb" refuses to replace an existing file
        with open(full_path, "xb") as buffer:
            shutil.copyfileobj(file_stream, buffer)

    def resolve(self, relative_path: str) -> Path:
        """
        Absolute location of a stored attachment.

        Raises:
            PathTraversalError: the path is absolute or escapes the upload root
        """
        if not relative_path or os.path.isabs(relative_path) or PurePosixPath(relative_path).is_absolute():
            raise PathTraversalError("Attachment path must be relative to the service root")

        full_path = (self.service_root / relative_path).resolve()
        if full_path == self.upload_root or not full_path.is_relative_to(self.upload_root):
            raise PathTraversalError("Attachment path escapes the upload directory")
        return full_path

    async def delete(self, relative_path: str) -> bool:
        """
        Delete a stored attachment.

        Returns:
            bool: True if the file was removed or was already absent,
            False on an I/O error
        """
        full_path = self.resolve(relative_path)

        try:
            await run_in_threadpool(full_path.unlink)
        except FileNotFoundError:
            self.logger.info(f"Attachment not found on disk, skipping delete: {relative_path}")
            return True
        except OSError as e:
            self.logger.error(f"Error deleting attachment {relative_path}: {e}")
            return False

        self.logger.info(f"Deleted attachment {relative_path}")
        return True

    @staticmethod
    def public_path(relative_path: str) -> str:
        """
        Web path for a stored attachment, e.g.
        ``public/uploads/report_attachments/x.pdf`` -> ``/uploads/report_attachments/x.pdf``.

        Returns an empty string when the stored path does not follow that layout.
        """
        if not isinstance(relative_path, str) or not relative_path:
            return ""
        parts = PurePosixPath(relative_path.replace("\\", "/")).parts
        if not parts or parts[0] != PUBLIC_SEGMENT or ".." in parts:
            return ""
        try:
            uploads_index = parts.index(UPLOADS_SEGMENT)
        except ValueError:
            return ""
        if uploads_index == len(parts) - 1:
            return ""
        return "/" + "/".join(parts[uploads_index:])
