import logging
import os
import tempfile
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import AsyncIterator, BinaryIO, Sequence

from fastapi import UploadFile

from app.config import settings
from app.errors import PayloadTooLargeError, UnsupportedMediaTypeError, ValidationError
from app.services.document_registry import DocumentMetadata

logger = logging.getLogger(__name__)

READ_CHUNK_SIZE = 1024 * 1024


@dataclass(frozen=True)
class UploadPolicy:
    allowed_mime_types: Sequence[str]
    max_bytes: int

    @classmethod
    def documents(cls) -> "UploadPolicy":
        return cls(settings.allowed_mime_types, settings.max_upload_bytes)

    @classmethod
    def permission_approvals(cls) -> "UploadPolicy":
        return cls(settings.permission_allowed_mime_types, settings.max_permission_upload_bytes)


@dataclass
class MaterializedUpload:
    path: Path
    original_filename: str
    mime_type: str
    size_bytes: int

    def open(self) -> BinaryIO:
        return open(self.path, "rb")

    def metadata(self, description: str | None = None, is_public: bool = False) -> DocumentMetadata:
        return DocumentMetadata(
            original_filename=self.original_filename,
            mime_type=self.mime_type,
            size_bytes=self.size_bytes,
            description=description,
            is_public=is_public,
        )

    def cleanup(self) -> None:
        self.path.unlink(missing_ok=True)


class UploadGateway:
    """Turns a multipart upload into a validated temp file plus plain metadata.

    The registry copies from the temp file, so the gateway always owns (and
    always deletes) its own temp file, whatever the registry's outcome.
    """

    def __init__(self, policy: UploadPolicy, spool_dir: Path | None = None):
        self.policy = policy
        self.spool_dir = spool_dir

    def check_mime_type(self, mime_type: str | None) -> str:
        if not mime_type or mime_type not in self.policy.allowed_mime_types:
            raise UnsupportedMediaTypeError(
                f"File type not allowed: {mime_type or 'unknown'}",
                details={"allowed": list(self.policy.allowed_mime_types)},
            )
        return mime_type

    async def materialize(self, upload: UploadFile) -> MaterializedUpload:
        if not upload.filename:
            raise ValidationError("No file was provided")
        mime_type = self.check_mime_type(upload.content_type)

        fd, raw_path = tempfile.mkstemp(prefix="upload-", dir=self.spool_dir)
        path = Path(raw_path)
        size = 0
        try:
            with os.fdopen(fd, "wb") as out:
                while True:
                    chunk = await upload.read(READ_CHUNK_SIZE)
                    if not chunk:
                        break
                    size += len(chunk)
                    if size > self.policy.max_bytes:
                        raise PayloadTooLargeError(
                            f"File too large (max {self.policy.max_bytes} bytes)",
                            details={"max_bytes": self.policy.max_bytes},
                        )
                    out.write(chunk)
            if size == 0:
                raise ValidationError("Empty file")
        except BaseException:
            path.unlink(missing_ok=True)
            raise

        return MaterializedUpload(
            path=path,
            original_filename=upload.filename,
            mime_type=mime_type,
            size_bytes=size,
        )

    @asynccontextmanager
    async def receive(self, upload: UploadFile) -> AsyncIterator[MaterializedUpload]:
        materialized = await self.materialize(upload)
        try:
            yield materialized
        finally:
            materialized.cleanup()
            logger.debug("Removed upload temp file %s", materialized.path)
