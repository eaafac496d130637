"""
Document lifecycle: register, read, download, replace, verify and delete.

A registration moves through VALIDATING -> STAGED -> COMMITTED, or ends in
ROLLED_BACK. Bytes are written to the blob store before the metadata row is
committed; the commit is the success signal. Any failure after the blob was
written removes it again before the error propagates, so a failed
registration never leaves a row, and at worst (process crash between staging
and commit) leaves an orphan blob for ``sweep_orphans`` to collect.
"""
import logging
import os
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import BinaryIO

from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session

from app.errors import (
    ConflictError,
    NotFoundError,
    StorageInconsistencyError,
    TransientIOError,
    ValidationError,
)
from app.models.document import Document, DocumentType, UNIQUE_PER_OWNER_TYPES, Visibility
from app.services.blob_store import BlobStore, StoredBlob
from app.services.owner_directory import OwnerDirectory, SqlOwnerDirectory
from app.utils.filesystem import display_filename
from app.utils.hashing import sha256_file

logger = logging.getLogger(__name__)

# SQLite reports the column pair, PostgreSQL the index name.
_OWNER_TYPE_CONSTRAINT_MARKERS = (
    "uq_documents_owner_type",
    "documents.owner_id, documents.document_type",
)


class RegistrationState(str, Enum):
    VALIDATING = "validating"
    STAGED = "staged"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"


@dataclass
class DocumentMetadata:
    original_filename: str
    mime_type: str | None = None
    size_bytes: int | None = None
    description: str | None = None
    is_public: bool = False


@dataclass
class DocumentDownload:
    stream: BinaryIO
    filename: str
    mime_type: str
    size_bytes: int


@dataclass(frozen=True)
class VerificationResult:
    document_id: str
    verified: bool
    stored_hash: str
    actual_hash: str


@dataclass
class SweepReport:
    removed: list[str] = field(default_factory=list)
    skipped_recent: list[str] = field(default_factory=list)
    missing_blobs: list[str] = field(default_factory=list)


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def parse_document_type(value: DocumentType | str) -> DocumentType:
    try:
        return DocumentType(value)
    except ValueError:
        allowed = ", ".join(t.value for t in DocumentType)
        raise ValidationError(
            f"Invalid document_type. Must be one of: {allowed}",
            details={"document_type": str(value)},
        ) from None


class DocumentRegistry:
    def __init__(
        self,
        db: Session,
        blobs: BlobStore,
        owners: OwnerDirectory | None = None,
    ):
        self.db = db
        self.blobs = blobs
        self.resolver = blobs.resolver
        self.owners = owners or SqlOwnerDirectory(db)

    # -- registration ---------------------------------------------------

    def register(
        self,
        owner_id: int,
        document_type: DocumentType | str,
        source: BinaryIO,
        metadata: DocumentMetadata,
    ) -> Document:
        state = RegistrationState.VALIDATING
        document_type = parse_document_type(document_type)
        if not self.owners.exists(owner_id):
            raise NotFoundError(f"Worker {owner_id} not found", details={"owner_id": owner_id})
        # Advisory only; the unique index decides at commit time.
        if document_type in UNIQUE_PER_OWNER_TYPES and self._find_unique(owner_id, document_type):
            raise self._conflict(owner_id, document_type)

        directory = self.resolver.resolve_directory(document_type)
        try:
            blob = self.blobs.store(source, directory, metadata.original_filename)
        except OSError as exc:
            raise TransientIOError(
                "Could not write the uploaded file to storage",
                details={"owner_id": owner_id, "document_type": document_type.value},
                cause=exc,
            ) from exc
        state = RegistrationState.STAGED

        try:
            # Hash what was stored, not the temp file: this is what will be served.
            content_hash = sha256_file(self.blobs.absolute_path(blob.relative_path))
            doc = Document(
                id=str(uuid.uuid4()),
                owner_id=owner_id,
                document_type=document_type.value,
                original_filename=display_filename(metadata.original_filename),
                stored_path=blob.relative_path,
                content_hash=content_hash,
                size_bytes=blob.size_bytes,
                mime_type=metadata.mime_type,
                description=metadata.description,
                is_public=metadata.is_public,
                uploaded_at=utc_timestamp(),
            )
            self.db.add(doc)
            self.db.commit()
        except BaseException as exc:
            self.db.rollback()
            self._discard_blob(blob)
            state = RegistrationState.ROLLED_BACK
            logger.warning(
                "Registration %s for owner %s (%s): %s",
                state.value, owner_id, document_type.value, exc,
            )
            translated = self._translate_commit_error(exc, owner_id, document_type)
            if translated is exc:
                raise
            raise translated from exc

        self.db.refresh(doc)
        state = RegistrationState.COMMITTED
        if metadata.size_bytes is not None and metadata.size_bytes != blob.size_bytes:
            logger.warning(
                "Declared size %s differs from stored size %s for document %s",
                metadata.size_bytes, blob.size_bytes, doc.id,
            )
        logger.info(
            "Document %s %s for owner %s (%s) at %s",
            doc.id, state.value, owner_id, document_type.value, doc.stored_path,
        )
        return doc

    def replace(
        self,
        document_id: str,
        source: BinaryIO,
        metadata: DocumentMetadata,
        requested_by: str | None = None,
    ) -> Document:
        """Swap a document's file by deleting the old document and registering a new one.

        Owner-unique types cannot coexist, so the old one goes first. If the new
        registration then fails the old document is already gone; the caller
        gets the registration error and the loss is logged at ERROR.

        For other types the new one is registered first and a failed upload
        keeps the old. If the old row cannot be deleted the new document is
        removed again. If the old row was deleted but its file could not be,
        the new document is kept and StorageInconsistencyError propagates.
        """
        old = self.get(document_id)
        owner_id = old.owner_id
        old_path = old.stored_path
        document_type = DocumentType(old.document_type)

        if document_type in UNIQUE_PER_OWNER_TYPES:
            self.delete(document_id, requested_by)
            try:
                return self.register(owner_id, document_type, source, metadata)
            except BaseException:
                logger.error(
                    "Replace of document %s (%s) failed after it was deleted; owner %s has no %s",
                    document_id, old_path, owner_id, document_type.value,
                )
                raise

        new = self.register(owner_id, document_type, source, metadata)
        try:
            self.delete(document_id, requested_by)
        except (ConflictError, TransientIOError):
            # Old row still committed: undo the new one.
            self.delete(new.id, requested_by)
            raise
        return new

    # -- reads ------------------------------------------------------------

    def get(self, document_id: str) -> Document:
        doc = self.db.get(Document, document_id)
        if doc is None:
            raise NotFoundError("Document not found", details={"document_id": document_id})
        return doc

    def list_by_owner(self, owner_id: int, visibility: Visibility = Visibility.ALL) -> list[Document]:
        if not self.owners.exists(owner_id):
            raise NotFoundError(f"Worker {owner_id} not found", details={"owner_id": owner_id})
        query = self.db.query(Document).filter(Document.owner_id == owner_id)
        if visibility == Visibility.PUBLIC:
            query = query.filter(Document.is_public.is_(True))
        elif visibility == Visibility.PRIVATE:
            query = query.filter(Document.is_public.is_(False))
        return query.order_by(Document.uploaded_at.desc(), Document.id.desc()).all()

    def download(self, document_id: str) -> DocumentDownload:
        doc = self.get(document_id)
        try:
            stream = self.blobs.retrieve(doc.stored_path)
        except NotFoundError as exc:
            raise self._inconsistency(doc, "Document metadata exists but its file is missing", exc) from exc

        size = os.fstat(stream.fileno()).st_size
        if size != doc.size_bytes:
            logger.warning(
                "Document %s recorded %d bytes but file has %d", doc.id, doc.size_bytes, size,
            )
        return DocumentDownload(
            stream=stream,
            filename=doc.original_filename,
            mime_type=doc.mime_type or "application/octet-stream",
            size_bytes=size,
        )

    def verify(self, document_id: str) -> VerificationResult:
        """Re-hash the stored file and compare against the recorded SHA-256."""
        doc = self.get(document_id)
        if not self.blobs.exists(doc.stored_path):
            raise self._inconsistency(doc, "Document metadata exists but its file is missing")
        actual_hash = sha256_file(self.blobs.absolute_path(doc.stored_path))
        verified = actual_hash == doc.content_hash
        if not verified:
            logger.error(
                "Hash mismatch for document %s at %s: stored %s, actual %s",
                doc.id, self.blobs.absolute_path(doc.stored_path), doc.content_hash, actual_hash,
            )
        return VerificationResult(
            document_id=doc.id,
            verified=verified,
            stored_hash=doc.content_hash,
            actual_hash=actual_hash,
        )

    # -- deletion ---------------------------------------------------------

    def delete(self, document_id: str, requested_by: str | None = None) -> None:
        """Delete the row, then its blob. Referenced rows are a ConflictError.

        Callers holding a reference (dependents, permission requests) clear it first.
        """
        doc = self.get(document_id)
        stored_path = doc.stored_path
        self.db.delete(doc)
        try:
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            raise ConflictError(
                "Document is still referenced by another record",
                details={"document_id": document_id},
                cause=exc,
            ) from exc
        except OperationalError as exc:
            self.db.rollback()
            raise TransientIOError(
                "Could not delete document metadata",
                details={"document_id": document_id},
                cause=exc,
            ) from exc

        try:
            removed = self.blobs.remove(stored_path)
        except OSError as exc:
            path = self.blobs.absolute_path(stored_path)
            logger.error("Document %s deleted but its file could not be removed: %s", document_id, path)
            raise StorageInconsistencyError(
                "Document deleted but its file could not be removed",
                details={"document_id": document_id, "path": str(path)},
                cause=exc,
            ) from exc
        logger.info(
            "Document %s deleted by %s%s",
            document_id, requested_by or "system", "" if removed else " (file was already absent)",
        )

    # -- reconciliation ---------------------------------------------------

    def find_orphans(self) -> list[tuple[str, float]]:
        """Blobs under the storage root with no document row, as (path, mtime)."""
        known = {path for (path,) in self.db.query(Document.stored_path)}
        return [(path, mtime) for path, mtime in self.blobs.iter_blobs() if path not in known]

    def find_missing_blobs(self) -> list[str]:
        return [
            doc_id
            for doc_id, path in self.db.query(Document.id, Document.stored_path)
            if not self.blobs.exists(path)
        ]

    def sweep_orphans(self, grace_seconds: int) -> SweepReport:
        report = SweepReport()
        cutoff = time.time() - grace_seconds
        for path, mtime in self.find_orphans():
            if mtime > cutoff:
                report.skipped_recent.append(path)
                continue
            self.blobs.remove(path)
            report.removed.append(path)
            logger.info("Swept orphan blob %s", path)
        report.missing_blobs = self.find_missing_blobs()
        for doc_id in report.missing_blobs:
            logger.error("Storage inconsistency: document %s has no file", doc_id)
        return report

    # -- helpers ----------------------------------------------------------

    def _find_unique(self, owner_id: int, document_type: DocumentType) -> Document | None:
        return (
            self.db.query(Document)
            .filter(Document.owner_id == owner_id, Document.document_type == document_type.value)
            .first()
        )

    def _conflict(self, owner_id: int, document_type: DocumentType, cause: BaseException | None = None) -> ConflictError:
        return ConflictError(
            f"Worker {owner_id} already has a {document_type.value} document",
            details={"owner_id": owner_id, "document_type": document_type.value},
            cause=cause,
        )

    def _inconsistency(self, doc: Document, message: str, cause: BaseException | None = None) -> StorageInconsistencyError:
        path = self.blobs.absolute_path(doc.stored_path)
        logger.error("Storage inconsistency for document %s: %s (%s)", doc.id, message, path)
        return StorageInconsistencyError(
            message,
            details={"document_id": doc.id, "path": str(path)},
            cause=cause,
        )

    def _discard_blob(self, blob: StoredBlob) -> None:
        try:
            self.blobs.remove(blob.relative_path)
        except OSError:
            # Orphan remains for sweep_orphans.
            logger.exception("Could not discard staged blob %s", blob.relative_path)

    def _translate_commit_error(
        self, exc: BaseException, owner_id: int, document_type: DocumentType
    ) -> BaseException:
        if isinstance(exc, IntegrityError):
            message = str(exc.orig)
            if any(marker in message for marker in _OWNER_TYPE_CONSTRAINT_MARKERS):
                return self._conflict(owner_id, document_type, exc)
            if "FOREIGN KEY" in message.upper():
                return NotFoundError(
                    f"Worker {owner_id} not found", details={"owner_id": owner_id}, cause=exc,
                )
            return exc
        if isinstance(exc, (OperationalError, OSError)):
            return TransientIOError(
                "Could not record the document",
                details={"owner_id": owner_id, "document_type": document_type.value},
                cause=exc,
            )
        return exc
