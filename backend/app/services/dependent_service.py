import logging
import uuid
from typing import BinaryIO

from sqlalchemy.orm import Session

from app.errors import NotFoundError, ValidationError
from app.models.dependent import Dependent
from app.models.document import DocumentType
from app.services.attachments import commit_record, commit_referencing, parse_iso_date
from app.services.document_registry import DocumentMetadata, DocumentRegistry, utc_timestamp

logger = logging.getLogger(__name__)


class DependentService:
    """Dependents (children) of a worker, each backed by a birth certificate document."""

    def __init__(self, db: Session, registry: DocumentRegistry):
        self.db = db
        self.registry = registry

    def register(
        self,
        worker_id: int,
        first_name: str,
        paternal_surname: str,
        maternal_surname: str | None,
        birth_date: str,
        certificate: BinaryIO,
        metadata: DocumentMetadata,
        requested_by: str | None = None,
    ) -> Dependent:
        if not first_name.strip() or not paternal_surname.strip():
            raise ValidationError("first_name and paternal_surname are required")
        birth = parse_iso_date(birth_date, "birth_date")

        metadata.description = metadata.description or _certificate_description(
            first_name, paternal_surname, maternal_surname
        )
        metadata.is_public = False
        document = self.registry.register(worker_id, DocumentType.BIRTH_CERTIFICATE, certificate, metadata)

        now = utc_timestamp()
        dependent = Dependent(
            id=str(uuid.uuid4()),
            worker_id=worker_id,
            first_name=first_name.strip(),
            paternal_surname=paternal_surname.strip(),
            maternal_surname=maternal_surname.strip() if maternal_surname else None,
            birth_date=birth.isoformat(),
            birth_certificate_id=document.id,
            active=True,
            created_at=now,
            updated_at=now,
        )
        self.db.add(dependent)
        commit_referencing(self.db, self.registry, document, requested_by)
        self.db.refresh(dependent)
        logger.info("Dependent %s registered for worker %s", dependent.id, worker_id)
        return dependent

    def get(self, dependent_id: str) -> Dependent:
        dependent = self.db.get(Dependent, dependent_id)
        if dependent is None:
            raise NotFoundError("Dependent not found", details={"dependent_id": dependent_id})
        return dependent

    def list_for_worker(self, worker_id: int) -> list[Dependent]:
        if not self.registry.owners.exists(worker_id):
            raise NotFoundError(f"Worker {worker_id} not found", details={"owner_id": worker_id})
        return (
            self.db.query(Dependent)
            .filter(Dependent.worker_id == worker_id)
            .order_by(Dependent.birth_date.asc())
            .all()
        )

    def replace_birth_certificate(
        self,
        dependent_id: str,
        certificate: BinaryIO,
        metadata: DocumentMetadata,
        requested_by: str | None = None,
    ) -> Dependent:
        dependent = self.get(dependent_id)
        old_document_id = dependent.birth_certificate_id

        metadata.description = metadata.description or _certificate_description(
            dependent.first_name, dependent.paternal_surname, dependent.maternal_surname
        )
        metadata.is_public = False
        document = self.registry.register(
            dependent.worker_id, DocumentType.BIRTH_CERTIFICATE, certificate, metadata
        )
        dependent.birth_certificate_id = document.id
        dependent.updated_at = utc_timestamp()
        commit_referencing(self.db, self.registry, document, requested_by)

        if old_document_id:
            self.registry.delete(old_document_id, requested_by)
        self.db.refresh(dependent)
        return dependent

    def delete(self, dependent_id: str, requested_by: str | None = None) -> None:
        dependent = self.get(dependent_id)
        document_id = dependent.birth_certificate_id
        self.db.delete(dependent)
        commit_record(self.db, "Could not delete dependent", {"dependent_id": dependent_id})
        if document_id:
            self.registry.delete(document_id, requested_by)
        logger.info("Dependent %s deleted by %s", dependent_id, requested_by or "system")


def _certificate_description(first_name: str, paternal_surname: str, maternal_surname: str | None) -> str:
    names = " ".join(n for n in (first_name, paternal_surname, maternal_surname) if n)
    return f"Birth certificate of {names}"
