import logging
import uuid
from typing import BinaryIO

from sqlalchemy.orm import Session

from app.errors import NotFoundError, ValidationError
from app.models.document import DocumentType
from app.models.permission import PERMISSION_STATUSES, PermissionRequest
from app.services.attachments import commit_record, commit_referencing, parse_iso_date
from app.services.document_registry import DocumentMetadata, DocumentRegistry, utc_timestamp

logger = logging.getLogger(__name__)


class PermissionService:
    """Leave/permission requests with an optional approval document."""

    def __init__(self, db: Session, registry: DocumentRegistry):
        self.db = db
        self.registry = registry

    def create(
        self,
        worker_id: int,
        permission_type: str,
        start_date: str,
        end_date: str,
        reason: str | None = None,
        approval: BinaryIO | None = None,
        approval_metadata: DocumentMetadata | None = None,
        requested_by: str | None = None,
    ) -> PermissionRequest:
        if not permission_type.strip():
            raise ValidationError("permission_type is required")
        start, end = _check_period(start_date, end_date)
        if not self.registry.owners.exists(worker_id):
            raise NotFoundError(f"Worker {worker_id} not found", details={"owner_id": worker_id})

        document = None
        if approval is not None:
            document = self.registry.register(
                worker_id, DocumentType.PERMISSION_APPROVAL, approval, approval_metadata,
            )

        now = utc_timestamp()
        permission = PermissionRequest(
            id=str(uuid.uuid4()),
            worker_id=worker_id,
            permission_type=permission_type.strip(),
            start_date=start,
            end_date=end,
            reason=reason,
            status="PENDING",
            approval_document_id=document.id if document else None,
            created_at=now,
            updated_at=now,
        )
        self.db.add(permission)
        if document is not None:
            commit_referencing(self.db, self.registry, document, requested_by)
        else:
            commit_record(self.db, "Could not save permission request", {"worker_id": worker_id})
        self.db.refresh(permission)
        return permission

    def get(self, permission_id: str) -> PermissionRequest:
        permission = self.db.get(PermissionRequest, permission_id)
        if permission is None:
            raise NotFoundError("Permission request not found", details={"permission_id": permission_id})
        return permission

    def list_for_worker(self, worker_id: int) -> list[PermissionRequest]:
        if not self.registry.owners.exists(worker_id):
            raise NotFoundError(f"Worker {worker_id} not found", details={"owner_id": worker_id})
        return (
            self.db.query(PermissionRequest)
            .filter(PermissionRequest.worker_id == worker_id)
            .order_by(PermissionRequest.start_date.desc())
            .all()
        )

    def update(
        self,
        permission_id: str,
        changes: dict,
        approval: BinaryIO | None = None,
        approval_metadata: DocumentMetadata | None = None,
        remove_document: bool = False,
        requested_by: str | None = None,
    ) -> PermissionRequest:
        permission = self.get(permission_id)

        status = changes.get("status")
        if status is not None and status not in PERMISSION_STATUSES:
            raise ValidationError(
                f"Invalid status. Must be one of: {', '.join(PERMISSION_STATUSES)}",
                details={"status": status},
            )
        start, end = _check_period(
            changes.get("start_date") or permission.start_date,
            changes.get("end_date") or permission.end_date,
        )

        # Registering commits, so the new document goes in before any field is touched.
        old_document_id = permission.approval_document_id
        document = None
        if approval is not None:
            document = self.registry.register(
                permission.worker_id, DocumentType.PERMISSION_APPROVAL, approval, approval_metadata,
            )

        for key in ("permission_type", "reason", "status"):
            if changes.get(key) is not None:
                setattr(permission, key, changes[key])
        permission.start_date = start
        permission.end_date = end
        permission.updated_at = utc_timestamp()

        if document is not None:
            permission.approval_document_id = document.id
            commit_referencing(self.db, self.registry, document, requested_by)
        else:
            if remove_document:
                permission.approval_document_id = None
            commit_record(self.db, "Could not update permission request", {"permission_id": permission_id})

        if old_document_id and old_document_id != permission.approval_document_id:
            self.registry.delete(old_document_id, requested_by)
        self.db.refresh(permission)
        return permission

    def delete(self, permission_id: str, requested_by: str | None = None) -> None:
        permission = self.get(permission_id)
        document_id = permission.approval_document_id
        self.db.delete(permission)
        commit_record(self.db, "Could not delete permission request", {"permission_id": permission_id})
        if document_id:
            self.registry.delete(document_id, requested_by)
        logger.info("Permission request %s deleted by %s", permission_id, requested_by or "system")


def _check_period(start_date: str, end_date: str) -> tuple[str, str]:
    start = parse_iso_date(start_date, "start_date")
    end = parse_iso_date(end_date, "end_date")
    if end < start:
        raise ValidationError(
            "end_date must not be before start_date",
            details={"start_date": start_date, "end_date": end_date},
        )
    return start.isoformat(), end.isoformat()
