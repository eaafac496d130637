"""Helpers for business records that hold a reference to a registered document."""
import logging
from datetime import date
from typing import Any

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from app.errors import TransientIOError, ValidationError
from app.models.document import Document
from app.services.document_registry import DocumentRegistry

logger = logging.getLogger(__name__)


def commit_record(db: Session, message: str, details: dict[str, Any] | None = None) -> None:
    """Commit, reporting a locked or unavailable database as TransientIOError."""
    try:
        db.commit()
    except OperationalError as exc:
        db.rollback()
        raise TransientIOError(message, details=details, cause=exc) from exc


def commit_referencing(
    db: Session,
    registry: DocumentRegistry,
    document: Document,
    requested_by: str | None = None,
) -> None:
    """Commit pending changes that point at ``document``.

    If the commit fails the freshly registered document is deleted again, so
    no unreferenced attachment is left behind. The commit error is what the
    caller sees, even if that cleanup fails too.
    """
    document_id = document.id
    try:
        db.commit()
    except BaseException as exc:
        db.rollback()
        logger.warning("Discarding document %s after failed commit of its referencing record", document_id)
        try:
            registry.delete(document_id, requested_by)
        except Exception:
            logger.exception("Could not discard document %s; it is left unreferenced", document_id)
        if isinstance(exc, OperationalError):
            raise TransientIOError(
                "Could not save the record referencing the document",
                details={"document_id": document_id},
                cause=exc,
            ) from exc
        raise


def parse_iso_date(value: str, field_name: str) -> date:
    try:
        return date.fromisoformat(value)
    except (TypeError, ValueError):
        raise ValidationError(
            f"{field_name} must be an ISO date (YYYY-MM-DD)",
            details={field_name: value},
        ) from None
