import io

import pytest
from sqlalchemy.exc import OperationalError

from app.errors import NotFoundError, TransientIOError
from app.models.document import DocumentType
from app.services.attachments import commit_record, commit_referencing
from app.services.dependent_service import DependentService
from app.services.document_registry import DocumentMetadata


def _locked():
    return OperationalError("COMMIT", {}, Exception("database is locked"))


def _meta(name="acta.pdf"):
    return DocumentMetadata(original_filename=name, mime_type="application/pdf")


class TestCommitReferencing:
    def test_commit_error_survives_failed_cleanup(self, registry, db_session, monkeypatch, caplog):
        doc_id = registry.register(42, DocumentType.OTHER, io.BytesIO(b"x"), _meta()).id
        doc = registry.get(doc_id)

        def failing_commit():
            raise RuntimeError("referencing row rejected")

        def failing_delete(document_id, requested_by=None):
            raise TransientIOError("disk unavailable")

        monkeypatch.setattr(db_session, "commit", failing_commit)
        monkeypatch.setattr(registry, "delete", failing_delete)

        with caplog.at_level("ERROR"):
            with pytest.raises(RuntimeError, match="referencing row rejected"):
                commit_referencing(db_session, registry, doc)

        assert f"Could not discard document {doc_id}" in caplog.text

    def test_locked_database_discards_document(self, registry, db_session, monkeypatch):
        doc_id = registry.register(42, DocumentType.OTHER, io.BytesIO(b"x"), _meta()).id
        doc = registry.get(doc_id)
        real_commit = db_session.commit
        calls = []

        def locked_once():
            if not calls:
                calls.append(True)
                raise _locked()
            real_commit()

        monkeypatch.setattr(db_session, "commit", locked_once)

        with pytest.raises(TransientIOError):
            commit_referencing(db_session, registry, doc)

        with pytest.raises(NotFoundError):
            registry.get(doc_id)


class TestCommitRecord:
    def test_locked_database_is_transient(self, db_session, monkeypatch):
        def locked_commit():
            raise _locked()

        monkeypatch.setattr(db_session, "commit", locked_commit)

        with pytest.raises(TransientIOError) as exc_info:
            commit_record(db_session, "Could not save", {"worker_id": 42})

        assert isinstance(exc_info.value.cause, OperationalError)
        assert exc_info.value.details == {"worker_id": 42}

    def test_dependent_delete_on_locked_database(self, registry, db_session, monkeypatch):
        service = DependentService(db_session, registry)
        dependent = service.register(
            42, "Lucia", "Lopez", None, "2015-06-01", io.BytesIO(b"%PDF acta"), _meta(),
        )
        dependent_id, certificate_id = dependent.id, dependent.birth_certificate_id

        def locked_commit():
            raise _locked()

        monkeypatch.setattr(db_session, "commit", locked_commit)
        with pytest.raises(TransientIOError):
            service.delete(dependent_id)
        monkeypatch.undo()

        assert service.get(dependent_id) is not None
        assert registry.get(certificate_id) is not None
