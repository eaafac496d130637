import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker

from app.config import settings
from app.database import get_db, init_db
from app.main import app
from app.models.worker import Worker
from app.services.blob_store import BlobStore
from app.services.document_registry import DocumentRegistry
from app.utils.filesystem import PathResolver

WORKERS = {42: "Ana Lopez", 7: "Bruno Diaz", 1: "Admin Office"}


def _set_sqlite_pragmas(dbapi_conn, connection_record):
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.execute("PRAGMA busy_timeout=5000")
    cursor.close()


@pytest.fixture
def tmp_storage(tmp_path):
    root = tmp_path / "storage"
    root.mkdir()
    return root


@pytest.fixture
def test_db(tmp_path):
    db_path = tmp_path / "documents.sqlite"
    init_db(db_path)
    engine = create_engine(
        f"sqlite:///{db_path}",
        connect_args={"check_same_thread": False},
    )
    event.listen(engine, "connect", _set_sqlite_pragmas)
    TestSession = sessionmaker(bind=engine, autoflush=False, autocommit=False)

    session = TestSession()
    for worker_id, name in WORKERS.items():
        session.add(Worker(id=worker_id, full_name=name, active=True, created_at="2024-01-01T00:00:00Z"))
    session.commit()
    session.close()

    def override_get_db():
        db = TestSession()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestSession
    app.dependency_overrides.clear()
    engine.dispose()


@pytest.fixture
def db_session(test_db):
    session = test_db()
    yield session
    session.close()


@pytest.fixture
def resolver(tmp_storage):
    return PathResolver(tmp_storage)


@pytest.fixture
def blob_store(resolver):
    return BlobStore(resolver)


@pytest.fixture
def registry(db_session, blob_store):
    return DocumentRegistry(db_session, blob_store)


@pytest.fixture
def stored_files(tmp_storage):
    """Callable listing every file currently under the storage root."""
    def _list():
        return sorted(p for p in tmp_storage.rglob("*") if p.is_file())
    return _list


@pytest.fixture
def client(tmp_storage, test_db):
    original_storage_root = settings.storage_root
    settings.storage_root = tmp_storage
    c = TestClient(app)
    yield c
    settings.storage_root = original_storage_root
