import sqlite3
from pathlib import Path
from sqlalchemy import create_engine, event
from sqlalchemy.orm import DeclarativeBase, sessionmaker

from app.config import settings


class Base(DeclarativeBase):
    pass


def _set_sqlite_pragmas(dbapi_conn, connection_record):
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.execute("PRAGMA busy_timeout=5000")
    cursor.close()


def get_engine(db_path: Path | None = None):
    path = db_path or settings.db_path
    engine = create_engine(
        f"sqlite:///{path}",
        connect_args={"check_same_thread": False},
    )
    event.listen(engine, "connect", _set_sqlite_pragmas)
    return engine


engine = get_engine()
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


SCHEMA_SQL = """\
-- ============================================================
-- WORKERS (owner directory, read-only for the registry)
-- ============================================================
CREATE TABLE IF NOT EXISTS workers (
    id         INTEGER PRIMARY KEY,
    full_name  TEXT NOT NULL,
    active     INTEGER NOT NULL DEFAULT 1,
    created_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ','now'))
);

-- ============================================================
-- DOCUMENTS
-- ============================================================
CREATE TABLE IF NOT EXISTS documents (
    id                TEXT PRIMARY KEY,
    owner_id          INTEGER NOT NULL REFERENCES workers(id),
    document_type     TEXT NOT NULL
                      CHECK(document_type IN ('CURP','RFC','NATIONAL_ID','STUDY_CERTIFICATE',
                                              'BIRTH_CERTIFICATE','PERMISSION_APPROVAL','OTHER')),
    original_filename TEXT NOT NULL,
    stored_path       TEXT NOT NULL,
    content_hash      TEXT NOT NULL,
    size_bytes        INTEGER NOT NULL,
    mime_type         TEXT,
    description       TEXT,
    is_public         INTEGER NOT NULL DEFAULT 0,
    uploaded_at       TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_documents_owner ON documents(owner_id, uploaded_at);
CREATE INDEX IF NOT EXISTS idx_documents_hash ON documents(content_hash);
CREATE UNIQUE INDEX IF NOT EXISTS idx_documents_path ON documents(stored_path);
-- One identity document of each kind per worker
CREATE UNIQUE INDEX IF NOT EXISTS uq_documents_owner_type ON documents(owner_id, document_type)
    WHERE document_type IN ('CURP','RFC','NATIONAL_ID');

-- ============================================================
-- DEPENDENTS
-- ============================================================
CREATE TABLE IF NOT EXISTS dependents (
    id                   TEXT PRIMARY KEY,
    worker_id            INTEGER NOT NULL REFERENCES workers(id),
    first_name           TEXT NOT NULL,
    paternal_surname     TEXT NOT NULL,
    maternal_surname     TEXT,
    birth_date           TEXT NOT NULL,
    birth_certificate_id TEXT REFERENCES documents(id),
    active               INTEGER NOT NULL DEFAULT 1,
    created_at           TEXT NOT NULL,
    updated_at           TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_dependents_worker ON dependents(worker_id);

-- ============================================================
-- PERMISSION REQUESTS
-- ============================================================
CREATE TABLE IF NOT EXISTS permission_requests (
    id                   TEXT PRIMARY KEY,
    worker_id            INTEGER NOT NULL REFERENCES workers(id),
    permission_type      TEXT NOT NULL,
    start_date           TEXT NOT NULL,
    end_date             TEXT NOT NULL,
    reason               TEXT,
    status               TEXT NOT NULL DEFAULT 'PENDING'
                         CHECK(status IN ('PENDING','APPROVED','REJECTED')),
    approval_document_id TEXT REFERENCES documents(id),
    created_at           TEXT NOT NULL,
    updated_at           TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_permissions_worker ON permission_requests(worker_id);
"""


def init_db(db_path: Path | None = None):
    path = db_path or settings.db_path
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(path))
    conn.executescript(SCHEMA_SQL)
    conn.close()
