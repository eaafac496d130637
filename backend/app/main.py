import logging
import sqlite3
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from app.config import settings
from app.database import init_db
from app.errors import DocumentError
from app.routers import dependents, documents, maintenance, permissions
from app.utils.filesystem import PathResolver, ensure_storage_dirs

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("app")


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: create storage buckets and schema, then integrity-check the database
    root = ensure_storage_dirs(PathResolver(settings.storage_root))
    logger.info("Storage root: %s", root)
    init_db(settings.db_path)
    try:
        conn = sqlite3.connect(str(settings.db_path))
        result = conn.execute("PRAGMA integrity_check").fetchone()
        conn.close()
        if result and result[0] == "ok":
            logger.info("Database integrity check passed.")
        else:
            logger.error("DATABASE INTEGRITY CHECK FAILED: %s", result)
    except sqlite3.Error as exc:
        logger.error("Could not run startup integrity check: %s", exc)
    yield


app = FastAPI(
    title="Worker Document Registry",
    description="Stores, verifies and serves worker documents with content hashing",
    version="0.1.0",
    lifespan=lifespan,
)


@app.exception_handler(DocumentError)
async def document_error_handler(request: Request, exc: DocumentError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    else:
        logger.info("%s %s rejected: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


app.include_router(documents.router, prefix=settings.api_prefix)
app.include_router(dependents.router, prefix=settings.api_prefix)
app.include_router(permissions.router, prefix=settings.api_prefix)
app.include_router(maintenance.router, prefix=settings.api_prefix)


@app.get("/health")
async def health():
    return {"status": "ok", "version": "0.1.0"}
