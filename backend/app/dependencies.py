from dataclasses import dataclass

from fastapi import Depends, Header, HTTPException
from sqlalchemy.orm import Session

from app.config import settings
from app.database import get_db
from app.models.document import Document
from app.services.blob_store import BlobStore
from app.services.document_registry import DocumentRegistry
from app.services.owner_directory import SqlOwnerDirectory
from app.utils.filesystem import PathResolver

ROLES = ("ADMIN", "USER")


@dataclass(frozen=True)
class Caller:
    worker_id: int
    role: str

    @property
    def label(self) -> str:
        return f"{self.role.lower()}:{self.worker_id}"


class CallerPolicy:
    """Capability checks for one authenticated caller."""

    def __init__(self, caller: Caller):
        self.caller = caller

    @property
    def is_admin(self) -> bool:
        return self.caller.role == "ADMIN"

    def can_manage(self, owner_id: int) -> bool:
        return self.is_admin or self.caller.worker_id == owner_id

    def can_view(self, document: Document) -> bool:
        return document.is_public or self.can_manage(document.owner_id)

    def require_manage(self, owner_id: int) -> None:
        if not self.can_manage(owner_id):
            raise HTTPException(status_code=403, detail="Not allowed to manage records of this worker")

    def require_view(self, document: Document) -> None:
        if not self.can_view(document):
            raise HTTPException(status_code=403, detail="Not allowed to access this document")

    def require_admin(self) -> None:
        if not self.is_admin:
            raise HTTPException(status_code=403, detail="Administrator role required")


async def require_caller(
    x_caller_id: str | None = Header(None),
    x_caller_role: str = Header("USER"),
) -> CallerPolicy:
    # Identity is asserted by the authenticating proxy in front of this service.
    if not x_caller_id:
        raise HTTPException(status_code=401, detail="Missing caller identity")
    try:
        worker_id = int(x_caller_id)
    except ValueError:
        raise HTTPException(status_code=401, detail="Invalid caller identity")
    role = x_caller_role.upper()
    if role not in ROLES:
        raise HTTPException(status_code=401, detail="Unknown caller role")
    return CallerPolicy(Caller(worker_id=worker_id, role=role))


def get_registry(db: Session = Depends(get_db)) -> DocumentRegistry:
    resolver = PathResolver(settings.storage_root)
    return DocumentRegistry(db, BlobStore(resolver), SqlOwnerDirectory(db))
