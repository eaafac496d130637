from typing import Protocol

from sqlalchemy.orm import Session

from app.models.worker import Worker


class OwnerDirectory(Protocol):
    def exists(self, owner_id: int) -> bool: ...


class SqlOwnerDirectory:
    """Read-only lookup over the workers table."""

    def __init__(self, db: Session):
        self.db = db

    def exists(self, owner_id: int) -> bool:
        return self.db.query(Worker.id).filter(Worker.id == owner_id).first() is not None
