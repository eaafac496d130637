from pydantic import BaseModel

from app.schemas.document import DocumentResponse


class PermissionResponse(BaseModel):
    id: str
    worker_id: int
    permission_type: str
    start_date: str
    end_date: str
    reason: str | None
    status: str
    created_at: str
    updated_at: str
    approval_document: DocumentResponse | None = None
