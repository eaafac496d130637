from pydantic import BaseModel

from app.schemas.document import DocumentResponse


class DependentResponse(BaseModel):
    id: str
    worker_id: int
    first_name: str
    paternal_surname: str
    maternal_surname: str | None
    birth_date: str
    active: bool
    created_at: str
    updated_at: str
    birth_certificate: DocumentResponse | None = None
