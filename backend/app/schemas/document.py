from pydantic import BaseModel


class DocumentResponse(BaseModel):
    id: str
    owner_id: int
    document_type: str
    original_filename: str
    stored_path: str
    content_hash: str
    size_bytes: int
    mime_type: str | None
    description: str | None
    is_public: bool
    uploaded_at: str


class VerificationResponse(BaseModel):
    document_id: str
    verified: bool
    filename: str
    stored_hash: str
    actual_hash: str


class SweepResponse(BaseModel):
    removed: list[str]
    skipped_recent: list[str]
    missing_blobs: list[str]
