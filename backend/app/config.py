from pathlib import Path
from pydantic_settings import BaseSettings

DEFAULT_ALLOWED_MIME_TYPES = [
    "application/pdf",
    "image/jpeg",
    "image/png",
    "image/webp",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "application/vnd.ms-excel",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
]

PERMISSION_ALLOWED_MIME_TYPES = [
    "application/pdf",
    "image/jpeg",
    "image/png",
    "image/webp",
]

DEFAULT_STORAGE_BUCKETS = {
    "CURP": "curp",
    "RFC": "rfc",
    "NATIONAL_ID": "national_id",
    "STUDY_CERTIFICATE": "study_certificates",
    "BIRTH_CERTIFICATE": "birth_certificates",
    "PERMISSION_APPROVAL": "permission_approvals",
    "OTHER": "other",
}


class Settings(BaseSettings):
    data_dir: Path = Path.home() / "WorkerDocuments"
    storage_root: Path = Path.home() / "WorkerDocuments" / "uploads"
    max_upload_bytes: int = 10 * 1024 * 1024  # 10 MiB
    max_permission_upload_bytes: int = 5 * 1024 * 1024  # 5 MiB
    allowed_mime_types: list[str] = DEFAULT_ALLOWED_MIME_TYPES
    permission_allowed_mime_types: list[str] = PERMISSION_ALLOWED_MIME_TYPES
    # Document types missing from this map land in other_bucket.
    storage_buckets: dict[str, str] = DEFAULT_STORAGE_BUCKETS
    other_bucket: str = "other"
    # Blobs younger than this are never swept; they may belong to an in-flight upload.
    orphan_grace_seconds: int = 3600
    api_prefix: str = "/api/v1"
    log_level: str = "INFO"
    host: str = "127.0.0.1"
    port: int = 8000

    @property
    def db_path(self) -> Path:
        return self.data_dir / "documents.sqlite"

    model_config = {"env_prefix": "DOCS_"}


settings = Settings()
