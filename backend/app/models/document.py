from enum import Enum

from sqlalchemy import Boolean, Column, ForeignKey, Integer, Text
from app.database import Base


class DocumentType(str, Enum):
    CURP = "CURP"
    RFC = "RFC"
    NATIONAL_ID = "NATIONAL_ID"
    STUDY_CERTIFICATE = "STUDY_CERTIFICATE"
    BIRTH_CERTIFICATE = "BIRTH_CERTIFICATE"
    PERMISSION_APPROVAL = "PERMISSION_APPROVAL"
    OTHER = "OTHER"


# Must match the partial unique index uq_documents_owner_type.
UNIQUE_PER_OWNER_TYPES = frozenset({DocumentType.CURP, DocumentType.RFC, DocumentType.NATIONAL_ID})


class Visibility(str, Enum):
    ALL = "all"
    PUBLIC = "public"
    PRIVATE = "private"


class Document(Base):
    __tablename__ = "documents"

    id = Column(Text, primary_key=True)
    owner_id = Column(Integer, ForeignKey("workers.id"), nullable=False)
    document_type = Column(Text, nullable=False)
    original_filename = Column(Text, nullable=False)
    stored_path = Column(Text, nullable=False, unique=True)
    content_hash = Column(Text, nullable=False)
    size_bytes = Column(Integer, nullable=False)
    mime_type = Column(Text)
    description = Column(Text)
    is_public = Column(Boolean, nullable=False, default=False)
    uploaded_at = Column(Text, nullable=False)
