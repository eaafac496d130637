from sqlalchemy import Column, ForeignKey, Integer, Text
from sqlalchemy.orm import relationship
from app.database import Base

PERMISSION_STATUSES = ("PENDING", "APPROVED", "REJECTED")


class PermissionRequest(Base):
    __tablename__ = "permission_requests"

    id = Column(Text, primary_key=True)
    worker_id = Column(Integer, ForeignKey("workers.id"), nullable=False)
    permission_type = Column(Text, nullable=False)
    start_date = Column(Text, nullable=False)
    end_date = Column(Text, nullable=False)
    reason = Column(Text)
    status = Column(Text, nullable=False, default="PENDING")
    approval_document_id = Column(Text, ForeignKey("documents.id"))
    created_at = Column(Text, nullable=False)
    updated_at = Column(Text, nullable=False)

    approval_document = relationship("Document")
