from sqlalchemy import Boolean, Column, ForeignKey, Integer, Text
from sqlalchemy.orm import relationship
from app.database import Base


class Dependent(Base):
    __tablename__ = "dependents"

    id = Column(Text, primary_key=True)
    worker_id = Column(Integer, ForeignKey("workers.id"), nullable=False)
    first_name = Column(Text, nullable=False)
    paternal_surname = Column(Text, nullable=False)
    maternal_surname = Column(Text)
    birth_date = Column(Text, nullable=False)
    birth_certificate_id = Column(Text, ForeignKey("documents.id"))
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(Text, nullable=False)
    updated_at = Column(Text, nullable=False)

    birth_certificate = relationship("Document")
