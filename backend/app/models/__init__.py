from app.models.worker import Worker
from app.models.document import Document, DocumentType, Visibility
from app.models.dependent import Dependent
from app.models.permission import PermissionRequest

__all__ = ["Worker", "Document", "DocumentType", "Visibility", "Dependent", "PermissionRequest"]
