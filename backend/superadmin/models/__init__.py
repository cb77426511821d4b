from superadmin.models.audit_log import AuditLog
from superadmin.models.document import Document

__all__ = [
    "AuditLog",
    "Document",
]
