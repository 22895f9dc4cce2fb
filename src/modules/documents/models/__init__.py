from .user import User, UserRole
from .document import Document, DocumentStatus, DocumentVersion
from .signature import SignatureRequest, SignatureRequestStatus, INACTIVE_STATUSES
from .incident import IncidentReport, IncidentStatus

__all__ = [
    'User', 'UserRole',
    'Document', 'DocumentStatus', 'DocumentVersion',
    'SignatureRequest', 'SignatureRequestStatus', 'INACTIVE_STATUSES',
    'IncidentReport', 'IncidentStatus',
]
