from .document_service import DocumentService
from .document_state_service import DocumentStateService
from .incident_service import IncidentService
from .signature_service import SignatureService, parse_and_validate_emails

__all__ = ['DocumentService', 'DocumentStateService', 'IncidentService', 'SignatureService',
           'parse_and_validate_emails']
