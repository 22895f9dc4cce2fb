from pydantic import BaseModel
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from modules.documents.models.document import DocumentStatus
from modules.documents.models.incident import IncidentStatus
from modules.documents.models.signature import SignatureRequestStatus

class DocumentVersionResponse(BaseModel):
    id: int
    document_id: int
    version_number: int
    file_path: str
    file_name: str
    file_type: str
    file_size: int
    created_by_user_id: int
    description_of_changes: Optional[str] = None
    is_signed_version: bool = False
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}

class DocumentResponse(BaseModel):
    id: int
    owner_id: int
    title: str
    description: Optional[str] = None
    status: DocumentStatus
    latest_version_number: int
    current_document_version_id: Optional[int] = None
    original_hash: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}

class DocumentUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None

class ConfirmRequest(BaseModel):
    confirm: bool = False
    reason: Optional[str] = None

class SignatureRequestResponse(BaseModel):
    id: str
    document_id: int
    document_title: Optional[str] = None
    document_version_id: int
    document_version_number: int = 0
    signer_email: str
    signer_id: Optional[int] = None
    signer_name: Optional[str] = None
    status: SignatureRequestStatus
    requested_at: datetime
    signed_at: Optional[datetime] = None
    declined_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancelled_by_user_id: Optional[int] = None
    expired_at: Optional[datetime] = None
    voided_at: Optional[datetime] = None
    signer_ip_address: Optional[str] = None
    signer_user_agent: Optional[str] = None
    signing_location: Optional[Dict[str, Any]] = None
    signing_url: Optional[str] = None
    signature_data_path: Optional[str] = None

    model_config = {"from_attributes": True}

class DocumentDetailsResponse(BaseModel):
    document: DocumentResponse
    versions: List[DocumentVersionResponse]
    signature_requests: List[SignatureRequestResponse]
    can_modify: bool
    can_cancel: bool

class SendSignatureRequest(BaseModel):
    emails: Union[str, List[str]]

class SendSignatureResponse(BaseModel):
    sent: List[str]
    request_ids: List[str]
    already_sent: List[str]
    failed: List[str]
    invalid: List[str]
    document_status: str
    message: str

class SignedUrlResponse(BaseModel):
    url: str
    expires_in: int
    file_name: str
    file_type: str

class IncidentCreate(BaseModel):
    details: str
    reason: Optional[str] = None
    contact_email: Optional[str] = None

class IncidentUpdate(BaseModel):
    status: Optional[IncidentStatus] = None
    details: Optional[str] = None

class IncidentResponse(BaseModel):
    id: int
    timestamp: datetime
    reported_by_user_id: Optional[int] = None
    reported_by_email: Optional[str] = None
    reporter_name: Optional[str] = None
    document_id: Optional[int] = None
    document_title: Optional[str] = None
    reason: str
    details: Optional[str] = None
    status: IncidentStatus
    resolved_by_user_id: Optional[int] = None
    resolver_name: Optional[str] = None
    resolved_at: Optional[datetime] = None

    model_config = {"from_attributes": True}

class IncidentPage(BaseModel):
    items: List[IncidentResponse]
    total: int
    page: int
    per_page: int
    pages: int
