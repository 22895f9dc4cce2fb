from pydantic import BaseModel
from datetime import datetime
from typing import Any, List, Optional

class AuditLogResponse(BaseModel):
    id: int
    timestamp: datetime
    user_id: Optional[int] = None
    user_email: Optional[str] = None
    event_type: str
    details: Optional[Any] = None
    details_display: List[str] = []
    ip_address: Optional[str] = None
    document_id: Optional[int] = None
    document_version_id: Optional[int] = None
    signature_request_id: Optional[str] = None

    model_config = {"from_attributes": True}

class AuditLogPage(BaseModel):
    items: List[AuditLogResponse]
    total: int
    page: int
    per_page: int
    pages: int

class AuditActor(BaseModel):
    user_id: int
    user_email: Optional[str] = None

class AuditFilterOptions(BaseModel):
    users: List[AuditActor]
    event_types: List[str]
