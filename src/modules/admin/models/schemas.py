from pydantic import BaseModel
from typing import Any, Dict, List, Optional

from modules.audit.models.schemas import AuditLogResponse

class DashboardResponse(BaseModel):
    users: int
    documents: int

class RecordPage(BaseModel):
    table_name: str
    editable_fields: Dict[str, str]
    items: List[Dict[str, Any]]
    total: int
    page: int
    per_page: int
    pages: int

class StatusCount(BaseModel):
    status: str
    count: int

class RoleCount(BaseModel):
    role: str
    count: int

class ReportTotals(BaseModel):
    documents: int
    signature_requests: int
    users: int
    incident_reports: int

class ReportResponse(BaseModel):
    documents_by_status: List[StatusCount]
    signature_requests_by_status: List[StatusCount]
    users_by_role: List[RoleCount]
    incidents_by_status: List[StatusCount]
    totals: ReportTotals
    average_signing_time: str
    recent_audit_logs: List[AuditLogResponse]

class DeletedRecordResponse(BaseModel):
    message: str
    deleted_data: Optional[Dict[str, Any]] = None
