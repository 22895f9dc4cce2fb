from datetime import date
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, Query
from sqlalchemy.orm import Session
from database import get_db
from modules.admin.models.schemas import DashboardResponse, DeletedRecordResponse, RecordPage, ReportResponse
from modules.admin.services.record_editor import RecordEditor, serialize_record
from modules.admin.services.reports_service import ReportsService
from modules.admin.services.user_admin_service import UserAdminService
from modules.auth.dependencies import require_permission
from modules.auth.schemas.auth_schemas import UserListResponse, UserResponse
from modules.documents.models.schemas import IncidentPage, IncidentResponse, IncidentUpdate
from modules.documents.models.user import User
from modules.documents.services.incident_service import IncidentService
from modules.documents.services.storage import LocalStorage, get_storage

router = APIRouter(prefix="/admin", tags=["admin"])

@router.get("/dashboard", response_model=DashboardResponse)
def dashboard(db: Session = Depends(get_db), admin: User = Depends(require_permission("manage"))):
    return UserAdminService.dashboard(db)

@router.get("/users", response_model=UserListResponse)
def list_users(
    role: Optional[str] = Query(None, description="Filtrar por rol"),
    is_verified: Optional[bool] = Query(None, description="Filtrar por verificación"),
    search: Optional[str] = Query(None, description="Buscar por nombre o email"),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    page: int = Query(1, ge=1),
    per_page: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
    admin: User = Depends(require_permission("manage"))
):
    """Listar usuarios (solo administradores)"""
    return UserAdminService.list_users(db, role, is_verified, search, start_date, end_date, page, per_page)

@router.post("/users/{user_id}/block", response_model=UserResponse)
def block_user(user_id: int, db: Session = Depends(get_db), admin: User = Depends(require_permission("manage"))):
    return UserAdminService.block_user(db, admin, user_id)

@router.post("/users/{user_id}/unblock", response_model=UserResponse)
def unblock_user(user_id: int, db: Session = Depends(get_db), admin: User = Depends(require_permission("manage"))):
    return UserAdminService.unblock_user(db, admin, user_id)

@router.get("/incidents", response_model=IncidentPage)
def list_incidents(
    status: Optional[str] = Query(None),
    search: Optional[str] = Query(None),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    page: int = Query(1, ge=1),
    per_page: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
    admin: User = Depends(require_permission("manage"))
):
    return IncidentService.list_reports(db, status, search, start_date, end_date, page, per_page)

@router.patch("/incidents/{incident_id}", response_model=IncidentResponse)
def update_incident(
    incident_id: int,
    data: IncidentUpdate,
    db: Session = Depends(get_db),
    admin: User = Depends(require_permission("manage"))
):
    return IncidentService.update_report(db, admin, incident_id, data.model_dump(exclude_unset=True))

@router.get("/records/{table_name}", response_model=RecordPage)
def list_records(
    table_name: str,
    page: int = Query(1, ge=1),
    per_page: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
    admin: User = Depends(require_permission("manage"))
):
    return RecordEditor.list_records(db, table_name, page, per_page)

@router.get("/records/{table_name}/{record_id}")
def get_record(
    table_name: str,
    record_id: str,
    db: Session = Depends(get_db),
    admin: User = Depends(require_permission("manage"))
) -> Dict[str, Any]:
    _, record = RecordEditor.get_record(db, table_name, record_id)
    return serialize_record(record)

@router.patch("/records/{table_name}/{record_id}")
def update_record(
    table_name: str,
    record_id: str,
    payload: Dict[str, Any] = Body(...),
    db: Session = Depends(get_db),
    admin: User = Depends(require_permission("manage"))
) -> Dict[str, Any]:
    return RecordEditor.update_record(db, admin, table_name, record_id, payload)

@router.delete("/records/{table_name}/{record_id}", response_model=DeletedRecordResponse)
def delete_record(
    table_name: str,
    record_id: str,
    db: Session = Depends(get_db),
    storage: LocalStorage = Depends(get_storage),
    admin: User = Depends(require_permission("manage"))
):
    deleted = RecordEditor.delete_record(db, admin, table_name, record_id, storage)
    return {"message": f"{table_name} record deleted successfully.", "deleted_data": deleted}

@router.get("/reports", response_model=ReportResponse)
def reports(
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    db: Session = Depends(get_db),
    admin: User = Depends(require_permission("manage"))
):
    return ReportsService.generate(db, start_date, end_date)
