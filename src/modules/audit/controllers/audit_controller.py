# modules/audit/controllers/audit_controller.py
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from database import get_db
from modules.audit.models.schemas import AuditFilterOptions, AuditLogPage
from modules.audit.services.audit_service import AuditService
from modules.auth.dependencies import require_permission
from modules.documents.models.user import User

router = APIRouter(prefix="/admin/audit-logs", tags=["audit"])


@router.get(
    "",
    response_model=AuditLogPage,
    summary="Listar entradas de auditoría"
)
def list_audit_logs(
    user_id: Optional[int] = Query(None),
    event_type: Optional[str] = Query(None),
    search: Optional[str] = Query(None, description="Busca en event_type y user_email"),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None, description="Incluye el día completo"),
    page: int = Query(1, ge=1),
    per_page: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
    admin: User = Depends(require_permission("audit"))
):
    return AuditService.query(db, user_id, event_type, search, start_date, end_date, page, per_page)


@router.get(
    "/filters",
    response_model=AuditFilterOptions,
    summary="Opciones de filtro: actores y tipos de evento"
)
def audit_filter_options(
    db: Session = Depends(get_db),
    admin: User = Depends(require_permission("audit"))
):
    return AuditService.filter_options(db)
