from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from database import get_db
from modules.auth.dependencies import require_permission
from modules.documents.models.user import User
from modules.documents.models.schemas import IncidentCreate, IncidentResponse
from modules.documents.services.incident_service import IncidentService

router = APIRouter(
    tags=["incidents"]
)

@router.post("/{document_id}/incidents", response_model=IncidentResponse, status_code=status.HTTP_201_CREATED)
def report_issue(
    document_id: int,
    data: IncidentCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("report"))
):
    """Reportar un problema con un documento propio"""
    return IncidentService.report_issue(db, current_user, document_id, data.details,
                                        data.reason, data.contact_email)
