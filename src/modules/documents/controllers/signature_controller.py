# src/modules/documents/controllers/signature_controller.py
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session
from database import get_db
from modules.audit.models.schemas import AuditLogResponse
from modules.auth.dependencies import get_current_user, get_client_ip, require_permission
from modules.documents.models.user import User
from modules.documents.models.schemas import (
    ConfirmRequest, SendSignatureRequest, SendSignatureResponse, SignatureRequestResponse,
)
from modules.documents.services.geolocation import GeolocationService, get_geolocation_service
from modules.documents.services.signature_service import SignatureService
from modules.notifications.services.notification_service import NotificationService, get_notification_service

# Envío desde un documento: se monta bajo /documents
router = APIRouter(
    tags=["documents"]
)

requests_router = APIRouter(
    prefix="/signature-requests",
    tags=["signature-requests"]
)

def get_signature_service(
    notifications: NotificationService = Depends(get_notification_service),
    geolocation: GeolocationService = Depends(get_geolocation_service)
) -> SignatureService:
    return SignatureService(notifications, geolocation)

@router.post(
    "/{document_id}/signature-requests",
    response_model=SendSignatureResponse,
    status_code=status.HTTP_201_CREATED
)
def send_for_signature(
    document_id: int,
    data: SendSignatureRequest,
    db: Session = Depends(get_db),
    service: SignatureService = Depends(get_signature_service),
    current_user: User = Depends(require_permission("send"))
):
    """
    Envía solicitudes de firma a una lista de correos; cada destinatario se
    procesa por separado y el resultado se informa por correo.
    """
    return service.send_for_signature(db, current_user, document_id, data.emails)

@requests_router.get("", response_model=List[SignatureRequestResponse])
def list_signature_requests(
    tab: Literal["sent", "received"] = Query("received"),
    status_filter: Optional[str] = Query(None, alias="status"),
    search: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return SignatureService.list_requests(db, current_user, tab, status_filter, search)

@requests_router.get("/{request_id}", response_model=SignatureRequestResponse)
def get_signature_request(
    request_id: str,
    db: Session = Depends(get_db),
    service: SignatureService = Depends(get_signature_service),
    current_user: User = Depends(get_current_user)
):
    return service.get_request(db, current_user, request_id)

@requests_router.get("/{request_id}/audit", response_model=List[AuditLogResponse])
def get_signature_request_audit(
    request_id: str,
    db: Session = Depends(get_db),
    service: SignatureService = Depends(get_signature_service),
    current_user: User = Depends(get_current_user)
):
    return service.get_audit_trail(db, current_user, request_id)

@requests_router.post("/{request_id}/sign", response_model=SignatureRequestResponse)
def sign_request(
    request_id: str,
    request: Request,
    db: Session = Depends(get_db),
    service: SignatureService = Depends(get_signature_service),
    current_user: User = Depends(require_permission("sign"))
):
    return service.sign(db, current_user, request_id, get_client_ip(request), request.headers.get("user-agent"))

@requests_router.post("/{request_id}/decline", response_model=SignatureRequestResponse)
def decline_request(
    request_id: str,
    data: ConfirmRequest,
    db: Session = Depends(get_db),
    service: SignatureService = Depends(get_signature_service),
    current_user: User = Depends(require_permission("sign"))
):
    return service.decline(db, current_user, request_id, data.confirm, data.reason)

@requests_router.post("/{request_id}/cancel", response_model=SignatureRequestResponse)
def cancel_request(
    request_id: str,
    data: ConfirmRequest,
    db: Session = Depends(get_db),
    service: SignatureService = Depends(get_signature_service),
    current_user: User = Depends(get_current_user)
):
    return service.cancel(db, current_user, request_id, data.confirm)
