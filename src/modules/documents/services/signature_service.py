# src/modules/documents/services/signature_service.py

import logging
import re
import uuid
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from config import settings
from errors import InvalidTransition, NotFound, PermissionDenied, ValidationFailed
from modules.audit.services.audit_service import AuditService
from modules.auth.services.auth_service import AuthService
from modules.documents.models.document import Document, DocumentStatus
from modules.documents.models.signature import INACTIVE_STATUSES, SignatureRequest, SignatureRequestStatus
from modules.documents.models.user import User
from modules.documents.services.document_service import DocumentService, LOCKED_STATUSES
from modules.documents.services.document_state_service import DocumentStateService
from modules.documents.services.geolocation import GeolocationService
from modules.notifications.services.notification_service import NotificationService

logger = logging.getLogger(__name__)

REQUESTS_LISTING_PATH = "/user/signature-requests"

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_SEPARATORS = re.compile(r"[,;\n]")

ACTIONABLE_STATUSES = (
    SignatureRequestStatus.PENDING,
    SignatureRequestStatus.DECLINED,
    SignatureRequestStatus.EXPIRED,
)


def parse_and_validate_emails(raw: Union[str, Iterable[str], None]) -> Tuple[List[str], List[str]]:
    """
    Separa por coma, punto y coma o salto de línea, valida cada dirección y
    elimina duplicados sin distinguir mayúsculas, conservando el orden.
    Devuelve (válidos, inválidos).
    """
    if raw is None:
        return [], []
    if isinstance(raw, str):
        candidates = _SEPARATORS.split(raw)
    else:
        candidates = [part for item in raw for part in _SEPARATORS.split(item or "")]

    valid, invalid, seen = [], [], set()
    for candidate in candidates:
        email = candidate.strip()
        if not email:
            continue
        if not EMAIL_PATTERN.match(email):
            invalid.append(email)
            continue
        key = email.lower()
        if key in seen:
            continue
        seen.add(key)
        valid.append(key)
    return valid, invalid


def _plural(count: int, word: str) -> str:
    return f"{count} {word}{'' if count == 1 else 's'}"


def build_send_summary(sent: int, already_sent: List[str], failed: List[str], invalid: List[str]) -> str:
    parts = []
    if sent:
        parts.append(f"{_plural(sent, 'signature request')} sent successfully.")
    if already_sent:
        parts.append(f"({_plural(len(already_sent), 'request')} were already pending for: {', '.join(already_sent)})")
    if failed:
        parts.append(f"Failed to send to: {', '.join(failed)}.")
    if invalid:
        parts.append(f"Invalid emails ignored: {', '.join(invalid)}.")
    if not sent and not failed and already_sent:
        parts.insert(0, "No new signature requests were sent.")
    return " ".join(parts)


class SignatureService:
    def __init__(self, notifications: NotificationService, geolocation: GeolocationService):
        self.notifications = notifications
        self.geolocation = geolocation

    # --- Envío ---

    def send_for_signature(self, session: Session, user: User, document_id: int,
                           raw_emails: Union[str, Iterable[str]]) -> Dict[str, Any]:
        valid, invalid = parse_and_validate_emails(raw_emails)
        if not valid:
            raise ValidationFailed("Please enter at least one valid email address.", extra={"invalid": invalid})

        document = DocumentService.get_owned_document(session, user, document_id)
        if document.status in LOCKED_STATUSES:
            raise InvalidTransition(f"Cannot request signatures on a {document.status.value} document.")
        if document.current_document_version_id is None:
            raise ValidationFailed("The document has no uploaded version to sign.")

        version_id = document.current_document_version_id
        title = document.title
        sender_name = user.full_name or user.email
        actor_id = user.id

        sent: List[SignatureRequest] = []
        already_sent: List[str] = []
        failed: List[str] = []

        for email in valid:
            if self._find_active(session, document_id, version_id, email) is not None:
                already_sent.append(email)
                continue

            request_id = str(uuid.uuid4())
            signer = AuthService.get_user_by_email(session, email)
            request = SignatureRequest(
                id=request_id,
                document_id=document_id,
                document_version_id=version_id,
                signer_email=email,
                signer_id=signer.id if signer else None,
                status=SignatureRequestStatus.PENDING,
                requested_at=datetime.utcnow(),
                signing_url=f"{settings.FRONTEND_URL}/user/sign/{request_id}",
            )
            session.add(request)
            try:
                session.commit()
            except IntegrityError:
                # Otra petición creó la misma solicitud activa entre la consulta y el insert
                session.rollback()
                already_sent.append(email)
                continue
            except SQLAlchemyError as exc:
                session.rollback()
                logger.warning("Signature request for %s on document %s failed: %s", email, document_id, exc)
                failed.append(email)
                continue

            sent.append(request)
            self.notifications.send_signature_request(email, title, sender_name, request.signing_url)
            AuditService.record(
                session, "SIGNATURE_REQUEST_SENT", actor=user,
                document_id=document_id, document_version_id=version_id, signature_request_id=request_id,
                details={"signer_email": email, "signature_request_id": request_id,
                         "signing_url": request.signing_url},
            )

        document = session.get(Document, document_id)
        if sent and document.status not in (DocumentStatus.PENDING_SIGNATURE, DocumentStatus.SIGNED):
            DocumentStateService.change_document_state(session, document, DocumentStatus.PENDING_SIGNATURE)
            session.commit()

        logger.info("User %s sent %d signature request(s) for document %s", actor_id, len(sent), document_id)
        return {
            "sent": [r.signer_email for r in sent],
            "request_ids": [r.id for r in sent],
            "already_sent": already_sent,
            "failed": failed,
            "invalid": invalid,
            "document_status": document.status.value,
            "message": build_send_summary(len(sent), already_sent, failed, invalid),
        }

    # --- Acciones del firmante ---

    def sign(self, session: Session, user: User, request_id: str, ip_address: Optional[str] = None,
             user_agent: Optional[str] = None) -> SignatureRequest:
        request = self._get_for_signer(session, user, request_id)
        self._ensure_pending(request)

        location = self.geolocation.lookup(ip_address)

        now = datetime.utcnow()
        DocumentStateService.transition_request(request, SignatureRequestStatus.SIGNED, when=now)
        request.signer_id = user.id
        request.signer_ip_address = ip_address
        request.signer_user_agent = (user_agent or "")[:512] or None
        request.signing_location = location
        session.flush()

        document = request.document
        completed = self._complete_if_fully_signed(session, document)
        session.commit()

        details = {"status": "signed", "ip_address": ip_address, "location": location, "userAgent": user_agent}
        if completed:
            details["document_status"] = DocumentStatus.SIGNED.value
        AuditService.record(
            session, "DOCUMENT_SIGNED", actor=user, ip_address=ip_address,
            document_id=request.document_id, document_version_id=request.document_version_id,
            signature_request_id=request.id, details=details,
        )
        return request

    def decline(self, session: Session, user: User, request_id: str, confirm: bool = False,
                reason: Optional[str] = None) -> SignatureRequest:
        if not confirm:
            raise ValidationFailed("Declining a signature request must be confirmed.")
        request = self._get_for_signer(session, user, request_id)
        self._ensure_pending(request)

        DocumentStateService.transition_request(request, SignatureRequestStatus.DECLINED)
        request.signer_id = request.signer_id or user.id
        session.commit()

        details = {"status": "declined"}
        if reason:
            details["reason"] = reason
        AuditService.record(
            session, "SIGNATURE_REQUEST_DECLINED", actor=user,
            document_id=request.document_id, document_version_id=request.document_version_id,
            signature_request_id=request.id, details=details,
        )
        return request

    # --- Acciones del propietario ---

    def cancel(self, session: Session, user: User, request_id: str, confirm: bool = False) -> SignatureRequest:
        if not confirm:
            raise ValidationFailed("Cancelling a signature request must be confirmed.")
        request = self._get_request(session, request_id)
        if request.document.owner_id != user.id:
            raise PermissionDenied("Permission denied. Only the document owner can cancel this signature request.")
        self._ensure_pending(request)

        DocumentStateService.transition_request(request, SignatureRequestStatus.CANCELLED, actor=user)
        session.commit()

        AuditService.record(
            session, "SIGNATURE_REQUEST_CANCELLED", actor=user,
            document_id=request.document_id, document_version_id=request.document_version_id,
            signature_request_id=request.id, details={"status": "cancelled"},
        )
        return request

    # --- Lectura ---

    def get_request(self, session: Session, user: User, request_id: str) -> SignatureRequest:
        request = self._get_request(session, request_id)
        if not self._is_participant(request, user):
            raise NotFound("Signature request not found.", redirect_to=REQUESTS_LISTING_PATH)
        return request

    def get_audit_trail(self, session: Session, user: User, request_id: str) -> List[Dict[str, Any]]:
        request = self.get_request(session, user, request_id)
        return AuditService.trail(session, request.id)

    @staticmethod
    def list_requests(session: Session, user: User, tab: str = "received", status: Optional[str] = None,
                      search: Optional[str] = None) -> List[SignatureRequest]:
        query = session.query(SignatureRequest).options(
            joinedload(SignatureRequest.document),
            joinedload(SignatureRequest.document_version),
        )

        if tab == "sent":
            requests = query.join(Document).filter(Document.owner_id == user.id).all()
        elif tab == "received":
            rows = (
                query.filter(SignatureRequest.signer_email == user.email.lower())
                .order_by(SignatureRequest.requested_at.desc())
                .all()
            )
            requests = SignatureService._reduce_received(rows)
        else:
            raise ValidationFailed("tab must be 'sent' or 'received'.")

        if status and status != "all":
            try:
                wanted = SignatureRequestStatus(status)
            except ValueError:
                raise ValidationFailed(f"Unknown signature request status: {status}")
            requests = [r for r in requests if r.status == wanted]

        if search:
            needle = search.strip().lower()
            requests = [
                r for r in requests
                if needle in (r.document_title or "").lower() or needle in r.signer_email.lower()
            ]

        return sorted(requests, key=lambda r: r.requested_at, reverse=True)

    # --- Expiración ---

    @staticmethod
    def expire_stale_requests(session: Session, ttl_days: int = settings.SIGNATURE_REQUEST_TTL_DAYS,
                              now: Optional[datetime] = None) -> List[str]:
        """Marca como expired las solicitudes pendientes más antiguas que el TTL."""
        now = now or datetime.utcnow()
        cutoff = now - timedelta(days=ttl_days)
        stale = (
            session.query(SignatureRequest)
            .filter(SignatureRequest.status == SignatureRequestStatus.PENDING,
                    SignatureRequest.requested_at < cutoff)
            .all()
        )
        if not stale:
            return []

        for request in stale:
            DocumentStateService.transition_request(request, SignatureRequestStatus.EXPIRED, when=now)
        session.commit()

        expired_ids = []
        for request in stale:
            expired_ids.append(request.id)
            AuditService.record(
                session, "SIGNATURE_REQUEST_EXPIRED", user_email="system",
                document_id=request.document_id, document_version_id=request.document_version_id,
                signature_request_id=request.id,
                details={"status": "expired", "ttl_days": ttl_days},
            )
        logger.info("Expired %d signature request(s)", len(expired_ids))
        return expired_ids

    # --- Auxiliares ---

    @staticmethod
    def _find_active(session: Session, document_id: int, version_id: int, email: str) -> Optional[SignatureRequest]:
        return (
            session.query(SignatureRequest)
            .filter(
                SignatureRequest.document_id == document_id,
                SignatureRequest.document_version_id == version_id,
                SignatureRequest.signer_email == email,
                SignatureRequest.status.notin_(INACTIVE_STATUSES),
            )
            .first()
        )

    @staticmethod
    def _reduce_received(rows: List[SignatureRequest]) -> List[SignatureRequest]:
        """
        Una sola solicitud accionable por documento (la de la versión más
        reciente) más todas las históricas.
        """
        latest: Dict[int, SignatureRequest] = {}
        historical = []
        for request in rows:
            if request.status in ACTIONABLE_STATUSES:
                current = latest.get(request.document_id)
                if current is None or request.document_version_number > current.document_version_number:
                    latest[request.document_id] = request
            else:
                historical.append(request)
        return list(latest.values()) + historical

    @staticmethod
    def _complete_if_fully_signed(session: Session, document: Document) -> bool:
        """Si todas las solicitudes activas de la versión actual están firmadas, el documento queda firmado."""
        if document.status != DocumentStatus.PENDING_SIGNATURE:
            return False
        active = (
            session.query(SignatureRequest)
            .filter(
                SignatureRequest.document_id == document.id,
                SignatureRequest.document_version_id == document.current_document_version_id,
                SignatureRequest.status.notin_(INACTIVE_STATUSES),
            )
            .all()
        )
        if not active or any(r.status != SignatureRequestStatus.SIGNED for r in active):
            return False

        DocumentStateService.change_document_state(session, document, DocumentStatus.SIGNED)
        if document.current_version is not None:
            document.current_version.is_signed_version = True
        return True

    @staticmethod
    def _get_request(session: Session, request_id: str) -> SignatureRequest:
        request = session.get(SignatureRequest, request_id)
        if request is None:
            raise NotFound("Signature request not found.", redirect_to=REQUESTS_LISTING_PATH)
        return request

    @staticmethod
    def _get_for_signer(session: Session, user: User, request_id: str) -> SignatureRequest:
        request = SignatureService._get_request(session, request_id)
        if request.signer_email.lower() != user.email.lower():
            raise PermissionDenied("Permission denied. Only the requested signer can act on this signature request.")
        return request

    @staticmethod
    def _is_participant(request: SignatureRequest, user: User) -> bool:
        return request.document.owner_id == user.id or request.signer_email.lower() == user.email.lower()

    @staticmethod
    def _ensure_pending(request: SignatureRequest):
        if request.status != SignatureRequestStatus.PENDING:
            raise InvalidTransition(f"This signature request is already {request.status.value}.")
