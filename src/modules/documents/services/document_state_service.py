import logging
from datetime import datetime
from typing import Optional
from sqlalchemy.orm import Session
from errors import InvalidTransition
from modules.documents.models.document import Document, DocumentStatus
from modules.documents.models.signature import SignatureRequest, SignatureRequestStatus
from modules.documents.models.user import User

logger = logging.getLogger(__name__)

# Transiciones permitidas para solicitudes de firma. Las salidas desde
# declined/expired/cancelled solo las usan la cancelación masiva y el void por nueva versión.
REQUEST_TRANSITIONS = {
    SignatureRequestStatus.PENDING: {
        SignatureRequestStatus.SIGNED,
        SignatureRequestStatus.DECLINED,
        SignatureRequestStatus.CANCELLED,
        SignatureRequestStatus.EXPIRED,
        SignatureRequestStatus.VOID,
    },
    SignatureRequestStatus.DECLINED: {SignatureRequestStatus.CANCELLED, SignatureRequestStatus.VOID},
    SignatureRequestStatus.EXPIRED: {SignatureRequestStatus.CANCELLED, SignatureRequestStatus.VOID},
    SignatureRequestStatus.CANCELLED: {SignatureRequestStatus.VOID},
    SignatureRequestStatus.SIGNED: set(),
    SignatureRequestStatus.VOID: set(),
}

DOCUMENT_TRANSITIONS = {
    DocumentStatus.DRAFT: {DocumentStatus.PENDING_SIGNATURE, DocumentStatus.CANCELLED},
    DocumentStatus.PENDING_SIGNATURE: {DocumentStatus.SIGNED, DocumentStatus.CANCELLED, DocumentStatus.DRAFT},
    DocumentStatus.SIGNED: set(),
    DocumentStatus.CANCELLED: set(),
}

# Campo de fecha que acompaña a cada estado terminal
_TIMESTAMP_FIELDS = {
    SignatureRequestStatus.SIGNED: "signed_at",
    SignatureRequestStatus.DECLINED: "declined_at",
    SignatureRequestStatus.CANCELLED: "cancelled_at",
    SignatureRequestStatus.EXPIRED: "expired_at",
    SignatureRequestStatus.VOID: "voided_at",
}

# Estados desde los que una cancelación masiva (documento cancelado) actúa
BULK_CANCELLABLE = (
    SignatureRequestStatus.PENDING,
    SignatureRequestStatus.DECLINED,
    SignatureRequestStatus.EXPIRED,
)

class DocumentStateService:

    @staticmethod
    def can_transition_request(current: SignatureRequestStatus, new: SignatureRequestStatus) -> bool:
        return new in REQUEST_TRANSITIONS.get(current, set())

    @staticmethod
    def can_change_state(document: Document, new_state: DocumentStatus) -> bool:
        return new_state in DOCUMENT_TRANSITIONS.get(document.status, set())

    @staticmethod
    def transition_request(request: SignatureRequest, new_status: SignatureRequestStatus,
                           actor: Optional[User] = None, when: Optional[datetime] = None) -> SignatureRequest:
        """
        Applies a request transition in the session (no commit) and stamps
        exactly the timestamp matching the new status.
        """
        if not DocumentStateService.can_transition_request(request.status, new_status):
            raise InvalidTransition(
                f"Signature request cannot change from {request.status.value} to {new_status.value}."
            )

        when = when or datetime.utcnow()
        request.status = new_status
        setattr(request, _TIMESTAMP_FIELDS[new_status], when)

        if new_status == SignatureRequestStatus.CANCELLED:
            request.cancelled_by_user_id = actor.id if actor else None

        return request

    @staticmethod
    def override_request_status(request: SignatureRequest, new_status: SignatureRequestStatus,
                                actor: Optional[User] = None, when: Optional[datetime] = None) -> SignatureRequest:
        """
        Admin override: sets the status without consulting the transition
        table and leaves only the timestamp that matches it.
        """
        when = when or datetime.utcnow()
        request.status = new_status
        for status, field in _TIMESTAMP_FIELDS.items():
            if status == new_status:
                setattr(request, field, when)
            else:
                setattr(request, field, None)

        if new_status == SignatureRequestStatus.CANCELLED:
            request.cancelled_by_user_id = actor.id if actor else None
        else:
            request.cancelled_by_user_id = None

        return request

    @staticmethod
    def change_document_state(session: Session, document: Document, new_state: DocumentStatus) -> Document:
        """
        Changes document state after validating the transition table. The
        caller owns the commit.
        """
        if document.status == new_state:
            return document

        if not DocumentStateService.can_change_state(document, new_state):
            raise InvalidTransition(
                f"Document cannot change from {document.status.value} to {new_state.value}."
            )

        previous_state = document.status
        document.status = new_state
        document.updated_at = datetime.utcnow()
        session.flush()

        logger.info("Document %s changed from %s to %s", document.id, previous_state.value, new_state.value)
        return document

    @staticmethod
    def get_allowed_transitions(document: Document) -> list[DocumentStatus]:
        """
        Returns list of states the document can transition to
        """
        return [state for state in DocumentStatus if DocumentStateService.can_change_state(document, state)]
