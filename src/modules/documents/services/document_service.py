import hashlib
import io
import logging
import os
from datetime import datetime
from typing import Any, Dict, List, Optional

from PyPDF2 import PdfReader
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from config import settings
from errors import BookkeepingError, InvalidTransition, NotFound, PermissionDenied, StorageError, ValidationFailed
from modules.audit.services.audit_service import AuditService
from modules.documents.models.document import Document, DocumentStatus, DocumentVersion
from modules.documents.models.signature import SignatureRequest, SignatureRequestStatus
from modules.documents.models.user import User
from modules.documents.services.document_state_service import BULK_CANCELLABLE, DocumentStateService
from modules.documents.services.storage import LocalStorage

logger = logging.getLogger(__name__)

DOCUMENTS_LISTING_PATH = "/user/documents"

ALLOWED_CONTENT_TYPES = {
    "application/pdf": (".pdf",),
    "image/jpeg": (".jpg", ".jpeg"),
    "image/png": (".png",),
    "image/gif": (".gif",),
}

# Documentos que ya no admiten cambios del propietario
LOCKED_STATUSES = (DocumentStatus.SIGNED, DocumentStatus.CANCELLED)

class DocumentService:

    @staticmethod
    def get_documents_by_user(session: Session, user_id: int) -> list[Document]:
        """
        Obtiene todos los documentos de un usuario, los más recientes primero
        """
        return (
            session.query(Document)
            .filter(Document.owner_id == user_id)
            .order_by(Document.updated_at.desc(), Document.id.desc())
            .all()
        )

    @staticmethod
    def get_owned_document(session: Session, user: User, document_id: int) -> Document:
        """Documento del usuario; uno ajeno se trata igual que uno inexistente."""
        document = session.get(Document, document_id)
        if document is None or document.owner_id != user.id:
            raise NotFound("Document not found or you don't have access to it.",
                           redirect_to=DOCUMENTS_LISTING_PATH)
        return document

    @staticmethod
    def get_document_details(session: Session, user: User, document_id: int,
                             version_id: Optional[int] = None) -> Dict[str, Any]:
        document = DocumentService.get_owned_document(session, user, document_id)

        versions = sorted(document.versions, key=lambda v: v.version_number, reverse=True)
        requests = (
            session.query(SignatureRequest)
            .options(joinedload(SignatureRequest.document_version))
            .filter(SignatureRequest.document_id == document.id)
        )
        if version_id is not None:
            requests = requests.filter(SignatureRequest.document_version_id == version_id)
        requests = requests.order_by(SignatureRequest.requested_at.asc()).all()

        return {
            "document": document,
            "versions": versions,
            "signature_requests": requests,
            "can_modify": document.status not in LOCKED_STATUSES,
            "can_cancel": document.status == DocumentStatus.PENDING_SIGNATURE,
        }

    @staticmethod
    def upload_document(
        session: Session,
        storage: LocalStorage,
        user: User,
        file_contents: bytes,
        filename: str,
        content_type: str,
        title: str,
        description: Optional[str] = None,
        max_file_size: int = settings.MAX_FILE_SIZE,
    ) -> Document:
        """
        Procesa y guarda un documento completo en una sola transacción:
        - Valida título y archivo
        - Crea el documento en borrador
        - Guarda el archivo como versión 1
        - Enlaza la versión actual
        Si algo falla, no queda ni fila ni archivo.
        """
        title = (title or "").strip()
        if not title:
            raise ValidationFailed("Document title is required.")
        DocumentService._validate_file(file_contents, filename, content_type, max_file_size)

        original_hash = hashlib.sha256(file_contents).hexdigest()
        stored_path = None
        try:
            document = Document(
                owner_id=user.id,
                title=title,
                description=(description or "").strip() or None,
                status=DocumentStatus.DRAFT,
                latest_version_number=0,
                original_hash=original_hash,
            )
            session.add(document)
            session.flush()

            path = storage.build_path(user.id, document.id, 1, filename)
            stored_path = storage.upload(path, file_contents)

            version = DocumentVersion(
                document_id=document.id,
                version_number=1,
                file_path=stored_path,
                file_name=filename,
                file_type=content_type,
                file_size=len(file_contents),
                created_by_user_id=user.id,
                description_of_changes="Initial upload of document.",
            )
            session.add(version)
            session.flush()

            document.current_version = version
            document.latest_version_number = 1
            session.commit()
        except StorageError:
            session.rollback()
            raise
        except SQLAlchemyError as exc:
            session.rollback()
            if stored_path:
                storage.remove(stored_path)
            logger.error("Document upload for user %s rolled back: %s", user.id, exc)
            raise BookkeepingError("Document could not be saved. Please try again.")

        session.refresh(document)
        AuditService.record(
            session, "DOCUMENT_UPLOADED", actor=user,
            document_id=document.id, document_version_id=version.id,
            details={"title": document.title, "file_name": filename, "version_number": 1,
                     "original_hash": original_hash},
        )
        return document

    @staticmethod
    def upload_new_version(
        session: Session,
        storage: LocalStorage,
        user: User,
        document_id: int,
        file_contents: bytes,
        filename: str,
        content_type: str,
        description_of_changes: Optional[str] = None,
        max_file_size: int = settings.MAX_FILE_SIZE,
    ) -> DocumentVersion:
        """
        Sube una nueva versión. Las solicitudes no firmadas de la versión
        anterior pasan a void, la fila de versión se inserta y el documento
        se reapunta, todo en un único commit.
        """
        document = DocumentService.get_owned_document(session, user, document_id)
        DocumentService._ensure_modifiable(document)
        DocumentService._validate_file(file_contents, filename, content_type, max_file_size)

        version_number = (document.latest_version_number or 0) + 1
        previous_version_id = document.current_document_version_id
        stored_path = None
        voided: List[str] = []
        try:
            path = storage.build_path(user.id, document.id, version_number, filename)
            stored_path = storage.upload(path, file_contents)

            now = datetime.utcnow()
            if previous_version_id is not None:
                stale = (
                    session.query(SignatureRequest)
                    .filter(
                        SignatureRequest.document_id == document.id,
                        SignatureRequest.document_version_id == previous_version_id,
                        SignatureRequest.status.notin_([SignatureRequestStatus.SIGNED, SignatureRequestStatus.VOID]),
                    )
                    .all()
                )
                for request in stale:
                    DocumentStateService.transition_request(request, SignatureRequestStatus.VOID, when=now)
                    voided.append(request.id)

            version = DocumentVersion(
                document_id=document.id,
                version_number=version_number,
                file_path=stored_path,
                file_name=filename,
                file_type=content_type,
                file_size=len(file_contents),
                created_by_user_id=user.id,
                description_of_changes=(description_of_changes or "").strip() or None,
            )
            session.add(version)
            session.flush()

            document.current_version = version
            document.latest_version_number = version_number
            document.updated_at = now

            if document.status == DocumentStatus.PENDING_SIGNATURE and not DocumentService._has_active_requests(session, document):
                DocumentStateService.change_document_state(session, document, DocumentStatus.DRAFT)

            session.commit()
        except StorageError:
            session.rollback()
            raise
        except SQLAlchemyError as exc:
            session.rollback()
            if stored_path:
                storage.remove(stored_path)
            logger.error("New version for document %s rolled back: %s", document_id, exc)
            raise BookkeepingError("New version could not be saved. The document was left unchanged.")

        AuditService.record(
            session, "DOCUMENT_VERSION_UPLOADED", actor=user,
            document_id=document.id, document_version_id=version.id,
            details={"version_number": version_number, "file_name": filename,
                     "previous_version_id": previous_version_id, "voided_requests": voided},
        )
        return version

    @staticmethod
    def update_details(session: Session, user: User, document_id: int, data: Dict[str, Any]) -> Document:
        document = DocumentService.get_owned_document(session, user, document_id)
        DocumentService._ensure_modifiable(document)

        changes = {}
        if "title" in data:
            title = (data["title"] or "").strip()
            if not title:
                raise ValidationFailed("Document title is required.")
            if title != document.title:
                changes["title"] = {"old": document.title, "new": title}
                document.title = title
        if "description" in data:
            description = (data["description"] or "").strip() or None
            if description != document.description:
                changes["description"] = {"old": document.description, "new": description}
                document.description = description

        if not changes:
            return document

        document.updated_at = datetime.utcnow()
        session.commit()
        session.refresh(document)
        AuditService.record(session, "DOCUMENT_UPDATED", actor=user, document_id=document.id,
                            document_version_id=document.current_document_version_id,
                            details={"changes": changes})
        return document

    @staticmethod
    def cancel_document(session: Session, user: User, document_id: int, confirm: bool = False,
                        reason: Optional[str] = None) -> Document:
        """
        Cancela el documento y todas sus solicitudes pendientes, rechazadas o
        expiradas. Las firmadas se conservan.
        """
        if not confirm:
            raise ValidationFailed("Cancelling a document must be confirmed.")

        document = DocumentService.get_owned_document(session, user, document_id)
        old_status = document.status
        if not DocumentStateService.can_change_state(document, DocumentStatus.CANCELLED):
            raise InvalidTransition(f"A {old_status.value} document cannot be cancelled.")

        now = datetime.utcnow()
        DocumentStateService.change_document_state(session, document, DocumentStatus.CANCELLED)
        cancelled = []
        for request in document.signature_requests:
            if request.status in BULK_CANCELLABLE:
                DocumentStateService.transition_request(request, SignatureRequestStatus.CANCELLED, actor=user, when=now)
                cancelled.append(request.id)
        session.commit()

        AuditService.record(
            session, "DOCUMENT_CANCELLED", actor=user, document_id=document.id,
            document_version_id=document.current_document_version_id,
            details={"cancellation_reason": reason or "Cancelled by sender",
                     "old_status": old_status.value, "cancelled_requests": cancelled},
        )
        return document

    @staticmethod
    def get_version_url(session: Session, storage: LocalStorage, user: User,
                        document_id: int, version_id: int) -> Dict[str, Any]:
        """URL firmada temporal; la pueden pedir el propietario o un firmante del documento."""
        document = session.get(Document, document_id)
        if document is None:
            raise NotFound("Document not found.", redirect_to=DOCUMENTS_LISTING_PATH)

        if document.owner_id != user.id:
            is_signer = (
                session.query(SignatureRequest.id)
                .filter(SignatureRequest.document_id == document.id,
                        SignatureRequest.signer_email == user.email.lower())
                .first()
            )
            if not is_signer:
                raise PermissionDenied()

        version = session.get(DocumentVersion, version_id)
        if version is None or version.document_id != document.id:
            raise NotFound("Document version not found.", redirect_to=DOCUMENTS_LISTING_PATH)
        if not storage.exists(version.file_path):
            raise NotFound("The file for this version is missing from storage.")

        return {
            "url": storage.create_signed_url(version.file_path),
            "expires_in": settings.SIGNED_URL_EXPIRE_SECONDS,
            "file_name": version.file_name,
            "file_type": version.file_type,
        }

    @staticmethod
    def _has_active_requests(session: Session, document: Document) -> bool:
        return (
            session.query(SignatureRequest.id)
            .filter(SignatureRequest.document_id == document.id,
                    SignatureRequest.status == SignatureRequestStatus.PENDING)
            .first()
            is not None
        )

    @staticmethod
    def _ensure_modifiable(document: Document):
        if document.status in LOCKED_STATUSES:
            raise InvalidTransition(f"A {document.status.value} document can no longer be modified.")

    @staticmethod
    def _validate_file(file_contents: bytes, filename: str, content_type: str, max_file_size: int):
        """Valida el archivo subido"""

        if not filename:
            raise ValidationFailed("A file is required.")

        # Validar MIME type y extensión
        extensions = ALLOWED_CONTENT_TYPES.get(content_type)
        if extensions is None:
            raise ValidationFailed("Only PDF, JPEG, PNG or GIF files are allowed.")
        if os.path.splitext(filename.lower())[1] not in extensions:
            raise ValidationFailed(f"File extension does not match {content_type}.")

        # Validar tamaño
        if not file_contents:
            raise ValidationFailed("The file is empty.")
        if len(file_contents) > max_file_size:
            raise ValidationFailed(f"Maximum file size is {max_file_size // (1024 * 1024)} MB.")

        # Validar integridad del PDF
        if content_type == "application/pdf":
            try:
                reader = PdfReader(io.BytesIO(file_contents))
                _ = len(reader.pages)
            except Exception:
                raise ValidationFailed("Invalid or corrupted PDF.")
