import logging
import math
from datetime import date, datetime
from enum import Enum as PyEnum
from typing import Any, Callable, Dict, Optional, Type

from pydantic import ConfigDict, EmailStr, Field, ValidationError, create_model
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from errors import Conflict, NotFound, ValidationFailed
from modules.audit.services.audit_service import AuditService
from modules.documents.models.document import Document, DocumentStatus, DocumentVersion
from modules.documents.models.incident import IncidentReport, IncidentStatus
from modules.documents.models.signature import SignatureRequest, SignatureRequestStatus
from modules.documents.models.user import User, UserRole
from modules.documents.services.document_state_service import DocumentStateService
from modules.documents.services.incident_service import IncidentService
from modules.documents.services.storage import LocalStorage

logger = logging.getLogger(__name__)

# Columnas que nunca se exponen en el editor
HIDDEN_COLUMNS = {"password_hash", "totp_secret"}


def _lower_email(value: Optional[str]) -> Optional[str]:
    return value.strip().lower() if value else value


def _set_request_status(record: SignatureRequest, value: SignatureRequestStatus, admin: User) -> None:
    DocumentStateService.override_request_status(record, value, actor=admin)


class EditableEntity:
    """
    Variante etiquetada de tabla editable: lista explícita de campos con su
    tipo. Cualquier otro campo del payload se rechaza.

    Un campo puede declararse como `(tipo, Field(...))` para añadir
    restricciones. `normalizers` transforma el valor ya validado y `setters`
    reemplaza el setattr cuando el cambio arrastra otras columnas.
    """

    def __init__(self, table_name: str, model: Type, id_type: Type, fields: Dict[str, Any],
                 order_column: str, correlate: Callable[[Any], Dict[str, Any]],
                 normalizers: Optional[Dict[str, Callable[[Any], Any]]] = None,
                 setters: Optional[Dict[str, Callable[[Any, Any, User], None]]] = None):
        self.table_name = table_name
        self.model = model
        self.id_type = id_type
        self.fields = {name: spec if isinstance(spec, tuple) else (spec, None) for name, spec in fields.items()}
        self.order_column = order_column
        self.correlate = correlate
        self.normalizers = normalizers or {}
        self.setters = setters or {}
        self.update_schema = create_model(
            f"{model.__name__}AdminUpdate",
            __config__=ConfigDict(extra="forbid"),
            **{name: (Optional[field_type], info) for name, (field_type, info) in self.fields.items()},
        )

    def field_types(self) -> Dict[str, str]:
        return {name: getattr(t, "__name__", str(t)) for name, (t, _) in self.fields.items()}

    def apply(self, record: Any, field: str, value: Any, admin: User) -> None:
        setter = self.setters.get(field)
        if setter is not None and value is not None:
            setter(record, value, admin)
        else:
            setattr(record, field, value)

    def parse_id(self, record_id: Any):
        try:
            return self.id_type(record_id)
        except (TypeError, ValueError):
            raise NotFound(f"{self.table_name} record not found.", redirect_to="/admin/records")


ENTITIES: Dict[str, EditableEntity] = {
    "users": EditableEntity(
        "users", User, int,
        {
            "full_name": str,
            "title": str,
            "department": str,
            "role": UserRole,
            "is_verified": bool,
            "is_totp_enabled": bool,
            "failed_login_attempts": (int, Field(default=None, ge=0)),
            "blocked": bool,
        },
        order_column="created_at",
        correlate=lambda r: {},
    ),
    "documents": EditableEntity(
        "documents", Document, int,
        {"title": str, "description": str, "status": DocumentStatus},
        order_column="created_at",
        correlate=lambda r: {"document_id": r.id, "document_version_id": r.current_document_version_id},
    ),
    "document_versions": EditableEntity(
        "document_versions", DocumentVersion, int,
        {"description_of_changes": str, "is_signed_version": bool},
        order_column="created_at",
        correlate=lambda r: {"document_id": r.document_id, "document_version_id": r.id},
    ),
    "signature_requests": EditableEntity(
        "signature_requests", SignatureRequest, str,
        {"signer_email": EmailStr, "status": SignatureRequestStatus, "signing_url": str},
        order_column="requested_at",
        correlate=lambda r: {"signature_request_id": r.id, "document_id": r.document_id,
                             "document_version_id": r.document_version_id},
        normalizers={"signer_email": _lower_email},
        setters={"status": _set_request_status},
    ),
    "incident_reports": EditableEntity(
        "incident_reports", IncidentReport, int,
        {"reason": str, "details": str, "status": IncidentStatus, "reported_by_email": EmailStr},
        order_column="timestamp",
        correlate=lambda r: {"document_id": r.document_id},
        normalizers={"reported_by_email": _lower_email},
        setters={"status": IncidentService.apply_status},
    ),
}


def _plain(value: Any) -> Any:
    if isinstance(value, PyEnum):
        return value.value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


def serialize_record(record: Any) -> Dict[str, Any]:
    return {
        column.name: _plain(getattr(record, column.key))
        for column in record.__table__.columns
        if column.name not in HIDDEN_COLUMNS
    }


class RecordEditor:

    @staticmethod
    def get_entity(table_name: str) -> EditableEntity:
        entity = ENTITIES.get(table_name)
        if entity is None:
            raise ValidationFailed(f"Table '{table_name}' cannot be edited. "
                                   f"Editable tables: {', '.join(ENTITIES)}.")
        return entity

    @staticmethod
    def list_records(session: Session, table_name: str, page: int = 1, per_page: int = 10) -> Dict[str, Any]:
        entity = RecordEditor.get_entity(table_name)
        query = session.query(entity.model)
        total = query.count()
        order_column = getattr(entity.model, entity.order_column)
        records = query.order_by(order_column.desc()).offset((page - 1) * per_page).limit(per_page).all()
        return {
            "table_name": table_name,
            "editable_fields": entity.field_types(),
            "items": [serialize_record(r) for r in records],
            "total": total,
            "page": page,
            "per_page": per_page,
            "pages": math.ceil(total / per_page) if total else 0,
        }

    @staticmethod
    def get_record(session: Session, table_name: str, record_id: Any):
        entity = RecordEditor.get_entity(table_name)
        record = session.get(entity.model, entity.parse_id(record_id))
        if record is None:
            raise NotFound(f"{table_name} record not found.", redirect_to="/admin/records")
        return entity, record

    @staticmethod
    def update_record(session: Session, admin: User, table_name: str, record_id: Any,
                      payload: Dict[str, Any]) -> Dict[str, Any]:
        entity, record = RecordEditor.get_record(session, table_name, record_id)
        try:
            data = entity.update_schema.model_validate(payload).model_dump(exclude_unset=True)
        except ValidationError as exc:
            raise ValidationFailed(f"Invalid fields for {table_name}.",
                                   extra={"errors": exc.errors(include_url=False)})

        columns = entity.model.__table__.columns
        changes = {}
        for field, value in data.items():
            if value is None and not columns[field].nullable:
                raise ValidationFailed(f"{field} cannot be empty.")
            if field in entity.normalizers:
                value = entity.normalizers[field](value)
            old = getattr(record, field)
            if old != value:
                changes[field] = {"old": _plain(old), "new": _plain(value)}
                entity.apply(record, field, value, admin)

        if not changes:
            return serialize_record(record)

        correlation = entity.correlate(record)
        try:
            session.commit()
        except IntegrityError as exc:
            session.rollback()
            logger.warning("Update of %s %s rejected: %s", table_name, record_id, exc)
            raise Conflict(f"The {table_name} update conflicts with existing records.")
        session.refresh(record)

        details = {"table_name": table_name, "record_id": record.id, "changes": changes}
        if table_name == "users":
            details["target_user_id"] = record.id
        AuditService.record(session, f"{table_name.upper()}_UPDATED", actor=admin, details=details, **correlation)
        return serialize_record(record)

    @staticmethod
    def delete_record(session: Session, admin: User, table_name: str, record_id: Any,
                      storage: Optional[LocalStorage] = None) -> Dict[str, Any]:
        entity, record = RecordEditor.get_record(session, table_name, record_id)
        deleted_data = serialize_record(record)
        correlation = entity.correlate(record)

        stored_paths = []
        if isinstance(record, Document):
            stored_paths = [v.file_path for v in record.versions]
        elif isinstance(record, DocumentVersion):
            document = record.document
            if document is not None and document.current_document_version_id == record.id:
                raise Conflict("The current version of a document cannot be deleted.")
            stored_paths = [record.file_path]

        try:
            session.delete(record)
            session.commit()
        except IntegrityError as exc:
            session.rollback()
            logger.warning("Delete of %s %s rejected: %s", table_name, record_id, exc)
            raise Conflict(f"This {table_name} record is still referenced by other records.")

        if storage is not None:
            for path in stored_paths:
                storage.remove(path)

        AuditService.record(
            session, f"{table_name.upper()}_DELETED", actor=admin,
            details={"table_name": table_name, "record_id": deleted_data["id"], "deleted_data": deleted_data},
            **correlation,
        )
        return deleted_data
