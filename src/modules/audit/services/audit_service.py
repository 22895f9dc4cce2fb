# modules/audit/services/audit_service.py
import json
import logging
import math
import re
from datetime import date
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from errors import ValidationFailed
from modules.audit.models.audit_log import AuditLog
from modules.audit.repositories.audit_repository import AuditRepository

logger = logging.getLogger(__name__)

EVENT_TYPE_PATTERN = re.compile(r"^[A-Z][A-Z0-9_]*$")

# Claves con representación propia, en el orden en que se muestran
_SPECIAL_KEYS = ("status", "reason", "changes", "location", "userAgent")


def _compact_json(value: Any) -> str:
    return json.dumps(value, separators=(",", ":"), default=str)


def _format_location(location: Dict[str, Any]) -> Optional[str]:
    parts = []
    city = location.get("city")
    region = location.get("region")
    if city:
        parts.append(str(city))
    if region and region != city:
        parts.append(str(region))
    if location.get("country"):
        parts.append(str(location["country"]))
    return ", ".join(parts) if parts else None


def format_details(details: Any) -> List[str]:
    """
    Aplana el payload heterogéneo de una entrada de auditoría en líneas
    "etiqueta: valor" para mostrar.
    """
    if details is None or details == "":
        return ["N/A"]

    parsed = details
    if isinstance(details, str):
        try:
            parsed = json.loads(details)
        except ValueError:
            return [details]

    if not isinstance(parsed, dict):
        return [str(parsed)]

    lines = []
    if parsed.get("status"):
        lines.append(f"Status: {str(parsed['status']).upper()}")
    if parsed.get("reason"):
        lines.append(f"Reason: {parsed['reason']}")
    if parsed.get("changes"):
        lines.append(f"Changes: {_compact_json(parsed['changes'])}")
    if isinstance(parsed.get("location"), dict):
        location = _format_location(parsed["location"])
        if location:
            lines.append(f"Location: {location}")
    if parsed.get("userAgent"):
        lines.append(f"User Agent: {parsed['userAgent']}")

    for key, value in parsed.items():
        if key in _SPECIAL_KEYS:
            continue
        if isinstance(value, (dict, list)):
            lines.append(f"{key}: {_compact_json(value)}")
        else:
            lines.append(f"{key}: {value}")

    return lines or [json.dumps(parsed, indent=2, default=str)]


def _to_json_safe(details: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    # datetime, Enum, Decimal... se guardan como texto en la columna JSON
    if details is None:
        return None
    return json.loads(json.dumps(details, default=lambda v: getattr(v, "value", str(v))))


class AuditService:

    @staticmethod
    def record(
        db: Session,
        event_type: str,
        actor=None,
        details: Optional[Dict[str, Any]] = None,
        document_id: Optional[int] = None,
        document_version_id: Optional[int] = None,
        signature_request_id: Optional[str] = None,
        ip_address: Optional[str] = None,
        user_email: Optional[str] = None,
    ) -> Optional[AuditLog]:
        """
        Agrega una entrada de auditoría en su propio commit. Se llama después
        de confirmar la mutación principal; un fallo de escritura se registra
        en el log y devuelve None sin afectar al llamador.
        """
        if not EVENT_TYPE_PATTERN.match(event_type or ""):
            raise ValidationFailed(f"Invalid audit event type: {event_type!r}")

        entry = AuditLog(
            user_id=actor.id if actor is not None else None,
            user_email=actor.email if actor is not None else user_email,
            event_type=event_type,
            details=_to_json_safe(details),
            ip_address=ip_address,
            document_id=document_id,
            document_version_id=document_version_id,
            signature_request_id=signature_request_id,
        )
        try:
            return AuditRepository(db).save(entry)
        except SQLAlchemyError as exc:
            db.rollback()
            logger.warning("Audit entry %s could not be written: %s", event_type, exc)
            return None

    @staticmethod
    def query(
        db: Session,
        user_id: Optional[int] = None,
        event_type: Optional[str] = None,
        search: Optional[str] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        page: int = 1,
        per_page: int = 10,
    ) -> Dict[str, Any]:
        """Listado paginado en orden cronológico inverso."""
        if page < 1 or per_page < 1:
            raise ValidationFailed("page and per_page must be positive.")
        if start_date and end_date and start_date > end_date:
            raise ValidationFailed("start_date must not be after end_date.")

        items, total = AuditRepository(db).search(
            user_id=user_id,
            event_type=event_type,
            search=search.strip() if search else None,
            start_date=start_date,
            end_date=end_date,
            page=page,
            per_page=per_page,
        )
        return {
            "items": [AuditService.to_response(entry) for entry in items],
            "total": total,
            "page": page,
            "per_page": per_page,
            "pages": math.ceil(total / per_page) if total else 0,
        }

    @staticmethod
    def filter_options(db: Session) -> Dict[str, Any]:
        repo = AuditRepository(db)
        return {
            "users": [{"user_id": uid, "user_email": email} for uid, email in repo.distinct_actors()],
            "event_types": repo.distinct_event_types(),
        }

    @staticmethod
    def trail(db: Session, signature_request_id: str) -> List[Dict[str, Any]]:
        return [AuditService.to_response(entry)
                for entry in AuditRepository(db).find_by_signature_request(signature_request_id)]

    @staticmethod
    def to_response(entry: AuditLog) -> Dict[str, Any]:
        return {
            "id": entry.id,
            "timestamp": entry.timestamp,
            "user_id": entry.user_id,
            "user_email": entry.user_email,
            "event_type": entry.event_type,
            "details": entry.details,
            "details_display": format_details(entry.details),
            "ip_address": entry.ip_address,
            "document_id": entry.document_id,
            "document_version_id": entry.document_version_id,
            "signature_request_id": entry.signature_request_id,
        }
