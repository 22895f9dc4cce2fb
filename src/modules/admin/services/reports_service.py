from datetime import date, datetime, time
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from errors import ValidationFailed
from modules.audit.repositories.audit_repository import AuditRepository
from modules.audit.services.audit_service import AuditService
from modules.documents.models.document import Document
from modules.documents.models.incident import IncidentReport
from modules.documents.models.signature import SignatureRequest, SignatureRequestStatus
from modules.documents.models.user import User


def format_duration(seconds: Optional[float]) -> str:
    """Segundos -> "{h}h {m}m {s}s"; sin datos devuelve "N/A"."""
    if seconds is None:
        return "N/A"
    total = int(seconds)
    hours, rest = divmod(total, 3600)
    minutes, secs = divmod(rest, 60)
    return f"{hours}h {minutes}m {secs}s"


def _within(query, column, start: Optional[datetime], end: Optional[datetime]):
    if start:
        query = query.filter(column >= start)
    if end:
        query = query.filter(column <= end)
    return query


def _count_by(session: Session, column, timestamp, start, end, key: str) -> List[Dict[str, Any]]:
    query = _within(session.query(column, func.count()), timestamp, start, end)
    rows = query.group_by(column).all()
    return sorted(
        ({key: value.value if hasattr(value, "value") else value, "count": count} for value, count in rows),
        key=lambda item: item[key],
    )


class ReportsService:

    @staticmethod
    def generate(session: Session, start_date: Optional[date] = None,
                 end_date: Optional[date] = None) -> Dict[str, Any]:
        if start_date and end_date and start_date > end_date:
            raise ValidationFailed("start_date must not be after end_date.")
        start = datetime.combine(start_date, time.min) if start_date else None
        end = datetime.combine(end_date, time.max) if end_date else None

        signed = _within(
            session.query(SignatureRequest.requested_at, SignatureRequest.signed_at)
            .filter(SignatureRequest.status == SignatureRequestStatus.SIGNED,
                    SignatureRequest.signed_at.isnot(None)),
            SignatureRequest.signed_at, start, end,
        ).all()
        average = None
        if signed:
            average = sum((s - r).total_seconds() for r, s in signed) / len(signed)

        return {
            "documents_by_status": _count_by(session, Document.status, Document.created_at, start, end, "status"),
            "signature_requests_by_status": _count_by(
                session, SignatureRequest.status, SignatureRequest.requested_at, start, end, "status"),
            "users_by_role": _count_by(session, User.role, User.created_at, start, end, "role"),
            "incidents_by_status": _count_by(
                session, IncidentReport.status, IncidentReport.timestamp, start, end, "status"),
            "totals": {
                "documents": _within(session.query(Document), Document.created_at, start, end).count(),
                "signature_requests": _within(
                    session.query(SignatureRequest), SignatureRequest.requested_at, start, end).count(),
                "users": _within(session.query(User), User.created_at, start, end).count(),
                "incident_reports": _within(
                    session.query(IncidentReport), IncidentReport.timestamp, start, end).count(),
            },
            "average_signing_time": format_duration(average),
            "recent_audit_logs": [AuditService.to_response(e)
                                  for e in AuditRepository(session).recent(10, start, end)],
        }
