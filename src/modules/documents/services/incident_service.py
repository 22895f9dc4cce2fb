import math
from datetime import date, datetime, time
from typing import Any, Dict, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from errors import NotFound, ValidationFailed
from modules.audit.services.audit_service import AuditService
from modules.documents.models.incident import IncidentReport, IncidentStatus
from modules.documents.models.user import User
from modules.documents.services.document_service import DocumentService

DEFAULT_REASON = "User Reported Issue"

class IncidentService:

    @staticmethod
    def report_issue(session: Session, user: User, document_id: int, details: str,
                     reason: Optional[str] = None, contact_email: Optional[str] = None) -> IncidentReport:
        """Registra un reporte de incidencia sobre un documento propio"""
        document = DocumentService.get_owned_document(session, user, document_id)
        details = (details or "").strip()
        if not details:
            raise ValidationFailed("Please describe the issue.")

        report = IncidentReport(
            reported_by_user_id=user.id,
            reported_by_email=(contact_email or "").strip() or user.email,
            document_id=document.id,
            reason=(reason or "").strip() or DEFAULT_REASON,
            details=details,
            status=IncidentStatus.PENDING,
        )
        session.add(report)
        session.commit()
        session.refresh(report)

        AuditService.record(session, "INCIDENT_REPORTED", actor=user, document_id=document.id,
                            details={"status": report.status.value, "reason": report.reason,
                                     "incident_id": report.id})
        return report

    @staticmethod
    def list_reports(
        session: Session,
        status: Optional[str] = None,
        search: Optional[str] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        page: int = 1,
        per_page: int = 10,
    ) -> Dict[str, Any]:
        query = session.query(IncidentReport)

        if status and status != "all":
            try:
                query = query.filter(IncidentReport.status == IncidentStatus(status))
            except ValueError:
                raise ValidationFailed(f"Unknown incident status: {status}")
        if search:
            pattern = f"%{search.strip()}%"
            query = query.filter(or_(
                IncidentReport.reported_by_email.ilike(pattern),
                IncidentReport.reason.ilike(pattern),
                IncidentReport.details.ilike(pattern),
            ))
        if start_date:
            query = query.filter(IncidentReport.timestamp >= datetime.combine(start_date, time.min))
        if end_date:
            query = query.filter(IncidentReport.timestamp <= datetime.combine(end_date, time.max))

        total = query.count()
        items = (
            query.order_by(IncidentReport.timestamp.desc(), IncidentReport.id.desc())
            .offset((page - 1) * per_page)
            .limit(per_page)
            .all()
        )
        return {"items": items, "total": total, "page": page, "per_page": per_page,
                "pages": math.ceil(total / per_page) if total else 0}

    @staticmethod
    def apply_status(report: IncidentReport, new_status: IncidentStatus, admin: User) -> None:
        report.status = new_status
        if new_status == IncidentStatus.RESOLVED:
            report.resolved_by_user_id = admin.id
            report.resolved_at = datetime.utcnow()
        else:
            report.resolved_by_user_id = None
            report.resolved_at = None

    @staticmethod
    def update_report(session: Session, admin: User, incident_id: int, data: Dict[str, Any]) -> IncidentReport:
        """
        Actualiza estado y detalles. Pasar a resolved registra quién y cuándo;
        volver a pending limpia esos campos.
        """
        report = session.get(IncidentReport, incident_id)
        if report is None:
            raise NotFound("Incident report not found.", redirect_to="/admin/anomalies")

        changes = {}
        if data.get("status") is not None:
            new_status = IncidentStatus(data["status"])
            if new_status != report.status:
                changes["status"] = {"old": report.status.value, "new": new_status.value}
                IncidentService.apply_status(report, new_status, admin)
        if "details" in data and data["details"] != report.details:
            changes["details"] = {"old": report.details, "new": data["details"]}
            report.details = data["details"]

        if not changes:
            return report

        session.commit()
        session.refresh(report)
        AuditService.record(session, "INCIDENT_REPORTS_UPDATED", actor=admin, document_id=report.document_id,
                            details={"table_name": "incident_reports", "record_id": report.id,
                                     "changes": changes})
        return report
