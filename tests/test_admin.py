from datetime import date, datetime, timedelta

import pytest

from errors import Conflict, NotFound, ValidationFailed
from modules.admin.services.record_editor import RecordEditor
from modules.admin.services.reports_service import ReportsService, format_duration
from modules.admin.services.user_admin_service import UserAdminService
from modules.audit.models.audit_log import AuditLog
from modules.documents.models.document import Document, DocumentStatus
from modules.documents.models.incident import IncidentStatus
from modules.documents.models.signature import SignatureRequest, SignatureRequestStatus
from modules.documents.models.user import UserRole
from modules.documents.services.document_service import DocumentService
from modules.documents.services.incident_service import IncidentService

from conftest import make_pdf_bytes, make_user


@pytest.fixture
def document(session, storage, owner):
    return DocumentService.upload_document(
        session, storage, owner, make_pdf_bytes(), "contrato.pdf", "application/pdf", "Contrato"
    )


def test_format_duration():
    assert format_duration(None) == "N/A"
    assert format_duration(0) == "0h 0m 0s"
    assert format_duration(3725.9) == "1h 2m 5s"


# --- Editor de registros ---

def test_unknown_table_is_rejected(session):
    with pytest.raises(ValidationFailed):
        RecordEditor.list_records(session, "audit_logs")


def test_list_records_hides_secrets(session, admin, owner):
    page = RecordEditor.list_records(session, "users")
    assert page["total"] == 2
    assert all("password_hash" not in item and "totp_secret" not in item for item in page["items"])
    assert page["editable_fields"]["role"] == "UserRole"


def test_update_rejects_fields_outside_the_schema(session, admin, owner):
    with pytest.raises(ValidationFailed) as exc:
        RecordEditor.update_record(session, admin, "users", owner.id, {"password_hash": "x"})
    assert exc.value.to_dict()["errors"][0]["type"] == "extra_forbidden"


def test_update_rejects_wrong_types(session, admin, owner):
    with pytest.raises(ValidationFailed):
        RecordEditor.update_record(session, admin, "users", owner.id, {"role": "superuser"})


def test_update_rejects_null_on_required_column(session, admin, document):
    with pytest.raises(ValidationFailed):
        RecordEditor.update_record(session, admin, "documents", document.id, {"title": None})


def test_update_user_records_changes_and_target(session, admin, owner):
    updated = RecordEditor.update_record(session, admin, "users", str(owner.id),
                                         {"role": "admin", "department": "Legal"})
    assert updated["role"] == "admin"
    assert updated["department"] == "Legal"

    entry = session.query(AuditLog).filter_by(event_type="USERS_UPDATED").one()
    # El actor sigue siendo el administrador
    assert entry.user_id == admin.id
    assert entry.details["target_user_id"] == owner.id
    assert entry.details["changes"]["role"] == {"old": "user", "new": "admin"}


def test_admin_may_override_document_status(session, admin, document):
    RecordEditor.update_record(session, admin, "documents", document.id, {"status": "signed"})
    session.refresh(document)
    assert document.status == DocumentStatus.SIGNED

    entry = session.query(AuditLog).filter_by(event_type="DOCUMENTS_UPDATED").one()
    assert entry.document_id == document.id


def test_update_signature_request_conflict(session, admin, owner, document, signature_service):
    result = signature_service.send_for_signature(session, owner, document.id, "a@example.com, b@example.com")
    with pytest.raises(Conflict):
        RecordEditor.update_record(session, admin, "signature_requests", result["request_ids"][1],
                                   {"signer_email": "a@example.com"})


def test_request_status_override_stamps_matching_timestamp(session, admin, owner, document, signature_service):
    request_id = signature_service.send_for_signature(session, owner, document.id, "a@example.com")["request_ids"][0]

    RecordEditor.update_record(session, admin, "signature_requests", request_id, {"status": "signed"})
    request = session.get(SignatureRequest, request_id)
    assert request.status == SignatureRequestStatus.SIGNED
    assert request.signed_at is not None

    RecordEditor.update_record(session, admin, "signature_requests", request_id, {"status": "cancelled"})
    session.refresh(request)
    assert request.cancelled_at is not None
    assert request.cancelled_by_user_id == admin.id
    assert request.signed_at is None

    RecordEditor.update_record(session, admin, "signature_requests", request_id, {"status": "pending"})
    session.refresh(request)
    assert (request.signed_at, request.declined_at, request.cancelled_at, request.expired_at,
            request.voided_at) == (None, None, None, None, None)


def test_incident_status_override_tracks_resolution(session, admin, owner, document):
    report = IncidentService.report_issue(session, owner, document.id, "No carga la segunda página")

    RecordEditor.update_record(session, admin, "incident_reports", report.id, {"status": "resolved"})
    session.refresh(report)
    assert report.resolved_by_user_id == admin.id
    assert report.resolved_at is not None

    RecordEditor.update_record(session, admin, "incident_reports", report.id, {"status": "pending"})
    session.refresh(report)
    assert report.resolved_by_user_id is None
    assert report.resolved_at is None


def test_failed_login_attempts_cannot_be_negative(session, admin, owner):
    with pytest.raises(ValidationFailed):
        RecordEditor.update_record(session, admin, "users", owner.id, {"failed_login_attempts": -1})
    RecordEditor.update_record(session, admin, "users", owner.id, {"failed_login_attempts": 0})


def test_signer_email_is_validated_and_lowercased(session, admin, owner, document, signature_service):
    request_id = signature_service.send_for_signature(session, owner, document.id, "a@example.com")["request_ids"][0]

    with pytest.raises(ValidationFailed):
        RecordEditor.update_record(session, admin, "signature_requests", request_id, {"signer_email": "no-es-correo"})

    updated = RecordEditor.update_record(session, admin, "signature_requests", request_id,
                                         {"signer_email": "Nuevo.Firmante@Example.COM"})
    assert updated["signer_email"] == "nuevo.firmante@example.com"

    signer = make_user(session, "nuevo.firmante@example.com")
    received = signature_service.list_requests(session, signer, tab="received")
    assert [r.id for r in received] == [request_id]


def test_unchanged_update_writes_no_audit(session, admin, owner):
    RecordEditor.update_record(session, admin, "users", owner.id, {"full_name": owner.full_name})
    assert session.query(AuditLog).filter_by(event_type="USERS_UPDATED").count() == 0


def test_missing_record_is_not_found(session, admin):
    with pytest.raises(NotFound):
        RecordEditor.get_record(session, "documents", 999)
    with pytest.raises(NotFound):
        RecordEditor.get_record(session, "documents", "not-a-number")


def test_delete_document_removes_files_and_audits(session, admin, document, storage):
    path = document.current_version.file_path
    document_id = document.id

    deleted = RecordEditor.delete_record(session, admin, "documents", document_id, storage=storage)

    assert deleted["title"] == "Contrato"
    assert session.get(Document, document_id) is None
    assert not storage.exists(path)
    entry = session.query(AuditLog).filter_by(event_type="DOCUMENTS_DELETED").one()
    assert entry.details["record_id"] == document_id
    assert entry.details["deleted_data"]["title"] == "Contrato"


def test_current_version_cannot_be_deleted(session, admin, document):
    with pytest.raises(Conflict):
        RecordEditor.delete_record(session, admin, "document_versions", document.current_document_version_id)


# --- Usuarios ---

def test_block_and_unblock_user(session, admin, owner):
    owner.failed_login_attempts = 10
    session.commit()

    UserAdminService.block_user(session, admin, owner.id)
    assert owner.blocked is True

    UserAdminService.unblock_user(session, admin, owner.id)
    assert owner.blocked is False
    assert owner.failed_login_attempts == 0

    events = [e.event_type for e in session.query(AuditLog).order_by(AuditLog.id)]
    assert events == ["USER_BLOCKED", "USER_UNBLOCKED"]


def test_admin_cannot_block_self(session, admin):
    with pytest.raises(ValidationFailed):
        UserAdminService.block_user(session, admin, admin.id)


def test_list_users_filters(session, admin, owner):
    make_user(session, "pending@example.com", verified=False, full_name="Pedro Pending")

    assert UserAdminService.list_users(session, role="admin")["total"] == 1
    assert UserAdminService.list_users(session, is_verified=False)["total"] == 1
    assert [u.email for u in UserAdminService.list_users(session, search="pedro")["users"]] == ["pending@example.com"]
    page = UserAdminService.list_users(session, per_page=2)
    assert page["total"] == 3 and page["pages"] == 2

    with pytest.raises(ValidationFailed):
        UserAdminService.list_users(session, role="root")


def test_dashboard_counts(session, admin, document):
    assert UserAdminService.dashboard(session) == {"users": 2, "documents": 1}


# --- Incidencias ---

def test_report_issue_and_resolve(session, admin, owner, document):
    report = IncidentService.report_issue(session, owner, document.id, "El PDF no abre en el móvil")
    assert report.reason == "User Reported Issue"
    assert report.reported_by_email == owner.email

    resolved = IncidentService.update_report(session, admin, report.id, {"status": "resolved"})
    assert resolved.status == IncidentStatus.RESOLVED
    assert resolved.resolved_by_user_id == admin.id
    assert resolved.resolved_at is not None

    reopened = IncidentService.update_report(session, admin, report.id, {"status": "pending"})
    assert reopened.resolved_by_user_id is None
    assert reopened.resolved_at is None

    events = [e.event_type for e in session.query(AuditLog).filter(AuditLog.event_type.like("INCIDENT%")).order_by(AuditLog.id)]
    assert events == ["INCIDENT_REPORTED", "INCIDENT_REPORTS_UPDATED", "INCIDENT_REPORTS_UPDATED"]


def test_report_issue_requires_details_and_ownership(session, owner, document):
    with pytest.raises(ValidationFailed):
        IncidentService.report_issue(session, owner, document.id, "   ")

    stranger = make_user(session, "stranger@example.com")
    with pytest.raises(NotFound):
        IncidentService.report_issue(session, stranger, document.id, "No es mío")


def test_list_reports_filters(session, owner, document):
    IncidentService.report_issue(session, owner, document.id, "Firma ilegible", reason="Rendering")
    IncidentService.report_issue(session, owner, document.id, "Otro problema")

    assert IncidentService.list_reports(session, search="ilegible")["total"] == 1
    assert IncidentService.list_reports(session, status="pending")["total"] == 2
    assert IncidentService.list_reports(session, status="resolved")["total"] == 0


# --- Reportes ---

def test_reports_generate(session, admin, owner, document, signature_service):
    signer = make_user(session, "signer@example.com")
    result = signature_service.send_for_signature(session, owner, document.id, "signer@example.com")
    request = session.get(SignatureRequest, result["request_ids"][0])
    request.requested_at = datetime.utcnow() - timedelta(hours=2, minutes=30)
    session.commit()
    signature_service.sign(session, signer, request.id, "203.0.113.7", "pytest")

    report = ReportsService.generate(session)

    assert report["totals"]["documents"] == 1
    assert report["totals"]["users"] == 3
    assert {"status": "signed", "count": 1} in report["documents_by_status"]
    assert {"role": "admin", "count": 1} in report["users_by_role"]
    assert report["signature_requests_by_status"] == [{"status": "signed", "count": 1}]
    assert report["average_signing_time"].startswith("2h 30m")
    assert len(report["recent_audit_logs"]) <= 10


def test_reports_without_signatures(session):
    report = ReportsService.generate(session, start_date=date(2020, 1, 1), end_date=date(2020, 1, 31))
    assert report["average_signing_time"] == "N/A"
    assert report["totals"]["documents"] == 0


def test_roles_enum_values():
    assert [r.value for r in UserRole] == ["user", "admin"]
    assert SignatureRequestStatus("void") == SignatureRequestStatus.VOID
