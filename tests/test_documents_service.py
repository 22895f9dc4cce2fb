import os

import pytest
from sqlalchemy.exc import OperationalError

from errors import BookkeepingError, InvalidTransition, NotFound, PermissionDenied, StorageError, ValidationFailed
from modules.audit.models.audit_log import AuditLog
from modules.documents.models.document import Document, DocumentStatus, DocumentVersion
from modules.documents.models.signature import SignatureRequestStatus
from modules.documents.services.document_service import DocumentService
from modules.documents.services.storage import sanitize_filename

from conftest import make_pdf_bytes, make_user


def upload_pdf(session, storage, user, filename="contrato.pdf", title="Contrato"):
    return DocumentService.upload_document(
        session, storage, user, make_pdf_bytes(), filename, "application/pdf", title
    )


def stored_files(storage):
    found = []
    for dirpath, _, filenames in os.walk(storage.root):
        found.extend(os.path.join(dirpath, name) for name in filenames)
    return found


def test_PF_FR01_01_rechazar_no_pdf(session, storage, owner):
    with pytest.raises(ValidationFailed):
        DocumentService.upload_document(
            session, storage, owner, b"Fake DOCX content", "no_pdf.docx",
            "application/vnd.openxmlformats-officedocument.wordprocessingml.document", "Informe",
        )
    assert session.query(Document).count() == 0


def test_PF_FR01_02_subir_pdf_valido(session, storage, owner):
    doc = upload_pdf(session, storage, owner, "prueba.pdf", "Prueba")

    assert doc.id is not None
    assert doc.status == DocumentStatus.DRAFT
    assert doc.latest_version_number == 1
    assert doc.current_version.version_number == 1
    assert doc.current_version.description_of_changes == "Initial upload of document."
    assert doc.current_version.file_path == f"{owner.id}/{doc.id}/version_1_prueba.pdf"
    assert storage.exists(doc.current_version.file_path)
    assert len(doc.original_hash) == 64

    entry = session.query(AuditLog).filter_by(event_type="DOCUMENT_UPLOADED").one()
    assert entry.document_id == doc.id
    assert entry.details["version_number"] == 1


def test_PF_FR01_03_pdf_corrupto(session, storage, owner):
    with pytest.raises(ValidationFailed):
        DocumentService.upload_document(session, storage, owner, b"%PDF-1.4 broken", "roto.pdf",
                                        "application/pdf", "Roto")


def test_extension_must_match_content_type(session, storage, owner, pdf_bytes):
    with pytest.raises(ValidationFailed):
        DocumentService.upload_document(session, storage, owner, pdf_bytes, "contrato.png",
                                        "application/pdf", "Contrato")


def test_file_size_limit(session, storage, owner, pdf_bytes):
    with pytest.raises(ValidationFailed):
        DocumentService.upload_document(session, storage, owner, pdf_bytes, "contrato.pdf",
                                        "application/pdf", "Contrato", max_file_size=10)


def test_title_is_required(session, storage, owner, pdf_bytes):
    with pytest.raises(ValidationFailed):
        DocumentService.upload_document(session, storage, owner, pdf_bytes, "contrato.pdf",
                                        "application/pdf", "   ")


def test_images_are_accepted(session, storage, owner):
    doc = DocumentService.upload_document(session, storage, owner, b"\x89PNG\r\n\x1a\nfake", "scan.png",
                                          "image/png", "Escaneo")
    assert doc.current_version.file_type == "image/png"


def test_sanitize_filename():
    assert sanitize_filename("mi contrato (final).pdf") == "mi_contrato__final_.pdf"
    assert sanitize_filename("../../etc/passwd") == "passwd"


def test_upload_is_atomic_when_database_fails(session, storage, owner, pdf_bytes, monkeypatch):
    def broken_commit():
        raise OperationalError("INSERT", {}, Exception("disk I/O error"))

    monkeypatch.setattr(session, "commit", broken_commit)
    with pytest.raises(BookkeepingError):
        DocumentService.upload_document(session, storage, owner, pdf_bytes, "contrato.pdf",
                                        "application/pdf", "Contrato")
    monkeypatch.undo()

    assert session.query(Document).count() == 0
    assert session.query(DocumentVersion).count() == 0
    assert stored_files(storage) == []


def test_upload_leaves_no_row_when_storage_fails(session, storage, owner, pdf_bytes, monkeypatch):
    def broken_upload(path, data):
        raise StorageError("File upload failed. Please try again.")

    monkeypatch.setattr(storage, "upload", broken_upload)
    with pytest.raises(StorageError):
        DocumentService.upload_document(session, storage, owner, pdf_bytes, "contrato.pdf",
                                        "application/pdf", "Contrato")
    assert session.query(Document).count() == 0


def test_foreign_document_is_not_found_with_redirect(session, storage, owner):
    doc = upload_pdf(session, storage, owner)
    stranger = make_user(session, "stranger@example.com")

    with pytest.raises(NotFound) as exc:
        DocumentService.get_document_details(session, stranger, doc.id)
    assert exc.value.to_dict()["redirect_to"] == "/user/documents"


def test_new_version_voids_unsigned_requests(session, storage, owner, signature_service):
    doc = upload_pdf(session, storage, owner)
    first_version_id = doc.current_document_version_id
    signer_a = make_user(session, "a@example.com")
    result = signature_service.send_for_signature(session, owner, doc.id, "a@example.com, b@example.com")
    signed_id, pending_id = result["request_ids"]
    signature_service.sign(session, signer_a, signed_id, "203.0.113.7", "pytest")

    version = DocumentService.upload_new_version(
        session, storage, owner, doc.id, make_pdf_bytes("v2"), "contrato.pdf", "application/pdf",
        "Cláusula 4 corregida",
    )

    session.refresh(doc)
    assert version.version_number == 2
    assert doc.latest_version_number == 2
    assert doc.current_document_version_id == version.id
    assert version.file_path == f"{owner.id}/{doc.id}/version_2_contrato.pdf"
    # Sin solicitudes activas en la versión nueva, el documento vuelve a borrador
    assert doc.status == DocumentStatus.DRAFT

    by_id = {r.id: r for r in doc.signature_requests}
    assert by_id[signed_id].status == SignatureRequestStatus.SIGNED
    assert by_id[pending_id].status == SignatureRequestStatus.VOID
    assert by_id[pending_id].voided_at is not None
    assert by_id[pending_id].document_version_id == first_version_id

    entry = session.query(AuditLog).filter_by(event_type="DOCUMENT_VERSION_UPLOADED").one()
    assert entry.details["voided_requests"] == [pending_id]
    assert entry.details["previous_version_id"] == first_version_id


def test_third_version_leaves_older_version_requests_untouched(session, storage, owner, signature_service):
    doc = upload_pdf(session, storage, owner)
    signer_a = make_user(session, "a@example.com")
    v1_ids = signature_service.send_for_signature(session, owner, doc.id, "a@example.com, b@example.com")["request_ids"]
    signature_service.sign(session, signer_a, v1_ids[0], "203.0.113.7", "pytest")

    DocumentService.upload_new_version(session, storage, owner, doc.id, make_pdf_bytes("v2"),
                                       "contrato.pdf", "application/pdf")
    v2_ids = signature_service.send_for_signature(session, owner, doc.id, "b@example.com")["request_ids"]

    session.refresh(doc)
    v1_before = {r.id: (r.status, r.signed_at, r.voided_at) for r in doc.signature_requests if r.id in v1_ids}

    DocumentService.upload_new_version(session, storage, owner, doc.id, make_pdf_bytes("v3"),
                                       "contrato.pdf", "application/pdf")

    session.refresh(doc)
    by_id = {r.id: r for r in doc.signature_requests}
    assert {i: (by_id[i].status, by_id[i].signed_at, by_id[i].voided_at) for i in v1_ids} == v1_before
    assert by_id[v2_ids[0]].status == SignatureRequestStatus.VOID

    entry = session.query(AuditLog).filter_by(event_type="DOCUMENT_VERSION_UPLOADED").order_by(AuditLog.id.desc()).first()
    assert entry.details["voided_requests"] == v2_ids


def test_new_version_can_be_sent_to_same_signer_again(session, storage, owner, signature_service):
    doc = upload_pdf(session, storage, owner)
    signature_service.send_for_signature(session, owner, doc.id, "a@example.com")
    DocumentService.upload_new_version(session, storage, owner, doc.id, make_pdf_bytes("v2"),
                                       "contrato.pdf", "application/pdf")

    result = signature_service.send_for_signature(session, owner, doc.id, "a@example.com")
    assert result["sent"] == ["a@example.com"]
    assert result["already_sent"] == []


def test_new_version_rejected_on_locked_document(session, storage, owner):
    doc = upload_pdf(session, storage, owner)
    DocumentService.cancel_document(session, owner, doc.id, confirm=True)

    with pytest.raises(InvalidTransition):
        DocumentService.upload_new_version(session, storage, owner, doc.id, make_pdf_bytes("v2"),
                                           "contrato.pdf", "application/pdf")


def test_new_version_rolls_back_and_removes_file(session, storage, owner, signature_service, monkeypatch):
    doc = upload_pdf(session, storage, owner)
    signature_service.send_for_signature(session, owner, doc.id, "a@example.com")
    files_before = stored_files(storage)

    def broken_commit():
        raise OperationalError("UPDATE", {}, Exception("connection lost"))

    monkeypatch.setattr(session, "commit", broken_commit)
    with pytest.raises(BookkeepingError):
        DocumentService.upload_new_version(session, storage, owner, doc.id, make_pdf_bytes("v2"),
                                           "contrato.pdf", "application/pdf")
    monkeypatch.undo()

    session.refresh(doc)
    assert doc.latest_version_number == 1
    assert doc.status == DocumentStatus.PENDING_SIGNATURE
    assert [r.status for r in doc.signature_requests] == [SignatureRequestStatus.PENDING]
    assert stored_files(storage) == files_before


def test_update_details_records_changes(session, storage, owner):
    doc = upload_pdf(session, storage, owner)
    DocumentService.update_details(session, owner, doc.id, {"title": "Contrato v2", "description": "Anexo"})

    entry = session.query(AuditLog).filter_by(event_type="DOCUMENT_UPDATED").one()
    assert entry.details["changes"]["title"] == {"old": "Contrato", "new": "Contrato v2"}
    assert entry.details["changes"]["description"] == {"old": None, "new": "Anexo"}


def test_cancel_document_requires_confirmation(session, storage, owner):
    doc = upload_pdf(session, storage, owner)
    with pytest.raises(ValidationFailed):
        DocumentService.cancel_document(session, owner, doc.id)
    session.refresh(doc)
    assert doc.status == DocumentStatus.DRAFT


def test_cancel_document_cascades_to_unsigned_requests(session, storage, owner, signature_service):
    doc = upload_pdf(session, storage, owner)
    signer_a = make_user(session, "a@example.com")
    result = signature_service.send_for_signature(session, owner, doc.id, ["a@example.com", "b@example.com"])
    signed_id, pending_id = result["request_ids"]
    signature_service.sign(session, signer_a, signed_id, "203.0.113.7", "pytest")

    DocumentService.cancel_document(session, owner, doc.id, confirm=True)

    session.refresh(doc)
    assert doc.status == DocumentStatus.CANCELLED
    by_id = {r.id: r for r in doc.signature_requests}
    assert by_id[signed_id].status == SignatureRequestStatus.SIGNED
    assert by_id[pending_id].status == SignatureRequestStatus.CANCELLED
    assert by_id[pending_id].cancelled_by_user_id == owner.id

    entry = session.query(AuditLog).filter_by(event_type="DOCUMENT_CANCELLED").one()
    assert entry.details == {"cancellation_reason": "Cancelled by sender", "old_status": "pending_signature",
                             "cancelled_requests": [pending_id]}


def test_cancelled_or_signed_document_cannot_be_cancelled_again(session, storage, owner, signature_service):
    doc = upload_pdf(session, storage, owner)
    DocumentService.cancel_document(session, owner, doc.id, confirm=True)
    with pytest.raises(InvalidTransition):
        DocumentService.cancel_document(session, owner, doc.id, confirm=True)
    assert session.query(AuditLog).filter_by(event_type="DOCUMENT_CANCELLED").count() == 1

    signed_doc = upload_pdf(session, storage, owner, filename="firmado.pdf", title="Firmado")
    signer = make_user(session, "a@example.com")
    request_id = signature_service.send_for_signature(session, owner, signed_doc.id, "a@example.com")["request_ids"][0]
    signature_service.sign(session, signer, request_id, "203.0.113.7", "pytest")
    with pytest.raises(InvalidTransition):
        DocumentService.cancel_document(session, owner, signed_doc.id, confirm=True)
    session.refresh(signed_doc)
    assert signed_doc.status == DocumentStatus.SIGNED


def test_version_url_for_owner_and_signer_only(session, storage, owner, signature_service):
    doc = upload_pdf(session, storage, owner)
    signature_service.send_for_signature(session, owner, doc.id, "a@example.com")
    signer = make_user(session, "a@example.com")
    stranger = make_user(session, "stranger@example.com")
    version_id = doc.current_document_version_id

    result = DocumentService.get_version_url(session, storage, owner, doc.id, version_id)
    token = result["url"].split("token=", 1)[1]
    assert storage.resolve_signed_token(token) == doc.current_version.file_path

    assert DocumentService.get_version_url(session, storage, signer, doc.id, version_id)["file_name"] == "contrato.pdf"

    with pytest.raises(PermissionDenied):
        DocumentService.get_version_url(session, storage, stranger, doc.id, version_id)


def test_documents_listed_for_owner_only(session, storage, owner):
    upload_pdf(session, storage, owner, title="Uno")
    upload_pdf(session, storage, owner, filename="otro.pdf", title="Dos")
    other = make_user(session, "other@example.com")
    upload_pdf(session, storage, other, title="Ajeno")

    titles = {d.title for d in DocumentService.get_documents_by_user(session, owner.id)}
    assert titles == {"Uno", "Dos"}
