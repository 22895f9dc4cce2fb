# src/modules/documents/models/signature.py

import uuid
from enum import Enum as PyEnum

from sqlalchemy import Column, Integer, ForeignKey, DateTime, String, Enum, JSON, Index, text
from sqlalchemy.orm import relationship
from datetime import datetime
from database import Base

class SignatureRequestStatus(PyEnum):
    PENDING = "pending"
    SIGNED = "signed"
    DECLINED = "declined"
    CANCELLED = "cancelled"
    EXPIRED = "expired"
    VOID = "void"

# Estados que ya no cuentan como solicitud activa para un firmante/versión
INACTIVE_STATUSES = (SignatureRequestStatus.CANCELLED, SignatureRequestStatus.VOID)

# Los Enum de SQLAlchemy persisten el nombre del miembro
_ACTIVE_WHERE = text("status NOT IN ('CANCELLED', 'VOID')")

class SignatureRequest(Base):
    __tablename__ = "signature_requests"
    __table_args__ = (
        Index(
            "uq_signature_requests_active_signer",
            "document_id", "document_version_id", "signer_email",
            unique=True,
            postgresql_where=_ACTIVE_WHERE,
            sqlite_where=_ACTIVE_WHERE,
        ),
    )

    id                   = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    document_id          = Column(Integer, ForeignKey("documents.id", ondelete="CASCADE"), nullable=False, index=True)
    document_version_id  = Column(Integer, ForeignKey("document_versions.id"), nullable=False, index=True)
    signer_email         = Column(String(320), nullable=False, index=True)
    signer_id            = Column(Integer, ForeignKey("users.id"), nullable=True)
    status               = Column(Enum(SignatureRequestStatus), nullable=False, default=SignatureRequestStatus.PENDING)

    requested_at         = Column(DateTime, default=datetime.utcnow, nullable=False)
    signed_at            = Column(DateTime, nullable=True)
    declined_at          = Column(DateTime, nullable=True)
    cancelled_at         = Column(DateTime, nullable=True)
    cancelled_by_user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    expired_at           = Column(DateTime, nullable=True)
    voided_at            = Column(DateTime, nullable=True)

    signer_ip_address    = Column(String(45), nullable=True)
    signer_user_agent    = Column(String(512), nullable=True)
    signing_location     = Column(JSON, nullable=True)
    signing_url          = Column(String(512), nullable=True)
    signature_data_path  = Column(String(1024), nullable=True)

    document         = relationship("Document", back_populates="signature_requests")
    document_version = relationship("DocumentVersion")
    signer           = relationship("User", foreign_keys=[signer_id])

    @property
    def document_title(self):
        return self.document.title if self.document else None

    @property
    def document_owner_id(self):
        return self.document.owner_id if self.document else None

    @property
    def document_version_number(self):
        return self.document_version.version_number if self.document_version else 0

    @property
    def signer_name(self):
        return self.signer.full_name if self.signer else None
