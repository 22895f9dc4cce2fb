from sqlalchemy import Column, Integer, String, Text, DateTime, Enum, ForeignKey, Boolean, UniqueConstraint
from sqlalchemy.orm import relationship
from datetime import datetime
from enum import Enum as PyEnum
from database import Base

class DocumentStatus(PyEnum):
    DRAFT = "draft"
    PENDING_SIGNATURE = "pending_signature"
    SIGNED = "signed"
    CANCELLED = "cancelled"

class Document(Base):
    __tablename__ = 'documents'

    id = Column(Integer, primary_key=True)
    owner_id = Column(Integer, ForeignKey('users.id'), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    status = Column(Enum(DocumentStatus), nullable=False, default=DocumentStatus.DRAFT)
    latest_version_number = Column(Integer, nullable=False, default=0)
    current_document_version_id = Column(
        Integer,
        ForeignKey('document_versions.id', use_alter=True, name='fk_documents_current_version'),
        nullable=True,
    )
    # SHA-256 (hex) del primer archivo subido
    original_hash = Column(String(64), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    owner = relationship("User", back_populates="documents")

    versions = relationship(
        "DocumentVersion",
        back_populates="document",
        foreign_keys="DocumentVersion.document_id",
        order_by="DocumentVersion.version_number",
        cascade="all, delete-orphan",
    )
    current_version = relationship(
        "DocumentVersion",
        foreign_keys=[current_document_version_id],
        post_update=True,
    )

    # Relación con solicitudes de firma
    signature_requests = relationship(
        "SignatureRequest",
        back_populates="document",
        order_by="SignatureRequest.requested_at",
        cascade="all, delete-orphan",
    )

class DocumentVersion(Base):
    __tablename__ = 'document_versions'
    __table_args__ = (
        UniqueConstraint('document_id', 'version_number', name='uq_document_version_number'),
    )

    id = Column(Integer, primary_key=True)
    document_id = Column(Integer, ForeignKey('documents.id', ondelete='CASCADE'), nullable=False, index=True)
    version_number = Column(Integer, nullable=False)
    file_path = Column(String(1024), nullable=False)
    file_name = Column(String(255), nullable=False)
    file_type = Column(String(100), nullable=False, default="application/octet-stream")
    file_size = Column(Integer, nullable=False)
    created_by_user_id = Column(Integer, ForeignKey('users.id'), nullable=False)
    description_of_changes = Column(Text, nullable=True)
    is_signed_version = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    document = relationship("Document", back_populates="versions", foreign_keys=[document_id])
    created_by = relationship("User")
