from sqlalchemy import Column, Integer, String, Text, DateTime, Enum, ForeignKey
from sqlalchemy.orm import relationship
from datetime import datetime
from enum import Enum as PyEnum
from database import Base

class IncidentStatus(PyEnum):
    PENDING = "pending"
    RESOLVED = "resolved"

class IncidentReport(Base):
    __tablename__ = 'incident_reports'

    id = Column(Integer, primary_key=True)
    timestamp = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
    reported_by_user_id = Column(Integer, ForeignKey('users.id'), nullable=True)
    reported_by_email = Column(String(320), nullable=True)
    document_id = Column(Integer, ForeignKey('documents.id', ondelete='SET NULL'), nullable=True)
    reason = Column(String(255), nullable=False, default="User Reported Issue")
    details = Column(Text, nullable=True)
    status = Column(Enum(IncidentStatus), nullable=False, default=IncidentStatus.PENDING)
    resolved_by_user_id = Column(Integer, ForeignKey('users.id'), nullable=True)
    resolved_at = Column(DateTime, nullable=True)

    reporter = relationship("User", foreign_keys=[reported_by_user_id])
    resolver = relationship("User", foreign_keys=[resolved_by_user_id])
    document = relationship("Document")

    @property
    def reporter_name(self):
        return self.reporter.full_name if self.reporter else None

    @property
    def resolver_name(self):
        return self.resolver.full_name if self.resolver else None

    @property
    def document_title(self):
        return self.document.title if self.document else None
