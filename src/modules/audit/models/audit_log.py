from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, JSON

from database import Base

class AuditLog(Base):
    """Registro append-only de acciones. Los ids de correlación no llevan FK
    para que el historial sobreviva al borrado de los registros que describe."""
    __tablename__ = 'audit_logs'

    id = Column(Integer, primary_key=True)
    timestamp = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
    user_id = Column(Integer, nullable=True, index=True)
    user_email = Column(String(320), nullable=True)
    event_type = Column(String(100), nullable=False, index=True)
    details = Column(JSON, nullable=True)
    ip_address = Column(String(45), nullable=True)
    document_id = Column(Integer, nullable=True, index=True)
    document_version_id = Column(Integer, nullable=True)
    signature_request_id = Column(String(36), nullable=True, index=True)
