from sqlalchemy import Column, Integer, String, Enum, DateTime, Boolean
from sqlalchemy.orm import relationship
from enum import Enum as PyEnum
from datetime import datetime
from database import Base

class UserRole(PyEnum):
    USER = "user"
    ADMIN = "admin"

class User(Base):
    __tablename__ = 'users'

    id = Column(Integer, primary_key=True)
    email = Column(String(320), unique=True, nullable=False, index=True)
    password_hash = Column(String, nullable=False)
    full_name = Column(String(150), nullable=True)
    title = Column(String(150), nullable=True)
    department = Column(String(150), nullable=True)
    role = Column(Enum(UserRole), nullable=False, default=UserRole.USER)

    is_verified = Column(Boolean, nullable=False, default=False)
    is_totp_enabled = Column(Boolean, nullable=False, default=False)
    totp_secret = Column(String(64), nullable=True)

    # Contador persistente de intentos fallidos (el bloqueo sobrevive al navegador)
    failed_login_attempts = Column(Integer, nullable=False, default=0)
    blocked = Column(Boolean, nullable=False, default=False)
    last_failed_login_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationship with documents
    documents = relationship("Document", back_populates="owner")

    @property
    def landing_path(self) -> str:
        return "/admin/dashboard" if self.role == UserRole.ADMIN else "/user/dashboard"
