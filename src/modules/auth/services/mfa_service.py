import logging
from typing import Any, Dict

import pyotp
from sqlalchemy.orm import Session

from errors import AuthenticationFailed, Conflict, ValidationFailed
from modules.audit.services.audit_service import AuditService
from modules.auth.services.auth_service import AuthService, PURPOSE_MFA
from modules.documents.models.user import User

logger = logging.getLogger(__name__)

ISSUER_NAME = "Digital Signature Portal"


class MFAService:
    """TOTP (RFC 6238) con pyotp."""

    @staticmethod
    def enroll(db: Session, user: User) -> Dict[str, Any]:
        """Genera un secreto nuevo; el factor no queda activo hasta verificar un código."""
        if user.is_totp_enabled:
            raise Conflict("A verified TOTP factor is already enrolled for this account.")

        secret = pyotp.random_base32()
        user.totp_secret = secret
        db.commit()

        uri = pyotp.TOTP(secret).provisioning_uri(name=user.email, issuer_name=ISSUER_NAME)
        return {"secret": secret, "provisioning_uri": uri}

    @staticmethod
    def verify_enrollment(db: Session, user: User, code: str) -> User:
        if user.is_totp_enabled:
            raise Conflict("TOTP is already enabled for this account.")
        if not user.totp_secret:
            raise ValidationFailed("Start TOTP enrollment before verifying a code.")
        if not MFAService._check(user.totp_secret, code):
            raise ValidationFailed("Invalid verification code.")

        user.is_totp_enabled = True
        db.commit()
        AuditService.record(db, "TOTP_ENABLED", actor=user, details={"status": "enabled"})
        return user

    @staticmethod
    def challenge(db: Session, mfa_token: str, code: str) -> Dict[str, Any]:
        """Canjea un token MFA más un código válido por un token de sesión."""
        email = AuthService.verify_token(mfa_token, purpose=PURPOSE_MFA)
        if email is None:
            raise AuthenticationFailed("MFA session expired. Please log in again.")

        user = AuthService.get_user_by_email(db, email)
        if user is None or not user.is_totp_enabled or not user.totp_secret:
            raise AuthenticationFailed("MFA session expired. Please log in again.")
        if not MFAService._check(user.totp_secret, code):
            AuditService.record(db, "MFA_CHALLENGE_FAILED", actor=user, details={"status": "failed"})
            raise AuthenticationFailed("Invalid verification code.")

        AuditService.record(db, "MFA_CHALLENGE_PASSED", actor=user, details={"status": "success"})
        return {
            "access_token": AuthService.create_session_token(user),
            "token_type": "bearer",
            "user_id": user.id,
            "user_name": user.full_name,
            "user_role": user.role.value,
            "landing_path": user.landing_path,
        }

    @staticmethod
    def _check(secret: str, code: str) -> bool:
        code = (code or "").strip().replace(" ", "")
        if not code.isdigit():
            return False
        return pyotp.TOTP(secret).verify(code, valid_window=1)
