import logging
from typing import Any, Dict, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from config import settings
from errors import Conflict, ValidationFailed
from modules.audit.services.audit_service import AuditService
from modules.auth.services.auth_service import AuthService, PURPOSE_VERIFY_EMAIL
from modules.auth.services.throttle import CooldownTracker
from modules.documents.models.user import User, UserRole
from modules.notifications.services.notification_service import NotificationService

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6

resend_cooldown = CooldownTracker(settings.RESEND_VERIFICATION_COOLDOWN_SECONDS)


def _validate_new_password(password: str, confirm_password: str) -> None:
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationFailed(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long.")
    if password != confirm_password:
        raise ValidationFailed("Passwords do not match.")


class AccountService:

    @staticmethod
    def signup(db: Session, notifications: NotificationService, email: str, password: str,
               confirm_password: str, full_name: Optional[str] = None) -> User:
        """Crea un usuario sin verificar y le envía el enlace de verificación."""
        email = (email or "").strip().lower()
        _validate_new_password(password, confirm_password)

        if AuthService.get_user_by_email(db, email):
            raise Conflict("An account with this email already exists.")

        user = User(
            email=email,
            password_hash=AuthService.get_password_hash(password),
            full_name=(full_name or "").strip() or None,
            role=UserRole.USER,
            is_verified=False,
        )
        db.add(user)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            raise Conflict("An account with this email already exists.")
        db.refresh(user)

        AccountService._send_verification(notifications, user)
        resend_cooldown.touch(email)
        AuditService.record(db, "USER_SIGNED_UP", actor=user, details={"status": "unverified"})
        return user

    @staticmethod
    def verify_email(db: Session, token: str) -> User:
        email = AuthService.verify_token(token, purpose=PURPOSE_VERIFY_EMAIL)
        user = AuthService.get_user_by_email(db, email) if email else None
        if user is None:
            raise ValidationFailed("Verification link is invalid or has expired.")

        if not user.is_verified:
            user.is_verified = True
            db.commit()
            AuditService.record(db, "EMAIL_VERIFIED", actor=user, details={"status": "verified"})
        return user

    @staticmethod
    def resend_verification(db: Session, notifications: NotificationService, email: str) -> Dict[str, Any]:
        remaining = resend_cooldown.remaining_seconds(email)
        if remaining > 0:
            return {"sent": False, "remaining_seconds": remaining,
                    "message": f"Please wait {remaining} seconds before requesting another email."}

        user = AuthService.get_user_by_email(db, email)
        resend_cooldown.touch(email)
        # La respuesta no revela si la cuenta existe
        if user is not None and not user.is_verified:
            AccountService._send_verification(notifications, user)
        return {"sent": True, "remaining_seconds": settings.RESEND_VERIFICATION_COOLDOWN_SECONDS,
                "message": "If the account exists and is not verified, a new verification email has been sent."}

    @staticmethod
    def update_profile(db: Session, user: User, data: Dict[str, Any]) -> User:
        changes = {}
        for field in ("full_name", "title", "department"):
            if field not in data:
                continue
            value = data[field].strip() if isinstance(data[field], str) else data[field]
            old = getattr(user, field)
            if value != old:
                changes[field] = {"old": old, "new": value}
                setattr(user, field, value)

        if changes:
            db.commit()
            db.refresh(user)
            AuditService.record(db, "PROFILE_UPDATED", actor=user, details={"changes": changes})
        return user

    @staticmethod
    def change_password(db: Session, user: User, new_password: str, confirm_password: str) -> None:
        _validate_new_password(new_password, confirm_password)
        user.password_hash = AuthService.get_password_hash(new_password)
        db.commit()
        AuditService.record(db, "PASSWORD_CHANGED", actor=user, details={"status": "changed"})

    @staticmethod
    def _send_verification(notifications: NotificationService, user: User) -> bool:
        token = AuthService.create_verification_token(user)
        url = f"{settings.FRONTEND_URL}/verify-email?token={token}"
        return notifications.send_verification(user.email, url)
