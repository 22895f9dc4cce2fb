import logging
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from config import settings
from errors import AccountBlocked, AuthenticationFailed, BookkeepingError, EmailNotConfirmed, LoginThrottled
from modules.audit.services.audit_service import AuditService
from modules.auth.services.auth_service import AuthService
from modules.auth.services.throttle import Blocked, InMemoryThrottleStore, LoginThrottleGuard, Throttled
from modules.documents.models.user import User
from modules.notifications.services.notification_service import NotificationService

logger = logging.getLogger(__name__)


class LoginService:
    """
    Login con dos contadores independientes: el del guard (local al proceso,
    se limpia solo tras el enfriamiento) y el persistido en la fila User,
    que escala a bloqueo de la cuenta.
    """

    def __init__(self, guard: LoginThrottleGuard, notifications: NotificationService,
                 block_threshold: int = 10):
        self.guard = guard
        self.notifications = notifications
        self.block_threshold = block_threshold

    def login(self, db: Session, email: str, password: str, ip_address: Optional[str] = None) -> Dict[str, Any]:
        email = (email or "").strip().lower()
        if not email or not password:
            raise AuthenticationFailed("Please enter both email and password.")

        # El guard decide antes de tocar la base de datos
        decision = self.guard.check(email)
        if isinstance(decision, Throttled):
            raise LoginThrottled(decision.remaining_seconds)

        try:
            user = AuthService.get_user_by_email(db, email)
        except SQLAlchemyError as exc:
            db.rollback()
            logger.error("User lookup failed for %s: %s", email, exc)
            raise BookkeepingError()

        if isinstance(self.guard.check(email, blocked=bool(user is not None and user.blocked)), Blocked):
            raise AccountBlocked()

        password_ok = user is not None and AuthService.verify_password(password, user.password_hash)
        if not password_ok or not user.is_verified:
            self._handle_failure(db, email, user, ip_address)
            if password_ok:
                raise EmailNotConfirmed()
            raise AuthenticationFailed()

        return self._handle_success(db, user, ip_address)

    def login_status(self, db: Session, email: str) -> Dict[str, Any]:
        user = AuthService.get_user_by_email(db, email)
        return {
            "email": (email or "").strip().lower(),
            "blocked": bool(user is not None and user.blocked),
            "remaining_seconds": self.guard.remaining_seconds(email),
        }

    def _handle_failure(self, db: Session, email: str, user: Optional[User], ip_address: Optional[str]) -> None:
        self.guard.record_failure(email)

        if user is None:
            AuditService.record(db, "LOGIN_FAILED", user_email=email, ip_address=ip_address,
                                details={"status": "failed", "ip_address": ip_address, "failed_attempts": None})
            return

        try:
            user.failed_login_attempts = (user.failed_login_attempts or 0) + 1
            user.last_failed_login_at = datetime.utcnow()
            attempts = user.failed_login_attempts
            newly_blocked = attempts >= self.block_threshold and not user.blocked
            if newly_blocked:
                user.blocked = True
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            logger.error("Failed-login bookkeeping for %s could not be saved: %s", email, exc)
            raise BookkeepingError()

        if attempts == self.guard.limit and not self.guard.was_warned(email):
            self.notifications.send_warning(user.email, attempts)
            self.guard.mark_warned(email)

        if newly_blocked:
            logger.warning("Account %s blocked after %s failed attempts", email, attempts)
            self.notifications.send_blocked(user.email)
            self.guard.mark_block_notified(email)

        AuditService.record(
            db, "LOGIN_FAILED", actor=user, ip_address=ip_address,
            details={"status": "blocked" if newly_blocked else "failed",
                     "ip_address": ip_address, "failed_attempts": attempts},
        )

    def _handle_success(self, db: Session, user: User, ip_address: Optional[str]) -> Dict[str, Any]:
        self.guard.record_success(user.email)

        try:
            user.failed_login_attempts = 0
            user.blocked = False
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            logger.error("Login bookkeeping for %s could not be saved: %s", user.email, exc)
            raise BookkeepingError()

        AuditService.record(db, "LOGIN_SUCCESS", actor=user, ip_address=ip_address,
                            details={"status": "success", "ip_address": ip_address})

        result = {
            "user_id": user.id,
            "user_name": user.full_name,
            "user_role": user.role.value,
            "landing_path": user.landing_path,
        }
        if user.is_totp_enabled:
            result.update(mfa_required=True, mfa_token=AuthService.create_mfa_token(user))
        else:
            result.update(access_token=AuthService.create_session_token(user), token_type="bearer")
        return result


login_guard = LoginThrottleGuard(
    InMemoryThrottleStore(),
    limit=settings.THROTTLE_LIMIT,
    cooldown_seconds=settings.THROTTLE_COOLDOWN_SECONDS,
)


def get_login_service() -> LoginService:
    return LoginService(login_guard, NotificationService(), block_threshold=settings.BLOCK_THRESHOLD_DB)
