import math
from datetime import date, datetime, time
from typing import Any, Dict, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from errors import NotFound, ValidationFailed
from modules.audit.services.audit_service import AuditService
from modules.documents.models.document import Document
from modules.documents.models.user import User, UserRole

USERS_LISTING_PATH = "/admin/users"


class UserAdminService:

    @staticmethod
    def dashboard(session: Session) -> Dict[str, int]:
        return {
            "users": session.query(User).count(),
            "documents": session.query(Document).count(),
        }

    @staticmethod
    def list_users(
        session: Session,
        role: Optional[str] = None,
        is_verified: Optional[bool] = None,
        search: Optional[str] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        page: int = 1,
        per_page: int = 10,
    ) -> Dict[str, Any]:
        """Listar usuarios con filtros y paginación"""
        query = session.query(User)

        if role and role != "all":
            try:
                query = query.filter(User.role == UserRole(role))
            except ValueError:
                raise ValidationFailed(f"Unknown role: {role}")
        if is_verified is not None:
            query = query.filter(User.is_verified == is_verified)
        if search:
            pattern = f"%{search.strip()}%"
            query = query.filter(or_(User.full_name.ilike(pattern), User.email.ilike(pattern)))
        if start_date:
            query = query.filter(User.created_at >= datetime.combine(start_date, time.min))
        if end_date:
            query = query.filter(User.created_at <= datetime.combine(end_date, time.max))

        total = query.count()
        users = (
            query.order_by(User.created_at.desc(), User.id.desc())
            .offset((page - 1) * per_page)
            .limit(per_page)
            .all()
        )
        return {"users": users, "total": total, "page": page, "per_page": per_page,
                "pages": math.ceil(total / per_page) if total else 0}

    @staticmethod
    def block_user(session: Session, admin: User, user_id: int) -> User:
        user = UserAdminService._get(session, user_id)
        if user.id == admin.id:
            raise ValidationFailed("You cannot block your own account.")
        if not user.blocked:
            user.blocked = True
            session.commit()
            session.refresh(user)
            AuditService.record(session, "USER_BLOCKED", actor=admin,
                                details={"status": "blocked", "target_user_id": user.id,
                                         "target_email": user.email})
        return user

    @staticmethod
    def unblock_user(session: Session, admin: User, user_id: int) -> User:
        """Desbloquea la cuenta y reinicia el contador persistente de fallos"""
        user = UserAdminService._get(session, user_id)
        if user.blocked or user.failed_login_attempts:
            user.blocked = False
            user.failed_login_attempts = 0
            session.commit()
            session.refresh(user)
            AuditService.record(session, "USER_UNBLOCKED", actor=admin,
                                details={"status": "unblocked", "target_user_id": user.id,
                                         "target_email": user.email})
        return user

    @staticmethod
    def _get(session: Session, user_id: int) -> User:
        user = session.get(User, user_id)
        if user is None:
            raise NotFound("User not found.", redirect_to=USERS_LISTING_PATH)
        return user
