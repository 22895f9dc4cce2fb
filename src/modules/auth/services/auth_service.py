from datetime import datetime, timedelta
from typing import Optional
from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy import func
from sqlalchemy.orm import Session
from config import settings
from modules.documents.models.user import User

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

# Propósitos de token; un token de un propósito no sirve para otro
PURPOSE_ACCESS = "access"
PURPOSE_MFA = "mfa"
PURPOSE_VERIFY_EMAIL = "verify_email"

class AuthService:

    @staticmethod
    def verify_password(plain_password: str, hashed_password: str) -> bool:
        """Verifica si la contraseña coincide con el hash"""
        return pwd_context.verify(plain_password, hashed_password)

    @staticmethod
    def get_password_hash(password: str) -> str:
        """Genera hash de la contraseña"""
        return pwd_context.hash(password)

    @staticmethod
    def get_user_by_email(db: Session, email: str) -> Optional[User]:
        return db.query(User).filter(func.lower(User.email) == (email or "").strip().lower()).first()

    @staticmethod
    def authenticate_user(db: Session, email: str, password: str) -> Optional[User]:
        """Autentica usuario por email y contraseña"""
        user = AuthService.get_user_by_email(db, email)
        if not user:
            return None
        if not AuthService.verify_password(password, user.password_hash):
            return None
        return user

    @staticmethod
    def create_access_token(data: dict, expires_delta: Optional[timedelta] = None,
                            purpose: str = PURPOSE_ACCESS):
        """Crea token JWT"""
        to_encode = data.copy()
        if expires_delta:
            expire = datetime.utcnow() + expires_delta
        else:
            expire = datetime.utcnow() + timedelta(minutes=15)
        to_encode.update({"exp": expire, "purpose": purpose})
        encoded_jwt = jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)
        return encoded_jwt

    @staticmethod
    def create_session_token(user: User) -> str:
        return AuthService.create_access_token(
            {"sub": user.email, "role": user.role.value},
            timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES),
        )

    @staticmethod
    def create_mfa_token(user: User) -> str:
        return AuthService.create_access_token(
            {"sub": user.email},
            timedelta(minutes=settings.MFA_TOKEN_EXPIRE_MINUTES),
            purpose=PURPOSE_MFA,
        )

    @staticmethod
    def create_verification_token(user: User) -> str:
        return AuthService.create_access_token(
            {"sub": user.email},
            timedelta(hours=settings.VERIFICATION_TOKEN_EXPIRE_HOURS),
            purpose=PURPOSE_VERIFY_EMAIL,
        )

    @staticmethod
    def verify_token(token: str, purpose: str = PURPOSE_ACCESS) -> Optional[str]:
        """Verifica token JWT y retorna el email del usuario"""
        try:
            payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
            email: str = payload.get("sub")
            if email is None or payload.get("purpose") != purpose:
                return None
            return email
        except JWTError:
            return None

    @staticmethod
    def get_current_user(db: Session, token: str) -> Optional[User]:
        """Obtiene usuario actual desde token"""
        email = AuthService.verify_token(token)
        if email is None:
            return None
        return AuthService.get_user_by_email(db, email)
