from functools import lru_cache
from typing import List, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Configuración de la aplicación leída desde variables de entorno."""

    # Base de datos
    DATABASE_URL: str = "postgresql://postgres:root@db:5432/signseal"

    # Autenticación
    SECRET_KEY: str = "your-secret-key-here"  # En producción usar variable de entorno
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30
    MFA_TOKEN_EXPIRE_MINUTES: int = 5
    VERIFICATION_TOKEN_EXPIRE_HOURS: int = 24

    # Control de intentos de login
    THROTTLE_LIMIT: int = 5
    THROTTLE_COOLDOWN_SECONDS: int = 60
    BLOCK_THRESHOLD_DB: int = 10
    RESEND_VERIFICATION_COOLDOWN_SECONDS: int = 60

    # Frontend / CORS
    FRONTEND_URL: str = "http://localhost:5173"
    CORS_ORIGINS: List[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
        "http://localhost:5173",
        "http://127.0.0.1:5173",
    ]

    # Almacenamiento
    STORAGE_ROOT: str = "uploads"
    SIGNED_URL_EXPIRE_SECONDS: int = 3600
    MAX_FILE_SIZE: int = 10 * 1024 * 1024  # 10 MB

    # Solicitudes de firma
    SIGNATURE_REQUEST_TTL_DAYS: int = 30
    EXPIRY_JOB_ENABLED: bool = True

    # Correo transaccional (API con plantillas)
    EMAIL_API_URL: str = "https://api.brevo.com/v3/smtp/email"
    EMAIL_API_KEY: Optional[str] = None
    EMAIL_FROM_ADDRESS: str = "no-reply@signseal.app"
    EMAIL_FROM_NAME: str = "Digital Signature Portal"
    EMAIL_TEMPLATE_WARNING: int = 1
    EMAIL_TEMPLATE_BLOCKED: int = 2
    EMAIL_TEMPLATE_SIGNATURE: int = 3
    EMAIL_TEMPLATE_VERIFICATION: int = 4

    # Geolocalización por IP
    GEO_PRIMARY_URL: str = "https://ipapi.co/{ip}/json/"
    GEO_FALLBACK_URL: str = "https://ipwho.is/{ip}"
    GEO_TIMEOUT_SECONDS: float = 3.0

    # Administrador inicial
    ADMIN_EMAIL: Optional[str] = None
    ADMIN_PASSWORD: Optional[str] = None

    DEBUG: bool = False

    @field_validator("DATABASE_URL", mode="before")
    @classmethod
    def normalize_database_url(cls, v: str) -> str:
        """Algunos proveedores entregan postgres:// que SQLAlchemy ya no acepta."""
        if v and v.startswith("postgres://"):
            return v.replace("postgres://", "postgresql://", 1)
        return v

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True)


@lru_cache()
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
