import logging
import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager

from config import settings
from create_tables import crear_tablas
from database import SessionLocal
from errors import ServiceError

from modules.documents.job import start_expiry_job
from modules.documents.models import User, UserRole
from modules.auth.services.auth_service import AuthService
from modules.auth.controllers.auth_controller import router as auth_router
from modules.documents.controllers.document_controller import router as document_router, files_router
from modules.documents.controllers.signature_controller import router as signature_router, requests_router
from modules.documents.controllers.incident_controller import router as incident_router
from modules.audit.controllers.audit_controller import router as audit_router
from modules.admin.controllers.admin_controller import router as admin_router

logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    # --- Startup logic ---
    logger.info("Iniciando aplicación...")
    crear_tablas()
    scheduler = None
    if settings.EXPIRY_JOB_ENABLED:
        scheduler = start_expiry_job()
        logger.info("Job de expiración de solicitudes iniciado")
    _crear_admin_inicial()
    yield
    # --- Shutdown logic ---
    if scheduler is not None:
        scheduler.shutdown(wait=False)
    logger.info("Aplicación detenida")

def _crear_admin_inicial():
    """Crea el administrador inicial si está configurado y no existe."""
    if not settings.ADMIN_EMAIL or not settings.ADMIN_PASSWORD:
        return

    with SessionLocal() as session:
        if AuthService.get_user_by_email(session, settings.ADMIN_EMAIL):
            return

        admin = User(
            email=settings.ADMIN_EMAIL.strip().lower(),
            full_name="Administrator",
            password_hash=AuthService.get_password_hash(settings.ADMIN_PASSWORD),
            role=UserRole.ADMIN,
            is_verified=True,
        )
        session.add(admin)
        session.commit()
        logger.info("Administrador inicial creado: %s", admin.email)

app = FastAPI(
    title="Digital Signature Portal",
    description="API para documentos, solicitudes de firma y auditoría",
    version="1.0.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"],
    allow_headers=[
        "Accept",
        "Accept-Language",
        "Content-Language",
        "Content-Type",
        "Authorization",
        "X-Requested-With",
        "Origin",
        "Access-Control-Request-Method",
        "Access-Control-Request-Headers"
    ],
    expose_headers=["Retry-After"],
    max_age=86400,
)

@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=exc.headers)

# Routers
app.include_router(auth_router)
app.include_router(document_router, prefix="/documents")
app.include_router(signature_router, prefix="/documents")
app.include_router(incident_router, prefix="/documents")
app.include_router(requests_router)
app.include_router(files_router)
app.include_router(audit_router)
app.include_router(admin_router)

@app.get("/health", tags=["health"])
def health():
    return {"status": "ok"}

if __name__ == "__main__":
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)
