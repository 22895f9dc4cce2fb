# create_tables.py
import logging

from database import engine, Base
# Importa todos los modelos para que se registren con Base
from modules.documents.models.user import User
from modules.documents.models.document import Document, DocumentVersion
from modules.documents.models.signature import SignatureRequest
from modules.documents.models.incident import IncidentReport
from modules.audit.models.audit_log import AuditLog

logger = logging.getLogger(__name__)

def crear_tablas(bind=None):
    """Crea todas las tablas en la base de datos"""
    logger.info("Tablas a crear: %s", list(Base.metadata.tables.keys()))
    Base.metadata.create_all(bind=bind or engine)

if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    crear_tablas()
