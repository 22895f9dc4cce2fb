import logging
import os
import re
from datetime import datetime, timedelta
from typing import Optional

from jose import JWTError, jwt

from config import settings
from errors import NotFound, StorageError

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9.\-_]")


def sanitize_filename(filename: str) -> str:
    """Reemplaza todo carácter fuera de [a-zA-Z0-9.-_] por '_'"""
    name = os.path.basename(filename or "") or "file"
    return _UNSAFE_CHARS.sub("_", name)


class LocalStorage:
    """
    Almacenamiento de objetos sobre el sistema de archivos. Las rutas son
    relativas a `root` con el formato {user_id}/{document_id}/version_{n}_{archivo}.
    """

    def __init__(self, root: str):
        self.root = os.path.abspath(root)

    @staticmethod
    def build_path(user_id: int, document_id: int, version_number: int, filename: str) -> str:
        return f"{user_id}/{document_id}/version_{version_number}_{sanitize_filename(filename)}"

    def _full_path(self, path: str) -> str:
        full = os.path.abspath(os.path.join(self.root, path))
        if os.path.commonpath([self.root, full]) != self.root:
            raise StorageError("Invalid storage path.")
        return full

    def exists(self, path: str) -> bool:
        return os.path.isfile(self._full_path(path))

    def upload(self, path: str, data: bytes) -> str:
        """Guarda el objeto; nunca sobrescribe uno existente."""
        full = self._full_path(path)
        try:
            os.makedirs(os.path.dirname(full), exist_ok=True)
            with open(full, "xb") as f:
                f.write(data)
        except FileExistsError:
            raise StorageError(f"A file already exists at {path}.")
        except OSError as exc:
            logger.error("Storage upload to %s failed: %s", path, exc)
            # Objeto parcial
            self.remove(path)
            raise StorageError("File upload failed. Please try again.")
        return path

    def download(self, path: str) -> bytes:
        full = self._full_path(path)
        if not os.path.isfile(full):
            raise NotFound("File not found.")
        try:
            with open(full, "rb") as f:
                return f.read()
        except OSError as exc:
            logger.error("Storage download of %s failed: %s", path, exc)
            raise StorageError("File could not be read.")

    def remove(self, path: str) -> bool:
        """Borra el objeto si existe. Se usa también como compensación, por eso no lanza."""
        try:
            full = self._full_path(path)
            if os.path.isfile(full):
                os.remove(full)
                return True
        except (OSError, StorageError) as exc:
            logger.warning("Could not remove stored object %s: %s", path, exc)
        return False

    def create_signed_url(self, path: str, expires_in: Optional[int] = None) -> str:
        expires_in = expires_in or settings.SIGNED_URL_EXPIRE_SECONDS
        token = jwt.encode(
            {"path": path, "purpose": "file", "exp": datetime.utcnow() + timedelta(seconds=expires_in)},
            settings.SECRET_KEY,
            algorithm=settings.ALGORITHM,
        )
        return f"/files?token={token}"

    def resolve_signed_token(self, token: str) -> str:
        try:
            payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
        except JWTError:
            raise NotFound("This link is invalid or has expired.")
        if payload.get("purpose") != "file" or not payload.get("path"):
            raise NotFound("This link is invalid or has expired.")
        return payload["path"]


def get_storage() -> LocalStorage:
    return LocalStorage(settings.STORAGE_ROOT)
