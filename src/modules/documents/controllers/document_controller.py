import mimetypes
import os
from typing import List, Optional

from fastapi import APIRouter, UploadFile, File, Form, Depends, Query, Response, status
from sqlalchemy.orm import Session
from database import get_db
from modules.auth.dependencies import require_permission, get_current_user
from modules.documents.models.user import User
from modules.documents.models.schemas import (
    ConfirmRequest, DocumentDetailsResponse, DocumentResponse, DocumentUpdate,
    DocumentVersionResponse, SignedUrlResponse,
)
from modules.documents.services.document_service import DocumentService
from modules.documents.services.storage import LocalStorage, get_storage

router = APIRouter(
    tags=["documents"]
)

files_router = APIRouter(tags=["files"])

@router.get("", response_model=List[DocumentResponse])
def list_documents(db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    """Documentos del usuario actual, los más recientes primero"""
    return DocumentService.get_documents_by_user(db, current_user.id)

@router.post("", response_model=DocumentResponse, status_code=status.HTTP_201_CREATED)
async def upload_document(
    title: str = Form(...),
    description: Optional[str] = Form(None),
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
    storage: LocalStorage = Depends(get_storage),
    current_user: User = Depends(require_permission("upload"))
):
    contents = await file.read()
    return DocumentService.upload_document(
        db, storage, current_user, contents, file.filename,
        file.content_type or "application/octet-stream", title, description
    )

@router.get("/{document_id}", response_model=DocumentDetailsResponse)
def get_document(
    document_id: int,
    version_id: Optional[int] = Query(None, description="Filtrar solicitudes por versión"),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return DocumentService.get_document_details(db, current_user, document_id, version_id)

@router.patch("/{document_id}", response_model=DocumentResponse)
def update_document(
    document_id: int,
    data: DocumentUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return DocumentService.update_details(db, current_user, document_id, data.model_dump(exclude_unset=True))

@router.post("/{document_id}/versions", response_model=DocumentVersionResponse, status_code=status.HTTP_201_CREATED)
async def upload_new_version(
    document_id: int,
    description_of_changes: Optional[str] = Form(None),
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
    storage: LocalStorage = Depends(get_storage),
    current_user: User = Depends(require_permission("upload"))
):
    contents = await file.read()
    return DocumentService.upload_new_version(
        db, storage, current_user, document_id, contents, file.filename,
        file.content_type or "application/octet-stream", description_of_changes
    )

@router.post("/{document_id}/cancel", response_model=DocumentResponse)
def cancel_document(
    document_id: int,
    data: ConfirmRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return DocumentService.cancel_document(db, current_user, document_id, data.confirm, data.reason)

@router.get("/{document_id}/versions/{version_id}/url", response_model=SignedUrlResponse)
def get_version_url(
    document_id: int,
    version_id: int,
    db: Session = Depends(get_db),
    storage: LocalStorage = Depends(get_storage),
    current_user: User = Depends(get_current_user)
):
    return DocumentService.get_version_url(db, storage, current_user, document_id, version_id)

@files_router.get("/files")
def download_file(token: str = Query(...), storage: LocalStorage = Depends(get_storage)):
    """Entrega el archivo referenciado por una URL firmada vigente"""
    path = storage.resolve_signed_token(token)
    data = storage.download(path)
    media_type = mimetypes.guess_type(path)[0] or "application/octet-stream"
    return Response(
        content=data,
        media_type=media_type,
        headers={"Content-Disposition": f'inline; filename="{os.path.basename(path)}"'},
    )
