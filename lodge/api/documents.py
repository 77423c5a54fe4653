from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile
from fastapi.responses import Response
from sqlalchemy.orm import Session

from ..api.dependencies import get_db, get_or_404
from ..auth.jwt import get_current_user, require_module
from ..models.models import LodgeDocument, User
from ..schemas.schemas import LodgeDocumentRead, LodgeDocumentUpdate
from ..services.audit import audit_log
from ..services.storage import build_upload_path, storage_service

router = APIRouter(prefix="/documents", tags=["documents"])

require_library = require_module("library", "secretariat")

MAX_DOCUMENT_BYTES = 20 * 1024 * 1024


@router.get("/", response_model=List[LodgeDocumentRead])
def list_documents(
    category: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    _: User = Depends(get_current_user),
) -> List[LodgeDocument]:
    query = db.query(LodgeDocument)
    if category:
        query = query.filter(LodgeDocument.category == category)
    return query.order_by(LodgeDocument.category.asc(), LodgeDocument.title.asc()).all()


@router.post("/", response_model=LodgeDocumentRead, status_code=201)
async def upload_document(
    title: str = Form(...),
    category: str = Form(...),
    description: Optional[str] = Form(None),
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
    user: User = Depends(require_library),
) -> LodgeDocument:
    contents = await file.read()
    if not contents:
        raise HTTPException(status_code=400, detail="File is empty")
    if len(contents) > MAX_DOCUMENT_BYTES:
        raise HTTPException(status_code=400, detail="File exceeds the 20 MB limit.")
    stored = storage_service.save_file(
        build_upload_path("documents", file.filename), contents, content_type=file.content_type
    )
    document = LodgeDocument(
        title=title.strip() or file.filename or "Documento",
        description=description,
        category=category.strip(),
        file_path=stored.relative_path,
        content_type=file.content_type,
        file_size=len(contents),
        uploaded_by_user_id=user.id,
    )
    db.add(document)
    db.commit()
    db.refresh(document)
    audit_log(
        db_session=db,
        actor_user_id=user.id,
        action="documents.upload",
        target_entity_type="LodgeDocument",
        target_entity_id=str(document.id),
        after={"title": document.title, "category": document.category},
    )
    return document


@router.patch("/{document_id}", response_model=LodgeDocumentRead)
def update_document(
    document_id: int,
    payload: LodgeDocumentUpdate,
    db: Session = Depends(get_db),
    _: User = Depends(require_library),
) -> LodgeDocument:
    document = get_or_404(db, LodgeDocument, document_id, "Document")
    for key, value in payload.model_dump(exclude_unset=True).items():
        setattr(document, key, value)
    db.commit()
    db.refresh(document)
    return document


@router.delete("/{document_id}", status_code=204)
def delete_document(
    document_id: int,
    db: Session = Depends(get_db),
    _: User = Depends(require_library),
) -> Response:
    document = get_or_404(db, LodgeDocument, document_id, "Document")
    storage_service.delete_file(document.file_path)
    db.delete(document)
    db.commit()
    return Response(status_code=204)


@router.get("/{document_id}/download")
def download_document(
    document_id: int,
    db: Session = Depends(get_db),
    _: User = Depends(get_current_user),
) -> Response:
    document = get_or_404(db, LodgeDocument, document_id, "Document")
    stored = storage_service.retrieve_file(document.file_path)
    extension = document.file_path.rsplit(".", 1)[-1] if "." in document.file_path else "bin"
    filename = document.title if "." in document.title else f"{document.title}.{extension}"
    return Response(
        content=stored.content,
        media_type=stored.content_type or document.content_type or "application/octet-stream",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
