from datetime import datetime
from typing import List, Optional
import logging

from fastapi import APIRouter, Depends, HTTPException

from app.auth.deps import get_current_user
from app.database import chat_repository, document_repository
from app.schemas.document import ARTIFACT_KINDS, Document, DocumentSave, Suggestion
from app.schemas.user import User
from app.utils.async_utils import run_sync

router = APIRouter(tags=["documents"])

logger = logging.getLogger(__name__)


@router.get("/document", response_model=List[Document])
async def get_document(
    id: Optional[str] = None,
    kind: Optional[str] = None,
    current_user: User = Depends(get_current_user),
):
    """All versions of one document, or the user's documents of one kind."""
    if id:
        documents = await run_sync(document_repository.get_documents_by_id, id)
        if not documents:
            raise HTTPException(status_code=404, detail="Not found")
        if not await run_sync(document_repository.has_document_access, id, current_user.id):
            raise HTTPException(status_code=403, detail="Forbidden")
        return documents

    if kind:
        return await run_sync(document_repository.get_documents_by_kind, kind, current_user.id)

    raise HTTPException(status_code=400, detail="Missing id or kind parameter")


@router.post("/document", response_model=Document)
async def save_document(id: str, body: DocumentSave, current_user: User = Depends(get_current_user)):
    """Store a new version. Creates the chat when it does not exist yet."""
    existing = await run_sync(document_repository.get_document_by_id, id)
    if existing and not await run_sync(
        document_repository.has_document_access, id, current_user.id, ("owner", "editor")
    ):
        raise HTTPException(status_code=403, detail="Forbidden")

    try:
        if body.chat_id and not await run_sync(chat_repository.get_chat_by_id, body.chat_id):
            await run_sync(chat_repository.save_chat, body.chat_id, current_user.id, body.title)

        return await run_sync(
            document_repository.save_document,
            id,
            body.title,
            body.kind,
            body.content,
            current_user.id,
            body.chat_id,
        )
    except Exception as e:
        logger.exception(f"Failed to create document {id}: {e}")
        raise HTTPException(status_code=500, detail="Internal Server Error")


@router.delete("/document", response_model=List[Document])
async def delete_document_versions(
    id: Optional[str] = None,
    timestamp: Optional[datetime] = None,
    current_user: User = Depends(get_current_user),
):
    """Drop every version newer than ``timestamp``. Owner only."""
    if not id:
        raise HTTPException(status_code=400, detail="Missing id")
    if not timestamp:
        raise HTTPException(status_code=400, detail="Missing timestamp")

    document = await run_sync(document_repository.get_document_by_id, id)
    if not document:
        raise HTTPException(status_code=404, detail="Not found")
    if not await run_sync(document_repository.has_document_access, id, current_user.id, ("owner",)):
        raise HTTPException(status_code=403, detail="Forbidden")

    return await run_sync(document_repository.delete_documents_by_id_after_timestamp, id, timestamp)


@router.get("/documents", response_model=List[Document])
async def list_documents(
    kind: Optional[str] = None,
    chat_id: Optional[str] = None,
    current_user: User = Depends(get_current_user),
):
    if kind:
        if kind not in ARTIFACT_KINDS:
            raise HTTPException(status_code=400, detail="Invalid kind")
        return await run_sync(document_repository.get_documents_by_kind, kind, current_user.id)

    if chat_id:
        return await run_sync(document_repository.get_documents_by_chat_id, chat_id, current_user.id)

    raise HTTPException(status_code=400, detail="Missing kind or chat_id parameter")


@router.get("/suggestions", response_model=List[Suggestion])
async def get_suggestions(
    document_id: Optional[str] = None,
    document_created_at: Optional[datetime] = None,
    current_user: User = Depends(get_current_user),
):
    if not document_id or not document_created_at:
        raise HTTPException(status_code=400, detail="Missing required parameters")

    return await run_sync(
        document_repository.get_suggestions_by_document_id,
        document_id,
        current_user.id,
        document_created_at,
    )
