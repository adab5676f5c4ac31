"""
Documents Router - register documents with their text and run detection
"""
import logging
from typing import List

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.agents.llm import ModelInvoker
from app.database import get_db
from app.routers.deps import get_user_id, get_detection_invoker
from app.schemas.document import DocumentCreate, DocumentProcess, DocumentResponse
from app.services.document_service import DocumentService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/documents", tags=["documents"])


@router.post("", response_model=DocumentResponse)
def create_document(
    payload: DocumentCreate,
    user_id: str = Depends(get_user_id),
    db: Session = Depends(get_db),
    invoker: ModelInvoker = Depends(get_detection_invoker),
):
    """Register a document; text may be attached now or when processing"""
    return DocumentService(db, invoker).create(user_id, filename=payload.filename, raw_text=payload.raw_text)


@router.get("", response_model=List[DocumentResponse])
def list_documents(
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    user_id: str = Depends(get_user_id),
    db: Session = Depends(get_db),
    invoker: ModelInvoker = Depends(get_detection_invoker),
):
    return DocumentService(db, invoker).list(user_id, skip=skip, limit=limit)


@router.get("/{document_id}", response_model=DocumentResponse)
def get_document(
    document_id: str,
    user_id: str = Depends(get_user_id),
    db: Session = Depends(get_db),
    invoker: ModelInvoker = Depends(get_detection_invoker),
):
    return DocumentService(db, invoker).get(document_id, user_id)


@router.post("/{document_id}/process", response_model=DocumentResponse)
async def process_document(
    document_id: str,
    payload: DocumentProcess,
    user_id: str = Depends(get_user_id),
    db: Session = Depends(get_db),
    invoker: ModelInvoker = Depends(get_detection_invoker),
):
    """Store extracted text and detect document type and processing mode"""
    return await DocumentService(db, invoker).process(document_id, user_id, raw_text=payload.raw_text)
