"""
Clarifications Router - conversations that complete extraction records and
confirm tool calls awaiting approval
"""
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.agents.llm import ModelInvoker
from app.database import get_db
from app.routers.deps import get_user_id, get_model_invoker
from app.schemas.clarification import (
    ClarificationReply,
    ClarificationSessionResponse,
    ConfirmationResponse,
    MessageRequest,
)
from app.services.clarification_service import ClarificationService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/clarifications", tags=["clarifications"])


def get_service(
    db: Session = Depends(get_db),
    invoker: ModelInvoker = Depends(get_model_invoker),
) -> ClarificationService:
    return ClarificationService(db, invoker)


@router.get("", response_model=List[ClarificationSessionResponse])
def list_sessions(
    document_id: Optional[str] = Query(None, description="Only sessions for this document"),
    user_id: str = Depends(get_user_id),
    service: ClarificationService = Depends(get_service),
):
    return service.list(user_id, document_id=document_id)


@router.get("/{session_id}", response_model=ClarificationSessionResponse)
def get_session(
    session_id: str,
    user_id: str = Depends(get_user_id),
    service: ClarificationService = Depends(get_service),
):
    return service.get(session_id, user_id)


@router.post("/{session_id}/messages", response_model=ClarificationReply)
async def send_message(
    session_id: str,
    payload: MessageRequest,
    user_id: str = Depends(get_user_id),
    service: ClarificationService = Depends(get_service),
):
    """Answer the record's questions; returns the updated record or confirmation questions"""
    return await service.send_message(session_id, user_id, payload.message)


@router.post("/{session_id}/confirm", response_model=ClarificationReply)
async def confirm_actions(
    session_id: str,
    payload: ConfirmationResponse,
    user_id: str = Depends(get_user_id),
    service: ClarificationService = Depends(get_service),
):
    """Approve or decline pending tool calls by tool name"""
    return await service.resolve_confirmation(session_id, user_id, payload.confirmations)


@router.post("/{session_id}/complete", response_model=ClarificationSessionResponse)
def complete_session(
    session_id: str,
    user_id: str = Depends(get_user_id),
    service: ClarificationService = Depends(get_service),
):
    return service.complete(session_id, user_id)
