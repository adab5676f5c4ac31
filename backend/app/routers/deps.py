"""
Shared router dependencies. Model clients and the similarity index are
provided here so tests can swap them through dependency overrides.
"""
from typing import Optional

from fastapi import Header

from app.agents.llm import LangChainModelInvoker, ModelInvoker
from app.config import settings
from app.database import SessionLocal
from app.errors import AppError
from app.services.embedding_service import OpenAIEmbeddingIndex, SimilarityIndex


def get_user_id(x_user_id: Optional[str] = Header(None)) -> str:
    """Caller identity; authentication happens upstream of this service."""
    if not x_user_id:
        raise AppError(401, "Missing X-User-Id header", "authenticate")
    return x_user_id


def get_model_invoker() -> ModelInvoker:
    return LangChainModelInvoker()


def get_detection_invoker() -> ModelInvoker:
    return LangChainModelInvoker(model=settings.detection_model)


def get_similarity_index() -> SimilarityIndex:
    return OpenAIEmbeddingIndex()


def get_session_factory():
    """Session factory for work that outlives the request (streamed initiation)."""
    return SessionLocal
