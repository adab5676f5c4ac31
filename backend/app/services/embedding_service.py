"""
Similarity index for committed transactions.

Each committed transaction's summary is embedded so later semantic lookups
can find related spending; the vector is stored on the transaction row.
"""
import logging
from typing import List, Optional, Protocol

import openai
from langchain_openai import OpenAIEmbeddings

from app.config import settings
from app.errors import AppError

logger = logging.getLogger(__name__)


class SimilarityIndex(Protocol):
    async def index(self, record_id: str, text: str) -> List[float]:
        ...


class OpenAIEmbeddingIndex:
    """SimilarityIndex backed by langchain_openai.OpenAIEmbeddings."""

    def __init__(self, embeddings: Optional[OpenAIEmbeddings] = None):
        self.embeddings = embeddings or OpenAIEmbeddings(
            model=settings.embedding_model,
            api_key=settings.openai_api_key,
            max_retries=settings.agent_max_retries,
        )

    async def index(self, record_id: str, text: str) -> List[float]:
        try:
            vector = await self.embeddings.aembed_query(text)
        except openai.OpenAIError as e:
            logger.error(f"Embedding failed for transaction {record_id}: {e}", exc_info=True)
            raise AppError(502, "Failed to generate embedding", "index_transaction")

        logger.info(f"Indexed transaction {record_id} ({len(vector)} dimensions)")
        return vector
