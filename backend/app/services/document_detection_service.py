"""
Document Detection Service - classifies a document and estimates how many
distinct transactions it holds, which decides single vs sequential processing.
"""
import logging

from app.agents.llm import ModelInvoker
from app.agents.prompts import DETECTION_PROMPT, format_document
from app.config import settings
from app.schemas.document import DocumentDetection

logger = logging.getLogger(__name__)


def determine_processing_mode(detection: DocumentDetection) -> str:
    """
    Low confidence or an unclear count falls back to single-transaction
    processing; two or more confident transactions go sequential.
    """
    if detection.confidence < settings.detection_confidence_threshold:
        return "single"
    if detection.transaction_count <= 1:
        return "single"
    return "sequential"


class DocumentDetector:
    """One structured model call over the document text."""

    def __init__(self, invoker: ModelInvoker):
        self.invoker = invoker

    async def detect(self, text: str) -> DocumentDetection:
        messages = [("system", DETECTION_PROMPT), ("human", format_document(text))]
        detection = await self.invoker.invoke_structured(messages, DocumentDetection)

        mode = determine_processing_mode(detection)
        if mode != detection.processing_mode:
            logger.info(
                f"Overriding detected mode '{detection.processing_mode}' with '{mode}' "
                f"(count={detection.transaction_count}, confidence={detection.confidence:.2f})"
            )
        detection = detection.model_copy(update={"processing_mode": mode})

        logger.info(
            f"Detected {detection.document_type} with {detection.transaction_count} transaction(s), "
            f"mode={detection.processing_mode}"
        )
        return detection
