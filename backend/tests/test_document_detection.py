import pytest

from app.errors import AppError, ExtractionError
from app.models.document import Document
from app.schemas.document import DocumentDetection
from app.services.document_detection_service import DocumentDetector, determine_processing_mode
from app.services.document_service import DocumentService


def detection(count: int, confidence: float, mode: str = "sequential") -> DocumentDetection:
    return DocumentDetection(
        document_type="bank_statement",
        transaction_count=count,
        processing_mode=mode,
        confidence=confidence,
    )


def test_low_confidence_falls_back_to_single():
    assert determine_processing_mode(detection(5, 0.59)) == "single"


def test_confident_multi_transaction_is_sequential():
    assert determine_processing_mode(detection(3, 0.6)) == "sequential"
    assert determine_processing_mode(detection(2, 0.95, mode="single")) == "sequential"


def test_zero_or_one_transaction_is_single():
    assert determine_processing_mode(detection(0, 0.9)) == "single"
    assert determine_processing_mode(detection(1, 0.9)) == "single"


@pytest.mark.asyncio
async def test_detector_overrides_model_mode(invoker):
    invoker.queue_structured(detection(1, 0.9, mode="sequential"))

    result = await DocumentDetector(invoker).detect("one receipt")

    assert result.processing_mode == "single"
    assert invoker.seen_messages[0][0][0] == "system"


@pytest.mark.asyncio
async def test_process_stores_detection(db, user, invoker):
    service = DocumentService(db, invoker)
    document = service.create(user.id, filename="statement.txt")
    invoker.queue_structured(detection(4, 0.85))

    processed = await service.process(document.id, user.id, raw_text="four lines of transactions")

    assert processed.processing_status == "processed"
    assert processed.document_type == "bank_statement"
    assert processed.transaction_count == 4
    assert processed.detection["processing_mode"] == "sequential"


@pytest.mark.asyncio
async def test_process_requires_text(db, user, invoker):
    service = DocumentService(db, invoker)
    document = service.create(user.id)

    with pytest.raises(AppError) as exc:
        await service.process(document.id, user.id)

    assert exc.value.message == "Document has no extracted text!"


@pytest.mark.asyncio
async def test_detection_failure_marks_document_failed(db, user):
    class FailingInvoker:
        async def invoke_structured(self, messages, schema):
            raise ExtractionError(502, "AI service unavailable", "detect_document")

    service = DocumentService(db, FailingInvoker())
    document = service.create(user.id, raw_text="some text")

    processed = await service.process(document.id, user.id)

    assert processed.processing_status == "failed"
    assert processed.error_message == "AI service unavailable"


@pytest.mark.asyncio
async def test_processed_text_cannot_be_replaced(db, user, invoker, document):
    with pytest.raises(AppError) as exc:
        await DocumentService(db, invoker).process(document.id, user.id, raw_text="other text")

    assert exc.value.status_code == 400
    assert db.get(Document, document.id).raw_text.startswith("GTBank statement")


def test_documents_are_listed_per_user(db, user, other_user, invoker, document):
    service = DocumentService(db, invoker)

    assert [d.id for d in service.list(user.id)] == [document.id]
    assert service.list(other_user.id) == []
    with pytest.raises(AppError) as exc:
        service.get(document.id, other_user.id)
    assert exc.value.status_code == 403


@pytest.mark.asyncio
async def test_processed_document_is_not_detected_again(db, user, invoker, document):
    before = (document.document_type, document.transaction_count, document.detection)

    with pytest.raises(AppError) as exc:
        await DocumentService(db, invoker).process(document.id, user.id)

    assert exc.value.status_code == 400
    assert exc.value.message == "Document has already been processed!"
    assert invoker.structured_call_count == 0
    db.refresh(document)
    assert (document.document_type, document.transaction_count, document.detection) == before


@pytest.mark.asyncio
async def test_failed_document_can_be_processed_again(db, user, invoker):
    service = DocumentService(db, invoker)
    document = service.create(user.id, raw_text="some text")
    document.processing_status = "failed"
    db.commit()
    invoker.queue_structured(detection(1, 0.9, mode="single"))

    processed = await service.process(document.id, user.id)

    assert processed.processing_status == "processed"
    assert processed.error_message is None
