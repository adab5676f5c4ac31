from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm.exc import StaleDataError
from app.routers import documents, sequential, clarifications
from app.config import settings
from app.errors import AppError
import logging
import sys

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.StreamHandler(sys.stdout)
    ]
)

logger = logging.getLogger(__name__)

# Log startup information
logger.info("="*60)
logger.info("Starting Receipt Ledger API")
logger.info("="*60)
logger.info(f"Mode: {settings.mode}")
logger.info(f"OpenAI API Key configured: {bool(settings.openai_api_key)}")
logger.info(f"Agent Model: {settings.agent_model}, Detection Model: {settings.detection_model}")
logger.info(f"Reuse cached clarification records: {settings.clarification_reuse_cached_record}")
logger.info("="*60)

# Schema is managed by Alembic migrations

app = FastAPI(
    title="Receipt Ledger API",
    description="Transaction extraction, clarification and approval for financial documents",
    version="1.0.0"
)


def parse_cors_origins(origins_str: str) -> list:
    """Parse CORS origins string into a list."""
    return [origin.strip() for origin in origins_str.split(",") if origin.strip()]


all_origins = parse_cors_origins(settings.cors_origins) or ["http://localhost:3000"]

app.add_middleware(
    CORSMiddleware,
    allow_origins=all_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"],
    allow_headers=["*"],
)

# Include routers
app.include_router(documents.router)
app.include_router(sequential.router)  # Batch sessions and approval cursor
app.include_router(clarifications.router)


@app.get("/")
def root():
    return {"message": "Receipt Ledger API", "version": "1.0.0"}


@app.get("/health")
def health_check():
    return {"status": "healthy"}


def error_body(message: str, operation: str) -> dict:
    body = {"detail": message}
    if settings.mode == "development":
        body["operation"] = operation
    return body


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    if exc.status_code >= 500:
        logger.error(f"{exc.operation} failed: {exc.message}")
    else:
        logger.info(f"{exc.operation} rejected ({exc.status_code}): {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=error_body(exc.message, exc.operation))


@app.exception_handler(StaleDataError)
async def stale_data_handler(request: Request, exc: StaleDataError):
    logger.warning(f"Concurrent modification on {request.url.path}: {exc}")
    return JSONResponse(
        status_code=409,
        content=error_body("Resource was modified concurrently. Reload and retry.", "commit"),
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Unexpected failures never leak stack traces to the client"""
    logger.error(f"Unhandled exception: {str(exc)}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content=error_body("Internal server error", "unhandled"),
    )
