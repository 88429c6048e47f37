"""
KYC Verification Service - Main Application

FastAPI backend with:
- MongoDB (replica set) for verification records, account flags and the audit trail
- JWT authentication (tokens issued by the platform's login service)
- structlog structured logging

Run: uvicorn kyc_core.main:app --reload
"""

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from kyc_core import __version__
from kyc_core.api.deps import get_store
from kyc_core.api.routes import api_router
from kyc_core.core.config import get_settings
from kyc_core.core.errors import InvalidTransition, KycError, http_status_for
from kyc_core.core.logging import configure_logging
from kyc_core.db.mongodb import test_mongo_connection

settings = get_settings()
configure_logging()
log = structlog.get_logger(__name__)

# Create FastAPI app
app = FastAPI(
    title="KYC Verification Service",
    description="""
    Verification state machine for a student / employer job marketplace.

    ## Features
    - **Subjects**: submit, resubmit and withdraw KYC details, switch employer type
    - **Admins**: review queue, approve / reject / suspend / reactivate, audit trail
    - **Consistency**: account flags are always derived from the verification record;
      a reconciliation job repairs drift
    """,
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc"
)

# CORS middleware (allow all for development)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API routes
app.include_router(api_router, prefix="/api")


@app.exception_handler(KycError)
async def kyc_error_handler(request: Request, exc: KycError):
    """Translate verification-core errors into HTTP responses."""
    status_code = http_status_for(exc)
    body = {"detail": exc.message, "error": type(exc).__name__}
    if isinstance(exc, InvalidTransition) and exc.current_status:
        body["current_status"] = exc.current_status
    log.info("kyc_request_rejected", path=request.url.path, status_code=status_code, error=body["error"])
    return JSONResponse(status_code=status_code, content=body)


# Startup event
@app.on_event("startup")
async def startup_event():
    """Initialize MongoDB indexes on startup."""
    try:
        created = get_store().ensure_indexes()
        log.info("mongo_indexes_initialized", indexes=created)
    except Exception:
        log.exception("mongo_index_initialization_failed")


@app.get("/health", tags=["Health"])
async def health_check():
    """Detailed health check."""
    return {
        "status": "healthy",
        "environment": settings.environment,
        "mongodb": "connected" if test_mongo_connection() else "disconnected"
    }
