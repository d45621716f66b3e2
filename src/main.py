import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from config import settings
from create_tables import create_tables
from database import SessionLocal
from rate_limit import RateLimiter, enforce_rate_limit

from modules.auth.controllers.auth_controller import router as auth_router
from modules.auth.job import start_nonce_cleanup_job
from modules.documents.controllers.document_controller import router as document_router
from modules.documents.controllers.signature_controller import router as signature_router
from modules.documents.services import DocumentServiceError, ErrorKind, LedgerClient
from modules.health.controllers.health_controller import router as health_router
from modules.notifications.controllers.websocket_controller import router as websocket_router
from modules.notifications.services import LedgerEventRelay, manager

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # --- Startup logic ---
    logger.info("Starting document signing service")
    create_tables()
    cleanup_scheduler = start_nonce_cleanup_job(settings.nonce_cleanup_minutes)

    relay = None
    if settings.enable_event_relay:
        relay = LedgerEventRelay(LedgerClient(SessionLocal, settings=settings), manager)
        relay.start(settings.event_poll_seconds)
        logger.info("Ledger event relay started")
    yield
    # --- Shutdown logic ---
    if relay is not None:
        relay.stop()
    cleanup_scheduler.shutdown(wait=False)
    logger.info("Document signing service stopped")


app = FastAPI(
    title="Document Signing Ledger",
    description="Multi-party document signing backed by an append-ordered signature ledger",
    version="1.0.0",
    lifespan=lifespan
)

app.state.rate_limiter = RateLimiter.from_settings(settings)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Accept", "Content-Type", "Authorization", "X-Requested-With", "Origin"],
    max_age=86400,
)


@app.exception_handler(DocumentServiceError)
async def document_service_error_handler(request: Request, exc: DocumentServiceError):
    return JSONResponse(status_code=exc.kind.status_code, content={"error": exc.to_dict()})


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    error = DocumentServiceError(
        ErrorKind.INVALID_INPUT,
        "Validation failed",
        {"errors": [str(e.get("msg")) for e in exc.errors()]},
    )
    return JSONResponse(status_code=error.kind.status_code, content={"error": error.to_dict()})


# Routers
rate_limited = [Depends(enforce_rate_limit)]
app.include_router(auth_router, dependencies=rate_limited)
app.include_router(document_router, dependencies=rate_limited)
app.include_router(signature_router, dependencies=rate_limited)
app.include_router(health_router)
app.include_router(websocket_router, tags=["websocket"])

if __name__ == "__main__":
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)
