"""Health check endpoints for monitoring service status"""

import logging
import time
from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from modules.documents.dependencies import get_ledger_client, get_metadata_store
from modules.documents.services import LedgerClient
from modules.metadata.services import MetadataStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/health", tags=["health"])

VERSION = "1.0.0"
STARTED_AT = time.monotonic()


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@router.get("")
def health_check() -> Dict[str, Any]:
    """Basic liveness check."""
    return {
        "status": "healthy",
        "timestamp": _now(),
        "uptime": round(time.monotonic() - STARTED_AT, 3),
        "version": VERSION,
    }


def _check_ledger(ledger: LedgerClient) -> Dict[str, Any]:
    start = time.monotonic()
    head = ledger.head_position()
    elapsed = round((time.monotonic() - start) * 1000, 2)
    if not head.success:
        return {"status": "unhealthy", "message": head.error, "response_time_ms": elapsed}
    return {"status": "healthy", "current_block": head["block_number"], "response_time_ms": elapsed}


def _check_metadata_store(store: MetadataStore) -> Dict[str, Any]:
    start = time.monotonic()
    reachable = store.ping()
    elapsed = round((time.monotonic() - start) * 1000, 2)
    return {
        "status": "healthy" if reachable else "unhealthy",
        "backend": type(store).__name__,
        "response_time_ms": elapsed,
    }


def _single(name: str, check: Dict[str, Any]) -> JSONResponse:
    healthy = check["status"] == "healthy"
    if not healthy:
        logger.warning("%s health check failed: %s", name, check)
    return JSONResponse(status_code=200 if healthy else 503, content={**check, "timestamp": _now()})


@router.get("/ledger")
def ledger_health_check(ledger: LedgerClient = Depends(get_ledger_client)):
    return _single("Ledger", _check_ledger(ledger))


@router.get("/metadata-store")
def metadata_store_health_check(metadata_store: MetadataStore = Depends(get_metadata_store)):
    return _single("Metadata store", _check_metadata_store(metadata_store))


@router.get("/detailed")
def detailed_health_check(ledger: LedgerClient = Depends(get_ledger_client),
                          metadata_store: MetadataStore = Depends(get_metadata_store)):
    """Check the ledger and the metadata store; 503 when either is down."""
    services = {
        "api": {"status": "healthy"},
        "ledger": _check_ledger(ledger),
        "metadata_store": _check_metadata_store(metadata_store),
    }
    healthy = all(s["status"] == "healthy" for s in services.values())
    if not healthy:
        logger.warning("Detailed health check failed: %s", services)

    body = {
        "status": "healthy" if healthy else "unhealthy",
        "timestamp": _now(),
        "uptime": round(time.monotonic() - STARTED_AT, 3),
        "version": VERSION,
        "services": services,
    }
    return JSONResponse(status_code=200 if healthy else 503, content=body)
