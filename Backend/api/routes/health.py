from fastapi import APIRouter
from datetime import datetime, timezone
import logging

from models.api_models import HealthResponse
from .. import app_state

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/health", response_model=HealthResponse)
async def health_check():
    """System health check endpoint"""
    settings = app_state.settings
    components = {
        "store": app_state.store is not None,
        "relay": app_state.relay is not None,
        "conversations": app_state.conversations is not None,
    }

    return HealthResponse(
        status="healthy" if all(components.values()) else "degraded",
        timestamp=datetime.now(timezone.utc).isoformat(),
        storage_backend=settings.storage_backend if settings else "unknown",
        llm_model=settings.llm_model if settings else "unknown",
        components=components,
    )


@router.get("/readiness")
async def readiness_check():
    """Kubernetes readiness probe"""
    return {"status": "ready" if app_state.relay is not None else "starting"}


@router.get("/liveness")
async def liveness_check():
    """Kubernetes liveness probe"""
    return {"status": "alive"}
