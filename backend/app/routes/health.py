"""Health check endpoints."""

from fastapi import APIRouter, Depends

from narrator.pipeline import NarrationEngine

from ..dependencies import get_engine

router = APIRouter()

SERVICE_NAME = "emotional-narrator-api"
SERVICE_VERSION = "1.0.0"


@router.get("/")
async def root():
    return {"status": "ok", "service": SERVICE_NAME, "version": SERVICE_VERSION}


@router.get("/health")
async def health(engine: NarrationEngine = Depends(get_engine)):
    """Liveness plus which optional collaborators are wired in."""
    payload = {
        "status": "healthy",
        "voice": engine.voice_available,
        "analysisCache": engine.analysis_cache is not None,
    }
    if engine.synthesizer is not None:
        payload["synthesis"] = engine.synthesizer.stats()
    return payload
