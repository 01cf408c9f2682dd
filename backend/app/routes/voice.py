"""
Voice routes – narrated speech from the synthesis cache.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import Response
from pydantic import BaseModel, Field

from narrator.errors import SynthesisError
from narrator.pipeline import NarrationEngine

from ..dependencies import get_engine

logger = logging.getLogger(__name__)

router = APIRouter()

MAX_TEXT_LENGTH = 5000


class GenerateVoiceRequest(BaseModel):
    text: str
    voice_mode: Optional[str] = Field(default=None, alias="voiceMode")
    tone: Optional[str] = None

    model_config = {"populate_by_name": True}


@router.post("/generate")
async def generate_voice(body: GenerateVoiceRequest, engine: NarrationEngine = Depends(get_engine)):
    """Synthesize ``text``; repeated requests are served from the speech cache."""
    text = body.text.strip()
    if not text:
        raise HTTPException(status_code=400, detail="Text is required")
    if len(text) > MAX_TEXT_LENGTH:
        raise HTTPException(status_code=400, detail=f"Text exceeds {MAX_TEXT_LENGTH} characters")

    if not engine.voice_available:
        raise HTTPException(status_code=503, detail="Voice synthesis is not configured")

    try:
        audio = await engine.synthesize(text, body.voice_mode, body.tone)
    except SynthesisError as e:
        logger.warning("Voice generation failed: %s", e)
        raise HTTPException(status_code=502, detail="Voice synthesis service error")

    return Response(
        content=audio,
        media_type="audio/mpeg",
        headers={"Cache-Control": "public, max-age=3600"},
    )
