"""
Analysis routes – emotion heat maps and narrative adaptation.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from narrator.move_extractor import MAX_PGN_LENGTH
from narrator.pipeline import NarrationEngine

from ..dependencies import get_engine

router = APIRouter()

MAX_CONTENT_LENGTH = 50_000


# ═══════════════════════════════════════════════════════════
# Schemas
# ═══════════════════════════════════════════════════════════


class HeatmapRequest(BaseModel):
    pgn: str


class NarrativeRequest(BaseModel):
    content: str
    pgn: Optional[str] = None  # game the content is about; drives framing and tags
    style: Optional[str] = None  # dramatic | educational | poetic | analytical


# ═══════════════════════════════════════════════════════════
# Endpoints
# ═══════════════════════════════════════════════════════════


@router.post("/heatmap")
def emotion_heatmap(body: HeatmapRequest, engine: NarrationEngine = Depends(get_engine)):
    """Classify every move of a game and return the heat map."""
    if len(body.pgn) > MAX_PGN_LENGTH:
        raise HTTPException(status_code=413, detail="PGN too large")

    extraction, heatmap = engine.analyze_pgn(body.pgn)
    payload = heatmap.to_dict()
    payload["isValid"] = extraction.is_valid
    payload["gameInfo"] = extraction.game_info.to_dict()
    if not extraction.is_valid:
        payload["error"] = extraction.error
    return payload


@router.post("/narrative")
def narrative(body: NarrativeRequest, engine: NarrationEngine = Depends(get_engine)):
    """Adapt content into all four styles, with snippets, tags and scores."""
    if not body.content.strip():
        raise HTTPException(status_code=400, detail="Content is required")
    if len(body.content) > MAX_CONTENT_LENGTH:
        raise HTTPException(status_code=413, detail="Content too large")

    heatmap = None
    if body.pgn:
        extraction, heatmap = engine.analyze_pgn(body.pgn)
        if not extraction.is_valid:
            raise HTTPException(status_code=422, detail=f"Invalid PGN: {extraction.error}")

    analysis = engine.analyze_content(body.content, heatmap, body.style)
    return analysis.to_dict()
