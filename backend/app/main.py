"""
Emotional Narrator Backend - FastAPI Application

Application factory with middleware and routes.
"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from narrator.config import configure_logging, get_settings

from .routes import analysis, health, voice


def create_app() -> FastAPI:
    settings = get_settings()
    configure_logging(settings.log_level)

    app = FastAPI(
        title="Emotional Narrator API",
        version="1.0.0",
        description="Emotion heat maps, narrative adaptation and narrated replay for chess games",
    )

    # ── CORS ──
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origin_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ── Routes ──
    app.include_router(health.router, tags=["health"])
    app.include_router(analysis.router, prefix="/api/analysis", tags=["analysis"])
    app.include_router(voice.router, prefix="/api/voice", tags=["voice"])

    return app


app = create_app()
