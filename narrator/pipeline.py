"""
Narration pipeline entry points.

``NarrationEngine`` bundles the collaborators (classifier, synthesizer,
analysis cache) and exposes the operations the HTTP layer and CLI use:

    engine = build_engine(get_settings())
    heatmap = engine.analyze_game(pgn)
    adaptations = engine.adapt_narrative(article, heatmap, "poetic")
    audio = await engine.synthesize("Move 1: e4.", "wise_mentor", "neutral")
    replay = engine.create_replay_session(pgn, heatmap, {"cinematicMode": True})
"""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional, Tuple

from .analysis_cache import AnalysisCache
from .config import ReplayConfig, Settings
from .emotion_classifier import EmotionClassifier
from .errors import SynthesisError
from .heatmap import build_heatmap
from .move_extractor import extract_moves
from .narration_types import (
    ContentAnalysis,
    EmotionHeatmap,
    ExtractionResult,
    NarrativeAdaptations,
)
from .narrative_adapter import adapt_narrative, analyze_content
from .replay_controller import AudioSink, ReplayController
from .scheduler import AsyncioScheduler, Scheduler
from .speech_cache import SpeechCache
from .synthesizer import ElevenLabsVendor, SpeechSynthesizer

logger = logging.getLogger(__name__)

HEATMAP_CONTENT_TYPE = "heatmap"
CONTENT_ANALYSIS_TYPE = "content_analysis"


class NarrationEngine:
    """
    The pipeline with explicit collaborators.

    Args:
        classifier: EmotionClassifier (seed it for reproducible output).
        synthesizer: SpeechSynthesizer, or None when voice is unavailable.
        analysis_cache: AnalysisCache, or None to always recompute.
        base_delay_seconds: Default replay delay per move at speed 1.0.
    """

    def __init__(
        self,
        classifier: Optional[EmotionClassifier] = None,
        synthesizer: Optional[SpeechSynthesizer] = None,
        analysis_cache: Optional[AnalysisCache] = None,
        base_delay_seconds: float = 1.0,
    ):
        self.classifier = classifier or EmotionClassifier()
        self.synthesizer = synthesizer
        self.analysis_cache = analysis_cache
        self.base_delay_seconds = base_delay_seconds

    # ─── Analysis ───

    def analyze_pgn(self, pgn_text: str) -> Tuple[ExtractionResult, EmotionHeatmap]:
        """
        Extract and classify a game, returning the extraction alongside the
        heatmap. Invalid PGN yields an empty heatmap; only valid games are cached.
        """
        extraction = extract_moves(pgn_text)
        if not extraction.is_valid:
            return extraction, build_heatmap([])

        if self.analysis_cache is not None:
            cached = self.analysis_cache.get(HEATMAP_CONTENT_TYPE, pgn_text)
            if cached is not None:
                try:
                    return extraction, EmotionHeatmap.from_dict(cached)
                except (KeyError, TypeError, ValueError) as e:
                    logger.warning("Discarding unreadable cached heatmap: %s", e)

        heatmap = build_heatmap(self.classifier.classify(extraction.moves))
        if self.analysis_cache is not None:
            self.analysis_cache.put(HEATMAP_CONTENT_TYPE, pgn_text, heatmap.to_dict())
        return extraction, heatmap

    def analyze_game(self, pgn_text: str) -> EmotionHeatmap:
        return self.analyze_pgn(pgn_text)[1]

    def adapt_narrative(
        self,
        content: str,
        heatmap: Optional[EmotionHeatmap],
        style: Optional[str] = None,
    ) -> NarrativeAdaptations:
        return adapt_narrative(content, heatmap, style)

    def analyze_content(
        self,
        content: str,
        heatmap: Optional[EmotionHeatmap] = None,
        style: Optional[str] = None,
    ) -> ContentAnalysis:
        """Full content analysis; cached per (content, style) when the game is not supplied."""
        cache_input = f"{style or ''}\n{content}"
        use_cache = self.analysis_cache is not None and heatmap is None

        if use_cache:
            cached = self.analysis_cache.get(CONTENT_ANALYSIS_TYPE, cache_input)
            if cached is not None:
                try:
                    return ContentAnalysis.from_dict(cached)
                except (KeyError, TypeError, ValueError) as e:
                    logger.warning("Discarding unreadable cached content analysis: %s", e)

        analysis = analyze_content(content, heatmap, style)
        if use_cache:
            self.analysis_cache.put(CONTENT_ANALYSIS_TYPE, cache_input, analysis.to_dict())
        return analysis

    # ─── Voice ───

    @property
    def voice_available(self) -> bool:
        return self.synthesizer is not None

    async def synthesize(self, text: str, voice_mode: Optional[str] = None, tone: Optional[str] = None) -> bytes:
        if self.synthesizer is None:
            raise SynthesisError("Speech synthesis is not configured")
        return await self.synthesizer.synthesize(text, voice_mode, tone)

    # ─── Replay ───

    def create_replay_session(
        self,
        pgn_text: str,
        heatmap: Optional[EmotionHeatmap] = None,
        config: Optional[Mapping[str, Any]] = None,
        scheduler: Optional[Scheduler] = None,
        audio_sink: Optional[AudioSink] = None,
        **hooks: Any,
    ) -> ReplayController:
        """
        A loaded ReplayController for ``pgn_text``.

        ``config`` is the lenient client option mapping (see ReplayConfig).
        ``hooks`` may carry ``on_state_change`` and ``on_narration_error``.
        """
        replay_config = config if isinstance(config, ReplayConfig) else ReplayConfig.from_dict(
            config, base_delay_seconds=self.base_delay_seconds
        )
        controller = ReplayController(
            scheduler=scheduler or AsyncioScheduler(),
            synthesizer=self.synthesizer,
            config=replay_config,
            audio_sink=audio_sink,
            on_state_change=hooks.get("on_state_change"),
            on_narration_error=hooks.get("on_narration_error"),
        )
        controller.load(pgn_text, heatmap)
        return controller


def build_engine(settings: Settings) -> NarrationEngine:
    """Wire the default collaborators from configuration."""
    synthesizer = None
    if settings.voice_enabled:
        vendor = ElevenLabsVendor(
            api_key=settings.elevenlabs_api_key,
            voice_id=settings.elevenlabs_voice_id,
            model_id=settings.elevenlabs_model_id,
            base_url=settings.elevenlabs_base_url,
            timeout=settings.synthesis_timeout_seconds,
        )
        cache = SpeechCache(
            settings.speech_cache_dir,
            max_entries=settings.speech_cache_max_entries,
            max_bytes=settings.speech_cache_max_bytes,
        )
        synthesizer = SpeechSynthesizer(vendor, cache)
    else:
        logger.info("ELEVENLABS_API_KEY not set; voice synthesis disabled")

    analysis_cache = AnalysisCache(
        settings.analysis_cache_path,
        max_entries=settings.analysis_cache_max_entries,
    )
    purged = analysis_cache.clear_expired(settings.analysis_cache_ttl_days)
    if purged:
        logger.info("Purged %d expired analysis cache entries", purged)

    return NarrationEngine(
        synthesizer=synthesizer,
        analysis_cache=analysis_cache,
        base_delay_seconds=settings.replay_base_delay_seconds,
    )


# ─── Module-level conveniences ───


def analyze_game(engine: NarrationEngine, pgn_text: str) -> EmotionHeatmap:
    return engine.analyze_game(pgn_text)


async def synthesize(engine: NarrationEngine, text: str, voice_mode: Optional[str] = None,
                     tone: Optional[str] = None) -> bytes:
    return await engine.synthesize(text, voice_mode, tone)


def create_replay_session(engine: NarrationEngine, pgn_text: str, heatmap: Optional[EmotionHeatmap] = None,
                          config: Optional[Mapping[str, Any]] = None, **kwargs: Any) -> ReplayController:
    return engine.create_replay_session(pgn_text, heatmap, config, **kwargs)
