"""
Emotional Narration Pipeline

Turns a PGN game into per-move emotion scores, a heat map with a narrative
arc, style-specific prose, cached synthesized speech, and a timed replay
that narrates each move as the board advances.

Scoring is rule-based. The only external service is the speech vendor.
"""

from .narration_types import (
    EMOTION_AXES,
    ContentAnalysis,
    EmotionalMove,
    EmotionHeatmap,
    EmotionVector,
    ExtractionResult,
    GameInfo,
    Intensity,
    Move,
    NarrationUnit,
    NarrativeAdaptations,
    NarrativeStyle,
    ReplaySession,
    ReplayState,
    SocialSnippet,
    VoiceMode,
)
from .errors import CacheIOError, InputError, NarrationError, StateError, SynthesisError
from .move_extractor import extract_moves, board_at
from .emotion_classifier import EmotionClassifier, classify_moves
from .heatmap import build_heatmap, key_moments
from .narrative_adapter import adapt_narrative, analyze_content
from .speech_cache import SpeechCache
from .synthesizer import ElevenLabsVendor, SpeechSynthesizer, SpeechVendor
from .analysis_cache import AnalysisCache
from .scheduler import AsyncioScheduler, VirtualScheduler
from .replay_controller import AudioSink, NullAudioSink, ReplayController
from .config import ReplayConfig, Settings, configure_logging, get_settings
from .pipeline import NarrationEngine, build_engine

__all__ = [
    # Types
    "EMOTION_AXES",
    "ContentAnalysis",
    "EmotionalMove",
    "EmotionHeatmap",
    "EmotionVector",
    "ExtractionResult",
    "GameInfo",
    "Intensity",
    "Move",
    "NarrationUnit",
    "NarrativeAdaptations",
    "NarrativeStyle",
    "ReplaySession",
    "ReplayState",
    "SocialSnippet",
    "VoiceMode",
    # Errors
    "NarrationError",
    "InputError",
    "SynthesisError",
    "CacheIOError",
    "StateError",
    # Functions
    "extract_moves",
    "board_at",
    "classify_moves",
    "build_heatmap",
    "key_moments",
    "adapt_narrative",
    "analyze_content",
    "configure_logging",
    "get_settings",
    "build_engine",
    # Classes
    "EmotionClassifier",
    "SpeechCache",
    "SpeechVendor",
    "ElevenLabsVendor",
    "SpeechSynthesizer",
    "AnalysisCache",
    "AsyncioScheduler",
    "VirtualScheduler",
    "AudioSink",
    "NullAudioSink",
    "ReplayController",
    "ReplayConfig",
    "Settings",
    "NarrationEngine",
]
