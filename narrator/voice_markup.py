"""
Voice Profiles and Speech Markup

Everything that shapes a synthesis request before it reaches the vendor:
named voice profiles, emotion-keyword detection for automatic mode
selection, SSML expansion (pauses, emphasis, tone wrappers) and the small
random perturbation of profile parameters that keeps repeated narration
from sounding mechanical.
"""

from __future__ import annotations

import random
import re
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple

from .narration_types import VoiceMode, parse_enum

RandomSource = Callable[[], float]


@dataclass(frozen=True)
class VoiceProfile:
    """Numeric vendor parameters for one voice mode (all in [0, 1])."""
    stability: float
    similarity_boost: float
    style: float
    use_speaker_boost: bool = True

    def to_settings(self) -> Dict[str, object]:
        return {
            "stability": self.stability,
            "similarity_boost": self.similarity_boost,
            "style": self.style,
            "use_speaker_boost": self.use_speaker_boost,
        }


VOICE_PROFILES: Dict[VoiceMode, VoiceProfile] = {
    # Teaching moments
    VoiceMode.WISE_MENTOR: VoiceProfile(0.65, 0.80, 0.35),
    # Exciting moments
    VoiceMode.ENTHUSIASTIC_COMMENTATOR: VoiceProfile(0.30, 0.70, 0.60),
    # Deep analysis
    VoiceMode.THOUGHTFUL_PHILOSOPHER: VoiceProfile(0.75, 0.85, 0.25),
    # Support after mistakes
    VoiceMode.WARM_ENCOURAGER: VoiceProfile(0.70, 0.75, 0.40),
    # Game narratives
    VoiceMode.POETIC_STORYTELLER: VoiceProfile(0.50, 0.78, 0.45),
    VoiceMode.WHISPER_MODE: VoiceProfile(0.85, 0.90, 0.15, use_speaker_boost=False),
    # Cinematic moments
    VoiceMode.DRAMATIC_NARRATOR: VoiceProfile(0.25, 0.65, 0.75),
}

# =============================================================================
# EMOTION LEXICON
# =============================================================================
# Checked in order; the first pattern that matches decides.

EMOTION_LEXICON: Tuple[Tuple[str, "re.Pattern[str]"], ...] = (
    ("tension", re.compile(r"tension|pressure|critical|decisive|sharp", re.IGNORECASE)),
    ("triumph", re.compile(r"brilliant|magnificent|victory|genius|masterful", re.IGNORECASE)),
    ("tragedy", re.compile(r"blunder|mistake|collapse|disaster|pain", re.IGNORECASE)),
    ("mystery", re.compile(r"hidden|secret|mysterious|unexpected|surprise", re.IGNORECASE)),
    ("philosophical", re.compile(r"life|soul|journey|wisdom|eternal", re.IGNORECASE)),
)

NEUTRAL_EMOTION = "neutral"

EMOTION_TO_MODE: Dict[str, VoiceMode] = {
    "tension": VoiceMode.DRAMATIC_NARRATOR,
    "triumph": VoiceMode.ENTHUSIASTIC_COMMENTATOR,
    "tragedy": VoiceMode.WARM_ENCOURAGER,
    "mystery": VoiceMode.POETIC_STORYTELLER,
    "philosophical": VoiceMode.THOUGHTFUL_PHILOSOPHER,
    NEUTRAL_EMOTION: VoiceMode.WISE_MENTOR,
}

# =============================================================================
# SSML
# =============================================================================

CHESS_TERMS = (
    "checkmate", "sacrifice", "brilliancy", "endgame",
    "zugzwang", "fork", "pin", "discovery",
)
_CHESS_TERM_RE = re.compile(r"\b(" + "|".join(CHESS_TERMS) + r")\b", re.IGNORECASE)

SENTENCE_PAUSE = "300ms"
CLAUSE_PAUSE = "150ms"
ELLIPSIS_PAUSE = "600ms"

TONE_WRAPPERS: Dict[str, str] = {
    "inspiring": '<prosody pitch="+5%" rate="1.05" range="high">',
    "thoughtful": '<prosody pitch="-5%" rate="0.9" range="medium">',
    "energetic": '<prosody range="x-high" rate="1.1" volume="loud">',
    "calm": '<prosody range="low" rate="0.95" volume="medium">',
    "dramatic": '<prosody range="x-high" rate="1.0" pitch="-2%">',
    "whisper": '<prosody volume="x-soft" rate="0.85" pitch="-10%">',
    "mysterious": '<prosody pitch="-8%" rate="0.88" range="narrow">',
}

TONE_BOOKENDS: Dict[str, Tuple[str, str]] = {
    "inspiring": ('<break time="500ms"/>', '<break time="800ms"/>'),
    "dramatic": ('<break time="700ms"/>', '<break time="1s"/>'),
    "whisper": ('<break time="400ms"/>', '<break time="600ms"/>'),
}

# (stability, similarity_boost, style) half-widths
HUMAN_VARIATION = {"stability": 0.05, "similarity_boost": 0.03, "style": 0.05}


def detect_emotion(text: str) -> str:
    for emotion, pattern in EMOTION_LEXICON:
        if pattern.search(text or ""):
            return emotion
    return NEUTRAL_EMOTION


def select_voice_mode(text: str) -> VoiceMode:
    """Auto-select a voice mode from emotion keywords in ``text``."""
    return EMOTION_TO_MODE[detect_emotion(text)]


def resolve_voice_mode(text: str, voice_mode: Optional[str] = None) -> VoiceMode:
    """The requested mode when recognised, otherwise the auto-selected one."""
    mode = parse_enum(VoiceMode, voice_mode)
    return mode if mode is not None else select_voice_mode(text)


def _escape(text: str) -> str:
    return text.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")


def enhance_text(text: str, tone: str = "neutral") -> str:
    """
    Expand plain narration into SSML.

    Inserts pauses after sentences and clauses, turns ``*word*`` into strong
    emphasis, ``~words~`` into slow prosody and ``_words_`` into soft
    prosody, adds moderate emphasis to well-known chess terms, then wraps
    the result in the tone's prosody and bookend pauses. Unknown tones get
    no wrapper.
    """
    enhanced = _escape(text or "")

    enhanced = _CHESS_TERM_RE.sub(r'<emphasis level="moderate">\1</emphasis>', enhanced)

    enhanced = enhanced.replace("...", f'... <break time="{ELLIPSIS_PAUSE}"/>')
    enhanced = re.sub(r"(?<!\.)([.!?])\s+", rf'\1 <break time="{SENTENCE_PAUSE}"/> ', enhanced)
    # semicolons that close an escaped entity are not clause breaks
    enhanced = re.sub(r"([,:]|(?<!&amp)(?<!&lt)(?<!&gt);)\s+", rf'\1 <break time="{CLAUSE_PAUSE}"/> ', enhanced)

    enhanced = re.sub(r"\*(.+?)\*", r'<emphasis level="strong">\1</emphasis>', enhanced)
    enhanced = re.sub(r"~(.+?)~", r'<prosody rate="slow">\1</prosody>', enhanced)
    enhanced = re.sub(r"\b_(.+?)_\b", r'<prosody volume="soft">\1</prosody>', enhanced)

    wrapper = TONE_WRAPPERS.get(tone)
    if wrapper:
        enhanced = f"{wrapper}{enhanced}</prosody>"

    bookend = TONE_BOOKENDS.get(tone)
    if bookend:
        enhanced = f"{bookend[0]}{enhanced}{bookend[1]}"

    return f"<speak>{enhanced}</speak>"


def _vary(base: float, variance: float, random_source: RandomSource) -> float:
    variation = (random_source() - 0.5) * variance * 2
    return round(max(0.0, min(1.0, base + variation)), 4)


def add_human_variation(profile: VoiceProfile, random_source: Optional[RandomSource] = None) -> Dict[str, object]:
    """Vendor settings for ``profile`` with each numeric parameter nudged within its bound."""
    draw = random_source or random.random
    settings = profile.to_settings()
    for name, variance in HUMAN_VARIATION.items():
        settings[name] = _vary(getattr(profile, name), variance, draw)
    return settings
