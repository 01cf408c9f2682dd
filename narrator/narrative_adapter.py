"""
Narrative Adaptation

Renders the same underlying game content in four styles (dramatic,
educational, poetic, analytical), derives short social-ready snippets,
and scores the content: tags, difficulty level and an engagement estimate.

Deterministic, template-driven. No LLM calls.
"""

from __future__ import annotations

import re
from typing import Dict, List, Optional, Tuple

from .heatmap import key_moments, mean_max_emotion
from .narration_types import (
    ContentAnalysis,
    EmotionalMove,
    EmotionHeatmap,
    NarrativeAdaptations,
    NarrativeStyle,
    SocialSnippet,
    parse_enum,
)

EXCERPT_LENGTH = 200
SNIPPET_SOURCE_LENGTH = 100
MAX_SNIPPET_LENGTH = 280
MAX_SNIPPETS = 3

# Maximum emotion observed across the game selects the framing variant
PEAK_FRAMING_THRESHOLD = 90.0
ELEVATED_FRAMING_THRESHOLD = 70.0

# =============================================================================
# FRAMING SENTENCES
# =============================================================================
# (opening, closing) per style and per emotion level

FRAMINGS: Dict[NarrativeStyle, Dict[str, Tuple[str, str]]] = {
    NarrativeStyle.DRAMATIC: {
        "peak": (
            "Hold your breath. What follows is chess at its most ferocious.",
            "When the dust settled, nothing on the board would ever be the same.",
        ),
        "elevated": (
            "The pressure builds with every move.",
            "A battle fought on the edge, and won there.",
        ),
        "calm": (
            "Beneath a calm surface, a quiet drama unfolds.",
            "Not every story needs fireworks to leave its mark.",
        ),
    },
    NarrativeStyle.EDUCATIONAL: {
        "peak": (
            "This game is a masterclass in handling critical, forcing positions.",
            "Key lesson: in sharp positions, calculate every check and capture first.",
        ),
        "elevated": (
            "This game shows how pressure accumulates from small advantages.",
            "Key lesson: tension is a resource; release it only when it favours you.",
        ),
        "calm": (
            "This game illustrates steady, principled play.",
            "Key lesson: sound development and patience win more games than tricks.",
        ),
    },
    NarrativeStyle.POETIC: {
        "peak": (
            "Sixty-four squares caught fire, and two minds walked through the flames.",
            "And so the storm passed, leaving only the echo of its thunder.",
        ),
        "elevated": (
            "Like a drawn bowstring, the position trembled with intent.",
            "The arrow flew, and the board remembered its flight.",
        ),
        "calm": (
            "Quiet as snowfall, the pieces found their places.",
            "In stillness, the game told its gentle story.",
        ),
    },
    NarrativeStyle.ANALYTICAL: {
        "peak": (
            "Assessment: a highly volatile game with critical emotional peaks.",
            "Conclusion: the outcome hinged on a small number of decisive moments.",
        ),
        "elevated": (
            "Assessment: a game of sustained pressure with several high-intensity phases.",
            "Conclusion: accumulated pressure, rather than a single blow, decided the game.",
        ),
        "calm": (
            "Assessment: a low-volatility game with balanced emotional readings.",
            "Conclusion: the game was decided by gradual, positional factors.",
        ),
    },
}

# =============================================================================
# TAGGING, DIFFICULTY AND SOCIAL
# =============================================================================

AXIS_TAGS = (
    ("tension", 60.0, ("tactical", "complex")),
    ("hope", 60.0, ("inspiring", "breakthrough")),
    ("aggression", 60.0, ("aggressive", "attacking")),
    ("collapse", 40.0, ("blunder", "learning")),
)

PHASE_KEYWORDS = ("opening", "endgame", "middlegame", "sacrifice", "checkmate")

COMPLEXITY_MARKERS = re.compile(
    r"zugzwang|zwischenzug|fianchetto|en passant|prophylaxis|outpost|"
    r"pawn structure|weak squares?|piece coordination|initiative|"
    r"opposition|minority attack|isolated pawn|open file",
    re.IGNORECASE,
)

DIFFICULTY_LEVELS = (
    (4, "master"),
    (3, "advanced"),
    (2, "intermediate"),
)

ENGAGEMENT_BASE = 50.0
ENGAGEMENT_EMOTION_WEIGHT = 0.5
ENGAGEMENT_PER_KEY_MOMENT = 5.0
ENGAGEMENT_PER_TAG = 2.0

PLATFORM_HASHTAGS: Dict[str, List[str]] = {
    "twitter": ["#chess"],
    "instagram": ["#chess", "#chesslife", "#chessgame"],
    "tiktok": ["#chess", "#chesstok"],
}


def _heatmap_moves(heatmap: Optional[EmotionHeatmap]) -> List[EmotionalMove]:
    return list(heatmap.moves) if heatmap is not None else []


def max_game_emotion(heatmap: Optional[EmotionHeatmap]) -> float:
    moves = _heatmap_moves(heatmap)
    return max((m.emotions.max_value() for m in moves), default=0.0)


def _framing_level(peak: float) -> str:
    if peak >= PEAK_FRAMING_THRESHOLD:
        return "peak"
    if peak >= ELEVATED_FRAMING_THRESHOLD:
        return "elevated"
    return "calm"


def make_excerpt(content: str, limit: int = EXCERPT_LENGTH) -> str:
    """First ``limit`` characters, cut back to a word boundary."""
    text = " ".join((content or "").split())
    if len(text) <= limit:
        return text
    cut = text[:limit]
    if " " in cut:
        cut = cut[:cut.rfind(" ")]
    return cut.rstrip(",;:") + "..."


def adapt_narrative(
    content: str,
    heatmap: Optional[EmotionHeatmap],
    style: Optional[str] = None,
) -> NarrativeAdaptations:
    """
    Render ``content`` in all four styles.

    Args:
        content: Source prose (article text, commentary, or PGN).
        heatmap: Analysis of the game; drives the framing variant.
        style: Preferred style, exposed as ``primary``. Unknown values fall
            back to dramatic.
    """
    excerpt = make_excerpt(content)
    level = _framing_level(max_game_emotion(heatmap))

    rendered = {}
    for target in NarrativeStyle:
        opening, closing = FRAMINGS[target][level]
        parts = [opening, excerpt, closing] if excerpt else [opening, closing]
        rendered[target.value] = " ".join(parts)

    return NarrativeAdaptations(
        dramatic=rendered["dramatic"],
        educational=rendered["educational"],
        poetic=rendered["poetic"],
        analytical=rendered["analytical"],
        style=parse_enum(NarrativeStyle, style, NarrativeStyle.DRAMATIC),
    )


def tag_content(content: str, heatmap: Optional[EmotionHeatmap]) -> List[str]:
    """Labels from emotion-axis means plus chess-phase keywords in the text."""
    moves = _heatmap_moves(heatmap)
    tags: List[str] = []

    if moves:
        for axis, threshold, labels in AXIS_TAGS:
            axis_mean = sum(m.emotions.get(axis) for m in moves) / len(moves)
            if axis_mean > threshold:
                tags.extend(labels)

    lowered = (content or "").lower()
    tags.extend(keyword for keyword in PHASE_KEYWORDS if keyword in lowered)

    # dict keeps first-seen order
    return list(dict.fromkeys(tags))


def assess_difficulty(content: str) -> str:
    hits = len(COMPLEXITY_MARKERS.findall(content or ""))
    for minimum, level in DIFFICULTY_LEVELS:
        if hits >= minimum:
            return level
    return "beginner"


def engagement_score(heatmap: Optional[EmotionHeatmap], key_moment_count: int, tag_count: int) -> float:
    moves = _heatmap_moves(heatmap)
    emotion = mean_max_emotion(moves) if moves else ENGAGEMENT_BASE
    score = (
        ENGAGEMENT_BASE
        + (emotion - 50.0) * ENGAGEMENT_EMOTION_WEIGHT
        + ENGAGEMENT_PER_KEY_MOMENT * key_moment_count
        + ENGAGEMENT_PER_TAG * tag_count
    )
    return round(max(0.0, min(100.0, score)), 1)


def _fit(text: str, hashtags: List[str], limit: int) -> str:
    """Trim ``text`` so that text plus hashtags stays within ``limit``."""
    suffix = (" " + " ".join(hashtags)) if hashtags else ""
    room = limit - len(suffix)
    if len(text) > room:
        text = text[:max(0, room - 3)].rstrip() + "..."
    return text


def social_snippets(
    content: str,
    heatmap: Optional[EmotionHeatmap],
    tags: Optional[List[str]] = None,
) -> List[SocialSnippet]:
    """
    Short platform-ready posts built from the opening of the content and
    the strongest key moment.
    """
    source = " ".join((content or "").split())[:SNIPPET_SOURCE_LENGTH].strip()
    top = key_moments(_heatmap_moves(heatmap), limit=1)

    body = source
    if top:
        moment = top[0]
        body = f"{source} Key moment: {moment.move_number}. {moment.move}".strip()
    if not body:
        return []

    tag_hashtags = ["#" + t for t in (tags or [])[:2]]
    snippets = []
    for platform, base in list(PLATFORM_HASHTAGS.items())[:MAX_SNIPPETS]:
        hashtags = list(dict.fromkeys(base + tag_hashtags))
        text = _fit(body, hashtags, MAX_SNIPPET_LENGTH)
        snippets.append(SocialSnippet(platform=platform, text=text, hashtags=hashtags))
    return snippets


def analyze_content(
    content: str,
    heatmap: Optional[EmotionHeatmap],
    style: Optional[str] = None,
) -> ContentAnalysis:
    """Adaptations, snippets, tags, difficulty and engagement in one pass."""
    moments = key_moments(_heatmap_moves(heatmap))
    tags = tag_content(content, heatmap)
    return ContentAnalysis(
        adaptations=adapt_narrative(content, heatmap, style),
        snippets=social_snippets(content, heatmap, tags),
        tags=tags,
        difficulty=assess_difficulty(content),
        engagement_score=engagement_score(heatmap, len(moments), len(tags)),
        key_moments=moments,
    )
