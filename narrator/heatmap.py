"""
Heatmap Aggregation

Collapses a classified move sequence into per-axis peak lists and a
single-sentence narrative arc.
"""

from __future__ import annotations

from statistics import mean
from typing import Dict, List

from .narration_types import EMOTION_AXES, EmotionalMove, EmotionHeatmap, Intensity

PEAK_THRESHOLD = 75.0
MAX_PEAKS = 3

CRITICAL_MOVES_FOR_DRAMA = 3
HIGH_MOVES_FOR_STRATEGY = 5
SLUGFEST_MEAN = 60.0
REDEMPTION_HOPE_MEAN = 70.0
DECLINE_COLLAPSE_MEAN = 40.0

ARC_DRAMATIC_BATTLE = "A dramatic battle where every critical moment could have turned the game."
ARC_TACTICAL_SLUGFEST = "A tactical slugfest: relentless aggression under constant tension."
ARC_HOPE_AND_REDEMPTION = "A story of hope and redemption, where belief carried the game forward."
ARC_TRAGIC_DECLINE = "A tragic decline, as a once-solid position slowly came apart."
ARC_TENSE_STRATEGIC = "A tense strategic battle of patience and pressure."
ARC_THOUGHTFUL = "A thoughtful game of quiet manoeuvres and careful decisions."

KEY_MOMENT_INTENSITIES = (Intensity.HIGH, Intensity.CRITICAL)


def find_peaks(moves: List[EmotionalMove], axis: str) -> List[EmotionalMove]:
    """Moves scoring >= PEAK_THRESHOLD on ``axis``, strongest first, at most MAX_PEAKS."""
    candidates = [m for m in moves if m.emotions.get(axis) >= PEAK_THRESHOLD]
    # sorted() is stable: equal scores keep game order
    candidates = sorted(candidates, key=lambda m: m.emotions.get(axis), reverse=True)
    return candidates[:MAX_PEAKS]


def _axis_mean(moves: List[EmotionalMove], axis: str) -> float:
    return mean(m.emotions.get(axis) for m in moves) if moves else 0.0


def summarize_arc(moves: List[EmotionalMove]) -> str:
    """Pick the single arc sentence; first matching rule wins."""
    if not moves:
        return ARC_THOUGHTFUL

    critical = sum(1 for m in moves if m.intensity == Intensity.CRITICAL)
    high = sum(1 for m in moves if m.intensity == Intensity.HIGH)

    if critical >= CRITICAL_MOVES_FOR_DRAMA:
        return ARC_DRAMATIC_BATTLE
    if _axis_mean(moves, "aggression") > SLUGFEST_MEAN and _axis_mean(moves, "tension") > SLUGFEST_MEAN:
        return ARC_TACTICAL_SLUGFEST
    if _axis_mean(moves, "hope") > REDEMPTION_HOPE_MEAN:
        return ARC_HOPE_AND_REDEMPTION
    if _axis_mean(moves, "collapse") > DECLINE_COLLAPSE_MEAN:
        return ARC_TRAGIC_DECLINE
    if high >= HIGH_MOVES_FOR_STRATEGY:
        return ARC_TENSE_STRATEGIC
    return ARC_THOUGHTFUL


def build_heatmap(moves: List[EmotionalMove]) -> EmotionHeatmap:
    """Assemble the heatmap for one analyzed game."""
    moves = list(moves)
    peaks: Dict[str, List[EmotionalMove]] = {axis: find_peaks(moves, axis) for axis in EMOTION_AXES}
    return EmotionHeatmap(moves=moves, peaks=peaks, overall_arc=summarize_arc(moves))


def key_moments(moves: List[EmotionalMove], limit: int = 5) -> List[EmotionalMove]:
    """High and critical moves, strongest first."""
    moments = [m for m in moves if m.intensity in KEY_MOMENT_INTENSITIES]
    moments.sort(key=lambda m: m.emotions.max_value(), reverse=True)
    return moments[:limit]


def mean_max_emotion(moves: List[EmotionalMove]) -> float:
    """Average over moves of each move's strongest axis."""
    return mean(m.emotions.max_value() for m in moves) if moves else 0.0
