"""
Emotion Classification Module

Rule-based scoring of every move along four independent 0-100 axes
(tension, hope, aggression, collapse), plus a discrete intensity and a
one-line narrative.

Scores are heuristics keyed on move features, not engine evaluations. A
small symmetric jitter keeps structurally similar moves from scoring
identically; it is drawn from an injectable random source so that a
seeded classifier is fully reproducible.
"""

from __future__ import annotations

import random
from typing import Callable, Dict, List, Optional, Sequence

import chess

from .move_extractor import material_balance
from .narration_types import (
    EMOTION_AXES,
    EmotionalMove,
    EmotionVector,
    GamePhase,
    Intensity,
    Move,
)

RandomSource = Callable[[], float]


# =============================================================================
# AXIS BASELINES AND FEATURE ADJUSTMENTS
# =============================================================================

BASELINES: Dict[str, float] = {
    "tension": 30.0,
    "hope": 40.0,
    "aggression": 20.0,
    "collapse": 10.0,
}

CAPTURE_ADJUSTMENT = {"aggression": 25.0, "tension": 15.0}
CHECK_ADJUSTMENT = {"aggression": 15.0, "tension": 20.0, "hope": 10.0}
MATE_ADJUSTMENT = {"hope": 30.0, "aggression": 20.0}
PROMOTION_ADJUSTMENT = {"hope": 30.0, "tension": 15.0}
CASTLE_ADJUSTMENT = {"tension": -10.0, "hope": 15.0}

# Collapse signals
BLUNDER_ADJUSTMENT = {"collapse": 15.0}
EN_PRISE_ADJUSTMENT = {"collapse": 30.0, "tension": 10.0}
MATERIAL_DEFICIT_ADJUSTMENT = {"collapse": 20.0}
MATERIAL_DEFICIT_THRESHOLD = 3
NULL_UCI = chess.Move.null().uci()

# Multipliers applied after feature adjustments, by position of the move
# within the game (thirds of the move list)
PHASE_MULTIPLIERS: Dict[GamePhase, Dict[str, float]] = {
    GamePhase.OPENING: {"tension": 0.8, "aggression": 0.8, "hope": 1.0},
    GamePhase.MIDDLEGAME: {"tension": 1.2, "aggression": 1.2, "hope": 1.0},
    GamePhase.ENDGAME: {"tension": 1.1, "aggression": 1.0, "hope": 1.1},
}

JITTER = 10.0
AXIS_MIN = 0.0
AXIS_MAX = 100.0

# =============================================================================
# INTENSITY THRESHOLDS
# =============================================================================

CRITICAL_THRESHOLD = 90.0
HIGH_THRESHOLD = 70.0
MEDIUM_THRESHOLD = 50.0

# =============================================================================
# NARRATIVE TEMPLATES
# =============================================================================
# Tier order matters: the first matching tier wins.

MATE_TEMPLATES = (
    "{move} - checkmate! The final blow lands and the king has nowhere left to run.",
    "{move} seals it. Checkmate, and the long struggle ends in a single stroke.",
    "With {move} the net closes: checkmate.",
)
COLLAPSE_TEMPLATES = (
    "{move} and the position crumbles. Everything built so far is coming apart.",
    "After {move} the defence simply collapses.",
    "{move} - a painful moment. The structure gives way.",
)
CLASH_TEMPLATES = (
    "{move}! Blades cross in the centre of the board; nobody is backing down.",
    "{move} ignites an all-out tactical clash.",
    "The board is on fire after {move}.",
)
TRIUMPH_TEMPLATES = (
    "{move} - a moment of pure triumph. Victory is within reach.",
    "With {move} the light breaks through. This is what winning feels like.",
    "{move} and the breakthrough arrives.",
)
TENSION_TEMPLATES = (
    "{move}. The tension is almost unbearable; one slip decides everything.",
    "{move} pulls the position tight as a wire.",
    "Every piece holds its breath after {move}.",
)
AGGRESSION_TEMPLATES = (
    "{move} - a direct strike. The attack is on.",
    "{move} goes straight for the throat.",
    "No more waiting: {move} takes the fight to the enemy.",
)
HOPE_TEMPLATES = (
    "{move} opens a window of hope.",
    "There is promise in {move}; the position starts to breathe.",
    "{move} - quietly, a plan begins to shine.",
)

# Quiet fallbacks keyed by the dominant axis
DOMINANT_TEMPLATES: Dict[str, tuple] = {
    "tension": (
        "{move} keeps the position balanced on a knife's edge.",
        "{move}, and the manoeuvring continues.",
    ),
    "hope": (
        "{move} - a calm, constructive move.",
        "{move} quietly improves the position.",
    ),
    "aggression": (
        "{move} leans forward, probing for weaknesses.",
        "{move} hints at the attack to come.",
    ),
    "collapse": (
        "{move} - something feels slightly off.",
        "{move} leaves a small crack in the position.",
    ),
}


def clamp(value: float, low: float = AXIS_MIN, high: float = AXIS_MAX) -> float:
    return max(low, min(high, value))


def classify_intensity(emotions: EmotionVector) -> Intensity:
    """Bucket the strongest axis at 50/70/90."""
    peak = emotions.max_value()
    if peak >= CRITICAL_THRESHOLD:
        return Intensity.CRITICAL
    if peak >= HIGH_THRESHOLD:
        return Intensity.HIGH
    if peak >= MEDIUM_THRESHOLD:
        return Intensity.MEDIUM
    return Intensity.LOW


def game_phase_for_index(index: int, total: int) -> GamePhase:
    """Phase by thirds of the move list."""
    if total <= 0:
        return GamePhase.OPENING
    if index < total / 3:
        return GamePhase.OPENING
    if index < 2 * total / 3:
        return GamePhase.MIDDLEGAME
    return GamePhase.ENDGAME


def select_template_set(emotions: EmotionVector, is_checkmate: bool = False) -> Sequence[str]:
    """
    Pick the narrative template set for a scored move.

    Tiers, first match wins:
    mate, collapse > 80, aggression > 85 with tension > 70, hope > 90,
    tension > 85, aggression > 70, hope > 70, then the dominant axis.
    """
    if is_checkmate:
        return MATE_TEMPLATES
    if emotions.collapse > 80:
        return COLLAPSE_TEMPLATES
    if emotions.aggression > 85 and emotions.tension > 70:
        return CLASH_TEMPLATES
    if emotions.hope > 90:
        return TRIUMPH_TEMPLATES
    if emotions.tension > 85:
        return TENSION_TEMPLATES
    if emotions.aggression > 70:
        return AGGRESSION_TEMPLATES
    if emotions.hope > 70:
        return HOPE_TEMPLATES
    return DOMINANT_TEMPLATES[emotions.dominant_axis()]


def _apply(scores: Dict[str, float], adjustment: Dict[str, float]) -> None:
    for axis, delta in adjustment.items():
        scores[axis] += delta


def _leaves_piece_en_prise(move: Move) -> bool:
    """The moved piece (not pawn or king) is attacked and undefended on its new square."""
    if move.uci == NULL_UCI:
        return False
    board = chess.Board(move.resulting_position)
    to_square = chess.parse_square(move.uci[2:4])
    piece = board.piece_at(to_square)
    if piece is None or piece.piece_type in (chess.PAWN, chess.KING):
        return False
    opponent = not piece.color
    return board.is_attacked_by(opponent, to_square) and not board.is_attacked_by(piece.color, to_square)


def _mover_material_deficit(move: Move) -> int:
    board = chess.Board(move.resulting_position)
    balance = material_balance(board)
    return -balance if move.color == "white" else balance


class EmotionClassifier:
    """
    Scores moves into EmotionalMoves.

    Args:
        random_source: ``() -> float`` in [0, 1). Used for jitter and for
            picking a template within a set. Defaults to ``random.random``.
        jitter: Half-width of the symmetric per-axis noise.
    """

    def __init__(self, random_source: Optional[RandomSource] = None, jitter: float = JITTER):
        self._random = random_source or random.random
        self.jitter = jitter

    @classmethod
    def seeded(cls, seed: int, jitter: float = JITTER) -> EmotionClassifier:
        """A classifier whose output is reproducible across runs."""
        return cls(random.Random(seed).random, jitter=jitter)

    def _noise(self) -> float:
        return (self._random() * 2.0 - 1.0) * self.jitter

    def score_move(self, move: Move, index: int, total: int) -> EmotionVector:
        scores = dict(BASELINES)

        if move.is_capture:
            _apply(scores, CAPTURE_ADJUSTMENT)
        if move.gives_check:
            _apply(scores, CHECK_ADJUSTMENT)
        if move.is_checkmate:
            _apply(scores, MATE_ADJUSTMENT)
        if move.promotion:
            _apply(scores, PROMOTION_ADJUSTMENT)
        if move.is_castle:
            _apply(scores, CASTLE_ADJUSTMENT)

        if move.is_blunder:
            _apply(scores, BLUNDER_ADJUSTMENT)
        if _leaves_piece_en_prise(move):
            _apply(scores, EN_PRISE_ADJUSTMENT)
        if _mover_material_deficit(move) >= MATERIAL_DEFICIT_THRESHOLD:
            _apply(scores, MATERIAL_DEFICIT_ADJUSTMENT)

        phase = game_phase_for_index(index, total)
        for axis, factor in PHASE_MULTIPLIERS[phase].items():
            scores[axis] *= factor

        for axis in EMOTION_AXES:
            scores[axis] += self._noise()

        if move.is_checkmate:
            scores["tension"] = AXIS_MAX

        return EmotionVector(**{axis: round(clamp(scores[axis]), 2) for axis in EMOTION_AXES})

    def narrate(self, move: Move, emotions: EmotionVector) -> str:
        templates = select_template_set(emotions, move.is_checkmate)
        pick = min(int(self._random() * len(templates)), len(templates) - 1)
        return templates[pick].format(move=move.notation)

    def classify_move(self, move: Move, index: int, total: int) -> EmotionalMove:
        emotions = self.score_move(move, index, total)
        return EmotionalMove(
            move_number=move.index + 1,
            move=move.notation,
            position_ref=move.resulting_position,
            emotions=emotions,
            narrative=self.narrate(move, emotions),
            intensity=classify_intensity(emotions),
        )

    def classify(self, moves: List[Move]) -> List[EmotionalMove]:
        """Classify a full move list, preserving order."""
        total = len(moves)
        return [self.classify_move(move, index, total) for index, move in enumerate(moves)]


def classify_moves(moves: List[Move], random_source: Optional[RandomSource] = None) -> List[EmotionalMove]:
    """Convenience wrapper around a throwaway EmotionClassifier."""
    return EmotionClassifier(random_source).classify(moves)
