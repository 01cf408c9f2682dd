"""
Narration Data Types and Schemas

Defines all data structures for the emotional narration pipeline.
All types are serializable; the derived ones (emotional moves, heatmaps)
are immutable once produced.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional
import hashlib
import json


EMOTION_AXES = ("tension", "hope", "aggression", "collapse")


class Intensity(str, Enum):
    """
    Discrete intensity of a move, bucketed from its strongest emotion axis.

    Classification Rules:
    - CRITICAL: max axis >= 90
    - HIGH: max axis >= 70
    - MEDIUM: max axis >= 50
    - LOW: everything below
    """
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class NarrativeStyle(str, Enum):
    """Target renderings produced by the narrative adapter."""
    DRAMATIC = "dramatic"
    EDUCATIONAL = "educational"
    POETIC = "poetic"
    ANALYTICAL = "analytical"


class VoiceMode(str, Enum):
    """Named presets of speech-synthesis parameters."""
    WISE_MENTOR = "wise_mentor"
    ENTHUSIASTIC_COMMENTATOR = "enthusiastic_commentator"
    THOUGHTFUL_PHILOSOPHER = "thoughtful_philosopher"
    WARM_ENCOURAGER = "warm_encourager"
    POETIC_STORYTELLER = "poetic_storyteller"
    WHISPER_MODE = "whisper_mode"
    DRAMATIC_NARRATOR = "dramatic_narrator"


class ReplayState(str, Enum):
    """Replay controller states."""
    IDLE = "idle"
    READY = "ready"
    PLAYING = "playing"
    PAUSED = "paused"
    FINISHED = "finished"


class GamePhase(str, Enum):
    OPENING = "opening"
    MIDDLEGAME = "middlegame"
    ENDGAME = "endgame"


def parse_enum(enum_cls, value, default=None):
    """Look up an enum member by value or name, returning ``default`` when unknown."""
    if isinstance(value, enum_cls):
        return value
    if not isinstance(value, str):
        return default
    raw = value.strip()
    for member in enum_cls:
        if raw == member.value or raw.upper() == member.name:
            return member
    # camelCase spellings ("dramaticNarrator") used by the web client
    snake = "".join("_" + c.lower() if c.isupper() else c for c in raw).lstrip("_")
    for member in enum_cls:
        if snake == member.value:
            return member
    return default


@dataclass(frozen=True)
class Move:
    """
    A single legal move with the position it produced.

    Produced by the move extractor; never mutated.
    """
    # 0-based ply index within the game
    index: int

    # SAN notation as played ("Nf3", "exd5", "O-O", "Qh6#")
    notation: str

    # UCI notation, used to replay the move onto a board
    uci: str

    # FEN after the move has been applied
    resulting_position: str

    # "white" or "black"
    color: str

    # Full-move number as printed in PGN ("12" for both 12. and 12...)
    move_number: int

    captured: Optional[str] = None    # piece name, e.g. "knight"
    promotion: Optional[str] = None   # piece name, e.g. "queen"
    gives_check: bool = False
    is_castle: bool = False
    is_checkmate: bool = False
    is_en_passant: bool = False

    # Heuristic material+mobility evaluation after the move (White positive).
    # Not an engine score.
    evaluation: float = 0.0
    annotation: str = ""
    is_brilliant: bool = False
    is_blunder: bool = False

    @property
    def is_capture(self) -> bool:
        return self.captured is not None

    def to_dict(self) -> dict:
        return {
            "index": self.index,
            "notation": self.notation,
            "uci": self.uci,
            "resulting_position": self.resulting_position,
            "color": self.color,
            "move_number": self.move_number,
            "captured": self.captured,
            "promotion": self.promotion,
            "gives_check": self.gives_check,
            "is_castle": self.is_castle,
            "is_checkmate": self.is_checkmate,
            "is_en_passant": self.is_en_passant,
            "evaluation": self.evaluation,
            "annotation": self.annotation,
            "is_brilliant": self.is_brilliant,
            "is_blunder": self.is_blunder,
        }

    @classmethod
    def from_dict(cls, data: dict) -> Move:
        return cls(
            index=data["index"],
            notation=data["notation"],
            uci=data["uci"],
            resulting_position=data["resulting_position"],
            color=data["color"],
            move_number=data["move_number"],
            captured=data.get("captured"),
            promotion=data.get("promotion"),
            gives_check=data.get("gives_check", False),
            is_castle=data.get("is_castle", False),
            is_checkmate=data.get("is_checkmate", False),
            is_en_passant=data.get("is_en_passant", False),
            evaluation=data.get("evaluation", 0.0),
            annotation=data.get("annotation", ""),
            is_brilliant=data.get("is_brilliant", False),
            is_blunder=data.get("is_blunder", False),
        )


@dataclass(frozen=True)
class GameInfo:
    """Metadata from the PGN tag pairs. Missing tags stay None."""
    white: Optional[str] = None
    black: Optional[str] = None
    event: Optional[str] = None
    date: Optional[str] = None
    result: Optional[str] = None
    site: Optional[str] = None

    def to_dict(self) -> dict:
        return {k: v for k, v in (
            ("white", self.white),
            ("black", self.black),
            ("event", self.event),
            ("date", self.date),
            ("result", self.result),
            ("site", self.site),
        ) if v is not None}


@dataclass(frozen=True)
class ExtractionResult:
    """Outcome of parsing a PGN transcript."""
    is_valid: bool
    moves: List[Move] = field(default_factory=list)
    game_info: GameInfo = field(default_factory=GameInfo)
    starting_fen: str = "rnbqkbnr/pppppppp/8/8/8/8/PPPPPPPP/RNBQKBNR w KQkq - 0 1"
    error: Optional[str] = None


@dataclass(frozen=True)
class EmotionVector:
    """Four independent 0-100 heuristic scores for one move."""
    tension: float
    hope: float
    aggression: float
    collapse: float

    def get(self, axis: str) -> float:
        if axis not in EMOTION_AXES:
            raise KeyError(axis)
        return getattr(self, axis)

    def max_value(self) -> float:
        return max(self.tension, self.hope, self.aggression, self.collapse)

    def dominant_axis(self) -> str:
        """Strongest axis; ties resolve in EMOTION_AXES order."""
        return max(EMOTION_AXES, key=lambda axis: (self.get(axis), -EMOTION_AXES.index(axis)))

    def to_dict(self) -> Dict[str, float]:
        return {axis: self.get(axis) for axis in EMOTION_AXES}

    @classmethod
    def from_dict(cls, data: dict) -> EmotionVector:
        return cls(**{axis: float(data[axis]) for axis in EMOTION_AXES})


@dataclass(frozen=True)
class EmotionalMove:
    """One classified move. Ordering within a heatmap follows the game."""
    move_number: int        # 1-based ply
    move: str               # SAN
    position_ref: str       # FEN after the move
    emotions: EmotionVector
    narrative: str
    intensity: Intensity

    def to_dict(self) -> dict:
        return {
            "move_number": self.move_number,
            "move": self.move,
            "position_ref": self.position_ref,
            "emotions": self.emotions.to_dict(),
            "narrative": self.narrative,
            "intensity": self.intensity.value,
        }

    @classmethod
    def from_dict(cls, data: dict) -> EmotionalMove:
        return cls(
            move_number=data["move_number"],
            move=data["move"],
            position_ref=data["position_ref"],
            emotions=EmotionVector.from_dict(data["emotions"]),
            narrative=data["narrative"],
            intensity=Intensity(data["intensity"]),
        )


@dataclass(frozen=True)
class EmotionHeatmap:
    """
    Full per-move emotion sequence plus peaks and a one-sentence arc.

    Every move in ``peaks[axis]`` is also in ``moves`` and scores at least
    the peak threshold on that axis.
    """
    moves: List[EmotionalMove]
    peaks: Dict[str, List[EmotionalMove]]
    overall_arc: str

    def to_dict(self) -> dict:
        return {
            "moves": [m.to_dict() for m in self.moves],
            "peaks": {axis: [m.to_dict() for m in self.peaks.get(axis, [])] for axis in EMOTION_AXES},
            "overall_arc": self.overall_arc,
        }

    @classmethod
    def from_dict(cls, data: dict) -> EmotionHeatmap:
        moves = [EmotionalMove.from_dict(m) for m in data.get("moves", [])]
        by_ply = {m.move_number: m for m in moves}
        peaks = {}
        for axis in EMOTION_AXES:
            # Re-link peaks to the instances held in ``moves``
            peaks[axis] = [
                by_ply.get(p["move_number"]) or EmotionalMove.from_dict(p)
                for p in data.get("peaks", {}).get(axis, [])
            ]
        return cls(moves=moves, peaks=peaks, overall_arc=data.get("overall_arc", ""))

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2)


@dataclass(frozen=True)
class NarrationUnit:
    """A speech request descriptor. Its canonical form is the cache-key input."""
    text: str
    voice_mode: str
    tone: str

    def canonical(self) -> str:
        return json.dumps([self.text, self.voice_mode, self.tone], ensure_ascii=False)

    def cache_key(self) -> str:
        return hashlib.sha256(self.canonical().encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class SocialSnippet:
    platform: str
    text: str
    hashtags: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"platform": self.platform, "text": self.text, "hashtags": list(self.hashtags)}


@dataclass(frozen=True)
class NarrativeAdaptations:
    """Four parallel renderings of the same content."""
    dramatic: str
    educational: str
    poetic: str
    analytical: str
    style: NarrativeStyle = NarrativeStyle.DRAMATIC

    def get(self, style: NarrativeStyle) -> str:
        return getattr(self, NarrativeStyle(style).value)

    @property
    def primary(self) -> str:
        return self.get(self.style)

    def to_dict(self) -> dict:
        return {
            "dramatic": self.dramatic,
            "educational": self.educational,
            "poetic": self.poetic,
            "analytical": self.analytical,
            "style": self.style.value,
        }

    @classmethod
    def from_dict(cls, data: dict) -> NarrativeAdaptations:
        return cls(
            dramatic=data["dramatic"],
            educational=data["educational"],
            poetic=data["poetic"],
            analytical=data["analytical"],
            style=parse_enum(NarrativeStyle, data.get("style"), NarrativeStyle.DRAMATIC),
        )


@dataclass(frozen=True)
class ContentAnalysis:
    adaptations: NarrativeAdaptations
    snippets: List[SocialSnippet]
    tags: List[str]
    difficulty: str
    engagement_score: float
    key_moments: List[EmotionalMove] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "adaptations": self.adaptations.to_dict(),
            "snippets": [s.to_dict() for s in self.snippets],
            "tags": list(self.tags),
            "difficulty": self.difficulty,
            "engagement_score": self.engagement_score,
            "key_moments": [m.to_dict() for m in self.key_moments],
        }

    @classmethod
    def from_dict(cls, data: dict) -> ContentAnalysis:
        return cls(
            adaptations=NarrativeAdaptations.from_dict(data["adaptations"]),
            snippets=[
                SocialSnippet(s["platform"], s["text"], list(s.get("hashtags", [])))
                for s in data.get("snippets", [])
            ],
            tags=list(data.get("tags", [])),
            difficulty=data.get("difficulty", "beginner"),
            engagement_score=float(data.get("engagement_score", 50.0)),
            key_moments=[EmotionalMove.from_dict(m) for m in data.get("key_moments", [])],
        )


@dataclass(frozen=True)
class ReplaySession:
    """Snapshot of a replay controller, handed to UI listeners."""
    moves: List[Move]
    annotations: List[EmotionalMove]
    current_index: int
    is_playing: bool
    playback_speed_multiplier: float
    position: str
    state: ReplayState

    def to_dict(self) -> dict:
        return {
            "moves": [m.to_dict() for m in self.moves],
            "annotations": [a.to_dict() for a in self.annotations],
            "current_index": self.current_index,
            "is_playing": self.is_playing,
            "playback_speed_multiplier": self.playback_speed_multiplier,
            "position": self.position,
            "state": self.state.value,
        }
