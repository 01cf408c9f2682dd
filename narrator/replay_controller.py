"""
Replay Controller

Stateful playback of an analyzed game: advances the board one move at a
time on a timer, optionally narrating each move through the speech
synthesizer, with pause, resume, scrubbing and speed control.

States::

    Idle --load--> Ready --play--> Playing <--pause/play--> Paused
                                      |
                                      +--last move applied--> Finished

    seek(i) from any loaded state -> Ready (i == -1) or Paused

Ordering: the board transition for move N is applied (and listeners told)
before narration for N starts, and the advance to N+1 is scheduled only
once narration for N has finished or failed. Every pause, seek, load and
unload bumps a generation counter; timers and narration results carrying
an older generation are dropped.
"""

from __future__ import annotations

import asyncio
import logging
import math
import time
from typing import Any, Callable, Dict, List, Optional, Set

import chess

from .config import MAX_SPEED, MIN_SPEED, ReplayConfig
from .errors import StateError, SynthesisError
from .move_extractor import board_at, extract_moves
from .narration_types import (
    EmotionalMove,
    EmotionHeatmap,
    ExtractionResult,
    Intensity,
    Move,
    ReplaySession,
    ReplayState,
    VoiceMode,
)
from .scheduler import Scheduler, TimerHandle

logger = logging.getLogger(__name__)

DEFAULT_SPEED = 1.0

# Cinematic per-move factors; the largest applicable one is used
CAPTURE_DELAY_FACTOR = 1.5
CASTLE_DELAY_FACTOR = 2.0
PROMOTION_DELAY_FACTOR = 2.0
CHECK_DELAY_FACTOR = 1.3

BRILLIANT_PHRASE = "What a brilliant move!"
BLUNDER_PHRASE = "Unfortunately, this appears to be a blunder."
USER_NOTE_PREFIX = "User note: "

AXIS_VOICE_MODES: Dict[str, VoiceMode] = {
    "tension": VoiceMode.DRAMATIC_NARRATOR,
    "aggression": VoiceMode.DRAMATIC_NARRATOR,
    "hope": VoiceMode.ENTHUSIASTIC_COMMENTATOR,
    "collapse": VoiceMode.WARM_ENCOURAGER,
}

DRAMATIC_INTENSITIES = (Intensity.HIGH, Intensity.CRITICAL)


class AudioSink:
    """Receives synthesized narration. ``play`` returns when playback is done."""

    async def play(self, move_index: int, text: str, audio: bytes) -> None:
        raise NotImplementedError


class NullAudioSink(AudioSink):
    """Discards audio immediately."""

    async def play(self, move_index: int, text: str, audio: bytes) -> None:
        return None


def cinematic_factor(move: Move) -> float:
    """Largest applicable delay factor for ``move`` (factors never stack)."""
    factors = [1.0]
    if move.is_capture:
        factors.append(CAPTURE_DELAY_FACTOR)
    if move.is_castle:
        factors.append(CASTLE_DELAY_FACTOR)
    if move.promotion:
        factors.append(PROMOTION_DELAY_FACTOR)
    if move.gives_check:
        factors.append(CHECK_DELAY_FACTOR)
    return max(factors)


def clamp_speed(multiplier: Any) -> float:
    """Clamp to [0.25, 3.0]; anything that is not a finite number becomes 1.0."""
    if isinstance(multiplier, bool) or not isinstance(multiplier, (int, float)):
        return DEFAULT_SPEED
    if math.isnan(multiplier):
        return DEFAULT_SPEED
    return max(MIN_SPEED, min(MAX_SPEED, float(multiplier)))


def narration_text(move: Move, emotional: Optional[EmotionalMove] = None) -> str:
    """Spoken line for one move: number and SAN, what it did, flags, then the emotional narrative."""
    parts = [f"Move {move.move_number}: {move.notation}."]
    if move.annotation:
        parts.append(move.annotation)
    if move.is_brilliant:
        parts.append(BRILLIANT_PHRASE)
    elif move.is_blunder:
        parts.append(BLUNDER_PHRASE)
    if emotional is not None and emotional.narrative:
        parts.append(emotional.narrative)
    return " ".join(parts)


class ReplayController:
    """
    Drives one replay session.

    Args:
        scheduler: Timer source (AsyncioScheduler live, VirtualScheduler in tests).
        synthesizer: Anything with ``async synthesize(text, voice_mode, tone)``.
            Narration is skipped when None or when the config disables it.
        config: ReplayConfig for this session.
        audio_sink: Where narration audio goes; defaults to NullAudioSink.
        on_state_change: Called with a ReplaySession snapshot after every change.
        on_narration_error: Called with ``(move_index, error)`` when narration fails.
    """

    def __init__(
        self,
        scheduler: Scheduler,
        synthesizer: Any = None,
        config: Optional[ReplayConfig] = None,
        audio_sink: Optional[AudioSink] = None,
        on_state_change: Optional[Callable[[ReplaySession], None]] = None,
        on_narration_error: Optional[Callable[[int, Exception], None]] = None,
    ):
        self.scheduler = scheduler
        self.synthesizer = synthesizer
        self.config = config or ReplayConfig()
        self.audio_sink = audio_sink or NullAudioSink()
        self.on_state_change = on_state_change
        self.on_narration_error = on_narration_error

        self.state = ReplayState.IDLE
        self.moves: List[Move] = []
        self.annotations: List[EmotionalMove] = []
        self.starting_fen = chess.STARTING_FEN
        self.current_index = -1
        self.speed = DEFAULT_SPEED
        self._board = chess.Board()

        self.narrations: List[Dict[str, Any]] = []
        self.user_annotations: List[Dict[str, Any]] = []

        self._generation = 0
        self._timer: Optional[TimerHandle] = None
        self._narration_tasks: Set[asyncio.Task] = set()

    # -------------------------------------------------------------------------
    # Introspection
    # -------------------------------------------------------------------------

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def position(self) -> str:
        return self._board.fen()

    @property
    def is_playing(self) -> bool:
        return self.state == ReplayState.PLAYING

    @property
    def last_index(self) -> int:
        return len(self.moves) - 1

    def snapshot(self) -> ReplaySession:
        return ReplaySession(
            moves=list(self.moves),
            annotations=list(self.annotations),
            current_index=self.current_index,
            is_playing=self.is_playing,
            playback_speed_multiplier=self.speed,
            position=self.position,
            state=self.state,
        )

    def _emit(self) -> None:
        if self.on_state_change is not None:
            self.on_state_change(self.snapshot())

    # -------------------------------------------------------------------------
    # Loading
    # -------------------------------------------------------------------------

    def load(self, pgn_text: str, heatmap: Optional[EmotionHeatmap] = None) -> ExtractionResult:
        """
        Parse ``pgn_text`` and load it. Malformed PGN leaves the controller
        Idle; the returned result carries the error.
        """
        result = extract_moves(pgn_text)
        if not result.is_valid:
            logger.info("Replay load rejected: %s", result.error)
            self.unload()
            return result
        annotations = list(heatmap.moves) if heatmap is not None else []
        self.load_moves(result.moves, annotations, result.starting_fen)
        return result

    def load_moves(
        self,
        moves: List[Move],
        annotations: Optional[List[EmotionalMove]] = None,
        starting_fen: str = chess.STARTING_FEN,
    ) -> None:
        """
        Load already-extracted moves. Any state -> Ready at index -1.

        Raises:
            StateError: ``starting_fen`` is not a valid position.
        """
        try:
            board = chess.Board(starting_fen)
        except ValueError as e:
            raise StateError(f"Invalid starting position {starting_fen!r}: {e}") from e

        self._invalidate()
        self.moves = list(moves)
        self.annotations = list(annotations or [])
        self.starting_fen = starting_fen
        self.current_index = -1
        self._board = board
        self.narrations = []
        self.user_annotations = []
        self.state = ReplayState.READY if self.moves else ReplayState.IDLE
        logger.debug("Replay loaded: %d moves", len(self.moves))
        self._emit()

    def unload(self) -> None:
        """Drop the loaded game and return to Idle."""
        self._invalidate()
        self.moves = []
        self.annotations = []
        self.starting_fen = chess.STARTING_FEN
        self.current_index = -1
        self._board = chess.Board()
        self.state = ReplayState.IDLE
        self._emit()

    # -------------------------------------------------------------------------
    # Transport
    # -------------------------------------------------------------------------

    def play(self) -> None:
        """Ready/Paused -> Playing. At the final move, go straight to Finished."""
        if self.state not in (ReplayState.READY, ReplayState.PAUSED):
            logger.debug("play() ignored in state %s", self.state.value)
            return

        if self.current_index >= self.last_index:
            self.state = ReplayState.FINISHED
            self._emit()
            return

        self.state = ReplayState.PLAYING
        self._emit()
        self._schedule_next()

    resume = play

    def pause(self) -> None:
        """Playing -> Paused; cancels the pending advance and any narration in flight."""
        if self.state != ReplayState.PLAYING:
            return
        self._invalidate()
        self.state = ReplayState.PAUSED
        self._emit()

    def seek(self, index: int) -> None:
        """
        Jump to ``index`` (clamped to [-1, last]). The board is rebuilt from
        the initial position.
        """
        if not self.moves:
            self.state = ReplayState.IDLE
            return

        try:
            target = int(index)
        except (TypeError, ValueError):
            target = -1
        target = max(-1, min(target, self.last_index))

        self._invalidate()
        self.current_index = target
        self._board = board_at(self.moves, target, self.starting_fen)
        self.state = ReplayState.READY if target == -1 else ReplayState.PAUSED
        self._emit()

    def set_speed(self, multiplier: Any) -> float:
        """Clamp and store the speed. Only later scheduling is affected."""
        self.speed = clamp_speed(multiplier)
        self._emit()
        return self.speed

    # -------------------------------------------------------------------------
    # Timing
    # -------------------------------------------------------------------------

    def base_delay(self) -> float:
        return self.config.base_delay_seconds / self.speed

    def delay_after(self, index: int) -> float:
        """Pause before the next advance, given that move ``index`` is on the board."""
        base = self.base_delay()
        if index < 0 or not self.config.cinematic_mode:
            return base
        return base * cinematic_factor(self.moves[index])

    def _invalidate(self) -> None:
        self._generation += 1
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        # narration in flight (synthesis or sink playback) stops with the generation
        for task in list(self._narration_tasks):
            task.cancel()

    def _schedule_next(self) -> None:
        delay = self.delay_after(self.current_index)
        self._timer = self.scheduler.call_later(delay, self._advance, self._generation)

    def _advance(self, generation: int) -> None:
        if generation != self._generation or self.state != ReplayState.PLAYING:
            return
        self._timer = None

        index = self.current_index + 1
        move = self.moves[index]
        self._board.push(chess.Move.from_uci(move.uci))
        self.current_index = index
        if index == self.last_index:
            self.state = ReplayState.FINISHED
        self._emit()

        if self._narration_enabled():
            loop = asyncio.get_running_loop()
            task = loop.create_task(self._narrate(index, generation))
            self._narration_tasks.add(task)
            task.add_done_callback(self._narration_tasks.discard)
        else:
            self._continue(generation)

    def _continue(self, generation: int) -> None:
        if generation == self._generation and self.state == ReplayState.PLAYING:
            self._schedule_next()

    # -------------------------------------------------------------------------
    # Narration
    # -------------------------------------------------------------------------

    def _narration_enabled(self) -> bool:
        return self.config.voice_narration_enabled and self.synthesizer is not None

    def annotation_for(self, index: int) -> Optional[EmotionalMove]:
        if 0 <= index < len(self.annotations):
            return self.annotations[index]
        return None

    def voice_for(self, index: int) -> Optional[VoiceMode]:
        """Configured mode, else one chosen from the move's dominant emotion (None = auto)."""
        if self.config.voice_mode is not None:
            return self.config.voice_mode
        emotional = self.annotation_for(index)
        if emotional is None:
            return None
        return AXIS_VOICE_MODES[emotional.emotions.dominant_axis()]

    def tone_for(self, index: int) -> str:
        emotional = self.annotation_for(index)
        if emotional is not None and emotional.intensity in DRAMATIC_INTENSITIES:
            return "dramatic"
        return "neutral"

    async def _narrate(self, index: int, generation: int) -> None:
        text = narration_text(self.moves[index], self.annotation_for(index))
        mode = self.voice_for(index)
        tone = self.tone_for(index)
        try:
            audio = await self.synthesizer.synthesize(text, mode.value if mode else None, tone)
            if generation != self._generation:
                logger.debug("Dropping stale narration for move %d", index)
                return
            await self.audio_sink.play(index, text, audio)
            self.narrations.append({
                "move_index": index,
                "text": text,
                "voice_mode": mode.value if mode else None,
                "tone": tone,
                "timestamp": time.time(),
            })
        except SynthesisError as e:
            logger.warning("Narration failed for move %d, advancing silently: %s", index, e)
            self._report_narration_error(index, e, generation)
        except Exception as e:
            logger.exception("Audio playback failed for move %d", index)
            self._report_narration_error(index, e, generation)
        finally:
            self._continue(generation)

    def _report_narration_error(self, index: int, error: Exception, generation: int) -> None:
        if generation == self._generation and self.on_narration_error is not None:
            self.on_narration_error(index, error)

    async def wait_for_narration(self) -> None:
        """Wait until no narration is in flight. Cancelled narration counts as finished."""
        while self._narration_tasks:
            await asyncio.wait(set(self._narration_tasks))

    # -------------------------------------------------------------------------
    # Session extras
    # -------------------------------------------------------------------------

    def add_user_annotation(self, index: int, text: str) -> None:
        self.user_annotations.append({
            "move_index": index,
            "text": f"{USER_NOTE_PREFIX}{text}",
            "timestamp": time.time(),
        })

    def export_session(self) -> Dict[str, Any]:
        """Serializable dump of the session for saving or sharing."""
        return {
            "session": self.snapshot().to_dict(),
            "starting_fen": self.starting_fen,
            "config": self.config.to_dict(),
            "narrations": list(self.narrations),
            "user_annotations": list(self.user_annotations),
            "exported_at": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
        }
