"""Tests for replay playback, timing and narration ordering."""

import asyncio
import unittest

import chess

from narrator.config import ReplayConfig
from narrator.errors import StateError, SynthesisError
from narrator.narration_types import (
    EmotionalMove,
    EmotionVector,
    Intensity,
    Move,
    ReplayState,
    VoiceMode,
)
from narrator.replay_controller import (
    AudioSink,
    ReplayController,
    cinematic_factor,
    clamp_speed,
    narration_text,
)
from narrator.scheduler import VirtualScheduler

# e4 e5 Nf3 Nc6 Bb5 a6 Bxc6 dxc6 O-O: captures at plies 6 and 7, castling at 8
RUY_EXCHANGE = "1. e4 e5 2. Nf3 Nc6 3. Bb5 a6 4. Bxc6 dxc6 5. O-O *"
SCHOLARS_MATE = "1. e4 e5 2. Qh5 Nc6 3. Bc4 Nf6 4. Qxf7# 1-0"


def make_move(**overrides):
    fields = dict(
        index=0, notation="e4", uci="e2e4", resulting_position="fen",
        color="white", move_number=1,
    )
    fields.update(overrides)
    return Move(**fields)


def make_emotional(tension=10, hope=10, aggression=10, collapse=10,
                   intensity=Intensity.LOW, narrative="A quiet start."):
    return EmotionalMove(
        move_number=1,
        move="e4",
        position_ref="fen",
        emotions=EmotionVector(tension=tension, hope=hope, aggression=aggression, collapse=collapse),
        narrative=narrative,
        intensity=intensity,
    )


class TestHelpers(unittest.TestCase):
    """Tests for replay timing and narration helpers."""

    def test_cinematic_factor_takes_largest(self):
        """Test that the largest applicable factor wins."""
        self.assertEqual(cinematic_factor(make_move()), 1.0)
        self.assertEqual(cinematic_factor(make_move(captured="pawn")), 1.5)
        self.assertEqual(cinematic_factor(make_move(gives_check=True)), 1.3)
        self.assertEqual(cinematic_factor(make_move(captured="pawn", gives_check=True)), 1.5)
        self.assertEqual(cinematic_factor(make_move(is_castle=True, gives_check=True)), 2.0)
        self.assertEqual(cinematic_factor(make_move(promotion="queen", captured="rook")), 2.0)

    def test_clamp_speed(self):
        """Test clamping and rejecting playback speeds."""
        self.assertEqual(clamp_speed(2.0), 2.0)
        self.assertEqual(clamp_speed(10), 3.0)
        self.assertEqual(clamp_speed(0.1), 0.25)
        self.assertEqual(clamp_speed(-1), 0.25)
        self.assertEqual(clamp_speed("fast"), 1.0)
        self.assertEqual(clamp_speed(None), 1.0)
        self.assertEqual(clamp_speed(True), 1.0)
        self.assertEqual(clamp_speed(float("nan")), 1.0)
        self.assertEqual(clamp_speed(float("inf")), 3.0)

    def test_narration_text(self):
        """Test building the spoken line for a move."""
        move = make_move(annotation="Pawn advances to e4.")
        self.assertEqual(narration_text(move), "Move 1: e4. Pawn advances to e4.")

        brilliant = make_move(is_brilliant=True)
        self.assertEqual(
            narration_text(brilliant, make_emotional(narrative="Hope rises.")),
            "Move 1: e4. What a brilliant move! Hope rises.",
        )

        blunder = make_move(is_blunder=True)
        self.assertTrue(narration_text(blunder).endswith("appears to be a blunder."))


class ReplayTestMixin:

    def make_controller(self, pgn=RUY_EXCHANGE, config=None, synthesizer=None, **kwargs):
        self.scheduler = VirtualScheduler()
        self.snapshots = []
        controller = ReplayController(
            self.scheduler,
            synthesizer=synthesizer,
            config=config or ReplayConfig(),
            on_state_change=self.snapshots.append,
            **kwargs
        )
        if pgn is not None:
            controller.load(pgn)
        return controller


class TestPlayback(ReplayTestMixin, unittest.TestCase):
    """Tests for replay state, timing and seeking."""

    def test_load(self):
        """Test loading a game into a ready session."""
        controller = self.make_controller()

        self.assertEqual(controller.state, ReplayState.READY)
        self.assertEqual(len(controller.moves), 9)
        self.assertEqual(controller.current_index, -1)
        self.assertEqual(controller.position, chess.STARTING_FEN)
        self.assertEqual(self.snapshots[-1].state, ReplayState.READY)

    def test_invalid_load_leaves_idle(self):
        """Test that a bad game leaves the session idle."""
        controller = self.make_controller()
        result = controller.load("1. e4 e5 2. Ke3")

        self.assertFalse(result.is_valid)
        self.assertEqual(controller.state, ReplayState.IDLE)
        self.assertEqual(controller.moves, [])

        controller.play()
        self.assertEqual(controller.state, ReplayState.IDLE)
        self.assertEqual(self.scheduler.pending, 0)

    def test_first_advance_after_base_delay(self):
        """Test that the first move lands after the base delay."""
        controller = self.make_controller()
        controller.play()

        self.assertEqual(controller.state, ReplayState.PLAYING)
        self.assertEqual(self.scheduler.next_due(), 1.0)

        self.scheduler.advance(0.9)
        self.assertEqual(controller.current_index, -1)
        self.scheduler.advance(0.1)
        self.assertEqual(controller.current_index, 0)
        self.assertEqual(controller.position, controller.moves[0].resulting_position)

    def test_plays_to_finish(self):
        """Test playing through to the last move."""
        controller = self.make_controller()
        controller.play()
        self.scheduler.run_until_idle()

        self.assertEqual(controller.state, ReplayState.FINISHED)
        self.assertEqual(controller.current_index, 8)
        self.assertEqual(controller.position, controller.moves[-1].resulting_position)
        self.assertFalse(controller.is_playing)
        self.assertEqual(self.scheduler.pending, 0)
        # first advance at 1.0, then 1.0 after each quiet move and 1.5 after each capture
        self.assertAlmostEqual(self.scheduler.time(), 10.0)

    def test_position_matches_index_in_every_snapshot(self):
        """Test that every snapshot shows the position for its index."""
        controller = self.make_controller()
        controller.play()
        self.scheduler.advance(3.0)
        controller.seek(6)
        controller.play()
        self.scheduler.run_until_idle()
        controller.seek(-1)

        for snapshot in self.snapshots:
            if snapshot.current_index == -1:
                self.assertEqual(snapshot.position, chess.STARTING_FEN)
            else:
                self.assertEqual(snapshot.position, controller.moves[snapshot.current_index].resulting_position)

    def test_capture_lengthens_next_delay(self):
        """Test that a capture stretches the following delay."""
        controller = self.make_controller()
        controller.seek(6)  # Bxc6 on the board
        controller.play()

        self.scheduler.advance(1.4)
        self.assertEqual(controller.current_index, 6)
        self.scheduler.advance(0.2)
        self.assertEqual(controller.current_index, 7)

    def test_cinematic_mode_off(self):
        """Test that cinematic mode off uses the base delay."""
        controller = self.make_controller(config=ReplayConfig(cinematic_mode=False))
        controller.seek(6)

        self.assertEqual(controller.delay_after(6), 1.0)
        self.assertEqual(controller.delay_after(8), 1.0)

    def test_pause_and_resume(self):
        """Test pausing and resuming playback."""
        controller = self.make_controller()
        controller.play()
        self.scheduler.advance(1.0)
        controller.pause()

        self.assertEqual(controller.state, ReplayState.PAUSED)
        self.assertEqual(self.scheduler.pending, 0)
        self.scheduler.advance(10.0)
        self.assertEqual(controller.current_index, 0)

        controller.resume()
        self.assertEqual(controller.state, ReplayState.PLAYING)
        self.scheduler.advance(1.0)
        self.assertEqual(controller.current_index, 1)

    def test_pause_outside_playing_is_ignored(self):
        """Test that pause does nothing unless playing."""
        controller = self.make_controller()
        generation = controller.generation
        controller.pause()

        self.assertEqual(controller.state, ReplayState.READY)
        self.assertEqual(controller.generation, generation)

    def test_play_while_playing_does_not_double_schedule(self):
        """Test that a second play keeps one pending advance."""
        controller = self.make_controller()
        controller.play()
        controller.play()

        self.assertEqual(self.scheduler.pending, 1)

    def test_seek_clamps(self):
        """Test that seek clamps to the move range."""
        controller = self.make_controller()

        controller.seek(100)
        self.assertEqual(controller.current_index, 8)
        self.assertEqual(controller.state, ReplayState.PAUSED)
        self.assertEqual(controller.position, controller.moves[8].resulting_position)

        controller.seek(-5)
        self.assertEqual(controller.current_index, -1)
        self.assertEqual(controller.state, ReplayState.READY)
        self.assertEqual(controller.position, chess.STARTING_FEN)

    def test_seek_while_playing_cancels_pending_advance(self):
        """Test that seeking drops the pending advance."""
        controller = self.make_controller()
        controller.play()
        controller.seek(3)

        self.assertEqual(controller.state, ReplayState.PAUSED)
        self.assertEqual(self.scheduler.pending, 0)
        self.scheduler.advance(5.0)
        self.assertEqual(controller.current_index, 3)

    def test_play_at_last_move_finishes(self):
        """Test that play at the last move finishes at once."""
        controller = self.make_controller()
        controller.seek(8)
        controller.play()

        self.assertEqual(controller.state, ReplayState.FINISHED)
        self.assertEqual(self.scheduler.pending, 0)

    def test_finished_can_seek_and_replay(self):
        """Test replaying a finished session after a seek."""
        controller = self.make_controller()
        controller.play()
        self.scheduler.run_until_idle()
        controller.seek(-1)
        controller.play()
        self.scheduler.advance(1.0)

        self.assertEqual(controller.current_index, 0)
        self.assertEqual(controller.state, ReplayState.PLAYING)

    def test_speed(self):
        """Test setting playback speed."""
        controller = self.make_controller()

        self.assertEqual(controller.set_speed(10), 3.0)
        self.assertEqual(controller.set_speed(0.1), 0.25)
        self.assertEqual(controller.set_speed("fast"), 1.0)
        self.assertEqual(controller.set_speed(2), 2.0)
        self.assertEqual(controller.base_delay(), 0.5)

    def test_speed_change_applies_to_next_delay(self):
        """Test that a speed change affects the next delay only."""
        controller = self.make_controller()
        controller.play()
        controller.set_speed(2.0)

        self.assertEqual(self.scheduler.next_due(), 1.0)
        self.scheduler.advance(1.0)
        self.assertEqual(self.scheduler.next_due(), 1.5)

    def test_narration_without_synthesizer_plays_silently(self):
        """Test that narration without a synthesizer plays silently."""
        controller = self.make_controller(config=ReplayConfig(voice_narration_enabled=True))
        controller.play()
        self.scheduler.run_until_idle()

        self.assertEqual(controller.state, ReplayState.FINISHED)
        self.assertEqual(controller.narrations, [])

    def test_unload(self):
        """Test unloading back to idle."""
        controller = self.make_controller()
        controller.seek(4)
        controller.unload()

        self.assertEqual(controller.state, ReplayState.IDLE)
        self.assertEqual(controller.position, chess.STARTING_FEN)
        controller.seek(2)
        self.assertEqual(controller.state, ReplayState.IDLE)

    def test_voice_and_tone_choice(self):
        """Test voice and tone choice from annotations and config."""
        controller = self.make_controller(pgn=None)
        controller.load_moves(
            [make_move()],
            [make_emotional(hope=80, intensity=Intensity.HIGH)],
        )

        self.assertEqual(controller.voice_for(0), VoiceMode.ENTHUSIASTIC_COMMENTATOR)
        self.assertEqual(controller.tone_for(0), "dramatic")
        self.assertIsNone(controller.voice_for(5))
        self.assertEqual(controller.tone_for(5), "neutral")

        controller.config = ReplayConfig(voice_mode=VoiceMode.WHISPER_MODE)
        self.assertEqual(controller.voice_for(0), VoiceMode.WHISPER_MODE)

    def test_user_annotations_and_export(self):
        """Test user notes and the session export."""
        controller = self.make_controller()
        controller.seek(2)
        controller.add_user_annotation(2, "Developing with tempo")

        exported = controller.export_session()

        self.assertEqual(exported["user_annotations"][0]["text"], "User note: Developing with tempo")
        self.assertEqual(exported["user_annotations"][0]["move_index"], 2)
        self.assertEqual(exported["session"]["current_index"], 2)
        self.assertEqual(exported["session"]["state"], "paused")
        self.assertEqual(exported["config"]["cinematicMode"], True)
        self.assertEqual(exported["starting_fen"], chess.STARTING_FEN)
        self.assertIn("exported_at", exported)

    def test_load_moves_rejects_bad_starting_position(self):
        """Test that an invalid starting FEN raises StateError and keeps the loaded game."""
        controller = self.make_controller()
        controller.seek(3)

        with self.assertRaises(StateError):
            controller.load_moves([make_move()], starting_fen="not a position")

        self.assertEqual(len(controller.moves), 9)
        self.assertEqual(controller.current_index, 3)
        self.assertEqual(controller.state, ReplayState.PAUSED)
        self.assertEqual(controller.position, controller.moves[3].resulting_position)


class FakeSynthesizer:

    def __init__(self, controller_ref=None, error=None, gate=None):
        self.calls = []
        self.error = error
        self.gate = gate
        self.controller_ref = controller_ref

    async def synthesize(self, text, voice_mode=None, tone=None):
        index_at_call = self.controller_ref().current_index if self.controller_ref else None
        self.calls.append({"text": text, "voice_mode": voice_mode, "tone": tone, "index": index_at_call})
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return b"audio"


class RecordingSink(AudioSink):

    def __init__(self):
        self.played = []

    async def play(self, move_index, text, audio):
        self.played.append((move_index, audio))


class GatedSink(AudioSink):

    def __init__(self):
        self.release = asyncio.Event()
        self.active = set()
        self.overlaps = []
        self.cancelled = []

    async def play(self, move_index, text, audio):
        if self.active:
            self.overlaps.append((sorted(self.active), move_index))
        self.active.add(move_index)
        try:
            await self.release.wait()
        except asyncio.CancelledError:
            self.cancelled.append(move_index)
            raise
        finally:
            self.active.discard(move_index)


class TestNarratedPlayback(ReplayTestMixin, unittest.IsolatedAsyncioTestCase):
    """Tests for playback with voice narration."""

    def make_narrated(self, synthesizer, **kwargs):
        self.sink = RecordingSink()
        self.errors = []
        return self.make_controller(
            pgn=SCHOLARS_MATE,
            config=ReplayConfig(voice_narration_enabled=True, **kwargs),
            synthesizer=synthesizer,
            audio_sink=self.sink,
            on_narration_error=lambda index, error: self.errors.append((index, error)),
        )

    async def play_through(self, controller):
        controller.play()
        for _ in range(50):
            if controller.state == ReplayState.FINISHED:
                break
            self.scheduler.advance(10.0)
            await controller.wait_for_narration()
        await controller.wait_for_narration()

    async def test_board_moves_before_narration_and_waits_for_it(self):
        """Test that the board moves first and the next advance waits for narration."""
        synth = FakeSynthesizer()
        controller = self.make_narrated(synth)
        synth.controller_ref = lambda: controller

        controller.play()
        self.scheduler.advance(1.0)

        self.assertEqual(controller.current_index, 0)
        self.assertEqual(self.scheduler.pending, 0)

        await controller.wait_for_narration()
        self.assertEqual(synth.calls[0]["index"], 0)
        self.assertTrue(synth.calls[0]["text"].startswith("Move 1: e4."))
        self.assertEqual(self.sink.played, [(0, b"audio")])
        self.assertEqual(self.scheduler.pending, 1)

    async def test_narrates_every_move_in_order(self):
        """Test narrating every move in game order."""
        synth = FakeSynthesizer()
        controller = self.make_narrated(synth, voice_mode=VoiceMode.WHISPER_MODE)
        synth.controller_ref = lambda: controller

        await self.play_through(controller)

        self.assertEqual(controller.state, ReplayState.FINISHED)
        self.assertEqual([c["index"] for c in synth.calls], list(range(7)))
        self.assertEqual([i for i, _ in self.sink.played], list(range(7)))
        self.assertTrue(all(c["voice_mode"] == "whisper_mode" for c in synth.calls))
        self.assertEqual(len(controller.narrations), 7)
        self.assertEqual(self.errors, [])

    async def test_synthesis_failure_advances_silently(self):
        """Test that synthesis failures are reported and playback continues."""
        synth = FakeSynthesizer(error=SynthesisError("vendor down", status_code=503))
        controller = self.make_narrated(synth)

        await self.play_through(controller)

        self.assertEqual(controller.state, ReplayState.FINISHED)
        self.assertEqual(self.sink.played, [])
        self.assertEqual([i for i, _ in self.errors], list(range(7)))
        self.assertIsInstance(self.errors[0][1], SynthesisError)

    async def test_result_after_pause_is_dropped(self):
        """Test that audio arriving after a pause is not played."""
        gate = asyncio.Event()
        synth = FakeSynthesizer(gate=gate)
        controller = self.make_narrated(synth)

        controller.play()
        self.scheduler.advance(1.0)
        await asyncio.sleep(0)
        self.assertEqual(len(synth.calls), 1)

        controller.pause()
        gate.set()
        await controller.wait_for_narration()

        self.assertEqual(self.sink.played, [])
        self.assertEqual(controller.narrations, [])
        self.assertEqual(controller.state, ReplayState.PAUSED)
        self.assertEqual(self.scheduler.pending, 0)

    async def test_pause_stops_playing_narration_before_next_move(self):
        """Test that pause then play never lets two narrations overlap."""
        sink = GatedSink()
        controller = self.make_controller(
            pgn="1. e4 e5 2. Nf3 Nc6 *",
            config=ReplayConfig(voice_narration_enabled=True),
            synthesizer=FakeSynthesizer(),
            audio_sink=sink,
        )

        controller.play()
        self.scheduler.advance(1.0)
        for _ in range(10):
            if sink.active:
                break
            await asyncio.sleep(0)
        self.assertEqual(sink.active, {0})

        controller.pause()
        controller.play()
        self.scheduler.advance(5.0)
        for _ in range(10):
            await asyncio.sleep(0)

        self.assertEqual(controller.current_index, 1)
        self.assertEqual(sink.overlaps, [])
        self.assertEqual(sink.cancelled, [0])
        self.assertEqual(sink.active, {1})
        self.assertEqual(self.scheduler.pending, 0)

        controller.pause()
        await controller.wait_for_narration()
        self.assertEqual(sink.active, set())
        self.assertEqual(controller.narrations, [])

    async def test_auto_voice_without_heatmap(self):
        """Test automatic voice and neutral tone without annotations."""
        synth = FakeSynthesizer()
        controller = self.make_narrated(synth)

        controller.play()
        self.scheduler.advance(1.0)
        await controller.wait_for_narration()

        self.assertIsNone(synth.calls[0]["voice_mode"])
        self.assertEqual(synth.calls[0]["tone"], "neutral")


if __name__ == "__main__":
    unittest.main()
