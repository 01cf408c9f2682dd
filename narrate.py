"""Command-line runner: emotional narration of a PGN game."""

import argparse
import asyncio
import json
import sys
from pathlib import Path

from narrator.config import configure_logging, get_settings
from narrator.heatmap import key_moments
from narrator.narration_types import EMOTION_AXES, NarrativeStyle, ReplayState
from narrator.pipeline import NarrationEngine, build_engine
from narrator.scheduler import AsyncioScheduler

INTENSITY_MARKERS = {
    "low": "  ",
    "medium": "· ",
    "high": "! ",
    "critical": "!!",
}


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Emotion heat map and narrated replay for a chess game")
    parser.add_argument("pgn_file", help="Path to a PGN file (first game is used)")
    parser.add_argument("--style", default="dramatic",
                        choices=[s.value for s in NarrativeStyle],
                        help="Narrative style for the summary")
    parser.add_argument("--json", action="store_true", help="Print the heat map as JSON and exit")
    parser.add_argument("--replay", action="store_true", help="Replay the game in real time")
    parser.add_argument("--speed", type=float, default=1.0, help="Replay speed multiplier (0.25-3.0)")
    parser.add_argument("--narrate", action="store_true",
                        help="Synthesize narration during replay (needs ELEVENLABS_API_KEY)")
    return parser.parse_args(argv)


def print_report(heatmap, game_info, adaptations):
    print("\n" + "=" * 70)
    white = game_info.white or "?"
    black = game_info.black or "?"
    print(f"♟️  {white} vs {black}" + (f"  ({game_info.result})" if game_info.result else ""))
    print("=" * 70)
    print(f"\n📖 {heatmap.overall_arc}\n")

    for move in heatmap.moves:
        marker = INTENSITY_MARKERS.get(move.intensity.value, "  ")
        scores = " ".join(f"{axis[0].upper()}{move.emotions.get(axis):>5.1f}" for axis in EMOTION_AXES)
        print(f"{marker} {move.move_number:>3}. {move.move:<8} {scores}  {move.narrative}")

    print("\n🔥 Peaks")
    for axis in EMOTION_AXES:
        peaks = heatmap.peaks.get(axis, [])
        listed = ", ".join(f"{p.move_number}. {p.move} ({p.emotions.get(axis):.0f})" for p in peaks) or "-"
        print(f"   {axis:<10} {listed}")

    print(f"\n🎭 {adaptations.style.value.title()}")
    print(f"   {adaptations.primary}")
    print("=" * 70 + "\n")


async def run_replay(engine: NarrationEngine, pgn_text, heatmap, speed, narrate):
    finished = asyncio.Event()
    last_printed = [-1]

    def on_state_change(session):
        index = session.current_index
        if index > last_printed[0]:
            last_printed[0] = index
            move = session.moves[index]
            note = heatmap.moves[index].narrative if index < len(heatmap.moves) else move.annotation
            print(f"▶️  {move.move_number}{'.' if move.color == 'white' else '...'} {move.notation:<8} {note}")
        if session.state == ReplayState.FINISHED:
            finished.set()

    def on_narration_error(move_index, error):
        print(f"   🔇 narration unavailable for ply {move_index + 1}: {error}")

    config = {"voiceNarrationEnabled": narrate, "cinematicMode": True}
    replay = engine.create_replay_session(
        pgn_text,
        heatmap,
        config,
        scheduler=AsyncioScheduler(),
        on_state_change=on_state_change,
        on_narration_error=on_narration_error,
    )
    if replay.state == ReplayState.IDLE:
        print("❌ Nothing to replay")
        return

    replay.set_speed(speed)
    replay.play()
    await finished.wait()
    await replay.wait_for_narration()
    print(f"\n⏹️  Replay finished: {replay.position}")


def main(argv=None):
    args = parse_args(argv)
    settings = get_settings()
    configure_logging(settings.log_level)

    path = Path(args.pgn_file)
    try:
        pgn_text = path.read_text(encoding="utf-8")
    except OSError as e:
        print(f"❌ Cannot read {path}: {e}")
        return 1

    engine = build_engine(settings)
    extraction, heatmap = engine.analyze_pgn(pgn_text)
    if not extraction.is_valid:
        print(f"❌ Invalid PGN: {extraction.error}")
        return 1

    if args.json:
        payload = heatmap.to_dict()
        payload["gameInfo"] = extraction.game_info.to_dict()
        print(json.dumps(payload, indent=2))
        return 0

    summary = " ".join([heatmap.overall_arc] + [m.narrative for m in key_moments(heatmap.moves, limit=3)])
    adaptations = engine.adapt_narrative(summary, heatmap, args.style)
    print_report(heatmap, extraction.game_info, adaptations)

    if args.replay:
        narrate = args.narrate and engine.voice_available
        if args.narrate and not narrate:
            print("ℹ️  ELEVENLABS_API_KEY not set; replaying without narration")
        try:
            asyncio.run(run_replay(engine, pgn_text, heatmap, args.speed, narrate))
        except KeyboardInterrupt:
            print("\n⏸️  Replay interrupted by user")
            return 1

    return 0


if __name__ == '__main__':
    sys.exit(main())
