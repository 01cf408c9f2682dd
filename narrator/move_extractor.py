"""
PGN Move Extraction

Turns a PGN transcript into an ordered list of legal moves with the
position each one produced. Legality and position tracking are delegated
to python-chess.

Fails soft: a malformed transcript comes back as ``is_valid=False`` with
an empty move list, never as an exception.
"""

from __future__ import annotations

import io
import logging
import re
from typing import List, Optional

import chess
import chess.pgn

from .errors import InputError
from .narration_types import ExtractionResult, GameInfo, Move

logger = logging.getLogger(__name__)

# Reject absurd inputs before python-chess sees them
MAX_PGN_LENGTH = 100_000

_TAG_RE = re.compile(r'\[(\w+)\s+"([^"]*)"\]')

# =============================================================================
# HEURISTIC EVALUATION
# =============================================================================
# Material count plus a mobility term. This is NOT an engine evaluation and
# the brilliant/blunder labels derived from it can mislabel real positions.

PIECE_VALUES = {
    chess.PAWN: 1,
    chess.KNIGHT: 3,
    chess.BISHOP: 3,
    chess.ROOK: 5,
    chess.QUEEN: 9,
    chess.KING: 0,
}

CHECK_PENALTY = 0.5
MOBILITY_WEIGHT = 0.1
BLUNDER_EVAL_THRESHOLD = 3.0
BRILLIANT_EVAL_THRESHOLD = 2.0


def material_balance(board: chess.Board) -> int:
    """Material count, White positive."""
    total = 0
    for piece_type, value in PIECE_VALUES.items():
        total += value * len(board.pieces(piece_type, chess.WHITE))
        total -= value * len(board.pieces(piece_type, chess.BLACK))
    return total


def heuristic_evaluation(board: chess.Board) -> float:
    """Material, a check penalty for the side to move, and mobility for the side to move."""
    evaluation = float(material_balance(board))
    sign = 1 if board.turn == chess.WHITE else -1

    if board.is_check():
        evaluation -= sign * CHECK_PENALTY

    mobility = board.legal_moves.count()
    evaluation += sign * mobility * MOBILITY_WEIGHT

    return round(evaluation, 2)


def _annotate(board_after: chess.Board, captured: Optional[str], promotion: Optional[str],
              is_castle: bool, is_en_passant: bool) -> str:
    """Short plain-English description of what the move did."""
    if board_after.is_checkmate():
        return "Checkmate! Game over."
    if board_after.is_stalemate():
        return "Stalemate - the game is drawn."

    notes = []
    if board_after.is_check():
        notes.append("Gives check")
    if captured:
        notes.append(f"Captures the {captured}")
    if promotion:
        notes.append(f"Promotes to {promotion}")
    if is_castle:
        notes.append("Castles")
    if is_en_passant:
        notes.append("En passant capture")

    return ". ".join(notes) + "." if notes else "Develops the position."


# =============================================================================
# PARSING
# =============================================================================


def extract_game_info(pgn_text: str) -> GameInfo:
    """Read tag pairs straight off the raw text. Missing tags stay None."""
    tags = {}
    for key, value in _TAG_RE.findall(pgn_text or ""):
        tags.setdefault(key.lower(), value)

    return GameInfo(
        white=tags.get("white"),
        black=tags.get("black"),
        event=tags.get("event"),
        date=tags.get("date"),
        result=tags.get("result"),
        site=tags.get("site"),
    )


def _read_game(pgn_text: str) -> chess.pgn.Game:
    if not isinstance(pgn_text, str) or not pgn_text.strip():
        raise InputError("PGN text is empty")
    if len(pgn_text) > MAX_PGN_LENGTH:
        raise InputError(f"PGN text exceeds {MAX_PGN_LENGTH} characters")

    try:
        game = chess.pgn.read_game(io.StringIO(pgn_text))
    except (ValueError, IndexError) as e:
        raise InputError(f"Unreadable PGN: {e}") from e

    if game is None:
        raise InputError("No game found in PGN text")
    if game.errors:
        raise InputError(f"Illegal or malformed movetext: {game.errors[0]}")
    if game.next() is None and not _TAG_RE.search(pgn_text):
        raise InputError("No moves or tag pairs found")
    if any(not move for move in game.mainline_moves()):
        raise InputError("Null moves cannot be replayed")
    return game


def _build_move(board: chess.Board, move: chess.Move, index: int) -> Move:
    """Describe ``move`` and push it onto ``board``."""
    color = "white" if board.turn == chess.WHITE else "black"
    move_number = board.fullmove_number
    san = board.san(move)

    captured = None
    is_en_passant = board.is_en_passant(move)
    if is_en_passant:
        captured = chess.piece_name(chess.PAWN)
    elif board.is_capture(move):
        victim = board.piece_at(move.to_square)
        if victim is not None:
            captured = chess.piece_name(victim.piece_type)

    promotion = chess.piece_name(move.promotion) if move.promotion else None
    gives_check = board.gives_check(move)
    is_castle = board.is_castling(move)

    board.push(move)

    evaluation = heuristic_evaluation(board)
    is_blunder = abs(evaluation) > BLUNDER_EVAL_THRESHOLD and captured is None
    is_brilliant = evaluation > BRILLIANT_EVAL_THRESHOLD or (captured is not None and evaluation > 0)

    return Move(
        index=index,
        notation=san,
        uci=move.uci(),
        resulting_position=board.fen(),
        color=color,
        move_number=move_number,
        captured=captured,
        promotion=promotion,
        gives_check=gives_check,
        is_castle=is_castle,
        is_checkmate=board.is_checkmate(),
        is_en_passant=is_en_passant,
        evaluation=evaluation,
        annotation=_annotate(board, captured, promotion, is_castle, is_en_passant),
        is_brilliant=is_brilliant,
        is_blunder=is_blunder,
    )


def extract_moves(pgn_text: str) -> ExtractionResult:
    """
    Parse PGN text into moves and metadata.

    Args:
        pgn_text: A single game in PGN; tag pairs are optional.

    Returns:
        ExtractionResult. ``is_valid`` is False (with ``error`` set) for
        malformed input; the move list is then empty.
    """
    game_info = extract_game_info(pgn_text if isinstance(pgn_text, str) else "")

    try:
        game = _read_game(pgn_text)
    except InputError as e:
        logger.info("Rejected PGN: %s", e)
        return ExtractionResult(is_valid=False, game_info=game_info, error=str(e))

    board = game.board()
    starting_fen = board.fen()
    moves: List[Move] = []
    for index, move in enumerate(game.mainline_moves()):
        moves.append(_build_move(board, move, index))

    logger.debug("Extracted %d moves (%s vs %s)", len(moves), game_info.white, game_info.black)
    return ExtractionResult(
        is_valid=True,
        moves=moves,
        game_info=game_info,
        starting_fen=starting_fen,
    )


def board_at(moves: List[Move], index: int, starting_fen: str = chess.STARTING_FEN) -> chess.Board:
    """
    Rebuild the board after ``moves[0..index]`` by replaying from the start.

    ``index == -1`` yields the starting position. Indices past the end are
    clamped to the last move.
    """
    board = chess.Board(starting_fen)
    last = max(-1, min(index, len(moves) - 1))
    for move in moves[:last + 1]:
        board.push(chess.Move.from_uci(move.uci))
    return board
