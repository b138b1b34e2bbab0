"""Educational commentary for computer moves.

Produces the short "I played ..." explanation shown after the
computer replies, with a teaching point tied to the game phase.
"""

from __future__ import annotations

import chess

from guided_practice.models import MoveExplanation

_PIECE_NAMES = {
    chess.PAWN: "pawn",
    chess.KNIGHT: "knight",
    chess.BISHOP: "bishop",
    chess.ROOK: "rook",
    chess.QUEEN: "queen",
    chess.KING: "king",
}

_TEACHING_POINTS = {
    "opening": "Opening principles: Control center, develop pieces, castle early!",
    "middlegame": "Look for tactics, improve piece positions, and create threats.",
    "endgame": "In endgames, activate your king and push for promotion!",
    "tactical": "Look for forks, pins, skewers, and discovered attacks!",
}


def game_phase(board: chess.Board) -> str:
    """Classify the position as opening, endgame, tactical or middlegame."""
    plies = (board.fullmove_number - 1) * 2 + (0 if board.turn == chess.WHITE else 1)
    if plies < 20:
        return "opening"

    if chess.popcount(board.occupied) <= 12:
        return "endgame"

    captures = sum(1 for m in board.legal_moves if board.is_capture(m))
    checks = sum(1 for m in board.legal_moves if board.gives_check(m))
    if captures > 2 or checks > 0:
        return "tactical"

    return "middlegame"


def _opening_sentence(board: chess.Board, move: chess.Move, san: str) -> str:
    if board.piece_type_at(move.from_square) == chess.PAWN and san in ("e4", "e5", "d4", "d5"):
        return "This controls the center, following key opening principles."
    if san in ("Nf3", "Nc3", "Nf6", "Nc6"):
        return "This develops a knight toward the center, improving piece activity."
    if board.is_castling(move):
        return "Castling keeps the king safe while connecting the rooks."
    return "This follows sound opening principles."


def _middlegame_sentence(board: chess.Board, move: chess.Move) -> str:
    if board.is_capture(move):
        return "This wins material, which is often decisive in the middlegame."
    own_pieces = chess.popcount(board.occupied_co[board.turn])
    if own_pieces < 10:
        return "This improves piece coordination for the coming endgame."
    return "This creates strategic pressure and improves my position."


def _endgame_sentence(board: chess.Board, move: chess.Move) -> str:
    piece_type = board.piece_type_at(move.from_square)
    if piece_type == chess.KING:
        return "In endgames, the king becomes an active piece."
    if piece_type == chess.PAWN:
        return "Advancing pawns toward promotion is key in endgames."
    return "This follows endgame principles for optimal play."


def explain_move(board: chess.Board, move: chess.Move) -> MoveExplanation:
    """Explain a move about to be played from ``board``.

    Args:
        board: Position before the move. Not modified.
        move: A legal move in that position.

    Returns:
        MoveExplanation with text, teaching point and up to three
        alternative moves in SAN.
    """
    phase = game_phase(board)
    san = board.san(move)
    parts = [f"I played {san}."]
    teaching_point = _TEACHING_POINTS.get(phase)

    if board.is_capture(move):
        if board.is_en_passant(move):
            captured = chess.PAWN
        else:
            captured = board.piece_type_at(move.to_square)
        parts.append(
            f"This captures your {_PIECE_NAMES.get(captured, 'piece')}, gaining material advantage."
        )
    if board.gives_check(move):
        parts.append("This puts your king in check, forcing you to respond.")

    if phase == "opening":
        parts.append(_opening_sentence(board, move, san))
    elif phase == "middlegame":
        parts.append(_middlegame_sentence(board, move))
    elif phase == "endgame":
        parts.append(_endgame_sentence(board, move))
    else:
        parts.append("This creates tactical threats and complications.")

    alternatives = tuple(
        board.san(m) for m in board.legal_moves if m != move
    )[:3]

    return MoveExplanation(
        san=san,
        uci=move.uci(),
        text=" ".join(parts),
        category=phase,
        teaching_point=teaching_point,
        alternatives=alternatives,
    )
