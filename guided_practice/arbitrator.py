"""Move arbitration for user-move steps.

Classifies a raw move attempt against the active step's pedagogical
constraints. Pure: counting mistakes and showing feedback is the
caller's job.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum

import chess

from guided_practice.errors import IllegalMove, UnplayableStep
from guided_practice.models import UserMoveStep
from guided_practice.rules import MoveDescriptor, Position, RulesAdapter

# Coordinate notation, optionally decorated as authored: e2e4, e2-e4, d4xe5, e7e8q, e7e8=Q
_COORDINATE_RE = re.compile(r"^([a-h][1-8])[-x]?([a-h][1-8])=?([qrbnQRBN])?$")


class MoveVerdict(str, Enum):
    ALLOWED = "allowed"
    HINT = "hint"
    BLOCKED = "blocked"
    WRONG_PIECE = "wrong-piece"


@dataclass(frozen=True)
class Arbitration:
    """Verdict plus the concrete move to play when it is allowed."""

    verdict: MoveVerdict
    move: MoveDescriptor | None = None


def normalize_move_string(text: str, position: Position | None = None) -> str | None:
    """Normalize an authored move string to coordinate notation.

    Accepts plain or decorated coordinates, and SAN when a position is
    given to resolve it against.

    Returns:
        Coordinate string like 'e2e4' or 'e7e8q', or None when the text
        cannot be interpreted.
    """
    text = text.strip()
    match = _COORDINATE_RE.match(text)
    if match:
        promotion = (match.group(3) or "").lower()
        return f"{match.group(1)}{match.group(2)}{promotion}"

    if position is None:
        return None
    try:
        return position.board().parse_san(text).uci()
    except ValueError:
        return None


def _normalized_set(moves: tuple[str, ...], position: Position) -> set[str]:
    normalized = set()
    for text in moves:
        uci = normalize_move_string(text, position)
        if uci is not None:
            normalized.add(uci)
    return normalized


def _any_playable(allowed: set[str], position: Position) -> bool:
    legal = {move.uci() for move in position.board().legal_moves}
    # Plain from/to entries match any promotion piece
    legal |= {uci[:4] for uci in legal}
    return not allowed.isdisjoint(legal)


def _with_promotion(
    attempt: MoveDescriptor,
    position: Position,
    allowed: set[str],
) -> MoveDescriptor:
    """Fill in the promotion piece for a promoting pawn move.

    Uses the restriction list's piece when it names exactly one for
    this from/to pair, otherwise a queen.
    """
    if attempt.promotion:
        return MoveDescriptor(attempt.from_square, attempt.to_square, attempt.promotion.lower())

    board = position.board()
    try:
        from_sq = chess.parse_square(attempt.from_square)
        to_sq = chess.parse_square(attempt.to_square)
    except ValueError:
        return attempt
    if board.piece_type_at(from_sq) != chess.PAWN or chess.square_rank(to_sq) not in (0, 7):
        return attempt

    prefix = f"{attempt.from_square}{attempt.to_square}"
    pieces = sorted(m[4] for m in allowed if len(m) == 5 and m.startswith(prefix))
    promotion = pieces[0] if len(pieces) == 1 else "q"
    return MoveDescriptor(attempt.from_square, attempt.to_square, promotion)


def classify(
    attempt: MoveDescriptor,
    step: UserMoveStep,
    position: Position,
    rules: RulesAdapter | None = None,
) -> Arbitration:
    """Classify a move attempt for a user-move step.

    Args:
        attempt: Raw from/to squares from the renderer.
        step: The active user-move step.
        position: Current position snapshot.
        rules: Rules adapter (a default one is used if None).

    Returns:
        Arbitration with the verdict and, for ALLOWED, the move to apply.

    Raises:
        UnplayableStep: If the step restricts moves but none of its
            allowed moves is legal in ``position``.
    """
    rules = rules or RulesAdapter()
    allowed = _normalized_set(step.allowed_moves, position)
    if step.allowed_moves and not _any_playable(allowed, position):
        raise UnplayableStep(step.id, position.fen, tuple(step.allowed_moves))
    candidate = _with_promotion(attempt, position, allowed)

    try:
        rules.to_move(position, candidate)
    except IllegalMove:
        return Arbitration(MoveVerdict.BLOCKED)

    uci = candidate.uci()
    plain = f"{candidate.from_square}{candidate.to_square}"

    forbidden = _normalized_set(step.forbidden_moves, position)
    if uci in forbidden or plain in forbidden:
        return Arbitration(MoveVerdict.BLOCKED)

    if not step.allowed_moves:
        return Arbitration(MoveVerdict.ALLOWED, candidate)

    if uci in allowed or plain in allowed:
        return Arbitration(MoveVerdict.ALLOWED, candidate)

    origins = {m[:2] for m in allowed}
    if candidate.from_square in origins:
        return Arbitration(MoveVerdict.HINT)
    return Arbitration(MoveVerdict.WRONG_PIECE)


def advisory_message(
    verdict: MoveVerdict,
    step: UserMoveStep,
    position: Position,
    attempt: MoveDescriptor | None = None,
) -> str:
    """Learner-facing text for a verdict."""
    if verdict is MoveVerdict.ALLOWED:
        return "Correct! Well played."
    if verdict is MoveVerdict.BLOCKED:
        return "That move isn't possible here. Try again."

    allowed = sorted(_normalized_set(step.allowed_moves, position))
    if verdict is MoveVerdict.HINT:
        targets = sorted({
            m[2:4] for m in allowed
            if attempt is None or m[:2] == attempt.from_square
        })
        return f"Right piece! Try moving it to {' or '.join(targets)}."

    if step.guidance.tooltip is not None:
        return step.guidance.tooltip.message
    origins = sorted({m[:2] for m in allowed})
    return f"Try moving the piece on {' or '.join(origins)}."
