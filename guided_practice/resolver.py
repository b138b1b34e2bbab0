"""Computer move resolution for scripted lesson replies.

Authored content writes computer replies in whatever notation the
author had in mind ("e5", "e7e5", "Nc6", "b8c6"). The resolver tries an
explicit, ordered list of interpretation strategies and accepts the
first one the rules adapter validates as legal. Every success is logged
with the strategy that matched so content authors can see how their
moves were read.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable

import chess
import chess.engine

from guided_practice.errors import IllegalMove, UnresolvableMove
from guided_practice.rules import MoveDescriptor, MoveResult, Position, RulesAdapter

if TYPE_CHECKING:
    from guided_practice.engine import ChessEngine

logger = logging.getLogger(__name__)

_BARE_COORDINATE_RE = re.compile(r"^[a-h][1-8][a-h][1-8][qrbn]?$")

# Known ambiguous authored strings, mapped to SAN. Content-specific.
DEFAULT_REMAP: dict[str, str] = {
    "e7e5": "e5",
    "b8c6": "Nc6",
}

Interpreter = Callable[[str, Position, RulesAdapter], tuple[Position, MoveResult]]


@dataclass(frozen=True)
class InterpretationStrategy:
    """One way of reading a scripted move string."""

    name: str
    interpret: Interpreter


@dataclass(frozen=True)
class Resolution:
    position: Position
    result: MoveResult
    strategy: str


def interpret_algebraic(text: str, position: Position, rules: RulesAdapter) -> tuple[Position, MoveResult]:
    """Read the text as SAN for the side to move.

    Bare square-to-square strings are coordinate notation, not SAN, and
    are left to the coordinate strategy.

    Raises:
        IllegalMove: If the text is not a legal SAN move.
    """
    if _BARE_COORDINATE_RE.match(text.lower()):
        raise IllegalMove(text, position.fen)
    return rules.apply_san(position, text)


def interpret_coordinate(text: str, position: Position, rules: RulesAdapter) -> tuple[Position, MoveResult]:
    """Read the text as origin/destination squares plus optional promotion.

    Raises:
        IllegalMove: If the text is shorter than 4 characters or the
            move is not legal.
    """
    if len(text) < 4:
        raise IllegalMove(text, position.fen)
    text = text.lower()
    promotion = text[4] if len(text) > 4 else None
    move = MoveDescriptor(text[0:2], text[2:4], promotion)
    return rules.apply_move(position, move)


def _remap_interpreter(table: dict[str, str]) -> Interpreter:
    def interpret_remap(text: str, position: Position, rules: RulesAdapter) -> tuple[Position, MoveResult]:
        mapped = table.get(text)
        if mapped is None:
            raise IllegalMove(text, position.fen)
        return rules.apply_san(position, mapped)

    return interpret_remap


def default_strategies(remap: dict[str, str] | None = None) -> list[InterpretationStrategy]:
    """Build the strategy chain in priority order."""
    table = DEFAULT_REMAP if remap is None else remap
    return [
        InterpretationStrategy("algebraic", interpret_algebraic),
        InterpretationStrategy("coordinate", interpret_coordinate),
        InterpretationStrategy("remap", _remap_interpreter(table)),
    ]


class ComputerMoveResolver:
    """Applies scripted computer moves via an ordered fallback chain."""

    def __init__(
        self,
        rules: RulesAdapter | None = None,
        remap: dict[str, str] | None = None,
        strategies: list[InterpretationStrategy] | None = None,
    ) -> None:
        self._rules = rules or RulesAdapter()
        self._strategies = strategies or default_strategies(remap)

    @property
    def strategies(self) -> list[InterpretationStrategy]:
        return list(self._strategies)

    def resolve(self, scripted: str, position: Position) -> Resolution:
        """Apply a scripted move using the first strategy that works.

        Args:
            scripted: Authored move text in unspecified notation.
            position: Position the move is played from.

        Returns:
            Resolution with the new position, move details and the name
            of the strategy that matched.

        Raises:
            UnresolvableMove: If every strategy fails.
        """
        text = scripted.strip()
        attempted: list[str] = []
        for strategy in self._strategies:
            attempted.append(strategy.name)
            try:
                new_position, result = strategy.interpret(text, position, self._rules)
            except IllegalMove as exc:
                logger.debug("Strategy %s rejected %r: %s", strategy.name, text, exc)
                continue
            logger.info(
                "Resolved scripted move %r as %s via %s strategy",
                scripted, result.san, strategy.name,
            )
            return Resolution(new_position, result, strategy.name)

        logger.warning("Unresolvable scripted move %r at %s", scripted, position.fen)
        raise UnresolvableMove(scripted, position.fen, attempted)


def recovery_move(
    position: Position,
    engine: ChessEngine | None = None,
    level: int | None = None,
) -> chess.Move | None:
    """Pick a legal move when scripted content cannot be played.

    Uses the engine's choice when an engine is available, otherwise the
    first legal move in generation order. Any engine fault, including a
    failed restart while changing level, falls back to the first legal
    move.

    Args:
        position: Position to move in.
        engine: Optional lesson bot.
        level: Bot level for the engine move. None keeps the engine's
            current level.

    Returns:
        A legal move, or None if the position has no legal moves.
    """
    board = position.board()
    legal = list(board.legal_moves)
    if not legal:
        return None

    if engine is not None:
        try:
            if level is None:
                move = engine.get_engine_move(board)
            else:
                move = engine.move_at_level(board, level)
        except (
            ValueError,
            OSError,
            chess.engine.EngineError,
            chess.engine.EngineTerminatedError,
        ) as exc:
            logger.warning("Engine recovery move failed, using first legal move: %s", exc)
        else:
            if move in board.legal_moves:
                return move

    return legal[0]
