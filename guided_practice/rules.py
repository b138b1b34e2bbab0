"""Rules engine adapter for the guided practice lesson engine.

Wraps python-chess behind a small, immutable contract: positions are
FEN snapshots, every move application yields a new Position, and a
rejected move is reported as IllegalMove, never as a placeholder.
"""

from __future__ import annotations

from dataclasses import dataclass

import chess

from guided_practice.errors import IllegalMove, LessonContentError

_PROMOTION_PIECES = {"q": chess.QUEEN, "r": chess.ROOK, "b": chess.BISHOP, "n": chess.KNIGHT}


@dataclass(frozen=True)
class Position:
    """Immutable board snapshot in standard 6-field FEN."""

    fen: str

    def board(self) -> chess.Board:
        """Return a fresh board for this position. Callers may mutate it."""
        return chess.Board(self.fen)

    @property
    def turn(self) -> str:
        return "white" if self.fen.split()[1] == "w" else "black"


@dataclass(frozen=True)
class MoveDescriptor:
    """A raw move as squares, e.g. from the board renderer's input capture."""

    from_square: str
    to_square: str
    promotion: str | None = None

    def uci(self) -> str:
        return f"{self.from_square}{self.to_square}{self.promotion or ''}"

    @classmethod
    def from_uci(cls, text: str) -> MoveDescriptor:
        """Split coordinate notation into a descriptor.

        Raises:
            ValueError: If the text is not 4 or 5 characters of
                coordinate notation.
        """
        text = text.strip().lower()
        if len(text) not in (4, 5):
            raise ValueError(f"Not a coordinate move: {text!r}")
        promotion = text[4] if len(text) == 5 else None
        return cls(text[0:2], text[2:4], promotion)

    @classmethod
    def from_move(cls, move: chess.Move) -> MoveDescriptor:
        promotion = chess.piece_symbol(move.promotion) if move.promotion else None
        return cls(
            chess.square_name(move.from_square),
            chess.square_name(move.to_square),
            promotion,
        )


@dataclass(frozen=True)
class MoveResult:
    """Details of a move that was applied, used for feedback and animation."""

    uci: str
    san: str
    from_square: str
    to_square: str
    piece: str
    captured: str | None = None
    promotion: str | None = None
    is_check: bool = False
    is_checkmate: bool = False


def _serialize_board(board: chess.Board) -> str:
    # Standard FEN keeps the en passant square after every double push.
    return board.fen(en_passant="fen")


class RulesAdapter:
    """Stateless python-chess facade used by every engine component."""

    def parse(self, fen: str) -> Position:
        """Parse and validate a FEN string.

        Raises:
            LessonContentError: If the FEN is malformed or the position
                is not a valid chess position.
        """
        try:
            board = chess.Board(fen)
        except ValueError as exc:
            raise LessonContentError(f"Invalid FEN {fen!r}: {exc}") from exc
        if not board.is_valid():
            raise LessonContentError(f"Invalid FEN position: {fen}")
        return Position(_serialize_board(board))

    def serialize(self, position: Position) -> str:
        return position.fen

    def to_move(self, position: Position, move: MoveDescriptor) -> chess.Move:
        """Resolve a descriptor to a legal python-chess move.

        A pawn reaching the back rank without a promotion piece
        promotes to a queen.

        Raises:
            IllegalMove: If the squares are malformed or the move is
                not legal in the position.
        """
        board = position.board()
        try:
            from_sq = chess.parse_square(move.from_square)
            to_sq = chess.parse_square(move.to_square)
        except ValueError as exc:
            raise IllegalMove(move.uci(), position.fen) from exc

        promotion = None
        if move.promotion:
            promotion = _PROMOTION_PIECES.get(move.promotion.lower())
            if promotion is None:
                raise IllegalMove(move.uci(), position.fen)
        elif (
            board.piece_type_at(from_sq) == chess.PAWN
            and chess.square_rank(to_sq) in (0, 7)
        ):
            promotion = chess.QUEEN

        candidate = chess.Move(from_sq, to_sq, promotion=promotion)
        if candidate not in board.legal_moves:
            raise IllegalMove(move.uci(), position.fen)
        return candidate

    def legal_moves(
        self,
        position: Position,
        from_square: str | None = None,
    ) -> list[MoveDescriptor]:
        board = position.board()
        moves = list(board.legal_moves)
        if from_square is not None:
            origin = chess.parse_square(from_square)
            moves = [m for m in moves if m.from_square == origin]
        return [MoveDescriptor.from_move(m) for m in moves]

    def is_legal(self, position: Position, move: MoveDescriptor) -> bool:
        try:
            self.to_move(position, move)
        except IllegalMove:
            return False
        return True

    def apply_move(
        self,
        position: Position,
        move: MoveDescriptor,
    ) -> tuple[Position, MoveResult]:
        """Apply a move and return the new position with move details.

        Raises:
            IllegalMove: If the move is not legal.
        """
        chess_move = self.to_move(position, move)
        return self._push(position.board(), chess_move)

    def apply_san(self, position: Position, san: str) -> tuple[Position, MoveResult]:
        """Apply a move written in SAN for the side to move.

        Raises:
            IllegalMove: If the text is not a legal SAN move.
        """
        board = position.board()
        try:
            chess_move = board.parse_san(san)
        except ValueError as exc:
            raise IllegalMove(san, position.fen) from exc
        return self._push(board, chess_move)

    def apply_chess_move(
        self,
        position: Position,
        chess_move: chess.Move,
    ) -> tuple[Position, MoveResult]:
        board = position.board()
        if chess_move not in board.legal_moves:
            raise IllegalMove(chess_move.uci(), position.fen)
        return self._push(board, chess_move)

    def _push(
        self,
        board: chess.Board,
        chess_move: chess.Move,
    ) -> tuple[Position, MoveResult]:
        piece = board.piece_at(chess_move.from_square)
        captured = None
        if board.is_en_passant(chess_move):
            captured = "p"
        else:
            target = board.piece_at(chess_move.to_square)
            if target is not None and target.color != board.turn:
                captured = chess.piece_symbol(target.piece_type)

        san = board.san(chess_move)
        board.push(chess_move)

        result = MoveResult(
            uci=chess_move.uci(),
            san=san,
            from_square=chess.square_name(chess_move.from_square),
            to_square=chess.square_name(chess_move.to_square),
            piece=chess.piece_symbol(piece.piece_type) if piece else "p",
            captured=captured,
            promotion=(
                chess.piece_symbol(chess_move.promotion)
                if chess_move.promotion else None
            ),
            is_check=board.is_check(),
            is_checkmate=board.is_checkmate(),
        )
        return Position(_serialize_board(board)), result

    def is_check(self, position: Position) -> bool:
        return position.board().is_check()

    def is_checkmate(self, position: Position) -> bool:
        return position.board().is_checkmate()

    def is_game_over(self, position: Position) -> bool:
        return position.board().is_game_over()

    def piece_at(self, position: Position, square: str) -> chess.Piece | None:
        return position.board().piece_at(chess.parse_square(square))
