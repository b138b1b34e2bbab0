"""Stockfish-backed computer opponent for guided practice lessons.

Wraps Stockfish via the python-chess UCI interface. Lessons use it for
computer-move steps that script no reply, and as the recovery move
source when a scripted reply cannot be played. Bot levels 1-10 map to
Elo 400-2200:
- sub-1320 Elo blends depth-limited search with random legal moves
- 1320+ Elo uses Stockfish UCI_Elo directly
"""

from __future__ import annotations

import argparse
import random
import shutil
import sys
import threading
from dataclasses import dataclass
from pathlib import Path

import chess
import chess.engine

# Stockfish search paths in priority order
_STOCKFISH_PATHS = [
    "/opt/homebrew/bin/stockfish",
    "/usr/local/bin/stockfish",
    "/usr/bin/stockfish",
]

_UCI_ELO_FLOOR = 1320


@dataclass(frozen=True)
class BotLevel:
    level: int
    name: str
    elo: int
    personality: str


BOT_LEVELS = [
    BotLevel(1, "Pawn", 400, "Makes random moves, very beginner-friendly"),
    BotLevel(2, "Knight", 600, "Occasionally makes good moves but inconsistent"),
    BotLevel(3, "Bishop", 800, "Understands basic tactics but makes mistakes"),
    BotLevel(4, "Rook", 1000, "Solid player with good tactical awareness"),
    BotLevel(5, "Queen", 1200, "Strong tactical player, rarely blunders"),
    BotLevel(6, "King", 1400, "Excellent tactical and positional understanding"),
    BotLevel(7, "Grandmaster", 1600, "Near-perfect play with deep calculation"),
    BotLevel(8, "World Champion", 1800, "Exceptional in all phases of the game"),
    BotLevel(9, "Stockfish Junior", 2000, "Computer-level precision"),
    BotLevel(10, "Stockfish Master", 2200, "Maximum strength for ultimate challenge"),
]


def bot_level(level: int) -> BotLevel:
    """Return the bot level config, clamping to 1-10."""
    clamped = max(1, min(len(BOT_LEVELS), level))
    return BOT_LEVELS[clamped - 1]


def _find_stockfish() -> str:
    """Auto-detect Stockfish binary path.

    Checks known install paths, then falls back to PATH lookup.

    Returns:
        Path to Stockfish binary.

    Raises:
        FileNotFoundError: If Stockfish is not found anywhere.
    """
    for path_str in _STOCKFISH_PATHS:
        if Path(path_str).is_file():
            return path_str

    which_result = shutil.which("stockfish")
    if which_result is not None:
        return which_result

    raise FileNotFoundError(
        "Stockfish not found. Install it or pass stockfish_path explicitly."
    )


class ChessEngine:
    """Stockfish opponent with lesson bot levels."""

    def __init__(self, stockfish_path: str | None = None, level: int = 3) -> None:
        """Start Stockfish at the given bot level.

        Args:
            stockfish_path: Explicit path to Stockfish binary.
                If None, auto-detects from known locations.
            level: Initial bot level (1-10).

        Raises:
            FileNotFoundError: If Stockfish is not found.
        """
        self._stockfish_path = stockfish_path or _find_stockfish()
        # Sessions share one process; level changes and searches must pair up
        self._lock = threading.RLock()
        self._engine = chess.engine.SimpleEngine.popen_uci(self._stockfish_path)
        self._level = bot_level(level)
        self._random_pct: float = 0.0
        self._depth: int = 1
        self._use_uci_elo: bool = False
        self.set_bot_level(self._level.level)

    @property
    def level(self) -> int:
        return self._level.level

    def _ensure_engine(self) -> None:
        """Ensure engine process is alive, restart once if terminated."""
        try:
            self._engine.ping()
        except chess.engine.EngineTerminatedError:
            self._engine = chess.engine.SimpleEngine.popen_uci(self._stockfish_path)
            self._configure()

    def set_bot_level(self, level: int) -> None:
        """Configure engine strength for a lesson bot level.

        Args:
            level: Bot level 1-10, clamped.
        """
        with self._lock:
            self._level = bot_level(level)
            elo = self._level.elo
            if elo >= _UCI_ELO_FLOOR:
                self._use_uci_elo = True
                self._random_pct = 0.0
                self._depth = 20
            else:
                self._use_uci_elo = False
                self._random_pct = max(0.0, 0.85 - (elo / _UCI_ELO_FLOOR) * 0.85)
                self._depth = max(1, min(5, elo // 250))
            self._ensure_engine()
            self._configure()

    def _configure(self) -> None:
        if self._use_uci_elo:
            self._engine.configure({"UCI_LimitStrength": True, "UCI_Elo": self._level.elo})
        else:
            self._engine.configure({"UCI_LimitStrength": False})

    def get_engine_move(self, board: chess.Board) -> chess.Move:
        """Get a move at the configured bot level.

        Args:
            board: Current board position.

        Returns:
            The engine's chosen move.

        Raises:
            ValueError: If the game is already over.
        """
        if board.is_game_over():
            raise ValueError("Game is already over")

        with self._lock:
            self._ensure_engine()

            try:
                return self._play(board)
            except chess.engine.EngineTerminatedError:
                self._engine = chess.engine.SimpleEngine.popen_uci(self._stockfish_path)
                self._configure()
                return self._play(board)

    def move_at_level(self, board: chess.Board, level: int) -> chess.Move:
        """Set the bot level and search in one step.

        Holds the engine lock across both calls, so concurrent sessions
        sharing this engine each get a move at their own level.
        """
        with self._lock:
            self.set_bot_level(level)
            return self.get_engine_move(board)

    def _play(self, board: chess.Board) -> chess.Move:
        if self._use_uci_elo:
            result = self._engine.play(board, chess.engine.Limit(time=1.0))
            return result.move

        if random.random() < self._random_pct:
            return random.choice(list(board.legal_moves))

        result = self._engine.play(board, chess.engine.Limit(depth=self._depth))
        return result.move

    def close(self) -> None:
        """Clean up Stockfish process."""
        try:
            self._engine.quit()
        except chess.engine.EngineTerminatedError:
            pass


def main() -> None:
    """CLI entry point: print the bot's reply for a position."""
    parser = argparse.ArgumentParser(description="Lesson bot move for a FEN position")
    parser.add_argument("fen", type=str, help="FEN string of the position")
    parser.add_argument("--level", type=int, default=3, help="Bot level 1-10")
    args = parser.parse_args()

    try:
        board = chess.Board(args.fen)
    except ValueError as exc:
        print(f"Invalid FEN: {exc}", file=sys.stderr)
        sys.exit(1)

    engine = ChessEngine(level=args.level)
    try:
        move = engine.get_engine_move(board)
        config = bot_level(args.level)
        print(f"{config.name} (Elo {config.elo}) plays: {board.san(move)}")
    finally:
        engine.close()


if __name__ == "__main__":
    main()
