"""Pytest tests for the lesson bot ChessEngine.

Tests mock Stockfish so they don't require the actual binary.
Covers: binary discovery, bot levels, strength configuration, engine
moves and crash recovery.
"""

from __future__ import annotations

import sys
import threading

import chess
import chess.engine
import pytest
from unittest.mock import MagicMock, patch

from guided_practice import engine as engine_module
from guided_practice.engine import BOT_LEVELS, ChessEngine, _find_stockfish, bot_level


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _make_mock_engine() -> MagicMock:
    """Create a mock SimpleEngine that passes basic checks."""
    eng = MagicMock(spec=chess.engine.SimpleEngine)
    eng.ping = MagicMock()
    eng.quit = MagicMock()
    eng.configure = MagicMock()
    return eng


def _play_result(uci: str) -> MagicMock:
    result = MagicMock()
    result.move = chess.Move.from_uci(uci)
    return result


@pytest.fixture
def mock_popen():
    """Patch popen_uci and shutil.which so ChessEngine can be constructed."""
    eng = _make_mock_engine()
    with patch("chess.engine.SimpleEngine.popen_uci", return_value=eng) as popen, \
         patch("guided_practice.engine.shutil.which", return_value="/opt/homebrew/bin/stockfish"), \
         patch("guided_practice.engine.Path.is_file", return_value=True):
        yield popen, eng


# ---------------------------------------------------------------------------
# Initialization
# ---------------------------------------------------------------------------


class TestInitialization:

    def test_stockfish_not_found(self):
        with patch("guided_practice.engine.Path.is_file", return_value=False), \
             patch("guided_practice.engine.shutil.which", return_value=None):
            with pytest.raises(FileNotFoundError, match="Stockfish not found"):
                _find_stockfish()

    def test_stockfish_found_via_which(self):
        with patch("guided_practice.engine.Path.is_file", return_value=False), \
             patch("guided_practice.engine.shutil.which", return_value="/usr/local/bin/stockfish"):
            assert _find_stockfish() == "/usr/local/bin/stockfish"

    def test_stockfish_found_via_path(self):
        with patch("guided_practice.engine.Path.is_file", return_value=True), \
             patch("guided_practice.engine.shutil.which", return_value=None):
            assert _find_stockfish() == "/opt/homebrew/bin/stockfish"

    def test_constructor_calls_popen(self, mock_popen):
        popen, _ = mock_popen
        engine = ChessEngine()
        popen.assert_called_once_with("/opt/homebrew/bin/stockfish")
        assert engine.level == 3

    def test_explicit_path(self, mock_popen):
        popen, _ = mock_popen
        ChessEngine(stockfish_path="/custom/stockfish")
        popen.assert_called_once_with("/custom/stockfish")


# ---------------------------------------------------------------------------
# Bot levels
# ---------------------------------------------------------------------------


class TestBotLevels:

    def test_ten_levels_ascending_elo(self):
        assert [b.level for b in BOT_LEVELS] == list(range(1, 11))
        elos = [b.elo for b in BOT_LEVELS]
        assert elos == sorted(elos)
        assert elos[0] == 400 and elos[-1] == 2200

    @pytest.mark.parametrize("level, expected", [(0, 1), (-4, 1), (11, 10), (5, 5)])
    def test_clamped(self, level, expected):
        assert bot_level(level).level == expected


class TestStrength:

    def test_level_1(self, mock_popen):
        engine = ChessEngine(level=1)
        expected_pct = max(0, 0.85 - (400 / 1320) * 0.85)
        assert abs(engine._random_pct - expected_pct) < 0.001
        assert engine._depth == 1
        assert engine._use_uci_elo is False

    def test_level_3(self, mock_popen):
        engine = ChessEngine(level=3)
        expected_pct = max(0, 0.85 - (800 / 1320) * 0.85)
        assert abs(engine._random_pct - expected_pct) < 0.001
        assert engine._depth == 3

    def test_level_5_still_below_floor(self, mock_popen):
        engine = ChessEngine(level=5)
        assert engine._use_uci_elo is False
        assert engine._depth == 4

    def test_level_6_uses_uci_elo(self, mock_popen):
        _, eng = mock_popen
        engine = ChessEngine()
        engine.set_bot_level(6)
        assert engine._random_pct == 0.0
        assert engine._use_uci_elo is True
        eng.configure.assert_called_with({"UCI_LimitStrength": True, "UCI_Elo": 1400})

    def test_dropping_below_floor_disables_limit(self, mock_popen):
        _, eng = mock_popen
        engine = ChessEngine(level=8)
        engine.set_bot_level(2)
        eng.configure.assert_called_with({"UCI_LimitStrength": False})
        assert engine.level == 2

    def test_set_level_clamps(self, mock_popen):
        engine = ChessEngine()
        engine.set_bot_level(42)
        assert engine.level == 10


# ---------------------------------------------------------------------------
# Engine move
# ---------------------------------------------------------------------------


class TestEngineMove:

    def test_game_over_raises(self, mock_popen):
        engine = ChessEngine()
        # Fool's mate
        board = chess.Board("rnb1kbnr/pppp1ppp/8/4p3/6Pq/5P2/PPPPP2P/RNBQKBNR w KQkq - 1 3")
        assert board.is_game_over()
        with pytest.raises(ValueError, match="Game is already over"):
            engine.get_engine_move(board)

    def test_uci_elo_move(self, mock_popen):
        _, eng = mock_popen
        eng.play.return_value = _play_result("e2e4")
        engine = ChessEngine(level=7)
        assert engine.get_engine_move(chess.Board()) == chess.Move.from_uci("e2e4")

    def test_depth_limited_move(self, mock_popen):
        _, eng = mock_popen
        eng.play.return_value = _play_result("d2d4")
        engine = ChessEngine(level=3)
        with patch("guided_practice.engine.random.random", return_value=0.99):
            move = engine.get_engine_move(chess.Board())
        assert move == chess.Move.from_uci("d2d4")
        limit = eng.play.call_args[0][1]
        assert limit.depth == 3

    def test_random_move_below_floor(self, mock_popen):
        _, eng = mock_popen
        engine = ChessEngine(level=1)
        with patch("guided_practice.engine.random.random", return_value=0.0):
            move = engine.get_engine_move(chess.Board())
        assert move in chess.Board().legal_moves
        eng.play.assert_not_called()

    def test_restarts_after_crash(self, mock_popen):
        popen, eng = mock_popen
        eng.play.side_effect = [chess.engine.EngineTerminatedError("crashed"), _play_result("e2e4")]
        engine = ChessEngine(level=7)
        move = engine.get_engine_move(chess.Board())
        assert move == chess.Move.from_uci("e2e4")
        assert popen.call_count == 2

    def test_dead_engine_restarted_on_ping(self, mock_popen):
        popen, eng = mock_popen
        engine = ChessEngine(level=7)
        eng.ping.side_effect = [chess.engine.EngineTerminatedError("gone"), None]
        eng.play.return_value = _play_result("g1f3")
        assert engine.get_engine_move(chess.Board()) == chess.Move.from_uci("g1f3")
        assert popen.call_count == 2

    def test_move_at_level_sets_level_then_searches(self, mock_popen):
        _, eng = mock_popen
        eng.play.return_value = _play_result("e2e4")
        engine = ChessEngine(level=1)
        assert engine.move_at_level(chess.Board(), 7) == chess.Move.from_uci("e2e4")
        assert engine.level == 7
        eng.configure.assert_called_with({"UCI_LimitStrength": True, "UCI_Elo": 1600})

    def test_move_at_level_holds_lock_across_search(self, mock_popen):
        _, eng = mock_popen
        engine = ChessEngine(level=1)
        seen = {}

        def _play(board, limit):
            other = threading.Thread(
                target=lambda: seen.setdefault("lock_free", engine._lock.acquire(blocking=False)),
            )
            other.start()
            other.join()
            seen["level"] = engine.level
            return _play_result("e2e4")

        eng.play.side_effect = _play
        engine.move_at_level(chess.Board(), 7)
        assert seen == {"lock_free": False, "level": 7}

    def test_close_tolerates_dead_engine(self, mock_popen):
        _, eng = mock_popen
        eng.quit.side_effect = chess.engine.EngineTerminatedError("gone")
        ChessEngine().close()


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------


class TestMain:

    def test_prints_move(self, mock_popen, monkeypatch, capsys):
        _, eng = mock_popen
        eng.play.return_value = _play_result("e2e4")
        monkeypatch.setattr(sys, "argv", ["guided-practice-bot", chess.STARTING_FEN, "--level", "8"])
        engine_module.main()
        assert "World Champion (Elo 1800) plays: e4" in capsys.readouterr().out

    def test_invalid_fen(self, monkeypatch, capsys):
        monkeypatch.setattr(sys, "argv", ["guided-practice-bot", "not a fen"])
        with pytest.raises(SystemExit) as excinfo:
            engine_module.main()
        assert excinfo.value.code == 1
        assert "Invalid FEN" in capsys.readouterr().err


# ---------------------------------------------------------------------------
# Real Stockfish (e2e)
# ---------------------------------------------------------------------------


class TestRealStockfish:

    @pytest.mark.e2e
    def test_plays_legal_move_at_each_level(self):
        engine = ChessEngine(level=1)
        try:
            board = chess.Board()
            for level in (1, 5, 6, 10):
                engine.set_bot_level(level)
                move = engine.get_engine_move(board)
                assert move in board.legal_moves
        finally:
            engine.close()
