"""Tests for computer move commentary."""

from __future__ import annotations

import chess
import pytest

from guided_practice.explainer import explain_move, game_phase


def _explain(fen: str, uci: str):
    board = chess.Board(fen)
    return explain_move(board, chess.Move.from_uci(uci))


class TestGamePhase:

    def test_start_is_opening(self):
        assert game_phase(chess.Board()) == "opening"

    def test_few_pieces_late_is_endgame(self):
        assert game_phase(chess.Board("4k3/8/3K4/8/8/8/8/R7 w - - 0 40")) == "endgame"

    def test_quiet_full_board_late_is_middlegame(self):
        board = chess.Board("rnbqkbnr/pppppppp/8/8/8/8/PPPPPPPP/RNBQKBNR w KQkq - 0 15")
        assert game_phase(board) == "middlegame"

    def test_available_check_is_tactical(self):
        # Qh5+ is on the board
        board = chess.Board("rnbqkbnr/ppppp1pp/8/5p2/4P3/8/PPPP1PPP/RNBQKBNR w KQkq - 0 15")
        assert game_phase(board) == "tactical"

    def test_endgame_count_needs_enough_plies(self):
        # Short lessons starting from sparse positions still count as opening
        assert game_phase(chess.Board("4k3/8/3K4/8/8/8/8/R7 w - - 0 1")) == "opening"


class TestExplainMove:

    def test_center_pawn(self):
        explanation = _explain(chess.STARTING_FEN, "e2e4")
        assert explanation.san == "e4"
        assert explanation.uci == "e2e4"
        assert explanation.text.startswith("I played e4.")
        assert "controls the center" in explanation.text
        assert explanation.category == "opening"
        assert "Control center" in explanation.teaching_point

    def test_knight_development(self):
        explanation = _explain(
            "rnbqkbnr/pppp1ppp/8/4p3/4P3/5N2/PPPP1PPP/RNBQKB1R b KQkq - 1 2", "b8c6",
        )
        assert explanation.san == "Nc6"
        assert "develops a knight" in explanation.text

    def test_castling(self):
        explanation = _explain(
            "r1bqkbnr/pppp1ppp/2n5/4p3/2B1P3/5N2/PPPP1PPP/RNBQK2R w KQkq - 4 4", "e1g1",
        )
        assert explanation.san == "O-O"
        assert "Castling keeps the king safe" in explanation.text

    def test_capture_names_piece(self):
        explanation = _explain(
            "rnbqkbnr/ppp1pppp/8/3p4/4P3/8/PPPP1PPP/RNBQKBNR w KQkq d6 0 2", "e4d5",
        )
        assert "captures your pawn" in explanation.text

    def test_check_mentioned(self):
        explanation = _explain("4k3/8/3K4/8/8/8/8/R7 w - - 0 40", "a1a8")
        assert "puts your king in check" in explanation.text
        assert explanation.category == "endgame"

    def test_endgame_king_move(self):
        explanation = _explain("4k3/8/3K4/8/8/8/8/R7 w - - 0 40", "d6e6")
        assert "king becomes an active piece" in explanation.text

    def test_alternatives_exclude_played_move(self):
        explanation = _explain(chess.STARTING_FEN, "e2e4")
        assert len(explanation.alternatives) == 3
        assert "e4" not in explanation.alternatives

    def test_board_not_modified(self):
        board = chess.Board()
        explain_move(board, chess.Move.from_uci("d2d4"))
        assert board.fen() == chess.STARTING_FEN


@pytest.mark.parametrize("fen, uci", [
    (chess.STARTING_FEN, "g1f3"),
    ("rnbqkbnr/pppppppp/8/8/8/8/PPPPPPPP/RNBQKBNR w KQkq - 0 15", "a2a3"),
])
def test_text_is_never_empty(fen, uci):
    explanation = _explain(fen, uci)
    assert len(explanation.text.split(". ")) >= 2
