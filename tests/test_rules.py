"""Tests for the python-chess rules adapter."""

from __future__ import annotations

import chess
import pytest

from guided_practice.errors import IllegalMove, LessonContentError
from guided_practice.rules import MoveDescriptor, Position, RulesAdapter

_AFTER_E4 = "rnbqkbnr/pppppppp/8/8/4P3/8/PPPP1PPP/RNBQKBNR b KQkq e3 0 1"


@pytest.fixture
def rules():
    return RulesAdapter()


@pytest.fixture
def start(rules):
    return rules.parse(chess.STARTING_FEN)


class TestParse:

    def test_round_trips_standard_fen(self, rules, start):
        assert rules.serialize(start) == chess.STARTING_FEN

    def test_garbage_raises_content_error(self, rules):
        with pytest.raises(LessonContentError, match="Invalid FEN"):
            rules.parse("not a fen")

    def test_impossible_position_rejected(self, rules):
        # No black king
        with pytest.raises(LessonContentError):
            rules.parse("8/8/8/8/8/8/8/K7 w - - 0 1")

    def test_turn(self, rules, start):
        assert start.turn == "white"
        assert rules.parse(_AFTER_E4).turn == "black"


class TestApplyMove:

    def test_double_push_keeps_en_passant_square(self, rules, start):
        position, result = rules.apply_move(start, MoveDescriptor("e2", "e4"))
        assert position.fen == _AFTER_E4
        assert result.san == "e4"
        assert result.piece == "p"
        assert result.captured is None

    def test_original_position_untouched(self, rules, start):
        rules.apply_move(start, MoveDescriptor("e2", "e4"))
        assert start.fen == chess.STARTING_FEN

    def test_illegal_move_raises(self, rules, start):
        with pytest.raises(IllegalMove) as excinfo:
            rules.apply_move(start, MoveDescriptor("e2", "e5"))
        assert excinfo.value.move == "e2e5"
        assert excinfo.value.fen == chess.STARTING_FEN

    def test_illegal_move_is_value_error(self, rules, start):
        with pytest.raises(ValueError):
            rules.apply_move(start, MoveDescriptor("z9", "e4"))

    def test_wrong_side_to_move(self, rules, start):
        with pytest.raises(IllegalMove):
            rules.apply_move(start, MoveDescriptor("e7", "e5"))

    def test_capture_reports_captured_piece(self, rules):
        position = Position("rnbqkbnr/ppp1pppp/8/3p4/4P3/8/PPPP1PPP/RNBQKBNR w KQkq d6 0 2")
        _, result = rules.apply_move(position, MoveDescriptor("e4", "d5"))
        assert result.captured == "p"
        assert result.san == "exd5"

    def test_en_passant_capture(self, rules):
        position = Position("rnbqkbnr/ppp1p1pp/8/3pPp2/8/8/PPPP1PPP/RNBQKBNR w KQkq f6 0 3")
        new_position, result = rules.apply_move(position, MoveDescriptor("e5", "f6"))
        assert result.captured == "p"
        assert new_position.board().piece_at(chess.F5) is None

    def test_promotion_defaults_to_queen(self, rules):
        position = Position("8/P7/8/8/8/8/8/k6K w - - 0 1")
        _, result = rules.apply_move(position, MoveDescriptor("a7", "a8"))
        assert result.promotion == "q"
        assert result.uci == "a7a8q"
        assert result.is_check

    def test_underpromotion(self, rules):
        position = Position("8/P7/8/8/8/8/8/k6K w - - 0 1")
        _, result = rules.apply_move(position, MoveDescriptor("a7", "a8", "n"))
        assert result.promotion == "n"

    def test_checkmate_flags(self, rules):
        position = Position("6k1/5ppp/8/8/8/8/8/R5K1 w - - 0 1")
        new_position, result = rules.apply_move(position, MoveDescriptor("a1", "a8"))
        assert result.is_checkmate
        assert rules.is_checkmate(new_position)
        assert rules.is_game_over(new_position)


class TestApplySan:

    def test_san_for_side_to_move(self, rules):
        position, result = rules.apply_san(rules.parse(_AFTER_E4), "e5")
        assert position.fen == "rnbqkbnr/pppp1ppp/8/4p3/4P3/8/PPPP1PPP/RNBQKBNR w KQkq e6 0 2"
        assert result.uci == "e7e5"

    def test_bad_san_raises(self, rules, start):
        with pytest.raises(IllegalMove):
            rules.apply_san(start, "Qh5")


class TestQueries:

    def test_legal_moves_from_square(self, rules, start):
        moves = rules.legal_moves(start, from_square="g1")
        assert sorted(m.uci() for m in moves) == ["g1f3", "g1h3"]

    def test_legal_move_count(self, rules, start):
        assert len(rules.legal_moves(start)) == 20

    def test_is_legal(self, rules, start):
        assert rules.is_legal(start, MoveDescriptor("d2", "d4"))
        assert not rules.is_legal(start, MoveDescriptor("d2", "d5"))

    def test_piece_at(self, rules, start):
        assert rules.piece_at(start, "e1") == chess.Piece(chess.KING, chess.WHITE)
        assert rules.piece_at(start, "e4") is None

    def test_descriptor_from_uci(self):
        assert MoveDescriptor.from_uci("E7E8Q") == MoveDescriptor("e7", "e8", "q")
        with pytest.raises(ValueError):
            MoveDescriptor.from_uci("e4")
