"""Board decoding, circuit input and public outputs."""

import pytest

from move_prover.board import (
    STARTING_FEN,
    fen_to_array,
    prepare_circuit_input,
    project_public_outputs,
    square_to_index,
)
from move_prover.models import GameSnapshot, LastMove


class TestSquareToIndex:
    @pytest.mark.parametrize(
        "square,index",
        [("a8", 0), ("h8", 7), ("a1", 56), ("h1", 63), ("e2", 52), ("e4", 36)],
    )
    def test_known_squares(self, square, index):
        assert square_to_index(square) == index

    @pytest.mark.parametrize("square", ["", "e", "i1", "a9", "a0", "e22"])
    def test_invalid_square_rejected(self, square):
        with pytest.raises(ValueError):
            square_to_index(square)


class TestFenToArray:
    def test_starting_position(self):
        board = fen_to_array(STARTING_FEN)
        assert len(board) == 64
        assert board[0] == -3       # black rook a8
        assert board[4] == -1       # black king e8
        assert board[8:16] == (-6,) * 8
        assert board[16:48] == (0,) * 32
        assert board[52] == 6       # white pawn e2
        assert board[60] == 1       # white king e1

    def test_empty_fen_gives_empty_board(self):
        assert fen_to_array("") == (0,) * 64

    def test_overlong_rank_is_truncated(self):
        board = fen_to_array("8/8/8/8/8/8/8/8/KKKK")
        assert len(board) == 64
        assert all(code == 0 for code in board)


class TestPrepareCircuitInput:
    def test_move_from_snapshot(self):
        snapshot = GameSnapshot(
            fen=STARTING_FEN, last_move=LastMove("g1", "f3"), move_number=1, turn="b"
        )
        ci = prepare_circuit_input(snapshot)
        assert (ci.move_from, ci.move_to) == (62, 45)
        assert ci.player_turn == 2
        assert ci.public_inputs == (STARTING_FEN, 1)

    def test_initial_position_uses_default_move(self):
        ci = prepare_circuit_input(GameSnapshot(fen=STARTING_FEN))
        assert (ci.move_from, ci.move_to) == (52, 36)
        assert ci.player_turn == 1
        assert ci.move_number == 0

    def test_profile_default_move_overrides(self):
        ci = prepare_circuit_input(GameSnapshot(fen=STARTING_FEN), default_move=(51, 35))
        assert (ci.move_from, ci.move_to) == (51, 35)

    def test_blank_fen_falls_back_to_starting_position(self):
        ci = prepare_circuit_input(GameSnapshot(fen=""))
        assert ci.board_state == fen_to_array(STARTING_FEN)


class TestPublicOutputs:
    def test_checksum_defaults_to_sum(self):
        ci = prepare_circuit_input(
            GameSnapshot(fen=STARTING_FEN, last_move=LastMove("e2", "e4"), move_number=1)
        )
        outputs = project_public_outputs(ci)
        assert outputs == {
            "move_valid": True,
            "from_square": 52,
            "to_square": 36,
            "move_number": 1,
            "checksum": 89,
        }

    def test_reported_checksum_wins(self):
        ci = prepare_circuit_input(GameSnapshot(fen=STARTING_FEN, move_number=3))
        assert project_public_outputs(ci, checksum=7)["checksum"] == 7

    def test_move_number_zero_is_not_valid(self):
        ci = prepare_circuit_input(GameSnapshot(fen=STARTING_FEN))
        assert project_public_outputs(ci)["move_valid"] is False
