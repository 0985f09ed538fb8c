"""
Tests for move encoding.

Covers the coordinate helpers and the SGF-style move-list format stored in
the replay buffer.
"""

import numpy as np
import pytest

from goselfplay.data.encoding import (
    PASS,
    action_to_coord,
    coord_to_action,
    decode_moves,
    encode_moves,
    is_on_board,
    move_to_string,
    num_actions,
)


def random_moves(rng: np.random.Generator, length: int, board_size: int) -> list:
    """Random move list with roughly one pass in ten."""
    moves = []
    for _ in range(length):
        if rng.random() < 0.1:
            moves.append(PASS)
        else:
            moves.append((int(rng.integers(board_size)), int(rng.integers(board_size))))
    return moves


class TestCoordinates:
    """Test coordinate and action helpers."""

    def test_num_actions(self):
        """Action space is every point plus pass."""
        assert num_actions(19) == 362
        assert num_actions(5) == 26

    def test_coord_to_action_row_major(self):
        """Points map row-major, pass is last."""
        assert coord_to_action((0, 0), 9) == 0
        assert coord_to_action((1, 2), 9) == 11
        assert coord_to_action(PASS, 9) == 81

    def test_action_to_coord(self):
        """Actions map back to points and pass."""
        assert action_to_coord(11, 9) == (1, 2)
        assert action_to_coord(81, 9) == PASS

    def test_action_round_trip_all_points(self):
        """Every action maps back to itself."""
        for action in range(num_actions(7)):
            assert coord_to_action(action_to_coord(action, 7), 7) == action

    def test_off_board_raises(self):
        """Off-board moves and actions raise ValueError."""
        with pytest.raises(ValueError):
            coord_to_action((9, 0), 9)
        with pytest.raises(ValueError):
            coord_to_action((-1, 3), 9)
        with pytest.raises(ValueError):
            action_to_coord(82, 9)

    def test_is_on_board(self):
        """Board bounds check excludes pass."""
        assert is_on_board((0, 0), 5)
        assert is_on_board((4, 4), 5)
        assert not is_on_board((5, 0), 5)
        assert not is_on_board(PASS, 5)

    def test_move_to_string(self):
        """GTP-style names skip the letter I."""
        assert move_to_string((0, 0)) == "A1"
        assert move_to_string((3, 8)) == "J4"
        assert move_to_string(PASS) == "pass"


class TestEncodeMoves:
    """Test move-list encoding."""

    def test_empty_sequence(self):
        """The empty move list encodes to the empty string."""
        assert encode_moves([]) == ""

    def test_colours_alternate_from_black(self):
        """Node colours alternate starting with black."""
        assert encode_moves([(3, 3), (15, 15)]) == ";B[dd];W[pp]"

    def test_column_then_row(self):
        """Coordinates are written column letter first."""
        assert encode_moves([(0, 2)]) == ";B[ca]"

    def test_pass_is_empty_property(self):
        """Pass encodes as an empty property."""
        assert encode_moves([(3, 3), PASS, PASS]) == ";B[dd];W[];B[]"

    def test_large_board_uses_uppercase(self):
        """Coordinates past z use uppercase letters."""
        assert encode_moves([(30, 40)]) == ";B[OE]"

    def test_unencodable_move_raises(self):
        """Moves outside the letter range raise ValueError."""
        with pytest.raises(ValueError):
            encode_moves([(52, 0)])
        with pytest.raises(ValueError):
            encode_moves([(-1, 3)])


class TestDecodeMoves:
    """Test move-list decoding."""

    def test_empty_text(self):
        """The empty string decodes to no moves."""
        assert decode_moves("") == []

    def test_decode_known_text(self):
        """A known record decodes to its moves."""
        assert decode_moves(";B[dd];W[];B[ca]") == [(3, 3), PASS, (0, 2)]

    def test_round_trip_random_sequences(self):
        """decode(encode(moves)) reproduces the moves, passes included."""
        rng = np.random.default_rng(0)
        for length in (0, 1, 2, 17, 200):
            moves = random_moves(rng, length, 19)
            assert decode_moves(encode_moves(moves)) == moves

    def test_round_trip_only_passes(self):
        """A pass-only sequence round-trips."""
        moves = [PASS] * 5
        assert decode_moves(encode_moves(moves)) == moves

    def test_round_trip_large_board(self):
        """Uppercase coordinates round-trip."""
        rng = np.random.default_rng(1)
        moves = random_moves(rng, 50, 52)
        assert decode_moves(encode_moves(moves)) == moves

    @pytest.mark.parametrize(
        "text",
        [
            "B[aa]",  # missing node separator
            ";W[aa]",  # white cannot move first
            ";B[aa];B[bb]",  # colours must alternate
            ";B[a]",  # one letter
            ";B[a1]",  # digit
            ";B[aa]junk",
            ";B[aa",
        ],
    )
    def test_malformed_text_raises(self, text):
        """Malformed records raise ValueError."""
        with pytest.raises(ValueError):
            decode_moves(text)
