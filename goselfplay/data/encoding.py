"""
Move Encoding for Go Game Records

Provides the coordinate helpers shared by the rules engine and the feature
extractor, and the textual move-list format stored in the replay buffer.

Move lists are stored as SGF-style node sequences, one node per move with
colours alternating from black:

    ;B[dd];W[pp];B[]

Each coordinate is two letters, column then row, drawn from ``a..z`` then
``A..Z``. The pass move is the empty property ``[]``. The empty move list
encodes to the empty string. Records are always stored in board orientation;
symmetry transforms are only applied when a training sample is built.
"""

import re
from typing import TypeAlias

# Board defaults (19x19 Go with Chinese komi)
DEFAULT_BOARD_SIZE = 19
DEFAULT_KOMI = 7.5

# Type aliases
Move: TypeAlias = tuple[int, int]  # (row, col); PASS = (-1, -1)

EMPTY = 0
BLACK = 1
WHITE = 2

PASS: Move = (-1, -1)

SGF_LETTERS = "abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ"
MAX_SGF_BOARD_SIZE = len(SGF_LETTERS)

_NODE_PATTERN = re.compile(r";([BW])\[([a-zA-Z]{2}|)\]")


def opponent(player: int) -> int:
    """Returns the other colour."""
    return WHITE if player == BLACK else BLACK


def num_actions(board_size: int) -> int:
    """Size of the action space: every point plus pass."""
    return board_size * board_size + 1


def is_on_board(move: Move, board_size: int) -> bool:
    """Returns True if the move is a point on the board (PASS is not)."""
    row, col = move
    return 0 <= row < board_size and 0 <= col < board_size


def coord_to_action(move: Move, board_size: int) -> int:
    """
    Converts a move to its action index (row-major, pass last).

    Raises:
        ValueError: If the move is neither PASS nor on the board.
    """
    if move == PASS:
        return board_size * board_size
    if not is_on_board(move, board_size):
        raise ValueError(f"Move {move} is off a {board_size}x{board_size} board")
    row, col = move
    return row * board_size + col


def action_to_coord(action: int, board_size: int) -> Move:
    """
    Converts an action index back to a move.

    Raises:
        ValueError: If the action is outside the action space.
    """
    if action == board_size * board_size:
        return PASS
    if not 0 <= action < board_size * board_size:
        raise ValueError(f"Action {action} is outside the action space of size {num_actions(board_size)}")
    return divmod(int(action), board_size)


def move_to_string(move: Move) -> str:
    """Human-readable GTP-style coordinate, e.g. 'D4' or 'pass'."""
    if move == PASS:
        return "pass"
    row, col = move
    # GTP skips the letter I
    letters = "ABCDEFGHJKLMNOPQRSTUVWXYZ"
    if 0 <= col < len(letters) and row >= 0:
        return f"{letters[col]}{row + 1}"
    return f"({row}, {col})"


def encode_moves(moves: list[Move]) -> str:
    """
    Encodes a move sequence as an SGF-style node list.

    Args:
        moves: Moves in play order. Colours are implied by position.

    Returns:
        Encoded text, empty for an empty sequence.

    Raises:
        ValueError: If a move cannot be represented.
    """
    nodes = []
    for i, move in enumerate(moves):
        color = "B" if i % 2 == 0 else "W"
        if move == PASS:
            nodes.append(f";{color}[]")
            continue

        row, col = move
        if not (0 <= row < MAX_SGF_BOARD_SIZE and 0 <= col < MAX_SGF_BOARD_SIZE):
            raise ValueError(f"Move {move} at index {i} cannot be encoded")
        nodes.append(f";{color}[{SGF_LETTERS[col]}{SGF_LETTERS[row]}]")

    return "".join(nodes)


def decode_moves(text: str) -> list[Move]:
    """
    Decodes an SGF-style node list produced by encode_moves().

    Args:
        text: Encoded move list.

    Returns:
        List of moves in play order.

    Raises:
        ValueError: If the text is malformed or colours do not alternate from black.
    """
    moves: list[Move] = []
    pos = 0

    while pos < len(text):
        match = _NODE_PATTERN.match(text, pos)
        if match is None:
            raise ValueError(f"Malformed move record at offset {pos}: {text[pos:pos + 8]!r}")

        color, coord = match.groups()
        expected = "B" if len(moves) % 2 == 0 else "W"
        if color != expected:
            raise ValueError(f"Move {len(moves)} has colour {color}, expected {expected}")

        if coord:
            col = SGF_LETTERS.index(coord[0])
            row = SGF_LETTERS.index(coord[1])
            moves.append((row, col))
        else:
            moves.append(PASS)

        pos = match.end()

    return moves
