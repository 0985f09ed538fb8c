"""
Board Features and Symmetry Augmentation

Converts a Go position into input planes for the network and maps board
coordinates into the action space of one of the eight board symmetries.

Symmetry codes:
    0-3: rotate by 90 * code degrees counter-clockwise
    4-7: mirror left-right, then rotate by 90 * (code - 4) degrees
"""

from typing import TYPE_CHECKING

import numpy as np

from .encoding import BLACK, EMPTY, PASS, Move, action_to_coord, coord_to_action

if TYPE_CHECKING:
    from .game import GoState

NUM_SYMMETRIES = 8

# Input planes, relative to the player to move
PLANE_OWN = 0
PLANE_OPPONENT = 1
PLANE_EMPTY = 2
PLANE_OWN_LIBERTIES = 3  # 3 planes: 1, 2, 3+ liberties
PLANE_OPPONENT_LIBERTIES = 6  # 3 planes: 1, 2, 3+ liberties
PLANE_KO = 9
PLANE_LAST_MOVE = 10
PLANE_BLACK_TO_MOVE = 11
NUM_FEATURE_PLANES = 12


def _check_code(code: int) -> None:
    if not 0 <= code < NUM_SYMMETRIES:
        raise ValueError(f"Invalid symmetry code: {code} (expected 0-{NUM_SYMMETRIES - 1})")


def inverse_symmetry(code: int) -> int:
    """Returns the code of the transform that undoes ``code``."""
    _check_code(code)
    if code >= 4:
        # Mirror-then-rotate is its own inverse
        return code
    return (4 - code) % 4


def transform_coord(move: Move, code: int, board_size: int) -> Move:
    """Maps an untransformed move onto the board transformed by ``code``."""
    _check_code(code)
    if move == PASS:
        return PASS

    row, col = move
    if code >= 4:
        col = board_size - 1 - col
    for _ in range(code % 4):
        row, col = board_size - 1 - col, row
    return row, col


def inverse_transform_coord(move: Move, code: int, board_size: int) -> Move:
    """Maps a move on the transformed board back to board orientation."""
    return transform_coord(move, inverse_symmetry(code), board_size)


def transform_planes(planes: np.ndarray, code: int) -> np.ndarray:
    """
    Applies symmetry ``code`` to the last two axes of a plane stack.

    Consistent with transform_coord(): the value at (row, col) ends up at
    transform_coord((row, col), code, size).
    """
    _check_code(code)
    if code >= 4:
        planes = np.flip(planes, axis=-1)
    planes = np.rot90(planes, k=code % 4, axes=(-2, -1))
    return np.ascontiguousarray(planes)


def extract_planes(state: "GoState") -> np.ndarray:
    """
    Encodes a position as feature planes in board orientation.
    Shape: [12, size, size]
    """
    size = state.board_size
    player = state.current_player
    board = state.board
    planes = np.zeros((NUM_FEATURE_PLANES, size, size), dtype=np.float32)

    own = board == player
    opp = (board != player) & (board != EMPTY)
    planes[PLANE_OWN] = own
    planes[PLANE_OPPONENT] = opp
    planes[PLANE_EMPTY] = board == EMPTY

    liberties = state.liberty_map()
    for i, (low, high) in enumerate(((1, 1), (2, 2), (3, size * size))):
        in_range = (liberties >= low) & (liberties <= high)
        planes[PLANE_OWN_LIBERTIES + i] = own & in_range
        planes[PLANE_OPPONENT_LIBERTIES + i] = opp & in_range

    if state.ko_point is not None:
        planes[PLANE_KO][state.ko_point] = 1.0

    last = state.last_move
    if last is not None and last != PASS:
        planes[PLANE_LAST_MOVE][last] = 1.0

    if player == BLACK:
        planes[PLANE_BLACK_TO_MOVE] = 1.0

    return planes


class BoardFeature:
    """
    Feature view of a position under one board symmetry.

    The feature tensor and the action mapping share the same orientation, so
    a target action produced by coord_to_action() lines up with the stone
    positions in extract().
    """

    def __init__(self, state: "GoState", aug_code: int = 0):
        _check_code(aug_code)
        self.state = state
        self.aug_code = aug_code
        self.board_size = state.board_size

    def extract(self) -> np.ndarray:
        """Returns the transformed feature planes."""
        return transform_planes(extract_planes(self.state), self.aug_code)

    def coord_to_action(self, move: Move) -> int:
        """Action index of a board-orientation move in the transformed space."""
        transformed = transform_coord(move, self.aug_code, self.board_size)
        return coord_to_action(transformed, self.board_size)

    def action_to_coord(self, action: int) -> Move:
        """Board-orientation move for an action in the transformed space."""
        transformed = action_to_coord(action, self.board_size)
        return inverse_transform_coord(transformed, self.aug_code, self.board_size)
