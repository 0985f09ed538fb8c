"""
Go Game Logic

Pure Python implementation of Go rules for self-play data generation:
captures, suicide and simple ko are enforced, the game ends after two
consecutive passes, and finished or abandoned positions are scored with
area (Tromp-Taylor) counting.
"""

import numpy as np

from .encoding import (
    BLACK,
    DEFAULT_BOARD_SIZE,
    DEFAULT_KOMI,
    EMPTY,
    PASS,
    WHITE,
    Move,
    is_on_board,
    move_to_string,
    opponent,
)
from .features import BoardFeature


def get_neighbors(point: Move, board_size: int) -> list[Move]:
    """Returns the orthogonal neighbours of a point that lie on the board."""
    row, col = point
    neighbors = []
    for dr, dc in ((1, 0), (-1, 0), (0, 1), (0, -1)):
        r, c = row + dr, col + dc
        if 0 <= r < board_size and 0 <= c < board_size:
            neighbors.append((r, c))
    return neighbors


def find_group(board: np.ndarray, start: Move) -> tuple[set[Move], set[Move]]:
    """
    Flood-fills the group containing a stone.

    Returns:
        Tuple of (stones, liberties).
    """
    board_size = board.shape[0]
    color = board[start]
    stones = {start}
    liberties: set[Move] = set()
    stack = [start]

    while stack:
        point = stack.pop()
        for nb in get_neighbors(point, board_size):
            value = board[nb]
            if value == EMPTY:
                liberties.add(nb)
            elif value == color and nb not in stones:
                stones.add(nb)
                stack.append(nb)

    return stones, liberties


def area_score(board: np.ndarray, komi: float = DEFAULT_KOMI) -> float:
    """
    Area score from black's perspective with komi subtracted.

    Stones count for their owner; an empty region counts for a colour only
    if every stone bordering it has that colour.
    """
    board_size = board.shape[0]
    seen = np.zeros_like(board, dtype=bool)
    black_area = int(np.sum(board == BLACK))
    white_area = int(np.sum(board == WHITE))

    for row in range(board_size):
        for col in range(board_size):
            if seen[row, col] or board[row, col] != EMPTY:
                continue

            # Flood-fill an empty region
            region = 0
            borders = set()
            stack = [(row, col)]
            seen[row, col] = True
            while stack:
                point = stack.pop()
                region += 1
                for nb in get_neighbors(point, board_size):
                    value = board[nb]
                    if value == EMPTY:
                        if not seen[nb]:
                            seen[nb] = True
                            stack.append(nb)
                    else:
                        borders.add(int(value))

            if borders == {BLACK}:
                black_area += region
            elif borders == {WHITE}:
                white_area += region

    return black_area - white_area - komi


class GoState:
    """
    Manages the state of one Go episode.

    The applied moves are kept in order; ``ply`` is always their count.
    """

    def __init__(self, board_size: int = DEFAULT_BOARD_SIZE, komi: float = DEFAULT_KOMI):
        self.board_size = board_size
        self.komi = komi
        self.reset()

    def reset(self) -> None:
        """Resets the game to the empty board with black to move."""
        self.board = np.zeros((self.board_size, self.board_size), dtype=np.int8)
        self.current_player = BLACK
        self.moves: list[Move] = []
        self.ko_point: Move | None = None
        self.consecutive_passes = 0

    @property
    def ply(self) -> int:
        """Number of moves applied so far."""
        return len(self.moves)

    @property
    def last_move(self) -> Move | None:
        return self.moves[-1] if self.moves else None

    @property
    def max_ply(self) -> int:
        """Ply ceiling after which an episode is treated as runaway."""
        return self.board_size * self.board_size

    def is_terminal(self) -> bool:
        """Returns True once both players have passed in a row."""
        return self.consecutive_passes >= 2

    def is_legal(self, move: Move) -> bool:
        """Checks whether the player to move may play the given move."""
        if self.is_terminal():
            return False
        if move == PASS:
            return True
        if not is_on_board(move, self.board_size):
            return False
        if self.board[move] != EMPTY or move == self.ko_point:
            return False
        return not self._is_suicide(move)

    def _is_suicide(self, point: Move) -> bool:
        player = self.current_player
        for nb in get_neighbors(point, self.board_size):
            value = self.board[nb]
            if value == EMPTY:
                return False
            _, liberties = find_group(self.board, nb)
            if value == player and len(liberties) > 1:
                # Joins a group that keeps another liberty
                return False
            if value != player and len(liberties) == 1:
                # Captures the neighbouring group
                return False
        return True

    def get_legal_moves(self) -> list[Move]:
        """Returns every legal move, PASS last."""
        if self.is_terminal():
            return []
        moves = [
            (row, col)
            for row in range(self.board_size)
            for col in range(self.board_size)
            if self.is_legal((row, col))
        ]
        moves.append(PASS)
        return moves

    def apply_move(self, move: Move) -> bool:
        """
        Plays a move for the current player.

        Returns:
            True if the move was applied, False if it is illegal.
        """
        if not self.is_legal(move):
            return False

        if move == PASS:
            self.consecutive_passes += 1
            self.ko_point = None
        else:
            self.consecutive_passes = 0
            self._place_stone(move)

        self.moves.append(move)
        self.current_player = opponent(self.current_player)
        return True

    def _place_stone(self, point: Move) -> None:
        player = self.current_player
        self.board[point] = player

        captured: list[Move] = []
        for nb in get_neighbors(point, self.board_size):
            if self.board[nb] == opponent(player):
                stones, liberties = find_group(self.board, nb)
                if not liberties:
                    captured.extend(stones)
                    for stone in stones:
                        self.board[stone] = EMPTY

        # Simple ko: a lone stone that captured exactly one stone
        self.ko_point = None
        if len(captured) == 1:
            stones, liberties = find_group(self.board, point)
            if len(stones) == 1 and len(liberties) == 1:
                self.ko_point = captured[0]

    def is_own_eye(self, point: Move) -> bool:
        """Returns True if every neighbour is a stone of the player to move."""
        neighbors = get_neighbors(point, self.board_size)
        return all(self.board[nb] == self.current_player for nb in neighbors)

    def playout(self, rng: np.random.Generator, max_moves: int | None = None) -> int:
        """
        Plays random legal moves (never filling a single-point own eye)
        until the game ends or max_moves is reached.

        Returns:
            Number of moves played.
        """
        if max_moves is None:
            max_moves = 2 * self.max_ply

        played = 0
        while not self.is_terminal() and played < max_moves:
            empties = np.argwhere(self.board == EMPTY)
            move = PASS
            for idx in rng.permutation(len(empties)):
                point = (int(empties[idx][0]), int(empties[idx][1]))
                if not self.is_own_eye(point) and self.is_legal(point):
                    move = point
                    break
            self.apply_move(move)
            played += 1

        return played

    def score(self) -> float:
        """Area score of the current board from black's perspective."""
        return area_score(self.board, self.komi)

    def evaluate(self, rng: np.random.Generator, playout: bool = True) -> float:
        """
        Evaluates the episode outcome from black's perspective.

        Unfinished games are first settled with a random playout on a copy.
        A tied score is broken with a coin flip from ``rng``.

        Returns:
            1.0 if black wins, -1.0 if white wins.
        """
        if playout and not self.is_terminal():
            settled = self.copy()
            settled.playout(rng)
            score = settled.score()
        else:
            score = self.score()

        if score > 0:
            return 1.0
        if score < 0:
            return -1.0
        return 1.0 if rng.integers(2) == 0 else -1.0

    def extract_features(self, aug_code: int = 0) -> BoardFeature:
        """Feature view of the current position under symmetry ``aug_code``."""
        return BoardFeature(self, aug_code)

    def liberty_map(self) -> np.ndarray:
        """Liberty count of the group at every stone, 0 on empty points."""
        liberties = np.zeros(self.board.shape, dtype=np.int32)
        for row in range(self.board_size):
            for col in range(self.board_size):
                if self.board[row, col] != EMPTY and liberties[row, col] == 0:
                    stones, libs = find_group(self.board, (row, col))
                    for stone in stones:
                        liberties[stone] = len(libs)
        return liberties

    def copy(self) -> "GoState":
        """Returns a deep copy of the state."""
        state = GoState(self.board_size, self.komi)
        state.board = self.board.copy()
        state.current_player = self.current_player
        state.moves = self.moves[:]
        state.ko_point = self.ko_point
        state.consecutive_passes = self.consecutive_passes
        return state

    @classmethod
    def from_moves(
        cls,
        moves: list[Move],
        board_size: int = DEFAULT_BOARD_SIZE,
        komi: float = DEFAULT_KOMI,
    ) -> "GoState":
        """Creates a state by replaying a sequence of moves."""
        state = cls(board_size, komi)
        for move in moves:
            if not state.apply_move(move):
                raise ValueError(f"Invalid move {move_to_string(move)} at ply {state.ply}")
        return state

    def __str__(self) -> str:
        """Returns a string representation of the board."""
        symbols = {EMPTY: ".", BLACK: "X", WHITE: "O"}
        lines = []
        for row in range(self.board_size - 1, -1, -1):
            cells = " ".join(symbols[int(v)] for v in self.board[row])
            lines.append(f"{row + 1:2d} {cells}")
        letters = "ABCDEFGHJKLMNOPQRSTUVWXYZ"[: self.board_size]
        lines.append("   " + " ".join(letters))
        lines.append(f"Ply: {self.ply}, to move: {'black' if self.current_player == BLACK else 'white'}")
        return "\n".join(lines)
