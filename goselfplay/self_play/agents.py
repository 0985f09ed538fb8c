"""
Decision Sources for Self-Play

Agents choose the next move for a position. The self-play worker only sees
the Agent interface; which implementation runs is decided once, when the
worker is built (see create_agent()).

- MCTSAgent: PUCT tree search guided by a policy/value model
- DirectPredictAgent: one model inference, temperature sampling
- FirstLegalAgent / RandomAgent: baselines for tests and smoke runs
"""

import math
import threading
from abc import ABC, abstractmethod
from typing import Protocol, runtime_checkable

import numpy as np
import torch

from ..data import BLACK, PASS, GoState, Move, action_to_coord, coord_to_action, num_actions
from .config import AgentType, SelfPlayConfig


@runtime_checkable
class ModelProtocol(Protocol):
    """Protocol for policy/value models used by the agents."""

    def predict(self, features: np.ndarray) -> tuple[np.ndarray, float]:
        """
        Predict policy and value for a position.

        Args:
            features: Feature planes [C, size, size] in board orientation.

        Returns:
            Tuple of (policy, value) where policy covers every action
            (size * size points plus pass) and value is the evaluation
            for the player to move, in [-1, 1].
        """
        ...


class UniformModel:
    """A uniform policy model for testing and baseline comparisons."""

    def predict(self, features: np.ndarray) -> tuple[np.ndarray, float]:
        """Returns a uniform policy over every action and a neutral value."""
        size = features.shape[-1]
        policy = np.full(num_actions(size), 1.0 / num_actions(size), dtype=np.float32)
        return policy, 0.0


class TorchModel:
    """
    Adapts a PyTorch policy/value network to ModelProtocol.

    The module must map a batch [B, C, size, size] to (policy_logits [B, A], value [B, 1]).
    """

    def __init__(self, module: torch.nn.Module, device: torch.device | str = "cpu"):
        self.module = module.to(device)
        self.module.eval()
        self.device = device
        self._lock = threading.Lock()

    @torch.no_grad()
    def predict(self, features: np.ndarray) -> tuple[np.ndarray, float]:
        x = torch.from_numpy(np.ascontiguousarray(features)).unsqueeze(0).to(self.device)
        with self._lock:
            logits, value = self.module(x)
        policy = torch.softmax(logits.float(), dim=-1)[0].cpu().numpy()
        return policy, float(value.reshape(-1)[0])


def mask_policy(policy: np.ndarray, legal_moves: list[Move], board_size: int) -> np.ndarray:
    """
    Mask illegal moves and renormalize policy.

    Falls back to uniform over legal moves if they all have zero probability.
    """
    masked = np.zeros(num_actions(board_size), dtype=np.float64)
    for move in legal_moves:
        action = coord_to_action(move, board_size)
        masked[action] = max(float(policy[action]), 0.0)

    total = masked.sum()
    if total > 0:
        masked /= total
    elif legal_moves:
        for move in legal_moves:
            masked[coord_to_action(move, board_size)] = 1.0 / len(legal_moves)

    return masked


def sample_action(weights: np.ndarray, temperature: float, rng: np.random.Generator) -> int:
    """
    Sample an action from non-negative weights with temperature.

    Args:
        weights: Probabilities or visit counts per action.
        temperature: Sampling temperature. 0 = argmax, higher = more random.
        rng: Random generator.

    Returns:
        Selected action index.
    """
    if temperature == 0:
        return int(np.argmax(weights))

    scaled = np.power(weights, 1.0 / temperature)
    total = scaled.sum()
    if total == 0:
        non_zero = np.flatnonzero(weights > 0)
        if len(non_zero) > 0:
            return int(rng.choice(non_zero))
        return int(np.argmax(weights))

    return int(rng.choice(len(weights), p=scaled / total))


class Agent(ABC):
    """
    Base class for decision sources.

    choose_move() may run a bounded search, but must return promptly once the
    ``done`` event is set.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Returns the agent's name."""
        pass

    @abstractmethod
    def choose_move(self, state: GoState, done: threading.Event | None = None) -> Move:
        """
        Select a move for the given position.

        Returns PASS when the game is already over; the caller detects the
        illegal move and finishes the episode.
        """
        pass

    def on_episode_end(self) -> None:
        """Called by the worker after each finished episode."""
        pass


class FirstLegalAgent(Agent):
    """Agent that always plays the first legal point in row-major order."""

    @property
    def name(self) -> str:
        return "first_legal"

    def choose_move(self, state: GoState, done: threading.Event | None = None) -> Move:
        legal_moves = state.get_legal_moves()
        return legal_moves[0] if legal_moves else PASS


class RandomAgent(Agent):
    """Agent that plays uniformly random legal moves, never filling its own eyes."""

    def __init__(self, rng: np.random.Generator | None = None):
        self.rng = rng if rng is not None else np.random.default_rng()

    @property
    def name(self) -> str:
        return "random"

    def choose_move(self, state: GoState, done: threading.Event | None = None) -> Move:
        candidates = [
            move for move in state.get_legal_moves()
            if move != PASS and not state.is_own_eye(move)
        ]
        if not candidates:
            return PASS
        return candidates[int(self.rng.integers(len(candidates)))]


class DirectPredictAgent(Agent):
    """Agent that samples directly from the model's policy."""

    def __init__(
        self,
        model: ModelProtocol | None = None,
        rng: np.random.Generator | None = None,
        temperature: float = 1.0,
        temperature_threshold: int = 30,
    ):
        self.model = model if model is not None else UniformModel()
        self.rng = rng if rng is not None else np.random.default_rng()
        self.temperature = temperature
        self.temperature_threshold = temperature_threshold

    @property
    def name(self) -> str:
        return "direct"

    def choose_move(self, state: GoState, done: threading.Event | None = None) -> Move:
        legal_moves = state.get_legal_moves()
        if not legal_moves:
            return PASS

        features = state.extract_features(0).extract()
        policy, _ = self.model.predict(features)
        policy = mask_policy(policy, legal_moves, state.board_size)

        temp = self.temperature if state.ply < self.temperature_threshold else 0.0
        action = sample_action(policy, temp, self.rng)
        return action_to_coord(action, state.board_size)


class _Node:
    """Search tree node; value_sum is from the perspective of the player who chose it."""

    __slots__ = ("prior", "visit_count", "value_sum", "children")

    def __init__(self, prior: float):
        self.prior = prior
        self.visit_count = 0
        self.value_sum = 0.0
        self.children: dict[int, "_Node"] = {}

    @property
    def expanded(self) -> bool:
        return bool(self.children)

    def value(self) -> float:
        return self.value_sum / self.visit_count if self.visit_count else 0.0


class MCTSAgent(Agent):
    """
    Agent that runs a PUCT tree search from the current position.

    The search stops early when the ``done`` event is set; the move is then
    chosen from whatever statistics were gathered (or the priors).
    """

    def __init__(
        self,
        model: ModelProtocol | None = None,
        rng: np.random.Generator | None = None,
        num_simulations: int = 100,
        c_puct: float = 1.5,
        temperature: float = 1.0,
        temperature_threshold: int = 30,
    ):
        self.model = model if model is not None else UniformModel()
        self.rng = rng if rng is not None else np.random.default_rng()
        self.num_simulations = num_simulations
        self.c_puct = c_puct
        self.temperature = temperature
        self.temperature_threshold = temperature_threshold

    @property
    def name(self) -> str:
        return "mcts"

    def choose_move(self, state: GoState, done: threading.Event | None = None) -> Move:
        if state.is_terminal():
            return PASS

        root = _Node(1.0)
        self._expand(root, state)

        for _ in range(self.num_simulations):
            if done is not None and done.is_set():
                break
            self._simulate(root, state)

        size = state.board_size
        weights = np.zeros(num_actions(size), dtype=np.float64)
        for action, child in root.children.items():
            weights[action] = child.visit_count

        if weights.sum() == 0:
            # Cancelled before any simulation
            for action, child in root.children.items():
                weights[action] = child.prior
            return action_to_coord(int(np.argmax(weights)), size)

        temp = self.temperature if state.ply < self.temperature_threshold else 0.0
        return action_to_coord(sample_action(weights, temp, self.rng), size)

    def _simulate(self, root: _Node, state: GoState) -> None:
        scratch = state.copy()
        node = root
        path = [root]

        while node.expanded and not scratch.is_terminal():
            action, node = self._select_child(node)
            scratch.apply_move(action_to_coord(action, scratch.board_size))
            path.append(node)

        if scratch.is_terminal():
            score = scratch.score()
            black_value = 1.0 if score > 0 else -1.0 if score < 0 else 0.0
            value = black_value if scratch.current_player == BLACK else -black_value
        else:
            value = self._expand(node, scratch)

        # value is for the player to move at the leaf
        for visited in reversed(path):
            value = -value
            visited.value_sum += value
            visited.visit_count += 1

    def _select_child(self, node: _Node) -> tuple[int, _Node]:
        sqrt_total = math.sqrt(max(node.visit_count, 1))
        best_score = -math.inf
        best = None
        for action, child in node.children.items():
            score = child.value() + self.c_puct * child.prior * sqrt_total / (1 + child.visit_count)
            if score > best_score:
                best_score = score
                best = (action, child)
        return best

    def _expand(self, node: _Node, state: GoState) -> float:
        legal_moves = state.get_legal_moves()
        features = state.extract_features(0).extract()
        policy, value = self.model.predict(features)
        priors = mask_policy(policy, legal_moves, state.board_size)

        for move in legal_moves:
            action = coord_to_action(move, state.board_size)
            node.children[action] = _Node(float(priors[action]))

        return float(value)


def create_agent(
    config: SelfPlayConfig,
    model: ModelProtocol | None = None,
    rng: np.random.Generator | None = None,
) -> Agent:
    """
    Build the decision source selected by the configuration.

    Args:
        config: Self-play configuration; ``config.agent`` picks the algorithm.
        model: Policy/value model. Defaults to a uniform model.
        rng: Random generator for move sampling.

    Returns:
        An MCTSAgent or a DirectPredictAgent.
    """
    if config.agent == AgentType.MCTS.value:
        return MCTSAgent(
            model=model,
            rng=rng,
            num_simulations=config.mcts.num_simulations,
            c_puct=config.mcts.c_puct,
            temperature=config.mcts.temperature,
            temperature_threshold=config.mcts.temperature_threshold,
        )
    return DirectPredictAgent(
        model=model,
        rng=rng,
        temperature=config.direct.temperature,
        temperature_threshold=config.direct.temperature_threshold,
    )
