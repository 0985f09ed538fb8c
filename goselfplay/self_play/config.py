"""
Self-Play Configuration

Dataclass-based configuration for self-play workers. A configuration is
validated when it is built and is not changed afterwards.
"""

from dataclasses import asdict, dataclass, field
from enum import Enum
from pathlib import Path

import numpy as np
import yaml

from ..data import DEFAULT_BOARD_SIZE, DEFAULT_KOMI


class Mode(str, Enum):
    """Operating mode of a self-play worker."""

    GENERATION = "generation"
    TRAINING = "training"


class AgentType(str, Enum):
    """Decision algorithm used in generation mode."""

    MCTS = "mcts"
    DIRECT = "direct"


MODE_ALIASES = {
    "generation": Mode.GENERATION,
    "selfplay": Mode.GENERATION,
    "training": Mode.TRAINING,
    "train": Mode.TRAINING,
}


def parse_mode(mode: str | Mode) -> Mode:
    """
    Resolves a mode string.

    Raises:
        ValueError: If the mode is not recognized.
    """
    if isinstance(mode, Mode):
        return mode
    try:
        return MODE_ALIASES[mode]
    except KeyError:
        raise ValueError(f"Unknown mode: {mode!r} (expected one of {sorted(MODE_ALIASES)})") from None


def derive_seed(game_idx: int) -> int:
    """Deterministic 32-bit seed for a game slot."""
    return int(np.random.SeedSequence(game_idx).generate_state(1)[0])


@dataclass
class MCTSConfig:
    """Configuration for the tree-search agent."""

    num_simulations: int = 100
    c_puct: float = 1.5
    temperature: float = 1.0
    temperature_threshold: int = 30  # Moves after which temp → 0


@dataclass
class DirectConfig:
    """Configuration for the direct-inference agent."""

    temperature: float = 1.0
    temperature_threshold: int = 30


@dataclass
class ReplayBufferConfig:
    """Configuration for replay buffer."""

    max_size: int = 100000
    min_moves: int = 0  # Records with fewer moves are rejected
    sample_timeout: float = 1.0  # Seconds to wait for a record to sample
    sampling: str = "uniform"  # "uniform" or "recent"
    recent_window: int = 0  # Number of newest records used by "recent"


@dataclass
class ChannelConfig:
    """Configuration for the training channel."""

    max_queue_size: int = 64
    ack_poll_interval: float = 0.05


@dataclass
class SelfPlayConfig:
    """Configuration for self-play data generation and sampling."""

    # Operating mode
    mode: str = "generation"
    agent: str = "mcts"

    # Training samples
    num_future_actions: int = 1

    # Seeding (0 = derive from the game slot index)
    seed: int = 0
    verbose: bool = False

    # Game settings
    num_games: int = 4
    board_size: int = DEFAULT_BOARD_SIZE
    komi: float = DEFAULT_KOMI

    # Agents
    mcts: MCTSConfig = field(default_factory=MCTSConfig)
    direct: DirectConfig = field(default_factory=DirectConfig)

    # Replay buffer and channel
    replay_buffer: ReplayBufferConfig = field(default_factory=ReplayBufferConfig)
    channel: ChannelConfig = field(default_factory=ChannelConfig)

    def __post_init__(self):
        self.mode = parse_mode(self.mode).value
        try:
            self.agent = AgentType(self.agent).value
        except ValueError:
            raise ValueError(f"Unknown agent: {self.agent!r} (expected 'mcts' or 'direct')") from None

        if self.num_future_actions < 1:
            raise ValueError(f"num_future_actions must be positive, got {self.num_future_actions}")
        if self.seed < 0:
            raise ValueError(f"seed must be non-negative, got {self.seed}")
        if self.board_size < 2:
            raise ValueError(f"board_size must be at least 2, got {self.board_size}")
        if self.replay_buffer.sampling not in ("uniform", "recent"):
            raise ValueError(f"Unknown sampling strategy: {self.replay_buffer.sampling!r}")

    @property
    def is_generation(self) -> bool:
        return self.mode == Mode.GENERATION.value

    @property
    def is_training(self) -> bool:
        return self.mode == Mode.TRAINING.value

    def seed_for(self, game_idx: int) -> int:
        """Seed used by the worker for a game slot."""
        return self.seed if self.seed != 0 else derive_seed(game_idx)

    @classmethod
    def from_yaml(cls, path: str | Path) -> "SelfPlayConfig":
        """Load configuration from a YAML file."""
        with open(path) as f:
            data = yaml.safe_load(f) or {}

        mcts = MCTSConfig(**data.pop("mcts", {}))
        direct = DirectConfig(**data.pop("direct", {}))
        replay_buffer = ReplayBufferConfig(**data.pop("replay_buffer", {}))
        channel = ChannelConfig(**data.pop("channel", {}))

        return cls(
            mcts=mcts,
            direct=direct,
            replay_buffer=replay_buffer,
            channel=channel,
            **data,
        )

    def to_yaml(self, path: str | Path) -> None:
        """Save configuration to a YAML file."""
        with open(path, "w") as f:
            yaml.dump(asdict(self), f, default_flow_style=False, sort_keys=False)
