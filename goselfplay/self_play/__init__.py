"""
Self-Play System for Go Neural Network Training

Provides components for generating episodes through self-play and for
turning stored episodes into training samples.
"""

from .agents import (
    Agent,
    DirectPredictAgent,
    FirstLegalAgent,
    MCTSAgent,
    ModelProtocol,
    RandomAgent,
    TorchModel,
    UniformModel,
    create_agent,
)
from .channel import ChannelClosedError, ChannelEndpoint, SampleBatch, TrainingChannel
from .config import SelfPlayConfig, derive_seed, parse_mode
from .manager import SelfPlayManager
from .replay_buffer import EmptyBufferError, ReplayBuffer, ReplaySampler
from .worker import DataIntegrityError, InsufficientHistoryError, SelfPlayWorker

__all__ = [
    "SelfPlayWorker",
    "SelfPlayManager",
    "SelfPlayConfig",
    "derive_seed",
    "parse_mode",
    "ReplayBuffer",
    "ReplaySampler",
    "EmptyBufferError",
    "TrainingChannel",
    "ChannelEndpoint",
    "SampleBatch",
    "ChannelClosedError",
    "DataIntegrityError",
    "InsufficientHistoryError",
    "Agent",
    "MCTSAgent",
    "DirectPredictAgent",
    "FirstLegalAgent",
    "RandomAgent",
    "ModelProtocol",
    "UniformModel",
    "TorchModel",
    "create_agent",
]
