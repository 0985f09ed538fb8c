"""
Episode Records and Training Samples

Data containers exchanged between self-play workers, the replay buffer and
the learner, plus JSONL persistence for stored episodes.
"""

import json
from dataclasses import dataclass, field
from pathlib import Path

import torch

from .encoding import Move, decode_moves


@dataclass(frozen=True)
class EpisodeRecord:
    """A finished episode as stored in the replay buffer."""

    game_id: int
    reward: float  # Sign of the final area score for black: 1.0=black wins, -1.0=white wins
    content: str  # Encoded move list, see encoding.encode_moves

    @property
    def moves(self) -> list[Move]:
        """Decoded move list."""
        return decode_moves(self.content)

    def to_dict(self) -> dict:
        """Converts to JSON-serializable dictionary."""
        return {
            "game_id": self.game_id,
            "reward": self.reward,
            "content": self.content,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "EpisodeRecord":
        """Creates from JSON dictionary."""
        return cls(
            game_id=int(data["game_id"]),
            reward=float(data["reward"]),
            content=data["content"],
        )


@dataclass
class TrainingSample:
    """One labelled position sent to the learner."""

    move_idx: int = 0  # Ply at the sampled cut point
    winner: float = 0.0  # Reward copied from the source episode
    aug_code: int = 0  # Board symmetry, 0-7
    features: torch.Tensor = field(default_factory=lambda: torch.zeros(0))
    offline_actions: torch.Tensor = field(default_factory=lambda: torch.zeros(0, dtype=torch.long))
    game_id: int = -1  # Source episode id


def collate_samples(samples: list[TrainingSample]) -> dict[str, torch.Tensor]:
    """
    Stacks training samples into batch tensors.

    Returns:
        Dictionary with 's', 'offline_a', 'winner', 'move_idx' and 'aug_code' tensors.
    """
    if not samples:
        return {}

    return {
        "s": torch.stack([s.features for s in samples]),
        "offline_a": torch.stack([s.offline_actions for s in samples]),
        "winner": torch.tensor([s.winner for s in samples], dtype=torch.float32),
        "move_idx": torch.tensor([s.move_idx for s in samples], dtype=torch.long),
        "aug_code": torch.tensor([s.aug_code for s in samples], dtype=torch.long),
    }


def save_records_jsonl(records: list[EpisodeRecord], file_path: str | Path) -> None:
    """Save episode records to a JSONL file."""
    with open(file_path, "w") as f:
        for record in records:
            f.write(json.dumps(record.to_dict()) + "\n")


def load_records_jsonl(file_path: str | Path) -> list[EpisodeRecord]:
    """Load episode records from a JSONL file."""
    records = []
    with open(file_path) as f:
        for line in f:
            if line.strip():
                records.append(EpisodeRecord.from_dict(json.loads(line)))
    return records
