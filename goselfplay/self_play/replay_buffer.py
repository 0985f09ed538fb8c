"""
Replay Buffer for Self-Play Training

Fixed-size store of finished episodes shared by every self-play worker.
Generation-mode workers insert records; training-mode workers draw records
through a sampler. Records are immutable, so a sampled record is always
complete.
"""

import logging
import threading
from collections import deque
from pathlib import Path

import numpy as np

from ..data import (
    EpisodeRecord,
    decode_moves,
    load_records_jsonl,
    save_records_jsonl,
    validate_record,
)
from .config import ReplayBufferConfig

logger = logging.getLogger(__name__)


class EmptyBufferError(LookupError):
    """Raised when a sampler times out waiting for a record."""


class ReplaySampler:
    """
    Sampling handle over a replay buffer.

    Each worker holds its own sampler; samplers may be used concurrently.
    """

    def __init__(self, buffer: "ReplayBuffer", rng: np.random.Generator):
        self._buffer = buffer
        self._rng = rng

    def sample(self) -> EpisodeRecord:
        """
        Draw one record according to the buffer's sampling strategy.

        Raises:
            EmptyBufferError: If no record arrives within the buffer's sample timeout.
        """
        return self._buffer._sample(self._rng)


class ReplayBuffer:
    """
    Fixed-size replay buffer of episode records.

    Thread-safe for concurrent insert/sample operations.
    """

    def __init__(
        self,
        max_size: int = 100000,
        min_moves: int = 0,
        sample_timeout: float | None = 1.0,
        sampling: str = "uniform",
        recent_window: int = 0,
        board_size: int | None = None,
    ):
        """
        Initialize the replay buffer.

        Args:
            max_size: Maximum number of records to store; the oldest are evicted.
            min_moves: Records with fewer moves are rejected on insert.
            sample_timeout: Seconds a sampler waits for a record (None waits forever).
            sampling: "uniform" over all records, or "recent" over the newest recent_window.
            recent_window: Window size for "recent" sampling (0 = whole buffer).
            board_size: If given, inserted records are replayed to check legality.
        """
        if sampling not in ("uniform", "recent"):
            raise ValueError(f"Unknown sampling strategy: {sampling!r}")

        self.max_size = max_size
        self.min_moves = min_moves
        self.sample_timeout = sample_timeout
        self.sampling = sampling
        self.recent_window = recent_window
        self.board_size = board_size
        self.buffer: deque[EpisodeRecord] = deque(maxlen=max_size)
        self.num_inserted = 0
        self.num_rejected = 0
        self._cond = threading.Condition()
        self._errors = threading.local()

    @classmethod
    def from_config(
        cls,
        config: ReplayBufferConfig,
        board_size: int | None = None,
        num_future_actions: int = 0,
    ) -> "ReplayBuffer":
        """
        Build a buffer from its configuration section.

        Records shorter than num_future_actions are rejected on insert, so
        every stored episode can yield a full target window.
        """
        return cls(
            max_size=config.max_size,
            min_moves=max(config.min_moves, num_future_actions),
            sample_timeout=config.sample_timeout,
            sampling=config.sampling,
            recent_window=config.recent_window,
            board_size=board_size,
        )

    @property
    def last_error(self) -> str:
        """Reason for the calling thread's most recent rejected insert."""
        return getattr(self._errors, "message", "")

    def insert(self, record: EpisodeRecord) -> bool:
        """
        Add a finished episode to the buffer.

        Returns:
            True if the record was stored, False if it was rejected
            (see last_error).
        """
        result = validate_record(record, min_moves=self.min_moves, board_size=self.board_size)
        if not result:
            self._errors.message = "; ".join(result.errors)
            with self._cond:
                self.num_rejected += 1
            return False

        with self._cond:
            self.buffer.append(record)
            self.num_inserted += 1
            self._cond.notify_all()
        return True

    def get_sampler(self, rng: np.random.Generator | None = None) -> ReplaySampler:
        """Returns a sampling handle drawing with ``rng``."""
        return ReplaySampler(self, rng if rng is not None else np.random.default_rng())

    def _sample(self, rng: np.random.Generator) -> EpisodeRecord:
        with self._cond:
            if not self._cond.wait_for(lambda: len(self.buffer) > 0, timeout=self.sample_timeout):
                raise EmptyBufferError("Replay buffer is empty")

            size = len(self.buffer)
            if self.sampling == "recent" and 0 < self.recent_window < size:
                index = size - self.recent_window + int(rng.integers(self.recent_window))
            else:
                index = int(rng.integers(size))
            return self.buffer[index]

    def records(self) -> list[EpisodeRecord]:
        """Snapshot of the stored records, oldest first."""
        with self._cond:
            return list(self.buffer)

    def __len__(self) -> int:
        """Return the current size of the buffer."""
        return len(self.buffer)

    def clear(self) -> None:
        """Clear all records from the buffer."""
        with self._cond:
            self.buffer.clear()

    def save(self, path: str | Path) -> int:
        """
        Save the stored records to a JSONL file.

        Returns:
            Number of records written.
        """
        records = self.records()
        save_records_jsonl(records, path)
        logger.info(f"Saved {len(records)} records to {path}")
        return len(records)

    def load(self, path: str | Path) -> int:
        """
        Insert every valid record from a JSONL file.

        Returns:
            Number of records accepted.
        """
        accepted = 0
        for record in load_records_jsonl(path):
            if self.insert(record):
                accepted += 1
            else:
                logger.warning(f"Skipping record {record.game_id} from {path}: {self.last_error}")
        logger.info(f"Loaded {accepted} records from {path}")
        return accepted

    def get_statistics(self) -> dict:
        """
        Get buffer statistics.

        Returns:
            Dictionary of statistics.
        """
        records = self.records()
        if not records:
            return {
                "size": 0,
                "max_size": self.max_size,
                "fill_ratio": 0.0,
                "inserted": self.num_inserted,
                "rejected": self.num_rejected,
            }

        results = {"black": 0, "white": 0}
        total_moves = 0
        for record in records:
            if record.reward > 0:
                results["black"] += 1
            else:
                results["white"] += 1
            total_moves += len(decode_moves(record.content))

        return {
            "size": len(records),
            "max_size": self.max_size,
            "fill_ratio": len(records) / self.max_size,
            "inserted": self.num_inserted,
            "rejected": self.num_rejected,
            "result_distribution": results,
            "black_win_rate": results["black"] / len(records),
            "average_length": total_moves / len(records),
        }
