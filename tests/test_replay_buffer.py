"""
Tests for the replay buffer and its samplers.
"""

import tempfile
import threading
import time
from pathlib import Path

import numpy as np
import pytest

from goselfplay.data import EpisodeRecord, encode_moves
from goselfplay.self_play import EmptyBufferError, ReplayBuffer
from goselfplay.self_play.config import ReplayBufferConfig


def make_record(game_id: int = 0, reward: float = 1.0, num_moves: int = 2) -> EpisodeRecord:
    moves = [(i // 5, i % 5) for i in range(num_moves)]
    return EpisodeRecord(game_id=game_id, reward=reward, content=encode_moves(moves))


class TestInsert:
    """Tests for inserting records."""

    def test_insert_and_len(self):
        """Inserted records are stored."""
        buffer = ReplayBuffer()
        assert buffer.insert(make_record())
        assert len(buffer) == 1
        assert buffer.num_inserted == 1

    def test_rejects_short_episode(self):
        """Short episodes are rejected with a reason."""
        buffer = ReplayBuffer(min_moves=5)
        assert not buffer.insert(make_record(num_moves=2))
        assert len(buffer) == 0
        assert buffer.num_rejected == 1
        assert "Too few moves" in buffer.last_error

    def test_rejects_illegal_replay(self):
        """Unreplayable episodes are rejected when the board size is known."""
        buffer = ReplayBuffer(board_size=5)
        record = EpisodeRecord(game_id=0, reward=1.0, content=";B[aa];W[aa]")
        assert not buffer.insert(record)
        assert "illegal" in buffer.last_error

    def test_last_error_is_per_thread(self):
        """Each thread sees only its own insert error."""
        buffer = ReplayBuffer(min_moves=5)
        buffer.insert(make_record(num_moves=1))
        seen = []

        thread = threading.Thread(target=lambda: seen.append(buffer.last_error))
        thread.start()
        thread.join()

        assert buffer.last_error
        assert seen == [""]

    def test_oldest_records_evicted(self):
        """The oldest records are evicted at capacity."""
        buffer = ReplayBuffer(max_size=3)
        for i in range(5):
            buffer.insert(make_record(game_id=i))

        assert len(buffer) == 3
        assert [r.game_id for r in buffer.records()] == [2, 3, 4]

    def test_concurrent_inserts(self):
        """Concurrent inserts are all stored."""
        buffer = ReplayBuffer(max_size=1000)

        def insert_many(offset):
            for i in range(50):
                buffer.insert(make_record(game_id=offset + i))

        threads = [threading.Thread(target=insert_many, args=(k * 50,)) for k in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(buffer) == 200
        assert buffer.num_inserted == 200

    def test_clear(self):
        """Clear empties the buffer."""
        buffer = ReplayBuffer()
        buffer.insert(make_record())
        buffer.clear()
        assert len(buffer) == 0

    def test_invalid_sampling_raises(self):
        """Unknown sampling strategies raise ValueError."""
        with pytest.raises(ValueError):
            ReplayBuffer(sampling="oldest")

    def test_from_config(self):
        """Buffer settings come from the config section."""
        config = ReplayBufferConfig(max_size=10, min_moves=3, sample_timeout=0.5)
        buffer = ReplayBuffer.from_config(config, board_size=9)
        assert buffer.max_size == 10
        assert buffer.min_moves == 3
        assert buffer.sample_timeout == 0.5
        assert buffer.board_size == 9

    def test_from_config_enforces_future_window(self):
        """Records shorter than the future-action window are rejected."""
        buffer = ReplayBuffer.from_config(ReplayBufferConfig(), num_future_actions=3)
        assert buffer.min_moves == 3
        assert not buffer.insert(make_record(num_moves=2))
        assert "Too few moves" in buffer.last_error
        assert buffer.insert(make_record(num_moves=3))

    def test_from_config_keeps_larger_min_moves(self):
        """A configured min_moves above the window is kept."""
        buffer = ReplayBuffer.from_config(ReplayBufferConfig(min_moves=5), num_future_actions=3)
        assert buffer.min_moves == 5


class TestSampling:
    """Tests for drawing records."""

    def test_sample_returns_stored_record(self):
        """Sampling returns a stored record."""
        buffer = ReplayBuffer()
        record = make_record(game_id=3)
        buffer.insert(record)
        assert buffer.get_sampler(np.random.default_rng(0)).sample() == record

    def test_empty_buffer_times_out(self):
        """Sampling an empty buffer times out."""
        buffer = ReplayBuffer(sample_timeout=0.01)
        with pytest.raises(EmptyBufferError):
            buffer.get_sampler().sample()

    def test_sample_waits_for_insert(self):
        """A waiting sampler wakes on insert."""
        buffer = ReplayBuffer(sample_timeout=5.0)

        def insert_later():
            time.sleep(0.05)
            buffer.insert(make_record(game_id=9))

        thread = threading.Thread(target=insert_later)
        thread.start()
        record = buffer.get_sampler().sample()
        thread.join()

        assert record.game_id == 9

    def test_seeded_samplers_agree(self):
        """Samplers with the same seed draw the same records."""
        buffer = ReplayBuffer()
        for i in range(20):
            buffer.insert(make_record(game_id=i))

        a = buffer.get_sampler(np.random.default_rng(3))
        b = buffer.get_sampler(np.random.default_rng(3))
        assert [a.sample().game_id for _ in range(10)] == [b.sample().game_id for _ in range(10)]

    def test_recent_sampling(self):
        """Recent sampling only draws from the newest window."""
        buffer = ReplayBuffer(sampling="recent", recent_window=2)
        for i in range(5):
            buffer.insert(make_record(game_id=i))

        sampler = buffer.get_sampler(np.random.default_rng(0))
        ids = {sampler.sample().game_id for _ in range(50)}
        assert ids == {3, 4}

    def test_uniform_sampling_covers_buffer(self):
        """Uniform sampling reaches every record."""
        buffer = ReplayBuffer()
        for i in range(4):
            buffer.insert(make_record(game_id=i))

        sampler = buffer.get_sampler(np.random.default_rng(0))
        ids = {sampler.sample().game_id for _ in range(200)}
        assert ids == {0, 1, 2, 3}


class TestPersistence:
    """Tests for saving, loading and statistics."""

    def test_save_and_load(self):
        """Buffer contents survive a JSONL save and load."""
        buffer = ReplayBuffer()
        for i in range(3):
            buffer.insert(make_record(game_id=i, reward=-1.0 if i else 1.0))

        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "buffer.jsonl"
            assert buffer.save(path) == 3

            restored = ReplayBuffer()
            assert restored.load(path) == 3

        assert restored.records() == buffer.records()

    def test_load_skips_invalid(self):
        """Invalid lines are skipped on load."""
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "buffer.jsonl"
            path.write_text(
                '{"game_id": 0, "reward": 1.0, "content": ";B[aa]"}\n'
                '{"game_id": 1, "reward": 1.0, "content": "garbage"}\n'
            )
            buffer = ReplayBuffer()
            assert buffer.load(path) == 1

        assert len(buffer) == 1

    def test_statistics(self):
        """Statistics report size, win rate and length."""
        buffer = ReplayBuffer(max_size=10)
        buffer.insert(make_record(game_id=0, reward=1.0, num_moves=2))
        buffer.insert(make_record(game_id=1, reward=-1.0, num_moves=4))

        stats = buffer.get_statistics()
        assert stats["size"] == 2
        assert stats["fill_ratio"] == 0.2
        assert stats["black_win_rate"] == 0.5
        assert stats["average_length"] == 3.0

    def test_statistics_empty(self):
        """Statistics on an empty buffer."""
        stats = ReplayBuffer().get_statistics()
        assert stats["size"] == 0
        assert stats["inserted"] == 0
