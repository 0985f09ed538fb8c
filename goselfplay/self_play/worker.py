"""
Self-Play Worker

Drives one game slot through repeated act() steps, either generating
episodes with a decision source or turning stored episodes into training
samples for the learner.
"""

import logging
import threading

import numpy as np
import torch

from ..data import (
    EpisodeRecord,
    GoState,
    Move,
    NUM_SYMMETRIES,
    TrainingSample,
    decode_moves,
    encode_moves,
    move_to_string,
)
from .agents import Agent
from .channel import ChannelClosedError, ChannelEndpoint, TrainingChannel
from .config import SelfPlayConfig
from .replay_buffer import EmptyBufferError, ReplayBuffer

logger = logging.getLogger(__name__)


class DataIntegrityError(ValueError):
    """A stored episode cannot produce a valid training sample."""


class InsufficientHistoryError(DataIntegrityError):
    """A stored episode is shorter than the future-action window."""


class SelfPlayWorker:
    """
    Self-play driver for one game slot.

    In generation mode each act() asks the agent for a move. An illegal move
    or a ply count past board_size ** 2 ends the episode: it is scored,
    encoded and inserted into the replay buffer, and the slot moves on to a
    new game id.

    In training mode each act() samples a stored episode, replays a random
    prefix, and sends one augmented training sample through the channel,
    blocking until the learner acknowledges it.
    """

    def __init__(
        self,
        game_idx: int,
        replay_buffer: ReplayBuffer,
        config: SelfPlayConfig,
        agent: Agent | None = None,
        channel: TrainingChannel | None = None,
    ):
        """
        Initialize the worker.

        Args:
            game_idx: Slot index; also the game id of the first episode.
            replay_buffer: Shared replay buffer.
            config: Self-play configuration.
            agent: Decision source, required in generation mode.
            channel: Training channel, required in training mode.

        Raises:
            ValueError: If the mode's collaborator is missing.
        """
        self.game_idx = game_idx
        self.replay_buffer = replay_buffer
        self.config = config
        self.seed = config.seed_for(game_idx)
        self.rng = np.random.default_rng(self.seed)
        if config.verbose:
            logger.info(f"[{game_idx}] Seed: {self.seed}")

        self.state = GoState(config.board_size, config.komi)
        self._moves: list[Move] = []
        self.episodes_completed = 0
        self.samples_sent = 0

        self.agent: Agent | None = None
        self.endpoint: ChannelEndpoint | None = None
        if config.is_generation:
            if agent is None:
                raise ValueError("Generation mode requires an agent")
            self.agent = agent
        else:
            if channel is None:
                raise ValueError("Training mode requires a training channel")
            self.endpoint = channel.connect(game_idx)

        if config.verbose:
            logger.info(f"[{game_idx}] Done with initialization ({config.mode})")

    @property
    def moves(self) -> list[Move]:
        """Moves accumulated in the current episode."""
        return list(self._moves)

    def act(self, done: threading.Event | None = None) -> None:
        """Run one step in the configured mode."""
        if self.agent is not None:
            self._act_generation(done)
        else:
            self._act_training(done)

    def _act_generation(self, done: threading.Event | None) -> None:
        move = self.agent.choose_move(self.state, done)

        legal = self.state.apply_move(move)
        if legal:
            self._moves.append(move)

        if not legal or self.state.ply > self.state.max_ply:
            self._finish_episode(move, legal)

    def _finish_episode(self, move: Move, legal: bool) -> None:
        level = logging.INFO if self.config.verbose else logging.DEBUG
        if logger.isEnabledFor(level):
            logger.log(level, f"[{self.game_idx}] Final board:\n{self.state}")
        reason = "no valid move" if not legal else "ply exceeds limit"
        logger.log(
            level,
            f"[{self.game_idx}] Finishing episode ({reason}): move {move_to_string(move)}, "
            f"ply {self.state.ply}",
        )

        record = EpisodeRecord(
            game_id=self.game_idx,
            reward=self.state.evaluate(self.rng),
            content=encode_moves(self._moves),
        )
        if not self.replay_buffer.insert(record):
            logger.warning(
                f"[{self.game_idx}] Insert error, dropping episode "
                f"(move {move_to_string(move)}, ply {self.state.ply}): "
                f"{self.replay_buffer.last_error}"
            )

        self.state.reset()
        self._moves = []
        self.agent.on_episode_end()
        self.game_idx += 1
        self.episodes_completed += 1

    def sample_cut_index(self, num_moves: int) -> int:
        """
        Choose where to cut a stored episode.

        Returns an index in [0, num_moves - N] so that N future moves follow it.

        Raises:
            InsufficientHistoryError: If the episode has fewer than N moves.
        """
        window = self.config.num_future_actions
        if num_moves < window:
            raise InsufficientHistoryError(
                f"[{self.game_idx}] Episode has {num_moves} moves, "
                f"fewer than the {window} future actions required"
            )
        return int(self.rng.integers(num_moves - window + 1))

    def _act_training(self, done: threading.Event | None) -> None:
        try:
            record = self.replay_buffer.get_sampler(self.rng).sample()
        except EmptyBufferError:
            logger.debug(f"[{self.game_idx}] Replay buffer empty, skipping step")
            return

        sample = self.build_sample(record)
        try:
            self.endpoint.send_and_wait(sample, done)
        except ChannelClosedError as e:
            logger.debug(str(e))
            return
        self.samples_sent += 1

    def build_sample(self, record: EpisodeRecord) -> TrainingSample:
        """
        Turn a stored episode into one augmented training sample.

        Raises:
            DataIntegrityError: If the episode is too short, does not replay,
                or its target moves are off the board or illegal.
        """
        try:
            moves = decode_moves(record.content)
        except ValueError as e:
            raise DataIntegrityError(f"[{self.game_idx}] Undecodable record {record.game_id}: {e}") from e

        window = self.config.num_future_actions
        move_to = self.sample_cut_index(len(moves))

        self.state.reset()
        for i in range(move_to):
            if not self.state.apply_move(moves[i]):
                raise self._illegal_move(record, moves[i], i)

        code = int(self.rng.integers(NUM_SYMMETRIES))
        feature = self.state.extract_features(code)
        features = torch.from_numpy(feature.extract())

        # Targets must replay too; step a copy so the cut position stays intact
        lookahead = self.state.copy()
        targets = []
        for i in range(move_to, move_to + window):
            try:
                targets.append(feature.coord_to_action(moves[i]))
            except ValueError as e:
                raise DataIntegrityError(
                    f"[{self.game_idx}] Record {record.game_id} has bad target at ply {i}: {e}"
                ) from e
            if not lookahead.apply_move(moves[i]):
                raise self._illegal_move(record, moves[i], i)

        sample = self.endpoint.prepare()
        sample.move_idx = self.state.ply
        sample.winner = record.reward
        sample.aug_code = code
        sample.game_id = record.game_id
        sample.features = features
        sample.offline_actions = torch.tensor(targets, dtype=torch.long)
        return sample

    def _illegal_move(self, record: EpisodeRecord, move: Move, ply: int) -> DataIntegrityError:
        return DataIntegrityError(
            f"[{self.game_idx}] Record {record.game_id} has illegal move "
            f"{move_to_string(move)} at ply {ply}"
        )
