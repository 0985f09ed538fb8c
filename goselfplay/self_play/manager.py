"""
Self-Play Manager

Schedules one self-play worker per game slot. Workers run in threads and
share the replay buffer (and, in training mode, the training channel).
"""

import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable

import numpy as np
from tqdm import tqdm

from .agents import Agent, ModelProtocol, UniformModel, create_agent
from .channel import TrainingChannel
from .config import SelfPlayConfig
from .replay_buffer import ReplayBuffer
from .worker import DataIntegrityError, SelfPlayWorker

logger = logging.getLogger(__name__)

AgentFactory = Callable[[int, np.random.Generator], Agent]


class SelfPlayManager:
    """
    Manages parallel self-play workers.

    Supports episode generation and training-sample streaming.
    """

    def __init__(
        self,
        config: SelfPlayConfig | None = None,
        replay_buffer: ReplayBuffer | None = None,
        model: ModelProtocol | None = None,
        channel: TrainingChannel | None = None,
        first_game_idx: int = 0,
        agent_factory: AgentFactory | None = None,
        poll_interval: float = 0.05,
    ):
        """
        Initialize the self-play manager.

        Args:
            config: Self-play configuration.
            replay_buffer: Shared replay buffer. Built from the config if omitted.
            model: Policy/value model for the agents. Defaults to a uniform model.
            channel: Training channel. Built from the config in training mode if omitted.
            first_game_idx: Slot index of the first worker.
            agent_factory: Optional (slot, rng) -> Agent override of create_agent().
            poll_interval: Seconds between progress checks.
        """
        self.config = config if config is not None else SelfPlayConfig()
        self.replay_buffer = (
            replay_buffer
            if replay_buffer is not None
            else ReplayBuffer.from_config(
                self.config.replay_buffer,
                num_future_actions=self.config.num_future_actions,
            )
        )
        self.model = model if model is not None else UniformModel()
        if channel is None and self.config.is_training:
            channel = TrainingChannel.from_config(self.config.channel)
        self.channel = channel
        self.agent_factory = agent_factory
        self.poll_interval = poll_interval

        self._stop_event = threading.Event()
        self.errors: list[tuple[int, Exception]] = []
        self._errors_lock = threading.Lock()

        self.workers = [
            self._create_worker(first_game_idx + i) for i in range(self.config.num_games)
        ]

    def _create_worker(self, slot: int) -> SelfPlayWorker:
        agent = None
        if self.config.is_generation:
            # Separate stream from the worker's own generator
            agent_rng = np.random.default_rng([self.config.seed_for(slot), 1])
            if self.agent_factory is not None:
                agent = self.agent_factory(slot, agent_rng)
            else:
                agent = create_agent(self.config, self.model, agent_rng)

        return SelfPlayWorker(
            slot,
            self.replay_buffer,
            self.config,
            agent=agent,
            channel=self.channel,
        )

    @property
    def episodes_completed(self) -> int:
        return sum(w.episodes_completed for w in self.workers)

    @property
    def samples_sent(self) -> int:
        return sum(w.samples_sent for w in self.workers)

    def step(self) -> None:
        """Run one act() on every worker in slot order, on the calling thread."""
        for worker in self.workers:
            worker.act(self._stop_event)

    def _run_worker(self, worker: SelfPlayWorker) -> None:
        slot = worker.game_idx
        while not self._stop_event.is_set():
            try:
                worker.act(self._stop_event)
            except DataIntegrityError as e:
                logger.error(f"[{worker.game_idx}] Bad replay record: {e}")
                # Back off so one bad record cannot spin the slot
                self._stop_event.wait(self.poll_interval)
            except Exception as e:
                logger.exception(f"[{worker.game_idx}] Worker for slot {slot} failed")
                with self._errors_lock:
                    self.errors.append((slot, e))
                return

    def _start(self, executor: ThreadPoolExecutor) -> list[Future]:
        self._stop_event.clear()
        return [executor.submit(self._run_worker, worker) for worker in self.workers]

    def generate(
        self,
        num_episodes: int,
        show_progress: bool = True,
        timeout: float | None = None,
    ) -> int:
        """
        Run generation-mode workers until num_episodes more episodes finish.

        Args:
            num_episodes: Number of episodes to finish (inserted or dropped).
            show_progress: Whether to show progress bar.
            timeout: Optional wall-clock limit in seconds.

        Returns:
            Number of episodes finished during the call.
        """
        if not self.config.is_generation:
            raise RuntimeError("generate() requires generation mode")

        start_count = self.episodes_completed
        start_time = time.monotonic()
        pbar = tqdm(total=num_episodes, desc="Generating episodes") if show_progress else None

        with ThreadPoolExecutor(max_workers=len(self.workers)) as executor:
            futures = self._start(executor)
            try:
                finished = 0
                while finished < num_episodes:
                    if all(f.done() for f in futures):
                        break
                    if timeout is not None and time.monotonic() - start_time > timeout:
                        logger.warning(f"Generation timed out after {finished} episodes")
                        break
                    time.sleep(self.poll_interval)
                    current = self.episodes_completed - start_count
                    if pbar:
                        pbar.update(min(current, num_episodes) - min(finished, num_episodes))
                    finished = current
            finally:
                self.stop()

        if pbar:
            pbar.close()

        return self.episodes_completed - start_count

    def run_training(
        self,
        num_batches: int,
        batch_size: int,
        on_batch: Callable[[dict], None] | None = None,
        show_progress: bool = True,
        timeout: float | None = None,
    ) -> int:
        """
        Run training-mode workers and consume batches from the channel.

        Each batch is passed to on_batch() as collated tensors and then
        acknowledged, which releases the workers that produced it.

        Returns:
            Number of batches consumed.
        """
        if not self.config.is_training:
            raise RuntimeError("run_training() requires training mode")

        consumed = 0
        start_time = time.monotonic()
        pbar = tqdm(total=num_batches, desc="Training batches") if show_progress else None

        with ThreadPoolExecutor(max_workers=len(self.workers)) as executor:
            futures = self._start(executor)
            try:
                while consumed < num_batches:
                    if timeout is not None and time.monotonic() - start_time > timeout:
                        logger.warning(f"Training timed out after {consumed} batches")
                        break
                    batch = self.channel.get_batch(batch_size, timeout=self.poll_interval)
                    if len(batch) == 0:
                        if all(f.done() for f in futures):
                            break
                        continue

                    if on_batch is not None:
                        on_batch(batch.to_tensors())
                    batch.reply()
                    consumed += 1
                    if pbar:
                        pbar.update(1)
            finally:
                self.stop()

        if pbar:
            pbar.close()

        return consumed

    def stop(self) -> None:
        """Signal every worker to stop after its current step."""
        self._stop_event.set()

    def close(self) -> None:
        """Stop the workers and close the training channel."""
        self.stop()
        if self.channel is not None:
            self.channel.close()

    def get_statistics(self) -> dict:
        """
        Collect worker and buffer statistics.

        Returns:
            Dictionary of statistics.
        """
        return {
            "mode": self.config.mode,
            "num_workers": len(self.workers),
            "episodes_completed": self.episodes_completed,
            "samples_sent": self.samples_sent,
            "errors": len(self.errors),
            "replay_buffer": self.replay_buffer.get_statistics(),
        }
