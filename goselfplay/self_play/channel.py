"""
Training Channel

Bounded hand-off of training samples from self-play workers to a learner.
A worker sends one sample at a time and blocks until the learner has
consumed it, so sample production never runs ahead of training.
"""

import logging
import queue
import threading
import time

from ..data import TrainingSample, collate_samples
from .config import ChannelConfig

logger = logging.getLogger(__name__)


class ChannelClosedError(RuntimeError):
    """Raised when a send is abandoned because the channel closed or the worker was cancelled."""


class _Envelope:
    """A sample in flight plus its acknowledgement flag."""

    __slots__ = ("sample", "game_idx", "acked", "abandoned")

    def __init__(self, sample: TrainingSample, game_idx: int):
        self.sample = sample
        self.game_idx = game_idx
        self.acked = threading.Event()
        self.abandoned = False


class SampleBatch:
    """Samples pulled by the learner; reply() releases the waiting workers."""

    def __init__(self, envelopes: list[_Envelope]):
        self._envelopes = envelopes
        self.samples = [env.sample for env in envelopes]

    def __len__(self) -> int:
        return len(self.samples)

    def to_tensors(self) -> dict:
        """Batch tensors, see collate_samples()."""
        return collate_samples(self.samples)

    def reply(self) -> None:
        """Acknowledge every sample in the batch."""
        for env in self._envelopes:
            env.acked.set()


class ChannelEndpoint:
    """Per-worker handle on the training channel."""

    def __init__(self, channel: "TrainingChannel", game_idx: int):
        self._channel = channel
        self.game_idx = game_idx
        self.num_sent = 0

    def prepare(self) -> TrainingSample:
        """Returns a fresh sample for the caller to fill in."""
        return TrainingSample()

    def send_and_wait(self, sample: TrainingSample, done: threading.Event | None = None) -> None:
        """
        Send a sample and block until the learner acknowledges it.

        Raises:
            ChannelClosedError: If the channel closes or ``done`` is set first.
        """
        envelope = _Envelope(sample, self.game_idx)
        self._channel._put(envelope, done)

        poll = self._channel.ack_poll_interval
        while not envelope.acked.wait(timeout=poll):
            if self._channel.closed or (done is not None and done.is_set()):
                envelope.abandoned = True
                raise ChannelClosedError(f"[{self.game_idx}] channel closed before acknowledgement")

        self.num_sent += 1


class TrainingChannel:
    """
    Bounded queue between workers and the learner.

    Thread-safe; any number of endpoints may send concurrently.
    """

    def __init__(self, max_queue_size: int = 64, ack_poll_interval: float = 0.05):
        """
        Initialize the channel.

        Args:
            max_queue_size: Maximum number of unread samples.
            ack_poll_interval: Seconds between cancellation checks while blocked.
        """
        self.max_queue_size = max_queue_size
        self.ack_poll_interval = ack_poll_interval
        self._queue: queue.Queue[_Envelope] = queue.Queue(maxsize=max_queue_size)
        self._closed = threading.Event()

    @classmethod
    def from_config(cls, config: ChannelConfig) -> "TrainingChannel":
        """Build a channel from its configuration section."""
        return cls(
            max_queue_size=config.max_queue_size,
            ack_poll_interval=config.ack_poll_interval,
        )

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def connect(self, game_idx: int) -> ChannelEndpoint:
        """Returns a sending endpoint for a worker."""
        return ChannelEndpoint(self, game_idx)

    def _put(self, envelope: _Envelope, done: threading.Event | None) -> None:
        while True:
            if self.closed or (done is not None and done.is_set()):
                raise ChannelClosedError(f"[{envelope.game_idx}] channel closed before send")
            try:
                self._queue.put(envelope, timeout=self.ack_poll_interval)
                return
            except queue.Full:
                continue

    def get_batch(self, batch_size: int, timeout: float | None = None) -> SampleBatch:
        """
        Pull up to batch_size samples.

        Waits up to ``timeout`` seconds for the first sample, then gathers
        whatever else arrives within one poll interval. The returned batch may
        be empty; call reply() once the samples have been consumed.
        """
        envelopes: list[_Envelope] = []
        first_deadline = None if timeout is None else time.monotonic() + timeout
        while not envelopes:
            remaining = None if first_deadline is None else max(first_deadline - time.monotonic(), 0)
            try:
                envelope = self._queue.get(timeout=remaining)
            except queue.Empty:
                return SampleBatch(envelopes)
            # Senders that gave up no longer wait for a reply
            if not envelope.abandoned:
                envelopes.append(envelope)

        deadline = time.monotonic() + self.ack_poll_interval
        while len(envelopes) < batch_size:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                break
            try:
                envelope = self._queue.get(timeout=remaining)
            except queue.Empty:
                break
            if not envelope.abandoned:
                envelopes.append(envelope)

        return SampleBatch(envelopes)

    def qsize(self) -> int:
        """Approximate number of unread samples."""
        return self._queue.qsize()

    def close(self) -> None:
        """Close the channel; blocked senders raise ChannelClosedError."""
        if not self.closed:
            logger.debug("Closing training channel")
        self._closed.set()
