#!/usr/bin/env python3
"""
Self-Play Script

Generates Go episodes into a replay buffer, or streams training samples
from a stored buffer.

Usage:
    python scripts/self_play.py --mode generation --episodes 100 --buffer data/replay.jsonl
    python scripts/self_play.py --mode training --buffer data/replay.jsonl --batches 50 --future-actions 3
    python scripts/self_play.py --config configs/self_play.yaml --episodes 1000
"""

import argparse
import dataclasses
import logging
import sys
import time
from pathlib import Path

# Add repository root to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from goselfplay.self_play import ReplayBuffer, SelfPlayConfig, SelfPlayManager

logger = logging.getLogger(__name__)


def build_config(args: argparse.Namespace) -> SelfPlayConfig:
    """Load the YAML config (if any) and apply command-line overrides."""
    config = SelfPlayConfig.from_yaml(args.config) if args.config else SelfPlayConfig()

    overrides = {
        "mode": args.mode,
        "agent": args.agent,
        "num_games": args.games,
        "board_size": args.board_size,
        "seed": args.seed,
        "num_future_actions": args.future_actions,
    }
    overrides = {k: v for k, v in overrides.items() if v is not None}
    if args.verbose:
        overrides["verbose"] = True

    return dataclasses.replace(config, **overrides)


def main():
    parser = argparse.ArgumentParser(
        description="Generate self-play episodes or training samples",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )

    parser.add_argument("--mode", type=str, help="generation or training")
    parser.add_argument("--config", type=str, help="Path to YAML configuration file")
    parser.add_argument(
        "--episodes",
        type=int,
        default=100,
        help="Number of episodes to generate (generation mode)",
    )
    parser.add_argument("--games", type=int, help="Number of parallel game slots")
    parser.add_argument("--agent", type=str, help="Decision source: mcts or direct")
    parser.add_argument("--board-size", type=int, help="Board size")
    parser.add_argument("--seed", type=int, help="Explicit seed (0 = derive per slot)")
    parser.add_argument("--future-actions", type=int, help="Future moves per training sample")
    parser.add_argument(
        "--buffer",
        type=str,
        help="JSONL replay file, loaded before the run and saved after generation",
    )
    parser.add_argument("--batches", type=int, default=10, help="Batches to consume (training mode)")
    parser.add_argument("--batch-size", type=int, default=32, help="Samples per batch (training mode)")
    parser.add_argument("--verbose", action="store_true", help="Log seeds and finished boards")
    parser.add_argument("--quiet", action="store_true", help="Suppress progress output")

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO if not args.quiet else logging.WARNING,
        format="%(asctime)s - %(levelname)s - %(message)s",
        datefmt="%H:%M:%S",
    )

    try:
        config = build_config(args)
    except ValueError as e:
        parser.error(str(e))

    replay_buffer = ReplayBuffer.from_config(
        config.replay_buffer, num_future_actions=config.num_future_actions
    )
    buffer_path = Path(args.buffer) if args.buffer else None
    if buffer_path is not None and buffer_path.exists():
        replay_buffer.load(buffer_path)

    if config.is_training and len(replay_buffer) == 0:
        parser.error("Training mode needs a non-empty --buffer file")

    manager = SelfPlayManager(config=config, replay_buffer=replay_buffer)

    logger.info("Self-Play Configuration:")
    logger.info(f"  Mode: {config.mode}")
    logger.info(f"  Game slots: {config.num_games}")
    logger.info(f"  Board size: {config.board_size}")
    logger.info(f"  Agent: {config.agent}")
    logger.info(f"  Future actions: {config.num_future_actions}")

    start_time = time.time()
    try:
        if config.is_generation:
            finished = manager.generate(args.episodes, show_progress=not args.quiet)
            elapsed = time.time() - start_time
            logger.info(f"Generated {finished} episodes in {elapsed:.1f}s")
            if buffer_path is not None:
                buffer_path.parent.mkdir(parents=True, exist_ok=True)
                replay_buffer.save(buffer_path)
        else:
            def on_batch(tensors: dict) -> None:
                logger.debug(
                    f"Batch: s={tuple(tensors['s'].shape)} offline_a={tuple(tensors['offline_a'].shape)}"
                )

            consumed = manager.run_training(
                args.batches,
                args.batch_size,
                on_batch=on_batch,
                show_progress=not args.quiet,
            )
            elapsed = time.time() - start_time
            logger.info(f"Consumed {consumed} batches ({manager.samples_sent} samples) in {elapsed:.1f}s")
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
    finally:
        manager.close()

    stats = manager.get_statistics()
    logger.info(f"Statistics: {stats}")
    if manager.errors:
        sys.exit(1)


if __name__ == "__main__":
    main()
