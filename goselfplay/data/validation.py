"""
Data Validation Utilities

Validates episode records before they enter the replay buffer.
"""

import math
from dataclasses import dataclass

from .dataset import EpisodeRecord
from .encoding import decode_moves, move_to_string
from .game import GoState


@dataclass
class ValidationResult:
    """Result of validating an episode record."""

    is_valid: bool
    errors: list[str]
    warnings: list[str]

    def __bool__(self) -> bool:
        return self.is_valid


def validate_record(
    record: EpisodeRecord,
    min_moves: int = 0,
    board_size: int | None = None,
) -> ValidationResult:
    """
    Validate an episode record.

    Checks:
    - Game id is non-negative
    - Reward is a finite number
    - Content decodes to a move list of at least min_moves moves
    - Every move is legal when replayed (only if board_size is given)
    """
    errors = []
    warnings = []

    if record.game_id < 0:
        errors.append(f"Invalid game id: {record.game_id}")

    if not math.isfinite(record.reward):
        errors.append(f"Invalid reward: {record.reward}")
    elif abs(record.reward) > 1.0:
        warnings.append(f"Reward {record.reward} outside [-1, 1]")

    try:
        moves = decode_moves(record.content)
    except ValueError as e:
        errors.append(f"Undecodable content: {e}")
        return ValidationResult(False, errors, warnings)

    if len(moves) < min_moves:
        errors.append(f"Too few moves: {len(moves)} (expected at least {min_moves})")

    if board_size is not None and not errors:
        state = GoState(board_size)
        for i, move in enumerate(moves):
            if not state.apply_move(move):
                errors.append(f"Move {i}: illegal move {move_to_string(move)}")
                break

    if not moves:
        warnings.append("Episode has no moves")

    return ValidationResult(len(errors) == 0, errors, warnings)


def validate_records(
    records: list[EpisodeRecord],
    min_moves: int = 0,
    board_size: int | None = None,
) -> dict:
    """
    Validate a list of records and return summary statistics.

    Returns:
        Dictionary with validation results.
    """
    total = len(records)
    valid = 0
    all_errors: list[tuple[int, list[str]]] = []

    for record in records:
        result = validate_record(record, min_moves=min_moves, board_size=board_size)
        if result.is_valid:
            valid += 1
        else:
            all_errors.append((record.game_id, result.errors))

    return {
        "total_records": total,
        "valid_records": valid,
        "invalid_records": total - valid,
        "validation_rate": round(valid / total * 100, 2) if total > 0 else 0,
        "errors": all_errors[:10],  # First 10 errors
        "total_errors": len(all_errors),
    }
