"""Go rules, move encoding, features and episode records for self-play training."""

from .encoding import (
    BLACK,
    WHITE,
    EMPTY,
    PASS,
    DEFAULT_BOARD_SIZE,
    DEFAULT_KOMI,
    Move,
    opponent,
    num_actions,
    coord_to_action,
    action_to_coord,
    move_to_string,
    encode_moves,
    decode_moves,
)
from .features import (
    NUM_FEATURE_PLANES,
    NUM_SYMMETRIES,
    BoardFeature,
    extract_planes,
    inverse_symmetry,
    transform_coord,
    inverse_transform_coord,
    transform_planes,
)
from .game import GoState, area_score, find_group
from .dataset import (
    EpisodeRecord,
    TrainingSample,
    collate_samples,
    save_records_jsonl,
    load_records_jsonl,
)
from .validation import ValidationResult, validate_record, validate_records

__all__ = [
    # Constants and types
    "BLACK",
    "WHITE",
    "EMPTY",
    "PASS",
    "DEFAULT_BOARD_SIZE",
    "DEFAULT_KOMI",
    "Move",
    # Encoding functions
    "opponent",
    "num_actions",
    "coord_to_action",
    "action_to_coord",
    "move_to_string",
    "encode_moves",
    "decode_moves",
    # Features
    "NUM_FEATURE_PLANES",
    "NUM_SYMMETRIES",
    "BoardFeature",
    "extract_planes",
    "inverse_symmetry",
    "transform_coord",
    "inverse_transform_coord",
    "transform_planes",
    # Game logic
    "GoState",
    "area_score",
    "find_group",
    # Records
    "EpisodeRecord",
    "TrainingSample",
    "collate_samples",
    "save_records_jsonl",
    "load_records_jsonl",
    # Validation
    "ValidationResult",
    "validate_record",
    "validate_records",
]
