"""Self-play episode generation and training-sample extraction for Go."""

__version__ = "0.1.0"
