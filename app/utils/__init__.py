"""Shared utilities package for the critical-thinking content application."""

from app.utils.data_loader import (
    load_dimensions_file,
    load_json_file,
    save_json_file,
)
from app.utils.logging_config import (
    GenerationEvent,
    RunEventLog,
    setup_logging,
)

__all__ = [
    # Data loading utilities
    "load_json_file",
    "save_json_file",
    "load_dimensions_file",
    # Logging utilities
    "setup_logging",
    "RunEventLog",
    "GenerationEvent",
]
