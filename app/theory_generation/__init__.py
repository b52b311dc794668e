"""Batch generation of critical-thinking theory content.

For every (thinking dimension x level) unit, generates the concepts,
models and demonstrations sections with a chat model, validates them
structurally, and publishes the unit as one record.
"""

from app.theory_generation.errors import (
    ConfigurationError,
    DuplicateRecordError,
    GenerationExhaustedError,
    TheoryGenerationError,
)
from app.theory_generation.models import (
    BatchRunResult,
    GenerationConfig,
    GenerationUnit,
    SectionKind,
    UnitOutcome,
)

__all__ = [
    "BatchRunResult",
    "ConfigurationError",
    "DuplicateRecordError",
    "GenerationConfig",
    "GenerationExhaustedError",
    "GenerationUnit",
    "SectionKind",
    "TheoryGenerationError",
    "UnitOutcome",
]
