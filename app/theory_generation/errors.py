"""Exception hierarchy for the theory content generation pipeline.

Transient errors are absorbed by the retry loop. Everything else is
surfaced to the orchestrator, which turns it into a unit outcome.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from app.theory_generation.models import (
        GenerationUnit,
        SectionKind,
        ValidationOutcome,
    )


class TheoryGenerationError(Exception):
    """Base class for all pipeline errors."""


class ConfigurationError(TheoryGenerationError):
    """Unknown dimension/level/section or malformed configuration."""


# ---------------------------------------------------------------------------
# Retryable failures
# ---------------------------------------------------------------------------


class TransientGenerationError(TheoryGenerationError):
    """An attempt that did not produce usable output. Retryable."""


class ParseError(TransientGenerationError):
    """The model reply could not be recovered as structured data."""


class GenerationServiceError(TransientGenerationError):
    """Transport failure talking to the generation service (incl. timeouts)."""


class ContentValidationError(TransientGenerationError):
    """A parsed document failed structural validation."""

    def __init__(self, outcome: ValidationOutcome) -> None:
        self.outcome = outcome
        super().__init__(
            "Content validation failed: " + "; ".join(outcome.errors),
        )


# ---------------------------------------------------------------------------
# Terminal failures
# ---------------------------------------------------------------------------


class GenerationExhaustedError(TheoryGenerationError):
    """A section kept failing after the configured number of attempts."""

    def __init__(
        self,
        unit: GenerationUnit,
        section_kind: SectionKind,
        attempts: int,
        errors: list[str],
    ) -> None:
        self.unit = unit
        self.section_kind = section_kind
        self.attempts = attempts
        self.errors = list(errors)
        super().__init__(
            f"{unit.key}/{section_kind.value}: generation failed after "
            f"{attempts} attempts: {'; '.join(self.errors)}"
        )


class UnitGenerationError(TheoryGenerationError):
    """One or more sections of a unit exhausted their retries."""

    def __init__(
        self,
        unit: GenerationUnit,
        failures: list[GenerationExhaustedError],
    ) -> None:
        self.unit = unit
        self.failures = list(failures)
        kinds = ", ".join(f.section_kind.value for f in self.failures)
        super().__init__(f"{unit.key}: sections failed ({kinds})")


class PersistenceError(TheoryGenerationError):
    """The storage collaborator rejected a write."""


class DuplicateRecordError(PersistenceError):
    """Another writer already published the same unit."""
