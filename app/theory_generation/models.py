"""Data models for the theory content generation pipeline.

Covers run configuration, the unit/section work identifiers, validation
verdicts, the persisted record shape, and the run-level result.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

from app.theory_generation.errors import ConfigurationError
from app.utils.paths import BACKUPS_DIR, LOGS_DIR

# A generated section payload. Free-form JSON object per section kind,
# checked structurally by the validators.
ContentDocument = dict[str, Any]

# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class SectionKind(str, Enum):
    """The three content sections that make up a unit."""

    CONCEPTS = "concepts"
    MODELS = "models"
    DEMONSTRATIONS = "demonstrations"


class UnitOutcome(str, Enum):
    """Terminal state of one unit within a run."""

    COMPLETED = "completed"
    SKIPPED = "skipped"
    ERRORED = "errored"


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

# Record version written by this pipeline.
CONTENT_VERSION = "1.0.0"

# Default levels per dimension.
DEFAULT_LEVELS: tuple[int, ...] = (1, 2, 3, 4, 5)

_TRUE_VALUES = frozenset({"1", "true", "yes", "on"})
_FALSE_VALUES = frozenset({"0", "false", "no", "off"})


@dataclass
class GenerationConfig:
    """Runtime configuration for a generation run.

    Attributes:
        max_retries: Total attempts per section before giving up.
        retry_delay_seconds: Fixed backoff between attempts.
        pacing_delay_seconds: Pause between units (rate limiting).
        backup_enabled: Snapshot documents to disk before each save.
        validation_enabled: Run structural validation on each reply.
        model: Chat model name sent to the generation service.
        temperature: Sampling temperature.
        request_timeout_seconds: HTTP timeout for a single call.
        backup_dir: Directory for pre-persistence snapshots.
        log_dir: Directory for JSON-lines run logs.
    """

    max_retries: int = 3
    retry_delay_seconds: float = 2.0
    pacing_delay_seconds: float = 1.0
    backup_enabled: bool = True
    validation_enabled: bool = True
    model: str = "deepseek-chat"
    temperature: float = 0.7
    request_timeout_seconds: float = 300.0
    backup_dir: Path = field(
        default_factory=lambda: BACKUPS_DIR / "theory-content",
    )
    log_dir: Path = field(default_factory=lambda: LOGS_DIR)

    def __post_init__(self) -> None:
        if self.max_retries < 1:
            msg = f"max_retries must be >= 1, got {self.max_retries}"
            raise ConfigurationError(msg)
        if self.retry_delay_seconds < 0 or self.pacing_delay_seconds < 0:
            msg = "Delays must be non-negative"
            raise ConfigurationError(msg)

    @classmethod
    def from_env(cls) -> GenerationConfig:
        """Build config from THEORY_GEN_* environment variables."""
        load_dotenv()
        defaults = cls()
        return cls(
            max_retries=_env_int(
                "THEORY_GEN_MAX_RETRIES", defaults.max_retries,
            ),
            retry_delay_seconds=_env_float(
                "THEORY_GEN_RETRY_DELAY", defaults.retry_delay_seconds,
            ),
            pacing_delay_seconds=_env_float(
                "THEORY_GEN_PACING_DELAY", defaults.pacing_delay_seconds,
            ),
            backup_enabled=_env_bool(
                "THEORY_GEN_BACKUP_ENABLED", defaults.backup_enabled,
            ),
            validation_enabled=_env_bool(
                "THEORY_GEN_VALIDATION_ENABLED",
                defaults.validation_enabled,
            ),
            model=os.getenv("THEORY_GEN_MODEL") or defaults.model,
            temperature=_env_float(
                "THEORY_GEN_TEMPERATURE", defaults.temperature,
            ),
            request_timeout_seconds=_env_float(
                "THEORY_GEN_REQUEST_TIMEOUT",
                defaults.request_timeout_seconds,
            ),
        )


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as exc:
        msg = f"{name} must be an integer, got {raw!r}"
        raise ConfigurationError(msg) from exc


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError as exc:
        msg = f"{name} must be a number, got {raw!r}"
        raise ConfigurationError(msg) from exc


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name, "").strip().lower()
    if not raw:
        return default
    if raw in _TRUE_VALUES:
        return True
    if raw in _FALSE_VALUES:
        return False
    msg = f"{name} must be a boolean, got {raw!r}"
    raise ConfigurationError(msg)


# ---------------------------------------------------------------------------
# Work identifiers
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class GenerationUnit:
    """One (dimension, level) pair. Published as a triple of sections."""

    dimension_id: str
    level: int

    @property
    def key(self) -> str:
        return f"{self.dimension_id}:{self.level}"


@dataclass(frozen=True)
class SectionTask:
    """One section of one unit; the retry loop owns one per in-flight call."""

    unit: GenerationUnit
    section_kind: SectionKind

    @property
    def key(self) -> str:
        return f"{self.unit.key}:{self.section_kind.value}"


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ValidationOutcome:
    """Verdict of the structural validator. Logged, never persisted."""

    is_valid: bool
    errors: list[str] = field(default_factory=list)
    stats: dict[str, Any] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Persistence
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SectionDocuments:
    """The three validated documents of a unit."""

    concepts: ContentDocument
    models: ContentDocument
    demonstrations: ContentDocument

    def as_dict(self) -> dict[str, ContentDocument]:
        return {
            SectionKind.CONCEPTS.value: self.concepts,
            SectionKind.MODELS.value: self.models,
            SectionKind.DEMONSTRATIONS.value: self.demonstrations,
        }

    @classmethod
    def from_mapping(
        cls, documents: dict[Any, ContentDocument],
    ) -> SectionDocuments:
        """Build from a mapping keyed by SectionKind or its value.

        Raises:
            ConfigurationError: If any of the three sections is missing.
        """
        by_value = {
            (k.value if isinstance(k, SectionKind) else str(k)): v
            for k, v in documents.items()
        }
        missing = [
            kind.value for kind in SectionKind if kind.value not in by_value
        ]
        if missing:
            msg = f"Missing sections: {', '.join(missing)}"
            raise ConfigurationError(msg)
        return cls(
            concepts=by_value[SectionKind.CONCEPTS.value],
            models=by_value[SectionKind.MODELS.value],
            demonstrations=by_value[SectionKind.DEMONSTRATIONS.value],
        )


@dataclass
class PersistedRecord:
    """Row in the theory_content table. Written once per unit."""

    id: str
    dimension_id: str
    level: int
    title: str
    subtitle: str
    description: str
    learning_objectives: list[str]
    concepts_intro: str
    concepts_content: ContentDocument
    models_intro: str
    models_content: ContentDocument
    demonstrations_intro: str
    demonstrations_content: ContentDocument
    estimated_time: int
    difficulty: str
    tags: list[str]
    keywords: list[str]
    prerequisites: list[str]
    related_topics: list[str] = field(default_factory=list)
    version: str = CONTENT_VERSION
    is_published: bool = True
    published_at: datetime | None = None
    quality_score: float = 0.8
    view_count: int = 0
    created_at: datetime | None = None


@dataclass
class ContentCensus:
    """Published record counts, for run-end reporting."""

    total: int = 0
    by_dimension: dict[str, int] = field(default_factory=dict)
    by_level: dict[int, int] = field(default_factory=dict)
    # "<dimension>:<level>" -> count
    by_unit: dict[str, int] = field(default_factory=dict)
    expected_total: int = 0

    @property
    def completion_ratio(self) -> float:
        """Share of the configured unit space that is published."""
        if self.expected_total <= 0:
            return 0.0
        return min(self.total / self.expected_total, 1.0)


# ---------------------------------------------------------------------------
# Run result
# ---------------------------------------------------------------------------


@dataclass
class BatchRunResult:
    """Aggregated counts for one run. Owned by the orchestrator."""

    total_tasks: int = 0
    completed: int = 0
    skipped: int = 0
    errors: int = 0
    persistence_conflicts: int = 0
    failed_units: dict[str, str] = field(default_factory=dict)
    census: ContentCensus | None = None
    elapsed_seconds: float = 0.0
    estimated_cost_usd: float = 0.0

    def record(self, outcome: UnitOutcome) -> None:
        if outcome is UnitOutcome.COMPLETED:
            self.completed += 1
        elif outcome is UnitOutcome.SKIPPED:
            self.skipped += 1
        else:
            self.errors += 1

    @property
    def success(self) -> bool:
        return self.errors == 0

    def summary(self) -> dict[str, Any]:
        """Serializable summary for logs and the CLI."""
        data: dict[str, Any] = {
            "total_tasks": self.total_tasks,
            "completed": self.completed,
            "skipped": self.skipped,
            "errors": self.errors,
            "persistence_conflicts": self.persistence_conflicts,
            "failed_units": dict(self.failed_units),
            "elapsed_seconds": round(self.elapsed_seconds, 1),
            "estimated_cost_usd": round(self.estimated_cost_usd, 4),
        }
        if self.census is not None:
            data["census"] = {
                "total": self.census.total,
                "by_dimension": dict(self.census.by_dimension),
                "by_level": dict(self.census.by_level),
                "by_unit": dict(self.census.by_unit),
                "completion_ratio": round(self.census.completion_ratio, 3),
            }
        return data
