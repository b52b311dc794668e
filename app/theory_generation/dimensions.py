"""Pydantic models and loader for the static dimension/level configuration.

The catalog defines the unit space (5 thinking dimensions x 5 levels) and
feeds the prompt builder and the derived record metadata.
"""

from __future__ import annotations

import json
import logging
from functools import lru_cache
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError, field_validator

from app.theory_generation.errors import ConfigurationError
from app.theory_generation.models import GenerationUnit
from app.utils.data_loader import load_dimensions_file
from app.utils.paths import THEORY_CONFIG_FILE

logger = logging.getLogger(__name__)

# -----------------------------------------------------------------------------
# Constants for validation
# -----------------------------------------------------------------------------

VALID_DIFFICULTIES = frozenset({"beginner", "intermediate", "advanced"})

MIN_LEVEL = 1
MAX_LEVEL = 5


# -----------------------------------------------------------------------------
# Catalog components
# -----------------------------------------------------------------------------

class LevelConfig(BaseModel):
    """One difficulty level of a thinking dimension."""

    level: int = Field(..., ge=MIN_LEVEL, le=MAX_LEVEL)
    title: str = Field(..., min_length=1)
    difficulty: str = Field(
        ...,
        description="One of: beginner, intermediate, advanced",
    )
    cognitive_load: str = ""
    description: str = Field(..., min_length=1)
    learning_goals: str = ""
    objectives: list[str] = Field(default_factory=list)

    @field_validator("difficulty")
    @classmethod
    def validate_difficulty(cls, v: str) -> str:
        if v not in VALID_DIFFICULTIES:
            msg = f"difficulty must be one of {VALID_DIFFICULTIES}, got '{v}'"
            raise ValueError(msg)
        return v


class DimensionConfig(BaseModel):
    """A thinking dimension and its ordered levels."""

    id: str = Field(..., pattern=r"^[a-z][a-z0-9_]*$")
    name: str = Field(..., min_length=1)
    description: str = ""
    focus: str = ""
    levels: list[LevelConfig] = Field(..., min_length=1)

    @field_validator("levels")
    @classmethod
    def validate_unique_levels(cls, v: list[LevelConfig]) -> list[LevelConfig]:
        numbers = [lvl.level for lvl in v]
        if len(numbers) != len(set(numbers)):
            msg = f"duplicate level numbers: {numbers}"
            raise ValueError(msg)
        return sorted(v, key=lambda lvl: lvl.level)

    def level_numbers(self) -> list[int]:
        return [lvl.level for lvl in self.levels]


# -----------------------------------------------------------------------------
# Top-level structure
# -----------------------------------------------------------------------------

class DimensionCatalog(BaseModel):
    """All configured dimensions, in declaration order."""

    dimensions: list[DimensionConfig] = Field(..., min_length=1)

    @field_validator("dimensions")
    @classmethod
    def validate_unique_ids(
        cls, v: list[DimensionConfig],
    ) -> list[DimensionConfig]:
        ids = [d.id for d in v]
        if len(ids) != len(set(ids)):
            msg = f"duplicate dimension ids: {ids}"
            raise ValueError(msg)
        return v

    def dimension_ids(self) -> list[str]:
        """Dimension ids in declaration order."""
        return [d.id for d in self.dimensions]

    def has_unit(self, unit: GenerationUnit) -> bool:
        dimension = self._find(unit.dimension_id)
        return dimension is not None and unit.level in dimension.level_numbers()

    def get_dimension(self, dimension_id: str) -> DimensionConfig:
        """Look up a dimension by id.

        Raises:
            ConfigurationError: If the id is not configured.
        """
        dimension = self._find(dimension_id)
        if dimension is None:
            msg = f"Unknown dimension: {dimension_id!r}"
            raise ConfigurationError(msg)
        return dimension

    def get_level(self, dimension_id: str, level: int) -> LevelConfig:
        """Look up one level of a dimension.

        Raises:
            ConfigurationError: If the dimension or level is not configured.
        """
        dimension = self.get_dimension(dimension_id)
        for lvl in dimension.levels:
            if lvl.level == level:
                return lvl
        msg = f"Unknown level {level} for dimension {dimension_id!r}"
        raise ConfigurationError(msg)

    def unit_count(self) -> int:
        """Size of the configured unit space."""
        return sum(len(d.levels) for d in self.dimensions)

    def _find(self, dimension_id: str) -> DimensionConfig | None:
        for dimension in self.dimensions:
            if dimension.id == dimension_id:
                return dimension
        return None


# -----------------------------------------------------------------------------
# Loading
# -----------------------------------------------------------------------------


def load_catalog(path: Path | str | None = None) -> DimensionCatalog:
    """Load and validate the dimension catalog.

    Args:
        path: Config file to read. Defaults to the packaged
            ``app/data/theory/dimensions.json`` (cached after first load).

    Returns:
        The validated catalog.

    Raises:
        ConfigurationError: If the file is missing, not JSON, or invalid.
    """
    if path is None:
        return _load_default_catalog()
    return _load_catalog_file(Path(path))


@lru_cache(maxsize=1)
def _load_default_catalog() -> DimensionCatalog:
    return _load_catalog_file(THEORY_CONFIG_FILE)


def _load_catalog_file(path: Path) -> DimensionCatalog:
    try:
        dimensions, _metadata = load_dimensions_file(path)
    except FileNotFoundError as exc:
        msg = f"Dimension config not found: {path}"
        raise ConfigurationError(msg) from exc
    except json.JSONDecodeError as exc:
        msg = f"Dimension config is not valid JSON: {path}: {exc}"
        raise ConfigurationError(msg) from exc

    try:
        catalog = DimensionCatalog.model_validate({"dimensions": dimensions})
    except ValidationError as exc:
        msg = f"Invalid dimension config {path}: {exc}"
        raise ConfigurationError(msg) from exc

    logger.debug(
        "Loaded %d dimensions (%d units) from %s",
        len(catalog.dimensions), catalog.unit_count(), path,
    )
    return catalog
