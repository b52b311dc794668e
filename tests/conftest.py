"""Shared fixtures for the theory generation tests."""

from __future__ import annotations

from pathlib import Path

import pytest

from app.theory_generation.dimensions import DimensionCatalog, load_catalog
from app.theory_generation.models import GenerationConfig
from tests.fakes import SleepRecorder


# Force anyio to use asyncio
@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def catalog() -> DimensionCatalog:
    return load_catalog()


@pytest.fixture
def config(tmp_path: Path) -> GenerationConfig:
    """Zero-delay config writing under tmp_path."""
    return GenerationConfig(
        retry_delay_seconds=0.0,
        pacing_delay_seconds=0.0,
        backup_enabled=False,
        backup_dir=tmp_path / "backups",
        log_dir=tmp_path / "logs",
    )


@pytest.fixture
def sleeper() -> SleepRecorder:
    return SleepRecorder()
