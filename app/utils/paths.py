"""Centralized path constants for the application.

Single source of truth for the paths the generation pipeline reads from
and writes to, so no module recomputes Path(__file__) on its own.

Usage:
    from app.utils.paths import BACKUPS_DIR, THEORY_CONFIG_FILE
"""

from __future__ import annotations

from pathlib import Path

# -----------------------------------------------------------------------------
# Root directories
# -----------------------------------------------------------------------------

# This file is at: app/utils/paths.py
# So parents[2] gets us to repo root
REPO_ROOT = Path(__file__).resolve().parents[2]

APP_DIR = REPO_ROOT / "app"

# Main data directory (package data + local run artifacts)
DATA_DIR = APP_DIR / "data"

# -----------------------------------------------------------------------------
# Data subdirectories
# -----------------------------------------------------------------------------

# Static dimension/level configuration (shipped with the package)
THEORY_DATA_DIR = DATA_DIR / "theory"
THEORY_CONFIG_FILE = THEORY_DATA_DIR / "dimensions.json"

# Pre-persistence snapshots
BACKUPS_DIR = DATA_DIR / "backups"

# JSON-lines run logs
LOGS_DIR = DATA_DIR / "logs"


# -----------------------------------------------------------------------------
# Helper functions
# -----------------------------------------------------------------------------


def get_run_log_file(run_stamp: str, log_dir: Path | None = None) -> Path:
    """Get the path to a run's JSON-lines log file.

    Args:
        run_stamp: Filesystem-safe timestamp identifying the run.
        log_dir: Override for the logs directory.

    Returns:
        Path like ``.../logs/theory-generation-<run_stamp>.log``.
    """
    return (log_dir or LOGS_DIR) / f"theory-generation-{run_stamp}.log"


def get_backup_file(
    dimension_id: str,
    level: int,
    run_stamp: str,
    backup_dir: Path | None = None,
) -> Path:
    """Get the path to a unit snapshot file.

    Args:
        dimension_id: Dimension identifier (e.g. "causal_analysis").
        level: Level number.
        run_stamp: Filesystem-safe timestamp of the snapshot.
        backup_dir: Override for the backups directory.

    Returns:
        Path like ``.../<dimension>-level-<n>-<run_stamp>.json``.
    """
    base = backup_dir or (BACKUPS_DIR / "theory-content")
    return base / f"{dimension_id}-level-{level}-{run_stamp}.json"
