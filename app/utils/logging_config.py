"""Centralized logging configuration for CLI scripts and pipeline runs.

``setup_logging`` gives every script the same console format.
``RunEventLog`` is the per-run event sink handed to the pipeline: it
wraps a child logger, keeps the structured events in memory and can
mirror them to a JSON-lines file.
"""

from __future__ import annotations

import json
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from app.utils.paths import get_run_log_file

# Default format used across all scripts
DEFAULT_LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

RUN_LOGGER_PREFIX = "app.theory_generation.run"


def setup_logging(verbose: bool = False, level: int | None = None) -> None:
    """Configure logging with consistent format.

    Args:
        verbose: If True, sets level to DEBUG. Overrides `level` parameter.
        level: Explicit logging level. Defaults to INFO if not specified.
    """
    if verbose:
        effective_level = logging.DEBUG
    elif level is not None:
        effective_level = level
    else:
        effective_level = logging.INFO

    logging.basicConfig(
        level=effective_level,
        format=DEFAULT_LOG_FORMAT,
    )


def make_run_stamp(now: datetime | None = None) -> str:
    """Filesystem-safe UTC timestamp, e.g. ``2024-05-01T10-20-30-123Z``."""
    now = now or datetime.now(timezone.utc)
    return now.strftime("%Y-%m-%dT%H-%M-%S-") + f"{now.microsecond // 1000:03d}Z"


# ---------------------------------------------------------------------------
# Structured run events
# ---------------------------------------------------------------------------


@dataclass
class GenerationEvent:
    """One structured observability record."""

    timestamp: datetime
    level: str
    message: str
    data: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "level": self.level,
            "message": self.message,
            "data": self.data,
        }


class JsonLinesFormatter(logging.Formatter):
    """Render a record as one JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        event = getattr(record, "event", None)
        if isinstance(event, GenerationEvent):
            payload = event.to_dict()
        else:
            payload = {
                "timestamp": datetime.fromtimestamp(
                    record.created, timezone.utc,
                ).isoformat(),
                "level": record.levelname.lower(),
                "message": record.getMessage(),
                "data": {},
            }
        return json.dumps(payload, ensure_ascii=False, default=str)


class RunEventLog:
    """Per-run event sink.

    Usage::

        with RunEventLog(log_dir=config.log_dir) as events:
            events.info("unit started", dimension="causal_analysis", level=1)
        events.events  # -> list[GenerationEvent]
    """

    def __init__(
        self,
        run_id: str | None = None,
        *,
        log_dir: Path | None = None,
        write_file: bool = False,
    ) -> None:
        self.run_id = run_id or uuid.uuid4().hex[:8]
        self.events: list[GenerationEvent] = []
        self.log_file: Path | None = None
        self._logger = logging.getLogger(f"{RUN_LOGGER_PREFIX}.{self.run_id}")
        self._handler: logging.FileHandler | None = None

        if write_file:
            self.log_file = get_run_log_file(make_run_stamp(), log_dir)
            self.log_file.parent.mkdir(parents=True, exist_ok=True)
            self._handler = logging.FileHandler(self.log_file, encoding="utf-8")
            self._handler.setFormatter(JsonLinesFormatter())
            self._logger.addHandler(self._handler)
            if not self._logger.isEnabledFor(logging.INFO):
                self._logger.setLevel(logging.INFO)

    @property
    def logger(self) -> logging.Logger:
        return self._logger

    def emit(self, level: int, message: str, /, **data: Any) -> GenerationEvent:
        """Record an event and forward it to the run logger."""
        event = GenerationEvent(
            timestamp=datetime.now(timezone.utc),
            level=logging.getLevelName(level).lower(),
            message=message,
            data=data,
        )
        self.events.append(event)
        if data:
            self._logger.log(
                level, "%s %s", message,
                json.dumps(data, ensure_ascii=False, default=str),
                extra={"event": event},
            )
        else:
            self._logger.log(level, "%s", message, extra={"event": event})
        return event

    def debug(self, message: str, /, **data: Any) -> GenerationEvent:
        return self.emit(logging.DEBUG, message, **data)

    def info(self, message: str, /, **data: Any) -> GenerationEvent:
        return self.emit(logging.INFO, message, **data)

    def warning(self, message: str, /, **data: Any) -> GenerationEvent:
        return self.emit(logging.WARNING, message, **data)

    def error(self, message: str, /, **data: Any) -> GenerationEvent:
        return self.emit(logging.ERROR, message, **data)

    def messages(self, level: str | None = None) -> list[str]:
        """Event messages, optionally filtered by level name."""
        return [
            e.message for e in self.events
            if level is None or e.level == level
        ]

    def close(self) -> None:
        if self._handler is not None:
            self._logger.removeHandler(self._handler)
            self._handler.close()
            self._handler = None

    def __enter__(self) -> RunEventLog:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
