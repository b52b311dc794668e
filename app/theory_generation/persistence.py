"""Idempotent persistence of generated units.

The gateway owns the existence check, the optional pre-write snapshot,
derived metadata (estimated time, keywords, tags) and the final insert.
Storage itself is a small synchronous collaborator (``ContentStore``)
with a Postgres implementation and an in-memory one for dry runs.
"""

from __future__ import annotations

import asyncio
import logging
import re
import threading
import uuid
from collections import Counter
from collections.abc import Callable, Mapping
from dataclasses import replace
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol

from psycopg import errors as pg_errors

from app.theory_generation.errors import (
    ConfigurationError,
    ContentValidationError,
    DuplicateRecordError,
    PersistenceError,
)
from app.theory_generation.models import (
    CONTENT_VERSION,
    ContentCensus,
    ContentDocument,
    GenerationConfig,
    GenerationUnit,
    PersistedRecord,
    SectionDocuments,
    SectionKind,
)
from app.theory_generation.validators import ContentValidator
from app.utils.data_loader import load_json_file, save_json_file
from app.utils.logging_config import make_run_stamp
from app.utils.paths import get_backup_file

if TYPE_CHECKING:
    from app.storage import DBClient
    from app.theory_generation.dimensions import DimensionCatalog
    from app.utils.logging_config import RunEventLog

logger = logging.getLogger(__name__)

# Base read time for the three sections (15 + 20 + 10 minutes)
BASE_ESTIMATED_MINUTES = 45
LEVEL_TIME_FACTOR = Decimal("0.3")

MAX_KEYWORDS = 10
_KEYWORD_SPLIT_RE = re.compile(r"[，。、\s]+")

INITIAL_QUALITY_SCORE = 0.8


# ---------------------------------------------------------------------------
# Derived metadata
# ---------------------------------------------------------------------------


def estimate_time(level: int) -> int:
    """Minutes to read a unit: ``round(45 * (1 + 0.3 * (level - 1)))``.

    Rounds half up, so level 2 (58.5) gives 59 and level 4 (85.5) gives 86.
    """
    minutes = BASE_ESTIMATED_MINUTES * (1 + LEVEL_TIME_FACTOR * (level - 1))
    return int(minutes.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _split_keywords(text: Any) -> list[str]:
    if not isinstance(text, str):
        return []
    return [w for w in _KEYWORD_SPLIT_RE.split(text) if len(w) > 1]


def extract_keywords(
    concepts: ContentDocument,
    models: ContentDocument,
    limit: int = MAX_KEYWORDS,
) -> list[str]:
    """Keywords from concept key points, then the framework name.

    Tokens are split on CJK punctuation and whitespace, single
    characters dropped, duplicates removed in first-seen order.
    """
    seen: dict[str, None] = {}
    sections = concepts.get("sections")
    for section in sections if isinstance(sections, list) else []:
        if not isinstance(section, dict):
            continue
        points = section.get("keyPoints")
        for point in points if isinstance(points, list) else []:
            for word in _split_keywords(point):
                seen.setdefault(word, None)
    for word in _split_keywords(models.get("frameworkName")):
        seen.setdefault(word, None)
    return list(seen)[:limit]


# ---------------------------------------------------------------------------
# Storage collaborators
# ---------------------------------------------------------------------------


class ContentStore(Protocol):
    """Read/write surface the gateway needs from storage."""

    def exists_published(self, dimension_id: str, level: int) -> bool: ...

    def insert_record(self, record: PersistedRecord) -> str: ...

    def census(self) -> ContentCensus: ...


class InMemoryContentStore:
    """Process-local store for dry runs and tests.

    With ``enforce_unique`` a second published record for the same
    (dimension, level) is rejected, like a unique index would.
    """

    def __init__(self, enforce_unique: bool = False) -> None:
        self.enforce_unique = enforce_unique
        self.records: list[PersistedRecord] = []
        self._lock = threading.Lock()

    def exists_published(self, dimension_id: str, level: int) -> bool:
        with self._lock:
            return any(
                r.dimension_id == dimension_id and r.level == level and r.is_published
                for r in self.records
            )

    def insert_record(self, record: PersistedRecord) -> str:
        with self._lock:
            if self.enforce_unique and record.is_published and any(
                r.dimension_id == record.dimension_id
                and r.level == record.level
                and r.is_published
                for r in self.records
            ):
                msg = f"{record.dimension_id}:{record.level} already published"
                raise DuplicateRecordError(msg)
            stored = replace(
                record, created_at=record.created_at or datetime.now(timezone.utc),
            )
            self.records.append(stored)
            return stored.id

    def census(self) -> ContentCensus:
        with self._lock:
            published = [r for r in self.records if r.is_published]
        return ContentCensus(
            total=len(published),
            by_dimension=dict(Counter(r.dimension_id for r in published)),
            by_level=dict(Counter(r.level for r in published)),
            by_unit=dict(Counter(f"{r.dimension_id}:{r.level}" for r in published)),
        )

    def published(self, dimension_id: str, level: int) -> list[PersistedRecord]:
        with self._lock:
            return [
                r for r in self.records
                if r.dimension_id == dimension_id and r.level == level and r.is_published
            ]


class PostgresContentStore:
    """ContentStore over the ``theory_content`` table."""

    def __init__(self, db: DBClient) -> None:
        self._db = db

    def exists_published(self, dimension_id: str, level: int) -> bool:
        try:
            with self._db.connection() as conn, conn.cursor() as cur:
                return self._db.exists_published(cur, dimension_id, level)
        except pg_errors.Error as exc:
            raise PersistenceError(f"Existence check failed: {exc}") from exc

    def insert_record(self, record: PersistedRecord) -> str:
        try:
            with self._db.connection() as conn:
                with self._db.transaction(conn) as cur:
                    return self._db.insert_theory_content(cur, record)
        except pg_errors.UniqueViolation as exc:
            msg = f"{record.dimension_id}:{record.level} already published"
            raise DuplicateRecordError(msg) from exc
        except pg_errors.Error as exc:
            raise PersistenceError(f"Insert failed: {exc}") from exc

    def census(self) -> ContentCensus:
        try:
            with self._db.connection() as conn, conn.cursor() as cur:
                rows = self._db.published_counts(cur)
        except pg_errors.Error as exc:
            raise PersistenceError(f"Census query failed: {exc}") from exc
        return _census_from_rows(rows)


def _census_from_rows(rows: list[dict[str, Any]]) -> ContentCensus:
    by_dimension: Counter[str] = Counter()
    by_level: Counter[int] = Counter()
    by_unit: Counter[str] = Counter()
    for row in rows:
        by_dimension[row["thinking_type_id"]] += row["count"]
        by_level[row["level"]] += row["count"]
        by_unit[f"{row['thinking_type_id']}:{row['level']}"] += row["count"]
    return ContentCensus(
        total=sum(by_dimension.values()),
        by_dimension=dict(by_dimension),
        by_level=dict(by_level),
        by_unit=dict(by_unit),
    )


# ---------------------------------------------------------------------------
# Gateway
# ---------------------------------------------------------------------------


class PersistenceGateway:
    """Existence checks, snapshots and record creation for units."""

    def __init__(
        self,
        store: ContentStore,
        catalog: DimensionCatalog,
        config: GenerationConfig,
        *,
        events: RunEventLog | None = None,
        now: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self._catalog = catalog
        self._config = config
        self._events = events
        self._now = now or (lambda: datetime.now(timezone.utc))

    async def exists(self, unit: GenerationUnit) -> bool:
        """True if a published record already exists for the unit."""
        return await asyncio.to_thread(
            self._store.exists_published, unit.dimension_id, unit.level,
        )

    async def save(
        self,
        unit: GenerationUnit,
        documents: SectionDocuments | Mapping[Any, ContentDocument],
    ) -> PersistedRecord:
        """Snapshot (if enabled) then insert the unit's record.

        Raises:
            ConfigurationError: Unit not in the catalog.
            DuplicateRecordError: Another writer published it first.
            PersistenceError: Any other storage failure.
        """
        if not isinstance(documents, SectionDocuments):
            documents = SectionDocuments.from_mapping(dict(documents))
        now = self._now()
        record = self.build_record(unit, documents, now)

        if self._config.backup_enabled:
            path = await asyncio.to_thread(self.write_backup, unit, documents, now)
            if self._events is not None:
                self._events.debug("backup written", path=str(path))

        return await self._insert(record)

    async def census(self) -> ContentCensus:
        """Published counts plus completion against the configured space."""
        census = await asyncio.to_thread(self._store.census)
        census.expected_total = self._catalog.unit_count()
        return census

    def build_record(
        self,
        unit: GenerationUnit,
        documents: SectionDocuments,
        now: datetime,
    ) -> PersistedRecord:
        """Assemble the row, computing all derived metadata."""
        dimension = self._catalog.get_dimension(unit.dimension_id)
        level = self._catalog.get_level(unit.dimension_id, unit.level)
        concepts, models, demos = (
            documents.concepts, documents.models, documents.demonstrations,
        )
        return PersistedRecord(
            id=str(uuid.uuid4()),
            dimension_id=dimension.id,
            level=level.level,
            title=f"Level {level.level}: {level.title}",
            subtitle=f"{dimension.name}的{level.title}阶段",
            description=level.description,
            learning_objectives=list(level.objectives),
            concepts_intro=str(concepts.get("introduction", "")),
            concepts_content=concepts,
            models_intro=str(models.get("introduction", "")),
            models_content=models,
            demonstrations_intro=str(demos.get("scenario", "")),
            demonstrations_content=demos,
            estimated_time=estimate_time(level.level),
            difficulty=level.difficulty,
            tags=[dimension.id, f"level-{level.level}", level.difficulty],
            keywords=extract_keywords(concepts, models),
            prerequisites=[f"level-{level.level - 1}"] if level.level > 1 else [],
            related_topics=[],
            version=CONTENT_VERSION,
            is_published=True,
            published_at=now,
            quality_score=INITIAL_QUALITY_SCORE,
            view_count=0,
        )

    def write_backup(
        self,
        unit: GenerationUnit,
        documents: SectionDocuments,
        now: datetime,
    ) -> Path:
        """Write the pre-persistence snapshot. Never overwrites a file."""
        dimension = self._catalog.get_dimension(unit.dimension_id)
        level = self._catalog.get_level(unit.dimension_id, unit.level)
        stamp = make_run_stamp(now)
        path = get_backup_file(unit.dimension_id, unit.level, stamp, self._config.backup_dir)
        suffix = 1
        while path.exists():
            path = get_backup_file(
                unit.dimension_id, unit.level, f"{stamp}-{suffix}", self._config.backup_dir,
            )
            suffix += 1

        payload = {
            "dimension": dimension.model_dump(exclude={"levels"}),
            "level": level.model_dump(),
            "content": documents.as_dict(),
            "timestamp": now.isoformat(),
        }
        save_json_file(payload, path)
        logger.debug("Backup written: %s", path)
        return path

    async def replay_backup(
        self,
        path: Path | str,
        *,
        skip_existing: bool = True,
        validator: ContentValidator | None = None,
    ) -> PersistedRecord | None:
        """Re-validate a snapshot and insert it (no new snapshot is taken).

        Returns:
            The inserted record, or None if the unit is already published
            and ``skip_existing`` is set.

        Raises:
            ConfigurationError: Snapshot is malformed or unit unknown.
            ContentValidationError: A section no longer passes validation.
        """
        unit, documents = load_backup(path)
        if skip_existing and await self.exists(unit):
            logger.info("%s already published, replay skipped", unit.key)
            return None

        validator = validator or ContentValidator()
        for kind, document in documents.as_dict().items():
            outcome = validator.validate(kind, document)
            if not outcome.is_valid:
                raise ContentValidationError(outcome)

        record = self.build_record(unit, documents, self._now())
        return await self._insert(record)

    async def _insert(self, record: PersistedRecord) -> PersistedRecord:
        record_id = await asyncio.to_thread(self._store.insert_record, record)
        record.id = record_id
        logger.info(
            "Saved %s:%d (id=%s, %d keywords)",
            record.dimension_id, record.level, record.id, len(record.keywords),
        )
        return record


def load_backup(path: Path | str) -> tuple[GenerationUnit, SectionDocuments]:
    """Read a snapshot file back into a unit and its three documents.

    Raises:
        ConfigurationError: File missing, not JSON, or missing fields.
    """
    try:
        data = load_json_file(path)
    except (OSError, ValueError) as exc:
        msg = f"Cannot read backup {path}: {exc}"
        raise ConfigurationError(msg) from exc
    if not isinstance(data, dict):
        msg = f"Backup {path} is not a JSON object"
        raise ConfigurationError(msg)

    dimension = data.get("dimension")
    level = data.get("level")
    dimension_id = dimension.get("id") if isinstance(dimension, dict) else dimension
    level_number = level.get("level") if isinstance(level, dict) else level
    content = data.get("content")
    if not isinstance(dimension_id, str) or not isinstance(level_number, int):
        msg = f"Backup {path} has no dimension id or level"
        raise ConfigurationError(msg)
    if not isinstance(content, dict):
        msg = f"Backup {path} has no content"
        raise ConfigurationError(msg)

    documents = SectionDocuments.from_mapping(
        {kind.value: content.get(kind.value) for kind in SectionKind if kind.value in content},
    )
    return GenerationUnit(dimension_id, level_number), documents
