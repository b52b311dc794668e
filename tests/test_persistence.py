"""Tests for the persistence gateway, stores and snapshots."""

from __future__ import annotations

import dataclasses
import json
from contextlib import contextmanager
from datetime import datetime, timezone

import pytest
from psycopg import errors as pg_errors

from app.theory_generation.errors import (
    ConfigurationError,
    ContentValidationError,
    DuplicateRecordError,
    PersistenceError,
)
from app.theory_generation.models import (
    CONTENT_VERSION,
    GenerationUnit,
    SectionDocuments,
    SectionKind,
)
from app.theory_generation.persistence import (
    InMemoryContentStore,
    PersistenceGateway,
    PostgresContentStore,
    estimate_time,
    extract_keywords,
    load_backup,
)
from tests.fakes import concepts_doc, demonstrations_doc, models_doc

NOW = datetime(2024, 5, 1, 10, 20, 30, 123000, tzinfo=timezone.utc)


def _documents(**overrides) -> SectionDocuments:
    docs = {
        "concepts": concepts_doc(),
        "models": models_doc(),
        "demonstrations": demonstrations_doc(),
    }
    docs.update(overrides)
    return SectionDocuments.from_mapping(docs)


def _gateway(store, catalog, config, **kwargs):
    return PersistenceGateway(store, catalog, config, now=lambda: NOW, **kwargs)


# -------------------------------------------------------------------
# Derived metadata
# -------------------------------------------------------------------


@pytest.mark.parametrize(
    ("level", "minutes"), [(1, 45), (2, 59), (3, 72), (4, 86), (5, 99)],
)
def test_estimate_time(level, minutes):
    assert estimate_time(level) == minutes


def test_extract_keywords_order_and_dedup():
    keywords = extract_keywords(concepts_doc(), models_doc())
    assert keywords == [
        "原因先于结果",
        "相关不等于因果",
        "列出利弊",
        "逐项比较",
        "因果",
        "利弊",
        "因果链分析法",
    ]


def test_extract_keywords_drops_single_characters_and_caps():
    concepts = {
        "sections": [
            {"keyPoints": [f"词{i}，甲、乙" for i in range(12)]},
            {"keyPoints": None},
            "not a section",
        ],
    }
    keywords = extract_keywords(concepts, {"frameworkName": "框架 A"})
    assert len(keywords) == 10
    assert keywords[0] == "词0"
    assert "甲" not in keywords


# -------------------------------------------------------------------
# Save
# -------------------------------------------------------------------


@pytest.mark.anyio
async def test_save_builds_full_record(catalog, config):
    store = InMemoryContentStore()
    gateway = _gateway(store, catalog, config)

    record = await gateway.save(GenerationUnit("causal_analysis", 2), _documents())

    assert store.records[0].id == record.id
    assert record.title == "Level 2: 变量控制"
    assert record.subtitle == "多维归因与利弊权衡的变量控制阶段"
    assert record.difficulty == "beginner"
    assert record.tags == ["causal_analysis", "level-2", "beginner"]
    assert record.prerequisites == ["level-1"]
    assert record.related_topics == []
    assert record.estimated_time == 59
    assert record.version == CONTENT_VERSION
    assert record.is_published is True
    assert record.published_at == NOW
    assert record.quality_score == 0.8
    assert record.view_count == 0
    assert record.concepts_intro == concepts_doc()["introduction"]
    assert record.models_intro == models_doc()["introduction"]
    assert record.demonstrations_intro == demonstrations_doc()["scenario"]
    assert record.learning_objectives == catalog.get_level("causal_analysis", 2).objectives
    assert await gateway.exists(GenerationUnit("causal_analysis", 2))
    assert not await gateway.exists(GenerationUnit("causal_analysis", 3))


@pytest.mark.anyio
async def test_level_one_has_no_prerequisites(catalog, config):
    gateway = _gateway(InMemoryContentStore(), catalog, config)
    record = await gateway.save(GenerationUnit("causal_analysis", 1), _documents())
    assert record.prerequisites == []
    assert record.estimated_time == 45


@pytest.mark.anyio
async def test_save_accepts_plain_mapping(catalog, config):
    gateway = _gateway(InMemoryContentStore(), catalog, config)
    record = await gateway.save(
        GenerationUnit("fallacy_detection", 5),
        {
            SectionKind.CONCEPTS: concepts_doc(),
            SectionKind.MODELS: models_doc(),
            SectionKind.DEMONSTRATIONS: demonstrations_doc(),
        },
    )
    assert record.estimated_time == 99


@pytest.mark.anyio
async def test_save_rejects_partial_triple(catalog, config):
    store = InMemoryContentStore()
    gateway = _gateway(store, catalog, config)
    with pytest.raises(ConfigurationError):
        await gateway.save(
            GenerationUnit("causal_analysis", 1),
            {"concepts": concepts_doc(), "models": models_doc()},
        )
    assert store.records == []


@pytest.mark.anyio
async def test_unique_store_rejects_second_publish(catalog, config):
    store = InMemoryContentStore(enforce_unique=True)
    gateway = _gateway(store, catalog, config)
    unit = GenerationUnit("causal_analysis", 1)

    await gateway.save(unit, _documents())
    with pytest.raises(DuplicateRecordError):
        await gateway.save(unit, _documents())

    assert len(store.published("causal_analysis", 1)) == 1


@pytest.mark.anyio
async def test_census_counts_published(catalog, config):
    store = InMemoryContentStore()
    gateway = _gateway(store, catalog, config)
    for unit in [
        GenerationUnit("causal_analysis", 1),
        GenerationUnit("causal_analysis", 2),
        GenerationUnit("premise_challenge", 1),
    ]:
        await gateway.save(unit, _documents())

    census = await gateway.census()

    assert census.total == 3
    assert census.by_dimension == {"causal_analysis": 2, "premise_challenge": 1}
    assert census.by_level == {1: 2, 2: 1}
    assert census.by_unit == {
        "causal_analysis:1": 1, "causal_analysis:2": 1, "premise_challenge:1": 1,
    }
    assert census.expected_total == 25
    assert census.completion_ratio == pytest.approx(0.12)


# -------------------------------------------------------------------
# Backups
# -------------------------------------------------------------------


class FailingStore(InMemoryContentStore):
    def insert_record(self, record):
        raise PersistenceError("connection lost")


@pytest.mark.anyio
async def test_backup_written_before_insert(catalog, config):
    config = dataclasses.replace(config, backup_enabled=True)
    gateway = _gateway(FailingStore(), catalog, config)
    unit = GenerationUnit("causal_analysis", 3)

    with pytest.raises(PersistenceError):
        await gateway.save(unit, _documents())

    files = sorted(config.backup_dir.glob("*.json"))
    assert [f.name for f in files] == [
        "causal_analysis-level-3-2024-05-01T10-20-30-123Z.json",
    ]
    payload = json.loads(files[0].read_text(encoding="utf-8"))
    assert set(payload) == {"dimension", "level", "content", "timestamp"}
    assert payload["dimension"]["id"] == "causal_analysis"
    assert payload["level"]["level"] == 3
    assert payload["content"]["models"] == models_doc()
    assert list(config.backup_dir.glob("*.tmp")) == []


@pytest.mark.anyio
async def test_backups_are_never_overwritten(catalog, config):
    config = dataclasses.replace(config, backup_enabled=True)
    gateway = _gateway(InMemoryContentStore(), catalog, config)
    unit = GenerationUnit("causal_analysis", 1)

    await gateway.save(unit, _documents())
    await gateway.save(unit, _documents())

    assert len(list(config.backup_dir.glob("*.json"))) == 2


@pytest.mark.anyio
async def test_no_backup_when_disabled(catalog, config):
    gateway = _gateway(InMemoryContentStore(), catalog, config)
    await gateway.save(GenerationUnit("causal_analysis", 1), _documents())
    assert not config.backup_dir.exists()


@pytest.mark.anyio
async def test_replay_backup_inserts_snapshot(catalog, config):
    config = dataclasses.replace(config, backup_enabled=True)
    unit = GenerationUnit("iterative_reflection", 4)
    with pytest.raises(PersistenceError):
        await _gateway(FailingStore(), catalog, config).save(unit, _documents())
    path = next(config.backup_dir.glob("*.json"))

    store = InMemoryContentStore()
    gateway = _gateway(store, catalog, config)
    record = await gateway.replay_backup(path)

    assert record is not None
    assert (record.dimension_id, record.level) == ("iterative_reflection", 4)
    assert record.estimated_time == 86
    assert len(store.records) == 1
    # No new snapshot for a replay
    assert len(list(config.backup_dir.glob("*.json"))) == 1
    # Second replay sees the published record
    assert await gateway.replay_backup(path) is None
    assert len(store.records) == 1


@pytest.mark.anyio
async def test_replay_backup_revalidates(catalog, config, tmp_path):
    path = tmp_path / "snapshot.json"
    path.write_text(json.dumps({
        "dimension": {"id": "causal_analysis"},
        "level": {"level": 1},
        "content": {
            "concepts": concepts_doc(),
            "models": models_doc(steps=3),
            "demonstrations": demonstrations_doc(),
        },
        "timestamp": NOW.isoformat(),
    }), encoding="utf-8")
    store = InMemoryContentStore()

    with pytest.raises(ContentValidationError):
        await _gateway(store, catalog, config).replay_backup(path)
    assert store.records == []


@pytest.mark.parametrize(
    "payload",
    [
        [],
        {"dimension": {"id": "causal_analysis"}, "level": 1},
        {"dimension": "causal_analysis", "level": "one", "content": {}},
        {"dimension": "causal_analysis", "level": 1, "content": {"concepts": {}}},
    ],
)
def test_load_backup_rejects_malformed(tmp_path, payload):
    path = tmp_path / "bad.json"
    path.write_text(json.dumps(payload), encoding="utf-8")
    with pytest.raises(ConfigurationError):
        load_backup(path)


def test_load_backup_missing_file(tmp_path):
    with pytest.raises(ConfigurationError):
        load_backup(tmp_path / "missing.json")


# -------------------------------------------------------------------
# Postgres store error mapping
# -------------------------------------------------------------------


class _FakeCursor:
    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False


class _FakeConn:
    def cursor(self):
        return _FakeCursor()


class FakeDBClient:
    def __init__(self, insert_error=None, exists=False):
        self.insert_error = insert_error
        self._exists = exists

    @contextmanager
    def connection(self):
        yield _FakeConn()

    @contextmanager
    def transaction(self, conn):
        yield _FakeCursor()

    def exists_published(self, cur, dimension_id, level):
        return self._exists

    def insert_theory_content(self, cur, record):
        if self.insert_error is not None:
            raise self.insert_error
        return "row-1"

    def published_counts(self, cur):
        return [
            {"thinking_type_id": "causal_analysis", "level": 1, "count": 1},
            {"thinking_type_id": "causal_analysis", "level": 2, "count": 2},
            {"thinking_type_id": "fallacy_detection", "level": 1, "count": 1},
        ]


@pytest.mark.anyio
async def test_postgres_unique_violation_is_duplicate(catalog, config):
    store = PostgresContentStore(FakeDBClient(pg_errors.UniqueViolation("dup")))
    gateway = _gateway(store, catalog, config)
    with pytest.raises(DuplicateRecordError):
        await gateway.save(GenerationUnit("causal_analysis", 1), _documents())


@pytest.mark.anyio
async def test_postgres_other_errors_are_persistence_errors(catalog, config):
    store = PostgresContentStore(FakeDBClient(pg_errors.OperationalError("down")))
    gateway = _gateway(store, catalog, config)
    with pytest.raises(PersistenceError) as excinfo:
        await gateway.save(GenerationUnit("causal_analysis", 1), _documents())
    assert not isinstance(excinfo.value, DuplicateRecordError)


@pytest.mark.anyio
async def test_postgres_store_round_trip(catalog, config):
    store = PostgresContentStore(FakeDBClient(exists=True))
    gateway = _gateway(store, catalog, config)

    record = await gateway.save(GenerationUnit("causal_analysis", 1), _documents())
    census = await gateway.census()

    assert record.id == "row-1"
    assert await gateway.exists(GenerationUnit("causal_analysis", 1))
    assert census.total == 4
    assert census.by_dimension == {"causal_analysis": 3, "fallacy_detection": 1}
    assert census.by_level == {1: 2, 2: 2}
    assert census.by_unit == {
        "causal_analysis:1": 1, "causal_analysis:2": 2, "fallacy_detection:1": 1,
    }
