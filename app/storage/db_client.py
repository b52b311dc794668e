"""Database client for the theory_content table.

Uses psycopg3 with dict rows. Connections are opened per operation and
closed on exit; writes run inside an explicit transaction.
"""

from __future__ import annotations

import json
from collections.abc import Generator
from contextlib import contextmanager
from dataclasses import asdict
from datetime import datetime
from enum import Enum
from typing import Any

import psycopg
from psycopg.rows import dict_row

from .config import DBConfig

THEORY_CONTENT_TABLE = "theory_content"

# Record field -> column. Column names follow the table's snake_case mapping.
_COLUMNS: dict[str, str] = {
    "id": "id",
    "dimension_id": "thinking_type_id",
    "level": "level",
    "title": "title",
    "subtitle": "subtitle",
    "description": "description",
    "learning_objectives": "learning_objectives",
    "concepts_intro": "concepts_intro",
    "concepts_content": "concepts_content",
    "models_intro": "models_intro",
    "models_content": "models_content",
    "demonstrations_intro": "demonstrations_intro",
    "demonstrations_content": "demonstrations_content",
    "estimated_time": "estimated_time",
    "difficulty": "difficulty",
    "tags": "tags",
    "keywords": "keywords",
    "prerequisites": "prerequisites",
    "related_topics": "related_topics",
    "version": "version",
    "is_published": "is_published",
    "published_at": "published_at",
    "quality_score": "quality_score",
    "view_count": "view_count",
    "created_at": "created_at",
}


# -----------------------------------------------------------------------------
# Database Client
# -----------------------------------------------------------------------------


class DBClient:
    """Database client for reading and inserting theory content rows."""

    def __init__(self, config: DBConfig):
        self.config = config

    @contextmanager
    def connection(self) -> Generator[psycopg.Connection, None, None]:
        """Get a database connection with automatic cleanup."""
        # Timeout is configured in the connection string (see config.py)
        conn = psycopg.connect(self.config.connection_string, row_factory=dict_row)
        try:
            yield conn
        finally:
            conn.close()

    @contextmanager
    def transaction(self, conn: psycopg.Connection) -> Generator[psycopg.Cursor, None, None]:
        """Execute operations within a transaction."""
        with conn.transaction():
            with conn.cursor() as cur:
                yield cur

    # -------------------------------------------------------------------------
    # Helper methods
    # -------------------------------------------------------------------------

    def _serialize_value(self, value: Any) -> Any:
        """Serialize Python values for Postgres insertion."""
        if value is None:
            return None
        if isinstance(value, Enum):
            return value.value
        if isinstance(value, list):
            return [v.value if isinstance(v, Enum) else v for v in value]
        if isinstance(value, dict):
            return json.dumps(value, ensure_ascii=False)
        return value

    def _row_to_dict(self, row: Any) -> dict[str, Any]:
        """Convert a dataclass record to a column dict with serialized values."""
        fields = asdict(row) if hasattr(row, "__dataclass_fields__") else dict(row)
        return {
            _COLUMNS[k]: self._serialize_value(v)
            for k, v in fields.items()
            if k in _COLUMNS
        }

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def exists_published(self, cur: psycopg.Cursor, dimension_id: str, level: int) -> bool:
        """Point read on (dimension, level, is_published = true)."""
        cur.execute(
            f"SELECT 1 FROM {THEORY_CONTENT_TABLE} "
            "WHERE thinking_type_id = %s AND level = %s AND is_published = true "
            "LIMIT 1",
            (dimension_id, level),
        )
        return cur.fetchone() is not None

    def insert_theory_content(self, cur: psycopg.Cursor, record: Any) -> str:
        """Insert one record and return its id.

        Raises:
            psycopg.errors.UniqueViolation: If a unique constraint rejects it.
        """
        row = self._row_to_dict(record)
        if row.get("created_at") is None:
            row["created_at"] = datetime.now()
        columns = list(row)
        placeholders = ", ".join(["%s"] * len(columns))
        cur.execute(
            f"INSERT INTO {THEORY_CONTENT_TABLE} ({', '.join(columns)}) "
            f"VALUES ({placeholders}) RETURNING id",
            [row[c] for c in columns],
        )
        result = cur.fetchone()
        return str(result["id"]) if result else str(row["id"])

    def published_counts(self, cur: psycopg.Cursor) -> list[dict[str, Any]]:
        """Published record counts grouped by (dimension, level)."""
        cur.execute(
            "SELECT thinking_type_id, level, COUNT(*) AS count "
            f"FROM {THEORY_CONTENT_TABLE} WHERE is_published = true "
            "GROUP BY thinking_type_id, level ORDER BY thinking_type_id, level"
        )
        return list(cur.fetchall())
