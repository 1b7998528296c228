"""Progress persistence.

Provides the ProgressStore protocol with two implementations:
- InMemoryProgressStore: dict-backed, for tests and single-process servers.
- PgProgressStore: PostgreSQL key-value table via psycopg.

save_progress() / load_progress() wrap a store so that storage failures
and corrupt snapshots never block the questionnaire: they are logged and
treated as "no saved progress".
"""

from __future__ import annotations

import json
import logging
import os
from typing import Protocol, runtime_checkable

import psycopg
from psycopg.rows import dict_row

from vetpref.decision_graph import DecisionGraph
from vetpref.navigation import RESULT


logger = logging.getLogger(__name__)

KEY_PREFIX = "vets-pref-"


class ProgressStoreError(Exception):
    """Raised when the underlying store cannot be read or written."""


@runtime_checkable
class ProgressStore(Protocol):
    """Protocol defining the key-value store used for saved progress."""

    def get(self, key: str) -> str | None: ...
    def set(self, key: str, value: str) -> None: ...
    def delete(self, key: str) -> None: ...


def storage_key(name: str) -> str:
    """Namespaced store key, e.g. ``vets-pref-tool-state``."""
    return f"{KEY_PREFIX}{name}"


class InMemoryProgressStore:
    """Dict-backed store."""

    def __init__(self):
        self._data: dict[str, str] = {}

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)


def _get_connection_string() -> str | None:
    """Get database connection string from environment."""
    return os.environ.get("VETPREF_DATABASE_URL") or os.environ.get("DATABASE_URL")


class PgProgressStore:
    """PostgreSQL-backed store.

    Expects a table::

        CREATE TABLE vetpref_progress (
            key TEXT PRIMARY KEY,
            state TEXT NOT NULL,
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        );
    """

    def __init__(self, connection_string: str | None = None):
        self._conninfo = connection_string or _get_connection_string()
        if not self._conninfo:
            raise ProgressStoreError("No database connection string configured")

    def _connect(self) -> psycopg.Connection:
        return psycopg.connect(self._conninfo, row_factory=dict_row)

    def get(self, key: str) -> str | None:
        try:
            with self._connect() as conn:
                with conn.cursor() as cur:
                    cur.execute(
                        "SELECT state FROM vetpref_progress WHERE key = %s",
                        (key,)
                    )
                    row = cur.fetchone()
        except psycopg.Error as e:
            raise ProgressStoreError(f"Could not read progress for {key}: {e}") from e
        return row["state"] if row else None

    def set(self, key: str, value: str) -> None:
        try:
            with self._connect() as conn:
                with conn.cursor() as cur:
                    cur.execute(
                        """
                        INSERT INTO vetpref_progress (key, state)
                        VALUES (%s, %s)
                        ON CONFLICT (key) DO UPDATE
                        SET state = EXCLUDED.state, updated_at = NOW()
                        """,
                        (key, value)
                    )
                conn.commit()
        except psycopg.Error as e:
            raise ProgressStoreError(f"Could not save progress for {key}: {e}") from e

    def delete(self, key: str) -> None:
        try:
            with self._connect() as conn:
                with conn.cursor() as cur:
                    cur.execute("DELETE FROM vetpref_progress WHERE key = %s", (key,))
                conn.commit()
        except psycopg.Error as e:
            raise ProgressStoreError(f"Could not clear progress for {key}: {e}") from e


# ---------------------------------------------------------------------------
# Snapshot save / restore
# ---------------------------------------------------------------------------

def save_progress(store: ProgressStore, key: str, snapshot: dict, graph_version: str) -> bool:
    """Serialize and store a navigation snapshot. Returns False on failure."""
    payload = {**snapshot, "graphVersion": graph_version}
    try:
        store.set(key, json.dumps(payload, default=str))
    except (ProgressStoreError, TypeError, ValueError) as e:
        logger.warning("Could not save progress: %s", e)
        return False
    return True


def load_progress(store: ProgressStore, key: str, graph: DecisionGraph) -> dict | None:
    """Load a saved snapshot that still fits ``graph``, or None.

    Snapshots written for another graph version, or that mention questions
    the graph no longer has, are discarded.
    """
    try:
        raw = store.get(key)
    except ProgressStoreError as e:
        logger.warning("Could not load progress: %s", e)
        return None
    if not raw:
        return None

    try:
        snapshot = json.loads(raw)
        path = snapshot["answerPath"]
        current = snapshot["currentQuestionId"]
        version = snapshot.get("graphVersion")
        question_ids = [item["questionId"] for item in path]
    except (json.JSONDecodeError, KeyError, TypeError) as e:
        logger.warning("Ignoring corrupt saved progress under %s: %s", key, e)
        return None

    if not isinstance(current, str) or not all(isinstance(qid, str) for qid in question_ids):
        logger.warning("Ignoring corrupt saved progress under %s: non-string question id", key)
        return None
    if current == RESULT and not question_ids:
        logger.warning("Ignoring corrupt saved progress under %s: result without answers", key)
        return None

    if version != graph.version:
        logger.info("Ignoring saved progress for graph version %s (current %s)", version, graph.version)
        return None

    unknown = [qid for qid in question_ids if qid not in graph]
    if current != RESULT and current not in graph:
        unknown.append(current)
    if unknown:
        logger.info("Ignoring saved progress referencing unknown questions: %s", unknown)
        return None

    return snapshot


def clear_progress(store: ProgressStore, key: str) -> None:
    try:
        store.delete(key)
    except ProgressStoreError as e:
        logger.warning("Could not clear progress: %s", e)
