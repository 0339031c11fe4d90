"""SQLite persistence for step progress, quiz results and workflow completions."""

from __future__ import annotations

import json
import sqlite3
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path

from .errors import PersistenceError
from .models import ProgressRecord, QuizResult

SCHEMA_VERSION = 1


class ProgressStore:
    """Database access layer for learner progress."""

    def __init__(self, db_path: Path | str) -> None:
        """Initialize database and schema."""
        if isinstance(db_path, Path):
            db_path.parent.mkdir(parents=True, exist_ok=True)
            target = str(db_path)
        else:
            target = db_path
        try:
            self._conn = sqlite3.connect(target)
        except sqlite3.Error as exc:
            raise PersistenceError(f"Could not open progress database {target}: {exc}") from exc
        self._conn.row_factory = sqlite3.Row
        self._apply_migrations()

    @contextmanager
    def _transaction(self, operation: str) -> Iterator[sqlite3.Connection]:
        """Run statements in one transaction and surface sqlite failures as PersistenceError."""
        try:
            with self._conn:
                yield self._conn
        except sqlite3.Error as exc:
            raise PersistenceError(f"Could not {operation}: {exc}") from exc

    def _apply_migrations(self) -> None:
        """Apply forward-only schema migrations to latest version."""
        with self._transaction("read schema version") as conn:
            current = int(conn.execute("PRAGMA user_version").fetchone()[0])
        if current > SCHEMA_VERSION:
            raise PersistenceError(f"Database schema version {current} is newer than supported {SCHEMA_VERSION}.")

        with self._transaction("create migrations table") as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS schema_migrations (
                    version INTEGER PRIMARY KEY,
                    applied_at TEXT NOT NULL
                )
                """)

        for version in range(current + 1, SCHEMA_VERSION + 1):
            if version == 1:
                self._migrate_to_v1()
            with self._transaction(f"record schema version {version}") as conn:
                conn.execute(f"PRAGMA user_version = {version}")
                conn.execute(
                    "INSERT OR REPLACE INTO schema_migrations (version, applied_at) VALUES (?, ?)",
                    (version, _now()),
                )

    def _migrate_to_v1(self) -> None:
        """Create progress, quiz and freemium tables."""
        with self._transaction("migrate to schema v1") as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS module_progress (
                    category_id TEXT NOT NULL,
                    module_id TEXT NOT NULL,
                    completed_step_ids TEXT NOT NULL,
                    current_step_index INTEGER NOT NULL,
                    started_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    PRIMARY KEY (category_id, module_id)
                )
                """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS quiz_results (
                    category_id TEXT NOT NULL,
                    module_id TEXT NOT NULL,
                    quiz_id TEXT NOT NULL,
                    passed INTEGER NOT NULL,
                    score INTEGER NOT NULL,
                    recorded_at TEXT NOT NULL,
                    PRIMARY KEY (category_id, module_id, quiz_id)
                )
                """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS workflow_completions (
                    user_id TEXT NOT NULL,
                    workflow_id TEXT NOT NULL,
                    completed_at TEXT NOT NULL,
                    PRIMARY KEY (user_id, workflow_id)
                )
                """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS plans (
                    user_id TEXT PRIMARY KEY,
                    is_paid INTEGER NOT NULL,
                    updated_at TEXT NOT NULL
                )
                """)

    def get(self, category_id: str, module_id: str) -> ProgressRecord | None:
        """Return the stored record for a module, or None if never visited."""
        with self._transaction("read module progress") as conn:
            row = conn.execute(
                """
                SELECT category_id, module_id, completed_step_ids, current_step_index, started_at, updated_at
                FROM module_progress
                WHERE category_id = ? AND module_id = ?
                """,
                (category_id, module_id),
            ).fetchone()
            if row is None:
                return None
            quiz_results = self._quiz_results(conn, category_id, module_id)
        return _record_from_row(row, quiz_results)

    def save(
        self,
        category_id: str,
        module_id: str,
        completed_step_ids: Iterable[str],
        current_step_index: int,
    ) -> None:
        """Write-through upsert of step progress; quiz results and start time are kept."""
        now = _now()
        payload = json.dumps(sorted(set(completed_step_ids)))
        with self._transaction("save module progress") as conn:
            conn.execute(
                """
                INSERT INTO module_progress (
                    category_id,
                    module_id,
                    completed_step_ids,
                    current_step_index,
                    started_at,
                    updated_at
                )
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(category_id, module_id) DO UPDATE SET
                    completed_step_ids = excluded.completed_step_ids,
                    current_step_index = excluded.current_step_index,
                    updated_at = excluded.updated_at
                """,
                (category_id, module_id, payload, int(current_step_index), now, now),
            )

    def save_quiz_result(
        self,
        category_id: str,
        module_id: str,
        quiz_id: str,
        passed: bool,
        score: int,
    ) -> None:
        """Store a quiz result without touching step progress."""
        now = _now()
        with self._transaction("save quiz result") as conn:
            conn.execute(
                """
                INSERT OR IGNORE INTO module_progress (
                    category_id,
                    module_id,
                    completed_step_ids,
                    current_step_index,
                    started_at,
                    updated_at
                )
                VALUES (?, ?, '[]', 0, ?, ?)
                """,
                (category_id, module_id, now, now),
            )
            conn.execute(
                """
                INSERT INTO quiz_results (category_id, module_id, quiz_id, passed, score, recorded_at)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(category_id, module_id, quiz_id) DO UPDATE SET
                    passed = excluded.passed,
                    score = excluded.score,
                    recorded_at = excluded.recorded_at
                """,
                (category_id, module_id, quiz_id, int(passed), int(score), now),
            )

    def list_records(self) -> list[ProgressRecord]:
        """Return every stored record ordered by category and module."""
        with self._transaction("list module progress") as conn:
            rows = conn.execute("""
                SELECT category_id, module_id, completed_step_ids, current_step_index, started_at, updated_at
                FROM module_progress
                ORDER BY category_id, module_id
                """).fetchall()
            return [
                _record_from_row(row, self._quiz_results(conn, str(row["category_id"]), str(row["module_id"])))
                for row in rows
            ]

    def restore_records(self, rows: list[dict[str, object]]) -> None:
        """Upsert normalized export rows in one transaction, keeping their timestamps."""
        with self._transaction("restore module progress") as conn:
            for row in rows:
                conn.execute(
                    """
                    INSERT INTO module_progress (
                        category_id,
                        module_id,
                        completed_step_ids,
                        current_step_index,
                        started_at,
                        updated_at
                    )
                    VALUES (?, ?, ?, ?, ?, ?)
                    ON CONFLICT(category_id, module_id) DO UPDATE SET
                        completed_step_ids = excluded.completed_step_ids,
                        current_step_index = excluded.current_step_index,
                        started_at = excluded.started_at,
                        updated_at = excluded.updated_at
                    """,
                    (
                        row["category_id"],
                        row["module_id"],
                        json.dumps(row["completed_step_ids"]),
                        row["current_step_index"],
                        row["started_at"],
                        row["updated_at"],
                    ),
                )
                quiz_results = row.get("quiz_results")
                if not isinstance(quiz_results, dict):
                    continue
                for quiz_id, result in quiz_results.items():
                    conn.execute(
                        """
                        INSERT INTO quiz_results (category_id, module_id, quiz_id, passed, score, recorded_at)
                        VALUES (?, ?, ?, ?, ?, ?)
                        ON CONFLICT(category_id, module_id, quiz_id) DO UPDATE SET
                            passed = excluded.passed,
                            score = excluded.score,
                            recorded_at = excluded.recorded_at
                        """,
                        (
                            row["category_id"],
                            row["module_id"],
                            quiz_id,
                            int(result.passed),
                            int(result.score),
                            row["updated_at"],
                        ),
                    )

    def overall_progress(self) -> tuple[int, int]:
        """Return (tracked modules, modules with at least one completed step)."""
        records = self.list_records()
        return (len(records), sum(1 for record in records if record.completed_step_ids))

    def record_workflow_completion(self, user_id: str, workflow_id: str) -> bool:
        """Record a completed workflow; returns False when it was already recorded."""
        with self._transaction("record workflow completion") as conn:
            cursor = conn.execute(
                "INSERT OR IGNORE INTO workflow_completions (user_id, workflow_id, completed_at) VALUES (?, ?, ?)",
                (user_id, workflow_id, _now()),
            )
        return cursor.rowcount > 0

    def completed_workflow_ids(self, user_id: str) -> set[str]:
        with self._transaction("read workflow completions") as conn:
            rows = conn.execute(
                "SELECT workflow_id FROM workflow_completions WHERE user_id = ?",
                (user_id,),
            ).fetchall()
        return {str(row["workflow_id"]) for row in rows}

    def set_paid(self, user_id: str, is_paid: bool) -> None:
        with self._transaction("update plan") as conn:
            conn.execute(
                """
                INSERT INTO plans (user_id, is_paid, updated_at) VALUES (?, ?, ?)
                ON CONFLICT(user_id) DO UPDATE SET is_paid = excluded.is_paid, updated_at = excluded.updated_at
                """,
                (user_id, int(is_paid), _now()),
            )

    def is_paid(self, user_id: str) -> bool:
        with self._transaction("read plan") as conn:
            row = conn.execute("SELECT is_paid FROM plans WHERE user_id = ?", (user_id,)).fetchone()
        return row is not None and bool(row["is_paid"])

    def _quiz_results(self, conn: sqlite3.Connection, category_id: str, module_id: str) -> dict[str, QuizResult]:
        rows = conn.execute(
            "SELECT quiz_id, passed, score FROM quiz_results WHERE category_id = ? AND module_id = ?",
            (category_id, module_id),
        ).fetchall()
        return {str(row["quiz_id"]): QuizResult(passed=bool(row["passed"]), score=int(row["score"])) for row in rows}

    def close(self) -> None:
        """Close db connection."""
        self._conn.close()

    def __del__(self) -> None:  # pragma: no cover
        """Best-effort connection cleanup."""
        try:
            self.close()
        except Exception:
            pass


def _record_from_row(row: sqlite3.Row, quiz_results: dict[str, QuizResult]) -> ProgressRecord:
    try:
        raw_ids = json.loads(str(row["completed_step_ids"]))
    except json.JSONDecodeError:
        raw_ids = []
    completed = frozenset(str(item) for item in raw_ids) if isinstance(raw_ids, list) else frozenset()
    return ProgressRecord(
        category_id=str(row["category_id"]),
        module_id=str(row["module_id"]),
        completed_step_ids=completed,
        current_step_index=int(row["current_step_index"]),
        quiz_results=quiz_results,
        started_at=str(row["started_at"]),
        updated_at=str(row["updated_at"]),
    )


def _now() -> str:
    return datetime.now(UTC).isoformat()
