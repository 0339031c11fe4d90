import sqlite3
from pathlib import Path

import pytest

from opsnavigator.errors import PersistenceError
from opsnavigator.models import QuizResult
from opsnavigator.progress import SCHEMA_VERSION, ProgressStore


def test_get_missing_record_returns_none() -> None:
    store = ProgressStore(":memory:")
    assert store.get("containers", "docker-engine") is None


def test_save_and_get_round_trip() -> None:
    store = ProgressStore(":memory:")
    store.save("containers", "docker-engine", {"install", "verify"}, 2)

    record = store.get("containers", "docker-engine")
    assert record is not None
    assert record.completed_step_ids == frozenset({"install", "verify"})
    assert record.current_step_index == 2
    assert record.started_at is not None


def test_save_keeps_started_at_and_quiz_results() -> None:
    store = ProgressStore(":memory:")
    store.save("git", "git-init", set(), 0)
    first = store.get("git", "git-init")
    assert first is not None
    store.save_quiz_result("git", "git-init", "git-init", True, 2)

    store.save("git", "git-init", {"mkdir"}, 1)
    record = store.get("git", "git-init")
    assert record is not None
    assert record.started_at == first.started_at
    assert record.quiz_results == {"git-init": QuizResult(passed=True, score=2)}


def test_quiz_result_creates_empty_record_without_touching_steps() -> None:
    store = ProgressStore(":memory:")
    store.save_quiz_result("aws", "s3-buckets", "s3-buckets", False, 1)
    record = store.get("aws", "s3-buckets")
    assert record is not None
    assert record.completed_step_ids == frozenset()
    assert record.current_step_index == 0

    store.save("aws", "s3-buckets", {"open"}, 1)
    store.save_quiz_result("aws", "s3-buckets", "s3-buckets", True, 2)
    record = store.get("aws", "s3-buckets")
    assert record is not None
    assert record.completed_step_ids == frozenset({"open"})
    assert record.quiz_results["s3-buckets"] == QuizResult(passed=True, score=2)


def test_list_records_and_overall_progress() -> None:
    store = ProgressStore(":memory:")
    store.save("git", "git-tags", set(), 0)
    store.save("containers", "helm", {"install"}, 1)

    records = store.list_records()
    assert [(record.category_id, record.module_id) for record in records] == [
        ("containers", "helm"),
        ("git", "git-tags"),
    ]
    assert store.overall_progress() == (2, 1)


def test_workflow_completion_is_idempotent() -> None:
    store = ProgressStore(":memory:")
    assert store.record_workflow_completion("local", "docker-compose") is True
    assert store.record_workflow_completion("local", "docker-compose") is False
    assert store.completed_workflow_ids("local") == {"docker-compose"}
    assert store.completed_workflow_ids("other") == set()


def test_paid_flag() -> None:
    store = ProgressStore(":memory:")
    assert store.is_paid("local") is False
    store.set_paid("local", True)
    assert store.is_paid("local") is True
    store.set_paid("local", False)
    assert store.is_paid("local") is False


def test_migration_sets_user_version_and_schema_history() -> None:
    store = ProgressStore(":memory:")
    version = int(store._conn.execute("PRAGMA user_version").fetchone()[0])  # noqa: SLF001
    assert version == SCHEMA_VERSION
    rows = store._conn.execute("SELECT version FROM schema_migrations ORDER BY version").fetchall()  # noqa: SLF001
    assert [int(row["version"]) for row in rows] == [1]


def test_newer_schema_is_rejected(tmp_path: Path) -> None:
    db_path = tmp_path / "future.db"
    conn = sqlite3.connect(db_path)
    conn.execute(f"PRAGMA user_version = {SCHEMA_VERSION + 1}")
    conn.commit()
    conn.close()

    with pytest.raises(PersistenceError):
        ProgressStore(str(db_path))


def test_progress_survives_reopen(tmp_path: Path) -> None:
    db_path = tmp_path / "nested" / "progress.db"
    store = ProgressStore(db_path)
    store.save("containers", "minikube", {"install", "start"}, 2)
    store.close()

    reopened = ProgressStore(db_path)
    record = reopened.get("containers", "minikube")
    assert record is not None
    assert record.completed_step_ids == frozenset({"install", "start"})
    reopened.close()


def test_closed_connection_surfaces_persistence_error() -> None:
    store = ProgressStore(":memory:")
    store.close()
    with pytest.raises(PersistenceError):
        store.save("git", "git-init", set(), 0)


def test_restore_records_upserts_rows() -> None:
    store = ProgressStore(":memory:")
    store.save("git", "git-tags", {"list"}, 1)
    store.restore_records(
        [
            {
                "category_id": "git",
                "module_id": "git-tags",
                "completed_step_ids": ["create", "list"],
                "current_step_index": 2,
                "started_at": "2026-01-01T00:00:00+00:00",
                "updated_at": "2026-01-02T00:00:00+00:00",
                "quiz_results": {"git-tags": QuizResult(passed=False, score=0)},
            }
        ]
    )
    record = store.get("git", "git-tags")
    assert record is not None
    assert record.completed_step_ids == frozenset({"create", "list"})
    assert record.current_step_index == 2
    assert record.started_at == "2026-01-01T00:00:00+00:00"
    assert record.quiz_results == {"git-tags": QuizResult(passed=False, score=0)}
