"""Application service wiring the catalog, progress, simulators and freemium gate."""

from __future__ import annotations

import json
import math
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, cast

from loguru import logger

from . import __version__
from .catalog import WorkflowCatalog, load_catalog
from .errors import PersistenceError
from .freemium import FreemiumGate, FreemiumStatus
from .mentor import build_context
from .models import Module, QuizQuestion, QuizResult
from .progress import SCHEMA_VERSION, ProgressStore
from .scheduler import TickScheduler
from .simulator import LineCallback, Simulator, create_simulator
from .workflow import ModuleCompleted, StepStateMachine

EXPORT_FORMAT_VERSION = 1
QUIZ_PASS_RATIO = 0.7


@dataclass(frozen=True)
class ModuleStatus:
    """Progress summary of one catalog module."""

    category_id: str
    module_id: str
    name: str
    platform: str
    completed_steps: int
    total_steps: int
    started: bool
    quiz_passed: bool | None

    @property
    def stage(self) -> str:
        if self.total_steps and self.completed_steps == self.total_steps:
            return "completed"
        if self.started:
            return "started"
        return "new"


@dataclass(frozen=True)
class QuizOutcome:
    score: int
    total: int
    passed: bool


@dataclass(frozen=True)
class TransferSummary:
    """Counts emitted by progress export/import operations."""

    records: int
    quiz_results: int


class NavigatorService:
    """Coordinates one learner session across workflows and simulators."""

    def __init__(
        self,
        db_path: Path | str,
        *,
        user_id: str = "local",
        free_workflow_limit: int = 1,
        catalog: WorkflowCatalog | None = None,
        scheduler: TickScheduler | None = None,
    ) -> None:
        self.catalog = catalog or load_catalog()
        self.progress = ProgressStore(db_path)
        self.scheduler = scheduler or TickScheduler()
        self.machine = StepStateMachine(self.catalog, self.progress)
        self.gate = FreemiumGate(self.progress, user_id, free_workflow_limit)
        self.simulator: Simulator | None = None
        self.upgrade_required = False
        self.quiz_available = False
        self.completion_events: list[ModuleCompleted] = []
        self._unsubscribe = self.machine.subscribe(self._on_module_completed)

    @property
    def module(self) -> Module | None:
        return self.machine.module

    def open_module(self, category_id: str, module_id: str) -> Module:
        """Select a module, tearing down any simulator bound to the previous one.

        The free-plan limit is checked on every mount so a learner already over
        the limit sees the simulator as locked before trying to open it.
        """
        self.close_simulator()
        module = self.machine.select_module(category_id, module_id)
        self.quiz_available = self.machine.is_completed and bool(module.quiz)
        self.upgrade_required = not self.gate.check_limit()
        return module

    def can_open_simulator(self) -> bool:
        return self.gate.check_limit()

    def open_simulator(self, on_line: LineCallback | None = None) -> Simulator | None:
        """Create a fresh simulator for the selected module, or None when the free limit is reached."""
        module = self._require_module()
        if not self.can_open_simulator():
            logger.info("Simulator for {} blocked by free plan limit", module.id)
            self.upgrade_required = True
            return None
        self.close_simulator()
        self.simulator = create_simulator(
            module,
            self.scheduler,
            current_step=lambda: self.machine.current_step,
            on_action=self.complete_action,
            on_line=on_line,
        )
        return self.simulator

    def close_simulator(self) -> None:
        if self.simulator is not None:
            self.simulator.close()
            self.simulator = None

    def complete_action(self, action: str) -> bool:
        return self.machine.complete_action(action)

    def go_to_step(self, index: int) -> int:
        return self.machine.go_to_step(index)

    def freemium_status(self) -> FreemiumStatus:
        return self.gate.status()

    def upgrade(self) -> None:
        """Switch the learner to the paid plan and lift the simulator gate."""
        self.gate.set_paid(True)
        self.upgrade_required = False

    def quiz_for_current(self) -> list[QuizQuestion]:
        module = self._require_module()
        return list(module.quiz) if self.quiz_available else []

    def submit_quiz(self, answers: Sequence[int]) -> QuizOutcome:
        """Score answers (option indexes, one per question) and store the result."""
        module = self._require_module()
        questions = module.quiz
        if not questions:
            raise ValueError(f"Module '{module.id}' has no quiz.")
        if len(answers) != len(questions):
            raise ValueError(f"Expected {len(questions)} answers, got {len(answers)}.")
        score = sum(1 for question, answer in zip(questions, answers) if question.correct_index == answer)
        passed = score >= math.ceil(QUIZ_PASS_RATIO * len(questions))
        try:
            self.progress.save_quiz_result(self.machine.category_id or "", module.id, module.id, passed, score)
        except PersistenceError:
            logger.exception("Could not save quiz result for {}", module.id)
        return QuizOutcome(score=score, total=len(questions), passed=passed)

    def mentor_context(self) -> dict[str, Any]:
        module = self._require_module()
        completed = [step.id for step in module.steps if self.machine.is_step_completed(step.id)]
        return build_context(
            module.platform,
            module.name,
            self.machine.current_step,
            self.machine.current_index,
            len(module.steps),
            completed,
        )

    def status_rows(self) -> list[ModuleStatus]:
        """Return one row per catalog module, in catalog order."""
        records = {(record.category_id, record.module_id): record for record in self.progress.list_records()}
        rows: list[ModuleStatus] = []
        for category in self.catalog.categories.values():
            for module in self.catalog.modules_for_category(category.id):
                record = records.get((category.id, module.id))
                completed = len(record.completed_step_ids & set(module.step_ids)) if record else 0
                quiz = record.quiz_results.get(module.id) if record else None
                rows.append(
                    ModuleStatus(
                        category_id=category.id,
                        module_id=module.id,
                        name=module.name,
                        platform=module.platform,
                        completed_steps=completed,
                        total_steps=len(module.steps),
                        started=record is not None,
                        quiz_passed=quiz.passed if quiz else None,
                    )
                )
        return rows

    def export_progress(self, export_path: Path | str) -> TransferSummary:
        """Export every progress record to a JSON file."""
        records = self.progress.list_records()
        payload = {
            "format_version": EXPORT_FORMAT_VERSION,
            "exported_at": datetime.now(UTC).isoformat(),
            "source": {
                "app_version": __version__,
                "schema_version": SCHEMA_VERSION,
            },
            "records": [
                {
                    "category_id": record.category_id,
                    "module_id": record.module_id,
                    "completed_step_ids": sorted(record.completed_step_ids),
                    "current_step_index": record.current_step_index,
                    "started_at": record.started_at,
                    "updated_at": record.updated_at,
                    "quiz_results": {
                        quiz_id: {"passed": result.passed, "score": result.score}
                        for quiz_id, result in sorted(record.quiz_results.items())
                    },
                }
                for record in records
            ],
        }

        path = Path(export_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        return TransferSummary(
            records=len(records),
            quiz_results=sum(len(record.quiz_results) for record in records),
        )

    def import_progress(self, import_path: Path | str) -> TransferSummary:
        """Merge an export file into the progress database.

        Rows for modules missing from the catalog are skipped; step ids and
        indexes are reconciled against the catalog when a module is opened.
        """
        path = Path(import_path)
        raw_obj: object = json.loads(path.read_text(encoding="utf-8"))
        if not isinstance(raw_obj, dict):
            raise ValueError("Import file root must be a JSON object.")
        raw = cast(dict[str, object], raw_obj)

        format_version = _coerce_int(raw.get("format_version", 0))
        if format_version is None:
            raise ValueError("Import file has invalid format_version.")
        if format_version > EXPORT_FORMAT_VERSION:
            raise ValueError(
                f"Import file format version {format_version} is newer than supported {EXPORT_FORMAT_VERSION}."
            )

        rows = _normalize_records(raw.get("records"), datetime.now(UTC).isoformat())
        known = [row for row in rows if self.catalog.get_module(str(row["category_id"]), str(row["module_id"]))]
        if len(known) < len(rows):
            logger.warning("Skipping {} imported records for unknown modules", len(rows) - len(known))
        self.progress.restore_records(known)
        return TransferSummary(
            records=len(known),
            quiz_results=sum(len(cast(dict[str, QuizResult], row["quiz_results"])) for row in known),
        )

    def close(self) -> None:
        """Close resources."""
        self.close_simulator()
        self._unsubscribe()
        self.progress.close()

    def _on_module_completed(self, event: ModuleCompleted) -> None:
        self.completion_events.append(event)
        self.gate.record_completion(event.workflow_id)
        if not self.gate.check_limit():
            self.upgrade_required = True
        module = self.machine.module
        self.quiz_available = module is not None and bool(module.quiz)

    def _require_module(self) -> Module:
        module = self.machine.module
        if module is None:
            raise RuntimeError("No module selected.")
        return module


def _normalize_records(raw: object, now: str) -> list[dict[str, object]]:
    """Normalize raw progress records from an import payload."""
    if not isinstance(raw, list):
        return []
    rows: list[dict[str, object]] = []
    for item in cast(list[object], raw):
        if not isinstance(item, dict):
            continue
        row = cast(dict[str, object], item)
        category_id = row.get("category_id")
        module_id = row.get("module_id")
        if not isinstance(category_id, str) or not category_id.strip():
            continue
        if not isinstance(module_id, str) or not module_id.strip():
            continue

        step_ids_value = row.get("completed_step_ids")
        step_ids: list[str] = []
        if isinstance(step_ids_value, list):
            step_ids = sorted({str(value) for value in cast(list[object], step_ids_value) if isinstance(value, str)})
        index = _coerce_int(row.get("current_step_index", 0), default=0) or 0
        started_at = row.get("started_at")
        updated_at = row.get("updated_at")

        rows.append(
            {
                "category_id": category_id.strip(),
                "module_id": module_id.strip(),
                "completed_step_ids": step_ids,
                "current_step_index": max(0, index),
                "started_at": started_at if isinstance(started_at, str) and started_at else now,
                "updated_at": updated_at if isinstance(updated_at, str) and updated_at else now,
                "quiz_results": _normalize_quiz_results(row.get("quiz_results")),
            }
        )
    return rows


def _normalize_quiz_results(raw: object) -> dict[str, QuizResult]:
    if not isinstance(raw, dict):
        return {}
    results: dict[str, QuizResult] = {}
    for quiz_id, value in cast(dict[object, object], raw).items():
        if not isinstance(quiz_id, str) or not isinstance(value, dict):
            continue
        entry = cast(dict[str, object], value)
        score = _coerce_int(entry.get("score", 0), default=0) or 0
        passed = _coerce_int(entry.get("passed", 0), default=0) or 0
        results[quiz_id] = QuizResult(passed=bool(passed), score=max(0, score))
    return results


def _coerce_int(value: object, default: int | None = None) -> int | None:
    """Coerce value to int for import normalization."""
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    if isinstance(value, str):
        try:
            return int(value)
        except ValueError:
            return default
    return default
