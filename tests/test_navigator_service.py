import json
from pathlib import Path

import pytest

from opsnavigator.catalog import WorkflowCatalog
from opsnavigator.service import EXPORT_FORMAT_VERSION, NavigatorService
from opsnavigator.simulator import ConsoleSimulator, DockerSimulator
from opsnavigator.workflow import ModuleCompleted


def _service(catalog: WorkflowCatalog, db_path: Path | str = ":memory:") -> NavigatorService:
    return NavigatorService(db_path, user_id="learner", catalog=catalog)


def _type(service: NavigatorService, command: str) -> None:
    simulator = service.simulator
    assert isinstance(simulator, DockerSimulator)
    assert simulator.execute(command) is True
    service.scheduler.run_until_idle()


def _finish_two_step(service: NavigatorService) -> None:
    service.open_module("tiny", "two-step")
    assert service.open_simulator() is not None
    _type(service, "docker --version")
    _type(service, "docker images")


def test_typed_commands_advance_the_workflow(two_step_catalog: WorkflowCatalog) -> None:
    service = _service(two_step_catalog)
    service.open_module("tiny", "two-step")
    simulator = service.open_simulator()
    assert isinstance(simulator, DockerSimulator)

    _type(service, "docker ps")
    assert service.machine.current_index == 0

    _type(service, "docker --version")
    assert service.machine.current_index == 1
    assert service.machine.completed_step_ids == frozenset({"verify"})
    service.close()


def test_completion_gates_free_learner(two_step_catalog: WorkflowCatalog) -> None:
    service = _service(two_step_catalog)
    _finish_two_step(service)

    assert service.machine.is_completed
    assert service.completion_events == [ModuleCompleted(category_id="tiny", module_id="two-step")]
    assert service.upgrade_required is True
    assert service.freemium_status().remaining == 0

    assert service.open_simulator() is None
    service.upgrade()
    assert service.upgrade_required is False
    assert service.open_simulator() is not None
    service.close()


def test_reopening_completed_module_records_nothing_new(two_step_catalog: WorkflowCatalog, tmp_path: Path) -> None:
    db_path = tmp_path / "progress.db"
    first = _service(two_step_catalog, db_path)
    _finish_two_step(first)
    first.close()

    second = _service(two_step_catalog, db_path)
    second.open_module("tiny", "two-step")
    assert second.machine.is_completed
    assert second.completion_events == []
    assert second.can_open_simulator() is False
    second.close()


def test_mounting_a_module_over_the_limit_marks_upgrade_required(
    two_step_catalog: WorkflowCatalog, tmp_path: Path
) -> None:
    db_path = tmp_path / "progress.db"
    first = _service(two_step_catalog, db_path)
    _finish_two_step(first)
    first.close()

    second = _service(two_step_catalog, db_path)
    assert second.upgrade_required is False
    second.open_module("tiny", "two-step")
    assert second.upgrade_required is True
    assert second.open_simulator() is None

    second.upgrade()
    second.open_module("tiny", "two-step")
    assert second.upgrade_required is False
    second.close()


def test_quiz_only_after_completion(two_step_catalog: WorkflowCatalog) -> None:
    service = _service(two_step_catalog)
    service.open_module("tiny", "two-step")
    assert service.quiz_for_current() == []

    _finish_two_step(service)
    assert [question.id for question in service.quiz_for_current()] == ["q1", "q2"]

    failed = service.submit_quiz([0, 0])
    assert (failed.score, failed.total, failed.passed) == (1, 2, False)
    passed = service.submit_quiz([1, 0])
    assert (passed.score, passed.passed) == (2, True)

    row = service.status_rows()[0]
    assert row.quiz_passed is True
    assert row.stage == "completed"

    with pytest.raises(ValueError):
        service.submit_quiz([1])
    service.close()


def test_status_rows_cover_every_module(catalog: WorkflowCatalog) -> None:
    service = _service(catalog)
    service.open_module("aws", "ec2-management")
    simulator = service.open_simulator()
    assert isinstance(simulator, ConsoleSimulator)
    assert simulator.select("ec2") is True

    rows = service.status_rows()
    assert len(rows) == len(catalog.modules)
    assert [row.module_id for row in rows[:2]] == ["ec2-management", "lambda-functions"]
    ec2 = rows[0]
    assert (ec2.completed_steps, ec2.total_steps, ec2.stage) == (1, 10, "started")
    assert rows[1].stage == "new"
    service.close()


def test_opening_another_module_closes_the_simulator(catalog: WorkflowCatalog) -> None:
    service = _service(catalog)
    service.open_module("containers", "docker-engine")
    simulator = service.open_simulator()
    assert simulator is not None

    service.open_module("git", "git-init")
    assert service.simulator is None
    assert simulator.closed is True
    service.close()


def test_mentor_context_tracks_progress(two_step_catalog: WorkflowCatalog) -> None:
    service = _service(two_step_catalog)
    service.open_module("tiny", "two-step")
    service.complete_action("verify-install")

    context = service.mentor_context()
    assert context["platform"] == "docker"
    assert context["module"] == "Two Step"
    assert context["currentStep"]["title"] == "Images"
    assert context["stepIndex"] == 1
    assert context["totalSteps"] == 2
    assert context["completedSteps"] == ["verify"]
    service.close()


def test_export_import_round_trip(two_step_catalog: WorkflowCatalog, tmp_path: Path) -> None:
    source = _service(two_step_catalog)
    _finish_two_step(source)
    source.submit_quiz([1, 1])
    export_path = tmp_path / "out" / "progress.json"
    summary = source.export_progress(export_path)
    source.close()
    assert (summary.records, summary.quiz_results) == (1, 1)

    payload = json.loads(export_path.read_text(encoding="utf-8"))
    assert payload["format_version"] == EXPORT_FORMAT_VERSION
    assert payload["records"][0]["completed_step_ids"] == ["images", "verify"]
    assert payload["records"][0]["quiz_results"] == {"two-step": {"passed": False, "score": 1}}

    target = _service(two_step_catalog)
    imported = target.import_progress(export_path)
    assert (imported.records, imported.quiz_results) == (1, 1)
    target.open_module("tiny", "two-step")
    assert target.machine.is_completed
    assert target.status_rows()[0].quiz_passed is False
    target.close()


def test_import_skips_unknown_modules_and_bad_rows(two_step_catalog: WorkflowCatalog, tmp_path: Path) -> None:
    path = tmp_path / "out" / "import.json"
    path.parent.mkdir()
    path.write_text(
        json.dumps(
            {
                "format_version": 1,
                "records": [
                    {"category_id": "tiny", "module_id": "retired", "completed_step_ids": ["a"]},
                    {"category_id": "", "module_id": "two-step"},
                    "not a record",
                    {"category_id": "tiny", "module_id": "two-step", "completed_step_ids": ["verify", 7]},
                ],
            }
        ),
        encoding="utf-8",
    )
    service = _service(two_step_catalog)
    assert service.import_progress(path).records == 1
    service.open_module("tiny", "two-step")
    assert service.machine.completed_step_ids == frozenset({"verify"})
    service.close()


def test_import_rejects_newer_format(two_step_catalog: WorkflowCatalog, tmp_path: Path) -> None:
    path = tmp_path / "out" / "future.json"
    path.parent.mkdir()
    path.write_text(json.dumps({"format_version": EXPORT_FORMAT_VERSION + 1, "records": []}), encoding="utf-8")
    service = _service(two_step_catalog)
    try:
        service.import_progress(path)
    except ValueError as exc:
        assert "newer than supported" in str(exc)
    else:
        raise AssertionError("Expected ValueError for newer format version")

    path.write_text("[]", encoding="utf-8")
    with pytest.raises(ValueError):
        service.import_progress(path)
    service.close()


def test_operations_need_an_open_module(two_step_catalog: WorkflowCatalog) -> None:
    service = _service(two_step_catalog)
    with pytest.raises(RuntimeError):
        service.open_simulator()
    with pytest.raises(RuntimeError):
        service.mentor_context()
    service.close()
