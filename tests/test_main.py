import json
from pathlib import Path
from typing import Any

import opsnavigator.main as main
from opsnavigator.catalog import WorkflowCatalog
from opsnavigator.config import Settings
from opsnavigator.service import NavigatorService


class ClosingService(NavigatorService):
    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.closed = False

    def close(self) -> None:
        super().close()
        self.closed = True


def _settings(**overrides: Any) -> Settings:
    values: dict[str, Any] = {"mentor_url": "", "realtime_playback": False}
    values.update(overrides)
    return Settings(**values)


def _install(monkeypatch: Any, catalog: WorkflowCatalog) -> ClosingService:
    service = ClosingService(":memory:", user_id="learner", catalog=catalog)
    monkeypatch.setattr(main, "_service", lambda settings, db_path=None: service)
    return service


def _play(inputs: list[str]) -> tuple[int, list[str]]:
    feed = iter(inputs)
    outputs: list[str] = []
    code = main.play_shell(input_fn=lambda _: next(feed), print_fn=outputs.append, settings=_settings())
    return code, outputs


def test_run_enters_play_shell(monkeypatch: Any) -> None:
    monkeypatch.setattr(main, "_configure_logging", lambda level: None)
    monkeypatch.setattr(main, "play_shell", lambda **kwargs: 0)
    assert main.run([]) == 0


def test_run_status_prints_table(monkeypatch: Any, capsys: Any, two_step_catalog: WorkflowCatalog) -> None:
    monkeypatch.setattr(main, "_configure_logging", lambda level: None)
    service = _install(monkeypatch, two_step_catalog)
    assert main.run(["status"]) == 0
    out = capsys.readouterr().out
    assert "=== Workflow Status ===" in out
    assert "two-step" in out
    assert service.closed is True


def test_play_shell_quit(monkeypatch: Any, two_step_catalog: WorkflowCatalog) -> None:
    service = _install(monkeypatch, two_step_catalog)
    code, outputs = _play(["9", "q"])
    assert code == 0
    assert "=== Ops Navigator ===" in outputs
    assert "Invalid choice." in outputs
    assert service.closed is True


def test_play_shell_calls_menu_handlers(monkeypatch: Any, two_step_catalog: WorkflowCatalog) -> None:
    _install(monkeypatch, two_step_catalog)
    called: dict[str, int] = {}
    for name in ("_choose_module_flow", "_status_flow", "_plan_flow", "_export_flow", "_import_flow"):
        monkeypatch.setattr(main, name, lambda *args, _name=name, **kwargs: called.__setitem__(_name, 1))
    code, _ = _play(["1", "2", "3", "4", "5", "q"])
    assert code == 0
    assert set(called) == {"_choose_module_flow", "_status_flow", "_plan_flow", "_export_flow", "_import_flow"}


def test_terminal_workflow_quiz_and_gate(monkeypatch: Any, two_step_catalog: WorkflowCatalog) -> None:
    service = _install(monkeypatch, two_step_catalog)
    code, outputs = _play(
        [
            "1",  # choose a workflow
            "1",  # category
            "1",  # module
            "s",
            "docker --version",
            "docker images",
            "z",
            "2",
            "1",
            "s",
            "b",
            "q",
        ]
    )
    assert code == 0
    assert "Step completed: Verify" in outputs
    assert "Step completed: Images" in outputs
    assert "You have used your free workflow. Upgrade from the Plan menu to keep practising." in outputs
    assert "Expected command: docker --version" in outputs
    assert "Expected command: docker images" in outputs
    assert "\nPassed: 2/2" in outputs
    assert "s) Open simulator (locked)" in outputs
    assert any(line.startswith("\nFree plan limit reached") for line in outputs)
    assert service.closed is True


def test_simulator_back_and_quit_commands(monkeypatch: Any, two_step_catalog: WorkflowCatalog) -> None:
    _install(monkeypatch, two_step_catalog)
    code, outputs = _play(["1", "1", "1", "s", ":b", "s", ":q"])
    assert code == 0
    assert outputs.count("Type :b to leave the simulator.") == 2


def test_console_workflow_turn(monkeypatch: Any, catalog: WorkflowCatalog) -> None:
    service = _install(monkeypatch, catalog)
    service.open_module("aws", "ec2-management")
    outputs: list[str] = []
    feed = iter(["s", "1", "2", ":b", "b"])
    main._module_flow(service, _settings(), lambda _: next(feed), outputs.append, None)

    assert "\n[console.aws.amazon.com]" in outputs
    assert "Open the real console: https://console.aws.amazon.com/ec2/home#Instances:" in outputs
    assert "Step completed: Open AWS Console" in outputs
    assert service.machine.current_index == 1


def test_module_navigation_and_mentor_disabled(monkeypatch: Any, two_step_catalog: WorkflowCatalog) -> None:
    service = _install(monkeypatch, two_step_catalog)
    service.open_module("tiny", "two-step")
    outputs: list[str] = []
    feed = iter(["n", "p", "g", "x", "g", "2", "m", "b"])
    main._module_flow(service, _settings(), lambda _: next(feed), outputs.append, None)

    assert "Invalid step number." in outputs
    assert "Mentor is not configured. Set OPSNAV_MENTOR_URL to enable it." in outputs
    assert service.machine.current_index == 1


def test_plan_flow_upgrade(monkeypatch: Any, two_step_catalog: WorkflowCatalog) -> None:
    service = _install(monkeypatch, two_step_catalog)
    code, outputs = _play(["3", "y", "3", "q"])
    assert code == 0
    assert "Plan: Free (1 of 1 simulated workflows left)" in outputs
    assert "Upgraded. All simulators are unlocked." in outputs
    assert "Plan: Pro (unlimited workflows)" in outputs
    assert service.freemium_status().is_paid is True


def test_export_then_import_flow(monkeypatch: Any, two_step_catalog: WorkflowCatalog, tmp_path: Path) -> None:
    service = _install(monkeypatch, two_step_catalog)
    service.open_module("tiny", "two-step")
    service.complete_action("verify-install")
    export_path = tmp_path / "out" / "progress.json"

    code, outputs = _play(["4", str(export_path), "5", str(export_path), "4", "", "q"])
    assert code == 0
    assert f"Exported progress to {export_path}" in outputs
    assert "Imported progress." in outputs
    assert "File path is required." in outputs
    assert json.loads(export_path.read_text(encoding="utf-8"))["records"][0]["module_id"] == "two-step"


def test_import_flow_reports_failures(monkeypatch: Any, two_step_catalog: WorkflowCatalog, tmp_path: Path) -> None:
    _install(monkeypatch, two_step_catalog)
    bad = tmp_path / "out" / "bad.json"
    bad.parent.mkdir()
    bad.write_text(json.dumps({"format_version": 99, "records": []}), encoding="utf-8")

    code, outputs = _play(["5", str(tmp_path / "missing.json"), "5", str(bad), "q"])
    assert code == 0
    failures = [line for line in outputs if line.startswith("Import failed:")]
    assert len(failures) == 2
    assert "newer than supported" in failures[1]


def test_choose_module_back_and_quit(monkeypatch: Any, two_step_catalog: WorkflowCatalog) -> None:
    _install(monkeypatch, two_step_catalog)
    code, outputs = _play(["1", "b", "1", "1", "b", "1", "q"])
    assert code == 0
    assert outputs.count("\n=== Categories ===") == 3


def test_module_over_limit_shows_locked_simulator(monkeypatch: Any, two_step_catalog: WorkflowCatalog) -> None:
    service = _install(monkeypatch, two_step_catalog)
    service.gate.record_completion("tiny/other")
    service.open_module("tiny", "two-step")
    outputs: list[str] = []
    feed = iter(["s", "b"])
    main._module_flow(service, _settings(), lambda _: next(feed), outputs.append, None)

    assert "\nFree plan limit reached. Upgrade from the Plan menu to unlock the simulator." in outputs
    assert "s) Open simulator (locked)" in outputs
    assert "\ns) Open simulator" not in outputs
    assert "Type :b to leave the simulator." not in outputs
