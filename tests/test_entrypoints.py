from typing import Any

import pytest

import opsnavigator.__main__ as module_main
import opsnavigator.main as main


def test_module_entrypoint_forwards_arguments(monkeypatch: Any) -> None:
    seen: list[list[str] | None] = []
    monkeypatch.setattr(module_main, "run", lambda argv: seen.append(argv) or 3)
    assert module_main.main(["status"]) == 3
    assert seen == [["status"]]


def test_console_script_exits_with_run_code(monkeypatch: Any) -> None:
    monkeypatch.setattr(main, "run", lambda argv=None: 2)
    with pytest.raises(SystemExit) as exc_info:
        main.main_entry()
    assert exc_info.value.code == 2
