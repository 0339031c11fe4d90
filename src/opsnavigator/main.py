"""CLI entrypoint for the guided infrastructure workflow navigator."""

from __future__ import annotations

import argparse
import sys
import time
from collections.abc import Callable
from pathlib import Path
from typing import TypeVar

from loguru import logger

from .config import Settings, get_settings
from .errors import PersistenceError
from .mentor import MentorClient, MentorConversation
from .models import LineKind, Module, TerminalLine
from .scheduler import SleepFn
from .service import NavigatorService
from .simulator import ConsoleSimulator, TerminalSimulator

InputFn = Callable[[str], str]
PrintFn = Callable[[str], None]
T = TypeVar("T")
BACK_COMMANDS = {":back", ":b"}
FLOW_EXIT_COMMANDS = {":quit", ":exit", ":q"}
MENU_QUIT_COMMANDS = {"q"}
MENU_BACK_COMMANDS = {"b"}

_LINE_PREFIX = {
    LineKind.INPUT: "",
    LineKind.OUTPUT: "",
    LineKind.ERROR: "! ",
    LineKind.SUCCESS: "✓ ",
}


class QuitApp(Exception):
    """Signal immediate app exit from nested menu flows."""


def _service(settings: Settings, db_path: Path | None = None) -> NavigatorService:
    """Create app service from settings."""
    return NavigatorService(
        db_path=db_path or settings.database_path,
        user_id=settings.user_id,
        free_workflow_limit=settings.free_workflow_limit,
    )


def _configure_logging(level: str) -> None:
    logger.remove()
    logger.add(sys.stderr, level=level.upper(), format="<level>{level}</level> {message}")


def run(argv: list[str] | None = None) -> int:
    """Run the CLI application."""
    parser = argparse.ArgumentParser(prog="opsnavigator", description="Guided infrastructure workflow practice")
    parser.add_argument("command", nargs="?", default="play", choices=["play", "status"])
    parser.add_argument("--db", type=Path, default=None, help="Progress database path")
    parser.add_argument("--log-level", default=None, help="Log level written to stderr")
    args = parser.parse_args(argv)

    settings = get_settings()
    _configure_logging(args.log_level or settings.log_level)
    if args.command == "status":
        service = _service(settings, args.db)
        try:
            _status_flow(service, print)
        finally:
            service.close()
        return 0
    sleep_fn: SleepFn | None = time.sleep if settings.realtime_playback else None
    return play_shell(settings=settings, db_path=args.db, sleep_fn=sleep_fn)


def play_shell(
    input_fn: InputFn = input,
    print_fn: PrintFn = print,
    *,
    settings: Settings | None = None,
    db_path: Path | None = None,
    sleep_fn: SleepFn | None = None,
) -> int:
    """Run persistent menu-driven shell."""
    settings = settings or get_settings()
    service = _service(settings, db_path)
    try:
        while True:
            print_fn("\n=== Ops Navigator ===")
            print_fn("1) Choose a workflow")
            print_fn("2) Status")
            print_fn("3) Plan")
            print_fn("4) Export progress")
            print_fn("5) Import progress")
            print_fn("q) Quit")
            choice = input_fn("Choose: ").strip().lower()

            if choice == "1":
                _choose_module_flow(service, settings, input_fn, print_fn, sleep_fn)
            elif choice == "2":
                _status_flow(service, print_fn)
            elif choice == "3":
                _plan_flow(service, input_fn, print_fn)
            elif choice == "4":
                _export_flow(service, input_fn, print_fn)
            elif choice == "5":
                _import_flow(service, input_fn, print_fn)
            elif choice in MENU_QUIT_COMMANDS:
                return 0
            else:
                print_fn("Invalid choice.")
    except QuitApp:
        return 0
    finally:
        service.close()


def _status_flow(service: NavigatorService, print_fn: PrintFn) -> None:
    """Print per-module progress status."""
    print_fn("\n=== Workflow Status ===")
    rows = service.status_rows()
    if not rows:
        print_fn("No workflows available.")
        return
    id_width = max(len("Module"), max(len(row.module_id) for row in rows))
    platform_width = max(len("Platform"), max(len(row.platform) for row in rows))
    stage_width = max(len("Stage"), max(len(row.stage) for row in rows))
    header = f"{'Module':<{id_width}} {'Platform':<{platform_width}} {'Stage':<{stage_width}} {'Steps':>7} Quiz"
    print_fn(header)
    print_fn("-" * len(header))
    for row in rows:
        steps = f"{row.completed_steps}/{row.total_steps}"
        quiz = "-" if row.quiz_passed is None else ("passed" if row.quiz_passed else "failed")
        print_fn(
            f"{row.module_id:<{id_width}} {row.platform:<{platform_width}} {row.stage:<{stage_width}} {steps:>7} {quiz}"
        )
    tracked = sum(1 for row in rows if row.started)
    completed = sum(1 for row in rows if row.stage == "completed")
    print_fn(f"\nStarted: {tracked}  Completed: {completed}  Total: {len(rows)}")


def _plan_flow(service: NavigatorService, input_fn: InputFn, print_fn: PrintFn) -> None:
    status = service.freemium_status()
    print_fn("\n=== Plan ===")
    if status.is_paid:
        print_fn("Plan: Pro (unlimited workflows)")
        return
    print_fn(f"Plan: Free ({status.remaining} of {status.limit} simulated workflows left)")
    answer = input_fn("Upgrade to Pro? [y/N]: ").strip().lower()
    if answer == "y":
        service.upgrade()
        print_fn("Upgraded. All simulators are unlocked.")


def _choose_module_flow(
    service: NavigatorService,
    settings: Settings,
    input_fn: InputFn,
    print_fn: PrintFn,
    sleep_fn: SleepFn | None,
) -> None:
    """Pick a category, then a module, and run it."""
    categories = list(service.catalog.categories.values())
    print_fn("\n=== Categories ===")
    for idx, category in enumerate(categories, start=1):
        print_fn(f"{idx}) {category.name}")
    print_fn("b) Back")
    print_fn("q) Quit")
    category = _pick(categories, input_fn("Choose category: "), print_fn)
    if category is None:
        return

    modules = service.catalog.modules_for_category(category.id)
    stages = {row.module_id: row for row in service.status_rows() if row.category_id == category.id}
    print_fn(f"\n=== {category.name} ===")
    for idx, module in enumerate(modules, start=1):
        row = stages[module.id]
        print_fn(f"{idx:>2}) {module.name} [{module.platform}] {row.completed_steps}/{row.total_steps}")
    print_fn("b) Back")
    print_fn("q) Quit")
    module = _pick(modules, input_fn("Choose module: "), print_fn)
    if module is None:
        return
    service.open_module(category.id, module.id)
    _module_flow(service, settings, input_fn, print_fn, sleep_fn)


def _pick(items: list[T], choice: str, print_fn: PrintFn) -> T | None:
    choice = choice.strip().lower()
    if choice in MENU_BACK_COMMANDS:
        return None
    if choice in MENU_QUIT_COMMANDS:
        raise QuitApp()
    if choice.isdigit() and 0 <= int(choice) - 1 < len(items):
        return items[int(choice) - 1]
    print_fn("Invalid choice.")
    return None


def _print_steps(service: NavigatorService, module: Module, print_fn: PrintFn) -> None:
    machine = service.machine
    print_fn(f"\n=== {module.name} ===")
    print_fn(module.description)
    for idx, step in enumerate(module.steps):
        mark = "x" if machine.is_step_completed(step.id) else " "
        cursor = ">" if idx == machine.current_index else " "
        print_fn(f"{cursor} [{mark}] {idx + 1}. {step.title}")
    step = machine.current_step
    if step is None:
        return
    print_fn(f"\nStep {machine.current_index + 1}: {step.title}")
    print_fn(step.description)
    if step.tip:
        print_fn(f"Tip: {step.tip}")
    if step.warning:
        print_fn(f"Warning: {step.warning}")


def _module_flow(
    service: NavigatorService,
    settings: Settings,
    input_fn: InputFn,
    print_fn: PrintFn,
    sleep_fn: SleepFn | None,
) -> None:
    """Show the steps of the open module and dispatch its actions."""
    module = service.module
    if module is None:
        return
    conversation: MentorConversation | None = None
    try:
        while True:
            _print_steps(service, module, print_fn)
            if service.machine.is_completed:
                print_fn("\nWorkflow complete.")
            if service.upgrade_required:
                print_fn("\nFree plan limit reached. Upgrade from the Plan menu to unlock the simulator.")
                print_fn("s) Open simulator (locked)")
            else:
                print_fn("\ns) Open simulator")
            print_fn("n) Next step")
            print_fn("p) Previous step")
            print_fn("g) Go to step")
            print_fn("m) Ask the mentor")
            if service.quiz_for_current():
                print_fn("z) Take the quiz")
            print_fn("b) Back")
            print_fn("q) Quit")
            choice = input_fn("Choose: ").strip().lower()

            if choice == "s":
                _simulator_flow(service, input_fn, print_fn, sleep_fn)
            elif choice == "n":
                service.go_to_step(service.machine.current_index + 1)
            elif choice == "p":
                service.go_to_step(service.machine.current_index - 1)
            elif choice == "g":
                target = input_fn("Step number: ").strip()
                if target.isdigit():
                    service.go_to_step(int(target) - 1)
                else:
                    print_fn("Invalid step number.")
            elif choice == "m":
                if not settings.mentor_url:
                    print_fn("Mentor is not configured. Set OPSNAV_MENTOR_URL to enable it.")
                    continue
                if conversation is None:
                    client = MentorClient(settings.mentor_url, settings.mentor_api_key, settings.mentor_timeout)
                    conversation = MentorConversation(client=client, module=module)
                _mentor_flow(service, conversation, input_fn, print_fn)
            elif choice == "z" and service.quiz_for_current():
                _quiz_flow(service, input_fn, print_fn)
            elif choice in MENU_BACK_COMMANDS:
                return
            elif choice in MENU_QUIT_COMMANDS:
                raise QuitApp()
            else:
                print_fn("Invalid choice.")
    finally:
        service.close_simulator()
        if conversation is not None:
            conversation.client.close()


def _simulator_flow(
    service: NavigatorService,
    input_fn: InputFn,
    print_fn: PrintFn,
    sleep_fn: SleepFn | None,
) -> None:
    """Run the simulator for the open module until the learner leaves it."""

    def show(line: TerminalLine) -> None:
        print_fn(f"{_LINE_PREFIX[line.kind]}{line.text}")

    simulator = service.open_simulator(on_line=show)
    if simulator is None:
        status = service.freemium_status()
        print_fn(f"\nFree plan limit reached ({status.limit} workflow). Upgrade from the Plan menu to continue.")
        return
    print_fn("Type :b to leave the simulator.")
    try:
        while not service.machine.is_completed:
            before = service.machine.completed_step_ids
            step = service.machine.current_step
            if isinstance(simulator, ConsoleSimulator):
                keep_going = _console_turn(simulator, input_fn, print_fn)
            else:
                expected = simulator.expected_command()
                if expected:
                    print_fn(f"Expected command: {expected}")
                keep_going = _terminal_turn(service, simulator, input_fn, sleep_fn)
            if not keep_going:
                return
            if step is not None and service.machine.completed_step_ids != before:
                print_fn(f"Step completed: {step.title}")
        print_fn("\nWorkflow complete.")
        if service.upgrade_required:
            print_fn("You have used your free workflow. Upgrade from the Plan menu to keep practising.")
    finally:
        service.close_simulator()


def _terminal_turn(
    service: NavigatorService,
    simulator: TerminalSimulator,
    input_fn: InputFn,
    sleep_fn: SleepFn | None,
) -> bool:
    command = input_fn(f"{simulator.prompt} ").strip()
    lowered = command.lower()
    if lowered in BACK_COMMANDS:
        return False
    if lowered in FLOW_EXIT_COMMANDS:
        raise QuitApp()
    simulator.execute(command)
    service.scheduler.run_until_idle(sleep=sleep_fn)
    return True


def _console_turn(simulator: ConsoleSimulator, input_fn: InputFn, print_fn: PrintFn) -> bool:
    affordances = simulator.affordances()
    print_fn(f"\n[{simulator.host}]")
    estimate = simulator.cost_estimate()
    if estimate is not None:
        print_fn(f"Estimated cost: {estimate.cost} ({estimate.note})")
    for idx, affordance in enumerate(affordances, start=1):
        marker = "*" if affordance.highlighted else ("+" if affordance.id in simulator.selected else " ")
        print_fn(f"{marker} {idx}) {affordance.label} ({affordance.kind})")
    print_fn(f"Open the real console: {simulator.deep_link()}")
    choice = input_fn("Select: ").strip().lower()
    if choice in BACK_COMMANDS:
        return False
    if choice in FLOW_EXIT_COMMANDS:
        raise QuitApp()
    if choice.isdigit() and 0 <= int(choice) - 1 < len(affordances):
        simulator.select(affordances[int(choice) - 1].id)
    else:
        print_fn("Invalid choice.")
    return True


def _mentor_flow(
    service: NavigatorService,
    conversation: MentorConversation,
    input_fn: InputFn,
    print_fn: PrintFn,
) -> None:
    step = service.machine.current_step
    if step is not None:
        conversation.note_step(step, service.machine.current_index)
    print_fn(f"\nMentor: {conversation.messages[-1].content}")
    print_fn("Type :b to leave the mentor.")
    while True:
        question = input_fn("You: ").strip()
        if question.lower() in BACK_COMMANDS:
            return
        if question.lower() in FLOW_EXIT_COMMANDS:
            raise QuitApp()
        reply = conversation.ask(question, service.mentor_context())
        if reply is not None:
            print_fn(f"Mentor: {reply.content}")


def _quiz_flow(service: NavigatorService, input_fn: InputFn, print_fn: PrintFn) -> None:
    questions = service.quiz_for_current()
    answers: list[int] = []
    print_fn("\n=== Quiz ===")
    for number, question in enumerate(questions, start=1):
        print_fn(f"\nQ{number}. {question.question}")
        for idx, option in enumerate(question.options, start=1):
            print_fn(f"  {idx}) {option}")
        while True:
            choice = input_fn("Answer: ").strip().lower()
            if choice in BACK_COMMANDS:
                return
            if choice.isdigit() and 0 <= int(choice) - 1 < len(question.options):
                answers.append(int(choice) - 1)
                break
            print_fn("Invalid answer.")
        if answers[-1] != question.correct_index and question.explanation:
            print_fn(f"Not quite. {question.explanation}")
    outcome = service.submit_quiz(answers)
    verdict = "Passed" if outcome.passed else "Not passed"
    print_fn(f"\n{verdict}: {outcome.score}/{outcome.total}")


def _export_flow(service: NavigatorService, input_fn: InputFn, print_fn: PrintFn) -> None:
    """Export progress to a JSON file."""
    print_fn("\n=== Export Progress ===")
    path_text = input_fn("Export file path: ").strip()
    if not path_text:
        print_fn("File path is required.")
        return
    try:
        summary = service.export_progress(path_text)
    except (OSError, PersistenceError) as exc:
        print_fn(f"Export failed: {exc}")
        return
    print_fn(f"Exported progress to {path_text}")
    print_fn(f"- records: {summary.records}")
    print_fn(f"- quiz results: {summary.quiz_results}")


def _import_flow(service: NavigatorService, input_fn: InputFn, print_fn: PrintFn) -> None:
    """Merge progress from a JSON export file."""
    print_fn("\n=== Import Progress ===")
    path_text = input_fn("Import file path: ").strip()
    if not path_text:
        print_fn("File path is required.")
        return
    try:
        summary = service.import_progress(path_text)
    except (OSError, ValueError, PersistenceError) as exc:
        print_fn(f"Import failed: {exc}")
        return
    print_fn("Imported progress.")
    print_fn(f"- records: {summary.records}")
    print_fn(f"- quiz results: {summary.quiz_results}")


def main_entry() -> None:
    """Console script entrypoint."""
    raise SystemExit(run())


if __name__ == "__main__":  # pragma: no cover
    main_entry()
