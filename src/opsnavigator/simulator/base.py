"""Shared machinery for scripted platform terminals."""

from __future__ import annotations

from collections import deque
from collections.abc import Callable, Sequence
from dataclasses import dataclass

from loguru import logger

from ..commands import commands_match
from ..errors import SimulatorClosedError
from ..models import LineKind, Module, Step, TerminalLine
from ..scheduler import TickScheduler, TimerHandle

StepProvider = Callable[[], Step | None]
ActionCallback = Callable[[str], object]
LineCallback = Callable[[TerminalLine], None]
LineBuilder = Callable[[str], list[TerminalLine]]
StateMutator = Callable[[str], None]

COMPLETION_DELAY_MS = 500


@dataclass(frozen=True)
class Rule:
    """Command pattern with its transcript and optional state change.

    A rule matches when every pattern is a substring of the command.
    """

    patterns: tuple[str, ...]
    build: LineBuilder
    mutate: StateMutator | None = None

    def matches(self, command: str) -> bool:
        return all(pattern in command for pattern in self.patterns)


def out(text: str, delay_ms: int = 100) -> TerminalLine:
    return TerminalLine(LineKind.OUTPUT, text, delay_ms)


def err(text: str, delay_ms: int = 100) -> TerminalLine:
    return TerminalLine(LineKind.ERROR, text, delay_ms)


def ok(text: str, delay_ms: int = 100) -> TerminalLine:
    return TerminalLine(LineKind.SUCCESS, text, delay_ms)


class TerminalSimulator:
    """Turns free-text commands into timed transcript lines.

    Subclasses declare `build_rules` (first match wins, so specific rules come
    before general ones), `expected_commands` (step action to the literal
    command that completes it) and any simulated state their rules touch.
    """

    platform = ""
    prompt = "$"
    banner: tuple[str, ...] = ()
    expected_commands: dict[str, str] = {}
    default_command = ""

    def __init__(
        self,
        scheduler: TickScheduler,
        *,
        module: Module | None = None,
        current_step: StepProvider | None = None,
        on_action: ActionCallback | None = None,
        on_line: LineCallback | None = None,
    ) -> None:
        self._scheduler = scheduler
        self._module = module
        self._current_step = current_step or (lambda: None)
        self._on_action = on_action
        self._on_line = on_line
        self._queue: deque[TerminalLine] = deque()
        self._emit_handle: TimerHandle | None = None
        self._timers: set[TimerHandle] = set()
        self._pending_command: str | None = None
        self.lines: list[TerminalLine] = []
        self.running = False
        self.closed = False
        self.rules: Sequence[Rule] = self.build_rules()
        for text in self.banner:
            self._append(TerminalLine(LineKind.OUTPUT, text, 0))

    def build_rules(self) -> list[Rule]:
        raise NotImplementedError

    @property
    def transcript(self) -> list[str]:
        return [line.text for line in self.lines]

    def match(self, command: str) -> Rule | None:
        for rule in self.rules:
            if rule.matches(command):
                return rule
        return None

    def not_found(self, command: str) -> list[TerminalLine]:
        return [err(f"Command not found: {command}")]

    def expected_command(self, step: Step | None = None) -> str:
        """Return the literal command that completes `step` (the current step by default)."""
        step = step if step is not None else self._current_step()
        if step is None:
            return ""
        return self.expected_commands.get(step.action, self.default_command)

    def is_expected(self, command: str, step: Step) -> bool:
        expected = self.expected_command(step)
        return bool(expected) and commands_match(command, expected)

    def execute(self, raw_command: str) -> bool:
        """Start streaming the transcript for one command.

        Returns False without doing anything for blank input or while a
        previous command is still streaming.
        """
        if self.closed:
            raise SimulatorClosedError(f"{self.platform} simulator is closed.")
        command = raw_command.strip()
        if not command or self.running:
            return False

        self._append(TerminalLine(LineKind.INPUT, f"{self.prompt} {command}", 0))
        rule = self.match(command)
        if rule is None:
            logger.debug("No {} rule for {!r}", self.platform, command)
            lines = self.not_found(command)
        else:
            lines = rule.build(command)
            if rule.mutate is not None:
                rule.mutate(command)

        self.running = True
        self._pending_command = command
        self._queue = deque(lines)
        self._emit_next()
        return True

    def schedule(self, delay_ms: int, callback: Callable[[], None]) -> TimerHandle:
        """Run a background state change after `delay_ms`; cancelled on close."""
        handle: TimerHandle

        def fire() -> None:
            self._timers.discard(handle)
            callback()

        handle = self._scheduler.call_later(delay_ms, fire)
        self._timers.add(handle)
        return handle

    def close(self) -> None:
        """Cancel every pending timer and discard unfinished output."""
        if self._emit_handle is not None:
            self._emit_handle.cancel()
            self._emit_handle = None
        for handle in list(self._timers):
            handle.cancel()
        self._timers.clear()
        self._queue.clear()
        self._pending_command = None
        self.running = False
        self.closed = True

    def _append(self, line: TerminalLine) -> None:
        self.lines.append(line)
        if self._on_line is not None:
            self._on_line(line)

    def _emit_next(self) -> None:
        if not self._queue:
            self._finish()
            return
        self._emit_handle = self._scheduler.call_later(self._queue[0].delay_ms, self._emit_line)

    def _emit_line(self) -> None:
        self._emit_handle = None
        self._append(self._queue.popleft())
        self._emit_next()

    def _finish(self) -> None:
        command = self._pending_command
        self.running = False
        self._pending_command = None
        step = self._current_step()
        if command is None or step is None or self._on_action is None:
            return
        if not self.is_expected(command, step):
            return
        action = step.action
        on_action = self._on_action
        self.schedule(COMPLETION_DELAY_MS, lambda: on_action(action))
