"""Step state machine for one selected module."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from loguru import logger

from .catalog import WorkflowCatalog
from .errors import PersistenceError
from .models import Module, ProgressRecord, Step
from .progress import ProgressStore


class WorkflowState(str, Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


@dataclass(frozen=True)
class ModuleCompleted:
    """Raised once when the last outstanding step of a module is completed."""

    category_id: str
    module_id: str

    @property
    def workflow_id(self) -> str:
        return self.module_id


CompletionListener = Callable[[ModuleCompleted], None]


class StepStateMachine:
    """Tracks the cursor and completed steps of the selected module.

    Every change is written through to the progress store. Storage failures
    are logged and never interrupt the learner.
    """

    def __init__(self, catalog: WorkflowCatalog, store: ProgressStore) -> None:
        self._catalog = catalog
        self._store = store
        self._listeners: list[CompletionListener] = []
        self._category_id: str | None = None
        self._module: Module | None = None
        self._completed: set[str] = set()
        self._index = 0
        self._last_completed_count = 0

    def subscribe(self, listener: CompletionListener) -> Callable[[], None]:
        """Register a completion listener; returns a callable that removes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def select_module(self, category_id: str, module_id: str) -> Module:
        """Load a module and restore its saved progress."""
        module = self._catalog.get_module(category_id, module_id)
        if module is None:
            raise KeyError(f"Unknown module '{module_id}' in category '{category_id}'.")

        self._category_id = category_id
        self._module = module
        record = self._load_record(category_id, module_id)
        if record is None:
            self._completed = set()
            self._index = 0
            self._persist()
        else:
            known = set(module.step_ids)
            dropped = record.completed_step_ids - known
            if dropped:
                logger.debug("Ignoring unknown completed steps {} for {}", sorted(dropped), module_id)
            self._completed = set(record.completed_step_ids & known)
            self._index = _clamp(record.current_step_index, len(module.steps))
        self._last_completed_count = len(self._completed)
        logger.debug("Selected {}/{} at step {}", category_id, module_id, self._index)
        return module

    @property
    def module(self) -> Module | None:
        return self._module

    @property
    def category_id(self) -> str | None:
        return self._category_id

    @property
    def current_index(self) -> int:
        return self._index

    @property
    def current_step(self) -> Step | None:
        if self._module is None:
            return None
        return self._module.steps[self._index]

    @property
    def completed_step_ids(self) -> frozenset[str]:
        return frozenset(self._completed)

    @property
    def is_completed(self) -> bool:
        return self._module is not None and len(self._completed) == len(self._module.steps)

    @property
    def state(self) -> WorkflowState:
        if self.is_completed:
            return WorkflowState.COMPLETED
        if not self._completed and self._index == 0:
            return WorkflowState.NOT_STARTED
        return WorkflowState.IN_PROGRESS

    def is_step_completed(self, step_id: str) -> bool:
        return step_id in self._completed

    def complete_action(self, action: str) -> bool:
        """Complete the current step when `action` matches it.

        A mismatch changes nothing and is not an error. Progress is persisted
        either way. Returns whether the action matched.
        """
        module = self._require_module()
        step = module.steps[self._index]
        matched = step.action == action
        if matched:
            self._completed.add(step.id)
            if self._index < len(module.steps) - 1:
                self._index += 1
            logger.debug("Completed step {} of {}", step.id, module.id)
        else:
            logger.debug("Action {!r} does not match step {} ({!r})", action, step.id, step.action)
        self._persist()
        self._check_completion()
        return matched

    def go_to_step(self, index: int) -> int:
        """Move the cursor, clamped into the module's step range."""
        module = self._require_module()
        self._index = _clamp(index, len(module.steps))
        self._persist()
        return self._index

    def refresh(self) -> None:
        """Re-evaluate completion without re-firing an already observed edge."""
        self._require_module()
        self._check_completion()

    def _check_completion(self) -> None:
        module = self._require_module()
        previous = self._last_completed_count
        count = len(self._completed)
        self._last_completed_count = count
        total = len(module.steps)
        if previous < total and count == total:
            event = ModuleCompleted(category_id=self._category_id or "", module_id=module.id)
            logger.info("Module {} completed", module.id)
            for listener in list(self._listeners):
                listener(event)

    def _load_record(self, category_id: str, module_id: str) -> ProgressRecord | None:
        try:
            return self._store.get(category_id, module_id)
        except PersistenceError:
            logger.exception("Could not load progress for {}/{}", category_id, module_id)
            return None

    def _persist(self) -> None:
        module = self._require_module()
        try:
            self._store.save(self._category_id or "", module.id, self._completed, self._index)
        except PersistenceError:
            logger.exception("Could not save progress for {}", module.id)

    def _require_module(self) -> Module:
        if self._module is None:
            raise RuntimeError("No module selected.")
        return self._module


def _clamp(index: int, size: int) -> int:
    return max(0, min(int(index), size - 1))
