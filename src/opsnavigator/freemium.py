"""Free-tier limit on completed workflows."""

from __future__ import annotations

from dataclasses import dataclass

from loguru import logger

from .errors import PersistenceError
from .progress import ProgressStore


@dataclass(frozen=True)
class FreemiumStatus:
    """Snapshot of the learner's plan; `remaining` and `limit` are None when unlimited."""

    remaining: int | None
    limit: int | None
    is_paid: bool
    has_completed_workflow: bool


class FreemiumGate:
    """Answers whether the simulator may be used, backed by the progress database."""

    def __init__(self, store: ProgressStore, user_id: str, free_limit: int = 1) -> None:
        self._store = store
        self.user_id = user_id
        self.free_limit = free_limit

    def status(self) -> FreemiumStatus:
        completed = self._store.completed_workflow_ids(self.user_id)
        if self._store.is_paid(self.user_id):
            return FreemiumStatus(remaining=None, limit=None, is_paid=True, has_completed_workflow=bool(completed))
        return FreemiumStatus(
            remaining=max(0, self.free_limit - len(completed)),
            limit=self.free_limit,
            is_paid=False,
            has_completed_workflow=bool(completed),
        )

    def check_limit(self) -> bool:
        """Return True while the learner may start or continue simulated workflows."""
        try:
            status = self.status()
        except PersistenceError:
            logger.exception("Could not read plan for {}; allowing access", self.user_id)
            return True
        return status.is_paid or (status.remaining or 0) > 0

    def record_completion(self, workflow_id: str) -> bool:
        """Record a finished workflow; repeated calls for the same id have no effect."""
        try:
            recorded = self._store.record_workflow_completion(self.user_id, workflow_id)
        except PersistenceError:
            logger.exception("Could not record completion of {} for {}", workflow_id, self.user_id)
            return False
        if recorded:
            logger.info("Recorded completion of {} for {}", workflow_id, self.user_id)
        return recorded

    def set_paid(self, is_paid: bool) -> None:
        self._store.set_paid(self.user_id, is_paid)
