from opsnavigator.errors import PersistenceError
from opsnavigator.freemium import FreemiumGate, FreemiumStatus
from opsnavigator.progress import ProgressStore


def test_free_learner_is_gated_after_one_workflow() -> None:
    gate = FreemiumGate(ProgressStore(":memory:"), "learner")
    assert gate.check_limit() is True
    assert gate.status() == FreemiumStatus(remaining=1, limit=1, is_paid=False, has_completed_workflow=False)

    assert gate.record_completion("docker-engine") is True
    assert gate.check_limit() is False
    assert gate.status() == FreemiumStatus(remaining=0, limit=1, is_paid=False, has_completed_workflow=True)


def test_recording_the_same_workflow_twice_counts_once() -> None:
    gate = FreemiumGate(ProgressStore(":memory:"), "learner", free_limit=2)
    assert gate.record_completion("git-init") is True
    assert gate.record_completion("git-init") is False
    assert gate.status().remaining == 1
    assert gate.check_limit() is True


def test_paid_learner_is_unlimited() -> None:
    store = ProgressStore(":memory:")
    gate = FreemiumGate(store, "learner")
    for workflow_id in ("git-init", "git-tags", "helm"):
        gate.record_completion(workflow_id)
    assert gate.check_limit() is False

    gate.set_paid(True)
    status = gate.status()
    assert status.is_paid is True
    assert status.remaining is None
    assert status.limit is None
    assert gate.check_limit() is True


def test_completions_are_per_user() -> None:
    store = ProgressStore(":memory:")
    FreemiumGate(store, "alice").record_completion("helm")
    assert FreemiumGate(store, "bob").check_limit() is True
    assert FreemiumGate(store, "alice").check_limit() is False


class _UnreadableStore(ProgressStore):
    def completed_workflow_ids(self, user_id: str) -> set[str]:
        raise PersistenceError("database is locked")

    def record_workflow_completion(self, user_id: str, workflow_id: str) -> bool:
        raise PersistenceError("database is locked")


def test_storage_failure_fails_open() -> None:
    gate = FreemiumGate(_UnreadableStore(":memory:"), "learner")
    assert gate.record_completion("helm") is False
    assert gate.check_limit() is True
