"""Core domain models for guided workflows and simulated terminals."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

PLATFORMS = frozenset({"aws", "docker", "git", "github", "kubernetes"})


@dataclass(frozen=True)
class Step:
    """One instructional unit with an expected completion action."""

    id: str
    title: str
    description: str
    action: str
    tip: str | None = None
    warning: str | None = None


@dataclass(frozen=True)
class QuizQuestion:
    """Multiple-choice question offered after a module is completed."""

    id: str
    question: str
    options: list[str]
    correct_index: int
    explanation: str = ""


@dataclass(frozen=True)
class Module:
    """Ordered list of steps teaching one workflow."""

    id: str
    name: str
    description: str
    platform: str
    steps: list[Step]
    quiz: list[QuizQuestion] = field(default_factory=list)
    fixture: str | None = None

    @property
    def step_ids(self) -> list[str]:
        return [step.id for step in self.steps]


@dataclass(frozen=True)
class Category:
    """Top-level grouping of modules."""

    id: str
    name: str
    module_ids: list[str]


@dataclass(frozen=True)
class QuizResult:
    """Outcome of one quiz attempt."""

    passed: bool
    score: int


@dataclass(frozen=True)
class ProgressRecord:
    """Persisted progress snapshot for one (category, module) pair."""

    category_id: str
    module_id: str
    completed_step_ids: frozenset[str]
    current_step_index: int
    quiz_results: dict[str, QuizResult] = field(default_factory=dict)
    started_at: str | None = None
    updated_at: str | None = None


class LineKind(str, Enum):
    """Presentation kind of one terminal line."""

    INPUT = "input"
    OUTPUT = "output"
    ERROR = "error"
    SUCCESS = "success"


@dataclass(frozen=True)
class TerminalLine:
    """One line of a simulated transcript and the delay before it is shown."""

    kind: LineKind
    text: str
    delay_ms: int = 100


class ServiceStatus(str, Enum):
    """Lifecycle status of a simulated compose service."""

    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    ERROR = "error"


_SERVICE_TRANSITIONS: dict[ServiceStatus, frozenset[ServiceStatus]] = {
    ServiceStatus.STOPPED: frozenset({ServiceStatus.STARTING, ServiceStatus.STOPPED}),
    ServiceStatus.STARTING: frozenset({ServiceStatus.RUNNING, ServiceStatus.ERROR, ServiceStatus.STOPPED}),
    ServiceStatus.RUNNING: frozenset({ServiceStatus.STOPPED}),
    ServiceStatus.ERROR: frozenset({ServiceStatus.STOPPED}),
}


@dataclass
class SimulatedService:
    """In-memory stand-in for one docker-compose service."""

    name: str
    image: str
    status: ServiceStatus = ServiceStatus.STOPPED
    ports: list[str] = field(default_factory=list)
    volumes: list[str] = field(default_factory=list)
    depends_on: list[str] = field(default_factory=list)

    def can_transition(self, target: ServiceStatus) -> bool:
        return target in _SERVICE_TRANSITIONS[self.status]

    def transition(self, target: ServiceStatus) -> None:
        """Move to `target`, rejecting transitions the lifecycle does not allow."""
        if not self.can_transition(target):
            raise ValueError(f"Service '{self.name}' cannot go from {self.status.value} to {target.value}.")
        self.status = target
