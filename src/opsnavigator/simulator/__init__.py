"""Platform simulators and the factory that picks one for a module."""

from __future__ import annotations

from ..models import Module
from ..scheduler import TickScheduler
from .base import ActionCallback, LineCallback, Rule, StepProvider, TerminalSimulator
from .console import Affordance, ConsoleSimulator, CostEstimate
from .docker import DockerSimulator
from .git import GitSimulator
from .kubernetes import KubernetesSimulator

Simulator = TerminalSimulator | ConsoleSimulator

TERMINALS: dict[str, type[TerminalSimulator]] = {
    "docker": DockerSimulator,
    "git": GitSimulator,
    "kubernetes": KubernetesSimulator,
}


def create_simulator(
    module: Module,
    scheduler: TickScheduler,
    *,
    current_step: StepProvider | None = None,
    on_action: ActionCallback | None = None,
    on_line: LineCallback | None = None,
) -> Simulator:
    """Return a fresh simulator for the module's platform."""
    terminal = TERMINALS.get(module.platform)
    if terminal is None:
        return ConsoleSimulator(module.platform, module=module, current_step=current_step, on_action=on_action)
    return terminal(scheduler, module=module, current_step=current_step, on_action=on_action, on_line=on_line)


__all__ = [
    "Affordance",
    "ConsoleSimulator",
    "CostEstimate",
    "DockerSimulator",
    "GitSimulator",
    "KubernetesSimulator",
    "LineCallback",
    "Rule",
    "Simulator",
    "TerminalSimulator",
    "create_simulator",
]
