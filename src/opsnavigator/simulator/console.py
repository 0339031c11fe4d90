"""Point-and-click consoles for AWS and GitHub steps."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

from loguru import logger

from ..errors import SimulatorClosedError
from ..models import Module, Step
from .base import ActionCallback, StepProvider

BUTTON = "button"
INPUT = "input"
SELECT = "select"
CHECKBOX = "checkbox"
PANEL = "panel"


@dataclass(frozen=True)
class Affordance:
    """One clickable or editable element of a simulated console page."""

    id: str
    label: str
    kind: str = BUTTON
    highlighted: bool = False
    options: tuple[str, ...] = ()
    value: str = ""


@dataclass(frozen=True)
class CostEstimate:
    cost: str
    note: str


PageBuilder = Callable[[Step], list[Affordance]]


def _main(
    identifier: str, label: str, kind: str = BUTTON, options: tuple[str, ...] = (), value: str = ""
) -> Affordance:
    return Affordance(id=identifier, label=label, kind=kind, highlighted=True, options=options, value=value)


def _aws_open(step: Step) -> list[Affordance]:
    services = {"lambda": "Lambda", "s3": "S3", "rds": "RDS"}
    target = next((key for key in services if key in step.action), "ec2")
    labels = {"ec2": "EC2", **services}
    page = [Affordance("search", "Search services...", INPUT)]
    for key, label in labels.items():
        page.append(Affordance(key, label, BUTTON, highlighted=key == target))
    return page


def _aws_launch(step: Step) -> list[Affordance]:
    return [
        _main("launch", "Launch Instance"),
        Affordance("instances", "Instances (0)", PANEL),
        Affordance("volumes", "Volumes"),
        Affordance("snapshots", "Snapshots"),
    ]


def _aws_name(step: Step) -> list[Affordance]:
    placeholder = "my-first-instance" if "instance" in step.action else "my-unique-name-2026"
    return [_main("name-input", placeholder, INPUT), Affordance("tags", "Add additional tags")]


def _aws_ami(step: Step) -> list[Affordance]:
    return [
        _main("amazon-linux", "Amazon Linux 2023 AMI (Free tier eligible)"),
        Affordance("ubuntu", "Ubuntu Server 22.04 LTS"),
        Affordance("windows", "Windows Server 2022"),
        Affordance("redhat", "Red Hat Enterprise Linux 9"),
    ]


def _aws_type(step: Step) -> list[Affordance]:
    return [
        _main("t2-micro", "t2.micro (Free tier eligible) - 1 vCPU, 1 GiB"),
        Affordance("t2-small", "t2.small - 1 vCPU, 2 GiB ($0.023/hr)"),
        Affordance("t2-medium", "t2.medium - 2 vCPU, 4 GiB ($0.046/hr)"),
        Affordance("t3-micro", "t3.micro - 2 vCPU, 1 GiB ($0.0104/hr)"),
    ]


def _aws_keypair(step: Step) -> list[Affordance]:
    return [
        _main("create-key", "Create new key pair"),
        Affordance("existing-key", "Select existing key pair", SELECT, options=("None", "my-keypair")),
        Affordance("proceed-without", "Proceed without a key pair (Not recommended)", CHECKBOX),
    ]


def _aws_security(step: Step) -> list[Affordance]:
    return [
        _main("create-sg", "Create security group"),
        Affordance("ssh-rule", "Allow SSH traffic from My IP", CHECKBOX),
        Affordance("http-rule", "Allow HTTP traffic from the internet", CHECKBOX),
        Affordance("https-rule", "Allow HTTPS traffic from the internet", CHECKBOX),
    ]


def _aws_storage(step: Step) -> list[Affordance]:
    return [
        _main("root-vol", "8 GiB gp3 Root volume (Free tier eligible)", INPUT, value="8"),
        Affordance("add-vol", "Add new volume"),
        Affordance("delete-on-term", "Delete on termination", CHECKBOX),
    ]


def _aws_review(step: Step) -> list[Affordance]:
    return [_main("review-btn", "Launch instance"), Affordance("summary", "Instance Summary", PANEL)]


def _aws_connect(step: Step) -> list[Affordance]:
    return [
        _main("connect-btn", "Connect"),
        Affordance("ec2-connect", "EC2 Instance Connect"),
        Affordance("ssh-client", "SSH client"),
        Affordance("session-mgr", "Session Manager"),
    ]


def _gh_repo(step: Step) -> list[Affordance]:
    return [
        _main("repo", "my-awesome-project"),
        Affordance("files", "src/  docs/  README.md  package.json", PANEL),
        Affordance("clone", "Clone Repository"),
    ]


def _gh_tabs(step: Step) -> list[Affordance]:
    return [
        Affordance("code", "Code"),
        Affordance("issues", "Issues"),
        Affordance("pr", "Pull requests"),
        _main("actions", "Actions"),
    ]


def _gh_new_workflow(step: Step) -> list[Affordance]:
    return [_main("new-workflow", "New workflow"), Affordance("ci-build", "CI Build - Completed in 2m 34s", PANEL)]


def _gh_template(step: Step) -> list[Affordance]:
    return [
        _main("blank", "set up a workflow yourself"),
        Affordance("python", "Python application"),
        Affordance("node", "Node.js"),
    ]


def _gh_editor(label: str, identifier: str) -> PageBuilder:
    def build(step: Step) -> list[Affordance]:
        return [_main(identifier, label, INPUT), Affordance("preview", ".github/workflows/ci.yml", PANEL)]

    return build


def _gh_runner(step: Step) -> list[Affordance]:
    return [
        _main("runs-on", "runs-on", SELECT, options=("ubuntu-latest", "windows-latest", "macos-latest")),
        Affordance("self-hosted", "Use a self-hosted runner", CHECKBOX),
    ]


def _gh_commit(step: Step) -> list[Affordance]:
    return [_main("commit", "Commit changes..."), Affordance("branch-option", "Create a new branch for this commit", CHECKBOX)]


def _gh_monitor(step: Step) -> list[Affordance]:
    return [_main("run", "Run Workflow"), Affordance("ci-build", "CI Build - queued", PANEL)]


def _gh_branch(step: Step) -> list[Affordance]:
    return [
        _main("compare", "compare", SELECT, options=("feature", "main")),
        Affordance("base", "base: main", PANEL),
    ]


def _gh_open_pr(step: Step) -> list[Affordance]:
    return [_main("new-pr", "New Pull Request"), Affordance("pr-42", "Add new feature #42", PANEL)]


def _gh_review(step: Step) -> list[Affordance]:
    return [_main("reviewers", "Reviewers"), Affordance("labels", "Labels"), Affordance("assignees", "Assignees")]


def _gh_feedback(step: Step) -> list[Affordance]:
    return [_main("resolve", "Resolve conversation"), Affordance("comment", "Add a comment", INPUT)]


def _gh_merge(step: Step) -> list[Affordance]:
    return [
        _main("merge", "Merge pull request"),
        Affordance("squash", "Squash and merge"),
        Affordance("delete-branch", "Delete branch after merge", CHECKBOX),
    ]


# First entry whose keyword occurs in the step action wins.
_AWS_PAGES: list[tuple[str, PageBuilder]] = [
    ("console", _aws_open),
    ("open", _aws_open),
    ("review", _aws_review),
    ("launch", _aws_launch),
    ("name", _aws_name),
    ("ami", _aws_ami),
    ("type", _aws_type),
    ("key", _aws_keypair),
    ("security", _aws_security),
    ("storage", _aws_storage),
    ("connect", _aws_connect),
]

_GITHUB_PAGES: list[tuple[str, PageBuilder]] = [
    ("repo", _gh_repo),
    ("go-actions", _gh_tabs),
    ("create-workflow", _gh_new_workflow),
    ("template", _gh_template),
    ("triggers", _gh_editor("on: [push, pull_request]", "triggers")),
    ("jobs", _gh_editor("jobs:\n  build:", "jobs")),
    ("runner", _gh_runner),
    ("add-steps", _gh_editor("- uses: actions/checkout@v4", "steps")),
    ("commit-workflow", _gh_commit),
    ("monitor", _gh_monitor),
    ("branch", _gh_branch),
    ("review-feedback", _gh_feedback),
    ("review", _gh_review),
    ("merge", _gh_merge),
    ("pull-request", _gh_open_pr),
    ("description", _gh_editor("Describe your changes", "pr-body")),
]

_DEEP_LINKS = {
    "open-console": "https://console.aws.amazon.com/ec2/home#Instances:",
    "click-launch": "https://console.aws.amazon.com/ec2/home#LaunchInstances:",
    "open-lambda": "https://console.aws.amazon.com/lambda/home#/functions",
    "open-s3": "https://s3.console.aws.amazon.com/s3/home",
    "open-rds": "https://console.aws.amazon.com/rds/home#databases:",
    "open-vpc": "https://console.aws.amazon.com/vpc/home#vpcs:",
    "open-iam": "https://console.aws.amazon.com/iam/home#/home",
    "open-cloudwatch": "https://console.aws.amazon.com/cloudwatch/home",
    "open-dynamodb": "https://console.aws.amazon.com/dynamodb/home#tables",
    "open-ecs": "https://console.aws.amazon.com/ecs/home#/clusters",
    "open-eks": "https://console.aws.amazon.com/eks/home#/clusters",
}


def cost_estimate(step: Step | None) -> CostEstimate | None:
    """Return the billing hint shown for AWS steps that create chargeable resources."""
    if step is None:
        return None
    action = step.action.lower()
    if "t2.micro" in action or "select-type" in action:
        return CostEstimate("$0.00/month", "Free tier eligible (750 hrs/month for 12 months)")
    if "storage" in action:
        return CostEstimate("$0.00/month", "Free tier includes 30 GB of EBS storage")
    if "nat" in action:
        return CostEstimate("~$32/month", "NAT Gateway: $0.045/hr + data processing")
    if "rds" in action or "database" in action:
        return CostEstimate("$0.00/month", "Free tier: db.t3.micro, 750 hrs/month")
    return None


def deep_link(platform: str, step: Step | None) -> str:
    """Return the real console URL for a step."""
    if platform == "github":
        return "https://github.com"
    if step is None:
        return "https://console.aws.amazon.com"
    return _DEEP_LINKS.get(step.action, "https://console.aws.amazon.com")


class ConsoleSimulator:
    """Web-console stand-in: one page of affordances per step.

    Choosing the highlighted affordance completes the step immediately.
    Any other affordance only toggles its selection.
    """

    def __init__(
        self,
        platform: str,
        *,
        module: Module | None = None,
        current_step: StepProvider | None = None,
        on_action: ActionCallback | None = None,
    ) -> None:
        if platform not in ("aws", "github"):
            raise ValueError(f"No console for platform '{platform}'.")
        self.platform = platform
        self._module = module
        self._current_step = current_step or (lambda: None)
        self._on_action = on_action
        self._pages = _AWS_PAGES if platform == "aws" else _GITHUB_PAGES
        self.selected: set[str] = set()
        self.closed = False
        self.running = False

    @property
    def host(self) -> str:
        return "console.aws.amazon.com" if self.platform == "aws" else "github.com"

    def affordances(self) -> list[Affordance]:
        step = self._current_step()
        if step is None:
            return []
        action = step.action.lower()
        for keyword, build in self._pages:
            if keyword in action:
                return build(step)
        return [_main("action-btn", step.title)]

    def select(self, affordance_id: str) -> bool:
        """Click an affordance; returns True when it completed the current step."""
        if self.closed:
            raise SimulatorClosedError(f"{self.platform} console is closed.")
        step = self._current_step()
        affordance = next((item for item in self.affordances() if item.id == affordance_id), None)
        if step is None or affordance is None:
            logger.debug("Unknown affordance {!r} on {} console", affordance_id, self.platform)
            return False
        if affordance.highlighted:
            self.selected.clear()
            if self._on_action is not None:
                self._on_action(step.action)
            return True
        if affordance_id in self.selected:
            self.selected.remove(affordance_id)
        else:
            self.selected.add(affordance_id)
        return False

    def cost_estimate(self) -> CostEstimate | None:
        if self.platform != "aws":
            return None
        return cost_estimate(self._current_step())

    def deep_link(self) -> str:
        return deep_link(self.platform, self._current_step())

    def close(self) -> None:
        self.selected.clear()
        self.closed = True
