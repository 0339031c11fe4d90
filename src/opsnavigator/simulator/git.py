"""Git terminal backed by a small in-memory repository."""

from __future__ import annotations

import hashlib
import shlex
from dataclasses import dataclass, field
from typing import Any

from ..models import TerminalLine
from .base import LineBuilder, Rule, TerminalSimulator, err, ok, out

EMPTY_DIRECTORY = "empty-directory"
REMOTE_URL = "https://github.com/user/project.git"


@dataclass
class Repository:
    initialized: bool = False
    branch: str = "main"
    branches: list[str] = field(default_factory=lambda: ["main"])
    remote: str | None = None
    tracked: set[str] = field(default_factory=set)
    modified: set[str] = field(default_factory=set)
    untracked: set[str] = field(default_factory=set)
    staged: set[str] = field(default_factory=set)
    commits: list[tuple[str, str]] = field(default_factory=list)
    tags: list[str] = field(default_factory=list)
    unpushed: int = 0

    @classmethod
    def seeded(cls) -> Repository:
        """Repository with history, a remote and an edited README."""
        return cls(
            initialized=True,
            remote=REMOTE_URL,
            tracked={"README.md", "app.py"},
            modified={"README.md"},
            commits=[("a1b2c3d", "Initial commit")],
        )

    @classmethod
    def empty_directory(cls) -> Repository:
        return cls(untracked={"README.md", "app.py"})


class GitSimulator(TerminalSimulator):
    """Terminal for local git workflows."""

    platform = "git"
    banner = ("git version 2.42.0", "")
    expected_commands = {
        "create-dir": "mkdir project",
        "git-init": "git init",
        "create-gitignore": "touch .gitignore",
        "git-add": "git add .",
        "first-commit": 'git commit -m "Initial commit"',
        "add-remote": f"git remote add origin {REMOTE_URL}",
        "git-push": "git push -u origin main",
        "view-branches": "git branch",
        "create-branch": "git checkout -b feature",
        "switch-branch": "git checkout main",
        "make-changes": "touch feature.txt",
        "commit-changes": 'git commit -m "Add feature"',
        "push-branch": "git push origin feature",
        "check-status": "git status",
        "view-diff": "git diff",
        "stage-files": "git add README.md",
        "commit": 'git commit -m "docs: update readme"',
        "view-history": "git log --oneline",
        "push": "git push",
        "view-tags": "git tag",
        "create-tag": "git tag v1.0.0",
        "annotated-tag": 'git tag -a v1.1.0 -m "Release 1.1.0"',
        "push-tags": "git push --tags",
    }
    default_command = "git status"

    def __init__(self, *args: Any, repository: Repository | None = None, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        if repository is None:
            fixture = self._module.fixture if self._module is not None else None
            repository = Repository.empty_directory() if fixture == EMPTY_DIRECTORY else Repository.seeded()
        self.repo = repository

    def build_rules(self) -> list[Rule]:
        return [
            Rule(("mkdir",), lambda _: [], None),
            Rule(("touch",), lambda _: [], self._touch),
            Rule(("git --version",), lambda _: [out("git version 2.42.0")]),
            Rule(("git init",), self._init, self._do_init),
            Rule(("git clone",), self._clone, self._do_clone),
            Rule(("git status",), self._guarded(self._status)),
            Rule(("git add",), self._guarded(self._add), self._do_add),
            Rule(("git commit",), self._guarded(self._commit), self._do_commit),
            Rule(("git remote add",), self._guarded(self._remote_add), self._do_remote_add),
            Rule(("git remote",), self._guarded(self._remote)),
            Rule(("git push",), self._guarded(self._push), self._do_push),
            Rule(("git pull",), self._guarded(lambda _: [out("Already up to date.", 400)])),
            Rule(("git checkout -b",), self._guarded(self._new_branch), self._do_new_branch),
            Rule(("git checkout",), self._guarded(self._checkout), self._do_checkout),
            Rule(("git branch",), self._guarded(self._branch)),
            Rule(("git merge",), self._guarded(self._merge)),
            Rule(("git diff",), self._guarded(self._diff)),
            Rule(("git log",), self._guarded(self._log)),
            Rule(("git tag",), self._guarded(self._tag), self._do_tag),
        ]

    def _guarded(self, build: LineBuilder) -> LineBuilder:
        """Refuse repository commands until `git init` has run."""

        def wrapper(command: str) -> list[TerminalLine]:
            if not self.repo.initialized:
                return [err("fatal: not a git repository (or any of the parent directories): .git")]
            return build(command)

        return wrapper

    def _touch(self, command: str) -> None:
        for name in _args(command)[1:]:
            if name in self.repo.tracked:
                self.repo.modified.add(name)
            else:
                self.repo.untracked.add(name)

    def _init(self, _: str) -> list[TerminalLine]:
        if self.repo.initialized:
            return [out("Reinitialized existing Git repository in /home/user/project/.git/")]
        return [ok("Initialized empty Git repository in /home/user/project/.git/", 200)]

    def _do_init(self, _: str) -> None:
        self.repo.initialized = True

    def _clone(self, command: str) -> list[TerminalLine]:
        url = _args(command)[-1]
        name = url.rstrip("/").rsplit("/", 1)[-1].removesuffix(".git")
        return [
            out(f"Cloning into '{name}'...", 200),
            out("remote: Enumerating objects: 156, done.", 400),
            out("remote: Counting objects: 100% (156/156), done.", 600),
            out("Receiving objects: 100% (156/156), 45.67 KiB | 1.52 MiB/s, done.", 800),
            ok("Resolving deltas: 100% (67/67), done.", 1000),
        ]

    def _do_clone(self, command: str) -> None:
        self.repo = Repository.seeded()
        self.repo.modified.clear()
        self.repo.remote = _args(command)[-1]

    def _status(self, _: str) -> list[TerminalLine]:
        repo = self.repo
        lines = [out(f"On branch {repo.branch}")]
        if repo.remote is not None and repo.unpushed:
            plural = "s" if repo.unpushed != 1 else ""
            lines.append(out(f"Your branch is ahead of 'origin/{repo.branch}' by {repo.unpushed} commit{plural}."))
        if not repo.commits:
            lines += [out(""), out("No commits yet")]
        if repo.staged:
            lines += [out("Changes to be committed:")]
            lines += [ok(f"\tnew file:   {name}" if name not in repo.tracked else f"\tmodified:   {name}") for name in sorted(repo.staged)]
        unstaged = sorted(repo.modified - repo.staged)
        if unstaged:
            lines += [out("Changes not staged for commit:")] + [err(f"\tmodified:   {name}") for name in unstaged]
        untracked = sorted(repo.untracked - repo.staged)
        if untracked:
            lines += [out("Untracked files:")] + [err(f"\t{name}") for name in untracked]
        if not (repo.staged or unstaged or untracked):
            lines.append(out("nothing to commit, working tree clean"))
        return lines

    def _add(self, command: str) -> list[TerminalLine]:
        targets = _args(command)[2:]
        missing = [name for name in targets if name != "." and not name.startswith("-") and name not in self._changed()]
        if missing:
            return [err(f"fatal: pathspec '{missing[0]}' did not match any files")]
        return []

    def _do_add(self, command: str) -> None:
        if not self.repo.initialized:
            return
        targets = _args(command)[2:]
        changed = self._changed()
        if "." in targets or "-A" in targets or "--all" in targets:
            self.repo.staged |= changed
        else:
            self.repo.staged |= {name for name in targets if name in changed}

    def _commit(self, command: str) -> list[TerminalLine]:
        repo = self.repo
        staged = set(repo.staged)
        if "-a" in command.split() or "-am" in command.split():
            staged |= repo.modified
        if not staged:
            return [out("nothing to commit, working tree clean")]
        message = _message(command) or "Update"
        sha = self._next_sha(message)
        root = " (root-commit)" if not repo.commits else ""
        return [
            ok(f"[{repo.branch}{root} {sha}] {message}", 200),
            out(f" {len(staged)} file{'s' if len(staged) != 1 else ''} changed"),
        ]

    def _do_commit(self, command: str) -> None:
        repo = self.repo
        if not repo.initialized:
            return
        staged = set(repo.staged)
        if "-a" in command.split() or "-am" in command.split():
            staged |= repo.modified
        if not staged:
            return
        message = _message(command) or "Update"
        repo.commits.append((self._next_sha(message), message))
        repo.tracked |= staged
        repo.modified -= staged
        repo.untracked -= staged
        repo.staged.clear()
        repo.unpushed += 1

    def _remote_add(self, command: str) -> list[TerminalLine]:
        if self.repo.remote is not None:
            return [err("error: remote origin already exists.")]
        return []

    def _do_remote_add(self, command: str) -> None:
        if self.repo.initialized and self.repo.remote is None:
            self.repo.remote = _args(command)[-1]

    def _remote(self, command: str) -> list[TerminalLine]:
        if self.repo.remote is None:
            return []
        if "-v" in command:
            return [out(f"origin\t{self.repo.remote} (fetch)"), out(f"origin\t{self.repo.remote} (push)")]
        return [out("origin")]

    def _push(self, command: str) -> list[TerminalLine]:
        repo = self.repo
        if repo.remote is None:
            return [err("fatal: No configured push destination.")]
        if "--tags" in command:
            if not repo.tags:
                return [out("Everything up-to-date")]
            return [out(f"To {repo.remote}", 300)] + [ok(f" * [new tag]         {tag} -> {tag}", 200) for tag in repo.tags]
        if not repo.commits:
            return [err("error: src refspec main does not match any")]
        branch = _args(command)[-1] if len(_args(command)) > 3 else repo.branch
        return [
            out("Enumerating objects: 5, done.", 200),
            out("Writing objects: 100% (3/3), 312 bytes | 312.00 KiB/s, done.", 400),
            out(f"To {repo.remote}", 200),
            ok(f"   {repo.commits[-1][0]}  {branch} -> {branch}", 200),
        ]

    def _do_push(self, _: str) -> None:
        if self.repo.initialized and self.repo.remote is not None and self.repo.commits:
            self.repo.unpushed = 0

    def _new_branch(self, command: str) -> list[TerminalLine]:
        name = _args(command)[-1]
        if name.startswith("-"):
            return [err("fatal: switch `b' requires a value")]
        if name in self.repo.branches:
            return [err(f"fatal: a branch named '{name}' already exists")]
        return [out(f"Switched to a new branch '{name}'")]

    def _do_new_branch(self, command: str) -> None:
        name = _args(command)[-1]
        if self.repo.initialized and not name.startswith("-") and name not in self.repo.branches:
            self.repo.branches.append(name)
            self.repo.branch = name

    def _checkout(self, command: str) -> list[TerminalLine]:
        name = _args(command)[-1]
        if name not in self.repo.branches:
            return [err(f"error: pathspec '{name}' did not match any file(s) known to git")]
        if name == self.repo.branch:
            return [out(f"Already on '{name}'")]
        return [out(f"Switched to branch '{name}'")]

    def _do_checkout(self, command: str) -> None:
        name = _args(command)[-1]
        if name in self.repo.branches:
            self.repo.branch = name

    def _branch(self, _: str) -> list[TerminalLine]:
        return [ok(f"* {name}") if name == self.repo.branch else out(f"  {name}") for name in self.repo.branches]

    def _merge(self, command: str) -> list[TerminalLine]:
        name = _args(command)[-1]
        if name not in self.repo.branches:
            return [err(f"merge: {name} - not something we can merge")]
        if name == self.repo.branch:
            return [out("Already up to date.")]
        if not self.repo.commits:
            return [err(f"fatal: your current branch '{self.repo.branch}' does not have any commits yet")]
        return [out(f"Updating {self.repo.commits[0][0]}..{self.repo.commits[-1][0]}", 200), ok("Fast-forward", 200)]

    def _diff(self, _: str) -> list[TerminalLine]:
        lines: list[TerminalLine] = []
        for name in sorted(self.repo.modified - self.repo.staged):
            lines += [
                out(f"diff --git a/{name} b/{name}"),
                out(f"--- a/{name}"),
                out(f"+++ b/{name}"),
                out("@@ -1,3 +1,4 @@"),
                err("-Work in progress"),
                ok("+Setup and usage instructions"),
            ]
        return lines

    def _log(self, command: str) -> list[TerminalLine]:
        if not self.repo.commits:
            return [err(f"fatal: your current branch '{self.repo.branch}' does not have any commits yet")]
        entries = list(reversed(self.repo.commits))
        if "--oneline" in command:
            return [out(f"{sha} {message}") for sha, message in entries]
        lines: list[TerminalLine] = []
        for sha, message in entries:
            lines += [out(f"commit {sha}"), out("Author: Learner <learner@example.com>"), out(""), out(f"    {message}")]
        return lines

    def _tag(self, command: str) -> list[TerminalLine]:
        args = _positional(command)[2:]
        if not args:
            return [out(tag) for tag in self.repo.tags]
        if args[0] in self.repo.tags:
            return [err(f"fatal: tag '{args[0]}' already exists")]
        return []

    def _do_tag(self, command: str) -> None:
        args = _positional(command)[2:]
        if self.repo.initialized and args and args[0] not in self.repo.tags:
            self.repo.tags.append(args[0])

    def _changed(self) -> set[str]:
        return self.repo.modified | self.repo.untracked

    def _next_sha(self, message: str) -> str:
        seed = f"{len(self.repo.commits)}:{self.repo.branch}:{message}"
        return hashlib.sha1(seed.encode("utf-8")).hexdigest()[:7]


def _args(command: str) -> list[str]:
    try:
        return shlex.split(command)
    except ValueError:
        return command.split()


def _positional(command: str) -> list[str]:
    """Return tokens with options and their values removed."""
    tokens = _args(command)
    result: list[str] = []
    skip = False
    for token in tokens:
        if skip:
            skip = False
            continue
        if token in ("-m", "--message"):
            skip = True
            continue
        if token.startswith("-"):
            continue
        result.append(token)
    return result


def _message(command: str) -> str | None:
    tokens = _args(command)
    for index, token in enumerate(tokens):
        if token in ("-m", "-am", "--message") and index + 1 < len(tokens):
            return tokens[index + 1]
    return None
