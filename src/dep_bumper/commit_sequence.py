"""
Commit sequencing.

Groups updates into commits, then applies and commits each group in order:
pre-commit hook, write and stage the group's files, commit, post-commit hook.
Any failure stops the sequence; commits already made are kept.
"""

import asyncio
import inspect
import os
import shlex
import subprocess
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Awaitable, Callable, Dict, List, Optional, Sequence, Tuple, Union

from .error_handling import DepBumperError, HookError, VcsError
from .file_update import collect_file_changes, write_all
from .structured_logging import get_commit_logger, log_commit
from .update import Span, Update, VersionFact, reconcile

DEFAULT_GROUP = "dependencies"


@dataclass(frozen=True)
class CommitMessageContext:
    """What a commit message template receives."""

    group: str
    version: Optional[VersionFact]


@dataclass(frozen=True)
class CommitRecord:
    """One planned commit."""

    group: str
    message: str
    version: Optional[VersionFact]
    updates: Tuple[Update, ...]
    locations: Tuple[str, ...]
    position: int


class CommitState(Enum):
    """Progress of a CommitRecord through execute()."""

    COMPOSED = "composed"
    PRE_HOOK = "pre_hook"
    STAGED = "staged"
    COMMITTED = "committed"


Hook = Callable[[CommitRecord], Union[None, Awaitable[None]]]


def format_prefix(prefix: Optional[str]) -> str:
    return prefix.rstrip() + " " if prefix else ""


def default_commit_message(context: CommitMessageContext, prefix: str = "build(deps):") -> str:
    """Render "<prefix> bump <group> from <from> to <to>"."""
    if context.group == DEFAULT_GROUP:
        return format_prefix(prefix) + f"update {DEFAULT_GROUP}"
    message = format_prefix(prefix) + f"bump {context.group}"
    if context.version is not None:
        if context.version.from_:
            message += f" from {context.version.from_}"
        message += f" to {context.version.to}"
    return message


def _single_group(update: Update) -> str:
    return DEFAULT_GROUP


def _group_by_file(update: Update) -> str:
    try:
        return os.path.relpath(update.target)
    except ValueError:
        return update.target


GROUP_BY_FUNCTIONS: Dict[str, Callable[[Update], str]] = {
    "dependency": lambda update: update.name,
    "file": _group_by_file,
    "none": _single_group,
}


@dataclass
class CommitOptions:
    """How to group updates and what to run around each commit."""

    group_by: Callable[[Update], str] = _single_group
    compose_commit_message: Callable[[CommitMessageContext], str] = default_commit_message
    pre_commit: Optional[Hook] = None
    post_commit: Optional[Hook] = None


@dataclass
class CommitSequence:
    """Ordered commits plus their execution state."""

    commits: Tuple[CommitRecord, ...]
    options: CommitOptions
    states: Dict[int, CommitState] = field(default_factory=dict)
    # location -> {original span start: byte length change} of splices already written
    splices: Dict[str, Dict[int, int]] = field(default_factory=dict)

    def state_of(self, commit: CommitRecord) -> CommitState:
        return self.states.get(commit.position, CommitState.COMPOSED)

    def shift(self, update: Update) -> Update:
        """Move an update's span past the splices earlier commits made in its file."""
        if update.import_map is not None:
            return update
        offset = sum(
            delta
            for start, delta in self.splices.get(update.referrer, {}).items()
            if start < update.span.start
        )
        if not offset:
            return update
        return replace(update, span=Span(update.span.start + offset, update.span.end + offset))

    def record_splices(self, updates: Sequence[Update]) -> None:
        for update in updates:
            if update.import_map is None:
                delta = len(update.new_specifier.encode("utf-8")) - len(update.old_specifier.encode("utf-8"))
                self.splices.setdefault(update.referrer, {})[update.span.start] = delta

    @property
    def completed(self) -> List[CommitRecord]:
        return [c for c in self.commits if self.state_of(c) is CommitState.COMMITTED]


class GitClient:
    """Runs git commands in a working tree."""

    def __init__(self, cwd: Optional[str] = None, executable: str = "git"):
        self.cwd = cwd
        self.executable = executable

    async def _run(self, *args: str) -> str:
        command = [self.executable, *args]
        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                cwd=self.cwd,
            )
        except OSError as e:
            raise VcsError(command, -1, str(e)) from e

        stdout_data, stderr_data = await process.communicate()
        stderr = stderr_data.decode("utf-8", errors="replace") if stderr_data else ""
        if process.returncode != 0:
            raise VcsError(command, process.returncode, stderr)
        return stdout_data.decode("utf-8", errors="replace") if stdout_data else ""

    async def stage(self, locations: Sequence[str]) -> None:
        await self._run("add", *locations)

    async def commit(self, message: str) -> None:
        await self._run("commit", "-m", message)


def compose(updates: Sequence[Update], options: Optional[CommitOptions] = None) -> CommitSequence:
    """
    Plan commits for a list of updates.

    Args:
        updates: Updates to commit
        options: Grouping, message template and hooks

    Returns:
        CommitSequence: one record per group, in first-seen group order

    Raises:
        ConflictingVersionsError: A group holds one package with two targets
    """
    options = options or CommitOptions()
    groups: Dict[str, List[Update]] = {}
    for update in updates:
        groups.setdefault(options.group_by(update), []).append(update)

    commits = []
    for position, (group, members) in enumerate(groups.items()):
        version = reconcile(members)
        locations = tuple(dict.fromkeys(u.target for u in members))
        commits.append(
            CommitRecord(
                group=group,
                message=options.compose_commit_message(
                    CommitMessageContext(group=group, version=version)
                ),
                version=version,
                updates=tuple(members),
                locations=locations,
                position=position,
            )
        )
    return CommitSequence(commits=tuple(commits), options=options)


async def _call_hook(hook: Hook, commit: CommitRecord, name: str) -> None:
    try:
        result = hook(commit)
        if inspect.isawaitable(result):
            await result
    except DepBumperError:
        raise
    except Exception as e:
        raise HookError(f"{name} hook failed for {commit.group!r}: {e}") from e


async def _pre_commit(sequence: CommitSequence, commit: CommitRecord, git: GitClient) -> None:
    if sequence.options.pre_commit is not None:
        await _call_hook(sequence.options.pre_commit, commit, "pre-commit")
        sequence.states[commit.position] = CommitState.PRE_HOOK


async def _stage(sequence: CommitSequence, commit: CommitRecord, git: GitClient) -> None:
    write_all(collect_file_changes([sequence.shift(u) for u in commit.updates]))
    sequence.record_splices(commit.updates)
    await git.stage(commit.locations)
    sequence.states[commit.position] = CommitState.STAGED


async def _commit(sequence: CommitSequence, commit: CommitRecord, git: GitClient) -> None:
    await git.commit(commit.message)
    sequence.states[commit.position] = CommitState.COMMITTED
    log_commit(commit.position, commit.group, commit.message, len(commit.locations))


async def _post_commit(sequence: CommitSequence, commit: CommitRecord, git: GitClient) -> None:
    if sequence.options.post_commit is not None:
        await _call_hook(sequence.options.post_commit, commit, "post-commit")


_STAGES = (_pre_commit, _stage, _commit, _post_commit)


async def execute(sequence: CommitSequence, git: Optional[GitClient] = None) -> CommitSequence:
    """
    Apply and commit each record of a sequence, strictly in order.

    Raises:
        VcsError: Staging or committing failed; later records are not run
        HookError: A hook failed; later records are not run
    """
    git = git or GitClient()
    logger = get_commit_logger()
    for commit in sequence.commits:
        for stage in _STAGES:
            try:
                await stage(sequence, commit, git)
            except DepBumperError as e:
                logger.error(
                    "commit_sequence_aborted",
                    position=commit.position,
                    group=commit.group,
                    stage=stage.__name__.lstrip("_"),
                    error=str(e),
                )
                raise
    return sequence


async def commit_all(
    updates: Sequence[Update],
    options: Optional[CommitOptions] = None,
    git: Optional[GitClient] = None,
) -> CommitSequence:
    """Compose and execute in one step."""
    return await execute(compose(updates, options), git)


async def run_task(command: str, cwd: Optional[str] = None) -> None:
    """
    Run a hook task such as a test or format command.

    Raises:
        HookError: The command could not be started or exited non-zero
    """
    args = shlex.split(command)
    if not args:
        raise HookError("Empty task command")
    try:
        process = await asyncio.create_subprocess_exec(*args, cwd=cwd)
    except OSError as e:
        raise HookError(f"Could not run task {command!r}: {e}") from e
    returncode = await process.wait()
    if returncode != 0:
        raise HookError(f"Task {command!r} exited with status {returncode}")


def task_hook(
    commands: Sequence[str],
    announce: Optional[Callable[[CommitRecord], None]] = None,
    cwd: Optional[str] = None,
) -> Hook:
    """Build a hook that runs commands in order for every commit."""

    async def hook(commit: CommitRecord) -> None:
        if announce is not None:
            announce(commit)
        for command in commands:
            await run_task(command, cwd=cwd)

    return hook


def summarize(sequence: CommitSequence, prefix: Optional[str] = None) -> str:
    """One-line summary of a sequence, e.g. for a pull request title."""
    if not sequence.commits:
        return "No updates"
    if len(sequence.commits) == 1:
        return sequence.commits[0].message
    groups = ", ".join(commit.group for commit in sequence.commits)
    full = format_prefix(prefix) + f"update {groups}"
    if len(full) <= 50:
        return full
    return format_prefix(prefix) + "update dependencies"


def report(sequence: CommitSequence) -> str:
    """Markdown list of commit messages."""
    return "\n".join(f"- {commit.message}" for commit in sequence.commits)
