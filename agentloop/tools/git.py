"""Read-only git tools for the local working tree."""

import asyncio
import os
from typing import Any

from agentloop.llm import ParameterSchema, Property
from agentloop.tools._paths import expand_path
from agentloop.tools._process import run_process
from agentloop.tools.registry import Tool

GIT_TIMEOUT_SECONDS = 30.0
MAX_DIFF_SIZE = 100 * 1024  # 100KB

_STATUS_CODES = {
    "M": "modified",
    "A": "added",
    "D": "deleted",
    "R": "renamed",
    "C": "copied",
    "U": "unmerged",
    "T": "type_changed",
}


class GitError(Exception):
    """A git invocation failed."""


async def run_git(directory: str, *args: str, abort_event: asyncio.Event | None = None) -> str:
    """Run git in `directory` and return stdout."""
    try:
        output = await run_process(
            "git",
            list(args),
            cwd=directory,
            timeout=GIT_TIMEOUT_SECONDS,
            abort_event=abort_event,
        )
    except FileNotFoundError as e:
        raise GitError("git command not found") from e

    if output.exit_code != 0:
        if "not a git repository" in output.stderr:
            raise GitError("not a git repository (or any of the parent directories)")
        raise GitError(f"git {' '.join(args)}: {output.stderr.strip()}")
    return output.stdout


def parse_status_code(code: str) -> str:
    return _STATUS_CODES.get(code, "unknown")


def parse_porcelain_status(output: str) -> dict[str, list[dict[str, str]]]:
    """Split `git status --porcelain` output into staged/unstaged/untracked entries."""
    staged: list[dict[str, str]] = []
    unstaged: list[dict[str, str]] = []
    untracked: list[dict[str, str]] = []

    for line in output.splitlines():
        if len(line) < 4:
            continue
        index_code, worktree_code, path = line[0], line[1], line[3:].strip()
        if index_code == "?" and worktree_code == "?":
            untracked.append({"path": path, "status": "untracked"})
            continue
        if index_code not in (" ", "?"):
            staged.append({"path": path, "status": parse_status_code(index_code)})
        if worktree_code not in (" ", "?"):
            unstaged.append({"path": path, "status": parse_status_code(worktree_code)})

    return {"staged": staged, "unstaged": unstaged, "untracked": untracked}


def count_files_in_diff(diff: str) -> int:
    return sum(1 for line in diff.splitlines() if line.startswith("diff --git"))


def _abort_event(kwargs: dict[str, Any]) -> asyncio.Event | None:
    event = kwargs.get("_abort_event")
    return event if isinstance(event, asyncio.Event) else None


class GitStatusTool(Tool):
    """Branch plus staged, unstaged and untracked files."""

    name = "local_git_status"
    description = (
        "Get git status of the current working directory or a specified path. Shows "
        "current branch, staged changes, unstaged changes, and untracked files."
    )
    parameters = ParameterSchema(
        properties={
            "path": Property(
                type="string",
                description=(
                    "Directory path (defaults to current working directory, "
                    "~ expands to home directory)"
                ),
            ),
        },
    )

    async def execute(self, path: Any = None, **kwargs: Any) -> dict[str, Any]:
        directory = str(expand_path(path)) if isinstance(path, str) and path else os.getcwd()
        abort_event = _abort_event(kwargs)

        branch = (await run_git(directory, "branch", "--show-current", abort_event=abort_event)).strip()
        status = await run_git(directory, "status", "--porcelain", abort_event=abort_event)
        parsed = parse_porcelain_status(status)

        return {
            "path": directory,
            "branch": branch,
            "clean": not any(parsed.values()),
            **parsed,
        }


class GitDiffTool(Tool):
    """Uncommitted changes, optionally staged-only or for one file."""

    name = "local_git_diff"
    description = (
        "Get git diff of uncommitted changes. Shows the actual code changes line-by-line. "
        "Can show unstaged or staged changes, and can filter to a specific file."
    )
    parameters = ParameterSchema(
        properties={
            "path": Property(
                type="string",
                description="Specific file path to diff (optional, defaults to all changes)",
            ),
            "staged": Property(
                type="boolean",
                description=(
                    "If true, show staged changes (git diff --staged), "
                    "otherwise show unstaged changes"
                ),
            ),
        },
    )

    async def execute(self, path: Any = None, staged: Any = False, **kwargs: Any) -> dict[str, Any]:
        git_args = ["diff"]
        if staged is True:
            git_args.append("--staged")
        if isinstance(path, str) and path:
            git_args.extend(["--", str(expand_path(path))])

        diff = await run_git(os.getcwd(), *git_args, abort_event=_abort_event(kwargs))
        files_changed = count_files_in_diff(diff)

        result: dict[str, Any] = {"files_changed": files_changed, "truncated": False}
        if len(diff) > MAX_DIFF_SIZE:
            diff = diff[:MAX_DIFF_SIZE]
            result["truncated"] = True
            result["truncated_message"] = (
                "Output truncated at 100KB. Use path parameter to diff specific files."
            )
        result["diff"] = diff
        return result
