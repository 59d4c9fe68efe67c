# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Whole-workspace runs through the task-graph runner (turbo).

The runner owns caching and parallelism: it invokes the per-package
`build-typecheck`, `typecheck` and `lint` scripts, each in its own process,
and replays cached results when a package's inputs are unchanged. This module
only starts it, filters its output and clears its caches.
"""

from __future__ import annotations

import os
import re
import shutil
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

from monocheck.readiness import Installer, ensure_ready
from monocheck.tools import LogMode, ToolResult, stream_process, strip_ansi
from monocheck.workspace import Workspace

# `@scope/pkg:task: text` as printed by the runner for each package task.
TASK_PREFIX_RE = re.compile(r"^(?:@[\w.-]+/)?[\w.-]+:[\w-]+:(?P<body>.*)", re.DOTALL)

RUNNER_CACHE_DIR = Path("node_modules") / ".cache" / "turbo"

Task = Literal["build-typecheck", "typecheck", "lint"]


def filter_task_line(line: str) -> str | None:
	"""
	Runner lines that are not package output pass straight through; command
	echoes (`pkg:task: > ...`) are dropped; package output is kept for logging.
	"""
	match = TASK_PREFIX_RE.match(strip_ansi(line))
	if match is None:
		sys.stdout.write(line)
		sys.stdout.flush()
		return None
	if match.group("body").startswith(" > "):
		return None
	return line


class TaskRunner:
	"""Starts the external task-graph runner at the workspace root."""

	def __init__(self, command: tuple[str, ...] = ("pnpm", "exec", "turbo")) -> None:
		self.command = command

	def run(
		self,
		workspace: Workspace,
		task: Task,
		args: list[str],
		*,
		logs: LogMode,
		env: dict[str, str] | None = None,
		filter_output: bool = False,
	) -> ToolResult:
		return stream_process(
			[*self.command, task, *args],
			cwd=workspace.root,
			logs=logs,
			env={"FORCE_COLOR": "3", **(env or {})},
			line_filter=filter_task_line if filter_output else None,
		)


@dataclass(frozen=True)
class OrchestrateOptions:
	task: Task = "typecheck"
	force: bool = False
	runner_args: list[str] = field(default_factory=list)
	only_show_errors: bool = False
	logs: LogMode = "full"


def running_under_task_runner() -> bool:
	return "TURBO_HASH" in os.environ


def build_all_summaries(
	workspace: Workspace,
	*,
	runner_args: list[str],
	logs: LogMode,
	task_runner: TaskRunner | None = None,
) -> int:
	task_runner = task_runner if task_runner is not None else TaskRunner()
	settings = workspace.settings
	if logs != "none":
		print(f"Generating `{settings.summary_root}` folders with the task runner...", flush=True)
	result = task_runner.run(
		workspace,
		"build-typecheck",
		[*settings.runner_args_for("buildTypecheck"), *runner_args],
		logs=logs,
		env=settings.env,
	)
	if logs != "none":
		print(f"Finished generating `{settings.summary_root}` folders!", flush=True)
	return result.exit_code


def prepare_checks(
	workspace: Workspace,
	*,
	runner_args: list[str],
	logs: LogMode,
	build_summaries: bool = True,
	installer: Installer | None = None,
	task_runner: TaskRunner | None = None,
) -> int:
	"""
	Readiness gate, then summaries for every package.

	Under the task runner the summaries are built by the runner's own task
	graph before any check starts, so they are not rebuilt here.
	"""
	ensure_ready(workspace, installer=installer, logs=logs)
	if not build_summaries or running_under_task_runner():
		return 0
	return build_all_summaries(workspace, runner_args=runner_args, logs=logs, task_runner=task_runner)


def _remove(path: Path) -> None:
	if path.is_dir():
		shutil.rmtree(path)
	elif path.exists():
		path.unlink()


def clean_all(workspace: Workspace, *, lint: bool = False) -> int:
	"""Delete the runner cache plus every package's cached check artifacts."""
	# Discovery validates every manifest; nothing is removed if one is malformed.
	packages = workspace.list_packages()
	_remove(workspace.root / RUNNER_CACHE_DIR)
	for pkg in packages:
		_remove(pkg.directory / ".turbo")
		if lint:
			for cache_file in pkg.directory.glob("*.eslintcache"):
				_remove(cache_file)
			continue
		for build_info in pkg.directory.glob("*.tsbuildinfo"):
			_remove(build_info)
		_remove(pkg.directory / workspace.settings.summary_root)
	return 0


def orchestrate_all(
	workspace: Workspace,
	opts: OrchestrateOptions,
	*,
	installer: Installer | None = None,
	task_runner: TaskRunner | None = None,
) -> int:
	# Malformed manifests abort here, before the force-clean or any install.
	workspace.list_packages()
	task_runner = task_runner if task_runner is not None else TaskRunner()
	settings = workspace.settings
	if opts.force:
		print("`--force` option detected; removing all cached artifacts.", flush=True)
		clean_all(workspace, lint=opts.task == "lint")
		print("Cached files removed.", flush=True)

	runner_args = ["--force"] if opts.force else []
	runner_args.extend(opts.runner_args)

	if opts.task == "build-typecheck":
		return build_all_summaries(workspace, runner_args=runner_args, logs=opts.logs, task_runner=task_runner)

	# Linting reads sources directly and needs no summaries.
	setup_code = prepare_checks(
		workspace,
		runner_args=runner_args,
		logs="summary",
		build_summaries=opts.task == "typecheck",
		installer=installer,
		task_runner=task_runner,
	)
	if setup_code != 0:
		return setup_code

	if opts.task == "lint":
		args = [*settings.runner_args_for("lint"), *runner_args, "--"]
		if opts.only_show_errors:
			args.append("--quiet")
		print("Linting with the task runner...", flush=True)
		result = task_runner.run(workspace, "lint", args, logs=opts.logs)
		print("Finished linting!", flush=True)
		return result.exit_code

	print("Typechecking with the task runner...", flush=True)
	result = task_runner.run(
		workspace,
		"typecheck",
		[*settings.runner_args_for("typecheck"), *runner_args],
		logs=opts.logs,
		filter_output=True,
	)
	print("Finished typechecking!", flush=True)
	return result.exit_code
