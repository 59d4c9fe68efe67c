# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Lint one package.

The linter applies auto-fixes, so it must always see real file contents. It
never opens a parsing scope, which keeps alias rewriting out of its view; the
only synthesized files are lint configuration stubs for directories that have a
base configuration but no lint variant.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from monocheck.tools import LogMode, NodeToolRunner, ToolInvocation, ToolRunner
from monocheck.tsconfig import BASE_CONFIG, LINT_VARIANT
from monocheck.vfs import InterceptingFileSystem, build_overlay
from monocheck.workspace import Workspace


@dataclass(frozen=True)
class LintOptions:
	package_slug: str
	only_show_errors: bool = False
	linter_args: list[str] = field(default_factory=list)
	logs: LogMode = "full"


def lint_config_candidates(package_dir: Path, *, skip_dirs: frozenset[str]) -> list[Path]:
	"""A lint variant next to every base configuration in the package."""
	out: list[Path] = []
	for dirpath, dirnames, filenames in os.walk(package_dir):
		dirnames[:] = sorted(d for d in dirnames if d not in skip_dirs)
		if BASE_CONFIG in filenames:
			out.append(Path(dirpath) / LINT_VARIANT)
	return out


def lint_package(workspace: Workspace, opts: LintOptions, *, runner: ToolRunner | None = None) -> int:
	runner = runner if runner is not None else NodeToolRunner()
	settings = workspace.settings
	pkg = workspace.package(opts.package_slug)

	fs = InterceptingFileSystem(excluded_dirs=(settings.deps_dir,))
	skip_dirs = frozenset({settings.deps_dir, settings.summary_root, ".turbo", ".git"})
	overlay = build_overlay(fs, lint_config_candidates(pkg.directory, skip_dirs=skip_dirs), parse=False)

	args = ["--cache", "--fix"]
	if opts.only_show_errors:
		args.append("--quiet")
	args.extend(opts.linter_args)
	args.append(".")

	result = runner.run(
		ToolInvocation(tool="linter", args=args, cwd=pkg.directory, workspace_root=workspace.root, overlay=overlay),
		logs=opts.logs,
	)
	return result.exit_code
