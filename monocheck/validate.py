# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Full validation of one package against the summaries of every other package.

Each workspace package's public entry point is served with its source-root
segment swapped for the summary root, so whenever the compiler reaches another
package through its entry file it continues into that package's summaries
rather than its source. Cycles between packages therefore never make the
compiler traverse a dependency's internals.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from monocheck.summaries import package_source_files
from monocheck.tools import LogMode, NodeToolRunner, ToolInvocation, ToolRunner
from monocheck.tsconfig import BASE_CONFIG
from monocheck.vfs import EntryPointSubstitutingFileSystem, InterceptingFileSystem, build_overlay
from monocheck.workspace import Workspace

SUMMARY_CONDITION = "typecheck"


@dataclass(frozen=True)
class ValidateOptions:
	package_slug: str
	config_file: str = BASE_CONFIG
	compiler_args: list[str] = field(default_factory=list)
	logs: LogMode = "full"


def compiler_args_for_validation(config_path: str, extra: list[str]) -> list[str]:
	return [
		"-p",
		config_path,
		"--noEmit",
		"--emitDeclarationOnly",
		"false",
		"--customConditions",
		SUMMARY_CONDITION,
		*extra,
	]


def validate_package(workspace: Workspace, opts: ValidateOptions, *, runner: ToolRunner | None = None) -> int:
	"""Run the compiler with every diagnostic enabled; its exit code is returned unchanged."""
	runner = runner if runner is not None else NodeToolRunner()
	settings = workspace.settings
	pkg = workspace.package(opts.package_slug)
	config_path = pkg.directory / opts.config_file

	entry_points = workspace.entry_point_paths()
	fs = EntryPointSubstitutingFileSystem(
		InterceptingFileSystem(excluded_dirs=(settings.deps_dir,)),
		entry_points=entry_points,
		source_root=settings.source_root,
		summary_root=settings.summary_root,
	)
	skip_dirs = frozenset({settings.deps_dir, settings.summary_root})
	candidates = [*package_source_files(pkg.directory, skip_dirs=skip_dirs), *sorted(entry_points)]
	overlay = build_overlay(fs, candidates, parse=True)

	if opts.logs != "none":
		print(f"Typechecking {pkg.slug}...", flush=True)
	result = runner.run(
		ToolInvocation(
			tool="compiler",
			args=compiler_args_for_validation(str(config_path), [*settings.typecheck_args, *opts.compiler_args]),
			cwd=pkg.directory,
			workspace_root=workspace.root,
			overlay=overlay,
		),
		logs=opts.logs,
	)
	return result.exit_code
