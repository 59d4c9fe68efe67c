# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Type-summary generation.

A package's summaries (declaration files under `<summaryRoot>/`, mirroring
`<sourceRoot>/`) are what other packages type-check against. They are built
without checking the package itself:

- the configuration is replaced by a derived copy without project references,
  so the compiler does not refuse cyclic workspaces and treats dependencies as
  ordinary imports;
- every source file is alias-rewritten and carries a diagnostic-suppression
  marker;
- emitted summaries are alias-rewritten afterwards, because the compiler
  leaves aliases in its own output untouched.

Correctness is established later by `monocheck.validate`, so this pass
reports success whatever the compiler's exit code was.
"""

from __future__ import annotations

import json
import os
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from monocheck.aliases import SOURCE_EXTENSIONS, rewrite_rule
from monocheck.errors import MonocheckError
from monocheck.tools import LogMode, NodeToolRunner, ToolInvocation, ToolRunner
from monocheck.tsconfig import BASE_CONFIG, SUMMARY_VARIANT, load_config, strip_references
from monocheck.vfs import SummaryPassFileSystem, build_overlay
from monocheck.workspace import Workspace

SUMMARY_SUFFIXES: tuple[str, ...] = (".d.ts", ".d.mts", ".d.cts")

# Build outputs and tool state that never hold package sources.
_NON_SOURCE_DIRS = frozenset({".turbo", ".git", "dist", "build", "coverage"})


@dataclass(frozen=True)
class GenerateOptions:
	package_slug: str
	# Relative to the package directory.
	config_file: str | None = None
	compiler_args: list[str] = field(default_factory=list)
	logs: LogMode = "full"


def _skipped_dir(name: str, skip_dirs: frozenset[str]) -> bool:
	# `<dir>.tmp-<pid>` is a staging directory of a concurrent run.
	return name in skip_dirs or name in _NON_SOURCE_DIRS or name.partition(".tmp-")[0] in skip_dirs


def package_source_files(package_dir: Path, *, skip_dirs: frozenset[str]) -> list[Path]:
	out: list[Path] = []
	for dirpath, dirnames, filenames in os.walk(package_dir):
		dirnames[:] = sorted(d for d in dirnames if not _skipped_dir(d, skip_dirs))
		for name in sorted(filenames):
			path = Path(dirpath) / name
			if path.suffix in SOURCE_EXTENSIONS:
				out.append(path)
	return out


def derived_summary_config(
	data: dict[str, Any],
	*,
	package_dir: Path,
	source_root: str,
	out_dir: Path,
) -> dict[str, Any]:
	"""
	Copy of `data` that emits only summaries of `source_root` into `out_dir`.

	Project references are dropped; pinning `rootDir` makes the emitted tree
	mirror the source tree.
	"""
	derived = strip_references(data)
	derived.pop("files", None)
	options = dict(derived.get("compilerOptions") or {})
	options.pop("tsBuildInfoFile", None)
	options.update(
		{
			"noEmit": False,
			"noEmitOnError": False,
			"declaration": True,
			"emitDeclarationOnly": True,
			"declarationMap": False,
			"composite": False,
			"incremental": False,
			"rootDir": str(package_dir / source_root),
			"outDir": str(out_dir),
		}
	)
	derived["compilerOptions"] = options
	derived["include"] = [str(package_dir / source_root)]
	return derived


def _summary_files(directory: Path) -> list[Path]:
	return sorted(p for p in directory.rglob("*") if p.is_file() and p.name.endswith(SUMMARY_SUFFIXES))


def rewrite_emitted_summaries(staging_dir: Path, *, source_dir: Path, config_path: Path) -> int:
	"""
	Alias-rewrite every emitted summary in place.

	Each summary is rewritten as if it sat at its source-equivalent location;
	since the two trees mirror each other, the resulting relative specifiers
	resolve inside the summary tree.
	"""
	rule = rewrite_rule(config_path)
	count = 0
	for path in _summary_files(staging_dir):
		source_equivalent = source_dir / path.relative_to(staging_dir)
		text = path.read_text(encoding="utf-8")
		rewritten = rule(text, source_equivalent)
		if rewritten != text:
			path.write_text(rewritten, encoding="utf-8")
		count += 1
	return count


def _replace_dir(staging_dir: Path, target_dir: Path) -> None:
	retired = target_dir.with_name(f"{target_dir.name}.old-{os.getpid()}")
	if target_dir.exists():
		os.replace(target_dir, retired)
	os.replace(staging_dir, target_dir)
	shutil.rmtree(retired, ignore_errors=True)


def generate_summaries(workspace: Workspace, opts: GenerateOptions, *, runner: ToolRunner | None = None) -> int:
	runner = runner if runner is not None else NodeToolRunner()
	settings = workspace.settings
	pkg = workspace.package(opts.package_slug)
	config_path = (pkg.directory / (opts.config_file or BASE_CONFIG)).resolve()
	if not config_path.is_file():
		raise MonocheckError(
			reason_code="MALFORMED_CONFIG",
			message="configuration file not found",
			package_slug=pkg.slug,
			path=str(config_path),
		)

	if opts.logs != "none":
		print(f"Generating `{settings.summary_root}` for {pkg.slug}...", flush=True)

	target_dir = pkg.directory / settings.summary_root
	staging_dir = pkg.directory / f"{settings.summary_root}.tmp-{os.getpid()}"
	for stale in pkg.directory.glob(f"{settings.summary_root}.tmp-*"):
		shutil.rmtree(stale, ignore_errors=True)

	derived_path = config_path.with_name(SUMMARY_VARIANT)
	derived = derived_summary_config(
		load_config(config_path),
		package_dir=pkg.directory,
		source_root=settings.source_root,
		out_dir=staging_dir,
	)
	fs = SummaryPassFileSystem(
		pkg.directory,
		excluded_dirs=(settings.deps_dir,),
		virtual_files={derived_path: (json.dumps(derived, indent="\t") + "\n", config_path)},
	)
	skip_dirs = frozenset({settings.deps_dir, settings.summary_root})
	# The compiler also parses other workspace packages reached through imports;
	# those get the parsing view under their own alias configuration.
	candidates = package_source_files(pkg.directory, skip_dirs=skip_dirs)
	for other in workspace.list_packages():
		if other.slug != pkg.slug:
			candidates.extend(package_source_files(other.directory, skip_dirs=skip_dirs))
	overlay = build_overlay(fs, candidates, parse=True)

	result = runner.run(
		ToolInvocation(
			tool="compiler",
			args=["-p", str(derived_path), *opts.compiler_args],
			cwd=pkg.directory,
			workspace_root=workspace.root,
			overlay=overlay,
		),
		logs=opts.logs,
	)

	if not staging_dir.is_dir():
		# Nothing emitted: keep whatever summaries were there before.
		if opts.logs != "none":
			print(f"No summaries emitted for {pkg.slug} (compiler exit code {result.exit_code})", flush=True)
		return 0

	count = rewrite_emitted_summaries(staging_dir, source_dir=pkg.directory / settings.source_root, config_path=config_path)
	_replace_dir(staging_dir, target_dir)

	if opts.logs != "none":
		if result.exit_code != 0:
			print(f"Compiler exited with {result.exit_code} for {pkg.slug}; ignored while generating summaries", flush=True)
		print(f"Finished generating {count} summaries for {pkg.slug}", flush=True)
	# Diagnostics were suppressed on purpose; `validate` is authoritative.
	return 0
