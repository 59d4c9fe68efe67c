# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
from __future__ import annotations

import argparse
import shlex
import sys
from pathlib import Path

from monocheck.errors import MonocheckError
from monocheck.lint import LintOptions, lint_package
from monocheck.orchestrate import OrchestrateOptions, clean_all, orchestrate_all, prepare_checks, running_under_task_runner
from monocheck.readiness import should_be_checked
from monocheck.summaries import GenerateOptions, generate_summaries
from monocheck.tsconfig import BASE_CONFIG
from monocheck.validate import ValidateOptions, validate_package
from monocheck.workspace import Workspace


def _build_parser() -> argparse.ArgumentParser:
	p = argparse.ArgumentParser(
		prog="monocheck",
		description="Type-check and lint workspace packages, including cyclic ones, against each other's type summaries",
	)
	p.add_argument("--cwd", type=Path, default=None, help="Directory to search for the workspace root from")
	sub = p.add_subparsers(dest="cmd", required=True)

	build = sub.add_parser("build-typecheck", help="Generate one package's type summaries (always exits 0)")
	build.add_argument("package_slug")
	build.add_argument("config_file", nargs="?", default=None, help=f"Configuration file (default: {BASE_CONFIG})")

	typecheck = sub.add_parser("typecheck", help="Type-check one package against the other packages' summaries")
	typecheck.add_argument("package_slug")
	typecheck.add_argument("config_file", nargs="?", default=BASE_CONFIG, help=f"Configuration file (default: {BASE_CONFIG})")
	typecheck.add_argument("--runner-args", default=None, help="A string of arguments to pass to the task runner")

	lint = sub.add_parser("lint", help="Lint one package (with auto-fix)")
	lint.add_argument("package_slug")
	lint.add_argument("--only-show-errors", action="store_true")
	lint.add_argument("--runner-args", default=None, help="A string of arguments to pass to the task runner")

	for name, what in (
		("turbo-build-typecheck", "Generate every package's type summaries with the task runner"),
		("turbo-typecheck", "Type-check every package with the task runner"),
		("turbo-lint", "Lint every package with the task runner"),
	):
		cmd = sub.add_parser(name, help=what)
		cmd.add_argument("-f", "--force", action="store_true", help="Remove caches and artifacts first")
		if name == "turbo-lint":
			cmd.add_argument("--only-show-errors", action="store_true")

	clean = sub.add_parser("clean", help="Remove the task runner cache and generated summaries")
	clean.add_argument("--lint", action="store_true", help="Remove lint caches instead")
	return p


def _split_runner_args(raw: str | None) -> list[str]:
	return shlex.split(raw) if raw is not None else []


def _run(args: argparse.Namespace, forwarded: list[str]) -> int:
	workspace = Workspace.discover(args.cwd)

	if args.cmd == "build-typecheck":
		return generate_summaries(
			workspace,
			GenerateOptions(
				package_slug=args.package_slug,
				config_file=args.config_file,
				compiler_args=forwarded,
				logs="full",
			),
		)

	if args.cmd in ("typecheck", "lint"):
		what = "typecheck" if args.cmd == "typecheck" else "lint"
		if not should_be_checked(workspace, args.package_slug):
			print(f"Skipping {what} for package {args.package_slug}", flush=True)
			return 0
		# Under the task runner, preparation already ran once for the whole graph.
		if not running_under_task_runner():
			code = prepare_checks(
				workspace,
				runner_args=_split_runner_args(args.runner_args),
				logs="summary" if args.cmd == "typecheck" else "full",
				build_summaries=args.cmd == "typecheck",
			)
			if code != 0:
				return code
		if args.cmd == "typecheck":
			return validate_package(
				workspace,
				ValidateOptions(
					package_slug=args.package_slug,
					config_file=args.config_file,
					compiler_args=forwarded,
				),
			)
		return lint_package(
			workspace,
			LintOptions(
				package_slug=args.package_slug,
				only_show_errors=bool(args.only_show_errors),
				linter_args=forwarded,
			),
		)

	if args.cmd in ("turbo-build-typecheck", "turbo-typecheck", "turbo-lint"):
		return orchestrate_all(
			workspace,
			OrchestrateOptions(
				task=args.cmd[len("turbo-") :],
				force=bool(args.force),
				runner_args=forwarded,
				only_show_errors=bool(getattr(args, "only_show_errors", False)),
			),
		)

	if args.cmd == "clean":
		return clean_all(workspace, lint=bool(args.lint))

	raise AssertionError("unreachable")


def main(argv: list[str] | None = None) -> int:
	p = _build_parser()
	args, forwarded = p.parse_known_args(argv)
	try:
		return _run(args, forwarded)
	except MonocheckError as err:
		print(err.format_human(), file=sys.stderr)
		return 2
