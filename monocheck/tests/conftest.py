# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Callable

import pytest

from monocheck.aliases import clear_rewrite_rules
from monocheck.tools import LogMode, ToolInvocation, ToolResult, ToolRunner
from monocheck.workspace import Workspace


class RecordingRunner(ToolRunner):
	"""Stands in for the compiler/linter process; records what it was asked to run."""

	def __init__(
		self,
		exit_code: int = 0,
		output: str = "",
		emit: Callable[[ToolInvocation], None] | None = None,
	) -> None:
		self.exit_code = exit_code
		self.output = output
		self.emit = emit
		self.invocations: list[ToolInvocation] = []

	def run(self, invocation: ToolInvocation, *, logs: LogMode) -> ToolResult:
		self.invocations.append(invocation)
		if self.emit is not None:
			self.emit(invocation)
		if self.output and (logs == "full" or self.exit_code != 0):
			sys.stdout.write(self.output)
		return ToolResult(exit_code=self.exit_code, output=self.output)


def emit_summaries_from_disk(invocation: ToolInvocation) -> None:
	"""Fake summary emission: copy each `.ts` under rootDir to `<outDir>/<rel>.d.ts`."""
	config_text = next(text for path, text in invocation.overlay.files.items() if path.endswith("tsconfig.summary.json"))
	options = json.loads(config_text)["compilerOptions"]
	root_dir = Path(options["rootDir"])
	out_dir = Path(options["outDir"])
	for src in sorted(root_dir.rglob("*.ts")):
		if src.name.endswith(".d.ts"):
			continue
		dest = out_dir / src.relative_to(root_dir)
		dest = dest.with_name(src.name[: -len(".ts")] + ".d.ts")
		dest.parent.mkdir(parents=True, exist_ok=True)
		dest.write_text(src.read_text(encoding="utf-8"), encoding="utf-8")


def write_file(path: Path, text: str) -> None:
	path.parent.mkdir(parents=True, exist_ok=True)
	path.write_text(text, encoding="utf-8")


def write_package(
	root: Path,
	rel_dir: str,
	manifest: dict,
	files: dict[str, str] | None = None,
) -> Path:
	directory = root / rel_dir
	write_file(directory / "package.json", json.dumps(manifest, indent=2))
	for rel, text in (files or {}).items():
		write_file(directory / rel, text)
	return directory


@pytest.fixture(autouse=True)
def _fresh_rewrite_rules() -> None:
	clear_rewrite_rules()


@pytest.fixture
def make_runner() -> type[RecordingRunner]:
	return RecordingRunner


@pytest.fixture
def summary_emitter() -> Callable[[ToolInvocation], None]:
	return emit_summaries_from_disk


@pytest.fixture
def cyclic_workspace(tmp_path: Path) -> Workspace:
	"""
	Two packages whose public entry points import types from each other:
	`core` uses `Route` from `api`, `api` uses `Model` from `core`.
	"""
	write_file(tmp_path / "pnpm-workspace.yaml", "packages:\n  - 'packages/*'\n")
	write_file(tmp_path / "package.json", json.dumps({"name": "root", "private": True}))
	tsconfig = {
		"compilerOptions": {
			"strict": True,
			"module": "NodeNext",
			"moduleResolution": "NodeNext",
			"paths": {"~/*": ["./src/*"]},
		},
		"include": ["index.ts", "src"],
	}
	for slug, other, exported, imported in (
		("core", "api", "Model", "Route"),
		("api", "core", "Route", "Model"),
	):
		config = dict(tsconfig, references=[{"path": f"../{other}"}])
		write_package(
			tmp_path,
			f"packages/{slug}",
			{
				"name": f"@acme/{slug}",
				"dependencies": {f"@acme/{other}": "workspace:*"},
				"exports": {
					".": {"typecheck": "./dist-typecheck/index.d.ts", "default": "./index.ts"},
				},
			},
			{
				"tsconfig.json": json.dumps(config, indent="\t"),
				"index.ts": "export * from './src/index.js'\n",
				"src/index.ts": (
					f"import type {{ {imported} }} from '@acme/{other}'\n"
					f"import {{ describe }} from '~/describe.js'\n"
					f"export interface {exported} {{ peer?: {imported}; label: string }}\n"
					"export { describe }\n"
				),
				"src/describe.ts": "export function describe(label: string): string {\n\treturn `<${label}>`\n}\n",
				"node_modules/.keep": "",
			},
		)
	return Workspace(tmp_path)
