# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Workspace-level tool configuration (`monocheck.json`).

The file is optional; every field has a default. Unknown fields are rejected
so typos do not silently fall back to defaults.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Literal, Mapping

from monocheck import jsonc
from monocheck.errors import MonocheckError

SETTINGS_FILENAME = "monocheck.json"

RunnerTask = Literal["typecheck", "lint", "buildTypecheck"]
_RUNNER_TASKS: tuple[str, ...] = ("typecheck", "lint", "buildTypecheck")

_ALLOWED_FIELDS = {"runnerArgs", "typecheckArgs", "env", "sourceRoot", "summaryRoot", "depsDir"}


@dataclass(frozen=True)
class MonocheckSettings:
	# Either one list shared by every task or a per-task mapping.
	runner_args: list[str] | dict[str, list[str]] = field(default_factory=list)
	typecheck_args: list[str] = field(default_factory=list)
	env: dict[str, str] = field(default_factory=dict)
	source_root: str = "src"
	summary_root: str = "dist-typecheck"
	deps_dir: str = "node_modules"

	def runner_args_for(self, task: RunnerTask) -> list[str]:
		if isinstance(self.runner_args, list):
			return list(self.runner_args)
		return list(self.runner_args.get(task, []))


def _string_list(value: Any, *, what: str, source: str) -> list[str]:
	if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
		raise MonocheckError(reason_code="MALFORMED_CONFIG", message=f"{what} must be a list of strings", path=source)
	return list(value)


def _segment(value: Any, *, what: str, source: str) -> str:
	if not isinstance(value, str) or not value or "/" in value or "\\" in value or value in (".", ".."):
		raise MonocheckError(
			reason_code="MALFORMED_CONFIG",
			message=f"{what} must be a single directory name, got: {value!r}",
			path=source,
		)
	return value


def parse_settings(data: Mapping[str, Any], *, source: str = SETTINGS_FILENAME) -> MonocheckSettings:
	if not isinstance(data, Mapping):
		raise MonocheckError(reason_code="MALFORMED_CONFIG", message="settings must be a JSON object", path=source)
	unknown = sorted(set(data.keys()) - _ALLOWED_FIELDS)
	if unknown:
		raise MonocheckError(
			reason_code="MALFORMED_CONFIG",
			message=f"unknown settings fields: {', '.join(unknown)}",
			path=source,
		)

	runner_args: list[str] | dict[str, list[str]] = []
	raw_runner = data.get("runnerArgs")
	if isinstance(raw_runner, Mapping):
		unknown_tasks = sorted(set(raw_runner.keys()) - set(_RUNNER_TASKS))
		if unknown_tasks:
			raise MonocheckError(
				reason_code="MALFORMED_CONFIG",
				message=f"runnerArgs has unknown tasks: {', '.join(unknown_tasks)}",
				path=source,
			)
		runner_args = {
			task: _string_list(args, what=f"runnerArgs.{task}", source=source) for task, args in raw_runner.items()
		}
	elif raw_runner is not None:
		runner_args = _string_list(raw_runner, what="runnerArgs", source=source)

	env: dict[str, str] = {}
	raw_env = data.get("env")
	if raw_env is not None:
		if not isinstance(raw_env, Mapping) or not all(
			isinstance(k, str) and isinstance(v, str) for k, v in raw_env.items()
		):
			raise MonocheckError(reason_code="MALFORMED_CONFIG", message="env must map strings to strings", path=source)
		env = dict(raw_env)

	defaults = MonocheckSettings()
	return MonocheckSettings(
		runner_args=runner_args,
		typecheck_args=_string_list(data.get("typecheckArgs", []), what="typecheckArgs", source=source),
		env=env,
		source_root=_segment(data.get("sourceRoot", defaults.source_root), what="sourceRoot", source=source),
		summary_root=_segment(data.get("summaryRoot", defaults.summary_root), what="summaryRoot", source=source),
		deps_dir=_segment(data.get("depsDir", defaults.deps_dir), what="depsDir", source=source),
	)


def load_settings(workspace_root: Path) -> MonocheckSettings:
	path = workspace_root / SETTINGS_FILENAME
	if not path.exists():
		return MonocheckSettings()
	return parse_settings(jsonc.load_path(path), source=str(path))
