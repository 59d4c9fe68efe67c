# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
External process boundary.

The compiler and the linter are Node.js programs. They are started through a
small bundled host script (`host/overlay_host.cjs`) that serves an `Overlay`
to the child's file reads, so the child sees the `FileSystem` view built for
that invocation without anything being written to the workspace.
"""

from __future__ import annotations

import json
import os
import re
import subprocess
import sys
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Literal

from monocheck.errors import MonocheckError
from monocheck.vfs import Overlay

LogMode = Literal["full", "summary", "none"]

HOST_SCRIPT = Path(__file__).with_name("host") / "overlay_host.cjs"

ANSI_RE = re.compile(r"\x1b\[[0-9;?]*[A-Za-z]")


def strip_ansi(text: str) -> str:
	return ANSI_RE.sub("", text)


@dataclass(frozen=True)
class ToolInvocation:
	tool: Literal["compiler", "linter"]
	args: list[str]
	# Package directory the tool runs in.
	cwd: Path
	workspace_root: Path
	overlay: Overlay = field(default_factory=Overlay)
	env: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class ToolResult:
	exit_code: int
	output: str = ""


def stream_process(
	cmd: list[str],
	*,
	cwd: Path,
	logs: LogMode,
	env: dict[str, str] | None = None,
	line_filter: Callable[[str], str | None] | None = None,
) -> ToolResult:
	"""
	Run `cmd`, merging stderr into stdout.

	`full` echoes lines as they arrive. Otherwise lines are buffered and only
	flushed when the process exits non-zero. `line_filter` may rewrite a line or
	drop it (return None) before it is logged or buffered.
	"""
	full_env = dict(os.environ)
	full_env.update(env or {})
	try:
		proc = subprocess.Popen(
			cmd,
			cwd=cwd,
			env=full_env,
			stdout=subprocess.PIPE,
			stderr=subprocess.STDOUT,
			text=True,
			errors="replace",
		)
	except FileNotFoundError as err:
		raise MonocheckError(reason_code="TOOL_NOT_FOUND", message=f"cannot run {cmd[0]}: {err}") from err

	buffered: list[str] = []
	assert proc.stdout is not None
	for line in proc.stdout:
		if line_filter is not None:
			filtered = line_filter(line)
			if filtered is None:
				continue
			line = filtered
		if logs == "full":
			sys.stdout.write(line)
			sys.stdout.flush()
		buffered.append(line)
	exit_code = proc.wait()

	if logs != "full" and exit_code != 0:
		sys.stdout.write("".join(buffered))
		sys.stdout.flush()
	return ToolResult(exit_code=exit_code, output="".join(buffered))


class ToolRunner:
	"""Runs one compiler or linter invocation."""

	def run(self, invocation: ToolInvocation, *, logs: LogMode) -> ToolResult:
		raise NotImplementedError


class NodeToolRunner(ToolRunner):
	def __init__(self, node: str = "node") -> None:
		self.node = node

	def run(self, invocation: ToolInvocation, *, logs: LogMode) -> ToolResult:
		if invocation.tool == "compiler":
			script = find_compiler(invocation.cwd)
		else:
			script = find_linter(invocation.workspace_root)
		with tempfile.TemporaryDirectory(prefix="monocheck-") as tmp:
			overlay_path = Path(tmp) / "overlay.json"
			overlay_path.write_text(json.dumps(invocation.overlay.to_dict()), encoding="utf-8")
			cmd = [self.node, str(HOST_SCRIPT), str(overlay_path), str(script), *invocation.args]
			return stream_process(cmd, cwd=invocation.cwd, logs=logs, env=invocation.env)


def find_compiler(package_dir: Path) -> Path:
	"""`typescript/lib/tsc.js` as resolved from `package_dir`."""
	for directory in (package_dir, *package_dir.parents):
		candidate = directory / "node_modules" / "typescript" / "lib" / "tsc.js"
		if candidate.is_file():
			return candidate
	raise MonocheckError(
		reason_code="TOOL_NOT_FOUND",
		message="typescript is not installed (node_modules/typescript/lib/tsc.js)",
		path=str(package_dir),
	)


def find_linter(workspace_root: Path) -> Path:
	candidate = workspace_root / "node_modules" / "eslint" / "bin" / "eslint.js"
	if not candidate.is_file():
		raise MonocheckError(reason_code="TOOL_NOT_FOUND", message="eslint is not installed", path=str(candidate))
	return candidate
