# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Dependency readiness gate.

Type checking and linting need each package's dependency directory. Packages
without one are installed in a single batched, filtered install with lifecycle
scripts disabled. Such an install is only *provisional*: a marker file in the
dependency directory records that scripts never ran, and provisional packages
are skipped until a regular install replaces the directory.
"""

from __future__ import annotations

import json
import os
import subprocess
import sys
from enum import Enum
from pathlib import Path
from typing import Iterable

from monocheck.errors import MonocheckError
from monocheck.tools import LogMode
from monocheck.workspace import Workspace, WorkspacePackage

MARKER_FILENAME = "metadata.json"


class ReadinessState(str, Enum):
	NOT_INSTALLED = "not-installed"
	PROVISIONAL = "provisional"
	READY = "ready"


def marker_path(pkg: WorkspacePackage, *, deps_dir: str) -> Path:
	return pkg.directory / deps_dir / MARKER_FILENAME


def write_marker(path: Path, *, provisional: bool) -> None:
	path.parent.mkdir(parents=True, exist_ok=True)
	tmp = path.with_name(path.name + f".tmp.{os.getpid()}")
	tmp.write_text(json.dumps({"provisional": provisional}), encoding="utf-8")
	os.replace(tmp, path)


def _marker_is_provisional(path: Path) -> bool:
	try:
		data = json.loads(path.read_text(encoding="utf-8"))
	except (OSError, json.JSONDecodeError):
		# An unreadable marker cannot vouch for a full install.
		return True
	return not isinstance(data, dict) or bool(data.get("provisional", True))


def readiness_of(pkg: WorkspacePackage, *, deps_dir: str) -> ReadinessState:
	if not pkg.manifest.has_dependencies():
		return ReadinessState.READY
	if not (pkg.directory / deps_dir).is_dir():
		return ReadinessState.NOT_INSTALLED
	marker = marker_path(pkg, deps_dir=deps_dir)
	if marker.exists() and _marker_is_provisional(marker):
		return ReadinessState.PROVISIONAL
	return ReadinessState.READY


class Installer:
	"""Installs the dependencies of the named workspace packages, scripts disabled."""

	def install(self, package_names: list[str], *, cwd: Path, logs: LogMode) -> None:
		raise NotImplementedError


class PnpmInstaller(Installer):
	def install(self, package_names: list[str], *, cwd: Path, logs: LogMode) -> None:
		cmd = [
			"pnpm",
			"install",
			"--ignore-scripts",
			"--config.skip-pnpmfile",
			*(f"--filter={name}" for name in package_names),
		]
		output = None if logs == "full" else subprocess.DEVNULL
		try:
			res = subprocess.run(cmd, cwd=cwd, stdout=output, stderr=output)
		except FileNotFoundError as err:
			raise MonocheckError(reason_code="TOOL_NOT_FOUND", message=f"cannot run pnpm: {err}") from err
		if res.returncode != 0:
			raise MonocheckError(
				reason_code="INSTALL_FAILED",
				message=f"pnpm install exited with {res.returncode}",
				path=str(cwd),
			)


def ensure_ready(
	workspace: Workspace,
	slugs: Iterable[str] | None = None,
	*,
	installer: Installer | None = None,
	logs: LogMode = "summary",
) -> dict[str, ReadinessState]:
	"""
	Bring every selected package to at least PROVISIONAL.

	READY and PROVISIONAL packages are left untouched; all NOT_INSTALLED ones
	are installed together and then marked provisional.
	"""
	installer = installer if installer is not None else PnpmInstaller()
	deps_dir = workspace.settings.deps_dir
	packages = workspace.list_packages() if slugs is None else [workspace.package(s) for s in slugs]
	states = {pkg.slug: readiness_of(pkg, deps_dir=deps_dir) for pkg in packages}

	missing = [pkg for pkg in packages if states[pkg.slug] is ReadinessState.NOT_INSTALLED]
	if not missing:
		return states

	names = [pkg.manifest.name for pkg in missing]
	print(
		f"Some packages have no `{deps_dir}` directory; installing them with scripts disabled:",
		file=sys.stderr,
		flush=True,
	)
	for name in names:
		print(f"- {name}", file=sys.stderr, flush=True)
	installer.install(names, cwd=workspace.root, logs=logs)

	for pkg in missing:
		write_marker(marker_path(pkg, deps_dir=deps_dir), provisional=True)
		states[pkg.slug] = ReadinessState.PROVISIONAL
	return states


def ensure_package_ready(
	workspace: Workspace,
	slug: str,
	*,
	installer: Installer | None = None,
	logs: LogMode = "summary",
) -> ReadinessState:
	return ensure_ready(workspace, [slug], installer=installer, logs=logs)[slug]


def should_be_checked(workspace: Workspace, slug: str) -> bool:
	"""
	False for packages whose dependencies are missing or only provisionally installed.

	A package that declares no dependencies at all is always checked, even when
	it has no dependency directory.
	"""
	pkg = workspace.package(slug)
	return readiness_of(pkg, deps_dir=workspace.settings.deps_dir) is ReadinessState.READY
