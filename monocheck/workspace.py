# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Workspace package registry.

A workspace is a directory tree holding many packages, each with its own
`package.json` manifest. Packages are addressed by *slug*: the last
`/`-separated segment of the manifest name (`@acme/core` -> `core`).

Discovery happens once per process. Every manifest is validated up front so a
malformed package aborts the run before any command mutates the filesystem.
"""

from __future__ import annotations

import fnmatch
import json
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from functools import cached_property
from pathlib import Path
from typing import Any, Mapping

import yaml

from monocheck.errors import MonocheckError
from monocheck.settings import MonocheckSettings, load_settings

MANIFEST_FILENAME = "package.json"
PNPM_WORKSPACE_FILENAME = "pnpm-workspace.yaml"

# Conditions consulted when resolving an export, in priority order.
SUMMARY_CONDITIONS: tuple[str, ...] = ("typecheck", "types")
SOURCE_CONDITIONS: tuple[str, ...] = ("default", "import", "require")


@dataclass(frozen=True)
class ExportTarget:
	"""The two files an export path can resolve to, as written in the manifest."""

	source: str | None
	summary: str | None = None


@dataclass(frozen=True)
class Manifest:
	name: str
	dependencies: dict[str, str] = field(default_factory=dict)
	dev_dependencies: dict[str, str] = field(default_factory=dict)
	peer_dependencies: dict[str, str] = field(default_factory=dict)
	exports: dict[str, ExportTarget] = field(default_factory=dict)

	def has_dependencies(self) -> bool:
		return bool(self.dependencies or self.dev_dependencies or self.peer_dependencies)


@dataclass(frozen=True)
class WorkspacePackage:
	slug: str
	directory: Path
	manifest: Manifest

	def entry_points(self) -> list[Path]:
		"""Absolute source files behind every export path of this package."""
		out: list[Path] = []
		for target in self.manifest.exports.values():
			if target.source is not None:
				out.append((self.directory / target.source).resolve())
		return out


def slug_for_name(name: str) -> str:
	return name.split("/")[-1]


def _malformed(message: str, *, path: Path, slug: str | None = None) -> MonocheckError:
	return MonocheckError(reason_code="MALFORMED_MANIFEST", message=message, package_slug=slug, path=str(path))


def _dependency_map(raw: Any, *, key: str, path: Path) -> dict[str, str]:
	if raw is None:
		return {}
	if not isinstance(raw, Mapping) or not all(isinstance(k, str) and isinstance(v, str) for k, v in raw.items()):
		raise _malformed(f"'{key}' must map package names to version ranges", path=path)
	return dict(raw)


def _pick_condition(value: Any, conditions: tuple[str, ...], *, path: Path) -> str | None:
	"""
	First target reachable through `conditions`, in the object's key order.

	Nested objects under a source condition (`{"import": {"typecheck": ...}}`)
	are searched as well, since those conditions are active for the compiler too.
	"""
	if value is None or isinstance(value, str):
		return value
	if isinstance(value, list):
		raise _malformed("array-shaped export targets are not supported", path=path)
	if not isinstance(value, Mapping):
		raise _malformed(f"unsupported export target: {value!r}", path=path)
	for key, target in value.items():
		if key in conditions:
			return _pick_condition(target, conditions, path=path)
		if key in SOURCE_CONDITIONS and isinstance(target, Mapping):
			found = _pick_condition(target, conditions, path=path)
			if found is not None:
				return found
	return None


def _check_single_summary(value: Any, *, path: Path) -> None:
	if not isinstance(value, Mapping):
		return
	found = [key for key in value if key in SUMMARY_CONDITIONS]
	if len(found) > 1:
		raise _malformed(f"export declares more than one summary condition: {', '.join(found)}", path=path)
	for target in value.values():
		_check_single_summary(target, path=path)


def _export_target(value: Any, *, path: Path) -> ExportTarget:
	if isinstance(value, str):
		return ExportTarget(source=value)
	if isinstance(value, list):
		raise _malformed("array-shaped export targets are not supported", path=path)
	if not isinstance(value, Mapping):
		raise _malformed(f"unsupported export target: {value!r}", path=path)
	_check_single_summary(value, path=path)
	return ExportTarget(
		source=_pick_condition(value, SOURCE_CONDITIONS, path=path),
		summary=_pick_condition(value, SUMMARY_CONDITIONS, path=path),
	)


def parse_exports(raw: Any, *, path: Path) -> dict[str, ExportTarget]:
	"""
	Normalize the `exports` field into `{export path: ExportTarget}`.

	Accepted shapes:
	- `"./src/index.ts"` (shorthand for the `.` export),
	- `{"typecheck": ..., "default": ...}` (conditions for the `.` export),
	- `{".": ..., "./sub": ...}` (subpath map, each value a string or conditions).
	"""
	if raw is None:
		return {}
	if isinstance(raw, str):
		return {".": ExportTarget(source=raw)}
	if isinstance(raw, list):
		raise _malformed("array-shaped 'exports' is not supported", path=path)
	if not isinstance(raw, Mapping):
		raise _malformed("'exports' must be a string or an object", path=path)
	subpath_keys = [k for k in raw.keys() if k.startswith(".")]
	if subpath_keys and len(subpath_keys) != len(raw):
		raise _malformed("'exports' mixes subpaths and conditions", path=path)
	if not subpath_keys:
		return {".": _export_target(raw, path=path)}
	return {key: _export_target(value, path=path) for key, value in raw.items()}


def parse_manifest(data: Any, *, path: Path) -> Manifest:
	if not isinstance(data, Mapping):
		raise _malformed("manifest must be a JSON object", path=path)
	name = data.get("name")
	if not isinstance(name, str) or not name:
		raise _malformed("manifest is missing a name", path=path)
	return Manifest(
		name=name,
		dependencies=_dependency_map(data.get("dependencies"), key="dependencies", path=path),
		dev_dependencies=_dependency_map(data.get("devDependencies"), key="devDependencies", path=path),
		peer_dependencies=_dependency_map(data.get("peerDependencies"), key="peerDependencies", path=path),
		exports=parse_exports(data.get("exports"), path=path),
	)


def read_manifest(directory: Path) -> Manifest:
	path = directory / MANIFEST_FILENAME
	try:
		data = json.loads(path.read_text(encoding="utf-8"))
	except json.JSONDecodeError as err:
		raise _malformed(f"manifest is not valid JSON: {err}", path=path) from err
	return parse_manifest(data, path=path)


def _workspace_patterns(root: Path) -> list[str] | None:
	pnpm_path = root / PNPM_WORKSPACE_FILENAME
	if pnpm_path.is_file():
		data = yaml.safe_load(pnpm_path.read_text(encoding="utf-8")) or {}
		if not isinstance(data, dict):
			raise MonocheckError(
				reason_code="MALFORMED_CONFIG",
				message="workspace file must be a mapping",
				path=str(pnpm_path),
			)
		patterns = data.get("packages") or []
		if not isinstance(patterns, list) or not all(isinstance(p, str) for p in patterns):
			raise MonocheckError(
				reason_code="MALFORMED_CONFIG",
				message="'packages' must be a list of globs",
				path=str(pnpm_path),
			)
		return list(patterns)

	manifest_path = root / MANIFEST_FILENAME
	if manifest_path.is_file():
		try:
			data = json.loads(manifest_path.read_text(encoding="utf-8"))
		except json.JSONDecodeError:
			return None
		workspaces = data.get("workspaces") if isinstance(data, dict) else None
		if isinstance(workspaces, dict):
			workspaces = workspaces.get("packages")
		if isinstance(workspaces, list) and all(isinstance(p, str) for p in workspaces):
			return list(workspaces)
	return None


def find_workspace_root(start: Path) -> Path:
	"""Search upward from `start` for a directory that declares workspace packages."""
	start = start.resolve()
	for candidate in (start, *start.parents):
		if _workspace_patterns(candidate) is not None:
			return candidate
	raise MonocheckError(
		reason_code="WORKSPACE_NOT_FOUND",
		message=f"no {PNPM_WORKSPACE_FILENAME} or package.json 'workspaces' found above {start}",
	)


def _expand_patterns(root: Path, patterns: list[str], *, deps_dir: str) -> list[Path]:
	includes = [p.rstrip("/") for p in patterns if not p.startswith("!")]
	excludes = [p[1:].rstrip("/") for p in patterns if p.startswith("!")]
	found: dict[Path, None] = {}
	for pattern in includes:
		if pattern in ("", "."):
			continue
		for candidate in sorted(root.glob(pattern)):
			if not candidate.is_dir() or not (candidate / MANIFEST_FILENAME).is_file():
				continue
			rel = candidate.relative_to(root).as_posix()
			if deps_dir in rel.split("/"):
				continue
			if any(fnmatch.fnmatch(rel, ex) for ex in excludes):
				continue
			found[candidate.resolve()] = None
	return list(found)


class Workspace:
	"""Registry of every package in one workspace, discovered lazily and once."""

	def __init__(self, root: Path, settings: MonocheckSettings | None = None) -> None:
		self.root = root.resolve()
		self.settings = settings if settings is not None else load_settings(self.root)

	@classmethod
	def discover(cls, start: Path | None = None) -> "Workspace":
		return cls(find_workspace_root(start if start is not None else Path.cwd()))

	@cached_property
	def _packages_by_slug(self) -> dict[str, WorkspacePackage]:
		patterns = _workspace_patterns(self.root) or []
		directories = _expand_patterns(self.root, patterns, deps_dir=self.settings.deps_dir)
		# Manifest reads are independent and read-only.
		with ThreadPoolExecutor(max_workers=min(16, len(directories) or 1)) as pool:
			manifests = list(pool.map(read_manifest, directories))

		out: dict[str, WorkspacePackage] = {}
		for directory, manifest in zip(directories, manifests):
			slug = slug_for_name(manifest.name)
			if slug in out:
				raise _malformed(
					f"slug '{slug}' is used by both {out[slug].directory} and {directory}",
					path=directory / MANIFEST_FILENAME,
					slug=slug,
				)
			out[slug] = WorkspacePackage(slug=slug, directory=directory, manifest=manifest)
		return dict(sorted(out.items()))

	def list_packages(self) -> list[WorkspacePackage]:
		return list(self._packages_by_slug.values())

	def slugs(self) -> list[str]:
		return list(self._packages_by_slug.keys())

	def package(self, slug: str) -> WorkspacePackage:
		pkg = self._packages_by_slug.get(slug)
		if pkg is None:
			raise MonocheckError(reason_code="UNKNOWN_PACKAGE", message=f"package {slug} not found", package_slug=slug)
		return pkg

	def package_dir(self, slug: str) -> Path:
		return self.package(slug).directory

	def manifest_of(self, slug: str) -> Manifest:
		return self.package(slug).manifest

	def package_categories(self) -> dict[str, list[str]]:
		"""Group slugs by their workspace-relative parent directory (`packages`, `apps`, ...)."""
		categories: dict[str, list[str]] = {}
		for pkg in self.list_packages():
			category = pkg.directory.parent.relative_to(self.root).as_posix()
			categories.setdefault(category, []).append(pkg.slug)
		return categories

	def category_of(self, slug: str) -> str:
		return self.package(slug).directory.parent.relative_to(self.root).as_posix()

	def entry_point_paths(self) -> frozenset[Path]:
		"""Exact source files that are some package's declared public entry point."""
		paths: set[Path] = set()
		for pkg in self.list_packages():
			paths.update(pkg.entry_points())
		return frozenset(paths)
