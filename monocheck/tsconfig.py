# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Compiler configuration files: discovery, variants and `extends` resolution.

Each package (or subtree) carries a base `tsconfig.json`. Two optional
siblings refine it: `tsconfig.typecheck.json` (preferred for alias rewriting
when present) and `tsconfig.lint.json` (synthesized on demand when absent, see
`monocheck.vfs`).
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable

from monocheck import jsonc
from monocheck.errors import MonocheckError

BASE_CONFIG = "tsconfig.json"
TYPECHECK_VARIANT = "tsconfig.typecheck.json"
LINT_VARIANT = "tsconfig.lint.json"
SUMMARY_VARIANT = "tsconfig.summary.json"


def find_base_config(start_dir: Path, *, exists: Callable[[Path], bool] = Path.is_file) -> Path | None:
	"""Nearest `tsconfig.json` at or above `start_dir`."""
	for directory in (start_dir, *start_dir.parents):
		candidate = directory / BASE_CONFIG
		if exists(candidate):
			return candidate
	return None


def alias_config_for(file_path: Path, *, exists: Callable[[Path], bool] = Path.is_file) -> Path | None:
	"""
	The configuration whose path aliases apply to `file_path`.

	Starts at the file's directory and walks up to the nearest base
	configuration; a typecheck variant sitting next to it wins.
	"""
	base = find_base_config(file_path.parent, exists=exists)
	if base is None:
		return None
	variant = base.with_name(TYPECHECK_VARIANT)
	if exists(variant):
		return variant
	return base


def _resolve_extends(spec: str, *, from_dir: Path) -> Path | None:
	if spec.startswith(".") or Path(spec).is_absolute():
		candidate = (from_dir / spec).resolve()
		if candidate.is_file():
			return candidate
		with_suffix = candidate.with_name(candidate.name + ".json")
		if with_suffix.is_file():
			return with_suffix
		return None

	# Package specifier: look it up in the nearest dependency directories.
	for directory in (from_dir, *from_dir.parents):
		base = directory / "node_modules" / spec
		for candidate in (base, base.with_name(base.name + ".json"), base / BASE_CONFIG):
			if candidate.is_file():
				return candidate.resolve()
	return None


def load_config(path: Path) -> dict[str, Any]:
	data = jsonc.load_path(path)
	if not isinstance(data, dict):
		raise MonocheckError(reason_code="MALFORMED_CONFIG", message="configuration must be a JSON object", path=str(path))
	return data


def load_config_chain(path: Path) -> list[tuple[Path, dict[str, Any]]]:
	"""
	`path` followed by every configuration it (transitively) extends.

	The list is ordered from most to least specific. Unresolvable `extends`
	entries are skipped; the compiler reports those itself.
	"""
	chain: list[tuple[Path, dict[str, Any]]] = []
	seen: set[Path] = set()
	pending: list[Path] = [path.resolve()]
	while pending:
		current = pending.pop(0)
		if current in seen:
			continue
		seen.add(current)
		data = load_config(current)
		chain.append((current, data))
		extends = data.get("extends")
		specs = [extends] if isinstance(extends, str) else extends if isinstance(extends, list) else []
		# With several parents, later entries override earlier ones.
		for spec in reversed(specs):
			if not isinstance(spec, str):
				continue
			resolved = _resolve_extends(spec, from_dir=current.parent)
			if resolved is not None:
				pending.append(resolved)
	return chain


@dataclass(frozen=True)
class PathAliases:
	config_path: Path
	# Directory the right-hand sides of `paths` are relative to.
	base_dir: Path
	paths: dict[str, list[str]]


def resolve_path_aliases(config_path: Path) -> PathAliases:
	chain = load_config_chain(config_path)
	paths: dict[str, list[str]] | None = None
	paths_dir: Path | None = None
	base_url: Path | None = None
	for path, data in chain:
		options = data.get("compilerOptions")
		if not isinstance(options, dict):
			continue
		if paths is None and isinstance(options.get("paths"), dict):
			raw = options["paths"]
			paths = {
				k: [t for t in v if isinstance(t, str)]
				for k, v in raw.items()
				if isinstance(k, str) and isinstance(v, list)
			}
			paths_dir = path.parent
		if base_url is None and isinstance(options.get("baseUrl"), str):
			base_url = (path.parent / options["baseUrl"]).resolve()

	base_dir = base_url or paths_dir or config_path.resolve().parent
	return PathAliases(config_path=config_path.resolve(), base_dir=base_dir, paths=paths or {})


def strip_references(data: dict[str, Any]) -> dict[str, Any]:
	"""Copy of a configuration without its project-reference list."""
	return {k: v for k, v in data.items() if k != "references"}
