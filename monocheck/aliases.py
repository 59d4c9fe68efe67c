# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Alias rewriting: `~/utils/x.js` -> `../utils/x.js`.

The compiler resolves `compilerOptions.paths` aliases while checking, but it
neither rewrites them in emitted summaries nor when a package is consumed as
plain source from another package with different aliases. Rewriting turns
every aliased module specifier into the equivalent relative specifier, so the
text means the same thing no matter which configuration reads it.
"""

from __future__ import annotations

import os
import re
from functools import lru_cache
from pathlib import Path
from typing import Callable

from monocheck.tsconfig import PathAliases, resolve_path_aliases

RewriteFn = Callable[[str, Path], str]

SOURCE_EXTENSIONS = frozenset({".js", ".jsx", ".ts", ".tsx", ".mjs", ".cjs", ".mts", ".cts"})

# `from '...'`, `import '...'`, `import('...')`, `require('...')`
SPECIFIER_RE = re.compile(
	r"""(?P<lead>\bfrom\s*|\bimport\s*\(?\s*|\brequire\s*\(\s*)(?P<quote>['"])(?P<spec>[^'"\r\n]+)(?P=quote)"""
)

_JS_TO_TS = {".js": (".ts", ".tsx", ".d.ts"), ".jsx": (".tsx",), ".mjs": (".mts", ".d.mts"), ".cjs": (".cts", ".d.cts")}
_PROBE_SUFFIXES = (".ts", ".tsx", ".d.ts", ".js", ".jsx", ".mts", ".cts")


def replace_specifiers(text: str, fn: Callable[[str], str]) -> str:
	"""Apply `fn` to every module specifier in `text`; everything else is kept byte-for-byte."""

	def _sub(m: re.Match[str]) -> str:
		spec = m.group("spec")
		new_spec = fn(spec)
		if new_spec == spec:
			return m.group(0)
		return f"{m.group('lead')}{m.group('quote')}{new_spec}{m.group('quote')}"

	return SPECIFIER_RE.sub(_sub, text)


def _module_exists(path: Path) -> bool:
	if path.is_file():
		return True
	for ts_suffix in _JS_TO_TS.get(path.suffix, ()):
		if path.with_name(path.name[: -len(path.suffix)] + ts_suffix).is_file():
			return True
	for suffix in _PROBE_SUFFIXES:
		if path.with_name(path.name + suffix).is_file() or (path / f"index{suffix}").is_file():
			return True
	return False


def _match_alias(spec: str, pattern: str) -> str | None:
	"""The text captured by `*` when `spec` matches `pattern`, `""` for exact matches."""
	if "*" not in pattern:
		return "" if spec == pattern else None
	prefix, _, suffix = pattern.partition("*")
	if len(spec) >= len(prefix) + len(suffix) and spec.startswith(prefix) and spec.endswith(suffix):
		return spec[len(prefix) : len(spec) - len(suffix)]
	return None


class AliasRewriter:
	"""Rewrite rule for one configuration file."""

	def __init__(self, aliases: PathAliases) -> None:
		self.aliases = aliases
		# Longest prefix first, as the compiler does.
		self._patterns = sorted(aliases.paths.items(), key=lambda kv: len(kv[0].partition("*")[0]), reverse=True)

	def resolve(self, spec: str) -> Path | None:
		"""Physical path an aliased specifier points at, or None if no alias matches."""
		if spec.startswith((".", "/")):
			return None
		for pattern, targets in self._patterns:
			captured = _match_alias(spec, pattern)
			if captured is None or not targets:
				continue
			candidates = [Path(os.path.normpath(self.aliases.base_dir / t.replace("*", captured))) for t in targets]
			for candidate in candidates:
				if _module_exists(candidate):
					return candidate
			return candidates[0]
		return None

	def rewrite_specifier(self, spec: str, file_path: Path) -> str:
		target = self.resolve(spec)
		if target is None:
			return spec
		rel = os.path.relpath(target, file_path.parent).replace(os.sep, "/")
		if not rel.startswith("../"):
			rel = f"./{rel}"
		return rel

	def __call__(self, text: str, file_path: Path) -> str:
		if not self._patterns:
			return text
		return replace_specifiers(text, lambda spec: self.rewrite_specifier(spec, file_path))


@lru_cache(maxsize=None)
def _rewrite_rule_for(config_path: Path) -> AliasRewriter:
	return AliasRewriter(resolve_path_aliases(config_path))


def rewrite_rule(config_path: Path) -> RewriteFn:
	"""Memoized rewrite rule keyed by the resolved configuration path."""
	return _rewrite_rule_for(config_path.resolve())


def clear_rewrite_rules() -> None:
	_rewrite_rule_for.cache_clear()
