# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
File views handed to the compiler and the linter.

The same file has to look different to different readers:
- the compiler, while building its syntax tree for a file, must see aliased
  specifiers already rewritten to relative ones;
- the linter must see the real text, otherwise its auto-fixes would write the
  rewritten specifiers back to disk.

Neither tool says which view it wants. A `FileSystem` object is built for a
single tool invocation and exposes two entry points: `parsing(path)`, a scope
opened around the read that feeds syntax-tree construction, and the plain
`read_text`/`exists`/`stat` primitives every other read goes through. Only a
read of exactly the path currently in scope gets the compiler view.

External processes cannot call back into Python, so the view is materialised
as an `Overlay` (every file whose view differs from disk) before the process
starts. See `monocheck.tools` for how the overlay is served.
"""

from __future__ import annotations

import json
import os
import re
from contextlib import AbstractContextManager, nullcontext
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterable, Mapping, Sequence

from monocheck.aliases import SOURCE_EXTENSIONS, RewriteFn, replace_specifiers, rewrite_rule
from monocheck.tsconfig import BASE_CONFIG, LINT_VARIANT, alias_config_for

EXCLUDED_DIRS: tuple[str, ...] = ("node_modules",)

NOCHECK_MARKER = "// @ts-nocheck"
_TS_CHECK_RE = re.compile(r"(//\s*)@ts-check\b")

_SUMMARY_EXTENSIONS = {".ts": ".js", ".tsx": ".js", ".mts": ".mjs", ".cts": ".cjs"}


class FileSystem:
	"""Read-side capability for one tool invocation."""

	def read_text(self, path: Path) -> str:
		raise NotImplementedError

	def exists(self, path: Path) -> bool:
		raise NotImplementedError

	def stat(self, path: Path) -> os.stat_result:
		raise NotImplementedError

	def metadata_source(self, path: Path) -> Path:
		"""Real file whose metadata `stat(path)` reports."""
		return path

	def virtual_paths(self) -> frozenset[Path]:
		"""Synthetic files this view reports as present regardless of any candidate list."""
		return frozenset()

	def parsing(self, path: Path) -> AbstractContextManager[None]:
		return nullcontext()


class DiskFileSystem(FileSystem):
	def read_text(self, path: Path) -> str:
		return path.read_text(encoding="utf-8")

	def exists(self, path: Path) -> bool:
		return path.exists()

	def stat(self, path: Path) -> os.stat_result:
		return path.stat()


@dataclass(frozen=True)
class StubRule:
	"""
	A derived configuration file that should appear to exist.

	Matches `<dir>/<variant_name>` when that file is absent and
	`<dir>/<base_name>` is present; reads return `content`.
	"""

	variant_name: str
	base_name: str
	content: str

	def base_for(self, path: Path) -> Path | None:
		if path.name != self.variant_name:
			return None
		return path.with_name(self.base_name)


def _extends_everything(base_name: str) -> str:
	return json.dumps({"extends": f"./{base_name}", "include": ["**/*"]}, indent="\t") + "\n"


LINT_CONFIG_STUB = StubRule(variant_name=LINT_VARIANT, base_name=BASE_CONFIG, content=_extends_everything(BASE_CONFIG))


class _ParsingScope:
	"""Holds the parsing path of one `InterceptingFileSystem` for a `with` block."""

	def __init__(self, fs: InterceptingFileSystem, path: Path) -> None:
		self.fs = fs
		self.path = path

	def __enter__(self) -> None:
		if self.fs._parsing_path is not None:
			raise RuntimeError(f"already parsing {self.fs._parsing_path}; cannot start {self.path}")
		self.fs._parsing_path = self.path

	def __exit__(self, *exc_info) -> bool:
		self.fs._parsing_path = None
		return False


def _default_rule_for(path: Path, exists: Callable[[Path], bool]) -> RewriteFn | None:
	config = alias_config_for(path, exists=exists)
	if config is None:
		return None
	return rewrite_rule(config)


class InterceptingFileSystem(FileSystem):
	"""
	Context-sensitive view over another file system.

	`read_text(path)`, in order:
	1. paths under an excluded (third-party) directory are read unmodified;
	2. explicit virtual files and stub-rule matches are synthesized;
	3. if `path` is the file currently inside `parsing(...)` and it has a source
	   extension, the real text is alias-rewritten;
	4. everything else is read unmodified.
	"""

	def __init__(
		self,
		base: FileSystem | None = None,
		*,
		excluded_dirs: Sequence[str] = EXCLUDED_DIRS,
		stub_rules: Sequence[StubRule] = (LINT_CONFIG_STUB,),
		virtual_files: Mapping[Path, tuple[str, Path]] | None = None,
	) -> None:
		self.base = base if base is not None else DiskFileSystem()
		self.excluded_dirs = frozenset(excluded_dirs)
		self.stub_rules = tuple(stub_rules)
		# path -> (text, real file whose metadata it borrows)
		self.virtual_files: dict[Path, tuple[str, Path]] = dict(virtual_files or {})
		self._parsing_path: Path | None = None

	@property
	def parsing_path(self) -> Path | None:
		return self._parsing_path

	def parsing(self, path: Path) -> AbstractContextManager[None]:
		return _ParsingScope(self, path)

	def is_excluded(self, path: Path) -> bool:
		return any(part in self.excluded_dirs for part in path.parts)

	def _synthetic(self, path: Path) -> tuple[str, Path] | None:
		virtual = self.virtual_files.get(path)
		if virtual is not None:
			return virtual
		for rule in self.stub_rules:
			base_path = rule.base_for(path)
			if base_path is not None and not self.base.exists(path) and self.base.exists(base_path):
				return rule.content, base_path
		return None

	def rewrite(self, path: Path, text: str) -> str:
		rule = _default_rule_for(path, self.base.exists)
		if rule is None:
			return text
		return rule(text, path)

	def read_text(self, path: Path) -> str:
		if self.is_excluded(path):
			return self.base.read_text(path)
		synthetic = self._synthetic(path)
		if synthetic is not None:
			return synthetic[0]
		if path == self._parsing_path and path.suffix in SOURCE_EXTENSIONS:
			return self.rewrite(path, self.base.read_text(path))
		return self.base.read_text(path)

	def exists(self, path: Path) -> bool:
		if not self.is_excluded(path) and self._synthetic(path) is not None:
			return True
		return self.base.exists(path)

	def metadata_source(self, path: Path) -> Path:
		if not self.is_excluded(path):
			synthetic = self._synthetic(path)
			if synthetic is not None:
				return synthetic[1]
		return self.base.metadata_source(path)

	def stat(self, path: Path) -> os.stat_result:
		return self.base.stat(self.metadata_source(path))

	def virtual_paths(self) -> frozenset[Path]:
		return frozenset(self.virtual_files)


def suppress_diagnostics(text: str) -> str:
	"""
	Disable type diagnostics for one source file.

	The marker goes on the first line, or on the second one when the first line
	is an interpreter line (`#!...`), which must stay first. An existing
	`@ts-check` pragma would win over the marker, so it is flipped instead.
	"""
	if text.startswith("#!"):
		first, _sep, rest = text.partition("\n")
		if _TS_CHECK_RE.search(rest):
			return first + "\n" + _TS_CHECK_RE.sub(r"\1@ts-nocheck", rest, count=1)
		return f"{first}\n{NOCHECK_MARKER}\n{rest}"
	if _TS_CHECK_RE.search(text):
		return _TS_CHECK_RE.sub(r"\1@ts-nocheck", text, count=1)
	return f"{NOCHECK_MARKER}\n{text}"


class SummaryPassFileSystem(InterceptingFileSystem):
	"""
	View used while emitting a package's type summaries.

	The whole pass belongs to the compiler, so every source file of the package
	is rewritten without consulting the parsing scope, and diagnostics are
	suppressed in each of them. Files of other packages keep the ordinary
	parsing view: rewritten with their own aliases, diagnostics untouched.
	"""

	def __init__(self, package_dir: Path, base: FileSystem | None = None, **kwargs) -> None:
		super().__init__(base, **kwargs)
		self.package_dir = package_dir

	def read_text(self, path: Path) -> str:
		if self.is_excluded(path) or self._synthetic(path) is not None:
			return super().read_text(path)
		if path.suffix in SOURCE_EXTENSIONS and path.is_relative_to(self.package_dir):
			return suppress_diagnostics(self.rewrite(path, self.base.read_text(path)))
		return super().read_text(path)


def substitute_summary_root(text: str, *, source_root: str, summary_root: str) -> str:
	"""Point relative specifiers into `source_root` at the mirrored `summary_root` instead."""

	def _swap(spec: str) -> str:
		if not spec.startswith("."):
			return spec
		parts = spec.split("/")
		if source_root not in parts:
			return spec
		parts[parts.index(source_root)] = summary_root
		last = parts[-1]
		for src_ext, out_ext in _SUMMARY_EXTENSIONS.items():
			if last.endswith(src_ext) and not last.endswith(".d" + src_ext):
				parts[-1] = last[: -len(src_ext)] + out_ext
				break
		return "/".join(parts)

	return replace_specifiers(text, _swap)


class EntryPointSubstitutingFileSystem(FileSystem):
	"""
	View used for full validation: other packages are seen through their summaries.

	Reading exactly one of `entry_points` yields its text with the source-root
	segment of each relative specifier replaced by the summary root; every other
	read passes through.
	"""

	def __init__(
		self,
		base: FileSystem,
		*,
		entry_points: frozenset[Path],
		source_root: str,
		summary_root: str,
	) -> None:
		self.base = base
		self.entry_points = entry_points
		self.source_root = source_root
		self.summary_root = summary_root

	def read_text(self, path: Path) -> str:
		text = self.base.read_text(path)
		if path in self.entry_points:
			return substitute_summary_root(text, source_root=self.source_root, summary_root=self.summary_root)
		return text

	def exists(self, path: Path) -> bool:
		return self.base.exists(path)

	def stat(self, path: Path) -> os.stat_result:
		return self.base.stat(path)

	def metadata_source(self, path: Path) -> Path:
		return self.base.metadata_source(path)

	def virtual_paths(self) -> frozenset[Path]:
		return self.base.virtual_paths()

	def parsing(self, path: Path) -> AbstractContextManager[None]:
		return self.base.parsing(path)


@dataclass
class Overlay:
	"""Files whose view differs from disk, keyed by absolute path."""

	files: dict[str, str] = field(default_factory=dict)
	# Synthetic path -> real path whose metadata it reports.
	stat_from: dict[str, str] = field(default_factory=dict)

	def to_dict(self) -> dict[str, dict[str, str]]:
		return {"files": dict(sorted(self.files.items())), "stat_from": dict(sorted(self.stat_from.items()))}

	def text_for(self, path: Path) -> str | None:
		return self.files.get(str(path))


def build_overlay(
	fs: FileSystem,
	candidates: Iterable[Path],
	*,
	parse: bool,
	disk: FileSystem | None = None,
) -> Overlay:
	"""
	Materialise `fs` over `candidates` and every virtual path it declares.

	`parse=True` reads each candidate the way a compiler reads a file it is
	about to turn into a syntax tree (inside `fs.parsing(path)`); linters pass
	`parse=False`.
	"""
	disk = disk if disk is not None else DiskFileSystem()
	overlay = Overlay()
	for path in dict.fromkeys([*candidates, *sorted(fs.virtual_paths())]):
		if not fs.exists(path):
			continue
		if parse:
			with fs.parsing(path):
				text = fs.read_text(path)
		else:
			text = fs.read_text(path)
		if not disk.exists(path):
			overlay.files[str(path)] = text
			overlay.stat_from[str(path)] = str(fs.metadata_source(path))
		elif text != disk.read_text(path):
			overlay.files[str(path)] = text
	return overlay
