# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
from __future__ import annotations

import json
from pathlib import Path

import pytest

from monocheck.errors import MonocheckError
from monocheck.vfs import (
	DiskFileSystem,
	EntryPointSubstitutingFileSystem,
	InterceptingFileSystem,
	SummaryPassFileSystem,
	build_overlay,
	substitute_summary_root,
	suppress_diagnostics,
)

ALIASED = "import { a } from '~/utils/strings.js'\n"


def _write_file(path: Path, text: str) -> None:
	path.parent.mkdir(parents=True, exist_ok=True)
	path.write_text(text, encoding="utf-8")


@pytest.fixture
def pkg(tmp_path: Path) -> Path:
	pkg = tmp_path.resolve() / "pkg"
	_write_file(pkg / "tsconfig.json", json.dumps({"compilerOptions": {"paths": {"~/*": ["./src/*"]}}}))
	_write_file(pkg / "src" / "utils" / "strings.ts", "export const a = 1\n")
	_write_file(pkg / "src" / "main.ts", ALIASED)
	_write_file(pkg / "src" / "other.ts", ALIASED)
	return pkg


def test_rewrite_only_inside_parsing_scope_of_that_path(pkg: Path) -> None:
	fs = InterceptingFileSystem()
	main = pkg / "src" / "main.ts"
	other = pkg / "src" / "other.ts"

	assert fs.read_text(main) == ALIASED
	with fs.parsing(main):
		assert fs.read_text(main) == "import { a } from './utils/strings.js'\n"
		assert fs.read_text(other) == ALIASED
	assert fs.parsing_path is None
	assert fs.read_text(main) == ALIASED


def test_parsing_scope_is_cleared_on_error_and_does_not_nest(pkg: Path) -> None:
	fs = InterceptingFileSystem()
	main = pkg / "src" / "main.ts"
	with pytest.raises(ValueError):
		with fs.parsing(main):
			raise ValueError("parse failed")
	assert fs.parsing_path is None

	(pkg / "tsconfig.json").write_text("{ broken", encoding="utf-8")
	with pytest.raises(MonocheckError) as exc:
		build_overlay(fs, [main], parse=True)
	assert exc.value.reason_code == "MALFORMED_CONFIG"
	assert fs.parsing_path is None

	with fs.parsing(main):
		with pytest.raises(RuntimeError):
			with fs.parsing(pkg / "src" / "other.ts"):
				pass
		assert fs.parsing_path == main


def test_excluded_dirs_are_never_rewritten(pkg: Path) -> None:
	vendored = pkg / "node_modules" / "dep" / "index.ts"
	_write_file(vendored, ALIASED)
	fs = InterceptingFileSystem()
	with fs.parsing(vendored):
		assert fs.read_text(vendored) == ALIASED


def test_file_without_configuration_is_unchanged(tmp_path: Path) -> None:
	loose = tmp_path / "loose" / "a.ts"
	_write_file(loose, ALIASED)
	fs = InterceptingFileSystem()
	with fs.parsing(loose):
		assert fs.read_text(loose) == ALIASED


def test_non_source_files_are_unchanged_in_scope(pkg: Path) -> None:
	notes = pkg / "src" / "notes.md"
	_write_file(notes, ALIASED)
	fs = InterceptingFileSystem()
	with fs.parsing(notes):
		assert fs.read_text(notes) == ALIASED


def test_lint_variant_is_synthesized_next_to_base_config(pkg: Path) -> None:
	fs = InterceptingFileSystem()
	variant = pkg / "tsconfig.lint.json"

	assert not variant.exists()
	assert fs.exists(variant)
	assert json.loads(fs.read_text(variant)) == {"extends": "./tsconfig.json", "include": ["**/*"]}
	assert fs.metadata_source(variant) == pkg / "tsconfig.json"
	assert fs.stat(variant).st_mtime == (pkg / "tsconfig.json").stat().st_mtime

	# No base configuration, no stub.
	assert not fs.exists(pkg / "src" / "tsconfig.lint.json")


def test_real_lint_variant_wins_over_stub(pkg: Path) -> None:
	variant = pkg / "tsconfig.lint.json"
	_write_file(variant, '{"include": ["src"]}')
	fs = InterceptingFileSystem()
	assert fs.read_text(variant) == '{"include": ["src"]}'
	assert fs.metadata_source(variant) == variant


def test_virtual_files_borrow_metadata(pkg: Path) -> None:
	virtual = pkg / "tsconfig.summary.json"
	fs = InterceptingFileSystem(virtual_files={virtual: ("{}", pkg / "tsconfig.json")})
	assert fs.exists(virtual)
	assert fs.read_text(virtual) == "{}"
	assert fs.stat(virtual).st_size == (pkg / "tsconfig.json").stat().st_size

	overlay = build_overlay(fs, [], parse=True)
	assert overlay.files == {str(virtual): "{}"}
	assert overlay.stat_from == {str(virtual): str(pkg / "tsconfig.json")}


def test_suppress_diagnostics() -> None:
	assert suppress_diagnostics("let a = 1\n") == "// @ts-nocheck\nlet a = 1\n"
	assert suppress_diagnostics("#!/usr/bin/env node\nrun()\n") == "#!/usr/bin/env node\n// @ts-nocheck\nrun()\n"
	assert suppress_diagnostics("// @ts-check\nlet a = 1\n") == "// @ts-nocheck\nlet a = 1\n"
	assert suppress_diagnostics("#!/usr/bin/env node\n// @ts-check\nrun()\n") == (
		"#!/usr/bin/env node\n// @ts-nocheck\nrun()\n"
	)


def test_summary_pass_rewrites_and_suppresses_every_package_source(pkg: Path) -> None:
	fs = SummaryPassFileSystem(pkg)
	other = pkg / "src" / "other.ts"
	assert fs.read_text(other) == "// @ts-nocheck\nimport { a } from './utils/strings.js'\n"
	assert fs.read_text(pkg / "tsconfig.json") == (pkg / "tsconfig.json").read_text(encoding="utf-8")


def test_substitute_summary_root() -> None:
	text = (
		"export * from './src/index.js'\n"
		"export * from './src/view.tsx'\n"
		"export type { T } from './src/types.d.ts'\n"
		"export * from './src/esm.mts'\n"
		"import 'src/not-relative'\n"
		"export * from './lib/index.js'\n"
	)
	assert substitute_summary_root(text, source_root="src", summary_root="dist-typecheck") == (
		"export * from './dist-typecheck/index.js'\n"
		"export * from './dist-typecheck/view.js'\n"
		"export type { T } from './dist-typecheck/types.d.ts'\n"
		"export * from './dist-typecheck/esm.mjs'\n"
		"import 'src/not-relative'\n"
		"export * from './lib/index.js'\n"
	)


def test_entry_points_are_substituted_and_nothing_else(pkg: Path) -> None:
	entry = pkg / "index.ts"
	_write_file(entry, "export * from './src/main.js'\n")
	_write_file(pkg / "lib.ts", "export * from './src/main.js'\n")
	fs = EntryPointSubstitutingFileSystem(
		DiskFileSystem(),
		entry_points=frozenset({entry}),
		source_root="src",
		summary_root="dist-typecheck",
	)
	assert fs.read_text(entry) == "export * from './dist-typecheck/main.js'\n"
	assert fs.read_text(pkg / "lib.ts") == "export * from './src/main.js'\n"


def test_build_overlay_keeps_only_changed_and_synthetic_files(pkg: Path) -> None:
	fs = InterceptingFileSystem()
	main = pkg / "src" / "main.ts"
	plain = pkg / "src" / "utils" / "strings.ts"
	variant = pkg / "tsconfig.lint.json"

	parsed = build_overlay(fs, [main, plain, variant, pkg / "missing.ts"], parse=True)
	assert parsed.text_for(main) == "import { a } from './utils/strings.js'\n"
	assert parsed.text_for(plain) is None
	assert parsed.stat_from == {str(variant): str(pkg / "tsconfig.json")}
	assert str(pkg / "missing.ts") not in parsed.files

	unparsed = build_overlay(fs, [main, variant], parse=False)
	assert set(unparsed.files) == {str(variant)}
