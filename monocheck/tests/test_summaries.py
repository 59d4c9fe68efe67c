# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
from __future__ import annotations

import json
from pathlib import Path

import pytest

from monocheck.errors import MonocheckError
from monocheck.summaries import GenerateOptions, derived_summary_config, generate_summaries
from monocheck.workspace import Workspace


def _summary_config(invocation) -> dict:
	text = next(text for path, text in invocation.overlay.files.items() if path.endswith("tsconfig.summary.json"))
	return json.loads(text)


def test_derived_config_drops_references_and_pins_roots(tmp_path: Path) -> None:
	data = {
		"compilerOptions": {"strict": True, "noEmit": True, "composite": True, "tsBuildInfoFile": "x.tsbuildinfo"},
		"files": ["index.ts"],
		"references": [{"path": "../api"}],
	}
	derived = derived_summary_config(data, package_dir=tmp_path, source_root="src", out_dir=tmp_path / "out")
	assert "references" not in derived
	assert "files" not in derived
	options = derived["compilerOptions"]
	assert options["strict"] is True
	assert options["noEmit"] is False
	assert options["emitDeclarationOnly"] is True
	assert options["composite"] is False
	assert "tsBuildInfoFile" not in options
	assert options["rootDir"] == str(tmp_path / "src")
	assert options["outDir"] == str(tmp_path / "out")
	assert derived["include"] == [str(tmp_path / "src")]
	# The input is left alone.
	assert data["references"] == [{"path": "../api"}]


def test_compiler_view_is_rewritten_and_suppressed(cyclic_workspace: Workspace, make_runner) -> None:
	runner = make_runner()
	assert generate_summaries(cyclic_workspace, GenerateOptions(package_slug="core", logs="none"), runner=runner) == 0

	(invocation,) = runner.invocations
	core = cyclic_workspace.package_dir("core")
	assert invocation.tool == "compiler"
	assert invocation.cwd == core
	assert invocation.args[0] == "-p"
	assert invocation.args[1] == str(core / "tsconfig.summary.json")

	config = _summary_config(invocation)
	assert "references" not in config
	assert invocation.overlay.stat_from[str(core / "tsconfig.summary.json")] == str(core / "tsconfig.json")

	index = invocation.overlay.text_for(core / "src" / "index.ts")
	assert index is not None
	assert index.startswith("// @ts-nocheck\n")
	assert "from './describe.js'" in index
	assert "~/" not in index
	assert invocation.overlay.text_for(core / "src" / "describe.ts").startswith("// @ts-nocheck\n")
	assert not any("node_modules" in path for path in invocation.overlay.files)
	# Nothing under the package is modified on disk by the view.
	assert (core / "src" / "index.ts").read_text(encoding="utf-8").startswith("import type")


def test_dependency_sources_use_their_own_aliases(cyclic_workspace: Workspace, make_runner) -> None:
	api = cyclic_workspace.package_dir("api")
	# Same alias, different target: only api's own configuration resolves it correctly.
	(api / "tsconfig.json").write_text(
		json.dumps({"compilerOptions": {"paths": {"~/*": ["./lib/*"]}}, "include": ["index.ts", "src", "lib"]}),
		encoding="utf-8",
	)
	(api / "lib").mkdir()
	(api / "lib" / "describe.ts").write_text("export const describe = (s: string) => s\n", encoding="utf-8")

	runner = make_runner()
	generate_summaries(cyclic_workspace, GenerateOptions(package_slug="core", logs="none"), runner=runner)

	(invocation,) = runner.invocations
	dependency = invocation.overlay.text_for(api / "src" / "index.ts")
	assert dependency is not None
	assert "from '../lib/describe.js'" in dependency
	assert "@ts-nocheck" not in dependency
	assert invocation.overlay.text_for(api / "lib" / "describe.ts") is None
	# The file on disk is left alone.
	assert "~/describe.js" in (api / "src" / "index.ts").read_text(encoding="utf-8")


def test_emitted_summaries_are_rewritten(cyclic_workspace: Workspace, make_runner, summary_emitter) -> None:
	runner = make_runner(emit=summary_emitter)
	generate_summaries(cyclic_workspace, GenerateOptions(package_slug="core", logs="none"), runner=runner)

	out = cyclic_workspace.package_dir("core") / "dist-typecheck"
	assert sorted(p.name for p in out.iterdir()) == ["describe.d.ts", "index.d.ts"]
	summary = (out / "index.d.ts").read_text(encoding="utf-8")
	assert "from './describe.js'" in summary
	assert "~/" not in summary
	assert not list(out.parent.glob("dist-typecheck.tmp-*"))


def test_generation_reports_success_when_the_compiler_fails(
	cyclic_workspace: Workspace, make_runner, summary_emitter, capsys
) -> None:
	runner = make_runner(exit_code=2, output="src/index.ts(1,1): error TS2307: Cannot find module\n", emit=summary_emitter)
	code = generate_summaries(cyclic_workspace, GenerateOptions(package_slug="api", logs="summary"), runner=runner)
	assert code == 0
	assert (cyclic_workspace.package_dir("api") / "dist-typecheck" / "index.d.ts").is_file()
	assert "ignored while generating summaries" in capsys.readouterr().out


def test_generation_is_idempotent(cyclic_workspace: Workspace, make_runner, summary_emitter) -> None:
	out = cyclic_workspace.package_dir("api") / "dist-typecheck"
	opts = GenerateOptions(package_slug="api", logs="none")

	generate_summaries(cyclic_workspace, opts, runner=make_runner(emit=summary_emitter))
	first = {p.name: p.read_text(encoding="utf-8") for p in out.iterdir()}
	generate_summaries(cyclic_workspace, opts, runner=make_runner(emit=summary_emitter))
	second = {p.name: p.read_text(encoding="utf-8") for p in out.iterdir()}
	assert first == second


def test_previous_summaries_survive_when_nothing_is_emitted(cyclic_workspace: Workspace, make_runner) -> None:
	out = cyclic_workspace.package_dir("core") / "dist-typecheck"
	out.mkdir()
	(out / "index.d.ts").write_text("export interface Model {}\n", encoding="utf-8")

	code = generate_summaries(cyclic_workspace, GenerateOptions(package_slug="core", logs="none"), runner=make_runner(exit_code=1))
	assert code == 0
	assert (out / "index.d.ts").read_text(encoding="utf-8") == "export interface Model {}\n"


def test_missing_configuration(cyclic_workspace: Workspace, make_runner) -> None:
	runner = make_runner()
	with pytest.raises(MonocheckError) as exc:
		generate_summaries(
			cyclic_workspace,
			GenerateOptions(package_slug="core", config_file="tsconfig.build.json", logs="none"),
			runner=runner,
		)
	assert exc.value.reason_code == "MALFORMED_CONFIG"
	assert runner.invocations == []
