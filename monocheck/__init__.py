# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
monocheck: type summaries and cross-package validation for workspaces whose
packages may depend on each other cyclically.
"""

from monocheck.errors import MonocheckError
from monocheck.lint import LintOptions, lint_package
from monocheck.orchestrate import OrchestrateOptions, clean_all, orchestrate_all
from monocheck.readiness import ReadinessState, ensure_package_ready, ensure_ready, should_be_checked
from monocheck.summaries import GenerateOptions, generate_summaries
from monocheck.validate import ValidateOptions, validate_package
from monocheck.workspace import Workspace, WorkspacePackage

__all__ = [
	"GenerateOptions",
	"LintOptions",
	"MonocheckError",
	"OrchestrateOptions",
	"ReadinessState",
	"ValidateOptions",
	"Workspace",
	"WorkspacePackage",
	"clean_all",
	"ensure_package_ready",
	"ensure_ready",
	"generate_summaries",
	"lint_package",
	"orchestrate_all",
	"should_be_checked",
	"validate_package",
]
