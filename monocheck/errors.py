# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class MonocheckError(Exception):
	"""
	A structured, serializable error for monocheck commands.

	Raised for pre-flight problems (unknown packages, malformed manifests or
	configuration, missing tools) before any filesystem mutation happens.
	Diagnostics produced by the compiler or linter are never wrapped in this
	type; those travel as exit codes.
	"""

	reason_code: str
	message: str
	package_slug: str | None = None
	path: str | None = None

	def __str__(self) -> str:
		return self.format_human()

	def to_dict(self) -> dict[str, Any]:
		return {
			"reason_code": self.reason_code,
			"message": self.message,
			"package_slug": self.package_slug,
			"path": self.path,
		}

	def format_human(self) -> str:
		parts: list[str] = [f"[{self.reason_code}] {self.message}"]
		if self.package_slug:
			parts.append(f"package={self.package_slug}")
		if self.path:
			parts.append(f"path={self.path}")
		return " ".join(parts)
