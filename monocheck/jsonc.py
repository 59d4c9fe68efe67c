# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
JSON-with-comments reader.

Compiler configuration files (and `monocheck.json`) are allowed to carry `//`
and `/* */` comments as well as trailing commas, which `json.loads` rejects.
The grammar lives next to this module in `jsonc.lark`.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from lark import Lark, Token, Transformer
from lark.exceptions import UnexpectedInput

from monocheck.errors import MonocheckError

_GRAMMAR_PATH = Path(__file__).with_name("jsonc.lark")
_GRAMMAR_SRC = _GRAMMAR_PATH.read_text()


class _ToPython(Transformer):
	def string(self, children: list[Token]) -> str:
		return json.loads(children[0].value)

	def number(self, children: list[Token]) -> int | float:
		text = children[0].value
		try:
			return int(text)
		except ValueError:
			return float(text)

	def true(self, _children: list[Any]) -> bool:
		return True

	def false(self, _children: list[Any]) -> bool:
		return False

	def null(self, _children: list[Any]) -> None:
		return None

	def array(self, children: list[Any]) -> list[Any]:
		return list(children)

	def pair(self, children: list[Any]) -> tuple[str, Any]:
		return children[0], children[1]

	def object(self, children: list[tuple[str, Any]]) -> dict[str, Any]:
		# Later keys win, matching JSON.parse.
		return dict(children)


_PARSER = Lark(
	_GRAMMAR_SRC,
	parser="lalr",
	lexer="basic",
	start="start",
	transformer=_ToPython(),
)


def loads(text: str, *, source: str = "<string>") -> Any:
	"""Parse JSONC text, raising `MonocheckError(MALFORMED_CONFIG)` on syntax errors."""
	if text.startswith("\ufeff"):
		text = text[1:]
	try:
		return _PARSER.parse(text)
	except UnexpectedInput as err:
		raise MonocheckError(
			reason_code="MALFORMED_CONFIG",
			message=f"invalid JSON at line {err.line}, column {err.column}",
			path=source,
		) from err


def load_path(path: Path) -> Any:
	return loads(path.read_text(encoding="utf-8"), source=str(path))
