"""Declaration parser: source text to a per-scope map of declarations.

Top-level statements become declarations of the scope the file is evaluated
into. A class definition opens a nested scope: its header (everything but
the function and class definitions in its body) stays a declaration of the
enclosing scope, and each definition in the body becomes a declaration of
``<scope>.<ClassName>``, recursively.
"""

from __future__ import annotations

import ast
import copy
import logging
from dataclasses import dataclass, field
from pathlib import Path

from contract.report import Failure, ParseFailure
from parse.relocatable import Declaration
from parse.segments import parse_segments
from parse.signatures import extract_signatures
from snapshot.models import ScopeMap

logger = logging.getLogger(__name__)

_MEMBERS = (ast.FunctionDef, ast.AsyncFunctionDef, ast.ClassDef)


@dataclass
class ParseResult:
    scope_map: ScopeMap
    failures: list[Failure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures


def class_header(node: ast.ClassDef) -> ast.ClassDef:
    """Return a copy of a class definition without its member definitions."""
    header = copy.copy(node)
    body = [stmt for stmt in node.body if not isinstance(stmt, _MEMBERS)]
    header.body = body or [ast.copy_location(ast.Pass(), node)]
    return header


def _collect(statements: list[ast.stmt], scope: str, scope_map: ScopeMap) -> None:
    for node in statements:
        if isinstance(node, ast.ClassDef):
            scope_map.add(scope, Declaration(class_header(node)), None)
            nested = f"{scope}.{node.name}"
            scope_map.ensure_scope(nested)
            members = [stmt for stmt in node.body if isinstance(stmt, _MEMBERS)]
            _collect(members, nested, scope_map)
        elif isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef)):
            scope_map.add(scope, Declaration(node), extract_signatures(node, scope))
        else:
            scope_map.add(scope, Declaration(node), None)


def parse_source(text: str, scope: str, *, filename: str = "<unknown>") -> ParseResult:
    """Parse source text into declarations grouped by scope.

    Args:
        text: Python source text
        scope: Scope the file is evaluated into (e.g., "pkg.mod")
        filename: Path reported in failures

    Returns:
        ParseResult whose scope map always starts with ``scope``. Constructs
        that do not parse are listed in ``failures`` and left out of the map;
        the rest of the file is still parsed.
    """
    result = ParseResult(scope_map=ScopeMap())
    result.scope_map.ensure_scope(scope)

    try:
        statements = ast.parse(text, filename).body
    except SyntaxError as exc:
        logger.debug("Falling back to per-construct parsing for %s: %s", filename, exc)
        statements, result.failures = parse_segments(text, filename)

    _collect(statements, scope, result.scope_map)
    return result


def parse_file(path: Path, scope: str) -> ParseResult:
    """Read and parse a file, raising ParseFailure if it cannot be read."""
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        msg = f"Cannot read source: {exc}"
        raise ParseFailure(msg, path=path) from exc
    return parse_source(text, scope, filename=str(path))


__all__ = ["ParseResult", "class_header", "parse_file", "parse_source"]
