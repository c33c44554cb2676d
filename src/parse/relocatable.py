"""Position-independent structural equality for top-level statements."""

from __future__ import annotations

import ast

_DEFINITIONS = (ast.FunctionDef, ast.AsyncFunctionDef, ast.ClassDef)


def first_line(node: ast.stmt) -> int:
    """Return the first source line of a statement, decorators included."""
    lines = [node.lineno]
    if isinstance(node, _DEFINITIONS):
        lines.extend(decorator.lineno for decorator in node.decorator_list)
    return min(lines)


def _bound_name(node: ast.stmt) -> str | None:
    if isinstance(node, _DEFINITIONS):
        return node.name
    if isinstance(node, ast.Assign) and len(node.targets) == 1:
        target = node.targets[0]
        if isinstance(target, ast.Name):
            return target.id
    if isinstance(node, (ast.AnnAssign, ast.AugAssign)) and isinstance(
        node.target, ast.Name
    ):
        return node.target.id
    return None


class Declaration:
    """One top-level statement compared by structure rather than position.

    Equality and hashing use a normalized dump of the syntax tree that leaves
    out line and column attributes, so the same code compares equal wherever
    it sits in a file. ``lineno`` and ``end_lineno`` are carried along as
    position metadata only.
    """

    __slots__ = ("_hash", "_key", "end_lineno", "lineno", "node")

    def __init__(self, node: ast.stmt) -> None:
        self.node = node
        self.lineno = first_line(node)
        self.end_lineno = node.end_lineno or node.lineno
        self._key = ast.dump(node, include_attributes=False)
        self._hash = hash(self._key)

    @property
    def key(self) -> str:
        return self._key

    @property
    def name(self) -> str | None:
        return _bound_name(self.node)

    @property
    def kind(self) -> str:
        if isinstance(self.node, (ast.FunctionDef, ast.AsyncFunctionDef)):
            return "function"
        if isinstance(self.node, ast.ClassDef):
            return "class"
        return "statement"

    def source(self) -> str:
        return ast.unparse(self.node)

    def summary(self, width: int = 60) -> str:
        lines = self.source().splitlines()
        text = lines[0] if lines else ""
        if len(text) > width:
            return f"{text[: width - 3]}..."
        return text

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Declaration):
            return NotImplemented
        return self._hash == other._hash and self._key == other._key

    def __hash__(self) -> int:
        return self._hash

    def __repr__(self) -> str:
        return f"Declaration({self.summary()!r} @L{self.lineno})"


def relocatable_equal(a: Declaration, b: Declaration) -> bool:
    """Structural equality of two declarations, ignoring where they appear."""
    return a == b


__all__ = ["Declaration", "first_line", "relocatable_equal"]
